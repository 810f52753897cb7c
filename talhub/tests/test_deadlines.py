"""
Deadline status and upcoming-banner tests.
"""

from datetime import datetime, timedelta, timezone

import pytest

from talhub import cases as case_service
from talhub import deadlines as deadline_service
from talhub.db.models import Deadline, UserRole
from talhub.deadlines import COMPLETED, DUE_SOON, OVERDUE, UPCOMING, deadline_status
from talhub.errors import NotFoundError, ValidationError

NOW = datetime(2024, 3, 1, 12, 0, 0)


@pytest.mark.parametrize("due,is_done,expected", [
    (NOW - timedelta(days=1), True, COMPLETED),
    (NOW + timedelta(days=30), True, COMPLETED),
    (NOW - timedelta(minutes=1), False, OVERDUE),
    (NOW, False, DUE_SOON),
    (NOW + timedelta(hours=47), False, DUE_SOON),
    (NOW + timedelta(hours=48), False, DUE_SOON),
    (NOW + timedelta(hours=48, seconds=1), False, UPCOMING),
])
def test_deadline_status(due, is_done, expected):
    assert deadline_status(due, is_done, now=NOW) == expected


@pytest.fixture
def two_cases(db, make_user):
    tenant = make_user("tenant@example.com", UserRole.TENANT)
    other = make_user("other@example.com", UserRole.LANDLORD)
    mine = case_service.create_case(db, tenant, "Mine", "repairs")
    theirs = case_service.create_case(db, other, "Theirs", "repairs")
    return tenant, other, mine, theirs


def _deadline(db, case, creator, title, due, is_done=False):
    deadline = Deadline(case_id=case.id, title=title, due_date=due, is_done=is_done, created_by=creator.user_id)
    db.add(deadline)
    db.commit()
    return deadline


class TestUpcomingBanner:

    def test_window_and_scope(self, db, two_cases):
        tenant, other, mine, theirs = two_cases
        _deadline(db, mine, tenant, "in 1h", NOW + timedelta(hours=1))
        _deadline(db, mine, tenant, "in 47h", NOW + timedelta(hours=47))
        _deadline(db, mine, tenant, "in 49h", NOW + timedelta(hours=49))
        _deadline(db, mine, tenant, "exactly 48h", NOW + timedelta(hours=48))
        _deadline(db, mine, tenant, "overdue", NOW - timedelta(hours=1))
        _deadline(db, mine, tenant, "done", NOW + timedelta(hours=2), is_done=True)
        _deadline(db, theirs, other, "someone else's", NOW + timedelta(hours=3))

        banner = deadline_service.upcoming_deadlines(db, tenant, now=NOW)

        assert [d["title"] for d in banner] == ["in 1h", "in 47h"]
        assert all(d["status"] == DUE_SOON for d in banner)
        assert banner[0]["case_title"] == "Mine"

    def test_advancing_clock(self, db, two_cases):
        tenant, _, mine, _ = two_cases
        _deadline(db, mine, tenant, "hearing", NOW + timedelta(hours=50))

        assert deadline_service.upcoming_deadlines(db, tenant, now=NOW) == []
        later = NOW + timedelta(hours=3)
        assert [d["title"] for d in deadline_service.upcoming_deadlines(db, tenant, now=later)] == ["hearing"]
        much_later = NOW + timedelta(hours=51)
        assert deadline_service.upcoming_deadlines(db, tenant, now=much_later) == []

        # Gone from the banner, but still on the case page as overdue
        listed = deadline_service.list_deadlines(db, tenant, mine.id)
        assert [d.title for d in listed] == ["hearing"]
        assert deadline_service.deadline_to_dict(listed[0], now=much_later)["status"] == OVERDUE

    def test_admin_sees_all_cases(self, db, two_cases, make_user):
        tenant, other, mine, theirs = two_cases
        admin = make_user("admin@example.com", UserRole.ADMIN)
        _deadline(db, mine, tenant, "a", NOW + timedelta(hours=1))
        _deadline(db, theirs, other, "b", NOW + timedelta(hours=2))

        assert len(deadline_service.upcoming_deadlines(db, admin, now=NOW)) == 2


class TestDeadlineCrud:

    def test_add_update_delete(self, db, two_cases):
        tenant, _, mine, _ = two_cases
        due = datetime.now(timezone.utc) + timedelta(days=5)
        deadline = deadline_service.add_deadline(db, tenant, mine.id, " File response ", due)

        assert deadline.title == "File response"
        assert deadline.due_date.tzinfo is None
        assert deadline.created_by == tenant.user_id

        updated = deadline_service.update_deadline(db, tenant, deadline.id, {"is_done": True})
        assert updated.is_done
        assert deadline_service.deadline_to_dict(updated)["status"] == COMPLETED

        deadline_service.delete_deadline(db, tenant, deadline.id)
        assert deadline_service.list_deadlines(db, tenant, mine.id) == []

    def test_title_required(self, db, two_cases):
        tenant, _, mine, _ = two_cases
        with pytest.raises(ValidationError):
            deadline_service.add_deadline(db, tenant, mine.id, "  ", NOW)

    def test_outsider_sees_not_found(self, db, two_cases):
        tenant, other, mine, _ = two_cases
        deadline = _deadline(db, mine, tenant, "private", NOW)

        with pytest.raises(NotFoundError):
            deadline_service.update_deadline(db, other, deadline.id, {"is_done": True})
        with pytest.raises(NotFoundError):
            deadline_service.add_deadline(db, other, mine.id, "sneaky", NOW)
