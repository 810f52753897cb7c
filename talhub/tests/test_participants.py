"""
Participant Management Tests
============================

Owner/admin management rights, membership as the access boundary,
invitations and their redemption.
"""

from datetime import datetime, timedelta
from urllib.parse import urlparse, parse_qs

import pytest

from talhub import cases as case_service
from talhub import participants as participant_service
from talhub.auth import AuthService
from talhub.db.models import CaseInvitation, InvitationStatus, UserRole
from talhub.errors import (
    InvitationExpiredError, NotFoundError, PermissionDeniedError,
    ProfileNotFoundError, ValidationError,
)
from talhub.permissions import participant_permissions, can_delete_case


@pytest.fixture
def setup(db, make_user):
    owner = make_user("owner@example.com", UserRole.TENANT)
    lawyer = make_user("lawyer@example.com", UserRole.LAWYER)
    landlord = make_user("landlord@example.com", UserRole.LANDLORD)
    admin = make_user("admin@example.com", UserRole.ADMIN)
    case = case_service.create_case(db, owner, "Repairs", "repairs")
    return {"owner": owner, "lawyer": lawyer, "landlord": landlord, "admin": admin, "case": case}


class TestPermissions:

    def test_owner_and_admin_manage_lawyer_does_not(self, db, setup):
        case = setup["case"]
        participant_service.add_participant(db, setup["owner"], case.id, "lawyer@example.com", "lawyer")

        assert participant_permissions(case, setup["owner"]).can_add
        assert participant_permissions(case, setup["admin"]).can_invite
        lawyer_perms = participant_permissions(case, setup["lawyer"])
        assert not (lawyer_perms.can_add or lawyer_perms.can_remove or lawyer_perms.can_invite)
        assert not can_delete_case(case, setup["lawyer"])


class TestAddParticipant:

    def test_add_existing_profile_grants_access(self, db, setup):
        case = setup["case"]
        participant = participant_service.add_participant(
            db, setup["owner"], case.id, "Landlord@Example.com", "landlord"
        )
        assert participant.role == UserRole.LANDLORD
        assert participant.added_by == setup["owner"].user_id
        assert AuthService(db).require_case_access(setup["landlord"], case.id).id == case.id

        listed = participant_service.list_participants(db, setup["landlord"], case.id)
        emails = [participant_service.participant_to_dict(p)["profile"]["email"] for p in listed]
        assert emails == ["owner@example.com", "landlord@example.com"]

    def test_unknown_email_points_to_invitations(self, db, setup):
        with pytest.raises(ProfileNotFoundError) as exc_info:
            participant_service.add_participant(db, setup["owner"], setup["case"].id, "nobody@example.com", "tenant")

        assert exc_info.value.message == (
            "User with email nobody@example.com does not exist. Please use the invitation "
            "system to send them an invite to join the case."
        )

    def test_malformed_email_rejected(self, db, setup):
        with pytest.raises(ValidationError):
            participant_service.add_participant(db, setup["owner"], setup["case"].id, "not-an-email", "tenant")

    def test_duplicate_membership_rejected(self, db, setup):
        case = setup["case"]
        participant_service.add_participant(db, setup["owner"], case.id, "lawyer@example.com", "lawyer")
        with pytest.raises(ValidationError):
            participant_service.add_participant(db, setup["owner"], case.id, "lawyer@example.com", "lawyer")

    def test_non_owner_participant_cannot_add(self, db, setup):
        case = setup["case"]
        participant_service.add_participant(db, setup["owner"], case.id, "lawyer@example.com", "lawyer")
        with pytest.raises(PermissionDeniedError):
            participant_service.add_participant(db, setup["lawyer"], case.id, "landlord@example.com", "landlord")

    def test_outsider_gets_not_found(self, db, setup):
        with pytest.raises(NotFoundError):
            participant_service.add_participant(db, setup["landlord"], setup["case"].id, "lawyer@example.com", "lawyer")

    def test_admin_can_add_without_membership(self, db, setup):
        participant = participant_service.add_participant(
            db, setup["admin"], setup["case"].id, "lawyer@example.com", "lawyer"
        )
        assert participant.added_by == setup["admin"].user_id


class TestRemoveParticipant:

    def test_removal_revokes_access(self, db, setup):
        case = setup["case"]
        participant_service.add_participant(db, setup["owner"], case.id, "landlord@example.com", "landlord")
        participant_service.remove_participant(db, setup["owner"], case.id, setup["landlord"].user_id)

        with pytest.raises(NotFoundError):
            AuthService(db).require_case_access(setup["landlord"], case.id)

    def test_owner_may_remove_themself(self, db, setup):
        case = setup["case"]
        participant_service.remove_participant(db, setup["owner"], case.id, setup["owner"].user_id)

        with pytest.raises(NotFoundError):
            case_service.get_case(db, setup["owner"], case.id)
        # Still reachable by admins
        assert case_service.get_case(db, setup["admin"], case.id).id == case.id

    def test_remove_missing_participant(self, db, setup):
        with pytest.raises(NotFoundError):
            participant_service.remove_participant(db, setup["owner"], setup["case"].id, "no-such-user")


class TestInvitations:

    def test_invite_returns_link_and_is_not_idempotent(self, db, setup):
        case = setup["case"]
        first = participant_service.invite_participant(db, setup["owner"], case.id, "new@example.com", "landlord")
        participant_service.invite_participant(db, setup["owner"], case.id, "new@example.com", "landlord")

        link = urlparse(first["link"])
        assert link.path == "/auth/sign-up"
        query = parse_qs(link.query)
        assert query["email"] == ["new@example.com"]
        assert query["role"] == ["landlord"]

        invitation = db.query(CaseInvitation).filter(CaseInvitation.token == query["invite"][0]).one()
        assert invitation.status == InvitationStatus.PENDING
        delta = invitation.expires_at - datetime.utcnow()
        assert timedelta(days=6, hours=23) < delta <= timedelta(days=7)

        assert db.query(CaseInvitation).filter(CaseInvitation.case_id == case.id).count() == 2

    def test_non_owner_cannot_invite(self, db, setup):
        case = setup["case"]
        participant_service.add_participant(db, setup["owner"], case.id, "lawyer@example.com", "lawyer")
        with pytest.raises(PermissionDeniedError):
            participant_service.invite_participant(db, setup["lawyer"], case.id, "new@example.com", "tenant")

    def test_accept_adds_participant(self, db, setup, make_user):
        case = setup["case"]
        result = participant_service.invite_participant(db, setup["owner"], case.id, "new@example.com", "landlord")
        token = parse_qs(urlparse(result["link"]).query)["invite"][0]

        newcomer = make_user("new@example.com", UserRole.LANDLORD)
        participant = participant_service.accept_invitation(db, newcomer, token)

        assert participant.case_id == case.id
        assert participant.role == UserRole.LANDLORD
        assert participant.added_by == setup["owner"].user_id
        invitation = db.query(CaseInvitation).filter(CaseInvitation.token == token).one()
        assert invitation.status == InvitationStatus.ACCEPTED

    def test_accept_checks_expiry(self, db, setup, make_user):
        case = setup["case"]
        result = participant_service.invite_participant(db, setup["owner"], case.id, "late@example.com", "tenant")
        token = parse_qs(urlparse(result["link"]).query)["invite"][0]
        late = make_user("late@example.com")

        with pytest.raises(InvitationExpiredError):
            participant_service.accept_invitation(db, late, token, now=datetime.utcnow() + timedelta(days=8))

        invitation = db.query(CaseInvitation).filter(CaseInvitation.token == token).one()
        assert invitation.status == InvitationStatus.EXPIRED
        with pytest.raises(NotFoundError):
            AuthService(db).require_case_access(late, case.id)

    def test_accept_requires_matching_email(self, db, setup):
        case = setup["case"]
        result = participant_service.invite_participant(db, setup["owner"], case.id, "new@example.com", "tenant")
        token = parse_qs(urlparse(result["link"]).query)["invite"][0]

        with pytest.raises(NotFoundError):
            participant_service.accept_invitation(db, setup["landlord"], token)
