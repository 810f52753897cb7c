"""
Deadlines and the upcoming-deadline banner.

Status is derived at read time from due_date, is_done and the current
time; nothing about it is stored.
"""

import logging
from datetime import datetime, timedelta
from typing import List, Optional, Dict, Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from .auth import AuthContext, AuthService
from .db.models import Case, Deadline, utc_naive
from .errors import ExternalServiceError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)

DUE_SOON_WINDOW = timedelta(hours=48)

COMPLETED = "completed"
OVERDUE = "overdue"
DUE_SOON = "due_soon"
UPCOMING = "upcoming"


def deadline_status(due_date: datetime, is_done: bool, now: Optional[datetime] = None) -> str:
    now = now or datetime.utcnow()
    if is_done:
        return COMPLETED
    if due_date < now:
        return OVERDUE
    if due_date <= now + DUE_SOON_WINDOW:
        return DUE_SOON
    return UPCOMING


def deadline_to_dict(deadline: Deadline, now: Optional[datetime] = None) -> Dict[str, Any]:
    creator = deadline.creator
    return {
        "id": deadline.id,
        "case_id": deadline.case_id,
        "title": deadline.title,
        "due_date": deadline.due_date.isoformat(),
        "is_done": deadline.is_done,
        "status": deadline_status(deadline.due_date, deadline.is_done, now),
        "created_by": deadline.created_by,
        "created_at": deadline.created_at.isoformat() if deadline.created_at else None,
        "creator": {
            "id": creator.id,
            "email": creator.email,
            "full_name": creator.full_name,
        } if creator else None,
    }


def _clean_title(title: Optional[str]) -> str:
    title = (title or "").strip()
    if not title:
        raise ValidationError("Title is required")
    return title


def list_deadlines(db: Session, auth: AuthContext, case_id: str) -> List[Deadline]:
    """Deadlines of a case, soonest first."""
    AuthService(db).require_case_access(auth, case_id)
    return (
        db.query(Deadline)
        .options(joinedload(Deadline.creator))
        .filter(Deadline.case_id == case_id)
        .order_by(Deadline.due_date.asc())
        .all()
    )


def add_deadline(db: Session, auth: AuthContext, case_id: str, title: str, due_date: datetime) -> Deadline:
    AuthService(db).require_case_access(auth, case_id)
    if due_date is None:
        raise ValidationError("Due date is required")

    deadline = Deadline(
        case_id=case_id,
        title=_clean_title(title),
        due_date=utc_naive(due_date),
        is_done=False,
        created_by=auth.user_id,
    )
    try:
        db.add(deadline)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise ExternalServiceError(f"Failed to add deadline: {e}")
    db.refresh(deadline)
    return deadline


def _get_visible_deadline(db: Session, auth: AuthContext, deadline_id: str) -> Deadline:
    deadline = db.query(Deadline).filter(Deadline.id == deadline_id).first()
    if not deadline:
        raise NotFoundError("Deadline not found")
    try:
        AuthService(db).require_case_access(auth, deadline.case_id)
    except NotFoundError:
        raise NotFoundError("Deadline not found")
    return deadline


def update_deadline(db: Session, auth: AuthContext, deadline_id: str, changes: Dict[str, Any]) -> Deadline:
    """Any participant may change title, due date or completion."""
    deadline = _get_visible_deadline(db, auth, deadline_id)

    if "title" in changes:
        deadline.title = _clean_title(changes["title"])
    if "due_date" in changes:
        if changes["due_date"] is None:
            raise ValidationError("Due date is required")
        deadline.due_date = utc_naive(changes["due_date"])
    if "is_done" in changes:
        deadline.is_done = bool(changes["is_done"])

    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise ExternalServiceError(f"Failed to update deadline: {e}")
    db.refresh(deadline)
    return deadline


def delete_deadline(db: Session, auth: AuthContext, deadline_id: str) -> None:
    deadline = _get_visible_deadline(db, auth, deadline_id)
    try:
        db.delete(deadline)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise ExternalServiceError(f"Failed to delete deadline: {e}")


def upcoming_deadlines(db: Session, auth: AuthContext, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
    """
    Open deadlines due within the next 48 hours across the caller's cases.

    Overdue deadlines never appear here; they only show on the case page.
    """
    now = now or datetime.utcnow()
    query = (
        db.query(Deadline, Case.title)
        .join(Case, Case.id == Deadline.case_id)
        .filter(
            Deadline.is_done.is_(False),
            Deadline.due_date >= now,
            Deadline.due_date < now + DUE_SOON_WINDOW,
        )
    )
    query = AuthService(db).scope_cases(query, auth)
    rows = query.order_by(Deadline.due_date.asc()).all()

    out = []
    for deadline, case_title in rows:
        item = deadline_to_dict(deadline, now)
        item["case_title"] = case_title
        out.append(item)
    return out
