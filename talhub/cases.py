"""
Case lifecycle: create, read, list, update, delete and per-status stats.

Every function takes the request's ``AuthContext`` and runs the
authorization gate before touching a case.
"""

import logging
from datetime import datetime
from typing import List, Optional, Dict, Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .auth import AuthContext, AuthService
from .db.models import Case, CaseParticipant, CaseStatus, CaseType, UserRole, utc_naive
from .errors import ExternalServiceError, PermissionDeniedError, ValidationError
from .permissions import can_delete_case
from .storage import StorageError, get_storage

logger = logging.getLogger(__name__)

# Fields a participant may change through update_case
UPDATABLE_FIELDS = (
    "title", "type", "status", "opposing_party_name",
    "tal_dossier_number", "next_hearing_date", "notes",
)

# Every case creator joins their own case with this role, whatever their profile role
CREATOR_PARTICIPANT_ROLE = UserRole.TENANT


def _coerce_enum(enum_cls, value, field: str):
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        raise ValidationError(f"Invalid {field} {value!r}. Expected one of: {allowed}")


def case_to_dict(case: Case) -> Dict[str, Any]:
    return {
        "id": case.id,
        "title": case.title,
        "type": case.type.value,
        "status": case.status.value,
        "created_by": case.created_by,
        "opposing_party_name": case.opposing_party_name,
        "tal_dossier_number": case.tal_dossier_number,
        "next_hearing_date": case.next_hearing_date.isoformat() if case.next_hearing_date else None,
        "notes": case.notes,
        "created_at": case.created_at.isoformat() if case.created_at else None,
    }


def create_case(
    db: Session,
    auth: AuthContext,
    title: str,
    case_type: str,
    opposing_party_name: Optional[str] = None,
    status: Optional[str] = None,
    tal_dossier_number: Optional[str] = None,
    next_hearing_date: Optional[datetime] = None,
    notes: Optional[str] = None,
) -> Case:
    """
    Create a case and enrol the creator as its first participant.

    The case row and the participant row are written in one transaction.
    If either write fails nothing is kept.
    """
    title = (title or "").strip()
    if not title:
        raise ValidationError("Title is required")
    case_type = _coerce_enum(CaseType, case_type, "case type")
    case_status = _coerce_enum(CaseStatus, status, "status") if status else CaseStatus.DRAFT

    case = Case(
        title=title,
        type=case_type,
        status=case_status,
        created_by=auth.user_id,
        opposing_party_name=opposing_party_name,
        tal_dossier_number=tal_dossier_number,
        next_hearing_date=utc_naive(next_hearing_date),
        notes=notes,
    )
    try:
        db.add(case)
        db.flush()
        db.add(CaseParticipant(
            case_id=case.id,
            user_id=auth.user_id,
            role=CREATOR_PARTICIPANT_ROLE,
            added_by=auth.user_id,
        ))
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Case creation rolled back for {auth.user_id}: {e}")
        raise ExternalServiceError(f"Failed to create case: {e}")

    db.refresh(case)
    logger.info(f"Case {case.id} created by {auth.user_id}")
    return case


def get_case(db: Session, auth: AuthContext, case_id: str) -> Case:
    return AuthService(db).require_case_access(auth, case_id)


def list_cases(db: Session, auth: AuthContext) -> List[Case]:
    """Cases the caller participates in (all cases for admins), newest first."""
    query = AuthService(db).scope_cases(db.query(Case), auth)
    return query.order_by(Case.created_at.desc()).all()


def update_case(db: Session, auth: AuthContext, case_id: str, changes: Dict[str, Any]) -> Case:
    """
    Apply a partial update. Any participant may edit any field, status
    included, with no transition rules. Concurrent edits: last write wins.
    """
    case = AuthService(db).require_case_access(auth, case_id)

    for field, value in changes.items():
        if field not in UPDATABLE_FIELDS:
            raise ValidationError(f"Field {field!r} cannot be updated")
        if field == "title":
            value = (value or "").strip()
            if not value:
                raise ValidationError("Title is required")
        elif field == "type":
            value = _coerce_enum(CaseType, value, "case type")
        elif field == "status":
            value = _coerce_enum(CaseStatus, value, "status")
        elif field == "next_hearing_date":
            value = utc_naive(value)
        setattr(case, field, value)

    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise ExternalServiceError(f"Failed to update case: {e}")
    db.refresh(case)
    return case


def delete_case(db: Session, auth: AuthContext, case_id: str, storage=None) -> None:
    """
    Owner or admin only. Child rows go with the case.

    Document blobs are removed first; if any of them cannot be removed the
    case and all its rows are kept, so the delete can be retried.
    """
    case = AuthService(db).require_case_access(auth, case_id)
    if not can_delete_case(case, auth):
        logger.warning(f"Permission denied: {auth.user_id} cannot delete case {case_id}")
        raise PermissionDeniedError("Only the case owner or an admin can delete this case")

    storage = storage or get_storage()
    for document in case.documents:
        try:
            storage.delete(document.storage_path)
        except StorageError as e:
            logger.error(f"Blob delete failed for document {document.id}, keeping case {case_id}: {e}")
            raise ExternalServiceError("Failed to delete case files")

    try:
        db.delete(case)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise ExternalServiceError(f"Failed to delete case: {e}")
    logger.info(f"Case {case_id} deleted by {auth.user_id}")


def case_stats(db: Session, auth: AuthContext) -> Dict[str, int]:
    """Count of visible cases per status"""
    stats = {"total": 0}
    stats.update({status.value: 0 for status in CaseStatus})
    for case in list_cases(db, auth):
        stats["total"] += 1
        stats[case.status.value] += 1
    return stats
