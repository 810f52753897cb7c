"""
Participant management: list, add, remove, invite and invitation redemption.

Membership rows are the basis of every access decision, so adding one
grants access to the whole case and deleting one revokes it.
"""

import logging
import secrets
from datetime import datetime, timedelta
from typing import List, Optional, Dict, Any
from urllib.parse import urlencode

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from .auth import AuthContext, AuthService, normalize_email
from .config import get_settings
from .db.models import (
    CaseParticipant, CaseInvitation, Profile, UserRole, InvitationStatus,
)
from .email_utils import send_invitation_email
from .errors import (
    ExternalServiceError, InvitationExpiredError, NotFoundError,
    PermissionDeniedError, ProfileNotFoundError, ValidationError,
)
from .permissions import participant_permissions

logger = logging.getLogger(__name__)


def _coerce_role(role) -> UserRole:
    try:
        return UserRole(role)
    except ValueError:
        allowed = ", ".join(r.value for r in UserRole)
        raise ValidationError(f"Invalid role {role!r}. Expected one of: {allowed}")


def participant_to_dict(participant: CaseParticipant) -> Dict[str, Any]:
    profile = participant.profile
    return {
        "case_id": participant.case_id,
        "user_id": participant.user_id,
        "role": participant.role.value,
        "added_by": participant.added_by,
        "created_at": participant.created_at.isoformat() if participant.created_at else None,
        "profile": {
            "id": profile.id,
            "email": profile.email,
            "full_name": profile.full_name,
            "phone": profile.phone,
        } if profile else None,
    }


def invitation_to_dict(invitation: CaseInvitation) -> Dict[str, Any]:
    return {
        "id": invitation.id,
        "case_id": invitation.case_id,
        "email": invitation.email,
        "role": invitation.role.value,
        "invited_by": invitation.invited_by,
        "status": invitation.status.value,
        "expires_at": invitation.expires_at.isoformat(),
        "created_at": invitation.created_at.isoformat() if invitation.created_at else None,
    }


def build_invitation_link(token: str, email: str, role: UserRole) -> str:
    query = urlencode({"invite": token, "email": email, "role": role.value})
    return f"{get_settings().app_url.rstrip('/')}/auth/sign-up?{query}"


def list_participants(db: Session, auth: AuthContext, case_id: str) -> List[CaseParticipant]:
    """Participants with their profiles, oldest first."""
    AuthService(db).require_case_access(auth, case_id)
    return (
        db.query(CaseParticipant)
        .options(joinedload(CaseParticipant.profile))
        .filter(CaseParticipant.case_id == case_id)
        .order_by(CaseParticipant.created_at.asc())
        .all()
    )


def add_participant(db: Session, auth: AuthContext, case_id: str, email: str, role) -> CaseParticipant:
    """
    Add an existing profile to a case.

    Never creates a profile: an unknown email raises ProfileNotFoundError,
    pointing the caller at invite_participant instead.
    """
    case = AuthService(db).require_case_access(auth, case_id)
    if not participant_permissions(case, auth).can_add:
        logger.warning(f"Permission denied: {auth.user_id} cannot add participants to {case_id}")
        raise PermissionDeniedError("Only the case owner or an admin can add participants")

    email = normalize_email(email)
    role = _coerce_role(role)

    profile = db.query(Profile).filter(Profile.email == email).first()
    if not profile:
        raise ProfileNotFoundError(email)

    existing = db.query(CaseParticipant).filter(
        CaseParticipant.case_id == case_id,
        CaseParticipant.user_id == profile.id,
    ).first()
    if existing:
        raise ValidationError(f"{email} is already a participant in this case")

    participant = CaseParticipant(
        case_id=case_id,
        user_id=profile.id,
        role=role,
        added_by=auth.user_id,
    )
    try:
        db.add(participant)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise ExternalServiceError(f"Failed to add participant: {e}")
    db.refresh(participant)
    logger.info(f"Participant {profile.id} added to case {case_id} by {auth.user_id}")
    return participant


def remove_participant(db: Session, auth: AuthContext, case_id: str, user_id: str) -> None:
    """
    Remove a participant. The owner may remove themself; the case keeps
    its creator and stays manageable by admins.
    """
    case = AuthService(db).require_case_access(auth, case_id)
    if not participant_permissions(case, auth).can_remove:
        logger.warning(f"Permission denied: {auth.user_id} cannot remove participants from {case_id}")
        raise PermissionDeniedError("Only the case owner or an admin can remove participants")

    participant = db.query(CaseParticipant).filter(
        CaseParticipant.case_id == case_id,
        CaseParticipant.user_id == user_id,
    ).first()
    if not participant:
        raise NotFoundError("Participant not found")

    try:
        db.delete(participant)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise ExternalServiceError(f"Failed to remove participant: {e}")
    logger.info(f"Participant {user_id} removed from case {case_id} by {auth.user_id}")


def invite_participant(db: Session, auth: AuthContext, case_id: str, email: str, role) -> Dict[str, Any]:
    """
    Record an invitation and return it with its shareable link.

    Each call creates a new invitation row. The link is also emailed when
    SMTP is configured.
    """
    case = AuthService(db).require_case_access(auth, case_id)
    if not participant_permissions(case, auth).can_invite:
        logger.warning(f"Permission denied: {auth.user_id} cannot invite to {case_id}")
        raise PermissionDeniedError("Only the case owner or an admin can send invitations")

    email = normalize_email(email)
    role = _coerce_role(role)

    invitation = CaseInvitation(
        case_id=case_id,
        email=email,
        role=role,
        invited_by=auth.user_id,
        token=secrets.token_urlsafe(32),
        status=InvitationStatus.PENDING,
        expires_at=datetime.utcnow() + timedelta(days=get_settings().invitation_expire_days),
    )
    try:
        db.add(invitation)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise ExternalServiceError(f"Failed to create invitation: {e}")
    db.refresh(invitation)

    link = build_invitation_link(invitation.token, email, role)
    send_invitation_email(email, case.title, role.value, link, inviter_name=auth.full_name)
    logger.info(f"Invitation {invitation.id} to case {case_id} created by {auth.user_id}")

    result = invitation_to_dict(invitation)
    result["link"] = link
    return result


def list_invitations(db: Session, auth: AuthContext, case_id: str) -> List[CaseInvitation]:
    AuthService(db).require_case_access(auth, case_id)
    return (
        db.query(CaseInvitation)
        .filter(CaseInvitation.case_id == case_id)
        .order_by(CaseInvitation.created_at.desc())
        .all()
    )


def accept_invitation(db: Session, auth: AuthContext, token: str,
                      now: Optional[datetime] = None) -> CaseParticipant:
    """
    Redeem an invitation for the signed-in profile.

    The invitation's email must match the caller. Expiry is only checked
    here; an expired invitation is marked as such and rejected.
    """
    now = now or datetime.utcnow()
    invitation = db.query(CaseInvitation).filter(CaseInvitation.token == token).first()
    if not invitation or invitation.email != auth.email.lower():
        raise NotFoundError("Invitation not found")

    if invitation.status == InvitationStatus.EXPIRED or invitation.expires_at < now:
        if invitation.status != InvitationStatus.EXPIRED:
            invitation.status = InvitationStatus.EXPIRED
            db.commit()
        raise InvitationExpiredError("This invitation has expired")

    participant = db.query(CaseParticipant).filter(
        CaseParticipant.case_id == invitation.case_id,
        CaseParticipant.user_id == auth.user_id,
    ).first()
    try:
        if not participant:
            participant = CaseParticipant(
                case_id=invitation.case_id,
                user_id=auth.user_id,
                role=invitation.role,
                added_by=invitation.invited_by,
            )
            db.add(participant)
        invitation.status = InvitationStatus.ACCEPTED
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise ExternalServiceError(f"Failed to accept invitation: {e}")
    db.refresh(participant)
    logger.info(f"Invitation {invitation.id} accepted by {auth.user_id}")
    return participant
