"""
Profile onboarding and admin role management.
"""

import logging
from typing import Optional, Dict, Any

from sqlalchemy.orm import Session

from .auth import AuthContext
from .db.models import Profile, UserRole
from .errors import NotFoundError, PermissionDeniedError, ValidationError

logger = logging.getLogger(__name__)

# Roles a user may pick for themself during onboarding
SELF_SERVICE_ROLES = (UserRole.TENANT, UserRole.LANDLORD, UserRole.LAWYER)


def profile_to_dict(profile: Profile) -> Dict[str, Any]:
    return {
        "id": profile.id,
        "email": profile.email,
        "role": profile.role.value,
        "full_name": profile.full_name,
        "phone": profile.phone,
        "is_complete": profile_is_complete(profile),
        "created_at": profile.created_at.isoformat() if profile.created_at else None,
    }


def profile_is_complete(profile: Profile) -> bool:
    return bool(profile.full_name and profile.phone)


def get_profile(db: Session, user_id: str) -> Profile:
    profile = db.query(Profile).filter(Profile.id == user_id).first()
    if not profile:
        raise NotFoundError("Profile not found")
    return profile


def complete_onboarding(db: Session, auth: AuthContext, full_name: Optional[str],
                        phone: Optional[str], role: Optional[str]) -> Profile:
    """Name, phone and a non-admin role are all required."""
    full_name = (full_name or "").strip()
    phone = (phone or "").strip()
    if not full_name or not phone or not role:
        raise ValidationError("Full name, phone and role are required")

    try:
        role = UserRole(role)
    except ValueError:
        role = None
    if role not in SELF_SERVICE_ROLES:
        raise ValidationError("Role must be one of: tenant, landlord, lawyer")

    profile = get_profile(db, auth.user_id)
    profile.full_name = full_name
    profile.phone = phone
    profile.role = role
    db.commit()
    db.refresh(profile)
    logger.info(f"Profile {profile.id} completed onboarding as {role.value}")
    return profile


def admin_update_profile(db: Session, auth: AuthContext, user_id: str, changes: Dict[str, Any]) -> Profile:
    if not auth.is_admin:
        logger.warning(f"Permission denied: {auth.user_id} is not an admin")
        raise PermissionDeniedError("Admin access required")

    profile = get_profile(db, user_id)
    if "role" in changes and changes["role"] is not None:
        try:
            profile.role = UserRole(changes["role"])
        except ValueError:
            raise ValidationError(f"Invalid role {changes['role']!r}")
    if "full_name" in changes:
        profile.full_name = (changes["full_name"] or "").strip() or None
    if "phone" in changes:
        profile.phone = (changes["phone"] or "").strip() or None
    db.commit()
    db.refresh(profile)
    logger.info(f"Profile {user_id} updated by admin {auth.user_id}")
    return profile
