"""
Management rights inside a visible case.

Seeing a case is decided by ``AuthService.require_case_access``. The
predicates here decide what a caller who can already see the case may
manage: its participants, the case itself and uploaded documents.
"""

from dataclasses import dataclass, asdict

from .auth import AuthContext
from .db.models import Case, Document


@dataclass
class ParticipantPermissions:
    can_add: bool
    can_remove: bool
    can_invite: bool

    def to_dict(self) -> dict:
        return asdict(self)


def is_case_owner(case: Case, auth: AuthContext) -> bool:
    return case.created_by == auth.user_id


def participant_permissions(case: Case, auth: AuthContext) -> ParticipantPermissions:
    """Owner or admin may manage participants. Lawyers get no extra rights."""
    allowed = is_case_owner(case, auth) or auth.is_admin
    return ParticipantPermissions(can_add=allowed, can_remove=allowed, can_invite=allowed)


def can_delete_case(case: Case, auth: AuthContext) -> bool:
    return is_case_owner(case, auth) or auth.is_admin


def can_delete_document(document: Document, auth: AuthContext) -> bool:
    return document.user_id == auth.user_id or auth.is_admin
