"""
Database Package - SQLAlchemy
=============================

Relational schema for cases, participants and case-scoped records.
"""

from .models import (
    Base,
    Profile, MagicLinkRedemption,
    Case, CaseParticipant, CaseInvitation,
    Document, Message, Deadline,
    UserRole, CaseType, CaseStatus, MessageType, InvitationStatus,
)
from .session import get_db, get_db_session, init_db, get_engine, reset_engine

__all__ = [
    # Base
    "Base",
    # Identity
    "Profile", "MagicLinkRedemption",
    # Case Management
    "Case", "CaseParticipant", "CaseInvitation",
    # Case-scoped records
    "Document", "Message", "Deadline",
    # Enums
    "UserRole", "CaseType", "CaseStatus", "MessageType", "InvitationStatus",
    # Session
    "get_db", "get_db_session", "init_db", "get_engine", "reset_engine",
]
