"""
TAL Hub Schema
==============

Schema for tenant-landlord dispute tracking:
- Profiles (one per authenticated identity)
- Cases and their participants (membership gates every other table)
- Case-scoped documents, messages and deadlines
- Pending case invitations

Timestamps are stored as naive UTC on both SQLite and PostgreSQL.
"""

import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Column, String, Text, Boolean, DateTime, Enum, ForeignKey, BigInteger, Index,
)
from sqlalchemy.orm import relationship, declarative_base

Base = declarative_base()


def generate_uuid():
    return str(uuid.uuid4())


def utc_naive(value):
    """Columns hold naive UTC; convert aware datetimes on the way in."""
    if value is not None and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def _enum(enum_cls, name):
    # Store enum values ("non_payment"), not member names ("NON_PAYMENT")
    return Enum(
        enum_cls,
        name=name,
        values_callable=lambda members: [m.value for m in members],
        validate_strings=True,
    )


# =============================================================================
# ENUMS
# =============================================================================

class UserRole(str, enum.Enum):
    """Profile role, also used as the per-case participant role"""
    TENANT = "tenant"
    LANDLORD = "landlord"
    LAWYER = "lawyer"
    ADMIN = "admin"


class CaseType(str, enum.Enum):
    """Kind of dispute"""
    NON_PAYMENT = "non_payment"
    REPOSSESSION = "repossession"
    RENOVATION = "renovation"
    RENT_INCREASE = "rent_increase"
    REPAIRS = "repairs"
    OTHER = "other"


class CaseStatus(str, enum.Enum):
    """Case status. Transitions are free-form."""
    DRAFT = "draft"
    ACTIVE = "active"
    CLOSED = "closed"
    ARCHIVED = "archived"


class MessageType(str, enum.Enum):
    TEXT = "text"
    SYSTEM = "system"


class InvitationStatus(str, enum.Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    EXPIRED = "expired"


# =============================================================================
# PROFILES
# =============================================================================

class Profile(Base):
    """User profile, created at first sign-in"""
    __tablename__ = "profiles"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    email = Column(String(255), nullable=False, unique=True)
    role = Column(_enum(UserRole, "user_role"), default=UserRole.TENANT, nullable=False)
    full_name = Column(String(255), nullable=True)
    phone = Column(String(50), nullable=True)
    password_hash = Column(String(255), nullable=True)  # None for magic-link only accounts
    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    participations = relationship(
        "CaseParticipant", back_populates="profile",
        cascade="all, delete-orphan", foreign_keys="CaseParticipant.user_id",
    )


class MagicLinkRedemption(Base):
    """Nonce of a sign-in link that has already been used"""
    __tablename__ = "magic_link_redemptions"

    nonce = Column(String(64), primary_key=True)
    email = Column(String(255), nullable=False)
    redeemed_at = Column(DateTime, default=datetime.utcnow, nullable=False)


# =============================================================================
# CASES
# =============================================================================

class Case(Base):
    """Tenant-landlord dispute"""
    __tablename__ = "cases"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    title = Column(String(255), nullable=False)
    type = Column(_enum(CaseType, "case_type"), nullable=False)
    status = Column(_enum(CaseStatus, "case_status"), default=CaseStatus.DRAFT, nullable=False)
    created_by = Column(String(36), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False)

    # Case details
    opposing_party_name = Column(String(255), nullable=True)
    tal_dossier_number = Column(String(100), nullable=True)
    next_hearing_date = Column(DateTime, nullable=True)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index("ix_case_created_by", "created_by"),
    )

    # Relationships
    creator = relationship("Profile", foreign_keys=[created_by])
    participants = relationship("CaseParticipant", back_populates="case", cascade="all, delete-orphan")
    documents = relationship("Document", back_populates="case", cascade="all, delete-orphan")
    messages = relationship("Message", back_populates="case", cascade="all, delete-orphan")
    deadlines = relationship("Deadline", back_populates="case", cascade="all, delete-orphan")
    invitations = relationship("CaseInvitation", back_populates="case", cascade="all, delete-orphan")


class CaseParticipant(Base):
    """Membership of a profile in a case. Deleting the row revokes access."""
    __tablename__ = "case_participants"

    case_id = Column(String(36), ForeignKey("cases.id", ondelete="CASCADE"), primary_key=True)
    user_id = Column(String(36), ForeignKey("profiles.id", ondelete="CASCADE"), primary_key=True)
    role = Column(_enum(UserRole, "user_role"), nullable=False)
    added_by = Column(String(36), ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index("ix_participant_user", "user_id"),
    )

    # Relationships
    case = relationship("Case", back_populates="participants")
    profile = relationship("Profile", back_populates="participations", foreign_keys=[user_id])


class CaseInvitation(Base):
    """Pending offer to join a case, for someone who may not have a profile yet"""
    __tablename__ = "case_invitations"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    case_id = Column(String(36), ForeignKey("cases.id", ondelete="CASCADE"), nullable=False)
    email = Column(String(255), nullable=False)
    role = Column(_enum(UserRole, "user_role"), nullable=False)
    invited_by = Column(String(36), ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True)
    token = Column(String(64), nullable=False, unique=True)
    status = Column(_enum(InvitationStatus, "invitation_status"), default=InvitationStatus.PENDING, nullable=False)
    expires_at = Column(DateTime, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index("ix_invitation_case", "case_id"),
    )

    case = relationship("Case", back_populates="invitations")


# =============================================================================
# CASE-SCOPED RECORDS
# =============================================================================

class Document(Base):
    """Uploaded file metadata. The blob lives in storage at storage_path."""
    __tablename__ = "documents"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    case_id = Column(String(36), ForeignKey("cases.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(String(36), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False)
    name = Column(String(255), nullable=False)
    type = Column(String(50), nullable=False, default="other")
    storage_path = Column(String(500), nullable=False)
    size_bytes = Column(BigInteger, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index("ix_document_case", "case_id"),
    )

    case = relationship("Case", back_populates="documents")
    uploader = relationship("Profile", foreign_keys=[user_id])


class Message(Base):
    """Case feed entry. Append-only."""
    __tablename__ = "messages"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    case_id = Column(String(36), ForeignKey("cases.id", ondelete="CASCADE"), nullable=False)
    sender_id = Column(String(36), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False)
    type = Column(_enum(MessageType, "message_type"), default=MessageType.TEXT, nullable=False)
    content = Column(Text, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index("ix_message_case_created", "case_id", "created_at"),
    )

    case = relationship("Case", back_populates="messages")
    sender = relationship("Profile", foreign_keys=[sender_id])


class Deadline(Base):
    """Dated task inside a case"""
    __tablename__ = "deadlines"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    case_id = Column(String(36), ForeignKey("cases.id", ondelete="CASCADE"), nullable=False)
    title = Column(String(255), nullable=False)
    due_date = Column(DateTime, nullable=False)
    is_done = Column(Boolean, default=False, nullable=False)
    created_by = Column(String(36), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index("ix_deadline_case_due", "case_id", "due_date"),
        Index("ix_deadline_open_due", "is_done", "due_date"),
    )

    case = relationship("Case", back_populates="deadlines")
    creator = relationship("Profile", foreign_keys=[created_by])
