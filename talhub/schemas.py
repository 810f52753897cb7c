"""
Pydantic Schemas for the TAL Hub API
====================================

Request bodies and the response envelopes shared across routers.
Case-scoped rows are returned as plain dicts built by the service modules.
"""

from typing import List, Optional
from datetime import datetime

from pydantic import BaseModel, EmailStr, Field

from .db.models import CaseType, CaseStatus, UserRole, MessageType


# =============================================================================
# AUTH
# =============================================================================

class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class RegisterRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=8)
    full_name: Optional[str] = None


class MagicLinkRequest(BaseModel):
    email: EmailStr


class MagicLinkVerifyRequest(BaseModel):
    token: str


class RefreshTokenRequest(BaseModel):
    refresh_token: Optional[str] = Field(None, description="Falls back to the refresh_token cookie")


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: Optional[str] = None
    token_type: str = "bearer"
    expires_in: Optional[int] = None


# =============================================================================
# PROFILES
# =============================================================================

class OnboardingRequest(BaseModel):
    full_name: Optional[str] = None
    phone: Optional[str] = None
    role: Optional[str] = Field(None, description="tenant, landlord or lawyer")


class AdminProfileUpdate(BaseModel):
    full_name: Optional[str] = None
    phone: Optional[str] = None
    role: Optional[UserRole] = None


# =============================================================================
# CASES
# =============================================================================

class CreateCaseRequest(BaseModel):
    title: str = Field(..., description="Short case title")
    type: CaseType
    opposing_party_name: Optional[str] = None
    status: Optional[CaseStatus] = None
    tal_dossier_number: Optional[str] = None
    next_hearing_date: Optional[datetime] = None
    notes: Optional[str] = None


class UpdateCaseRequest(BaseModel):
    title: Optional[str] = None
    type: Optional[CaseType] = None
    status: Optional[CaseStatus] = None
    opposing_party_name: Optional[str] = None
    tal_dossier_number: Optional[str] = None
    next_hearing_date: Optional[datetime] = None
    notes: Optional[str] = None


class CaseStatsResponse(BaseModel):
    total: int
    draft: int
    active: int
    closed: int
    archived: int


# =============================================================================
# PARTICIPANTS
# =============================================================================

class ParticipantRequest(BaseModel):
    # Validated by the service so bad addresses get the same error shape everywhere
    email: str
    role: UserRole


class PermissionsResponse(BaseModel):
    can_add: bool
    can_remove: bool
    can_invite: bool


# =============================================================================
# DOCUMENTS
# =============================================================================

class DownloadLinkResponse(BaseModel):
    url: str
    filename: str
    expires_in: int


# =============================================================================
# MESSAGES
# =============================================================================

class SendMessageRequest(BaseModel):
    content: str
    type: MessageType = MessageType.TEXT


class MessageStatsResponse(BaseModel):
    total_messages: int
    last_message_at: Optional[str] = None


# =============================================================================
# DEADLINES
# =============================================================================

class CreateDeadlineRequest(BaseModel):
    title: str
    due_date: datetime


class UpdateDeadlineRequest(BaseModel):
    title: Optional[str] = None
    due_date: Optional[datetime] = None
    is_done: Optional[bool] = None


# =============================================================================
# SYSTEM
# =============================================================================

class HealthResponse(BaseModel):
    status: str
    version: str
    database: str
    storage: str


__all__: List[str] = [
    "LoginRequest", "RegisterRequest", "MagicLinkRequest", "MagicLinkVerifyRequest",
    "RefreshTokenRequest", "TokenResponse",
    "OnboardingRequest", "AdminProfileUpdate",
    "CreateCaseRequest", "UpdateCaseRequest", "CaseStatsResponse",
    "ParticipantRequest", "PermissionsResponse",
    "DownloadLinkResponse",
    "SendMessageRequest", "MessageStatsResponse",
    "CreateDeadlineRequest", "UpdateDeadlineRequest",
    "HealthResponse",
]
