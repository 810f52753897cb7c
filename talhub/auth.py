"""
Authentication and Case Authorization
=====================================

Identity, token issuance and the authorization gate for TAL Hub.

Profile roles:
- tenant / landlord / lawyer: regular users, see only cases they participate in
- admin: sees and manages every case

Authorization Flow:
1. Resolve the profile from a JWT (Authorization header or access_token cookie)
2. Every case-scoped read or write runs ``require_case_access`` first
3. A case the caller may not see is reported exactly like a missing case
"""

import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional, List

import jwt
from email_validator import validate_email, EmailNotValidError
from passlib.context import CryptContext
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, Query

from .config import get_settings
from .db.models import Profile, Case, CaseParticipant, MagicLinkRedemption, UserRole
from .errors import AuthenticationError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)

# Token types carried in the "type" claim
ACCESS_TOKEN = "access"
REFRESH_TOKEN = "refresh"
MAGIC_LINK_TOKEN = "magic_link"
STORAGE_TOKEN = "storage"


# =============================================================================
# PASSWORD HASHING
# =============================================================================

# bcrypt truncates passwords at 72 bytes; enforce to avoid 500s.
MAX_PASSWORD_BYTES = 72

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def is_password_too_long(password: str) -> bool:
    """Return True if password exceeds bcrypt 72-byte limit."""
    return len(password.encode("utf-8")) > MAX_PASSWORD_BYTES


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against a hash"""
    if is_password_too_long(plain_password):
        logger.warning("Auth failed: password exceeds bcrypt 72-byte limit")
        return False
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except ValueError as e:
        logger.warning(f"Auth failed: invalid password format ({e})")
        return False


def get_password_hash(password: str) -> str:
    """Hash a password"""
    if is_password_too_long(password):
        raise ValidationError("Password exceeds bcrypt 72-byte limit")
    return pwd_context.hash(password)


def normalize_email(email: str) -> str:
    """Validate an email address and return it lower-cased.

    Raises ValidationError for malformed addresses.
    """
    try:
        result = validate_email((email or "").strip(), check_deliverability=False)
    except EmailNotValidError as e:
        raise ValidationError(f"Invalid email address: {e}")
    return result.normalized.lower()


# =============================================================================
# JWT TOKEN HANDLING
# =============================================================================

def _encode(data: dict, token_type: str, expires_delta: timedelta) -> str:
    settings = get_settings()
    to_encode = data.copy()
    to_encode.update({"exp": datetime.utcnow() + expires_delta, "type": token_type})
    return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Create a JWT access token"""
    settings = get_settings()
    return _encode(
        data, ACCESS_TOKEN,
        expires_delta or timedelta(minutes=settings.jwt_access_token_expire_minutes),
    )


def create_refresh_token(data: dict) -> str:
    """Create a JWT refresh token"""
    settings = get_settings()
    return _encode(data, REFRESH_TOKEN, timedelta(days=settings.jwt_refresh_token_expire_days))


def create_magic_link_token(email: str) -> str:
    """Create a one-shot sign-in token for passwordless login"""
    settings = get_settings()
    return _encode(
        {"email": email, "nonce": secrets.token_urlsafe(16)},
        MAGIC_LINK_TOKEN,
        timedelta(minutes=settings.magic_link_expire_minutes),
    )


def create_storage_token(storage_path: str, filename: str, expires_in: int) -> str:
    """Create a time-boxed handle to a stored blob"""
    return _encode(
        {"path": storage_path, "filename": filename},
        STORAGE_TOKEN,
        timedelta(seconds=expires_in),
    )


def decode_token(token: str, expected_type: Optional[str] = None) -> Optional[dict]:
    """Decode and validate a JWT token. Returns None when invalid."""
    settings = get_settings()
    try:
        payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except jwt.PyJWTError as e:
        logger.warning(f"Invalid JWT token: {e}")
        return None

    if expected_type and payload.get("type") != expected_type:
        logger.warning(f"Invalid JWT token: expected {expected_type}, got {payload.get('type')}")
        return None
    return payload


def issue_token_pair(user_id: str) -> dict:
    """Access + refresh tokens for a signed-in profile"""
    settings = get_settings()
    return {
        "access_token": create_access_token({"sub": user_id}),
        "refresh_token": create_refresh_token({"sub": user_id}),
        "token_type": "bearer",
        "expires_in": settings.jwt_access_token_expire_minutes * 60,
    }


# =============================================================================
# AUTH CONTEXT
# =============================================================================

@dataclass
class AuthContext:
    """Authorization context for a request"""
    user_id: str
    email: str
    role: UserRole
    full_name: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


def auth_context_from_profile(profile: Profile) -> AuthContext:
    return AuthContext(
        user_id=profile.id,
        email=profile.email,
        role=profile.role,
        full_name=profile.full_name,
    )


# =============================================================================
# AUTH SERVICE (SQLAlchemy-based)
# =============================================================================

class AuthService:
    """Identity and case-authorization service"""

    def __init__(self, db: Session):
        self.db = db

    def get_auth_context(self, user_id: str) -> Optional[AuthContext]:
        """
        Build auth context for a profile.

        Args:
            user_id: Profile ID from the JWT "sub" claim

        Returns:
            AuthContext if the profile exists, None otherwise
        """
        profile = self.db.query(Profile).filter(Profile.id == user_id).first()
        if not profile:
            logger.warning(f"Auth failed: user {user_id} not found")
            return None
        return auth_context_from_profile(profile)

    def authenticate_user(self, email: str, password: str) -> Optional[AuthContext]:
        """
        Authenticate a profile by email and password.

        Returns:
            AuthContext if authentication succeeds, None otherwise
        """
        email = (email or "").strip().lower()
        profile = self.db.query(Profile).filter(Profile.email == email).first()
        if not profile:
            logger.warning(f"Auth failed: email {email} not found")
            return None

        if not profile.password_hash:
            logger.warning(f"Auth failed: user {profile.id} has no password set")
            return None

        if not verify_password(password, profile.password_hash):
            logger.warning(f"Auth failed: invalid password for user {profile.id}")
            return None

        return auth_context_from_profile(profile)

    def register(self, email: str, password: str, full_name: Optional[str] = None) -> AuthContext:
        """Create a password profile. New profiles start as tenants."""
        email = normalize_email(email)
        if not password:
            raise ValidationError("Password is required")

        if self.db.query(Profile).filter(Profile.email == email).first():
            raise ValidationError("An account with this email already exists")

        profile = Profile(
            email=email,
            full_name=(full_name or "").strip() or None,
            password_hash=get_password_hash(password),
            role=UserRole.TENANT,
        )
        self.db.add(profile)
        self.db.commit()
        self.db.refresh(profile)
        logger.info(f"Registered profile {profile.id}")
        return auth_context_from_profile(profile)

    def request_magic_link(self, email: str) -> str:
        """Issue a sign-in link for an email and send it. Returns the link."""
        from .email_utils import send_magic_link_email

        email = normalize_email(email)
        token = create_magic_link_token(email)
        link = f"{get_settings().app_url.rstrip('/')}/auth/callback?token={token}"
        send_magic_link_email(email, link)
        return link

    def redeem_magic_link(self, token: str) -> AuthContext:
        """Exchange a magic-link token for a profile, creating it at first sign-in."""
        payload = decode_token(token, MAGIC_LINK_TOKEN)
        if not payload or not payload.get("email") or not payload.get("nonce"):
            raise AuthenticationError("Invalid or expired sign-in link")

        email, nonce = payload["email"], payload["nonce"]
        if self.db.query(MagicLinkRedemption).filter(MagicLinkRedemption.nonce == nonce).first():
            logger.warning(f"Auth failed: sign-in link for {email} already used")
            raise AuthenticationError("Invalid or expired sign-in link")

        profile = self.db.query(Profile).filter(Profile.email == email).first()
        created = profile is None
        if created:
            profile = Profile(email=email, role=UserRole.TENANT)
            self.db.add(profile)
        # The nonce primary key rejects a concurrent second redemption
        self.db.add(MagicLinkRedemption(nonce=nonce, email=email))
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            logger.warning(f"Auth failed: sign-in link for {email} already used")
            raise AuthenticationError("Invalid or expired sign-in link")
        self.db.refresh(profile)
        if created:
            logger.info(f"Created profile {profile.id} at first sign-in")
        return auth_context_from_profile(profile)

    def refresh(self, refresh_token: str) -> dict:
        """Mint a new token pair from a valid refresh token"""
        payload = decode_token(refresh_token, REFRESH_TOKEN)
        if not payload:
            raise AuthenticationError("Invalid refresh token")
        auth = self.get_auth_context(payload.get("sub", ""))
        if not auth:
            raise AuthenticationError("Invalid refresh token")
        return issue_token_pair(auth.user_id)

    # -------------------------------------------------------------------------
    # Authorization gate
    # -------------------------------------------------------------------------

    def is_participant(self, auth: AuthContext, case_id: str) -> bool:
        participation = self.db.query(CaseParticipant).filter(
            CaseParticipant.case_id == case_id,
            CaseParticipant.user_id == auth.user_id,
        ).first()
        return participation is not None

    def can_access_case(self, auth: AuthContext, case_id: str) -> bool:
        """Participant-or-admin predicate"""
        if auth.is_admin:
            return True
        return self.is_participant(auth, case_id)

    def require_case_access(self, auth: AuthContext, case_id: str) -> Case:
        """
        Load a case the caller may see.

        Raises:
            NotFoundError: the case does not exist or the caller is not a
                participant. The two are indistinguishable to the caller.
        """
        case = self.db.query(Case).filter(Case.id == case_id).first()
        if not case or not self.can_access_case(auth, case_id):
            if case:
                logger.warning(f"Resource access denied: {auth.user_id} cannot access case {case_id}")
            raise NotFoundError("Case not found")
        return case

    def accessible_case_ids(self, auth: AuthContext) -> List[str]:
        """IDs of every case the caller may see"""
        if auth.is_admin:
            return [c[0] for c in self.db.query(Case.id).all()]
        participations = self.db.query(CaseParticipant.case_id).filter(
            CaseParticipant.user_id == auth.user_id
        ).all()
        return [p[0] for p in participations]

    def scope_cases(self, query: Query, auth: AuthContext) -> Query:
        """Restrict a Case query to rows the caller may see"""
        if auth.is_admin:
            return query
        return query.join(
            CaseParticipant, CaseParticipant.case_id == Case.id
        ).filter(CaseParticipant.user_id == auth.user_id)


# =============================================================================
# FASTAPI DEPENDENCY HELPERS
# =============================================================================

def get_auth_service(db: Session) -> AuthService:
    """Get AuthService instance for a database session"""
    return AuthService(db)
