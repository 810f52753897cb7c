"""
FastAPI dependencies shared by the routers.
"""

import logging
from typing import Optional

from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session

from .auth import AuthContext, ACCESS_TOKEN, decode_token, get_auth_service
from .db.session import get_db

logger = logging.getLogger(__name__)


def get_db_dependency():
    """Get database session for FastAPI dependency injection"""
    db = next(get_db())
    try:
        yield db
    finally:
        db.close()


def bearer_token(authorization: Optional[str]) -> Optional[str]:
    if authorization and authorization.lower().startswith("bearer "):
        return authorization.split(" ", 1)[1].strip()
    return None


def auth_from_token(db: Session, token: Optional[str]) -> Optional[AuthContext]:
    """Resolve an access token to an AuthContext, or None"""
    if not token:
        return None
    payload = decode_token(token, ACCESS_TOKEN)
    if not payload or not payload.get("sub"):
        return None
    return get_auth_service(db).get_auth_context(payload["sub"])


async def get_current_user(
    authorization: Optional[str] = Header(None, alias="Authorization"),
    db: Session = Depends(get_db_dependency)
) -> Optional[AuthContext]:
    """
    Get current user from `Authorization: Bearer <jwt>`.

    Browser sessions reach here the same way: SessionRefreshMiddleware turns
    the access_token cookie into a Bearer header.
    Returns None when no token is present.
    """
    token = bearer_token(authorization)
    if not token:
        return None

    auth = auth_from_token(db, token)
    if not auth:
        raise HTTPException(status_code=401, detail="Invalid or expired token")
    return auth


async def require_auth(
    auth: Optional[AuthContext] = Depends(get_current_user)
) -> AuthContext:
    """Require authenticated user"""
    if not auth:
        raise HTTPException(status_code=401, detail="Authentication required")
    return auth
