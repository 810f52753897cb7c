"""
Session Cookie Middleware
=========================

Keeps browser sessions alive. Requests carry the access and refresh tokens
as cookies; when the access cookie is missing or expired but the refresh
cookie is still valid, a fresh access token is minted, forwarded to the
request as a Bearer header and set on the response.
"""

import logging
from typing import Optional

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from ..auth import ACCESS_TOKEN, REFRESH_TOKEN, create_access_token, decode_token
from ..config import get_settings

logger = logging.getLogger(__name__)

ACCESS_COOKIE = "access_token"
REFRESH_COOKIE = "refresh_token"


def _secure_cookies() -> bool:
    return get_settings().app_url.startswith("https://")


def set_auth_cookies(response: Response, access_token: str, refresh_token: Optional[str] = None) -> None:
    settings = get_settings()
    response.set_cookie(
        ACCESS_COOKIE, access_token,
        max_age=settings.jwt_access_token_expire_minutes * 60,
        httponly=True, samesite="lax", secure=_secure_cookies(),
    )
    if refresh_token:
        response.set_cookie(
            REFRESH_COOKIE, refresh_token,
            max_age=settings.jwt_refresh_token_expire_days * 24 * 3600,
            httponly=True, samesite="lax", secure=_secure_cookies(),
        )


def clear_auth_cookies(response: Response) -> None:
    response.delete_cookie(ACCESS_COOKIE)
    response.delete_cookie(REFRESH_COOKIE)


class SessionRefreshMiddleware(BaseHTTPMiddleware):
    """Refresh an expired access cookie from the refresh cookie."""

    async def dispatch(self, request: Request, call_next) -> Response:
        if request.headers.get("authorization"):
            return await call_next(request)

        access_cookie = request.cookies.get(ACCESS_COOKIE)
        refresh_cookie = request.cookies.get(REFRESH_COOKIE)

        access_token = None
        if access_cookie and decode_token(access_cookie, ACCESS_TOKEN):
            access_token = access_cookie
        refreshed = False

        if access_token is None and refresh_cookie:
            payload = decode_token(refresh_cookie, REFRESH_TOKEN)
            if payload and payload.get("sub"):
                access_token = create_access_token({"sub": payload["sub"]})
                refreshed = True
                logger.info(f"Session refreshed for {payload['sub']}")

        if access_token:
            # Forward the session to the route as a Bearer header
            headers = [(k, v) for k, v in request.scope["headers"] if k != b"authorization"]
            headers.append((b"authorization", f"Bearer {access_token}".encode("latin-1")))
            request.scope["headers"] = headers

        response = await call_next(request)

        if refreshed:
            set_auth_cookies(response, access_token)
        return response
