"""
Middleware Package
==================

FastAPI middleware for browser sessions.
"""

from .session import (
    SessionRefreshMiddleware,
    set_auth_cookies,
    clear_auth_cookies,
    ACCESS_COOKIE,
    REFRESH_COOKIE,
)

__all__ = [
    "SessionRefreshMiddleware",
    "set_auth_cookies",
    "clear_auth_cookies",
    "ACCESS_COOKIE",
    "REFRESH_COOKIE",
]
