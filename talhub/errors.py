"""
Shared error types.

Service modules raise these; the API layer maps them onto HTTP responses in
one place (see ``api.talhub_error_handler``).
"""


class TalHubError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code = 500

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message or "Request failed"


class AuthenticationError(TalHubError):
    """Authentication required"""

    status_code = 401


class NotFoundError(TalHubError):
    """Not found.

    Also used when the caller is not allowed to see the row, so the response
    never reveals whether it exists.
    """

    status_code = 404


class PermissionDeniedError(TalHubError):
    """Access denied"""

    status_code = 403


class ValidationError(TalHubError):
    """Invalid request"""

    status_code = 400


class ProfileNotFoundError(ValidationError):
    """No profile exists for the given email."""

    def __init__(self, email: str):
        super().__init__(
            f"User with email {email} does not exist. Please use the invitation "
            f"system to send them an invite to join the case."
        )
        self.email = email


class InvitationExpiredError(ValidationError):
    """Invitation has expired"""


class ExternalServiceError(TalHubError):
    """Storage or database failure. No retry is attempted."""

    status_code = 502
