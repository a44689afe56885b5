from __future__ import annotations

"""Centralized, structured exception hierarchy for SessionGuard.

Every error carries a machine-readable `code` for programmatic handling and a
human-readable `message` for logging and caller feedback. The hierarchy maps
cleanly onto HTTP status codes in `sessionguard.core.handlers`:

- credential errors never reveal whether the user exists or is inactive;
- `MaxSessionsReachedError` is the designed alternate path of login and
  carries the session list the caller can pick from;
- token errors surface as authentication failures;
- `SessionLockTimeoutError` is retriable;
- `DatabaseError` hides storage details behind a generic message.
"""

from typing import TYPE_CHECKING, Final, List, Optional

if TYPE_CHECKING:
    from sessionguard.domain.value_objects.session_info import SessionInfo

__all__: Final = [
    "SessionGuardError",
    "AuthenticationError",
    "InvalidCredentialsError",
    "AccountInactiveError",
    "InvalidTokenError",
    "TokenExpiredError",
    "InvalidRefreshTokenError",
    "SessionNotFoundError",
    "MaxSessionsReachedError",
    "SessionLockTimeoutError",
    "PermissionError",
    "ValidationError",
    "DatabaseError",
]

GENERIC_CREDENTIALS_MESSAGE: Final = "Invalid credentials"


class SessionGuardError(Exception):
    """Base exception class for all custom errors in the application.

    Attributes:
        message (str): A human-readable error message, suitable for logging.
        code (str): A unique, machine-readable error code.
    """

    message: str
    code: str = "generic_error"

    def __init__(self, message: str, code: str = "generic_error"):
        self.message = message
        self.code = code
        Exception.__init__(self, self.message)

    def __str__(self) -> str:
        return self.message


# ---------------------------------------------------------------------------
# Auth-related errors
# ---------------------------------------------------------------------------


class AuthenticationError(SessionGuardError):
    """Raised for general authentication failures.

    Base for the credential and token errors; maps to `401 Unauthorized`.
    """

    def __init__(self, message: str, code: str = "authentication_error"):
        super().__init__(message, code)


class InvalidCredentialsError(AuthenticationError):
    """Raised when user-provided credentials are invalid.

    The message is always generic so that wrong passwords, unknown usernames
    and inactive accounts cannot be told apart.
    """

    def __init__(self, message: str = GENERIC_CREDENTIALS_MESSAGE, code: str = "invalid_credentials"):
        super().__init__(message, code)


class AccountInactiveError(InvalidCredentialsError):
    """Raised when a deactivated account presents correct credentials.

    Distinguishable in code and logs only; callers see the same message and
    code as `InvalidCredentialsError`.
    """

    reason: Final = "account_inactive"


class InvalidTokenError(AuthenticationError):
    """Raised when a token signature, format or type is wrong."""

    def __init__(self, message: str = "Invalid token", code: str = "invalid_token"):
        super().__init__(message, code)


class TokenExpiredError(AuthenticationError):
    """Raised when an access token is past its embedded expiry."""

    def __init__(self, message: str = "Token has expired", code: str = "token_expired"):
        super().__init__(message, code)


class InvalidRefreshTokenError(AuthenticationError):
    """Raised when a refresh token is unknown, revoked, expired or already rotated."""

    def __init__(
        self, message: str = "Invalid or expired refresh token", code: str = "invalid_refresh_token"
    ):
        super().__init__(message, code)


class SessionNotFoundError(AuthenticationError):
    """Raised when no live session matches the token or the requested id.

    On the verify path this is an authentication failure; on termination paths
    it maps to `404 Not Found`.
    """

    def __init__(
        self, message: str = "Session not found or already terminated", code: str = "session_not_found"
    ):
        super().__init__(message, code)


class PermissionError(SessionGuardError):
    """Raised when an authenticated user lacks the role for an action.

    Maps to a `403 Forbidden` HTTP status code.
    """

    def __init__(self, message: str = "Permission denied", code: str = "permission_denied"):
        super().__init__(message, code)


# ---------------------------------------------------------------------------
# Capacity and concurrency errors
# ---------------------------------------------------------------------------


class MaxSessionsReachedError(SessionGuardError):
    """Raised when a login would exceed the per-user session maximum.

    This is a recoverable, user-actionable outcome: the caller renders
    `sessions` and may terminate one of them through the pre-login flow
    before retrying. Maps to `409 Conflict`.
    """

    def __init__(
        self,
        sessions: Optional[List["SessionInfo"]] = None,
        max_sessions: int = 0,
        user_id: Optional[int] = None,
        message: str = "Maximum number of active sessions reached",
        code: str = "max_sessions_reached",
    ):
        self.sessions = list(sessions or [])
        self.max_sessions = max_sessions
        self.user_id = user_id
        super().__init__(message, code)


class SessionLockTimeoutError(SessionGuardError):
    """Raised when a session row stays locked past the termination timeout.

    Retriable: the caller should refresh its session list and try again.
    """

    retriable: Final = True

    def __init__(
        self,
        message: str = "Session is being modified by another request, please retry",
        code: str = "session_locked",
    ):
        super().__init__(message, code)


# ---------------------------------------------------------------------------
# Validation and persistence errors
# ---------------------------------------------------------------------------


class ValidationError(SessionGuardError):
    """Raised for malformed input that passed transport validation.

    Maps to `422 Unprocessable Entity`.
    """

    def __init__(self, message: str, code: str = "validation_error"):
        super().__init__(message, code)


class DatabaseError(SessionGuardError):
    """Raised for low-level database interaction errors.

    Wraps driver errors behind a generic message; maps to `500`.
    """

    def __init__(self, message: str = "Internal server error", code: str = "internal_error"):
        super().__init__(message, code)
