"""JWT token value objects for domain modeling.

These value objects carry token identifiers and decoded claims between the
token service and its callers without exposing raw JWT payload dictionaries.
"""

import base64
import secrets
import string
from dataclasses import dataclass
from datetime import datetime
from typing import Any, ClassVar, Dict

from sessionguard.domain.entities.user import Role


@dataclass(frozen=True)
class TokenId:
    """Identifier correlating a session with its live refresh token.

    256 bits of entropy encoded as a 43-character URL-safe base64 string.
    """

    value: str

    TOKEN_ID_LENGTH: ClassVar[int] = 43
    VALID_CHARS: ClassVar[str] = string.ascii_letters + string.digits + "-_"

    def __post_init__(self):
        """Validate token ID after initialization."""
        if not self.value:
            raise ValueError("Token ID cannot be empty")
        if len(self.value) != self.TOKEN_ID_LENGTH:
            raise ValueError(f"Token ID must be exactly {self.TOKEN_ID_LENGTH} characters")
        if not all(c in self.VALID_CHARS for c in self.value):
            raise ValueError("Token ID contains invalid characters")

    @classmethod
    def generate(cls) -> "TokenId":
        """Generate a new cryptographically secure token ID."""
        raw_bytes = secrets.token_bytes(32)
        return cls(base64.urlsafe_b64encode(raw_bytes).rstrip(b"=").decode("ascii"))

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class TokenClaims:
    """Decoded identity of a verified access token."""

    user_id: int
    token_id: str
    role: Role

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "TokenClaims":
        """Build claims from a decoded JWT payload.

        Raises:
            ValueError: If a claim is missing or malformed.
        """
        try:
            return cls(
                user_id=int(payload["sub"]),
                token_id=str(payload["tid"]),
                role=Role(payload.get("role", Role.USER.value)),
            )
        except (KeyError, TypeError) as exc:
            raise ValueError(f"Malformed token claims: {exc}") from exc


@dataclass(frozen=True)
class IssuedTokens:
    """A freshly signed token pair bound to one session.

    Attributes:
        access_token: Short-lived bearer token.
        refresh_token: Long-lived token, persisted server-side.
        token_id: Session correlation id embedded in both tokens.
        session_id: Id of the Session row, used by listing and termination.
        expires_in: Access token lifetime in seconds.
        refresh_expires_at: Absolute expiry of the refresh token.
    """

    access_token: str
    refresh_token: str
    token_id: str
    session_id: str
    expires_in: int
    refresh_expires_at: datetime
    token_type: str = "bearer"
