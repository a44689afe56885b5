"""Read models describing sessions to callers."""

from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Dict

from sessionguard.domain.entities.session import Session


@dataclass(frozen=True)
class SessionInfo:
    """One entry of a user's session list, safe to return to clients."""

    id: str
    device_name: str
    device_type: str
    browser: str
    os: str
    last_active: datetime
    created_at: datetime
    is_current: bool = False

    @classmethod
    def from_entity(cls, session: Session, current_token_id: str | None = None) -> "SessionInfo":
        return cls(
            id=session.id,
            device_name=session.device_name,
            device_type=session.device_type,
            browser=session.browser,
            os=session.os,
            last_active=session.last_active,
            created_at=session.created_at,
            is_current=current_token_id is not None and session.token_id == current_token_id,
        )

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["last_active"] = self.last_active.isoformat()
        data["created_at"] = self.created_at.isoformat()
        return data


@dataclass(frozen=True)
class TerminationResult:
    """Outcome of removing one session."""

    session_id: str
    remaining_sessions: int


@dataclass(frozen=True)
class SessionLimitResult:
    """Outcome of a session-limit check.

    ``allowed`` is False when the user already holds ``max_sessions`` or more
    active sessions; ``sessions`` then lists them for the caller to choose from.
    """

    allowed: bool
    active_count: int
    max_sessions: int
    sessions: tuple = ()


@dataclass(frozen=True)
class CleanupResult:
    """Row counts of one cleanup pass, per category."""

    expired_tokens: int = 0
    expired_sessions: int = 0
    marked_sessions: int = 0
    evicted_sessions: int = 0
    purged_tokens: int = 0

    @property
    def total(self) -> int:
        return (
            self.expired_tokens
            + self.expired_sessions
            + self.marked_sessions
            + self.evicted_sessions
            + self.purged_tokens
        )

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)
