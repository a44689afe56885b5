"""Session and token lifecycle services."""

from .pre_login import LoginFlowOutcome, LoginFlowState, LoginRecoveryFlow, PreLoginTerminationService
from .session import SessionLifecycleService
from .session_limit import SessionLimitService
from .token import TokenService
from .user_authentication import LoginResult, UserAuthenticationService

__all__ = [
    "LoginFlowOutcome",
    "LoginFlowState",
    "LoginRecoveryFlow",
    "LoginResult",
    "PreLoginTerminationService",
    "SessionLifecycleService",
    "SessionLimitService",
    "TokenService",
    "UserAuthenticationService",
]
