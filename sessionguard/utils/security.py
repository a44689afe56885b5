"""Security utilities for password hashing and verification.

Passwords are hashed with bcrypt through passlib; the work factor comes from
``BCRYPT_WORK_FACTOR``.
"""

from passlib.context import CryptContext

from sessionguard.core.config.settings import settings

pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=settings.BCRYPT_WORK_FACTOR,
)

# Hash verified against when the username is unknown, so that lookups of
# missing users cost the same as a wrong password.
DUMMY_PASSWORD_HASH = pwd_context.hash("sessionguard-timing-equalizer")


def hash_password(password: str) -> str:
    """Hash a password using bcrypt.

    Args:
        password: Plain text password to hash

    Returns:
        str: Bcrypt-hashed password
    """
    return pwd_context.hash(password)


def verify_password(password: str, hashed_password: str) -> bool:
    """Verify a password against its hash.

    Args:
        password: Plain text password to verify
        hashed_password: Bcrypt hash to verify against

    Returns:
        bool: True if password matches hash
    """
    return pwd_context.verify(password, hashed_password)


def mask_identifier(value: str, visible: int = 4) -> str:
    """Return a token or session identifier safe to put in logs."""
    if not value:
        return ""
    return value[:visible] + "*" * max(len(value) - visible, 0)
