from datetime import datetime  # For timestamp fields
from enum import Enum  # For type-safe role enumeration
from typing import Optional  # For optional fields

from sqlalchemy import DateTime
from sqlalchemy import Enum as SAEnum
from sqlmodel import Column, Field, SQLModel, String  # For ORM and table definition

from sessionguard.utils.time import utcnow


class Role(str, Enum):
    """Represents the role of a user within the system.

    Attributes:
        ADMIN: May run operator actions such as on-demand cleanup and metrics.
        USER: Standard account.
    """

    ADMIN = "admin"
    USER = "user"


class User(SQLModel, table=True):
    """Represents a User record in the Credential Store.

    Attributes:
        id: The unique identifier for the user (primary key).
        username: Unique login name, stored lower-case.
        email: Contact address.
        hashed_password: Bcrypt hash of the password.
        role: The user's role, embedded in access tokens.
        is_active: Inactive users cannot log in.
        failed_login_attempts: Consecutive failed password checks.
        last_login_at: Timestamp of the last successful login.
        created_at: The timestamp of when the user account was created.
        updated_at: The timestamp of the last update to the user's record.
    """

    __tablename__ = "users"

    id: Optional[int] = Field(
        default=None,
        primary_key=True,
        description="The unique identifier for the user.",
    )
    username: str = Field(
        sa_column=Column(String(50), unique=True, index=True, nullable=False),
        description="Unique, lower-case username for login.",
    )
    email: Optional[str] = Field(
        default=None,
        sa_column=Column(String(255), nullable=True),
        description="Contact email address.",
    )
    hashed_password: str = Field(
        max_length=255,
        description="Bcrypt-hashed password.",
    )
    role: Role = Field(
        default=Role.USER,
        sa_column=Column(
            SAEnum(Role, name="role", native_enum=False, values_callable=lambda e: [r.value for r in e]),
            nullable=False,
            default=Role.USER,
        ),
        description="The user's role.",
    )
    is_active: bool = Field(default=True, description="Whether the account may log in.")
    failed_login_attempts: int = Field(default=0, description="Consecutive failed logins.")
    last_login_at: Optional[datetime] = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True), nullable=True),
        description="Timestamp of the last successful login.",
    )
    created_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=True), nullable=False),
        description="The timestamp when the user was created.",
    )
    updated_at: Optional[datetime] = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True), nullable=True, onupdate=utcnow),
        description="The timestamp of the last update.",
    )
