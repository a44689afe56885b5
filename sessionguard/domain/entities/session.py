from datetime import datetime  # For timestamp fields
from typing import Optional  # For optional fields
from uuid import uuid4  # For generating session ids

from sqlalchemy import Boolean, DateTime, Integer, false, text
from sqlmodel import Column, Field, Index, SQLModel, String  # For ORM and table definition

from sessionguard.utils.time import utcnow


class Session(SQLModel, table=True):
    """One row per logged-in device: the Session Ledger.

    A session is created in the same transaction as its first refresh token
    and is correlated to the live refresh token through `token_id`. Device
    metadata is display-only and never updated after creation. Soft deletion
    is a one-way tag: once `is_marked_for_deletion` is set the row no longer
    counts toward the user's limit or appears in listings, and a cleanup pass
    removes it later.

    Attributes:
        id: Opaque unique identifier of the session.
        user_id: Owner of the session.
        token_id: Correlates the session with exactly one live refresh token.
        device_type: Device class reported by the client (desktop, mobile...).
        device_name: Friendly label shown to the user.
        browser: Browser name reported by the client.
        os: Operating system reported by the client.
        created_at: When the session was created.
        last_active: Last verified request; never moves backwards.
        last_ip: Client address seen with the last verified request.
        activity_count: Number of verified requests.
        is_marked_for_deletion: Soft-delete tag.
        marked_at: When the soft-delete tag was set.
    """

    __tablename__ = "user_sessions"

    id: str = Field(
        default_factory=lambda: str(uuid4()),
        sa_column=Column(String(36), primary_key=True),
        description="Opaque unique identifier of the session.",
    )
    user_id: int = Field(
        foreign_key="users.id",
        nullable=False,
        description="Foreign key linking the session to the User.",
    )
    token_id: str = Field(
        sa_column=Column(String(64), unique=True, nullable=False),
        description="Correlation id shared with the live refresh token.",
    )
    device_type: str = Field(
        default="unknown",
        sa_column=Column(String(50), nullable=False, server_default="unknown"),
    )
    device_name: str = Field(
        default="unknown",
        sa_column=Column(String(255), nullable=False, server_default="unknown"),
    )
    browser: str = Field(
        default="unknown",
        sa_column=Column(String(100), nullable=False, server_default="unknown"),
    )
    os: str = Field(
        default="unknown",
        sa_column=Column(String(100), nullable=False, server_default="unknown"),
    )
    created_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=True), nullable=False, server_default=text("CURRENT_TIMESTAMP")),
        description="The timestamp when the session was created.",
    )
    last_active: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=True), nullable=False, server_default=text("CURRENT_TIMESTAMP")),
        description="Timestamp of the last verified request.",
    )
    last_ip: Optional[str] = Field(
        default=None,
        sa_column=Column(String(45), nullable=True),
        description="Client address seen with the last verified request.",
    )
    activity_count: int = Field(
        default=0,
        sa_column=Column(Integer, nullable=False, server_default=text("0")),
    )
    is_marked_for_deletion: bool = Field(
        default=False,
        sa_column=Column(Boolean, nullable=False, server_default=false()),
    )
    marked_at: Optional[datetime] = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True), nullable=True),
    )

    __table_args__ = (
        Index("ix_user_sessions_user_id", "user_id"),
        Index("ix_user_sessions_last_active", "last_active"),
        Index("ix_user_sessions_marked", "is_marked_for_deletion"),
        {"extend_existing": True},
    )

    @property
    def is_active(self) -> bool:
        return not self.is_marked_for_deletion
