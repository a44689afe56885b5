from datetime import datetime  # For timestamp fields
from uuid import uuid4

from sqlalchemy import Boolean, DateTime, false, text
from sqlmodel import Column, Field, Index, SQLModel, String

from sessionguard.utils.time import utcnow


class RefreshToken(SQLModel, table=True):
    """Server-side record of an issued refresh token.

    The record lets a refresh token be revoked independently of its
    cryptographic expiry. Rows are never mutated except for the one-way
    `is_revoked` flag; rotation inserts a new row.

    Attributes:
        id: Unique identifier, embedded as the `jti` claim of the refresh JWT.
        token_id: Correlation id of the owning session.
        user_id: Owner, duplicated from the session for revocation queries.
        expires_at: Absolute expiry.
        is_revoked: Set on logout, rotation or expiry cleanup.
        created_at: When the token was issued.
    """

    __tablename__ = "refresh_tokens"

    id: str = Field(
        default_factory=lambda: str(uuid4()),
        sa_column=Column(String(36), primary_key=True),
    )
    token_id: str = Field(
        sa_column=Column(String(64), nullable=False),
        description="Correlation id of the owning session.",
    )
    user_id: int = Field(
        foreign_key="users.id",
        nullable=False,
        description="Owner of the token.",
    )
    expires_at: datetime = Field(
        sa_column=Column(DateTime(timezone=True), nullable=False),
        description="Absolute expiry of the refresh token.",
    )
    is_revoked: bool = Field(
        default=False,
        sa_column=Column(Boolean, nullable=False, server_default=false()),
    )
    created_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=True), nullable=False, server_default=text("CURRENT_TIMESTAMP")),
    )

    __table_args__ = (
        Index("ix_refresh_tokens_token_id", "token_id"),
        Index("ix_refresh_tokens_user_id", "user_id"),
        Index("ix_refresh_tokens_expires_at", "expires_at"),
        {"extend_existing": True},
    )
