"""Statements shared by every service that reads or tags sessions.

A session marked for deletion must never take part in counts or listings, so
all such queries go through `active_session_clause` instead of repeating the
filter.
"""

from datetime import datetime
from typing import List, Optional

from sqlalchemy import ColumnElement, Update, false, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from sessionguard.domain.entities.session import Session


def active_session_clause() -> ColumnElement[bool]:
    return Session.is_marked_for_deletion == false()


async def count_active_sessions(db: AsyncSession, user_id: int) -> int:
    result = await db.execute(
        select(func.count()).select_from(Session).where(Session.user_id == user_id, active_session_clause())
    )
    return int(result.scalar_one())


async def list_active_sessions(db: AsyncSession, user_id: int) -> List[Session]:
    """Active sessions of ``user_id``, most recently active first."""
    result = await db.execute(
        select(Session)
        .where(Session.user_id == user_id, active_session_clause())
        .order_by(Session.last_active.desc(), Session.created_at.desc())
    )
    return list(result.scalars().all())


def mark_sessions_statement(
    now: datetime,
    *,
    user_id: int,
    session_id: Optional[str] = None,
    token_id: Optional[str] = None,
) -> Update:
    """UPDATE tagging the matching active sessions as marked for deletion.

    Ownership is part of the WHERE clause, so a caller can never tag another
    user's session. Already-marked rows are left untouched, which keeps
    ``marked_at`` stable and the tag one-way.
    """
    statement = update(Session).where(Session.user_id == user_id, active_session_clause())
    if session_id is not None:
        statement = statement.where(Session.id == session_id)
    if token_id is not None:
        statement = statement.where(Session.token_id == token_id)
    return statement.values(is_marked_for_deletion=True, marked_at=now).execution_options(
        synchronize_session=False
    )
