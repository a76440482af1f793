"""Scoped transactions: commit on success, rollback on every other exit path."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, TypeVar

from sqlalchemy import select, update
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm.attributes import set_committed_value

from careerxp.db.models import Developer
from careerxp.gamification.exceptions import DeveloperNotFound

logger = logging.getLogger(__name__)

T = TypeVar("T")

SERIALIZATION_FAILURE = "40001"


@asynccontextmanager
async def transaction(
    session_factory: async_sessionmaker[AsyncSession],
    timeout: float | None = None,
) -> AsyncIterator[AsyncSession]:
    """Open a session, yield it, and commit; roll back if the block raises.

    ``timeout`` bounds the whole block including the commit. Transactions
    must not be nested: open one, finish it, then open the next.
    """
    async with session_factory() as session:
        try:
            async with asyncio.timeout(timeout):
                yield session
                await session.commit()
        except Exception:
            await session.rollback()
            raise


async def lock_developer(session: AsyncSession, developer_id: str) -> Developer:
    """Load the developer row with a row lock (SELECT ... FOR UPDATE)."""
    result = await session.execute(
        select(Developer).where(Developer.id == developer_id).with_for_update()
    )
    developer = result.scalar_one_or_none()
    if developer is None:
        raise DeveloperNotFound(developer_id)
    return developer


@asynccontextmanager
async def developer_transaction(
    session_factory: async_sessionmaker[AsyncSession],
    developer_id: str,
    timeout: float | None = None,
) -> AsyncIterator[tuple[AsyncSession, Developer]]:
    """Transaction scoped to one developer's row, locked for its duration."""
    async with transaction(session_factory, timeout) as session:
        developer = await lock_developer(session, developer_id)
        yield session, developer


def is_serialization_failure(exc: DBAPIError) -> bool:
    """True when the driver reports SQLSTATE 40001 (serialization failure)."""
    orig = exc.orig
    code = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    return code == SERIALIZATION_FAILURE


async def retry_serializable(fn: Callable[[], Awaitable[T]], retries: int = 3) -> T:
    """Run ``fn`` and re-run it when the database aborts it as non-serializable."""
    attempt = 0
    while True:
        try:
            return await fn()
        except DBAPIError as exc:
            if not is_serialization_failure(exc) or attempt >= retries:
                raise
            attempt += 1
            logger.warning("Serialization failure, retrying (attempt %d/%d)", attempt, retries)
            await asyncio.sleep(0.01 * 2**attempt)


async def add_to_developer(
    session: AsyncSession,
    developer: Developer,
    now: datetime,
    **deltas: int,
) -> None:
    """Add ``deltas`` to counter columns in one UPDATE and load the results.

    The addition is evaluated by the database, so two transactions touching
    the same row never overwrite each other's increments.
    """
    columns = [getattr(Developer, name) for name in deltas]
    values: dict[Any, Any] = {col: col + delta for col, delta in zip(columns, deltas.values(), strict=True)}
    values[Developer.updated_at] = now
    stmt = (
        update(Developer)
        .where(Developer.id == developer.id)
        .values(values)
        .returning(*columns)
        .execution_options(synchronize_session=False)
    )
    row = (await session.execute(stmt)).one()
    for name, value in zip(deltas, row, strict=True):
        set_committed_value(developer, name, value)
    set_committed_value(developer, "updated_at", now)
