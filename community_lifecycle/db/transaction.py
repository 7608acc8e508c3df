"""Transaction scope shared by every lifecycle operation."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any


@asynccontextmanager
async def transaction(session: Any) -> AsyncIterator[None]:
    """Run the enclosed writes atomically.

    Operations enter this before their first read. When the caller already
    holds a transaction (``SessionLocal.begin()`` or its own earlier reads) the
    writes go into a SAVEPOINT, so a failure rolls back only this operation and
    the caller still owns the final commit. Otherwise a new transaction is
    opened and committed on exit.

    ``session`` is an ``AsyncSession`` or anything exposing the same
    ``in_transaction``/``begin``/``begin_nested`` trio, such as
    ``InMemoryDatabase``.
    """
    if session.in_transaction():
        async with session.begin_nested():
            yield
    else:
        async with session.begin():
            yield
