from __future__ import annotations

import asyncio
import contextlib
import hashlib
from collections.abc import AsyncIterator
from weakref import WeakValueDictionary

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

# Process-local fallback for databases without advisory locks (SQLite).
_local_locks: "WeakValueDictionary[str, asyncio.Lock]" = WeakValueDictionary()


def _is_postgres(session: AsyncSession) -> bool:
    return session.get_bind().dialect.name == "postgresql"


def lock_id(name: str) -> int:
    digest = hashlib.blake2b(name.encode("utf-8"), digest_size=8).digest()
    # Fit within signed BIGINT range.
    return int.from_bytes(digest, "big", signed=False) % (2**63 - 1)


def _local_lock(name: str) -> asyncio.Lock:
    lock = _local_locks.get(name)
    if lock is None:
        lock = asyncio.Lock()
        _local_locks[name] = lock
    return lock


@contextlib.asynccontextmanager
async def transaction_lock(session: AsyncSession, name: str) -> AsyncIterator[None]:
    """
    Serialise work on ``name`` until the session's transaction ends.

    On PostgreSQL this takes ``pg_advisory_xact_lock``, which the database
    releases at commit or rollback, so it holds across API workers. Other
    backends fall back to an in-process ``asyncio.Lock`` held for the block.
    The transaction is rolled back when the block raises.
    """
    if _is_postgres(session):
        await session.execute(text("SELECT pg_advisory_xact_lock(:id)"), {"id": lock_id(name)})
        held: contextlib.AbstractAsyncContextManager = contextlib.nullcontext()
    else:
        held = _local_lock(name)
    async with held:
        try:
            yield
        except BaseException:
            await session.rollback()
            raise
