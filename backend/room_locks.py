"""
Per-room booking lock and per-row write locks.

room_booking_lock serializes the availability check and the write of a
reservation that holds a room. On PostgreSQL this is a transaction-scoped
advisory lock released by the commit; on other backends it is an asyncio.Lock
per room in this process, so the caller must commit before leaving the block.

record_lock does the same for an existing row (a reservation's ledger, a
product's stock) with SELECT ... FOR UPDATE on PostgreSQL.
"""

import asyncio
import logging
import weakref
from contextlib import asynccontextmanager
from typing import Dict, Hashable, Optional

from sqlalchemy import text, select
from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

# event loop -> key -> lock
_local_locks: "weakref.WeakKeyDictionary[asyncio.AbstractEventLoop, Dict[Hashable, asyncio.Lock]]" = (
    weakref.WeakKeyDictionary()
)


def _local_lock(key: Hashable) -> asyncio.Lock:
    loop = asyncio.get_running_loop()
    locks = _local_locks.setdefault(loop, {})
    lock = locks.get(key)
    if lock is None:
        lock = locks[key] = asyncio.Lock()
    return lock


def _is_postgres(db: AsyncSession) -> bool:
    return db.get_bind().dialect.name == "postgresql"


@asynccontextmanager
async def _hold(key: Hashable):
    lock = _local_lock(key)
    if lock.locked():
        logger.info(f"Waiting for lock on {key[0]} {key[1]}")
    async with lock:
        yield


@asynccontextmanager
async def room_booking_lock(db: AsyncSession, room_id: Optional[int]):
    if room_id is None:
        yield
        return

    if _is_postgres(db):
        await db.execute(text("SELECT pg_advisory_xact_lock(:key)"), {"key": room_id})
        yield
        return

    async with _hold(("room", room_id)):
        yield


@asynccontextmanager
async def record_lock(db: AsyncSession, model, record_id: Optional[int]):
    if record_id is None:
        yield
        return

    if _is_postgres(db):
        await db.execute(select(model.id).where(model.id == record_id).with_for_update())
        yield
        return

    async with _hold((model.__tablename__, record_id)):
        yield
