# flatwatch/service_layer/run_lock.py
from __future__ import annotations

import logging
import os
import socket
import uuid
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import AsyncIterator

from sqlalchemy import delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..models import RunLock, utcnow

log = logging.getLogger(__name__)


class CycleLock:
    """
    Cross-process mutex backed by a RunLock row (primary key = lock name).

    acquire() inserts the row; a duplicate key means someone else holds it.
    Rows older than `stale_after_s` are assumed to belong to a dead process
    and are taken over.
    """

    def __init__(self, session_maker: async_sessionmaker[AsyncSession], name: str = "ingestion_cycle", stale_after_s: int = 3600) -> None:
        self.session_maker = session_maker
        self.name = name
        self.stale_after_s = int(stale_after_s)
        self.owner = f"{socket.gethostname()}:{os.getpid()}:{uuid.uuid4().hex[:8]}"

    async def _try_insert(self) -> bool:
        async with self.session_maker() as session:
            session.add(RunLock(name=self.name, owner=self.owner, acquired_at=utcnow()))
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                return False
        return True

    async def _clear_stale(self) -> int:
        cutoff = utcnow() - timedelta(seconds=self.stale_after_s)
        async with self.session_maker() as session:
            res = await session.execute(
                delete(RunLock).where(RunLock.name == self.name, RunLock.acquired_at < cutoff)
            )
            await session.commit()
        return int(res.rowcount or 0)

    async def acquire(self) -> bool:
        if await self._try_insert():
            return True
        if await self._clear_stale():
            log.warning("took over stale lock %r", self.name)
            return await self._try_insert()
        return False

    async def release(self) -> None:
        async with self.session_maker() as session:
            await session.execute(delete(RunLock).where(RunLock.name == self.name, RunLock.owner == self.owner))
            await session.commit()

    @asynccontextmanager
    async def hold(self) -> AsyncIterator[bool]:
        """Yields whether the lock was acquired; releases only what we own."""
        acquired = await self.acquire()
        try:
            yield acquired
        finally:
            if acquired:
                await self.release()
