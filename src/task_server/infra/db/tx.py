from __future__ import annotations
import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker


class MemoryTxManager:
    """
    Serialises units of work against the in-memory store.
    There is no rollback: writes made before a failure stay applied.
    """
    def __init__(self):
        self._lock = asyncio.Lock()

    @asynccontextmanager
    async def within_tx(self) -> AsyncIterator[None]:
        async with self._lock:
            yield None


class SQLTxManager:
    """Commits on success, rolls back if the block raises."""
    def __init__(self, sessionmaker: async_sessionmaker[AsyncSession]):
        self.sessionmaker = sessionmaker

    @asynccontextmanager
    async def within_tx(self) -> AsyncIterator[AsyncSession]:
        async with self.sessionmaker() as session, session.begin():
            yield session
