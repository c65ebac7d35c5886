"""
Unit of Work for grouping database writes into one atomic commit.

Example:
    async with UnitOfWork(db) as uow:
        uow.session.add(generation)
        await uow.flush()
        await debit_in_session(uow.session, ...)
    # committed here; rolled back if the block raised
"""

from __future__ import annotations

import logging
from types import TracebackType
from typing import Any, Optional, Type

from sqlalchemy.ext.asyncio import AsyncSession

from database import async_session_maker

logger = logging.getLogger(__name__)


class UnitOfWork:
    """
    Scoped transaction over one AsyncSession.

    Commits when the block exits cleanly and rolls back when it raises.
    A session passed in by the caller is left open on exit; a session the
    unit of work created itself is closed.
    """

    def __init__(self, session: Optional[AsyncSession] = None):
        self._session = session
        self._should_close = session is None

    async def __aenter__(self) -> UnitOfWork:
        if self._session is None:
            self._session = async_session_maker()
        return self

    async def __aexit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc_val: Optional[BaseException],
        exc_tb: Optional[TracebackType],
    ) -> None:
        try:
            if exc_type is not None:
                await self.rollback()
                logger.debug("Transaction rolled back due to %s", exc_type.__name__)
            else:
                await self.commit()
        finally:
            if self._should_close and self._session is not None:
                await self._session.close()
                self._session = None

    @property
    def session(self) -> AsyncSession:
        if self._session is None:
            raise RuntimeError("Session not initialized. Use async with UnitOfWork().")
        return self._session

    async def commit(self) -> None:
        try:
            await self.session.commit()
        except Exception:
            logger.error("Error committing transaction", exc_info=True)
            await self.session.rollback()
            raise

    async def rollback(self) -> None:
        await self.session.rollback()

    async def flush(self) -> None:
        """Flush pending inserts so generated ids and constraints are checked early."""
        await self.session.flush()

    def add(self, entity: Any) -> None:
        self.session.add(entity)
