"""
Base Repository implementation.

Repositories run synchronous SQLAlchemy sessions in a worker thread so the
event loop stays free while the database is busy. Every public method is a
coroutine and a suspension point for the caller.
"""

import asyncio
from collections.abc import Callable
from typing import TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from shared.config.logging import get_logger
from shared.utils.exceptions import PersistenceError

logger = get_logger(__name__)

ResultT = TypeVar("ResultT")

# Seconds to wait for a single repository call before giving up
DB_CALL_TIMEOUT = 10.0


class BaseRepository:
    """
    Common plumbing for tenant-scoped repositories.

    Usage:
        class MenuRepository(BaseRepository):
            async def count(self, tenant_id: str) -> int:
                return await self._run("count", self._count_sync, tenant_id)
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        timeout: float = DB_CALL_TIMEOUT,
    ):
        self._session_factory = session_factory
        self._timeout = timeout

    async def _run(
        self,
        operation: str,
        fn: Callable[..., ResultT],
        *args,
    ) -> ResultT:
        """
        Execute ``fn(db, *args)`` in a worker thread with a fresh session.

        Database errors and timeouts surface as PersistenceError.
        """
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(self._call, fn, *args),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError as e:
            raise PersistenceError(operation, reason="timeout", timeout=self._timeout) from e
        except SQLAlchemyError as e:
            raise PersistenceError(operation, error=str(e)) from e

    def _call(self, fn: Callable[..., ResultT], *args) -> ResultT:
        with self._session_factory() as db:
            return fn(db, *args)
