"""Bounded fan-out for per-document indexing tasks."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable

from .errors import IndexIntegrityError
from .utils import ensure_positive

logger = logging.getLogger(__name__)

DEFAULT_BATCH_LIMIT = 4


class BoundedBatch:
    """Collect awaitables and run them in groups of at most ``limit``.

    Submitting the ``limit``-th task awaits the whole group before returning,
    so no more than ``limit`` tasks are ever in flight. Failures are logged and
    returned; :class:`IndexIntegrityError` is re-raised after the group settles.
    """

    def __init__(self, limit: int = DEFAULT_BATCH_LIMIT) -> None:
        self.limit = ensure_positive(limit, "limit")
        self._pending: list[Awaitable[Any]] = []

    def __len__(self) -> int:
        return len(self._pending)

    async def submit(self, task: Awaitable[Any]) -> list[Any]:
        self._pending.append(task)
        if len(self._pending) >= self.limit:
            return await self.join()
        return []

    async def join(self) -> list[Any]:
        if not self._pending:
            return []
        pending, self._pending = self._pending, []
        results = await asyncio.gather(*pending, return_exceptions=True)
        integrity_error: IndexIntegrityError | None = None
        for result in results:
            if isinstance(result, IndexIntegrityError):
                integrity_error = integrity_error or result
            elif isinstance(result, Exception):
                logger.warning("Indexing task failed: %s", result)
            elif isinstance(result, BaseException):
                raise result
        if integrity_error is not None:
            raise integrity_error
        return results
