"""
Single-writer task for the record store.

Every mutation is queued and applied one at a time by a long-lived task,
so two cycles never interleave writes against the same rows.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

WriteOperation = Callable[[], Awaitable[Any]]


class StoreWriter:
    """
    Serializes write jobs through one asyncio task.

    Usage:
        writer = StoreWriter()
        await writer.start()
        inserted = await writer.submit(lambda: repo.upsert_records(batch), "upsert")
        await writer.stop()

    When the writer is not running, submit() awaits the operation inline.
    """

    def __init__(self, max_pending: int = 0):
        self._queue: asyncio.Queue[
            tuple[WriteOperation, asyncio.Future, str] | None
        ] = asyncio.Queue(maxsize=max_pending)
        self._task: asyncio.Task | None = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        """Start the writer task. Calling it again while running is a no-op."""
        if self.is_running:
            return
        self._task = asyncio.create_task(self._run(), name="store_writer")
        logger.info("Store writer started")

    async def stop(self) -> None:
        """Drain queued jobs, then stop the writer task."""
        if not self.is_running:
            self._task = None
            return

        await self._queue.put(None)
        try:
            await self._task
        finally:
            self._task = None
        logger.info("Store writer stopped")

    async def submit(self, operation: Callable[[], Awaitable[T]], label: str = "write") -> T:
        """
        Run `operation` on the writer and return its result.

        Exceptions raised by the operation propagate to the caller.
        """
        if not self.is_running:
            return await operation()

        future: asyncio.Future = asyncio.get_running_loop().create_future()
        await self._queue.put((operation, future, label))
        return await future

    async def _run(self) -> None:
        while True:
            job = await self._queue.get()
            try:
                if job is None:
                    return

                operation, future, label = job
                if future.cancelled():
                    logger.debug(f"Skipping cancelled write job '{label}'")
                    continue

                try:
                    result = await operation()
                except Exception as e:
                    logger.debug(f"Write job '{label}' failed: {e}")
                    if not future.cancelled():
                        future.set_exception(e)
                else:
                    if not future.cancelled():
                        future.set_result(result)
            finally:
                self._queue.task_done()
