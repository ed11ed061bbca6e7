# src/services/cart_queue.py

"""Strict FIFO serialisation of cart mutations.

The remote cart is addressed by one mutable token, so two overlapping
add/remove/coupon calls can silently drop a mutation on the server.  Every
mutation goes through :class:`CartOperationQueue`, which runs them one at a
time in enqueue order with a short gap in between.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from src.clients.errors import QueueClearedError
from src.config.settings import Settings

logger = logging.getLogger("storefront.cart.queue")

T = TypeVar("T")

Operation = Callable[[], Awaitable[Any]]


class CartOperationQueue:
    """Single drain task over a list of ``(operation, future)`` pairs.

    A failing operation rejects only its own future; the next one still
    runs.
    """

    def __init__(
        self, min_gap: float = Settings.QUEUE_MIN_OPERATION_GAP
    ) -> None:
        self.min_gap = min_gap
        self._pending: list[tuple[Operation, asyncio.Future]] = []
        self._current: asyncio.Future | None = None
        self._worker: asyncio.Task | None = None
        self._last_finished = 0.0

    @property
    def pending(self) -> int:
        """Operations waiting to start (the running one is excluded)."""
        return len(self._pending)

    @property
    def is_processing(self) -> bool:
        return self._worker is not None and not self._worker.done()

    async def enqueue(self, operation: Callable[[], Awaitable[T]]) -> T:
        """Run *operation* after everything enqueued before it."""
        future: asyncio.Future = asyncio.get_running_loop().create_future()
        self._pending.append((operation, future))
        if not self.is_processing:
            self._worker = asyncio.create_task(self._drain())
        return await future

    async def _drain(self) -> None:
        while self._pending:
            operation, future = self._pending.pop(0)
            if future.done():
                continue

            wait = self.min_gap - (time.monotonic() - self._last_finished)
            if wait > 0:
                await asyncio.sleep(wait)

            self._current = future
            try:
                result = await operation()
            except asyncio.CancelledError:
                if not future.done():
                    future.set_exception(QueueClearedError())
                raise
            except Exception as exc:
                if not future.done():
                    future.set_exception(exc)
            else:
                if not future.done():
                    future.set_result(result)
            finally:
                self._current = None
                self._last_finished = time.monotonic()

    def clear(self) -> int:
        """Reject every pending operation; returns how many were dropped."""
        dropped = self._pending
        self._pending = []
        for _, future in dropped:
            if not future.done():
                future.set_exception(QueueClearedError())
        if dropped:
            logger.info("Cleared %d pending cart operation(s)", len(dropped))
        return len(dropped)

    async def close(self) -> None:
        """Reject pending and in-flight work, then stop the drain task."""
        self.clear()
        if self._current is not None and not self._current.done():
            self._current.set_exception(QueueClearedError())
        if self._worker is not None and not self._worker.done():
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
        self._worker = None
