"""In-memory work queue with bounded retry-on-failure.

- enqueue(): appends a QueueItem and wakes an idle drain loop
- handle_failure(): re-appends to the tail until max_retries, then drops
- run(): drains in batches with intra-batch parallelism

Nothing survives a restart; the pipeline re-derives its work from the
chain and the token table on the next sweep.
"""

from __future__ import annotations

import asyncio
import time
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Generic, TypeVar

from loguru import logger

from src.errors import QueueError

T = TypeVar("T")

QueueHandler = Callable[["QueueItem[T]"], Awaitable[None]]
QueueListener = Callable[["QueueItem[T]", BaseException | None], None]

EVENTS = ("enqueued", "process", "retry", "failure")


@dataclass
class QueueItem(Generic[T]):
    data: T
    timestamp: float = field(default_factory=time.time)
    retries: int = 0


class RetryQueue(Generic[T]):
    """FIFO queue whose failed items are retried at most ``max_retries`` times."""

    def __init__(self, name: str, *, max_retries: int = 3) -> None:
        if max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        self.name = name
        self.max_retries = max_retries
        self._items: deque[QueueItem[T]] = deque()
        self._processing = False
        self._stopped = False
        self._wakeup = asyncio.Event()
        self._listeners: dict[str, list[QueueListener]] = {e: [] for e in EVENTS}

        self.enqueued_total = 0
        self.retried_total = 0
        self.failed_total = 0

    def __len__(self) -> int:
        return len(self._items)

    def __repr__(self) -> str:
        return f"RetryQueue(name={self.name}, size={len(self._items)}, processing={self._processing})"

    @property
    def processing(self) -> bool:
        """True while a drain loop is actively working through items."""
        return self._processing

    def on(self, event: str, listener: QueueListener) -> None:
        if event not in self._listeners:
            raise QueueError(f"Unknown queue event: {event}")
        self._listeners[event].append(listener)

    def _emit(self, event: str, item: QueueItem[T], error: BaseException | None = None) -> None:
        for listener in self._listeners[event]:
            try:
                listener(item, error)
            except Exception as e:
                logger.warning(f"[QUEUE] {self.name}: '{event}' listener failed: {e}")

    # ── Queue operations ──────────────────────────────────────────────

    def enqueue(self, data: T) -> QueueItem[T]:
        item = QueueItem(data=data)
        self._items.append(item)
        self.enqueued_total += 1
        self._emit("enqueued", item)
        if not self._processing:
            self._emit("process", item)
            self._wakeup.set()
        return item

    def dequeue(self) -> QueueItem[T] | None:
        if not self._items:
            return None
        return self._items.popleft()

    def dequeue_batch(self, size: int) -> list[QueueItem[T]]:
        batch: list[QueueItem[T]] = []
        while self._items and len(batch) < size:
            batch.append(self._items.popleft())
        return batch

    def peek(self) -> QueueItem[T] | None:
        return self._items[0] if self._items else None

    def size(self) -> int:
        return len(self._items)

    def snapshot(self) -> list[T]:
        return [item.data for item in self._items]

    def clear(self) -> int:
        dropped = len(self._items)
        self._items.clear()
        return dropped

    def handle_failure(self, item: QueueItem[T], error: BaseException) -> bool:
        """Requeue a failed item or drop it for good.

        Returns True if the item went back to the tail of the queue.
        """
        if item.retries < self.max_retries:
            item.retries += 1
            self._items.append(item)
            self.retried_total += 1
            logger.debug(
                f"[QUEUE] {self.name}: retry {item.retries}/{self.max_retries} ({error})"
            )
            self._emit("retry", item, error)
            if not self._processing:
                self._wakeup.set()
            return True

        self.failed_total += 1
        logger.error(
            f"[QUEUE] {self.name}: item failed after {item.retries} retries, dropping: {error}"
        )
        self._emit("failure", item, error)
        return False

    # ── Drain loop ────────────────────────────────────────────────────

    async def _run_item(self, handler: QueueHandler, item: QueueItem[T]) -> None:
        try:
            await handler(item)
        except Exception as e:
            self.handle_failure(item, e)

    async def drain(self, handler: QueueHandler, *, batch_size: int = 1) -> int:
        """Process everything currently queued (including retries). Returns items handled."""
        handled = 0
        self._processing = True
        try:
            while self._items:
                batch = self.dequeue_batch(max(1, batch_size))
                await asyncio.gather(*(self._run_item(handler, item) for item in batch))
                handled += len(batch)
        finally:
            self._processing = False
        return handled

    async def run(self, handler: QueueHandler, *, batch_size: int = 1) -> None:
        """Wait for work, drain it, go idle. Runs until stop()."""
        self._stopped = False
        logger.info(f"[QUEUE] {self.name}: worker started (batch={batch_size})")
        while not self._stopped:
            await self._wakeup.wait()
            self._wakeup.clear()
            if self._stopped:
                break
            await self.drain(handler, batch_size=batch_size)
        logger.info(f"[QUEUE] {self.name}: worker stopped")

    def stop(self) -> None:
        """Stop scheduling new batches. A batch already dequeued still completes."""
        self._stopped = True
        self._wakeup.set()


class QueueRegistry:
    """Named queues shared by the coordinators."""

    VALIDATION = "token-validation"
    MONITORING = "token-monitoring"

    def __init__(self, *, max_retries: int = 3) -> None:
        self._max_retries = max_retries
        self._queues: dict[str, RetryQueue] = {}

    def get(self, name: str) -> RetryQueue:
        if name not in self._queues:
            self._queues[name] = RetryQueue(name, max_retries=self._max_retries)
        return self._queues[name]

    def stats(self) -> dict[str, dict[str, int | bool]]:
        return {
            name: {"size": q.size(), "processing": q.processing}
            for name, q in self._queues.items()
        }

    def stop_all(self) -> None:
        for q in self._queues.values():
            q.stop()
