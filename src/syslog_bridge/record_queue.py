"""Bounded hand-off between the syslog listener and the batch aggregator."""

import asyncio
import logging
from typing import Any, Dict

from .models import LogRecord

logger = logging.getLogger(__name__)


class RecordQueue:
    """
    Bounded FIFO of parsed records.

    When the queue is full ``enqueue`` waits for space instead of dropping,
    which pushes back on the listener. Order is preserved per producer.
    """

    def __init__(self, maxsize: int = 100):
        if maxsize < 1:
            raise ValueError("Record queue capacity must be at least 1")

        self._queue: "asyncio.Queue[LogRecord]" = asyncio.Queue(maxsize=maxsize)
        self.stats = {
            'enqueued': 0,
            'dequeued': 0,
            'blocked_puts': 0
        }

    @property
    def maxsize(self) -> int:
        return self._queue.maxsize

    def qsize(self) -> int:
        return self._queue.qsize()

    def full(self) -> bool:
        return self._queue.full()

    def empty(self) -> bool:
        return self._queue.empty()

    async def enqueue(self, record: LogRecord) -> None:
        """Add a record, waiting while the queue is at capacity."""
        if self._queue.full():
            self.stats['blocked_puts'] += 1
            logger.debug(f"Record queue full ({self.maxsize}), producer waiting")

        await self._queue.put(record)
        self.stats['enqueued'] += 1

    async def dequeue(self) -> LogRecord:
        """Remove and return the oldest record, waiting until one arrives."""
        record = await self._queue.get()
        self.stats['dequeued'] += 1
        return record

    def dequeue_nowait(self) -> LogRecord:
        """Remove the oldest record; raises ``asyncio.QueueEmpty`` if there is none."""
        record = self._queue.get_nowait()
        self.stats['dequeued'] += 1
        return record

    def get_stats(self) -> Dict[str, Any]:
        return {
            **self.stats,
            'size': self.qsize(),
            'capacity': self.maxsize
        }
