"""Time-windowed batching of queued records."""

import asyncio
import logging
from typing import Any, Dict, List, Optional

from .clients.dispatcher import StreamDispatcher
from .errors import RemoteAppendError
from .models import LogRecord
from .record_queue import RecordQueue

logger = logging.getLogger(__name__)


class BatchAggregator:
    """
    Drains the record queue into an accumulator and dispatches it as one
    batch on every flush tick.

    The loop waits on a single primitive: the next record, bounded by the
    time left until the next tick. Ticks follow a fixed period regardless of
    traffic; a tick with nothing accumulated makes no remote call.

    By default a dispatch is awaited inside the loop, so records queue up
    (and producers eventually block) while a batch is in flight. With
    ``overlap_dispatch`` a separate task performs dispatches from a single
    slot hand-off and the loop keeps accumulating; if the slot is still
    taken at a tick the accumulator simply grows until a later tick.
    """

    def __init__(
        self,
        queue: RecordQueue,
        dispatcher: StreamDispatcher,
        flush_interval: float = 0.2,
        overlap_dispatch: bool = False
    ):
        if flush_interval <= 0:
            raise ValueError("flush_interval must be positive")

        self.queue = queue
        self.dispatcher = dispatcher
        self.flush_interval = flush_interval
        self.overlap_dispatch = overlap_dispatch

        self._batch: List[LogRecord] = []
        self._handoff: Optional["asyncio.Queue[List[LogRecord]]"] = None
        self._running = False
        self._task: Optional[asyncio.Task] = None
        self._dispatch_task: Optional[asyncio.Task] = None
        self._inflight: Optional[asyncio.Future] = None

        self.stats = {
            'ticks': 0,
            'batches_dispatched': 0,
            'batches_failed': 0,
            'records_dispatched': 0,
            'records_dropped': 0
        }

    @property
    def pending(self) -> int:
        """Records accumulated but not yet handed to the dispatcher."""
        return len(self._batch)

    @property
    def running(self) -> bool:
        return self._running

    async def start(self):
        """Start the aggregation loop."""
        if self._running:
            return

        self._running = True

        if self.overlap_dispatch:
            self._handoff = asyncio.Queue(maxsize=1)
            self._dispatch_task = asyncio.create_task(self._dispatch_loop())

        self._task = asyncio.create_task(self._run())
        logger.info(
            f"BatchAggregator started: flush_interval={self.flush_interval}s, "
            f"overlap_dispatch={self.overlap_dispatch}"
        )

    async def stop(self, drain: bool = True):
        """
        Stop the loop. With ``drain`` everything still accumulated or queued
        is dispatched once more before returning.
        """
        if not self._running:
            return

        self._running = False

        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass

        if self._inflight is not None and not self._inflight.done():
            await self._inflight

        if self._handoff is not None:
            await self._handoff.join()
        if self._dispatch_task:
            self._dispatch_task.cancel()
            try:
                await self._dispatch_task
            except asyncio.CancelledError:
                pass

        while not self.queue.empty():
            self._batch.append(self.queue.dequeue_nowait())

        batch, self._batch = self._batch, []
        if batch:
            if drain:
                logger.info(f"Draining {len(batch)} pending records")
                await self._dispatch(batch)
            else:
                logger.warning(f"Discarding {len(batch)} pending records")
                self.stats['records_dropped'] += len(batch)

        logger.info("BatchAggregator stopped")

    async def _run(self):
        loop = asyncio.get_running_loop()
        next_tick = loop.time() + self.flush_interval

        while self._running:
            timeout = next_tick - loop.time()

            if timeout <= 0:
                await self._on_tick()

                now = loop.time()
                next_tick += self.flush_interval
                if next_tick <= now:
                    # A slow dispatch overran one or more periods
                    next_tick = now + self.flush_interval
                continue

            try:
                record = await asyncio.wait_for(self.queue.dequeue(), timeout=timeout)
            except asyncio.TimeoutError:
                continue

            self._batch.append(record)

    async def _on_tick(self):
        self.stats['ticks'] += 1

        if not self._batch:
            return

        if self._handoff is None:
            batch, self._batch = self._batch, []
            # stop() awaits _inflight; cancelling the loop must not cancel the append
            self._inflight = asyncio.ensure_future(self._dispatch(batch))
            await asyncio.shield(self._inflight)
            return

        if self._handoff.full():
            logger.debug(f"Dispatch in flight, holding {len(self._batch)} records for the next tick")
            return

        batch, self._batch = self._batch, []
        self._handoff.put_nowait(batch)

    async def _dispatch_loop(self):
        while True:
            batch = await self._handoff.get()
            try:
                await self._dispatch(batch)
            finally:
                self._handoff.task_done()

    async def _dispatch(self, batch: List[LogRecord]):
        try:
            sent = await self.dispatcher.dispatch(batch)
        except RemoteAppendError as e:
            logger.error(f"Dropping batch of {len(batch)} records: {e}")
            self.stats['batches_failed'] += 1
            self.stats['records_dropped'] += len(batch)
            return
        except Exception as e:
            logger.error(f"Unexpected error dispatching {len(batch)} records: {e}", exc_info=True)
            self.stats['batches_failed'] += 1
            self.stats['records_dropped'] += len(batch)
            return

        self.stats['batches_dispatched'] += 1
        self.stats['records_dispatched'] += sent

    def get_stats(self) -> Dict[str, Any]:
        return {
            **self.stats,
            'pending': self.pending,
            'running': self._running
        }
