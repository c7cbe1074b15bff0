"""
Live memo subscription — polls the contract's NewMemo filter.

Two asyncio tasks per subscription:
    poller   — polls the installed log filter every MEMO_POLL_SECONDS and
               puts each MemoRecord on a queue, in log order
    consumer — takes records off the queue and appends them to the
               RecordStore, preserving delivery order

start() installs the filter and spawns both tasks; stop() cancels them,
awaits them and uninstalls the filter. A session owns at most one
subscription, and stop() must finish before a replacement is started.
"""
import asyncio
import logging
from typing import Optional

from config import settings
from models import MemoRecord
from services.listener_metrics import SubscriptionMetrics, get_subscription_metrics
from services.record_store import RecordStore

logger = logging.getLogger(__name__)

MAX_BACKOFF_SECONDS = 60
ERRORS_BEFORE_BACKOFF = 5


def backoff_seconds(poll_seconds: float, errors_count: int) -> float:
    """Doubles with every error past the threshold, capped at MAX_BACKOFF_SECONDS."""
    excess = max(1, errors_count - ERRORS_BEFORE_BACKOFF)
    return min(MAX_BACKOFF_SECONDS, poll_seconds * 2 ** min(excess, 16))


class MemoSubscription:
    """Scoped NewMemo subscription feeding a RecordStore."""

    def __init__(
        self,
        handle,
        store: RecordStore,
        poll_seconds: float | None = None,
        metrics: SubscriptionMetrics | None = None,
    ):
        self._handle = handle
        self._store = store
        self._poll_seconds = poll_seconds if poll_seconds is not None else settings.memo_poll_seconds
        self._metrics = metrics or get_subscription_metrics()
        self._source = None
        self._queue: Optional[asyncio.Queue] = None
        self._poller: Optional[asyncio.Task] = None
        self._consumer: Optional[asyncio.Task] = None
        self._errors_count = 0

    @property
    def active(self) -> bool:
        return self._poller is not None and not self._poller.done()

    async def start(self) -> None:
        """Install the NewMemo filter and spawn the poller and consumer tasks."""
        if self.active:
            logger.warning("Memo subscription already running")
            return

        self._source = await self._handle.open_new_memo_filter()
        self._queue = asyncio.Queue()
        self._errors_count = 0
        self._poller = asyncio.create_task(self._poll_loop())
        self._consumer = asyncio.create_task(self._consume_loop())
        self._metrics.record_subscription()
        logger.info(f"Listening for new memos (polling every {self._poll_seconds}s)")

    async def stop(self) -> None:
        """Cancel both tasks and uninstall the filter."""
        for task in [self._poller, self._consumer]:
            if task and not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass

        if self._source is not None:
            await self._source.close()

        self._poller = None
        self._consumer = None
        self._source = None
        self._queue = None
        logger.info("Memo subscription stopped")

    async def __aenter__(self) -> "MemoSubscription":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

    async def wait_idle(self) -> None:
        """Wait until every queued record has been applied to the store."""
        if self._queue is not None:
            await self._queue.join()

    async def _poll_loop(self) -> None:
        while True:
            try:
                await asyncio.sleep(self._poll_seconds)
                records = await self._source.poll()
                for record in records:
                    self._queue.put_nowait(record)
                self._metrics.set_last_block(self._source.last_block)
                self._metrics.heartbeat()
                self._errors_count = 0
            except asyncio.CancelledError:
                break
            except Exception as e:
                self._errors_count += 1
                self._metrics.record_poll_error()
                logger.error(f"Memo poll error: {e}")
                # Backoff on repeated errors
                if self._errors_count > ERRORS_BEFORE_BACKOFF:
                    backoff = backoff_seconds(self._poll_seconds, self._errors_count)
                    logger.warning(f"  Too many errors, backing off {backoff}s")
                    try:
                        await asyncio.sleep(backoff)
                    except asyncio.CancelledError:
                        break

    async def _consume_loop(self) -> None:
        while True:
            try:
                record: MemoRecord = await self._queue.get()
            except asyncio.CancelledError:
                break
            try:
                logger.info(
                    f"Memo received: {record.sender} {record.timestamp} {record.name} {record.message}"
                )
                self._store.append_one(record)
                self._metrics.record_memo()
            finally:
                self._queue.task_done()

    def get_status(self) -> dict:
        return {
            "running": self.active,
            "pollIntervalSeconds": self._poll_seconds,
            "errorsCount": self._errors_count,
            "queued": self._queue.qsize() if self._queue is not None else 0,
        }
