"""
Record store — the ordered memo feed shown on the page.

Historical memos come first, in the order getMemos() returned them; live
NewMemo arrivals are appended after them in delivery order. Existing records
are never removed or reordered except by clear() on a session rebuild.

The historical batch is authoritative and kept whole: two identical tips in
one block are two records. With dedupe enabled, the only records dropped are
live arrivals that raced ahead of the batch and that the batch also holds,
one live copy per matching batch record.

All mutations are synchronous (no await inside), so on a single event loop
readers always observe a whole append or none of it.
"""
import logging
from collections import Counter
from typing import Iterable

from models import MemoRecord

logger = logging.getLogger(__name__)


class RecordStore:
    """Ordered collection of MemoRecord."""

    def __init__(self, dedupe: bool = False):
        self._dedupe = dedupe
        self._records: list[MemoRecord] = []
        self._batch_loaded = False
        self.version = 0
        self.duplicates_dropped = 0

    def __len__(self) -> int:
        return len(self._records)

    @property
    def batch_loaded(self) -> bool:
        return self._batch_loaded

    def snapshot(self) -> tuple[MemoRecord, ...]:
        """Immutable view of the feed at call time."""
        return tuple(self._records)

    def append_batch(self, records: Iterable[MemoRecord]) -> int:
        """
        Install the historical batch ahead of any live arrivals.

        Live records that raced ahead of the batch stay after it in arrival
        order. With dedupe on, an early live record is dropped when an
        unmatched identical record remains in the batch.

        Returns:
            Number of records in the store afterwards
        """
        batch = list(records)
        unmatched = Counter(r.identity for r in batch) if self._dedupe else Counter()

        early_live: list[MemoRecord] = []
        for record in self._records:
            if unmatched[record.identity] > 0:
                unmatched[record.identity] -= 1
                self.duplicates_dropped += 1
                logger.debug(f"Early live memo already in batch: {record.sender} @ {record.timestamp}")
                continue
            early_live.append(record)

        if early_live:
            logger.debug(f"{len(early_live)} live memo(s) arrived before the historical batch")

        self._records = batch + early_live
        self._batch_loaded = True
        self.version += 1
        return len(self._records)

    def append_one(self, record: MemoRecord) -> None:
        """Append one live record after everything already in the feed."""
        self._records.append(record)
        self.version += 1

    def clear(self) -> None:
        """Drop everything; only used when a new session replaces the old one."""
        self._records = []
        self._batch_loaded = False
        self.version += 1
