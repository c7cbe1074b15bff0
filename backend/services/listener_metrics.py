"""
Live feed metrics for throughput and resilience monitoring.

Simple in-memory counters; can be replaced with Prometheus later.
"""
import logging
import time
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)


@dataclass
class SubscriptionMetrics:
    """In-memory metrics for the NewMemo subscription."""

    memos_received_total: int = 0
    poll_errors: int = 0
    subscriptions_opened: int = 0
    last_block: int | None = None
    last_heartbeat: float = field(default_factory=time.monotonic)
    # Rolling window: memos in last 60 seconds
    _memos_minute_window: list[float] = field(default_factory=list)
    _window_seconds: float = 60.0

    def record_memo(self) -> None:
        self.memos_received_total += 1
        now = time.monotonic()
        self._memos_minute_window.append(now)
        self._prune_window(now)

    def record_poll_error(self) -> None:
        self.poll_errors += 1

    def record_subscription(self) -> None:
        self.subscriptions_opened += 1

    def set_last_block(self, block: int | None) -> None:
        if block is not None:
            self.last_block = block

    def heartbeat(self) -> None:
        self.last_heartbeat = time.monotonic()

    def _prune_window(self, now: float) -> None:
        cutoff = now - self._window_seconds
        self._memos_minute_window = [t for t in self._memos_minute_window if t > cutoff]

    @property
    def memos_per_minute(self) -> float:
        now = time.monotonic()
        self._prune_window(now)
        if not self._memos_minute_window:
            return 0.0
        elapsed = now - min(self._memos_minute_window)
        if elapsed <= 0:
            return 0.0
        return len(self._memos_minute_window) * (60.0 / elapsed)

    def to_dict(self) -> dict:
        return {
            "memos_received_total": self.memos_received_total,
            "poll_errors": self.poll_errors,
            "subscriptions_opened": self.subscriptions_opened,
            "last_block": self.last_block,
            "memos_per_minute": round(self.memos_per_minute, 2),
            "heartbeat_age_seconds": round(time.monotonic() - self.last_heartbeat, 1),
        }


# Singleton metrics instance
_metrics: SubscriptionMetrics | None = None


def get_subscription_metrics() -> SubscriptionMetrics:
    global _metrics
    if _metrics is None:
        _metrics = SubscriptionMetrics()
    return _metrics
