"""Thread-safe counters for flushed batches."""

import threading
import time


class DeliveryMetrics:
    """Collects counters about batch deliveries to the collector."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._batches_sent: int = 0
        self._batches_failed: int = 0
        self._records_sent: int = 0
        self._records_failed: int = 0
        self._bytes_sent: int = 0
        self._send_times: list[float] = []
        self._flush_triggers: dict = {"size": 0, "timer": 0}
        self._start_time = time.monotonic()

    def record_success(
        self,
        batch_size: int,
        bytes_sent: int,
        duration_seconds: float,
        trigger: str = "size",
    ) -> None:
        """Record a batch the collector accepted.

        Args:
            batch_size: Number of users in the batch.
            bytes_sent: Serialized payload size in bytes.
            duration_seconds: Time from the first attempt to the accepted one.
            trigger: What caused the flush: "size", "timer" or "shutdown".
        """
        with self._lock:
            self._batches_sent += 1
            self._records_sent += batch_size
            self._bytes_sent += bytes_sent
            self._send_times.append(duration_seconds)
            self._flush_triggers[trigger] = self._flush_triggers.get(trigger, 0) + 1

    def record_failure(self, batch_size: int, trigger: str = "size") -> None:
        """Record a batch whose delivery exhausted its retries."""
        with self._lock:
            self._batches_failed += 1
            self._records_failed += batch_size
            self._flush_triggers[trigger] = self._flush_triggers.get(trigger, 0) + 1

    def snapshot(self) -> dict:
        """Return a point-in-time snapshot of all collected metrics."""
        with self._lock:
            send_times = list(self._send_times)
            avg_send = sum(send_times) / len(send_times) if send_times else 0.0

            return {
                "batches_sent": self._batches_sent,
                "batches_failed": self._batches_failed,
                "records_sent": self._records_sent,
                "records_failed": self._records_failed,
                "bytes_sent": self._bytes_sent,
                "avg_send_seconds": avg_send,
                "p95_send_seconds": self._percentile(send_times, 95),
                "flush_triggers": dict(self._flush_triggers),
                "uptime_seconds": time.monotonic() - self._start_time,
            }

    @staticmethod
    def _percentile(data: list, pct: float) -> float:
        """Interpolated percentile of *data*, or 0.0 when empty."""
        if not data:
            return 0.0

        sorted_data = sorted(data)
        n = len(sorted_data)

        if n == 1:
            return float(sorted_data[0])

        idx = (pct / 100) * (n - 1)
        lower = int(idx)
        upper = lower + 1
        fraction = idx - lower

        if upper >= n:
            return float(sorted_data[-1])

        return float(sorted_data[lower] + fraction * (sorted_data[upper] - sorted_data[lower]))
