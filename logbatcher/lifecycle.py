"""Lifecycle controller — drains the store, delivers, and handles the outcome."""

import enum
import threading
import logging
from dataclasses import dataclass
from typing import Callable

from logbatcher.errors import DeliveryExhaustedError
from logbatcher.metrics import DeliveryMetrics
from logbatcher.sender import DeliveryEngine, DeliveryStats
from logbatcher.store import RecordStore


class State(enum.Enum):
    IDLE = "idle"
    SENDING = "sending"
    TERMINATED = "terminated"


class FailurePolicy(str, enum.Enum):
    """What to do with a batch whose delivery exhausted its retries."""

    REQUEUE = "requeue"  # merge it back into the store for the next flush
    DROP = "drop"  # discard it and keep serving
    TERMINATE = "terminate"  # stop the service


@dataclass(frozen=True)
class FlushOutcome:
    reason: str
    batch_size: int
    delivered: bool
    stats: DeliveryStats | None = None
    error: Exception | None = None


class LifecycleController:
    """Runs one flush at a time: IDLE -> SENDING -> {IDLE, TERMINATED}.

    A flush requested while another is in flight is skipped; its records
    stay in the store and go out with the next stimulus.
    """

    def __init__(
        self,
        store: RecordStore,
        engine: DeliveryEngine,
        failure_policy: FailurePolicy = FailurePolicy.REQUEUE,
        metrics: DeliveryMetrics | None = None,
        on_terminate: Callable[[], None] | None = None,
        logger: logging.Logger | None = None,
    ):
        self._store = store
        self._engine = engine
        self.failure_policy = FailurePolicy(failure_policy)
        self._metrics = metrics or DeliveryMetrics()
        self._on_terminate = on_terminate
        self._logger = logger or logging.getLogger(__name__)

        self._state = State.IDLE
        self._cond = threading.Condition()

    @property
    def state(self) -> State:
        with self._cond:
            return self._state

    @property
    def metrics(self) -> DeliveryMetrics:
        return self._metrics

    def wait_until_idle(self, timeout: float | None = None) -> bool:
        """Block while a flush is in flight. Returns False on timeout."""
        with self._cond:
            return self._cond.wait_for(
                lambda: self._state is not State.SENDING, timeout=timeout
            )

    def flush(self, reason: str = "size") -> FlushOutcome | None:
        """Drain the store and deliver what was in it.

        Returns None when nothing was sent: another flush is running, the
        controller is terminated, or the store was already empty.
        """
        with self._cond:
            if self._state is not State.IDLE:
                self._logger.debug(
                    "Skipping %s flush, controller is %s", reason, self._state.value
                )
                return None
            self._state = State.SENDING

        next_state = State.IDLE
        try:
            batch = self._store.snapshot_and_clear()
            if not batch:
                return None

            try:
                stats = self._engine.deliver(batch)
            except Exception as exc:
                if not isinstance(exc, DeliveryExhaustedError):
                    self._logger.exception(
                        "Unexpected error delivering %d record(s)", len(batch)
                    )
                self._metrics.record_failure(len(batch), reason)
                next_state = self._handle_failure(batch, exc, reason)
                return FlushOutcome(reason, len(batch), delivered=False, error=exc)

            self._metrics.record_success(
                len(batch), stats.bytes_sent, stats.duration_seconds, reason
            )
            self._logger.info(
                "Successfully sent log batch to endpoint: batch_size=%d "
                "status_code=%d duration=%.3fs trigger=%s",
                len(batch), stats.status_code, stats.duration_seconds, reason,
            )
            return FlushOutcome(reason, len(batch), delivered=True, stats=stats)
        finally:
            with self._cond:
                self._state = next_state
                self._cond.notify_all()
            if next_state is State.TERMINATED and self._on_terminate is not None:
                self._on_terminate()

    def _handle_failure(self, batch, exc: Exception, reason: str) -> State:
        # No flush follows a shutdown flush.
        if reason == "shutdown" and self.failure_policy is FailurePolicy.REQUEUE:
            self._logger.error(
                "%s; dropped %d record(s) at shutdown", exc, len(batch)
            )
            return State.IDLE

        if self.failure_policy is FailurePolicy.REQUEUE:
            self._store.restore(batch)
            self._logger.warning(
                "%s; re-queued %d record(s) for the next flush", exc, len(batch)
            )
            return State.IDLE

        if self.failure_policy is FailurePolicy.DROP:
            self._logger.error("%s; dropped %d record(s)", exc, len(batch))
            return State.IDLE

        self._logger.critical(
            "Remote endpoint is not available (%s); "
            "terminating with %d record(s) undelivered",
            exc, len(batch),
        )
        return State.TERMINATED
