"""Decides when the store is ready to flush."""

import threading
import logging
from typing import Callable

from apscheduler.schedulers.background import BackgroundScheduler

from logbatcher.store import RecordStore

TICK_JOB_ID = "batch-trigger-tick"


class BatchTrigger:
    """Evaluates the flush predicate for the two stimuli.

    * size stimulus: ``check_size()`` after every successful put; due when
      the store holds at least ``batch_size`` users.
    * timer stimulus: ``tick()`` every ``check_frequency`` seconds; due when
      the store is non-empty and either ``max_interval`` seconds have
      accumulated since the last flush or the size threshold is met.

    ``on_flush(reason)`` returns a truthy value when a flush actually ran and
    None when it was skipped. The elapsed counter is reset only in the
    former case.
    """

    def __init__(
        self,
        store: RecordStore,
        on_flush: Callable[[str], object],
        batch_size: int,
        check_frequency: int,
        max_interval: int,
        logger: logging.Logger | None = None,
    ):
        self._store = store
        self._on_flush = on_flush
        self.batch_size = batch_size
        self.check_frequency = check_frequency
        self.max_interval = max_interval
        self._logger = logger or logging.getLogger(__name__)

        self._elapsed = 0
        self._lock = threading.Lock()
        self._scheduler: BackgroundScheduler | None = None

    # Predicates

    def is_size_due(self) -> bool:
        return self._store.size() >= self.batch_size

    def is_timer_due(self) -> bool:
        size = self._store.size()
        if size == 0:
            return False
        return self.elapsed_interval >= self.max_interval or size >= self.batch_size

    # Stimuli

    def check_size(self):
        """Size stimulus, fired right after a record is stored."""
        if self.is_size_due():
            return self._fire("size")
        return None

    def tick(self):
        """Timer stimulus, fired by the scheduler every check_frequency seconds."""
        with self._lock:
            self._elapsed += self.check_frequency
        if self.is_timer_due():
            return self._fire("timer")
        return None

    @property
    def elapsed_interval(self) -> int:
        with self._lock:
            return self._elapsed

    def reset_interval(self):
        with self._lock:
            self._elapsed = 0

    def _fire(self, reason: str):
        self._logger.debug(
            "Flush due (%s): %d user(s) held, %ds elapsed",
            reason, self._store.size(), self.elapsed_interval,
        )
        outcome = self._on_flush(reason)
        if outcome is not None:
            self.reset_interval()
        return outcome

    # Scheduling

    def start(self, scheduler: BackgroundScheduler | None = None):
        """Run ``tick`` every check_frequency seconds on a background scheduler."""
        self._scheduler = scheduler or BackgroundScheduler()
        self._scheduler.add_job(
            self.tick,
            "interval",
            seconds=self.check_frequency,
            id=TICK_JOB_ID,
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        if not self._scheduler.running:
            self._scheduler.start()
        self._logger.info(
            "Started batch listener: check every %ds, flush after %ds or %d users",
            self.check_frequency, self.max_interval, self.batch_size,
        )

    def stop(self):
        if self._scheduler is not None and self._scheduler.running:
            self._scheduler.shutdown(wait=True)
        self._scheduler = None
