"""Per-user accumulation of log records."""

import dataclasses
import threading
import logging

from logbatcher.models import Batch, LogRecord

logger = logging.getLogger(__name__)


class RecordStore:
    """Thread-safe map of user id to LogRecord.

    Every operation takes the same lock, so a put is either wholly inside a
    snapshot or wholly after it. Callers must never hold the lock while doing
    network I/O; ``snapshot_and_clear`` hands back a Batch that is sent
    without touching the store again.
    """

    def __init__(self):
        self._records: dict[int, LogRecord] = {}
        self._lock = threading.Lock()

    def put(self, record: LogRecord):
        """Insert a record, or append its logins to the user's existing one."""
        with self._lock:
            existing = self._records.get(record.user_id)
            if existing is None:
                self._records[record.user_id] = record
            else:
                existing.merge(record)

    def size(self) -> int:
        """Number of distinct users currently held."""
        with self._lock:
            return len(self._records)

    def __len__(self) -> int:
        return self.size()

    def get(self, user_id: int) -> LogRecord | None:
        with self._lock:
            return self._records.get(user_id)

    def snapshot_and_clear(self) -> Batch:
        """Atomically take everything in the store and leave it empty."""
        with self._lock:
            records = self._records
            self._records = {}
        return Batch(records)

    def restore(self, batch: Batch):
        """Put back a batch whose delivery failed.

        Records from the batch are older than anything that arrived since the
        snapshot, so they keep their scalar fields and their logins go first.
        """
        with self._lock:
            for user_id, old in batch.records.items():
                current = self._records.get(user_id)
                if current is None:
                    self._records[user_id] = dataclasses.replace(
                        old, logins=list(old.logins)
                    )
                else:
                    self._records[user_id] = dataclasses.replace(
                        old, logins=list(old.logins) + current.logins
                    )
            size = len(self._records)
        logger.debug("Restored %d record(s), store now holds %d", len(batch), size)
