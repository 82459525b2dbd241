import threading
from collections import defaultdict

import jsonschema

from logbatcher.errors import InvalidRecordError
from logbatcher.models import LogRecord

# Only the aggregation key is enforced. The remaining fields are opaque and
# are coerced leniently by LogRecord.from_dict.
RECORD_SCHEMA = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "type": "object",
    "required": ["user_id"],
    "properties": {
        "user_id": {"type": "integer", "not": {"const": 0}},
    },
}

INVALID_RECORD_MESSAGE = "UserID is required"


class RecordValidator:
    """Validates ingested payloads and converts them to LogRecords."""

    def __init__(self, schema=None):
        self._validator = jsonschema.Draft202012Validator(schema or RECORD_SCHEMA)
        self._lock = threading.Lock()
        self._stats = self._empty_stats()

    @staticmethod
    def _empty_stats():
        return {
            "total": 0,
            "valid": 0,
            "invalid": 0,
            "error_types": defaultdict(int),
        }

    def validate(self, payload) -> LogRecord:
        """Validate a decoded JSON payload.

        Returns:
            LogRecord built from the payload.

        Raises:
            InvalidRecordError: user_id is missing, zero, or not an integer.
        """
        errors = list(self._validator.iter_errors(payload))

        with self._lock:
            self._stats["total"] += 1
            if not errors:
                self._stats["valid"] += 1
            else:
                self._stats["invalid"] += 1
                for error in errors:
                    self._stats["error_types"][error.validator] += 1

        if errors:
            raise InvalidRecordError(
                INVALID_RECORD_MESSAGE, [error.message for error in errors]
            )
        return LogRecord.from_dict(payload)

    def get_stats(self):
        """Return a copy of the stats dict."""
        with self._lock:
            stats = dict(self._stats)
            stats["error_types"] = dict(stats["error_types"])
        return stats

    def reset_stats(self):
        """Reset all stat counters."""
        with self._lock:
            self._stats = self._empty_stats()
