"""Exception hierarchy for the log batcher."""


class LogBatcherError(Exception):
    """Base class for every error raised by this package."""


class ConfigError(LogBatcherError):
    """A required setting is missing or malformed. Fatal at startup."""


class InvalidRecordError(LogBatcherError):
    """An ingested payload failed validation."""

    def __init__(self, message: str, errors: list[str] | None = None):
        super().__init__(message)
        self.errors = errors or []


class TransportError(LogBatcherError):
    """A single delivery attempt failed at the network level."""


class DeliveryError(LogBatcherError):
    """A batch could not be delivered to the collector."""


class DeliveryExhaustedError(DeliveryError):
    """Every allowed delivery attempt failed."""

    def __init__(self, endpoint: str, attempts: int, last_error: str | None = None):
        message = f"Failed to send logs to {endpoint} after {attempts} attempt(s)"
        if last_error:
            message = f"{message}: {last_error}"
        super().__init__(message)
        self.endpoint = endpoint
        self.attempts = attempts
        self.last_error = last_error
