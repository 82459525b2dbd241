"""POSTs a batch to the collector with fixed-wait retry."""

import json
import time
import logging
from dataclasses import dataclass

import requests

from logbatcher.errors import DeliveryExhaustedError, TransportError
from logbatcher.models import Batch


@dataclass(frozen=True)
class DeliveryStats:
    """Outcome of a successful delivery."""

    duration_seconds: float
    status_code: int
    attempts: int
    bytes_sent: int


class DeliveryEngine:
    """Sends batches to a single collector endpoint.

    ``max_retries`` is the total number of attempts. Between failed attempts
    the engine sleeps ``retry_wait`` seconds; it does not sleep after the
    last one. The engine never touches the store.
    """

    def __init__(
        self,
        endpoint: str,
        max_retries: int = 3,
        retry_wait: float = 2,
        timeout: float = 10,
        session: requests.Session | None = None,
        logger: logging.Logger | None = None,
    ):
        self.endpoint = endpoint
        self.max_retries = max(1, max_retries)
        self.retry_wait = retry_wait
        self.timeout = timeout
        self._owns_session = session is None
        self._session = session or requests.Session()
        self._logger = logger or logging.getLogger(__name__)

    def deliver(self, batch: Batch) -> DeliveryStats:
        """POST the batch, retrying until success or attempts run out.

        Raises:
            DeliveryExhaustedError: every attempt failed.
        """
        payload = json.dumps(batch.to_payload()).encode("utf-8")
        last_error = None
        start = time.monotonic()

        for attempt in range(1, self.max_retries + 1):
            self._logger.info(
                "Sending %d record(s) to %s, attempt %d/%d",
                len(batch), self.endpoint, attempt, self.max_retries,
            )
            try:
                status_code = self._post(payload)
            except TransportError as exc:
                last_error = str(exc)
            else:
                if 200 <= status_code < 300:
                    return DeliveryStats(
                        duration_seconds=time.monotonic() - start,
                        status_code=status_code,
                        attempts=attempt,
                        bytes_sent=len(payload),
                    )
                last_error = f"unexpected status code {status_code}"

            if attempt < self.max_retries:
                self._logger.warning(
                    "Attempt %d/%d failed: %s. Retrying in %ss",
                    attempt, self.max_retries, last_error, self.retry_wait,
                )
                time.sleep(self.retry_wait)

        self._logger.error(
            "Send to %s failed after %d attempt(s): %s",
            self.endpoint, self.max_retries, last_error,
        )
        raise DeliveryExhaustedError(self.endpoint, self.max_retries, last_error)

    def _post(self, payload: bytes) -> int:
        """Send one request and return its status code."""
        try:
            response = self._session.post(
                self.endpoint,
                data=payload,
                headers={"Content-Type": "application/json"},
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise TransportError(str(exc)) from exc
        response.close()
        return response.status_code

    def close(self):
        if self._owns_session:
            self._session.close()
