"""Log batch service: wires store, trigger, controller and delivery engine."""

import threading
import logging

from logbatcher.config import Config
from logbatcher.lifecycle import FailurePolicy, LifecycleController, State
from logbatcher.metrics import DeliveryMetrics
from logbatcher.models import LogRecord
from logbatcher.sender import DeliveryEngine
from logbatcher.store import RecordStore
from logbatcher.trigger import BatchTrigger
from logbatcher.validator import RecordValidator

logger = logging.getLogger(__name__)


class LogBatchService:
    """High-level service that accepts records and ships them in batches."""

    def __init__(
        self,
        config: Config,
        shutdown_event: threading.Event | None = None,
        engine: DeliveryEngine | None = None,
    ):
        self._config = config
        self._shutdown = shutdown_event or threading.Event()
        self._metrics = DeliveryMetrics()
        self._store = RecordStore()
        self._validator = RecordValidator()
        self._engine = engine or DeliveryEngine(
            config.post_endpoint,
            max_retries=config.max_retries,
            retry_wait=config.retry_wait,
            timeout=config.request_timeout,
        )
        self._controller = LifecycleController(
            self._store,
            self._engine,
            failure_policy=FailurePolicy(config.failure_policy),
            metrics=self._metrics,
            on_terminate=self._handle_terminate,
        )
        self._trigger = BatchTrigger(
            self._store,
            on_flush=self._controller.flush,
            batch_size=config.batch_size,
            check_frequency=config.check_frequency,
            max_interval=config.batch_interval,
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def ingest(self, payload) -> LogRecord:
        """Validate and store one payload.

        Raises:
            InvalidRecordError: the payload has no usable user_id.
        """
        record = self._validator.validate(payload)
        self._store.put(record)
        return record

    def check_size(self):
        """Run the size stimulus; returns the flush outcome, if any."""
        return self._trigger.check_size()

    def start(self):
        self._trigger.start()

    def stop(self):
        """Stop the timer, ship whatever is left, and release the session."""
        self._trigger.stop()
        self._controller.wait_until_idle(timeout=self._shutdown_timeout())
        if self._controller.state is State.IDLE and self._store.size():
            logger.info("Flushing %d record(s) before shutdown", self._store.size())
            self._controller.flush("shutdown")
        self._engine.close()
        logger.info("Delivery metrics: %s", self._metrics.snapshot())
        logger.info("Validation stats: %s", self._validator.get_stats())

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def config(self) -> Config:
        return self._config

    @property
    def store(self) -> RecordStore:
        return self._store

    @property
    def trigger(self) -> BatchTrigger:
        return self._trigger

    @property
    def controller(self) -> LifecycleController:
        return self._controller

    @property
    def validator(self) -> RecordValidator:
        return self._validator

    @property
    def metrics(self) -> DeliveryMetrics:
        return self._metrics

    @property
    def terminated(self) -> bool:
        return self._controller.state is State.TERMINATED

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _handle_terminate(self):
        logger.critical("Delivery failure policy is 'terminate', shutting down")
        self._shutdown.set()

    def _shutdown_timeout(self) -> float:
        cfg = self._config
        return cfg.max_retries * (cfg.retry_wait + cfg.request_timeout)
