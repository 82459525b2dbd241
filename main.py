"""Server entry point for the log batcher."""

import logging
import signal
import sys
import threading

from werkzeug.serving import make_server

from logbatcher.app import create_app
from logbatcher.config import load_config
from logbatcher.errors import ConfigError
from logbatcher.service import LogBatchService


def main():
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    logger = logging.getLogger(__name__)

    try:
        config = load_config()
    except ConfigError as exc:
        logger.critical("Invalid configuration: %s", exc)
        return 2
    logging.getLogger().setLevel(config.log_level)

    shutdown_event = threading.Event()

    def handle_signal(signum, frame):
        logger.info("Received signal %d, shutting down...", signum)
        shutdown_event.set()

    signal.signal(signal.SIGINT, handle_signal)
    signal.signal(signal.SIGTERM, handle_signal)

    service = LogBatchService(config, shutdown_event)
    app = create_app(service=service)
    server = make_server(config.host, config.port, app, threaded=True)

    service.start()
    server_thread = threading.Thread(target=server.serve_forever, daemon=True)
    server_thread.start()
    logger.info(
        "Starting server on %s:%d, shipping to %s (batch_size=%d, interval=%ds)",
        config.host,
        config.port,
        config.post_endpoint,
        config.batch_size,
        config.batch_interval,
    )

    try:
        shutdown_event.wait()
    except KeyboardInterrupt:
        logger.info("Interrupted")
    finally:
        server.shutdown()
        server_thread.join(timeout=5)
        service.stop()

    return 1 if service.terminated else 0


if __name__ == "__main__":
    sys.exit(main())
