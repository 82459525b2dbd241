import atexit
import ipaddress
import logging

from flask import Flask, request, jsonify

from logbatcher.config import Config, load_config
from logbatcher.errors import InvalidRecordError
from logbatcher.service import LogBatchService

logger = logging.getLogger(__name__)

_LOCALHOST = ("127.0.0.1", "::1")


def _expand_proxies(proxies):
    """Resolve the 'localhost' alias into loopback addresses."""
    expanded = set()
    for proxy in proxies:
        if proxy == "localhost":
            expanded.update(_LOCALHOST)
        else:
            expanded.add(proxy)
    return expanded


def _is_trusted(addr, trusted) -> bool:
    if not addr:
        return False
    if addr in trusted:
        return True
    try:
        ip = ipaddress.ip_address(addr)
    except ValueError:
        return False
    for proxy in trusted:
        try:
            if ip in ipaddress.ip_network(proxy, strict=False):
                return True
        except ValueError:
            continue
    return False


def client_address(remote_addr, forwarded_for, trusted) -> str:
    """Client address as seen through a chain of trusted reverse proxies.

    X-Forwarded-For is walked from the right; the first hop that is not a
    trusted proxy is the client. Falls back to the peer address.
    """
    if forwarded_for and _is_trusted(remote_addr, trusted):
        hops = [hop.strip() for hop in forwarded_for.split(",") if hop.strip()]
        for hop in reversed(hops):
            if not _is_trusted(hop, trusted):
                return hop
    return remote_addr or "unknown"


def create_app(config: Config | None = None, service: LogBatchService | None = None):
    """Flask application factory."""
    app = Flask(__name__)

    if service is None:
        if config is None:
            config = load_config()
        service = LogBatchService(config)
        service.start()

        # Make sure the timer stops and leftovers ship with the app
        atexit.register(service.stop)
    trusted = _expand_proxies(service.config.trusted_proxies)

    # Store the service on the app for access in tests
    app.config["service"] = service

    @app.route("/log", methods=["POST"])
    def ingest_log():
        payload = request.get_json(force=True, silent=True)

        try:
            service.ingest(payload)
        except InvalidRecordError as exc:
            logger.warning(
                "Failed to store log from %s: %s (%s)",
                client_address(
                    request.remote_addr, request.headers.get("X-Forwarded-For"), trusted
                ),
                exc,
                "; ".join(exc.errors),
            )
            return jsonify({"error": str(exc)}), 500

        # Size check runs after the record is accepted; a failed flush does
        # not change the response.
        service.check_size()
        return jsonify({"success": "Log successfully stored"}), 200

    @app.route("/api/validation-stats")
    def validation_stats():
        return jsonify(service.validator.get_stats())

    @app.route("/healthz")
    def healthz():
        return "OK", 200, {"Content-Type": "text/plain"}

    return app
