import json
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

import pytest

from logbatcher.config import Config


class Collector:
    """Records every POST and answers with scripted status codes.

    Once the script runs out, ``default_status`` is used.
    """

    def __init__(self, statuses=None, default_status=200):
        self.statuses = list(statuses or [])
        self.default_status = default_status
        self.requests: list[dict] = []
        self.received = threading.Event()
        self._lock = threading.Lock()
        self.url = ""

    def next_status(self, body: bytes, headers) -> int:
        with self._lock:
            self.requests.append({
                "body": json.loads(body) if body else None,
                "content_type": headers.get("Content-Type"),
            })
            status = self.statuses.pop(0) if self.statuses else self.default_status
        if 200 <= status < 300:
            self.received.set()
        return status

    @property
    def attempts(self) -> int:
        with self._lock:
            return len(self.requests)

    @property
    def bodies(self) -> list:
        with self._lock:
            return [r["body"] for r in self.requests]


def _make_handler(collector: Collector):
    class Handler(BaseHTTPRequestHandler):
        def do_POST(self):
            length = int(self.headers.get("Content-Length", 0))
            body = self.rfile.read(length)
            status = collector.next_status(body, self.headers)
            self.send_response(status)
            self.send_header("Content-Length", "0")
            self.end_headers()

        def log_message(self, format, *args):
            pass

    return Handler


@pytest.fixture
def collector():
    """Start a real HTTP collector on an ephemeral port."""
    c = Collector()
    server = ThreadingHTTPServer(("127.0.0.1", 0), _make_handler(c))
    host, port = server.server_address[:2]
    c.url = f"http://{host}:{port}/logs"
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    yield c
    server.shutdown()
    server.server_close()


@pytest.fixture
def dead_endpoint():
    """URL of a port nothing is listening on."""
    import socket

    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    port = sock.getsockname()[1]
    sock.close()
    return f"http://127.0.0.1:{port}/logs"


@pytest.fixture
def make_config(collector):
    """Build a Config aimed at the test collector."""

    def _make(**overrides):
        defaults = {
            "post_endpoint": collector.url,
            "max_retries": 3,
            "retry_wait": 0,
            "check_frequency": 10,
            "batch_interval": 10,
            "batch_size": 20,
            "request_timeout": 5,
        }
        defaults.update(overrides)
        return Config(**defaults)

    return _make


@pytest.fixture
def sample_payload():
    return {
        "user_id": 1,
        "total": 1.65,
        "title": "delectus aut autem",
        "meta": {
            "logins": [{"time": "2020-08-08T01:52:50Z", "ip": "0.0.0.0"}],
            "phone_numbers": {"home": "555-1212", "mobile": "123-5555"},
        },
        "completed": False,
    }
