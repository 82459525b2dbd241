"""End-to-end tests: Flask ingestion, scheduled flushing, real HTTP collector."""

import threading
import time

import main
from logbatcher.app import create_app
from logbatcher.lifecycle import State
from logbatcher.service import LogBatchService


def _payload(user_id, login):
    return {"user_id": user_id, "meta": {"logins": [{"time": login, "ip": "10.0.0.1"}]}}


def _wait_for(predicate, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.05)
    return predicate()


class TestTimerFlush:
    def test_single_record_flushed_by_scheduler(self, make_config, collector):
        """One record and no further traffic goes out on the next tick."""
        service = LogBatchService(
            make_config(batch_size=20, check_frequency=1, batch_interval=1)
        )
        client = create_app(service=service).test_client()
        service.start()
        try:
            client.post("/log", json=_payload(1, "a"))
            assert collector.received.wait(5)
            assert _wait_for(lambda: service.trigger.elapsed_interval == 0)
        finally:
            service.stop()

        assert collector.bodies[0] == {
            "1": {
                "user_id": 1,
                "total": 0.0,
                "title": "",
                "meta": {
                    "logins": [{"time": "a", "ip": "10.0.0.1"}],
                    "phone_numbers": {"home": "", "mobile": ""},
                },
                "completed": False,
            }
        }
        assert service.store.size() == 0
        assert service.metrics.snapshot()["flush_triggers"]["timer"] == 1


class TestShutdownFlush:
    def test_stop_ships_leftovers(self, make_config, collector):
        service = LogBatchService(make_config(batch_size=20))
        client = create_app(service=service).test_client()
        client.post("/log", json=_payload(1, "a"))
        client.post("/log", json=_payload(2, "b"))
        assert collector.attempts == 0

        service.stop()

        assert set(collector.bodies[0]) == {"1", "2"}
        assert service.metrics.snapshot()["flush_triggers"]["shutdown"] == 1


class TestConcurrentIngestion:
    def test_parallel_posts_all_delivered_once(self, make_config, collector):
        service = LogBatchService(make_config(batch_size=10))
        app = create_app(service=service)

        def worker(offset):
            client = app.test_client()
            for i in range(25):
                client.post("/log", json=_payload(offset * 100 + i + 1, f"{offset}-{i}"))

        threads = [threading.Thread(target=worker, args=(w,)) for w in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        service.stop()

        delivered = [user_id for body in collector.bodies for user_id in body]
        assert len(delivered) == 100
        assert len(set(delivered)) == 100


class TestTerminatePolicy:
    def test_exhausted_delivery_terminates_service(self, make_config, collector):
        collector.default_status = 503
        shutdown = threading.Event()
        service = LogBatchService(
            make_config(batch_size=1, max_retries=2, failure_policy="terminate"),
            shutdown,
        )
        client = create_app(service=service).test_client()

        resp = client.post("/log", json=_payload(1, "a"))

        assert resp.status_code == 200
        assert shutdown.is_set()
        assert service.terminated
        assert service.controller.state is State.TERMINATED

        client.post("/log", json=_payload(2, "b"))
        service.stop()
        assert collector.attempts == 2


class TestEntryPoint:
    def test_missing_endpoint_exits_with_config_error(self, monkeypatch):
        monkeypatch.delenv("POST_ENDPOINT", raising=False)
        monkeypatch.delenv("CONFIG_PATH", raising=False)
        assert main.main() == 2
