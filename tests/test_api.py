"""
HTTP API Tests
==============

The FastAPI app without its lifespan: module globals are replaced with an
in-memory store so no poller or network is involved.
"""

import asyncio
import inspect
import threading

import pytest
from fastapi.testclient import TestClient

from queuewatch import main
from queuewatch.agent.transitions import DetectionThresholds
from queuewatch.analytics import ReportService
from queuewatch.models.sample import Sample
from queuewatch.signals import classify
from queuewatch.stream import SampleBuffer, StatusBroadcaster

from conftest import LOCATION, ms


NOW = ms(2025, 11, 10, 13, 30)


@pytest.fixture
def client(store, utc, monkeypatch):
    reports = ReportService(
        store,
        store,
        LOCATION,
        utc,
        thresholds=DetectionThresholds(capacity=6, empty=2),
        clock=lambda: NOW / 1000,
    )
    monkeypatch.setattr(main, "_reports", reports)
    monkeypatch.setattr(main, "_broadcaster", StatusBroadcaster())
    monkeypatch.setattr(main.settings.server, "push_interval_seconds", 0.05)
    return TestClient(main.app)


def seed(store):
    for i, count in enumerate([0, 3, 6, 6, 2]):
        store.record_sample(LOCATION, Sample(ms(2025, 11, 10, 13, i), count), classify(count))
    event_id = store.create_event(LOCATION, ms(2025, 11, 10, 13, 2), 6, turnover_count=2, estimated_queue_length=2)
    store.close_event(event_id, ms(2025, 11, 10, 13, 4))


class TestServiceEndpoints:
    def test_root_and_health(self, client):
        assert client.get("/").json()["service"] == "queuewatch"
        assert client.get("/health").json()["status"] == "healthy"

    def test_not_ready_without_pipeline(self, client, monkeypatch):
        monkeypatch.setattr(main, "_is_ready", False)
        response = client.get("/ready")
        assert response.status_code == 503

    def test_metrics(self, client):
        body = client.get("/metrics").json()
        assert body["store_errors"] == 0
        assert body["status_subscribers"] == 0


class TestReportEndpoints:
    def test_status_and_counts(self, client, store):
        seed(store)
        assert client.get("/api/status/latest").json()["count"] == 2
        assert client.get("/api/stats/count").json() == {"count": 5}
        history = client.get("/api/status/history").json()
        assert history[0]["status"] == "SLIGHTLY_BUSY"

    def test_queue_endpoints(self, client, store):
        seed(store)
        history = client.get("/api/queue/history").json()
        assert history[0]["turnover_count"] == 2
        assert history[0]["duration_minutes"] == 2

        assert client.get("/api/queue/current").json()["has_queue"] is False
        assert client.get("/api/queue/daily").json()[0]["queue_count"] == 1
        assert client.get("/api/stats/weekly-hourly").json()[0]["bucket_key"] == "13"
        assert len(client.get("/api/queue/stacks").json()) == 1

    def test_daily_and_hourly_stats(self, client, store):
        seed(store)
        assert client.get("/api/stats/daily?days=1").json()[0]["period"] == "2025-11-10"
        hourly = client.get("/api/stats/hourly", params={"date": "2025-11-10"}).json()
        assert hourly == [{
            "period": "13", "avg_count": 3.4, "max_count": 6, "min_count": 0, "record_count": 5,
        }]

    def test_dashboard(self, client, store):
        seed(store)
        body = client.get("/api/dashboard/current").json()
        assert body["current"]["count"] == 2
        assert body["comparison"]["trend"] == "falling"
        assert body["prediction"]["has_queue"] is False

    @pytest.mark.parametrize("path", [
        "/api/stats/daily?days=0",
        "/api/queue/history?limit=0",
        "/api/stats/hourly?date=2025-99-99",
        "/api/dashboard/current?days=1000",
    ])
    def test_bad_parameters_are_400(self, client, path):
        response = client.get(path)
        assert response.status_code == 400
        assert "error" in response.json()


class TestStatusWebSocket:
    def test_snapshot_then_heartbeat(self, client, store):
        seed(store)
        with client.websocket_connect("/ws/status") as ws:
            snapshot = ws.receive_json()
            assert snapshot["type"] == "snapshot"
            assert snapshot["count"] == 2
            assert ws.receive_json()["type"] == "heartbeat"


class TestEventLoopStaysFree:
    """SQLite work never runs on the event loop thread."""

    REPORT_PATHS = [
        "/api/status/latest",
        "/api/status/history",
        "/api/stats/daily",
        "/api/stats/hourly",
        "/api/stats/weekly-hourly",
        "/api/stats/count",
        "/api/queue/daily",
        "/api/queue/history",
        "/api/queue/current",
        "/api/queue/stacks",
        "/api/dashboard/current",
    ]

    @pytest.mark.parametrize("path", REPORT_PATHS)
    def test_report_handlers_are_sync(self, path):
        endpoint = next(r.endpoint for r in main.app.routes if getattr(r, "path", None) == path)
        assert not inspect.iscoroutinefunction(endpoint)

    def test_ingest_runs_in_worker_thread(self, monkeypatch):
        seen = []

        class RecordingMonitor:
            location_id = LOCATION

            def ingest(self, timestamp, count):
                seen.append((threading.get_ident(), timestamp, count))
                main._shutdown_flag = True

        class OneMonitorRegistry:
            def get(self, location_id):
                return RecordingMonitor()

        monkeypatch.setattr(main, "_shutdown_flag", False)
        monkeypatch.setattr(main, "_is_ready", False)
        monkeypatch.setattr(main, "_registry", OneMonitorRegistry())

        async def run():
            buffer = SampleBuffer()
            await buffer.put(Sample(NOW, 4))
            monkeypatch.setattr(main, "_sample_buffer", buffer)
            await main.process_samples()
            return threading.get_ident()

        loop_thread = asyncio.run(run())
        assert len(seen) == 1
        thread, timestamp, count = seen[0]
        assert thread != loop_thread
        assert (timestamp, count) == (NOW, 4)
