"""
queuewatch Main Application
===========================

FastAPI entry point for the queue monitor.

Pipeline:
    OccupancyPoller -> SampleBuffer -> process_samples -> QueueMonitorGraph
                                                        -> SQLiteStore
                                                        -> StatusBroadcaster

Endpoints:
    GET  /                          - Service information
    GET  /health                    - Liveness probe
    GET  /ready                     - Readiness probe (poller + monitor up?)
    GET  /metrics                   - Pipeline metrics
    GET  /api/status/latest         - Latest sample and label
    GET  /api/status/history        - Label changes, newest first
    GET  /api/stats/daily           - Occupancy per local day
    GET  /api/stats/hourly          - Occupancy per hour of one date
    GET  /api/stats/weekly-hourly   - Queue statistics per hour of day
    GET  /api/stats/count           - Number of recorded samples
    GET  /api/queue/daily           - Queue statistics per day
    GET  /api/queue/history         - Closed queue events
    GET  /api/queue/current         - Open queue episode, if any
    GET  /api/queue/stacks          - Ten-minute heatmap cells
    GET  /api/dashboard/current     - Live dashboard snapshot
    WS   /ws/status                 - Status-change push

Report handlers are plain functions, so FastAPI runs them in its threadpool
and SQLite reads never block the event loop. Sample ingestion runs in a
worker thread for the same reason.
"""

import asyncio
import logging
import os
import signal
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, List, Optional

from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from queuewatch.agent import (
    DetectionThresholds,
    MonitorRegistry,
    QueueMonitorGraph,
    recover_orphans,
)
from queuewatch.analytics import ReportService, resolve_pytz
from queuewatch.config import Settings, settings
from queuewatch.errors import ReportingError, StoreError
from queuewatch.store import SQLiteStore
from queuewatch.stream import (
    OccupancyClient,
    OccupancyPoller,
    SampleBuffer,
    StatusBroadcaster,
)


logger = logging.getLogger(__name__)


# =============================================================================
# Global State
# =============================================================================

_shutdown_flag: bool = False

# Ingestion
_sample_buffer: Optional[SampleBuffer] = None
_client: Optional[OccupancyClient] = None
_poller: Optional[OccupancyPoller] = None
_poller_task: Optional[asyncio.Task] = None

# Detection and storage
_store: Optional[SQLiteStore] = None
_registry: Optional[MonitorRegistry] = None
_broadcaster: Optional[StatusBroadcaster] = None
_processing_task: Optional[asyncio.Task] = None

# Reporting
_reports: Optional[ReportService] = None

_startup_time: float = 0.0
_is_ready: bool = False

# Error counters
_store_error_count: int = 0
_pipeline_error_count: int = 0


# =============================================================================
# Getters
# =============================================================================

def get_poller() -> Optional[OccupancyPoller]:
    return _poller

def get_registry() -> Optional[MonitorRegistry]:
    return _registry

def get_broadcaster() -> Optional[StatusBroadcaster]:
    return _broadcaster

def get_reports() -> ReportService:
    if _reports is None:
        raise RuntimeError("Report service not initialized")
    return _reports

def is_ready() -> bool:
    return _is_ready


# =============================================================================
# Signal Handlers
# =============================================================================

def _handle_sigterm(signum, frame):
    """Handle SIGTERM for graceful shutdown."""
    global _shutdown_flag
    logger.info("Received SIGTERM, initiating graceful shutdown...")
    _shutdown_flag = True


# =============================================================================
# Factories
# =============================================================================

def build_thresholds(config: Settings) -> DetectionThresholds:
    """Detection thresholds from settings."""
    return DetectionThresholds(
        capacity=config.detection.capacity,
        empty=config.detection.empty,
        estimator=config.detection.estimator,
        max_event_minutes=config.detection.max_event_minutes,
    )


def create_monitor_factory(
    store: SQLiteStore,
    thresholds: DetectionThresholds,
    broadcaster: StatusBroadcaster,
):
    """Factory the registry uses to build one monitor per location."""

    def factory(location_id: str) -> QueueMonitorGraph:
        return QueueMonitorGraph(
            location_id,
            store,
            thresholds=thresholds,
            sample_log=store,
            on_status_change=broadcaster.on_status_change,
            log_every_n_samples=settings.logging.log_every_n_samples,
        )

    return factory


# =============================================================================
# Processing Pipeline
# =============================================================================

async def process_samples() -> None:
    """
    Feed buffered samples through the location's monitor.

    ``ingest`` writes to SQLite, so it runs in a worker thread and the event
    loop stays free for the poller and websocket pushes.
    """
    global _is_ready, _store_error_count, _pipeline_error_count

    if _sample_buffer is None or _registry is None:
        logger.error("Processing pipeline not initialized")
        return

    monitor = _registry.get(settings.location.location_id)
    logger.info(f"Sample processing started for location {monitor.location_id}")
    _is_ready = True

    while not _shutdown_flag:
        try:
            sample = await _sample_buffer.get(timeout=1.0)
            if sample is None:
                continue

            try:
                await asyncio.to_thread(monitor.ingest, sample.timestamp, sample.count)
            except StoreError as e:
                _store_error_count += 1
                logger.error(f"Store error, sample t={sample.timestamp} skipped: {e}")

        except asyncio.CancelledError:
            logger.info("Sample processing cancelled")
            break
        except Exception as e:
            _pipeline_error_count += 1
            logger.error(f"Pipeline error: {e}")
            await asyncio.sleep(0.1)

    _is_ready = False
    logger.info("Sample processing stopped")


# =============================================================================
# Lifespan Management
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan manager with graceful shutdown."""
    global _sample_buffer, _client, _poller, _poller_task
    global _store, _registry, _broadcaster, _processing_task
    global _reports, _startup_time

    signal.signal(signal.SIGTERM, _handle_sigterm)

    _startup_time = time.time()
    logger.info(f"Starting {settings.agent.name} {settings.agent.version}")

    location_id = settings.location.location_id
    thresholds = build_thresholds(settings)
    tz = resolve_pytz(settings.location.timezone)

    # Storage and startup recovery
    _store = SQLiteStore(settings.storage.db_path)
    _store.open()
    recovery = recover_orphans(
        _store,
        location_id,
        policy=settings.detection.orphan_policy,
        sample_log=_store,
    )
    if recovery.count:
        logger.warning(
            f"Recovered {recovery.count} orphaned queue events "
            f"with policy '{recovery.policy}'"
        )

    # Detection
    _broadcaster = StatusBroadcaster(loop=asyncio.get_running_loop())
    _registry = MonitorRegistry(create_monitor_factory(_store, thresholds, _broadcaster))

    # Reporting
    _reports = ReportService(
        _store,
        _store,
        location_id,
        tz,
        thresholds=thresholds,
        config=settings.reporting,
    )

    # Ingestion
    logger.info(f"Occupancy source: {settings.source.url}")
    _sample_buffer = SampleBuffer(maxsize=settings.source.max_queue_size)
    _client = OccupancyClient(
        settings.source.url,
        settings.source.camera_id,
        timeout=settings.source.request_timeout_seconds,
    )
    await _client.open()
    _poller = OccupancyPoller(
        _client,
        _sample_buffer,
        poll_interval_seconds=settings.source.poll_interval_seconds,
        failure_backoff_seconds=settings.source.failure_backoff_seconds,
        failures_before_backoff=settings.source.failures_before_backoff,
    )
    _poller_task = asyncio.create_task(_poller.run(), name="occupancy_poller")
    _processing_task = asyncio.create_task(process_samples(), name="sample_processing")

    logger.info("All components started")

    yield

    # Shutdown
    logger.info("Shutting down gracefully...")

    global _shutdown_flag
    _shutdown_flag = True

    if _poller:
        await _poller.stop()

    if _poller_task:
        try:
            await asyncio.wait_for(_poller_task, timeout=5.0)
        except asyncio.TimeoutError:
            _poller_task.cancel()
            try:
                await _poller_task
            except asyncio.CancelledError:
                pass

    if _processing_task:
        _processing_task.cancel()
        try:
            await _processing_task
        except asyncio.CancelledError:
            pass

    if _client:
        await _client.close()

    if _store:
        _store.close()

    logger.info("Shutdown complete")


# =============================================================================
# FastAPI Application
# =============================================================================

app = FastAPI(
    title="queuewatch",
    description="Queue detection and time-bucket analytics for occupancy counters",
    version=settings.agent.version,
    lifespan=lifespan,
)


@app.exception_handler(ReportingError)
async def reporting_error_handler(request: Request, exc: ReportingError) -> JSONResponse:
    return JSONResponse({"error": str(exc)}, status_code=400)


def _dump(rows: List[BaseModel]) -> list:
    return [row.model_dump(mode="json") for row in rows]


# =============================================================================
# Service Endpoints
# =============================================================================

@app.get("/")
async def root() -> JSONResponse:
    """Service information endpoint."""
    return JSONResponse({
        "service": "queuewatch",
        "version": settings.agent.version,
        "name": settings.agent.name,
        "status": "running",
        "location_id": settings.location.location_id,
        "timezone": settings.location.timezone,
    })


@app.get("/health")
async def health() -> JSONResponse:
    """
    Liveness probe - is the process alive?

    Always returns 200 if the service is running.
    """
    return JSONResponse({
        "status": "healthy",
        "uptime_seconds": round(time.time() - _startup_time, 1),
    })


@app.get("/ready")
async def ready() -> JSONResponse:
    """
    Readiness probe.

    Returns 200 once the processing loop runs, 503 otherwise.
    """
    poller = get_poller()
    source_healthy = poller.healthy if poller else False

    if is_ready():
        return JSONResponse({
            "status": "ready",
            "source_healthy": source_healthy,
            "monitors": len(_registry) if _registry else 0,
        })
    return JSONResponse(
        {"status": "not_ready", "source_healthy": source_healthy},
        status_code=503,
    )


@app.get("/metrics")
async def metrics() -> JSONResponse:
    """Detailed metrics for observability."""
    poller = get_poller()
    source_metrics = {}
    if poller and _sample_buffer:
        source_metrics = {
            **poller.metrics.to_dict(),
            "buffer_size": _sample_buffer.metrics()["size"],
            "buffer_dropped": _sample_buffer.metrics()["dropped_count"],
        }

    registry = get_registry()
    monitors = [m.get_metrics() for m in registry] if registry else []

    broadcaster = get_broadcaster()
    return JSONResponse({
        "uptime_seconds": round(time.time() - _startup_time, 1),
        "store_errors": _store_error_count,
        "pipeline_errors": _pipeline_error_count,
        "status_subscribers": broadcaster.subscriber_count if broadcaster else 0,
        "source": source_metrics,
        "monitors": monitors,
    })


# =============================================================================
# Status and Sample Statistics
# =============================================================================

@app.get("/api/status/latest")
def status_latest() -> JSONResponse:
    return JSONResponse(get_reports().latest_status().model_dump(mode="json"))


@app.get("/api/status/history")
def status_history(limit: Optional[int] = None) -> JSONResponse:
    return JSONResponse(_dump(get_reports().status_history(limit=limit)))


@app.get("/api/stats/daily")
def stats_daily(days: Optional[int] = None) -> JSONResponse:
    return JSONResponse(_dump(get_reports().daily_stats(days=days)))


@app.get("/api/stats/hourly")
def stats_hourly(date: str) -> JSONResponse:
    return JSONResponse(_dump(get_reports().hourly_stats(date)))


@app.get("/api/stats/weekly-hourly")
def stats_weekly_hourly(days: Optional[int] = None) -> JSONResponse:
    return JSONResponse(_dump(get_reports().weekly_hourly(days=days)))


@app.get("/api/stats/count")
def stats_count() -> JSONResponse:
    return JSONResponse({"count": get_reports().record_count()})


# =============================================================================
# Queue Reports
# =============================================================================

@app.get("/api/queue/daily")
def queue_daily(days: Optional[int] = None) -> JSONResponse:
    return JSONResponse(_dump(get_reports().queue_daily(days=days)))


@app.get("/api/queue/history")
def queue_history(limit: Optional[int] = None) -> JSONResponse:
    return JSONResponse(_dump(get_reports().queue_history(limit=limit)))


@app.get("/api/queue/current")
def queue_current() -> JSONResponse:
    return JSONResponse(get_reports().current_queue().model_dump(mode="json"))


@app.get("/api/queue/stacks")
def queue_stacks(days: Optional[int] = None) -> JSONResponse:
    return JSONResponse(_dump(get_reports().queue_stacks(days=days)))


@app.get("/api/dashboard/current")
def dashboard_current(days: Optional[int] = None) -> JSONResponse:
    return JSONResponse(get_reports().dashboard(days=days).model_dump(mode="json"))


# =============================================================================
# WebSocket Endpoints
# =============================================================================

@app.websocket("/ws/status")
async def status_stream(websocket: WebSocket) -> None:
    """
    Push status changes to the client.

    Sends the latest reading on connect, then every status change. A
    heartbeat goes out when nothing changed for ``push_interval_seconds``.
    """
    await websocket.accept()
    logger.info("Client connected to /ws/status")

    broadcaster = get_broadcaster()
    if broadcaster is None:
        await websocket.close(code=1013)
        return

    queue = broadcaster.subscribe()
    disconnected = asyncio.create_task(_wait_for_disconnect(websocket))
    try:
        latest = await asyncio.to_thread(get_reports().latest_status)
        await websocket.send_json({"type": "snapshot", **latest.model_dump(mode="json")})

        while not _shutdown_flag:
            getter = asyncio.create_task(queue.get())
            done, _ = await asyncio.wait(
                {getter, disconnected},
                timeout=settings.server.push_interval_seconds,
                return_when=asyncio.FIRST_COMPLETED,
            )
            if getter in done:
                message = getter.result()
            else:
                getter.cancel()
                if disconnected in done:
                    break
                message = {"type": "heartbeat", "timestamp": int(time.time() * 1000)}
            await websocket.send_json(message)

    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.warning(f"WebSocket error: {e}")
    finally:
        disconnected.cancel()
        broadcaster.unsubscribe(queue)
        logger.info("Client disconnected from /ws/status")


async def _wait_for_disconnect(websocket: WebSocket) -> None:
    """Drain client messages until the client goes away."""
    while True:
        message = await websocket.receive()
        if message["type"] == "websocket.disconnect":
            return


# =============================================================================
# Main Entry Point
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    port = int(os.environ.get("PORT", settings.server.port))

    uvicorn.run(
        "queuewatch.main:app",
        host=settings.server.host,
        port=port,
        reload=False,
    )
