"""Prometheus metrics for monitoring MatchMonkey"""

import logging
import time
from prometheus_client import Counter, Histogram, Gauge, start_http_server
from typing import Optional


logger = logging.getLogger(__name__)


# Metrics instances (initialized once)
_metrics_initialized = False
_metrics_server_started = False

# Counters
api_calls_total = None
cache_hits_total = None
pipeline_runs_total = None
tracks_matched_total = None
auto_triggers_total = None

# Histograms
api_latency_seconds = None

# Gauges
last_run_timestamp = None
last_run_duration_seconds = None


def init_metrics() -> None:
    """Initialize Prometheus metrics.

    This should be called once at application startup.
    """
    global _metrics_initialized
    global api_calls_total, cache_hits_total, pipeline_runs_total
    global tracks_matched_total, auto_triggers_total, api_latency_seconds
    global last_run_timestamp, last_run_duration_seconds

    if _metrics_initialized:
        return

    logger.info("Initializing Prometheus metrics")

    api_calls_total = Counter(
        'matchmonkey_api_calls_total',
        'Total number of outbound service calls',
        ['service', 'status']
    )

    cache_hits_total = Counter(
        'matchmonkey_cache_hits_total',
        'Service calls answered from the per-run cache',
        ['kind']
    )

    pipeline_runs_total = Counter(
        'matchmonkey_pipeline_runs_total',
        'Total number of pipeline runs',
        ['mode', 'trigger', 'outcome']
    )

    tracks_matched_total = Counter(
        'matchmonkey_tracks_matched_total',
        'Titles resolved against the catalog, by matcher pass',
        ['pass']
    )

    auto_triggers_total = Counter(
        'matchmonkey_auto_triggers_total',
        'Auto-mode trigger decisions',
        ['decision']
    )

    api_latency_seconds = Histogram(
        'matchmonkey_api_latency_seconds',
        'Service call latency in seconds',
        ['service'],
        buckets=(0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0)
    )

    last_run_timestamp = Gauge(
        'matchmonkey_last_run_timestamp',
        'Timestamp of last completed pipeline run'
    )

    last_run_duration_seconds = Gauge(
        'matchmonkey_last_run_duration_seconds',
        'Duration of last pipeline run in seconds'
    )

    _metrics_initialized = True
    logger.info("Prometheus metrics initialized")


def start_metrics_server(port: int = 9090) -> bool:
    """Start Prometheus metrics HTTP server.

    Args:
        port: Port to listen on (default: 9090)

    Returns:
        True if server started successfully
    """
    global _metrics_server_started

    if _metrics_server_started:
        logger.warning("Metrics server already started")
        return True

    try:
        start_http_server(port)
        _metrics_server_started = True
        logger.info(f"Prometheus metrics server started on port {port}")
        return True
    except OSError as e:
        logger.error(f"Failed to start metrics server: {e}")
        return False


def setup_metrics(enabled: bool = True, port: int = 9090) -> bool:
    """Initialize metrics and start the exporter.

    Args:
        enabled: Whether to collect and export metrics
        port: Port for metrics server

    Returns:
        True if the exporter is running
    """
    if not enabled:
        logger.info("Metrics collection disabled")
        return False

    init_metrics()
    return start_metrics_server(port)


def record_api_call(service: str, status: str, duration: Optional[float] = None) -> None:
    """Record an outbound service call.

    Args:
        service: Service family (lastfm, reccobeats, subsonic)
        status: success, error, throttled, not_found, timeout or circuit_open
        duration: Optional duration in seconds
    """
    if api_calls_total:
        api_calls_total.labels(service=service, status=status).inc()

    if duration and api_latency_seconds:
        api_latency_seconds.labels(service=service).observe(duration)


def record_cache_hit(kind: str = "hit") -> None:
    if cache_hits_total:
        cache_hits_total.labels(kind=kind).inc()


def record_match(pass_name: str) -> None:
    if tracks_matched_total:
        tracks_matched_total.labels(**{"pass": pass_name}).inc()


def record_auto_trigger(decision: str) -> None:
    if auto_triggers_total:
        auto_triggers_total.labels(decision=decision).inc()


def record_run_complete(mode: str, trigger: str, outcome: str, duration: float) -> None:
    """Record pipeline completion.

    Args:
        mode: Discovery mode
        trigger: manual or auto
        outcome: success, empty or error
        duration: Run duration in seconds
    """
    if pipeline_runs_total:
        pipeline_runs_total.labels(mode=mode, trigger=trigger, outcome=outcome).inc()
    if last_run_timestamp:
        last_run_timestamp.set(time.time())
    if last_run_duration_seconds:
        last_run_duration_seconds.set(duration)
