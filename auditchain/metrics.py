"""
Prometheus metrics for the audit chain.

Audit appends are best-effort with respect to the host system, so that
policy itself has to be monitored: alert on auditchain_append_failures_total.

Environment Variables:
    METRICS_ENABLED: Enable metrics server (true/false) - default: false
    METRICS_PORT: HTTP port for /metrics endpoint - default: 9108

Usage:
    from auditchain.metrics import start_metrics_server, track_append_failure

    start_metrics_server(enabled=True, port=9108)
    track_append_failure("queue_full")
"""

import logging
import threading
from contextlib import contextmanager
from typing import Generator

from prometheus_client import Counter, Gauge, Histogram, start_http_server

logger = logging.getLogger(__name__)

APPENDS_TOTAL: "Counter" = None  # type: ignore
APPEND_FAILURES_TOTAL: "Counter" = None  # type: ignore
VERIFY_DURATION: "Histogram" = None  # type: ignore
TAMPERED_ENTRIES: "Gauge" = None  # type: ignore
CHECKPOINT_VERIFY_FAILURES: "Counter" = None  # type: ignore

_metrics_initialized = False
_metrics_lock = threading.Lock()


def init_metrics() -> None:
    """
    Register metrics with the default registry (idempotent, thread-safe).

    Tracking helpers are no-ops until this has been called, so library code
    can record unconditionally.
    """
    global APPENDS_TOTAL, APPEND_FAILURES_TOTAL, VERIFY_DURATION
    global TAMPERED_ENTRIES, CHECKPOINT_VERIFY_FAILURES, _metrics_initialized

    with _metrics_lock:
        if _metrics_initialized:
            return

        APPENDS_TOTAL = Counter(
            "auditchain_appends_total",
            "Audit entries committed to the log",
            labelnames=["action_prefix"],
        )
        APPEND_FAILURES_TOTAL = Counter(
            "auditchain_append_failures_total",
            "Audit events dropped or rejected before commit",
            labelnames=["reason"],
        )
        VERIFY_DURATION = Histogram(
            "auditchain_verify_duration_seconds",
            "Duration of full hash chain verification in seconds",
            buckets=(0.1, 0.5, 1.0, 5.0, 10.0, 30.0, 60.0, 300.0),
        )
        TAMPERED_ENTRIES = Gauge(
            "auditchain_tampered_entries",
            "Entries flagged by the most recent chain verification",
        )
        CHECKPOINT_VERIFY_FAILURES = Counter(
            "auditchain_checkpoint_verify_failures_total",
            "Anchor checkpoints that failed verification",
        )

        _metrics_initialized = True
        logger.info("Prometheus metrics initialized")


def start_metrics_server(enabled: bool, port: int) -> None:
    """
    Start the /metrics HTTP endpoint in a daemon thread.

    Args:
        enabled: Whether to start the server (METRICS_ENABLED)
        port: Listen port (METRICS_PORT)
    """
    if not enabled:
        logger.info("Metrics server disabled (METRICS_ENABLED=false)")
        return

    init_metrics()
    try:
        start_http_server(port, addr="0.0.0.0")
        logger.info("Metrics server started on http://0.0.0.0:%d/metrics", port)
    except OSError as e:
        logger.error("Failed to start metrics server on port %d: %s", port, e)


def track_append(action: str) -> None:
    if APPENDS_TOTAL is not None:
        APPENDS_TOTAL.labels(action_prefix=action.split(".", 1)[0]).inc()


def track_append_failure(reason: str) -> None:
    """
    Count an event that did not reach the log.

    Args:
        reason: storage, queue_full, closed or invalid
    """
    if APPEND_FAILURES_TOTAL is not None:
        APPEND_FAILURES_TOTAL.labels(reason=reason).inc()


@contextmanager
def track_verify_duration() -> Generator[None, None, None]:
    if VERIFY_DURATION is None:
        yield
        return

    with VERIFY_DURATION.time():
        yield


def set_tampered_entries(count: int) -> None:
    if TAMPERED_ENTRIES is not None:
        TAMPERED_ENTRIES.set(count)


def track_checkpoint_verify_failure() -> None:
    if CHECKPOINT_VERIFY_FAILURES is not None:
        CHECKPOINT_VERIFY_FAILURES.inc()
