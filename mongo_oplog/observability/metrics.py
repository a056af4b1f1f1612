"""
Prometheus Metrics for oplog tailing
"""

import structlog
from prometheus_client import Counter, Gauge, start_http_server

logger = structlog.get_logger(__name__)

# Counters
operations_total = Counter(
    "oplog_operations_total",
    "Total operations decoded from the oplog",
    ["kind"],
)

decode_errors_total = Counter(
    "oplog_decode_errors_total",
    "Total oplog entries that failed to decode",
    ["error_type"],
)

cursor_exhausted_total = Counter(
    "oplog_cursor_exhausted_total",
    "Times the tailable cursor reached the end of the oplog",
)

cursor_failures_total = Counter(
    "oplog_cursor_failures_total",
    "Total fatal cursor failures",
    ["error_type"],
)

# Gauges
open_cursors = Gauge("oplog_open_cursors", "Tailable cursors currently open")

last_timestamp_seconds = Gauge(
    "oplog_last_timestamp_seconds",
    "Seconds part of the timestamp of the last decoded operation",
)


def start_metrics_server(port: int = 9090) -> None:
    """
    Start Prometheus metrics HTTP server

    Args:
        port: HTTP port to expose /metrics endpoint (default 9090)
    """
    start_http_server(port)
    logger.info("Prometheus metrics server started", port=port)


def increment_operations(kind: str, count: int = 1) -> None:
    """Increment decoded operations counter"""
    operations_total.labels(kind=kind).inc(count)


def increment_decode_errors(error_type: str, count: int = 1) -> None:
    """Increment decode error counter"""
    decode_errors_total.labels(error_type=error_type).inc(count)


def increment_exhausted() -> None:
    cursor_exhausted_total.inc()


def increment_cursor_failures(error_type: str) -> None:
    cursor_failures_total.labels(error_type=error_type).inc()


def cursor_opened() -> None:
    open_cursors.inc()


def cursor_closed() -> None:
    open_cursors.dec()


def set_last_timestamp(seconds: int) -> None:
    last_timestamp_seconds.set(seconds)
