"""
Prometheus metrics for scan monitoring.

Focused on essential metrics:
- Scans started and their outcomes
- Scans in flight (gate occupancy)
- Per-scan duration
- URIs decoded from the query result

Metrics live in a dedicated registry and are only exposed over HTTP when
a metrics port is requested.
"""

import errno
import logging
import socket

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, start_http_server

logger = logging.getLogger(__name__)

registry = CollectorRegistry(auto_describe=True)

scans_started_counter = Counter(
    "logscan_scans_started_total",
    "Total number of scan tasks dispatched",
    registry=registry,
)

scan_outcomes_counter = Counter(
    "logscan_scan_outcomes_total",
    "Total scan outcomes by terminal state",
    labelnames=["outcome"],
    registry=registry,
)

scans_in_flight_gauge = Gauge(
    "logscan_scans_in_flight",
    "Scan tasks currently holding a gate slot",
    registry=registry,
)

scan_duration_seconds = Histogram(
    "logscan_scan_duration_seconds",
    "Time spent fetching and scanning one artifact",
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 300.0],
    registry=registry,
)

uris_decoded_counter = Counter(
    "logscan_uris_decoded_total",
    "Total URIs decoded from the query result",
    registry=registry,
)


def start_metrics_server(preferred_port: int) -> int:
    """Start the Prometheus metrics server with automatic port fallback.

    Returns the port the server is actually listening on.
    """
    try:
        start_http_server(preferred_port, registry=registry)
        return preferred_port
    except OSError as e:
        if e.errno != errno.EADDRINUSE:
            raise
        logger.info(
            "Port already in use, finding available port",
            extra={"preferred_port": preferred_port},
        )

    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("", 0))
        available_port = s.getsockname()[1]

    start_http_server(available_port, registry=registry)
    return available_port


__all__ = [
    "registry",
    "scans_started_counter",
    "scan_outcomes_counter",
    "scans_in_flight_gauge",
    "scan_duration_seconds",
    "uris_decoded_counter",
    "start_metrics_server",
]
