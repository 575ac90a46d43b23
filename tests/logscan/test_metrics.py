"""Tests for the metrics server helper."""

import errno
from unittest.mock import patch

import pytest

from logscan import metrics


def test_preferred_port():
    with patch("logscan.metrics.start_http_server") as server:
        assert metrics.start_metrics_server(9090) == 9090

    server.assert_called_once_with(9090, registry=metrics.registry)


def test_falls_back_when_port_in_use():
    in_use = OSError(errno.EADDRINUSE, "Address already in use")

    with patch("logscan.metrics.start_http_server", side_effect=[in_use, None]) as server:
        port = metrics.start_metrics_server(9090)

    assert port != 9090
    assert server.call_count == 2
    assert server.call_args.args[0] == port


def test_other_os_errors_propagate():
    denied = OSError(errno.EACCES, "Permission denied")

    with patch("logscan.metrics.start_http_server", side_effect=denied):
        with pytest.raises(OSError):
            metrics.start_metrics_server(80)


def test_outcome_counter_labels():
    before = metrics.registry.get_sample_value(
        "logscan_scan_outcomes_total", {"outcome": "matched"}
    ) or 0

    metrics.scan_outcomes_counter.labels(outcome="matched").inc()

    after = metrics.registry.get_sample_value("logscan_scan_outcomes_total", {"outcome": "matched"})
    assert after == before + 1
