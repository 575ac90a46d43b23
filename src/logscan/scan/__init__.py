"""Bounded-concurrency fetch-and-scan of log artifacts."""

from logscan.scan.gate import ConcurrencyGate
from logscan.scan.models import ScanOutcome, ScanStatus
from logscan.scan.orchestrator import ScanOrchestrator, ScanStats
from logscan.scan.scanner import LogScanner

__all__ = [
    "ConcurrencyGate",
    "LogScanner",
    "ScanOrchestrator",
    "ScanOutcome",
    "ScanStats",
    "ScanStatus",
]
