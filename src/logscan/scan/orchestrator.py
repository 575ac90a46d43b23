"""
Scan orchestration.

Pulls URIs from the decoded query result, admits each one through the
ConcurrencyGate and runs an isolated scan task per URI. Reports progress
every N dispatched scans and waits for every dispatched task before
returning, whether the URI stream ended, failed or was interrupted.
"""

import asyncio
import logging
import time
from collections.abc import AsyncIterable, AsyncIterator, Callable, Iterable
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any

from core.errors.exceptions import classify_exception
from logscan import metrics
from logscan.scan.gate import DEFAULT_CAPACITY, ConcurrencyGate
from logscan.scan.models import ScanOutcome, ScanStatus
from logscan.scan.scanner import LogScanner, describe

logger = logging.getLogger(__name__)

DEFAULT_TELEMETRY_INTERVAL = 100


@dataclass
class ScanStats:
    """Run counters. Only touched from the event loop thread."""

    started: int = 0
    completed: int = 0
    cancelled: int = 0
    outcomes: dict[ScanStatus, int] = field(default_factory=lambda: {s: 0 for s in ScanStatus})
    start_time: float = field(default_factory=time.perf_counter)
    end_time: float | None = None
    interrupted: bool = False

    def record_start(self) -> int:
        self.started += 1
        return self.started

    def record(self, outcome: ScanOutcome) -> None:
        self.completed += 1
        self.outcomes[outcome.status] += 1

    @property
    def elapsed(self) -> timedelta:
        end = self.end_time if self.end_time is not None else time.perf_counter()
        return timedelta(seconds=end - self.start_time)

    @property
    def average_per_scan(self) -> timedelta:
        if self.started == 0:
            return timedelta(0)
        return self.elapsed / self.started

    @property
    def matched(self) -> int:
        return self.outcomes[ScanStatus.MATCHED]

    @property
    def failed(self) -> int:
        return self.outcomes[ScanStatus.FETCH_ERROR]

    @property
    def skipped(self) -> int:
        return (
            self.outcomes[ScanStatus.SKIPPED_MALFORMED_URI]
            + self.outcomes[ScanStatus.SKIPPED_TOO_LARGE]
        )

    def as_log_extra(self) -> dict[str, Any]:
        return {
            "scans_started": self.started,
            "scans_completed": self.completed,
            "scans_matched": self.matched,
            "scans_failed": self.failed,
            "scans_skipped": self.skipped,
            "scans_cancelled": self.cancelled,
            "elapsed_seconds": round(self.elapsed.total_seconds(), 3),
            "avg_seconds_per_scan": round(self.average_per_scan.total_seconds(), 6),
        }


async def _as_async(uris: AsyncIterable[Any] | Iterable[Any]) -> AsyncIterator[Any]:
    if isinstance(uris, AsyncIterable):
        async for uri in uris:
            yield uri
    else:
        for uri in uris:
            yield uri


class ScanOrchestrator:
    """
    Bounded fan-out of scan tasks over a lazy URI sequence.

    Example:
        scanner = LogScanner(session, pattern="No space left on device")
        orchestrator = ScanOrchestrator(scanner, capacity=50)
        stats = await orchestrator.run(decoder.adecode(frames))
    """

    def __init__(
        self,
        scanner: LogScanner,
        gate: ConcurrencyGate | None = None,
        capacity: int = DEFAULT_CAPACITY,
        telemetry_interval: int = DEFAULT_TELEMETRY_INTERVAL,
        on_outcome: Callable[[ScanOutcome], None] | None = None,
    ):
        if telemetry_interval < 1:
            raise ValueError(f"telemetry_interval must be at least 1, got {telemetry_interval}")
        self.scanner = scanner
        self.gate = gate or ConcurrencyGate(capacity)
        self.telemetry_interval = telemetry_interval
        self.on_outcome = on_outcome
        self.stats = ScanStats()
        self._tasks: set[asyncio.Task] = set()
        self._producer: asyncio.Task | None = None
        self._shutdown_event = asyncio.Event()

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    @property
    def is_stopping(self) -> bool:
        return self._shutdown_event.is_set()

    async def run(self, uris: AsyncIterable[Any] | Iterable[Any]) -> ScanStats:
        """
        Scan every URI in the sequence.

        Returns once every dispatched scan has finished. A failure of the URI
        sequence itself (e.g. DecodeError) is re-raised after the barrier.
        """
        self.stats = ScanStats()
        self._producer = asyncio.create_task(self._produce(uris), name="scan-producer")

        try:
            await self._producer
        except asyncio.CancelledError:
            if asyncio.current_task().cancelling() or not self._shutdown_event.is_set():
                # run() itself was cancelled, not just the producer via stop()
                self._cancel_in_flight()
                await self._wait_for_in_flight()
                raise
            self.stats.interrupted = True
        except Exception as e:
            logger.error(
                "URI stream failed, waiting for in-flight scans",
                extra={"in_flight": self.in_flight, "error": str(e)[:200]},
            )
            await self._wait_for_in_flight()
            self._finish()
            raise
        except BaseException:
            self._cancel_in_flight()
            await self._wait_for_in_flight()
            raise
        finally:
            self._producer = None

        await self._wait_for_in_flight()
        self._finish()
        return self.stats

    def stop(self) -> None:
        """Stop admitting URIs and cancel in-flight scans. Safe to call repeatedly."""
        if self._shutdown_event.is_set():
            return
        self._shutdown_event.set()
        self.stats.interrupted = True
        logger.info("Shutdown requested, cancelling scans", extra={"in_flight": self.in_flight})
        if self._producer is not None:
            self._producer.cancel()
        self._cancel_in_flight()

    async def _produce(self, uris: AsyncIterable[Any] | Iterable[Any]) -> None:
        async for uri in _as_async(uris):
            if self._shutdown_event.is_set():
                break
            metrics.uris_decoded_counter.inc()

            # Backpressure: suspends while the gate is full
            await self.gate.acquire()
            if self._shutdown_event.is_set():
                self.gate.release()
                break
            self._dispatch(uri)

    def _dispatch(self, uri: Any) -> None:
        number = self.stats.record_start()
        metrics.scans_started_counter.inc()
        metrics.scans_in_flight_gauge.inc()

        task = asyncio.create_task(self._scan_one(uri), name=f"scan-{number}")
        self._tasks.add(task)
        # Runs on every exit path, including a task cancelled before its first step
        task.add_done_callback(self._on_task_done)

        if number % self.telemetry_interval == 0:
            self._log_progress(number)

    def _on_task_done(self, task: asyncio.Task) -> None:
        """Hand back the gate slot the producer acquired for this task."""
        self._tasks.discard(task)
        self.gate.release()
        metrics.scans_in_flight_gauge.dec()
        if task.cancelled():
            self.stats.cancelled += 1

    async def _scan_one(self, uri: Any) -> ScanOutcome:
        """Run one scan. Any failure becomes a FETCH_ERROR outcome."""
        start_time = time.perf_counter()
        try:
            outcome = await self.scanner.scan(uri)
        except Exception as e:
            logger.warning(
                "Unexpected error during scan",
                extra={"url": uri if isinstance(uri, str) else None, "error": str(e)[:200]},
                exc_info=True,
            )
            outcome = ScanOutcome.fetch_error(
                uri,
                error_message=f"Unexpected error: {type(e).__name__}: {e}",
                error_category=classify_exception(e),
            )
            outcome.duration_seconds = time.perf_counter() - start_time

        self._record(outcome)
        return outcome

    def _record(self, outcome: ScanOutcome) -> None:
        self.stats.record(outcome)
        metrics.scan_outcomes_counter.labels(outcome=outcome.status.value).inc()
        metrics.scan_duration_seconds.observe(outcome.duration_seconds)

        if outcome.status is ScanStatus.FETCH_ERROR:
            logger.debug(
                describe(outcome),
                extra={
                    "url": outcome.uri,
                    "status_code": outcome.status_code,
                    "error_category": outcome.error_category,
                },
            )

        if self.on_outcome is not None:
            self.on_outcome(outcome)

    def _log_progress(self, number: int) -> None:
        elapsed = self.stats.elapsed
        logger.info(
            f"Scanned {number} in {elapsed} ({elapsed / number} per item)",
            extra={**self.stats.as_log_extra(), "in_flight": self.gate.outstanding},
        )

    def _cancel_in_flight(self) -> None:
        for task in list(self._tasks):
            task.cancel()

    async def _wait_for_in_flight(self) -> None:
        if not self._tasks:
            return
        logger.debug("Waiting for in-flight scans", extra={"in_flight": len(self._tasks)})
        await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _finish(self) -> None:
        self.stats.end_time = time.perf_counter()
        logger.info(
            "Scan interrupted" if self.stats.interrupted else "Scan complete",
            extra=self.stats.as_log_extra(),
        )


__all__ = ["DEFAULT_TELEMETRY_INTERVAL", "ScanStats", "ScanOrchestrator"]
