"""
Interval-driven sample cycles using asyncio.

This module implements the SampleScheduler class that:
- Runs one sample cycle immediately on start
- Runs a background asyncio task repeating the cycle at a fixed interval
- Persists the store after every cycle and once more on stop
- Refreshes the statistics gauges after every cycle

A sample cycle reads the host, records the readings into the MetricStore and
saves the snapshot. Cycles may also be triggered ad hoc (the HTTP endpoint
does so after a deployment update), so overlapping cycles are expected; the
store serializes its own mutations.
"""

from __future__ import annotations

import asyncio
import contextlib
import time
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any

from server_monitor.errors import FailedPreconditionError
from server_monitor.logging import get_logger
from server_monitor.metrics.gauges import StatisticsGauges
from server_monitor.metrics.persistence import SnapshotPersistence
from server_monitor.metrics.sampler import HostReading, HostSampler
from server_monitor.metrics.stats import format_percent
from server_monitor.metrics.store import MetricStore

logger = get_logger(__name__)

# =============================================================================
# Constants
# =============================================================================

DEFAULT_SAMPLING_INTERVAL = 60  # seconds
STOP_TIMEOUT = 10.0  # seconds


# =============================================================================
# Enums and Data Models
# =============================================================================


class SchedulerStatus(str, Enum):
    """Status of the sample scheduler."""

    STOPPED = "stopped"
    RUNNING = "running"
    STOPPING = "stopping"


@dataclass
class SchedulerState:
    """
    Current state of the sample scheduler.

    Attributes:
        status: Current scheduler status.
        interval_seconds: Time between timer-driven cycles.
        started_at: When the scheduler was started.
        last_cycle_at: When the last cycle completed.
        cycle_count: Number of completed cycles.
        error_count: Number of cycles that raised unexpectedly.
        last_error: Last unexpected error message if any.
    """

    status: SchedulerStatus = SchedulerStatus.STOPPED
    interval_seconds: int = DEFAULT_SAMPLING_INTERVAL
    started_at: datetime | None = None
    last_cycle_at: datetime | None = None
    cycle_count: int = 0
    error_count: int = 0
    last_error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "status": self.status.value,
            "interval_seconds": self.interval_seconds,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "last_cycle_at": (
                self.last_cycle_at.isoformat() if self.last_cycle_at else None
            ),
            "cycle_count": self.cycle_count,
            "error_count": self.error_count,
            "last_error": self.last_error,
        }


def now_ms() -> int:
    """Current wall-clock time in milliseconds since the epoch."""
    return int(time.time() * 1000)


# =============================================================================
# SampleScheduler Class
# =============================================================================


class SampleScheduler:
    """
    Drives sample-and-persist cycles for one MetricStore.

    Example:
        >>> scheduler = SampleScheduler(store, HostSampler(), persistence)
        >>> await scheduler.start()
        >>> await scheduler.run_cycle()  # ad hoc cycle
        >>> await scheduler.stop()       # flushes the snapshot
    """

    def __init__(
        self,
        store: MetricStore,
        sampler: HostSampler,
        persistence: SnapshotPersistence,
        interval_seconds: int = DEFAULT_SAMPLING_INTERVAL,
        gauges: StatisticsGauges | None = None,
    ) -> None:
        """
        Initialize the SampleScheduler.

        Args:
            store: Store receiving the samples.
            sampler: Host adapter producing the readings.
            persistence: Snapshot writer invoked after every cycle.
            interval_seconds: Time between timer-driven cycles.
            gauges: Gauges refreshed with the statistics after every cycle.
        """
        self.store = store
        self._sampler = sampler
        self._persistence = persistence
        self._gauges = gauges
        self._state = SchedulerState(interval_seconds=interval_seconds)
        self._task: asyncio.Task[None] | None = None
        self._stop_event = asyncio.Event()
        self._lock = asyncio.Lock()

    @property
    def is_running(self) -> bool:
        """Check if the timer loop is currently running."""
        return self._state.status == SchedulerStatus.RUNNING

    def get_status(self) -> SchedulerState:
        """Return a copy of the current SchedulerState."""
        return SchedulerState(
            status=self._state.status,
            interval_seconds=self._state.interval_seconds,
            started_at=self._state.started_at,
            last_cycle_at=self._state.last_cycle_at,
            cycle_count=self._state.cycle_count,
            error_count=self._state.error_count,
            last_error=self._state.last_error,
        )

    async def run_cycle(self) -> bool:
        """
        Sample the host, record the readings and save the snapshot.

        Never raises: unexpected errors are logged and counted.

        Returns:
            True if the readings were recorded.
        """
        try:
            reading: HostReading = await asyncio.to_thread(self._sampler.sample)
            self.store.record_cycle(
                now_ms(),
                cpu=reading.cpu_percent,
                ram=reading.ram_percent,
                disk=reading.disk_percent,
                disk_capacity_gb=reading.disk_capacity_gb,
            )
            if self._gauges is not None:
                self._gauges.update(self.store.statistics())
        except Exception as e:
            self._state.error_count += 1
            self._state.last_error = str(e)
            logger.exception(
                "Error during sample cycle",
                extra={"error": str(e)},
            )
            return False

        # Save failures are logged by the persistence adapter; the next cycle retries
        await asyncio.to_thread(self._persistence.save, self.store)

        self._state.cycle_count += 1
        self._state.last_cycle_at = datetime.now()
        logger.debug(
            f"Updated: CPU={format_percent(reading.cpu_percent)}, "
            f"RAM={format_percent(reading.ram_percent)}, "
            f"Disk={format_percent(reading.disk_percent)}",
            extra={"reading": reading.to_dict()},
        )
        return True

    async def start(self) -> SchedulerState:
        """
        Run one cycle immediately, then start the interval loop.

        Raises:
            FailedPreconditionError: If the scheduler is already running.
        """
        async with self._lock:
            if self._state.status == SchedulerStatus.RUNNING:
                raise FailedPreconditionError(
                    "Scheduler is already running",
                    details={"started_at": str(self._state.started_at)},
                )

            self._state.started_at = datetime.now()
            self._stop_event.clear()

            await self.run_cycle()

            self._task = asyncio.create_task(self._loop())
            self._state.status = SchedulerStatus.RUNNING

            logger.info(
                "Sample scheduler started",
                extra={"interval_seconds": self._state.interval_seconds},
            )
            return self.get_status()

    async def stop(self) -> SchedulerState:
        """
        Stop the interval loop and flush the store to the snapshot file.

        Safe to call when not running; the flush still happens.
        """
        async with self._lock:
            if self._state.status == SchedulerStatus.RUNNING:
                self._state.status = SchedulerStatus.STOPPING
                self._stop_event.set()

                if self._task:
                    try:
                        await asyncio.wait_for(self._task, timeout=STOP_TIMEOUT)
                    except TimeoutError:
                        logger.warning("Scheduler task did not stop gracefully, cancelling")
                        self._task.cancel()
                        with contextlib.suppress(asyncio.CancelledError):
                            await self._task
                    self._task = None

            self._state.status = SchedulerStatus.STOPPED

            await asyncio.to_thread(self._persistence.save, self.store)

            logger.info(
                "Sample scheduler stopped",
                extra={"cycle_count": self._state.cycle_count},
            )
            return self.get_status()

    async def _loop(self) -> None:
        """Repeat sample cycles until the stop event is set."""
        while not self._stop_event.is_set():
            try:
                await asyncio.wait_for(
                    self._stop_event.wait(),
                    timeout=float(self._state.interval_seconds),
                )
                break
            except TimeoutError:
                pass

            await self.run_cycle()
