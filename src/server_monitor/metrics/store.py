"""
Time-windowed in-memory metric store.

This module implements the MetricStore class that:
- Keeps one time-ordered MetricSeries per metric kind (CPU, RAM, disk)
- Evicts samples older than the retention window on every write
- Derives the disk growth rate (GB/hour) from consecutive disk samples
- Computes max/average/latest statistics on demand

All mutation goes through ``record``/``record_cycle``, which hold a lock
around "read previous disk sample, compute rate, append, purge" so the
growth rate stays consistent when the HTTP handler and the scheduler sample
at the same time.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass
from enum import Enum
from typing import Any

from server_monitor.errors import Outcome
from server_monitor.logging import get_logger
from server_monitor.metrics.stats import (
    DiskStatistics,
    StoreStatistics,
    UsageStatistics,
    series_avg,
    series_max,
)

logger = get_logger(__name__)

# =============================================================================
# Constants
# =============================================================================

MS_PER_HOUR = 3_600_000

DEFAULT_RETENTION_MS = MS_PER_HOUR
DEFAULT_SAMPLE_INTERVAL_MS = 60_000

# Returns the total capacity of the sampled volume in GB
CapacityProvider = Callable[[], Outcome[float]]


# =============================================================================
# Data Models
# =============================================================================


class MetricKind(str, Enum):
    """Kinds of metric kept by the store."""

    CPU = "cpu"
    RAM = "ram"
    DISK = "disk"


@dataclass(frozen=True)
class Sample:
    """A single timestamped reading.

    Attributes:
        timestamp: Milliseconds since the Unix epoch.
        value: The reading (a percentage for every kind in this store).
    """

    timestamp: int
    value: float

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {"timestamp": self.timestamp, "value": self.value}


class MetricSeries:
    """Insertion-ordered sequence of samples for one metric kind."""

    def __init__(self, samples: Iterable[Sample] | None = None) -> None:
        self._samples: list[Sample] = list(samples) if samples is not None else []

    def __len__(self) -> int:
        return len(self._samples)

    def __iter__(self) -> Iterator[Sample]:
        return iter(self._samples)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, MetricSeries):
            return NotImplemented
        return self._samples == other._samples

    def __repr__(self) -> str:
        return f"MetricSeries({self._samples!r})"

    @property
    def latest(self) -> Sample | None:
        """Most recently appended sample, or None when empty."""
        return self._samples[-1] if self._samples else None

    def values(self) -> list[float]:
        return [s.value for s in self._samples]

    def append(self, sample: Sample) -> None:
        self._samples.append(sample)

    def purge(self, cutoff: int) -> int:
        """
        Drop samples with ``timestamp < cutoff``.

        Returns:
            Number of samples removed.
        """
        kept = [s for s in self._samples if s.timestamp >= cutoff]
        removed = len(self._samples) - len(kept)
        self._samples = kept
        return removed

    def to_list(self) -> list[dict[str, Any]]:
        return [s.to_dict() for s in self._samples]


# =============================================================================
# MetricStore Class
# =============================================================================


class MetricStore:
    """
    Rolling window of CPU, RAM and disk samples plus the disk growth rate.

    The store is created once per process and passed explicitly to the
    scheduler, the persistence adapter and the HTTP app.

    Example:
        >>> store = MetricStore(retention_ms=3_600_000)
        >>> store.record(MetricKind.CPU, 0, 20.0)
        >>> store.record(MetricKind.CPU, 30_000, 80.0)
        >>> store.statistics().cpu.to_dict()["max"]
        '80%'
    """

    def __init__(
        self,
        retention_ms: int = DEFAULT_RETENTION_MS,
        capacity_provider: CapacityProvider | None = None,
        *,
        cpu: Iterable[Sample] | None = None,
        ram: Iterable[Sample] | None = None,
        disk: Iterable[Sample] | None = None,
        disk_growth: float = 0.0,
    ) -> None:
        """
        Initialize the MetricStore.

        Args:
            retention_ms: Width of the rolling window in milliseconds.
            capacity_provider: Callable returning the disk capacity in GB,
                consulted when a disk sample needs a growth rate and no
                explicit capacity is passed to ``record``.
            cpu: Initial CPU samples.
            ram: Initial RAM samples.
            disk: Initial disk samples.
            disk_growth: Initial disk growth rate in GB/hour.
        """
        self.retention_ms = retention_ms
        self._capacity_provider = capacity_provider
        self.cpu = MetricSeries(cpu)
        self.ram = MetricSeries(ram)
        self.disk = MetricSeries(disk)
        self._disk_growth = float(disk_growth)
        self._lock = threading.Lock()

    @property
    def disk_growth(self) -> float:
        """Last computed disk growth rate in GB/hour."""
        return self._disk_growth

    def series(self, kind: MetricKind) -> MetricSeries:
        """Return the series holding samples of ``kind``."""
        if kind is MetricKind.CPU:
            return self.cpu
        if kind is MetricKind.RAM:
            return self.ram
        return self.disk

    # -------------------------------------------------------------------------
    # Mutation
    # -------------------------------------------------------------------------

    def record(
        self,
        kind: MetricKind,
        timestamp: int,
        value: float,
        disk_capacity_gb: float | None = None,
    ) -> None:
        """
        Append a sample and evict everything older than the window.

        For disk samples the growth rate is recomputed against the previous
        disk sample first, as long as time has moved forward since it.

        Args:
            kind: Metric kind of the sample.
            timestamp: Sample time in ms; also the reference "now" for eviction.
            value: Sample value. Not validated.
            disk_capacity_gb: Volume capacity for the growth rate. When None
                the capacity provider is asked instead.
        """
        with self._lock:
            self._append(kind, timestamp, value, disk_capacity_gb)
            self._purge(timestamp)

    def record_cycle(
        self,
        timestamp: int,
        cpu: float,
        ram: float,
        disk: float,
        disk_capacity_gb: float | None = None,
    ) -> None:
        """Record one reading of every kind taken at the same instant."""
        with self._lock:
            self._append(MetricKind.CPU, timestamp, cpu, None)
            self._append(MetricKind.RAM, timestamp, ram, None)
            self._append(MetricKind.DISK, timestamp, disk, disk_capacity_gb)
            self._purge(timestamp)

    def purge(self, now: int) -> int:
        """
        Evict samples older than ``now - retention_ms`` from all series.

        Returns:
            Total number of samples removed.
        """
        with self._lock:
            return self._purge(now)

    def _append(
        self,
        kind: MetricKind,
        timestamp: int,
        value: float,
        disk_capacity_gb: float | None,
    ) -> None:
        if kind is MetricKind.DISK:
            self._update_disk_growth(timestamp, value, disk_capacity_gb)
        self.series(kind).append(Sample(timestamp=timestamp, value=float(value)))

    def _update_disk_growth(
        self,
        timestamp: int,
        value: float,
        disk_capacity_gb: float | None,
    ) -> None:
        last = self.disk.latest
        if last is None:
            return

        elapsed_hours = (timestamp - last.timestamp) / MS_PER_HOUR
        if elapsed_hours <= 0:
            # Back-to-back samples: keep the previous rate
            return

        percent_delta = value - last.value
        capacity_gb = (
            disk_capacity_gb
            if disk_capacity_gb is not None
            else self._read_capacity()
        )
        self._disk_growth = (percent_delta / 100) * capacity_gb / elapsed_hours

    def _read_capacity(self) -> float:
        if self._capacity_provider is None:
            return 0.0
        outcome = self._capacity_provider()
        if not outcome.ok:
            logger.warning(
                "Disk capacity unavailable, growth rate computed as zero",
                extra={"error": outcome.error.message if outcome.error else None},
            )
        return outcome.unwrap_or(0.0)

    def _purge(self, now: int) -> int:
        cutoff = now - self.retention_ms
        removed = (
            self.cpu.purge(cutoff) + self.ram.purge(cutoff) + self.disk.purge(cutoff)
        )
        if removed:
            logger.debug(
                "Evicted stale samples",
                extra={"count": removed, "cutoff": cutoff},
            )
        return removed

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def statistics(self) -> StoreStatistics:
        """
        Compute summary statistics of the current window.

        Empty series report zeros everywhere, including a latest timestamp of
        0 which callers treat as "no data".
        """
        with self._lock:
            return StoreStatistics(
                cpu=self._usage(self.cpu),
                ram=self._usage(self.ram),
                disk=DiskStatistics(
                    current=self.disk.latest.value if self.disk.latest else 0.0,
                    growth_gb_per_hour=self._disk_growth,
                    count=len(self.disk),
                    latest_timestamp=self._latest_timestamp(self.disk),
                ),
            )

    @staticmethod
    def _usage(series: MetricSeries) -> UsageStatistics:
        values = series.values()
        return UsageStatistics(
            max_value=series_max(values),
            avg_value=series_avg(values),
            count=len(values),
            latest_timestamp=MetricStore._latest_timestamp(series),
        )

    @staticmethod
    def _latest_timestamp(series: MetricSeries) -> int:
        return series.latest.timestamp if series.latest else 0

    def to_dict(self) -> dict[str, Any]:
        """
        Serialize the full state in the snapshot file layout.

        Returns:
            Dictionary with ``cpu``, ``ram``, ``disk`` sample lists and
            ``diskGrowth``.
        """
        with self._lock:
            return {
                "cpu": self.cpu.to_list(),
                "ram": self.ram.to_list(),
                "disk": self.disk.to_list(),
                "diskGrowth": self._disk_growth,
            }
