"""
Host sampler adapter built on psutil.

This module implements the HostSampler class that reads:
- CPU utilization as a delta of per-CPU tick counters between calls
- RAM utilization as (total - free) / total
- Disk utilization and capacity of one mount point

Every read returns an Outcome instead of raising, so the sample cycle can
substitute 0 for a failed reading and carry on.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Any

import psutil

from server_monitor.errors import Outcome, SamplingError
from server_monitor.logging import get_logger

logger = get_logger(__name__)

BYTES_PER_GB = 1024**3


@dataclass(frozen=True)
class CpuTicks:
    """Raw idle and total tick counters of one CPU."""

    idle: float
    total: float


@dataclass(frozen=True)
class HostReading:
    """One reading of every metric, failed reads already replaced by 0.

    Attributes:
        cpu_percent: CPU utilization since the previous reading.
        ram_percent: RAM utilization.
        disk_percent: Utilization of the sampled volume.
        disk_capacity_gb: Total size of the sampled volume.
        errors: Names of the reads that failed.
    """

    cpu_percent: float
    ram_percent: float
    disk_percent: float
    disk_capacity_gb: float
    errors: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        return {
            "cpu_percent": self.cpu_percent,
            "ram_percent": self.ram_percent,
            "disk_percent": self.disk_percent,
            "disk_capacity_gb": self.disk_capacity_gb,
            "errors": list(self.errors),
        }


def _total_ticks(times: Any) -> float:
    # Linux counts guest time inside user and guest_nice inside nice
    total = sum(times)
    return total - getattr(times, "guest", 0.0) - getattr(times, "guest_nice", 0.0)


def _read_cpu_ticks() -> list[CpuTicks]:
    return [
        CpuTicks(idle=times.idle, total=_total_ticks(times))
        for times in psutil.cpu_times(percpu=True)
    ]


def cpu_percent_between(previous: list[CpuTicks], current: list[CpuTicks]) -> float:
    """
    Average per-CPU utilization between two tick snapshots.

    A CPU whose total tick count did not advance counts as 0% busy.
    """
    usages = []
    for before, after in zip(previous, current, strict=False):
        total_delta = after.total - before.total
        idle_delta = after.idle - before.idle
        usages.append(100 - idle_delta / total_delta * 100 if total_delta > 0 else 0.0)
    if not usages:
        return 0.0
    return sum(usages) / len(usages)


class HostSampler:
    """
    Reads CPU, RAM and disk utilization of the local host.

    The CPU reading is a delta: each call compares against the counters
    observed by the previous call (or at construction for the first call).

    Example:
        >>> sampler = HostSampler(disk_path="/")
        >>> reading = sampler.sample()
        >>> reading.disk_percent
        44.0
    """

    def __init__(self, disk_path: str = "/") -> None:
        """
        Initialize the HostSampler.

        Args:
            disk_path: Mount point whose utilization and capacity are read.
        """
        self.disk_path = disk_path
        self._cpu_lock = threading.Lock()
        try:
            self._last_cpu_ticks: list[CpuTicks] = _read_cpu_ticks()
        except (OSError, RuntimeError, psutil.Error) as e:
            logger.warning("Unable to read initial CPU counters", extra={"error": str(e)})
            self._last_cpu_ticks = []

    def sample_cpu_percent(self) -> Outcome[float]:
        """CPU utilization (0-100) since the previous call."""
        try:
            current = _read_cpu_ticks()
        except (OSError, RuntimeError, psutil.Error) as e:
            return Outcome.failure(
                SamplingError(f"Unable to read CPU counters: {e}", details={"metric": "cpu"})
            )
        with self._cpu_lock:
            previous = self._last_cpu_ticks
            self._last_cpu_ticks = current
        return Outcome.success(cpu_percent_between(previous, current))

    def sample_ram_percent(self) -> Outcome[float]:
        """RAM utilization (0-100) as (total - free) / total."""
        try:
            memory = psutil.virtual_memory()
        except (OSError, RuntimeError, psutil.Error) as e:
            return Outcome.failure(
                SamplingError(f"Unable to read memory usage: {e}", details={"metric": "ram"})
            )
        if memory.total <= 0:
            return Outcome.failure(
                SamplingError("Reported memory total is zero", details={"metric": "ram"})
            )
        return Outcome.success((memory.total - memory.free) / memory.total * 100)

    def sample_disk_percent(self) -> Outcome[float]:
        """Whole-percent utilization (0-100) of the sampled volume."""
        try:
            usage = psutil.disk_usage(self.disk_path)
        except (OSError, psutil.Error) as e:
            return Outcome.failure(
                SamplingError(
                    f"Unable to read disk usage: {e}",
                    details={"metric": "disk", "path": self.disk_path},
                )
            )
        # Whole percent, as reported by df
        return Outcome.success(float(int(usage.percent)))

    def sample_disk_capacity_gb(self) -> Outcome[float]:
        """Total capacity of the sampled volume in GB."""
        try:
            usage = psutil.disk_usage(self.disk_path)
        except (OSError, psutil.Error) as e:
            return Outcome.failure(
                SamplingError(
                    f"Unable to read disk capacity: {e}",
                    details={"metric": "disk_capacity", "path": self.disk_path},
                )
            )
        return Outcome.success(usage.total / BYTES_PER_GB)

    def sample(self) -> HostReading:
        """
        Read every metric, replacing failed reads with 0.

        Failures are logged individually and listed in ``HostReading.errors``.
        """
        readings = {
            "cpu": self.sample_cpu_percent(),
            "ram": self.sample_ram_percent(),
            "disk": self.sample_disk_percent(),
            "disk_capacity": self.sample_disk_capacity_gb(),
        }

        errors = []
        for name, outcome in readings.items():
            if not outcome.ok and outcome.error is not None:
                errors.append(name)
                logger.warning(
                    "Metric read failed, substituting 0",
                    extra={"metric": name, "error": outcome.error.message},
                )

        return HostReading(
            cpu_percent=readings["cpu"].unwrap_or(0.0),
            ram_percent=readings["ram"].unwrap_or(0.0),
            disk_percent=readings["disk"].unwrap_or(0.0),
            disk_capacity_gb=readings["disk_capacity"].unwrap_or(0.0),
            errors=tuple(errors),
        )
