"""
Summary statistics and display formatting for the metric store.

Percentages are shown as rounded integers ("42%"). The disk growth rate is
shown in GB/hour with one decimal and an explicit sign ("+ 0.2 GB"), except
inside a +/-0.05 dead zone where it is shown as "±0 GB" to hide the noise of
minor filesystem fluctuations.
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

# Rates whose magnitude is below this threshold render as "±0 GB"
GROWTH_DEAD_ZONE_GB = 0.05

ZERO_GROWTH_LABEL = "±0 GB"


def round_int(n: float) -> int:
    """Round to the nearest integer, halves rounding up (2.5 -> 3, -2.5 -> -2)."""
    return math.floor(n + 0.5)


def round_one_decimal(n: float) -> float:
    """Round to one decimal place, halves rounding up (0.05 -> 0.1)."""
    return math.floor(n * 10 + 0.5) / 10


def format_percent(n: float) -> str:
    """Format a percentage as an integer followed by '%'."""
    return f"{round_int(n)}%"


def format_growth(n: float) -> str:
    """
    Format a disk growth rate in GB/hour.

    The dead zone is evaluated on the unrounded rate, so 0.049 renders as
    "±0 GB" while 0.05 renders as "+ 0.1 GB".

    Args:
        n: Growth rate in GB/hour.

    Returns:
        "±0 GB", "+ X.Y GB" or "- X.Y GB".
    """
    if abs(n) < GROWTH_DEAD_ZONE_GB:
        return ZERO_GROWTH_LABEL
    prefix = "+ " if n > 0 else "- "
    return f"{prefix}{round_one_decimal(abs(n)):.1f} GB"


def series_max(values: Sequence[float]) -> float:
    return max(values) if values else 0.0


def series_avg(values: Sequence[float]) -> float:
    return sum(values) / len(values) if values else 0.0


# =============================================================================
# Statistics Models
# =============================================================================


@dataclass(frozen=True)
class UsageStatistics:
    """Max/average summary of a percentage series (CPU or RAM).

    Attributes:
        max_value: Largest value in the window (0 when empty).
        avg_value: Arithmetic mean of the window (0 when empty).
        count: Number of samples in the window.
        latest_timestamp: Timestamp (ms) of the newest sample, 0 when empty.
    """

    max_value: float
    avg_value: float
    count: int
    latest_timestamp: int

    def to_dict(self) -> dict[str, Any]:
        """Render the display form used in the HTTP response."""
        return {
            "max": format_percent(self.max_value),
            "avg": format_percent(self.avg_value),
            "count": self.count,
            "timestamp": self.latest_timestamp,
        }


@dataclass(frozen=True)
class DiskStatistics:
    """Current utilization and growth rate of the sampled volume.

    Attributes:
        current: Most recent utilization percentage (0 when empty).
        growth_gb_per_hour: Last computed growth rate.
        count: Number of samples in the window.
        latest_timestamp: Timestamp (ms) of the newest sample, 0 when empty.
    """

    current: float
    growth_gb_per_hour: float
    count: int
    latest_timestamp: int

    def to_dict(self) -> dict[str, Any]:
        """Render the display form used in the HTTP response."""
        return {
            "current": format_percent(self.current),
            "growth": format_growth(self.growth_gb_per_hour),
            "count": self.count,
            "timestamp": self.latest_timestamp,
        }


@dataclass(frozen=True)
class StoreStatistics:
    """Statistics of all three series at one point in time."""

    cpu: UsageStatistics
    ram: UsageStatistics
    disk: DiskStatistics

    def to_dict(self) -> dict[str, Any]:
        """Render the JSON body served by the statistics endpoint."""
        return {
            "cpu": self.cpu.to_dict(),
            "ram": self.ram.to_dict(),
            "disk": self.disk.to_dict(),
        }
