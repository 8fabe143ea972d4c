"""
Metrics module for the server monitor.

Components:
- store: time-windowed MetricStore and growth-rate derivation
- stats: statistics models and display formatting
- persistence: JSON snapshot save/load
- sampler: psutil-based host adapter
- scheduler: asyncio interval loop driving sample cycles
- gauges: Prometheus gauges of the latest statistics
"""

from server_monitor.metrics.gauges import StatisticsGauges
from server_monitor.metrics.persistence import SnapshotPersistence
from server_monitor.metrics.sampler import HostReading, HostSampler
from server_monitor.metrics.scheduler import SampleScheduler
from server_monitor.metrics.stats import StoreStatistics
from server_monitor.metrics.store import MetricKind, MetricSeries, MetricStore, Sample

__all__ = [
    "HostReading",
    "HostSampler",
    "MetricKind",
    "MetricSeries",
    "MetricStore",
    "Sample",
    "SampleScheduler",
    "SnapshotPersistence",
    "StatisticsGauges",
    "StoreStatistics",
]
