"""
Live gauges of the rolling statistics, exported in the Prometheus format.

After every sample cycle the scheduler publishes six values: CPU max and
average, RAM max and average, the current disk utilization and the disk
growth rate. Percentages are published rounded to whole numbers and the
growth rate to one decimal, the same precision as the HTTP body.

Each StatisticsGauges owns its own CollectorRegistry, so several instances
(one per app, or one per test) never collide on metric names.
"""

from __future__ import annotations

from prometheus_client import CollectorRegistry, Gauge, generate_latest, start_http_server

from server_monitor.logging import get_logger
from server_monitor.metrics.stats import StoreStatistics, round_int, round_one_decimal

logger = get_logger(__name__)

METRIC_PREFIX = "server_monitor"


class StatisticsGauges:
    """
    Gauges mirroring the latest StoreStatistics.

    Example:
        >>> gauges = StatisticsGauges()
        >>> gauges.update(store.statistics())
        >>> gauges.render()
        b'# HELP server_monitor_cpu_max_percent ...'
    """

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        self.registry = registry if registry is not None else CollectorRegistry()

        self.cpu_max = Gauge(
            f"{METRIC_PREFIX}_cpu_max_percent",
            "Highest CPU utilization in the retention window",
            registry=self.registry,
        )
        self.cpu_avg = Gauge(
            f"{METRIC_PREFIX}_cpu_avg_percent",
            "Average CPU utilization in the retention window",
            registry=self.registry,
        )
        self.ram_max = Gauge(
            f"{METRIC_PREFIX}_ram_max_percent",
            "Highest RAM utilization in the retention window",
            registry=self.registry,
        )
        self.ram_avg = Gauge(
            f"{METRIC_PREFIX}_ram_avg_percent",
            "Average RAM utilization in the retention window",
            registry=self.registry,
        )
        self.disk_current = Gauge(
            f"{METRIC_PREFIX}_disk_percent",
            "Latest disk utilization of the sampled volume",
            registry=self.registry,
        )
        self.disk_growth = Gauge(
            f"{METRIC_PREFIX}_disk_growth_gb_per_hour",
            "Disk growth rate between the last two disk samples",
            registry=self.registry,
        )

    def update(self, stats: StoreStatistics) -> None:
        """Publish ``stats`` to every gauge."""
        self.cpu_max.set(round_int(stats.cpu.max_value))
        self.cpu_avg.set(round_int(stats.cpu.avg_value))
        self.ram_max.set(round_int(stats.ram.max_value))
        self.ram_avg.set(round_int(stats.ram.avg_value))
        self.disk_current.set(round_int(stats.disk.current))
        self.disk_growth.set(round_one_decimal(stats.disk.growth_gb_per_hour))

    def render(self) -> bytes:
        """Serialize the gauges in the Prometheus text exposition format."""
        return generate_latest(self.registry)

    def serve(self, port: int, addr: str = "0.0.0.0") -> None:
        """Expose the gauges on a dedicated HTTP port."""
        start_http_server(port, addr=addr, registry=self.registry)
        logger.info(
            "Serving statistics gauges",
            extra={"addr": addr, "port": port},
        )
