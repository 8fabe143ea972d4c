"""
Process entry point: ``python -m server_monitor`` or ``server-monitor``.

Loads the configuration, restores the metric snapshot, wires the store,
sampler, scheduler and update checker into the FastAPI app and serves it with
uvicorn. uvicorn turns SIGINT/SIGTERM into a graceful shutdown, which runs the
app lifespan and flushes the store to the snapshot file.
"""

from __future__ import annotations

import sys
from dataclasses import dataclass

import uvicorn
import yaml
from fastapi import FastAPI
from pydantic import ValidationError

from server_monitor.config import AppConfig, load_config
from server_monitor.errors import ConfigurationError
from server_monitor.logging import get_logger, setup_logging
from server_monitor.metrics.gauges import StatisticsGauges
from server_monitor.metrics.persistence import SnapshotPersistence
from server_monitor.metrics.sampler import HostSampler
from server_monitor.metrics.scheduler import SampleScheduler
from server_monitor.metrics.store import MetricStore
from server_monitor.server import create_app
from server_monitor.updates.git_checker import GitUpdateChecker

logger = get_logger(__name__)


@dataclass
class Components:
    """The process-wide collaborators, owned by the entry point."""

    store: MetricStore
    sampler: HostSampler
    persistence: SnapshotPersistence
    scheduler: SampleScheduler
    checker: GitUpdateChecker
    gauges: StatisticsGauges


def build_components(config: AppConfig) -> Components:
    """Create every collaborator and restore the store from its snapshot."""
    sampler = HostSampler(disk_path=config.metrics.disk_path)
    persistence = SnapshotPersistence(
        config.metrics.data_file,
        retention_ms=config.metrics.retention_ms,
        capacity_provider=sampler.sample_disk_capacity_gb,
    )
    store = persistence.load_or_empty()
    gauges = StatisticsGauges()
    gauges.update(store.statistics())
    scheduler = SampleScheduler(
        store,
        sampler,
        persistence,
        interval_seconds=config.metrics.sampling_interval_seconds,
        gauges=gauges,
    )
    checker = GitUpdateChecker(
        config.updates.repo_path,
        config.updates.log_file,
        remote=config.updates.remote,
        min_interval_seconds=config.updates.min_check_interval_seconds,
        git_timeout=config.updates.git_timeout_seconds,
        enabled=config.updates.enabled,
    )
    return Components(
        store=store,
        sampler=sampler,
        persistence=persistence,
        scheduler=scheduler,
        checker=checker,
        gauges=gauges,
    )


def build_app(config: AppConfig, components: Components | None = None) -> FastAPI:
    if components is None:
        components = build_components(config)
    return create_app(
        config,
        components.store,
        components.scheduler,
        components.checker,
    )


def _load(argv: list[str] | None) -> AppConfig:
    try:
        return load_config(cli_args=argv)
    except (FileNotFoundError, yaml.YAMLError, ValidationError) as e:
        raise ConfigurationError(
            f"Invalid configuration: {e}",
            details={"exception": type(e).__name__},
        ) from e


def main(argv: list[str] | None = None) -> int:
    """Run the server until it is signalled to stop."""
    try:
        config = _load(argv)
    except ConfigurationError as e:
        setup_logging()
        logger.error(e.message, extra={"error_code": e.error_code, "details": e.details})
        return 2

    setup_logging(config.logging)
    components = build_components(config)
    app = build_app(config, components)
    if config.metrics.gauges_port is not None:
        components.gauges.serve(config.metrics.gauges_port, addr=config.server.host)

    logger.info(
        "Starting server monitor",
        extra={
            "url": f"http://{config.server.host}:{config.server.port}{config.server.path}",
            "data_file": config.metrics.data_file,
        },
    )
    uvicorn.run(
        app,
        host=config.server.host,
        port=config.server.port,
        log_level=config.server.log_level,
        log_config=None,
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
