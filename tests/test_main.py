"""
Tests for the process entry point.
"""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import patch

import pytest

from server_monitor.__main__ import build_app, build_components, main
from server_monitor.config import AppConfig, MetricsConfig, UpdatesConfig

# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def config(tmp_path: Path) -> AppConfig:
    """Configuration pointing every file into a temp directory."""
    return AppConfig(
        metrics=MetricsConfig(
            data_file=str(tmp_path / "data.json"),
            sampling_interval_seconds=30,
            retention_seconds=600,
        ),
        updates=UpdatesConfig(repo_path=str(tmp_path), enabled=False),
    )


# =============================================================================
# Tests for build_components
# =============================================================================


class TestBuildComponents:
    """Tests for wiring the collaborators."""

    def test_components_share_one_store(self, config: AppConfig) -> None:
        """Test that the scheduler samples into the served store."""
        components = build_components(config)

        assert components.scheduler.store is components.store
        assert components.store.retention_ms == 600_000
        assert components.scheduler.get_status().interval_seconds == 30
        assert components.checker.enabled is False
        components.checker.close()

    def test_gauges_reflect_restored_snapshot(
        self, config: AppConfig, tmp_path: Path
    ) -> None:
        """Test that the gauges start from the loaded statistics."""
        (tmp_path / "data.json").write_text(
            json.dumps({"cpu": [], "ram": [], "disk": [], "diskGrowth": 0.7})
        )

        components = build_components(config)

        assert (
            components.gauges.registry.get_sample_value(
                "server_monitor_disk_growth_gb_per_hour"
            )
            == 0.7
        )
        components.checker.close()

    def test_store_restored_from_snapshot(
        self, config: AppConfig, tmp_path: Path
    ) -> None:
        """Test that an existing snapshot is loaded at startup."""
        (tmp_path / "data.json").write_text(
            json.dumps({"cpu": [], "ram": [], "disk": [], "diskGrowth": 0.7})
        )

        components = build_components(config)

        assert components.store.disk_growth == 0.7
        components.checker.close()

    def test_build_app(self, config: AppConfig) -> None:
        """Test the app carries the wired store."""
        app = build_app(config)

        assert app.state.store is app.state.scheduler.store
        app.state.checker.close()


# =============================================================================
# Tests for main
# =============================================================================


class TestMain:
    """Tests for the main function."""

    def test_missing_config_file_exits_with_error(self, tmp_path: Path) -> None:
        """Test that an unreadable configuration returns exit code 2."""
        with patch("server_monitor.__main__.uvicorn.run") as run:
            code = main(["--config", str(tmp_path / "missing.yml")])

        assert code == 2
        run.assert_not_called()

    def test_invalid_config_value_exits_with_error(self, tmp_path: Path) -> None:
        """Test that a validation error returns exit code 2."""
        config_file = tmp_path / "config.yml"
        config_file.write_text("server:\n  port: 70000\n")

        with patch("server_monitor.__main__.uvicorn.run") as run:
            assert main(["--config", str(config_file)]) == 2
        run.assert_not_called()

    def test_main_runs_uvicorn(self, tmp_path: Path) -> None:
        """Test that a valid configuration starts the server."""
        config_file = tmp_path / "config.yml"
        config_file.write_text(
            "server:\n"
            "  port: 9100\n"
            "metrics:\n"
            f"  data_file: {tmp_path / 'data.json'}\n"
            "updates:\n"
            f"  repo_path: {tmp_path}\n"
            "  enabled: false\n"
        )

        with patch("server_monitor.__main__.uvicorn.run") as run:
            assert main(["--config", str(config_file)]) == 0

        run.assert_called_once()
        assert run.call_args.kwargs["port"] == 9100
        assert run.call_args.kwargs["host"] == "0.0.0.0"
        run.call_args.args[0].state.checker.close()

    def test_gauges_port_serves_gauges(self, tmp_path: Path) -> None:
        """Test that a configured gauges port starts the exporter."""
        config_file = tmp_path / "config.yml"
        config_file.write_text(
            "server:\n"
            "  host: 127.0.0.1\n"
            "metrics:\n"
            f"  data_file: {tmp_path / 'data.json'}\n"
            "  gauges_port: 9101\n"
            "updates:\n"
            f"  repo_path: {tmp_path}\n"
            "  enabled: false\n"
        )

        with (
            patch("server_monitor.__main__.uvicorn.run") as run,
            patch("server_monitor.metrics.gauges.start_http_server") as start,
        ):
            assert main(["--config", str(config_file)]) == 0

        start.assert_called_once()
        assert start.call_args.args[0] == 9101
        assert start.call_args.kwargs["addr"] == "127.0.0.1"
        run.call_args.args[0].state.checker.close()

    def test_gauges_disabled_by_default(self, tmp_path: Path) -> None:
        """Test that no exporter starts without a gauges port."""
        config_file = tmp_path / "config.yml"
        config_file.write_text(
            "metrics:\n"
            f"  data_file: {tmp_path / 'data.json'}\n"
            "updates:\n"
            f"  repo_path: {tmp_path}\n"
            "  enabled: false\n"
        )

        with (
            patch("server_monitor.__main__.uvicorn.run") as run,
            patch("server_monitor.metrics.gauges.start_http_server") as start,
        ):
            assert main(["--config", str(config_file)]) == 0

        start.assert_not_called()
        run.call_args.args[0].state.checker.close()
