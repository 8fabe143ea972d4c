"""
Tests for snapshot persistence.

This test module validates:
- Saving and restoring a store through the JSON snapshot
- Retention applied when a snapshot is loaded
- Missing, corrupt and mismatched snapshot files
- Save failures reported as Outcomes
"""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import patch

import pytest

from server_monitor.errors import Outcome, PersistenceError, SamplingError
from server_monitor.metrics.persistence import SnapshotPersistence, SnapshotRecord
from server_monitor.metrics.store import MS_PER_HOUR, MetricKind, MetricStore

T0 = 1_700_000_000_000

# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def snapshot_path(tmp_path: Path) -> Path:
    """Path of the snapshot file inside a temp directory."""
    return tmp_path / "server-monitor-data.json"


@pytest.fixture
def persistence(snapshot_path: Path) -> SnapshotPersistence:
    """Persistence adapter writing to the temp snapshot path."""
    return SnapshotPersistence(snapshot_path)


def _write(path: Path, data: object) -> None:
    path.write_text(json.dumps(data), encoding="utf-8")


# =============================================================================
# Tests for save
# =============================================================================


class TestSave:
    """Tests for SnapshotPersistence.save."""

    def test_save_writes_snapshot_layout(
        self, persistence: SnapshotPersistence, snapshot_path: Path
    ) -> None:
        """Test the written file content."""
        store = MetricStore()
        store.record_cycle(T0, cpu=12.5, ram=50.0, disk=44.0)

        outcome = persistence.save(store)

        assert outcome.ok
        assert json.loads(snapshot_path.read_text()) == {
            "cpu": [{"timestamp": T0, "value": 12.5}],
            "ram": [{"timestamp": T0, "value": 50.0}],
            "disk": [{"timestamp": T0, "value": 44.0}],
            "diskGrowth": 0.0,
        }

    def test_save_leaves_no_temp_file(
        self, persistence: SnapshotPersistence, snapshot_path: Path
    ) -> None:
        """Test that the temp file is renamed into place."""
        persistence.save(MetricStore())

        assert [p.name for p in snapshot_path.parent.iterdir()] == [snapshot_path.name]

    def test_save_creates_parent_directories(self, tmp_path: Path) -> None:
        """Test saving into a directory that does not exist yet."""
        path = tmp_path / "var" / "lib" / "data.json"

        assert SnapshotPersistence(path).save(MetricStore()).ok
        assert path.exists()

    def test_save_failure_returns_outcome(
        self, persistence: SnapshotPersistence
    ) -> None:
        """Test that a write error is reported, not raised."""
        with patch("server_monitor.metrics.persistence.os.replace") as mock_replace:
            mock_replace.side_effect = PermissionError("read-only filesystem")
            outcome = persistence.save(MetricStore())

        assert not outcome.ok
        assert isinstance(outcome.error, PersistenceError)
        assert "read-only filesystem" in outcome.error.message

    def test_save_rejects_non_finite_values(
        self, persistence: SnapshotPersistence, snapshot_path: Path
    ) -> None:
        """Test that a NaN sample is never written to the snapshot."""
        store = MetricStore()
        store.record(MetricKind.CPU, T0, float("nan"))

        outcome = persistence.save(store)

        assert not outcome.ok
        assert isinstance(outcome.error, PersistenceError)
        assert not snapshot_path.exists()

    def test_save_overwrites_previous_snapshot(
        self, persistence: SnapshotPersistence, snapshot_path: Path
    ) -> None:
        """Test that each save replaces the file."""
        store = MetricStore()
        store.record(MetricKind.CPU, T0, 10.0)
        persistence.save(store)
        store.record(MetricKind.CPU, T0 + 1000, 20.0)
        persistence.save(store)

        assert len(json.loads(snapshot_path.read_text())["cpu"]) == 2


# =============================================================================
# Tests for load
# =============================================================================


class TestLoad:
    """Tests for SnapshotPersistence.load."""

    def test_round_trip(self, persistence: SnapshotPersistence) -> None:
        """Test that a saved store is restored unchanged."""
        store = MetricStore()
        store.record(MetricKind.DISK, T0, 40.0, disk_capacity_gb=100.0)
        store.record_cycle(T0 + 60_000, cpu=20.0, ram=30.0, disk=41.0, disk_capacity_gb=100.0)
        persistence.save(store)

        restored = persistence.load(now=T0 + 60_000)

        assert restored is not None
        assert restored.cpu == store.cpu
        assert restored.ram == store.ram
        assert restored.disk == store.disk
        assert restored.disk_growth == pytest.approx(store.disk_growth)

    def test_load_purges_stale_samples(
        self, persistence: SnapshotPersistence, snapshot_path: Path
    ) -> None:
        """Test that samples older than the window are dropped on load."""
        now = T0 + 2 * MS_PER_HOUR
        _write(
            snapshot_path,
            {
                "cpu": [],
                "ram": [],
                "disk": [
                    {"timestamp": now - 2 * MS_PER_HOUR, "value": 40.0},
                    {"timestamp": now - 60_000, "value": 41.0},
                ],
                "diskGrowth": 0.2,
            },
        )

        store = persistence.load(now=now)

        assert store is not None
        assert len(store.disk) == 1
        assert store.disk.latest is not None
        assert store.disk.latest.value == 41.0
        assert store.disk_growth == 0.2

    def test_load_defaults_to_wall_clock(
        self, persistence: SnapshotPersistence, snapshot_path: Path
    ) -> None:
        """Test that load without a reference time uses the current time."""
        _write(
            snapshot_path,
            {
                "cpu": [{"timestamp": 1000, "value": 5.0}],
                "ram": [],
                "disk": [],
                "diskGrowth": 0.0,
            },
        )

        store = persistence.load()

        assert store is not None
        assert len(store.cpu) == 0

    def test_missing_file_returns_none(self, persistence: SnapshotPersistence) -> None:
        """Test that no snapshot means no store."""
        assert persistence.load(now=T0) is None

    def test_corrupt_file_returns_none(
        self, persistence: SnapshotPersistence, snapshot_path: Path
    ) -> None:
        """Test that invalid JSON is ignored."""
        snapshot_path.write_text("{not json", encoding="utf-8")
        assert persistence.load(now=T0) is None

    @pytest.mark.parametrize(
        "data",
        [
            [],
            {"cpu": [], "ram": [], "disk": []},
            {"cpu": [{"timestamp": 1}], "ram": [], "disk": [], "diskGrowth": 0},
            {"cpu": "x", "ram": [], "disk": [], "diskGrowth": 0},
        ],
    )
    def test_schema_mismatch_returns_none(
        self, persistence: SnapshotPersistence, snapshot_path: Path, data: object
    ) -> None:
        """Test that a file with the wrong shape is ignored."""
        _write(snapshot_path, data)
        assert persistence.load(now=T0) is None

    @pytest.mark.parametrize("literal", ["NaN", "Infinity", "-Infinity"])
    def test_non_finite_numbers_return_none(
        self, persistence: SnapshotPersistence, snapshot_path: Path, literal: str
    ) -> None:
        """Test that NaN or Infinity anywhere makes the file unusable."""
        snapshot_path.write_text(
            f'{{"cpu": [{{"timestamp": {T0}, "value": {literal}}}], "ram": [], '
            '"disk": [], "diskGrowth": 0.0}',
            encoding="utf-8",
        )
        assert persistence.load(now=T0) is None

    def test_non_finite_growth_returns_none(
        self, persistence: SnapshotPersistence, snapshot_path: Path
    ) -> None:
        """Test a non-finite growth rate."""
        snapshot_path.write_text(
            '{"cpu": [], "ram": [], "disk": [], "diskGrowth": Infinity}',
            encoding="utf-8",
        )
        assert persistence.load(now=T0) is None

    def test_restored_store_uses_configured_window(self, snapshot_path: Path) -> None:
        """Test that restored stores inherit retention and capacity source."""
        _write(snapshot_path, {"cpu": [], "ram": [], "disk": [], "diskGrowth": 0.0})
        persistence = SnapshotPersistence(
            snapshot_path,
            retention_ms=60_000,
            capacity_provider=lambda: Outcome.success(100.0),
        )

        store = persistence.load(now=T0)

        assert store is not None
        assert store.retention_ms == 60_000
        store.record(MetricKind.DISK, T0, 40.0)
        store.record(MetricKind.DISK, T0 + 30_000, 41.0)
        assert store.disk_growth == pytest.approx(120.0)


class TestRead:
    """Tests for SnapshotPersistence.read."""

    def test_read_missing_marks_details(self, persistence: SnapshotPersistence) -> None:
        """Test the missing-file marker."""
        outcome = persistence.read()

        assert not outcome.ok
        assert outcome.error is not None
        assert outcome.error.details["missing"] is True

    def test_read_returns_record(
        self, persistence: SnapshotPersistence, snapshot_path: Path
    ) -> None:
        """Test a valid file decodes into a SnapshotRecord."""
        _write(snapshot_path, {"cpu": [], "ram": [], "disk": [], "diskGrowth": 1})

        outcome = persistence.read()

        assert outcome.ok
        assert isinstance(outcome.value, SnapshotRecord)
        assert outcome.value.diskGrowth == 1.0


class TestLoadOrEmpty:
    """Tests for SnapshotPersistence.load_or_empty."""

    def test_empty_store_when_missing(self) -> None:
        """Test the fallback store keeps the adapter settings."""

        def provider() -> Outcome[float]:
            return Outcome.failure(SamplingError("unavailable"))

        persistence = SnapshotPersistence(
            "/nonexistent/dir/data.json", retention_ms=120_000, capacity_provider=provider
        )

        store = persistence.load_or_empty(now=T0)

        assert len(store.cpu) == len(store.ram) == len(store.disk) == 0
        assert store.retention_ms == 120_000

    def test_restored_store_when_present(
        self, persistence: SnapshotPersistence
    ) -> None:
        """Test that an existing snapshot is used."""
        store = MetricStore()
        store.record(MetricKind.RAM, T0, 70.0)
        persistence.save(store)

        assert persistence.load_or_empty(now=T0).ram.values() == [70.0]
