"""
JSON snapshot persistence for the metric store.

The snapshot is a single flat file holding the three sample series and the
last disk growth rate:

    {
        "cpu":  [{"timestamp": 1678901234567, "value": 12.5}, ...],
        "ram":  [...],
        "disk": [...],
        "diskGrowth": 0.2
    }

There is no version field: a file that does not validate against the current
schema is treated exactly like a missing one and the process starts with an
empty store. Loading applies the retention window so a restart does not
resurrect samples that are already stale.

Non-finite numbers (NaN, Infinity) are rejected in both directions: such a
file does not validate, and a store holding one is not written.
"""

from __future__ import annotations

import json
import os
import time
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from server_monitor.errors import Outcome, PersistenceError
from server_monitor.logging import get_logger
from server_monitor.metrics.store import (
    DEFAULT_RETENTION_MS,
    CapacityProvider,
    MetricStore,
    Sample,
)

logger = get_logger(__name__)


# =============================================================================
# Snapshot Schema
# =============================================================================


class SampleRecord(BaseModel):
    """One persisted sample."""

    model_config = ConfigDict(allow_inf_nan=False)

    timestamp: int = Field(..., description="Milliseconds since the Unix epoch")
    value: float = Field(..., description="Sample value")


class SnapshotRecord(BaseModel):
    """Full persisted state of a MetricStore."""

    model_config = ConfigDict(allow_inf_nan=False)

    cpu: list[SampleRecord] = Field(..., description="CPU utilization samples")
    ram: list[SampleRecord] = Field(..., description="RAM utilization samples")
    disk: list[SampleRecord] = Field(..., description="Disk utilization samples")
    diskGrowth: float = Field(..., description="Disk growth rate in GB/hour")  # noqa: N815


def _to_samples(records: list[SampleRecord]) -> list[Sample]:
    return [Sample(timestamp=r.timestamp, value=r.value) for r in records]


# =============================================================================
# SnapshotPersistence Class
# =============================================================================


class SnapshotPersistence:
    """
    Saves and restores a MetricStore to and from a JSON file.

    The persistence adapter is the only writer of the snapshot file.

    Example:
        >>> persistence = SnapshotPersistence("server-monitor-data.json")
        >>> store = persistence.load_or_empty()
        >>> persistence.save(store)
    """

    def __init__(
        self,
        path: str | Path,
        retention_ms: int = DEFAULT_RETENTION_MS,
        capacity_provider: CapacityProvider | None = None,
    ) -> None:
        """
        Initialize the SnapshotPersistence.

        Args:
            path: Snapshot file path.
            retention_ms: Retention window applied on load and given to
                restored stores.
            capacity_provider: Disk capacity source given to restored stores.
        """
        self.path = Path(path)
        self.retention_ms = retention_ms
        self._capacity_provider = capacity_provider

    def save(self, store: MetricStore) -> Outcome[None]:
        """
        Write the store to the snapshot file.

        The file is written to a sibling temp file and renamed into place.

        Returns:
            A successful Outcome, or a failed one carrying a PersistenceError.
            Failures are logged here and never raised.
        """
        data = store.to_dict()
        temp_path = self.path.with_name(self.path.name + ".tmp")

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(temp_path, "w", encoding="utf-8") as f:
                json.dump(data, f, allow_nan=False)
            os.replace(temp_path, self.path)
        except (OSError, TypeError, ValueError) as e:
            logger.error(
                "Failed to save metrics snapshot",
                extra={"path": str(self.path), "error": str(e)},
            )
            return Outcome.failure(
                PersistenceError(
                    f"Failed to save metrics snapshot: {e}",
                    details={"path": str(self.path)},
                )
            )

        logger.debug(
            "Saved metrics snapshot",
            extra={
                "path": str(self.path),
                "cpu": len(data["cpu"]),
                "ram": len(data["ram"]),
                "disk": len(data["disk"]),
            },
        )
        return Outcome.success(None)

    def read(self) -> Outcome[SnapshotRecord]:
        """
        Read and validate the snapshot file without building a store.

        Returns:
            The decoded SnapshotRecord, or a failed Outcome when the file is
            missing, unreadable or does not match the schema.
        """
        try:
            with open(self.path, encoding="utf-8") as f:
                raw = json.load(f)
            return Outcome.success(SnapshotRecord.model_validate(raw))
        except FileNotFoundError:
            return Outcome.failure(
                PersistenceError(
                    "Metrics snapshot not found",
                    details={"path": str(self.path), "missing": True},
                )
            )
        except (OSError, json.JSONDecodeError, UnicodeDecodeError, ValidationError) as e:
            return Outcome.failure(
                PersistenceError(
                    f"Failed to decode metrics snapshot: {e}",
                    details={"path": str(self.path)},
                )
            )

    def load(self, now: int | None = None) -> MetricStore | None:
        """
        Restore a store from the snapshot file.

        Args:
            now: Reference time in ms for the retention purge. Defaults to
                the current wall-clock time.

        Returns:
            The restored MetricStore with stale samples removed, or None when
            there is no usable snapshot.
        """
        outcome = self.read()
        if not outcome.ok or outcome.value is None:
            error = outcome.error
            if error is not None and error.details.get("missing"):
                logger.info(
                    "No metrics snapshot found, starting empty",
                    extra={"path": str(self.path)},
                )
            else:
                logger.warning(
                    "Ignoring unreadable metrics snapshot",
                    extra={
                        "path": str(self.path),
                        "error": error.message if error else None,
                    },
                )
            return None

        record = outcome.value
        store = MetricStore(
            retention_ms=self.retention_ms,
            capacity_provider=self._capacity_provider,
            cpu=_to_samples(record.cpu),
            ram=_to_samples(record.ram),
            disk=_to_samples(record.disk),
            disk_growth=record.diskGrowth,
        )
        reference = now if now is not None else int(time.time() * 1000)
        dropped = store.purge(reference)

        logger.info(
            "Loaded metrics snapshot",
            extra={
                "path": str(self.path),
                "cpu": len(store.cpu),
                "ram": len(store.ram),
                "disk": len(store.disk),
                "dropped": dropped,
            },
        )
        return store

    def load_or_empty(self, now: int | None = None) -> MetricStore:
        """Restore the snapshot, falling back to an empty store."""
        store = self.load(now)
        if store is None:
            return MetricStore(
                retention_ms=self.retention_ms,
                capacity_provider=self._capacity_provider,
            )
        return store
