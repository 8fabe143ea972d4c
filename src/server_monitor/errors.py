"""
Error types for the server monitor.

This module defines the MonitorError base class, its domain subclasses and the
Outcome result type returned by every I/O boundary (host sampling, snapshot
persistence, git subprocesses).

Monitoring failures are never allowed to stop monitoring: callers receive an
Outcome, log the failure and substitute a neutral default in an explicit
branch instead of relying on a catch-all exception handler.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Generic, TypeVar

T = TypeVar("T")


class MonitorError(Exception):
    """
    Base exception class for server monitor errors.

    Attributes:
        error_code: Internal error code string (e.g., "sampling_failed",
            "persistence_failed", "update_check_failed").
        message: Human-readable error message.
        details: Optional structured details (e.g., paths, command output).

    Example:
        >>> raise MonitorError(
        ...     error_code="sampling_failed",
        ...     message="Unable to read disk usage",
        ...     details={"path": "/"},
        ... )
    """

    def __init__(
        self,
        error_code: str,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        """
        Initialize a MonitorError.

        Args:
            error_code: Internal error code string identifying the error category.
            message: Human-readable error message.
            details: Optional dictionary with structured error details.
        """
        super().__init__(message)
        self.error_code = error_code
        self.message = message
        self.details = details or {}

    def __repr__(self) -> str:
        """Return a detailed string representation."""
        return (
            f"{self.__class__.__name__}("
            f"error_code={self.error_code!r}, "
            f"message={self.message!r}, "
            f"details={self.details!r})"
        )

    def to_dict(self) -> dict[str, Any]:
        """
        Convert the error to a dictionary for serialization.

        Returns:
            Dictionary with error_code, message, and details.
        """
        return {
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
        }


class SamplingError(MonitorError):
    """Error raised when a host metric cannot be read."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        """Initialize a SamplingError."""
        super().__init__(error_code="sampling_failed", message=message, details=details)


class PersistenceError(MonitorError):
    """Error raised when the metric snapshot cannot be written or decoded."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        """Initialize a PersistenceError."""
        super().__init__(
            error_code="persistence_failed", message=message, details=details
        )


class UpdateCheckError(MonitorError):
    """Error raised when a git command used by the update checker fails."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        """Initialize an UpdateCheckError."""
        super().__init__(
            error_code="update_check_failed", message=message, details=details
        )


class FailedPreconditionError(MonitorError):
    """Error raised when an operation is not valid in the current state."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        """Initialize a FailedPreconditionError."""
        super().__init__(
            error_code="failed_precondition", message=message, details=details
        )


class ConfigurationError(MonitorError):
    """Error raised for invalid or unreadable configuration."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        """Initialize a ConfigurationError."""
        super().__init__(
            error_code="invalid_configuration", message=message, details=details
        )


@dataclass(frozen=True)
class Outcome(Generic[T]):
    """
    Result of an I/O operation that may fail.

    Exactly one of ``value`` and ``error`` is meaningful: ``error`` is None for
    a successful outcome.

    Example:
        >>> reading = sampler.sample_disk_percent()
        >>> if not reading.ok:
        ...     logger.warning("Disk read failed", extra={"error": reading.error.message})
        >>> disk = reading.unwrap_or(0.0)
    """

    value: T | None = None
    error: MonitorError | None = None

    @classmethod
    def success(cls, value: T) -> Outcome[T]:
        """Build a successful outcome carrying ``value``."""
        return cls(value=value, error=None)

    @classmethod
    def failure(cls, error: MonitorError) -> Outcome[T]:
        """Build a failed outcome carrying ``error``."""
        return cls(value=None, error=error)

    @property
    def ok(self) -> bool:
        """True when the operation succeeded."""
        return self.error is None

    def unwrap_or(self, default: T) -> T:
        """Return the value on success, otherwise ``default``."""
        if self.error is None:
            return self.value  # type: ignore[return-value]
        return default
