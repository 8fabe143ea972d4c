"""
Configuration management for the server monitor.

Configuration is loaded from multiple sources with layered precedence:
1. Built-in defaults (Pydantic model defaults)
2. YAML config file (/etc/server-monitor/config.yml or --config path)
3. Environment variables (SERVER_MONITOR_* prefix, __ for nesting)
4. Command-line arguments (highest precedence)
"""

from __future__ import annotations

import argparse
import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator

DEFAULT_CONFIG_PATH = Path("/etc/server-monitor/config.yml")
DEFAULT_ENV_PREFIX = "SERVER_MONITOR_"

_VALID_LOG_LEVELS = {"debug", "info", "warn", "warning", "error", "critical"}


def _normalize_log_level(v: str) -> str:
    v_lower = v.lower()
    if v_lower not in _VALID_LOG_LEVELS:
        raise ValueError(
            f"Invalid log level: {v}. Must be one of: {', '.join(sorted(_VALID_LOG_LEVELS))}"
        )
    if v_lower == "warn":
        return "warning"
    return v_lower


# =============================================================================
# Server Configuration
# =============================================================================


class ServerConfig(BaseModel):
    """HTTP server settings.

    Attributes:
        host: Interface to bind.
        port: TCP port to listen on.
        path: Path of the statistics endpoint.
        log_level: Initial application log level.
    """

    host: str = Field(
        default="0.0.0.0",
        description="Interface to bind (e.g., '127.0.0.1' or '0.0.0.0')",
    )
    port: int = Field(
        default=8731,
        description="TCP port to listen on",
        ge=1,
        le=65535,
    )
    path: str = Field(
        default="/server-monitor",
        description="Path of the statistics endpoint",
    )
    log_level: str = Field(
        default="info",
        description="Log level: debug, info, warn, error",
    )

    @field_validator("path")
    @classmethod
    def validate_path(cls, v: str) -> str:
        """Require an absolute endpoint path."""
        if not v.startswith("/"):
            raise ValueError(f"Endpoint path must start with '/': {v}")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate and normalize log level."""
        return _normalize_log_level(v)


# =============================================================================
# Logging Configuration
# =============================================================================


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        level: Log level.
        log_to_stdout: Whether to log to stdout.
        json_format: Whether stdout logs are JSON objects.
    """

    level: str = Field(
        default="info",
        description="Log level",
    )
    log_to_stdout: bool = Field(
        default=True,
        description="Whether to log to stdout",
    )
    json_format: bool = Field(
        default=True,
        description="Emit JSON log lines instead of plain text",
    )

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        """Validate and normalize log level."""
        return _normalize_log_level(v)


# =============================================================================
# Metrics Configuration
# =============================================================================


class MetricsConfig(BaseModel):
    """Metric sampling, retention and snapshot configuration.

    Attributes:
        data_file: Path of the JSON snapshot file.
        sampling_interval_seconds: Interval between sample cycles.
        retention_seconds: Width of the rolling window kept in memory.
        disk_path: Mount point whose utilization is sampled.
        gauges_port: Port of the Prometheus gauges endpoint, None to disable.
    """

    data_file: str = Field(
        default="server-monitor-data.json",
        description="Path of the JSON snapshot file",
    )
    sampling_interval_seconds: int = Field(
        default=60,
        description="Interval between sample cycles in seconds",
        ge=5,
        le=3600,
    )
    retention_seconds: int = Field(
        default=3600,
        description="Rolling retention window in seconds",
        ge=60,
    )
    disk_path: str = Field(
        default="/",
        description="Mount point whose utilization is sampled",
    )
    gauges_port: int | None = Field(
        default=None,
        description="Port serving the Prometheus gauges (disabled when unset)",
        ge=1,
        le=65535,
    )

    @property
    def retention_ms(self) -> int:
        """Retention window in milliseconds."""
        return self.retention_seconds * 1000


# =============================================================================
# Updates Configuration
# =============================================================================


class UpdatesConfig(BaseModel):
    """Git-based self-update configuration.

    Attributes:
        enabled: Whether requests trigger update checks.
        repo_path: Working copy to keep in sync with its remote.
        remote: Name of the remote tracked for updates.
        log_file: Append-only log of every update decision.
        min_check_interval_seconds: Minimum time between two remote checks.
        git_timeout_seconds: Timeout applied to each git command.
    """

    enabled: bool = Field(
        default=True,
        description="Whether requests trigger update checks",
    )
    repo_path: str = Field(
        default_factory=os.getcwd,
        description="Working copy to keep in sync with its remote",
    )
    remote: str = Field(
        default="origin",
        description="Name of the remote tracked for updates",
    )
    log_file: str = Field(
        default="git-auto-update.log",
        description="Append-only log of update decisions",
    )
    min_check_interval_seconds: int = Field(
        default=300,
        description="Minimum seconds between two remote checks",
        ge=0,
    )
    git_timeout_seconds: float = Field(
        default=60.0,
        description="Timeout applied to each git command in seconds",
        gt=0,
    )


# =============================================================================
# Main Application Configuration
# =============================================================================


class AppConfig(BaseModel):
    """
    Main application configuration model.

    Attributes:
        server: HTTP server settings.
        logging: Logging configuration.
        metrics: Sampling and snapshot configuration.
        updates: Self-update configuration.
    """

    server: ServerConfig = Field(
        default_factory=ServerConfig,
        description="HTTP server settings",
    )
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig,
        description="Logging configuration",
    )
    metrics: MetricsConfig = Field(
        default_factory=MetricsConfig,
        description="Metrics configuration",
    )
    updates: UpdatesConfig = Field(
        default_factory=UpdatesConfig,
        description="Update configuration",
    )


# =============================================================================
# Configuration Loading Functions
# =============================================================================


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """
    Deep merge two dictionaries.

    Args:
        base: The base dictionary.
        override: The dictionary with values to override.

    Returns:
        A new dictionary with merged values.
    """
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _load_yaml_config(config_path: Path) -> dict[str, Any]:
    """
    Load configuration from a YAML file.

    Raises:
        FileNotFoundError: If the config file doesn't exist.
        yaml.YAMLError: If the YAML is invalid.
    """
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path) as f:
        return yaml.safe_load(f) or {}


def _parse_env_value(value: str) -> Any:
    """
    Parse an environment variable value to appropriate Python type.

    Args:
        value: String value from environment variable.

    Returns:
        Parsed value (bool, int, float, or string).
    """
    if value.lower() in ("true", "yes", "on"):
        return True
    if value.lower() in ("false", "no", "off"):
        return False

    try:
        return int(value)
    except ValueError:
        pass

    try:
        return float(value)
    except ValueError:
        pass

    return value


def _load_env_config(prefix: str = DEFAULT_ENV_PREFIX) -> dict[str, Any]:
    """
    Load configuration from environment variables.

    Nested keys use a double underscore separator, e.g.
    SERVER_MONITOR_SERVER__PORT=9000.
    """
    result: dict[str, Any] = {}

    for key, value in os.environ.items():
        if not key.startswith(prefix):
            continue

        config_key = key[len(prefix) :].lower()
        parts = config_key.split("__")

        current = result
        for part in parts[:-1]:
            if part not in current:
                current[part] = {}
            current = current[part]

        current[parts[-1]] = _parse_env_value(value)

    return result


def _parse_cli_args(args: list[str] | None = None) -> dict[str, Any]:
    """
    Parse command-line arguments.

    Args:
        args: Command-line arguments. If None, uses sys.argv.

    Returns:
        Dictionary with parsed arguments.
    """
    parser = argparse.ArgumentParser(
        prog="server-monitor",
        description="Host metrics sampler exposed over HTTP",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )

    parser.add_argument(
        "--config",
        "-c",
        type=str,
        help="Path to configuration file",
    )
    parser.add_argument(
        "--port",
        type=int,
        help="Override the listen port",
    )
    parser.add_argument(
        "--data-file",
        type=str,
        help="Override the snapshot file path",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        choices=["debug", "info", "warning", "error"],
        help="Override log level",
    )
    parser.add_argument(
        "--no-updates",
        action="store_true",
        help="Disable git update checks",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )

    parsed = parser.parse_args(args)

    result: dict[str, Any] = {}

    if parsed.config:
        result["_config_path"] = parsed.config

    if parsed.port is not None:
        result.setdefault("server", {})["port"] = parsed.port

    if parsed.data_file:
        result.setdefault("metrics", {})["data_file"] = parsed.data_file

    if parsed.log_level:
        result.setdefault("server", {})["log_level"] = parsed.log_level
        result.setdefault("logging", {})["level"] = parsed.log_level

    if parsed.no_updates:
        result.setdefault("updates", {})["enabled"] = False

    if parsed.debug:
        result.setdefault("server", {})["log_level"] = "debug"
        result.setdefault("logging", {})["level"] = "debug"

    return result


def load_config(
    config_path: Path | str | None = None,
    env_prefix: str = DEFAULT_ENV_PREFIX,
    cli_args: list[str] | None = None,
) -> AppConfig:
    """
    Load configuration from all sources with layered precedence.

    Later sources override earlier ones: defaults, YAML file, environment
    variables, then command-line arguments.

    Args:
        config_path: Path to YAML configuration file. If None, uses the
            --config argument or the default path when it exists.
        env_prefix: Prefix for environment variables.
        cli_args: Command-line arguments. If None, uses sys.argv.

    Returns:
        Fully configured AppConfig instance.

    Raises:
        FileNotFoundError: If specified config file doesn't exist.
        ValidationError: If configuration is invalid.

    Example:
        >>> config = load_config(cli_args=[])
        >>> config.server.port
        8731
    """
    config_dict: dict[str, Any] = {}

    cli_config = _parse_cli_args(cli_args)

    if config_path is None:
        if "_config_path" in cli_config:
            config_path = Path(cli_config.pop("_config_path"))
        elif DEFAULT_CONFIG_PATH.exists():
            config_path = DEFAULT_CONFIG_PATH
    elif isinstance(config_path, str):
        config_path = Path(config_path)
    cli_config.pop("_config_path", None)

    if config_path is not None:
        config_dict = _deep_merge(config_dict, _load_yaml_config(config_path))

    config_dict = _deep_merge(config_dict, _load_env_config(env_prefix))
    config_dict = _deep_merge(config_dict, cli_config)

    return AppConfig(**config_dict)
