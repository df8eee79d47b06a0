"""Configuration loader with type-safe dataclasses."""

import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml


class ConfigError(Exception):
    """Raised when configuration is invalid or cannot be loaded."""

    pass


DEFAULT_STATE_DIR = "./state"
DEFAULT_REPORTS_DIR = "./reports"


@dataclass(frozen=True)
class MonitorConfig:
    """Configuration for a check run."""

    timeout_ms: int = 10_000  # checks still pending after this are DOWN ("Timeout")
    slow_threshold_ms: int = 2_000  # successful responses slower than this are SLOW
    max_workers: int | None = None  # None: one thread per URL

    def __post_init__(self) -> None:
        if self.timeout_ms < 1:
            raise ConfigError(f"Monitor timeout_ms must be positive (got {self.timeout_ms})")
        if self.slow_threshold_ms < 0:
            raise ConfigError(f"Monitor slow_threshold_ms must be non-negative (got {self.slow_threshold_ms})")
        if self.slow_threshold_ms >= self.timeout_ms:
            raise ConfigError(
                f"Monitor slow_threshold_ms ({self.slow_threshold_ms}) must be lower than "
                f"timeout_ms ({self.timeout_ms})"
            )
        if self.max_workers is not None and self.max_workers < 1:
            raise ConfigError(f"Monitor max_workers must be at least 1 (got {self.max_workers})")


@dataclass(frozen=True)
class StateConfig:
    """Location of the persisted status and down-since documents."""

    directory: str = DEFAULT_STATE_DIR

    def __post_init__(self) -> None:
        if not self.directory:
            raise ConfigError("State directory cannot be empty")


@dataclass(frozen=True)
class ReportsConfig:
    """Location of the per-run report files."""

    directory: str = DEFAULT_REPORTS_DIR

    def __post_init__(self) -> None:
        if not self.directory:
            raise ConfigError("Reports directory cannot be empty")


@dataclass(frozen=True)
class AlertsConfig:
    """Configuration for the chat webhook used by the notify command."""

    webhook_url: str | None = None
    username: str = "SiteWatch"
    timeout_seconds: int = 10

    def __post_init__(self) -> None:
        if self.webhook_url is not None and not self.webhook_url.startswith(("http://", "https://")):
            raise ConfigError("Webhook URL must start with http:// or https://")
        if self.timeout_seconds < 1:
            raise ConfigError(f"Webhook timeout must be at least 1 second, got {self.timeout_seconds}")


@dataclass(frozen=True)
class Config:
    """Main configuration container."""

    urls: list[str]
    monitor: MonitorConfig = field(default_factory=MonitorConfig)
    state: StateConfig = field(default_factory=StateConfig)
    reports: ReportsConfig = field(default_factory=ReportsConfig)
    alerts: AlertsConfig = field(default_factory=AlertsConfig)

    def __post_init__(self) -> None:
        if not self.urls:
            raise ConfigError("At least one URL must be configured")
        for url in self.urls:
            if not url.startswith(("http://", "https://")):
                raise ConfigError(f"URL must start with http:// or https://, got '{url}'")
        duplicates = sorted({url for url in self.urls if self.urls.count(url) > 1})
        if duplicates:
            raise ConfigError(f"Duplicate URLs found: {', '.join(duplicates)}")


def _parse_url_entry(data: object, index: int) -> str:
    """Parse a URL entry, either a plain string or a mapping with a 'url' key."""
    if isinstance(data, str):
        url = data
    elif isinstance(data, dict):
        if data.get("url") is None:
            raise ConfigError(f"URL entry {index} is missing 'url' field")
        url = str(data["url"])
    else:
        raise ConfigError(f"URL entry {index} must be a string or a dictionary")

    url = url.strip()
    if not url:
        raise ConfigError(f"URL entry {index} cannot be empty")
    return url


def _parse_monitor_config(data: dict | None) -> MonitorConfig:
    """Parse monitor configuration section."""
    if data is None:
        return MonitorConfig()
    if not isinstance(data, dict):
        raise ConfigError("'monitor' section must be a dictionary")

    max_workers = data.get("max_workers")
    return MonitorConfig(
        timeout_ms=int(data.get("timeout_ms", 10_000)),
        slow_threshold_ms=int(data.get("slow_threshold_ms", 2_000)),
        max_workers=int(max_workers) if max_workers is not None else None,
    )


def _parse_state_config(data: dict | None) -> StateConfig:
    """Parse state configuration section."""
    if data is None:
        return StateConfig()
    if not isinstance(data, dict):
        raise ConfigError("'state' section must be a dictionary")

    return StateConfig(directory=str(data.get("directory", DEFAULT_STATE_DIR)))


def _parse_reports_config(data: dict | None) -> ReportsConfig:
    """Parse reports configuration section."""
    if data is None:
        return ReportsConfig()
    if not isinstance(data, dict):
        raise ConfigError("'reports' section must be a dictionary")

    return ReportsConfig(directory=str(data.get("directory", DEFAULT_REPORTS_DIR)))


def _parse_alerts_config(data: dict | None) -> AlertsConfig:
    """Parse alerts configuration section."""
    if data is None:
        return AlertsConfig()
    if not isinstance(data, dict):
        raise ConfigError("'alerts' section must be a dictionary")

    webhook_url = data.get("webhook_url")
    return AlertsConfig(
        webhook_url=str(webhook_url) if webhook_url else None,
        username=str(data.get("username", "SiteWatch")),
        timeout_seconds=int(data.get("timeout_seconds", 10)),
    )


def _apply_env_overrides(config_data: dict) -> dict:
    """Apply environment variable overrides to configuration.

    Supported overrides:
    - SITEWATCH_TIMEOUT_MS: Override monitor.timeout_ms
    - SITEWATCH_SLOW_THRESHOLD_MS: Override monitor.slow_threshold_ms
    - SITEWATCH_STATE_DIR: Override state.directory
    - SITEWATCH_REPORTS_DIR: Override reports.directory
    - SITEWATCH_WEBHOOK_URL: Override alerts.webhook_url
    """
    for section in ("monitor", "state", "reports", "alerts"):
        if config_data.get(section) is None:
            config_data[section] = {}

    timeout_ms = os.environ.get("SITEWATCH_TIMEOUT_MS")
    if timeout_ms is not None:
        config_data["monitor"]["timeout_ms"] = int(timeout_ms)

    slow_threshold_ms = os.environ.get("SITEWATCH_SLOW_THRESHOLD_MS")
    if slow_threshold_ms is not None:
        config_data["monitor"]["slow_threshold_ms"] = int(slow_threshold_ms)

    state_dir = os.environ.get("SITEWATCH_STATE_DIR")
    if state_dir is not None:
        config_data["state"]["directory"] = state_dir

    reports_dir = os.environ.get("SITEWATCH_REPORTS_DIR")
    if reports_dir is not None:
        config_data["reports"]["directory"] = reports_dir

    webhook_url = os.environ.get("SITEWATCH_WEBHOOK_URL")
    if webhook_url is not None:
        config_data["alerts"]["webhook_url"] = webhook_url

    return config_data


def load_config(config_path: str) -> Config:
    """Load and validate configuration from a YAML file.

    Args:
        config_path: Path to the YAML configuration file.

    Returns:
        Validated Config object.

    Raises:
        ConfigError: If the file cannot be read or configuration is invalid.
    """
    path = Path(config_path)

    if not path.exists():
        raise ConfigError(f"Configuration file not found: {config_path}")

    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Failed to parse YAML configuration: {e}")
    except OSError as e:
        raise ConfigError(f"Failed to read configuration file: {e}")

    if data is None:
        raise ConfigError("Configuration file is empty")

    if not isinstance(data, dict):
        raise ConfigError("Configuration must be a YAML dictionary")

    try:
        data = _apply_env_overrides(data)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid environment override: {e}")

    urls_data = data.get("urls")
    if urls_data is None:
        raise ConfigError("Configuration must contain a 'urls' section")
    if not isinstance(urls_data, list):
        raise ConfigError("'urls' must be a list")

    urls = [_parse_url_entry(entry, i) for i, entry in enumerate(urls_data)]

    try:
        return Config(
            urls=urls,
            monitor=_parse_monitor_config(data.get("monitor")),
            state=_parse_state_config(data.get("state")),
            reports=_parse_reports_config(data.get("reports")),
            alerts=_parse_alerts_config(data.get("alerts")),
        )
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid configuration value: {e}")
