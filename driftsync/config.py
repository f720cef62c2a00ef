"""Configuration loading for driftsync."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml


@dataclass
class StoreConfig:
    db_path: str = "~/.driftsync/cache.db"


@dataclass
class HistoryConfig:
    """Configuration for local edit history."""

    context_lines: int = 3
    max_entries_per_file: int = 0  # 0 = unlimited
    max_age_days: int = 0  # 0 = keep forever


@dataclass
class SyncConfig:
    """Configuration for the remote sync API."""

    remote_url: str = ""
    retry_max_attempts: int = 3
    timeout_seconds: float = 30.0
    poll_interval_minutes: int = 5
    auth_token: str | None = None


@dataclass
class DashboardConfig:
    host: str = "127.0.0.1"
    port: int = 8133


@dataclass
class Config:
    store: StoreConfig = field(default_factory=StoreConfig)
    history: HistoryConfig = field(default_factory=HistoryConfig)
    sync: SyncConfig = field(default_factory=SyncConfig)
    dashboard: DashboardConfig = field(default_factory=DashboardConfig)


def _get_env(key: str, default: Any = None) -> Any:
    """Get environment variable with DRIFTSYNC_ prefix."""
    return os.environ.get(f"DRIFTSYNC_{key}", default)


def _apply_env_overrides(config: Config) -> Config:
    """Apply environment variable overrides to config."""
    if db_path := _get_env("DB_PATH"):
        config.store.db_path = db_path

    # History overrides
    if context_lines := _get_env("HISTORY_CONTEXT_LINES"):
        config.history.context_lines = int(context_lines)
    if max_entries := _get_env("HISTORY_MAX_ENTRIES"):
        config.history.max_entries_per_file = int(max_entries)
    if max_age := _get_env("HISTORY_MAX_AGE_DAYS"):
        config.history.max_age_days = int(max_age)

    # Sync overrides
    if remote_url := _get_env("REMOTE_URL"):
        config.sync.remote_url = remote_url
    if retries := _get_env("SYNC_RETRIES"):
        config.sync.retry_max_attempts = int(retries)
    if timeout := _get_env("SYNC_TIMEOUT"):
        config.sync.timeout_seconds = float(timeout)
    if interval := _get_env("SYNC_POLL_INTERVAL"):
        config.sync.poll_interval_minutes = int(interval)
    if token := _get_env("AUTH_TOKEN"):
        config.sync.auth_token = token

    # Dashboard overrides
    if host := _get_env("DASHBOARD_HOST"):
        config.dashboard.host = host
    if port := _get_env("DASHBOARD_PORT"):
        config.dashboard.port = int(port)

    return config


def load_config(config_path: str | Path | None = None) -> Config:
    """Load configuration from YAML file with environment variable overrides.

    Args:
        config_path: Path to YAML config file. If None, uses default config.

    Returns:
        Loaded Config object.
    """
    config = Config()

    if config_path:
        path = Path(config_path)
        if path.exists():
            with open(path) as f:
                data = yaml.safe_load(f) or {}

            if "store" in data:
                config.store = StoreConfig(
                    db_path=data["store"].get("db_path", config.store.db_path)
                )

            if "history" in data:
                history_data = data["history"]
                config.history = HistoryConfig(
                    context_lines=history_data.get(
                        "context_lines", config.history.context_lines
                    ),
                    max_entries_per_file=history_data.get(
                        "max_entries_per_file", config.history.max_entries_per_file
                    ),
                    max_age_days=history_data.get(
                        "max_age_days", config.history.max_age_days
                    ),
                )

            if "sync" in data:
                sync_data = data["sync"]
                config.sync = SyncConfig(
                    remote_url=sync_data.get("remote_url", config.sync.remote_url),
                    retry_max_attempts=sync_data.get(
                        "retry_max_attempts", config.sync.retry_max_attempts
                    ),
                    timeout_seconds=sync_data.get(
                        "timeout_seconds", config.sync.timeout_seconds
                    ),
                    poll_interval_minutes=sync_data.get(
                        "poll_interval_minutes", config.sync.poll_interval_minutes
                    ),
                    auth_token=sync_data.get("auth_token"),
                )

            if "dashboard" in data:
                dash_data = data["dashboard"]
                config.dashboard = DashboardConfig(
                    host=dash_data.get("host", config.dashboard.host),
                    port=dash_data.get("port", config.dashboard.port),
                )

    return _apply_env_overrides(config)
