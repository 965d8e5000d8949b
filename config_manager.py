"""
Configuration management for the Blog Analytics service.
Handles loading, validating, and providing access to application settings.
"""

import os
import json
from pathlib import Path
from typing import Dict, Any, Optional
from dataclasses import dataclass, field


@dataclass
class AppConfig:
    """Application configuration settings."""
    host: str
    port: int
    debug: bool
    site_hostname: str


@dataclass
class StorageConfig:
    """Document store configuration settings."""
    backend: str
    data_dir: str


@dataclass
class TrackingConfig:
    """Presence and trending configuration settings."""
    active_window_seconds: int
    cleanup_max_age_seconds: int
    trending_threshold: float


@dataclass
class ResilienceConfig:
    """Circuit breaker and retry configuration settings."""
    failure_threshold: int
    recovery_timeout_seconds: float
    # Per operation type ("page_view", "dashboard", ...) RetryConfig field overrides
    retry_overrides: Dict[str, Dict[str, Any]] = field(default_factory=dict)


@dataclass
class PollingConfig:
    """Dashboard polling configuration settings."""
    dashboard_refresh_seconds: int
    cleanup_interval_seconds: int
    health_check_seconds: int
    dashboard_stale_seconds: int


STORAGE_BACKENDS = ("memory", "json")


class ConfigManager:
    """Manages application configuration loading and access."""

    def __init__(self, config_file: str = "analytics_config.json"):
        self.config_file = Path(config_file)
        self._config: Optional[Dict[str, Any]] = None
        self._load_config()

    def _load_config(self) -> None:
        """Load configuration from file and environment variables."""
        # Start with default config
        self._config = self._get_default_config()

        # Load base config from file
        if self.config_file.exists():
            try:
                with open(self.config_file, 'r', encoding='utf-8') as f:
                    file_config = json.load(f)
                    # Merge file config with defaults
                    self._merge_config(file_config)
            except (json.JSONDecodeError, FileNotFoundError):
                # Keep default config if file is invalid or not found
                pass

        # Override with environment variables
        self._override_with_env()

    def _get_default_config(self) -> Dict[str, Any]:
        """Get default configuration."""
        return {
            "app": {
                "host": "0.0.0.0",
                "port": 22582,
                "debug": False,
                "site_hostname": "localhost"
            },
            "storage": {
                "backend": "memory",
                "data_dir": "analytics_data"
            },
            "tracking": {
                "active_window_seconds": 300,
                "cleanup_max_age_seconds": 3600,
                "trending_threshold": 10.0
            },
            "resilience": {
                "failure_threshold": 5,
                "recovery_timeout_seconds": 60.0,
                "retry_overrides": {}
            },
            "polling": {
                "dashboard_refresh_seconds": 60,
                "cleanup_interval_seconds": 300,
                "health_check_seconds": 120,
                "dashboard_stale_seconds": 120
            }
        }

    def _merge_config(self, file_config: Dict[str, Any]) -> None:
        """Merge file configuration with current config."""
        for section, values in file_config.items():
            if section in self._config:
                if isinstance(values, dict):
                    self._config[section].update(values)
                else:
                    self._config[section] = values
            else:
                self._config[section] = values

    def _override_with_env(self) -> None:
        """Override configuration with environment variables."""
        # App settings
        if os.getenv("APP_HOST"):
            self._config["app"]["host"] = os.getenv("APP_HOST")

        if os.getenv("APP_PORT"):
            self._config["app"]["port"] = int(os.getenv("APP_PORT"))

        if os.getenv("APP_DEBUG"):
            self._config["app"]["debug"] = os.getenv("APP_DEBUG").lower() == "true"

        if os.getenv("SITE_HOSTNAME"):
            self._config["app"]["site_hostname"] = os.getenv("SITE_HOSTNAME")

        # Storage settings
        if os.getenv("ANALYTICS_STORAGE_BACKEND"):
            self._config["storage"]["backend"] = os.getenv("ANALYTICS_STORAGE_BACKEND").lower()

        if os.getenv("ANALYTICS_DATA_DIR"):
            self._config["storage"]["data_dir"] = os.getenv("ANALYTICS_DATA_DIR")

        # Tracking settings
        if os.getenv("ANALYTICS_ACTIVE_WINDOW_SECONDS"):
            self._config["tracking"]["active_window_seconds"] = int(os.getenv("ANALYTICS_ACTIVE_WINDOW_SECONDS"))

        if os.getenv("ANALYTICS_TRENDING_THRESHOLD"):
            self._config["tracking"]["trending_threshold"] = float(os.getenv("ANALYTICS_TRENDING_THRESHOLD"))

        # Resilience settings
        if os.getenv("ANALYTICS_FAILURE_THRESHOLD"):
            self._config["resilience"]["failure_threshold"] = int(os.getenv("ANALYTICS_FAILURE_THRESHOLD"))

        if os.getenv("ANALYTICS_RECOVERY_TIMEOUT"):
            self._config["resilience"]["recovery_timeout_seconds"] = float(os.getenv("ANALYTICS_RECOVERY_TIMEOUT"))

    def get_app_config(self) -> AppConfig:
        """Get application configuration."""
        app_config = self._config["app"]
        return AppConfig(
            host=app_config["host"],
            port=app_config["port"],
            debug=app_config["debug"],
            site_hostname=app_config["site_hostname"]
        )

    def get_storage_config(self) -> StorageConfig:
        """Get document store configuration."""
        storage_config = self._config["storage"]
        backend = storage_config["backend"]
        if backend not in STORAGE_BACKENDS:
            raise ValueError(f"Unknown storage backend {backend!r}, expected one of {STORAGE_BACKENDS}")
        return StorageConfig(
            backend=backend,
            data_dir=storage_config["data_dir"]
        )

    def get_tracking_config(self) -> TrackingConfig:
        """Get tracking configuration."""
        tracking_config = self._config["tracking"]
        return TrackingConfig(
            active_window_seconds=tracking_config["active_window_seconds"],
            cleanup_max_age_seconds=tracking_config["cleanup_max_age_seconds"],
            trending_threshold=tracking_config["trending_threshold"]
        )

    def get_resilience_config(self) -> ResilienceConfig:
        """Get resilience configuration."""
        resilience_config = self._config["resilience"]
        return ResilienceConfig(
            failure_threshold=resilience_config["failure_threshold"],
            recovery_timeout_seconds=resilience_config["recovery_timeout_seconds"],
            retry_overrides=dict(resilience_config.get("retry_overrides") or {})
        )

    def get_polling_config(self) -> PollingConfig:
        """Get polling configuration."""
        polling_config = self._config["polling"]
        return PollingConfig(
            dashboard_refresh_seconds=polling_config["dashboard_refresh_seconds"],
            cleanup_interval_seconds=polling_config["cleanup_interval_seconds"],
            health_check_seconds=polling_config["health_check_seconds"],
            dashboard_stale_seconds=polling_config["dashboard_stale_seconds"]
        )

    def get_config(self) -> Dict[str, Any]:
        """Get raw configuration dictionary."""
        return self._config.copy()

    def reload(self) -> None:
        """Reload configuration from file."""
        self._load_config()

    def save_config(self) -> None:
        """Save current configuration to file."""
        with open(self.config_file, 'w', encoding='utf-8') as f:
            json.dump(self._config, f, indent=2, ensure_ascii=False)


# Global configuration instance
config_manager = ConfigManager()


def get_app_config() -> AppConfig:
    """Get application configuration."""
    return config_manager.get_app_config()


def get_storage_config() -> StorageConfig:
    """Get document store configuration."""
    return config_manager.get_storage_config()


def get_tracking_config() -> TrackingConfig:
    """Get tracking configuration."""
    return config_manager.get_tracking_config()


def get_resilience_config() -> ResilienceConfig:
    """Get resilience configuration."""
    return config_manager.get_resilience_config()


def get_polling_config() -> PollingConfig:
    """Get polling configuration."""
    return config_manager.get_polling_config()


def reload_config() -> None:
    """Reload configuration."""
    config_manager.reload()


def save_config() -> None:
    """Save configuration to file."""
    config_manager.save_config()
