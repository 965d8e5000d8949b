"""
Test cases for the configuration management system.
Tests config loading, validation, and access functionality.
"""

import os
import json
from unittest.mock import patch, mock_open
import pytest

from config_manager import (
    ConfigManager,
    AppConfig,
    StorageConfig,
    TrackingConfig,
    ResilienceConfig,
    PollingConfig,
    get_app_config,
    get_storage_config,
    get_tracking_config,
    get_resilience_config,
    get_polling_config,
    reload_config,
    save_config
)


def load_manager(file_config=None, env=None):
    """Build a ConfigManager from an in-memory config file and environment."""
    with patch('config_manager.Path') as mock_path:
        mock_path.return_value.exists.return_value = file_config is not None
        with patch('builtins.open', mock_open(read_data=json.dumps(file_config or {}))):
            with patch.dict(os.environ, env or {}, clear=True):
                return ConfigManager()


class TestConfigManager:
    """Test the ConfigManager class functionality."""

    def test_init_with_default_config_file(self):
        """Test ConfigManager initialization with default config file."""
        manager = load_manager()

        assert manager._config is not None
        for section in ("app", "storage", "tracking", "resilience", "polling"):
            assert section in manager._config

    def test_init_with_custom_config_file(self):
        """Test ConfigManager initialization with custom config file."""
        with patch('config_manager.Path') as mock_path:
            mock_path.return_value.exists.return_value = False
            manager = ConfigManager("custom_config.json")

            mock_path.assert_called_with("custom_config.json")
            assert "tracking" in manager._config

    def test_defaults(self):
        """Test default values when no file or environment is present."""
        manager = load_manager()

        app_config = manager.get_app_config()
        assert app_config.port == 22582
        assert app_config.debug is False
        assert manager.get_storage_config().backend == "memory"
        assert manager.get_tracking_config().active_window_seconds == 300
        assert manager.get_resilience_config().failure_threshold == 5
        assert manager.get_polling_config().dashboard_refresh_seconds == 60

    def test_load_config_from_file(self):
        """Test loading configuration from existing file."""
        test_config = {
            "app": {"host": "localhost", "port": 8080, "site_hostname": "blog.example"},
            "storage": {"backend": "json", "data_dir": "data"},
            "tracking": {"trending_threshold": 4.5}
        }

        manager = load_manager(test_config)

        assert manager.get_app_config().host == "localhost"
        assert manager.get_app_config().site_hostname == "blog.example"
        assert manager.get_storage_config().data_dir == "data"
        assert manager.get_tracking_config().trending_threshold == 4.5
        # Keys missing from the file keep their defaults
        assert manager.get_app_config().debug is False
        assert manager.get_tracking_config().cleanup_max_age_seconds == 3600

    def test_invalid_json_keeps_defaults(self):
        """Test that an unreadable config file falls back to defaults."""
        with patch('config_manager.Path') as mock_path:
            mock_path.return_value.exists.return_value = True
            with patch('builtins.open', mock_open(read_data="{not json")):
                with patch.dict(os.environ, {}, clear=True):
                    manager = ConfigManager()

        assert manager.get_app_config().port == 22582

    def test_override_with_env_variables(self):
        """Test that environment variables override config file values."""
        env_vars = {
            "APP_HOST": "127.0.0.1",
            "APP_PORT": "9000",
            "APP_DEBUG": "true",
            "SITE_HOSTNAME": "env.example",
            "ANALYTICS_STORAGE_BACKEND": "JSON",
            "ANALYTICS_DATA_DIR": "/var/lib/analytics",
            "ANALYTICS_ACTIVE_WINDOW_SECONDS": "120",
            "ANALYTICS_TRENDING_THRESHOLD": "2.5",
            "ANALYTICS_FAILURE_THRESHOLD": "3",
            "ANALYTICS_RECOVERY_TIMEOUT": "15"
        }

        manager = load_manager({"app": {"port": 8080}}, env_vars)

        app_config = manager.get_app_config()
        assert app_config.host == "127.0.0.1"
        assert app_config.port == 9000
        assert app_config.debug is True
        assert app_config.site_hostname == "env.example"
        assert manager.get_storage_config().backend == "json"
        assert manager.get_storage_config().data_dir == "/var/lib/analytics"
        assert manager.get_tracking_config().active_window_seconds == 120
        assert manager.get_tracking_config().trending_threshold == 2.5
        assert manager.get_resilience_config().failure_threshold == 3
        assert manager.get_resilience_config().recovery_timeout_seconds == 15.0

    def test_unknown_storage_backend(self):
        """Test that an unsupported backend is rejected."""
        manager = load_manager({"storage": {"backend": "redis"}})

        with pytest.raises(ValueError):
            manager.get_storage_config()

    def test_retry_overrides(self):
        """Test per-operation retry overrides from the config file."""
        overrides = {"dashboard": {"max_retries": 4, "base_delay": 0.2}}
        manager = load_manager({"resilience": {"retry_overrides": overrides}})

        resilience_config = manager.get_resilience_config()
        assert resilience_config.retry_overrides == overrides
        assert resilience_config.failure_threshold == 5

    def test_typed_sections(self):
        """Test that each getter returns its dataclass."""
        manager = load_manager()

        assert isinstance(manager.get_app_config(), AppConfig)
        assert isinstance(manager.get_storage_config(), StorageConfig)
        assert isinstance(manager.get_tracking_config(), TrackingConfig)
        assert isinstance(manager.get_resilience_config(), ResilienceConfig)
        assert isinstance(manager.get_polling_config(), PollingConfig)

    def test_get_config_returns_copy(self):
        """Test that get_config does not expose the internal dictionary."""
        manager = load_manager()

        config = manager.get_config()
        config["extra"] = {}

        assert "extra" not in manager._config

    def test_save_config(self, tmp_path):
        """Test writing configuration back to its file."""
        config_file = tmp_path / "analytics_config.json"
        with patch.dict(os.environ, {}, clear=True):
            manager = ConfigManager(str(config_file))
            manager._config["app"]["port"] = 9100
            manager.save_config()

            saved = json.loads(config_file.read_text(encoding='utf-8'))
            assert saved["app"]["port"] == 9100
            assert ConfigManager(str(config_file)).get_app_config().port == 9100


class TestGlobalHelpers:
    """Test module level helpers backed by the global instance."""

    def test_getters(self):
        """Test that helpers return typed sections."""
        assert isinstance(get_app_config(), AppConfig)
        assert isinstance(get_storage_config(), StorageConfig)
        assert isinstance(get_tracking_config(), TrackingConfig)
        assert isinstance(get_resilience_config(), ResilienceConfig)
        assert isinstance(get_polling_config(), PollingConfig)

    def test_reload_config(self):
        """Test that reload re-reads the environment."""
        with patch.dict(os.environ, {"APP_PORT": "9300"}):
            reload_config()
            assert get_app_config().port == 9300
        reload_config()

    def test_save_config(self):
        """Test that save delegates to the global instance."""
        with patch('config_manager.config_manager') as mock_manager:
            save_config()
            mock_manager.save_config.assert_called_once()
