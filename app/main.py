from dataclasses import replace
from pathlib import Path
from typing import Optional

from flask import Flask, jsonify, request
from werkzeug.middleware.proxy_fix import ProxyFix

# Import configuration management
import sys
sys.path.append(str(Path(__file__).parent.parent))
from config_manager import ConfigManager

from analytics_service import (
    AnalyticsPoller,
    AnalyticsService,
    CircuitBreaker,
    DocumentStore,
    FallbackFetcher,
    InMemoryDocumentStore,
    JsonFileDocumentStore,
    OperationType,
    ResilientExecutor,
    RetryConfig,
    RETRY_CONFIGS,
)


# -----------------------------------------------------------------------------
# Wiring helpers
# -----------------------------------------------------------------------------

def build_store(config_manager: ConfigManager) -> DocumentStore:
    """Create the document store selected by the storage configuration."""
    storage_config = config_manager.get_storage_config()
    if storage_config.backend == "json":
        data_dir = Path(storage_config.data_dir)
        if not data_dir.is_absolute():
            data_dir = Path(__file__).parent.parent / data_dir
        return JsonFileDocumentStore(data_dir)
    return InMemoryDocumentStore()


def build_executor(config_manager: ConfigManager) -> ResilientExecutor:
    """Create the shared retry and circuit-breaker policy."""
    resilience_config = config_manager.get_resilience_config()
    retry_configs: dict[OperationType, RetryConfig] = {}
    for op_name, overrides in resilience_config.retry_overrides.items():
        op_type = OperationType(op_name)
        retry_configs[op_type] = replace(RETRY_CONFIGS[op_type], **overrides)

    breaker = CircuitBreaker(
        failure_threshold=resilience_config.failure_threshold,
        recovery_timeout=resilience_config.recovery_timeout_seconds,
    )
    return ResilientExecutor(circuit_breaker=breaker, retry_configs=retry_configs)


def build_service(config_manager: ConfigManager, store: Optional[DocumentStore] = None) -> AnalyticsService:
    """Create the analytics service from configuration."""
    app_config = config_manager.get_app_config()
    tracking_config = config_manager.get_tracking_config()
    return AnalyticsService(
        store=store or build_store(config_manager),
        executor=build_executor(config_manager),
        active_window_seconds=tracking_config.active_window_seconds,
        cleanup_max_age_seconds=tracking_config.cleanup_max_age_seconds,
        trending_threshold=tracking_config.trending_threshold,
        site_hostname=app_config.site_hostname,
    )


def build_poller(config_manager: ConfigManager, service: AnalyticsService) -> AnalyticsPoller:
    """Create the background poller that keeps the dashboard warm and sweeps presence."""
    polling_config = config_manager.get_polling_config()
    dashboard_fetcher = FallbackFetcher(
        service.get_dashboard,
        stale_time=polling_config.dashboard_stale_seconds,
    )
    return AnalyticsPoller(
        service,
        dashboard_fetcher,
        dashboard_refresh_seconds=polling_config.dashboard_refresh_seconds,
        cleanup_interval_seconds=polling_config.cleanup_interval_seconds,
        health_check_seconds=polling_config.health_check_seconds,
    )


# -----------------------------------------------------------------------------
# Application factory
# -----------------------------------------------------------------------------

def create_app(config_manager: Optional[ConfigManager] = None, store: Optional[DocumentStore] = None) -> Flask:
    """Create the Flask application with the analytics module registered.

    Args:
        config_manager: Configuration source (the default config file if omitted)
        store: Document store to use instead of the configured backend
    """
    config_manager = config_manager or ConfigManager()

    flask_app = Flask(__name__)
    flask_app.wsgi_app = ProxyFix(
            flask_app.wsgi_app,
            x_proto = 1,     # trust 1 hop for X-Forwarded-Proto
            x_host  = 1,     # trust 1 hop for X-Forwarded-Host
            x_prefix= 1)     # <-- pay attention to X-Forwarded-Prefix

    service = build_service(config_manager, store)

    # Initialize analytics module
    from app.analytics.factory import create_analytics_module

    analytics_module = create_analytics_module(service)
    flask_app.register_blueprint(analytics_module["blueprint"])
    flask_app.extensions["analytics_service"] = analytics_module["service"]
    # Started by run_app; tests drive the service directly
    flask_app.extensions["analytics_poller"] = build_poller(config_manager, service)

    @flask_app.route("/test", methods=["GET"])
    def test_endpoint():
        """Test endpoint to verify routing is working."""
        return jsonify({
            "status": "ok",
            "message": "Test endpoint working",
            "path": request.path,
        })

    return flask_app


app = create_app()
