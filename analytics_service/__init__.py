# Analytics service package for blog view tracking and reporting

from .document_store import (
    DocumentStore,
    InMemoryDocumentStore,
    Filter,
    OrderBy,
    BatchOperation,
    Increment,
    SERVER_TIMESTAMP,
)
from .json_store import JsonFileDocumentStore
from .errors import (
    AnalyticsError,
    TransientStoreError,
    PermissionDeniedError,
    NotFoundError,
    InvalidInputError,
    CircuitOpenError,
)
from .resilience import (
    OperationType,
    RetryConfig,
    RETRY_CONFIGS,
    CircuitBreaker,
    CircuitState,
    ResilientExecutor,
    ResilientOperation,
    BatchResult,
    retry_operation,
    is_retryable_error,
)
from .presence import PresenceTracker
from .performance import PerformanceAggregator
from .trending import TrendingScorer, calculate_engagement_score, calculate_views_growth
from .sessions import SessionTracker, DailySummaryOperation
from .dashboard import DashboardComposer
from .ingestor import EventIngestor
from .fallback import FallbackFetcher, FetchState, AnalyticsPoller
from .service import AnalyticsService
from .logging_config import setup_logging, stop_logging

__all__ = [
    # Storage
    "DocumentStore",
    "InMemoryDocumentStore",
    "JsonFileDocumentStore",
    "Filter",
    "OrderBy",
    "BatchOperation",
    "Increment",
    "SERVER_TIMESTAMP",

    # Errors
    "AnalyticsError",
    "TransientStoreError",
    "PermissionDeniedError",
    "NotFoundError",
    "InvalidInputError",
    "CircuitOpenError",

    # Resilience
    "OperationType",
    "RetryConfig",
    "RETRY_CONFIGS",
    "CircuitBreaker",
    "CircuitState",
    "ResilientExecutor",
    "ResilientOperation",
    "BatchResult",
    "retry_operation",
    "is_retryable_error",
    "FallbackFetcher",
    "FetchState",
    "AnalyticsPoller",

    # Components
    "PresenceTracker",
    "PerformanceAggregator",
    "TrendingScorer",
    "calculate_engagement_score",
    "calculate_views_growth",
    "SessionTracker",
    "DailySummaryOperation",
    "DashboardComposer",
    "EventIngestor",
    "AnalyticsService",

    # Logging
    "setup_logging",
    "stop_logging",
]
