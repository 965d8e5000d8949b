"""
service.py - Unified analytics service interface

Builds every analytics component over one document store and routes each call
through the shared resilience executor with the retry policy of its kind.
"""

import logging
from datetime import datetime
from typing import Callable, List, Optional, Sequence

from .dashboard import DashboardComposer
from .document_store import DocumentStore, InMemoryDocumentStore, Unsubscribe
from .errors import InvalidInputError
from .ingestor import EventIngestor
from .models import (
    AnalyticsSummary,
    ArticlePerformance,
    DashboardData,
    DateRange,
    PageViewEventInput,
    RealTimeMetrics,
    RealTimeVisitor,
    SessionStartInput,
    TrendingContent,
)
from .performance import PerformanceAggregator
from .presence import (
    DEFAULT_ACTIVE_WINDOW_SECONDS,
    DEFAULT_CLEANUP_MAX_AGE_SECONDS,
    PresenceTracker,
)
from .resilience import CircuitBreaker, OperationType, ResilientExecutor
from .sessions import DailySummaryOperation, SessionTracker
from .timeutils import utc_now
from .trending import DEFAULT_TRENDING_THRESHOLD, TrendingScorer

logger = logging.getLogger(__name__)


class AnalyticsService:
    """Unified analytics service for tracking and reporting."""

    def __init__(
        self,
        store: Optional[DocumentStore] = None,
        executor: Optional[ResilientExecutor] = None,
        clock: Callable[[], datetime] = utc_now,
        active_window_seconds: float = DEFAULT_ACTIVE_WINDOW_SECONDS,
        cleanup_max_age_seconds: float = DEFAULT_CLEANUP_MAX_AGE_SECONDS,
        trending_threshold: float = DEFAULT_TRENDING_THRESHOLD,
        site_hostname: Optional[str] = None,
    ):
        """
        Initialize the analytics service.

        Args:
            store: Document store shared by every component (in-memory if omitted)
            executor: Retry and circuit-breaker policy applied to every call
            clock: Current time source
            active_window_seconds: Presence window for "currently active"
            cleanup_max_age_seconds: Age at which the sweep deletes presence records
            trending_threshold: Engagement score above which an article is trending
            site_hostname: Host whose referrers are internal navigation
        """
        self.store = store or InMemoryDocumentStore(clock=clock)
        self.executor = executor or ResilientExecutor()

        self.presence = PresenceTracker(
            self.store,
            clock=clock,
            active_window_seconds=active_window_seconds,
            cleanup_max_age_seconds=cleanup_max_age_seconds,
        )
        self.trending = TrendingScorer(self.store, threshold=trending_threshold, clock=clock)
        self.performance = PerformanceAggregator(self.store, trending=self.trending)
        self.sessions = SessionTracker(self.store, clock=clock, site_hostname=site_hostname)
        self.ingestor = EventIngestor(
            self.store,
            self.presence,
            self.performance,
            executor=self.executor,
            sessions=self.sessions,
        )
        self.dashboard = DashboardComposer(
            self.store,
            self.presence,
            self.performance,
            self.trending,
            sessions=self.sessions,
            site_hostname=site_hostname,
            clock=clock,
        )
        self._clock = clock

    @property
    def circuit_breaker(self) -> CircuitBreaker:
        return self.executor.circuit_breaker

    # ------------------------------------------------------------------
    # Tracking
    # ------------------------------------------------------------------

    def record_view(self, event: PageViewEventInput) -> None:
        """Record a page view. Never raises."""
        self.ingestor.record_view(event)

    def start_session(self, session: SessionStartInput) -> str:
        return self.executor.execute(
            lambda: self.sessions.start_session(session),
            OperationType.PAGE_VIEW,
            {"operation": "start_session", "session_id": session.session_id},
        )

    def end_session(self, session_id: str, duration: float) -> None:
        self.executor.execute(
            lambda: self.sessions.end_session(session_id, duration),
            OperationType.PAGE_VIEW,
            {"operation": "end_session", "session_id": session_id},
        )

    def batch_update_daily_summary(self, operations: Sequence[DailySummaryOperation]) -> None:
        self.executor.execute(
            lambda: self.sessions.batch_update_daily_summary(operations),
            OperationType.DAILY_SUMMARY,
            {"operation": "batch_update_daily_summary", "count": len(operations)},
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_dashboard(self, date_range: Optional[DateRange] = None) -> DashboardData:
        return self.executor.execute(
            lambda: self.dashboard.get_dashboard(date_range),
            OperationType.DASHBOARD,
            {"operation": "get_dashboard"},
        )

    def list_trending(self, limit: int = 10) -> List[TrendingContent]:
        return self.executor.execute(
            lambda: self.trending.list_trending(limit),
            OperationType.DASHBOARD,
            {"operation": "list_trending", "limit": limit},
        )

    def list_top_articles(self, limit: int = 10, order_by: str = "views") -> List[ArticlePerformance]:
        return self.executor.execute(
            lambda: self.performance.list_top_articles(limit, order_by),
            OperationType.DASHBOARD,
            {"operation": "list_top_articles", "limit": limit},
        )

    def get_popular_articles(self, period: str = "7d", limit: int = 10) -> List[ArticlePerformance]:
        return self.executor.execute(
            lambda: self.performance.get_popular_articles(period, limit),
            OperationType.DASHBOARD,
            {"operation": "get_popular_articles", "period": period},
        )

    def get_article_stats(self, article_id: str) -> Optional[ArticlePerformance]:
        return self.executor.execute(
            lambda: self.performance.get_article_stats(article_id),
            OperationType.DASHBOARD,
            {"operation": "get_article_stats", "article_id": article_id},
        )

    def get_analytics_summary(self, date_range: DateRange) -> AnalyticsSummary:
        return self.executor.execute(
            lambda: self.sessions.get_analytics_summary(date_range),
            OperationType.DAILY_SUMMARY,
            {"operation": "get_analytics_summary"},
        )

    # ------------------------------------------------------------------
    # Real-time
    # ------------------------------------------------------------------

    def list_active_visitors(self, window_seconds: Optional[float] = None) -> List[RealTimeVisitor]:
        return self.executor.execute(
            lambda: self.presence.list_active(window_seconds),
            OperationType.REAL_TIME,
            {"operation": "list_active_visitors"},
        )

    def subscribe_real_time(self, callback: Callable[[List[RealTimeVisitor]], None]) -> Unsubscribe:
        """Push active visitors to ``callback`` now and whenever presence changes."""
        if not callable(callback):
            raise InvalidInputError("callback must be callable")
        return self.executor.execute(
            lambda: self.presence.subscribe(callback),
            OperationType.REAL_TIME,
            {"operation": "subscribe_real_time"},
        )

    def get_real_time_metrics(self) -> RealTimeMetrics:
        return self.executor.execute(
            self.sessions.get_real_time_metrics,
            OperationType.REAL_TIME,
            {"operation": "get_real_time_metrics"},
        )

    def sweep_expired(self, max_age_seconds: Optional[float] = None) -> int:
        return self.executor.execute(
            lambda: self.presence.sweep_expired(max_age_seconds),
            OperationType.REAL_TIME,
            {"operation": "sweep_expired"},
        )

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    def get_health(self) -> dict:
        breaker = self.circuit_breaker.get_state()
        return {
            "healthy": breaker["state"] != "open",
            "circuitBreaker": breaker,
            "checkedAt": self._clock().isoformat(),
        }
