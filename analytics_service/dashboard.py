"""
Dashboard Composer

Assembles the admin dashboard read-model from presence, trending, article
performance, raw page views and session records. The sources are queried
concurrently and each one that fails is replaced by its empty default, so a
single broken source never blanks the whole dashboard.
"""

import logging
from collections import Counter, defaultdict
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from .document_store import PAGE_VIEWS_COLLECTION, DocumentStore, Filter
from .models import (
    DashboardData,
    DateRange,
    Overview,
    PageViewEvent,
    PageViewsAnalytics,
    RealTimeData,
    SessionMetrics,
    TopArticle,
    TopPage,
    TrafficSource,
)
from .performance import PerformanceAggregator
from .presence import PresenceTracker
from .referrers import is_internal_referrer, referrer_hostname
from .sessions import SessionTracker
from .timeutils import utc_now
from .trending import TrendingScorer

logger = logging.getLogger(__name__)

DEFAULT_RANGE_DAYS = 7
TRENDING_LIMIT = 5
POPULAR_LIMIT = 10
TOP_ARTICLES_SHOWN = 5
TOP_PAGES_LIMIT = 10
TRAFFIC_SOURCES_LIMIT = 5


class DashboardComposer:
    """Builds DashboardData."""

    def __init__(
        self,
        store: DocumentStore,
        presence: PresenceTracker,
        performance: PerformanceAggregator,
        trending: TrendingScorer,
        sessions: Optional[SessionTracker] = None,
        site_hostname: Optional[str] = None,
        clock: Callable[[], datetime] = utc_now,
        max_workers: int = 5,
    ):
        """
        Initialize DashboardComposer.

        Args:
            store: Document store holding raw page views
            presence: Source of active visitors
            performance: Source of popular articles
            trending: Source of trending content
            sessions: Source of session duration and bounce rate; zeros when omitted
            site_hostname: Referrers from this host are internal navigation, not traffic sources
            clock: Current time source for the default date range
            max_workers: Threads used for the concurrent source queries
        """
        self.store = store
        self.presence = presence
        self.performance = performance
        self.trending = trending
        self.sessions = sessions
        self.site_hostname = site_hostname
        self._clock = clock
        self.max_workers = max_workers

    def get_dashboard(self, date_range: Optional[DateRange] = None) -> DashboardData:
        """Consolidated dashboard for ``date_range`` (the trailing week by default).

        Never raises; a failed source contributes its empty default.
        """
        date_range = date_range or DateRange.last_days(DEFAULT_RANGE_DAYS, now=self._clock())

        sources: Dict[str, Callable[[], Any]] = {
            "active_visitors": self.presence.list_active,
            "trending": lambda: self.trending.list_trending(TRENDING_LIMIT),
            "popular_articles": lambda: self.performance.get_popular_articles("7d", POPULAR_LIMIT),
            "page_views": lambda: self.get_page_views_analytics(date_range),
            "session_metrics": lambda: (
                self.sessions.get_session_metrics(date_range) if self.sessions else SessionMetrics()
            ),
        }
        defaults: Dict[str, Callable[[], Any]] = {
            "active_visitors": list,
            "trending": list,
            "popular_articles": list,
            "page_views": PageViewsAnalytics,
            "session_metrics": SessionMetrics,
        }

        results: Dict[str, Any] = {}
        with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="dashboard") as pool:
            futures = {name: pool.submit(source) for name, source in sources.items()}
            for name, future in futures.items():
                try:
                    results[name] = future.result()
                except Exception as e:
                    logger.warning(f"Dashboard source '{name}' failed, using empty default: {e}")
                    results[name] = defaults[name]()

        visitors = results["active_visitors"]
        page_views: PageViewsAnalytics = results["page_views"]
        session_metrics: SessionMetrics = results["session_metrics"]

        top_articles = [
            TopArticle(
                article_id=article.article_id,
                title=article.title or f"Article {article.article_id}",
                slug=article.slug or article.article_id,
                views=article.views,
                engagement_score=article.trending_score,
            )
            for article in results["popular_articles"][:TOP_ARTICLES_SHOWN]
        ]

        return DashboardData(
            overview=Overview(
                total_page_views=page_views.total_views,
                unique_visitors=page_views.unique_visitors,
                average_session_duration=session_metrics.average_session_duration,
                bounce_rate=session_metrics.bounce_rate,
                real_time_visitors=len(visitors),
            ),
            top_pages=page_views.top_pages,
            top_articles=top_articles,
            trending_content=results["trending"],
            traffic_sources=page_views.traffic_sources,
            device_breakdown=page_views.device_breakdown,
            real_time_data=RealTimeData(
                active_visitors=visitors,
                current_page_views=PresenceTracker.current_page_views(visitors),
            ),
        )

    def get_page_views_analytics(self, date_range: DateRange) -> PageViewsAnalytics:
        """Aggregate the raw page views stored within ``date_range``."""
        documents = self.store.query_documents(
            PAGE_VIEWS_COLLECTION,
            [
                Filter("timestamp", ">=", date_range.start),
                Filter("timestamp", "<=", date_range.end),
            ],
        )
        page_views = [PageViewEvent.from_document(doc) for doc in documents]
        total_views = len(page_views)

        pages: Dict[str, Dict[str, Any]] = defaultdict(
            lambda: {"title": "", "views": 0, "sessions": set(), "total_time": 0.0, "timed": 0}
        )
        for pv in page_views:
            entry = pages[pv.page]
            entry["title"] = entry["title"] or pv.title
            entry["views"] += 1
            entry["sessions"].add(pv.session_id)
            if pv.time_on_page:
                entry["total_time"] += pv.time_on_page
                entry["timed"] += 1

        top_pages = sorted(
            (
                TopPage(
                    page=page,
                    title=entry["title"],
                    views=entry["views"],
                    unique_views=len(entry["sessions"]),
                    average_time=entry["total_time"] / entry["timed"] if entry["timed"] else 0.0,
                )
                for page, entry in pages.items()
            ),
            key=lambda top_page: top_page.views,
            reverse=True,
        )[:TOP_PAGES_LIMIT]

        sources = Counter(
            referrer_hostname(pv.referrer)
            for pv in page_views
            if pv.referrer
            and referrer_hostname(pv.referrer)
            and not is_internal_referrer(pv.referrer, self.site_hostname)
        )
        traffic_sources = [
            TrafficSource(source=source, visits=visits, percentage=(visits / total_views) * 100)
            for source, visits in sources.most_common(TRAFFIC_SOURCES_LIMIT)
        ]

        return PageViewsAnalytics(
            total_views=total_views,
            unique_visitors=len({pv.session_id for pv in page_views}),
            top_pages=top_pages,
            traffic_sources=traffic_sources,
            device_breakdown=dict(Counter(pv.device or "Unknown" for pv in page_views)),
        )
