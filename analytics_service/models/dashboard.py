"""
Read-models assembled for the admin dashboard and the legacy summary.
"""

from datetime import datetime, timedelta
from typing import Dict, List, Optional

from pydantic import Field, model_validator

from ..errors import InvalidInputError
from ..timeutils import utc_now
from .base import StoreModel, Timestamp
from .records import RealTimeVisitor, TrendingContent


class DateRange(StoreModel):
    """Inclusive time range for historical queries."""
    start: Timestamp
    end: Timestamp

    @model_validator(mode="after")
    def _check_order(self) -> "DateRange":
        if self.start > self.end:
            raise InvalidInputError("Date range start must not be after its end")
        return self

    @classmethod
    def last_days(cls, days: int, now: Optional[datetime] = None) -> "DateRange":
        """The trailing ``days`` days ending at ``now``."""
        end = now or utc_now()
        return cls(start=end - timedelta(days=days), end=end)


class TopPage(StoreModel):
    page: str
    title: str = ""
    views: int = 0
    unique_views: int = 0
    average_time: float = 0.0


class TopArticle(StoreModel):
    article_id: str
    title: str
    slug: str
    views: int = 0
    engagement_score: float = 0.0


class TrafficSource(StoreModel):
    source: str
    visits: int
    percentage: float


class PageViewers(StoreModel):
    page: str
    viewers: int


class Overview(StoreModel):
    total_page_views: int = 0
    unique_visitors: int = 0
    average_session_duration: float = 0.0
    bounce_rate: float = 0.0
    real_time_visitors: int = 0


class RealTimeData(StoreModel):
    active_visitors: List[RealTimeVisitor] = Field(default_factory=list)
    current_page_views: List[PageViewers] = Field(default_factory=list)


class PageViewsAnalytics(StoreModel):
    """Aggregation of raw page views over a date range."""
    total_views: int = 0
    unique_visitors: int = 0
    top_pages: List[TopPage] = Field(default_factory=list)
    traffic_sources: List[TrafficSource] = Field(default_factory=list)
    device_breakdown: Dict[str, int] = Field(default_factory=dict)


class SessionMetrics(StoreModel):
    """Duration and bounce figures derived from legacy session records."""
    session_count: int = 0
    average_session_duration: float = 0.0
    bounce_rate: float = 0.0


class DashboardData(StoreModel):
    """Consolidated read-model for the analytics dashboard."""
    overview: Overview = Field(default_factory=Overview)
    top_pages: List[TopPage] = Field(default_factory=list)
    top_articles: List[TopArticle] = Field(default_factory=list)
    trending_content: List[TrendingContent] = Field(default_factory=list)
    traffic_sources: List[TrafficSource] = Field(default_factory=list)
    device_breakdown: Dict[str, int] = Field(default_factory=dict)
    real_time_data: RealTimeData = Field(default_factory=RealTimeData)

    @classmethod
    def empty(cls) -> "DashboardData":
        return cls()


class ReferrerCount(StoreModel):
    referrer: str
    visits: int


class PageCount(StoreModel):
    page: str
    views: int


class AnalyticsSummary(StoreModel):
    """Date-range summary computed by the legacy session path."""
    total_page_views: int = 0
    unique_visitors: int = 0
    average_session_duration: float = 0.0
    bounce_rate: float = 0.0
    top_pages: List[PageCount] = Field(default_factory=list)
    top_referrers: List[ReferrerCount] = Field(default_factory=list)
    device_breakdown: Dict[str, int] = Field(default_factory=dict)
    country_breakdown: Dict[str, int] = Field(default_factory=dict)


class RealTimeMetrics(StoreModel):
    """Trailing-window figures computed from raw page views and sessions."""
    active_users: int = 0
    page_views_last_24h: int = 0
    top_pages_last_24h: List[PageCount] = Field(default_factory=list)
