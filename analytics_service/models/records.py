"""
Persisted analytics records.
"""

from typing import Dict, Optional

from pydantic import Field

from .base import StoreModel, Timestamp


class PageViewEvent(StoreModel):
    """One navigation; written once and never mutated."""
    id: Optional[str] = None
    page: str
    title: str = ""
    article_id: Optional[str] = None
    referrer: Optional[str] = None
    user_agent: Optional[str] = None
    device: Optional[str] = None
    browser: Optional[str] = None
    os: Optional[str] = None
    country: Optional[str] = None
    session_id: str
    user_id: Optional[str] = None
    timestamp: Timestamp
    time_on_page: Optional[float] = None
    scroll_depth: Optional[float] = None
    exit_page: Optional[bool] = None


class RealTimeVisitor(StoreModel):
    """Presence record for one browsing session, keyed by session id."""
    id: Optional[str] = None
    session_id: str
    user_id: Optional[str] = None
    current_page: str
    last_seen: Timestamp
    session_start: Timestamp
    pages_viewed: int = 1
    device: Optional[str] = None
    browser: Optional[str] = None
    country: Optional[str] = None
    referrer: Optional[str] = None


class ArticlePerformance(StoreModel):
    """Running statistics for one article, keyed by article id."""
    id: Optional[str] = None
    article_id: str
    title: Optional[str] = None
    slug: Optional[str] = None
    category: Optional[str] = None
    views: int = 0
    unique_views: int = 0
    average_time_spent: float = 0.0
    bounce_rate: float = 0.0
    social_shares: int = 0
    comments: int = 0
    last_viewed: Optional[Timestamp] = None
    trending: bool = False
    trending_score: float = 0.0


class TrendingContent(StoreModel):
    """Windowed view counts and engagement score for one article."""
    id: Optional[str] = None
    article_id: str
    title: Optional[str] = None
    slug: Optional[str] = None
    category: Optional[str] = None
    views_24h: int = 0
    views_7d: int = 0
    views_growth: float = 0.0
    engagement_score: float = 0.0
    # Assigned when listing; only meaningful within one returned slice
    trending_rank: int = 0
    last_updated: Optional[Timestamp] = None


class UserSession(StoreModel):
    """Legacy per-visit session record."""
    id: Optional[str] = None
    session_id: str
    user_id: Optional[str] = None
    start_time: Timestamp
    end_time: Optional[Timestamp] = None
    page_views: int = 1
    duration: Optional[float] = None
    referrer: Optional[str] = None
    device: Optional[str] = None
    browser: Optional[str] = None
    country: Optional[str] = None


class DailySummary(StoreModel):
    """Per-day view counters, keyed by ISO date."""
    id: Optional[str] = None
    date: str
    total_views: int = 0
    unique_visitors: int = 0
    pages: Dict[str, int] = Field(default_factory=dict)
    last_updated: Optional[Timestamp] = None
