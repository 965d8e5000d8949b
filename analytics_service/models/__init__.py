"""
Models package for analytics records, inputs and read-models.
"""

from .base import StoreModel, Timestamp, to_camel

from .records import (
    PageViewEvent,
    RealTimeVisitor,
    ArticlePerformance,
    TrendingContent,
    UserSession,
    DailySummary,
)

from .events import (
    DeviceInfo,
    ArticleMeta,
    PageViewEventInput,
    SessionStartInput,
)

from .dashboard import (
    DateRange,
    TopPage,
    TopArticle,
    TrafficSource,
    PageViewers,
    Overview,
    RealTimeData,
    PageViewsAnalytics,
    SessionMetrics,
    DashboardData,
    PageCount,
    ReferrerCount,
    AnalyticsSummary,
    RealTimeMetrics,
)

__all__ = [
    # Base
    "StoreModel",
    "Timestamp",
    "to_camel",

    # Records
    "PageViewEvent",
    "RealTimeVisitor",
    "ArticlePerformance",
    "TrendingContent",
    "UserSession",
    "DailySummary",

    # Inputs
    "DeviceInfo",
    "ArticleMeta",
    "PageViewEventInput",
    "SessionStartInput",

    # Read-models
    "DateRange",
    "TopPage",
    "TopArticle",
    "TrafficSource",
    "PageViewers",
    "Overview",
    "RealTimeData",
    "PageViewsAnalytics",
    "SessionMetrics",
    "DashboardData",
    "PageCount",
    "ReferrerCount",
    "AnalyticsSummary",
    "RealTimeMetrics",
]
