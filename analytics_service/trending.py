"""
Trending Scorer

Recomputes a time-windowed engagement score for an article from its raw page
view history and materializes it as a TrendingContent record.
"""

import logging
import math
from datetime import datetime, timedelta
from typing import Callable, List

from .document_store import (
    ARTICLE_PERFORMANCE_COLLECTION,
    PAGE_VIEWS_COLLECTION,
    SERVER_TIMESTAMP,
    TRENDING_COLLECTION,
    DocumentStore,
    Filter,
    OrderBy,
)
from .models import ArticlePerformance, TrendingContent
from .timeutils import utc_now

logger = logging.getLogger(__name__)

RECENT_WEIGHT = 0.7
TOTAL_WEIGHT = 0.3
VELOCITY_FACTOR = 2.0
DEFAULT_TRENDING_THRESHOLD = 10.0


def calculate_engagement_score(views_24h: int, views_7d: int) -> float:
    """Recency-weighted popularity with a logarithmic velocity bonus.

    The bonus lets a jump on a normally quiet article register without being
    swamped by articles that always draw high traffic.
    """
    velocity_bonus = math.log(views_24h + 1) * VELOCITY_FACTOR if views_24h > 0 else 0.0
    return views_24h * RECENT_WEIGHT + views_7d * TOTAL_WEIGHT + velocity_bonus


def calculate_views_growth(views_24h: int, views_7d: int) -> float:
    """Last day's views as a percentage of the preceding six days' views."""
    if views_24h <= 0:
        return 0.0
    return (views_24h / max(views_7d - views_24h, 1)) * 100


class TrendingScorer:
    """Maintains TrendingContent records and the trending flag on ArticlePerformance."""

    def __init__(
        self,
        store: DocumentStore,
        threshold: float = DEFAULT_TRENDING_THRESHOLD,
        clock: Callable[[], datetime] = utc_now,
    ):
        """
        Initialize TrendingScorer.

        Args:
            store: Document store holding page views and trending records
            threshold: Engagement score above which an article counts as trending
            clock: Current time source
        """
        self.store = store
        self.threshold = threshold
        self._clock = clock

    def count_views_in_period(self, article_id: str, start: datetime, end: datetime) -> int:
        """Number of stored page views of ``article_id`` with ``start <= timestamp <= end``."""
        return self.store.count_documents(
            PAGE_VIEWS_COLLECTION,
            [
                Filter("articleId", "==", article_id),
                Filter("timestamp", ">=", start),
                Filter("timestamp", "<=", end),
            ],
        )

    def recompute(self, article_id: str) -> TrendingContent:
        """Refresh the windowed counts and engagement score for one article.

        Returns:
            The TrendingContent values that were written
        """
        now = self._clock()
        views_24h = self.count_views_in_period(article_id, now - timedelta(hours=24), now)
        views_7d = self.count_views_in_period(article_id, now - timedelta(days=7), now)

        engagement_score = calculate_engagement_score(views_24h, views_7d)
        is_trending = engagement_score > self.threshold

        performance = ArticlePerformance.from_document(
            self.store.get_document(ARTICLE_PERFORMANCE_COLLECTION, article_id)
        )

        trending = TrendingContent(
            article_id=article_id,
            title=performance.title if performance else None,
            slug=performance.slug if performance else None,
            category=performance.category if performance else None,
            views_24h=views_24h,
            views_7d=views_7d,
            views_growth=calculate_views_growth(views_24h, views_7d),
            engagement_score=engagement_score,
        )

        document = trending.to_document()
        document["lastUpdated"] = SERVER_TIMESTAMP
        self.store.set_document(TRENDING_COLLECTION, article_id, document, merge=True)

        # Keep the performance record's copy of the score consistent
        self.store.set_document(
            ARTICLE_PERFORMANCE_COLLECTION,
            article_id,
            {"articleId": article_id, "trending": is_trending, "trendingScore": engagement_score},
            merge=True,
        )

        logger.debug(
            f"Trending recomputed for {article_id}: 24h={views_24h} 7d={views_7d} "
            f"score={engagement_score:.2f} trending={is_trending}"
        )
        return trending

    def list_trending(self, limit: int = 10) -> List[TrendingContent]:
        """Top ``limit`` articles by engagement score.

        Rank is the 1-based position within this slice, not a global rank.
        """
        documents = self.store.query_documents(
            TRENDING_COLLECTION,
            order_by=OrderBy("engagementScore", descending=True),
            limit=limit,
        )
        results = []
        for rank, document in enumerate(documents, start=1):
            item = TrendingContent.from_document(document)
            item.trending_rank = rank
            results.append(item)
        return results
