"""
Performance Aggregator

Per-article running statistics updated incrementally on every article view.
"""

import logging
from typing import List, Optional

from .document_store import (
    ARTICLE_PERFORMANCE_COLLECTION,
    SERVER_TIMESTAMP,
    TRENDING_COLLECTION,
    DocumentStore,
    Increment,
    OrderBy,
)
from .errors import InvalidInputError
from .models import ArticleMeta, ArticlePerformance, to_camel
from .trending import TrendingScorer

logger = logging.getLogger(__name__)

POPULAR_PERIODS = ("24h", "7d", "30d", "all")


def running_average(previous_average: float, previous_views: int, new_value: float) -> float:
    """Average after one more sample, weighted by the pre-increment count."""
    return (previous_average * previous_views + new_value) / (previous_views + 1)


class PerformanceAggregator:
    """Maintains ArticlePerformance records."""

    def __init__(
        self,
        store: DocumentStore,
        trending: Optional[TrendingScorer] = None,
    ):
        """
        Initialize PerformanceAggregator.

        Args:
            store: Document store holding performance records
            trending: Scorer refreshed after every recorded view
        """
        self.store = store
        self.trending = trending

    def record_article_view(
        self,
        article_id: str,
        time_spent_seconds: Optional[float] = None,
        meta: Optional[ArticleMeta] = None,
    ) -> None:
        """Count one view of ``article_id`` and fold its dwell time into the average.

        The view counter uses an atomic increment; the average is a plain
        read-modify-write, so concurrent views of one article may drop an
        average update.
        """
        if not article_id:
            raise InvalidInputError("article_id is required")

        meta_fields = {to_camel(name): value for name, value in (meta.to_fields() if meta else {}).items()}
        current = self.store.get_document(ARTICLE_PERFORMANCE_COLLECTION, article_id)

        if current is None or "views" not in current:
            record = ArticlePerformance(
                article_id=article_id,
                views=1,
                unique_views=1,
                average_time_spent=time_spent_seconds if time_spent_seconds is not None else 0.0,
            )
            document = record.to_document()
            document.update(meta_fields)
            document["lastViewed"] = SERVER_TIMESTAMP
            self.store.set_document(ARTICLE_PERFORMANCE_COLLECTION, article_id, document, merge=True)
            logger.info(f"Created performance record for article {article_id}")
        else:
            update = {"views": Increment(1), "lastViewed": SERVER_TIMESTAMP}
            if time_spent_seconds is not None:
                update["averageTimeSpent"] = running_average(
                    current.get("averageTimeSpent", 0.0),
                    current.get("views", 0),
                    time_spent_seconds,
                )
            update.update(meta_fields)
            self.store.update_document_fields(ARTICLE_PERFORMANCE_COLLECTION, article_id, update)

        self._refresh_trending(article_id)

    def _refresh_trending(self, article_id: str) -> None:
        if self.trending is None:
            return
        try:
            self.trending.recompute(article_id)
        except Exception as e:
            # The view itself is recorded; a stale score is corrected on the next view
            logger.warning(f"Trending recompute failed for article {article_id}: {e}")

    def get_article_stats(self, article_id: str) -> Optional[ArticlePerformance]:
        """Performance record for one article, or None if it has never been viewed."""
        return ArticlePerformance.from_document(
            self.store.get_document(ARTICLE_PERFORMANCE_COLLECTION, article_id)
        )

    def list_top_articles(self, limit: int = 10, order_by: str = "views") -> List[ArticlePerformance]:
        """Articles ordered by a performance field, highest first.

        Args:
            limit: Maximum number of articles
            order_by: Python or stored name of the field to rank by
        """
        stored_field = to_camel(order_by)
        documents = self.store.query_documents(
            ARTICLE_PERFORMANCE_COLLECTION,
            order_by=OrderBy(stored_field, descending=True),
            limit=limit,
        )
        return [ArticlePerformance.from_document(doc) for doc in documents]

    def get_popular_articles(self, period: str = "7d", limit: int = 10) -> List[ArticlePerformance]:
        """Most viewed articles for a period.

        ``"all"`` ranks by lifetime views. Other periods rank by the windowed
        counts that only exist on trending records, then fetch the matching
        performance records by id. ``"30d"`` falls back to the 7-day count.
        """
        if period not in POPULAR_PERIODS:
            raise InvalidInputError(f"Unknown period {period!r}, expected one of {POPULAR_PERIODS}")

        if period == "all":
            return self.list_top_articles(limit=limit, order_by="views")

        window_field = "views24h" if period == "24h" else "views7d"
        trending_docs = self.store.query_documents(
            TRENDING_COLLECTION,
            order_by=OrderBy(window_field, descending=True),
            limit=limit,
        )

        articles = []
        for trending_doc in trending_docs:
            article_id = trending_doc.get("articleId") or trending_doc["id"]
            record = self.get_article_stats(article_id)
            if record is not None:
                articles.append(record)
        return articles
