"""
Tests for trending score calculation and materialization.
"""

import math

import pytest

from analytics_service.document_store import (
    ARTICLE_PERFORMANCE_COLLECTION,
    PAGE_VIEWS_COLLECTION,
    TRENDING_COLLECTION,
)
from analytics_service.trending import (
    TrendingScorer,
    calculate_engagement_score,
    calculate_views_growth,
)


@pytest.fixture
def scorer(store, clock):
    return TrendingScorer(store, clock=clock)


def add_views(store, clock, article_id, count):
    for index in range(count):
        store.add_document(
            PAGE_VIEWS_COLLECTION,
            {"articleId": article_id, "page": f"/{article_id}", "sessionId": f"s{index}", "timestamp": clock()},
        )


class TestFormulas:
    """Test the pure scoring helpers."""

    def test_engagement_score(self):
        expected = 5 * 0.7 + 8 * 0.3 + math.log(6) * 2
        assert calculate_engagement_score(5, 8) == pytest.approx(expected)

    def test_no_velocity_bonus_without_recent_views(self):
        assert calculate_engagement_score(0, 10) == pytest.approx(3.0)

    def test_score_monotonic_in_recent_views(self):
        scores = [calculate_engagement_score(views_24h, 50) for views_24h in range(0, 51)]
        assert all(later >= earlier for earlier, later in zip(scores, scores[1:]))

    def test_views_growth(self):
        assert calculate_views_growth(5, 8) == pytest.approx(166.666, rel=1e-3)
        assert calculate_views_growth(0, 8) == 0.0
        # All weekly views happened today
        assert calculate_views_growth(4, 4) == 400.0


class TestRecompute:
    """Test windowed counts and stored records."""

    def test_windowed_counts(self, scorer, store, clock):
        add_views(store, clock, "a1", 3)
        clock.advance(days=2)
        add_views(store, clock, "a1", 5)
        clock.advance(hours=1)

        trending = scorer.recompute("a1")

        assert trending.views_24h == 5
        assert trending.views_7d == 8
        assert trending.views_growth == pytest.approx(166.7, abs=0.05)

    def test_views_older_than_a_week_ignored(self, scorer, store, clock):
        add_views(store, clock, "a1", 4)
        clock.advance(days=8)

        trending = scorer.recompute("a1")
        assert trending.views_7d == 0
        assert trending.engagement_score == 0.0

    def test_writes_trending_and_flags_performance(self, scorer, store, clock):
        store.set_document(ARTICLE_PERFORMANCE_COLLECTION, "a1", {"articleId": "a1", "title": "Hot", "views": 20})
        add_views(store, clock, "a1", 20)

        scorer.recompute("a1")

        trending_doc = store.get_document(TRENDING_COLLECTION, "a1")
        performance_doc = store.get_document(ARTICLE_PERFORMANCE_COLLECTION, "a1")
        assert trending_doc["title"] == "Hot"
        assert trending_doc["lastUpdated"] == clock()
        assert performance_doc["trending"] is True
        assert performance_doc["trendingScore"] == trending_doc["engagementScore"]
        assert performance_doc["views"] == 20

    def test_below_threshold_not_trending(self, scorer, store, clock):
        add_views(store, clock, "a1", 1)
        scorer.recompute("a1")

        assert store.get_document(ARTICLE_PERFORMANCE_COLLECTION, "a1")["trending"] is False

    def test_threshold_is_configurable(self, store, clock):
        add_views(store, clock, "a1", 1)
        TrendingScorer(store, threshold=0.5, clock=clock).recompute("a1")

        assert store.get_document(ARTICLE_PERFORMANCE_COLLECTION, "a1")["trending"] is True


class TestListTrending:
    """Test ranking."""

    def test_ranked_by_score(self, scorer, store, clock):
        for article_id, count in (("low", 1), ("high", 9), ("mid", 4)):
            add_views(store, clock, article_id, count)
            scorer.recompute(article_id)

        ranked = scorer.list_trending(limit=2)

        assert [t.article_id for t in ranked] == ["high", "mid"]
        assert [t.trending_rank for t in ranked] == [1, 2]
