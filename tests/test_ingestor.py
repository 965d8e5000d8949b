"""
Tests for page view ingestion.
"""

import pytest

from analytics_service.document_store import (
    ARTICLE_PERFORMANCE_COLLECTION,
    DAILY_SUMMARY_COLLECTION,
    PAGE_VIEWS_COLLECTION,
    REALTIME_VISITORS_COLLECTION,
    InMemoryDocumentStore,
)
from analytics_service.errors import TransientStoreError
from analytics_service.ingestor import EventIngestor
from analytics_service.models import PageViewEventInput
from analytics_service.performance import PerformanceAggregator
from analytics_service.presence import PresenceTracker
from analytics_service.sessions import SessionTracker
from analytics_service.trending import TrendingScorer


class FailingAddStore(InMemoryDocumentStore):
    """Store whose ``add_document`` is unavailable."""

    def __init__(self, clock):
        super().__init__(clock=clock)
        self.add_attempts = 0

    def add_document(self, collection, data):
        self.add_attempts += 1
        raise TransientStoreError("store unavailable")


def build_ingestor(store, clock, executor, with_sessions=True):
    trending = TrendingScorer(store, clock=clock)
    performance = PerformanceAggregator(store, trending=trending)
    presence = PresenceTracker(store, clock=clock)
    sessions = SessionTracker(store, clock=clock) if with_sessions else None
    return EventIngestor(store, presence, performance, executor=executor, sessions=sessions)


def article_view(**overrides):
    fields = {"page": "/posts/hello", "articleId": "a1", "sessionId": "s1", "timeOnPage": 30, "title": "Hello"}
    fields.update(overrides)
    return PageViewEventInput.model_validate(fields)


class TestRecordView:
    """Test the fan-out."""

    def test_article_view_updates_everything(self, store, clock, executor):
        ingestor = build_ingestor(store, clock, executor)

        ingestor.record_view(article_view())

        events = store.query_documents(PAGE_VIEWS_COLLECTION)
        assert len(events) == 1
        assert events[0]["timestamp"] == clock()
        assert events[0]["articleId"] == "a1"
        assert "slug" not in events[0]
        assert store.get_document(REALTIME_VISITORS_COLLECTION, "s1")["currentPage"] == "/posts/hello"
        performance = store.get_document(ARTICLE_PERFORMANCE_COLLECTION, "a1")
        assert performance["views"] == 1
        assert performance["title"] == "Hello"
        assert store.get_document(DAILY_SUMMARY_COLLECTION, clock().date().isoformat())["totalViews"] == 1

    def test_non_article_page_skips_performance(self, store, clock, executor):
        ingestor = build_ingestor(store, clock, executor)

        ingestor.record_view(article_view(page="/", articleId=None))

        assert store.query_documents(ARTICLE_PERFORMANCE_COLLECTION) == []
        assert len(store.query_documents(PAGE_VIEWS_COLLECTION)) == 1

    def test_event_stores_only_supplied_fields(self, store, clock, executor):
        ingestor = build_ingestor(store, clock, executor, with_sessions=False)

        ingestor.record_view(PageViewEventInput(page="/", session_id="s1"))

        event = store.query_documents(PAGE_VIEWS_COLLECTION)[0]
        assert set(event) == {"id", "page", "title", "sessionId", "timestamp"}

    def test_store_failure_is_swallowed(self, clock, executor, sleeps):
        store = FailingAddStore(clock)
        ingestor = build_ingestor(store, clock, executor)

        ingestor.record_view(article_view())

        # Page view policy: two attempts
        assert store.add_attempts == 2
        assert len(sleeps.delays) == 1
        # Presence still updated, article not counted without its event
        assert store.get_document(REALTIME_VISITORS_COLLECTION, "s1") is not None
        assert store.get_document(ARTICLE_PERFORMANCE_COLLECTION, "a1") is None

    def test_views_match_stored_events(self, store, clock, executor):
        ingestor = build_ingestor(store, clock, executor)

        for index in range(4):
            ingestor.record_view(article_view(sessionId=f"s{index}"))

        assert store.get_document(ARTICLE_PERFORMANCE_COLLECTION, "a1")["views"] == 4
        assert store.count_documents(PAGE_VIEWS_COLLECTION) == 4


class TestPageViewEventInput:
    """Test input validation."""

    @pytest.mark.parametrize("fields", [
        {"page": "", "sessionId": "s1"},
        {"page": "/", "sessionId": ""},
        {"page": "/", "sessionId": "s1", "scrollDepth": 120},
        {"page": "/", "sessionId": "s1", "timeOnPage": -1},
    ])
    def test_rejects_malformed(self, fields):
        with pytest.raises(ValueError):
            PageViewEventInput.model_validate(fields)

    def test_accepts_snake_case(self):
        event = PageViewEventInput.model_validate({"page": "/", "session_id": "s1", "article_id": "a1"})
        assert event.article_id == "a1"
