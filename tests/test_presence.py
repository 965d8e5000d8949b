"""
Tests for the real-time presence tracker.
"""

import pytest

from analytics_service.document_store import REALTIME_VISITORS_COLLECTION
from analytics_service.errors import InvalidInputError
from analytics_service.models import DeviceInfo, RealTimeVisitor
from analytics_service.presence import PresenceTracker


@pytest.fixture
def presence(store, clock):
    return PresenceTracker(store, clock=clock)


class TestUpsert:
    """Test visitor record creation and refresh."""

    def test_first_event_creates_record(self, presence, store, clock):
        presence.upsert("s1", "/", DeviceInfo(device="Mobile", browser="Firefox", country="NL"))

        document = store.get_document(REALTIME_VISITORS_COLLECTION, "s1")
        assert document["currentPage"] == "/"
        assert document["pagesViewed"] == 1
        assert document["sessionStart"] == clock()
        assert document["lastSeen"] == clock()
        assert document["device"] == "Mobile"
        assert "userId" not in document

    def test_later_events_move_and_count(self, presence, store, clock):
        start = clock()
        presence.upsert("s1", "/")
        clock.advance(seconds=30)
        presence.upsert("s1", "/about")

        visitor = RealTimeVisitor.from_document(store.get_document(REALTIME_VISITORS_COLLECTION, "s1"))
        assert visitor.current_page == "/about"
        assert visitor.pages_viewed == 2
        assert visitor.session_start == start
        assert visitor.last_seen == clock()

    def test_empty_session_rejected(self, presence):
        with pytest.raises(InvalidInputError):
            presence.upsert("", "/")


class TestListActive:
    """Test the query-time active window."""

    def test_session_scenario(self, presence, clock):
        # Events at t=0, 120s and 200s; still active at 250s, gone at 600s
        presence.upsert("s1", "/")
        clock.advance(seconds=120)
        presence.upsert("s1", "/about")
        clock.advance(seconds=80)
        presence.upsert("s1", "/")

        clock.advance(seconds=50)
        active = presence.list_active(window_seconds=300)
        assert [v.session_id for v in active] == ["s1"]
        assert active[0].current_page == "/"
        assert active[0].pages_viewed == 3

        clock.advance(seconds=350)
        assert presence.list_active(window_seconds=300) == []

    def test_never_returns_visitors_outside_window(self, presence, clock):
        for index in range(6):
            presence.upsert(f"s{index}", "/")
            clock.advance(seconds=100)

        cutoff = clock().timestamp() - 250
        active = presence.list_active(window_seconds=250)
        assert active
        assert all(v.last_seen.timestamp() >= cutoff for v in active)

    def test_most_recent_first(self, presence, clock):
        presence.upsert("early", "/")
        clock.advance(seconds=10)
        presence.upsert("late", "/")

        assert [v.session_id for v in presence.list_active()] == ["late", "early"]


class TestSweepExpired:
    """Test the cleanup sweep."""

    def test_removes_exactly_the_expired(self, presence, store, clock):
        presence.upsert("ancient", "/")
        clock.advance(minutes=50)
        presence.upsert("older", "/")
        clock.advance(minutes=20)
        presence.upsert("fresh", "/")

        deleted = presence.sweep_expired(max_age_seconds=3600)

        assert deleted == 1
        remaining = {doc["id"] for doc in store.query_documents(REALTIME_VISITORS_COLLECTION)}
        assert remaining == {"older", "fresh"}

    def test_nothing_to_sweep(self, presence):
        presence.upsert("s1", "/")
        assert presence.sweep_expired() == 0


class TestSubscribe:
    """Test live presence updates."""

    def test_pushes_active_visitors(self, presence, clock):
        pushed = []
        unsubscribe = presence.subscribe(pushed.append)

        presence.upsert("s1", "/")
        clock.advance(minutes=10)
        presence.upsert("s2", "/about")

        assert pushed[0] == []
        assert [v.session_id for v in pushed[1]] == ["s1"]
        # s1 went stale before the latest change
        assert [v.session_id for v in pushed[2]] == ["s2"]

        unsubscribe()
        presence.upsert("s3", "/")
        assert len(pushed) == 3


def test_current_page_views_counts_viewers(presence, clock):
    presence.upsert("a", "/post")
    presence.upsert("b", "/post")
    presence.upsert("c", "/")

    counts = PresenceTracker.current_page_views(presence.list_active())
    assert [(c.page, c.viewers) for c in counts] == [("/post", 2), ("/", 1)]
