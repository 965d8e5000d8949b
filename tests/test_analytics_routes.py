"""
Tests for the analytics HTTP endpoints.
"""

import os
from unittest.mock import patch

import pytest

from analytics_service.document_store import (
    ARTICLE_PERFORMANCE_COLLECTION,
    PAGE_VIEWS_COLLECTION,
    InMemoryDocumentStore,
)
from analytics_service.errors import TransientStoreError
from app.main import create_app
from config_manager import ConfigManager

CHROME_UA = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


@pytest.fixture
def config_manager(tmp_path):
    with patch.dict(os.environ, {"SITE_HOSTNAME": "myblog.example"}, clear=True):
        return ConfigManager(str(tmp_path / "analytics_config.json"))


@pytest.fixture
def store():
    return InMemoryDocumentStore()


@pytest.fixture
def app(config_manager, store):
    flask_app = create_app(config_manager, store)
    flask_app.config["TESTING"] = True
    return flask_app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def service(app):
    return app.extensions["analytics_service"]


def track(client, **payload):
    return client.post("/api/analytics/track", json=payload, headers={"User-Agent": CHROME_UA})


class TestTrack:
    """Test the tracking endpoint."""

    def test_records_view(self, client, store):
        response = track(client, page="/posts/a", sessionId="s1", articleId="a1", title="A", timeOnPage=12)

        assert response.status_code == 200
        assert response.get_json() == {"success": True}
        event = store.query_documents(PAGE_VIEWS_COLLECTION)[0]
        assert event["browser"] == "Chrome"
        assert event["device"] == "Desktop"
        assert event["os"] == "Windows"
        assert store.get_document(ARTICLE_PERFORMANCE_COLLECTION, "a1")["views"] == 1

    def test_session_from_cookie(self, client, store):
        client.set_cookie("uid", "cookie-session")

        response = track(client, page="/")

        assert response.status_code == 200
        assert store.query_documents(PAGE_VIEWS_COLLECTION)[0]["sessionId"] == "cookie-session"

    def test_missing_session_rejected(self, client):
        response = track(client, page="/")

        assert response.status_code == 400
        assert response.get_json()["error"] == "invalid-argument"

    def test_non_json_body_rejected(self, client):
        response = client.post("/api/analytics/track", data="page=/", content_type="text/plain")

        assert response.status_code == 400

    def test_store_outage_still_succeeds(self, client, store, monkeypatch):
        def unavailable(collection, data):
            raise TransientStoreError("store unavailable")

        monkeypatch.setattr(store, "add_document", unavailable)
        response = track(client, page="/", sessionId="s1")

        assert response.status_code == 200


class TestQueries:
    """Test read endpoints."""

    @pytest.fixture(autouse=True)
    def views(self, client):
        for session_id in ("s1", "s2", "s3"):
            track(client, page="/posts/a", sessionId=session_id, articleId="a1", title="A")
        track(client, page="/posts/b", sessionId="s4", articleId="b1", referrer="https://news.example.org/")

    def test_trending(self, client):
        payload = client.get("/api/analytics/trending?limit=1").get_json()

        assert payload["count"] == 1
        assert payload["trending"][0]["articleId"] == "a1"
        assert payload["trending"][0]["trendingRank"] == 1

    def test_popular(self, client):
        payload = client.get("/api/analytics/popular?period=all").get_json()

        assert [a["articleId"] for a in payload["articles"]] == ["a1", "b1"]

    def test_popular_invalid_period(self, client):
        response = client.get("/api/analytics/popular?period=90d")

        assert response.status_code == 400
        assert response.get_json()["canRetry"] is False

    def test_realtime(self, client):
        payload = client.get("/api/analytics/realtime").get_json()

        assert payload["count"] == 4
        assert payload["currentPageViews"][0] == {"page": "/posts/a", "viewers": 3}

    def test_realtime_metrics(self, client):
        client.post("/api/analytics/session/start", json={"sessionId": "s1"})

        payload = client.get("/api/analytics/realtime/metrics").get_json()

        metrics = payload["metrics"]
        assert metrics["pageViewsLast24h"] == 4
        assert metrics["topPagesLast24h"] == [
            {"page": "/posts/a", "views": 3},
            {"page": "/posts/b", "views": 1},
        ]
        assert metrics["activeUsers"] == 1

    def test_dashboard(self, client):
        payload = client.get("/api/analytics/dashboard?days=7").get_json()

        dashboard = payload["dashboard"]
        assert dashboard["overview"]["totalPageViews"] == 4
        assert dashboard["trafficSources"][0]["source"] == "news.example.org"
        assert dashboard["topArticles"][0]["articleId"] == "a1"

    def test_article_stats(self, client):
        response = client.get("/api/analytics/articles/a1")

        assert response.status_code == 200
        assert response.get_json()["article"]["views"] == 3

    def test_unknown_article(self, client):
        response = client.get("/api/analytics/articles/missing")

        assert response.status_code == 404

    def test_circuit_open_returns_503(self, client, service):
        def unavailable():
            raise TransientStoreError("down")

        for _ in range(service.circuit_breaker.failure_threshold):
            with pytest.raises(TransientStoreError):
                service.circuit_breaker.execute(unavailable)

        response = client.get("/api/analytics/trending")

        assert response.status_code == 503
        assert response.get_json()["canRetry"] is False
        assert client.get("/api/analytics/health").get_json()["healthy"] is False


class TestSessions:
    """Test the legacy session endpoints."""

    def test_lifecycle_and_summary(self, client):
        assert client.post("/api/analytics/session/start", json={"sessionId": "s1", "device": "Mobile"}).status_code == 200
        track(client, page="/", sessionId="s1")

        response = client.post("/api/analytics/session/end", json={"sessionId": "s1", "duration": 45})
        assert response.status_code == 200

        summary = client.get("/api/analytics/summary?days=1").get_json()["summary"]
        assert summary["totalPageViews"] == 1
        assert summary["averageSessionDuration"] == 45
        assert summary["deviceBreakdown"] == {"Mobile": 1}

    def test_end_unknown_session(self, client):
        response = client.post("/api/analytics/session/end", json={"sessionId": "ghost", "duration": 5})

        assert response.status_code == 404

    def test_unknown_session_ends_do_not_block_tracking(self, client, store):
        for i in range(5):
            response = client.post("/api/analytics/session/end", json={"sessionId": f"unknown{i}", "duration": 5})
            assert response.status_code == 404

        assert track(client, page="/posts/a", sessionId="s1", articleId="a1").status_code == 200
        assert len(store.query_documents(PAGE_VIEWS_COLLECTION)) == 1
        assert client.get("/api/analytics/health").get_json()["healthy"] is True

    def test_end_without_duration(self, client):
        client.post("/api/analytics/session/start", json={"sessionId": "s1"})

        response = client.post("/api/analytics/session/end", json={"sessionId": "s1"})

        assert response.status_code == 400


def test_cleanup(client, store):
    assert client.post("/api/analytics/cleanup").get_json() == {"success": True, "deleted": 0}


def test_health(client):
    payload = client.get("/api/analytics/health").get_json()

    assert payload["healthy"] is True
    assert payload["circuitBreaker"]["state"] == "closed"


def test_poller_registered(app):
    poller = app.extensions["analytics_poller"]

    assert poller.dashboard_refresh_seconds == 60
    assert not poller.running
