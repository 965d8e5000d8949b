"""
Analytics Routes

Flask routes for view tracking and the analytics dashboard endpoints.
"""

import logging

from flask import Blueprint, jsonify, request
from pydantic import ValidationError

from analytics_service import AnalyticsService
from analytics_service.errors import (
    CircuitOpenError,
    InvalidInputError,
    NotFoundError,
    PermissionDeniedError,
)
from analytics_service.models import DateRange, PageViewEventInput, SessionStartInput
from analytics_service.performance import POPULAR_PERIODS
from analytics_service.resilience import is_retryable_error
from analytics_service.user_agent import parse_user_agent

logger = logging.getLogger(__name__)

MAX_LIMIT = 50
MAX_RANGE_DAYS = 365


def _error_response(exc: Exception):
    """JSON error body and status for an exception raised by the service."""
    if isinstance(exc, ValidationError):
        return jsonify({"success": False, "error": "invalid-argument", "details": exc.errors(include_url=False, include_context=False), "canRetry": False}), 400
    if isinstance(exc, (InvalidInputError, ValueError)):
        return jsonify({"success": False, "error": str(exc), "canRetry": False}), 400
    if isinstance(exc, PermissionDeniedError):
        return jsonify({"success": False, "error": str(exc), "canRetry": False}), 403
    if isinstance(exc, NotFoundError):
        return jsonify({"success": False, "error": str(exc), "canRetry": False}), 404
    if isinstance(exc, CircuitOpenError) or is_retryable_error(exc):
        return jsonify({"success": False, "error": str(exc), "canRetry": not isinstance(exc, CircuitOpenError)}), 503
    logger.exception(f"Unexpected analytics error: {exc}")
    return jsonify({"success": False, "error": "internal error", "canRetry": False}), 500


def _int_arg(name: str, default: int, lower: int, upper: int) -> int:
    try:
        value = int(request.args.get(name, default))
    except ValueError:
        value = default
    return max(lower, min(value, upper))


def _json_body() -> dict:
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        raise InvalidInputError("Request body must be a JSON object")
    return payload


def create_analytics_routes(service: AnalyticsService) -> Blueprint:
    """Create analytics routes blueprint.

    Args:
        service: AnalyticsService handling every request

    Returns:
        Flask blueprint with analytics routes
    """
    bp = Blueprint('analytics', __name__, url_prefix='/api/analytics')

    @bp.route('/track', methods=['POST'])
    def track_view():
        """Record one page view. Store failures never fail the caller."""
        try:
            payload = _json_body()
            if not payload.get("sessionId") and not payload.get("session_id"):
                payload["sessionId"] = request.cookies.get("uid")

            user_agent = payload.get("userAgent") or request.headers.get("User-Agent")
            if user_agent:
                payload.setdefault("userAgent", user_agent)
                parsed = parse_user_agent(user_agent)
                for key in ("device", "browser", "os"):
                    if not payload.get(key):
                        payload[key] = parsed[key]

            event = PageViewEventInput.model_validate(payload)
        except (ValidationError, InvalidInputError) as exc:
            return _error_response(exc)

        service.record_view(event)
        return jsonify({"success": True})

    @bp.route('/trending', methods=['GET'])
    def get_trending():
        """
        Get trending articles.

        Query parameters:
            - limit: Maximum articles to return (default 10, max 50)
        """
        limit = _int_arg('limit', 10, 1, MAX_LIMIT)
        try:
            trending = service.list_trending(limit)
        except Exception as exc:
            return _error_response(exc)
        return jsonify({
            "success": True,
            "trending": [item.to_dict() for item in trending],
            "count": len(trending)
        })

    @bp.route('/popular', methods=['GET'])
    def get_popular():
        """
        Get the most viewed articles for a period.

        Query parameters:
            - period: One of 24h, 7d, 30d, all (default 7d)
            - limit: Maximum articles to return (default 10, max 50)
        """
        period = request.args.get('period', '7d')
        if period not in POPULAR_PERIODS:
            return _error_response(InvalidInputError(f"period must be one of {', '.join(POPULAR_PERIODS)}"))
        limit = _int_arg('limit', 10, 1, MAX_LIMIT)
        try:
            articles = service.get_popular_articles(period, limit)
        except Exception as exc:
            return _error_response(exc)
        return jsonify({
            "success": True,
            "period": period,
            "articles": [article.to_dict() for article in articles],
            "count": len(articles)
        })

    @bp.route('/realtime', methods=['GET'])
    def get_realtime():
        """Get currently active visitors and what they are reading."""
        try:
            visitors = service.list_active_visitors()
        except Exception as exc:
            return _error_response(exc)
        return jsonify({
            "success": True,
            "activeVisitors": [visitor.to_dict() for visitor in visitors],
            "count": len(visitors),
            "currentPageViews": [item.to_dict() for item in service.presence.current_page_views(visitors)]
        })

    @bp.route('/realtime/metrics', methods=['GET'])
    def get_realtime_metrics():
        """Get page views of the last 24 hours and recently started sessions."""
        try:
            metrics = service.get_real_time_metrics()
        except Exception as exc:
            return _error_response(exc)
        return jsonify({"success": True, "metrics": metrics.to_dict()})

    @bp.route('/dashboard', methods=['GET'])
    def get_dashboard():
        """
        Get the consolidated dashboard.

        Query parameters:
            - days: Trailing days covered by historical figures (default 7)
        """
        days = _int_arg('days', 7, 1, MAX_RANGE_DAYS)
        try:
            dashboard = service.get_dashboard(DateRange.last_days(days))
        except Exception as exc:
            return _error_response(exc)
        return jsonify({"success": True, "dashboard": dashboard.to_dict()})

    @bp.route('/articles/<article_id>', methods=['GET'])
    def get_article(article_id):
        """Get performance statistics for one article."""
        try:
            stats = service.get_article_stats(article_id)
        except Exception as exc:
            return _error_response(exc)
        if stats is None:
            return _error_response(NotFoundError(f"No analytics for article {article_id}"))
        return jsonify({"success": True, "article": stats.to_dict()})

    @bp.route('/cleanup', methods=['POST'])
    def cleanup():
        """Delete expired real-time visitor records."""
        try:
            deleted = service.sweep_expired()
        except Exception as exc:
            return _error_response(exc)
        return jsonify({"success": True, "deleted": deleted})

    @bp.route('/session/start', methods=['POST'])
    def start_session():
        """Start a legacy session record."""
        try:
            payload = _json_body()
            if not payload.get("sessionId") and not payload.get("session_id"):
                payload["sessionId"] = request.cookies.get("uid")
            session = SessionStartInput.model_validate(payload)
            service.start_session(session)
        except Exception as exc:
            return _error_response(exc)
        return jsonify({"success": True, "sessionId": session.session_id})

    @bp.route('/session/end', methods=['POST'])
    def end_session():
        """Close a legacy session with its duration in seconds."""
        try:
            payload = _json_body()
            session_id = payload.get("sessionId") or payload.get("session_id") or request.cookies.get("uid")
            if not session_id:
                raise InvalidInputError("sessionId is required")
            try:
                duration = float(payload.get("duration"))
            except (TypeError, ValueError):
                raise InvalidInputError("duration must be a number of seconds") from None
            service.end_session(session_id, duration)
        except Exception as exc:
            return _error_response(exc)
        return jsonify({"success": True})

    @bp.route('/summary', methods=['GET'])
    def get_summary():
        """
        Get the legacy analytics summary.

        Query parameters:
            - days: Trailing days to summarize (default 30)
        """
        days = _int_arg('days', 30, 1, MAX_RANGE_DAYS)
        try:
            summary = service.get_analytics_summary(DateRange.last_days(days))
        except Exception as exc:
            return _error_response(exc)
        return jsonify({"success": True, "summary": summary.to_dict()})

    @bp.route('/health', methods=['GET'])
    def health():
        """Report circuit breaker state."""
        return jsonify(service.get_health())

    return bp
