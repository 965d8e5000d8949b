"""
Event Ingestor

Fans one page view out to the raw event log, the presence tracker and, for
article pages, the performance aggregator. Tracking must never break the page
that reported it, so failures are logged and swallowed.
"""

import logging
from typing import Optional

from .document_store import PAGE_VIEWS_COLLECTION, DocumentStore
from .models import PageViewEventInput
from .performance import PerformanceAggregator
from .presence import PresenceTracker
from .resilience import OperationType, ResilientExecutor
from .sessions import SessionTracker

logger = logging.getLogger(__name__)


class EventIngestor:
    """Records page views."""

    def __init__(
        self,
        store: DocumentStore,
        presence: PresenceTracker,
        performance: PerformanceAggregator,
        executor: Optional[ResilientExecutor] = None,
        sessions: Optional[SessionTracker] = None,
    ):
        """
        Initialize EventIngestor.

        Args:
            store: Document store receiving raw page views
            presence: Tracker refreshed for the viewing session
            performance: Aggregator updated for article pages
            executor: Resilience policy for each step
            sessions: When given, the daily summary counters are updated too
        """
        self.store = store
        self.presence = presence
        self.performance = performance
        self.executor = executor or ResilientExecutor()
        self.sessions = sessions

    def _run(self, operation, context, op_type=OperationType.PAGE_VIEW) -> bool:
        try:
            self.executor.execute(operation, op_type, context)
            return True
        except Exception as e:
            logger.warning(f"Page view tracking step failed ({context.get('step')}): {e}")
            return False

    def record_view(self, event: PageViewEventInput) -> None:
        """Persist ``event`` and update presence and article statistics."""
        context = {"page": event.page, "session_id": event.session_id, "article_id": event.article_id}

        stored = self._run(
            lambda: self.store.add_document(PAGE_VIEWS_COLLECTION, event.to_document()),
            dict(context, step="store_event"),
        )

        self._run(
            lambda: self.presence.upsert(event.session_id, event.page, event.device_info()),
            dict(context, step="presence"),
        )

        if stored and self.sessions is not None:
            self._run(
                lambda: self.sessions.record_daily_page_view(event.page),
                dict(context, step="daily_summary"),
                OperationType.DAILY_SUMMARY,
            )

        if not event.article_id:
            return
        if not stored:
            # Article views must match stored events one to one
            logger.warning(f"Skipping article view for {event.article_id}: page view was not stored")
            return

        self._run(
            lambda: self.performance.record_article_view(
                event.article_id, event.time_on_page, event.article_meta()
            ),
            dict(context, step="article_performance"),
        )
