"""
Legacy session path: per-visit session records, the date-range summary built
from them, and per-day view counters.
"""

import logging
import re
from collections import Counter, defaultdict
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Callable, Dict, List, Optional, Sequence

from .document_store import (
    DAILY_SUMMARY_COLLECTION,
    PAGE_VIEWS_COLLECTION,
    SERVER_TIMESTAMP,
    SESSIONS_COLLECTION,
    BatchOperation,
    DocumentStore,
    Filter,
    Increment,
)
from .errors import InvalidInputError, NotFoundError
from .models import (
    AnalyticsSummary,
    DateRange,
    PageCount,
    PageViewEvent,
    RealTimeMetrics,
    ReferrerCount,
    SessionMetrics,
    SessionStartInput,
    UserSession,
)
from .referrers import is_internal_referrer
from .timeutils import utc_now

logger = logging.getLogger(__name__)

_PAGE_KEY_PATTERN = re.compile(r"[.#$/\[\]]")


def sanitize_page_key(page: str) -> str:
    """Make a page path usable as a single field name in a nested map."""
    return _PAGE_KEY_PATTERN.sub("_", page)


@dataclass(frozen=True)
class DailySummaryOperation:
    """One page view to fold into the daily summary of ``date``."""

    date: str
    page: str
    session_id: Optional[str] = None


class SessionTracker:
    """Session lifecycle and the aggregates computed from sessions."""

    def __init__(
        self,
        store: DocumentStore,
        clock: Callable[[], datetime] = utc_now,
        site_hostname: Optional[str] = None,
    ):
        """
        Initialize SessionTracker.

        Args:
            store: Document store holding sessions and daily summaries
            clock: Current time source
            site_hostname: Hostname whose referrers count as internal navigation
        """
        self.store = store
        self._clock = clock
        self.site_hostname = site_hostname

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    def start_session(self, session: SessionStartInput) -> str:
        """Store a new session record and return its document id."""
        doc_id = self.store.add_document(SESSIONS_COLLECTION, session.to_document())
        logger.debug(f"Started session {session.session_id}")
        return doc_id

    def _find_session(self, session_id: str) -> Optional[dict]:
        matches = self.store.query_documents(
            SESSIONS_COLLECTION, [Filter("sessionId", "==", session_id)], limit=1
        )
        return matches[0] if matches else None

    def end_session(self, session_id: str, duration: float) -> None:
        """Close a session with its total duration in seconds.

        Raises:
            NotFoundError: If no session with ``session_id`` was started
        """
        if duration < 0:
            raise InvalidInputError("Session duration must not be negative")

        session = self._find_session(session_id)
        if session is None:
            raise NotFoundError(f"No session {session_id}")

        self.store.update_document_fields(
            SESSIONS_COLLECTION,
            session["id"],
            {"endTime": SERVER_TIMESTAMP, "duration": duration},
        )

    def _sessions_in_range(self, date_range: DateRange) -> List[UserSession]:
        documents = self.store.query_documents(
            SESSIONS_COLLECTION,
            [
                Filter("startTime", ">=", date_range.start),
                Filter("startTime", "<=", date_range.end),
            ],
        )
        return [UserSession.from_document(doc) for doc in documents]

    # ------------------------------------------------------------------
    # Aggregates
    # ------------------------------------------------------------------

    @staticmethod
    def _session_metrics(sessions: Sequence[UserSession]) -> SessionMetrics:
        timed = [s.duration for s in sessions if s.duration and s.duration > 0]
        single_page = sum(1 for s in sessions if s.page_views == 1)
        return SessionMetrics(
            session_count=len(sessions),
            average_session_duration=sum(timed) / len(timed) if timed else 0.0,
            bounce_rate=(single_page / len(sessions)) * 100 if sessions else 0.0,
        )

    def get_session_metrics(self, date_range: DateRange) -> SessionMetrics:
        """Average duration and bounce rate of sessions started in the range."""
        return self._session_metrics(self._sessions_in_range(date_range))

    def get_analytics_summary(self, date_range: DateRange) -> AnalyticsSummary:
        """Summary of page views and sessions within the range."""
        documents = self.store.query_documents(
            PAGE_VIEWS_COLLECTION,
            [
                Filter("timestamp", ">=", date_range.start),
                Filter("timestamp", "<=", date_range.end),
            ],
        )
        page_views = [PageViewEvent.from_document(doc) for doc in documents]
        sessions = self._sessions_in_range(date_range)
        metrics = self._session_metrics(sessions)

        page_counts = Counter(pv.page for pv in page_views)
        referrer_counts = Counter(
            pv.referrer
            for pv in page_views
            if pv.referrer and not is_internal_referrer(pv.referrer, self.site_hostname)
        )

        return AnalyticsSummary(
            total_page_views=len(page_views),
            unique_visitors=len({s.user_id or s.session_id for s in sessions}),
            average_session_duration=metrics.average_session_duration,
            bounce_rate=metrics.bounce_rate,
            top_pages=[PageCount(page=p, views=v) for p, v in page_counts.most_common(10)],
            top_referrers=[
                ReferrerCount(referrer=r, visits=v) for r, v in referrer_counts.most_common(10)
            ],
            device_breakdown=dict(Counter(s.device or "Unknown" for s in sessions)),
            country_breakdown=dict(Counter(s.country or "Unknown" for s in sessions)),
        )

    def get_real_time_metrics(self) -> RealTimeMetrics:
        """Page views of the last 24 hours and sessions started in the last 30 minutes."""
        now = self._clock()
        documents = self.store.query_documents(
            PAGE_VIEWS_COLLECTION, [Filter("timestamp", ">=", now - timedelta(hours=24))]
        )
        page_counts = Counter(PageViewEvent.from_document(doc).page for doc in documents)
        active = self.store.query_documents(
            SESSIONS_COLLECTION, [Filter("startTime", ">=", now - timedelta(minutes=30))]
        )

        return RealTimeMetrics(
            active_users=len(active),
            page_views_last_24h=len(documents),
            top_pages_last_24h=[PageCount(page=p, views=v) for p, v in page_counts.most_common(5)],
        )

    # ------------------------------------------------------------------
    # Daily summary counters
    # ------------------------------------------------------------------

    def record_daily_page_view(self, page: str, day: Optional[date] = None) -> None:
        """Count one view of ``page`` in the summary of ``day`` (today by default)."""
        day_key = (day or self._clock().date()).isoformat()
        self.store.set_document(
            DAILY_SUMMARY_COLLECTION,
            day_key,
            {
                "date": day_key,
                f"pages.{sanitize_page_key(page)}": Increment(1),
                "totalViews": Increment(1),
                "lastUpdated": SERVER_TIMESTAMP,
            },
            merge=True,
        )

    def batch_update_daily_summary(self, operations: Sequence[DailySummaryOperation]) -> None:
        """Apply many page views to their daily summaries in one atomic batch.

        Unique visitors are counted per date within this batch only, so a
        session spread over several batches is counted once per batch.
        """
        if not operations:
            return

        total_views: Dict[str, int] = defaultdict(int)
        pages: Dict[str, Counter] = defaultdict(Counter)
        visitors: Dict[str, set] = defaultdict(set)

        for operation in operations:
            if not operation.date:
                raise InvalidInputError("Daily summary operation needs a date")
            total_views[operation.date] += 1
            pages[operation.date][sanitize_page_key(operation.page)] += 1
            if operation.session_id:
                visitors[operation.date].add(operation.session_id)

        batch = []
        for day_key, views in total_views.items():
            data = {
                "date": day_key,
                "totalViews": Increment(views),
                "uniqueVisitors": Increment(len(visitors[day_key])),
                "lastUpdated": SERVER_TIMESTAMP,
            }
            for page_key, count in pages[day_key].items():
                data[f"pages.{page_key}"] = Increment(count)
            batch.append(BatchOperation.set(DAILY_SUMMARY_COLLECTION, day_key, data, merge=True))

        self.store.batch_write(batch)
        logger.info(f"Updated daily summaries for {len(batch)} dates from {len(operations)} operations")
