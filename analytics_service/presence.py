"""
Real-Time Presence Tracker

One RealTimeVisitor record per browsing session, refreshed on every event.
"Active" is decided at read time from ``lastSeen``; records are only deleted
by the periodic cleanup sweep.
"""

import logging
from collections import Counter
from datetime import datetime, timedelta
from typing import Callable, Iterable, List, Optional

from .document_store import (
    REALTIME_VISITORS_COLLECTION,
    SERVER_TIMESTAMP,
    BatchOperation,
    DocumentStore,
    Filter,
    Increment,
    OrderBy,
    Unsubscribe,
)
from .errors import InvalidInputError
from .models import DeviceInfo, PageViewers, RealTimeVisitor
from .timeutils import utc_now

logger = logging.getLogger(__name__)

DEFAULT_ACTIVE_WINDOW_SECONDS = 5 * 60
DEFAULT_CLEANUP_MAX_AGE_SECONDS = 60 * 60


class PresenceTracker:
    """Tracks which sessions are currently browsing and where."""

    def __init__(
        self,
        store: DocumentStore,
        clock: Callable[[], datetime] = utc_now,
        active_window_seconds: float = DEFAULT_ACTIVE_WINDOW_SECONDS,
        cleanup_max_age_seconds: float = DEFAULT_CLEANUP_MAX_AGE_SECONDS,
    ):
        """
        Initialize PresenceTracker.

        Args:
            store: Document store holding visitor records
            clock: Current time source
            active_window_seconds: How recently a visitor must have been seen to count as active
            cleanup_max_age_seconds: Age after which the sweep deletes a visitor record
        """
        self.store = store
        self._clock = clock
        self.active_window_seconds = active_window_seconds
        self.cleanup_max_age_seconds = cleanup_max_age_seconds

    def upsert(self, session_id: str, page: str, device_info: Optional[DeviceInfo] = None) -> None:
        """Create the session's visitor record or move it to ``page``."""
        if not session_id:
            raise InvalidInputError("session_id is required")

        existing = self.store.get_document(REALTIME_VISITORS_COLLECTION, session_id)
        if existing is None:
            info = device_info or DeviceInfo()
            document = {
                "sessionId": session_id,
                "currentPage": page,
                "lastSeen": SERVER_TIMESTAMP,
                "sessionStart": SERVER_TIMESTAMP,
                "pagesViewed": 1,
            }
            for key, value in (
                ("userId", info.user_id),
                ("device", info.device),
                ("browser", info.browser),
                ("country", info.country),
                ("referrer", info.referrer),
            ):
                if value is not None:
                    document[key] = value
            self.store.set_document(REALTIME_VISITORS_COLLECTION, session_id, document)
            logger.debug(f"New real-time visitor {session_id} on {page}")
            return

        self.store.update_document_fields(
            REALTIME_VISITORS_COLLECTION,
            session_id,
            {
                "currentPage": page,
                "lastSeen": SERVER_TIMESTAMP,
                "pagesViewed": Increment(1),
            },
        )

    def list_active(self, window_seconds: Optional[float] = None) -> List[RealTimeVisitor]:
        """Visitors seen within the window, most recent first."""
        window = self.active_window_seconds if window_seconds is None else window_seconds
        cutoff = self._clock() - timedelta(seconds=window)
        documents = self.store.query_documents(
            REALTIME_VISITORS_COLLECTION,
            [Filter("lastSeen", ">=", cutoff)],
            order_by=OrderBy("lastSeen", descending=True),
        )
        return [RealTimeVisitor.from_document(doc) for doc in documents]

    def sweep_expired(self, max_age_seconds: Optional[float] = None) -> int:
        """Delete visitor records last seen before ``now - max_age_seconds``.

        Returns:
            Number of records deleted
        """
        max_age = self.cleanup_max_age_seconds if max_age_seconds is None else max_age_seconds
        cutoff = self._clock() - timedelta(seconds=max_age)
        expired = self.store.query_documents(
            REALTIME_VISITORS_COLLECTION,
            [Filter("lastSeen", "<", cutoff)],
        )
        if not expired:
            return 0

        self.store.batch_write(
            [BatchOperation.delete(REALTIME_VISITORS_COLLECTION, doc["id"]) for doc in expired]
        )
        logger.info(f"Swept {len(expired)} expired real-time visitors")
        return len(expired)

    def subscribe(self, on_change: Callable[[List[RealTimeVisitor]], None]) -> Unsubscribe:
        """Push the active visitor list now and after every change to visitor records.

        The window is applied on each delivery, so a visitor drops out of the
        pushed list at the first change after it goes stale.
        """

        def deliver(documents):
            cutoff = self._clock() - timedelta(seconds=self.active_window_seconds)
            visitors = [RealTimeVisitor.from_document(doc) for doc in documents if "lastSeen" in doc]
            active = [visitor for visitor in visitors if visitor.last_seen >= cutoff]
            active.sort(key=lambda visitor: visitor.last_seen, reverse=True)
            on_change(active)

        return self.store.subscribe_to_query(REALTIME_VISITORS_COLLECTION, [], deliver)

    @staticmethod
    def current_page_views(visitors: Iterable[RealTimeVisitor]) -> List[PageViewers]:
        """Number of active visitors per page, busiest first."""
        counts = Counter(visitor.current_page for visitor in visitors)
        return [PageViewers(page=page, viewers=viewers) for page, viewers in counts.most_common()]
