"""
Document Store

Generic data-access interface consumed by the analytics components, the write
sentinels it understands, and an in-process implementation.

The shape mirrors a hosted document database: collections of schemaless
documents addressed by id, equality/range filters, a single ordering field,
batched writes, atomic increments, server-assigned timestamps and live query
subscriptions.
"""

import copy
import logging
import operator
import threading
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from .errors import InvalidInputError, NotFoundError
from .timeutils import normalize_timestamp, utc_now

logger = logging.getLogger(__name__)

PAGE_VIEWS_COLLECTION = "analytics_pageviews"
REALTIME_VISITORS_COLLECTION = "analytics_realtime_visitors"
ARTICLE_PERFORMANCE_COLLECTION = "analytics_article_performance"
TRENDING_COLLECTION = "analytics_trending"
SESSIONS_COLLECTION = "analytics_sessions"
DAILY_SUMMARY_COLLECTION = "analytics_daily_summary"

Document = Dict[str, Any]
QueryCallback = Callable[[List[Document]], None]
Unsubscribe = Callable[[], None]


class _ServerTimestamp:
    """Placeholder resolved to the store's clock at write time."""

    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"


SERVER_TIMESTAMP = _ServerTimestamp()


@dataclass(frozen=True)
class Increment:
    """Atomic numeric increment applied by the store under its own lock."""

    amount: float = 1


_OPERATORS: Dict[str, Callable[[Any, Any], bool]] = {
    "==": operator.eq,
    "!=": operator.ne,
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
}

_MISSING = object()


def get_path(document: Document, path: str) -> Any:
    """Read a dotted field path, returning a private sentinel when absent."""
    current: Any = document
    for part in path.split("."):
        if not isinstance(current, dict) or part not in current:
            return _MISSING
        current = current[part]
    return current


def _set_path(document: Document, path: str, value: Any) -> None:
    parts = path.split(".")
    current = document
    for part in parts[:-1]:
        child = current.get(part)
        if not isinstance(child, dict):
            child = {}
            current[part] = child
        current = child
    current[parts[-1]] = value


@dataclass(frozen=True)
class Filter:
    """A single ``field op value`` condition."""

    field: str
    op: str
    value: Any

    def __post_init__(self):
        if self.op not in _OPERATORS:
            raise InvalidInputError(f"Unsupported filter operator: {self.op}")

    def matches(self, document: Document) -> bool:
        actual = get_path(document, self.field)
        # Documents without the field never match, as in hosted stores
        if actual is _MISSING:
            return False
        expected = self.value
        if isinstance(expected, datetime):
            expected = normalize_timestamp(expected)
        try:
            return _OPERATORS[self.op](actual, expected)
        except TypeError:
            return False


@dataclass(frozen=True)
class OrderBy:
    """Sort specification for a query."""

    field: str
    descending: bool = False


@dataclass(frozen=True)
class BatchOperation:
    """One write inside a ``batch_write`` call."""

    kind: str  # "set", "update" or "delete"
    collection: str
    doc_id: str
    data: Dict[str, Any] = field(default_factory=dict)
    merge: bool = False

    @classmethod
    def set(cls, collection: str, doc_id: str, data: Dict[str, Any], merge: bool = False) -> "BatchOperation":
        return cls("set", collection, doc_id, dict(data), merge)

    @classmethod
    def update(cls, collection: str, doc_id: str, data: Dict[str, Any]) -> "BatchOperation":
        return cls("update", collection, doc_id, dict(data))

    @classmethod
    def delete(cls, collection: str, doc_id: str) -> "BatchOperation":
        return cls("delete", collection, doc_id)


class DocumentStore(ABC):
    """Data-access interface shared by every analytics component."""

    @abstractmethod
    def add_document(self, collection: str, data: Dict[str, Any]) -> str:
        """Create a document with a generated id and return the id."""

    @abstractmethod
    def get_document(self, collection: str, doc_id: str) -> Optional[Document]:
        """Return the document (with an ``id`` key) or None."""

    @abstractmethod
    def set_document(self, collection: str, doc_id: str, data: Dict[str, Any], merge: bool = False) -> None:
        """Create or overwrite a document; with ``merge`` only the given fields change."""

    @abstractmethod
    def update_document_fields(self, collection: str, doc_id: str, fields: Dict[str, Any]) -> None:
        """Patch fields of an existing document.

        Raises:
            NotFoundError: If the document does not exist
        """

    @abstractmethod
    def delete_document(self, collection: str, doc_id: str) -> None:
        """Delete a document; deleting a missing document is a no-op."""

    @abstractmethod
    def query_documents(
        self,
        collection: str,
        filters: Sequence[Filter] = (),
        order_by: Optional[OrderBy] = None,
        limit: Optional[int] = None,
    ) -> List[Document]:
        """Return documents matching every filter."""

    @abstractmethod
    def batch_write(self, operations: Sequence[BatchOperation]) -> None:
        """Apply all operations or none of them."""

    @abstractmethod
    def subscribe_to_query(
        self,
        collection: str,
        filters: Sequence[Filter],
        callback: QueryCallback,
    ) -> Unsubscribe:
        """Deliver the query result now and after every change to the collection."""

    def count_documents(self, collection: str, filters: Sequence[Filter] = ()) -> int:
        """Number of documents matching every filter."""
        return len(self.query_documents(collection, filters))


@dataclass
class _Subscription:
    collection: str
    filters: Sequence[Filter]
    callback: QueryCallback


class InMemoryDocumentStore(DocumentStore):
    """Thread-safe in-process document store.

    Sentinels are resolved under the store lock, so ``Increment`` is atomic
    with respect to every other write.
    """

    def __init__(self, clock: Callable[[], datetime] = utc_now):
        """Initialize the store.

        Args:
            clock: Source of server timestamps
        """
        self._clock = clock
        self._lock = threading.RLock()
        self._collections: Dict[str, Dict[str, Document]] = {}
        self._subscriptions: List[_Subscription] = []

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def add_document(self, collection: str, data: Dict[str, Any]) -> str:
        doc_id = uuid.uuid4().hex
        self.set_document(collection, doc_id, data)
        return doc_id

    def set_document(self, collection: str, doc_id: str, data: Dict[str, Any], merge: bool = False) -> None:
        with self._lock:
            docs = self._collections.setdefault(collection, {})
            self._apply_set(docs, doc_id, data, merge)
            self._persist(collection)
        self._notify({collection})

    def update_document_fields(self, collection: str, doc_id: str, fields: Dict[str, Any]) -> None:
        with self._lock:
            docs = self._collections.setdefault(collection, {})
            self._apply_update(docs, collection, doc_id, fields)
            self._persist(collection)
        self._notify({collection})

    def delete_document(self, collection: str, doc_id: str) -> None:
        with self._lock:
            docs = self._collections.get(collection, {})
            if docs.pop(doc_id, None) is None:
                return
            self._persist(collection)
        self._notify({collection})

    def batch_write(self, operations: Sequence[BatchOperation]) -> None:
        if not operations:
            return
        touched = {op.collection for op in operations}
        with self._lock:
            # Stage on copies so a failing operation leaves nothing applied
            staged = {name: copy.deepcopy(self._collections.get(name, {})) for name in touched}
            for op in operations:
                docs = staged[op.collection]
                if op.kind == "set":
                    self._apply_set(docs, op.doc_id, op.data, op.merge)
                elif op.kind == "update":
                    self._apply_update(docs, op.collection, op.doc_id, op.data)
                elif op.kind == "delete":
                    docs.pop(op.doc_id, None)
                else:
                    raise InvalidInputError(f"Unknown batch operation: {op.kind}")
            self._collections.update(staged)
            for name in touched:
                self._persist(name)
        self._notify(touched)

    def _apply_set(self, docs: Dict[str, Document], doc_id: str, data: Dict[str, Any], merge: bool) -> None:
        existing = docs.get(doc_id) if merge else None
        document = copy.deepcopy(existing) if existing is not None else {}
        for key, value in data.items():
            _set_path(document, key, self._resolve(value, get_path(document, key)))
        docs[doc_id] = document

    def _apply_update(self, docs: Dict[str, Document], collection: str, doc_id: str, fields: Dict[str, Any]) -> None:
        if doc_id not in docs:
            raise NotFoundError(f"No document {collection}/{doc_id}")
        document = docs[doc_id]
        for key, value in fields.items():
            _set_path(document, key, self._resolve(value, get_path(document, key)))

    def _resolve(self, value: Any, current: Any) -> Any:
        if value is SERVER_TIMESTAMP:
            return normalize_timestamp(self._clock())
        if isinstance(value, Increment):
            base = current if isinstance(current, (int, float)) else 0
            return base + value.amount
        if isinstance(value, datetime):
            return normalize_timestamp(value)
        return copy.deepcopy(value)

    def _persist(self, collection: str) -> None:
        """Hook for durable subclasses; called with the lock held after each write."""

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_document(self, collection: str, doc_id: str) -> Optional[Document]:
        with self._lock:
            document = self._collections.get(collection, {}).get(doc_id)
            if document is None:
                return None
            return self._snapshot(doc_id, document)

    def query_documents(
        self,
        collection: str,
        filters: Sequence[Filter] = (),
        order_by: Optional[OrderBy] = None,
        limit: Optional[int] = None,
    ) -> List[Document]:
        if limit is not None and limit < 0:
            raise InvalidInputError(f"Query limit must be non-negative, got {limit}")
        with self._lock:
            items = list(self._collections.get(collection, {}).items())
            matched = [
                self._snapshot(doc_id, doc)
                for doc_id, doc in items
                if all(f.matches(doc) for f in filters)
            ]
        if order_by is not None:
            matched = [doc for doc in matched if get_path(doc, order_by.field) is not _MISSING]
            matched.sort(key=lambda doc: get_path(doc, order_by.field), reverse=order_by.descending)
        if limit is not None:
            matched = matched[:limit]
        return matched

    @staticmethod
    def _snapshot(doc_id: str, document: Document) -> Document:
        snapshot = copy.deepcopy(document)
        snapshot["id"] = doc_id
        return snapshot

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def subscribe_to_query(
        self,
        collection: str,
        filters: Sequence[Filter],
        callback: QueryCallback,
    ) -> Unsubscribe:
        subscription = _Subscription(collection, tuple(filters), callback)
        with self._lock:
            self._subscriptions.append(subscription)
        self._deliver(subscription)

        def unsubscribe() -> None:
            with self._lock:
                if subscription in self._subscriptions:
                    self._subscriptions.remove(subscription)

        return unsubscribe

    def _notify(self, collections: Iterable[str]) -> None:
        names = set(collections)
        with self._lock:
            targets = [s for s in self._subscriptions if s.collection in names]
        for subscription in targets:
            self._deliver(subscription)

    def _deliver(self, subscription: _Subscription) -> None:
        documents = self.query_documents(subscription.collection, subscription.filters)
        try:
            subscription.callback(documents)
        except Exception:
            # A broken listener must not fail the write that triggered it
            logger.exception("Subscription callback failed for %s", subscription.collection)
