"""
JSON file backed document store.

Keeps the in-memory store's semantics and writes one JSON file per collection
under a data directory after every change. Timestamps are tagged on disk so
they load back as datetimes rather than strings.
"""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict

from .document_store import InMemoryDocumentStore
from .timeutils import normalize_timestamp, utc_now

logger = logging.getLogger(__name__)

_TIMESTAMP_TAG = "$timestamp"


def _encode(value: Any) -> Any:
    if isinstance(value, datetime):
        return {_TIMESTAMP_TAG: normalize_timestamp(value).isoformat()}
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def _decode(obj: Dict[str, Any]) -> Any:
    if len(obj) == 1 and _TIMESTAMP_TAG in obj:
        return normalize_timestamp(obj[_TIMESTAMP_TAG])
    return obj


class JsonFileDocumentStore(InMemoryDocumentStore):
    """Document store persisted as ``<data_dir>/<collection>.json`` files."""

    def __init__(self, data_dir: Path, clock: Callable[[], datetime] = utc_now):
        """Initialize the store and load any existing collections.

        Args:
            data_dir: Directory holding the collection files
            clock: Source of server timestamps
        """
        super().__init__(clock=clock)
        self.data_dir = Path(data_dir)
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self._load_all()

    def _collection_file(self, collection: str) -> Path:
        return self.data_dir / f"{collection}.json"

    def _load_all(self) -> None:
        """Load every collection file found in the data directory."""
        for path in sorted(self.data_dir.glob("*.json")):
            try:
                with open(path, "r", encoding="utf-8") as f:
                    documents = json.load(f, object_hook=_decode)
            except (json.JSONDecodeError, OSError) as e:
                logger.warning(f"Skipping unreadable collection file {path}: {e}")
                continue
            if not isinstance(documents, dict):
                logger.warning(f"Skipping collection file {path}: expected an object")
                continue
            self._collections[path.stem] = documents
        logger.debug(f"Loaded {len(self._collections)} collections from {self.data_dir}")

    def _persist(self, collection: str) -> None:
        documents = self._collections.get(collection, {})
        with open(self._collection_file(collection), "w", encoding="utf-8") as f:
            json.dump(documents, f, indent=2, ensure_ascii=False, default=_encode)
