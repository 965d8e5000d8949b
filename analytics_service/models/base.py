"""
Shared base for models that round-trip through the document store.
"""

from datetime import datetime
from typing import Annotated, Any, Dict, Optional, Type, TypeVar

from pydantic import BaseModel, BeforeValidator, ConfigDict

from ..timeutils import normalize_timestamp

Timestamp = Annotated[datetime, BeforeValidator(normalize_timestamp)]

ModelT = TypeVar("ModelT", bound="StoreModel")


def to_camel(name: str) -> str:
    """``views_24h`` -> ``views24h``, ``average_time_spent`` -> ``averageTimeSpent``."""
    head, *rest = name.split("_")
    return head + "".join(part[:1].upper() + part[1:] for part in rest)


class StoreModel(BaseModel):
    """Pydantic model stored with camelCase field names."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    @classmethod
    def from_document(cls: Type[ModelT], document: Optional[Dict[str, Any]]) -> Optional[ModelT]:
        """Build the model from a stored document, or None for a missing one."""
        if document is None:
            return None
        return cls.model_validate(document)

    def to_document(self) -> Dict[str, Any]:
        """Fields to write to the store; absent optional fields are left out."""
        return self.model_dump(by_alias=True, exclude_none=True, exclude={"id"})

    def to_dict(self) -> Dict[str, Any]:
        """JSON-ready representation for API responses."""
        return self.model_dump(by_alias=True, mode="json")
