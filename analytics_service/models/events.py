"""
Validated inputs accepted from the UI layer.

These models are the only way data enters the store, so ``to_document`` can
emit exactly the fields that were supplied.
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from ..document_store import SERVER_TIMESTAMP
from .base import StoreModel


class DeviceInfo(BaseModel):
    """Client environment attached to presence and session records."""
    user_id: Optional[str] = None
    device: Optional[str] = None
    browser: Optional[str] = None
    country: Optional[str] = None
    referrer: Optional[str] = None


class ArticleMeta(BaseModel):
    """Descriptive article fields copied onto performance and trending records."""
    title: Optional[str] = None
    slug: Optional[str] = None
    category: Optional[str] = None

    def to_fields(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


class PageViewEventInput(StoreModel):
    """A view event as reported by the client, before the server timestamp."""
    page: str = Field(min_length=1)
    title: str = ""
    article_id: Optional[str] = Field(default=None, min_length=1)
    slug: Optional[str] = None
    category: Optional[str] = None
    referrer: Optional[str] = None
    user_agent: Optional[str] = None
    device: Optional[str] = None
    browser: Optional[str] = None
    os: Optional[str] = None
    country: Optional[str] = None
    session_id: str = Field(min_length=1)
    user_id: Optional[str] = None
    time_on_page: Optional[float] = Field(default=None, ge=0)
    scroll_depth: Optional[float] = Field(default=None, ge=0, le=100)
    exit_page: Optional[bool] = None

    def to_document(self) -> Dict[str, Any]:
        """Stored page view: supplied fields plus a server-assigned timestamp."""
        document = self.model_dump(by_alias=True, exclude_none=True, exclude={"slug", "category"})
        document["timestamp"] = SERVER_TIMESTAMP
        return document

    def device_info(self) -> DeviceInfo:
        return DeviceInfo(
            user_id=self.user_id,
            device=self.device,
            browser=self.browser,
            country=self.country,
            referrer=self.referrer,
        )

    def article_meta(self) -> ArticleMeta:
        return ArticleMeta(title=self.title or None, slug=self.slug, category=self.category)


class SessionStartInput(StoreModel):
    """Fields reported when a legacy session starts."""
    session_id: str = Field(min_length=1)
    user_id: Optional[str] = None
    referrer: Optional[str] = None
    device: Optional[str] = None
    browser: Optional[str] = None
    country: Optional[str] = None

    def to_document(self) -> Dict[str, Any]:
        document = self.model_dump(by_alias=True, exclude_none=True)
        document["startTime"] = SERVER_TIMESTAMP
        document["pageViews"] = 1
        return document
