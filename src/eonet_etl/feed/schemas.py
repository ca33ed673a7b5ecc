"""Pydantic models for EONET v3 payloads.

Only the fields the loader relies on are declared; everything else the
feed sends is kept as extra data so it survives into the JSON blobs.
"""

from __future__ import annotations

import datetime as dt
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

# Identifiers the feed sends as 8, 8.0 or "8" depending on endpoint.  Kept
# untyped so an odd value resolves to 0 instead of rejecting the record.
FeedId = Any


class FeedCategoryRef(BaseModel):
    """Category reference embedded in an event."""

    id: FeedId = None
    title: str | None = None
    model_config = ConfigDict(extra="allow")


class FeedSource(BaseModel):
    id: str | None = None
    url: str | None = None
    title: str | None = None
    model_config = ConfigDict(extra="allow")


class FeedGeometry(BaseModel):
    date: dt.datetime | None = None
    type: str | None = None
    # Point, ring or polygon; only the type tag is interpreted.
    coordinates: Any = None
    # Allow extra fields (magnitudeValue, magnitudeUnit)
    model_config = ConfigDict(extra="allow")


class FeedEvent(BaseModel):
    id: str = Field(min_length=1)
    # A missing title is stored empty rather than rejecting the event.
    title: str = ""
    description: str | None = None
    link: str | None = None
    categories: list[FeedCategoryRef] = []
    sources: list[FeedSource] = []
    geometry: list[FeedGeometry] = []
    closed: str | None = None
    model_config = ConfigDict(extra="allow")


class FeedCategory(BaseModel):
    id: FeedId = None
    title: str = Field(min_length=1)
    link: str | None = None
    description: str | None = None
    layers: str | None = None
    model_config = ConfigDict(extra="allow")


class EventsResponse(BaseModel):
    title: str | None = None
    description: str | None = None
    link: str | None = None
    # Validated one by one during normalization so a bad event is skippable.
    events: list[Any] = []
    categories: list[FeedCategory] = []


class CategoriesResponse(BaseModel):
    title: str | None = None
    description: str | None = None
    link: str | None = None
    categories: list[FeedCategory] = []
