"""Normalize EONET feed records into flat, storage-ready records.

Pure functions only: no I/O, no clock.  Category normalization cannot
fail once the feed payload has been validated; event normalization fails
for a single record (``NormalizationError``) when the raw event does not
validate or one of its nested collections cannot be JSON-encoded.
"""

from __future__ import annotations

import datetime as dt
import json
import math
import re
from collections.abc import Mapping
from dataclasses import asdict, dataclass
from typing import Any

from pydantic import ValidationError

from eonet_etl.errors import NormalizationError
from eonet_etl.feed.schemas import FeedCategory, FeedEvent, FeedId

_DECIMAL_INT = re.compile(r"[+-]?[0-9]+")
_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1


@dataclass(frozen=True)
class CategoryRecord:
    id: int
    title: str
    link: str | None = None
    description: str | None = None
    layers: str | None = None

    def as_params(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class EventRecord:
    id: str
    title: str
    description: str | None
    link: str | None
    categories_json: str
    sources_json: str
    geometry_json: str
    closed: str | None = None

    def as_params(self) -> dict[str, Any]:
        return asdict(self)


def resolve_id(value: FeedId) -> int:
    """Resolve a polymorphic feed identifier to an integer.

    Total over every input: integers pass through, finite floats truncate
    toward zero, strings of optional sign plus ASCII digits are parsed in
    base 10.  Anything else (booleans, ``None``, unparsable or
    out-of-range text, containers) resolves to 0.
    """
    match value:
        case bool():
            return 0
        case int():
            return value
        case float() if math.isfinite(value):
            return _within_int64(int(value))
        case str() if _DECIMAL_INT.fullmatch(value):
            return _within_int64(int(value))
        case _:
            return 0


def _within_int64(value: int) -> int:
    return value if _INT64_MIN <= value <= _INT64_MAX else 0


def _encode_default(value: object) -> str:
    """JSON fallback for the non-JSON types pydantic produces (timestamps)."""
    if isinstance(value, dt.datetime):
        text = value.isoformat()
        return text[:-6] + "Z" if text.endswith("+00:00") else text
    if isinstance(value, dt.date):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def _to_json(record_id: str, label: str, value: object) -> str:
    try:
        return json.dumps(value, default=_encode_default, allow_nan=False, ensure_ascii=False)
    except (TypeError, ValueError) as e:
        raise NormalizationError(record_id, f"failed to marshal {label}: {e}") from e


def _raw_event_id(raw: object) -> str:
    if isinstance(raw, Mapping):
        return str(raw.get("id") or "<missing id>")
    return "<not an object>"


def parse_event(raw: Mapping[str, Any] | FeedEvent) -> FeedEvent:
    """Validate one raw event from the feed.

    Raises:
        NormalizationError: If required fields are missing or mistyped.
    """
    if isinstance(raw, FeedEvent):
        return raw
    try:
        return FeedEvent.model_validate(raw)
    except ValidationError as e:
        raise NormalizationError(_raw_event_id(raw), f"invalid event: {e.error_count()} validation error(s)") from e


def normalize_event(raw: Mapping[str, Any] | FeedEvent) -> EventRecord:
    """Convert a raw feed event into an ``EventRecord``.

    Category references are written with their resolved integer ids;
    sources and geometry are encoded as-is, including any extra keys the
    feed sent.

    Raises:
        NormalizationError: If the event does not validate or a nested
            collection cannot be encoded.  Callers skip the record.
    """
    event = parse_event(raw)

    categories = [ref.model_dump() | {"id": resolve_id(ref.id)} for ref in event.categories]
    sources = [source.model_dump() for source in event.sources]
    geometry = [geom.model_dump() for geom in event.geometry]

    return EventRecord(
        id=event.id,
        title=event.title,
        description=event.description,
        link=event.link,
        categories_json=_to_json(event.id, "categories", categories),
        sources_json=_to_json(event.id, "sources", sources),
        geometry_json=_to_json(event.id, "geometry", geometry),
        closed=event.closed,
    )


def normalize_category(category: FeedCategory) -> CategoryRecord:
    """Convert a validated feed category into a ``CategoryRecord``."""
    return CategoryRecord(
        id=resolve_id(category.id),
        title=category.title,
        link=category.link,
        description=category.description,
        layers=category.layers,
    )
