"""Async HTTP client for the NASA EONET v3 API.

Thin wrapper over ``httpx.AsyncClient``: builds query strings, checks the
status code, and validates payloads.  No retries -- the caller owns retry
policy.  Task cancellation and caller-imposed deadlines propagate unchanged.
"""

from __future__ import annotations

from typing import Any

import httpx
import structlog
from pydantic import TypeAdapter, ValidationError

from eonet_etl import __version__
from eonet_etl.config.settings import FeedSettings
from eonet_etl.errors import FeedError
from eonet_etl.feed.schemas import CategoriesResponse, EventsResponse, FeedCategory

logger = structlog.get_logger()

USER_AGENT = f"EONET-ETL/{__version__}"

_category_list = TypeAdapter(list[FeedCategory])


def build_events_params(
    days: int = 0,
    limit: int = 0,
    status: str = "",
    category_id: int = 0,
    source: str = "",
) -> dict[str, str | int]:
    """Query parameters for ``GET /events``; unset options are left out."""
    params: dict[str, str | int] = {}
    if days > 0:
        params["days"] = days
    if limit > 0:
        params["limit"] = limit
    if status:
        params["status"] = status
    if category_id > 0:
        params["category"] = category_id
    if source:
        params["source"] = source
    return params


class FeedClient:
    """Fetch events and categories from EONET."""

    def __init__(self, settings: FeedSettings, http_client: httpx.AsyncClient | None = None) -> None:
        headers = {"User-Agent": USER_AGENT, "Accept": "application/json"}
        if settings.api_key:
            headers["Authorization"] = f"Bearer {settings.api_key}"
        self._client = http_client or httpx.AsyncClient(
            base_url=settings.api_url,
            timeout=settings.timeout_seconds,
        )
        self._client.headers.update(headers)

    async def _get_json(self, path: str, params: dict[str, Any] | None = None) -> Any:
        try:
            response = await self._client.get(path, params=params)
        except httpx.HTTPError as e:
            raise FeedError(f"failed to make request to {path}: {e}") from e

        if response.status_code != httpx.codes.OK:
            raise FeedError(
                f"API request failed with status {response.status_code}: {response.text[:500]}"
            )
        try:
            return response.json()
        except ValueError as e:
            raise FeedError(f"failed to decode response from {path}: {e}") from e

    async def fetch_events(
        self,
        days: int,
        limit: int,
        status: str = "all",
        *,
        category_id: int = 0,
        source: str = "",
    ) -> EventsResponse:
        """Fetch events within the last *days* days, at most *limit* of them.

        Raises:
            FeedError: On transport errors, non-200 answers or an envelope
                that does not validate.  Individual events are validated
                later, during normalization.
        """
        params = build_events_params(days, limit, status, category_id, source)
        log = logger.bind(params=params)
        log.debug("feed_events_fetch_started")

        payload = await self._get_json("events", params)
        try:
            response = EventsResponse.model_validate(payload)
        except ValidationError as e:
            raise FeedError(f"failed to unmarshal events response: {e}") from e

        log.info(
            "feed_events_fetched",
            events_count=len(response.events),
            categories_count=len(response.categories),
        )
        return response

    async def fetch_categories(self) -> list[FeedCategory]:
        """Fetch the category catalogue.

        Accepts the v3 envelope (``{"categories": [...]}``) as well as a bare
        list.

        Raises:
            FeedError: On transport errors, non-200 answers or invalid data.
        """
        payload = await self._get_json("categories")
        try:
            if isinstance(payload, list):
                categories = _category_list.validate_python(payload)
            else:
                categories = CategoriesResponse.model_validate(payload).categories
        except ValidationError as e:
            raise FeedError(f"failed to unmarshal categories response: {e}") from e

        logger.info("feed_categories_fetched", categories_count=len(categories))
        return categories

    async def health_check(self) -> None:
        """Raise ``FeedError`` unless ``GET /categories`` answers 200."""
        try:
            response = await self._client.get("categories")
        except httpx.HTTPError as e:
            raise FeedError(f"health check failed: {e}") from e
        if response.status_code != httpx.codes.OK:
            raise FeedError(f"health check failed with status {response.status_code}")

    async def aclose(self) -> None:
        await self._client.aclose()
