"""Thin async client for YouTube's public endpoints and the Data API v3."""

from __future__ import annotations

import logging
import re
from datetime import datetime
from typing import Any
from urllib.parse import urlencode

import httpx

from yt_universe.services.cache import ResponseCache

logger = logging.getLogger(__name__)

YOUTUBE_API_BASE = "https://www.googleapis.com/youtube/v3"
QUOTA_REASONS = frozenset({"quotaExceeded", "dailyLimitExceeded", "rateLimitExceeded"})

_DURATION_RE = re.compile(
    r"^P(?:(?P<weeks>\d+)W)?(?:(?P<days>\d+)D)?"
    r"(?:T(?:(?P<hours>\d+)H)?(?:(?P<minutes>\d+)M)?(?:(?P<seconds>\d+(?:\.\d+)?)S)?)?$"
)


class UpstreamUnavailable(RuntimeError):
    """Raised when an upstream data source cannot serve a request."""

    def __init__(self, message: str, *, source: str | None = None, status_code: int | None = None) -> None:
        super().__init__(message)
        self.source = source
        self.status_code = status_code


class QuotaExceeded(UpstreamUnavailable):
    """Raised when the Data API rejects a call because the quota is spent."""


class SourceUnsupported(UpstreamUnavailable):
    """Raised when a source variant cannot serve the requested operation."""


def parse_datetime(value: str | None) -> datetime | None:
    if not isinstance(value, str):
        return None
    value = value.strip()
    if not value:
        return None
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        logger.debug("Failed to parse datetime", extra={"value": value})
        return None


def parse_duration(value: str | None) -> int | None:
    """Convert an ISO-8601 duration (``P1DT2H3M4S``) to whole seconds.

    Day and week components are added in full so long streams are not
    truncated at 24 hours.
    """

    if not isinstance(value, str):
        return None
    match = _DURATION_RE.match(value.strip())
    if not match or not any(match.groupdict().values()):
        return None
    parts = {name: float(amount) for name, amount in match.groupdict().items() if amount}
    total = (
        parts.get("weeks", 0) * 7 * 86400
        + parts.get("days", 0) * 86400
        + parts.get("hours", 0) * 3600
        + parts.get("minutes", 0) * 60
        + parts.get("seconds", 0)
    )
    return int(total)


def best_thumbnail(thumbnails: dict[str, Any] | None) -> str | None:
    """Pick the largest commonly available thumbnail url."""

    if not isinstance(thumbnails, dict):
        return None
    for key in ("high", "medium", "default"):
        thumb = thumbnails.get(key)
        if isinstance(thumb, dict) and isinstance(thumb.get("url"), str) and thumb["url"]:
            return thumb["url"]
    return None


def cache_key(url: str, params: dict[str, str] | None = None) -> str:
    """Build a cache key from the exact upstream query."""

    if not params:
        return url
    return f"{url}?{urlencode(sorted(params.items()))}"


async def fetch_upstream(
    client: httpx.AsyncClient,
    url: str,
    *,
    source: str,
    params: dict[str, str] | None = None,
    headers: dict[str, str] | None = None,
) -> httpx.Response:
    """GET ``url`` and translate transport or status failures to ``UpstreamUnavailable``."""

    try:
        response = await client.get(url, params=params, headers=headers)
    except httpx.HTTPError as exc:
        raise UpstreamUnavailable(f"Unable to contact {source}", source=source) from exc

    if response.is_error:
        raise UpstreamUnavailable(
            f"{source} returned HTTP {response.status_code}",
            source=source,
            status_code=response.status_code,
        )
    return response


def _error_reasons(response: httpx.Response) -> set[str]:
    try:
        payload = response.json()
    except ValueError:
        return set()
    error = payload.get("error") if isinstance(payload, dict) else None
    if not isinstance(error, dict):
        return set()
    return {item.get("reason") for item in error.get("errors", []) if isinstance(item, dict)}


class YouTubeDataClient:
    """Key-authenticated JSON access to the YouTube Data API with response caching."""

    source = "YouTube Data API"

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        api_key: str | None,
        cache: ResponseCache | None = None,
    ) -> None:
        self._client = client
        self._api_key = api_key
        self._cache = cache

    @property
    def configured(self) -> bool:
        return bool(self._api_key)

    async def get(self, endpoint: str, **params: str) -> dict[str, Any]:
        """Call ``endpoint`` with ``params`` and return the decoded JSON body."""

        if not self._api_key:
            raise UpstreamUnavailable("YouTube Data API access requires YTU_YOUTUBE_API_KEY", source=self.source)

        url = f"{YOUTUBE_API_BASE}/{endpoint}"
        key = cache_key(url, params)
        if self._cache is not None:
            cached = self._cache.get(key)
            if cached is not None:
                return cached

        try:
            response = await self._client.get(url, params={**params, "key": self._api_key})
        except httpx.HTTPError as exc:
            raise UpstreamUnavailable("Unable to contact YouTube Data API", source=self.source) from exc

        if response.is_error:
            logger.error(
                "YouTube API %s failed (%s): %s",
                endpoint,
                response.status_code,
                response.text[:200],
            )
            if response.status_code == 403 and _error_reasons(response) & QUOTA_REASONS:
                raise QuotaExceeded(
                    f"YouTube Data API quota exhausted on {endpoint}",
                    source=self.source,
                    status_code=403,
                )
            raise UpstreamUnavailable(
                f"YouTube Data API {endpoint} returned HTTP {response.status_code}",
                source=self.source,
                status_code=response.status_code,
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise UpstreamUnavailable("Invalid response from YouTube Data API", source=self.source) from exc
        if not isinstance(payload, dict):
            raise UpstreamUnavailable("Invalid response from YouTube Data API", source=self.source)

        if self._cache is not None:
            self._cache.set(key, payload)
        return payload
