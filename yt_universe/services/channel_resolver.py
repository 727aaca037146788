"""Utilities for normalising YouTube channel identifiers."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from urllib.parse import parse_qs, urlparse

import httpx

from yt_universe.services.cache import HandleCache
from yt_universe.services.youtube_api import UpstreamUnavailable, YouTubeDataClient, fetch_upstream

logger = logging.getLogger(__name__)

CHANNEL_ID_REGEX = re.compile(r"^UC[0-9A-Za-z_-]{22}$")
HANDLE_REGEX = re.compile(r"^@[A-Za-z0-9_.-]+$")
YOUTUBE_BASE_URL = "https://www.youtube.com"

_CHANNEL_PATH_RE = re.compile(r"^/channel/(UC[0-9A-Za-z_-]{22})(?:/|$)")
_HANDLE_PATH_RE = re.compile(r"^/(@[A-Za-z0-9_.-]+)")
_USER_PATH_RE = re.compile(r"^/user/([A-Za-z0-9_-]+)")
_PAGE_ID_PATTERNS = (
    re.compile(r'"channelId":"(UC[0-9A-Za-z_-]{22})"'),
    re.compile(r'"externalId":"(UC[0-9A-Za-z_-]{22})"'),
    re.compile(r'<link rel="canonical" href="https://www\.youtube\.com/channel/(UC[0-9A-Za-z_-]{22})"'),
)
_TOKEN_SPLIT_RE = re.compile(r"[\s,]+")
_BARE_YOUTUBE_RE = re.compile(r"^(?:(?:www|m)\.)?youtube\.com/", re.IGNORECASE)


class ChannelResolutionError(ValueError):
    """Raised when a channel identifier cannot be normalised."""


class InputFormatError(ChannelResolutionError):
    """The reference matches none of the known channel reference shapes."""


class ResolutionFailure(ChannelResolutionError):
    """Every lookup strategy was tried and none produced a channel id."""


@dataclass(slots=True, frozen=True)
class ChannelReference:
    """A locally parsed reference that still needs a network lookup.

    ``kind`` is one of ``"handle"``, ``"user"`` or ``"url"``.
    """

    kind: str
    value: str

    @property
    def cache_key(self) -> str:
        return f"{self.kind}:{self.value.lower()}"

    @property
    def page_url(self) -> str:
        if self.kind == "handle":
            return f"{YOUTUBE_BASE_URL}/{self.value}"
        if self.kind == "user":
            return f"{YOUTUBE_BASE_URL}/user/{self.value}"
        return self.value


@dataclass(slots=True)
class Resolution:
    """Outcome of resolving one reference: either a channel id or an error."""

    reference: str
    channel_id: str | None = None
    error: ChannelResolutionError | None = None

    @property
    def ok(self) -> bool:
        return self.channel_id is not None


@dataclass(slots=True)
class ResolutionBatch:
    """Outcome of resolving every reference found in a block of free-form text."""

    channel_ids: list[str] = field(default_factory=list)
    failures: list[Resolution] = field(default_factory=list)


def parse_reference(raw: str) -> str | ChannelReference:
    """Classify a raw reference without touching the network.

    Returns the canonical channel id when it can be read directly from the
    input, otherwise a ``ChannelReference`` describing what must be looked up.

    Supports:
      * Raw channel IDs (starting with UC)
      * Channel URLs (`/channel/UC...`) and feed URLs containing `channel_id`
      * Handle URLs (`/@name`) and legacy username URLs (`/user/name`)
      * Any other http(s) URL, scraped as a channel page
      * Bare handles (`@name`)

    """

    identifier = raw.strip()
    if not identifier:
        raise InputFormatError("Empty channel identifier")

    if CHANNEL_ID_REGEX.match(identifier):
        return identifier

    try:
        parsed = urlparse(identifier)
    except ValueError as exc:
        raise InputFormatError("Invalid channel input") from exc
    if parsed.scheme in ("http", "https") and parsed.netloc:
        match = _CHANNEL_PATH_RE.match(parsed.path)
        if match:
            return match.group(1)

        # Feed URLs carry the id as a query parameter
        channel_ids = parse_qs(parsed.query).get("channel_id")
        if channel_ids and CHANNEL_ID_REGEX.match(channel_ids[-1]):
            return channel_ids[-1]

        match = _HANDLE_PATH_RE.match(parsed.path)
        if match:
            return ChannelReference("handle", match.group(1))

        match = _USER_PATH_RE.match(parsed.path)
        if match:
            return ChannelReference("user", match.group(1))

        return ChannelReference("url", identifier)

    if HANDLE_REGEX.match(identifier):
        return ChannelReference("handle", identifier)

    raise InputFormatError("Invalid channel input")


def extract_channel_id_from_page(html: str) -> str | None:
    """Return the first canonical channel id embedded in a channel page."""

    for pattern in _PAGE_ID_PATTERNS:
        match = pattern.search(html)
        if match:
            return match.group(1)
    return None


def split_references(text: str) -> list[str]:
    """Split free-form text into unique reference tokens, preserving order.

    Scheme-less youtube.com links such as ``youtube.com/@name`` are given an
    ``https://`` prefix so they parse as channel URLs.
    """

    seen: set[str] = set()
    tokens: list[str] = []
    for token in _TOKEN_SPLIT_RE.split(text or ""):
        token = token.strip()
        if _BARE_YOUTUBE_RE.match(token):
            token = f"https://{token}"
        if not token or token.lower() in seen:
            continue
        seen.add(token.lower())
        tokens.append(token)
    return tokens


class ChannelResolver:
    """Resolves user-supplied channel references to canonical channel ids."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        api: YouTubeDataClient | None = None,
        handle_cache: HandleCache | None = None,
        search_fallback: bool = True,
    ) -> None:
        self._client = client
        self._api = api
        self._handle_cache = handle_cache if handle_cache is not None else HandleCache()
        self._search_fallback = search_fallback

    @property
    def handle_cache(self) -> HandleCache:
        return self._handle_cache

    @property
    def _api_configured(self) -> bool:
        return self._api is not None and self._api.configured

    async def resolve(self, reference: str) -> Resolution:
        """Resolve ``reference``; errors are returned on the result, never raised."""

        try:
            parsed = parse_reference(reference)
        except InputFormatError as exc:
            return Resolution(reference=reference, error=exc)

        if isinstance(parsed, str):
            return Resolution(reference=reference, channel_id=parsed)

        try:
            channel_id = await self._lookup(parsed)
        except ResolutionFailure as exc:
            return Resolution(reference=reference, error=exc)
        return Resolution(reference=reference, channel_id=channel_id)

    async def resolve_many(self, text: str) -> ResolutionBatch:
        """Resolve every reference in ``text`` one after another."""

        batch = ResolutionBatch()
        for token in split_references(text):
            resolution = await self.resolve(token)
            if not resolution.ok:
                batch.failures.append(resolution)
            elif resolution.channel_id not in batch.channel_ids:
                batch.channel_ids.append(resolution.channel_id)
        return batch

    async def _lookup(self, reference: ChannelReference) -> str:
        cached = self._handle_cache.get(reference.cache_key)
        if cached:
            return cached

        channel_id = await self._primary_lookup(reference)
        if channel_id is None and reference.kind != "url":
            channel_id = await self._search_lookup(reference)

        if channel_id is None:
            raise ResolutionFailure(f"Cannot resolve {reference.value}")

        self._handle_cache.set(reference.cache_key, channel_id)
        logger.info("Resolved %s to %s", reference.value, channel_id)
        return channel_id

    async def _primary_lookup(self, reference: ChannelReference) -> str | None:
        if reference.kind == "url" or not self._api_configured:
            return await self._scrape_page(reference.page_url)

        params = {"part": "id"}
        if reference.kind == "handle":
            params["forHandle"] = reference.value.lstrip("@")
        else:
            params["forUsername"] = reference.value

        try:
            payload = await self._api.get("channels", **params)
        except UpstreamUnavailable as exc:
            logger.warning("Channel lookup failed for %s: %s", reference.value, exc)
            return None

        for item in payload.get("items") or []:
            channel_id = item.get("id") if isinstance(item, dict) else None
            if isinstance(channel_id, str) and CHANNEL_ID_REGEX.match(channel_id):
                return channel_id
        return None

    async def _search_lookup(self, reference: ChannelReference) -> str | None:
        if not (self._search_fallback and self._api_configured):
            return None

        query = reference.value if reference.kind == "handle" else f"@{reference.value}"
        logger.info("Falling back to channel search for %s", reference.value)
        try:
            payload = await self._api.get("search", part="snippet", q=query, type="channel", maxResults="1")
        except UpstreamUnavailable as exc:
            logger.warning("Channel search failed for %s: %s", reference.value, exc)
            return None

        for item in payload.get("items") or []:
            ident = item.get("id") if isinstance(item, dict) else None
            channel_id = ident.get("channelId") if isinstance(ident, dict) else None
            if isinstance(channel_id, str) and CHANNEL_ID_REGEX.match(channel_id):
                return channel_id
        return None

    async def _scrape_page(self, url: str) -> str | None:
        try:
            response = await fetch_upstream(
                self._client,
                url,
                source="channel page",
                headers={"Accept": "text/html"},
            )
        except UpstreamUnavailable as exc:
            logger.warning("Channel page fetch failed for %s: %s", url, exc)
            return None
        return extract_channel_id_from_page(response.text)
