"""Interchangeable upstream sources of a channel's recent uploads."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable, Sequence
from datetime import datetime, timezone
from typing import Any
from urllib.parse import urlencode

import feedparser
import httpx

from yt_universe.core.config import MAX_RESULTS_PER_REQUEST
from yt_universe.schema.video import WATCH_URL, VideoRecord, make_record_id
from yt_universe.services.cache import ResponseCache
from yt_universe.services.youtube_api import (
    SourceUnsupported,
    UpstreamUnavailable,
    YouTubeDataClient,
    best_thumbnail,
    cache_key,
    fetch_upstream,
    parse_datetime,
    parse_duration,
)

logger = logging.getLogger(__name__)

FEED_URL = "https://www.youtube.com/feeds/videos.xml"
OEMBED_URL = "https://www.youtube.com/oembed"
DEFAULT_DESCRIPTION_CHARS = 200


def clamp_max_results(max_results: int) -> int:
    return max(0, min(max_results, MAX_RESULTS_PER_REQUEST))


def _publish_key(record: VideoRecord) -> tuple[bool, float]:
    published = record.published_at
    if published is None:
        return False, 0.0
    if published.tzinfo is None:
        published = published.replace(tzinfo=timezone.utc)
    return True, published.timestamp()


def sort_by_recency(records: Iterable[VideoRecord]) -> list[VideoRecord]:
    """Sort newest first; undated records sink to the end and ties keep input order."""

    return sorted(records, key=_publish_key, reverse=True)


def _truncate(text: str | None, limit: int) -> str | None:
    if not text:
        return None
    return text[:limit]


def _to_int(value: Any) -> int | None:
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError):
        return None


def _mapping(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _text(value: Any) -> str | None:
    return value if isinstance(value, str) and value else None


class UploadSource(ABC):
    """A provider of a channel's recent uploads as ``VideoRecord`` objects."""

    name: str = "source"
    lists_uploads: bool = True

    @abstractmethod
    async def fetch_uploads(self, channel_id: str, max_results: int) -> list[VideoRecord]:
        """Return at most ``min(max_results, 50)`` uploads, newest first."""

    @abstractmethod
    async def fetch_video(self, video_id: str, *, channel_id: str | None = None) -> VideoRecord | None:
        """Look up a single, already-known video."""


class DataApiUploadSource(UploadSource):
    """Uploads from the Data API: richest fields, costs quota."""

    name = "data-api"

    def __init__(self, api: YouTubeDataClient, *, description_chars: int = DEFAULT_DESCRIPTION_CHARS) -> None:
        self._api = api
        self._description_chars = description_chars

    async def uploads_playlist_id(self, channel_id: str) -> str | None:
        payload = await self._api.get("channels", part="contentDetails", id=channel_id)
        items = payload.get("items")
        for item in items if isinstance(items, list) else []:
            related = _mapping(_mapping(_mapping(item).get("contentDetails")).get("relatedPlaylists"))
            uploads = _text(related.get("uploads"))
            if uploads:
                return uploads
        return None

    async def fetch_uploads(self, channel_id: str, max_results: int) -> list[VideoRecord]:
        limit = clamp_max_results(max_results)
        if limit == 0:
            return []

        playlist_id = await self.uploads_playlist_id(channel_id)
        if not playlist_id:
            logger.info("Channel %s has no uploads playlist", channel_id)
            return []

        records: list[VideoRecord] = []
        seen: set[str] = set()
        page_token: str | None = None
        while len(records) < limit:
            params = {
                "part": "snippet,contentDetails",
                "playlistId": playlist_id,
                "maxResults": str(min(limit - len(records), MAX_RESULTS_PER_REQUEST)),
            }
            if page_token:
                params["pageToken"] = page_token
            payload = await self._api.get("playlistItems", **params)

            items = payload.get("items")
            for item in items if isinstance(items, list) else []:
                record = self.record_from_playlist_item(item, channel_id, position=len(records))
                if record is None or record.id in seen:
                    continue
                seen.add(record.id)
                records.append(record)

            page_token = _text(payload.get("nextPageToken"))
            if not page_token:
                break

        return sort_by_recency(records)[:limit]

    def record_from_playlist_item(self, item: Any, channel_id: str, *, position: int = 0) -> VideoRecord | None:
        if not isinstance(item, dict):
            return None
        snippet = _mapping(item.get("snippet"))
        details = _mapping(item.get("contentDetails"))
        video_id = _text(_mapping(snippet.get("resourceId")).get("videoId")) or _text(details.get("videoId"))
        if not video_id:
            return None

        published = parse_datetime(details.get("videoPublishedAt")) or parse_datetime(snippet.get("publishedAt"))
        return VideoRecord(
            id=make_record_id(channel_id, video_id),
            channel_id=channel_id,
            video_id=video_id,
            title=_text(snippet.get("title")) or f"Video {position + 1}",
            published_at=published,
            thumbnail_url=best_thumbnail(snippet.get("thumbnails")),
            description=_truncate(_text(snippet.get("description")), self._description_chars),
            author=_text(snippet.get("videoOwnerChannelTitle")) or _text(snippet.get("channelTitle")),
        )

    async def fetch_video(self, video_id: str, *, channel_id: str | None = None) -> VideoRecord | None:
        payload = await self._api.get("videos", part="snippet,contentDetails,statistics", id=video_id)
        items = payload.get("items")
        items = [item for item in items if isinstance(item, dict)] if isinstance(items, list) else []
        if not items:
            return None

        item = items[0]
        snippet = _mapping(item.get("snippet"))
        owner = _text(snippet.get("channelId")) or channel_id or ""
        return VideoRecord(
            id=make_record_id(owner, video_id),
            channel_id=owner,
            video_id=video_id,
            title=_text(snippet.get("title")) or video_id,
            published_at=parse_datetime(snippet.get("publishedAt")),
            thumbnail_url=best_thumbnail(snippet.get("thumbnails")),
            description=_truncate(_text(snippet.get("description")), self._description_chars),
            author=_text(snippet.get("channelTitle")),
            view_count=_to_int(_mapping(item.get("statistics")).get("viewCount")),
            duration_seconds=parse_duration(_mapping(item.get("contentDetails")).get("duration")),
        )


def parse_published(entry: feedparser.FeedParserDict) -> datetime | None:
    """Convert feed published timestamp to timezone-aware datetime."""

    struct_time = entry.get("published_parsed") or entry.get("updated_parsed")
    if not struct_time:
        return None
    return datetime(*struct_time[:6], tzinfo=timezone.utc)


def video_identity(entry: feedparser.FeedParserDict) -> str | None:
    """Return the video id of a feed entry."""

    video_id = entry.get("yt_videoid") or entry.get("video_id") or entry.get("id")
    if video_id and video_id.startswith("yt:video:"):
        video_id = video_id.split(":")[-1]
    return video_id or None


def _entry_thumbnail(entry: feedparser.FeedParserDict) -> str | None:
    for thumb in entry.get("media_thumbnail") or []:
        if isinstance(thumb, dict) and thumb.get("url"):
            return thumb["url"]
    return None


class FeedUploadSource(UploadSource):
    """Uploads from the public channel feed: no quota, ~15 newest entries."""

    name = "feed"

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        cache: ResponseCache | None = None,
        description_chars: int = DEFAULT_DESCRIPTION_CHARS,
    ) -> None:
        self._client = client
        self._cache = cache
        self._description_chars = description_chars

    @staticmethod
    def feed_url(channel_id: str) -> str:
        return f"{FEED_URL}?{urlencode({'channel_id': channel_id})}"

    async def fetch_feed(self, channel_id: str) -> feedparser.FeedParserDict:
        """Fetch and parse the channel's Atom feed."""

        url = self.feed_url(channel_id)
        content = self._cache.get(url) if self._cache is not None else None
        if content is None:
            response = await fetch_upstream(self._client, url, source="channel feed")
            content = response.content
            if self._cache is not None:
                self._cache.set(url, content)

        parsed = feedparser.parse(content)
        if parsed.get("bozo") and not parsed.entries and not parsed.feed:
            raise UpstreamUnavailable(f"Unreadable feed for {channel_id}", source="channel feed")
        return parsed

    def records_from_feed(
        self,
        feed: feedparser.FeedParserDict,
        channel_id: str,
        entries: Sequence[feedparser.FeedParserDict] | None = None,
    ) -> list[VideoRecord]:
        author = feed.feed.get("author") or feed.feed.get("title")
        records: list[VideoRecord] = []
        for position, entry in enumerate(feed.entries if entries is None else entries):
            video_id = video_identity(entry)
            if not video_id:
                continue
            description = entry.get("media_description") or entry.get("summary") or entry.get("description")
            records.append(
                VideoRecord(
                    id=make_record_id(channel_id, video_id),
                    channel_id=channel_id,
                    video_id=video_id,
                    title=entry.get("title") or f"Video {position + 1}",
                    published_at=parse_published(entry),
                    thumbnail_url=_entry_thumbnail(entry),
                    description=_truncate(description, self._description_chars),
                    author=entry.get("author") or author,
                )
            )
        return records

    async def fetch_uploads(self, channel_id: str, max_results: int) -> list[VideoRecord]:
        limit = clamp_max_results(max_results)
        if limit == 0:
            return []
        feed = await self.fetch_feed(channel_id)
        return sort_by_recency(self.records_from_feed(feed, channel_id))[:limit]

    async def fetch_video(self, video_id: str, *, channel_id: str | None = None) -> VideoRecord | None:
        if not channel_id:
            raise SourceUnsupported("Feed lookups need the owning channel id", source="channel feed")
        feed = await self.fetch_feed(channel_id)
        for record in self.records_from_feed(feed, channel_id):
            if record.video_id == video_id:
                return record
        return None


class OEmbedSource(UploadSource):
    """Single-video fallback through oEmbed: title, thumbnail and author only."""

    name = "oembed"
    lists_uploads = False

    def __init__(self, client: httpx.AsyncClient, *, cache: ResponseCache | None = None) -> None:
        self._client = client
        self._cache = cache

    async def fetch_uploads(self, channel_id: str, max_results: int) -> list[VideoRecord]:
        raise SourceUnsupported("oEmbed cannot list channel uploads", source="oembed")

    async def fetch_video(self, video_id: str, *, channel_id: str | None = None) -> VideoRecord | None:
        params = {"url": WATCH_URL.format(video_id=video_id), "format": "json"}
        key = cache_key(OEMBED_URL, params)
        payload = self._cache.get(key) if self._cache is not None else None
        if payload is None:
            try:
                response = await fetch_upstream(self._client, OEMBED_URL, source="oembed", params=params)
            except UpstreamUnavailable as exc:
                if exc.status_code in (400, 401, 404):
                    return None
                raise
            try:
                payload = response.json()
            except ValueError as exc:
                raise UpstreamUnavailable("Invalid response from oEmbed", source="oembed") from exc
            if not isinstance(payload, dict):
                raise UpstreamUnavailable("Invalid response from oEmbed", source="oembed")
            if self._cache is not None:
                self._cache.set(key, payload)

        owner = channel_id or ""
        return VideoRecord(
            id=make_record_id(owner, video_id),
            channel_id=owner,
            video_id=video_id,
            title=_text(payload.get("title")) or video_id,
            thumbnail_url=_text(payload.get("thumbnail_url")),
            author=_text(payload.get("author_name")),
        )


class UploadSourceChain(UploadSource):
    """Tries an ordered list of sources, moving on when one is unavailable."""

    name = "chain"

    def __init__(self, sources: Sequence[UploadSource]) -> None:
        if not sources:
            raise ValueError("UploadSourceChain needs at least one source")
        self._sources = list(sources)

    @property
    def sources(self) -> list[UploadSource]:
        return list(self._sources)

    async def fetch_uploads(self, channel_id: str, max_results: int) -> list[VideoRecord]:
        last_error: UpstreamUnavailable | None = None
        for source in self._sources:
            if not source.lists_uploads:
                continue
            try:
                return await source.fetch_uploads(channel_id, max_results)
            except UpstreamUnavailable as exc:
                logger.warning("Upload source %s failed for %s: %s", source.name, channel_id, exc)
                last_error = exc
        if last_error is None:
            raise SourceUnsupported("No configured source can list uploads", source=self.name)
        raise last_error

    async def fetch_video(self, video_id: str, *, channel_id: str | None = None) -> VideoRecord | None:
        last_error: UpstreamUnavailable | None = None
        for source in self._sources:
            try:
                record = await source.fetch_video(video_id, channel_id=channel_id)
            except SourceUnsupported:
                continue
            except UpstreamUnavailable as exc:
                logger.warning("Video lookup via %s failed for %s: %s", source.name, video_id, exc)
                last_error = exc
                continue
            if record is not None:
                return record
        if last_error is not None:
            raise last_error
        return None


def build_upload_sources(
    client: httpx.AsyncClient,
    *,
    api: YouTubeDataClient,
    cache: ResponseCache | None,
    low_quota_mode: bool,
    description_chars: int = DEFAULT_DESCRIPTION_CHARS,
) -> tuple[UploadSourceChain, UploadSourceChain]:
    """Return ``(listing_chain, video_lookup_chain)`` for the configuration."""

    feed = FeedUploadSource(client, cache=cache, description_chars=description_chars)
    oembed = OEmbedSource(client, cache=cache)
    data_api = DataApiUploadSource(api, description_chars=description_chars) if api.configured else None

    if data_api is None:
        listing: list[UploadSource] = [feed]
    elif low_quota_mode:
        listing = [feed, data_api]
    else:
        listing = [data_api, feed]

    lookup: list[UploadSource] = [source for source in (data_api, feed, oembed) if source is not None]
    return UploadSourceChain(listing), UploadSourceChain(lookup)
