"""Service wiring and command line entry point."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

import httpx

from yt_universe.core.config import Settings, settings as default_settings
from yt_universe.services.aggregator import Aggregator
from yt_universe.services.cache import HandleCache, ResponseCache
from yt_universe.services.channel_resolver import ChannelResolver
from yt_universe.services.feed_service import FeedService
from yt_universe.services.list_store import InMemoryListStore, ListStore
from yt_universe.services.upload_sources import build_upload_sources
from yt_universe.services.youtube_api import YouTubeDataClient

logger = logging.getLogger(__name__)


def create_http_client(settings: Settings = default_settings) -> httpx.AsyncClient:
    """Build the shared outbound HTTP client."""

    return httpx.AsyncClient(
        headers={"User-Agent": settings.user_agent},
        timeout=settings.http_timeout_seconds,
        follow_redirects=True,
    )


def create_feed_service(
    client: httpx.AsyncClient,
    settings: Settings = default_settings,
    *,
    list_store: ListStore | None = None,
    handle_cache: HandleCache | None = None,
) -> FeedService:
    """Build the service graph once; callers share the returned instance."""

    response_cache = ResponseCache(
        ttl_seconds=settings.response_cache_ttl_seconds,
        max_entries=settings.response_cache_max_entries,
    )
    api = YouTubeDataClient(client, api_key=settings.youtube_api_key, cache=response_cache)
    listing, lookup = build_upload_sources(
        client,
        api=api,
        cache=response_cache,
        low_quota_mode=settings.low_quota_mode,
        description_chars=settings.description_max_chars,
    )
    logger.info(
        "Upload sources: %s (low_quota_mode=%s)",
        ", ".join(source.name for source in listing.sources),
        settings.low_quota_mode,
    )

    resolver = ChannelResolver(
        client,
        api=api,
        handle_cache=handle_cache,
        search_fallback=settings.search_fallback_enabled,
    )
    aggregator = Aggregator(
        listing,
        max_results=settings.aggregate_max_results,
        max_concurrency=settings.aggregate_max_concurrency,
    )
    return FeedService(
        resolver=resolver,
        aggregator=aggregator,
        video_lookup=lookup,
        list_store=list_store if list_store is not None else InMemoryListStore(),
        videos_per_channel=settings.videos_per_channel,
        list_videos_per_channel=settings.list_videos_per_channel,
    )


async def run(query: str, settings: Settings = default_settings) -> int:
    """Print the aggregated feed for ``query`` as JSON lines."""

    async with create_http_client(settings) as client:
        service = create_feed_service(client, settings)
        result = await service.search(query)

    for failure in result.unresolved:
        print(f"unresolved {failure.reference}: {failure.error}", file=sys.stderr)
    for channel_id, error in result.failures.items():
        print(f"failed {channel_id}: {error}", file=sys.stderr)
    for record in result.records:
        print(record.model_dump_json())
    return 0 if result.records or not (result.unresolved or result.failures) else 1


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Show recent uploads for YouTube channels.")
    parser.add_argument(
        "references",
        nargs="+",
        help="channel ids, channel URLs, @handles or a pack:<name> shortcut",
    )
    args = parser.parse_args(argv)

    logging.basicConfig(level=default_settings.log_level.upper())
    return asyncio.run(run(" ".join(args.references)))


if __name__ == "__main__":
    sys.exit(main())
