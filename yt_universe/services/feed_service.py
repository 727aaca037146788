"""Facade tying resolution, upload sources, aggregation and saved lists together."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from yt_universe.schema.video import VideoRecord, parse_record_id
from yt_universe.services.aggregator import AggregationReport, Aggregator
from yt_universe.services.channel_packs import match_pack
from yt_universe.services.channel_resolver import ChannelResolver, Resolution
from yt_universe.services.list_store import ListStore
from yt_universe.services.upload_sources import UploadSource
from yt_universe.services.youtube_api import UpstreamUnavailable

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class FeedResult:
    """Records for a query, with the references and channels that fell through."""

    channel_ids: list[str] = field(default_factory=list)
    records: list[VideoRecord] = field(default_factory=list)
    unresolved: list[Resolution] = field(default_factory=list)
    failures: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_report(
        cls,
        channel_ids: list[str],
        report: AggregationReport,
        unresolved: list[Resolution] | None = None,
    ) -> FeedResult:
        return cls(
            channel_ids=channel_ids,
            records=report.records,
            unresolved=unresolved or [],
            failures=dict(report.failures),
        )


@dataclass(slots=True)
class ListUpdate:
    """Result of adding or removing a reference on a saved list."""

    resolution: Resolution
    channels: list[str]


class FeedService:
    def __init__(
        self,
        *,
        resolver: ChannelResolver,
        aggregator: Aggregator,
        video_lookup: UploadSource,
        list_store: ListStore,
        videos_per_channel: int = 20,
        list_videos_per_channel: int = 10,
    ) -> None:
        self.resolver = resolver
        self.aggregator = aggregator
        self.video_lookup = video_lookup
        self.list_store = list_store
        self.videos_per_channel = videos_per_channel
        self.list_videos_per_channel = list_videos_per_channel

    async def search(self, query: str) -> FeedResult:
        """Aggregate uploads for a pack shortcut or free-form channel references."""

        query = (query or "").strip()
        if not query:
            return FeedResult()

        pack = match_pack(query)
        if pack is not None:
            channel_ids = [entry.id for entry in pack]
            unresolved: list[Resolution] = []
        else:
            batch = await self.resolver.resolve_many(query)
            channel_ids, unresolved = batch.channel_ids, batch.failures
            for failure in unresolved:
                logger.info("Unresolved reference %r: %s", failure.reference, failure.error)

        if not channel_ids:
            return FeedResult(unresolved=unresolved)

        report = await self.aggregator.aggregate_report(channel_ids, self.videos_per_channel)
        return FeedResult.from_report(channel_ids, report, unresolved)

    async def list_feed(self, list_id: str) -> FeedResult:
        channel_ids = await self.list_store.get(list_id)
        if not channel_ids:
            return FeedResult()
        report = await self.aggregator.aggregate_report(channel_ids, self.list_videos_per_channel)
        return FeedResult.from_report(channel_ids, report)

    async def add_to_list(self, list_id: str, reference: str) -> ListUpdate:
        resolution = await self.resolver.resolve(reference)
        if not resolution.ok:
            return ListUpdate(resolution=resolution, channels=await self.list_store.get(list_id))
        channels = await self.list_store.add(list_id, [resolution.channel_id])
        return ListUpdate(resolution=resolution, channels=channels)

    async def remove_from_list(self, list_id: str, reference: str) -> ListUpdate:
        resolution = await self.resolver.resolve(reference)
        if not resolution.ok:
            return ListUpdate(resolution=resolution, channels=await self.list_store.get(list_id))
        channels = await self.list_store.remove(list_id, [resolution.channel_id])
        return ListUpdate(resolution=resolution, channels=channels)

    async def video(self, record_id: str) -> VideoRecord | None:
        """Look up one video by record id (``yt:<channel>:<video>`` or ``yt:<video>``)."""

        parsed = parse_record_id(record_id)
        if parsed is None:
            return None
        channel_id, video_id = parsed
        try:
            return await self.video_lookup.fetch_video(video_id, channel_id=channel_id)
        except UpstreamUnavailable:
            logger.exception("Meta lookup failed for %s", record_id)
            return None
