"""Merge recent uploads across many channels into one recency-sorted feed."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from dataclasses import dataclass, field

from yt_universe.schema.video import VideoRecord
from yt_universe.services.channel_resolver import CHANNEL_ID_REGEX
from yt_universe.services.upload_sources import UploadSource, sort_by_recency

logger = logging.getLogger(__name__)

DEFAULT_MAX_RESULTS = 100


@dataclass(slots=True)
class ChannelOutcome:
    """What a single channel contributed to an aggregation pass."""

    channel_id: str
    records: list[VideoRecord] = field(default_factory=list)
    error: str | None = None


@dataclass(slots=True)
class AggregationReport:
    """Aggregated records plus per-channel bookkeeping.

    ``failures`` maps a channel id to the error that made it contribute
    nothing, which separates a failed channel from one with no uploads.
    """

    records: list[VideoRecord] = field(default_factory=list)
    counts: dict[str, int] = field(default_factory=dict)
    failures: dict[str, str] = field(default_factory=dict)

    @property
    def partial(self) -> bool:
        return bool(self.failures)


def _unique_channels(channel_ids: Iterable[str]) -> list[str]:
    return list(dict.fromkeys(channel_id.strip() for channel_id in channel_ids if channel_id and channel_id.strip()))


class Aggregator:
    """Fetches uploads per channel, tolerating individual channel failures."""

    def __init__(
        self,
        source: UploadSource,
        *,
        max_results: int = DEFAULT_MAX_RESULTS,
        max_concurrency: int = 1,
    ) -> None:
        self._source = source
        self._max_results = max(max_results, 0)
        self._max_concurrency = max(max_concurrency, 1)

    async def aggregate(self, channel_ids: Iterable[str], per_channel_limit: int) -> list[VideoRecord]:
        report = await self.aggregate_report(channel_ids, per_channel_limit)
        return report.records

    async def aggregate_report(self, channel_ids: Iterable[str], per_channel_limit: int) -> AggregationReport:
        channels = _unique_channels(channel_ids)
        if self._max_concurrency == 1 or len(channels) <= 1:
            outcomes = [await self._fetch_channel(channel_id, per_channel_limit) for channel_id in channels]
        else:
            semaphore = asyncio.Semaphore(self._max_concurrency)

            async def _bounded(channel_id: str) -> ChannelOutcome:
                async with semaphore:
                    return await self._fetch_channel(channel_id, per_channel_limit)

            # gather keeps input order, so the merge below is identical to the serial path
            outcomes = await asyncio.gather(*(_bounded(channel_id) for channel_id in channels))

        report = AggregationReport()
        merged: list[VideoRecord] = []
        seen: set[str] = set()
        for outcome in outcomes:
            report.counts[outcome.channel_id] = len(outcome.records)
            if outcome.error is not None:
                report.failures[outcome.channel_id] = outcome.error
            for record in outcome.records:
                if record.id in seen:
                    continue
                seen.add(record.id)
                merged.append(record)

        report.records = sort_by_recency(merged)[: self._max_results]
        logger.info(
            "Aggregated %s records from %s channels (%s failed)",
            len(report.records),
            len(channels),
            len(report.failures),
        )
        return report

    async def _fetch_channel(self, channel_id: str, limit: int) -> ChannelOutcome:
        if not CHANNEL_ID_REGEX.match(channel_id):
            logger.warning("Skipping invalid channel id %s", channel_id)
            return ChannelOutcome(channel_id=channel_id, error=f"Invalid channel id: {channel_id}")

        try:
            records = await self._source.fetch_uploads(channel_id, limit)
        except Exception as exc:  # noqa: BLE001 - one channel must not blank the whole feed
            logger.exception("Catalog fetch error for %s", channel_id, extra={"channel_id": channel_id})
            return ChannelOutcome(channel_id=channel_id, error=str(exc) or exc.__class__.__name__)
        return ChannelOutcome(channel_id=channel_id, records=list(records))
