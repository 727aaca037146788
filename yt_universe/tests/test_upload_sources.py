"""Tests for the interchangeable upload sources."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import httpx
import pytest

from yt_universe.schema.video import VideoRecord
from yt_universe.services.cache import ResponseCache
from yt_universe.services.upload_sources import (
    DataApiUploadSource,
    FeedUploadSource,
    OEmbedSource,
    UploadSource,
    UploadSourceChain,
    build_upload_sources,
    sort_by_recency,
)
from yt_universe.services.youtube_api import (
    QuotaExceeded,
    SourceUnsupported,
    UpstreamUnavailable,
    YouTubeDataClient,
)

pytest_plugins = ("pytest_asyncio",)

CHANNEL_ID = "UC" + "A" * 22
BASE_TIME = datetime(2024, 7, 16, 12, 0, tzinfo=timezone.utc)


def _feed_xml(count: int) -> bytes:
    entries = []
    for index in range(count):
        published = (BASE_TIME - timedelta(hours=index)).strftime("%Y-%m-%dT%H:%M:%S+00:00")
        entries.append(
            f"""
  <entry>
    <id>yt:video:VID{index:03d}</id>
    <yt:videoId>VID{index:03d}</yt:videoId>
    <yt:channelId>{CHANNEL_ID}</yt:channelId>
    <title>Video number {index}</title>
    <link rel="alternate" href="https://www.youtube.com/watch?v=VID{index:03d}"/>
    <author><name>Sample Channel</name></author>
    <published>{published}</published>
    <updated>{published}</updated>
    <media:group>
      <media:title>Video number {index}</media:title>
      <media:thumbnail url="https://i.ytimg.com/vi/VID{index:03d}/hqdefault.jpg" width="480" height="360"/>
      <media:description>Description {index}</media:description>
    </media:group>
  </entry>"""
        )
    return (
        f"""<?xml version="1.0" encoding="UTF-8"?>
<feed xmlns:yt="http://www.youtube.com/xml/schemas/2015"
      xmlns:media="http://search.yahoo.com/mrss/"
      xmlns="http://www.w3.org/2005/Atom">
  <title>Sample Channel</title>
  <yt:channelId>{CHANNEL_ID}</yt:channelId>
  <author><name>Sample Channel</name></author>
  {"".join(entries)}
</feed>"""
    ).encode()


def _playlist_item(index: int, **overrides) -> dict:
    snippet = {
        "title": f"Upload {index}",
        "description": "x" * 500,
        "publishedAt": (BASE_TIME - timedelta(days=index)).strftime("%Y-%m-%dT%H:%M:%SZ"),
        "thumbnails": {"default": {"url": f"https://i.ytimg.com/{index}/default.jpg"}},
        "channelTitle": "Sample Channel",
        "resourceId": {"kind": "youtube#video", "videoId": f"API{index:03d}"},
    }
    snippet.update(overrides)
    return {"snippet": snippet}


def _record(video_id: str, published: datetime | None) -> VideoRecord:
    return VideoRecord(
        id=f"yt:{CHANNEL_ID}:{video_id}",
        channel_id=CHANNEL_ID,
        video_id=video_id,
        title=video_id,
        published_at=published,
    )


def test_sort_by_recency_is_stable_and_sinks_undated() -> None:
    records = [
        _record("undated", None),
        _record("old", BASE_TIME - timedelta(days=1)),
        _record("tie-1", BASE_TIME),
        _record("tie-2", BASE_TIME),
    ]
    assert [r.video_id for r in sort_by_recency(records)] == ["tie-1", "tie-2", "old", "undated"]


@pytest.mark.asyncio
async def test_feed_source_maps_entries(mock_client) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/feeds/videos.xml"
        assert request.url.params["channel_id"] == CHANNEL_ID
        return httpx.Response(200, content=_feed_xml(3))

    client, _ = mock_client(handler)
    source = FeedUploadSource(client)

    records = await source.fetch_uploads(CHANNEL_ID, 20)

    assert [r.video_id for r in records] == ["VID000", "VID001", "VID002"]
    first = records[0]
    assert first.id == f"yt:{CHANNEL_ID}:VID000"
    assert first.title == "Video number 0"
    assert first.published_at == BASE_TIME
    assert first.thumbnail_url == "https://i.ytimg.com/vi/VID000/hqdefault.jpg"
    assert first.view_count is None
    assert first.duration_seconds is None


@pytest.mark.asyncio
async def test_feed_source_respects_max_results(mock_client) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=_feed_xml(60))

    client, _ = mock_client(handler)
    source = FeedUploadSource(client)

    assert len(await source.fetch_uploads(CHANNEL_ID, 5)) == 5
    assert len(await source.fetch_uploads(CHANNEL_ID, 500)) == 50
    assert await source.fetch_uploads(CHANNEL_ID, 0) == []


@pytest.mark.asyncio
async def test_feed_source_uses_response_cache(mock_client) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=_feed_xml(2))

    client, transport = mock_client(handler)
    source = FeedUploadSource(client, cache=ResponseCache(ttl_seconds=30))

    await source.fetch_uploads(CHANNEL_ID, 10)
    await source.fetch_uploads(CHANNEL_ID, 10)

    assert len(transport.requests) == 1


@pytest.mark.asyncio
async def test_feed_source_raises_on_http_error(mock_client) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404)

    client, _ = mock_client(handler)
    source = FeedUploadSource(client)

    with pytest.raises(UpstreamUnavailable) as excinfo:
        await source.fetch_uploads(CHANNEL_ID, 10)
    assert excinfo.value.status_code == 404


@pytest.mark.asyncio
async def test_feed_source_finds_single_video(mock_client) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=_feed_xml(3))

    client, _ = mock_client(handler)
    source = FeedUploadSource(client)

    record = await source.fetch_video("VID002", channel_id=CHANNEL_ID)
    assert record is not None
    assert record.title == "Video number 2"
    assert await source.fetch_video("NOPE", channel_id=CHANNEL_ID) is None
    with pytest.raises(SourceUnsupported):
        await source.fetch_video("VID002")


@pytest.mark.asyncio
async def test_data_api_source_pages_through_uploads(mock_client) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        params = request.url.params
        if request.url.path.endswith("/channels"):
            assert params["part"] == "contentDetails"
            return httpx.Response(
                200, json={"items": [{"contentDetails": {"relatedPlaylists": {"uploads": "UU_uploads"}}}]}
            )
        assert request.url.path.endswith("/playlistItems")
        assert params["playlistId"] == "UU_uploads"
        if "pageToken" not in params:
            assert params["maxResults"] == "4"
            return httpx.Response(
                200, json={"items": [_playlist_item(0), _playlist_item(1)], "nextPageToken": "page-2"}
            )
        assert params["pageToken"] == "page-2"
        assert params["maxResults"] == "2"
        return httpx.Response(200, json={"items": [_playlist_item(2), _playlist_item(3), _playlist_item(4)]})

    client, transport = mock_client(handler)
    source = DataApiUploadSource(YouTubeDataClient(client, api_key="k"))

    records = await source.fetch_uploads(CHANNEL_ID, 4)

    assert [r.video_id for r in records] == ["API000", "API001", "API002", "API003"]
    assert records[0].description == "x" * 200
    assert records[0].thumbnail_url == "https://i.ytimg.com/0/default.jpg"
    assert len(transport.requests) == 3


@pytest.mark.asyncio
async def test_data_api_source_tolerates_missing_fields(mock_client) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/channels"):
            return httpx.Response(
                200, json={"items": [{"contentDetails": {"relatedPlaylists": {"uploads": "UU_uploads"}}}]}
            )
        items = [
            {"snippet": {"resourceId": {"videoId": "BARE"}}},
            {"snippet": {"title": "no id"}},
            "garbage",
        ]
        return httpx.Response(200, json={"items": items})

    client, _ = mock_client(handler)
    source = DataApiUploadSource(YouTubeDataClient(client, api_key="k"))

    records = await source.fetch_uploads(CHANNEL_ID, 10)

    assert len(records) == 1
    bare = records[0]
    assert bare.title == "Video 1"
    assert bare.published_at is None
    assert bare.thumbnail_url is None
    assert bare.description is None


@pytest.mark.asyncio
async def test_data_api_source_without_uploads_playlist(mock_client) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"items": []})

    client, transport = mock_client(handler)
    source = DataApiUploadSource(YouTubeDataClient(client, api_key="k"))

    assert await source.fetch_uploads(CHANNEL_ID, 10) == []
    assert len(transport.requests) == 1


@pytest.mark.asyncio
async def test_data_api_fetch_video_includes_rich_fields(mock_client) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path.endswith("/videos")
        assert request.url.params["part"] == "snippet,contentDetails,statistics"
        return httpx.Response(
            200,
            json={
                "items": [
                    {
                        "snippet": {
                            "title": "Long stream",
                            "channelId": CHANNEL_ID,
                            "channelTitle": "Sample Channel",
                            "publishedAt": "2024-07-16T12:00:00Z",
                        },
                        "contentDetails": {"duration": "P1DT1H"},
                        "statistics": {"viewCount": "1234"},
                    }
                ]
            },
        )

    client, _ = mock_client(handler)
    source = DataApiUploadSource(YouTubeDataClient(client, api_key="k"))

    record = await source.fetch_video("LONG1")

    assert record is not None
    assert record.id == f"yt:{CHANNEL_ID}:LONG1"
    assert record.view_count == 1234
    assert record.duration_seconds == 90000
    assert record.author == "Sample Channel"


@pytest.mark.asyncio
async def test_data_api_source_skips_badly_typed_items(mock_client) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/channels"):
            return httpx.Response(
                200, json={"items": [{"contentDetails": {"relatedPlaylists": {"uploads": "UU_uploads"}}}]}
            )
        items = [
            {"snippet": {"title": 123, "description": ["x"], "resourceId": {"videoId": "v1"}}},
            {"snippet": ["not", "a", "mapping"]},
            {"snippet": {"title": "bad id", "resourceId": ["v3"]}},
            {"snippet": {"resourceId": {"videoId": 42}}, "contentDetails": "nope"},
            _playlist_item(2, thumbnails={"high": {"url": 7}}, publishedAt=1700000000),
        ]
        return httpx.Response(200, json={"items": items, "nextPageToken": 5})

    client, transport = mock_client(handler)
    source = DataApiUploadSource(YouTubeDataClient(client, api_key="k"))

    records = await source.fetch_uploads(CHANNEL_ID, 10)

    assert [record.video_id for record in records] == ["v1", "API002"]
    assert records[0].title == "Video 1"
    assert records[0].description is None
    assert records[1].title == "Upload 2"
    assert records[1].thumbnail_url is None
    assert records[1].published_at is None
    assert len(transport.requests) == 2


@pytest.mark.asyncio
async def test_data_api_fetch_video_ignores_badly_typed_fields(mock_client) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json={
                "items": [
                    {
                        "snippet": {"title": None, "channelId": 99, "publishedAt": 5, "channelTitle": []},
                        "contentDetails": {"duration": 3600},
                        "statistics": "hidden",
                    }
                ]
            },
        )

    client, _ = mock_client(handler)
    source = DataApiUploadSource(YouTubeDataClient(client, api_key="k"))

    record = await source.fetch_video("ODD1", channel_id=CHANNEL_ID)

    assert record is not None
    assert record.id == f"yt:{CHANNEL_ID}:ODD1"
    assert record.title == "ODD1"
    assert record.published_at is None
    assert record.author is None
    assert record.view_count is None
    assert record.duration_seconds is None


@pytest.mark.asyncio
async def test_oembed_source_single_video(mock_client) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/oembed"
        assert request.url.params["url"] == "https://www.youtube.com/watch?v=VID1"
        return httpx.Response(
            200,
            json={"title": "Hello", "author_name": "Someone", "thumbnail_url": "https://i.ytimg.com/vi/VID1/hq.jpg"},
        )

    client, _ = mock_client(handler)
    source = OEmbedSource(client)

    record = await source.fetch_video("VID1", channel_id=CHANNEL_ID)

    assert record is not None
    assert record.title == "Hello"
    assert record.author == "Someone"
    assert record.thumbnail_url == "https://i.ytimg.com/vi/VID1/hq.jpg"
    assert record.watch_url == "https://www.youtube.com/watch?v=VID1"
    with pytest.raises(SourceUnsupported):
        await source.fetch_uploads(CHANNEL_ID, 10)


@pytest.mark.asyncio
async def test_oembed_source_missing_video(mock_client) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404, text="Not Found")

    client, _ = mock_client(handler)
    assert await OEmbedSource(client).fetch_video("GONE") is None


class StubSource(UploadSource):
    def __init__(self, name: str, records=None, error: Exception | None = None, lists_uploads: bool = True):
        self.name = name
        self.records = records or []
        self.error = error
        self.lists_uploads = lists_uploads
        self.calls = 0

    async def fetch_uploads(self, channel_id: str, max_results: int) -> list[VideoRecord]:
        self.calls += 1
        if self.error:
            raise self.error
        return self.records[:max_results]

    async def fetch_video(self, video_id: str, *, channel_id: str | None = None) -> VideoRecord | None:
        self.calls += 1
        if self.error:
            raise self.error
        return next((r for r in self.records if r.video_id == video_id), None)


@pytest.mark.asyncio
async def test_chain_falls_back_to_next_source() -> None:
    records = [_record("A", BASE_TIME)]
    primary = StubSource("api", error=QuotaExceeded("quota"))
    secondary = StubSource("feed", records=records)

    chain = UploadSourceChain([primary, secondary])

    assert await chain.fetch_uploads(CHANNEL_ID, 10) == records
    assert primary.calls == 1
    assert secondary.calls == 1


@pytest.mark.asyncio
async def test_chain_raises_last_error_when_exhausted() -> None:
    chain = UploadSourceChain(
        [StubSource("api", error=UpstreamUnavailable("first")), StubSource("feed", error=UpstreamUnavailable("last"))]
    )

    with pytest.raises(UpstreamUnavailable, match="last"):
        await chain.fetch_uploads(CHANNEL_ID, 10)


@pytest.mark.asyncio
async def test_chain_skips_sources_that_cannot_list() -> None:
    oembed = StubSource("oembed", lists_uploads=False)
    chain = UploadSourceChain([oembed])

    with pytest.raises(SourceUnsupported):
        await chain.fetch_uploads(CHANNEL_ID, 10)
    assert oembed.calls == 0


@pytest.mark.asyncio
async def test_chain_video_lookup_moves_past_misses() -> None:
    wanted = _record("WANTED", BASE_TIME)
    chain = UploadSourceChain(
        [
            StubSource("api", error=UpstreamUnavailable("down")),
            StubSource("feed", error=SourceUnsupported("no channel")),
            StubSource("oembed", records=[wanted], lists_uploads=False),
        ]
    )

    assert await chain.fetch_video("WANTED") == wanted


@pytest.mark.asyncio
async def test_build_upload_sources_orders_by_configuration(mock_client) -> None:
    client, _ = mock_client()

    listing, lookup = build_upload_sources(
        client, api=YouTubeDataClient(client, api_key=None), cache=None, low_quota_mode=False
    )
    assert [s.name for s in listing.sources] == ["feed"]
    assert [s.name for s in lookup.sources] == ["feed", "oembed"]

    keyed = YouTubeDataClient(client, api_key="k")
    listing, lookup = build_upload_sources(client, api=keyed, cache=None, low_quota_mode=True)
    assert [s.name for s in listing.sources] == ["feed", "data-api"]
    assert [s.name for s in lookup.sources] == ["data-api", "feed", "oembed"]

    listing, _ = build_upload_sources(client, api=keyed, cache=None, low_quota_mode=False)
    assert [s.name for s in listing.sources] == ["data-api", "feed"]
