"""Pydantic models for normalised upload listings."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel

RECORD_ID_PREFIX = "yt"
WATCH_URL = "https://www.youtube.com/watch?v={video_id}"


def make_record_id(channel_id: str, video_id: str) -> str:
    return f"{RECORD_ID_PREFIX}:{channel_id}:{video_id}"


def parse_record_id(record_id: str) -> tuple[str | None, str] | None:
    """Split a record id into ``(channel_id, video_id)``.

    Accepts both the composite ``yt:<channel>:<video>`` form and the shorter
    ``yt:<video>`` form, in which case the channel is unknown.
    """

    parts = record_id.strip().split(":")
    if len(parts) < 2 or parts[0] != RECORD_ID_PREFIX or not parts[-1]:
        return None
    if len(parts) == 2:
        return None, parts[1]
    if len(parts) == 3 and parts[1]:
        return parts[1], parts[2]
    return None


class VideoRecord(BaseModel):
    """A single upload, normalised across every upstream source."""

    id: str
    channel_id: str
    video_id: str
    title: str
    published_at: datetime | None = None
    thumbnail_url: str | None = None
    description: str | None = None
    author: str | None = None
    view_count: int | None = None
    duration_seconds: int | None = None

    @property
    def watch_url(self) -> str:
        return WATCH_URL.format(video_id=self.video_id)
