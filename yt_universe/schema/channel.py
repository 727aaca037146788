"""Pydantic models for channels and saved channel lists."""

from __future__ import annotations

from pydantic import BaseModel, Field


class ChannelEntry(BaseModel):
    """A channel with a display name, as listed in curated packs."""

    id: str
    name: str


class SavedList(BaseModel):
    """Snapshot of a saved list of canonical channel ids."""

    list_id: str = Field(..., min_length=1)
    channels: list[str]
