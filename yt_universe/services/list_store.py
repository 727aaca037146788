"""Helpers for managing saved lists of tracked YouTube channels."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Protocol

from yt_universe.schema.channel import SavedList
from yt_universe.services.channel_resolver import CHANNEL_ID_REGEX


class ListStore(Protocol):
    """Key-value store of list id -> unique canonical channel ids."""

    async def get(self, list_id: str) -> list[str]: ...

    async def add(self, list_id: str, channel_ids: Iterable[str]) -> list[str]: ...

    async def remove(self, list_id: str, channel_ids: Iterable[str]) -> list[str]: ...

    async def replace(self, list_id: str, channel_ids: Iterable[str]) -> list[str]: ...

    async def clear(self, list_id: str) -> None: ...


def _validated(channel_ids: Iterable[str]) -> list[str]:
    checked: list[str] = []
    for channel_id in channel_ids:
        if not CHANNEL_ID_REGEX.match(channel_id):
            raise ValueError(f"Invalid channel id: {channel_id}")
        checked.append(channel_id)
    return checked


class InMemoryListStore:
    """Process-local saved lists; insertion order is kept but carries no meaning."""

    def __init__(self) -> None:
        self._lists: dict[str, dict[str, None]] = {}

    async def get(self, list_id: str) -> list[str]:
        """Return the channels of a list (empty when the list was never written)."""

        return list(self._lists.get(list_id, {}))

    async def add(self, list_id: str, channel_ids: Iterable[str]) -> list[str]:
        checked = _validated(channel_ids)
        channels = self._lists.setdefault(list_id, {})
        for channel_id in checked:
            channels[channel_id] = None
        return list(channels)

    async def remove(self, list_id: str, channel_ids: Iterable[str]) -> list[str]:
        channels = self._lists.get(list_id)
        if channels is None:
            return []
        for channel_id in channel_ids:
            channels.pop(channel_id, None)
        return list(channels)

    async def replace(self, list_id: str, channel_ids: Iterable[str]) -> list[str]:
        self._lists[list_id] = dict.fromkeys(_validated(channel_ids))
        return list(self._lists[list_id])

    async def clear(self, list_id: str) -> None:
        self._lists.pop(list_id, None)

    async def snapshot(self, list_id: str) -> SavedList:
        return SavedList(list_id=list_id, channels=await self.get(list_id))
