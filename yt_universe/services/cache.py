"""In-process caches for upstream responses and handle resolutions."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Callable

from cachetools import TLRUCache


@dataclass(slots=True, frozen=True)
class _CacheEntry:
    value: Any
    ttl: float


def _expires_at(_key: str, entry: _CacheEntry, now: float) -> float:
    return now + entry.ttl


class ResponseCache:
    """Short-lived memo of upstream responses keyed by the exact query.

    Each entry carries its own TTL; expired entries are dropped lazily when
    they are read or when the cache needs room.
    """

    def __init__(
        self,
        *,
        ttl_seconds: float,
        max_entries: int = 512,
        timer: Callable[[], float] = time.monotonic,
    ) -> None:
        self.default_ttl = ttl_seconds
        self._entries: TLRUCache[str, _CacheEntry] = TLRUCache(
            maxsize=max(max_entries, 1), ttu=_expires_at, timer=timer
        )

    def get(self, key: str) -> Any | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        return entry.value

    def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        ttl = self.default_ttl if ttl is None else ttl
        if ttl <= 0 or value is None:
            return
        self._entries[key] = _CacheEntry(value=value, ttl=ttl)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        self._entries.expire()
        return len(self._entries)


class HandleCache:
    """Non-expiring handle -> channel id memo for the process lifetime."""

    def __init__(self) -> None:
        self._mapping: dict[str, str] = {}

    @staticmethod
    def _normalise(key: str) -> str:
        return key.strip().lower()

    def get(self, key: str) -> str | None:
        return self._mapping.get(self._normalise(key))

    def set(self, key: str, channel_id: str) -> None:
        self._mapping[self._normalise(key)] = channel_id

    def clear(self) -> None:
        self._mapping.clear()

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self._normalise(key) in self._mapping

    def __len__(self) -> int:
        return len(self._mapping)
