"""Curated channel packs selectable with a ``pack:<name>`` shortcut."""

from __future__ import annotations

import re

from yt_universe.schema.channel import ChannelEntry

CHANNEL_PACKS: dict[str, list[ChannelEntry]] = {
    "Tech": [
        ChannelEntry(id="UCXuqSBlHAE6Xw-yeJA0Tunw", name="Linus Tech Tips"),
        ChannelEntry(id="UCdBK94H6oZT2Q7l0-b0xmMg", name="Short Circuit - LTT"),
        ChannelEntry(id="UCBJycsmduvYEL83R_U4JriQ", name="MKBHD"),
    ],
    "Automotive": [
        ChannelEntry(id="UCyXiDU5qjfOPxgOPeFWGwKw", name="Throttle House"),
    ],
    "Podcasts": [
        ChannelEntry(id="UCFP1dDbFt0B7X6M2xPDj1bA", name="WVFRM Podcast"),
        ChannelEntry(id="UCEcrRXW3oEYfUctetZTAWLw", name="Team COCO"),
    ],
    "Entertainment": [
        ChannelEntry(id="UCa6vGFO9ty8v5KZJXQxdhaw", name="Jimmy Kimmel LIVE"),
        ChannelEntry(id="UCSpFnDQr88xCZ80N-X7t0nQ", name="Corridor Crew MAIN"),
    ],
}

_PACK_RE = re.compile(r"^pack:(tech|auto(?:motive)?|podcasts?|entertainment)$", re.IGNORECASE)
_PACK_ALIASES = {
    "tech": "Tech",
    "auto": "Automotive",
    "automotive": "Automotive",
    "podcast": "Podcasts",
    "podcasts": "Podcasts",
    "entertainment": "Entertainment",
}


def match_pack(query: str) -> list[ChannelEntry] | None:
    """Return the pack named by a ``pack:<name>`` query, or None."""

    match = _PACK_RE.match(query.strip())
    if not match:
        return None
    return list(CHANNEL_PACKS[_PACK_ALIASES[match.group(1).lower()]])
