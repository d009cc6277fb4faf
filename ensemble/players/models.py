# Ensemble Core
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later
#
# Attribution required — see LICENSE, Section 7(b).

"""
Player and track snapshots as reported by the server.

Both are immutable: a fresh server snapshot replaces the old object
wholesale, nothing is patched field by field.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any

from ..lib.errors import ProtocolError


class PlaybackState(str, Enum):
    PLAYING = "playing"
    PAUSED = "paused"
    IDLE = "idle"

    @classmethod
    def parse(cls, value: Any) -> "PlaybackState":
        try:
            return cls(str(value).lower())
        except ValueError:
            return cls.IDLE


class RepeatMode(str, Enum):
    OFF = "off"
    ALL = "all"
    ONE = "one"


_REPEAT_CYCLE = {
    None: RepeatMode.ALL,
    RepeatMode.OFF: RepeatMode.ALL,
    RepeatMode.ALL: RepeatMode.ONE,
    RepeatMode.ONE: RepeatMode.OFF,
}


def next_repeat_mode(current: "RepeatMode | str | None") -> RepeatMode:
    """off → all → one → off.  None counts as off; unknown values reset to off."""
    if current is not None and not isinstance(current, RepeatMode):
        try:
            current = RepeatMode(str(current).lower())
        except ValueError:
            return RepeatMode.OFF
    return _REPEAT_CYCLE[current]


def _seconds(value: Any) -> float | None:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _artist_names(data: dict) -> tuple[str, ...]:
    artists = data.get("artists")
    if isinstance(artists, list):
        names = []
        for artist in artists:
            if isinstance(artist, dict):
                name = artist.get("name")
            else:
                name = artist
            if name:
                names.append(str(name))
        return tuple(names)
    artist = data.get("artist")
    return (str(artist),) if artist else ()


@dataclass(frozen=True)
class Track:
    """What a player is currently playing."""

    title: str
    artists: tuple[str, ...] = ()
    album: str | None = None
    duration: float | None = None
    position: float | None = None
    item_id: str | None = None
    uri: str | None = None
    image_url: str | None = None

    @property
    def artists_string(self) -> str:
        return ", ".join(self.artists) if self.artists else "Unknown Artist"

    @classmethod
    def from_dict(cls, data: dict) -> "Track":
        if not isinstance(data, dict):
            raise ProtocolError(f"Track payload is {type(data).__name__}, expected object")
        album = data.get("album")
        if isinstance(album, dict):
            album = album.get("name")
        return cls(
            title=str(data.get("title") or data.get("name") or "Unknown"),
            artists=_artist_names(data),
            album=album or None,
            duration=_seconds(data.get("duration")),
            position=_seconds(data.get("elapsed_time", data.get("position"))),
            item_id=data.get("item_id") or data.get("queue_item_id"),
            uri=data.get("uri"),
            image_url=data.get("image_url"),
        )


@dataclass(frozen=True)
class Player:
    """One remote-controllable playback endpoint."""

    player_id: str
    name: str
    available: bool = True
    powered: bool = True
    volume_level: int = 0
    volume_muted: bool = False
    state: PlaybackState = PlaybackState.IDLE
    provider: str | None = None
    queue_id: str | None = None
    current_media: Track | None = None

    @property
    def is_playing(self) -> bool:
        return self.state == PlaybackState.PLAYING

    @classmethod
    def from_dict(cls, data: dict) -> "Player":
        if not isinstance(data, dict):
            raise ProtocolError(f"Player payload is {type(data).__name__}, expected object")
        player_id = data.get("player_id")
        if not player_id:
            raise ProtocolError("Player payload without player_id")

        media = data.get("current_media")
        try:
            volume = int(data.get("volume_level") or 0)
        except (TypeError, ValueError):
            volume = 0

        return cls(
            player_id=str(player_id),
            name=str(data.get("display_name") or data.get("name") or player_id),
            available=bool(data.get("available", False)),
            powered=bool(data.get("powered", False)),
            volume_level=volume,
            volume_muted=bool(data.get("volume_muted", False)),
            state=PlaybackState.parse(data.get("state")),
            provider=data.get("provider"),
            queue_id=data.get("active_source") or str(player_id),
            current_media=Track.from_dict(media) if isinstance(media, dict) else None,
        )
