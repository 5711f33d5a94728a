"""Track, now-playing and playback-mode types shared by the playback core."""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional


class PlayKind(Enum):
    """What a play command targets."""

    SONG = "song"
    STATION = "station"

    @property
    def engine_type(self) -> str:
        """Item type string the engine's play-item endpoint expects."""
        return "stations" if self is PlayKind.STATION else "songs"

    @classmethod
    def parse(cls, value: Any) -> "PlayKind":
        if isinstance(value, PlayKind):
            return value
        text = str(value or "").lower()
        if text in ("station", "stations"):
            return cls.STATION
        return cls.SONG


class ShuffleMode(Enum):
    OFF = 0
    ON = 1

    @classmethod
    def from_engine(cls, value: Any) -> "ShuffleMode":
        try:
            return cls(int(value))
        except (TypeError, ValueError):
            return cls.OFF


class RepeatMode(Enum):
    OFF = 0
    ONE = 1
    ALL = 2

    @classmethod
    def from_engine(cls, value: Any) -> "RepeatMode":
        try:
            return cls(int(value))
        except (TypeError, ValueError):
            return cls.OFF


SONG_TYPES = ("songs", "library-songs")


@dataclass
class TrackRef:
    """A playable catalog or library item as the queue stores it."""

    id: str
    item_type: str = "songs"
    name: str = ""
    artist_name: str = ""
    album_name: str = ""
    duration_ms: int = 0
    catalog_id: Optional[str] = None
    is_playable: bool = True

    @property
    def is_library(self) -> bool:
        """Library ids ("i.xxx") must be resolved before catalog lookups."""
        return self.id.startswith("i.")

    @property
    def play_kind(self) -> PlayKind:
        return PlayKind.STATION if self.item_type == "stations" else PlayKind.SONG

    @property
    def label(self) -> str:
        name = self.name or "Unknown Track"
        if self.artist_name:
            return f"{name} - {self.artist_name}"
        return name

    @classmethod
    def from_api(cls, item: Dict[str, Any]) -> "TrackRef":
        """Build from a catalog/library resource ({"id", "type", "attributes"})."""
        attributes = item.get("attributes") or {}
        item_type = item.get("type") or "songs"
        play_params = attributes.get("playParams") or item.get("playParams") or {}
        duration = attributes.get("durationInMillis") or 0

        is_playable = True
        if item_type in SONG_TYPES:
            # Prerelease tracks come back without duration or playParams
            is_playable = bool(duration and duration > 0 and play_params)

        return cls(
            id=str(item.get("id", "")),
            item_type=item_type,
            name=attributes.get("name") or "",
            artist_name=attributes.get("artistName") or "",
            album_name=attributes.get("albumName") or "",
            duration_ms=int(duration or 0),
            catalog_id=play_params.get("catalogId"),
            is_playable=is_playable,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "item_type": self.item_type,
            "name": self.name,
            "artist_name": self.artist_name,
            "album_name": self.album_name,
            "duration_ms": self.duration_ms,
            "catalog_id": self.catalog_id,
            "is_playable": self.is_playable,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TrackRef":
        return cls(
            id=str(data["id"]),
            item_type=data.get("item_type", "songs"),
            name=data.get("name", ""),
            artist_name=data.get("artist_name", ""),
            album_name=data.get("album_name", ""),
            duration_ms=int(data.get("duration_ms") or 0),
            catalog_id=data.get("catalog_id"),
            is_playable=bool(data.get("is_playable", True)),
        )


@dataclass
class NowPlaying:
    """Snapshot of the engine's now-playing endpoint."""

    track_id: Optional[str]
    name: str = ""
    artist_name: str = ""
    album_name: str = ""
    duration_ms: int = 0
    position_sec: float = 0.0
    artwork_url: Optional[str] = None

    @classmethod
    def from_info(cls, info: Optional[Dict[str, Any]]) -> Optional["NowPlaying"]:
        """Parse the engine's "info" object; None when nothing is loaded."""
        if not info or not info.get("name"):
            return None
        play_params = info.get("playParams") or {}
        track_id = play_params.get("id") or info.get("id")
        artwork = info.get("artwork") or {}
        return cls(
            track_id=str(track_id) if track_id else None,
            name=info.get("name") or "",
            artist_name=info.get("artistName") or "",
            album_name=info.get("albumName") or "",
            duration_ms=int(info.get("durationInMillis") or 0),
            position_sec=float(info.get("currentPlaybackTime") or 0.0),
            artwork_url=artwork.get("url"),
        )
