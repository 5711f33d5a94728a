"""Client-side virtual play queue.

The queue decides what "next" and "previous" mean independently of the
engine's own queue. It does no I/O and never raises: bad input turns into
None or a no-op, which is what the key handlers want.
"""

import random
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Sequence

from core.logging import get_logger
from core.metadata import RepeatMode, ShuffleMode, TrackRef

logger = get_logger(__name__)


class QueueMode(Enum):
    SINGLE_TRACK = "single"
    IN_LIST = "in-list"


class SourceType(Enum):
    PLAYLIST = "playlist"
    ALBUM = "album"
    TOP_TRACKS = "top-tracks"
    SINGLE = "single"


@dataclass(frozen=True)
class SourceContext:
    """Where the queue came from. Diagnostics only; never used for selection."""

    type: SourceType
    id: Optional[str] = None
    name: Optional[str] = None


@dataclass
class QueueState:
    mode: QueueMode = QueueMode.SINGLE_TRACK
    tracks: List[TrackRef] = field(default_factory=list)
    current_index: Optional[int] = None
    # Visited indices, oldest first; each index appears once
    played_indices: List[int] = field(default_factory=list)
    source_context: Optional[SourceContext] = None


class QueueStore:
    """Holds the virtual queue and the next/previous selection rules."""

    def __init__(self, rng: Optional[random.Random] = None) -> None:
        self._rng = rng or random.Random()
        self._state = QueueState()

    # ------------------------------------------------------------------
    # Replacement
    # ------------------------------------------------------------------
    def set_queue(self, tracks: Sequence[TrackRef], start_index: int = 0,
                  context: Optional[SourceContext] = None) -> None:
        """
        Replace the queue with a list, starting at start_index.

        Args:
            tracks: Tracks in source order
            start_index: Clamped to the valid range
            context: Provenance tag for diagnostics
        """
        tracks = list(tracks)
        if not tracks:
            self._state = QueueState(mode=QueueMode.IN_LIST, source_context=context)
            return
        start = max(0, min(int(start_index), len(tracks) - 1))
        self._state = QueueState(
            mode=QueueMode.IN_LIST,
            tracks=tracks,
            current_index=start,
            played_indices=[start],
            source_context=context,
        )
        logger.debug("Queue set: %d tracks, start %d, context %s", len(tracks), start, context)

    def set_single_track(self, track: TrackRef) -> None:
        self._state = QueueState(
            mode=QueueMode.SINGLE_TRACK,
            tracks=[track],
            current_index=0,
            played_indices=[0],
            source_context=SourceContext(SourceType.SINGLE, track.id),
        )

    def clear_queue(self) -> None:
        self._state = QueueState()

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------
    def _valid_current(self) -> Optional[int]:
        index = self._state.current_index
        if index is None or not (0 <= index < len(self._state.tracks)):
            return None
        return index

    def get_next_index(self, shuffle: ShuffleMode, repeat: RepeatMode) -> Optional[int]:
        """
        Index to play after the current one, or None when the queue is exhausted.

        Repeat-all in shuffle mode forgets the play history once every track
        has been visited.
        """
        current = self._valid_current()
        if current is None:
            return None
        tracks = self._state.tracks

        if repeat is RepeatMode.ONE:
            return current

        if shuffle is ShuffleMode.ON:
            played = set(self._state.played_indices)
            unplayed = [i for i in range(len(tracks)) if i not in played]
            if unplayed:
                return self._rng.choice(unplayed)
            if repeat is RepeatMode.ALL:
                self._state.played_indices = []
                return self._rng.randrange(len(tracks))
            return None

        next_index = current + 1
        if next_index < len(tracks):
            return next_index
        if repeat is RepeatMode.ALL:
            return 0
        return None

    def get_previous_index(self) -> Optional[int]:
        """
        Most recently visited index below the current one; otherwise the
        list neighbour, wrapping to the end when there is more than one track.
        """
        current = self._valid_current()
        if current is None:
            return None
        tracks = self._state.tracks

        for index in reversed(self._state.played_indices):
            if 0 <= index < current:
                return index

        if current > 0:
            return current - 1
        if len(tracks) > 1:
            return len(tracks) - 1
        return None

    def update_current_index(self, index: int) -> None:
        """Move the cursor and record the visit. Out-of-range is ignored."""
        if not (0 <= index < len(self._state.tracks)):
            return
        self._state.current_index = index
        played = self._state.played_indices
        if index in played:
            # Revisit refreshes recency without duplicating
            played.remove(index)
        played.append(index)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def get_current_track(self) -> Optional[TrackRef]:
        current = self._valid_current()
        if current is None:
            return None
        return self._state.tracks[current]

    def get_track(self, index: int) -> Optional[TrackRef]:
        if 0 <= index < len(self._state.tracks):
            return self._state.tracks[index]
        return None

    def index_of(self, track_id: str) -> Optional[int]:
        for index, track in enumerate(self._state.tracks):
            if track.id == track_id:
                return index
        return None

    def get_recently_played_tracks(self, count: int) -> List[TrackRef]:
        """Last `count` distinct tracks by play order, most recent first."""
        if count <= 0:
            return []
        tracks = self._state.tracks
        seen = set()
        recent: List[TrackRef] = []
        for index in reversed(self._state.played_indices):
            if not (0 <= index < len(tracks)):
                continue
            track = tracks[index]
            if track.id in seen:
                continue
            seen.add(track.id)
            recent.append(track)
            if len(recent) >= count:
                break
        return recent

    def get_state(self) -> QueueState:
        """Copy of the current state; mutating it does not touch the queue."""
        state = self._state
        return QueueState(
            mode=state.mode,
            tracks=list(state.tracks),
            current_index=state.current_index,
            played_indices=list(state.played_indices),
            source_context=state.source_context,
        )

    @property
    def mode(self) -> QueueMode:
        return self._state.mode

    @property
    def current_index(self) -> Optional[int]:
        return self._state.current_index

    @property
    def played_indices(self) -> List[int]:
        return list(self._state.played_indices)

    def __len__(self) -> int:
        return len(self._state.tracks)
