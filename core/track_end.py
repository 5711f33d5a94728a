"""End-of-track detection for non-station playback.

Progress samples (pushed by the socket, or from the fallback snapshot poll)
arm the monitor once a track is at 99% or more. While armed it polls the
engine's is-playing flag closely; playing -> not playing is a natural end.
Stations are skipped entirely: the engine continues those on its own.
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from core.engine_client import EngineClient
from core.events import EventBus
from core.logging import get_logger
from core.scheduler import Scheduler, TaskSlot

logger = get_logger(__name__)

END_THRESHOLD = 0.99
# Close polling while armed (milliseconds)
END_POLL_INTERVAL = 250


@dataclass(frozen=True)
class PlaybackProgressSample:
    track_id: Optional[str]
    position_sec: float
    duration_ms: int
    # Engine's isPlaying flag when the source reports one; snapshots leave it None
    playing: Optional[bool] = None

    @property
    def duration_sec(self) -> float:
        return self.duration_ms / 1000.0

    @property
    def ratio(self) -> float:
        """Normalized progress; 0.0 when the duration is unknown."""
        if self.duration_ms <= 0:
            return 0.0
        return max(0.0, self.position_sec / self.duration_sec)


class EndOfTrackMonitor:
    """Turns progress samples into TRACK_ENDED events."""

    def __init__(
        self,
        engine: EngineClient,
        scheduler: Scheduler,
        event_bus: EventBus,
        is_station_mode: Callable[[], bool],
        threshold: float = END_THRESHOLD,
        poll_interval_ms: int = END_POLL_INTERVAL,
    ):
        self._engine = engine
        self._scheduler = scheduler
        self._events = event_bus
        self._is_station_mode = is_station_mode
        self._threshold = threshold
        self._poll_interval_ms = poll_interval_ms
        self._watch_slot = TaskSlot(scheduler, "end-of-track-watch")

        self._armed_track_id: Optional[str] = None
        self._watching = False
        self._last_is_playing: Optional[bool] = None
        self._check_in_flight = False
        # Track we already reported; cleared once its progress drops below the threshold
        self._ended_track_id: Optional[str] = None
        self._ended = False
        self._last_sample: Optional[PlaybackProgressSample] = None

        self._events.subscribe(EventBus.PLAYBACK_PROGRESS, self._on_progress_event)

    @property
    def armed(self) -> bool:
        return self._watching

    def _on_progress_event(self, data: Optional[Dict[str, Any]]) -> None:
        if data and data.get("sample") is not None:
            self.on_progress(data["sample"])

    def on_progress(self, sample: PlaybackProgressSample) -> None:
        if self._is_station_mode():
            self._disarm()
            return
        if sample.duration_ms <= 0:
            return
        previous, self._last_sample = self._last_sample, sample

        if sample.ratio >= self._threshold:
            already_reported = self._ended and sample.track_id == self._ended_track_id
            if not self._watching and not already_reported:
                self._arm(sample.track_id)
            if self._watching:
                playing = self._playback_evidence(previous, sample)
                if playing is not None:
                    self._last_is_playing = playing
            return

        # Below the threshold: new track, replay or seek back
        if self._watching:
            self._disarm()
        self._ended = False
        self._ended_track_id = None

    @staticmethod
    def _playback_evidence(previous: Optional[PlaybackProgressSample],
                           sample: PlaybackProgressSample) -> Optional[bool]:
        """What the samples say about the engine playing; None when they cannot tell."""
        if sample.playing is not None:
            return sample.playing
        if (previous is not None and previous.track_id == sample.track_id
                and sample.position_sec > previous.position_sec):
            return True
        return None

    def _arm(self, track_id: Optional[str]) -> None:
        logger.debug("Track %s near its end, watching for stop", track_id)
        self._watching = True
        self._armed_track_id = track_id
        self._last_is_playing = None
        self._check_in_flight = False
        self._watch_slot.schedule_every(self._poll_interval_ms, self._check)

    def _disarm(self) -> None:
        self._watching = False
        self._armed_track_id = None
        self._last_is_playing = None
        self._watch_slot.cancel()

    def _check(self) -> bool:
        if not self._watching:
            return False
        if self._is_station_mode():
            self._disarm()
            return False
        if self._check_in_flight:
            return True
        self._check_in_flight = True
        self._scheduler.run_async(
            self._engine.is_playing,
            on_done=self._on_is_playing,
            on_error=self._on_check_failed,
            name="is-playing",
        )
        return True

    def _on_is_playing(self, playing: bool) -> None:
        self._check_in_flight = False
        if not self._watching:
            return
        if self._last_is_playing and not playing:
            self._complete()
            return
        self._last_is_playing = bool(playing)

    def _on_check_failed(self, error: Exception) -> None:
        self._check_in_flight = False
        logger.debug("is-playing check failed: %s", error)

    def _complete(self) -> None:
        track_id = self._armed_track_id
        logger.info("Track %s finished", track_id)
        self._ended = True
        self._ended_track_id = track_id
        self._disarm()
        self._events.publish(EventBus.TRACK_ENDED, {"track_id": track_id})

    def teardown(self) -> None:
        self._disarm()
        self._last_sample = None
        self._events.unsubscribe(EventBus.PLAYBACK_PROGRESS, self._on_progress_event)
