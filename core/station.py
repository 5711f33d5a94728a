"""Single-flight controller for station playback.

The engine picks station tracks itself and never answers a station command
with the track it chose, so every station operation (enter, switch, next,
previous) locks, sends its command, then polls now-playing until the track
id moves away from the one captured before the command. While locked, every
other station request is rejected, not queued. A hard timeout always
releases the lock.
"""

from dataclasses import dataclass, replace
from enum import Enum
from functools import partial
from typing import Callable, Optional

from core.app_state import NowPlayingState
from core.engine_client import EngineClient
from core.events import EventBus
from core.exceptions import EngineError
from core.logging import get_logger
from core.metadata import PlayKind
from core.scheduler import Scheduler, TaskSlot

logger = get_logger(__name__)

# Confirmation poll interval and lock safety valve (milliseconds)
STATION_POLL_INTERVAL = 500
STATION_LOCK_TIMEOUT = 10000

SWITCHING_MESSAGE = "Switching..."
TIMEOUT_MESSAGE = "Timeout - track unchanged"
STATION_FAILED_MESSAGE = "Cannot play this station"


class StationPhase(Enum):
    IDLE = "idle"
    ENTERING = "locked-entering"
    SWITCHING = "locked-switching"
    NAVIGATING = "locked-navigating"
    UNLOCKED = "unlocked"


@dataclass
class StationSession:
    current_station_id: Optional[str] = None
    is_locked: bool = False
    last_confirmed_track_id: Optional[str] = None
    # Track id the confirmation poll must move away from; None accepts any track
    baseline_track_id: Optional[str] = None
    poll_deadline: Optional[float] = None
    phase: StationPhase = StationPhase.IDLE


class StationController:
    """Lock + confirmation-poll state machine for station mode."""

    def __init__(
        self,
        engine: EngineClient,
        scheduler: Scheduler,
        state: NowPlayingState,
        event_bus: EventBus,
        poll_interval_ms: int = STATION_POLL_INTERVAL,
        timeout_ms: int = STATION_LOCK_TIMEOUT,
    ):
        self._engine = engine
        self._scheduler = scheduler
        self._state = state
        self._events = event_bus
        self._poll_interval_ms = poll_interval_ms
        self._timeout_ms = timeout_ms

        self._session = StationSession()
        self._poll_slot = TaskSlot(scheduler, "station-poll")
        self._timeout_slot = TaskSlot(scheduler, "station-timeout")
        # Bumped on every lock/reset; callbacks carrying an older value are ghosts
        self._operation = 0

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    @property
    def session(self) -> StationSession:
        return replace(self._session)

    @property
    def is_locked(self) -> bool:
        return self._session.is_locked

    @property
    def is_active(self) -> bool:
        """True while station mode is on (a station has been entered)."""
        return self._session.current_station_id is not None

    @property
    def current_station_id(self) -> Optional[str]:
        return self._session.current_station_id

    @property
    def phase(self) -> StationPhase:
        return self._session.phase

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------
    def play_station(self, station_id: str) -> bool:
        """Enter a station, switch to another one, or restart the current one.

        Returns False when the request was rejected because of the lock.
        """
        if self.reject_if_locked():
            return False
        station_id = str(station_id)

        if self._session.current_station_id == station_id:
            return self._navigate(partial(self._engine.play_item, station_id, PlayKind.STATION))

        phase = StationPhase.SWITCHING if self.is_active else StationPhase.ENTERING
        self._session = StationSession(current_station_id=station_id)
        operation = self._lock(phase)
        logger.info("Starting station %s (%s)", station_id, phase.value)
        self._scheduler.run_async(
            partial(self._stop_then_play, station_id),
            on_done=partial(self._start_polling, operation),
            on_error=partial(self._on_command_failed, operation),
            name="station-play",
        )
        return True

    def next(self) -> bool:
        if not self.is_active or self.reject_if_locked():
            return False
        return self._navigate(self._engine.next)

    def previous(self) -> bool:
        if not self.is_active or self.reject_if_locked():
            return False
        return self._navigate(self._engine.previous)

    def reject_if_locked(self) -> bool:
        """Single-flight check: True (and a transient message) while locked."""
        if not self._session.is_locked:
            return False
        logger.debug("Station busy (%s), request rejected", self._session.phase.value)
        self._state.show_message(SWITCHING_MESSAGE)
        return True

    def leave(self) -> None:
        """Leave station mode: forget the station, its confirmed track and any poll."""
        was_locked = self._session.is_locked
        had_station = self.is_active
        self._operation += 1
        self._poll_slot.cancel()
        self._timeout_slot.cancel()
        self._session = StationSession()
        if was_locked or had_station:
            self._publish_lock()
        if was_locked:
            self._state.clear_message()

    def teardown(self) -> None:
        self._operation += 1
        self._poll_slot.cancel()
        self._timeout_slot.cancel()

    # ------------------------------------------------------------------
    # Commands (worker thread)
    # ------------------------------------------------------------------
    def _stop_then_play(self, station_id: str) -> None:
        try:
            self._engine.stop()
        except EngineError as e:
            # Stop is best effort; the play command below reports real trouble
            logger.debug("Stop before station %s failed: %s", station_id, e)
        self._engine.play_item(station_id, PlayKind.STATION)

    def _capture_then_run(self, fallback: Optional[str], command: Callable[[], None]) -> Optional[str]:
        baseline = fallback
        try:
            snapshot = self._engine.get_now_playing()
        except EngineError as e:
            logger.debug("Baseline capture failed, using last confirmed track: %s", e)
        else:
            if snapshot is not None and snapshot.track_id:
                baseline = snapshot.track_id
        command()
        return baseline

    # ------------------------------------------------------------------
    # Lock / poll machinery (loop thread)
    # ------------------------------------------------------------------
    def _navigate(self, command: Callable[[], None]) -> bool:
        operation = self._lock(StationPhase.NAVIGATING)
        fallback = self._session.last_confirmed_track_id or self._state.confirmed_track_id
        self._scheduler.run_async(
            partial(self._capture_then_run, fallback, command),
            on_done=partial(self._start_polling, operation),
            on_error=partial(self._on_command_failed, operation),
            name="station-navigate",
        )
        return True

    def _lock(self, phase: StationPhase) -> int:
        self._operation += 1
        operation = self._operation
        self._session.is_locked = True
        self._session.phase = phase
        self._session.baseline_track_id = None
        self._session.poll_deadline = self._scheduler.now() + self._timeout_ms / 1000.0
        self._poll_slot.cancel()
        self._timeout_slot.schedule(self._timeout_ms, self._on_timeout, operation)
        self._state.show_message(SWITCHING_MESSAGE, sticky=True)
        self._publish_lock()
        return operation

    def _unlock(self) -> None:
        self._poll_slot.cancel()
        self._timeout_slot.cancel()
        self._session.is_locked = False
        self._session.phase = StationPhase.UNLOCKED
        self._session.poll_deadline = None
        self._publish_lock()

    def _start_polling(self, operation: int, baseline: Optional[str]) -> None:
        if operation != self._operation or not self._session.is_locked:
            return
        self._session.baseline_track_id = baseline
        self._poll_slot.schedule(self._poll_interval_ms, self._poll, operation)

    def _poll(self, operation: int) -> None:
        if operation != self._operation or not self._session.is_locked:
            return
        self._scheduler.run_async(
            self._engine.get_now_playing,
            on_done=partial(self._on_poll_result, operation),
            on_error=partial(self._on_poll_error, operation),
            name="station-poll",
        )

    def _on_poll_result(self, operation: int, snapshot) -> None:
        if operation != self._operation or not self._session.is_locked:
            return
        track_id = snapshot.track_id if snapshot is not None else None
        baseline = self._session.baseline_track_id
        if track_id and (baseline is None or track_id != baseline):
            self._confirm(track_id)
            return
        self._state.show_message(SWITCHING_MESSAGE, sticky=True)
        self._poll_slot.schedule(self._poll_interval_ms, self._poll, operation)

    def _on_poll_error(self, operation: int, error: Exception) -> None:
        if operation != self._operation or not self._session.is_locked:
            return
        # Keep polling; the timeout is what gives up
        logger.debug("Station poll failed: %s", error)
        self._poll_slot.schedule(self._poll_interval_ms, self._poll, operation)

    def _confirm(self, track_id: str) -> None:
        logger.info("Station %s now on track %s", self._session.current_station_id, track_id)
        self._session.last_confirmed_track_id = track_id
        self._unlock()
        self._state.confirm(track_id)
        self._state.clear_message()
        self._events.publish(
            EventBus.TRACK_CHANGE_COMPLETED,
            {"track_id": track_id, "kind": PlayKind.STATION},
        )
        self._events.publish(EventBus.PLAYBACK_INFO_REFRESH, {"track_id": track_id})

    def _on_timeout(self, operation: int) -> None:
        if operation != self._operation or not self._session.is_locked:
            return
        logger.warning(
            "Station %s did not confirm a track change within %d ms",
            self._session.current_station_id,
            self._timeout_ms,
        )
        self._unlock()
        self._state.show_message(TIMEOUT_MESSAGE)

    def _on_command_failed(self, operation: int, error: Exception) -> None:
        if operation != self._operation:
            return
        logger.warning("Station command failed: %s", error)
        if self._session.phase in (StationPhase.ENTERING, StationPhase.SWITCHING):
            # The station never started; drop station mode so the queue drives again
            self._poll_slot.cancel()
            self._timeout_slot.cancel()
            self._session = StationSession()
            self._publish_lock()
        else:
            self._unlock()
        self._state.show_message(STATION_FAILED_MESSAGE)

    def _publish_lock(self) -> None:
        self._events.publish(
            EventBus.STATION_LOCK_CHANGED,
            {
                "locked": self._session.is_locked,
                "station_id": self._session.current_station_id,
                "phase": self._session.phase.value,
            },
        )
