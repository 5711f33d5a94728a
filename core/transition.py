"""Track-transition debouncer.

Key repeat can produce "change track" intents far faster than the engine can
take play commands, and every play-item makes the engine reload. The
indicator follows every intent at once; the engine only hears about the last
one, after a quiet period with no further intents.
"""

from dataclasses import dataclass
from functools import partial
from typing import Optional

from core.app_state import NowPlayingState
from core.engine_client import EngineClient
from core.events import EventBus
from core.exceptions import StaleResponseError
from core.logging import get_logger
from core.metadata import PlayKind
from core.scheduler import Scheduler, TaskSlot

logger = get_logger(__name__)

# Quiet period before a play command is sent (milliseconds)
DEBOUNCE_QUIET_PERIOD = 500

PLAY_FAILED_MESSAGE = "Cannot play this track"


@dataclass(frozen=True)
class TransitionRequest:
    track_id: str
    kind: PlayKind
    created_at: float


class TrackTransitionDebouncer:
    """Coalesces bursts of track-change intents into one engine play command."""

    def __init__(
        self,
        engine: EngineClient,
        scheduler: Scheduler,
        state: NowPlayingState,
        event_bus: EventBus,
        quiet_period_ms: int = DEBOUNCE_QUIET_PERIOD,
    ):
        self._engine = engine
        self._scheduler = scheduler
        self._state = state
        self._events = event_bus
        self._quiet_period_ms = quiet_period_ms
        self._slot = TaskSlot(scheduler, "track-transition")

        self._pending: Optional[TransitionRequest] = None
        self._in_flight: Optional[TransitionRequest] = None

    @property
    def pending(self) -> Optional[TransitionRequest]:
        """Request waiting for its quiet period to elapse."""
        return self._pending

    @property
    def in_flight(self) -> Optional[TransitionRequest]:
        """Request whose play command has been sent but not answered."""
        return self._in_flight

    @property
    def busy(self) -> bool:
        return self._pending is not None or self._in_flight is not None

    def request_track_change(self, track_id: str, kind: PlayKind = PlayKind.SONG) -> TransitionRequest:
        """Show track_id now; play it once no newer request arrives within the quiet period."""
        request = TransitionRequest(str(track_id), PlayKind.parse(kind), self._scheduler.now())
        self._state.set_optimistic(request.track_id)
        self._pending = request
        self._slot.schedule(self._quiet_period_ms, self._fire, request)
        return request

    def cancel(self) -> None:
        """Drop the pending request and forget any in-flight one."""
        self._slot.cancel()
        self._pending = None
        self._in_flight = None

    def _fire(self, request: TransitionRequest) -> None:
        if request is not self._pending:
            return
        self._pending = None
        self._in_flight = request
        logger.debug("Sending play-item %s (%s)", request.track_id, request.kind.value)
        self._scheduler.run_async(
            partial(self._engine.play_item, request.track_id, request.kind),
            on_done=partial(self._on_played, request),
            on_error=partial(self._on_failed, request),
            name="play-item",
        )

    def _on_played(self, request: TransitionRequest, _result=None) -> None:
        if self._in_flight is not request:
            # Cancelled or superseded while the command was out
            return
        self._in_flight = None
        if self._pending is not None:
            # A newer intent is queued; it will confirm itself
            return
        self._state.confirm(request.track_id)
        self._events.publish(
            EventBus.TRACK_CHANGE_COMPLETED,
            {"track_id": request.track_id, "kind": request.kind},
        )
        self._events.publish(EventBus.PLAYBACK_INFO_REFRESH, {"track_id": request.track_id})

    def _on_failed(self, request: TransitionRequest, error: Exception) -> None:
        if self._in_flight is not request:
            return
        self._in_flight = None
        if isinstance(error, StaleResponseError):
            return
        logger.warning("Play command for %s failed: %s", request.track_id, error)
        # No rollback of the optimistic id; see DESIGN.md
        self._state.show_message(PLAY_FAILED_MESSAGE)

    def teardown(self) -> None:
        self.cancel()
