"""Observable "now playing" indicator and transient status line.

The indicator is two fields, not one:

- optimistic_track_id: what the user asked for most recently
- confirmed_track_id: what the engine last reported or acknowledged

Reconciliation rules:

R1. set_optimistic(id) always wins over any earlier optimistic value.
R2. confirm(id) marks a finished transition and sets both fields.
R3. observe_engine_track(id, transition_pending) always updates the
    confirmed field; it overwrites the optimistic one only when no
    transition is pending, so a poll cannot yank the highlight back while
    a debounced play is still queued.
R4. reset() clears both.

The two may disagree for a while (pending debounce, failed play command);
`diverged` exposes that.
"""

# ============================================================================
# Standard Library Imports (alphabetical)
# ============================================================================
from typing import Optional

# ============================================================================
# Local Imports (grouped by package, alphabetical)
# ============================================================================
from core.events import EventBus
from core.logging import get_logger
from core.scheduler import Scheduler, TaskSlot

logger = get_logger(__name__)

DEFAULT_MESSAGE_DURATION_MS = 2000


class NowPlayingState:
    """Owns the now-playing indicator and the status message; publishes every change."""

    def __init__(
        self,
        event_bus: EventBus,
        scheduler: Scheduler,
        message_duration_ms: int = DEFAULT_MESSAGE_DURATION_MS,
    ):
        """
        Initialize now-playing state.

        Args:
            event_bus: EventBus instance for publishing state changes
            scheduler: Used for auto-clearing status messages
            message_duration_ms: How long transient messages stay up
        """
        self._event_bus = event_bus
        self._message_duration_ms = message_duration_ms
        self._clear_slot = TaskSlot(scheduler, "status-message-clear")

        self._optimistic_track_id: Optional[str] = None
        self._confirmed_track_id: Optional[str] = None
        self._status_message: Optional[str] = None

    # ============================================================================
    # Now-playing indicator
    # ============================================================================

    @property
    def optimistic_track_id(self) -> Optional[str]:
        return self._optimistic_track_id

    @property
    def confirmed_track_id(self) -> Optional[str]:
        return self._confirmed_track_id

    @property
    def now_playing_id(self) -> Optional[str]:
        """Id the view should highlight."""
        if self._optimistic_track_id is not None:
            return self._optimistic_track_id
        return self._confirmed_track_id

    @property
    def diverged(self) -> bool:
        return (
            self._optimistic_track_id is not None
            and self._optimistic_track_id != self._confirmed_track_id
        )

    def set_optimistic(self, track_id: Optional[str]) -> None:
        """R1: the latest intent is shown immediately."""
        self._update(track_id, self._confirmed_track_id)

    def confirm(self, track_id: Optional[str]) -> None:
        """R2: a transition to track_id completed."""
        self._update(track_id, track_id)

    def observe_engine_track(self, track_id: Optional[str], transition_pending: bool = False) -> None:
        """R3: fold in what the engine reports."""
        optimistic = self._optimistic_track_id if transition_pending else track_id
        self._update(optimistic, track_id)

    def reset(self) -> None:
        """R4: nothing is playing."""
        self._update(None, None)

    def _update(self, optimistic: Optional[str], confirmed: Optional[str]) -> None:
        if optimistic == self._optimistic_track_id and confirmed == self._confirmed_track_id:
            return
        self._optimistic_track_id = optimistic
        self._confirmed_track_id = confirmed
        self._event_bus.publish(
            EventBus.NOW_PLAYING_CHANGED,
            {
                "track_id": self.now_playing_id,
                "optimistic": optimistic,
                "confirmed": confirmed,
            },
        )

    # ============================================================================
    # Status message
    # ============================================================================

    @property
    def status_message(self) -> Optional[str]:
        return self._status_message

    def show_message(self, text: str, duration_ms: Optional[int] = None, sticky: bool = False) -> None:
        """
        Show a status line.

        Args:
            text: Message to show
            duration_ms: Override for the auto-clear delay
            sticky: Keep it until replaced or cleared explicitly
        """
        if sticky:
            self._clear_slot.cancel()
        else:
            self._clear_slot.schedule(
                duration_ms if duration_ms is not None else self._message_duration_ms,
                self._expire_message,
                text,
            )
        self._set_message(text)

    def clear_message(self) -> None:
        self._clear_slot.cancel()
        self._set_message(None)

    def _expire_message(self, text: str) -> None:
        # A newer message owns the line now
        if self._status_message == text:
            self._set_message(None)

    def _set_message(self, text: Optional[str]) -> None:
        if text == self._status_message:
            return
        self._status_message = text
        self._event_bus.publish(EventBus.STATUS_MESSAGE_CHANGED, {"message": text})

    def teardown(self) -> None:
        self._clear_slot.cancel()
