"""Centralized event bus for decoupled component communication."""

from typing import Any, Callable, Dict, List
from core.logging import get_logger

logger = get_logger(__name__)


class EventBus:
    """Publish-subscribe event system. Components publish/subscribe without knowing each other.

    Event Flow Architecture:
    - The input layer publishes ACTION_* events (requests)
    - Core services publish *_CHANGED and other notifications
    - The rendering layer only subscribes to notifications: Input -> Core -> View
    """

    # =========================================================================
    # Core -> View: State Change Notifications
    # =========================================================================

    # Now-playing indicator (published by NowPlayingState)
    # {"track_id": str?, "optimistic": str?, "confirmed": str?}
    NOW_PLAYING_CHANGED = "now_playing.changed"
    # {"message": str?}
    STATUS_MESSAGE_CHANGED = "status.message_changed"
    # {"locked": bool, "station_id": str?, "phase": str}
    STATION_LOCK_CHANGED = "station.lock_changed"

    # Engine feed (published by NowPlayingMonitor)
    # {"sample": PlaybackProgressSample}
    PLAYBACK_PROGRESS = "playback.progress"
    # {"info": NowPlaying?}
    NOW_PLAYING_INFO = "playback.now_playing_info"
    # {"connected": bool}
    ENGINE_CONNECTION_CHANGED = "engine.connection_changed"

    # Transitions (published by TrackTransitionDebouncer / StationController)
    # {"track_id": str, "kind": PlayKind}
    TRACK_CHANGE_COMPLETED = "transition.completed"
    # Ask listeners to re-read position/duration/modes
    PLAYBACK_INFO_REFRESH = "playback.info_refresh"

    # Queue and playback policy
    QUEUE_CHANGED = "queue.changed"
    AUTOPLAY_CHANGED = "playback.autoplay_changed"
    # Natural end of a non-station track (published by EndOfTrackMonitor)
    # {"track_id": str?}
    TRACK_ENDED = "playback.track_ended"

    # =========================================================================
    # Input -> Core: Action Requests (handled by PlaybackController)
    # =========================================================================

    ACTION_NEXT = "action.next"
    ACTION_PREV = "action.previous"
    # {"id": str, "kind": PlayKind}
    ACTION_PLAY_ITEM = "action.play_item"
    # {"tracks": [TrackRef], "index": int, "context": SourceContext?}
    ACTION_PLAY_LIST = "action.play_list"
    ACTION_STOP = "action.stop"
    ACTION_TOGGLE_AUTOPLAY = "action.toggle_autoplay"

    def __init__(self):
        self._subscribers: Dict[str, List[Callable[[Any], None]]] = {}

    def subscribe(self, event: str, callback: Callable[[Any], None]) -> None:
        if event not in self._subscribers:
            self._subscribers[event] = []
        self._subscribers[event].append(callback)

    def unsubscribe(self, event: str, callback: Callable[[Any], None]) -> None:
        if event in self._subscribers:
            try:
                self._subscribers[event].remove(callback)
            except ValueError:
                pass

    def publish(self, event: str, data: Any = None) -> None:
        # Copy so a callback may unsubscribe itself while we iterate
        for callback in list(self._subscribers.get(event, [])):
            try:
                callback(data)
            except Exception as e:
                logger.error(
                    "Error in event callback for %s: %s", event, e, exc_info=True
                )
