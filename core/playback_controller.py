"""Playback controller - routes navigation to the queue, the debouncer or the station controller."""
from typing import Any, Callable, Dict, Optional, Sequence, Tuple

from core.app_state import NowPlayingState
from core.autoplay import AutoPlayStationBuilder
from core.config import Config
from core.engine_client import EngineClient
from core.events import EventBus
from core.logging import get_logger
from core.metadata import PlayKind, RepeatMode, ShuffleMode, TrackRef
from core.queue import QueueStore, SourceContext
from core.scheduler import Scheduler
from core.station import StationController
from core.transition import PLAY_FAILED_MESSAGE, TrackTransitionDebouncer

logger = get_logger(__name__)

UNREACHABLE_MESSAGE = "Cannot reach Cider"


class PlaybackController:
    """Owns navigation decisions; subscribes to actions; delegates the actual playing."""

    def __init__(
        self,
        queue: QueueStore,
        engine: EngineClient,
        scheduler: Scheduler,
        state: NowPlayingState,
        event_bus: EventBus,
        debouncer: TrackTransitionDebouncer,
        stations: StationController,
        autoplay: AutoPlayStationBuilder,
        config: Config,
    ):
        self._queue = queue
        self._engine = engine
        self._scheduler = scheduler
        self._state = state
        self._events = event_bus
        self._debouncer = debouncer
        self._stations = stations
        self._autoplay = autoplay
        self._config = config
        # Bumped per mode-dependent decision; only the newest one acts
        self._decision = 0

        self._subscriptions = [
            (EventBus.ACTION_NEXT, self._on_action_next),
            (EventBus.ACTION_PREV, self._on_action_previous),
            (EventBus.ACTION_PLAY_ITEM, self._on_action_play_item),
            (EventBus.ACTION_PLAY_LIST, self._on_action_play_list),
            (EventBus.ACTION_STOP, self._on_action_stop),
            (EventBus.ACTION_TOGGLE_AUTOPLAY, self._on_action_toggle_autoplay),
            (EventBus.TRACK_ENDED, self._on_track_ended),
        ]
        for event, callback in self._subscriptions:
            self._events.subscribe(event, callback)

    @property
    def is_station_mode(self) -> bool:
        return self._stations.is_active

    @property
    def transition_pending(self) -> bool:
        return self._debouncer.busy or self._stations.is_locked

    # ------------------------------------------------------------------
    # Navigation entry points
    # ------------------------------------------------------------------
    def on_next(self) -> None:
        if self._stations.reject_if_locked():
            return
        if self._stations.is_active:
            self._stations.next()
            return
        self._with_modes(self._advance)

    def on_previous(self) -> None:
        if self._stations.reject_if_locked():
            return
        self._supersede()
        if self._stations.is_active:
            self._stations.previous()
            return
        index = self._queue.get_previous_index()
        if index is None:
            return
        self._queue.update_current_index(index)
        self._play_track(self._queue.get_track(index))

    def on_play_selected(self, item_id: str, kind: PlayKind = PlayKind.SONG) -> bool:
        """Play one item picked by the user. Songs already in the queue keep their place in it."""
        if self._stations.reject_if_locked():
            return False
        item_id = str(item_id)
        self._supersede()
        if PlayKind.parse(kind) is PlayKind.STATION:
            self._debouncer.cancel()
            return self._stations.play_station(item_id)

        index = self._queue.index_of(item_id)
        if index is not None:
            self._queue.update_current_index(index)
        else:
            self._queue.set_single_track(TrackRef(id=item_id))
        self._events.publish(EventBus.QUEUE_CHANGED, {"current_index": self._queue.current_index})
        self._play_track(self._queue.get_current_track())
        return True

    def on_track_ended_auto_advance(self) -> None:
        # Stations continue on their own
        if self._stations.is_active or self._stations.is_locked:
            return
        self._with_modes(self._advance)

    def play_list(self, tracks: Sequence[TrackRef], start_index: int = 0,
                  context: Optional[SourceContext] = None) -> bool:
        """Replace the queue with a list and play from start_index."""
        if self._stations.reject_if_locked():
            return False
        self._supersede()
        self._queue.set_queue(tracks, start_index, context)
        self._events.publish(EventBus.QUEUE_CHANGED, {"current_index": self._queue.current_index})
        track = self._queue.get_current_track()
        if track is None:
            return False
        self._play_track(track)
        return True

    def play_single(self, track: TrackRef) -> bool:
        if self._stations.reject_if_locked():
            return False
        self._supersede()
        self._queue.set_single_track(track)
        self._events.publish(EventBus.QUEUE_CHANGED, {"current_index": self._queue.current_index})
        self._play_track(track)
        return True

    def stop(self) -> None:
        """Stop everything: pending play, station session, indicator and the engine."""
        self._supersede()
        self._debouncer.cancel()
        self._stations.leave()
        self._state.reset()
        self._scheduler.run_async(
            self._engine.stop,
            on_error=self._on_engine_unreachable,
            name="stop",
        )

    def toggle_autoplay(self) -> bool:
        enabled = not self._config.autoplay
        self._config.autoplay = enabled
        logger.info("Auto-play %s", "enabled" if enabled else "disabled")
        self._events.publish(EventBus.AUTOPLAY_CHANGED, {"enabled": enabled})
        self._state.show_message(f"Auto-play {'on' if enabled else 'off'}")
        return enabled

    def teardown(self) -> None:
        self._decision += 1
        for event, callback in self._subscriptions:
            self._events.unsubscribe(event, callback)

    # ------------------------------------------------------------------
    # Decisions
    # ------------------------------------------------------------------
    def _supersede(self) -> None:
        """A new user intent: drop mode decisions and auto-play builds still in flight."""
        self._decision += 1
        self._autoplay.cancel()

    def _with_modes(self, decide: Callable[[ShuffleMode, RepeatMode], None]) -> None:
        """Fetch shuffle/repeat from the engine, then decide with them."""
        self._decision += 1
        decision = self._decision
        self._scheduler.run_async(
            self._fetch_modes,
            on_done=lambda modes: self._on_modes(decision, decide, modes),
            on_error=lambda e: self._on_modes_failed(decision, e),
            name="playback-modes",
        )

    def _fetch_modes(self) -> Tuple[ShuffleMode, RepeatMode]:
        return self._engine.get_shuffle_mode(), self._engine.get_repeat_mode()

    def _on_modes(self, decision: int, decide: Callable[[ShuffleMode, RepeatMode], None],
                  modes: Tuple[ShuffleMode, RepeatMode]) -> None:
        if decision != self._decision:
            return
        # A station may have been entered while the modes were in flight
        if self._stations.is_active or self._stations.is_locked:
            return
        shuffle, repeat = modes
        decide(shuffle, repeat)

    def _on_modes_failed(self, decision: int, error: Exception) -> None:
        if decision != self._decision:
            return
        self._on_engine_unreachable(error)

    def _advance(self, shuffle: ShuffleMode, repeat: RepeatMode) -> None:
        index = self._queue.get_next_index(shuffle, repeat)
        if index is not None:
            self._queue.update_current_index(index)
            self._play_track(self._queue.get_track(index))
            return
        self._on_queue_exhausted(repeat)

    def _on_queue_exhausted(self, repeat: RepeatMode) -> None:
        if self._config.autoplay and repeat is RepeatMode.OFF:
            logger.info("Queue exhausted, starting auto-play")
            self._autoplay.build_and_play()
        else:
            logger.debug("Queue exhausted")

    def _play_track(self, track: Optional[TrackRef]) -> None:
        if track is None:
            return
        if track.play_kind is PlayKind.STATION:
            self._debouncer.cancel()
            self._stations.play_station(track.id)
            return
        if not track.is_playable:
            logger.info("Skipping unplayable track %s", track.label)
            self._state.show_message(PLAY_FAILED_MESSAGE)
            return
        self._stations.leave()
        self._debouncer.request_track_change(track.id, PlayKind.SONG)

    def _on_engine_unreachable(self, error: Exception) -> None:
        logger.warning("Engine request failed: %s", error)
        self._state.show_message(UNREACHABLE_MESSAGE)

    # ------------------------------------------------------------------
    # Action handlers
    # ------------------------------------------------------------------
    def _on_action_next(self, data: Optional[Dict[str, Any]]) -> None:
        self.on_next()

    def _on_action_previous(self, data: Optional[Dict[str, Any]]) -> None:
        self.on_previous()

    def _on_action_play_item(self, data: Optional[Dict[str, Any]]) -> None:
        if not data or not data.get("id"):
            return
        self.on_play_selected(data["id"], data.get("kind", PlayKind.SONG))

    def _on_action_play_list(self, data: Optional[Dict[str, Any]]) -> None:
        if not data or not data.get("tracks"):
            return
        # Actions may carry serialized tracks
        tracks = [track if isinstance(track, TrackRef) else TrackRef.from_dict(track)
                  for track in data["tracks"]]
        self.play_list(tracks, data.get("index", 0), data.get("context"))

    def _on_action_stop(self, data: Optional[Dict[str, Any]]) -> None:
        self.stop()

    def _on_action_toggle_autoplay(self, data: Optional[Dict[str, Any]]) -> None:
        self.toggle_autoplay()

    def _on_track_ended(self, data: Optional[Dict[str, Any]]) -> None:
        self.on_track_ended_auto_advance()
