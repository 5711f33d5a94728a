"""Engine now-playing feed: socket.io push events plus a fallback poll.

The socket delivers playback-time ticks several times a second and a
notification whenever the engine's current item changes. Ticks are throttled
before they reach the rest of the client. Independently, the now-playing
snapshot is polled every second so the client stays in sync when the socket
is down.
"""

from typing import Any, Callable, Dict, Optional

import socketio

from core.app_state import NowPlayingState
from core.engine_client import EngineClient
from core.events import EventBus
from core.exceptions import EngineUnavailableError
from core.logging import get_logger
from core.metadata import NowPlaying
from core.scheduler import Scheduler, TaskSlot
from core.track_end import PlaybackProgressSample

logger = get_logger(__name__)

PLAYBACK_EVENT = "API:Playback"
TIME_DID_CHANGE = "playbackStatus.playbackTimeDidChange"
ITEM_DID_CHANGE = "playbackStatus.nowPlayingItemDidChange"

PROGRESS_THROTTLE = 100
NOW_PLAYING_POLL_INTERVAL = 1000


class NowPlayingMonitor:
    """Keeps NowPlayingState in step with what the engine reports."""

    def __init__(
        self,
        engine: EngineClient,
        scheduler: Scheduler,
        state: NowPlayingState,
        event_bus: EventBus,
        base_url: str,
        throttle_ms: int = PROGRESS_THROTTLE,
        poll_ms: int = NOW_PLAYING_POLL_INTERVAL,
        is_transition_pending: Optional[Callable[[], bool]] = None,
        client_factory: Callable[..., Any] = socketio.Client,
    ):
        self._engine = engine
        self._scheduler = scheduler
        self._state = state
        self._events = event_bus
        self._base_url = base_url
        self._throttle_sec = throttle_ms / 1000.0
        self._poll_ms = poll_ms
        self._is_transition_pending = is_transition_pending or (lambda: False)
        self._client_factory = client_factory

        self._sio = None
        self._poll_slot = TaskSlot(scheduler, "now-playing-poll")
        self._running = False
        self._connected: Optional[bool] = None

        self._current: Optional[NowPlaying] = None
        self._last_progress_at: Optional[float] = None
        # Issued / newest-applied fetch numbers
        self._fetch_seq = 0
        self._applied_seq = 0

    @property
    def current(self) -> Optional[NowPlaying]:
        return self._current

    @property
    def connected(self) -> bool:
        return bool(self._connected)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._sio = self._client_factory(
            reconnection=True,
            reconnection_delay=1,
            reconnection_attempts=5,
        )
        self._sio.on("connect", self._on_socket_connect)
        self._sio.on("disconnect", self._on_socket_disconnect)
        self._sio.on(PLAYBACK_EVENT, self._on_socket_playback)
        self._scheduler.run_async(
            self._connect_socket,
            on_error=self._on_connect_failed,
            name="socket-connect",
        )
        self._poll_slot.schedule_every(self._poll_ms, self._poll)
        self.refresh()

    def stop(self) -> None:
        self._running = False
        self._poll_slot.cancel()
        # Results of fetches still in flight are ignored from now on
        self._fetch_seq += 1
        self._applied_seq = self._fetch_seq
        sio, self._sio = self._sio, None
        if sio is not None:
            try:
                sio.disconnect()
            except Exception as e:
                logger.debug("Socket disconnect failed: %s", e)

    def _connect_socket(self) -> None:
        self._sio.connect(self._base_url, transports=["websocket", "polling"])

    def _on_connect_failed(self, error: Exception) -> None:
        logger.warning("Cannot connect to engine event stream at %s: %s", self._base_url, error)
        self._set_connected(False)

    # ------------------------------------------------------------------
    # Socket handlers (socket.io client thread)
    # ------------------------------------------------------------------
    def _on_socket_connect(self) -> None:
        self._scheduler.call_soon_threadsafe(self._handle_connect)

    def _on_socket_disconnect(self, *args) -> None:
        self._scheduler.call_soon_threadsafe(self._set_connected, False)

    def _on_socket_playback(self, event: Any) -> None:
        self._scheduler.call_soon_threadsafe(self.handle_playback_event, event)

    # ------------------------------------------------------------------
    # Event handling (loop thread)
    # ------------------------------------------------------------------
    def _handle_connect(self) -> None:
        logger.info("Connected to engine event stream")
        self._set_connected(True)
        self.refresh()

    def handle_playback_event(self, event: Any) -> None:
        if not self._running or not isinstance(event, dict):
            return
        event_type = event.get("type")
        if event_type == TIME_DID_CHANGE:
            self._on_time_changed(event.get("data") or {})
        elif event_type == ITEM_DID_CHANGE:
            self.refresh()

    def _on_time_changed(self, data: Dict[str, Any]) -> None:
        now = self._scheduler.now()
        if self._last_progress_at is not None and now - self._last_progress_at < self._throttle_sec:
            return
        if self._current is None:
            # Nothing to attach the tick to yet
            self.refresh()
            return
        try:
            position = float(data.get("currentPlaybackTime") or 0.0)
        except (TypeError, ValueError):
            return
        self._last_progress_at = now
        self._current.position_sec = position
        # Time ticks are only pushed while playing unless the event says otherwise
        self._publish_progress(playing=bool(data.get("isPlaying", True)))

    # ------------------------------------------------------------------
    # Snapshot fetches
    # ------------------------------------------------------------------
    def _poll(self) -> bool:
        if not self._running:
            return False
        self.refresh()
        return True

    def refresh(self) -> None:
        """Fetch the snapshot now; a later fetch supersedes this one."""
        if not self._running:
            return
        self._fetch_seq += 1
        seq = self._fetch_seq
        self._scheduler.run_async(
            self._engine.get_now_playing,
            on_done=lambda info: self._on_snapshot(seq, info),
            on_error=lambda e: self._on_snapshot_failed(seq, e),
            name="now-playing",
        )

    def _on_snapshot(self, seq: int, info: Optional[NowPlaying]) -> None:
        if seq <= self._applied_seq or seq != self._fetch_seq:
            logger.debug("Dropping stale now-playing response #%d", seq)
            return
        self._applied_seq = seq
        self._set_connected(True)
        if info is None:
            # Engine has nothing loaded; leave the last known track alone
            return
        self._current = info
        self._state.observe_engine_track(info.track_id, self._is_transition_pending())
        self._events.publish(EventBus.NOW_PLAYING_INFO, {"info": info})
        self._publish_progress()

    def _on_snapshot_failed(self, seq: int, error: Exception) -> None:
        if seq != self._fetch_seq:
            return
        logger.debug("Now-playing fetch failed: %s", error)
        if isinstance(error, EngineUnavailableError):
            self._set_connected(False)

    def _publish_progress(self, playing: Optional[bool] = None) -> None:
        info = self._current
        sample = PlaybackProgressSample(info.track_id, info.position_sec, info.duration_ms, playing)
        self._events.publish(EventBus.PLAYBACK_PROGRESS, {"sample": sample})

    def _set_connected(self, connected: bool) -> None:
        if connected == self._connected:
            return
        self._connected = connected
        if not connected:
            logger.warning("Lost connection to engine")
        self._events.publish(EventBus.ENGINE_CONNECTION_CHANGED, {"connected": connected})
