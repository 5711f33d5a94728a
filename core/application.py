"""Application root: builds and owns every playback service."""

from typing import Optional

from core.app_state import NowPlayingState
from core.autoplay import AutoPlayStationBuilder
from core.catalog import CatalogClient
from core.config import Config
from core.engine_client import EngineClient
from core.events import EventBus
from core.logging import get_logger
from core.metadata import PlayKind
from core.now_playing import NowPlayingMonitor
from core.playback_controller import PlaybackController
from core.queue import QueueStore
from core.scheduler import Scheduler
from core.station import StationController
from core.track_end import EndOfTrackMonitor
from core.transition import TrackTransitionDebouncer

logger = get_logger(__name__)


class PlayerApplication:
    """Manages the player's services; one instance per process.

    The rendering/input layer talks to it through the on_* entry points or by
    publishing ACTION_* events on `event_bus`, and observes `state`.
    """

    def __init__(
        self,
        config: Config,
        scheduler: Scheduler,
        engine: Optional[EngineClient] = None,
        queue: Optional[QueueStore] = None,
        event_bus: Optional[EventBus] = None,
        socket_factory=None,
    ):
        self.config = config
        self.scheduler = scheduler
        self.event_bus = event_bus or EventBus()
        self.engine = engine or EngineClient(config.base_url, timeout=config.request_timeout)
        self.catalog = CatalogClient(self.engine, storefront=config.storefront)
        self.queue = queue or QueueStore()

        self.state = NowPlayingState(
            self.event_bus, scheduler, message_duration_ms=config.message_duration_ms
        )
        self.debouncer = TrackTransitionDebouncer(
            self.engine, scheduler, self.state, self.event_bus,
            quiet_period_ms=config.debounce_ms,
        )
        self.stations = StationController(
            self.engine, scheduler, self.state, self.event_bus,
            poll_interval_ms=config.station_poll_interval_ms,
            timeout_ms=config.station_timeout_ms,
        )
        self.autoplay = AutoPlayStationBuilder(
            self.queue, self.catalog, self.stations, self.engine,
            scheduler, self.state, self.event_bus,
        )
        self.controller = PlaybackController(
            self.queue, self.engine, scheduler, self.state, self.event_bus,
            self.debouncer, self.stations, self.autoplay, config,
        )
        self.end_monitor = EndOfTrackMonitor(
            self.engine, scheduler, self.event_bus,
            is_station_mode=lambda: self.controller.is_station_mode,
            threshold=config.end_threshold,
            poll_interval_ms=config.end_poll_interval_ms,
        )
        monitor_kwargs = {}
        if socket_factory is not None:
            monitor_kwargs["client_factory"] = socket_factory
        self.now_playing = NowPlayingMonitor(
            self.engine, scheduler, self.state, self.event_bus,
            base_url=config.base_url,
            throttle_ms=config.progress_throttle_ms,
            poll_ms=config.now_playing_poll_ms,
            is_transition_pending=lambda: self.controller.transition_pending,
            **monitor_kwargs,
        )
        self._started = False

    def start(self) -> None:
        """Connect to the engine feed."""
        if self._started:
            return
        self._started = True
        logger.info("Starting against engine at %s", self.config.base_url)
        self.now_playing.start()

    def shutdown(self) -> None:
        """Cancel every timer and poll, drop subscriptions, close the HTTP session."""
        logger.info("Shutting down")
        self.now_playing.stop()
        self.end_monitor.teardown()
        self.controller.teardown()
        self.debouncer.teardown()
        self.stations.teardown()
        self.state.teardown()
        self.engine.close()
        self._started = False

    # Entry points for the input layer
    def on_next(self) -> None:
        self.controller.on_next()

    def on_previous(self) -> None:
        self.controller.on_previous()

    def on_play_selected(self, item_id: str, kind: PlayKind = PlayKind.SONG) -> bool:
        return self.controller.on_play_selected(item_id, kind)

    def on_track_ended_auto_advance(self) -> None:
        self.controller.on_track_ended_auto_advance()
