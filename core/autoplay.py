"""Start a station from recently played tracks when the queue runs dry."""

from typing import Optional

from core.app_state import NowPlayingState
from core.catalog import CatalogClient
from core.engine_client import EngineClient
from core.events import EventBus
from core.exceptions import StationError
from core.logging import get_logger
from core.metadata import TrackRef
from core.queue import QueueStore
from core.scheduler import Scheduler
from core.station import StationController

logger = get_logger(__name__)

# How many recent tracks to consider as seeds
RECENT_SEED_COUNT = 5

AUTOPLAY_FAILED_MESSAGE = "Auto-play unavailable"


class AutoPlayStationBuilder:
    """
    Seeds an engine station from the queue's play history.

    Every failure ends in a definite stopped state: engine stopped, queue
    cleared, indicator reset.
    """

    def __init__(
        self,
        queue: QueueStore,
        catalog: CatalogClient,
        stations: StationController,
        engine: EngineClient,
        scheduler: Scheduler,
        state: NowPlayingState,
        event_bus: EventBus,
    ):
        self._queue = queue
        self._catalog = catalog
        self._stations = stations
        self._engine = engine
        self._scheduler = scheduler
        self._state = state
        self._events = event_bus
        self._building = False
        # Bumped per build and by cancel(); results from an older build are dropped
        self._generation = 0

    @property
    def building(self) -> bool:
        return self._building

    def build_and_play(self) -> bool:
        """Kick off station creation. False if nothing was started."""
        if self._building:
            return False
        recent = self._queue.get_recently_played_tracks(RECENT_SEED_COUNT)
        if not recent:
            logger.info("Auto-play: no recently played tracks to seed from")
            self._fall_back_to_stopped()
            return False
        seed = recent[0]
        self._building = True
        self._generation += 1
        generation = self._generation
        logger.info("Auto-play: creating station from %s", seed.label)
        self._scheduler.run_async(
            lambda: self._create_station(seed),
            on_done=lambda station_id: self._on_station_created(generation, station_id),
            on_error=lambda e: self._on_failed(generation, e),
            name="autoplay-station",
        )
        return True

    def cancel(self) -> None:
        """Forget a build in progress; its station will not be started."""
        if self._building:
            logger.info("Auto-play: build superseded")
        self._generation += 1
        self._building = False

    def _create_station(self, seed: TrackRef) -> str:
        """Worker thread: resolve the seed and ask for its station."""
        catalog_id = self._catalog.resolve_catalog_id(seed)
        station_id: Optional[str] = self._catalog.create_station_from_seed(catalog_id)
        if not station_id:
            raise StationError(f"No station for seed {catalog_id}")
        return station_id

    def _on_station_created(self, generation: int, station_id: str) -> None:
        if generation != self._generation:
            logger.debug("Dropping station %s from a superseded auto-play build", station_id)
            return
        self._building = False
        self._queue.clear_queue()
        self._events.publish(EventBus.QUEUE_CHANGED, {"cleared": True})
        if not self._stations.play_station(station_id):
            # Another station operation holds the lock
            self._fall_back_to_stopped()

    def _on_failed(self, generation: int, error: Exception) -> None:
        if generation != self._generation:
            return
        self._building = False
        logger.warning("Auto-play failed: %s", error)
        self._fall_back_to_stopped()
        self._state.show_message(AUTOPLAY_FAILED_MESSAGE)

    def _fall_back_to_stopped(self) -> None:
        self._queue.clear_queue()
        self._state.reset()
        self._events.publish(EventBus.QUEUE_CHANGED, {"cleared": True})
        self._scheduler.run_async(
            self._engine.stop,
            on_error=lambda e: logger.warning("Stop after auto-play failure failed: %s", e),
            name="autoplay-stop",
        )
