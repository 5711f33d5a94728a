"""Catalog lookups the playback core needs: track info and station seeding."""

from typing import List, Optional

from core.engine_client import EngineClient
from core.exceptions import CatalogError, CiderTuiError, EngineError
from core.logging import get_logger
from core.metadata import TrackRef

logger = get_logger(__name__)

TRACK_INFO_KEY = "player-track-info"


class CatalogClient:
    """Apple Music catalog requests routed through the engine."""

    def __init__(self, engine: EngineClient, storefront: str = "tw"):
        self._engine = engine
        self.storefront = storefront

    def _song_path(self, track_id: str) -> str:
        if track_id.startswith("i."):
            return f"/v1/me/library/songs/{track_id}"
        return f"/v1/catalog/{self.storefront}/songs/{track_id}"

    def get_track_info(self, track_id: str) -> Optional[TrackRef]:
        """
        Fetch display metadata for one song.

        Every call supersedes the previous one so a slow old answer never
        replaces a newer one. Failures (including superseded calls) give None.
        """
        try:
            result = self._engine.run_v3(self._song_path(track_id), request_key=TRACK_INFO_KEY)
        except EngineError as e:
            logger.debug("Track info for %s unavailable: %s", track_id, e)
            return None
        items = (result.get("data") or {}).get("data") or []
        if not items:
            return None
        return TrackRef.from_api(items[0])

    def resolve_catalog_id(self, track: TrackRef) -> str:
        """
        Map a track to an id the catalog understands.

        Raises:
            CatalogError: library track whose catalog id cannot be found
        """
        if not track.is_library:
            return track.id
        if track.catalog_id:
            return track.catalog_id
        try:
            result = self._engine.run_v3(f"/v1/me/library/songs/{track.id}")
        except EngineError as e:
            raise CatalogError(f"Library lookup for {track.id} failed: {e}") from e
        items = (result.get("data") or {}).get("data") or []
        play_params = ((items[0] if items else {}).get("attributes") or {}).get("playParams") or {}
        catalog_id = play_params.get("catalogId") or play_params.get("id")
        if not catalog_id or str(catalog_id).startswith("i."):
            raise CatalogError(f"No catalog id for library track {track.id}")
        return str(catalog_id)

    def create_station_from_seed(self, catalog_track_id: str) -> Optional[str]:
        """Ask the catalog for the station seeded by one song; None if there is none."""
        try:
            result = self._engine.run_v3(f"/v1/catalog/{self.storefront}/songs/{catalog_track_id}/station")
        except EngineError as e:
            logger.warning("Station lookup for %s failed: %s", catalog_track_id, e)
            return None
        items = (result.get("data") or {}).get("data") or []
        station_id = items[0].get("id") if items else None
        return str(station_id) if station_id else None

    def create_station_from_songs(self, tracks: List[TrackRef]) -> Optional[str]:
        """Seed a station from the first (most recent) track. Multi-seed is not supported upstream."""
        if not tracks:
            return None
        try:
            catalog_id = self.resolve_catalog_id(tracks[0])
        except CiderTuiError as e:
            logger.warning("Cannot seed station: %s", e)
            return None
        return self.create_station_from_seed(catalog_id)
