"""HTTP client for the Cider playback engine.

This module lets us:
- Control playback (play/pause/stop/next/previous/seek/volume)
- Play a specific song or station
- Query the now-playing snapshot and the shuffle/repeat/autoplay modes
- Run catalog requests through the engine's Apple Music passthrough

Calls block; the playback core runs them through Scheduler.run_async.
"""

from __future__ import annotations

import threading
from typing import Any, Dict, Optional

import requests

from core.exceptions import EngineError, EngineUnavailableError, StaleResponseError
from core.logging import get_logger
from core.metadata import NowPlaying, PlayKind, RepeatMode, ShuffleMode

logger = get_logger(__name__)

PLAY_ITEM_KEY = "play-item"


class RequestTracker:
    """Generation counter per request key.

    Starting a request with a key supersedes every earlier request with the
    same key; their responses are rejected even if they arrive last.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._generations: Dict[str, int] = {}

    def begin(self, key: str) -> int:
        with self._lock:
            generation = self._generations.get(key, 0) + 1
            self._generations[key] = generation
            return generation

    def is_current(self, key: str, generation: int) -> bool:
        with self._lock:
            return self._generations.get(key) == generation

    def cancel(self, key: str) -> None:
        """Invalidate whatever is in flight for key."""
        with self._lock:
            if key in self._generations:
                self._generations[key] += 1


class EngineClient:
    """Thin wrapper around the engine's /api/v1 REST endpoints."""

    def __init__(self, base_url: str = "http://localhost:10767", timeout: float = 5.0,
                 session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.requests = RequestTracker()

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------
    def _request(self, method: str, endpoint: str, body: Optional[Dict[str, Any]] = None,
                 request_key: Optional[str] = None) -> Dict[str, Any]:
        """
        Send one request and decode the JSON body ({} when empty).

        Raises:
            EngineUnavailableError: connection refused or timed out
            EngineError: non-2xx status or undecodable body
            StaleResponseError: a newer request with the same key started meanwhile
        """
        generation = self.requests.begin(request_key) if request_key else 0
        url = f"{self.base_url}{endpoint}"
        try:
            response = self.session.request(method, url, json=body, timeout=self.timeout)
        except (requests.ConnectionError, requests.Timeout) as e:
            raise EngineUnavailableError(f"Engine unreachable: {e}") from e
        except requests.RequestException as e:
            raise EngineError(f"Engine request failed: {e}") from e

        if request_key and not self.requests.is_current(request_key, generation):
            logger.debug("Dropping superseded response for %s", request_key)
            raise StaleResponseError(request_key)

        if not response.ok:
            raise EngineError(
                f"{method} {endpoint} failed: {response.status_code} {response.reason}",
                status_code=response.status_code,
            )
        if not response.text:
            return {}
        try:
            data = response.json()
        except ValueError as e:
            raise EngineError(f"{method} {endpoint} returned invalid JSON") from e
        return data if isinstance(data, dict) else {"data": data}

    # ------------------------------------------------------------------
    # Controls
    # ------------------------------------------------------------------
    def play(self) -> None:
        """Start / resume playback."""
        self._request("POST", "/api/v1/playback/play")

    def pause(self) -> None:
        self._request("POST", "/api/v1/playback/pause")

    def play_pause(self) -> None:
        self._request("POST", "/api/v1/playback/playpause")

    def stop(self) -> None:
        """Stop playback. Harmless when nothing is playing."""
        self._request("POST", "/api/v1/playback/stop")

    def next(self) -> None:
        self._request("POST", "/api/v1/playback/next")

    def previous(self) -> None:
        self._request("POST", "/api/v1/playback/previous")

    def seek(self, position: float) -> None:
        self._request("POST", "/api/v1/playback/seek", {"position": max(0.0, float(position))})

    def set_volume(self, volume: float) -> None:
        """Set volume as a float 0.0-1.0."""
        self._request("POST", "/api/v1/playback/volume", {"volume": max(0.0, min(1.0, float(volume)))})

    def get_volume(self) -> float:
        result = self._request("GET", "/api/v1/playback/volume")
        return float(result.get("volume") or 0.0)

    def play_item(self, item_id: str, kind: PlayKind = PlayKind.SONG) -> None:
        """Play a song or station; a newer play-item call supersedes this one."""
        kind = PlayKind.parse(kind)
        self._request(
            "POST",
            "/api/v1/playback/play-item",
            {"id": str(item_id), "type": kind.engine_type},
            request_key=PLAY_ITEM_KEY,
        )

    def toggle_shuffle(self) -> None:
        self._request("POST", "/api/v1/playback/toggle-shuffle")

    def toggle_repeat(self) -> None:
        self._request("POST", "/api/v1/playback/toggle-repeat")

    def toggle_autoplay(self) -> None:
        self._request("POST", "/api/v1/playback/toggle-autoplay")

    # ------------------------------------------------------------------
    # Status / info
    # ------------------------------------------------------------------
    def get_now_playing(self, request_key: Optional[str] = None) -> Optional[NowPlaying]:
        """Snapshot of the current item, or None when the engine has nothing loaded."""
        result = self._request("GET", "/api/v1/playback/now-playing", request_key=request_key)
        return NowPlaying.from_info(result.get("info"))

    def is_playing(self) -> bool:
        result = self._request("GET", "/api/v1/playback/is-playing")
        return bool(result.get("is_playing"))

    def get_shuffle_mode(self) -> ShuffleMode:
        result = self._request("GET", "/api/v1/playback/shuffle-mode")
        return ShuffleMode.from_engine(result.get("value"))

    def get_repeat_mode(self) -> RepeatMode:
        result = self._request("GET", "/api/v1/playback/repeat-mode")
        return RepeatMode.from_engine(result.get("value"))

    def get_autoplay_mode(self) -> bool:
        result = self._request("GET", "/api/v1/playback/autoplay")
        return bool(result.get("value"))

    # ------------------------------------------------------------------
    # Catalog passthrough
    # ------------------------------------------------------------------
    def run_v3(self, path: str, request_key: Optional[str] = None) -> Dict[str, Any]:
        """Forward an Apple Music API path through the engine."""
        return self._request("POST", "/api/v1/amapi/run-v3", {"path": path}, request_key=request_key)

    def close(self) -> None:
        self.session.close()
