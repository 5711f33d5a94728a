"""Pytest configuration and fixtures."""

import itertools
import random
import shutil
import sys
import tempfile
from pathlib import Path
from unittest.mock import MagicMock

import pytest

# Mock GLib before imports
sys.modules['gi'] = MagicMock()
sys.modules['gi.repository'] = MagicMock()
sys.modules['gi.repository.GLib'] = MagicMock()

from core.app_state import NowPlayingState
from core.config import Config
from core.events import EventBus
from core.metadata import NowPlaying, PlayKind, RepeatMode, ShuffleMode, TrackRef
from core.queue import QueueStore
from core.scheduler import Scheduler


class FakeScheduler(Scheduler):
    """Manual clock. Timers fire only from advance().

    run_async completes inline by default. With defer_async the work still
    runs at once, but its result is held until deliver_async(), which is how
    a response that lands after the caller moved on is reproduced.
    """

    def __init__(self, defer_async=False):
        self.clock_ms = 0
        self._timers = []
        self._order = itertools.count(1)
        self.async_names = []
        self.defer_async = defer_async
        self._undelivered = []

    def now(self) -> float:
        return self.clock_ms / 1000.0

    def _start(self, task):
        task.source_id = next(self._order)
        self._timers.append((self.clock_ms + task.delay_ms, task.source_id, task))

    def _stop(self, task):
        self._timers = [entry for entry in self._timers if entry[2] is not task]
        task.source_id = None

    def call_soon_threadsafe(self, callback, *args):
        self.call_later(0, callback, *args)

    def run_async(self, func, on_done=None, on_error=None, name=None):
        self.async_names.append(name)
        try:
            outcome = (on_done, func())
        except Exception as e:
            outcome = (on_error, e)
        if self.defer_async:
            self._undelivered.append(outcome)
            return
        callback, value = outcome
        if callback is not None:
            callback(value)

    @property
    def undelivered_count(self) -> int:
        return len(self._undelivered)

    def deliver_async(self) -> int:
        """Hand held results to their callbacks, oldest first."""
        outcomes, self._undelivered = self._undelivered, []
        for callback, value in outcomes:
            if callback is not None:
                callback(value)
        return len(outcomes)

    @property
    def pending_count(self) -> int:
        return len(self._timers)

    def advance(self, ms: int) -> None:
        """Move the clock forward, firing due timers in order."""
        target = self.clock_ms + ms
        while True:
            due = [entry for entry in self._timers if entry[0] <= target]
            if not due:
                break
            entry = min(due, key=lambda e: (e[0], e[1]))
            self._timers.remove(entry)
            due_ms, _, task = entry
            self.clock_ms = max(self.clock_ms, due_ms)
            if task.fire():
                task.source_id = next(self._order)
                self._timers.append((self.clock_ms + max(1, task.delay_ms), task.source_id, task))
        self.clock_ms = target


class FakeEngine:
    """Stands in for EngineClient; records every command."""

    def __init__(self):
        self.calls = []
        self.errors = {}
        self.now_playing = None
        # Consumed one per get_now_playing call before falling back to now_playing
        self.now_playing_sequence = []
        self.playing = True
        self.playing_sequence = []
        self.shuffle = ShuffleMode.OFF
        self.repeat = RepeatMode.OFF
        self.v3_responses = {}

    def _record(self, name, *args):
        self.calls.append((name,) + args)
        error = self.errors.get(name)
        if error is not None:
            raise error

    def calls_to(self, name):
        return [call for call in self.calls if call[0] == name]

    def play_item(self, item_id, kind=PlayKind.SONG):
        self._record("play_item", str(item_id), PlayKind.parse(kind))

    def stop(self):
        self._record("stop")

    def next(self):
        self._record("next")

    def previous(self):
        self._record("previous")

    def get_now_playing(self, request_key=None):
        self._record("get_now_playing")
        value = self.now_playing_sequence.pop(0) if self.now_playing_sequence else self.now_playing
        if isinstance(value, Exception):
            raise value
        return value

    def is_playing(self):
        self._record("is_playing")
        value = self.playing_sequence.pop(0) if self.playing_sequence else self.playing
        if isinstance(value, Exception):
            raise value
        return value

    def get_shuffle_mode(self):
        self._record("get_shuffle_mode")
        return self.shuffle

    def get_repeat_mode(self):
        self._record("get_repeat_mode")
        return self.repeat

    def run_v3(self, path, request_key=None):
        self._record("run_v3", path)
        return self.v3_responses.get(path, {})

    def close(self):
        self._record("close")


def now_playing(track_id, duration_ms=200000, position_sec=0.0):
    return NowPlaying(track_id=track_id, name=f"Track {track_id}",
                      duration_ms=duration_ms, position_sec=position_sec)


def make_tracks(*ids):
    return [TrackRef(id=track_id, name=f"Song {track_id}", duration_ms=180000) for track_id in ids]


class EventRecorder:
    """Collects payloads published for chosen events."""

    def __init__(self, event_bus, *events):
        self.events = {event: [] for event in events}
        for event in events:
            event_bus.subscribe(event, lambda data, event=event: self.events[event].append(data))

    def __getitem__(self, event):
        return self.events[event]


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    temp_path = Path(tempfile.mkdtemp())
    yield temp_path
    shutil.rmtree(temp_path, ignore_errors=True)


@pytest.fixture
def mock_config(temp_dir):
    """Configuration rooted in temporary directories."""
    return Config(config_home=temp_dir / 'config', data_home=temp_dir / 'data')


@pytest.fixture(autouse=True)
def reset_config_instance():
    Config._instance = None
    yield
    Config._instance = None


@pytest.fixture
def scheduler():
    return FakeScheduler()


@pytest.fixture
def engine():
    return FakeEngine()


@pytest.fixture
def event_bus():
    return EventBus()


@pytest.fixture
def state(event_bus, scheduler):
    return NowPlayingState(event_bus, scheduler, message_duration_ms=2000)


@pytest.fixture
def queue():
    return QueueStore(rng=random.Random(1234))
