"""Tests for end-of-track detection."""

import pytest

from conftest import EventRecorder
from core.events import EventBus
from core.exceptions import EngineUnavailableError
from core.track_end import EndOfTrackMonitor, PlaybackProgressSample


def sample(track_id="t1", position=199.0, duration_ms=200000, playing=None):
    return PlaybackProgressSample(track_id, position, duration_ms, playing)


class TestPlaybackProgressSample:

    def test_ratio(self):
        assert sample(position=50.0, duration_ms=200000).ratio == pytest.approx(0.25)

    def test_unknown_duration(self):
        assert sample(position=50.0, duration_ms=0).ratio == 0.0


class TestEndOfTrackMonitor:
    """Arming at the threshold and detecting playing -> stopped."""

    @pytest.fixture
    def station_mode(self):
        return {"on": False}

    @pytest.fixture
    def monitor(self, engine, scheduler, event_bus, station_mode):
        return EndOfTrackMonitor(
            engine, scheduler, event_bus,
            is_station_mode=lambda: station_mode["on"],
            threshold=0.99, poll_interval_ms=250,
        )

    @pytest.fixture
    def ended(self, event_bus):
        return EventRecorder(event_bus, EventBus.TRACK_ENDED)

    def test_below_threshold_stays_idle(self, monitor, engine, scheduler):
        monitor.on_progress(sample(position=100.0))
        scheduler.advance(1000)
        assert not monitor.armed
        assert engine.calls_to("is_playing") == []

    def test_playing_then_stopped_reports_end(self, monitor, engine, scheduler, ended):
        engine.playing_sequence = [True, False]
        monitor.on_progress(sample(position=198.5))
        assert monitor.armed
        scheduler.advance(250)
        assert ended[EventBus.TRACK_ENDED] == []
        scheduler.advance(250)
        assert ended[EventBus.TRACK_ENDED] == [{"track_id": "t1"}]
        assert not monitor.armed

    def test_arms_from_published_progress(self, monitor, event_bus):
        event_bus.publish(EventBus.PLAYBACK_PROGRESS, {"sample": sample()})
        assert monitor.armed

    def test_paused_near_end_is_not_an_end(self, monitor, engine, scheduler, ended):
        engine.playing = False
        monitor.on_progress(sample())
        scheduler.advance(2000)
        assert ended[EventBus.TRACK_ENDED] == []
        assert monitor.armed

    def test_stopped_at_first_check_after_playing_tick(self, monitor, engine, scheduler, ended):
        engine.playing = False
        monitor.on_progress(sample(position=199.5, playing=True))
        scheduler.advance(250)
        assert ended[EventBus.TRACK_ENDED] == [{"track_id": "t1"}]
        assert not monitor.armed
        scheduler.advance(5000)
        assert len(engine.calls_to("is_playing")) == 1

    def test_advancing_snapshots_count_as_playing(self, monitor, engine, scheduler, ended):
        engine.playing = False
        monitor.on_progress(sample(position=197.9))
        monitor.on_progress(sample(position=198.9))
        scheduler.advance(250)
        assert ended[EventBus.TRACK_ENDED] == [{"track_id": "t1"}]

    def test_paused_tick_is_not_an_end(self, monitor, engine, scheduler, ended):
        engine.playing = False
        monitor.on_progress(sample(position=199.0, playing=True))
        monitor.on_progress(sample(position=199.0, playing=False))
        scheduler.advance(2000)
        assert ended[EventBus.TRACK_ENDED] == []
        assert monitor.armed

    def test_station_mode_never_arms(self, monitor, engine, scheduler, station_mode):
        station_mode["on"] = True
        monitor.on_progress(sample())
        scheduler.advance(1000)
        assert not monitor.armed
        assert engine.calls_to("is_playing") == []

    def test_entering_station_disarms(self, monitor, engine, scheduler, station_mode, ended):
        engine.playing_sequence = [True, False]
        monitor.on_progress(sample())
        station_mode["on"] = True
        scheduler.advance(1000)
        assert not monitor.armed
        assert ended[EventBus.TRACK_ENDED] == []

    def test_zero_duration_ignored(self, monitor):
        monitor.on_progress(sample(position=10.0, duration_ms=0))
        assert not monitor.armed

    def test_reported_once_per_track(self, monitor, engine, scheduler, ended):
        engine.playing_sequence = [True, False]
        monitor.on_progress(sample())
        scheduler.advance(500)
        monitor.on_progress(sample(position=199.5))
        assert not monitor.armed
        assert len(ended[EventBus.TRACK_ENDED]) == 1

    def test_rearms_after_restart(self, monitor, engine, scheduler, ended):
        engine.playing_sequence = [True, False]
        monitor.on_progress(sample())
        scheduler.advance(500)
        monitor.on_progress(sample(position=1.0))
        monitor.on_progress(sample(position=199.0))
        assert monitor.armed

    def test_seek_back_disarms(self, monitor):
        monitor.on_progress(sample())
        monitor.on_progress(sample(position=20.0))
        assert not monitor.armed

    def test_check_errors_are_tolerated(self, monitor, engine, scheduler, ended):
        engine.playing_sequence = [True, EngineUnavailableError("down"), False]
        monitor.on_progress(sample())
        scheduler.advance(750)
        assert ended[EventBus.TRACK_ENDED] == [{"track_id": "t1"}]

    def test_teardown_unsubscribes(self, monitor, event_bus):
        monitor.teardown()
        event_bus.publish(EventBus.PLAYBACK_PROGRESS, {"sample": sample()})
        assert not monitor.armed
