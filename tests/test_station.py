"""Tests for the station lock/poll controller."""

import pytest

from conftest import EventRecorder, FakeScheduler, now_playing
from core.events import EventBus
from core.exceptions import EngineError
from core.metadata import PlayKind
from core.station import (
    STATION_FAILED_MESSAGE,
    SWITCHING_MESSAGE,
    TIMEOUT_MESSAGE,
    StationController,
    StationPhase,
)


@pytest.fixture
def stations(engine, scheduler, state, event_bus):
    return StationController(engine, scheduler, state, event_bus,
                             poll_interval_ms=500, timeout_ms=10000)


def enter_and_confirm(stations, engine, scheduler, station_id="X", track_id="T0"):
    engine.now_playing_sequence = [now_playing(track_id)]
    stations.play_station(station_id)
    scheduler.advance(500)
    assert not stations.is_locked


class TestEnteringStation:
    """First play into a station and switching between stations."""

    def test_enter_stops_then_plays(self, stations, engine, state):
        assert stations.play_station("X") is True
        assert engine.calls[:2] == [("stop",), ("play_item", "X", PlayKind.STATION)]
        assert stations.is_locked
        assert stations.phase == StationPhase.ENTERING
        assert state.status_message == SWITCHING_MESSAGE

    def test_first_track_reported_unlocks(self, stations, engine, scheduler, state):
        engine.now_playing_sequence = [None, None, now_playing("T1")]
        stations.play_station("X")
        scheduler.advance(500)
        assert stations.is_locked
        scheduler.advance(500)
        assert stations.is_locked
        assert state.status_message == SWITCHING_MESSAGE
        scheduler.advance(500)
        assert not stations.is_locked
        assert stations.session.last_confirmed_track_id == "T1"
        assert state.confirmed_track_id == "T1"
        assert state.status_message is None

    def test_stop_failure_does_not_block_play(self, stations, engine):
        engine.errors["stop"] = EngineError("nothing to stop")
        stations.play_station("X")
        assert ("play_item", "X", PlayKind.STATION) in engine.calls

    def test_second_station_rejected_while_locked(self, stations, engine, scheduler, state):
        stations.play_station("X")
        calls_before = list(engine.calls)
        assert stations.play_station("Y") is False
        assert engine.calls == calls_before
        assert stations.current_station_id == "X"
        assert state.status_message == SWITCHING_MESSAGE

    def test_second_station_accepted_after_unlock(self, stations, engine, scheduler):
        enter_and_confirm(stations, engine, scheduler, "X", "T0")
        engine.now_playing_sequence = [now_playing("T5")]
        assert stations.play_station("Y") is True
        assert stations.phase == StationPhase.SWITCHING
        assert ("play_item", "Y", PlayKind.STATION) in engine.calls
        scheduler.advance(500)
        assert not stations.is_locked
        assert stations.current_station_id == "Y"

    def test_confirmation_publishes_completion(self, stations, engine, scheduler, event_bus):
        recorder = EventRecorder(event_bus, EventBus.TRACK_CHANGE_COMPLETED, EventBus.STATION_LOCK_CHANGED)
        enter_and_confirm(stations, engine, scheduler, "X", "T0")
        assert recorder[EventBus.TRACK_CHANGE_COMPLETED] == [{"track_id": "T0", "kind": PlayKind.STATION}]
        locks = [event["locked"] for event in recorder[EventBus.STATION_LOCK_CHANGED]]
        assert locks == [True, False]


class TestNavigatingStation:
    """next / previous / re-entry against a captured baseline."""

    def test_unlocks_exactly_when_track_changes(self, stations, engine, scheduler):
        enter_and_confirm(stations, engine, scheduler, "X", "T0")
        # Baseline capture, then [no-info, no-info, T1]
        engine.now_playing_sequence = [now_playing("T0"), None, None, now_playing("T1")]
        assert stations.next() is True
        assert ("next",) in engine.calls
        assert stations.session.baseline_track_id == "T0"
        scheduler.advance(500)
        assert stations.is_locked
        scheduler.advance(500)
        assert stations.is_locked
        scheduler.advance(500)
        assert not stations.is_locked
        assert stations.session.last_confirmed_track_id == "T1"

    def test_unchanged_track_keeps_polling(self, stations, engine, scheduler):
        enter_and_confirm(stations, engine, scheduler, "X", "T0")
        engine.now_playing_sequence = [now_playing("T0"), now_playing("T0"), now_playing("T2")]
        stations.previous()
        assert ("previous",) in engine.calls
        scheduler.advance(500)
        assert stations.is_locked
        scheduler.advance(500)
        assert not stations.is_locked

    def test_baseline_falls_back_to_last_confirmed(self, stations, engine, scheduler):
        enter_and_confirm(stations, engine, scheduler, "X", "T0")
        engine.now_playing_sequence = [EngineError("busy")]
        stations.next()
        assert stations.session.baseline_track_id == "T0"

    def test_reentering_same_station_navigates(self, stations, engine, scheduler):
        enter_and_confirm(stations, engine, scheduler, "X", "T0")
        engine.calls.clear()
        engine.now_playing_sequence = [now_playing("T0")]
        stations.play_station("X")
        assert stations.phase == StationPhase.NAVIGATING
        assert ("stop",) not in engine.calls
        assert ("play_item", "X", PlayKind.STATION) in engine.calls

    def test_navigation_rejected_while_locked(self, stations, engine, scheduler):
        enter_and_confirm(stations, engine, scheduler, "X", "T0")
        stations.next()
        calls_before = list(engine.calls)
        assert stations.next() is False
        assert stations.previous() is False
        assert engine.calls == calls_before

    def test_next_without_station_is_rejected(self, stations, engine):
        assert stations.next() is False
        assert engine.calls == []


class TestLockRelease:
    """Timeout, command failure and leaving station mode."""

    def test_timeout_releases_lock(self, stations, engine, scheduler, state):
        engine.now_playing = None
        stations.play_station("X")
        scheduler.advance(9999)
        assert stations.is_locked
        scheduler.advance(1)
        assert not stations.is_locked
        assert state.status_message == TIMEOUT_MESSAGE
        polls = len(engine.calls_to("get_now_playing"))
        scheduler.advance(5000)
        assert len(engine.calls_to("get_now_playing")) == polls

    def test_poll_errors_keep_polling(self, stations, engine, scheduler):
        engine.now_playing_sequence = [EngineError("500"), now_playing("T1")]
        stations.play_station("X")
        scheduler.advance(500)
        assert stations.is_locked
        scheduler.advance(500)
        assert not stations.is_locked

    def test_command_failure_unlocks(self, stations, engine, state):
        engine.errors["play_item"] = EngineError("bad id")
        stations.play_station("X")
        assert not stations.is_locked
        assert state.status_message == STATION_FAILED_MESSAGE

    def test_failed_entry_leaves_station_mode(self, stations, engine, event_bus):
        recorder = EventRecorder(event_bus, EventBus.STATION_LOCK_CHANGED)
        engine.errors["play_item"] = EngineError("bad id")
        stations.play_station("X")
        assert not stations.is_active
        assert stations.phase is StationPhase.IDLE
        assert recorder[EventBus.STATION_LOCK_CHANGED][-1] == {
            "locked": False, "station_id": None, "phase": "idle",
        }

    def test_retry_after_failed_entry_starts_fresh(self, stations, engine):
        engine.errors["play_item"] = EngineError("bad id")
        engine.now_playing = None
        stations.play_station("X")
        del engine.errors["play_item"]
        stations.play_station("X")
        assert stations.phase is StationPhase.ENTERING
        assert len(engine.calls_to("stop")) == 2
        assert engine.calls[-1] == ("play_item", "X", PlayKind.STATION)

    def test_failed_switch_leaves_station_mode(self, stations, engine, scheduler):
        enter_and_confirm(stations, engine, scheduler)
        engine.errors["play_item"] = EngineError("bad id")
        stations.play_station("Y")
        assert not stations.is_active
        assert not stations.is_locked

    def test_failed_navigation_keeps_station(self, stations, engine, scheduler, state):
        enter_and_confirm(stations, engine, scheduler)
        engine.errors["next"] = EngineError("500")
        stations.next()
        assert stations.is_active
        assert not stations.is_locked
        assert state.status_message == STATION_FAILED_MESSAGE

    def test_leave_resets_session_and_stops_polling(self, stations, engine, scheduler):
        engine.now_playing = None
        stations.play_station("X")
        stations.leave()
        assert not stations.is_locked
        assert not stations.is_active
        assert stations.session.last_confirmed_track_id is None
        scheduler.advance(5000)
        assert engine.calls_to("get_now_playing") == []

    def test_teardown_cancels_timers(self, stations, engine, scheduler):
        stations.play_station("X")
        stations.teardown()
        assert scheduler.pending_count == 0
        scheduler.advance(20000)
        assert engine.calls_to("get_now_playing") == []


class TestLateStationResponses:
    """Command answers that land after the session moved on."""

    @pytest.fixture
    def scheduler(self):
        return FakeScheduler(defer_async=True)

    def test_failure_after_leave_is_ignored(self, stations, engine, scheduler, state):
        engine.errors["play_item"] = EngineError("bad id")
        stations.play_station("X")
        stations.leave()
        scheduler.deliver_async()
        assert state.status_message is None
        assert not stations.is_active

    def test_late_failure_of_current_entry_releases(self, stations, engine, scheduler):
        engine.errors["play_item"] = EngineError("bad id")
        stations.play_station("X")
        assert stations.is_locked
        assert stations.next() is False
        scheduler.deliver_async()
        assert not stations.is_locked
        assert not stations.is_active
