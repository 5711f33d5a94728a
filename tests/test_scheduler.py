"""Tests for scheduled tasks, task slots and the GLib scheduler."""

import threading
from unittest.mock import Mock, patch

import pytest

from core.scheduler import GLibScheduler, Scheduler, TaskSlot


class TestScheduledTask:
    """Timer identity, repetition and cancellation (manual clock)."""

    def test_one_shot_fires_once(self, scheduler):
        callback = Mock()
        task = scheduler.call_later(100, callback, "x")
        scheduler.advance(1000)
        callback.assert_called_once_with("x")
        assert not task.active

    def test_tasks_have_distinct_ids(self, scheduler):
        first = scheduler.call_later(10, Mock())
        second = scheduler.call_later(10, Mock())
        assert first.id != second.id

    def test_repeating_until_falsy(self, scheduler):
        callback = Mock(side_effect=[True, True, False])
        task = scheduler.call_every(100, callback)
        scheduler.advance(1000)
        assert callback.call_count == 3
        assert not task.active

    def test_cancel_is_idempotent(self, scheduler):
        callback = Mock()
        task = scheduler.call_later(100, callback)
        task.cancel()
        task.cancel()
        scheduler.advance(1000)
        callback.assert_not_called()

    def test_callback_error_is_contained(self, scheduler):
        task = scheduler.call_every(100, Mock(side_effect=RuntimeError("boom")))
        scheduler.advance(1000)
        assert not task.active


class TestTaskSlot:
    """Cancel-previous-then-schedule in one call."""

    def test_schedule_replaces_previous(self, scheduler):
        slot = TaskSlot(scheduler, "debounce")
        first, second = Mock(), Mock()
        slot.schedule(500, first)
        scheduler.advance(200)
        slot.schedule(500, second)
        scheduler.advance(1000)
        first.assert_not_called()
        second.assert_called_once_with()

    def test_pending_and_cancel(self, scheduler):
        slot = TaskSlot(scheduler, "poll")
        assert slot.cancel() is False
        slot.schedule(100, Mock())
        assert slot.pending
        assert slot.cancel() is True
        assert not slot.pending

    def test_not_pending_after_fire(self, scheduler):
        slot = TaskSlot(scheduler, "once")
        slot.schedule(100, Mock())
        scheduler.advance(100)
        assert not slot.pending


class TestGLibScheduler:
    """Wiring to GLib sources and worker threads."""

    @pytest.fixture
    def glib(self):
        with patch('core.scheduler.GLib') as glib:
            glib.timeout_add.return_value = 42
            yield glib

    def test_scheduler_is_abstract(self):
        with pytest.raises(TypeError):
            Scheduler()

    def test_timer_uses_timeout_add(self, glib):
        scheduler = GLibScheduler()
        task = scheduler.call_later(250, Mock())
        glib.timeout_add.assert_called_once_with(250, task.fire)
        assert task.source_id == 42

    def test_cancel_removes_source(self, glib):
        scheduler = GLibScheduler()
        task = scheduler.call_later(250, Mock())
        task.cancel()
        glib.source_remove.assert_called_once_with(42)

    def test_call_soon_uses_idle_add(self, glib):
        scheduler = GLibScheduler()
        callback = Mock()
        scheduler.call_soon_threadsafe(callback, 1, 2)
        invoke, cb, args = glib.idle_add.call_args.args
        assert invoke(cb, args) is False
        callback.assert_called_once_with(1, 2)

    def test_run_async_delivers_result_on_loop(self, glib):
        delivered = threading.Event()
        glib.idle_add.side_effect = lambda invoke, cb, args: (invoke(cb, args), delivered.set())
        scheduler = GLibScheduler()
        on_done = Mock()
        scheduler.run_async(lambda: 7, on_done=on_done)
        assert delivered.wait(2.0)
        on_done.assert_called_once_with(7)

    def test_run_async_delivers_error(self, glib):
        delivered = threading.Event()
        glib.idle_add.side_effect = lambda invoke, cb, args: (invoke(cb, args), delivered.set())
        scheduler = GLibScheduler()
        on_error = Mock()
        error = ValueError("bad")
        scheduler.run_async(Mock(side_effect=error), on_error=on_error)
        assert delivered.wait(2.0)
        on_error.assert_called_once_with(error)
