"""Cancellable timers and background requests on the GLib main loop.

Everything that mutates client state runs on the loop thread. Timers are
wrapped in ScheduledTask handles so "cancel the old one, schedule the new
one" is a single call on a TaskSlot instead of juggling raw source ids.
Blocking HTTP calls run on short-lived worker threads and hand their result
back to the loop with GLib.idle_add.
"""

# ============================================================================
# Standard Library Imports (alphabetical)
# ============================================================================
import itertools
import threading
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Optional

# ============================================================================
# Third-Party Imports (alphabetical, with version requirements)
# ============================================================================
import gi
gi.require_version("GLib", "2.0")
from gi.repository import GLib

# ============================================================================
# Local Imports (grouped by package, alphabetical)
# ============================================================================
from core.logging import get_logger

logger = get_logger(__name__)

_task_ids = itertools.count(1)


class ScheduledTask:
    """Handle for one timer registered with a Scheduler."""

    def __init__(
        self,
        scheduler: "Scheduler",
        delay_ms: int,
        callback: Callable[..., Any],
        args: tuple,
        repeating: bool = False,
        name: Optional[str] = None,
    ):
        self.id = next(_task_ids)
        self.name = name or getattr(callback, "__name__", "task")
        self.delay_ms = max(0, int(delay_ms))
        self.repeating = repeating
        self.source_id: Optional[int] = None
        self.done = False
        self._scheduler = scheduler
        self._callback = callback
        self._args = args

    @property
    def active(self) -> bool:
        return not self.done

    def cancel(self) -> None:
        """Stop the timer. Safe to call more than once or after it fired."""
        if self.done:
            return
        self.done = True
        self._scheduler._stop(self)

    def fire(self) -> bool:
        """Run the callback; returns True when a repeating timer should fire again."""
        if self.done:
            return False
        try:
            result = self._callback(*self._args)
        except Exception as e:
            logger.error("Error in scheduled task %s: %s", self.name, e, exc_info=True)
            result = False
        keep = self.repeating and bool(result) and not self.done
        if not keep:
            self.done = True
            self.source_id = None
        return keep

    def __repr__(self) -> str:
        state = "active" if self.active else "done"
        return f"<ScheduledTask #{self.id} {self.name} {self.delay_ms}ms {state}>"


class Scheduler(ABC):
    """Timer and background-work interface the playback core is written against."""

    def call_later(self, delay_ms: int, callback: Callable[..., Any], *args, name: Optional[str] = None) -> ScheduledTask:
        task = ScheduledTask(self, delay_ms, callback, args, repeating=False, name=name)
        self._start(task)
        return task

    def call_every(self, interval_ms: int, callback: Callable[..., Any], *args, name: Optional[str] = None) -> ScheduledTask:
        """Fire every interval while the callback returns a truthy value."""
        task = ScheduledTask(self, interval_ms, callback, args, repeating=True, name=name)
        self._start(task)
        return task

    @abstractmethod
    def call_soon_threadsafe(self, callback: Callable[..., Any], *args) -> None:
        """Run callback on the loop thread; callable from any thread."""

    @abstractmethod
    def run_async(
        self,
        func: Callable[[], Any],
        on_done: Optional[Callable[[Any], None]] = None,
        on_error: Optional[Callable[[Exception], None]] = None,
        name: Optional[str] = None,
    ) -> None:
        """Run a blocking call off the loop; deliver the outcome back on the loop."""

    def now(self) -> float:
        """Monotonic time in seconds."""
        return time.monotonic()

    @abstractmethod
    def _start(self, task: ScheduledTask) -> None:
        """Register the task's timer."""

    @abstractmethod
    def _stop(self, task: ScheduledTask) -> None:
        """Unregister the task's timer."""


class GLibScheduler(Scheduler):
    """Scheduler backed by the default GLib main context."""

    def _start(self, task: ScheduledTask) -> None:
        task.source_id = GLib.timeout_add(task.delay_ms, task.fire)

    def _stop(self, task: ScheduledTask) -> None:
        if task.source_id is not None:
            GLib.source_remove(task.source_id)
            task.source_id = None

    def call_soon_threadsafe(self, callback: Callable[..., Any], *args) -> None:
        GLib.idle_add(self._invoke_once, callback, args)

    @staticmethod
    def _invoke_once(callback: Callable[..., Any], args: tuple) -> bool:
        try:
            callback(*args)
        except Exception as e:
            logger.error("Error in loop callback %s: %s", callback, e, exc_info=True)
        return False  # Don't repeat

    def run_async(
        self,
        func: Callable[[], Any],
        on_done: Optional[Callable[[Any], None]] = None,
        on_error: Optional[Callable[[Exception], None]] = None,
        name: Optional[str] = None,
    ) -> None:
        def worker():
            try:
                result = func()
            except Exception as e:
                if on_error is not None:
                    self.call_soon_threadsafe(on_error, e)
                else:
                    logger.warning("Background request %s failed: %s", name or func, e)
                return
            if on_done is not None:
                self.call_soon_threadsafe(on_done, result)

        thread = threading.Thread(target=worker, name=name or "engine-request", daemon=True)
        thread.start()


class TaskSlot:
    """Holds at most one pending task for a named purpose.

    schedule() cancels whatever the slot held before registering the new task,
    so a superseded debounce or poll can never fire.
    """

    def __init__(self, scheduler: Scheduler, name: str):
        self._scheduler = scheduler
        self.name = name
        self._task: Optional[ScheduledTask] = None

    @property
    def task(self) -> Optional[ScheduledTask]:
        return self._task

    @property
    def pending(self) -> bool:
        return self._task is not None and self._task.active

    def schedule(self, delay_ms: int, callback: Callable[..., Any], *args) -> ScheduledTask:
        self.cancel()
        self._task = self._scheduler.call_later(delay_ms, callback, *args, name=self.name)
        return self._task

    def schedule_every(self, interval_ms: int, callback: Callable[..., Any], *args) -> ScheduledTask:
        self.cancel()
        self._task = self._scheduler.call_every(interval_ms, callback, *args, name=self.name)
        return self._task

    def cancel(self) -> bool:
        """Cancel the held task. Returns True if something was actually pending."""
        task, self._task = self._task, None
        if task is not None and task.active:
            task.cancel()
            return True
        return False
