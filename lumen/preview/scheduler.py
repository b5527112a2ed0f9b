"""
Cooperative scheduling primitives for the interactive editor.

Everything here runs on a single event loop. Timers are single-shot and
cancellable, and each purpose (history flush, autosave, redraw) owns at most
one pending timer at a time.
"""

import asyncio
import logging
from typing import Callable, Optional, Protocol

logger = logging.getLogger(__name__)


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler:
    """Interface for scheduling callbacks on the editor's event loop."""

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        raise NotImplementedError

    def now(self) -> float:
        raise NotImplementedError


class AsyncioScheduler(Scheduler):
    """Scheduler backed by an asyncio event loop."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        return self.loop.call_later(delay, callback)

    def now(self) -> float:
        return self.loop.time()


class Debouncer:
    """
    Single-shot timer that restarts on every trigger.

    Args:
        scheduler: Scheduler that owns the timer
        delay: Quiet period in seconds before the callback fires
        callback: Zero-argument callable
    """

    def __init__(self, scheduler: Scheduler, delay: float, callback: Callable[[], None]):
        self.scheduler = scheduler
        self.delay = delay
        self.callback = callback
        self._handle: Optional[TimerHandle] = None

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def trigger(self) -> None:
        """Start the timer, replacing any pending one."""
        self.cancel()
        self._handle = self.scheduler.call_later(self.delay, self._fire)

    def flush(self) -> bool:
        """Run a pending callback now. Returns False when nothing was pending."""
        if self._handle is None:
            return False
        self.cancel()
        self.callback()
        return True

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire(self) -> None:
        self._handle = None
        self.callback()


class RedrawCoalescer:
    """
    Collapses redraw requests to at most one per display refresh.

    Requests made while a frame is already pending are dropped.
    """

    def __init__(self, scheduler: Scheduler, callback: Callable[[], None], refresh_hz: float = 60.0):
        self.scheduler = scheduler
        self.callback = callback
        self.frame_interval = 1.0 / refresh_hz
        self._handle: Optional[TimerHandle] = None
        self.frames_drawn = 0

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def request(self) -> bool:
        """Ask for a redraw. Returns True if a new frame was scheduled."""
        if self._handle is not None:
            return False
        self._handle = self.scheduler.call_later(self.frame_interval, self._frame)
        return True

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _frame(self) -> None:
        self._handle = None
        self.frames_drawn += 1
        self.callback()
