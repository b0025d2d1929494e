"""Cooperative scheduling on a single asyncio event loop.

Everything here runs on the loop thread: callbacks are scheduled with
``call_soon`` / ``call_later`` and never overlap.  Each helper keeps at most
one live handle and cancels it before scheduling another, so repeated
state changes never pile up stale timers.
"""

import asyncio
import logging
from typing import Any, Callable, Dict, Optional, Tuple

from tracker.events import LOCK_STATE_CHANGED, LOCKOUT_TICK, EventBus
from tracker.pin import LockState, PinLock

logger = logging.getLogger(__name__)


def _loop(loop: Optional[asyncio.AbstractEventLoop]) -> asyncio.AbstractEventLoop:
    return loop or asyncio.get_running_loop()


class Timer:
    """Single-shot cancellable timer."""

    def __init__(self, delay: float, callback: Callable[[], Any], loop=None):
        self._loop = _loop(loop)
        self._callback = callback
        self._handle: Optional[asyncio.TimerHandle] = self._loop.call_later(delay, self._fire)

    @property
    def active(self) -> bool:
        return self._handle is not None

    def _fire(self) -> None:
        self._handle = None
        self._callback()

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None


class Ticker:
    """Repeating cancellable timer."""

    def __init__(self, interval: float, callback: Callable[[], Any], loop=None):
        self._loop = _loop(loop)
        self.interval = interval
        self._callback = callback
        self._handle: Optional[asyncio.TimerHandle] = self._loop.call_later(interval, self._fire)

    @property
    def active(self) -> bool:
        return self._handle is not None

    def _fire(self) -> None:
        self._handle = self._loop.call_later(self.interval, self._fire)
        self._callback()

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None


class Debouncer:
    """Runs ``func`` once the calls have been quiet for ``wait`` seconds, with the last arguments."""

    def __init__(self, func: Callable[..., Any], wait: float = 0.3, loop=None):
        self.func = func
        self.wait = wait
        self._loop = loop
        self._timer: Optional[Timer] = None

    @property
    def pending(self) -> bool:
        return self._timer is not None and self._timer.active

    def __call__(self, *args, **kwargs) -> None:
        self.cancel()
        self._timer = Timer(self.wait, lambda: self.func(*args, **kwargs), self._loop)

    def cancel(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None


class RefreshScheduler:
    """Throttled, coalescing refresh with a trailing edge.

    Requests arriving while one is pending fold into it; runs are spaced at
    least ``interval`` apart and never overlap.  A request made during a run
    schedules one more run afterwards, so the latest state is always drawn.
    """

    def __init__(self, func: Callable[[], Any], interval: float = 0.1, loop=None):
        self.func = func
        self.interval = interval
        self._loop = _loop(loop)
        self._handle: Optional[asyncio.TimerHandle] = None
        self._running = False
        self._rerun = False
        self._last_run: Optional[float] = None
        self.runs = 0

    @property
    def pending(self) -> bool:
        return self._handle is not None or self._rerun

    def request(self) -> None:
        if self._running:
            self._rerun = True
            return
        if self._handle is not None:
            return
        delay = 0.0
        if self._last_run is not None:
            delay = max(0.0, self._last_run + self.interval - self._loop.time())
        self._handle = self._loop.call_later(delay, self._run)

    def _run(self) -> None:
        self._handle = None
        self._running = True
        try:
            self.func()
        except Exception:
            logger.exception("Dashboard refresh failed")
        finally:
            self.runs += 1
            self._running = False
            self._last_run = self._loop.time()
        if self._rerun:
            self._rerun = False
            self.request()

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        self._rerun = False


class UpdateQueue:
    """Keyed batch of chart updates, flushed together on the next loop tick."""

    def __init__(self, loop=None):
        self._loop = _loop(loop)
        self._queue: Dict[str, Tuple[Callable[[], Any], int]] = {}
        self._handle: Optional[asyncio.Handle] = None

    def __len__(self) -> int:
        return len(self._queue)

    def queue(self, key: str, update: Callable[[], Any], priority: int = 0) -> None:
        if key not in self._queue:
            self._queue[key] = (update, priority)

    def process(self) -> None:
        if not self._queue or self._handle is not None:
            return
        self._handle = self._loop.call_soon(self._flush)

    def _flush(self) -> None:
        self._handle = None
        batch = sorted(self._queue.items(), key=lambda item: item[1][1], reverse=True)
        self._queue.clear()
        for key, (update, _) in batch:
            try:
                update()
            except Exception:
                logger.exception("Chart update failed for %s", key)


class LockTimers:
    """Drives a :class:`PinLock` from the event loop clock.

    While unlocked a single timer fires at the inactivity deadline; while
    locked out one fires at the end of the cooldown and a ticker publishes
    the countdown.  Call :meth:`sync` after anything that may change the
    lock state; it replaces whatever timers belonged to the previous state.
    """

    def __init__(self, lock: PinLock, bus: Optional[EventBus] = None, loop=None,
                 countdown_interval: float = 1.0):
        self.lock = lock
        self.bus = bus
        self.countdown_interval = countdown_interval
        self._loop = _loop(loop)
        self._deadline: Optional[Timer] = None
        self._countdown: Optional[Ticker] = None
        self._state = lock.state

    def now(self) -> float:
        return self._loop.time()

    @property
    def timers(self) -> int:
        return sum(1 for t in (self._deadline, self._countdown) if t is not None and t.active)

    def submit(self, candidate: str):
        result = self.lock.submit(candidate, self.now())
        self.sync()
        return result

    def activity(self) -> None:
        self.lock.record_activity(self.now())
        self.sync()

    def _next_deadline(self) -> Optional[float]:
        if self.lock.state is LockState.LOCKED_OUT:
            return self.lock.lockout_until
        return self.lock.inactivity_deadline()

    def sync(self) -> None:
        now = self.now()
        state = self.lock.tick(now)
        if state is not self._state:
            previous, self._state = self._state, state
            if self.bus is not None:
                self.bus.publish(LOCK_STATE_CHANGED, {"from": previous, "to": state})

        self._cancel_deadline()
        deadline = self._next_deadline()
        if deadline is not None:
            self._deadline = Timer(max(0.0, deadline - now), self.sync, self._loop)

        if state is LockState.LOCKED_OUT:
            if self._countdown is None:
                self._countdown = Ticker(self.countdown_interval, self._tick_countdown, self._loop)
        else:
            self._cancel_countdown()

    def _tick_countdown(self) -> None:
        if self.bus is not None:
            self.bus.publish(LOCKOUT_TICK, {"remaining": self.lock.lockout_remaining(self.now())})

    def _cancel_deadline(self) -> None:
        if self._deadline is not None:
            self._deadline.cancel()
            self._deadline = None

    def _cancel_countdown(self) -> None:
        if self._countdown is not None:
            self._countdown.cancel()
            self._countdown = None

    def close(self) -> None:
        self._cancel_deadline()
        self._cancel_countdown()
