"""Cooperative tick scheduler with an injectable clock.

Timers are plain (name, period, callback) entries.  ``run_due(now)``
fires every timer whose deadline has passed, in deadline order, and
reschedules it one period later.  Nothing here sleeps or spawns threads;
a driver (SimulationFeed's daemon thread, or a test advancing a
VirtualClock) decides when ``run_due`` is called.

A timer that fell several periods behind fires once and is rescheduled
from *now*: missed ticks are dropped, never replayed in a burst.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Callable, Protocol

from loguru import logger


class Clock(Protocol):
    def now(self) -> float: ...


class MonotonicClock:
    """Wall-independent seconds from ``time.monotonic``."""

    def now(self) -> float:
        return time.monotonic()


class VirtualClock:
    """Manually advanced clock for deterministic tests."""

    def __init__(self, start: float = 0.0) -> None:
        self._now = start
        self._lock = threading.Lock()

    def now(self) -> float:
        with self._lock:
            return self._now

    def advance(self, seconds: float) -> float:
        if seconds < 0:
            raise ValueError("cannot move a clock backwards")
        with self._lock:
            self._now += seconds
            return self._now


@dataclass
class _Timer:
    name: str
    period: float
    callback: Callable[[], None]
    next_due: float
    fired: int = 0


class TickScheduler:
    """Fixed-period timers fired cooperatively by ``run_due``."""

    def __init__(self, clock: Clock) -> None:
        self._clock = clock
        self._timers: dict[str, _Timer] = {}
        self._lock = threading.Lock()

    @property
    def clock(self) -> Clock:
        return self._clock

    def every(self, name: str, period: float, callback: Callable[[], None]) -> None:
        """Register *callback* to fire every *period* seconds (first after one period)."""
        if period <= 0:
            raise ValueError(f"period for {name!r} must be positive")
        with self._lock:
            self._timers[name] = _Timer(
                name=name,
                period=period,
                callback=callback,
                next_due=self._clock.now() + period,
            )

    def cancel(self, name: str) -> bool:
        with self._lock:
            return self._timers.pop(name, None) is not None

    def cancel_all(self) -> None:
        with self._lock:
            self._timers.clear()

    def fired(self, name: str) -> int:
        with self._lock:
            timer = self._timers.get(name)
            return timer.fired if timer else 0

    def next_deadline(self) -> float | None:
        with self._lock:
            if not self._timers:
                return None
            return min(t.next_due for t in self._timers.values())

    def run_due(self, now: float | None = None) -> list[str]:
        """Fire all due timers.

        Returns the names whose callback completed, in firing order.  A
        failing callback is logged and does not stop the rest of the batch.
        """
        if now is None:
            now = self._clock.now()
        with self._lock:
            due = sorted(
                (t for t in self._timers.values() if t.next_due <= now),
                key=lambda t: t.next_due,
            )
            for timer in due:
                timer.next_due += timer.period
                if timer.next_due <= now:
                    timer.next_due = now + timer.period
                timer.fired += 1
        fired = []
        for timer in due:
            # Cancelled by an earlier callback in this batch
            with self._lock:
                if self._timers.get(timer.name) is not timer:
                    continue
            try:
                timer.callback()
            except Exception as e:
                logger.exception(f"Timer '{timer.name}' failed: {e}")
                continue
            fired.append(timer.name)
        return fired
