"""SimulationFeed - synthetic telemetry and AI/sensor events.

Architecture
------------
Two independent fixed-period timers on a TickScheduler:

  telemetry (T1, default 10s)
      every unit takes a random walk of up to +/-1.5 per axis, clamped to
      the drift margin [10, 90]; crowd density moves by up to +/-2.5,
      clamped to [30, 95].  One store transaction per tick.

  events (T2, default 15s)
      with probability ``event_probability`` pick one *online* source
      uniformly; with probability ``alert_probability`` that source
      emits: cameras raise a detection alert via
      AlertLifecycle.report_camera_event, message feeds compose a
      delivered message from MESSAGE_TEMPLATES.  The tick ends with the
      delivery sweep (sent -> delivered).

The tick bodies are pure functions (``telemetry_tick``, ``pick_event``)
of a snapshot and a ``random.Random``; the feed only applies their output
through the store and coordinators, exactly the calls a real telemetry
adapter would make.  Tests drive the scheduler with a VirtualClock and a
seeded Random instead of starting the thread.

Stopping cancels the timers and joins the driver thread.  A tick in
progress finishes its transaction first, so the store is always left
fully committed.
"""

from __future__ import annotations

import random
import threading
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Optional

from loguru import logger

from coordination.alerts import MessageDraft
from simulation.catalogue import CAMERA_EVENT_TYPES, MESSAGE_TEMPLATES
from simulation.scheduler import Clock, MonotonicClock, TickScheduler
from state.models import (
    DRIFT_MAX,
    DRIFT_MIN,
    MessageStatus,
    Position,
    SourceKind,
    Trend,
    clamp,
)
from state.snapshot import Snapshot

if TYPE_CHECKING:
    from comms.event_bus import EventBus
    from coordination.alerts import AlertLifecycle
    from state.store import EntityStore

POSITION_STEP = 1.5
DENSITY_STEP = 2.5
DENSITY_MIN = 30.0
DENSITY_MAX = 95.0

TELEMETRY_TIMER = "telemetry"
EVENT_TIMER = "events"


@dataclass(frozen=True)
class SyntheticEvent:
    """One event chosen by the event tick."""

    source_id: str
    kind: SourceKind
    camera_event: Optional[str] = None
    message: Optional[MessageDraft] = None


def telemetry_tick(state: Snapshot, rng: random.Random) -> Snapshot:
    """Random-walk every unit and drift crowd density."""
    units = tuple(
        replace(
            unit,
            position=Position(
                unit.position.x + rng.uniform(-POSITION_STEP, POSITION_STEP),
                unit.position.y + rng.uniform(-POSITION_STEP, POSITION_STEP),
            ).clamped(DRIFT_MIN, DRIFT_MAX),
        )
        for unit in state.units
    )
    delta = rng.uniform(-DENSITY_STEP, DENSITY_STEP)
    analytics = state.analytics
    trend = Trend.UP if delta > 0 else Trend.DOWN if delta < 0 else Trend.STABLE
    analytics = replace(
        analytics,
        density=clamp(analytics.density + delta, DENSITY_MIN, DENSITY_MAX),
        trend=trend,
    )
    return replace(state, units=units, analytics=analytics)


def pick_event(
    state: Snapshot,
    rng: random.Random,
    event_probability: float,
    alert_probability: float,
) -> Optional[SyntheticEvent]:
    """Decide what (if anything) the event tick emits."""
    if rng.random() >= event_probability:
        return None
    online = [s for s in state.sources if s.online]
    if not online:
        return None
    source = rng.choice(online)
    if rng.random() >= alert_probability:
        return None
    if source.kind == SourceKind.CAMERA:
        return SyntheticEvent(
            source_id=source.id,
            kind=source.kind,
            camera_event=rng.choice(CAMERA_EVENT_TYPES),
        )
    return SyntheticEvent(
        source_id=source.id,
        kind=source.kind,
        message=rng.choice(MESSAGE_TEMPLATES),
    )


class SimulationFeed:
    """Drives telemetry and event ticks into the store."""

    def __init__(
        self,
        store: EntityStore,
        alerts: AlertLifecycle,
        event_bus: Optional[EventBus] = None,
        clock: Optional[Clock] = None,
        rng: Optional[random.Random] = None,
        telemetry_interval: float = 10.0,
        event_interval: float = 15.0,
        event_probability: float = 1.0,
        alert_probability: float = 0.15,
        resolution: float = 0.25,
    ) -> None:
        if not 0.0 <= event_probability <= 1.0 or not 0.0 <= alert_probability <= 1.0:
            raise ValueError("probabilities must be within [0, 1]")
        self._store = store
        self._alerts = alerts
        self._event_bus = event_bus
        self._rng = rng or random.Random()
        self._scheduler = TickScheduler(clock or MonotonicClock())
        self.telemetry_interval = telemetry_interval
        self.event_interval = event_interval
        self.event_probability = event_probability
        self.alert_probability = alert_probability
        self._resolution = resolution
        self._running = False
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self._emitted = 0

    @property
    def scheduler(self) -> TickScheduler:
        return self._scheduler

    @property
    def running(self) -> bool:
        return self._running

    @property
    def emitted(self) -> int:
        """Number of synthetic alerts/messages submitted so far."""
        return self._emitted

    # -- Lifecycle ----------------------------------------------------------

    def schedule(self) -> None:
        """Register both timers without starting the driver thread."""
        self._scheduler.every(TELEMETRY_TIMER, self.telemetry_interval, self.run_telemetry_tick)
        self._scheduler.every(EVENT_TIMER, self.event_interval, self.run_event_tick)

    def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._stop.clear()
        self.schedule()
        self._thread = threading.Thread(
            target=self._drive_loop, name="sim-feed", daemon=True
        )
        self._thread.start()
        logger.info(
            f"Simulation feed started (telemetry every {self.telemetry_interval}s, "
            f"events every {self.event_interval}s)"
        )

    def stop(self) -> None:
        self._running = False
        self._stop.set()
        self._scheduler.cancel_all()
        if self._thread is not None:
            self._thread.join(timeout=2.0)
            self._thread = None
        logger.info("Simulation feed stopped")

    def _drive_loop(self) -> None:
        while self._running:
            try:
                self._scheduler.run_due()
            except Exception as e:
                logger.exception(f"Simulation tick failed: {e}")
            self._stop.wait(self._resolution)

    # -- Ticks --------------------------------------------------------------

    def run_telemetry_tick(self) -> None:
        result = self._store.transact(
            lambda state: telemetry_tick(state, self._rng), reason="telemetry"
        )
        if not result.ok:
            logger.error(f"Telemetry tick rejected: {result.error.detail}")
            return
        snapshot = result.value
        logger.debug(f"Telemetry tick: density {snapshot.analytics.density:.1f}%")
        if self._event_bus is not None:
            self._event_bus.publish("telemetry", {
                "units": [
                    {"id": u.id, "position": u.position.to_dict()} for u in snapshot.units
                ],
                "crowd_density": round(snapshot.analytics.density, 2),
                "trend": snapshot.analytics.trend.value,
            })

    def run_event_tick(self) -> Optional[SyntheticEvent]:
        event = pick_event(
            self._store.snapshot(), self._rng,
            self.event_probability, self.alert_probability,
        )
        if event is not None:
            self._emit(event)
        self._alerts.deliver_pending()
        return event

    def _emit(self, event: SyntheticEvent) -> None:
        if event.kind == SourceKind.CAMERA:
            result = self._alerts.report_camera_event(event.source_id, event.camera_event)
        else:
            result = self._alerts.compose(event.message, status=MessageStatus.DELIVERED)
        if result.ok:
            self._emitted += 1
            logger.debug(f"Synthetic event from {event.source_id}: {result.value.id}")
        else:
            logger.warning(f"Synthetic event from {event.source_id} rejected: {result.error.detail}")
