"""Unit tests for SimulationFeed - telemetry drift, synthetic events, timers.

Ticks are driven through a VirtualClock with a seeded Random; the driver
thread is only started in the lifecycle tests.
"""
from __future__ import annotations

import random
import time
from dataclasses import replace

import pytest

from simulation.feed import (
    DENSITY_MAX,
    DENSITY_MIN,
    EVENT_TIMER,
    TELEMETRY_TIMER,
    SimulationFeed,
    pick_event,
    telemetry_tick,
)
from simulation.catalogue import CAMERA_EVENT_TYPES, MESSAGE_TEMPLATES
from simulation.scheduler import VirtualClock
from state.models import (
    DRIFT_MAX,
    DRIFT_MIN,
    MessageStatus,
    Position,
    SourceKind,
    SourceStatus,
    Trend,
)
from state.snapshot import Snapshot


def _feed(store, alerts, bus, seed=42, **kwargs):
    clock = VirtualClock()
    feed = SimulationFeed(
        store, alerts, event_bus=bus, clock=clock, rng=random.Random(seed), **kwargs
    )
    return clock, feed


def _only_sources(state: Snapshot, kind: SourceKind) -> Snapshot:
    return replace(state, sources=tuple(s for s in state.sources if s.kind == kind))


@pytest.mark.unit
class TestTelemetryTick:

    def test_positions_stay_in_drift_margin(self, store, rng):
        state = store.snapshot()
        for _ in range(500):
            state = telemetry_tick(state, rng)
            for unit in state.units:
                assert DRIFT_MIN <= unit.position.x <= DRIFT_MAX
                assert DRIFT_MIN <= unit.position.y <= DRIFT_MAX

    def test_density_stays_in_range(self, store, rng):
        state = store.snapshot()
        for _ in range(500):
            state = telemetry_tick(state, rng)
            assert DENSITY_MIN <= state.analytics.density <= DENSITY_MAX

    def test_step_is_bounded(self, store, rng):
        before = store.snapshot()
        after = telemetry_tick(before, rng)
        for old, new in zip(before.units, after.units):
            assert abs(new.position.x - old.position.x) <= 1.5
            assert abs(new.position.y - old.position.y) <= 1.5
        assert abs(after.analytics.density - before.analytics.density) <= 2.5

    def test_edge_unit_pulled_into_margin(self, store, rng):
        state = store.snapshot()
        edge = replace(state.unit("SEC-001"), position=Position(0, 100))
        state = telemetry_tick(state.with_unit(edge), rng)
        pos = state.unit("SEC-001").position
        assert pos.x == DRIFT_MIN
        assert pos.y == DRIFT_MAX

    def test_trend_follows_delta(self, store):
        before = store.snapshot()
        after = telemetry_tick(before, random.Random(0))
        if after.analytics.density > before.analytics.density:
            assert after.analytics.trend == Trend.UP
        else:
            assert after.analytics.trend in (Trend.DOWN, Trend.STABLE)

    def test_input_snapshot_untouched(self, store, rng):
        before = store.snapshot()
        positions = [u.position for u in before.units]
        telemetry_tick(before, rng)
        assert [u.position for u in before.units] == positions


@pytest.mark.unit
class TestPickEvent:

    def test_zero_event_probability(self, store, rng):
        for _ in range(100):
            assert pick_event(store.snapshot(), rng, 0.0, 1.0) is None

    def test_zero_alert_probability(self, store, rng):
        for _ in range(100):
            assert pick_event(store.snapshot(), rng, 1.0, 0.0) is None

    def test_only_online_sources(self, store, rng):
        for _ in range(300):
            event = pick_event(store.snapshot(), rng, 1.0, 1.0)
            assert event.source_id != "CAM-004"

    def test_all_offline(self, store, rng):
        state = store.snapshot()
        state = replace(state, sources=tuple(
            replace(s, status=SourceStatus.OFFLINE) for s in state.sources
        ))
        assert pick_event(state, rng, 1.0, 1.0) is None

    def test_camera_event(self, store, rng):
        state = _only_sources(store.snapshot(), SourceKind.CAMERA)
        event = pick_event(state, rng, 1.0, 1.0)
        assert event.kind == SourceKind.CAMERA
        assert event.camera_event in CAMERA_EVENT_TYPES
        assert event.message is None

    def test_message_feed_event(self, store, rng):
        state = _only_sources(store.snapshot(), SourceKind.MESSAGE_FEED)
        event = pick_event(state, rng, 1.0, 1.0)
        assert event.kind == SourceKind.MESSAGE_FEED
        assert event.message in MESSAGE_TEMPLATES

    def test_alert_rate_roughly_matches(self, store):
        rng = random.Random(99)
        hits = sum(
            1 for _ in range(2000) if pick_event(store.snapshot(), rng, 1.0, 0.15) is not None
        )
        assert 200 < hits < 400

    def test_seeded_runs_are_reproducible(self, store):
        def run():
            rng = random.Random(5)
            return [pick_event(store.snapshot(), rng, 1.0, 0.5) for _ in range(50)]

        events = run()
        assert events == run()
        assert any(e is not None for e in events)


@pytest.mark.unit
class TestFeedTicks:

    def test_telemetry_tick_commits_and_publishes(self, store, alerts, bus):
        _, feed = _feed(store, alerts, bus)
        q = bus.subscribe(_filter="telemetry")
        version = store.version
        feed.run_telemetry_tick()
        assert store.version == version + 1
        msg = q.get_nowait()
        assert len(msg["data"]["units"]) == 6
        assert DENSITY_MIN <= msg["data"]["crowd_density"] <= DENSITY_MAX

    def test_camera_event_raises_alert(self, store, alerts, bus):
        store.update_sources(tuple(
            s for s in store.snapshot().sources if s.kind == SourceKind.CAMERA
        ))
        _, feed = _feed(store, alerts, bus, alert_probability=1.0)
        before = len(store.snapshot().alerts)
        event = feed.run_event_tick()
        snap = store.snapshot()
        assert len(snap.alerts) == before + 1
        assert snap.alerts[0].source == f"Camera {event.source_id}"
        assert feed.emitted == 1

    def test_message_feed_event_delivered(self, store, alerts, bus):
        store.update_sources(tuple(
            s for s in store.snapshot().sources if s.kind == SourceKind.MESSAGE_FEED
        ))
        _, feed = _feed(store, alerts, bus, alert_probability=1.0)
        feed.run_event_tick()
        msg = store.snapshot().messages[0]
        assert msg.status == MessageStatus.DELIVERED
        assert msg.id.startswith("MSG-")

    def test_event_tick_runs_delivery_sweep(self, store, alerts, bus):
        from coordination.alerts import MessageDraft
        alerts.compose(MessageDraft(
            type="dispatch", title="t", body="b", sender="Command Center",
            recipients=("all-units",),
        ))
        _, feed = _feed(store, alerts, bus, alert_probability=0.0)
        assert feed.run_event_tick() is None
        assert store.snapshot().messages[0].status == MessageStatus.DELIVERED

    def test_invalid_probability(self, store, alerts, bus):
        with pytest.raises(ValueError):
            _feed(store, alerts, bus, alert_probability=1.5)


@pytest.mark.unit
class TestFeedScheduling:

    def test_virtual_minute(self, store, alerts, bus):
        clock, feed = _feed(store, alerts, bus)
        feed.schedule()
        for _ in range(60):
            clock.advance(1)
            feed.scheduler.run_due()
        assert feed.scheduler.fired(TELEMETRY_TIMER) == 6
        assert feed.scheduler.fired(EVENT_TIMER) == 4
        snap = store.snapshot()
        for unit in snap.units:
            assert DRIFT_MIN <= unit.position.x <= DRIFT_MAX
        assert DENSITY_MIN <= snap.analytics.density <= DENSITY_MAX

    def test_same_seed_same_state(self, store, alerts, bus):
        from state.store import EntityStore
        from coordination.alerts import AlertLifecycle
        from tests.lib.clock import fixed_clock

        def run(seed):
            s = EntityStore(store.snapshot(), clock=fixed_clock)
            clock, feed = _feed(s, AlertLifecycle(s), None, seed=seed, alert_probability=1.0)
            feed.schedule()
            for _ in range(120):
                clock.advance(1)
                feed.scheduler.run_due()
            snap = s.snapshot()
            return (
                [u.position for u in snap.units],
                snap.analytics.density,
                [(a.title, a.message) for a in snap.alerts],
            )

        assert run(11) == run(11)

    def test_start_stop(self, store, alerts, bus):
        _, feed = _feed(store, alerts, bus, resolution=0.01)
        feed.start()
        assert feed.running
        feed.start()  # second start is a no-op
        time.sleep(0.05)
        feed.stop()
        assert not feed.running
        assert feed.scheduler.next_deadline() is None
