"""
Tests for the time-stepped dispatch simulator.
"""

from __future__ import annotations

import pytest

from darksim.config.models import (
    AgentSettings,
    DemandZone,
    OrderProfile,
    TrafficSettings,
)
from darksim.geo import Point
from darksim.placement import Facility
from darksim.simulation import (
    AT_FACILITY_TOLERANCE_KM,
    AgentStatus,
    DispatchSimulator,
    OrderStatus,
    simulate,
)
from conftest import make_params, offset_point


def test_single_order_delivery_timing(facility, boundary):
    """2 km to store, 5 min handling, 2 km to customer at 20 km/h is about 17 ticks."""
    params = make_params(max_sim_time_min=60, orders_per_run=0)
    sim = DispatchSimulator(facility, boundary, 1, params, seed=1)
    sim.agents[0].location = offset_point(facility, 270.0, 2.0)
    order = sim.place_order(offset_point(facility, 90.0, 2.0))
    run = sim.run()

    assert run.stats.generated == 1
    assert run.stats.delivered == 1
    duration = run.orders[order.id].delivery_duration
    assert 16 <= duration <= 18
    # Stops as soon as everything generated is delivered
    assert run.ticks_elapsed == duration
    assert run.stats.distance_km == pytest.approx(4.0, rel=1e-6)
    assert run.stats.handling_minutes == 5
    assert run.stats.sum_wait_time == 1
    assert run.stats.active_agent_minutes == run.stats.travel_minutes + run.stats.handling_minutes
    assert run.agents[0].status == AgentStatus.AVAILABLE.value
    assert run.agents[0].deliveries_made == 1


def test_activity_log_sequence(facility, boundary):
    params = make_params(max_sim_time_min=60, orders_per_run=0)
    sim = DispatchSimulator(facility, boundary, 1, params, seed=2)
    sim.place_order(offset_point(facility, 0.0, 1.0))
    run = sim.run()
    kinds = [e["activity_type"] for e in run.activity_log]
    assert kinds == ["order_placed", "assigned", "arrived_store", "departed_store", "delivered"]


def test_eta_ignores_travel_when_at_facility(facility, boundary):
    params = make_params(max_sim_time_min=60, orders_per_run=0)
    sim = DispatchSimulator(facility, boundary, 1, params, seed=3)
    order = sim.place_order(offset_point(facility, 180.0, 2.0))
    # Within the tolerance counts as already at the store
    sim.agents[0].location = offset_point(facility, 45.0, AT_FACILITY_TOLERANCE_KM / 2)
    assert sim.eta_minutes(sim.agents[0], order) == pytest.approx(5 + 6.0, rel=1e-6)

    sim.agents[0].location = offset_point(facility, 45.0, 1.0)
    assert sim.eta_minutes(sim.agents[0], order) == pytest.approx(3.0 + 5 + 6.0, rel=1e-6)


def test_dispatch_tie_goes_to_first_agent(facility, boundary):
    params = make_params(max_sim_time_min=60, orders_per_run=0)
    sim = DispatchSimulator(facility, boundary, 3, params, seed=4)
    sim.place_order(offset_point(facility, 30.0, 1.5))
    decisions = sim.plan_dispatch()
    assert len(decisions) == 1
    assert decisions[0][1].id == 0


def test_dispatch_prefers_lower_eta(facility, boundary):
    params = make_params(max_sim_time_min=60, orders_per_run=0)
    sim = DispatchSimulator(facility, boundary, 2, params, seed=5)
    sim.agents[0].location = offset_point(facility, 0.0, 3.0)
    sim.place_order(offset_point(facility, 90.0, 1.0))
    order, agent, _ = sim.plan_dispatch()[0]
    assert agent.id == 1


def test_dispatch_snapshot_assigns_each_agent_once(facility, boundary):
    params = make_params(max_sim_time_min=60, orders_per_run=0)
    sim = DispatchSimulator(facility, boundary, 2, params, seed=6)
    for bearing in (0.0, 120.0, 240.0):
        sim.place_order(offset_point(facility, bearing, 1.0))
    decisions = sim.plan_dispatch()
    assert [o.id for o, _, _ in decisions] == [0, 1]
    assert sorted(a.id for _, a, _ in decisions) == [0, 1]
    # Planning does not mutate state
    assert all(o.status is OrderStatus.PENDING for o in sim.orders)
    assert all(a.status is AgentStatus.AVAILABLE for a in sim.agents)


def test_zero_agents_leaves_orders_undelivered(facility, boundary):
    params = make_params(max_sim_time_min=60, orders_per_run=6)
    run = simulate(facility, boundary, 0, params, seed=7)
    assert run.stats.generated == 6
    assert run.stats.delivered == 0
    assert run.stats.assigned == 0
    assert run.ticks_elapsed == 60
    assert len(run.undelivered_orders) == 6
    assert run.stats.utilization_pct is None
    assert run.stats.avg_delivery_time is None
    assert run.stats.avg_wait_time is None


def test_zero_orders_produces_no_activity(facility, boundary):
    params = make_params(max_sim_time_min=60, orders_per_run=0)
    run = simulate(facility, boundary, 3, params, seed=8)
    assert run.stats.generated == 0
    assert run.stats.active_agent_minutes == 0
    assert run.stats.distance_km == 0
    assert run.stats.sla_pct is None
    assert run.ticks_elapsed == 1


def test_counter_based_generation(facility, boundary):
    params = make_params(max_sim_time_min=200, orders_per_run=10)
    run = simulate(facility, boundary, 5, params, seed=9)
    assert run.stats.generated == 10
    assert [o.time_placed for o in run.orders] == list(range(20, 201, 20))


def test_run_invariants(facility, boundary):
    params = make_params(max_sim_time_min=240, orders_per_run=40, record_snapshots=True)
    sim = DispatchSimulator(facility, boundary, 3, params, seed=123)
    run = sim.run()

    assert run.snapshots
    for snap in run.snapshots:
        holders = [a.assigned_order_id for a in snap.agents if a.assigned_order_id is not None]
        assert len(holders) == len(set(holders))
        for a in snap.agents:
            assert 0.0 <= a.leg_progress <= 1.0
            assert (a.status == AgentStatus.AVAILABLE.value) == (a.assigned_order_id is None)
        for o in snap.orders:
            has_agent = o.assigned_agent_id is not None
            assert has_agent == (o.status in (OrderStatus.ASSIGNED.value, OrderStatus.DELIVERED.value))

    stats = run.stats
    assert stats.delivered <= stats.assigned <= stats.generated
    assert stats.undelivered == len(run.undelivered_orders)
    assert stats.within_sla <= stats.delivered
    assert len(stats.delivery_times) == stats.delivered
    delivered = [o for o in run.orders if o.status == OrderStatus.DELIVERED.value]
    assert len(delivered) == stats.delivered
    for o in delivered:
        assert o.time_placed <= o.assignment_time <= o.delivered_time
        assert o.delivered_time - o.time_placed == o.delivery_duration
        assert o.delivery_duration >= 0
    for o in run.undelivered_orders:
        assert o.delivered_time is None and o.delivery_duration is None
        assert (o.assignment_time is None) == (o.status == OrderStatus.PENDING.value)


def test_orders_land_inside_boundary_or_at_facility(facility, small_boundary):
    params = make_params(
        max_sim_time_min=100,
        orders_per_run=20,
        order_profile=OrderProfile(kind="disk", radius_km=30.0),
    )
    run = simulate(facility, small_boundary, 2, params, seed=10)
    for o in run.orders:
        loc = Point(o.lat, o.lng)
        assert small_boundary.contains(loc) or loc == facility


def test_focused_profile_stays_in_square(facility, boundary):
    params = make_params(
        max_sim_time_min=100,
        orders_per_run=20,
        order_profile=OrderProfile(kind="focused", focus_radius_km=1.11),
    )
    run = simulate(facility, boundary, 2, params, seed=11)
    assert run.stats.generated == 20
    for o in run.orders:
        assert abs(o.lat - facility.lat) <= 0.01 + 1e-12
        assert abs(o.lng - facility.lng) <= 0.01 + 1e-12


def test_zones_profile_skips_inactive_windows(facility, boundary):
    zone = DemandZone(kind="hotspot", center=facility, start_min=1000, end_min=2000)
    params = make_params(
        max_sim_time_min=100,
        orders_per_run=10,
        order_profile=OrderProfile(kind="zones", zones=[zone]),
    )
    run = simulate(facility, boundary, 2, params, seed=12)
    assert run.stats.generated == 0
    assert any(e["activity_type"] == "order_skipped" for e in run.activity_log)


def test_zones_profile_active_hotspot(facility, boundary):
    center = offset_point(facility, 0.0, 3.0)
    zone = DemandZone(kind="hotspot", center=center, spread_km=0.5)
    params = make_params(
        max_sim_time_min=100,
        orders_per_run=10,
        order_profile=OrderProfile(kind="zones", zones=[zone]),
    )
    run = simulate(facility, boundary, 2, params, seed=13)
    assert run.stats.generated == 10
    for o in run.orders:
        assert Point(o.lat, o.lng).distance_km(center) < 1.0


def test_dynamic_traffic_uses_configured_factors(facility, boundary):
    traffic = TrafficSettings(dynamic=True, update_interval_min=10, factors=(0.8, 1.2))
    params = make_params(max_sim_time_min=60, orders_per_run=60, traffic=traffic, record_snapshots=True)
    run = simulate(facility, boundary, 2, params, seed=14)
    assert {s.traffic_factor for s in run.snapshots} <= {0.8, 1.2}
    assert any(e["activity_type"] == "traffic" for e in run.activity_log)


def test_speed_drawn_within_range(facility, boundary):
    params = make_params(
        max_sim_time_min=10,
        orders_per_run=0,
        agents=AgentSettings(min_speed_kmph=20, max_speed_kmph=30, spawn_jitter_deg=0.001),
    )
    sim = DispatchSimulator(facility, boundary, 20, params, seed=15)
    for agent in sim.agents:
        assert 20 <= agent.speed_kmph <= 30
        assert abs(agent.location.lat - facility.lat) <= 0.001


def test_inverted_speed_range_uses_min(facility, boundary):
    params = make_params(agents=AgentSettings(min_speed_kmph=25, max_speed_kmph=15))
    sim = DispatchSimulator(facility, boundary, 3, params, seed=16)
    assert all(a.speed_kmph == 25 for a in sim.agents)


def test_same_seed_same_run(facility, boundary):
    params = make_params(max_sim_time_min=120, orders_per_run=20)
    a = simulate(Facility(0, "Dark Store 1", facility), boundary, 2, params, seed=99)
    b = simulate(Facility(0, "Dark Store 1", facility), boundary, 2, params, seed=99)
    assert a.stats.to_dict() == b.stats.to_dict()
    assert a.orders == b.orders


def test_should_stop_cancels_before_first_tick(facility, boundary):
    params = make_params(max_sim_time_min=60, orders_per_run=5)
    sim = DispatchSimulator(facility, boundary, 1, params, seed=17)
    run = sim.run(should_stop=lambda: True)
    assert run.cancelled
    assert run.ticks_elapsed == 0
    assert run.stats.generated == 0


def test_run_only_once(facility, boundary):
    sim = DispatchSimulator(facility, boundary, 1, make_params(max_sim_time_min=5), seed=18)
    sim.run()
    with pytest.raises(RuntimeError):
        sim.run()


def test_negative_agent_count_rejected(facility, boundary):
    with pytest.raises(ValueError):
        DispatchSimulator(facility, boundary, -1, make_params())


def test_zones_profile_route_stays_near_waypoints(facility, boundary):
    north = offset_point(facility, 0.0, 2.0)
    east = offset_point(facility, 90.0, 2.0)
    zone = DemandZone(kind="route", route_points=[north, east], spread_km=0.5)
    params = make_params(
        max_sim_time_min=100,
        orders_per_run=10,
        order_profile=OrderProfile(kind="zones", zones=[zone]),
    )
    run = simulate(facility, boundary, 2, params, seed=19)
    assert run.stats.generated == 10
    spread = 0.5 / 111.0 + 1e-12
    for o in run.orders:
        assert min(north.lat, east.lat) - spread <= o.lat <= max(north.lat, east.lat) + spread
        assert min(north.lng, east.lng) - spread <= o.lng <= max(north.lng, east.lng) + spread


def _fatigue_agents(**overrides) -> AgentSettings:
    return AgentSettings(min_speed_kmph=20, max_speed_kmph=20, handling_time_min=5, **overrides)


def test_fatigue_slows_agent_then_recovers_after_idle(facility, boundary):
    agents = _fatigue_agents(fatigue_enabled=True, fatigue_delivery_threshold=2, fatigue_recovery_idle_min=20)
    sim = DispatchSimulator(facility, boundary, 1, make_params(orders_per_run=0, agents=agents), seed=20)
    agent = sim.agents[0]
    order = sim.place_order(offset_point(facility, 90.0, 2.0))
    fresh_eta = sim.eta_minutes(agent, order)

    agent.consecutive_deliveries = 2
    agent.status = AgentStatus.TO_STORE
    for _ in range(5):
        sim._update_fatigue(agent)
    assert agent.fatigue_factor == pytest.approx(0.6)
    assert agent.effective_speed_kmph == pytest.approx(12.0)

    agent.status = AgentStatus.AVAILABLE
    # Agent sits at the facility, so only the outbound leg scales with speed
    assert sim.eta_minutes(agent, order) - 5 == pytest.approx((fresh_eta - 5) / 0.6)

    sim._update_fatigue(agent)
    assert agent.fatigue_factor == pytest.approx(0.6)

    sim.env.run(until=25)
    sim._update_fatigue(agent)
    assert agent.fatigue_factor == pytest.approx(0.65)
    assert agent.consecutive_deliveries == 0
    assert agent.available_since == 25
    assert any(e["activity_type"] == "fatigue" for e in sim.activity_log)


def _back_to_back_run(facility, boundary, fatigue_enabled):
    agents = _fatigue_agents(fatigue_enabled=fatigue_enabled, fatigue_delivery_threshold=1)
    sim = DispatchSimulator(facility, boundary, 1, make_params(max_sim_time_min=120, orders_per_run=0, agents=agents), seed=21)
    target = offset_point(facility, 90.0, 2.0)
    sim.place_order(target)
    sim.place_order(target)
    return sim.run()


def test_fatigue_lengthens_later_deliveries(facility, boundary):
    fresh = _back_to_back_run(facility, boundary, fatigue_enabled=False)
    tired = _back_to_back_run(facility, boundary, fatigue_enabled=True)

    assert fresh.stats.delivered == tired.stats.delivered == 2
    assert tired.orders[0].delivery_duration == fresh.orders[0].delivery_duration
    assert tired.orders[1].delivery_duration > fresh.orders[1].delivery_duration
    assert fresh.agents[0].fatigue_factor == 1.0
    assert tired.agents[0].fatigue_factor < 1.0
