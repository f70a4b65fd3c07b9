"""Time-stepped dispatch simulation for a single dark store.

A simpy process advances the clock one simulated minute at a time. Each tick
runs order generation, a greedy minimum-ETA dispatch pass and agent movement,
in that order. Agents travel straight-line legs: from wherever they were
assigned to the facility, then from the facility to the customer.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union

import numpy as np
import simpy

from ..config.models import DemandZone, SimulationParams
from ..errors import InvalidSelectionError
from ..geo.boundary import Point, ServiceBoundary
from ..geo.sampling import uniform_points_in_polygon
from ..logging import get_logger
from ..placement.clustering import Facility
from ..utils import KM_PER_DEGREE
from .entities import (
    Agent,
    AgentSnapshot,
    AgentStatus,
    Order,
    OrderSnapshot,
    OrderStatus,
    TickSnapshot,
)
from .stats import RunStatistics

logger = get_logger(__name__)

# Agents closer than this to a target are treated as already there
AT_FACILITY_TOLERANCE_KM = 0.01
LOCATION_ATTEMPTS = 100
# Absorbs float drift when summing per-tick progress fractions
PROGRESS_EPSILON = 1e-9


@dataclass
class SimulationRun:
    stats: RunStatistics
    agents: List[AgentSnapshot] = field(default_factory=list)
    orders: List[OrderSnapshot] = field(default_factory=list)
    snapshots: List[TickSnapshot] = field(default_factory=list)
    activity_log: List[Dict[str, Any]] = field(default_factory=list)
    ticks_elapsed: int = 0
    seed: Optional[int] = None
    cancelled: bool = False

    @property
    def undelivered_orders(self) -> List[OrderSnapshot]:
        return [o for o in self.orders if o.status != OrderStatus.DELIVERED.value]


class DispatchSimulator:
    def __init__(
        self,
        facility: Union[Facility, Point],
        boundary: ServiceBoundary,
        num_agents: int,
        params: Optional[SimulationParams] = None,
        *,
        rng: Optional[np.random.Generator] = None,
        seed: Optional[int] = None,
        env: Optional[simpy.Environment] = None,
    ) -> None:
        if num_agents < 0:
            raise InvalidSelectionError(f"num_agents must be >= 0, got {num_agents}")
        self.facility = facility.location if isinstance(facility, Facility) else facility
        self.boundary = boundary
        self.params = params or SimulationParams()
        self.seed = seed
        self.rng = rng if rng is not None else np.random.default_rng(seed)
        self.env = env or simpy.Environment()

        self.max_sim_time = int(self.params.max_sim_time_min)
        self.handling_time = int(self.params.agents.handling_time_min)
        self.traffic_factor = float(self.params.traffic.base_factor)

        self.agents: List[Agent] = [self._spawn_agent(i) for i in range(int(num_agents))]
        self.orders: List[Order] = []
        self.stats = RunStatistics(
            num_agents=len(self.agents),
            max_sim_time=self.max_sim_time,
            sla_minutes=self.params.sla_minutes,
        )
        self.activity_log: List[Dict[str, Any]] = []
        self.snapshots: List[TickSnapshot] = []

        self._order_counter = 0
        self._profile_orders = 0
        self._cancelled = False
        self._has_run = False

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------
    def _spawn_agent(self, agent_id: int) -> Agent:
        cfg = self.params.agents
        speed_range = cfg.max_speed_kmph - cfg.min_speed_kmph
        speed = cfg.min_speed_kmph + self.rng.random() * speed_range if speed_range >= 0 else cfg.min_speed_kmph
        location = self.facility
        if cfg.spawn_jitter_deg > 0:
            location = Point(
                lat=self.facility.lat + (self.rng.random() - 0.5) * 2 * cfg.spawn_jitter_deg,
                lng=self.facility.lng + (self.rng.random() - 0.5) * 2 * cfg.spawn_jitter_deg,
            )
        return Agent(id=agent_id, location=location, speed_kmph=float(speed))

    @property
    def now(self) -> int:
        return int(self.env.now)

    def log_activity(
        self,
        activity_type: str,
        description: str,
        order_id: Optional[int] = None,
        agent_id: Optional[int] = None,
    ) -> None:
        entry: Dict[str, Any] = {
            "tick": self.now,
            "activity_type": activity_type,
            "description": description,
        }
        if order_id is not None:
            entry["order_id"] = order_id
        if agent_id is not None:
            entry["agent_id"] = agent_id
        self.activity_log.append(entry)
        logger.debug("[t=%d] %s: %s", self.now, activity_type, description)

    # ------------------------------------------------------------------
    # Orders
    # ------------------------------------------------------------------
    def place_order(self, location: Point) -> Order:
        """Inject an order at the current tick, outside the generation schedule."""
        order = Order(id=len(self.orders), location=location, time_placed=self.now)
        self.orders.append(order)
        self.stats.generated += 1
        self.log_activity(
            "order_placed",
            f"Order {order.id} at [{location.lat:.4f}, {location.lng:.4f}]",
            order_id=order.id,
        )
        return order

    def _maybe_generate_order(self) -> None:
        self._order_counter += 1
        if self._profile_orders >= self.params.orders_per_run:
            return
        if self._order_counter < self.params.order_interval_min:
            return
        self._order_counter = 0
        location = self._order_location()
        if location is None:
            self.log_activity("order_skipped", "No active demand zone; no order generated")
            return
        self._profile_orders += 1
        self.place_order(location)

    def _order_location(self) -> Optional[Point]:
        profile = self.params.order_profile
        if profile.kind == "focused":
            return self._square_sample(self.facility, profile.focus_radius_km / KM_PER_DEGREE, self.facility)
        if profile.kind == "boundary":
            return self._boundary_sample()
        if profile.kind == "zones":
            zone = self._pick_zone(profile.zones)
            if zone is None:
                return None
            if zone.kind == "uniform":
                return self._boundary_sample()
            if zone.kind == "route":
                return self._route_sample(zone)
            return self._square_sample(zone.center, zone.spread_km / KM_PER_DEGREE, zone.center)
        return self._disk_sample(profile.radius_km / KM_PER_DEGREE)

    def _disk_sample(self, radius_deg: float) -> Point:
        for _ in range(LOCATION_ATTEMPTS):
            angle = self.rng.random() * 2 * math.pi
            distance = math.sqrt(self.rng.random()) * radius_deg
            candidate = Point(
                lat=self.facility.lat + distance * math.sin(angle),
                lng=self.facility.lng + distance * math.cos(angle),
            )
            if self.boundary.contains(candidate):
                return candidate
        return self.facility

    def _square_sample(self, center: Point, half_side_deg: float, fallback: Point) -> Point:
        for _ in range(LOCATION_ATTEMPTS):
            candidate = Point(
                lat=center.lat + (self.rng.random() - 0.5) * 2 * half_side_deg,
                lng=center.lng + (self.rng.random() - 0.5) * 2 * half_side_deg,
            )
            if self.boundary.contains(candidate):
                return candidate
        return fallback

    def _boundary_sample(self) -> Point:
        points = uniform_points_in_polygon(1, self.boundary, self.rng)
        return points[0] if points else self.facility

    def _route_sample(self, zone: DemandZone) -> Point:
        lats = [p.lat for p in zone.route_points]
        lngs = [p.lng for p in zone.route_points]
        spread_deg = zone.spread_km / KM_PER_DEGREE
        for _ in range(LOCATION_ATTEMPTS):
            base_lat = min(lats) + self.rng.random() * (max(lats) - min(lats))
            base_lng = min(lngs) + self.rng.random() * (max(lngs) - min(lngs))
            candidate = Point(
                lat=base_lat + (self.rng.random() - 0.5) * 2 * spread_deg,
                lng=base_lng + (self.rng.random() - 0.5) * 2 * spread_deg,
            )
            if self.boundary.contains(candidate):
                return candidate
        return self._boundary_sample()

    def _pick_zone(self, zones: Sequence[DemandZone]) -> Optional[DemandZone]:
        active = [z for z in zones if z.is_active(self.now)]
        if not active:
            return None
        weights = [z.weight for z in active]
        total = sum(weights)
        if total <= 0:
            return active[int(self.rng.integers(len(active)))]
        pick = self.rng.random() * total
        for zone, weight in zip(active, weights):
            if pick < weight:
                return zone
            pick -= weight
        return active[-1]

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------
    def _minutes(self, km: float, agent: Agent) -> float:
        return km / (agent.effective_speed_kmph * self.traffic_factor) * 60.0

    def eta_minutes(self, agent: Agent, order: Order) -> float:
        to_store_km = agent.location.distance_km(self.facility)
        to_store = 0.0 if to_store_km <= AT_FACILITY_TOLERANCE_KM else self._minutes(to_store_km, agent)
        to_customer = self._minutes(self.facility.distance_km(order.location), agent)
        return to_store + self.handling_time + to_customer

    def plan_dispatch(self) -> List[Tuple[Order, Agent, float]]:
        """Greedy assignment decisions for this tick, without applying them.

        Orders are considered in id order; each takes the available agent with
        the smallest ETA. Strict comparison means the lowest-id agent wins ties.
        """
        pending = [o for o in self.orders if o.status is OrderStatus.PENDING]
        free = [a for a in self.agents if a.status is AgentStatus.AVAILABLE]
        decisions: List[Tuple[Order, Agent, float]] = []
        for order in pending:
            if not free:
                break
            best: Optional[Agent] = None
            best_eta = math.inf
            for agent in free:
                eta = self.eta_minutes(agent, order)
                if eta < best_eta:
                    best, best_eta = agent, eta
            if best is None:
                continue
            decisions.append((order, best, best_eta))
            free.remove(best)
        return decisions

    def _dispatch(self) -> None:
        tick = self.now
        for order, agent, eta in self.plan_dispatch():
            order.assign(agent.id, tick)
            self.stats.record_assignment(tick - order.time_placed)
            agent.transition(AgentStatus.TO_STORE)
            agent.assigned_order_id = order.id
            agent.route = [agent.location, self.facility, order.location]
            agent.leg_index = 0
            agent.leg_progress = 0.0
            agent.dwell_ticks = 0
            agent.continuous_active_min = 0
            self.log_activity(
                "assigned",
                f"Agent {agent.id} assigned Order {order.id}, ETA {eta:.1f} min, waited {tick - order.time_placed} min",
                order_id=order.id,
                agent_id=agent.id,
            )

    # ------------------------------------------------------------------
    # Movement
    # ------------------------------------------------------------------
    def _advance_agents(self) -> None:
        for agent in self.agents:
            if agent.is_busy:
                agent.continuous_active_min += 1
            self._update_fatigue(agent)
            if not agent.is_busy:
                continue
            agent.busy_ticks += 1
            self.stats.active_agent_minutes += 1

            if agent.status is AgentStatus.AT_STORE:
                agent.dwell_ticks += 1
                self.stats.handling_minutes += 1
                if agent.dwell_ticks >= self.handling_time:
                    self._depart_store(agent)
                continue

            self.stats.travel_minutes += 1
            self._advance_leg(agent)

    def _update_fatigue(self, agent: Agent) -> None:
        """Slow a busy agent on a delivery streak or long job; recover after idling."""
        cfg = self.params.agents
        if not cfg.fatigue_enabled:
            return
        previous = agent.fatigue_factor
        if agent.is_busy:
            tired = (
                agent.consecutive_deliveries >= cfg.fatigue_delivery_threshold
                or agent.continuous_active_min >= cfg.fatigue_active_threshold_min
            )
            if tired and agent.fatigue_factor > cfg.min_fatigue_factor:
                agent.fatigue_factor = max(cfg.min_fatigue_factor, agent.fatigue_factor - cfg.fatigue_step)
        elif agent.fatigue_factor < 1.0 and self.now - agent.available_since >= cfg.fatigue_recovery_idle_min:
            agent.fatigue_factor = min(1.0, agent.fatigue_factor + cfg.fatigue_recovery_step)
            if agent.fatigue_factor > previous:
                agent.consecutive_deliveries = 0
                agent.available_since = self.now
        if agent.fatigue_factor != previous:
            self.log_activity(
                "fatigue",
                f"Agent {agent.id} fatigue factor now {agent.fatigue_factor:.2f}, "
                f"effective speed {agent.effective_speed_kmph:.1f} km/h",
                agent_id=agent.id,
            )

    def _advance_leg(self, agent: Agent) -> None:
        leg = agent.current_leg
        if leg is None:
            raise RuntimeError(f"Agent {agent.id} is {agent.status.value} without a route")
        start, end = leg
        leg_km = start.distance_km(end)
        if leg_km < AT_FACILITY_TOLERANCE_KM:
            agent.leg_progress = 1.0
        else:
            step_km = agent.effective_speed_kmph * self.traffic_factor / 60.0
            remaining_km = (1.0 - agent.leg_progress) * leg_km
            covered = min(step_km, remaining_km)
            agent.distance_km += covered
            self.stats.distance_km += covered
            agent.leg_progress = min(1.0, agent.leg_progress + step_km / leg_km)
            if agent.leg_progress >= 1.0 - PROGRESS_EPSILON:
                agent.leg_progress = 1.0

        if agent.leg_progress < 1.0:
            agent.location = start.lerp(end, agent.leg_progress)
            return

        agent.location = end
        if agent.status is AgentStatus.TO_STORE:
            self._arrive_store(agent)
        else:
            self._deliver(agent)

    def _arrive_store(self, agent: Agent) -> None:
        agent.transition(AgentStatus.AT_STORE)
        agent.leg_index += 1
        agent.leg_progress = 0.0
        agent.dwell_ticks = 0
        self.log_activity(
            "arrived_store",
            f"Agent {agent.id} at store for Order {agent.assigned_order_id}",
            order_id=agent.assigned_order_id,
            agent_id=agent.id,
        )
        if self.handling_time <= 0:
            self._depart_store(agent)

    def _depart_store(self, agent: Agent) -> None:
        agent.transition(AgentStatus.TO_CUSTOMER)
        agent.leg_progress = 0.0
        agent.dwell_ticks = 0
        self.log_activity(
            "departed_store",
            f"Agent {agent.id} left store with Order {agent.assigned_order_id}",
            order_id=agent.assigned_order_id,
            agent_id=agent.id,
        )

    def _deliver(self, agent: Agent) -> None:
        order = self.orders[agent.assigned_order_id]
        duration = order.deliver(self.now)
        self.stats.record_delivery(duration)
        agent.transition(AgentStatus.AVAILABLE)
        agent.deliveries_made += 1
        agent.consecutive_deliveries += 1
        agent.continuous_active_min = 0
        agent.available_since = self.now
        agent.assigned_order_id = None
        agent.route = []
        agent.leg_index = 0
        agent.leg_progress = 0.0
        self.log_activity(
            "delivered",
            f"Agent {agent.id} delivered Order {order.id} in {duration} min",
            order_id=order.id,
            agent_id=agent.id,
        )

    # ------------------------------------------------------------------
    # Clock
    # ------------------------------------------------------------------
    def _update_traffic(self, tick: int) -> None:
        traffic = self.params.traffic
        if not traffic.dynamic:
            return
        if tick == 1 or tick % traffic.update_interval_min == 0:
            factors = traffic.factors
            self.traffic_factor = float(factors[int(self.rng.integers(len(factors)))])
            self.log_activity("traffic", f"Traffic factor now {self.traffic_factor:.1f}x")

    def _is_finished(self) -> bool:
        quota_met = self._profile_orders >= self.params.orders_per_run
        return quota_met and self.stats.delivered == self.stats.generated

    def _step(self) -> None:
        self._update_traffic(self.now)
        self._maybe_generate_order()
        self._dispatch()
        self._advance_agents()
        if self.params.record_snapshots:
            self.snapshots.append(self.snapshot())

    def _clock_process(self, should_stop: Optional[Callable[[], bool]]):  # simpy process
        while self.env.now < self.max_sim_time:
            if should_stop is not None and should_stop():
                self._cancelled = True
                logger.info("Simulation cancelled at t=%d", self.now)
                break
            yield self.env.timeout(1)
            self._step()
            if self._is_finished():
                break

    def snapshot(self) -> TickSnapshot:
        return TickSnapshot(
            tick=self.now,
            traffic_factor=self.traffic_factor,
            agents=tuple(AgentSnapshot.of(a) for a in self.agents),
            orders=tuple(OrderSnapshot.of(o) for o in self.orders),
        )

    def run(self, should_stop: Optional[Callable[[], bool]] = None) -> SimulationRun:
        if self._has_run:
            raise RuntimeError("DispatchSimulator.run() can only be called once")
        self._has_run = True

        proc = self.env.process(self._clock_process(should_stop))
        self.env.run(until=proc)

        self.stats.ticks_elapsed = self.now
        logger.debug(
            "Run finished at t=%d: %d generated, %d delivered, %d agents",
            self.now,
            self.stats.generated,
            self.stats.delivered,
            len(self.agents),
        )
        return SimulationRun(
            stats=self.stats,
            agents=[AgentSnapshot.of(a) for a in self.agents],
            orders=[OrderSnapshot.of(o) for o in self.orders],
            snapshots=self.snapshots,
            activity_log=self.activity_log,
            ticks_elapsed=self.now,
            seed=self.seed,
            cancelled=self._cancelled,
        )


def simulate(
    facility: Union[Facility, Point],
    boundary: ServiceBoundary,
    num_agents: int,
    params: Optional[SimulationParams] = None,
    seed: Optional[int] = None,
) -> SimulationRun:
    return DispatchSimulator(facility, boundary, num_agents, params, seed=seed).run()
