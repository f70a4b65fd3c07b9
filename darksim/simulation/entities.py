"""Agents, orders and their lifecycle state machines."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, FrozenSet, List, Optional, Tuple

from ..errors import InvalidTransitionError
from ..geo.boundary import Point


class AgentStatus(str, Enum):
    AVAILABLE = "available"
    TO_STORE = "to_store"
    AT_STORE = "at_store"
    TO_CUSTOMER = "to_customer"


class OrderStatus(str, Enum):
    PENDING = "pending"
    ASSIGNED = "assigned"
    DELIVERED = "delivered"


AGENT_TRANSITIONS: Dict[AgentStatus, FrozenSet[AgentStatus]] = {
    AgentStatus.AVAILABLE: frozenset({AgentStatus.TO_STORE}),
    AgentStatus.TO_STORE: frozenset({AgentStatus.AT_STORE}),
    AgentStatus.AT_STORE: frozenset({AgentStatus.TO_CUSTOMER}),
    AgentStatus.TO_CUSTOMER: frozenset({AgentStatus.AVAILABLE}),
}

ORDER_TRANSITIONS: Dict[OrderStatus, FrozenSet[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.ASSIGNED}),
    OrderStatus.ASSIGNED: frozenset({OrderStatus.DELIVERED}),
    OrderStatus.DELIVERED: frozenset(),
}


@dataclass
class Order:
    id: int
    location: Point
    time_placed: int
    status: OrderStatus = OrderStatus.PENDING
    assigned_agent_id: Optional[int] = None
    assignment_time: Optional[int] = None
    delivered_time: Optional[int] = None
    delivery_duration: Optional[int] = None

    def transition(self, new_status: OrderStatus) -> None:
        if new_status not in ORDER_TRANSITIONS[self.status]:
            raise InvalidTransitionError(f"Order {self.id}: illegal transition {self.status.value} -> {new_status.value}")
        self.status = new_status

    def assign(self, agent_id: int, tick: int) -> None:
        self.transition(OrderStatus.ASSIGNED)
        self.assigned_agent_id = agent_id
        self.assignment_time = tick

    def deliver(self, tick: int) -> int:
        self.transition(OrderStatus.DELIVERED)
        self.delivered_time = tick
        self.delivery_duration = tick - self.time_placed
        return self.delivery_duration

    @property
    def wait_time(self) -> Optional[int]:
        if self.assignment_time is None:
            return None
        return self.assignment_time - self.time_placed


@dataclass
class Agent:
    """A delivery rider moving along straight-line legs.

    `route` holds at most three points: where the agent was when assigned,
    the facility, and the customer. `leg_index` selects the leg currently
    being travelled and `leg_progress` is the fraction of it covered.
    """

    id: int
    location: Point
    speed_kmph: float
    status: AgentStatus = AgentStatus.AVAILABLE
    assigned_order_id: Optional[int] = None
    route: List[Point] = field(default_factory=list)
    leg_index: int = 0
    leg_progress: float = 0.0
    dwell_ticks: int = 0
    deliveries_made: int = 0
    busy_ticks: int = 0
    distance_km: float = 0.0
    fatigue_factor: float = 1.0
    consecutive_deliveries: int = 0
    continuous_active_min: int = 0
    available_since: int = 0

    def transition(self, new_status: AgentStatus) -> None:
        if new_status not in AGENT_TRANSITIONS[self.status]:
            raise InvalidTransitionError(f"Agent {self.id}: illegal transition {self.status.value} -> {new_status.value}")
        self.status = new_status

    @property
    def is_busy(self) -> bool:
        return self.status is not AgentStatus.AVAILABLE

    @property
    def effective_speed_kmph(self) -> float:
        return self.speed_kmph * self.fatigue_factor

    @property
    def current_leg(self) -> Optional[Tuple[Point, Point]]:
        if self.leg_index + 1 >= len(self.route):
            return None
        return self.route[self.leg_index], self.route[self.leg_index + 1]


@dataclass(frozen=True)
class AgentSnapshot:
    id: int
    lat: float
    lng: float
    status: str
    assigned_order_id: Optional[int]
    leg_progress: float
    deliveries_made: int
    fatigue_factor: float

    @staticmethod
    def of(agent: Agent) -> "AgentSnapshot":
        return AgentSnapshot(
            id=agent.id,
            lat=agent.location.lat,
            lng=agent.location.lng,
            status=agent.status.value,
            assigned_order_id=agent.assigned_order_id,
            leg_progress=agent.leg_progress,
            deliveries_made=agent.deliveries_made,
            fatigue_factor=agent.fatigue_factor,
        )


@dataclass(frozen=True)
class OrderSnapshot:
    id: int
    lat: float
    lng: float
    status: str
    time_placed: int
    assigned_agent_id: Optional[int]
    assignment_time: Optional[int]
    delivered_time: Optional[int]
    delivery_duration: Optional[int]

    @staticmethod
    def of(order: Order) -> "OrderSnapshot":
        return OrderSnapshot(
            id=order.id,
            lat=order.location.lat,
            lng=order.location.lng,
            status=order.status.value,
            time_placed=order.time_placed,
            assigned_agent_id=order.assigned_agent_id,
            assignment_time=order.assignment_time,
            delivered_time=order.delivered_time,
            delivery_duration=order.delivery_duration,
        )


@dataclass(frozen=True)
class TickSnapshot:
    tick: int
    traffic_factor: float
    agents: Tuple[AgentSnapshot, ...]
    orders: Tuple[OrderSnapshot, ...]
