from .engine import AT_FACILITY_TOLERANCE_KM, DispatchSimulator, SimulationRun, simulate
from .entities import (
    AGENT_TRANSITIONS,
    ORDER_TRANSITIONS,
    Agent,
    AgentSnapshot,
    AgentStatus,
    Order,
    OrderSnapshot,
    OrderStatus,
    TickSnapshot,
)
from .stats import RunStatistics

__all__ = [
    "AGENT_TRANSITIONS",
    "AT_FACILITY_TOLERANCE_KM",
    "Agent",
    "AgentSnapshot",
    "AgentStatus",
    "DispatchSimulator",
    "ORDER_TRANSITIONS",
    "Order",
    "OrderSnapshot",
    "OrderStatus",
    "RunStatistics",
    "SimulationRun",
    "TickSnapshot",
    "simulate",
]
