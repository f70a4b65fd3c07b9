"""Combine repeated dispatch runs for one agent count into comparable metrics."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional, Sequence, Union

from ..config.models import CostRates
from ..logging import get_logger
from ..simulation.engine import SimulationRun
from ..simulation.stats import RunStatistics
from ..utils import format_optional, mean, sample_std, wilson_ci

logger = get_logger(__name__)


@dataclass
class AggregatedResult:
    """Per-run averages for one agent count. `None` marks an undefined metric."""

    num_agents: int
    runs: int = 0
    total_generated: int = 0
    total_assigned: int = 0
    total_delivered: int = 0
    avg_generated: Optional[float] = None
    avg_delivered: Optional[float] = None
    avg_undelivered: Optional[float] = None
    completion_rate: Optional[float] = None
    avg_delivery_time: Optional[float] = None
    min_delivery_time: Optional[float] = None
    max_delivery_time: Optional[float] = None
    std_delivery_time: Optional[float] = None
    pct_within_sla: Optional[float] = None
    sla_ci_low: Optional[float] = None
    sla_ci_high: Optional[float] = None
    avg_wait_time: Optional[float] = None
    avg_utilization_pct: Optional[float] = None
    avg_distance_km: Optional[float] = None
    labour_cost: Optional[float] = None
    travel_cost: Optional[float] = None
    fixed_cost: Optional[float] = None
    total_cost: Optional[float] = None
    avg_cost_per_order: Optional[float] = None

    @property
    def is_feasible(self) -> bool:
        return self.avg_cost_per_order is not None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def describe(self) -> str:
        return (
            f"{self.num_agents} agents: delivered {format_optional(self.avg_delivered)}"
            f"/{format_optional(self.avg_generated)}, avg time {format_optional(self.avg_delivery_time, suffix='m')}, "
            f"SLA {format_optional(self.pct_within_sla, suffix='%')}, "
            f"cost/order {format_optional(self.avg_cost_per_order, digits=2)}"
        )


RunLike = Union[RunStatistics, SimulationRun]


class RunAggregator:
    def __init__(self, costs: Optional[CostRates] = None, sla_minutes: float = 30.0) -> None:
        self.costs = costs or CostRates()
        self.sla_minutes = sla_minutes

    def aggregate(self, num_agents: int, runs: Sequence[RunLike]) -> AggregatedResult:
        stats: List[RunStatistics] = [r.stats if isinstance(r, SimulationRun) else r for r in runs]
        result = AggregatedResult(num_agents=num_agents, runs=len(stats))
        if not stats:
            return result

        n = len(stats)
        generated = sum(s.generated for s in stats)
        assigned = sum(s.assigned for s in stats)
        delivered = sum(s.delivered for s in stats)
        sum_wait = sum(s.sum_wait_time for s in stats)
        active_minutes = sum(s.active_agent_minutes for s in stats)
        distance_km = sum(s.distance_km for s in stats)
        delivery_times = [t for s in stats for t in s.delivery_times]
        # Recount against this aggregator's target so it need not match the run's
        within_sla = sum(1 for t in delivery_times if t <= self.sla_minutes)
        capacity = sum(num_agents * s.max_sim_time for s in stats)

        result.total_generated = generated
        result.total_assigned = assigned
        result.total_delivered = delivered
        result.avg_generated = generated / n
        result.avg_delivered = delivered / n
        result.avg_undelivered = (generated - delivered) / n
        result.completion_rate = delivered / generated if generated else None

        result.avg_delivery_time = mean(delivery_times)
        result.min_delivery_time = min(delivery_times) if delivery_times else None
        result.max_delivery_time = max(delivery_times) if delivery_times else None
        result.std_delivery_time = sample_std(delivery_times)

        if delivered:
            result.pct_within_sla = 100.0 * within_sla / delivered
            result.sla_ci_low, result.sla_ci_high = wilson_ci(within_sla, delivered)
        result.avg_wait_time = sum_wait / assigned if assigned else None
        result.avg_utilization_pct = 100.0 * active_minutes / capacity if capacity > 0 else None
        result.avg_distance_km = distance_km / n

        result.labour_cost = (active_minutes / n / 60.0) * self.costs.agent_cost_per_hour
        result.travel_cost = (distance_km / n) * self.costs.cost_per_km
        result.fixed_cost = result.avg_delivered * self.costs.fixed_cost_per_delivery
        result.total_cost = result.labour_cost + result.travel_cost + result.fixed_cost
        result.avg_cost_per_order = result.total_cost / result.avg_delivered if delivered else None

        logger.info(result.describe())
        return result
