from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..utils import mean, sample_std


@dataclass
class RunStatistics:
    """Counters and sums collected by a single dispatch run."""

    num_agents: int = 0
    max_sim_time: int = 0
    sla_minutes: float = 0.0
    generated: int = 0
    assigned: int = 0
    delivered: int = 0
    within_sla: int = 0
    sum_delivery_time: float = 0.0
    sum_wait_time: float = 0.0
    active_agent_minutes: float = 0.0
    travel_minutes: float = 0.0
    handling_minutes: float = 0.0
    distance_km: float = 0.0
    ticks_elapsed: int = 0
    delivery_times: List[float] = field(default_factory=list)

    def record_assignment(self, wait_time: float) -> None:
        self.assigned += 1
        self.sum_wait_time += wait_time

    def record_delivery(self, duration: float) -> None:
        self.delivered += 1
        self.sum_delivery_time += duration
        self.delivery_times.append(duration)
        if duration <= self.sla_minutes:
            self.within_sla += 1

    @property
    def undelivered(self) -> int:
        return self.generated - self.delivered

    @property
    def avg_delivery_time(self) -> Optional[float]:
        return mean(self.delivery_times)

    @property
    def std_delivery_time(self) -> Optional[float]:
        return sample_std(self.delivery_times)

    @property
    def avg_wait_time(self) -> Optional[float]:
        return self.sum_wait_time / self.assigned if self.assigned else None

    @property
    def sla_pct(self) -> Optional[float]:
        return 100.0 * self.within_sla / self.delivered if self.delivered else None

    @property
    def utilization_pct(self) -> Optional[float]:
        capacity = self.num_agents * self.max_sim_time
        return 100.0 * self.active_agent_minutes / capacity if capacity > 0 else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "num_agents": self.num_agents,
            "generated": self.generated,
            "assigned": self.assigned,
            "delivered": self.delivered,
            "undelivered": self.undelivered,
            "within_sla": self.within_sla,
            "avg_delivery_time": self.avg_delivery_time,
            "std_delivery_time": self.std_delivery_time,
            "avg_wait_time": self.avg_wait_time,
            "sla_pct": self.sla_pct,
            "utilization_pct": self.utilization_pct,
            "active_agent_minutes": self.active_agent_minutes,
            "travel_minutes": self.travel_minutes,
            "handling_minutes": self.handling_minutes,
            "distance_km": self.distance_km,
            "ticks_elapsed": self.ticks_elapsed,
        }
