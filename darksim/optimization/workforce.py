"""Sweep agent counts for one dark store and recommend the cheapest staffing.

For every agent count in the requested range the optimizer runs several
independent simulations, aggregates them and ranks the results by cost per
delivered order. Every run draws from its own child of a single
``numpy.random.SeedSequence``, so a sweep is reproducible from one base seed
regardless of how many worker processes execute it.
"""

from __future__ import annotations

import math
from concurrent.futures import ProcessPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

import numpy as np

from ..analysis.aggregation import AggregatedResult, RunAggregator
from ..config.models import SimulationParams
from ..errors import InvalidSelectionError, NoFeasibleConfigurationError
from ..geo.boundary import Point, ServiceBoundary
from ..logging import get_logger, log_timing
from ..placement.clustering import Facility
from ..simulation.engine import DispatchSimulator
from ..simulation.stats import RunStatistics

logger = get_logger(__name__)

STATUS_OK = "ok"
STATUS_NO_FEASIBLE = "no_feasible_configuration"


@dataclass(frozen=True)
class _RunJob:
    facility: Point
    boundary: ServiceBoundary
    num_agents: int
    run_index: int
    params: SimulationParams
    seed: int


def _execute_run(job: _RunJob) -> Tuple[int, int, RunStatistics]:
    """Process-pool entry point; must stay importable at module level."""
    sim = DispatchSimulator(job.facility, job.boundary, job.num_agents, job.params, seed=job.seed)
    run = sim.run()
    return job.num_agents, job.run_index, run.stats


@dataclass
class OptimizationResult:
    facility: Optional[Point]
    agent_counts: List[int] = field(default_factory=list)
    runs_per_count: int = 0
    results: List[AggregatedResult] = field(default_factory=list)
    recommended: Optional[AggregatedResult] = None
    status: str = STATUS_NO_FEASIBLE
    base_seed: Optional[int] = None

    @property
    def is_feasible(self) -> bool:
        return self.status == STATUS_OK and self.recommended is not None

    def require_recommendation(self) -> AggregatedResult:
        if not self.is_feasible:
            raise NoFeasibleConfigurationError(
                f"No tested agent count in {self.agent_counts or '[]'} delivered any orders"
            )
        return self.recommended

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "facility": self.facility.to_dict() if self.facility else None,
            "agent_counts": list(self.agent_counts),
            "runs_per_count": self.runs_per_count,
            "base_seed": self.base_seed,
            "recommended_agents": self.recommended.num_agents if self.recommended else None,
            "recommended": self.recommended.to_dict() if self.recommended else None,
            "results": [r.to_dict() for r in self.results],
        }


def _rank_key(result: AggregatedResult) -> Tuple[float, float, float, int]:
    cost = result.avg_cost_per_order if result.avg_cost_per_order is not None else math.inf
    avg_time = result.avg_delivery_time if result.avg_delivery_time is not None else math.inf
    delivered = result.avg_delivered or 0.0
    return (cost, avg_time, -delivered, result.num_agents)


def select_recommendation(
    results: Sequence[AggregatedResult],
    min_completion_rate: Optional[float] = None,
    min_sla_pct: Optional[float] = None,
) -> Optional[AggregatedResult]:
    """Pick the cheapest feasible entry, or None when nothing was delivered.

    With thresholds set, candidates are narrowed first: entries meeting both
    thresholds, then entries meeting the completion rate alone, then all
    feasible entries.
    """
    feasible = [r for r in results if r.is_feasible]
    if not feasible:
        return None

    candidates = feasible
    if min_completion_rate is not None or min_sla_pct is not None:
        min_rate = min_completion_rate if min_completion_rate is not None else 0.0
        min_sla = min_sla_pct if min_sla_pct is not None else 0.0
        meets_rate = [r for r in feasible if (r.completion_rate or 0.0) >= min_rate]
        meets_both = [r for r in meets_rate if (r.pct_within_sla or 0.0) >= min_sla]
        candidates = meets_both or meets_rate or feasible

    return min(candidates, key=_rank_key)


def _normalize_range(agent_range: Union[Tuple[int, int], Iterable[int]]) -> List[int]:
    if isinstance(agent_range, range):
        counts = list(agent_range)
    elif isinstance(agent_range, tuple) and len(agent_range) == 2:
        lo, hi = int(agent_range[0]), int(agent_range[1])
        if lo < 0 or hi < 0:
            raise InvalidSelectionError(f"Agent counts must be non-negative, got ({lo}, {hi})")
        return list(range(lo, hi + 1))
    else:
        counts = sorted({int(c) for c in agent_range})
    if any(c < 0 for c in counts):
        raise InvalidSelectionError("Agent counts must be non-negative")
    return counts


class WorkforceOptimizer:
    def __init__(
        self,
        boundary: ServiceBoundary,
        *,
        base_seed: Optional[int] = None,
        max_workers: int = 1,
        min_completion_rate: Optional[float] = None,
        min_sla_pct: Optional[float] = None,
    ) -> None:
        self.boundary = boundary
        self.base_seed = base_seed
        self.max_workers = max(1, int(max_workers))
        self.min_completion_rate = min_completion_rate
        self.min_sla_pct = min_sla_pct

    def _build_jobs(
        self,
        facility: Point,
        agent_counts: List[int],
        runs_per_count: int,
        params: SimulationParams,
    ) -> List[_RunJob]:
        children = np.random.SeedSequence(self.base_seed).spawn(len(agent_counts) * runs_per_count)
        jobs: List[_RunJob] = []
        for i, num_agents in enumerate(agent_counts):
            for run_index in range(runs_per_count):
                child = children[i * runs_per_count + run_index]
                jobs.append(
                    _RunJob(
                        facility=facility,
                        boundary=self.boundary,
                        num_agents=num_agents,
                        run_index=run_index,
                        params=params,
                        seed=int(child.generate_state(1)[0]),
                    )
                )
        return jobs

    def _execute(self, jobs: List[_RunJob]) -> Dict[Tuple[int, int], RunStatistics]:
        outcomes: Dict[Tuple[int, int], RunStatistics] = {}
        if self.max_workers <= 1 or len(jobs) <= 1:
            for job in jobs:
                num_agents, run_index, stats = _execute_run(job)
                outcomes[(num_agents, run_index)] = stats
            return outcomes

        with ProcessPoolExecutor(max_workers=self.max_workers) as executor:
            futures = {executor.submit(_execute_run, job): job for job in jobs}
            for fut in as_completed(futures):
                num_agents, run_index, stats = fut.result()
                outcomes[(num_agents, run_index)] = stats
        return outcomes

    def optimize(
        self,
        facility: Union[Facility, Point, None],
        agent_range: Union[Tuple[int, int], Iterable[int]],
        runs_per_count: int,
        params: Optional[SimulationParams] = None,
    ) -> OptimizationResult:
        if facility is None:
            raise InvalidSelectionError("A facility must be selected before optimizing")
        if runs_per_count < 0:
            raise InvalidSelectionError(f"runs_per_count must be >= 0, got {runs_per_count}")
        location = facility.location if isinstance(facility, Facility) else facility
        agent_counts = _normalize_range(agent_range)
        params = params or SimulationParams()

        result = OptimizationResult(
            facility=location,
            agent_counts=agent_counts,
            runs_per_count=int(runs_per_count),
            base_seed=self.base_seed,
        )
        if not agent_counts or runs_per_count == 0:
            logger.warning("Empty sweep (agent counts %s, %d runs each); nothing to optimize", agent_counts, runs_per_count)
            return result

        logger.info(
            "Optimizing workforce for %d agent counts (%d-%d) x %d runs, %d worker(s)",
            len(agent_counts),
            agent_counts[0],
            agent_counts[-1],
            runs_per_count,
            self.max_workers,
        )
        jobs = self._build_jobs(location, agent_counts, int(runs_per_count), params)
        with log_timing(logger, f"Sweep of {len(jobs)} runs"):
            outcomes = self._execute(jobs)

        aggregator = RunAggregator(params.costs, params.sla_minutes)
        for num_agents in agent_counts:
            runs = [outcomes[(num_agents, r)] for r in range(runs_per_count)]
            result.results.append(aggregator.aggregate(num_agents, runs))

        result.recommended = select_recommendation(result.results, self.min_completion_rate, self.min_sla_pct)
        if result.recommended is None:
            logger.warning("No feasible configuration: every tested agent count delivered zero orders")
            result.status = STATUS_NO_FEASIBLE
        else:
            result.status = STATUS_OK
            logger.info(
                "Recommended %d agents (cost/order %.2f)",
                result.recommended.num_agents,
                result.recommended.avg_cost_per_order,
            )
        return result
