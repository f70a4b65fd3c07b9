from __future__ import annotations

import math

import pytest

from darksim.analysis import AggregatedResult, RunAggregator
from darksim.config.models import CostRates
from darksim.simulation import RunStatistics, SimulationRun


def _runs():
    a = RunStatistics(
        num_agents=2,
        max_sim_time=100,
        sla_minutes=30,
        generated=4,
        assigned=4,
        delivered=3,
        sum_wait_time=6,
        active_agent_minutes=120,
        distance_km=10,
        delivery_times=[20, 25, 40],
    )
    b = RunStatistics(
        num_agents=2,
        max_sim_time=100,
        sla_minutes=30,
        generated=4,
        assigned=3,
        delivered=2,
        sum_wait_time=3,
        active_agent_minutes=60,
        distance_km=6,
        delivery_times=[10, 35],
    )
    return [a, b]


def test_aggregate_two_runs():
    aggregator = RunAggregator(CostRates(agent_cost_per_hour=150, cost_per_km=5, fixed_cost_per_delivery=10), 30)
    result = aggregator.aggregate(2, _runs())

    assert result.runs == 2
    assert result.total_generated == 8
    assert result.total_delivered == 5
    assert result.avg_generated == 4
    assert result.avg_delivered == 2.5
    assert result.avg_undelivered == 1.5
    assert result.completion_rate == pytest.approx(0.625)

    assert result.avg_delivery_time == pytest.approx(26.0)
    assert result.min_delivery_time == 10
    assert result.max_delivery_time == 40
    assert result.std_delivery_time == pytest.approx(math.sqrt(570 / 4))
    assert result.pct_within_sla == pytest.approx(60.0)
    assert result.sla_ci_low < 0.6 < result.sla_ci_high
    assert result.avg_wait_time == pytest.approx(9 / 7)
    assert result.avg_utilization_pct == pytest.approx(45.0)

    assert result.labour_cost == pytest.approx(225.0)
    assert result.travel_cost == pytest.approx(40.0)
    assert result.fixed_cost == pytest.approx(25.0)
    assert result.total_cost == pytest.approx(290.0)
    assert result.avg_cost_per_order == pytest.approx(116.0)
    assert result.is_feasible


def test_sla_target_comes_from_aggregator():
    result = RunAggregator(CostRates(), sla_minutes=20).aggregate(2, _runs())
    assert result.pct_within_sla == pytest.approx(40.0)


def test_zero_runs_is_all_na():
    result = RunAggregator().aggregate(3, [])
    assert result.runs == 0
    assert result.avg_delivered is None
    assert result.avg_cost_per_order is None
    assert result.avg_utilization_pct is None
    assert not result.is_feasible


def test_no_deliveries_gives_undefined_cost():
    stats = RunStatistics(num_agents=1, max_sim_time=60, sla_minutes=30, generated=5, active_agent_minutes=0)
    result = RunAggregator().aggregate(1, [stats, stats])
    assert result.completion_rate == 0.0
    assert result.avg_delivery_time is None
    assert result.std_delivery_time is None
    assert result.pct_within_sla is None
    assert result.sla_ci_low is None
    assert result.avg_cost_per_order is None
    assert result.total_cost == 0.0
    assert result.avg_undelivered == 5


def test_zero_agents_zero_utilization_is_undefined():
    stats = RunStatistics(num_agents=0, max_sim_time=60, generated=2)
    result = RunAggregator().aggregate(0, [stats])
    assert result.avg_utilization_pct is None


def test_accepts_simulation_runs():
    runs = [SimulationRun(stats=s) for s in _runs()]
    assert RunAggregator().aggregate(2, runs).total_delivered == 5


def test_to_dict_and_describe():
    result = RunAggregator().aggregate(2, _runs())
    payload = result.to_dict()
    assert payload["num_agents"] == 2
    assert payload["avg_cost_per_order"] == result.avg_cost_per_order
    assert "2 agents" in result.describe()
    assert "N/A" in AggregatedResult(num_agents=4).describe()
