from __future__ import annotations

import json

import pytest

from darksim.config.loaders import load_boundary, load_scenario, load_scenario_config
from darksim.config.models import (
    AgentSettings,
    DemandZone,
    OptimizationSettings,
    OrderProfile,
    SimulationParams,
)
from darksim.errors import ConfigError
from darksim.geo import Point

BOUNDARY = {
    "type": "Feature",
    "properties": {},
    "geometry": {
        "type": "Polygon",
        "coordinates": [[[76.7, 30.7], [76.8, 30.7], [76.8, 30.8], [76.7, 30.8], [76.7, 30.7]]],
    },
}


def test_simulation_params_defaults():
    params = SimulationParams()
    assert params.agents.min_speed_kmph == 20
    assert params.agents.max_speed_kmph == 30
    assert params.agents.handling_time_min == 5
    assert params.traffic.base_factor == 1.0
    assert params.costs.agent_cost_per_hour == 150
    assert params.sla_minutes == 30
    assert params.order_interval_min == pytest.approx(480 / 50)
    assert SimulationParams(orders_per_run=0).order_interval_min == float("inf")


def test_simulation_params_from_dict_nested():
    params = SimulationParams.from_dict(
        {
            "max_sim_time_min": 240,
            "orders_per_run": 24,
            "agents": {"min_speed_kmph": 15, "handling_time_min": 3},
            "traffic": {"dynamic": True, "factors": [0.9, 1.1]},
            "order_profile": {
                "kind": "zones",
                "zones": [{"kind": "hotspot", "center": {"lat": 30.74, "lng": 76.78}, "spread_km": 2}],
            },
            "unknown_key": "ignored",
        }
    )
    assert params.max_sim_time_min == 240
    assert params.agents.min_speed_kmph == 15
    assert params.traffic.factors == (0.9, 1.1)
    zone = params.order_profile.zones[0]
    assert zone.center == Point(30.74, 76.78)
    assert zone.spread_km == 2


@pytest.mark.parametrize(
    "data",
    [
        {"orders_per_run": -1},
        {"agents": {"min_speed_kmph": 0}},
        {"order_profile": {"kind": "spiral"}},
        {"order_profile": {"kind": "zones"}},
        {"costs": {"cost_per_km": -1}},
    ],
)
def test_simulation_params_validation(data):
    with pytest.raises(ConfigError):
        SimulationParams.from_dict(data)


def test_zone_weight_and_window():
    zone = DemandZone.from_dict({"kind": "uniform", "min_orders": 10, "max_orders": 30, "start_min": 60, "end_min": 120})
    assert zone.weight == 20
    assert zone.is_active(60) and zone.is_active(120)
    assert not zone.is_active(121)
    with pytest.raises(ConfigError):
        DemandZone(kind="hotspot").validate()
    with pytest.raises(ConfigError):
        OrderProfile(kind="zones", zones=[DemandZone(kind="lake")]).validate()


def test_route_zone_from_dict():
    zone = DemandZone.from_dict(
        {"kind": "route", "route_points": [[30.74, 76.78], {"lat": 30.76, "lng": 76.80}], "spread_km": 0.5}
    )
    zone.validate()
    assert zone.route_points == [Point(30.74, 76.78), Point(30.76, 76.80)]
    with pytest.raises(ConfigError):
        DemandZone(kind="route").validate()


def test_fatigue_settings():
    agents = AgentSettings.from_dict({"fatigue_enabled": True, "fatigue_delivery_threshold": 3})
    agents.validate()
    assert agents.fatigue_enabled
    assert agents.fatigue_delivery_threshold == 3
    assert agents.min_fatigue_factor == 0.6
    assert not AgentSettings().fatigue_enabled
    with pytest.raises(ConfigError):
        AgentSettings(min_fatigue_factor=0.0).validate()
    with pytest.raises(ConfigError):
        AgentSettings(fatigue_step=-0.1).validate()


def test_optimization_settings_agent_range():
    settings = OptimizationSettings.from_dict({"agent_range": "2-6", "runs_per_count": 3})
    assert settings.agent_counts == [2, 3, 4, 5, 6]
    with pytest.raises(ConfigError):
        OptimizationSettings.from_dict({"min_sla_pct": 120})


def test_inverted_agent_range_is_an_empty_sweep():
    settings = OptimizationSettings.from_dict({"agent_range": "5-3"})
    assert (settings.min_agents, settings.max_agents) == (5, 3)
    assert settings.agent_counts == []


def test_malformed_agent_range_is_a_config_error():
    with pytest.raises(ConfigError):
        OptimizationSettings.from_dict({"agent_range": "three-five"})


def test_load_scenario_resolves_relative_boundary(tmp_path):
    (tmp_path / "area.geojson").write_text(json.dumps(BOUNDARY), encoding="utf-8")
    config_dir = tmp_path / "config"
    config_dir.mkdir()
    (config_dir / "scenario.json").write_text(
        json.dumps(
            {
                "name": "Test",
                "boundary_file": "../area.geojson",
                "facility": [30.75, 76.75],
                "demand": {"num_facilities": 2, "seed": 3},
                "optimization": {"agent_range": "1-3"},
            }
        ),
        encoding="utf-8",
    )

    cfg, boundary = load_scenario(tmp_path)
    assert cfg.name == "Test"
    assert cfg.facility == Point(30.75, 76.75)
    assert cfg.demand.num_facilities == 2
    assert cfg.optimization.agent_counts == [1, 2, 3]
    assert len(boundary.vertices) == 4
    assert boundary.contains(cfg.facility)


def test_load_scenario_boundary_override(tmp_path):
    path = tmp_path / "override.geojson"
    path.write_text(json.dumps(BOUNDARY), encoding="utf-8")
    cfg, boundary = load_scenario(None, boundary_file=path)
    assert cfg.name == "Unnamed Scenario"
    assert boundary.contains(Point(30.75, 76.75))


def test_load_scenario_without_boundary(tmp_path):
    path = tmp_path / "scenario.json"
    path.write_text(json.dumps({"name": "No area"}), encoding="utf-8")
    assert load_scenario_config(path).boundary_file is None
    with pytest.raises(ConfigError):
        load_scenario(path)


def test_load_boundary_errors(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_boundary(tmp_path / "missing.geojson")
    bad = tmp_path / "bad.geojson"
    bad.write_text("{not json", encoding="utf-8")
    with pytest.raises(ConfigError):
        load_boundary(bad)
    with pytest.raises(FileNotFoundError):
        load_scenario_config(tmp_path / "nowhere")
