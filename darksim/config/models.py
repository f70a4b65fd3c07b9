from __future__ import annotations

import inspect
from dataclasses import dataclass, field, fields
from typing import Any, Dict, List, Optional, Tuple

from ..errors import ConfigError
from ..geo.boundary import Point


def _parse_point(raw: Any) -> Optional[Point]:
    """Accept {"lat", "lng"}, {"latitude", "longitude"} or a [lat, lng] pair."""
    if raw is None:
        return None
    if isinstance(raw, Point):
        return raw
    try:
        if isinstance(raw, dict):
            if "lat" in raw:
                return Point(lat=float(raw["lat"]), lng=float(raw.get("lng", raw.get("lon"))))
            return Point(lat=float(raw["latitude"]), lng=float(raw["longitude"]))
        lat, lng = raw
        return Point(lat=float(lat), lng=float(lng))
    except (KeyError, TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid coordinate: {raw!r}") from exc


def _known_keys(cls: type, data: Dict[str, Any]) -> Dict[str, Any]:
    valid_keys = {p.name for p in inspect.signature(cls).parameters.values()}
    return {k: v for k, v in data.items() if k in valid_keys}


@dataclass
class AgentSettings:
    min_speed_kmph: float = 20.0
    max_speed_kmph: float = 30.0
    handling_time_min: int = 5
    # Agents spawn within +/- this many degrees of the facility
    spawn_jitter_deg: float = 0.0
    # Fatigue slows agents after a streak of deliveries or a long continuous job
    fatigue_enabled: bool = False
    fatigue_delivery_threshold: int = 5
    fatigue_active_threshold_min: int = 90
    fatigue_step: float = 0.1
    min_fatigue_factor: float = 0.6
    fatigue_recovery_idle_min: int = 20
    fatigue_recovery_step: float = 0.05

    def validate(self) -> None:
        if self.min_speed_kmph <= 0:
            raise ConfigError("min_speed_kmph must be positive")
        if self.max_speed_kmph <= 0:
            raise ConfigError("max_speed_kmph must be positive")
        if self.handling_time_min < 0:
            raise ConfigError("handling_time_min must be >= 0")
        if self.spawn_jitter_deg < 0:
            raise ConfigError("spawn_jitter_deg must be >= 0")
        if not (0.0 < self.min_fatigue_factor <= 1.0):
            raise ConfigError("min_fatigue_factor must be within (0, 1]")
        if self.fatigue_step < 0 or self.fatigue_recovery_step < 0:
            raise ConfigError("fatigue steps must be >= 0")
        if self.fatigue_delivery_threshold <= 0 or self.fatigue_active_threshold_min <= 0:
            raise ConfigError("fatigue thresholds must be positive")
        if self.fatigue_recovery_idle_min < 0:
            raise ConfigError("fatigue_recovery_idle_min must be >= 0")

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "AgentSettings":
        return AgentSettings(**_known_keys(AgentSettings, data))


@dataclass
class TrafficSettings:
    base_factor: float = 1.0
    dynamic: bool = False
    update_interval_min: int = 30
    factors: Tuple[float, ...] = (0.7, 0.8, 0.9, 1.0, 1.1, 1.2, 1.3)

    def validate(self) -> None:
        if self.base_factor <= 0:
            raise ConfigError("base_factor must be positive")
        if self.update_interval_min <= 0:
            raise ConfigError("update_interval_min must be positive")
        if self.dynamic and (not self.factors or any(f <= 0 for f in self.factors)):
            raise ConfigError("dynamic traffic needs a non-empty list of positive factors")

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "TrafficSettings":
        filtered = _known_keys(TrafficSettings, data)
        if "factors" in filtered:
            filtered["factors"] = tuple(float(f) for f in filtered["factors"])
        return TrafficSettings(**filtered)


@dataclass
class CostRates:
    agent_cost_per_hour: float = 150.0
    cost_per_km: float = 5.0
    fixed_cost_per_delivery: float = 10.0

    def validate(self) -> None:
        for f in fields(self):
            if getattr(self, f.name) < 0:
                raise ConfigError(f"{f.name} must be >= 0")

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "CostRates":
        return CostRates(**_known_keys(CostRates, data))


ZONE_KINDS = ("uniform", "hotspot", "route")
ORDER_PROFILE_KINDS = ("disk", "focused", "boundary", "zones")


@dataclass
class DemandZone:
    """A weighted source of orders active during a window of simulated minutes."""

    kind: str = "hotspot"
    min_orders: int = 10
    max_orders: int = 50
    start_min: int = 0
    end_min: int = 1440
    center: Optional[Point] = None
    spread_km: float = 1.0
    # Orders for "route" zones fall in the waypoints' bounding box, widened by spread_km
    route_points: List[Point] = field(default_factory=list)

    @property
    def weight(self) -> float:
        return max(0.0, (self.min_orders + self.max_orders) / 2.0)

    def is_active(self, minute: int) -> bool:
        return self.start_min <= minute <= self.end_min

    def validate(self) -> None:
        if self.kind not in ZONE_KINDS:
            raise ConfigError(f"Unknown zone kind '{self.kind}'")
        if self.kind == "hotspot" and self.center is None:
            raise ConfigError("hotspot zones need a center")
        if self.kind == "route" and not self.route_points:
            raise ConfigError("route zones need at least one route point")
        if self.end_min < self.start_min:
            raise ConfigError("zone end_min must not precede start_min")
        if self.spread_km < 0:
            raise ConfigError("spread_km must be >= 0")

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "DemandZone":
        filtered = _known_keys(DemandZone, data)
        filtered["center"] = _parse_point(data.get("center"))
        filtered["route_points"] = [_parse_point(p) for p in data.get("route_points", [])]
        return DemandZone(**filtered)


@dataclass
class OrderProfile:
    kind: str = "disk"
    radius_km: float = 5.0
    focus_radius_km: float = 3.0
    zones: List[DemandZone] = field(default_factory=list)

    def validate(self) -> None:
        if self.kind not in ORDER_PROFILE_KINDS:
            raise ConfigError(f"Unknown order profile '{self.kind}'")
        if self.radius_km < 0 or self.focus_radius_km < 0:
            raise ConfigError("order radii must be >= 0")
        if self.kind == "zones" and not self.zones:
            raise ConfigError("'zones' order profile needs at least one zone")
        for zone in self.zones:
            zone.validate()

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "OrderProfile":
        filtered = _known_keys(OrderProfile, data)
        filtered["zones"] = [DemandZone.from_dict(z) for z in data.get("zones", [])]
        return OrderProfile(**filtered)


@dataclass
class SimulationParams:
    """Everything a single dispatch run needs apart from the facility and agent count."""

    max_sim_time_min: int = 480
    orders_per_run: int = 50
    sla_minutes: float = 30.0
    agents: AgentSettings = field(default_factory=AgentSettings)
    traffic: TrafficSettings = field(default_factory=TrafficSettings)
    costs: CostRates = field(default_factory=CostRates)
    order_profile: OrderProfile = field(default_factory=OrderProfile)
    record_snapshots: bool = False

    def validate(self) -> None:
        if self.max_sim_time_min < 0:
            raise ConfigError("max_sim_time_min must be >= 0")
        if self.orders_per_run < 0:
            raise ConfigError("orders_per_run must be >= 0")
        if self.sla_minutes < 0:
            raise ConfigError("sla_minutes must be >= 0")
        self.agents.validate()
        self.traffic.validate()
        self.costs.validate()
        self.order_profile.validate()

    @property
    def order_interval_min(self) -> float:
        """Ticks between generated orders; infinite when no orders are wanted."""
        if self.orders_per_run <= 0:
            return float("inf")
        return self.max_sim_time_min / self.orders_per_run

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "SimulationParams":
        filtered = _known_keys(SimulationParams, data)
        filtered["agents"] = AgentSettings.from_dict(data.get("agents", {}))
        filtered["traffic"] = TrafficSettings.from_dict(data.get("traffic", {}))
        filtered["costs"] = CostRates.from_dict(data.get("costs", {}))
        filtered["order_profile"] = OrderProfile.from_dict(data.get("order_profile", {}))
        params = SimulationParams(**filtered)
        params.validate()
        return params


@dataclass
class DemandSettings:
    background_count: int = 300
    hotspot_count: int = 200
    hotspot_center: Optional[Point] = None
    hotspot_sigma_deg: float = 0.05
    num_facilities: int = 5
    max_iterations: int = 30
    seed: Optional[int] = None

    def validate(self) -> None:
        if self.background_count < 0 or self.hotspot_count < 0:
            raise ConfigError("demand counts must be >= 0")
        if self.hotspot_sigma_deg < 0:
            raise ConfigError("hotspot_sigma_deg must be >= 0")
        if self.num_facilities < 0:
            raise ConfigError("num_facilities must be >= 0")
        if self.max_iterations <= 0:
            raise ConfigError("max_iterations must be positive")

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "DemandSettings":
        filtered = _known_keys(DemandSettings, data)
        filtered["hotspot_center"] = _parse_point(data.get("hotspot_center"))
        settings = DemandSettings(**filtered)
        settings.validate()
        return settings


@dataclass
class OptimizationSettings:
    min_agents: int = 1
    max_agents: int = 10
    runs_per_count: int = 5
    base_seed: Optional[int] = None
    max_workers: int = 1
    # Optional qualification tiers applied before cost ranking
    min_completion_rate: Optional[float] = None
    min_sla_pct: Optional[float] = None

    def validate(self) -> None:
        if self.max_workers <= 0:
            raise ConfigError("max_workers must be positive")
        if self.min_completion_rate is not None and not (0.0 <= self.min_completion_rate <= 1.0):
            raise ConfigError("min_completion_rate must be within 0..1")
        if self.min_sla_pct is not None and not (0.0 <= self.min_sla_pct <= 100.0):
            raise ConfigError("min_sla_pct must be within 0..100")

    @property
    def agent_counts(self) -> List[int]:
        return list(range(int(self.min_agents), int(self.max_agents) + 1))

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "OptimizationSettings":
        filtered = _known_keys(OptimizationSettings, data)
        if "agent_range" in data and isinstance(data["agent_range"], str):
            from ..utils import parse_bounds

            # An inverted range is kept as min > max and yields an empty sweep
            try:
                filtered["min_agents"], filtered["max_agents"] = parse_bounds(data["agent_range"])
            except ValueError as exc:
                raise ConfigError(f"Invalid agent_range: {data['agent_range']!r}") from exc
        settings = OptimizationSettings(**filtered)
        settings.validate()
        return settings


@dataclass
class ScenarioConfig:
    name: str = "Unnamed Scenario"
    boundary_file: Optional[str] = None
    # Optional explicit facility; otherwise `facility_id` indexes the clustered set
    facility: Optional[Point] = None
    facility_id: Optional[int] = None
    demand: DemandSettings = field(default_factory=DemandSettings)
    simulation: SimulationParams = field(default_factory=SimulationParams)
    optimization: OptimizationSettings = field(default_factory=OptimizationSettings)
    log_level: str = "INFO"

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "ScenarioConfig":
        filtered = _known_keys(ScenarioConfig, data)
        filtered["facility"] = _parse_point(data.get("facility"))
        filtered["demand"] = DemandSettings.from_dict(data.get("demand", {}))
        filtered["simulation"] = SimulationParams.from_dict(data.get("simulation", {}))
        filtered["optimization"] = OptimizationSettings.from_dict(data.get("optimization", {}))
        return ScenarioConfig(**filtered)
