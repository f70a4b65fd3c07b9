from __future__ import annotations

import json
from pathlib import Path
from typing import Optional, Tuple, Union

from ..errors import ConfigError
from ..geo.boundary import ServiceBoundary
from ..logging import get_logger
from .models import ScenarioConfig

logger = get_logger(__name__)


def _resolve_scenario_path(path: Union[str, Path]) -> Path:
    """Accept either a scenario JSON file or a directory that contains one."""
    p = Path(path)
    if p.is_file():
        return p
    candidates = [
        p / "config" / "scenario.json",
        p / "scenario.json",
    ]
    for candidate in candidates:
        if candidate.exists():
            return candidate
    raise FileNotFoundError(f"scenario.json not found in {path}")


def load_scenario_config(path: Union[str, Path]) -> ScenarioConfig:
    scenario_path = _resolve_scenario_path(path)
    try:
        data = json.loads(scenario_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Invalid JSON in {scenario_path}: {exc}") from exc
    cfg = ScenarioConfig.from_dict(data)
    # Boundary paths are relative to the scenario file
    if cfg.boundary_file and not Path(cfg.boundary_file).is_absolute():
        cfg.boundary_file = str((scenario_path.parent / cfg.boundary_file).resolve())
    logger.info("Loaded scenario '%s' from %s", cfg.name, scenario_path)
    return cfg


def load_boundary(path: Union[str, Path]) -> ServiceBoundary:
    boundary_path = Path(path)
    if not boundary_path.exists():
        raise FileNotFoundError(f"Boundary GeoJSON not found: {boundary_path}")
    try:
        data = json.loads(boundary_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Invalid GeoJSON in {boundary_path}: {exc}") from exc
    boundary = ServiceBoundary.from_geojson(data)
    logger.info(
        "Loaded service boundary with %d vertices (%.1f km²) from %s",
        len(boundary.vertices),
        boundary.area_km2,
        boundary_path.name,
    )
    return boundary


def load_scenario(
    path: Optional[Union[str, Path]] = None,
    boundary_file: Optional[Union[str, Path]] = None,
) -> Tuple[ScenarioConfig, ServiceBoundary]:
    """Load a scenario together with its boundary.

    `boundary_file` overrides the one named by the scenario. With no scenario
    path, defaults are used and `boundary_file` is required.
    """
    cfg = load_scenario_config(path) if path is not None else ScenarioConfig()
    if boundary_file is not None:
        cfg.boundary_file = str(boundary_file)
    if not cfg.boundary_file:
        raise ConfigError(f"Scenario '{cfg.name}' does not name a boundary_file")
    return cfg, load_boundary(cfg.boundary_file)
