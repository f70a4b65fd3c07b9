"""Per-facility demand statistics and the placement pipeline."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Dict, List, Optional, Sequence

import numpy as np
from shapely.errors import GEOSException
from shapely.geometry import MultiPoint
from shapely.geometry import Point as ShapelyPoint
from shapely.ops import voronoi_diagram

from ..geo.boundary import KM2_PER_DEG2, DemandPoint, Point, ServiceBoundary
from ..geo.sampling import generate_demand
from ..logging import get_logger, log_timing
from ..utils import mean, sample_std
from .clustering import ClusteringResult, Facility, FacilityClusterer

if TYPE_CHECKING:
    from ..config.models import DemandSettings

logger = get_logger(__name__)

# Cells smaller than this are too small for a meaningful density figure
MIN_DENSITY_AREA_KM2 = 0.01


@dataclass
class FacilityStats:
    facility_id: int
    order_count: int = 0
    avg_distance_km: Optional[float] = None
    min_distance_km: Optional[float] = None
    max_distance_km: Optional[float] = None
    std_distance_km: Optional[float] = None
    service_area_km2: Optional[float] = None
    order_density: Optional[float] = None

    def to_dict(self) -> Dict[str, object]:
        return dict(self.__dict__)


@dataclass
class ClusterSummary:
    facilities: List[FacilityStats] = field(default_factory=list)
    total_points: int = 0
    overall_avg_distance_km: Optional[float] = None
    overall_min_distance_km: Optional[float] = None
    overall_max_distance_km: Optional[float] = None
    overall_std_distance_km: Optional[float] = None

    def to_dict(self) -> Dict[str, object]:
        return {
            "total_points": self.total_points,
            "overall_avg_distance_km": self.overall_avg_distance_km,
            "overall_min_distance_km": self.overall_min_distance_km,
            "overall_max_distance_km": self.overall_max_distance_km,
            "overall_std_distance_km": self.overall_std_distance_km,
            "facilities": [f.to_dict() for f in self.facilities],
        }


def _cell_area_km2(geom, ref_lat: float) -> float:
    return float(geom.area) * KM2_PER_DEG2 * math.cos(math.radians(ref_lat))


def service_areas_km2(facilities: Sequence[Facility], boundary: ServiceBoundary) -> Dict[int, Optional[float]]:
    """Area of each facility's Voronoi cell clipped to the boundary."""
    if not facilities:
        return {}
    if len(facilities) == 1:
        return {facilities[0].id: boundary.area_km2}

    poly = boundary.to_shapely()
    ref_lat = boundary.vertices[0].lat
    areas: Dict[int, Optional[float]] = {f.id: None for f in facilities}
    try:
        sites = MultiPoint([(f.lng, f.lat) for f in facilities])
        cells = voronoi_diagram(sites, envelope=poly)
    except GEOSException as e:
        logger.warning("Voronoi service areas unavailable: %s", e)
        return areas

    for cell in cells.geoms:
        for f in facilities:
            if areas[f.id] is None and cell.intersects(ShapelyPoint(f.lng, f.lat)):
                areas[f.id] = _cell_area_km2(cell.intersection(poly), ref_lat)
                break
    return areas


def summarize_clusters(
    points: Sequence[Point],
    facilities: Sequence[Facility],
    boundary: ServiceBoundary,
) -> ClusterSummary:
    """Assign each demand point to its nearest facility and describe the result.

    Assignment uses the same planar degree distance as the clusterer; reported
    distances are great-circle kilometres.
    """
    summary = ClusterSummary(total_points=len(points))
    if not facilities:
        return summary

    per_facility: Dict[int, List[float]] = {f.id: [] for f in facilities}
    if points:
        coords = np.array([[p.lat, p.lng] for p in points], dtype=float)
        sites = np.array([[f.lat, f.lng] for f in facilities], dtype=float)
        deltas = coords[:, None, :] - sites[None, :, :]
        nearest = np.sqrt((deltas ** 2).sum(axis=2)).argmin(axis=1)
        for point, idx in zip(points, nearest):
            facility = facilities[int(idx)]
            per_facility[facility.id].append(point.distance_km(facility.location))

    areas = service_areas_km2(facilities, boundary)
    all_distances: List[float] = []
    for f in facilities:
        distances = per_facility[f.id]
        all_distances.extend(distances)
        area = areas.get(f.id)
        density = None
        if area is not None:
            density = len(distances) / area if area > MIN_DENSITY_AREA_KM2 else 0.0
        summary.facilities.append(
            FacilityStats(
                facility_id=f.id,
                order_count=len(distances),
                avg_distance_km=mean(distances),
                min_distance_km=min(distances) if distances else None,
                max_distance_km=max(distances) if distances else None,
                std_distance_km=sample_std(distances),
                service_area_km2=area,
                order_density=density,
            )
        )

    summary.overall_avg_distance_km = mean(all_distances)
    summary.overall_min_distance_km = min(all_distances) if all_distances else None
    summary.overall_max_distance_km = max(all_distances) if all_distances else None
    summary.overall_std_distance_km = sample_std(all_distances)
    return summary


def inter_facility_distances(facilities: Sequence[Facility]) -> List[List[float]]:
    n = len(facilities)
    matrix = [[0.0] * n for _ in range(n)]
    for i in range(n):
        for j in range(i + 1, n):
            d = facilities[i].location.distance_km(facilities[j].location)
            matrix[i][j] = d
            matrix[j][i] = d
    return matrix


@dataclass
class PlacementResult:
    demand: List[DemandPoint]
    clustering: ClusteringResult
    summary: ClusterSummary

    @property
    def facilities(self) -> List[Facility]:
        return self.clustering.facilities

    def to_dict(self) -> Dict[str, object]:
        return {
            "requested_k": self.clustering.requested_k,
            "effective_k": self.clustering.effective_k,
            "iterations": self.clustering.iterations,
            "converged": self.clustering.converged,
            "duplicates_removed": self.clustering.duplicates_removed,
            "demand_points": len(self.demand),
            "facilities": [f.to_dict() for f in self.facilities],
            "inter_facility_km": inter_facility_distances(self.facilities),
            "summary": self.summary.to_dict(),
        }


def place_facilities(
    boundary: ServiceBoundary,
    settings: "DemandSettings",
    k: Optional[int] = None,
    seed: Optional[int] = None,
) -> PlacementResult:
    """Generate demand, cluster it into `k` dark stores and summarize coverage."""
    rng = np.random.default_rng(settings.seed if seed is None else seed)
    k = settings.num_facilities if k is None else k

    demand = generate_demand(boundary, settings, rng)
    with log_timing(logger, "Facility clustering"):
        clustering = FacilityClusterer(boundary, rng=rng).cluster(demand, k, max_iterations=settings.max_iterations)
    logger.info(
        "Placed %d of %d requested facilities after %d iterations (converged=%s)",
        clustering.effective_k,
        clustering.requested_k,
        clustering.iterations,
        clustering.converged,
    )
    summary = summarize_clusters(demand, clustering.facilities, boundary)
    return PlacementResult(demand=demand, clustering=clustering, summary=summary)
