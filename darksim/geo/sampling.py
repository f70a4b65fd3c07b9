"""Rejection samplers for demand points inside a service boundary.

Both samplers spend at most ``ATTEMPTS_PER_POINT * n`` candidate draws and
return whatever they collected, so callers must tolerate short results.
"""

from __future__ import annotations

import math
from typing import TYPE_CHECKING, List, Optional

import numpy as np

from ..logging import get_logger
from .boundary import DemandPoint, Point, ServiceBoundary

if TYPE_CHECKING:
    from ..config.models import DemandSettings


logger = get_logger(__name__)

ATTEMPTS_PER_POINT = 500


def uniform_points_in_polygon(n: int, boundary: ServiceBoundary, rng: np.random.Generator) -> List[Point]:
    points: List[Point] = []
    if n <= 0:
        return points
    if boundary.is_degenerate:
        logger.warning("Boundary has zero area; uniform sampling returns no points")
        return points

    south, west, north, east = boundary.bounds
    attempts = 0
    max_attempts = n * ATTEMPTS_PER_POINT
    while len(points) < n and attempts < max_attempts:
        attempts += 1
        lng = west + rng.random() * (east - west)
        lat = south + rng.random() * (north - south)
        candidate = Point(lat=lat, lng=lng)
        if boundary.contains(candidate):
            points.append(candidate)

    if len(points) < n:
        logger.warning("Uniform sampling yielded %d of %d points after %d attempts", len(points), n, attempts)
    return points


def _polar_normal_pair(rng: np.random.Generator) -> tuple:
    """Two independent standard normals via the polar Box-Muller transform."""
    while True:
        u = rng.random() * 2 - 1
        v = rng.random() * 2 - 1
        s = u * u + v * v
        if 0 < s < 1:
            break
    mul = math.sqrt(-2.0 * math.log(s) / s)
    return u * mul, v * mul


def gaussian_points_in_polygon(
    center: Point,
    sigma_deg: float,
    n: int,
    boundary: ServiceBoundary,
    rng: np.random.Generator,
) -> List[Point]:
    points: List[Point] = []
    if n <= 0:
        return points

    attempts = 0
    max_attempts = n * ATTEMPTS_PER_POINT
    while len(points) < n and attempts < max_attempts:
        attempts += 1
        z_lng, z_lat = _polar_normal_pair(rng)
        candidate = Point(lat=center.lat + sigma_deg * z_lat, lng=center.lng + sigma_deg * z_lng)
        if boundary.contains(candidate):
            points.append(candidate)

    if len(points) < n:
        logger.warning("Gaussian sampling yielded %d of %d points after %d attempts", len(points), n, attempts)
    return points


def generate_demand(
    boundary: ServiceBoundary,
    settings: "DemandSettings",
    rng: Optional[np.random.Generator] = None,
) -> List[DemandPoint]:
    """Background demand spread over the whole boundary plus one Gaussian hotspot."""
    rng = rng if rng is not None else np.random.default_rng(settings.seed)
    center = settings.hotspot_center or boundary.centroid

    background = uniform_points_in_polygon(settings.background_count, boundary, rng)
    hotspot = gaussian_points_in_polygon(center, settings.hotspot_sigma_deg, settings.hotspot_count, boundary, rng)

    demand = [DemandPoint(lat=p.lat, lng=p.lng, kind="background") for p in background]
    demand.extend(DemandPoint(lat=p.lat, lng=p.lng, kind="hotspot") for p in hotspot)
    logger.info(
        "Generated %d demand points (%d background, %d hotspot)",
        len(demand),
        len(background),
        len(hotspot),
    )
    return demand
