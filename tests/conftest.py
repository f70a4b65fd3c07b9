from __future__ import annotations

import math

import pytest

from darksim.config.models import AgentSettings, SimulationParams
from darksim.geo.boundary import Point, ServiceBoundary
from darksim.utils import EARTH_RADIUS_KM

CENTER = Point(lat=30.74, lng=76.78)


def offset_point(origin: Point, bearing_deg: float, distance_km: float) -> Point:
    """Point reached by travelling `distance_km` along a great circle from `origin`."""
    delta = distance_km / EARTH_RADIUS_KM
    theta = math.radians(bearing_deg)
    phi1 = math.radians(origin.lat)
    lambda1 = math.radians(origin.lng)
    phi2 = math.asin(math.sin(phi1) * math.cos(delta) + math.cos(phi1) * math.sin(delta) * math.cos(theta))
    lambda2 = lambda1 + math.atan2(
        math.sin(theta) * math.sin(delta) * math.cos(phi1),
        math.cos(delta) - math.sin(phi1) * math.sin(phi2),
    )
    return Point(lat=math.degrees(phi2), lng=math.degrees(lambda2))


def square(center: Point, half_side_deg: float) -> ServiceBoundary:
    return ServiceBoundary(
        [
            Point(center.lat - half_side_deg, center.lng - half_side_deg),
            Point(center.lat - half_side_deg, center.lng + half_side_deg),
            Point(center.lat + half_side_deg, center.lng + half_side_deg),
            Point(center.lat + half_side_deg, center.lng - half_side_deg),
        ]
    )


@pytest.fixture
def facility() -> Point:
    return CENTER


@pytest.fixture
def boundary() -> ServiceBoundary:
    return square(CENTER, 0.2)


@pytest.fixture
def small_boundary() -> ServiceBoundary:
    return square(CENTER, 0.1)


@pytest.fixture
def degenerate_boundary() -> ServiceBoundary:
    return ServiceBoundary([Point(30.70, 76.70), Point(30.75, 76.75), Point(30.80, 76.80)])


def make_params(**overrides) -> SimulationParams:
    """Fixed-speed params so timing is predictable."""
    agents = overrides.pop("agents", AgentSettings(min_speed_kmph=20, max_speed_kmph=20, handling_time_min=5))
    params = SimulationParams(agents=agents, **overrides)
    params.validate()
    return params
