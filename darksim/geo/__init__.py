"""Spatial primitives and demand-point sampling inside a service boundary."""

from .boundary import DemandPoint, Point, ServiceBoundary
from .sampling import gaussian_points_in_polygon, generate_demand, uniform_points_in_polygon

__all__ = [
    "DemandPoint",
    "Point",
    "ServiceBoundary",
    "gaussian_points_in_polygon",
    "generate_demand",
    "uniform_points_in_polygon",
]
