from __future__ import annotations

import math
from typing import Iterable, List, Optional, Sequence, Tuple

EARTH_RADIUS_KM = 6371.0
# Rough km per degree of latitude, used for radius -> degree conversions
KM_PER_DEGREE = 111.0


def haversine_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlambda = math.radians(lng2 - lng1)
    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def planar_distance_deg(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Equirectangular-approximation distance in raw degrees.

    Cheap and monotone enough for nearest-centroid assignment over a city.
    """
    d_lat = lat1 - lat2
    d_lng = lng1 - lng2
    return math.sqrt(d_lat * d_lat + d_lng * d_lng)


def mean(values: Iterable[float]) -> Optional[float]:
    vals = list(values)
    return (sum(vals) / len(vals)) if vals else None


def sample_std(values: Sequence[float]) -> Optional[float]:
    """Sample standard deviation (n - 1). None for fewer than two values."""
    n = len(values)
    if n < 2:
        return None
    mu = sum(values) / n
    return math.sqrt(sum((x - mu) ** 2 for x in values) / (n - 1))


def wilson_ci(successes: int, total: int, z: float = 1.96) -> Tuple[float, float]:
    if total <= 0:
        return (0.0, 0.0)
    phat = successes / total
    denom = 1 + z * z / total
    center = phat + z * z / (2 * total)
    margin = z * math.sqrt((phat * (1 - phat) + z * z / (4 * total)) / total)
    lower = (center - margin) / denom
    upper = (center + margin) / denom
    return (max(0.0, lower), min(1.0, upper))


def parse_bounds(text: str) -> Tuple[int, int]:
    """Parse '1-4' into (1, 4); a bare number is both bounds. Bounds are not reordered."""
    text = text.strip()
    if "-" in text:
        a, b = text.split("-", 1)
        return int(a), int(b)
    return int(text), int(text)


def parse_range(text: str) -> List[int]:
    """Parse '1-4' into [1, 2, 3, 4]; an inverted range yields []."""
    lo, hi = parse_bounds(text)
    return list(range(lo, hi + 1))


def format_optional(value: Optional[float], digits: int = 1, suffix: str = "") -> str:
    """Render an optional metric, using 'N/A' for undefined values."""
    if value is None or (isinstance(value, float) and math.isnan(value)):
        return "N/A"
    return f"{value:.{digits}f}{suffix}"
