from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Sequence, Tuple

from shapely.geometry import MultiPolygon, Polygon, shape

from ..errors import ConfigError
from ..utils import haversine_km, planar_distance_deg

KM2_PER_DEG2 = 111.32 * 111.32


@dataclass(frozen=True)
class Point:
    lat: float
    lng: float

    def distance_km(self, other: "Point") -> float:
        return haversine_km(self.lat, self.lng, other.lat, other.lng)

    def planar_distance(self, other: "Point") -> float:
        return planar_distance_deg(self.lat, self.lng, other.lat, other.lng)

    def lerp(self, other: "Point", fraction: float) -> "Point":
        """Linear interpolation toward `other` in coordinate space."""
        return Point(
            lat=self.lat + (other.lat - self.lat) * fraction,
            lng=self.lng + (other.lng - self.lng) * fraction,
        )

    def to_dict(self) -> Dict[str, float]:
        return {"lat": self.lat, "lng": self.lng}


@dataclass(frozen=True)
class DemandPoint(Point):
    kind: str = "background"  # background | hotspot


class ServiceBoundary:
    """Simple closed polygon bounding the service area.

    Vertices are kept in order; the last vertex connects back to the first.
    Containment uses the ray-casting parity test. Points lying exactly on an
    edge may fall either way depending on floating point, which callers must
    tolerate.
    """

    def __init__(self, vertices: Sequence[Point]) -> None:
        verts = list(vertices)
        # GeoJSON rings repeat the first vertex; drop the closing duplicate
        if len(verts) > 1 and verts[0] == verts[-1]:
            verts = verts[:-1]
        if len(verts) < 3:
            raise ConfigError("ServiceBoundary requires at least 3 distinct vertices")
        self.vertices: Tuple[Point, ...] = tuple(verts)
        lats = [p.lat for p in self.vertices]
        lngs = [p.lng for p in self.vertices]
        self._bounds = (min(lats), min(lngs), max(lats), max(lngs))

    def __repr__(self) -> str:
        return f"ServiceBoundary(vertices={len(self.vertices)}, bounds={self._bounds})"

    def __eq__(self, other: object) -> bool:
        return isinstance(other, ServiceBoundary) and self.vertices == other.vertices

    def __hash__(self) -> int:
        return hash(self.vertices)

    @property
    def bounds(self) -> Tuple[float, float, float, float]:
        """(south, west, north, east) in degrees."""
        return self._bounds

    def contains(self, point: Point) -> bool:
        x, y = point.lng, point.lat
        inside = False
        verts = self.vertices
        j = len(verts) - 1
        for i in range(len(verts)):
            xi, yi = verts[i].lng, verts[i].lat
            xj, yj = verts[j].lng, verts[j].lat
            if (yi > y) != (yj > y) and x < (xj - xi) * (y - yi) / (yj - yi) + xi:
                inside = not inside
            j = i
        return inside

    @property
    def area_km2(self) -> float:
        """Planar area in degrees² scaled to km² at the latitude of the first vertex."""
        scale = KM2_PER_DEG2 * math.cos(math.radians(self.vertices[0].lat))
        return self.to_shapely().area * scale

    @property
    def is_degenerate(self) -> bool:
        return self.to_shapely().area <= 0.0

    @property
    def centroid(self) -> Point:
        poly = self.to_shapely()
        if poly.area > 0:
            c = poly.centroid
            return Point(lat=c.y, lng=c.x)
        return Point(
            lat=sum(p.lat for p in self.vertices) / len(self.vertices),
            lng=sum(p.lng for p in self.vertices) / len(self.vertices),
        )

    def to_shapely(self) -> Polygon:
        return Polygon([(p.lng, p.lat) for p in self.vertices])

    def to_geojson(self) -> Dict[str, Any]:
        ring = [[p.lng, p.lat] for p in self.vertices]
        ring.append(ring[0])
        return {"type": "Polygon", "coordinates": [ring]}

    @classmethod
    def from_lng_lat(cls, coords: Iterable[Sequence[float]]) -> "ServiceBoundary":
        return cls([Point(lat=float(c[1]), lng=float(c[0])) for c in coords])

    @classmethod
    def from_geojson(cls, data: Dict[str, Any]) -> "ServiceBoundary":
        """Build from a GeoJSON Polygon/MultiPolygon geometry, Feature or FeatureCollection.

        MultiPolygons are reduced to their largest member; interior rings are ignored.
        """
        kind = data.get("type")
        if kind == "FeatureCollection":
            features = data.get("features") or []
            if not features:
                raise ConfigError("Boundary FeatureCollection has no features")
            data = features[0]
            kind = data.get("type")
        if kind == "Feature":
            data = data.get("geometry") or {}
        try:
            geom = shape(data)
        except Exception as exc:
            raise ConfigError(f"Invalid boundary geometry: {exc}") from exc
        if isinstance(geom, MultiPolygon):
            geom = max(geom.geoms, key=lambda g: g.area)
        if not isinstance(geom, Polygon):
            raise ConfigError(f"Boundary must be a Polygon, got {geom.geom_type}")
        return cls.from_lng_lat(list(geom.exterior.coords))
