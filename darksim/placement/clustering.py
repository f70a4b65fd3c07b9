"""K-means placement of dark stores over sampled demand."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Set, Tuple

import numpy as np

from ..errors import InvalidSelectionError
from ..geo.boundary import Point, ServiceBoundary
from ..geo.sampling import uniform_points_in_polygon
from ..logging import get_logger

logger = get_logger(__name__)

DEFAULT_MAX_ITERATIONS = 30
CONVERGENCE_TOLERANCE_DEG = 1e-4
DEDUP_DECIMALS = 5
DEDUP_TOLERANCE_DEG = 1e-5


@dataclass(frozen=True)
class Facility:
    id: int
    name: str
    location: Point

    @property
    def lat(self) -> float:
        return self.location.lat

    @property
    def lng(self) -> float:
        return self.location.lng

    def to_dict(self) -> Dict[str, object]:
        return {"id": self.id, "name": self.name, "lat": self.lat, "lng": self.lng}


@dataclass
class ClusteringResult:
    facilities: List[Facility] = field(default_factory=list)
    requested_k: int = 0
    effective_k: int = 0
    iterations: int = 0
    converged: bool = False
    duplicates_removed: int = 0

    @property
    def locations(self) -> List[Point]:
        return [f.location for f in self.facilities]

    @property
    def degraded(self) -> bool:
        """True when fewer facilities came out than were asked for."""
        return self.effective_k < self.requested_k


class FacilityClusterer:
    """Lloyd's k-means over demand points using planar degree distance.

    Seeds are drawn without replacement from the input points. Clusters that
    lose all their points are reseeded with a uniform sample inside the
    boundary. After convergence, centroids that coincide (same 5-decimal
    rounding or closer than `dedup_tolerance_deg`) are collapsed, so the
    result may hold fewer than k facilities.
    """

    def __init__(
        self,
        boundary: ServiceBoundary,
        *,
        rng: Optional[np.random.Generator] = None,
        seed: Optional[int] = None,
        convergence_tolerance: float = CONVERGENCE_TOLERANCE_DEG,
        dedup_tolerance_deg: float = DEDUP_TOLERANCE_DEG,
    ) -> None:
        self.boundary = boundary
        self.rng = rng if rng is not None else np.random.default_rng(seed)
        self.convergence_tolerance = convergence_tolerance
        self.dedup_tolerance_deg = dedup_tolerance_deg

    def cluster(
        self,
        points: Sequence[Point],
        k: int,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
    ) -> ClusteringResult:
        requested_k = int(k)
        if requested_k <= 0 or not points:
            if requested_k > 0:
                logger.warning("No demand points supplied; returning no facilities")
            return ClusteringResult(requested_k=max(0, requested_k))

        coords = np.array([[p.lat, p.lng] for p in points], dtype=float)
        n = len(coords)
        k = requested_k
        if n < k:
            logger.warning("Only %d demand points for k=%d; reducing k to %d", n, k, n)
            k = n

        seed_idx = self.rng.choice(n, size=k, replace=False)
        centroids = coords[seed_idx].copy()

        iterations = 0
        converged = False
        for iteration in range(max(0, int(max_iterations))):
            iterations = iteration + 1
            assignments = self._assign(coords, centroids)
            updated = np.empty_like(centroids)
            for i in range(k):
                members = coords[assignments == i]
                if len(members) > 0:
                    updated[i] = members.mean(axis=0)
                else:
                    updated[i] = self._reseed(centroids[i], i)

            movement = float(np.sqrt(((updated - centroids) ** 2).sum(axis=1)).sum())
            centroids = updated
            logger.debug("k-means iteration %d: total centroid movement %.6f", iterations, movement)
            if movement < self.convergence_tolerance:
                converged = True
                break

        facilities, removed = self._deduplicate(centroids)
        if len(facilities) < requested_k:
            logger.warning(
                "K-means produced %d unique facilities, fewer than the requested %d",
                len(facilities),
                requested_k,
            )
        return ClusteringResult(
            facilities=facilities,
            requested_k=requested_k,
            effective_k=len(facilities),
            iterations=iterations,
            converged=converged,
            duplicates_removed=removed,
        )

    @staticmethod
    def _assign(coords: np.ndarray, centroids: np.ndarray) -> np.ndarray:
        # argmin keeps the lowest centroid index on ties
        deltas = coords[:, None, :] - centroids[None, :, :]
        return np.sqrt((deltas ** 2).sum(axis=2)).argmin(axis=1)

    def _reseed(self, previous: np.ndarray, index: int) -> np.ndarray:
        logger.warning("Cluster %d became empty; re-initializing centroid", index)
        sample = uniform_points_in_polygon(1, self.boundary, self.rng)
        if sample:
            return np.array([sample[0].lat, sample[0].lng])
        return previous.copy()

    def _deduplicate(self, centroids: np.ndarray) -> Tuple[List[Facility], int]:
        seen: Set[Tuple[float, float]] = set()
        kept: List[Point] = []
        removed = 0
        for lat, lng in centroids:
            key = (round(float(lat), DEDUP_DECIMALS), round(float(lng), DEDUP_DECIMALS))
            candidate = Point(lat=float(lat), lng=float(lng))
            if key in seen or any(candidate.planar_distance(p) < self.dedup_tolerance_deg for p in kept):
                removed += 1
                continue
            seen.add(key)
            kept.append(candidate)
        facilities = [Facility(id=i, name=f"Dark Store {i + 1}", location=p) for i, p in enumerate(kept)]
        return facilities, removed


def select_facility(facilities: Sequence[Facility], facility_id: Optional[int]) -> Facility:
    if not facilities:
        raise InvalidSelectionError("No facilities available; run placement first")
    if facility_id is None:
        return facilities[0]
    for facility in facilities:
        if facility.id == facility_id:
            return facility
    raise InvalidSelectionError(f"Unknown facility id {facility_id}; have {[f.id for f in facilities]}")
