from .clustering import ClusteringResult, Facility, FacilityClusterer, select_facility
from .summary import (
    ClusterSummary,
    FacilityStats,
    PlacementResult,
    inter_facility_distances,
    place_facilities,
    summarize_clusters,
)

__all__ = [
    "ClusterSummary",
    "ClusteringResult",
    "Facility",
    "FacilityClusterer",
    "FacilityStats",
    "PlacementResult",
    "inter_facility_distances",
    "place_facilities",
    "select_facility",
    "summarize_clusters",
]
