from .workforce import (
    STATUS_NO_FEASIBLE,
    STATUS_OK,
    OptimizationResult,
    WorkforceOptimizer,
    select_recommendation,
)

__all__ = [
    "OptimizationResult",
    "STATUS_NO_FEASIBLE",
    "STATUS_OK",
    "WorkforceOptimizer",
    "select_recommendation",
]
