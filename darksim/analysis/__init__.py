from .aggregation import AggregatedResult, RunAggregator

__all__ = ["AggregatedResult", "RunAggregator"]
