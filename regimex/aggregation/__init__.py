"""
Observation aggregation: multi-source fusion with robust outlier rejection
"""

from regimex.aggregation.config import AggregationConfig
from regimex.aggregation.schemas import Observation, RawReading, FusedEstimate, AggregationResult
from regimex.aggregation.aggregator import ObservationAggregator

__all__ = [
    'AggregationConfig',
    'Observation',
    'RawReading',
    'FusedEstimate',
    'AggregationResult',
    'ObservationAggregator',
]
