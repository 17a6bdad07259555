"""
Market regime detection

Two interchangeable policies:
    - MarketStateDetector: ordered rules over integer window features
    - MeanReversionDetector: moving-average deviation in standard deviations
"""

from regimex.detection.config import DetectorConfig, MeanReversionConfig
from regimex.detection.schemas import (
    MarketRegime,
    TradingSignal,
    MarketFeatures,
    DetectionResult,
    MeanReversionResult,
)
from regimex.detection.features import compute_features
from regimex.detection.detector import MarketStateDetector
from regimex.detection.mean_reversion import MeanReversionDetector

__all__ = [
    'DetectorConfig',
    'MeanReversionConfig',
    'MarketRegime',
    'TradingSignal',
    'MarketFeatures',
    'DetectionResult',
    'MeanReversionResult',
    'compute_features',
    'MarketStateDetector',
    'MeanReversionDetector',
]
