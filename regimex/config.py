"""
Engine Configuration

Composes the per-stage configurations and the engine-level settings
(storage backend, logging, cycle bookkeeping). Every field can be
overridden from REGIMEX_* environment variables via from_env().
"""

from dataclasses import dataclass, field
from typing import Dict, Optional
import hashlib
import json
import logging
import os

from regimex.aggregation.config import AggregationConfig
from regimex.attention.config import AttentionConfig
from regimex.detection.config import DetectorConfig, MeanReversionConfig
from regimex.errors import ConfigurationError
from regimex.state.config import StateConfig
from regimex.strategy.schemas import ATTENTION_WEIGHTED
from regimex.trading.config import TradingConfig


@dataclass
class EngineConfig:
    """
    Complete engine configuration.

    Stage configs are validated together so a bad value fails at startup,
    not mid-cycle.
    """

    # ========================================
    # STAGE CONFIGURATIONS
    # ========================================
    aggregation: AggregationConfig = field(default_factory=AggregationConfig)
    attention: AttentionConfig = field(default_factory=AttentionConfig)
    detector: DetectorConfig = field(default_factory=DetectorConfig)
    mean_reversion: MeanReversionConfig = field(default_factory=MeanReversionConfig)
    state: StateConfig = field(default_factory=StateConfig)
    trading: TradingConfig = field(default_factory=TradingConfig)

    # ========================================
    # DECISION POLICY
    # ========================================
    default_strategy: str = ATTENTION_WEIGHTED
    min_decision_confidence: int = 60          # below this, BUY/SELL become HOLD
    extreme_volatility_threshold: int = 500    # ×1000; above this, everything becomes WAIT
    trade_on_degraded_data: bool = False

    # Recorded allocation per signal, percent of capital at full confidence
    signal_allocation_pct: Dict[str, int] = field(default_factory=lambda: {
        "STRONG_BUY": 40,
        "STRONG_SELL": 40,
        "BUY": 25,
        "SELL": 25,
        "HOLD": 10,
        "WAIT": 0,
    })

    # ========================================
    # BOOKKEEPING
    # ========================================
    price_window: int = 100
    max_cycles: int = 1_000_000
    signal_history_size: int = 50
    error_history_size: int = 50

    # ========================================
    # INFRASTRUCTURE
    # ========================================
    store_backend: str = "memory"              # memory | file | redis
    store_path: str = "data/regimex_state.json"
    redis_url: Optional[str] = None
    log_level: str = "INFO"
    webhook_url: Optional[str] = None

    config_version: str = "1.0.0"

    def validate(self) -> bool:
        """Validate every stage; raises ConfigurationError"""
        self.aggregation.validate()
        self.attention.validate()
        self.detector.validate()
        self.mean_reversion.validate()
        self.state.validate()
        self.trading.validate()

        if not 0 <= self.min_decision_confidence <= 100:
            raise ConfigurationError("min_decision_confidence must be in [0, 100]")
        if self.price_window < self.detector.medium_window:
            raise ConfigurationError("price_window must hold at least detector.medium_window prices")
        if self.max_cycles < 1:
            raise ConfigurationError("max_cycles must be positive")
        if self.store_backend not in ("memory", "file", "redis"):
            raise ConfigurationError(f"Invalid store_backend: {self.store_backend}")
        if not isinstance(logging.getLevelName(self.log_level.upper()), int):
            raise ConfigurationError(f"Invalid log_level: {self.log_level}")
        return True

    def to_dict(self) -> Dict:
        return {
            'aggregation': self.aggregation.to_dict(),
            'attention': self.attention.to_dict(),
            'detector': self.detector.to_dict(),
            'mean_reversion': self.mean_reversion.to_dict(),
            'state': self.state.to_dict(),
            'trading': self.trading.to_dict(),
            'default_strategy': self.default_strategy,
            'min_decision_confidence': self.min_decision_confidence,
            'extreme_volatility_threshold': self.extreme_volatility_threshold,
            'trade_on_degraded_data': self.trade_on_degraded_data,
            'signal_allocation_pct': dict(self.signal_allocation_pct),
            'price_window': self.price_window,
            'max_cycles': self.max_cycles,
            'signal_history_size': self.signal_history_size,
            'error_history_size': self.error_history_size,
            'store_backend': self.store_backend,
            'store_path': self.store_path,
            'log_level': self.log_level,
            'config_version': self.config_version,
        }

    def compute_hash(self) -> str:
        """Short, stable fingerprint of the decision-relevant configuration"""
        config_str = json.dumps(self.to_dict(), sort_keys=True)
        return hashlib.sha256(config_str.encode()).hexdigest()[:12]

    @classmethod
    def from_env(cls, environ: Optional[Dict[str, str]] = None) -> 'EngineConfig':
        """
        Build from REGIMEX_* environment variables.

        Recognized: REGIMEX_STORE_BACKEND, REGIMEX_STORE_PATH, REGIMEX_REDIS_URL,
        REGIMEX_LOG_LEVEL, REGIMEX_ASSET_PAIR, REGIMEX_STRATEGY, REGIMEX_WEBHOOK_URL,
        REGIMEX_MIN_SOURCES, REGIMEX_LOCK_TIMEOUT.
        """
        env = os.environ if environ is None else environ
        config = cls()
        config.store_backend = env.get('REGIMEX_STORE_BACKEND', config.store_backend)
        config.store_path = env.get('REGIMEX_STORE_PATH', config.store_path)
        config.redis_url = env.get('REGIMEX_REDIS_URL', config.redis_url)
        config.log_level = env.get('REGIMEX_LOG_LEVEL', config.log_level).upper()
        config.trading.asset_pair = env.get('REGIMEX_ASSET_PAIR', config.trading.asset_pair)
        config.default_strategy = env.get('REGIMEX_STRATEGY', config.default_strategy)
        config.webhook_url = env.get('REGIMEX_WEBHOOK_URL', config.webhook_url)
        try:
            if 'REGIMEX_MIN_SOURCES' in env:
                config.aggregation.min_sources = int(env['REGIMEX_MIN_SOURCES'])
            if 'REGIMEX_LOCK_TIMEOUT' in env:
                config.state.lock_timeout = float(env['REGIMEX_LOCK_TIMEOUT'])
        except ValueError as e:
            raise ConfigurationError(f"Invalid numeric environment setting: {e}") from e
        config.validate()
        return config
