"""
Tests for engine configuration
"""

import pytest

from regimex.aggregation.config import AggregationConfig
from regimex.config import EngineConfig
from regimex.detection.config import DetectorConfig
from regimex.errors import ConfigurationError


class TestValidation:

    def test_defaults_valid(self):
        assert EngineConfig().validate()

    def test_stage_errors_surface(self):
        with pytest.raises(ConfigurationError):
            EngineConfig(aggregation=AggregationConfig(min_sources=0)).validate()

    @pytest.mark.parametrize("kwargs", [
        {'min_decision_confidence': 101},
        {'max_cycles': 0},
        {'store_backend': 'sqlite'},
        {'log_level': 'CHATTY'},
        {'price_window': 10},
    ])
    def test_engine_level_errors(self, kwargs):
        with pytest.raises(ConfigurationError):
            EngineConfig(**kwargs).validate()

    def test_window_follows_detector(self):
        config = EngineConfig(price_window=10, detector=DetectorConfig(short_window=5, medium_window=10))
        assert config.validate()


class TestHash:

    def test_stable(self):
        assert EngineConfig().compute_hash() == EngineConfig().compute_hash()
        assert len(EngineConfig().compute_hash()) == 12

    def test_changes_with_decision_settings(self):
        assert EngineConfig(min_decision_confidence=70).compute_hash() != EngineConfig().compute_hash()

    def test_ignores_secrets(self):
        config = EngineConfig(webhook_url="https://hooks.example.com/secret")
        assert config.compute_hash() == EngineConfig().compute_hash()
        assert 'webhook_url' not in config.to_dict()


class TestFromEnv:

    def test_empty_environment_gives_defaults(self):
        assert EngineConfig.from_env({}).to_dict() == EngineConfig().to_dict()

    def test_overrides(self):
        config = EngineConfig.from_env({
            'REGIMEX_STORE_BACKEND': 'file',
            'REGIMEX_STORE_PATH': '/tmp/regimex.json',
            'REGIMEX_LOG_LEVEL': 'debug',
            'REGIMEX_ASSET_PAIR': 'ETH/USDC',
            'REGIMEX_STRATEGY': 'mean_reversion',
            'REGIMEX_MIN_SOURCES': '3',
            'REGIMEX_LOCK_TIMEOUT': '60',
            'REGIMEX_WEBHOOK_URL': 'https://hooks.example.com/x',
        })
        assert config.store_backend == 'file'
        assert config.store_path == '/tmp/regimex.json'
        assert config.log_level == 'DEBUG'
        assert config.trading.asset_pair == 'ETH/USDC'
        assert config.default_strategy == 'mean_reversion'
        assert config.aggregation.min_sources == 3
        assert config.state.lock_timeout == 60.0
        assert config.webhook_url == 'https://hooks.example.com/x'

    def test_bad_number(self):
        with pytest.raises(ConfigurationError):
            EngineConfig.from_env({'REGIMEX_MIN_SOURCES': 'three'})

    def test_invalid_backend(self):
        with pytest.raises(ConfigurationError):
            EngineConfig.from_env({'REGIMEX_STORE_BACKEND': 'mongo'})
