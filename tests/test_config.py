"""
Configuration Tests
"""

import logging

import numpy as np
import pytest

from behavior_models.config import DEFAULT_SALT, PipelineConfig, configure_logging, make_rng
from behavior_models.contracts.base import ConfigurationError


class TestPipelineConfig:

    def test_defaults_from_empty_environment(self):
        config = PipelineConfig.from_env({})
        assert config == PipelineConfig()
        assert config.anonymization_salt == DEFAULT_SALT
        assert config.random_seed is None

    def test_environment_overrides(self):
        config = PipelineConfig.from_env({
            'ANONYMIZATION_SALT': 'prod-salt',
            'PIPELINE_RANDOM_SEED': '7',
            'PIPELINE_BATCH_WORKERS': '2',
            'PIPELINE_QUALITY_THRESHOLD': '0.8',
            'PIPELINE_EVALUATION_SAMPLE_LIMIT': '50',
            'PIPELINE_LOG_LEVEL': 'debug',
        })
        assert config == PipelineConfig(
            anonymization_salt='prod-salt',
            random_seed=7,
            batch_workers=2,
            quality_threshold=0.8,
            evaluation_sample_limit=50,
            log_level='DEBUG',
        )

    @pytest.mark.parametrize("environ", [
        {'PIPELINE_RANDOM_SEED': 'abc'},
        {'PIPELINE_BATCH_WORKERS': '0'},
        {'PIPELINE_QUALITY_THRESHOLD': '1.5'},
        {'ANONYMIZATION_SALT': ''},
    ])
    def test_invalid_environment(self, environ):
        with pytest.raises(ConfigurationError):
            PipelineConfig.from_env(environ)


class TestHelpers:

    def test_make_rng_passes_generators_through(self):
        rng = np.random.default_rng(3)
        assert make_rng(rng) is rng

    def test_make_rng_seeded(self):
        assert make_rng(5).random() == make_rng(5).random()

    def test_configure_logging_is_idempotent(self):
        first = configure_logging("WARNING")
        second = configure_logging("INFO")
        assert first is second is logging.getLogger("behavior_models")
        assert len(second.handlers) == 1
        assert second.level == logging.INFO
