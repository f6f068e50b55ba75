"""
Pipeline configuration.

Process-wide settings are read once, at startup, into a frozen
PipelineConfig. Component-level knobs (policy hyperparameters, reward
weights, evaluation thresholds) live in their own config dataclasses.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Mapping, Optional
import logging
import os

import numpy as np

from .contracts.base import ConfigurationError


DEFAULT_SALT = "default-salt-change-in-production"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


@dataclass(frozen=True)
class PipelineConfig:
    """
    Settings shared by all services.

    WHY FROZEN:
    The salt must stay constant for a deployment so that pseudonyms
    remain stable across calls. Changes require a new config instance.
    """
    anonymization_salt: str = DEFAULT_SALT
    random_seed: Optional[int] = None
    batch_workers: int = 4
    quality_threshold: float = 0.7
    evaluation_sample_limit: int = 100
    log_level: str = "INFO"

    def __post_init__(self):
        if not self.anonymization_salt:
            raise ConfigurationError("anonymization_salt must be a non-empty string")
        if self.batch_workers < 1:
            raise ConfigurationError("batch_workers must be at least 1")
        if not 0.0 <= self.quality_threshold <= 1.0:
            raise ConfigurationError("quality_threshold must be between 0.0 and 1.0")
        if self.evaluation_sample_limit < 1:
            raise ConfigurationError("evaluation_sample_limit must be at least 1")

    @staticmethod
    def from_env(environ: Optional[Mapping[str, str]] = None) -> PipelineConfig:
        env = os.environ if environ is None else environ
        seed = env.get("PIPELINE_RANDOM_SEED")
        try:
            return PipelineConfig(
                anonymization_salt=env.get("ANONYMIZATION_SALT", DEFAULT_SALT),
                random_seed=int(seed) if seed not in (None, "") else None,
                batch_workers=int(env.get("PIPELINE_BATCH_WORKERS", "4")),
                quality_threshold=float(env.get("PIPELINE_QUALITY_THRESHOLD", "0.7")),
                evaluation_sample_limit=int(env.get("PIPELINE_EVALUATION_SAMPLE_LIMIT", "100")),
                log_level=env.get("PIPELINE_LOG_LEVEL", "INFO").upper(),
            )
        except ValueError as exc:
            if isinstance(exc, ConfigurationError):
                raise
            raise ConfigurationError(f"Invalid pipeline environment setting: {exc}") from exc


def make_rng(seed=None) -> np.random.Generator:
    """Seedable random source injected into every stochastic component."""
    if isinstance(seed, np.random.Generator):
        return seed
    return np.random.default_rng(seed)


def configure_logging(level: str = "INFO") -> logging.Logger:
    """Attach a single stream handler to the package logger."""
    logger = logging.getLogger("behavior_models")
    logger.setLevel(level)
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)
    return logger
