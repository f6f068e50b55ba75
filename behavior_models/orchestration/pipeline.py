"""
Pipeline Services

Builds one instance of every component from a PipelineConfig and runs
the end-to-end flow: raw telemetry -> anonymize -> synthesize -> train.

All randomness is derived from the configured seed, so two containers
built from the same config produce identical outputs.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Callable, List, Mapping, Optional, Sequence
import logging
import threading

from ..config import PipelineConfig, make_rng
from ..contracts.data_contracts import (
    AnonymizationConfig,
    AnonymizedRecord,
    RawRecord,
    SyntheticConfig,
    SyntheticSample,
)
from ..contracts.learning_contracts import TrainingProgress
from ..contracts.lifecycle_contracts import ModelVersion
from ..core.reward_model import RewardModel
from ..data.anonymization import DataAnonymizer
from ..data.synthesis import SyntheticDataGenerator
from .orchestrator import ModelOrchestrator

logger = logging.getLogger(__name__)


@dataclass
class PipelineServices:
    """Process-wide component instances."""
    config: PipelineConfig
    anonymizer: DataAnonymizer
    generator: SyntheticDataGenerator
    reward_model: RewardModel
    orchestrator: ModelOrchestrator

    @staticmethod
    def build(config: Optional[PipelineConfig] = None) -> PipelineServices:
        config = config or PipelineConfig()
        anonymizer_rng, generator_rng, orchestrator_rng = make_rng(config.random_seed).spawn(3)
        return PipelineServices(
            config=config,
            anonymizer=DataAnonymizer(
                salt=config.anonymization_salt,
                rng=anonymizer_rng,
                max_workers=config.batch_workers,
            ),
            generator=SyntheticDataGenerator(rng=generator_rng),
            reward_model=RewardModel(max_workers=config.batch_workers),
            orchestrator=ModelOrchestrator(
                rng=orchestrator_rng,
                evaluation_sample_limit=config.evaluation_sample_limit,
            ),
        )


@dataclass(frozen=True)
class PipelineRun:
    """Outcome of one end-to-end training run."""
    version: ModelVersion
    anonymized_count: int
    synthetic_count: int
    average_quality: float
    diversity: float

    def to_dict(self) -> dict:
        return {
            'version': self.version.to_dict(),
            'anonymizedCount': self.anonymized_count,
            'syntheticCount': self.synthetic_count,
            'averageQuality': self.average_quality,
            'diversity': self.diversity,
        }


class TrainingPipeline:
    """Raw telemetry to a trained, evaluating model version."""

    def __init__(self, services: PipelineServices):
        self._services = services

    def anonymize(
        self,
        records: Sequence[RawRecord],
        config: AnonymizationConfig,
    ) -> List[AnonymizedRecord]:
        return self._services.anonymizer.batch_anonymize(records, config)

    def synthesize(
        self,
        records: Sequence[AnonymizedRecord],
        config: SyntheticConfig,
    ) -> List[SyntheticSample]:
        return self._services.generator.generate_from_anonymized(records, config)

    def run(
        self,
        records: Sequence[RawRecord],
        anonymization: AnonymizationConfig,
        synthesis: SyntheticConfig,
        model_type,
        epochs: int,
        hyperparams: Optional[Mapping] = None,
        progress: Optional[Callable[[TrainingProgress], None]] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> PipelineRun:
        logger.info("Pipeline run on %d raw records", len(records))
        anonymized = self.anonymize(records, anonymization)
        samples = self.synthesize(anonymized, synthesis)

        generator = self._services.generator
        average_quality = (
            sum(s.quality_score for s in samples) / len(samples) if samples else 0.0
        )
        version = self._services.orchestrator.train_new_model(
            model_type,
            samples,
            epochs,
            hyperparams=hyperparams,
            progress=progress,
            cancel_event=cancel_event,
        )
        return PipelineRun(
            version=version,
            anonymized_count=len(anonymized),
            synthetic_count=len(samples),
            average_quality=average_quality,
            diversity=generator.calculate_diversity_score(samples),
        )
