"""
Integration Test Fixtures

Explicit, seeded fixtures for deterministic testing.
"""

from dataclasses import replace
from datetime import datetime, timezone
from typing import List

from behavior_models.config import PipelineConfig
from behavior_models.contracts.data_contracts import (
    AnonymizationTechnique,
    AnonymizedRecord,
    RawRecord,
    SyntheticSample,
    features_from_raw,
)
from behavior_models.contracts.lifecycle_contracts import ModelMetrics, ModelVersion
from behavior_models.orchestration.orchestrator import ModelOrchestrator
from behavior_models.orchestration.pipeline import PipelineServices


# =============================================================================
# FIXED VALUES (deterministic)
# =============================================================================

SEED = 20260101
SALT = "test-salt"

T1 = datetime(2026, 1, 1, 10, 0, 0, tzinfo=timezone.utc)
T2 = datetime(2026, 1, 1, 10, 5, 0, tzinfo=timezone.utc)
T3 = datetime(2026, 1, 1, 10, 10, 0, tzinfo=timezone.utc)

PASSING_METRICS = ModelMetrics(empathy_score=0.9, false_intervention_rate=0.05, latency=100.0)
FAILING_METRICS = ModelMetrics(empathy_score=0.5, false_intervention_rate=0.2, latency=300.0)


# =============================================================================
# DATA PHASE FIXTURES
# =============================================================================

def create_raw_records() -> List[RawRecord]:
    """Six telemetry records carrying identifiers next to behavioral signals."""
    rows = [
        ("u1", 72.0, 0.61, -0.6, 0.4, "calm", True),
        ("u2", 88.0, 0.42, -0.2, 0.7, "tense", False),
        ("u3", 65.0, 0.77, 0.3, 0.2, "calm", True),
        ("u4", 95.0, 0.35, -0.8, 0.9, "tense", True),
        ("u5", 70.0, 0.58, 0.1, 0.3, "calm", False),
        ("u6", 80.0, 0.50, -0.4, 0.5, "neutral", True),
    ]
    return [
        RawRecord(
            user_id=user,
            data={
                'userId': user,
                'email': f"{user}@example.com",
                'bpm': bpm,
                'resonanceIndex': resonance,
                'valence': valence,
                'arousal': arousal,
                'mood': mood,
                'morning': morning,
            },
            timestamp=T1,
        )
        for user, bpm, resonance, valence, arousal, mood, morning in rows
    ]


def make_anonymized(data: dict) -> AnonymizedRecord:
    """An already-privatized record, for tests that start at the generator."""
    return AnonymizedRecord(
        features=features_from_raw(data),
        technique=AnonymizationTechnique.DIFFERENTIAL_PRIVACY,
        privacy_loss=0.5,
        original_type='dict',
        timestamp=T1,
    )


def create_anonymized_records() -> List[AnonymizedRecord]:
    return [
        make_anonymized({'bpm': 60.0, 'valence': -0.5, 'mood': 'calm', 'morning': True}),
        make_anonymized({'bpm': 70.0, 'valence': 0.0, 'mood': 'calm', 'morning': False}),
        make_anonymized({'bpm': 80.0, 'valence': 0.5, 'mood': 'tense', 'morning': True}),
        make_anonymized({'bpm': 75.0, 'valence': 0.2, 'mood': 'calm', 'morning': True}),
    ]


# =============================================================================
# TRAINING FIXTURES
# =============================================================================

def make_sample(valence: float, arousal: float = 0.0, quality: float = 1.0, **extra) -> SyntheticSample:
    features = {'valence': valence, 'arousal': arousal}
    features.update(extra)
    return SyntheticSample.from_raw(features, quality_score=quality, synthetic_id="fixture", generated_at=T1)


def create_training_samples() -> List[SyntheticSample]:
    """A mix of distressed, neutral and content states."""
    return [
        make_sample(-0.8, 0.6, resonanceIndex=0.7, bpm=92.0, hour=21.0),
        make_sample(-0.6, 0.8, resonanceIndex=0.4, bpm=101.0, hour=23.0),
        make_sample(-0.2, 0.3, resonanceIndex=0.5, bpm=75.0, hour=9.0),
        make_sample(0.0, 0.1, resonanceIndex=0.6, bpm=68.0, hour=12.0),
        make_sample(0.4, 0.2, resonanceIndex=0.8, bpm=64.0, hour=15.0),
        make_sample(0.7, 0.5, resonanceIndex=0.9, bpm=70.0, hour=18.0),
    ]


# =============================================================================
# SERVICE FIXTURES
# =============================================================================

def create_services(seed: int = SEED) -> PipelineServices:
    return PipelineServices.build(PipelineConfig(anonymization_salt=SALT, random_seed=seed))


def set_metrics(orchestrator: ModelOrchestrator, version: ModelVersion, metrics: ModelMetrics) -> ModelVersion:
    """Record externally measured metrics on a stored version."""
    current = orchestrator.registry.get(version.version_id)
    updated = replace(current, metrics=metrics)
    orchestrator.registry.register(updated)
    return updated
