"""
Synthetic Data Generator

Fits per-feature distributions over anonymized records and samples new
feature bags that resemble them.

BOUNDARY ENFORCEMENT:
- Consumes AnonymizedRecord only, never raw telemetry
- Generators are closed-form statistical samplers, not trained networks
- Every draw comes from the injected random stream
"""

from __future__ import annotations
from collections import Counter
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Sequence
import logging
import math
import time

import numpy as np

from ..config import make_rng
from ..contracts.data_contracts import (
    AnonymizedRecord,
    DistributionStats,
    FeatureBag,
    FeatureDistribution,
    FeatureKind,
    FeatureValue,
    GenerationMethod,
    SyntheticConfig,
    SyntheticSample,
    flatten_features,
)

logger = logging.getLogger(__name__)


# =============================================================================
# CONSTANTS
# =============================================================================

DIFFUSION_STEPS = 50
DIFFUSION_STEP_NOISE = 0.1

OUT_OF_RANGE_QUALITY = 0.3
BOOLEAN_QUALITY = 0.8
KNOWN_CATEGORY_QUALITY = 0.9
UNKNOWN_CATEGORY_QUALITY = 0.5
NEUTRAL_QUALITY = 0.5

DIVERSITY_WINDOW = 10

PULSE_DEFAULT_MEAN = 70.0
PULSE_DEFAULT_STD = 10.0
PULSE_STEP_STD = 2.0
PULSE_MIN, PULSE_MAX = 50.0, 120.0
PULSE_QUALITY = 0.85

EMOTION_START_STD = 0.5
EMOTION_STEP_STD = 0.15
EMOTION_QUALITY = 0.88

SOURCE_TAGS = {
    GenerationMethod.RULE_BASED: 'rule_based',
    GenerationMethod.VAE: 'vae_latent',
    GenerationMethod.DIFFUSION: 'diffusion_denoised',
    GenerationMethod.GAN: 'gan_generated',
}


# =============================================================================
# DISTRIBUTION FITTING
# =============================================================================

def analyze_distribution(records: Sequence[AnonymizedRecord]) -> DistributionStats:
    """
    Fit per-feature distributions.

    Feature order follows first appearance across records. The kind is
    taken from the first observed value of each key.
    """
    columns: Dict[str, List[FeatureValue]] = {}
    for record in records:
        for key, value in record.features.items():
            columns.setdefault(key, []).append(value)

    feature_stats = []
    for key, values in columns.items():
        first = values[0]
        if first.is_numeric:
            numbers = np.array([v.value for v in values if v.is_numeric], dtype=float)
            stat = FeatureDistribution(
                kind=FeatureKind.NUMERIC,
                mean=float(numbers.mean()),
                std_dev=float(numbers.std()),
                min=float(numbers.min()),
                max=float(numbers.max()),
            )
        elif first.is_boolean:
            flags = [v.value for v in values if v.is_boolean]
            stat = FeatureDistribution(
                kind=FeatureKind.BOOLEAN,
                true_ratio=sum(flags) / len(flags),
            )
        else:
            counts = Counter(v.as_category() for v in values)
            stat = FeatureDistribution(
                kind=FeatureKind.CATEGORICAL,
                distribution=tuple(
                    (category, count / len(values)) for category, count in counts.items()
                ),
            )
        feature_stats.append((key, stat))

    return DistributionStats(feature_stats=tuple(feature_stats), sample_count=len(records))


def evaluate_quality(features: FeatureBag, stats: DistributionStats) -> float:
    """Mean per-feature plausibility score in [0, 1]; 0.5 when nothing is scored."""
    fitted = stats.features
    scores = []
    for key, value in features.items():
        stat = fitted.get(key)
        if stat is None:
            continue
        if stat.kind is FeatureKind.NUMERIC and value.is_numeric:
            z_score = abs((value.value - stat.mean) / stat.safe_std)
            in_range = stat.min <= value.value <= stat.max
            scores.append(math.exp(-z_score / 3) if in_range else OUT_OF_RANGE_QUALITY)
        elif stat.kind is FeatureKind.BOOLEAN:
            scores.append(BOOLEAN_QUALITY)
        elif stat.kind is FeatureKind.CATEGORICAL:
            known = stat.knows(value.as_category())
            scores.append(KNOWN_CATEGORY_QUALITY if known else UNKNOWN_CATEGORY_QUALITY)

    if not scores:
        return NEUTRAL_QUALITY
    return min(1.0, max(0.0, sum(scores) / len(scores)))


def calculate_diversity_score(samples: Sequence[SyntheticSample]) -> float:
    """
    Mean Euclidean distance between each sample and its next 9
    neighbours, divided by 10 and capped at 1.
    """
    if len(samples) < 2:
        return 0.0

    vectors = [flatten_features(sample.features) for sample in samples]
    total_distance = 0.0
    comparisons = 0
    for i in range(len(vectors)):
        for j in range(i + 1, min(i + DIVERSITY_WINDOW, len(vectors))):
            common = min(len(vectors[i]), len(vectors[j]))
            a = np.asarray(vectors[i][:common])
            b = np.asarray(vectors[j][:common])
            total_distance += float(np.sqrt(np.sum((a - b) ** 2)))
            comparisons += 1

    avg_distance = total_distance / comparisons if comparisons else 0.0
    return min(1.0, avg_distance / 10)


# =============================================================================
# GENERATOR
# =============================================================================

class SyntheticDataGenerator:
    """
    Samples synthetic feature bags from fitted distributions.

    Methods:
    - rule_based: independent per-feature sampling
    - vae: standard-normal latent decoded through the fitted mean/std
    - diffusion: noisy start pulled toward the mean over 50 steps
    - gan: tanh-squashed latent scaled by the fitted mean/std
    """

    def __init__(self, rng: Optional[np.random.Generator] = None):
        self._rng = make_rng(rng)
        self._samplers: Dict[GenerationMethod, Callable] = {
            GenerationMethod.RULE_BASED: self._sample_rule_based,
            GenerationMethod.VAE: self._sample_vae,
            GenerationMethod.DIFFUSION: self._sample_diffusion,
            GenerationMethod.GAN: self._sample_gan,
        }

    # =========================================================================
    # PUBLIC INTERFACE
    # =========================================================================

    def analyze_distribution(self, records: Sequence[AnonymizedRecord]) -> DistributionStats:
        return analyze_distribution(records)

    def generate_from_anonymized(
        self,
        records: Sequence[AnonymizedRecord],
        config: SyntheticConfig,
    ) -> List[SyntheticSample]:
        """Generate config.sample_count samples and keep those above the quality threshold."""
        if not isinstance(config, SyntheticConfig):
            raise TypeError("config must be a SyntheticConfig")

        logger.info("Generating %d samples using %s...", config.sample_count, config.method.value)
        started = time.perf_counter()

        stats = analyze_distribution(records)
        sampler = self._samplers[config.method]
        source_tag = SOURCE_TAGS[config.method]

        samples = []
        for _ in range(config.sample_count):
            features = sampler(stats)
            samples.append(self._make_sample(
                features, source_tag, evaluate_quality(features, stats)
            ))

        kept = [s for s in samples if s.quality_score >= config.quality_threshold]

        logger.info(
            "Generated %d/%d quality samples in %.0fms",
            len(kept), len(samples), (time.perf_counter() - started) * 1000,
        )
        return kept

    def evaluate_quality(self, features: FeatureBag, stats: DistributionStats) -> float:
        return evaluate_quality(features, stats)

    def calculate_diversity_score(self, samples: Sequence[SyntheticSample]) -> float:
        return calculate_diversity_score(samples)

    def generate_pulse_sequence(
        self,
        records: Sequence[AnonymizedRecord],
        sequence_length: int,
        count: int,
    ) -> List[SyntheticSample]:
        """Heart-rate random walks seeded from the fitted bpm distribution."""
        if sequence_length < 0 or count < 0:
            raise ValueError("sequence_length and count must be non-negative")

        bpm = analyze_distribution(records).get('bpm')
        if bpm is not None and bpm.kind is FeatureKind.NUMERIC:
            start_mean, start_std = bpm.mean, bpm.safe_std
        else:
            start_mean, start_std = PULSE_DEFAULT_MEAN, PULSE_DEFAULT_STD

        samples = []
        for _ in range(count):
            current = self._rng.normal(start_mean, start_std)
            sequence = []
            for _ in range(sequence_length):
                current = float(np.clip(current + self._rng.normal(0.0, PULSE_STEP_STD),
                                        PULSE_MIN, PULSE_MAX))
                sequence.append(FeatureValue.numeric(current))
            samples.append(self._make_sample(
                {'pulseSequence': FeatureValue.sequence(sequence)},
                'temporal_sequence',
                PULSE_QUALITY,
            ))
        return samples

    def generate_emotion_trajectory(
        self,
        records: Sequence[AnonymizedRecord],
        trajectory_length: int,
        count: int,
    ) -> List[SyntheticSample]:
        """Valence/arousal random walks bounded to [-1, 1]."""
        if trajectory_length < 0 or count < 0:
            raise ValueError("trajectory_length and count must be non-negative")

        stats = analyze_distribution(records)
        valence_mean = self._fitted_mean(stats, 'valence')
        arousal_mean = self._fitted_mean(stats, 'arousal')

        samples = []
        for _ in range(count):
            valence = self._rng.normal(valence_mean, EMOTION_START_STD)
            arousal = self._rng.normal(arousal_mean, EMOTION_START_STD)
            trajectory = []
            for _ in range(trajectory_length):
                valence = float(np.clip(valence + self._rng.normal(0.0, EMOTION_STEP_STD), -1.0, 1.0))
                arousal = float(np.clip(arousal + self._rng.normal(0.0, EMOTION_STEP_STD), -1.0, 1.0))
                trajectory.append(FeatureValue.mapping({
                    'valence': FeatureValue.numeric(valence),
                    'arousal': FeatureValue.numeric(arousal),
                }))
            samples.append(self._make_sample(
                {'emotionTrajectory': FeatureValue.sequence(trajectory)},
                'emotion_temporal',
                EMOTION_QUALITY,
            ))
        return samples

    # =========================================================================
    # SAMPLERS
    # =========================================================================

    def _sample_rule_based(self, stats: DistributionStats) -> FeatureBag:
        features: FeatureBag = {}
        for key, stat in stats.feature_stats:
            if stat.kind is FeatureKind.NUMERIC:
                features[key] = FeatureValue.numeric(self._rng.normal(stat.mean, stat.std_dev))
            else:
                features[key] = self._sample_non_numeric(stat)
        return features

    def _sample_vae(self, stats: DistributionStats) -> FeatureBag:
        latent = self._rng.standard_normal(stats.dimensions)
        decoded = latent * np.asarray(stats.std_devs) + np.asarray(stats.means)
        return self._decode(decoded, stats)

    def _sample_diffusion(self, stats: DistributionStats) -> FeatureBag:
        means = np.asarray(stats.means, dtype=float)
        stds = np.asarray(stats.std_devs, dtype=float)
        safe_stds = np.where(stds == 0, 1.0, stds)

        current = self._rng.normal(means, 2 * stds)
        for step in range(DIFFUSION_STEPS):
            alpha = 1 - step / DIFFUSION_STEPS
            current = (
                current * alpha
                + means * (1 - alpha)
                + self._rng.normal(0.0, safe_stds * DIFFUSION_STEP_NOISE)
            )
        return self._decode(current, stats)

    def _sample_gan(self, stats: DistributionStats) -> FeatureBag:
        noise = self._rng.standard_normal(stats.dimensions)
        stds = np.asarray(stats.std_devs, dtype=float)
        safe_stds = np.where(stds == 0, 1.0, stds)
        return self._decode(np.tanh(noise) * safe_stds + np.asarray(stats.means), stats)

    def _decode(self, numeric_values: np.ndarray, stats: DistributionStats) -> FeatureBag:
        """Place data-space numeric values in feature order, clipped to the fitted range."""
        features: FeatureBag = {}
        index = 0
        for key, stat in stats.feature_stats:
            if stat.kind is FeatureKind.NUMERIC:
                value = float(np.clip(numeric_values[index], stat.min, stat.max))
                features[key] = FeatureValue.numeric(value)
                index += 1
            else:
                features[key] = self._sample_non_numeric(stat)
        return features

    def _sample_non_numeric(self, stat: FeatureDistribution) -> FeatureValue:
        if stat.kind is FeatureKind.BOOLEAN:
            return FeatureValue.boolean(self._rng.random() < stat.true_ratio)
        return FeatureValue.categorical(self._sample_categorical(stat))

    def _sample_categorical(self, stat: FeatureDistribution) -> str:
        if not stat.distribution:
            return ''
        draw = self._rng.random()
        cumulative = 0.0
        for category, probability in stat.distribution:
            cumulative += probability
            if draw <= cumulative:
                return category
        return stat.distribution[0][0]

    # =========================================================================
    # HELPERS
    # =========================================================================

    def _make_sample(self, features: FeatureBag, source_tag: str, quality: float) -> SyntheticSample:
        return SyntheticSample(
            features=features,
            source_distribution=source_tag,
            quality_score=quality,
            synthetic_id=f"syn_{self._rng.bytes(6).hex()}",
            generated_at=datetime.now(timezone.utc),
        )

    @staticmethod
    def _fitted_mean(stats: DistributionStats, name: str) -> float:
        stat = stats.get(name)
        if stat is None or stat.kind is not FeatureKind.NUMERIC:
            return 0.0
        return stat.mean
