"""
Reward Model

Scores a (state-before, action, state-after) observation as a weighted
sum of five bounded components, with a human-readable explanation.

BOUNDARY ENFORCEMENT:
- Pure scoring; holds only its weight vector
- Weights are normalized to sum to 1 after every change
- Every component is bounded to [-1, 1]
"""

from __future__ import annotations
from concurrent.futures import ThreadPoolExecutor
from typing import List, Mapping, Optional, Sequence, Union
import logging
import math

import numpy as np

from ..contracts.reward_contracts import (
    PerformanceReport,
    RewardArtifact,
    RewardComponents,
    RewardInput,
    RewardOutput,
    RewardWeights,
)

logger = logging.getLogger(__name__)


FEEDBACK_WEIGHT = 0.3
LOW_ENGAGEMENT = 0.1
LOW_ENGAGEMENT_PENALTY = 0.3
OPTIMAL_TIMING = 2.0


def _clamp(value: float, low: float = -1.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


# =============================================================================
# COMPONENTS
# =============================================================================

def sentiment_gain(reward_input: RewardInput) -> float:
    gain = math.tanh(reward_input.sentiment_after - reward_input.sentiment_before)
    if reward_input.user_feedback is not None:
        gain = gain * (1 - FEEDBACK_WEIGHT) + reward_input.user_feedback * FEEDBACK_WEIGHT
    return _clamp(gain)


def engagement_delta(reward_input: RewardInput) -> float:
    delta = math.tanh(reward_input.engagement_after - reward_input.engagement_before)
    if reward_input.engagement_after < LOW_ENGAGEMENT:
        delta -= LOW_ENGAGEMENT_PENALTY
    return _clamp(delta)


def compliance_score(reward_input: RewardInput) -> float:
    """0.5 for consent plus 0.5 for privacy; any violation forces -1."""
    if not (reward_input.consent_given and reward_input.privacy_respected):
        return -1.0
    return 1.0


def empathy_score(reward_input: RewardInput) -> float:
    action = reward_input.action_type
    before = reward_input.sentiment_before
    score = 0.5
    if action == 'intervene' and before < 0:
        score += 0.3
    if action == 'listen' and before < -0.5:
        score += 0.2
    if action == 'intervene' and before > 0.3:
        score -= 0.4
    if reward_input.context_relevance is not None:
        score *= reward_input.context_relevance
    return _clamp(score)


def timing_score(reward_input: RewardInput) -> float:
    timing = reward_input.action_timing
    score = math.exp(-abs(timing - OPTIMAL_TIMING) / 2)
    if reward_input.action_type == 'wait' and timing < 1:
        score -= 0.2
    elif reward_input.action_type == 'intervene' and timing > 5:
        score -= 0.3
    return _clamp(score)


def explain(components: RewardComponents) -> str:
    parts = []

    if components.sentiment_gain > 0.3:
        parts.append('Positive sentiment improvement')
    elif components.sentiment_gain < -0.3:
        parts.append('Negative sentiment change')

    if components.engagement_delta > 0.3:
        parts.append('Increased user engagement')
    elif components.engagement_delta < -0.3:
        parts.append('Decreased engagement')

    if components.compliance_score < 0:
        parts.append('Privacy or consent violation')
    elif components.compliance_score > 0.5:
        parts.append('Full compliance')

    if components.empathy_score > 0.7:
        parts.append('Highly empathetic action')
    elif components.empathy_score < 0.3:
        parts.append('Low empathy match')

    if components.timing_score > 0.8:
        parts.append('Well-timed')
    elif components.timing_score < 0.5:
        parts.append('Poor timing')

    return ', '.join(parts) if parts else 'Standard interaction'


# =============================================================================
# REWARD MODEL
# =============================================================================

class RewardModel:
    """Weighted multi-component reward."""

    def __init__(
        self,
        weights: Union[RewardWeights, Mapping[str, float], None] = None,
        max_workers: int = 4,
    ):
        if weights is None or isinstance(weights, RewardWeights):
            base = weights or RewardWeights()
        else:
            base = RewardWeights.from_dict(weights)
        self._weights = base.normalized()
        self._max_workers = max_workers
        logger.info("Initialized with weights: %s", self._weights.to_dict())

    def calculate_reward(self, reward_input: RewardInput) -> RewardOutput:
        weights = self._weights
        components = RewardComponents(
            sentiment_gain=sentiment_gain(reward_input),
            engagement_delta=engagement_delta(reward_input),
            compliance_score=compliance_score(reward_input),
            empathy_score=empathy_score(reward_input),
            timing_score=timing_score(reward_input),
        )
        total = (
            components.sentiment_gain * weights.sentiment
            + components.engagement_delta * weights.engagement
            + components.compliance_score * weights.compliance
            + components.empathy_score * weights.empathy
            + components.timing_score * weights.timing
        )
        return RewardOutput(
            total_reward=total,
            components=components,
            explanation=explain(components),
        )

    def batch_calculate_rewards(self, inputs: Sequence[RewardInput]) -> List[RewardOutput]:
        logger.info("Batch calculating rewards for %d inputs...", len(inputs))
        if not inputs:
            return []

        workers = max(1, min(self._max_workers, len(inputs)))
        with ThreadPoolExecutor(max_workers=workers) as executor:
            results = list(executor.map(self.calculate_reward, inputs))

        avg_reward = sum(r.total_reward for r in results) / len(results)
        logger.info("Batch complete. Average reward: %.3f", avg_reward)
        return results

    def update_weights(self, **updates: Optional[float]) -> RewardWeights:
        """Merge partial weights and renormalize. Raises ConfigurationError."""
        self._weights = self._weights.merged(**updates).normalized()
        logger.info("Updated weights: %s", self._weights.to_dict())
        return self._weights

    def get_weights(self) -> RewardWeights:
        return self._weights

    def evaluate_model_performance(
        self,
        predictions: Sequence[RewardOutput],
        actual: Sequence[float],
    ) -> PerformanceReport:
        if len(predictions) != len(actual) or not predictions:
            raise ValueError("Predictions and actual values must have the same non-zero length")

        predicted = np.array([p.total_reward for p in predictions], dtype=float)
        observed = np.asarray(actual, dtype=float)
        errors = predicted - observed

        mse = float(np.mean(errors ** 2))
        mae = float(np.mean(np.abs(errors)))
        correlation = self._correlation(predicted, observed)

        logger.info("Performance: MSE=%.4f, MAE=%.4f, Correlation=%.3f", mse, mae, correlation)
        return PerformanceReport(mse=mse, mae=mae, correlation=correlation)

    def simulate_reward_from_memory_node(self, node: Mapping) -> RewardOutput:
        """
        Score a stored interaction memory.

        Expects userEmotionBefore/userEmotionAfter ({valence, arousal}),
        aiAction ({type, timing}), engagement ({before, after}) and consent.
        Privacy is assumed respected.
        """
        return self.calculate_reward(RewardInput(
            sentiment_before=node['userEmotionBefore']['valence'],
            sentiment_after=node['userEmotionAfter']['valence'],
            engagement_before=node['engagement']['before'],
            engagement_after=node['engagement']['after'],
            consent_given=bool(node['consent']),
            privacy_respected=True,
            action_type=node['aiAction']['type'],
            action_timing=node['aiAction']['timing'],
        ))

    def export_model(self) -> RewardArtifact:
        return RewardArtifact(weights=self._weights)

    def import_model(self, artifact: RewardArtifact):
        self._weights = artifact.weights.normalized()
        logger.info("Imported model version %s", artifact.version)

    @staticmethod
    def _correlation(x: np.ndarray, y: np.ndarray) -> float:
        dx = x - x.mean()
        dy = y - y.mean()
        denominator = math.sqrt(float(np.sum(dx * dx)) * float(np.sum(dy * dy)))
        if denominator <= 0:
            return 0.0
        return float(np.sum(dx * dy)) / denominator
