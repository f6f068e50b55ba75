"""
Reward Contracts

Immutable inputs and outputs of the reward model.
"""

from __future__ import annotations
from dataclasses import dataclass, fields
from typing import Mapping, Optional
import math

from .base import ConfigurationError


REWARD_MODEL_VERSION = "1.0.0"


@dataclass(frozen=True)
class RewardWeights:
    """
    Component weights. Always normalized to sum to 1 by normalized().
    """
    sentiment: float = 0.4
    engagement: float = 0.4
    compliance: float = 0.2
    empathy: float = 0.0
    timing: float = 0.0

    def __post_init__(self):
        for f in fields(self):
            value = getattr(self, f.name)
            if value is None or math.isnan(value) or value < 0:
                raise ConfigurationError(f"reward weight '{f.name}' must be a non-negative number")

    @property
    def total(self) -> float:
        return self.sentiment + self.engagement + self.compliance + self.empathy + self.timing

    def normalized(self) -> RewardWeights:
        total = self.total
        if total <= 0:
            raise ConfigurationError("reward weights must not all be zero")
        return RewardWeights(
            sentiment=self.sentiment / total,
            engagement=self.engagement / total,
            compliance=self.compliance / total,
            empathy=self.empathy / total,
            timing=self.timing / total,
        )

    def merged(self, **updates: Optional[float]) -> RewardWeights:
        unknown = set(updates) - {f.name for f in fields(self)}
        if unknown:
            raise ConfigurationError(f"Unknown reward weight(s): {', '.join(sorted(unknown))}")
        current = self.to_dict()
        current.update({k: v for k, v in updates.items() if v is not None})
        return RewardWeights(**current)

    @staticmethod
    def from_dict(data: Optional[Mapping[str, float]]) -> RewardWeights:
        return RewardWeights().merged(**dict(data or {}))

    def to_dict(self) -> dict:
        return {f.name: getattr(self, f.name) for f in fields(self)}


@dataclass(frozen=True)
class RewardInput:
    """One (state-before, action, state-after) observation."""
    sentiment_before: float
    sentiment_after: float
    engagement_before: float
    engagement_after: float
    consent_given: bool
    privacy_respected: bool
    action_type: str
    action_timing: float
    user_feedback: Optional[float] = None
    context_relevance: Optional[float] = None


@dataclass(frozen=True)
class RewardComponents:
    sentiment_gain: float
    engagement_delta: float
    compliance_score: float
    empathy_score: float
    timing_score: float

    def to_dict(self) -> dict:
        return {
            'sentimentGain': self.sentiment_gain,
            'engagementDelta': self.engagement_delta,
            'complianceScore': self.compliance_score,
            'empathyScore': self.empathy_score,
            'timingScore': self.timing_score,
        }


@dataclass(frozen=True)
class RewardOutput:
    total_reward: float
    components: RewardComponents
    explanation: str

    def to_dict(self) -> dict:
        return {
            'totalReward': self.total_reward,
            'components': self.components.to_dict(),
            'explanation': self.explanation,
        }


@dataclass(frozen=True)
class PerformanceReport:
    """Agreement between predicted and observed rewards."""
    mse: float
    mae: float
    correlation: float

    def to_dict(self) -> dict:
        return {'mse': self.mse, 'mae': self.mae, 'correlation': self.correlation}


@dataclass(frozen=True)
class RewardArtifact:
    """Exported reward model, as stored in the model registry."""
    weights: RewardWeights
    version: str = REWARD_MODEL_VERSION

    def to_dict(self) -> dict:
        return {'weights': self.weights.to_dict(), 'version': self.version}

    @staticmethod
    def from_dict(data: Mapping) -> RewardArtifact:
        return RewardArtifact(
            weights=RewardWeights(**data['weights']),
            version=data.get('version', REWARD_MODEL_VERSION),
        )
