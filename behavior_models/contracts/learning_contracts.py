"""
Learning Contracts

Immutable data structures for the RL policy trainer: states, actions,
transitions, per-epoch episodes and the exported policy artifact.

NO LEARNING LOGIC HERE - only data definitions.
"""

from __future__ import annotations
from dataclasses import dataclass, field, fields
from typing import Dict, List, Mapping, Optional, Tuple
from enum import Enum

from .base import ConfigurationError


# =============================================================================
# ENUMS
# =============================================================================

class ActionType(Enum):
    """Action types, in policy-vector order."""
    INTERVENE = "intervene"
    LISTEN = "listen"
    SUGGEST = "suggest"
    WAIT = "wait"

    @property
    def index(self) -> int:
        return ACTION_ORDER.index(self)


class ActionTone(Enum):
    EMPATHETIC = "empathetic"
    NEUTRAL = "neutral"
    ENCOURAGING = "encouraging"


ACTION_ORDER: Tuple[ActionType, ...] = (
    ActionType.INTERVENE,
    ActionType.LISTEN,
    ActionType.SUGGEST,
    ActionType.WAIT,
)

MAX_RECENT_ACTIONS = 5


# =============================================================================
# STATE / ACTION / TRANSITION
# =============================================================================

@dataclass(frozen=True)
class ContextFeatures:
    resonance: float = 0.5
    bpm: float = 70.0
    sentiment: float = 0.0


@dataclass(frozen=True)
class RLState:
    """Discretizable conversational state."""
    emotion_vector: Tuple[float, ...]
    context_features: ContextFeatures
    recent_actions: Tuple[ActionType, ...] = field(default_factory=tuple)
    time_of_day: float = 12.0
    conversation_turn: int = 0

    def __post_init__(self):
        if len(self.recent_actions) > MAX_RECENT_ACTIONS:
            raise ValueError(f"recent_actions holds at most {MAX_RECENT_ACTIONS} entries")

    @property
    def valence(self) -> float:
        return self.emotion_vector[0] if self.emotion_vector else 0.0

    @property
    def arousal(self) -> float:
        return self.emotion_vector[1] if len(self.emotion_vector) > 1 else 0.0


@dataclass(frozen=True)
class RLAction:
    type: ActionType
    tone: ActionTone
    timing: float

    @property
    def is_empathetic_intervention(self) -> bool:
        return self.type is ActionType.INTERVENE and self.tone is ActionTone.EMPATHETIC


# Greedy action table, indexed like ACTION_ORDER
GREEDY_ACTIONS: Tuple[RLAction, ...] = (
    RLAction(ActionType.INTERVENE, ActionTone.EMPATHETIC, 0.0),
    RLAction(ActionType.LISTEN, ActionTone.NEUTRAL, 1.0),
    RLAction(ActionType.SUGGEST, ActionTone.ENCOURAGING, 2.0),
    RLAction(ActionType.WAIT, ActionTone.NEUTRAL, 3.0),
)


@dataclass(frozen=True)
class RLTransition:
    """Ephemeral; produced and consumed within one epoch."""
    state: RLState
    action: RLAction
    reward: float
    next_state: RLState
    terminal: bool


# =============================================================================
# TRAINING CONFIG / OUTPUTS
# =============================================================================

_HYPERPARAM_ALIASES = {
    'learningRate': 'learning_rate',
    'batchSize': 'batch_size',
    'logInterval': 'log_interval',
}


@dataclass(frozen=True)
class PolicyConfig:
    """Hyperparameters of the tabular TD learner."""
    learning_rate: float = 0.001
    gamma: float = 0.99
    epsilon: float = 0.1
    batch_size: int = 32
    log_interval: int = 10

    def __post_init__(self):
        if not self.learning_rate > 0:
            raise ConfigurationError("learning_rate must be positive")
        if not 0.0 <= self.gamma <= 1.0:
            raise ConfigurationError("gamma must be between 0.0 and 1.0")
        if not 0.0 <= self.epsilon <= 1.0:
            raise ConfigurationError("epsilon must be between 0.0 and 1.0")
        if self.batch_size < 1:
            raise ConfigurationError("batch_size must be at least 1")
        if self.log_interval < 1:
            raise ConfigurationError("log_interval must be at least 1")

    @staticmethod
    def from_dict(data: Optional[Mapping[str, object]]) -> PolicyConfig:
        """Build from hyperparameters; accepts snake_case or camelCase keys."""
        known = {f.name for f in fields(PolicyConfig)}
        values = {}
        for key, value in (data or {}).items():
            name = _HYPERPARAM_ALIASES.get(key, key)
            if name not in known:
                raise ConfigurationError(f"Unknown policy hyperparameter: {key}")
            if value is not None:
                values[name] = value
        return PolicyConfig(**values)

    def to_dict(self) -> dict:
        return {f.name: getattr(self, f.name) for f in fields(self)}


@dataclass(frozen=True)
class TrainingEpisode:
    """Metrics of one training epoch."""
    episode_id: str
    transitions: Tuple[RLTransition, ...]
    total_reward: float
    avg_reward: float
    loss: float
    policy_entropy: float

    def to_dict(self) -> dict:
        return {
            'episodeId': self.episode_id,
            'transitionCount': len(self.transitions),
            'totalReward': self.total_reward,
            'avgReward': self.avg_reward,
            'loss': self.loss,
            'policyEntropy': self.policy_entropy,
        }


@dataclass(frozen=True)
class TrainingProgress:
    """Per-epoch progress notification."""
    epoch: int
    total_epochs: int
    avg_reward: float
    loss: float
    policy_entropy: float


@dataclass(frozen=True)
class PolicyEvaluation:
    avg_reward: float
    false_intervention_rate: float
    empathy_score: float

    def to_dict(self) -> dict:
        return {
            'avgReward': self.avg_reward,
            'falseInterventionRate': self.false_intervention_rate,
            'empathyScore': self.empathy_score,
        }


@dataclass(frozen=True)
class PolicyArtifact:
    """Exported policy and value tables, as stored in the model registry."""
    policy: Tuple[Tuple[str, Tuple[float, ...]], ...]
    value_function: Tuple[Tuple[str, float], ...]

    @property
    def state_count(self) -> int:
        return len(self.policy)

    def to_dict(self) -> dict:
        return {
            'policy': [[key, list(values)] for key, values in self.policy],
            'valueFunction': [[key, value] for key, value in self.value_function],
        }

    @staticmethod
    def from_dict(data: Mapping) -> PolicyArtifact:
        return PolicyArtifact(
            policy=tuple((key, tuple(float(v) for v in values)) for key, values in data['policy']),
            value_function=tuple((key, float(value)) for key, value in data['valueFunction']),
        )

    @staticmethod
    def from_tables(policy: Dict[str, List[float]], value_function: Dict[str, float]) -> PolicyArtifact:
        return PolicyArtifact(
            policy=tuple((key, tuple(values)) for key, values in policy.items()),
            value_function=tuple(value_function.items()),
        )
