"""
RL Policy Trainer

Tabular temporal-difference learner over a discretized conversational
state. Each epoch simulates one transition per mini-batch sample and
applies one TD update per transition.

BOUNDARY ENFORCEMENT:
- Consumes SyntheticSample only
- The environment is a closed-form simulator, no live users
- One training run per trainer instance at a time
"""

from __future__ import annotations
from typing import Callable, Dict, List, Optional, Sequence, Tuple
import logging
import math
import threading

import numpy as np

from ..config import make_rng
from ..contracts.base import TrainingCancelled, TrainingInProgressError
from ..contracts.data_contracts import SyntheticSample, numeric_feature
from ..contracts.learning_contracts import (
    ACTION_ORDER,
    GREEDY_ACTIONS,
    MAX_RECENT_ACTIONS,
    ActionTone,
    ActionType,
    ContextFeatures,
    PolicyArtifact,
    PolicyConfig,
    PolicyEvaluation,
    RLAction,
    RLState,
    RLTransition,
    TrainingEpisode,
    TrainingProgress,
)
from ..contracts.reward_contracts import RewardInput
from .reward_model import RewardModel

logger = logging.getLogger(__name__)


# =============================================================================
# SIMULATOR CONSTANTS
# =============================================================================

ACTION_COUNT = len(ACTION_ORDER)
TONES: Tuple[ActionTone, ...] = tuple(ActionTone)
MAX_EXPLORATION_TIMING = 5.0

EMOTION_DRIFT = {
    ActionType.LISTEN: 0.02,
    ActionType.SUGGEST: 0.05,
    ActionType.WAIT: 0.0,
}
EMPATHETIC_INTERVENTION_DRIFT = 0.1
INTERVENTION_DRIFT = 0.05
EMOTION_JITTER_STD = 0.03

MAX_CONVERSATION_TURN = 10
TERMINATION_PROBABILITY = 0.1

RESONANCE_BONUS = 0.2
REPETITION_LIMIT = 3
REPETITION_PENALTY = 0.4

FALSE_INTERVENTION_VALENCE = 0.3


def uniform_policy() -> List[float]:
    return [1.0 / ACTION_COUNT] * ACTION_COUNT


def state_key(state: RLState) -> str:
    """Discretize a state: emotion buckets of 0.1, 6-hour blocks, 3-turn blocks."""
    emotion = ','.join(str(math.floor(v * 10)) for v in state.emotion_vector)
    time_bucket = math.floor(state.time_of_day / 6)
    turn_bucket = math.floor(state.conversation_turn / 3)
    return f"e:{emotion}|t:{time_bucket}|c:{turn_bucket}"


def extract_state(sample: SyntheticSample) -> RLState:
    features = sample.features
    emotion = [
        value for value in (
            numeric_feature(features, 'valence'),
            numeric_feature(features, 'arousal'),
            numeric_feature(features, 'dominance'),
        )
        if value is not None
    ]
    if not emotion:
        emotion = [0.0, 0.0, 0.0]

    resonance = numeric_feature(features, 'resonanceIndex', 'resonance')
    bpm = numeric_feature(features, 'bpm')
    sentiment = numeric_feature(features, 'sentiment')
    hour = numeric_feature(features, 'hour')

    defaults = ContextFeatures()
    return RLState(
        emotion_vector=tuple(emotion),
        context_features=ContextFeatures(
            resonance=defaults.resonance if resonance is None else resonance,
            bpm=defaults.bpm if bpm is None else bpm,
            sentiment=defaults.sentiment if sentiment is None else sentiment,
        ),
        recent_actions=(),
        time_of_day=12.0 if hour is None else hour,
        conversation_turn=0,
    )


def heuristic_reward(state: RLState, action: RLAction) -> float:
    """Hand-tuned reward before quality scaling."""
    valence = state.valence
    arousal = state.arousal

    reward = 0.0
    if valence < -0.5 and action.is_empathetic_intervention:
        reward += 0.8
    elif valence > 0.3 and action.type is ActionType.WAIT:
        reward += 0.5
    elif arousal > 0.7 and action.type is ActionType.LISTEN:
        reward += 0.6
    elif action.type is ActionType.INTERVENE and valence > 0:
        reward -= 0.3

    reward += state.context_features.resonance * RESONANCE_BONUS

    if state.recent_actions.count(action.type) > REPETITION_LIMIT:
        reward -= REPETITION_PENALTY
    return reward


def policy_entropy(policy: Dict[str, List[float]]) -> float:
    """Mean Shannon entropy (bits) over all policy states."""
    if not policy:
        return 0.0
    total = 0.0
    for probabilities in policy.values():
        total -= sum(p * math.log2(p) for p in probabilities if p > 0)
    return total / len(policy)


def normalize_action_values(values: List[float]) -> List[float]:
    magnitudes = [abs(v) for v in values]
    total = sum(magnitudes)
    if total <= 0:
        return uniform_policy()
    return [v / total for v in magnitudes]


ProgressCallback = Callable[[TrainingProgress], None]


class RLPolicyTrainer:
    """
    Tabular policy/value learner.

    policy: state key -> probability vector over ACTION_ORDER
    value_function: state key -> float
    """

    def __init__(
        self,
        config: Optional[PolicyConfig] = None,
        rng: Optional[np.random.Generator] = None,
        reward_model: Optional[RewardModel] = None,
    ):
        self._config = config or PolicyConfig()
        self._rng = make_rng(rng)
        self._reward_model = reward_model
        self._policy: Dict[str, List[float]] = {}
        self._value_function: Dict[str, float] = {}
        self._lock = threading.Lock()
        logger.info("Initialized with config: %s", self._config.to_dict())

    @property
    def config(self) -> PolicyConfig:
        return self._config

    # =========================================================================
    # TRAINING
    # =========================================================================

    def train_on_synthetic_data(
        self,
        samples: Sequence[SyntheticSample],
        epochs: int,
        progress: Optional[ProgressCallback] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> List[TrainingEpisode]:
        """
        Run epochs of mini-batch TD learning.

        progress receives one TrainingProgress per finished epoch
        (epoch counts from 1). cancel_event is checked before each epoch;
        when set, TrainingCancelled is raised and finished epochs keep
        their updates.
        """
        if epochs < 0:
            raise ValueError("epochs must be non-negative")
        if not self._lock.acquire(blocking=False):
            raise TrainingInProgressError("Trainer is already running a training session")

        try:
            logger.info(
                "Starting training for %d epochs on %d samples...", epochs, len(samples)
            )
            episodes = []
            for epoch in range(epochs):
                if cancel_event is not None and cancel_event.is_set():
                    raise TrainingCancelled(f"Training cancelled after {epoch} epochs")

                batch = self._sample_batch(samples)
                transitions = self._generate_transitions(batch, self._config.epsilon)
                total_reward, avg_reward, loss = self._update_policy(transitions)
                entropy = policy_entropy(self._policy)

                episodes.append(TrainingEpisode(
                    episode_id=f"epoch_{epoch}",
                    transitions=tuple(transitions),
                    total_reward=total_reward,
                    avg_reward=avg_reward,
                    loss=loss,
                    policy_entropy=entropy,
                ))

                if epoch % self._config.log_interval == 0:
                    logger.info(
                        "Epoch %d: Reward=%.3f, Loss=%.4f, Entropy=%.3f",
                        epoch, avg_reward, loss, entropy,
                    )
                if progress is not None:
                    progress(TrainingProgress(
                        epoch=epoch + 1,
                        total_epochs=epochs,
                        avg_reward=avg_reward,
                        loss=loss,
                        policy_entropy=entropy,
                    ))

            logger.info("Training complete")
            return episodes
        finally:
            self._lock.release()

    def evaluate_policy(self, test_samples: Sequence[SyntheticSample]) -> PolicyEvaluation:
        """Greedy rollout over test samples; the policy is not updated."""
        logger.info("Evaluating policy on %d test samples...", len(test_samples))

        transitions = self._generate_transitions(test_samples, epsilon=0.0)
        count = len(transitions)
        avg_reward = sum(t.reward for t in transitions) / count if count else 0.0

        interventions = [t for t in transitions if t.action.type is ActionType.INTERVENE]
        unnecessary = [t for t in interventions if t.state.valence > FALSE_INTERVENTION_VALENCE]
        false_intervention_rate = len(unnecessary) / len(interventions) if interventions else 0.0

        empathetic = [
            t for t in transitions
            if t.action.is_empathetic_intervention and t.state.valence < 0
        ]
        empathy = len(empathetic) / count if count else 0.0

        logger.info(
            "Evaluation complete: Reward=%.3f, FIR=%.3f, Empathy=%.3f",
            avg_reward, false_intervention_rate, empathy,
        )
        return PolicyEvaluation(
            avg_reward=avg_reward,
            false_intervention_rate=false_intervention_rate,
            empathy_score=empathy,
        )

    # =========================================================================
    # EXPORT / IMPORT
    # =========================================================================

    def export_policy(self) -> PolicyArtifact:
        return PolicyArtifact.from_tables(self._policy, self._value_function)

    def import_policy(self, artifact: PolicyArtifact):
        self._policy = {key: list(values) for key, values in artifact.policy}
        self._value_function = dict(artifact.value_function)
        logger.info(
            "Imported policy with %d states and %d value estimates",
            len(self._policy), len(self._value_function),
        )

    def action_probabilities(self, state: RLState) -> List[float]:
        return list(self._policy.get(state_key(state), uniform_policy()))

    def state_value(self, state: RLState) -> float:
        return self._value_function.get(state_key(state), 0.0)

    # =========================================================================
    # SIMULATION
    # =========================================================================

    def _sample_batch(self, samples: Sequence[SyntheticSample]) -> List[SyntheticSample]:
        order = self._rng.permutation(len(samples))
        return [samples[i] for i in order[:self._config.batch_size]]

    def _generate_transitions(
        self, samples: Sequence[SyntheticSample], epsilon: float
    ) -> List[RLTransition]:
        transitions = []
        for sample in samples:
            state = extract_state(sample)
            action = self._select_action(state, epsilon)
            transitions.append(self._simulate(state, action, sample))
        return transitions

    def _select_action(self, state: RLState, epsilon: float) -> RLAction:
        if self._rng.random() < epsilon:
            return self._random_action()
        values = self._policy.get(state_key(state), uniform_policy())
        return GREEDY_ACTIONS[values.index(max(values))]

    def _random_action(self) -> RLAction:
        return RLAction(
            type=ACTION_ORDER[int(self._rng.integers(ACTION_COUNT))],
            tone=TONES[int(self._rng.integers(len(TONES)))],
            timing=float(self._rng.random() * MAX_EXPLORATION_TIMING),
        )

    def _simulate(self, state: RLState, action: RLAction, sample: SyntheticSample) -> RLTransition:
        if action.type is ActionType.INTERVENE:
            drift = (
                EMPATHETIC_INTERVENTION_DRIFT
                if action.tone is ActionTone.EMPATHETIC else INTERVENTION_DRIFT
            )
        else:
            drift = EMOTION_DRIFT[action.type]

        next_emotion = tuple(
            float(np.clip(v + drift + self._rng.normal(0.0, EMOTION_JITTER_STD), -1.0, 1.0))
            for v in state.emotion_vector
        )
        recent = state.recent_actions[-(MAX_RECENT_ACTIONS - 1):] + (action.type,)
        next_state = RLState(
            emotion_vector=next_emotion,
            context_features=state.context_features,
            recent_actions=recent,
            time_of_day=state.time_of_day,
            conversation_turn=state.conversation_turn + 1,
        )
        terminal = (
            state.conversation_turn >= MAX_CONVERSATION_TURN
            or self._rng.random() < TERMINATION_PROBABILITY
        )
        reward = self._reward(state, action, next_state) * sample.quality_score
        return RLTransition(
            state=state,
            action=action,
            reward=reward,
            next_state=next_state,
            terminal=terminal,
        )

    def _reward(self, state: RLState, action: RLAction, next_state: RLState) -> float:
        if self._reward_model is None:
            return heuristic_reward(state, action)
        resonance = state.context_features.resonance
        return self._reward_model.calculate_reward(RewardInput(
            sentiment_before=state.valence,
            sentiment_after=next_state.valence,
            engagement_before=resonance,
            engagement_after=resonance,
            consent_given=True,
            privacy_respected=True,
            action_type=action.type.value,
            action_timing=action.timing,
        )).total_reward

    # =========================================================================
    # TD UPDATE
    # =========================================================================

    def _update_policy(self, transitions: Sequence[RLTransition]) -> Tuple[float, float, float]:
        learning_rate = self._config.learning_rate
        gamma = self._config.gamma

        total_reward = 0.0
        total_loss = 0.0
        for transition in transitions:
            total_reward += transition.reward
            key = state_key(transition.state)
            next_key = state_key(transition.next_state)

            current_value = self._value_function.get(key, 0.0)
            next_value = 0.0 if transition.terminal else self._value_function.get(next_key, 0.0)

            td_error = transition.reward + gamma * next_value - current_value
            self._value_function[key] = current_value + learning_rate * td_error

            values = list(self._policy.get(key, uniform_policy()))
            values[transition.action.type.index] += learning_rate * td_error
            self._policy[key] = normalize_action_values(values)

            total_loss += abs(td_error)

        count = len(transitions)
        if not count:
            return 0.0, 0.0, 0.0
        return total_reward, total_reward / count, total_loss / count
