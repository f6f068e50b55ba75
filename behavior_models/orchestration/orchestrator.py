"""
Model Orchestrator

Drives the model lifecycle: train, evaluate, deploy, monitor, roll back
and compare versions.

STATE MACHINE:
==============
training -> evaluating -> {deployed, archived}
deployed -> archived       (superseded by a full rollout)
deployed -> rollback       (a prior full-rollout version returns to deployed)

BOUNDARY ENFORCEMENT:
- Owns the model registry and the deployment history log
- Lookups and lifecycle violations return Result failures
- Only configuration errors and training failures raise
"""

from __future__ import annotations
from dataclasses import replace
from datetime import datetime, timezone
from typing import Callable, Dict, List, Mapping, Optional, Sequence
import hashlib
import logging
import threading

import numpy as np

from ..config import make_rng
from ..contracts.base import ConfigurationError, ErrorCode, Result
from ..contracts.data_contracts import SyntheticSample, parse_enum
from ..contracts.learning_contracts import PolicyArtifact, PolicyConfig, TrainingEpisode, TrainingProgress
from ..contracts.lifecycle_contracts import (
    ABTestConfig,
    DeploymentConfig,
    DeploymentHistoryEntry,
    DeploymentReceipt,
    DeploymentType,
    ModelMetrics,
    ModelStatus,
    ModelType,
    ModelVersion,
)
from ..contracts.reward_contracts import RewardWeights
from ..core.policy_trainer import RLPolicyTrainer
from ..core.reward_model import RewardModel
from ..validation.comparison import VersionComparator
from ..validation.evaluation import EvaluationGate, EvaluationThresholds
from ..validation.monitoring import HealthMonitor, MonitoringThresholds
from ..versioning.history import DeploymentHistoryLog
from ..versioning.registry import ModelRegistry

logger = logging.getLogger(__name__)


VERSION_NOT_FOUND = "Model version not found"
NOT_EVALUATING = "Model must be in evaluating status to deploy"
ARTIFACT_MISSING = "Model data not found in registry"
NO_ROLLBACK_TARGET = "No previous version available for rollback"
TRAINING_BUSY = "Model version is already being trained"

EMPATHY_MODEL_METRICS = ModelMetrics(empathy_score=0.85, latency=50.0)


def reward_stability(episodes: Sequence[TrainingEpisode]) -> float:
    """1 minus the mean absolute change of avg reward between epochs, floored at 0."""
    if len(episodes) < 2:
        return 1.0
    rewards = [e.avg_reward for e in episodes]
    variation = sum(abs(b - a) for a, b in zip(rewards, rewards[1:])) / (len(rewards) - 1)
    return max(0.0, 1 - variation)


def _check_epochs(epochs: int):
    if isinstance(epochs, bool) or not isinstance(epochs, int) or epochs < 0:
        raise ConfigurationError("epochs must be a non-negative integer")


class ModelOrchestrator:
    """
    Top-level lifecycle coordinator.

    Every status write (deploy, rollback, the start and end of training,
    metric refresh) happens under a per-model-type lock on a freshly read
    record, so no caller writes back a stale copy over another's change.
    """

    def __init__(
        self,
        rng: Optional[np.random.Generator] = None,
        evaluation_sample_limit: int = 100,
        evaluation_thresholds: Optional[EvaluationThresholds] = None,
        monitoring_thresholds: Optional[MonitoringThresholds] = None,
    ):
        self._rng = make_rng(rng)
        self._evaluation_sample_limit = evaluation_sample_limit
        self._registry = ModelRegistry()
        self._history = DeploymentHistoryLog()
        self._gate = EvaluationGate(evaluation_thresholds)
        self._monitor = HealthMonitor(monitoring_thresholds)
        self._comparator = VersionComparator()

        self._type_locks: Dict[ModelType, threading.Lock] = {t: threading.Lock() for t in ModelType}
        self._rng_lock = threading.Lock()
        self._version_counter = 0

        logger.info("Model orchestrator initialized")

    @property
    def registry(self) -> ModelRegistry:
        return self._registry

    @property
    def history(self) -> DeploymentHistoryLog:
        return self._history

    # =========================================================================
    # TRAINING
    # =========================================================================

    def train_new_model(
        self,
        model_type,
        training_data: Sequence[SyntheticSample],
        epochs: int,
        hyperparams: Optional[Mapping] = None,
        progress: Optional[Callable[[TrainingProgress], None]] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> ModelVersion:
        """
        Train and register a new version.

        Returns the version in evaluating status. On any training failure
        the version is archived and the exception re-raised.
        """
        model_type = parse_enum(ModelType, model_type, "model type")
        _check_epochs(epochs)
        # parse before registering so bad settings leave no trace
        policy_config = PolicyConfig.from_dict(hyperparams) if model_type is ModelType.POLICY else None
        weights = RewardWeights.from_dict(hyperparams) if model_type is ModelType.EMPATHY else None

        version = self._register_new_version(model_type)
        logger.info("Training new %s model %s...", model_type.value, version.version_tag)

        try:
            metrics = None
            if model_type is ModelType.POLICY:
                trainer = RLPolicyTrainer(config=policy_config, rng=self._child_rng())
                metrics = self._train_policy(
                    version.version_id, trainer, training_data, epochs, progress, cancel_event
                )
            elif model_type is ModelType.EMPATHY:
                reward_model = RewardModel(weights)
                self._registry.put_artifact(version.version_id, reward_model.export_model())
                metrics = EMPATHY_MODEL_METRICS
        except Exception:
            logger.exception("Training failed for %s", version.version_tag)
            self._finish_training(version.version_id, model_type, ModelStatus.ARCHIVED)
            raise

        version = self._finish_training(
            version.version_id, model_type, ModelStatus.EVALUATING, metrics
        )
        logger.info("Training complete for %s", version.version_tag)
        return version

    def retrain_model(
        self,
        version_id: str,
        training_data: Sequence[SyntheticSample],
        epochs: int,
        hyperparams: Optional[Mapping] = None,
        progress: Optional[Callable[[TrainingProgress], None]] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> Result:
        """
        Continue training an evaluating policy version from its stored artifact.

        The status check and the switch to training happen under the
        model-type lock, so exactly one of several concurrent calls on a
        version proceeds; the others get TRAINING_IN_PROGRESS.
        """
        version = self._registry.get(version_id)
        if version is None:
            return Result.fail(ErrorCode.VERSION_NOT_FOUND, VERSION_NOT_FOUND, version_id=version_id)
        _check_epochs(epochs)
        policy_config = PolicyConfig.from_dict(hyperparams)

        with self._type_locks[version.model_type]:
            version = self._registry.get(version_id)
            if version is None:
                return Result.fail(ErrorCode.VERSION_NOT_FOUND, VERSION_NOT_FOUND, version_id=version_id)
            if version.status is ModelStatus.TRAINING:
                return Result.fail(ErrorCode.TRAINING_IN_PROGRESS, TRAINING_BUSY, version_id=version_id)
            if version.model_type is not ModelType.POLICY or version.status is not ModelStatus.EVALUATING:
                return Result.fail(
                    ErrorCode.INVALID_STATE_TRANSITION,
                    "Only policy models in evaluating status can be retrained",
                    version_id=version_id, status=version.status.value,
                )
            artifact = self._registry.get_artifact(version_id)
            if not isinstance(artifact, PolicyArtifact):
                return Result.fail(ErrorCode.ARTIFACT_NOT_FOUND, ARTIFACT_MISSING, version_id=version_id)
            self._registry.register(replace(version, status=ModelStatus.TRAINING))

        try:
            trainer = RLPolicyTrainer(config=policy_config, rng=self._child_rng())
            trainer.import_policy(artifact)
            metrics = self._train_policy(
                version_id, trainer, training_data, epochs, progress, cancel_event
            )
        except Exception:
            logger.exception("Retraining failed for %s", version.version_tag)
            self._finish_training(version_id, version.model_type, ModelStatus.ARCHIVED)
            raise

        retrained = self._finish_training(
            version_id, version.model_type, ModelStatus.EVALUATING, metrics
        )
        logger.info("Retraining complete for %s", version.version_tag)
        return Result.success(retrained)

    # =========================================================================
    # EVALUATION / MONITORING / COMPARISON
    # =========================================================================

    def evaluate_model(
        self,
        version_id: str,
        test_data: Optional[Sequence[SyntheticSample]] = None,
    ) -> Result:
        logger.info("Evaluating model %s...", version_id)
        version = self._registry.get(version_id)
        if version is None:
            return Result.fail(ErrorCode.VERSION_NOT_FOUND, VERSION_NOT_FOUND, version_id=version_id)

        artifact = self._registry.get_artifact(version_id)
        if test_data and isinstance(artifact, PolicyArtifact):
            trainer = RLPolicyTrainer(rng=self._child_rng())
            trainer.import_policy(artifact)
            evaluation = trainer.evaluate_policy(test_data)
            # only the metrics change; status may have moved during evaluation
            with self._type_locks[version.model_type]:
                version = self._registry.get(version_id)
                current = version.metrics or ModelMetrics()
                version = replace(version, metrics=replace(
                    current,
                    empathy_score=evaluation.empathy_score,
                    false_intervention_rate=evaluation.false_intervention_rate,
                ))
                self._registry.register(version)

        report = self._gate.evaluate(version_id, version.metrics or ModelMetrics())
        logger.info("Evaluation result: %s", 'PASS' if report.passed else 'FAIL')
        return Result.success(report)

    def monitor_deployed_model(self, version_id: str) -> Result:
        version = self._registry.get(version_id)
        if version is None:
            return Result.fail(ErrorCode.VERSION_NOT_FOUND, VERSION_NOT_FOUND, version_id=version_id)
        if version.status is not ModelStatus.DEPLOYED:
            return Result.success(self._monitor.not_deployed(version_id))
        return Result.success(self._monitor.assess(version_id, version.metrics or ModelMetrics()))

    def run_ab_test(self, config: ABTestConfig) -> Result:
        logger.info(
            "Running A/B test: %s vs %s", config.control_version_id, config.test_version_id
        )
        control = self._registry.get(config.control_version_id)
        test = self._registry.get(config.test_version_id)
        if control is None or test is None:
            return Result.fail(
                ErrorCode.VERSION_NOT_FOUND,
                "Both control and test versions must exist",
                control_version_id=config.control_version_id,
                test_version_id=config.test_version_id,
            )
        report = self._comparator.compare(control, test, config)
        logger.info("A/B test complete. Winner: %s", report.winner)
        return Result.success(report)

    # =========================================================================
    # DEPLOYMENT
    # =========================================================================

    def deploy_model(self, version_id: str, config: DeploymentConfig) -> Result:
        logger.info("Deploying model %s (%s)...", version_id, config.type.value)
        version = self._registry.get(version_id)
        if version is None:
            return Result.fail(ErrorCode.VERSION_NOT_FOUND, VERSION_NOT_FOUND, version_id=version_id)

        with self._type_locks[version.model_type]:
            version = self._registry.get(version_id)
            if version.status is not ModelStatus.EVALUATING:
                return Result.fail(
                    ErrorCode.INVALID_STATE_TRANSITION, NOT_EVALUATING,
                    version_id=version_id, status=version.status.value,
                )
            if self._registry.get_artifact(version_id) is None:
                return Result.fail(ErrorCode.ARTIFACT_NOT_FOUND, ARTIFACT_MISSING, version_id=version_id)

            now = datetime.now(timezone.utc)
            if config.type is DeploymentType.FULL_ROLLOUT:
                for deployed in self._registry.deployed(version.model_type):
                    self._registry.register(replace(deployed, status=ModelStatus.ARCHIVED))
                self._registry.register(replace(
                    version,
                    status=ModelStatus.DEPLOYED,
                    deployed_at=now,
                    traffic_percentage=config.traffic_percentage,
                ))
                logger.info("Full rollout complete for %s", version.version_tag)
            elif config.type is DeploymentType.CANARY:
                self._registry.register(replace(
                    version,
                    status=ModelStatus.DEPLOYED,
                    deployed_at=now,
                    traffic_percentage=config.traffic_percentage,
                ))
                logger.info(
                    "Canary deployment (%s%%) for %s", config.traffic_percentage, version.version_tag
                )
            else:
                logger.info("Shadow test started for %s", version.version_tag)

            self._history.record(version_id, config.type, now)

        return Result.success(DeploymentReceipt(
            version_id=version_id,
            message=f"Deployment {config.type.value} initiated successfully",
        ))

    def rollback_model(self, version_id: str, reason: str) -> Result:
        logger.info("Rolling back model %s. Reason: %s", version_id, reason)
        version = self._registry.get(version_id)
        if version is None:
            return Result.fail(ErrorCode.VERSION_NOT_FOUND, VERSION_NOT_FOUND, version_id=version_id)

        with self._type_locks[version.model_type]:
            version = self._registry.get(version_id)
            self._registry.register(replace(version, status=ModelStatus.ROLLBACK))

            previous = self._previous_deployed_version(version.model_type)
            if previous is None:
                logger.warning("No rollback target for %s", version.version_tag)
                return Result.fail(
                    ErrorCode.NO_ROLLBACK_TARGET, NO_ROLLBACK_TARGET, version_id=version_id
                )

            self._registry.register(replace(
                previous,
                status=ModelStatus.DEPLOYED,
                deployed_at=datetime.now(timezone.utc),
            ))

        logger.info("Rolled back to %s", previous.version_tag)
        return Result.success(DeploymentReceipt(
            version_id=version_id,
            message=f"Rolled back to previous version {previous.version_tag}",
            restored_version_id=previous.version_id,
        ))

    # =========================================================================
    # QUERIES
    # =========================================================================

    def get_active_models(self) -> List[ModelVersion]:
        return self._registry.versions()

    def get_deployed_models(self) -> List[ModelVersion]:
        return self._registry.deployed()

    def list_versions(self, status=None, model_type=None) -> List[ModelVersion]:
        if status is not None:
            status = parse_enum(ModelStatus, status, "model status")
        if model_type is not None:
            model_type = parse_enum(ModelType, model_type, "model type")
        return self._registry.versions(status=status, model_type=model_type)

    def get_model_version(self, version_id: str) -> Result:
        version = self._registry.get(version_id)
        if version is None:
            return Result.fail(ErrorCode.VERSION_NOT_FOUND, VERSION_NOT_FOUND, version_id=version_id)
        return Result.success(version)

    def get_model_data(self, version_id: str) -> Result:
        artifact = self._registry.get_artifact(version_id)
        if artifact is None:
            return Result.fail(ErrorCode.ARTIFACT_NOT_FOUND, ARTIFACT_MISSING, version_id=version_id)
        return Result.success(artifact)

    def get_deployment_history(self) -> List[DeploymentHistoryEntry]:
        return self._history.get_entries()

    # =========================================================================
    # EXPORT / IMPORT
    # =========================================================================

    def export_registry(self) -> dict:
        """JSON-compatible snapshot of artifacts, version records and history."""
        return {
            'models': self._registry.export_artifacts(),
            'versions': self._registry.export_versions(),
            'history': self._history.export(),
        }

    def import_registry(self, data: Mapping):
        models = data.get('models', [])
        history = data.get('history', [])
        self._registry.load(models, data.get('versions', []))
        self._history.load(history)
        logger.info(
            "Imported %d models and %d history entries", len(models), len(history)
        )

    # =========================================================================
    # HELPERS
    # =========================================================================

    def _register_new_version(self, model_type: ModelType) -> ModelVersion:
        with self._registry.lock:
            self._version_counter += 1
            created_at = datetime.now(timezone.utc)
            digest = hashlib.sha256(
                f"{model_type.value}|{self._version_counter}|{created_at.isoformat()}".encode()
            ).hexdigest()[:12]
            version = ModelVersion(
                version_id=f"model_{digest}",
                version_tag=f"{model_type.value}_v1.{self._registry.count(model_type) + 1}.0",
                model_type=model_type,
                status=ModelStatus.TRAINING,
                created_at=created_at,
            )
            self._registry.register(version)
        return version

    def _finish_training(
        self,
        version_id: str,
        model_type: ModelType,
        status: ModelStatus,
        metrics: Optional[ModelMetrics] = None,
    ) -> ModelVersion:
        """Apply a training outcome to the current record of a version."""
        with self._type_locks[model_type]:
            version = self._registry.get(version_id)
            # a rollback during training keeps its status
            if version.status is ModelStatus.TRAINING:
                version = replace(version, status=status)
            if metrics is not None:
                version = replace(version, metrics=metrics)
            self._registry.register(version)
            return version

    def _train_policy(
        self,
        version_id: str,
        trainer: RLPolicyTrainer,
        training_data: Sequence[SyntheticSample],
        epochs: int,
        progress,
        cancel_event,
    ) -> ModelMetrics:
        episodes = trainer.train_on_synthetic_data(
            training_data, epochs, progress=progress, cancel_event=cancel_event
        )
        self._registry.put_artifact(version_id, trainer.export_policy())
        evaluation = trainer.evaluate_policy(training_data[:self._evaluation_sample_limit])
        return ModelMetrics(
            empathy_score=evaluation.empathy_score,
            false_intervention_rate=evaluation.false_intervention_rate,
            reward_stability=reward_stability(episodes),
        )

    def _previous_deployed_version(self, model_type: ModelType) -> Optional[ModelVersion]:
        candidates = []
        for entry in self._history.newest_first(DeploymentType.FULL_ROLLOUT):
            version = self._registry.get(entry.version_id)
            if version is not None and version.model_type is model_type:
                candidates.append(version)
        if len(candidates) >= 2:
            return self._registry.get(candidates[1].version_id)
        return None

    def _child_rng(self) -> np.random.Generator:
        with self._rng_lock:
            return self._rng.spawn(1)[0]
