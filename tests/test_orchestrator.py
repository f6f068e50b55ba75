"""
Model Orchestrator Tests

Verifies the version lifecycle: training, the evaluation gate,
full-rollout supersession, canary and shadow deployments, rollback,
monitoring, A/B comparison, retraining, registry export, and status
changes from concurrent callers.
"""

import json
import queue
import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from behavior_models.config import make_rng
from behavior_models.contracts.base import ConfigurationError, ErrorCode, TrainingCancelled
from behavior_models.contracts.learning_contracts import PolicyArtifact
from behavior_models.contracts.lifecycle_contracts import (
    ABTestConfig,
    DeploymentConfig,
    DeploymentType,
    HealthStatus,
    ModelMetrics,
    ModelStatus,
    ModelType,
)
from behavior_models.contracts.reward_contracts import RewardArtifact
from behavior_models.core.policy_trainer import RLPolicyTrainer
from behavior_models.orchestration.orchestrator import ModelOrchestrator
from behavior_models.validation.evaluation import PASS_RECOMMENDATION
from behavior_models.validation.monitoring import MULTIPLE_ISSUES, NOT_DEPLOYED

from integration.fixtures import (
    FAILING_METRICS,
    PASSING_METRICS,
    SEED,
    create_training_samples,
    set_metrics,
)

FULL = DeploymentConfig(DeploymentType.FULL_ROLLOUT)


@pytest.fixture
def orchestrator():
    return ModelOrchestrator(rng=make_rng(SEED))


def status_of(orchestrator, version):
    return orchestrator.registry.get(version.version_id).status


class TestTraining:

    def test_policy_version_registered_for_evaluation(self, orchestrator):
        version = orchestrator.train_new_model('policy', create_training_samples(), 3)
        assert version.status is ModelStatus.EVALUATING
        assert version.version_tag == 'policy_v1.1.0'
        assert version.version_id.startswith('model_')
        assert version.metrics.reward_stability is not None
        assert isinstance(orchestrator.get_model_data(version.version_id).value, PolicyArtifact)

    def test_tags_count_per_type(self, orchestrator):
        orchestrator.train_new_model('policy', create_training_samples(), 1)
        orchestrator.train_new_model('empathy', [], 1)
        second = orchestrator.train_new_model(ModelType.POLICY, create_training_samples(), 1)
        assert second.version_tag == 'policy_v1.2.0'

    def test_zero_epochs_reports_full_stability(self, orchestrator):
        version = orchestrator.train_new_model('policy', create_training_samples(), 0)
        assert version.metrics.reward_stability == 1.0

    def test_empathy_hyperparams_are_reward_weights(self, orchestrator):
        version = orchestrator.train_new_model('empathy', [], 1, hyperparams={'empathy': 1.0})
        artifact = orchestrator.get_model_data(version.version_id).value
        assert isinstance(artifact, RewardArtifact)
        assert artifact.weights.empathy == pytest.approx(0.5)
        assert version.metrics == ModelMetrics(empathy_score=0.85, latency=50.0)

    def test_timing_model_has_no_artifact(self, orchestrator):
        version = orchestrator.train_new_model('timing', [], 1)
        assert version.status is ModelStatus.EVALUATING
        assert version.metrics is None
        assert orchestrator.get_model_data(version.version_id).error.code is ErrorCode.ARTIFACT_NOT_FOUND

    @pytest.mark.parametrize("kwargs", [
        {'model_type': 'sentiment', 'epochs': 1},
        {'model_type': 'policy', 'epochs': -1},
        {'model_type': 'policy', 'epochs': True},
        {'model_type': 'policy', 'epochs': 1, 'hyperparams': {'momentum': 0.9}},
        {'model_type': 'empathy', 'epochs': 1, 'hyperparams': {'humor': 1.0}},
    ])
    def test_invalid_requests_leave_no_version(self, orchestrator, kwargs):
        with pytest.raises(ConfigurationError):
            orchestrator.train_new_model(training_data=create_training_samples(), **kwargs)
        assert orchestrator.get_active_models() == []

    def test_failed_training_archives_version(self, orchestrator):
        cancel = threading.Event()
        cancel.set()
        with pytest.raises(TrainingCancelled):
            orchestrator.train_new_model('policy', create_training_samples(), 3, cancel_event=cancel)
        archived = orchestrator.list_versions(status='archived')
        assert len(archived) == 1
        assert orchestrator.get_deployed_models() == []

    def test_progress_forwarded(self, orchestrator):
        seen = []
        orchestrator.train_new_model('policy', create_training_samples(), 3, progress=seen.append)
        assert [p.epoch for p in seen] == [1, 2, 3]


class TestEvaluation:

    def test_passing_metrics(self, orchestrator):
        version = orchestrator.train_new_model('empathy', [], 1)
        set_metrics(orchestrator, version, PASSING_METRICS)
        report = orchestrator.evaluate_model(version.version_id).value
        assert report.passed is True
        assert report.recommendation == PASS_RECOMMENDATION

    def test_failing_metrics(self, orchestrator):
        version = orchestrator.train_new_model('empathy', [], 1)
        set_metrics(orchestrator, version, FAILING_METRICS)
        report = orchestrator.evaluate_model(version.version_id).value
        assert report.passed is False
        assert report.recommendation.startswith("Model failed: empathy score below threshold")
        assert 'latency exceeds limit' in report.recommendation

    def test_missing_metrics_fail(self, orchestrator):
        version = orchestrator.train_new_model('timing', [], 1)
        assert orchestrator.evaluate_model(version.version_id).value.passed is False

    def test_test_data_refreshes_policy_metrics(self, orchestrator):
        version = orchestrator.train_new_model('policy', create_training_samples(), 2)
        report = orchestrator.evaluate_model(version.version_id, create_training_samples()).value
        stored = orchestrator.registry.get(version.version_id)
        assert stored.metrics.empathy_score == report.metrics.empathy_score
        assert 0.0 <= stored.metrics.empathy_score <= 1.0
        assert stored.metrics.reward_stability == version.metrics.reward_stability

    def test_unknown_version(self, orchestrator):
        result = orchestrator.evaluate_model('model_missing')
        assert result.is_failure
        assert result.error.code is ErrorCode.VERSION_NOT_FOUND


class TestDeployment:

    def test_full_rollout_supersedes(self, orchestrator):
        v1 = orchestrator.train_new_model('empathy', [], 1)
        v2 = orchestrator.train_new_model('empathy', [], 1)

        assert orchestrator.deploy_model(v1.version_id, FULL).is_success
        result = orchestrator.deploy_model(v2.version_id, FULL)

        assert result.is_success
        assert result.value.message == "Deployment full_rollout initiated successfully"
        assert [v.version_id for v in orchestrator.get_deployed_models()] == [v2.version_id]
        assert status_of(orchestrator, v1) is ModelStatus.ARCHIVED

    def test_rollback_restores_previous(self, orchestrator):
        v1 = orchestrator.train_new_model('empathy', [], 1)
        v2 = orchestrator.train_new_model('empathy', [], 1)
        orchestrator.deploy_model(v1.version_id, FULL)
        orchestrator.deploy_model(v2.version_id, FULL)

        result = orchestrator.rollback_model(v2.version_id, "empathy regression")

        assert result.is_success
        assert result.value.restored_version_id == v1.version_id
        assert result.value.message == "Rolled back to previous version empathy_v1.1.0"
        assert status_of(orchestrator, v1) is ModelStatus.DEPLOYED
        assert status_of(orchestrator, v2) is ModelStatus.ROLLBACK

    def test_rollback_without_target(self, orchestrator):
        v1 = orchestrator.train_new_model('empathy', [], 1)
        orchestrator.deploy_model(v1.version_id, FULL)
        result = orchestrator.rollback_model(v1.version_id, "no reason")
        assert result.error.code is ErrorCode.NO_ROLLBACK_TARGET
        assert status_of(orchestrator, v1) is ModelStatus.ROLLBACK

    def test_rollback_ignores_other_model_types(self, orchestrator):
        policy = orchestrator.train_new_model('policy', create_training_samples(), 1)
        empathy = orchestrator.train_new_model('empathy', [], 1)
        orchestrator.deploy_model(policy.version_id, FULL)
        orchestrator.deploy_model(empathy.version_id, FULL)
        result = orchestrator.rollback_model(empathy.version_id, "regression")
        assert result.error.code is ErrorCode.NO_ROLLBACK_TARGET
        assert status_of(orchestrator, policy) is ModelStatus.DEPLOYED

    def test_redeploy_rejected(self, orchestrator):
        v1 = orchestrator.train_new_model('empathy', [], 1)
        orchestrator.deploy_model(v1.version_id, FULL)
        result = orchestrator.deploy_model(v1.version_id, FULL)
        assert result.error.code is ErrorCode.INVALID_STATE_TRANSITION

    def test_missing_artifact_rejected(self, orchestrator):
        version = orchestrator.train_new_model('tone', [], 1)
        result = orchestrator.deploy_model(version.version_id, FULL)
        assert result.error.code is ErrorCode.ARTIFACT_NOT_FOUND
        assert orchestrator.get_deployment_history() == []

    def test_unknown_version_rejected(self, orchestrator):
        result = orchestrator.deploy_model('model_missing', FULL)
        assert result.error.code is ErrorCode.VERSION_NOT_FOUND
        assert result.error.to_dict()['success'] is False

    def test_canary_allows_two_deployed(self, orchestrator):
        v1 = orchestrator.train_new_model('empathy', [], 1)
        v2 = orchestrator.train_new_model('empathy', [], 1)
        orchestrator.deploy_model(v1.version_id, FULL)
        orchestrator.deploy_model(v2.version_id, DeploymentConfig('canary', traffic_percentage=10.0))

        deployed = orchestrator.get_deployed_models()
        assert [v.version_id for v in deployed] == [v1.version_id, v2.version_id]
        assert orchestrator.registry.get(v2.version_id).traffic_percentage == 10.0

    def test_canary_rollback_restores_second_newest_full_rollout(self, orchestrator):
        v1, v2, v3 = (orchestrator.train_new_model('empathy', [], 1) for _ in range(3))
        orchestrator.deploy_model(v1.version_id, FULL)
        orchestrator.deploy_model(v2.version_id, FULL)
        orchestrator.deploy_model(v3.version_id, DeploymentConfig('canary', traffic_percentage=5.0))

        receipt = orchestrator.rollback_model(v3.version_id, 'canary regression').value

        # canaries are not rollback targets, so v1 returns next to v2
        assert receipt.restored_version_id == v1.version_id
        assert status_of(orchestrator, v3) is ModelStatus.ROLLBACK
        assert [v.version_id for v in orchestrator.get_deployed_models()] == [v1.version_id, v2.version_id]

    def test_shadow_only_records_history(self, orchestrator):
        v1 = orchestrator.train_new_model('empathy', [], 1)
        orchestrator.deploy_model(v1.version_id, DeploymentConfig('shadow_test'))
        assert status_of(orchestrator, v1) is ModelStatus.EVALUATING
        history = orchestrator.get_deployment_history()
        assert [(e.version_id, e.deployment_type) for e in history] == [
            (v1.version_id, DeploymentType.SHADOW_TEST)
        ]

    def test_invalid_deployment_config(self):
        with pytest.raises(ConfigurationError):
            DeploymentConfig('blue_green')
        with pytest.raises(ConfigurationError):
            DeploymentConfig('canary', traffic_percentage=120.0)


class TestMonitoring:

    def _deployed(self, orchestrator, metrics=None):
        version = orchestrator.train_new_model('empathy', [], 1)
        orchestrator.deploy_model(version.version_id, FULL)
        if metrics is not None:
            set_metrics(orchestrator, version, metrics)
        return version

    def test_healthy(self, orchestrator):
        version = self._deployed(orchestrator)
        report = orchestrator.monitor_deployed_model(version.version_id).value
        assert report.health is HealthStatus.HEALTHY
        assert report.recommendations == ()

    def test_degraded(self, orchestrator):
        version = self._deployed(orchestrator, ModelMetrics(empathy_score=0.5, latency=100.0))
        report = orchestrator.monitor_deployed_model(version.version_id).value
        assert report.health is HealthStatus.DEGRADED
        assert report.recommendations == ('Empathy score dropping, consider retraining',)

    def test_critical(self, orchestrator):
        metrics = ModelMetrics(empathy_score=0.5, false_intervention_rate=0.3, latency=400.0)
        version = self._deployed(orchestrator, metrics)
        report = orchestrator.monitor_deployed_model(version.version_id).value
        assert report.health is HealthStatus.CRITICAL
        assert report.recommendations[-1] == MULTIPLE_ISSUES

    def test_not_deployed(self, orchestrator):
        version = orchestrator.train_new_model('empathy', [], 1)
        report = orchestrator.monitor_deployed_model(version.version_id).value
        assert report.health is HealthStatus.CRITICAL
        assert report.recommendations == (NOT_DEPLOYED,)

    def test_unknown_version(self, orchestrator):
        result = orchestrator.monitor_deployed_model('model_missing')
        assert result.error.code is ErrorCode.VERSION_NOT_FOUND


class TestABTest:

    def test_better_test_version_wins(self, orchestrator):
        control = orchestrator.train_new_model('empathy', [], 1)
        test = orchestrator.train_new_model('empathy', [], 1)
        set_metrics(orchestrator, control, ModelMetrics(empathy_score=0.8, false_intervention_rate=0.1))
        set_metrics(orchestrator, test, ModelMetrics(empathy_score=0.9, false_intervention_rate=0.05))

        config = ABTestConfig(control.version_id, test.version_id, control_traffic=80, test_traffic=20)
        report = orchestrator.run_ab_test(config).value

        assert report.winner == test.version_id
        assert report.control.score == pytest.approx(0.85)
        assert report.test.score == pytest.approx(0.925)
        assert (report.control.traffic, report.test.traffic) == (80, 20)

    def test_control_keeps_ties(self, orchestrator):
        control = orchestrator.train_new_model('empathy', [], 1)
        test = orchestrator.train_new_model('empathy', [], 1)
        report = orchestrator.run_ab_test(ABTestConfig(control.version_id, test.version_id)).value
        assert report.winner == control.version_id

    def test_missing_version(self, orchestrator):
        control = orchestrator.train_new_model('empathy', [], 1)
        result = orchestrator.run_ab_test(ABTestConfig(control.version_id, 'model_missing'))
        assert result.error.code is ErrorCode.VERSION_NOT_FOUND
        assert result.message == "Both control and test versions must exist"


class TestRetraining:

    def test_retrain_policy(self, orchestrator):
        version = orchestrator.train_new_model('policy', create_training_samples(), 2)
        result = orchestrator.retrain_model(version.version_id, create_training_samples(), 3)
        assert result.is_success
        assert result.value.status is ModelStatus.EVALUATING
        assert result.value.version_tag == version.version_tag

    def test_retrain_rejects_non_policy(self, orchestrator):
        version = orchestrator.train_new_model('empathy', [], 1)
        result = orchestrator.retrain_model(version.version_id, [], 1)
        assert result.error.code is ErrorCode.INVALID_STATE_TRANSITION

    def test_retrain_rejects_version_in_training(self, orchestrator):
        version = orchestrator.train_new_model('policy', create_training_samples(), 1)
        nested = []
        orchestrator.retrain_model(
            version.version_id, create_training_samples(), 1,
            progress=lambda p: nested.append(
                orchestrator.retrain_model(version.version_id, create_training_samples(), 1)
            ),
        )
        assert nested[0].error.code is ErrorCode.TRAINING_IN_PROGRESS

    def test_retrain_unknown(self, orchestrator):
        result = orchestrator.retrain_model('model_missing', [], 1)
        assert result.error.code is ErrorCode.VERSION_NOT_FOUND

    def test_failed_retrain_archives(self, orchestrator):
        version = orchestrator.train_new_model('policy', create_training_samples(), 1)
        cancel = threading.Event()
        cancel.set()
        with pytest.raises(TrainingCancelled):
            orchestrator.retrain_model(version.version_id, create_training_samples(), 2, cancel_event=cancel)
        assert status_of(orchestrator, version) is ModelStatus.ARCHIVED


class TestConcurrency:
    """Status changes from parallel callers never undo one another."""

    def test_parallel_full_rollouts_leave_one_deployed(self, orchestrator):
        versions = [orchestrator.train_new_model('empathy', [], 1) for _ in range(8)]
        barrier = threading.Barrier(len(versions))

        def deploy(version):
            barrier.wait(timeout=10)
            return orchestrator.deploy_model(version.version_id, FULL)

        with ThreadPoolExecutor(max_workers=len(versions)) as executor:
            results = list(executor.map(deploy, versions))

        assert all(r.is_success for r in results)
        deployed = orchestrator.registry.deployed(ModelType.EMPATHY)
        assert len(deployed) == 1
        newest = orchestrator.history.newest_first(DeploymentType.FULL_ROLLOUT)[0]
        assert deployed[0].version_id == newest.version_id
        archived = orchestrator.list_versions(status='archived', model_type='empathy')
        assert len(archived) == len(versions) - 1

    def test_parallel_retrains_admit_one(self, orchestrator):
        version = orchestrator.train_new_model('policy', create_training_samples(), 1)
        release = threading.Event()
        results = queue.Queue()
        callers = 6

        def retrain():
            results.put(orchestrator.retrain_model(
                version.version_id, create_training_samples(), 2,
                progress=lambda p: release.wait(timeout=10),
            ))

        threads = [threading.Thread(target=retrain) for _ in range(callers)]
        for thread in threads:
            thread.start()
        # the admitted call blocks in its progress callback until released
        rejected = [results.get(timeout=10) for _ in range(callers - 1)]
        release.set()
        for thread in threads:
            thread.join(timeout=10)
        admitted = results.get(timeout=10)

        assert all(r.error.code is ErrorCode.TRAINING_IN_PROGRESS for r in rejected)
        assert admitted.is_success
        assert status_of(orchestrator, version) is ModelStatus.EVALUATING

    def test_deploy_during_evaluation_is_kept(self, orchestrator, monkeypatch):
        first = orchestrator.train_new_model('policy', create_training_samples(), 1)
        second = orchestrator.train_new_model('policy', create_training_samples(), 1)
        assert orchestrator.deploy_model(first.version_id, FULL).is_success

        evaluate_policy = RLPolicyTrainer.evaluate_policy
        deployments = []

        def evaluate_then_deploy(trainer, samples):
            evaluation = evaluate_policy(trainer, samples)
            deployments.append(orchestrator.deploy_model(second.version_id, FULL))
            return evaluation

        monkeypatch.setattr(RLPolicyTrainer, 'evaluate_policy', evaluate_then_deploy)
        report = orchestrator.evaluate_model(second.version_id, create_training_samples()).value

        assert deployments[0].is_success
        assert status_of(orchestrator, first) is ModelStatus.ARCHIVED
        assert status_of(orchestrator, second) is ModelStatus.DEPLOYED
        assert [v.version_id for v in orchestrator.get_deployed_models()] == [second.version_id]
        stored = orchestrator.registry.get(second.version_id)
        assert stored.metrics.empathy_score == report.metrics.empathy_score

    def test_deploy_rejected_while_retraining(self, orchestrator):
        version = orchestrator.train_new_model('policy', create_training_samples(), 1)
        attempts = []
        result = orchestrator.retrain_model(
            version.version_id, create_training_samples(), 1,
            progress=lambda p: attempts.append(orchestrator.deploy_model(version.version_id, FULL)),
        )

        assert attempts[0].error.code is ErrorCode.INVALID_STATE_TRANSITION
        assert result.value.status is ModelStatus.EVALUATING
        assert orchestrator.deploy_model(version.version_id, FULL).is_success

    def test_rollback_during_retrain_is_kept(self, orchestrator):
        version = orchestrator.train_new_model('policy', create_training_samples(), 1)
        orchestrator.retrain_model(
            version.version_id, create_training_samples(), 1,
            progress=lambda p: orchestrator.rollback_model(version.version_id, 'regression'),
        )

        stored = orchestrator.registry.get(version.version_id)
        assert stored.status is ModelStatus.ROLLBACK
        assert stored.metrics.reward_stability is not None


class TestQueriesAndExport:

    def test_list_versions_filters(self, orchestrator):
        policy = orchestrator.train_new_model('policy', create_training_samples(), 1)
        empathy = orchestrator.train_new_model('empathy', [], 1)
        orchestrator.deploy_model(empathy.version_id, FULL)

        assert [v.version_id for v in orchestrator.list_versions(status='evaluating')] == [policy.version_id]
        assert [v.version_id for v in orchestrator.list_versions(model_type='empathy')] == [empathy.version_id]
        assert len(orchestrator.get_active_models()) == 2
        with pytest.raises(ConfigurationError):
            orchestrator.list_versions(status='retired')

    def test_lookups_return_errors(self, orchestrator):
        assert orchestrator.get_model_version('model_missing').error.code is ErrorCode.VERSION_NOT_FOUND
        assert orchestrator.get_model_data('model_missing').error.code is ErrorCode.ARTIFACT_NOT_FOUND

    def test_export_import_round_trip(self, orchestrator):
        policy = orchestrator.train_new_model('policy', create_training_samples(), 2)
        empathy = orchestrator.train_new_model('empathy', [], 1)
        orchestrator.deploy_model(policy.version_id, FULL)
        orchestrator.deploy_model(empathy.version_id, DeploymentConfig('shadow_test'))

        exported = json.loads(json.dumps(orchestrator.export_registry()))
        restored = ModelOrchestrator(rng=make_rng(1))
        restored.import_registry(exported)

        assert restored.registry.export_versions() == orchestrator.registry.export_versions()
        assert restored.get_model_data(policy.version_id).value == orchestrator.get_model_data(policy.version_id).value
        assert restored.get_model_data(empathy.version_id).value == orchestrator.get_model_data(empathy.version_id).value
        assert restored.history.export() == orchestrator.history.export()
        assert [v.version_id for v in restored.get_deployed_models()] == [policy.version_id]
