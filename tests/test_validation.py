"""
Validation Gate Tests

Verifies threshold handling of the evaluation gate, the health monitor
and the A/B comparison score, including absent metrics.
"""

import pytest

from behavior_models.contracts.lifecycle_contracts import HealthStatus, ModelMetrics
from behavior_models.validation import (
    EvaluationGate,
    EvaluationThresholds,
    HealthMonitor,
    MonitoringThresholds,
    comparison_score,
)


class TestEvaluationGate:

    def test_boundary_values_pass(self):
        metrics = ModelMetrics(empathy_score=0.75, false_intervention_rate=0.1, latency=200.0)
        assert EvaluationGate().evaluate('v', metrics).passed

    def test_absent_metrics_count_against(self):
        assert EvaluationGate().issues(ModelMetrics()) == [
            'empathy score below threshold',
            'false intervention rate too high',
        ]

    def test_absent_latency_passes(self):
        metrics = ModelMetrics(empathy_score=0.9, false_intervention_rate=0.0)
        assert EvaluationGate().evaluate('v', metrics).passed

    def test_custom_thresholds(self):
        gate = EvaluationGate(EvaluationThresholds(min_empathy_score=0.95))
        metrics = ModelMetrics(empathy_score=0.9, false_intervention_rate=0.0)
        assert gate.evaluate('v', metrics).passed is False


class TestHealthMonitor:

    def test_absent_metrics_count_as_healthy(self):
        report = HealthMonitor().assess('v', ModelMetrics())
        assert report.health is HealthStatus.HEALTHY

    def test_two_issues_stay_degraded(self):
        metrics = ModelMetrics(empathy_score=0.6, false_intervention_rate=0.2, latency=10.0)
        report = HealthMonitor().assess('v', metrics)
        assert report.health is HealthStatus.DEGRADED
        assert len(report.recommendations) == 2

    def test_latency_issue(self):
        report = HealthMonitor().assess('v', ModelMetrics(latency=251.0))
        assert report.recommendations == ('Latency increasing, check infrastructure',)

    def test_custom_critical_count(self):
        monitor = HealthMonitor(MonitoringThresholds(critical_issue_count=0))
        report = monitor.assess('v', ModelMetrics(latency=300.0))
        assert report.health is HealthStatus.CRITICAL

    def test_report_serialization(self):
        report = HealthMonitor().assess('v', ModelMetrics(empathy_score=0.9))
        assert report.to_dict() == {
            'versionId': 'v',
            'health': 'healthy',
            'metrics': {'empathyScore': 0.9},
            'recommendations': [],
        }


class TestComparisonScore:

    def test_blend(self):
        metrics = ModelMetrics(empathy_score=0.6, false_intervention_rate=0.2)
        assert comparison_score(metrics) == pytest.approx(0.7)

    def test_absent_metrics_score_zero(self):
        assert comparison_score(ModelMetrics()) == 0.0
