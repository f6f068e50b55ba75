"""Deployed-model health monitoring."""

from __future__ import annotations
from dataclasses import dataclass
from typing import Optional

from ..contracts.lifecycle_contracts import HealthReport, HealthStatus, ModelMetrics


NOT_DEPLOYED = "Model not deployed or not found"
MULTIPLE_ISSUES = "Multiple issues detected, immediate rollback recommended"


@dataclass(frozen=True)
class MonitoringThresholds:
    """Degradation limits for a live version."""
    min_empathy_score: float = 0.7
    max_false_intervention_rate: float = 0.15
    max_latency: float = 250.0
    critical_issue_count: int = 2


class HealthMonitor:
    """Classify a deployed version as healthy, degraded or critical."""

    def __init__(self, thresholds: Optional[MonitoringThresholds] = None):
        self._thresholds = thresholds or MonitoringThresholds()

    def assess(self, version_id: str, metrics: ModelMetrics) -> HealthReport:
        # absent metrics count as healthy
        t = self._thresholds
        empathy = metrics.empathy_score if metrics.empathy_score is not None else 1.0
        fir = metrics.false_intervention_rate if metrics.false_intervention_rate is not None else 0.0
        latency = metrics.latency if metrics.latency is not None else 0.0

        health = HealthStatus.HEALTHY
        recommendations = []
        if empathy < t.min_empathy_score:
            health = HealthStatus.DEGRADED
            recommendations.append('Empathy score dropping, consider retraining')
        if fir > t.max_false_intervention_rate:
            health = HealthStatus.DEGRADED
            recommendations.append('False intervention rate increasing')
        if latency > t.max_latency:
            health = HealthStatus.DEGRADED
            recommendations.append('Latency increasing, check infrastructure')

        if len(recommendations) > t.critical_issue_count:
            health = HealthStatus.CRITICAL
            recommendations.append(MULTIPLE_ISSUES)

        return HealthReport(
            version_id=version_id,
            health=health,
            metrics=metrics,
            recommendations=tuple(recommendations),
        )

    @staticmethod
    def not_deployed(version_id: str) -> HealthReport:
        return HealthReport(
            version_id=version_id,
            health=HealthStatus.CRITICAL,
            metrics=ModelMetrics(),
            recommendations=(NOT_DEPLOYED,),
        )
