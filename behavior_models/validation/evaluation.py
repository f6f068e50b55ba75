"""Pre-deployment evaluation gate."""

from __future__ import annotations
from dataclasses import dataclass
from typing import List, Optional

from ..contracts.lifecycle_contracts import EvaluationReport, ModelMetrics


PASS_RECOMMENDATION = "Model passed evaluation. Ready for shadow testing."


@dataclass(frozen=True)
class EvaluationThresholds:
    """Minimum quality a version must show before deployment."""
    min_empathy_score: float = 0.75
    max_false_intervention_rate: float = 0.1
    max_latency: float = 200.0


class EvaluationGate:
    """
    Pass/fail check of recorded metrics.

    Missing metrics count against the model: empathy as 0,
    false-intervention rate as 1. Missing latency counts as 0.
    """

    def __init__(self, thresholds: Optional[EvaluationThresholds] = None):
        self._thresholds = thresholds or EvaluationThresholds()

    @property
    def thresholds(self) -> EvaluationThresholds:
        return self._thresholds

    def issues(self, metrics: ModelMetrics) -> List[str]:
        t = self._thresholds
        empathy = metrics.empathy_score if metrics.empathy_score is not None else 0.0
        fir = metrics.false_intervention_rate if metrics.false_intervention_rate is not None else 1.0
        latency = metrics.latency if metrics.latency is not None else 0.0

        found = []
        if empathy < t.min_empathy_score:
            found.append('empathy score below threshold')
        if fir > t.max_false_intervention_rate:
            found.append('false intervention rate too high')
        if latency > t.max_latency:
            found.append('latency exceeds limit')
        return found

    def evaluate(self, version_id: str, metrics: ModelMetrics) -> EvaluationReport:
        found = self.issues(metrics)
        if found:
            recommendation = (
                f"Model failed: {', '.join(found)}. "
                "Recommend retraining with adjusted parameters."
            )
        else:
            recommendation = PASS_RECOMMENDATION
        return EvaluationReport(
            version_id=version_id,
            passed=not found,
            metrics=metrics,
            recommendation=recommendation,
        )
