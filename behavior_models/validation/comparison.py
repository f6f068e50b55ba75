"""A/B comparison of two model versions."""

from __future__ import annotations
from datetime import datetime, timezone

from ..contracts.lifecycle_contracts import (
    ABTestConfig,
    ABTestReport,
    ABTestSide,
    ModelMetrics,
    ModelVersion,
)


def comparison_score(metrics: ModelMetrics) -> float:
    """Equal blend of empathy and intervention precision."""
    empathy = metrics.empathy_score if metrics.empathy_score is not None else 0.0
    fir = metrics.false_intervention_rate if metrics.false_intervention_rate is not None else 1.0
    return empathy * 0.5 + (1 - fir) * 0.5


class VersionComparator:
    """Compare a control and a test version on their recorded metrics."""

    def compare(
        self,
        control: ModelVersion,
        test: ModelVersion,
        config: ABTestConfig,
    ) -> ABTestReport:
        control_metrics = control.metrics or ModelMetrics()
        test_metrics = test.metrics or ModelMetrics()
        control_score = comparison_score(control_metrics)
        test_score = comparison_score(test_metrics)

        # control keeps ties
        winner = test.version_id if test_score > control_score else control.version_id

        return ABTestReport(
            winner=winner,
            control=ABTestSide(
                version_id=control.version_id,
                score=control_score,
                metrics=control_metrics,
                traffic=config.control_traffic,
            ),
            test=ABTestSide(
                version_id=test.version_id,
                score=test_score,
                metrics=test_metrics,
                traffic=config.test_traffic,
            ),
            duration=config.duration,
            completed_at=datetime.now(timezone.utc),
        )
