"""
Validation Subpackage

Lifecycle gates:
- Evaluation gate before deployment
- Health monitoring of deployed versions
- A/B comparison
"""

from .evaluation import EvaluationGate, EvaluationThresholds
from .monitoring import HealthMonitor, MonitoringThresholds
from .comparison import VersionComparator, comparison_score

__all__ = [
    'EvaluationGate', 'EvaluationThresholds',
    'HealthMonitor', 'MonitoringThresholds',
    'VersionComparator', 'comparison_score',
]
