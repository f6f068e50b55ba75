"""
Data Subpackage

Privatization and synthetic expansion of per-user telemetry:
- Anonymization (pseudonymization, differential privacy, k-anonymity, generalization)
- Distribution fitting and synthetic sampling
"""

from .anonymization import DataAnonymizer, is_identifier
from .synthesis import (
    SyntheticDataGenerator,
    analyze_distribution,
    calculate_diversity_score,
    evaluate_quality,
)

__all__ = [
    'DataAnonymizer', 'is_identifier',
    'SyntheticDataGenerator', 'analyze_distribution',
    'calculate_diversity_score', 'evaluate_quality',
]
