"""
Contracts Module

Defines explicit data contracts for inter-component communication.
All components MUST use these contracts - no direct coupling allowed.

DESIGN PRINCIPLES:
==================
1. All contracts are immutable (frozen dataclasses)
2. Contracts define WHAT, not HOW
3. Feature bags are tagged unions, never duck-typed
4. Expected failures are Result values, not exceptions
"""

from .base import (
    ConfigurationError,
    TrainingCancelled,
    TrainingInProgressError,
    ErrorCode,
    Error,
    Result,
)

from .data_contracts import (
    FeatureKind,
    FeatureValue,
    FeatureBag,
    RawRecord,
    AnonymizationTechnique,
    AnonymizationConfig,
    AnonymizedRecord,
    FeatureDistribution,
    DistributionStats,
    GenerationMethod,
    SyntheticConfig,
    SyntheticSample,
    features_from_raw,
    features_to_raw,
)

from .reward_contracts import (
    RewardWeights,
    RewardInput,
    RewardComponents,
    RewardOutput,
    PerformanceReport,
    RewardArtifact,
)

from .learning_contracts import (
    ActionType,
    ActionTone,
    ContextFeatures,
    RLState,
    RLAction,
    RLTransition,
    PolicyConfig,
    TrainingEpisode,
    TrainingProgress,
    PolicyEvaluation,
    PolicyArtifact,
)

from .lifecycle_contracts import (
    ModelType,
    ModelStatus,
    ModelMetrics,
    ModelVersion,
    DeploymentType,
    DeploymentConfig,
    DeploymentHistoryEntry,
    DeploymentReceipt,
    EvaluationReport,
    HealthStatus,
    HealthReport,
    ABTestConfig,
    ABTestReport,
)

__all__ = [
    # Base
    'ConfigurationError', 'TrainingCancelled', 'TrainingInProgressError',
    'ErrorCode', 'Error', 'Result',
    # Data
    'FeatureKind', 'FeatureValue', 'FeatureBag', 'RawRecord',
    'AnonymizationTechnique', 'AnonymizationConfig', 'AnonymizedRecord',
    'FeatureDistribution', 'DistributionStats',
    'GenerationMethod', 'SyntheticConfig', 'SyntheticSample',
    'features_from_raw', 'features_to_raw',
    # Reward
    'RewardWeights', 'RewardInput', 'RewardComponents', 'RewardOutput',
    'PerformanceReport', 'RewardArtifact',
    # Learning
    'ActionType', 'ActionTone', 'ContextFeatures', 'RLState', 'RLAction',
    'RLTransition', 'PolicyConfig', 'TrainingEpisode', 'TrainingProgress',
    'PolicyEvaluation', 'PolicyArtifact',
    # Lifecycle
    'ModelType', 'ModelStatus', 'ModelMetrics', 'ModelVersion',
    'DeploymentType', 'DeploymentConfig', 'DeploymentHistoryEntry',
    'DeploymentReceipt', 'EvaluationReport', 'HealthStatus', 'HealthReport',
    'ABTestConfig', 'ABTestReport',
]
