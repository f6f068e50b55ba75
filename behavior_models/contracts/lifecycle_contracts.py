"""
Lifecycle Contracts

Immutable data structures for model versions, deployments, evaluation,
monitoring and A/B comparison. Status changes produce new ModelVersion
instances via dataclasses.replace; the registry stores the latest one.

NO LIFECYCLE LOGIC HERE - only data definitions.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from typing import Mapping, Optional, Tuple
from enum import Enum

from .base import ConfigurationError
from .data_contracts import parse_enum


# =============================================================================
# ENUMS
# =============================================================================

class ModelType(Enum):
    POLICY = "policy"
    EMPATHY = "empathy"
    TIMING = "timing"
    TONE = "tone"


class ModelStatus(Enum):
    TRAINING = "training"
    EVALUATING = "evaluating"
    DEPLOYED = "deployed"
    ARCHIVED = "archived"
    ROLLBACK = "rollback"


class DeploymentType(Enum):
    FULL_ROLLOUT = "full_rollout"
    SHADOW_TEST = "shadow_test"
    CANARY = "canary"


class HealthStatus(Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    CRITICAL = "critical"


# =============================================================================
# VERSION CONTRACTS
# =============================================================================

@dataclass(frozen=True)
class ModelMetrics:
    """Recorded quality metrics; any of them may be absent."""
    empathy_score: Optional[float] = None
    false_intervention_rate: Optional[float] = None
    latency: Optional[float] = None
    reward_stability: Optional[float] = None

    def to_dict(self) -> dict:
        payload = {
            'empathyScore': self.empathy_score,
            'falseInterventionRate': self.false_intervention_rate,
            'latency': self.latency,
            'rewardStability': self.reward_stability,
        }
        return {k: v for k, v in payload.items() if v is not None}

    @staticmethod
    def from_dict(data: Optional[Mapping]) -> Optional[ModelMetrics]:
        if data is None:
            return None
        return ModelMetrics(
            empathy_score=data.get('empathyScore'),
            false_intervention_rate=data.get('falseInterventionRate'),
            latency=data.get('latency'),
            reward_stability=data.get('rewardStability'),
        )


@dataclass(frozen=True)
class ModelVersion:
    """
    One trained artifact's lifecycle record.

    Invariant: after any full rollout exactly one version per model_type
    holds DEPLOYED; canary deployments may add more.
    """
    version_id: str
    version_tag: str
    model_type: ModelType
    status: ModelStatus
    created_at: datetime
    metrics: Optional[ModelMetrics] = None
    deployed_at: Optional[datetime] = None
    traffic_percentage: Optional[float] = None

    def to_dict(self) -> dict:
        return {
            'versionId': self.version_id,
            'versionTag': self.version_tag,
            'modelType': self.model_type.value,
            'status': self.status.value,
            'metrics': self.metrics.to_dict() if self.metrics else None,
            'deployedAt': self.deployed_at.isoformat() if self.deployed_at else None,
            'createdAt': self.created_at.isoformat(),
            'trafficPercentage': self.traffic_percentage,
        }

    @staticmethod
    def from_dict(data: Mapping) -> ModelVersion:
        deployed_at = data.get('deployedAt')
        return ModelVersion(
            version_id=data['versionId'],
            version_tag=data['versionTag'],
            model_type=ModelType(data['modelType']),
            status=ModelStatus(data['status']),
            created_at=datetime.fromisoformat(data['createdAt']),
            metrics=ModelMetrics.from_dict(data.get('metrics')),
            deployed_at=datetime.fromisoformat(deployed_at) if deployed_at else None,
            traffic_percentage=data.get('trafficPercentage'),
        )


# =============================================================================
# DEPLOYMENT CONTRACTS
# =============================================================================

@dataclass(frozen=True)
class DeploymentConfig:
    type: DeploymentType
    traffic_percentage: float = 100.0

    def __post_init__(self):
        object.__setattr__(
            self, 'type', parse_enum(DeploymentType, self.type, "deployment type")
        )
        if not 0.0 <= self.traffic_percentage <= 100.0:
            raise ConfigurationError("traffic_percentage must be between 0 and 100")


@dataclass(frozen=True)
class DeploymentHistoryEntry:
    """
    Append-only deployment log entry.
    sequence orders entries recorded within the same clock tick.
    """
    version_id: str
    deployment_type: DeploymentType
    timestamp: datetime
    sequence: int

    def to_dict(self) -> dict:
        return {
            'versionId': self.version_id,
            'type': self.deployment_type.value,
            'timestamp': self.timestamp.isoformat(),
            'sequence': self.sequence,
        }

    @staticmethod
    def from_dict(data: Mapping) -> DeploymentHistoryEntry:
        return DeploymentHistoryEntry(
            version_id=data['versionId'],
            deployment_type=DeploymentType(data['type']),
            timestamp=datetime.fromisoformat(data['timestamp']),
            sequence=int(data.get('sequence', 0)),
        )


@dataclass(frozen=True)
class DeploymentReceipt:
    """Successful deploy or rollback acknowledgement."""
    version_id: str
    message: str
    restored_version_id: Optional[str] = None

    def to_dict(self) -> dict:
        payload = {'success': True, 'message': self.message, 'versionId': self.version_id}
        if self.restored_version_id:
            payload['restoredVersionId'] = self.restored_version_id
        return payload


# =============================================================================
# EVALUATION / MONITORING / COMPARISON
# =============================================================================

@dataclass(frozen=True)
class EvaluationReport:
    version_id: str
    passed: bool
    metrics: ModelMetrics
    recommendation: str

    def to_dict(self) -> dict:
        return {
            'versionId': self.version_id,
            'passed': self.passed,
            'metrics': self.metrics.to_dict(),
            'recommendation': self.recommendation,
        }


@dataclass(frozen=True)
class HealthReport:
    version_id: str
    health: HealthStatus
    metrics: ModelMetrics
    recommendations: Tuple[str, ...]

    def to_dict(self) -> dict:
        return {
            'versionId': self.version_id,
            'health': self.health.value,
            'metrics': self.metrics.to_dict(),
            'recommendations': list(self.recommendations),
        }


@dataclass(frozen=True)
class ABTestConfig:
    control_version_id: str
    test_version_id: str
    control_traffic: float = 50.0
    test_traffic: float = 50.0
    duration: float = 0.0

    def __post_init__(self):
        if self.control_traffic < 0 or self.test_traffic < 0:
            raise ConfigurationError("traffic split values must be non-negative")
        if self.duration < 0:
            raise ConfigurationError("duration must be non-negative")


@dataclass(frozen=True)
class ABTestSide:
    version_id: str
    score: float
    metrics: ModelMetrics
    traffic: float

    def to_dict(self) -> dict:
        return {
            'versionId': self.version_id,
            'score': self.score,
            'metrics': self.metrics.to_dict(),
            'traffic': self.traffic,
        }


@dataclass(frozen=True)
class ABTestReport:
    winner: str
    control: ABTestSide
    test: ABTestSide
    duration: float = 0.0
    completed_at: Optional[datetime] = field(default=None)

    def to_dict(self) -> dict:
        return {
            'winner': self.winner,
            'results': {'control': self.control.to_dict(), 'test': self.test.to_dict()},
            'duration': self.duration,
            'completedAt': self.completed_at.isoformat() if self.completed_at else None,
        }
