"""
Request models for the training API.

Field names are snake_case in Python and camelCase on the wire.
"""

from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


EPSILON_ALIASES = AliasChoices('epsilon', 'privacyEpsilon', 'privacy_epsilon')


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        protected_namespaces=(),
    )


# =============================================================================
# DATA PHASE
# =============================================================================

class RawRecordIn(CamelModel):
    user_id: str
    data: Dict[str, Any]

    @field_validator('user_id')
    @classmethod
    def user_id_must_not_be_empty(cls, v):
        if not v.strip():
            raise ValueError('userId cannot be empty')
        return v


class AnonymizeRequest(CamelModel):
    user_id: str
    data: Dict[str, Any]
    technique: str
    privacy_epsilon: float = Field(1.0, gt=0, validation_alias=EPSILON_ALIASES)
    k: int = Field(5, ge=1)


class BatchAnonymizeRequest(CamelModel):
    records: List[RawRecordIn] = Field(..., min_length=1)
    technique: str
    privacy_epsilon: float = Field(1.0, gt=0, validation_alias=EPSILON_ALIASES)
    k: int = Field(5, ge=1)


class GenerateSyntheticRequest(CamelModel):
    records: List[RawRecordIn]
    method: str
    sample_count: int = Field(100, ge=0, le=5000)
    quality_threshold: float = Field(0.7, ge=0, le=1)
    technique: str = 'differential_privacy'
    privacy_epsilon: float = Field(0.5, gt=0, validation_alias=EPSILON_ALIASES)


class SyntheticSampleIn(CamelModel):
    features: Dict[str, Any]
    quality_score: float = Field(1.0, ge=0, le=1)


# =============================================================================
# REWARD
# =============================================================================

class RewardRequest(CamelModel):
    sentiment_before: float = Field(..., ge=-1, le=1)
    sentiment_after: float = Field(..., ge=-1, le=1)
    engagement_before: float = Field(..., ge=0, le=1)
    engagement_after: float = Field(..., ge=0, le=1)
    action_type: str
    action_timing: float = Field(..., ge=0)
    consent_given: bool
    privacy_respected: bool
    user_feedback: Optional[float] = Field(None, ge=-1, le=1)
    context_relevance: Optional[float] = Field(None, ge=0, le=1)


# =============================================================================
# TRAINING
# =============================================================================

class TrainModelRequest(CamelModel):
    model_type: str
    samples: List[SyntheticSampleIn]
    epochs: int = Field(10, ge=0, le=10000)
    hyperparams: Optional[Dict[str, Any]] = None


class TrainFromTelemetryRequest(CamelModel):
    records: List[RawRecordIn] = Field(..., min_length=1)
    model_type: str = 'policy'
    technique: str = 'differential_privacy'
    privacy_epsilon: float = Field(0.5, gt=0, validation_alias=EPSILON_ALIASES)
    method: str = 'rule_based'
    sample_count: int = Field(100, ge=0, le=5000)
    quality_threshold: float = Field(0.7, ge=0, le=1)
    epochs: int = Field(10, ge=0, le=10000)
    hyperparams: Optional[Dict[str, Any]] = None


# =============================================================================
# LIFECYCLE
# =============================================================================

class VersionRequest(CamelModel):
    version_id: str


class EvaluateRequest(VersionRequest):
    test_samples: Optional[List[SyntheticSampleIn]] = None


class DeployRequest(VersionRequest):
    deployment_type: str
    traffic_percentage: float = Field(100.0, ge=0, le=100)


class RollbackRequest(VersionRequest):
    reason: str


class TrafficSplit(CamelModel):
    control: float = Field(50.0, ge=0)
    test: float = Field(50.0, ge=0)


class ABTestRequest(CamelModel):
    control_version_id: str
    test_version_id: str
    traffic_split: TrafficSplit = Field(default_factory=TrafficSplit)
    duration: float = Field(0.0, ge=0)


class RegistryImportRequest(CamelModel):
    models: List[Any]
    versions: List[Dict[str, Any]] = Field(default_factory=list)
    history: List[Dict[str, Any]] = Field(default_factory=list)
