"""
Data Contracts

Immutable data structures for the data phase: raw telemetry records,
anonymized feature bags, fitted distributions and synthetic samples.

Feature bags are mappings from name to FeatureValue, a tagged union.
Raw (duck-typed) values are converted exactly once, at the anonymizer
boundary; everything downstream branches on FeatureValue.kind.

NO TRANSFORMATION LOGIC HERE - only data definitions.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Dict, Iterable, List, Mapping, Optional, Tuple
from enum import Enum
import math
import numbers

from .base import ConfigurationError


# =============================================================================
# ENUMS
# =============================================================================

class FeatureKind(Enum):
    """Tag of a FeatureValue."""
    NUMERIC = "numeric"
    BOOLEAN = "boolean"
    CATEGORICAL = "categorical"
    SEQUENCE = "sequence"
    MAPPING = "mapping"


class AnonymizationTechnique(Enum):
    """Supported anonymization techniques."""
    PSEUDONYMIZATION = "pseudonymization"
    DIFFERENTIAL_PRIVACY = "differential_privacy"
    K_ANONYMITY = "k-anonymity"
    GENERALIZATION = "generalization"


class GenerationMethod(Enum):
    """Synthetic sampling strategies."""
    RULE_BASED = "rule_based"
    VAE = "vae"
    DIFFUSION = "diffusion"
    GAN = "gan"


def parse_enum(enum_cls, value, label: str):
    """Coerce a string (or enum member) into enum_cls, raising ConfigurationError."""
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        choices = ", ".join(m.value for m in enum_cls)
        raise ConfigurationError(f"Unknown {label}: {value!r} (expected one of: {choices})")


# =============================================================================
# FEATURE VALUES (tagged union)
# =============================================================================

@dataclass(frozen=True)
class FeatureValue:
    """
    One feature of a bag.

    value holds, by kind:
    - NUMERIC: float
    - BOOLEAN: bool
    - CATEGORICAL: str
    - SEQUENCE: Tuple[FeatureValue, ...]
    - MAPPING: Tuple[Tuple[str, FeatureValue], ...]
    """
    kind: FeatureKind
    value: object

    @staticmethod
    def numeric(value: float) -> FeatureValue:
        return FeatureValue(FeatureKind.NUMERIC, float(value))

    @staticmethod
    def boolean(value: bool) -> FeatureValue:
        return FeatureValue(FeatureKind.BOOLEAN, bool(value))

    @staticmethod
    def categorical(value: str) -> FeatureValue:
        return FeatureValue(FeatureKind.CATEGORICAL, str(value))

    @staticmethod
    def sequence(items: Iterable[FeatureValue]) -> FeatureValue:
        return FeatureValue(FeatureKind.SEQUENCE, tuple(items))

    @staticmethod
    def mapping(items: Mapping[str, FeatureValue]) -> FeatureValue:
        return FeatureValue(FeatureKind.MAPPING, tuple(items.items()))

    @staticmethod
    def from_raw(raw) -> Optional[FeatureValue]:
        """Convert a raw telemetry value. Returns None for missing values."""
        if raw is None:
            return None
        # bool is a numbers.Real subclass, so it must be checked first
        if isinstance(raw, bool):
            return FeatureValue.boolean(raw)
        if isinstance(raw, numbers.Real):
            return FeatureValue.numeric(float(raw))
        if isinstance(raw, str):
            return FeatureValue.categorical(raw)
        if isinstance(raw, (datetime, date)):
            return FeatureValue.categorical(raw.isoformat())
        if isinstance(raw, Mapping):
            return FeatureValue.mapping(features_from_raw(raw))
        if isinstance(raw, (list, tuple)):
            converted = (FeatureValue.from_raw(item) for item in raw)
            return FeatureValue.sequence(item for item in converted if item is not None)
        return FeatureValue.categorical(str(raw))

    @property
    def is_numeric(self) -> bool:
        return self.kind is FeatureKind.NUMERIC

    @property
    def is_boolean(self) -> bool:
        return self.kind is FeatureKind.BOOLEAN

    @property
    def is_categorical(self) -> bool:
        return self.kind is FeatureKind.CATEGORICAL

    @property
    def is_sequence(self) -> bool:
        return self.kind is FeatureKind.SEQUENCE

    @property
    def is_mapping(self) -> bool:
        return self.kind is FeatureKind.MAPPING

    def items(self) -> Tuple[Tuple[str, FeatureValue], ...]:
        """Named children of a MAPPING value."""
        if not self.is_mapping:
            raise TypeError(f"{self.kind.value} feature has no named children")
        return self.value

    def to_raw(self):
        """Plain Python form (float, bool, str, list, dict)."""
        if self.is_sequence:
            return [item.to_raw() for item in self.value]
        if self.is_mapping:
            return {key: item.to_raw() for key, item in self.value}
        return self.value

    def as_category(self) -> str:
        """Canonical string used as a categorical distribution key."""
        if self.is_categorical:
            return self.value
        if self.is_boolean:
            return "true" if self.value else "false"
        if self.is_numeric:
            number = self.value
            return str(int(number)) if number.is_integer() else repr(number)
        if self.is_sequence:
            return ",".join(item.as_category() for item in self.value)
        return "{" + ",".join(f"{k}:{v.as_category()}" for k, v in self.value) + "}"

    def flatten(self) -> List[float]:
        """Numeric and boolean leaves in order (booleans as 0/1)."""
        if self.is_numeric:
            return [self.value]
        if self.is_boolean:
            return [1.0 if self.value else 0.0]
        if self.is_sequence:
            return [leaf for item in self.value for leaf in item.flatten()]
        if self.is_mapping:
            return [leaf for _, item in self.value for leaf in item.flatten()]
        return []


FeatureBag = Dict[str, FeatureValue]


def features_from_raw(data: Mapping[str, object]) -> FeatureBag:
    """Convert a raw mapping into a feature bag, dropping missing values."""
    bag: FeatureBag = {}
    for key, raw in data.items():
        value = FeatureValue.from_raw(raw)
        if value is not None:
            bag[str(key)] = value
    return bag


def features_to_raw(bag: Mapping[str, FeatureValue]) -> Dict[str, object]:
    return {key: value.to_raw() for key, value in bag.items()}


def flatten_features(bag: Mapping[str, FeatureValue]) -> List[float]:
    return [leaf for value in bag.values() for leaf in value.flatten()]


def numeric_feature(bag: Mapping[str, FeatureValue], *names: str) -> Optional[float]:
    """First present numeric feature among names, else None."""
    for name in names:
        value = bag.get(name)
        if value is not None and value.is_numeric:
            return value.value
    return None


# =============================================================================
# ANONYMIZATION CONTRACTS
# =============================================================================

@dataclass(frozen=True)
class RawRecord:
    """
    Raw per-user telemetry as delivered by the upstream event source.
    Never persisted past the anonymizer.
    """
    user_id: str
    data: Mapping[str, object]
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass(frozen=True)
class AnonymizationConfig:
    """Technique plus its parameters."""
    technique: AnonymizationTechnique
    epsilon: float = 1.0
    k: int = 5

    def __post_init__(self):
        object.__setattr__(
            self, 'technique',
            parse_enum(AnonymizationTechnique, self.technique, "anonymization technique")
        )
        if not self.epsilon > 0:
            raise ConfigurationError("epsilon must be positive")
        if isinstance(self.k, bool) or not isinstance(self.k, numbers.Integral) or self.k < 1:
            raise ConfigurationError("k must be a positive integer")


@dataclass(frozen=True)
class AnonymizedRecord:
    """
    Privatized feature bag.

    pseudo_id is only set by pseudonymization; it lives outside features
    so that features never carry an identifier-like key.
    """
    features: FeatureBag
    technique: AnonymizationTechnique
    privacy_loss: float
    original_type: str
    timestamp: datetime
    pseudo_id: Optional[str] = None

    def to_dict(self) -> dict:
        payload = {
            'features': features_to_raw(self.features),
            'metadata': {
                'originalType': self.original_type,
                'anonymizationTechnique': self.technique.value,
                'privacyLoss': self.privacy_loss,
                'timestamp': self.timestamp.isoformat(),
            },
        }
        if self.pseudo_id is not None:
            payload['pseudoId'] = self.pseudo_id
        return payload


# =============================================================================
# DISTRIBUTION CONTRACTS
# =============================================================================

@dataclass(frozen=True)
class FeatureDistribution:
    """Per-feature summary fitted over one batch of anonymized records."""
    kind: FeatureKind
    mean: float = 0.0
    std_dev: float = 0.0
    min: float = 0.0
    max: float = 0.0
    true_ratio: float = 0.0
    distribution: Tuple[Tuple[str, float], ...] = field(default_factory=tuple)

    def __post_init__(self):
        if self.kind not in (FeatureKind.NUMERIC, FeatureKind.BOOLEAN, FeatureKind.CATEGORICAL):
            raise ValueError("distribution kind must be numeric, boolean or categorical")

    @property
    def safe_std(self) -> float:
        """std-dev with the zero guard applied."""
        return self.std_dev or 1.0

    def knows(self, category: str) -> bool:
        return any(value == category for value, _ in self.distribution)

    def to_dict(self) -> dict:
        if self.kind is FeatureKind.NUMERIC:
            return {'type': 'numeric', 'mean': self.mean, 'stdDev': self.std_dev,
                    'min': self.min, 'max': self.max}
        if self.kind is FeatureKind.BOOLEAN:
            return {'type': 'boolean', 'trueRatio': self.true_ratio}
        return {'type': 'categorical', 'distribution': dict(self.distribution)}


@dataclass(frozen=True)
class DistributionStats:
    """Batch fit: ordered per-feature distributions plus numeric summaries."""
    feature_stats: Tuple[Tuple[str, FeatureDistribution], ...]
    sample_count: int

    @property
    def features(self) -> Dict[str, FeatureDistribution]:
        return dict(self.feature_stats)

    @property
    def numeric_features(self) -> Tuple[Tuple[str, FeatureDistribution], ...]:
        return tuple(
            (name, stat) for name, stat in self.feature_stats
            if stat.kind is FeatureKind.NUMERIC
        )

    @property
    def dimensions(self) -> int:
        return len(self.numeric_features)

    @property
    def means(self) -> List[float]:
        return [stat.mean for _, stat in self.numeric_features]

    @property
    def std_devs(self) -> List[float]:
        return [stat.std_dev for _, stat in self.numeric_features]

    def get(self, name: str) -> Optional[FeatureDistribution]:
        for key, stat in self.feature_stats:
            if key == name:
                return stat
        return None


# =============================================================================
# SYNTHETIC CONTRACTS
# =============================================================================

@dataclass(frozen=True)
class SyntheticConfig:
    """Generation request parameters."""
    method: GenerationMethod
    sample_count: int
    quality_threshold: float = 0.7

    def __post_init__(self):
        object.__setattr__(
            self, 'method', parse_enum(GenerationMethod, self.method, "generation method")
        )
        if self.sample_count < 0:
            raise ConfigurationError("sample_count must be non-negative")
        if not 0.0 <= self.quality_threshold <= 1.0 or math.isnan(self.quality_threshold):
            raise ConfigurationError("quality_threshold must be between 0.0 and 1.0")


@dataclass(frozen=True)
class SyntheticSample:
    """
    Artificial feature bag resembling the anonymized source data.
    Produced by the generator; consumed only by the trainer.
    """
    features: FeatureBag
    source_distribution: str
    quality_score: float
    synthetic_id: str
    generated_at: datetime

    def __post_init__(self):
        if not 0.0 <= self.quality_score <= 1.0:
            raise ValueError("quality_score must be between 0.0 and 1.0")

    @staticmethod
    def from_raw(
        features: Mapping[str, object],
        quality_score: float = 1.0,
        source_distribution: str = "external",
        synthetic_id: str = "",
        generated_at: Optional[datetime] = None,
    ) -> SyntheticSample:
        """Build a sample from plain feature values (API and test boundary)."""
        return SyntheticSample(
            features=features_from_raw(features),
            source_distribution=source_distribution,
            quality_score=quality_score,
            synthetic_id=synthetic_id,
            generated_at=generated_at or datetime.now(timezone.utc),
        )

    def to_dict(self) -> dict:
        return {
            'features': features_to_raw(self.features),
            'sourceDistribution': self.source_distribution,
            'qualityScore': self.quality_score,
            'syntheticId': self.synthetic_id,
            'generatedAt': self.generated_at.isoformat(),
        }
