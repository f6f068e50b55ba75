"""
Telemetry Anonymizer

Strips or obscures identifying data from raw per-user telemetry and
produces a privatized feature bag plus a privacy-loss estimate.

BOUNDARY ENFORCEMENT:
- Raw values are converted to FeatureValue here and nowhere else
- Identifier-like keys never leave this module, at any nesting depth
- Pure function of input + config + random stream; the only shared
  state is the salt, which must stay constant per deployment
"""

from __future__ import annotations
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Tuple, Union
import hashlib
import logging
import math
import re
import time

import numpy as np

from ..config import DEFAULT_SALT, make_rng
from ..contracts.data_contracts import (
    AnonymizationConfig,
    AnonymizationTechnique,
    AnonymizedRecord,
    FeatureBag,
    FeatureValue,
    RawRecord,
    features_from_raw,
    flatten_features,
)

logger = logging.getLogger(__name__)


IDENTIFIER_KEYS = (
    'userid', 'user_id', 'id', 'email', 'phone', 'phonenumber', 'ssn',
    'name', 'firstname', 'lastname', 'address', 'ip', 'ipaddress',
)

EMAIL_PATTERN = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')
PHONE_PATTERN = re.compile(r'^\+?[\d\s\-()]+$')
SSN_PATTERN = re.compile(r'^\d{3}-\d{2}-\d{4}$')

PSEUDONYM_NOISE_LEVEL = 0.05
DP_SENSITIVITY_FACTOR = 0.1
GENERALIZATION_BIN = 10
MAX_STRING_LENGTH = 10

PRIVACY_LOSS = {
    AnonymizationTechnique.PSEUDONYMIZATION: 0.1,
    AnonymizationTechnique.K_ANONYMITY: 0.3,
    AnonymizationTechnique.GENERALIZATION: 0.2,
}


def is_identifier(key: str) -> bool:
    """Case-insensitive substring match against identifier names."""
    lowered = key.lower()
    return any(marker in lowered for marker in IDENTIFIER_KEYS)


def looks_like_personal_info(value: str) -> bool:
    return bool(
        EMAIL_PATTERN.match(value) or PHONE_PATTERN.match(value) or SSN_PATTERN.match(value)
    )


def mask_string(value: str, visible: int = 2) -> str:
    if len(value) <= 4:
        return '***'
    return value[:visible] + '*' * (len(value) - visible * 2) + value[-visible:]


def generalize_number(value: float, bin_size: float) -> float:
    generalized = math.floor(value / bin_size) * bin_size
    # guard against the quotient rounding up to the next bin
    if generalized > value:
        generalized -= bin_size
    return float(generalized)


def generalize_string(value: str) -> str:
    if len(value) > MAX_STRING_LENGTH:
        return value[:MAX_STRING_LENGTH] + '...'
    return value


def strip_identifiers(value: FeatureValue) -> FeatureValue:
    """Drop identifier keys from nested mappings, recursively."""
    if value.is_mapping:
        return FeatureValue.mapping({
            key: strip_identifiers(child)
            for key, child in value.items()
            if not is_identifier(key)
        })
    if value.is_sequence:
        return FeatureValue.sequence(strip_identifiers(item) for item in value.value)
    return value


RecordLike = Union[RawRecord, Tuple[str, Mapping[str, object]]]


class DataAnonymizer:
    """
    Privatizes raw telemetry records.

    Techniques:
    - pseudonymization: salted one-way user hash, PII masking, ±5% noise
    - differential_privacy: Laplace noise scaled by 1/epsilon
    - k-anonymity: numeric flooring to multiples of k, string truncation
    - generalization: k-anonymity with a fixed bin of 10, also on sequences
    """

    def __init__(
        self,
        salt: str = DEFAULT_SALT,
        rng: Optional[np.random.Generator] = None,
        max_workers: int = 4,
    ):
        self._salt = salt
        self._rng = make_rng(rng)
        self._max_workers = max_workers
        self._handlers: Dict[AnonymizationTechnique, Callable] = {
            AnonymizationTechnique.PSEUDONYMIZATION: self._pseudonymize,
            AnonymizationTechnique.DIFFERENTIAL_PRIVACY: self._apply_differential_privacy,
            AnonymizationTechnique.K_ANONYMITY: self._apply_k_anonymity,
            AnonymizationTechnique.GENERALIZATION: self._generalize,
        }

    # =========================================================================
    # PUBLIC INTERFACE
    # =========================================================================

    def anonymize_user_data(
        self,
        user_id: str,
        data: Mapping[str, object],
        config: AnonymizationConfig,
        original_type: Optional[str] = None,
        rng: Optional[np.random.Generator] = None,
    ) -> AnonymizedRecord:
        """Anonymize one record. Raises ConfigurationError on a bad config."""
        if not isinstance(config, AnonymizationConfig):
            raise TypeError("config must be an AnonymizationConfig")
        rng = rng or self._rng
        started = time.perf_counter()

        bag = features_from_raw(data)
        handler = self._handlers[config.technique]
        features = handler(bag, config, rng)

        pseudo_id = None
        if config.technique is AnonymizationTechnique.PSEUDONYMIZATION:
            pseudo_id = self.hash_user_id(user_id)

        privacy_loss = PRIVACY_LOSS.get(config.technique, config.epsilon)

        logger.debug(
            "Technique: %s, Time: %.2fms, Privacy Loss: %s",
            config.technique.value, (time.perf_counter() - started) * 1000, privacy_loss,
        )

        return AnonymizedRecord(
            features=features,
            technique=config.technique,
            privacy_loss=privacy_loss,
            original_type=original_type or type(data).__name__,
            timestamp=datetime.now(timezone.utc),
            pseudo_id=pseudo_id,
        )

    def batch_anonymize(
        self,
        items: Sequence[RecordLike],
        config: AnonymizationConfig,
    ) -> List[AnonymizedRecord]:
        """
        Anonymize independent records concurrently, preserving input order.

        Each item draws from its own child random stream so results do
        not depend on thread scheduling.
        """
        records = [self._as_raw_record(item) for item in items]
        logger.info("Batch processing %d items...", len(records))
        if not records:
            return []

        streams = self._rng.spawn(len(records))
        workers = max(1, min(self._max_workers, len(records)))
        with ThreadPoolExecutor(max_workers=workers) as executor:
            results = list(executor.map(
                lambda pair: self.anonymize_user_data(
                    pair[0].user_id, pair[0].data, config, rng=pair[1]
                ),
                zip(records, streams),
            ))

        logger.info("Batch complete: %d items anonymized", len(results))
        return results

    def anonymize_pulse_data(
        self,
        user_id: str,
        bpm: float,
        resonance_index: float,
        timestamp: datetime,
        context: Optional[str] = None,
    ) -> AnonymizedRecord:
        return self.anonymize_user_data(
            user_id,
            {
                'bpm': bpm,
                'resonanceIndex': resonance_index,
                'hour': timestamp.hour,
                'dayOfWeek': (timestamp.weekday() + 1) % 7,
                'context': context,
            },
            AnonymizationConfig(AnonymizationTechnique.DIFFERENTIAL_PRIVACY, epsilon=0.5),
            original_type='pulse',
        )

    def anonymize_emotion_data(
        self,
        user_id: str,
        valence: float,
        arousal: float,
        context: str,
        timestamp: datetime,
        dominance: Optional[float] = None,
    ) -> AnonymizedRecord:
        return self.anonymize_user_data(
            user_id,
            {
                'valence': valence,
                'arousal': arousal,
                'dominance': dominance,
                'context': context,
                'hour': timestamp.hour,
            },
            AnonymizationConfig(AnonymizationTechnique.DIFFERENTIAL_PRIVACY, epsilon=0.8),
            original_type='emotion',
        )

    def anonymize_interaction_data(
        self,
        user_id: str,
        partner_id: str,
        duration: float,
        resonance: float,
        sentiment: float,
        timestamp: datetime,
    ) -> AnonymizedRecord:
        return self.anonymize_user_data(
            user_id,
            {
                'partnerPseudo': self.hash_user_id(partner_id),
                'duration': duration,
                'resonance': resonance,
                'sentiment': sentiment,
                'hour': timestamp.hour,
            },
            AnonymizationConfig(AnonymizationTechnique.PSEUDONYMIZATION),
            original_type='interaction',
        )

    @staticmethod
    def extract_feature_vector(record: AnonymizedRecord) -> List[float]:
        """Numeric and boolean leaves of the record, booleans as 0/1."""
        return flatten_features(record.features)

    def hash_user_id(self, user_id: str) -> str:
        return hashlib.sha256((user_id + self._salt).encode('utf-8')).hexdigest()[:16]

    # =========================================================================
    # TECHNIQUES
    # =========================================================================

    def _pseudonymize(self, bag: FeatureBag, config: AnonymizationConfig, rng) -> FeatureBag:
        anonymized: FeatureBag = {}
        for key, value in bag.items():
            if is_identifier(key):
                continue
            if value.is_categorical and looks_like_personal_info(value.value):
                anonymized[key] = FeatureValue.categorical(mask_string(value.value))
            elif value.is_numeric:
                anonymized[key] = FeatureValue.numeric(
                    self._proportional_noise(value.value, PSEUDONYM_NOISE_LEVEL, rng)
                )
            else:
                anonymized[key] = strip_identifiers(value)
        return anonymized

    def _apply_differential_privacy(
        self, bag: FeatureBag, config: AnonymizationConfig, rng
    ) -> FeatureBag:
        epsilon = config.epsilon
        anonymized: FeatureBag = {}
        for key, value in bag.items():
            if is_identifier(key):
                continue
            if value.is_numeric:
                sensitivity = abs(value.value) * DP_SENSITIVITY_FACTOR
                anonymized[key] = FeatureValue.numeric(
                    value.value + rng.laplace(0.0, sensitivity / epsilon)
                )
            elif value.is_sequence:
                anonymized[key] = FeatureValue.sequence(
                    FeatureValue.numeric(item.value + rng.laplace(0.0, 1.0 / epsilon))
                    if item.is_numeric else strip_identifiers(item)
                    for item in value.value
                )
            elif value.is_mapping:
                anonymized[key] = FeatureValue.mapping(
                    self._apply_differential_privacy(dict(value.items()), config, rng)
                )
            else:
                anonymized[key] = value
        return anonymized

    def _apply_k_anonymity(self, bag: FeatureBag, config: AnonymizationConfig, rng) -> FeatureBag:
        return self._bin_features(bag, config.k, include_sequences=False)

    def _generalize(self, bag: FeatureBag, config: AnonymizationConfig, rng) -> FeatureBag:
        return self._bin_features(bag, GENERALIZATION_BIN, include_sequences=True)

    def _bin_features(self, bag: FeatureBag, bin_size: float, include_sequences: bool) -> FeatureBag:
        anonymized: FeatureBag = {}
        for key, value in bag.items():
            if is_identifier(key):
                continue
            if value.is_numeric:
                anonymized[key] = FeatureValue.numeric(generalize_number(value.value, bin_size))
            elif value.is_categorical:
                anonymized[key] = FeatureValue.categorical(generalize_string(value.value))
            elif value.is_sequence and include_sequences:
                anonymized[key] = FeatureValue.sequence(
                    FeatureValue.numeric(generalize_number(item.value, bin_size))
                    if item.is_numeric else strip_identifiers(item)
                    for item in value.value
                )
            else:
                anonymized[key] = strip_identifiers(value)
        return anonymized

    # =========================================================================
    # HELPERS
    # =========================================================================

    @staticmethod
    def _proportional_noise(value: float, level: float, rng) -> float:
        return value + (rng.random() - 0.5) * 2 * level * value

    @staticmethod
    def _as_raw_record(item: RecordLike) -> RawRecord:
        if isinstance(item, RawRecord):
            return item
        user_id, data = item
        return RawRecord(user_id=user_id, data=data)
