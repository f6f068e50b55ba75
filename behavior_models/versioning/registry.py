"""Model registry for version records and trained artifacts."""

from __future__ import annotations
from typing import Dict, Iterable, List, Mapping, Optional, Union
import threading

from ..contracts.learning_contracts import PolicyArtifact
from ..contracts.lifecycle_contracts import ModelStatus, ModelType, ModelVersion
from ..contracts.reward_contracts import RewardArtifact


ModelArtifact = Union[PolicyArtifact, RewardArtifact]


def artifact_from_dict(data: Mapping) -> ModelArtifact:
    """Decode an exported artifact by its shape."""
    if 'policy' in data:
        return PolicyArtifact.from_dict(data)
    if 'weights' in data:
        return RewardArtifact.from_dict(data)
    raise ValueError("Unrecognized model artifact: expected 'policy' or 'weights'")


class ModelRegistry:
    """
    Versions and artifacts, keyed by version id.

    Versions are never deleted. Status changes replace the stored
    ModelVersion with a new instance.
    """

    def __init__(self):
        self._versions: Dict[str, ModelVersion] = {}
        self._artifacts: Dict[str, ModelArtifact] = {}
        self._lock = threading.RLock()

    @property
    def lock(self) -> threading.RLock:
        return self._lock

    def register(self, version: ModelVersion):
        """Register a new version or replace the record of an existing one."""
        with self._lock:
            self._versions[version.version_id] = version

    def get(self, version_id: str) -> Optional[ModelVersion]:
        with self._lock:
            return self._versions.get(version_id)

    def put_artifact(self, version_id: str, artifact: ModelArtifact):
        with self._lock:
            self._artifacts[version_id] = artifact

    def get_artifact(self, version_id: str) -> Optional[ModelArtifact]:
        with self._lock:
            return self._artifacts.get(version_id)

    def versions(
        self,
        status: Optional[ModelStatus] = None,
        model_type: Optional[ModelType] = None,
    ) -> List[ModelVersion]:
        """All versions in registration order, optionally filtered."""
        with self._lock:
            found = list(self._versions.values())
        if status is not None:
            found = [v for v in found if v.status is status]
        if model_type is not None:
            found = [v for v in found if v.model_type is model_type]
        return found

    def deployed(self, model_type: Optional[ModelType] = None) -> List[ModelVersion]:
        return self.versions(status=ModelStatus.DEPLOYED, model_type=model_type)

    def count(self, model_type: ModelType) -> int:
        return len(self.versions(model_type=model_type))

    @property
    def artifact_count(self) -> int:
        with self._lock:
            return len(self._artifacts)

    # =========================================================================
    # EXPORT / IMPORT
    # =========================================================================

    def export_artifacts(self) -> list:
        with self._lock:
            return [[vid, artifact.to_dict()] for vid, artifact in self._artifacts.items()]

    def export_versions(self) -> list:
        with self._lock:
            return [version.to_dict() for version in self._versions.values()]

    def load(self, artifacts: Iterable, versions: Iterable[Mapping] = ()):
        """Replace registry contents with decoded exports."""
        decoded_artifacts = {vid: artifact_from_dict(data) for vid, data in artifacts}
        decoded_versions = [ModelVersion.from_dict(data) for data in versions]
        with self._lock:
            self._artifacts = decoded_artifacts
            if decoded_versions:
                self._versions = {v.version_id: v for v in decoded_versions}
