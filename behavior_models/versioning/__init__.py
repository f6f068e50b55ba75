"""
Versioning Subpackage

Model lifecycle bookkeeping:
- Model registry (version records + artifacts)
- Deployment history (append-only)
"""

from .registry import ModelRegistry, ModelArtifact, artifact_from_dict
from .history import DeploymentHistoryLog

__all__ = ['ModelRegistry', 'ModelArtifact', 'artifact_from_dict', 'DeploymentHistoryLog']
