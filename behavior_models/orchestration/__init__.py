"""
Orchestration Subpackage

- Model orchestrator (train / evaluate / deploy / monitor / rollback / A/B)
- Service container and end-to-end training pipeline
"""

from .orchestrator import ModelOrchestrator, reward_stability
from .pipeline import PipelineRun, PipelineServices, TrainingPipeline

__all__ = [
    'ModelOrchestrator', 'reward_stability',
    'PipelineRun', 'PipelineServices', 'TrainingPipeline',
]
