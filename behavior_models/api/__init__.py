"""
API Subpackage

HTTP surface over the training pipeline and model orchestrator.
Import create_app from behavior_models.api.server.
"""
