"""
Behavior Models Package

Trains, versions and deploys the behavioral models of a companion app
from privatized user telemetry. Each phase is an isolated subsystem
that communicates only through explicit data contracts.

PHASE STRUCTURE:
================

1. DATA (behavior_models/data/)
   - Anonymization of raw telemetry
   - Distribution fitting and synthetic sampling
   - MUST NOT: see raw identifiers past the anonymizer

2. CORE LEARNING (behavior_models/core/)
   - Weighted multi-component reward model
   - Tabular TD policy trainer on synthetic samples
   - MUST NOT: touch live users, persist versions

3. VALIDATION (behavior_models/validation/)
   - Evaluation gate, health monitoring, A/B comparison
   - MUST NOT: mutate versions, train

4. ORCHESTRATION (behavior_models/orchestration/)
   - Version lifecycle: train, evaluate, deploy, monitor, roll back
   - End-to-end training pipeline

5. SERVING (behavior_models/api/)
   - FastAPI surface over the pipeline and the orchestrator

CROSS-CUTTING:
==============
- contracts/ - Explicit data contracts between phases
- versioning/ - Model registry and deployment history
- config.py - Process-wide settings and logging setup

CONSTRAINTS ENFORCED:
=====================
- All inter-phase data is immutable
- All randomness flows from an injected, seedable generator
- No module-level service singletons
"""

__version__ = "0.1.0"
