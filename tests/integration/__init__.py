"""
Integration Tests Package

End-to-end harness for the telemetry -> model lifecycle pipeline.

TEST AXIOMS:
=============
1. Determinism: same input + seed = identical output
2. Privacy: no identifier key survives anonymization
3. Explicit failure: lifecycle violations come back as errors, never silently
"""
