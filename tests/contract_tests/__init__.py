"""
Contract Tests

Property and determinism checks that must hold for every input, not
only for the fixtures.
"""
