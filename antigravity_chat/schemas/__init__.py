"""Pydantic Schemas: persisted credentials and provider response shapes.

Invariants:
    - Schemas validate at the system boundary (token file, provider JSON)
"""
