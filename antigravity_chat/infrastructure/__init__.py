"""Infrastructure Layer: external service clients and cross-cutting concerns.

Invariants:
    - Every outbound HTTP call goes through httpx.AsyncClient
    - Provider failures are mapped to the typed hierarchy in core/errors.py
"""
