"""Core Layer: pure protocol logic (PKCE, SSE decoding, thinking tags, history).

Invariants:
    - No module in core/ imports from services/ or infrastructure/
    - No network IO; the SSE decoder only consumes an already-open byte iterator
"""
