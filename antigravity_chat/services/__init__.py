"""Services Layer: login flow, model directory, tools, and the agent runner.

Invariants:
    - Tool dispatch uses an explicit dict mapping (no auto-discovery)
    - One handler file per tool for locality
"""
