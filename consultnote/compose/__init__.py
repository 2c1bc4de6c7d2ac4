"""
Section composition boundary for the consultation note engine.

Design intent:
- Derive titled note sections from structured session state.
- Keep rendering deterministic and text-only.
"""
