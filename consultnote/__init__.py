"""
Consultation note composition & linking engine.

Design intent:
- Compose note sections from structured consultation state.
- Link composed sections into a free-text note without clobbering edits.
- Keep domain modules (tokens/compose/linking/session) independent of the API.
"""
