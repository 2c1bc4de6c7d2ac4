"""
API orchestration boundary for the consultation note engine.

Design intent:
- Expose thin, typed endpoints for token, session, linking and export flows.
- Keep request validation explicit and failure modes predictable.
- Orchestrate modules without embedding note logic in routers.
"""
