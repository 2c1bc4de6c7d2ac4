"""
Session state boundary for the consultation note engine.

Design intent:
- Apply every state change through one reducer (single writer).
- Keep whole-buffer undo/redo and re-validate anchors after each write.
"""
