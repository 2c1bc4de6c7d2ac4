"""
Snippet token boundary for the consultation note engine.

Design intent:
- Expand reusable snippets with date, choice and variable placeholders.
- Keep parsing permissive so authoring mistakes never block a note.
"""
