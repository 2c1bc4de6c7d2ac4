"""
Document linking boundary for the consultation note engine.

Design intent:
- Insert composed sections into the free-text note as refreshable blocks.
- Locate blocks by content fingerprint, never by embedded markup.
- Never overwrite text the clinician has edited by hand.
"""
