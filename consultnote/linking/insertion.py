from __future__ import annotations

"""
Insert-or-refresh policy for putting a composed section into the note.

Design intent:
- Reuse the existing linked block when it is still clean.
- Otherwise place a fresh copy (cursor or append) and link it.
- Never mutate session state here; callers commit the result.
"""

import logging
import time
from dataclasses import dataclass
from typing import Literal, Optional, Tuple

from consultnote.internal_core.contracts import ConsultationSessionState, EditorAnchor
from consultnote.linking.anchors import (
    Provenance,
    append_anchored,
    insert_anchored_at_cursor,
    refresh_anchored_block,
)

logger = logging.getLogger(__name__)

InsertMode = Literal["cursor", "append"]


@dataclass(frozen=True)
class InsertSectionIntent:
    section_id: str
    section_title: str
    source: str
    content: str
    mode: InsertMode = "cursor"


@dataclass(frozen=True)
class InsertSectionResult:
    next_text: str
    anchor: EditorAnchor
    next_cursor: Optional[int]
    updated_existing: bool


def upsert_linked_section(
    state: ConsultationSessionState,
    intent: InsertSectionIntent,
    selection: Optional[Tuple[int, int]] = None,
) -> Optional[InsertSectionResult]:
    if not intent.content.strip():
        return None

    existing = state.editor_anchors.get(intent.section_id)
    if existing is not None and not existing.detached:
        refreshed = refresh_anchored_block(state.editor_text, existing, intent.content)
        if refreshed.updated:
            logger.debug("upsert_refreshed section_id=%s status=%s", intent.section_id, refreshed.status)
            return InsertSectionResult(
                next_text=refreshed.next_text,
                anchor=refreshed.anchor,
                next_cursor=None,
                updated_existing=True,
            )

    provenance = Provenance(
        section_title=intent.section_title,
        source=intent.source,
        timestamp=time.time() * 1000.0,
    )

    if intent.mode == "append" or selection is None:
        appended = append_anchored(state.editor_text, intent.section_id, intent.content, provenance)
        return InsertSectionResult(
            next_text=appended.next_text,
            anchor=appended.anchor,
            next_cursor=None,
            updated_existing=False,
        )

    start, end = selection
    inserted = insert_anchored_at_cursor(
        state.editor_text, intent.section_id, intent.content, start, end, provenance
    )
    return InsertSectionResult(
        next_text=inserted.next_text,
        anchor=inserted.anchor,
        next_cursor=inserted.next_cursor,
        updated_existing=False,
    )
