from __future__ import annotations

"""
Refresh every linked section against freshly composed content.

The buffer is threaded through the sections in declaration order, so a
refresh that shifts text is visible to the next lookup.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict

from consultnote.compose.sections import get_composed_sections
from consultnote.internal_core.contracts import ConsultationSessionState, EditorAnchor, TopicConfig
from consultnote.linking.anchors import refresh_anchored_block

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SyncCounts:
    updated: int = 0
    unchanged: int = 0
    detached: int = 0
    missing: int = 0
    not_linked: int = 0

    def as_dict(self) -> Dict[str, int]:
        return {
            "updated": self.updated,
            "unchanged": self.unchanged,
            "detached": self.detached,
            "missing": self.missing,
            "not_linked": self.not_linked,
        }


@dataclass(frozen=True)
class SyncResult:
    next_text: str
    anchors: Dict[str, EditorAnchor] = field(default_factory=dict)
    counts: SyncCounts = field(default_factory=SyncCounts)

    @property
    def has_linked_sections(self) -> bool:
        return bool(self.anchors)


def sync_linked_sections(topic: TopicConfig, state: ConsultationSessionState) -> SyncResult:
    tally = {"updated": 0, "unchanged": 0, "detached": 0, "missing": 0, "not_linked": 0}
    anchors: Dict[str, EditorAnchor] = dict(state.editor_anchors)
    next_text = state.editor_text

    for section in get_composed_sections(topic, state):
        anchor = anchors.get(section.id)
        if anchor is None:
            tally["not_linked"] += 1
            continue
        if anchor.detached:
            tally["detached"] += 1
            continue

        if not section.content.strip():
            # Cleared answers leave the last linked block in place.
            tally["unchanged"] += 1
            continue

        refreshed = refresh_anchored_block(next_text, anchor, section.content)
        if refreshed.updated:
            if refreshed.next_text == next_text:
                tally["unchanged"] += 1
            else:
                tally["updated"] += 1
                next_text = refreshed.next_text
        elif refreshed.status == "missing":
            tally["missing"] += 1
        else:
            tally["detached"] += 1
        anchors[section.id] = refreshed.anchor

    counts = SyncCounts(**tally)
    logger.info("sections_synced %s", " ".join(f"{k}={v}" for k, v in counts.as_dict().items()))
    return SyncResult(next_text=next_text, anchors=anchors, counts=counts)
