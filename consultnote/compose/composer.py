from __future__ import annotations

"""
Composer view over declared output sections.

Design intent:
- Pair each section's fresh content with its link state in the note.
- Keep the link-state labels stable; status displays depend on them.
- Build export text with legacy link markers stripped.
"""

import re
from dataclasses import dataclass
from typing import Literal

from consultnote.compose.sections import compose_output, get_composed_sections
from consultnote.internal_core.contracts import ConsultationSessionState, SectionSource, TopicConfig
from consultnote.linking.anchors import LinkState, collapse_blank_lines, derive_link_state, hash_string

LinkStateLabel = Literal["Not inserted", "Linked", "Modified after insert", "Link missing"]
LinkStateTone = Literal["neutral", "success", "warning", "danger"]

_LINK_STATE_PRESENTATION: dict[str, tuple[LinkStateLabel, LinkStateTone]] = {
    "not_linked": ("Not inserted", "neutral"),
    "linked_clean": ("Linked", "success"),
    "linked_modified": ("Modified after insert", "warning"),
    "linked_missing": ("Link missing", "danger"),
}

# Older clients wrapped linked blocks in visible marker lines.
_LINK_START_RE = re.compile(r"^\[CRx linked:.*?\]\n?", re.MULTILINE)
_LINK_END_RE = re.compile(r"^\[/CRx linked\]\n?", re.MULTILINE)


@dataclass(frozen=True)
class ComposerSection:
    id: str
    title: str
    source: SectionSource
    content: str
    content_hash: str
    include_by_default: bool
    included: bool
    link_state: LinkState


def link_state_presentation(state: str) -> tuple[LinkStateLabel, LinkStateTone]:
    return _LINK_STATE_PRESENTATION.get(state, _LINK_STATE_PRESENTATION["not_linked"])


def strip_composer_markers(text: str) -> str:
    stripped = _LINK_START_RE.sub("", text)
    stripped = _LINK_END_RE.sub("", stripped)
    return collapse_blank_lines(stripped).strip()


def build_composer_sections(
    topic: TopicConfig,
    state: ConsultationSessionState,
) -> list[ComposerSection]:
    declared = {section.id: section for section in topic.output_template.sections}
    return [
        ComposerSection(
            id=section.id,
            title=section.title,
            source=section.source,
            content=section.content,
            content_hash=hash_string(section.content),
            include_by_default=declared[section.id].include_by_default,
            included=section.included,
            link_state=derive_link_state(state.editor_text, state.editor_anchors.get(section.id)),
        )
        for section in get_composed_sections(topic, state)
    ]


def build_export_text(topic: TopicConfig, state: ConsultationSessionState) -> str:
    draft = state.export_draft
    if not draft.is_derived and draft.text.strip():
        return strip_composer_markers(draft.text)
    return strip_composer_markers(compose_output(topic, state))
