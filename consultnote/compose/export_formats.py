from __future__ import annotations

"""
Render the consultation into handover-style export formats.

Design intent:
- `plain` mirrors the composed note (or the clinician's manual export draft).
- `soap` and `sbar` regroup the same sources under fixed headings.
- Empty headings say "Not documented." rather than disappearing.
"""

from typing import Literal, Sequence, get_args

from consultnote.compose.composer import build_export_text
from consultnote.compose.sections import (
    compose_ddx,
    compose_reasoning_summary,
    compose_structured_section,
)
from consultnote.internal_core.contracts import ConsultationSessionState, TopicConfig

ExportFormat = Literal["plain", "soap", "sbar"]
EXPORT_FORMATS: tuple[str, ...] = get_args(ExportFormat)
NOT_DOCUMENTED = "Not documented."


def _join_lines(blocks: Sequence[str]) -> str:
    return "\n".join(block.strip() for block in blocks if block.strip())


def _structured(topic: TopicConfig, state: ConsultationSessionState, section_id: str) -> str:
    return compose_structured_section(topic, state, section_id)


def _render(headings: Sequence[tuple[str, str]]) -> str:
    lines: list[str] = []
    for index, (heading, body) in enumerate(headings):
        if index:
            lines.append("")
        lines.append(heading)
        lines.append(body or NOT_DOCUMENTED)
    return "\n".join(lines)


def _assessment_blocks(topic: TopicConfig, state: ConsultationSessionState) -> list[str]:
    return [
        _structured(topic, state, "assessment"),
        compose_ddx(state),
        compose_reasoning_summary(topic, state),
    ]


def build_soap(topic: TopicConfig, state: ConsultationSessionState) -> str:
    return _render(
        [
            ("S: Subjective", _join_lines([_structured(topic, state, "history"), state.editor_text])),
            (
                "O: Objective",
                _join_lines([_structured(topic, state, "exam"), _structured(topic, state, "investigations")]),
            ),
            ("A: Assessment", _join_lines(_assessment_blocks(topic, state))),
            (
                "P: Plan",
                _join_lines([_structured(topic, state, "plan"), _structured(topic, state, "safety-net")]),
            ),
        ]
    )


def build_sbar(topic: TopicConfig, state: ConsultationSessionState) -> str:
    assessment = _join_lines(_assessment_blocks(topic, state))
    return _render(
        [
            ("Situation", state.editor_text.strip()),
            ("Background", _structured(topic, state, "history").strip()),
            ("Assessment", _join_lines([assessment, _structured(topic, state, "exam")])),
            (
                "Recommendation",
                _join_lines([_structured(topic, state, "plan"), _structured(topic, state, "safety-net")]),
            ),
        ]
    )


def build_export_for_format(fmt: str, topic: TopicConfig, state: ConsultationSessionState) -> str:
    if fmt == "soap":
        return build_soap(topic, state)
    if fmt == "sbar":
        return build_sbar(topic, state)
    if fmt == "plain":
        return build_export_text(topic, state)
    raise ValueError(f"Unsupported export format: {fmt}")
