from __future__ import annotations

"""
Compose note section text from consultation state.

Design intent:
- One pure function per section source (editor/structured/reasoning/ddx).
- Skip empty answers so the note only carries documented findings.
- Keep output plain text with stable line formats for linking.
"""

from dataclasses import dataclass
from typing import Sequence

from consultnote.compose.visibility import evaluate_show_if
from consultnote.internal_core.contracts import (
    ConsultationSessionState,
    OutputSection,
    ResponseValue,
    SectionSource,
    TopicConfig,
)


@dataclass(frozen=True)
class ComposedSection:
    id: str
    title: str
    source: SectionSource
    content: str
    included: bool


def red_flag_key(index: int) -> str:
    return f"rf-{index}"


def _is_meaningful(value: ResponseValue | None) -> bool:
    if value is None or value is False:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    if isinstance(value, list):
        return len(value) > 0
    return True


def _display_value(value: ResponseValue) -> str:
    if isinstance(value, list):
        return ", ".join(str(item) for item in value)
    if isinstance(value, bool):
        return "true"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def compose_structured_section(
    topic: TopicConfig,
    state: ConsultationSessionState,
    structured_section_id: str,
) -> str:
    group = topic.structured_section(structured_section_id)
    if group is None:
        return ""

    lines: list[str] = []
    for item in group.fields:
        if item.show_if and not evaluate_show_if(item.show_if, state.structured_responses):
            continue
        value = state.structured_responses.get(item.id)
        if not _is_meaningful(value):
            continue
        lines.append(f"{item.label}: {_display_value(value)}")
    return "\n".join(lines)


def compose_reasoning_summary(topic: TopicConfig, state: ConsultationSessionState) -> str:
    labels = {red_flag_key(index): label for index, label in enumerate(topic.reasoning.red_flags)}
    confirmed = [
        labels[key] for key, checked in state.red_flags_confirmed.items() if checked and labels.get(key)
    ]

    if not confirmed:
        return ""
    return f"Red flags assessed: {', '.join(confirmed)}"


def compose_ddx(state: ConsultationSessionState) -> str:
    diagnoses = state.ddx.working_diagnoses
    if not diagnoses:
        return ""

    primary = next((d for d in diagnoses if d.is_primary), None)
    ranked = ([primary] if primary else []) + [d for d in diagnoses if not d.is_primary]

    lines = ["Working differentials:"]
    for position, diagnosis in enumerate(ranked, start=1):
        marker = " *" if diagnosis.is_primary else ""
        lines.append(f"{position}. {diagnosis.name}{marker}")

    for name, items in state.ddx.evidence_for.items():
        if items:
            lines.append("")
            lines.append(f"Supports {name}:")
            lines.extend(f"+ {item}" for item in items)
    for name, items in state.ddx.evidence_against.items():
        if items:
            lines.append("")
            lines.append(f"Against {name}:")
            lines.extend(f"- {item}" for item in items)

    return "\n".join(lines)


def compose_section(
    topic: TopicConfig,
    state: ConsultationSessionState,
    section: OutputSection,
) -> str:
    if section.source == "editor":
        return state.editor_text.strip()
    if section.source == "structured" and section.structured_section_id:
        return compose_structured_section(topic, state, section.structured_section_id)
    if section.source == "reasoning":
        return compose_reasoning_summary(topic, state)
    if section.source == "ddx":
        return compose_ddx(state)
    return ""


def is_section_included(state: ConsultationSessionState, section: OutputSection) -> bool:
    return state.section_inclusions.get(section.id, section.include_by_default)


def get_composed_sections(
    topic: TopicConfig,
    state: ConsultationSessionState,
) -> list[ComposedSection]:
    return [
        ComposedSection(
            id=section.id,
            title=section.title,
            source=section.source,
            content=compose_section(topic, state, section),
            included=is_section_included(state, section),
        )
        for section in topic.output_template.sections
    ]


def join_titled_blocks(blocks: Sequence[tuple[str, str]]) -> str:
    return "\n\n".join(f"## {title}\n{content}" for title, content in blocks if content)


def compose_output(topic: TopicConfig, state: ConsultationSessionState) -> str:
    blocks: list[tuple[str, str]] = []
    for section in topic.output_template.sections:
        if not is_section_included(state, section):
            continue
        blocks.append((section.title, compose_section(topic, state, section)))
    return join_titled_blocks(blocks)
