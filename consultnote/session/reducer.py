from __future__ import annotations

"""
Consultation session reducer.

Design intent:
- Every change to the session is a typed action applied by a pure function.
- Returning the same state object signals "nothing changed".
- Any buffer replacement re-evaluates every anchor before returning, so an
  undo that restores a linked block re-attaches it.
"""

import time
from dataclasses import dataclass, field
from typing import Dict, List, Literal, Optional, Union

from consultnote.internal_core.contracts import (
    ConsultationSessionState,
    EditorAnchor,
    EditorHistory,
    ExportDraft,
    RecentInsert,
    ResponseValue,
    WorkingDiagnosis,
)
from consultnote.linking.anchors import recompute_anchor_detach_state
from consultnote.linking.insertion import InsertSectionResult
from consultnote.linking.sync import SyncResult

MAX_EDITOR_HISTORY = 50
RECENT_INSERTS_MAX = 10

EvidenceSide = Literal["for", "against"]


@dataclass(frozen=True)
class SetTopic:
    topic_id: str


@dataclass(frozen=True)
class SetEditorText:
    text: str


@dataclass(frozen=True)
class SetEditorTextWithHistory:
    text: str


@dataclass(frozen=True)
class UndoEditorText:
    pass


@dataclass(frozen=True)
class RedoEditorText:
    pass


@dataclass(frozen=True)
class SetStructuredResponse:
    field_id: str
    value: ResponseValue


@dataclass(frozen=True)
class SetStructuredSectionDefaults:
    values: Dict[str, ResponseValue] = field(default_factory=dict)


@dataclass(frozen=True)
class ToggleRedFlag:
    flag_id: str


@dataclass(frozen=True)
class ToggleSectionInclusion:
    section_id: str


@dataclass(frozen=True)
class AddRecentInsert:
    snippet_id: str


@dataclass(frozen=True)
class SetExportDraft:
    text: Optional[str]
    derived_hash: Optional[str] = None


@dataclass(frozen=True)
class DdxToggleDiagnosis:
    name: str


@dataclass(frozen=True)
class DdxSetPrimary:
    name: str


@dataclass(frozen=True)
class DdxReorder:
    source_index: int
    target_index: int


@dataclass(frozen=True)
class DdxAddCustom:
    name: str


@dataclass(frozen=True)
class DdxRemove:
    name: str


@dataclass(frozen=True)
class DdxToggleCompare:
    name: str


@dataclass(frozen=True)
class DdxAssignEvidence:
    diagnosis: str
    item: str
    side: EvidenceSide
    selected: bool


@dataclass(frozen=True)
class SetEditorAnchor:
    section_id: str
    anchor: EditorAnchor


@dataclass(frozen=True)
class MarkEditorAnchorDetached:
    section_id: str


@dataclass(frozen=True)
class RemoveEditorAnchor:
    section_id: str


@dataclass(frozen=True)
class ResetSession:
    pass


SessionAction = Union[
    SetTopic,
    SetEditorText,
    SetEditorTextWithHistory,
    UndoEditorText,
    RedoEditorText,
    SetStructuredResponse,
    SetStructuredSectionDefaults,
    ToggleRedFlag,
    ToggleSectionInclusion,
    AddRecentInsert,
    SetExportDraft,
    DdxToggleDiagnosis,
    DdxSetPrimary,
    DdxReorder,
    DdxAddCustom,
    DdxRemove,
    DdxToggleCompare,
    DdxAssignEvidence,
    SetEditorAnchor,
    MarkEditorAnchorDetached,
    RemoveEditorAnchor,
    ResetSession,
]


def _now_ms() -> float:
    return time.time() * 1000.0


def _set_editor_text(
    state: ConsultationSessionState,
    next_text: str,
    *,
    with_history: bool,
    max_history: int,
) -> ConsultationSessionState:
    if state.editor_text == next_text:
        return state
    anchors = recompute_anchor_detach_state(next_text, state.editor_anchors)
    if with_history:
        past = [*state.editor_history.past, state.editor_text][-max_history:]
        history = EditorHistory(past=past, future=[])
    else:
        history = EditorHistory()
    return state.model_copy(
        update={"editor_text": next_text, "editor_anchors": anchors, "editor_history": history}
    )


def _undo(state: ConsultationSessionState, max_history: int) -> ConsultationSessionState:
    past = list(state.editor_history.past)
    if not past:
        return state
    previous = past.pop()
    future = [state.editor_text, *state.editor_history.future][:max_history]
    return state.model_copy(
        update={
            "editor_text": previous,
            "editor_anchors": recompute_anchor_detach_state(previous, state.editor_anchors),
            "editor_history": EditorHistory(past=past, future=future),
        }
    )


def _redo(state: ConsultationSessionState, max_history: int) -> ConsultationSessionState:
    future = list(state.editor_history.future)
    if not future:
        return state
    next_text = future.pop(0)
    past = [*state.editor_history.past, state.editor_text][-max_history:]
    return state.model_copy(
        update={
            "editor_text": next_text,
            "editor_anchors": recompute_anchor_detach_state(next_text, state.editor_anchors),
            "editor_history": EditorHistory(past=past, future=future),
        }
    )


def _with_ddx(state: ConsultationSessionState, **update: object) -> ConsultationSessionState:
    return state.model_copy(update={"ddx": state.ddx.model_copy(update=update)})


def _drop_diagnosis(state: ConsultationSessionState, name: str) -> ConsultationSessionState:
    ddx = state.ddx
    return _with_ddx(
        state,
        working_diagnoses=[d for d in ddx.working_diagnoses if d.name != name],
        evidence_for={k: v for k, v in ddx.evidence_for.items() if k != name},
        evidence_against={k: v for k, v in ddx.evidence_against.items() if k != name},
        compare_selection=[n for n in ddx.compare_selection if n != name],
    )


def _upsert_evidence(
    entries: Dict[str, List[str]],
    diagnosis: str,
    item: str,
    selected: bool,
) -> Dict[str, List[str]]:
    items = entries.get(diagnosis)
    if items is None:
        if not selected:
            return entries
        return {**entries, diagnosis: [item]}

    has_item = item in items
    if selected == has_item:
        return entries
    next_items = [*items, item] if selected else [x for x in items if x != item]
    if not next_items:
        return {k: v for k, v in entries.items() if k != diagnosis}
    return {**entries, diagnosis: next_items}


def _assign_evidence(state: ConsultationSessionState, action: DdxAssignEvidence) -> ConsultationSessionState:
    ddx = state.ddx
    evidence_for = _upsert_evidence(
        ddx.evidence_for, action.diagnosis, action.item, action.side == "for" and action.selected
    )
    evidence_against = _upsert_evidence(
        ddx.evidence_against, action.diagnosis, action.item, action.side == "against" and action.selected
    )
    return _with_ddx(state, evidence_for=evidence_for, evidence_against=evidence_against)


def _toggle_compare(state: ConsultationSessionState, name: str) -> ConsultationSessionState:
    current = state.ddx.compare_selection
    if name in current:
        selection = [n for n in current if n != name]
    elif len(current) >= 2:
        selection = [current[1], name]
    else:
        selection = [*current, name]
    return _with_ddx(state, compare_selection=selection)


def _reorder(state: ConsultationSessionState, action: DdxReorder) -> ConsultationSessionState:
    diagnoses = list(state.ddx.working_diagnoses)
    source, target = action.source_index, action.target_index
    if source == target or not (0 <= source < len(diagnoses)) or not (0 <= target < len(diagnoses)):
        return state
    dragged = diagnoses.pop(source)
    diagnoses.insert(target, dragged)
    return _with_ddx(state, working_diagnoses=diagnoses)


def session_reducer(
    state: ConsultationSessionState,
    action: SessionAction,
    *,
    max_history: int = MAX_EDITOR_HISTORY,
    recent_inserts_max: int = RECENT_INSERTS_MAX,
) -> ConsultationSessionState:
    if isinstance(action, SetTopic):
        if state.active_topic_id == action.topic_id:
            return state
        return ConsultationSessionState(active_topic_id=action.topic_id)

    if isinstance(action, SetEditorText):
        return _set_editor_text(state, action.text, with_history=False, max_history=max_history)
    if isinstance(action, SetEditorTextWithHistory):
        return _set_editor_text(state, action.text, with_history=True, max_history=max_history)
    if isinstance(action, UndoEditorText):
        return _undo(state, max_history)
    if isinstance(action, RedoEditorText):
        return _redo(state, max_history)

    if isinstance(action, SetStructuredResponse):
        responses = {**state.structured_responses, action.field_id: action.value}
        return state.model_copy(update={"structured_responses": responses})
    if isinstance(action, SetStructuredSectionDefaults):
        responses = {**action.values, **state.structured_responses}
        return state.model_copy(update={"structured_responses": responses})

    if isinstance(action, ToggleRedFlag):
        current = state.red_flags_confirmed.get(action.flag_id, False)
        flags = {**state.red_flags_confirmed, action.flag_id: not current}
        return state.model_copy(update={"red_flags_confirmed": flags})
    if isinstance(action, ToggleSectionInclusion):
        current = state.section_inclusions.get(action.section_id, True)
        inclusions = {**state.section_inclusions, action.section_id: not current}
        return state.model_copy(update={"section_inclusions": inclusions})

    if isinstance(action, AddRecentInsert):
        entry = RecentInsert(snippet_id=action.snippet_id, timestamp=_now_ms())
        recent = [entry, *state.recent_inserts][:recent_inserts_max]
        return state.model_copy(update={"recent_inserts": recent})

    if isinstance(action, SetExportDraft):
        if action.text is None:
            draft = ExportDraft(
                text="",
                is_derived=True,
                updated_at=_now_ms(),
                last_derived_hash=action.derived_hash,
            )
        else:
            draft = ExportDraft(
                text=action.text,
                is_derived=False,
                updated_at=_now_ms(),
                last_derived_hash=state.export_draft.last_derived_hash,
            )
        return state.model_copy(update={"export_draft": draft})

    if isinstance(action, DdxToggleDiagnosis):
        if any(d.name == action.name for d in state.ddx.working_diagnoses):
            return _drop_diagnosis(state, action.name)
        diagnoses = [*state.ddx.working_diagnoses, WorkingDiagnosis(name=action.name)]
        return _with_ddx(state, working_diagnoses=diagnoses)
    if isinstance(action, DdxSetPrimary):
        diagnoses = [
            WorkingDiagnosis(name=d.name, is_primary=d.name == action.name)
            for d in state.ddx.working_diagnoses
        ]
        return _with_ddx(state, working_diagnoses=diagnoses)
    if isinstance(action, DdxReorder):
        return _reorder(state, action)
    if isinstance(action, DdxAddCustom):
        name = action.name.strip()
        if not name or any(d.name == name for d in state.ddx.working_diagnoses):
            return state
        diagnoses = [*state.ddx.working_diagnoses, WorkingDiagnosis(name=name)]
        return _with_ddx(state, working_diagnoses=diagnoses)
    if isinstance(action, DdxRemove):
        return _drop_diagnosis(state, action.name)
    if isinstance(action, DdxToggleCompare):
        return _toggle_compare(state, action.name)
    if isinstance(action, DdxAssignEvidence):
        return _assign_evidence(state, action)

    if isinstance(action, SetEditorAnchor):
        anchors = {**state.editor_anchors, action.section_id: action.anchor}
        return state.model_copy(update={"editor_anchors": anchors})
    if isinstance(action, MarkEditorAnchorDetached):
        anchor = state.editor_anchors.get(action.section_id)
        if anchor is None:
            return state
        anchors = {**state.editor_anchors, action.section_id: anchor.model_copy(update={"detached": True})}
        return state.model_copy(update={"editor_anchors": anchors})
    if isinstance(action, RemoveEditorAnchor):
        if action.section_id not in state.editor_anchors:
            return state
        anchors = {k: v for k, v in state.editor_anchors.items() if k != action.section_id}
        return state.model_copy(update={"editor_anchors": anchors})

    if isinstance(action, ResetSession):
        return ConsultationSessionState(active_topic_id=state.active_topic_id)

    raise ValueError(f"Unsupported session action: {type(action).__name__}")


def apply_insert_result(
    state: ConsultationSessionState,
    result: InsertSectionResult,
    *,
    max_history: int = MAX_EDITOR_HISTORY,
) -> ConsultationSessionState:
    """Commit an insertion: history-aware buffer write, then link the block."""
    written = session_reducer(state, SetEditorTextWithHistory(text=result.next_text), max_history=max_history)
    return session_reducer(written, SetEditorAnchor(section_id=result.anchor.section_id, anchor=result.anchor))


def apply_sync_result(
    state: ConsultationSessionState,
    result: SyncResult,
    *,
    max_history: int = MAX_EDITOR_HISTORY,
) -> ConsultationSessionState:
    """Commit a section sync: refreshed anchors first, then one undoable buffer write."""
    with_anchors = state.model_copy(update={"editor_anchors": dict(result.anchors)})
    if result.next_text == state.editor_text:
        return with_anchors
    return session_reducer(
        with_anchors, SetEditorTextWithHistory(text=result.next_text), max_history=max_history
    )


def remove_linked_section(
    state: ConsultationSessionState,
    section_id: str,
    next_text: str,
    *,
    max_history: int = MAX_EDITOR_HISTORY,
) -> ConsultationSessionState:
    """Commit a block removal: drop the link, then one undoable buffer write."""
    unlinked = session_reducer(state, RemoveEditorAnchor(section_id=section_id))
    return session_reducer(unlinked, SetEditorTextWithHistory(text=next_text), max_history=max_history)
