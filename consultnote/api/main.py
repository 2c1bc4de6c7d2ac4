from __future__ import annotations

"""
HTTP surface for the consultation note engine.

Design intent:
- Keep API orchestration thin and typed.
- Delegate note logic to tokens/compose/linking/session modules.
- Serialise every session change through the session store lock.
- Record audit events without ever copying note text into them.
"""

import dataclasses
import logging
import time
from datetime import date
from typing import Annotated, Any, Callable, Literal, Tuple, TypeVar, Union

from fastapi import Body, FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field, model_validator

from consultnote.compose.composer import build_composer_sections, link_state_presentation
from consultnote.compose.export_formats import EXPORT_FORMATS, build_export_for_format
from consultnote.compose.sections import compose_section, red_flag_key
from consultnote.internal_core import EngineConfig, InMemorySessionStore, load_config
from consultnote.internal_core.audit import log_event
from consultnote.internal_core.contracts import (
    AuditEvent,
    AuditEventType,
    ConsultationSessionState,
    ResponseValue,
    TopicConfig,
)
from consultnote.linking.anchors import remove_anchored_block
from consultnote.linking.insertion import InsertSectionIntent, upsert_linked_section
from consultnote.linking.sync import sync_linked_sections
from consultnote.session import reducer as r
from consultnote.tokens.fields import (
    build_resolution_map,
    build_token_fields,
    default_resolutions,
    normal_resolutions,
)
from consultnote.tokens.parser import apply_resolutions, parse_tokens

T = TypeVar("T")


class TokenItem(BaseModel):
    raw: str
    type: Literal["choice", "variable"]
    options: list[str] = Field(default_factory=list)
    default_index: int | None = None
    name: str | None = None


class TokenFieldOptionItem(BaseModel):
    value: str
    label: str


class TokenFieldItem(BaseModel):
    key: str
    raw: str
    label: str
    control: Literal["radio", "checkboxes", "text"]
    options: list[TokenFieldOptionItem] = Field(default_factory=list)
    default_value: str | None = None
    normal_value: str | None = None
    placeholder: str | None = None


class TokensParseRequest(BaseModel):
    content: str = ""
    today: date | None = None


class TokensParseResponse(BaseModel):
    text: str
    tokens: list[TokenItem] = Field(default_factory=list)
    fields: list[TokenFieldItem] = Field(default_factory=list)
    default_resolutions: dict[str, str] = Field(default_factory=dict)
    normal_resolutions: dict[str, str] = Field(default_factory=dict)


class TokensApplyRequest(BaseModel):
    text: str = ""
    resolutions: dict[str, str] = Field(default_factory=dict)
    values: dict[str, str | list[str]] | None = None


class TokensApplyResponse(BaseModel):
    text: str
    debug: dict[str, Any] = Field(default_factory=dict)


class ComposerSectionItem(BaseModel):
    id: str
    title: str
    source: str
    content: str
    content_hash: str
    include_by_default: bool
    included: bool
    link_state: str
    link_label: str
    link_tone: str


class SessionResponse(BaseModel):
    session_id: str
    state: ConsultationSessionState
    sections: list[ComposerSectionItem] = Field(default_factory=list)
    debug: dict[str, Any] = Field(default_factory=dict)


class EditorWriteRequest(BaseModel):
    text: str
    with_history: bool = True


class SetEditorTextAction(BaseModel):
    type: Literal["SET_EDITOR_TEXT"]
    text: str


class SetStructuredResponseAction(BaseModel):
    type: Literal["SET_STRUCTURED_RESPONSE"]
    field_id: str = Field(min_length=1)
    value: ResponseValue


class SetStructuredSectionDefaultsAction(BaseModel):
    type: Literal["SET_STRUCTURED_SECTION_DEFAULTS"]
    values: dict[str, ResponseValue] = Field(default_factory=dict)


class ToggleRedFlagAction(BaseModel):
    type: Literal["TOGGLE_RED_FLAG"]
    flag_id: str | None = Field(default=None, min_length=1)
    # Position in the topic's red flag list; used when flag_id is omitted.
    index: int | None = Field(default=None, ge=0)

    @model_validator(mode="after")
    def _require_flag(self) -> ToggleRedFlagAction:
        if self.flag_id is None and self.index is None:
            raise ValueError("TOGGLE_RED_FLAG requires flag_id or index")
        return self

    def resolved_flag_id(self) -> str:
        return self.flag_id if self.flag_id is not None else red_flag_key(self.index or 0)


class ToggleSectionInclusionAction(BaseModel):
    type: Literal["TOGGLE_SECTION_INCLUSION"]
    section_id: str = Field(min_length=1)


class AddRecentInsertAction(BaseModel):
    type: Literal["ADD_RECENT_INSERT"]
    snippet_id: str = Field(min_length=1)


class SetExportDraftAction(BaseModel):
    type: Literal["SET_EXPORT_DRAFT"]
    text: str | None = None
    derived_hash: str | None = None


class DdxNameAction(BaseModel):
    type: Literal[
        "DDX_TOGGLE_DIAGNOSIS",
        "DDX_SET_PRIMARY",
        "DDX_ADD_CUSTOM",
        "DDX_REMOVE",
        "DDX_TOGGLE_COMPARE",
    ]
    name: str


class DdxReorderAction(BaseModel):
    type: Literal["DDX_REORDER"]
    source_index: int
    target_index: int


class DdxAssignEvidenceAction(BaseModel):
    type: Literal["DDX_ASSIGN_EVIDENCE"]
    diagnosis: str = Field(min_length=1)
    item: str = Field(min_length=1)
    side: Literal["for", "against"]
    selected: bool = True


class AnchorAction(BaseModel):
    type: Literal["MARK_EDITOR_ANCHOR_DETACHED", "REMOVE_EDITOR_ANCHOR"]
    section_id: str = Field(min_length=1)


class ResetSessionAction(BaseModel):
    type: Literal["RESET_SESSION"]


SessionActionRequest = Annotated[
    Union[
        SetEditorTextAction,
        SetStructuredResponseAction,
        SetStructuredSectionDefaultsAction,
        ToggleRedFlagAction,
        ToggleSectionInclusionAction,
        AddRecentInsertAction,
        SetExportDraftAction,
        DdxNameAction,
        DdxReorderAction,
        DdxAssignEvidenceAction,
        AnchorAction,
        ResetSessionAction,
    ],
    Body(discriminator="type"),
]


class InsertSectionRequest(BaseModel):
    mode: Literal["cursor", "append"] = "cursor"
    selection_start: int | None = Field(default=None, ge=0)
    selection_end: int | None = Field(default=None, ge=0)


class InsertSectionResponse(BaseModel):
    session_id: str
    section_id: str
    inserted: bool
    updated_existing: bool = False
    next_cursor: int | None = None
    state: ConsultationSessionState
    debug: dict[str, Any] = Field(default_factory=dict)


class SyncResponse(BaseModel):
    session_id: str
    counts: dict[str, int] = Field(default_factory=dict)
    state: ConsultationSessionState
    debug: dict[str, Any] = Field(default_factory=dict)


class ExportResponse(BaseModel):
    session_id: str
    format: str
    text: str
    debug: dict[str, Any] = Field(default_factory=dict)


class AuditResponse(BaseModel):
    session_id: str
    events: list[AuditEvent] = Field(default_factory=list)


app = FastAPI(title="consultnote engine service")
logger = logging.getLogger(__name__)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _get_config() -> EngineConfig:
    existing = getattr(app.state, "engine_config", None)
    if isinstance(existing, EngineConfig):
        return existing
    created = load_config()
    logging.getLogger("consultnote").setLevel(created.CONSULTNOTE_LOG_LEVEL)
    setattr(app.state, "engine_config", created)
    return created


def _get_session_store() -> InMemorySessionStore:
    existing = getattr(app.state, "session_store", None)
    if isinstance(existing, InMemorySessionStore):
        return existing
    created = InMemorySessionStore(ttl_seconds=_get_config().CONSULTNOTE_SESSION_TTL_SECONDS)
    setattr(app.state, "session_store", created)
    return created


def _audit(
    session_id: str,
    event_type: AuditEventType,
    code: str,
    detail: str,
    started_at: float | None = None,
) -> None:
    if not _get_config().CONSULTNOTE_AUDIT_ENABLED:
        return
    duration_ms = None if started_at is None else int((time.perf_counter() - started_at) * 1000)
    log_event(_get_session_store(), session_id, event_type, code, detail, duration_ms=duration_ms)


def _transition(
    session_id: str,
    step: Callable[[TopicConfig, ConsultationSessionState], Tuple[ConsultationSessionState, T]],
) -> T:
    try:
        return _get_session_store().transition(session_id, step)
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=str(exc.args[0] if exc.args else exc)) from exc
    except ValueError as exc:
        _audit(session_id, "ERROR", "invalid_request", str(exc))
        raise HTTPException(status_code=400, detail=str(exc)) from exc


def _require_session(session_id: str) -> dict[str, Any]:
    try:
        return _get_session_store().get_session(session_id)
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=str(exc.args[0] if exc.args else exc)) from exc


def _composer_items(topic: TopicConfig, state: ConsultationSessionState) -> list[ComposerSectionItem]:
    items: list[ComposerSectionItem] = []
    for section in build_composer_sections(topic, state):
        label, tone = link_state_presentation(section.link_state)
        items.append(
            ComposerSectionItem(
                **dataclasses.asdict(section),
                link_label=label,
                link_tone=tone,
            )
        )
    return items


def _session_response(session_id: str, topic: TopicConfig, state: ConsultationSessionState) -> SessionResponse:
    sections = _composer_items(topic, state)
    return SessionResponse(
        session_id=session_id,
        state=state,
        sections=sections,
        debug={
            "topic_id": topic.metadata.id,
            "history_past": len(state.editor_history.past),
            "history_future": len(state.editor_history.future),
            "linked_sections": len(state.editor_anchors),
            "detached_sections": sum(1 for anchor in state.editor_anchors.values() if anchor.detached),
        },
    )


def _to_reducer_action(payload: Any) -> r.SessionAction:
    if isinstance(payload, SetEditorTextAction):
        return r.SetEditorText(text=payload.text)
    if isinstance(payload, SetStructuredResponseAction):
        return r.SetStructuredResponse(field_id=payload.field_id, value=payload.value)
    if isinstance(payload, SetStructuredSectionDefaultsAction):
        return r.SetStructuredSectionDefaults(values=dict(payload.values))
    if isinstance(payload, ToggleRedFlagAction):
        return r.ToggleRedFlag(flag_id=payload.resolved_flag_id())
    if isinstance(payload, ToggleSectionInclusionAction):
        return r.ToggleSectionInclusion(section_id=payload.section_id)
    if isinstance(payload, AddRecentInsertAction):
        return r.AddRecentInsert(snippet_id=payload.snippet_id)
    if isinstance(payload, SetExportDraftAction):
        return r.SetExportDraft(text=payload.text, derived_hash=payload.derived_hash)
    if isinstance(payload, DdxNameAction):
        ddx_actions = {
            "DDX_TOGGLE_DIAGNOSIS": r.DdxToggleDiagnosis,
            "DDX_SET_PRIMARY": r.DdxSetPrimary,
            "DDX_ADD_CUSTOM": r.DdxAddCustom,
            "DDX_REMOVE": r.DdxRemove,
            "DDX_TOGGLE_COMPARE": r.DdxToggleCompare,
        }
        return ddx_actions[payload.type](name=payload.name)
    if isinstance(payload, DdxReorderAction):
        return r.DdxReorder(source_index=payload.source_index, target_index=payload.target_index)
    if isinstance(payload, DdxAssignEvidenceAction):
        return r.DdxAssignEvidence(
            diagnosis=payload.diagnosis,
            item=payload.item,
            side=payload.side,
            selected=payload.selected,
        )
    if isinstance(payload, AnchorAction):
        if payload.type == "MARK_EDITOR_ANCHOR_DETACHED":
            return r.MarkEditorAnchorDetached(section_id=payload.section_id)
        return r.RemoveEditorAnchor(section_id=payload.section_id)
    if isinstance(payload, ResetSessionAction):
        return r.ResetSession()
    raise ValueError(f"Unsupported action payload: {type(payload).__name__}")


def _reduce(action: r.SessionAction) -> Callable[[TopicConfig, ConsultationSessionState], Tuple[ConsultationSessionState, ConsultationSessionState]]:
    config = _get_config()

    def step(topic: TopicConfig, state: ConsultationSessionState) -> Tuple[ConsultationSessionState, ConsultationSessionState]:
        next_state = r.session_reducer(
            state,
            action,
            max_history=config.CONSULTNOTE_MAX_EDITOR_HISTORY,
            recent_inserts_max=config.CONSULTNOTE_RECENT_INSERTS_MAX,
        )
        return next_state, next_state

    return step


@app.get("/healthz")
async def healthz() -> dict[str, str]:
    return {"status": "ok"}


@app.post("/tokens/parse", response_model=TokensParseResponse)
async def tokens_parse(payload: TokensParseRequest) -> TokensParseResponse:
    parsed = parse_tokens(payload.content, today=payload.today)
    fields = build_token_fields(parsed.text_with_dates_resolved, parsed.unresolved_tokens)
    return TokensParseResponse(
        text=parsed.text_with_dates_resolved,
        tokens=[TokenItem(**dataclasses.asdict(token)) for token in parsed.unresolved_tokens],
        fields=[TokenFieldItem(**dataclasses.asdict(item)) for item in fields],
        default_resolutions=default_resolutions(fields),
        normal_resolutions=normal_resolutions(fields),
    )


@app.post("/tokens/apply", response_model=TokensApplyResponse)
async def tokens_apply(payload: TokensApplyRequest) -> TokensApplyResponse:
    resolutions: dict[str, str] = {}
    if payload.values is not None:
        parsed = parse_tokens(payload.text)
        fields = build_token_fields(parsed.text_with_dates_resolved, parsed.unresolved_tokens)
        resolutions.update(build_resolution_map(fields, payload.values))
    resolutions.update(payload.resolutions)
    return TokensApplyResponse(
        text=apply_resolutions(payload.text, resolutions),
        debug={"resolution_count": len(resolutions), "from_values": payload.values is not None},
    )


@app.post("/sessions", response_model=SessionResponse)
async def session_create(topic: TopicConfig) -> SessionResponse:
    store = _get_session_store()
    expired = store.cleanup_expired_sessions()
    if expired:
        logger.info("sessions_expired count=%s", expired)
    session_id = store.create_session(topic)
    _audit(session_id, "SESSION_CREATED", "ok", f"topic={topic.metadata.id}")
    session = store.get_session(session_id)
    return _session_response(session_id, session["topic"], session["state"])


@app.get("/sessions/{session_id}", response_model=SessionResponse)
async def session_get(session_id: str) -> SessionResponse:
    session = _require_session(session_id)
    return _session_response(session_id, session["topic"], session["state"])


@app.delete("/sessions/{session_id}")
async def session_delete(session_id: str) -> dict[str, Any]:
    _require_session(session_id)
    _audit(session_id, "SESSION_DESTROYED", "client_request", "reason=client_request")
    destroyed = _get_session_store().destroy_session(session_id, reason="client_request")
    if not destroyed:
        raise HTTPException(status_code=404, detail=f"Unknown session_id: {session_id}")
    logger.info("session_destroyed session_id=%s", session_id)
    return {"session_id": session_id, "destroyed": True}


@app.get("/sessions/{session_id}/audit", response_model=AuditResponse)
async def session_audit(session_id: str) -> AuditResponse:
    session = _require_session(session_id)
    return AuditResponse(session_id=session_id, events=session["audit_events"])


@app.post("/sessions/{session_id}/editor", response_model=SessionResponse)
async def session_editor_write(session_id: str, payload: EditorWriteRequest) -> SessionResponse:
    started_at = time.perf_counter()
    action: r.SessionAction = (
        r.SetEditorTextWithHistory(text=payload.text) if payload.with_history else r.SetEditorText(text=payload.text)
    )
    state = _transition(session_id, _reduce(action))
    _audit(session_id, "EDITOR_WRITE", "ok", f"chars={len(payload.text)} history={payload.with_history}", started_at)
    session = _require_session(session_id)
    return _session_response(session_id, session["topic"], state)


@app.post("/sessions/{session_id}/undo", response_model=SessionResponse)
async def session_undo(session_id: str) -> SessionResponse:
    state = _transition(session_id, _reduce(r.UndoEditorText()))
    _audit(session_id, "UNDO", "ok", f"past={len(state.editor_history.past)}")
    session = _require_session(session_id)
    return _session_response(session_id, session["topic"], state)


@app.post("/sessions/{session_id}/redo", response_model=SessionResponse)
async def session_redo(session_id: str) -> SessionResponse:
    state = _transition(session_id, _reduce(r.RedoEditorText()))
    _audit(session_id, "REDO", "ok", f"future={len(state.editor_history.future)}")
    session = _require_session(session_id)
    return _session_response(session_id, session["topic"], state)


@app.post("/sessions/{session_id}/actions", response_model=SessionResponse)
async def session_action(session_id: str, payload: SessionActionRequest) -> SessionResponse:
    state = _transition(session_id, _reduce(_to_reducer_action(payload)))
    _audit(session_id, "ACTION_DISPATCHED", payload.type.lower(), f"type={payload.type}")
    session = _require_session(session_id)
    return _session_response(session_id, session["topic"], state)


@app.post("/sessions/{session_id}/sections/{section_id}/insert", response_model=InsertSectionResponse)
async def session_section_insert(
    session_id: str,
    section_id: str,
    payload: InsertSectionRequest,
) -> InsertSectionResponse:
    started_at = time.perf_counter()
    max_history = _get_config().CONSULTNOTE_MAX_EDITOR_HISTORY
    selection = None
    if payload.selection_start is not None:
        end = payload.selection_end if payload.selection_end is not None else payload.selection_start
        selection = (payload.selection_start, end)

    def step(topic: TopicConfig, state: ConsultationSessionState) -> Tuple[ConsultationSessionState, Any]:
        section = topic.output_section(section_id)
        if section is None:
            raise ValueError(f"Unknown section_id: {section_id}")
        intent = InsertSectionIntent(
            section_id=section.id,
            section_title=section.title,
            source=section.source,
            content=compose_section(topic, state, section),
            mode=payload.mode,
        )
        result = upsert_linked_section(state, intent, selection)
        if result is None:
            return state, (state, None)
        next_state = r.apply_insert_result(state, result, max_history=max_history)
        return next_state, (next_state, result)

    state, result = _transition(session_id, step)
    if result is None:
        _audit(session_id, "SECTION_INSERTED", "empty_section", f"section_id={section_id}")
        return InsertSectionResponse(
            session_id=session_id,
            section_id=section_id,
            inserted=False,
            state=state,
            debug={"reason": "empty_section"},
        )

    event_type: AuditEventType = "SECTION_REFRESHED" if result.updated_existing else "SECTION_INSERTED"
    _audit(session_id, event_type, "ok", f"section_id={section_id} mode={payload.mode}", started_at)
    return InsertSectionResponse(
        session_id=session_id,
        section_id=section_id,
        inserted=True,
        updated_existing=result.updated_existing,
        next_cursor=result.next_cursor,
        state=state,
        debug={
            "mode": payload.mode,
            "selection": list(selection) if selection else None,
            "anchor_index": result.anchor.last_known_index,
        },
    )


@app.post("/sessions/{session_id}/sections/{section_id}/remove", response_model=SessionResponse)
async def session_section_remove(session_id: str, section_id: str) -> SessionResponse:
    max_history = _get_config().CONSULTNOTE_MAX_EDITOR_HISTORY

    def step(topic: TopicConfig, state: ConsultationSessionState) -> Tuple[ConsultationSessionState, ConsultationSessionState]:
        anchor = state.editor_anchors.get(section_id)
        if anchor is None:
            raise ValueError(f"Section is not linked: {section_id}")
        next_text = remove_anchored_block(state.editor_text, anchor)
        next_state = r.remove_linked_section(state, section_id, next_text, max_history=max_history)
        return next_state, next_state

    state = _transition(session_id, step)
    _audit(session_id, "SECTION_REMOVED", "ok", f"section_id={section_id}")
    session = _require_session(session_id)
    return _session_response(session_id, session["topic"], state)


@app.post("/sessions/{session_id}/sync", response_model=SyncResponse)
async def session_sync(session_id: str) -> SyncResponse:
    started_at = time.perf_counter()
    max_history = _get_config().CONSULTNOTE_MAX_EDITOR_HISTORY

    def step(topic: TopicConfig, state: ConsultationSessionState) -> Tuple[ConsultationSessionState, Any]:
        result = sync_linked_sections(topic, state)
        next_state = r.apply_sync_result(state, result, max_history=max_history)
        return next_state, (next_state, result)

    state, result = _transition(session_id, step)
    counts = result.counts.as_dict()
    _audit(
        session_id,
        "SECTIONS_SYNCED",
        "ok" if result.has_linked_sections else "no_linked_sections",
        " ".join(f"{key}={value}" for key, value in counts.items()),
        started_at,
    )
    return SyncResponse(
        session_id=session_id,
        counts=counts,
        state=state,
        debug={"linked_sections": len(result.anchors), "text_changed": counts["updated"] > 0},
    )


@app.get("/sessions/{session_id}/export", response_model=ExportResponse)
async def session_export(
    session_id: str,
    fmt: str = Query(default="plain", alias="format"),
) -> ExportResponse:
    session = _require_session(session_id)
    try:
        text = build_export_for_format(fmt, session["topic"], session["state"])
    except ValueError as exc:
        _audit(session_id, "ERROR", "unsupported_format", f"format={fmt}")
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    _audit(session_id, "EXPORT", fmt, f"chars={len(text)}")
    return ExportResponse(
        session_id=session_id,
        format=fmt,
        text=text,
        debug={"supported_formats": list(EXPORT_FORMATS), "manual_draft": not session["state"].export_draft.is_derived},
    )
