from __future__ import annotations

from typing import Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

ResponseValue = Union[bool, int, float, str, List[str]]

SectionSource = Literal["editor", "structured", "reasoning", "ddx"]

FieldType = Literal["text", "textarea", "number", "select", "multi", "toggle", "date"]


class TopicMetadata(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    display_name: str = ""
    slug: str = ""
    specialty: str = ""
    triggers: List[str] = Field(default_factory=list)


class TopicSnippet(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    trigger: str = ""
    label: str = ""
    category: str = ""
    content: str
    tags: List[str] = Field(default_factory=list)


class TopicReasoning(BaseModel):
    model_config = ConfigDict(extra="ignore")

    discriminators: List[str] = Field(default_factory=list)
    must_not_miss: List[str] = Field(default_factory=list)
    red_flags: List[str] = Field(default_factory=list)


class StructuredField(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    label: str
    type: FieldType = "text"
    options: List[str] = Field(default_factory=list)
    placeholder: Optional[str] = None
    hint: Optional[str] = None
    show_if: Optional[str] = None
    required: bool = False


class StructuredSection(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    title: str = ""
    fields: List[StructuredField] = Field(default_factory=list)


class OutputSection(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: str
    title: str
    source: SectionSource
    structured_section_id: Optional[str] = None
    include_by_default: bool = True


class OutputTemplate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    sections: List[OutputSection] = Field(default_factory=list)


class TopicConfig(BaseModel):
    model_config = ConfigDict(extra="ignore")

    metadata: TopicMetadata
    snippets: List[TopicSnippet] = Field(default_factory=list)
    reasoning: TopicReasoning = Field(default_factory=TopicReasoning)
    structured_fields: List[StructuredSection] = Field(default_factory=list)
    output_template: OutputTemplate = Field(default_factory=OutputTemplate)

    def structured_section(self, section_id: str) -> Optional[StructuredSection]:
        for section in self.structured_fields:
            if section.id == section_id:
                return section
        return None

    def output_section(self, section_id: str) -> Optional[OutputSection]:
        for section in self.output_template.sections:
            if section.id == section_id:
                return section
        return None


class EditorAnchor(BaseModel):
    model_config = ConfigDict(extra="forbid")

    section_id: str
    linked_text: str
    last_hash: str
    last_known_index: int
    detached: bool = False
    section_title: Optional[str] = None
    source: Optional[str] = None
    linked_at: float = 0.0


class EditorHistory(BaseModel):
    model_config = ConfigDict(extra="forbid")

    past: List[str] = Field(default_factory=list)
    future: List[str] = Field(default_factory=list)


class WorkingDiagnosis(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str
    is_primary: bool = False


class DdxState(BaseModel):
    model_config = ConfigDict(extra="forbid")

    working_diagnoses: List[WorkingDiagnosis] = Field(default_factory=list)
    evidence_for: Dict[str, List[str]] = Field(default_factory=dict)
    evidence_against: Dict[str, List[str]] = Field(default_factory=dict)
    compare_selection: List[str] = Field(default_factory=list)


class RecentInsert(BaseModel):
    model_config = ConfigDict(extra="forbid")

    snippet_id: str
    timestamp: float


class ExportDraft(BaseModel):
    model_config = ConfigDict(extra="forbid")

    text: str = ""
    is_derived: bool = True
    updated_at: Optional[float] = None
    last_derived_hash: Optional[str] = None


class ConsultationSessionState(BaseModel):
    model_config = ConfigDict(extra="forbid")

    active_topic_id: str = ""
    editor_text: str = ""
    editor_history: EditorHistory = Field(default_factory=EditorHistory)
    editor_anchors: Dict[str, EditorAnchor] = Field(default_factory=dict)
    structured_responses: Dict[str, ResponseValue] = Field(default_factory=dict)
    red_flags_confirmed: Dict[str, bool] = Field(default_factory=dict)
    section_inclusions: Dict[str, bool] = Field(default_factory=dict)
    ddx: DdxState = Field(default_factory=DdxState)
    recent_inserts: List[RecentInsert] = Field(default_factory=list)
    export_draft: ExportDraft = Field(default_factory=ExportDraft)


AuditEventType = Literal[
    "SESSION_CREATED",
    "EDITOR_WRITE",
    "UNDO",
    "REDO",
    "ACTION_DISPATCHED",
    "SECTION_INSERTED",
    "SECTION_REFRESHED",
    "SECTION_REMOVED",
    "SECTIONS_SYNCED",
    "EXPORT",
    "SESSION_DESTROYED",
    "ERROR",
]


class AuditEvent(BaseModel):
    model_config = ConfigDict(extra="forbid")

    ts_iso: str
    session_id: str
    type: AuditEventType
    code: str
    detail: str
    duration_ms: Optional[int] = None
