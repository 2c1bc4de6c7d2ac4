from consultnote.compose.composer import (
    build_composer_sections,
    build_export_text,
    link_state_presentation,
    strip_composer_markers,
)
from consultnote.compose.sections import compose_output
from consultnote.internal_core.contracts import ConsultationSessionState, ExportDraft
from consultnote.linking.anchors import append_anchored, hash_string


def test_link_state_presentation_is_stable() -> None:
    assert link_state_presentation("not_linked") == ("Not inserted", "neutral")
    assert link_state_presentation("linked_clean") == ("Linked", "success")
    assert link_state_presentation("linked_modified") == ("Modified after insert", "warning")
    assert link_state_presentation("linked_missing") == ("Link missing", "danger")


def test_strip_composer_markers_removes_legacy_lines() -> None:
    text = "[CRx linked: history]\nDuration: 3 days\n[/CRx linked]\n\n\n\nPlan: rest\n"
    assert strip_composer_markers(text) == "Duration: 3 days\n\nPlan: rest"


def test_composer_sections_carry_link_state(uti_topic) -> None:
    state = ConsultationSessionState(structured_responses={"duration": "3 days", "antibiotic": "trimethoprim"})
    appended = append_anchored("Notes", "history", "Duration: 3 days")
    plan = append_anchored(appended.next_text, "plan", "Antibiotic: nitrofurantoin")
    state = state.model_copy(
        update={
            "editor_text": plan.next_text.replace("Antibiotic: nitrofurantoin\n", ""),
            "editor_anchors": {"history": appended.anchor, "plan": plan.anchor},
        }
    )

    sections = {section.id: section for section in build_composer_sections(uti_topic, state)}
    assert sections["history"].link_state == "linked_clean"
    assert sections["history"].content == "Duration: 3 days"
    assert sections["history"].content_hash == hash_string("Duration: 3 days")
    assert sections["plan"].link_state == "linked_missing"
    assert sections["ddx"].link_state == "not_linked"
    assert sections["safety-net"].include_by_default is False
    assert sections["safety-net"].included is False


def test_export_text_prefers_manual_draft(uti_topic) -> None:
    state = ConsultationSessionState(structured_responses={"duration": "3 days"})
    assert build_export_text(uti_topic, state) == compose_output(uti_topic, state)

    manual = state.model_copy(
        update={"export_draft": ExportDraft(text="[CRx linked: x]\nHand edited\n", is_derived=False)}
    )
    assert build_export_text(uti_topic, manual) == "Hand edited"

    blank_manual = state.model_copy(update={"export_draft": ExportDraft(text="   ", is_derived=False)})
    assert build_export_text(uti_topic, blank_manual) == compose_output(uti_topic, state)
