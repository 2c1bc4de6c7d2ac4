from consultnote.compose.sections import (
    compose_ddx,
    compose_output,
    compose_reasoning_summary,
    compose_section,
    compose_structured_section,
    get_composed_sections,
    red_flag_key,
)
from consultnote.internal_core.contracts import ConsultationSessionState, DdxState, WorkingDiagnosis


def test_structured_section_formats_label_and_value(uti_topic) -> None:
    state = ConsultationSessionState(structured_responses={"duration": "3 days"})
    assert compose_structured_section(uti_topic, state, "history") == "Duration: 3 days"


def test_structured_section_skips_empty_answers_and_hidden_fields(uti_topic) -> None:
    state = ConsultationSessionState(
        structured_responses={
            "duration": "  ",
            "dysuria": True,
            "fever": False,
            "temperature": 38.5,
            "symptoms": ["frequency", "urgency"],
        }
    )
    assert compose_structured_section(uti_topic, state, "history") == (
        "Dysuria: true\nSymptoms: frequency, urgency"
    )


def test_structured_section_shows_conditional_field_when_condition_holds(uti_topic) -> None:
    state = ConsultationSessionState(structured_responses={"fever": True, "temperature": 39.0})
    assert compose_structured_section(uti_topic, state, "history") == "Fever: true\nTemperature: 39"


def test_unknown_structured_group_composes_empty(uti_topic) -> None:
    assert compose_structured_section(uti_topic, ConsultationSessionState(), "missing") == ""


def test_reasoning_summary_lists_confirmed_red_flags(uti_topic) -> None:
    state = ConsultationSessionState(
        red_flags_confirmed={
            red_flag_key(2): True,
            red_flag_key(0): False,
            red_flag_key(1): True,
            "rf-99": True,
            "custom": True,
        }
    )
    assert compose_reasoning_summary(uti_topic, state) == "Red flags assessed: Vomiting, Rigors"
    assert compose_reasoning_summary(uti_topic, ConsultationSessionState()) == ""


def test_ddx_lists_primary_first_with_evidence() -> None:
    state = ConsultationSessionState(
        ddx=DdxState(
            working_diagnoses=[
                WorkingDiagnosis(name="Pyelonephritis"),
                WorkingDiagnosis(name="UTI", is_primary=True),
            ],
            evidence_for={"UTI": ["Dysuria", "Frequency"]},
            evidence_against={"Pyelonephritis": ["No loin pain"]},
        )
    )
    composed = compose_ddx(state)
    assert "1. UTI *" in composed
    assert "Supports UTI:\n+ Dysuria" in composed
    assert composed == (
        "Working differentials:\n"
        "1. UTI *\n"
        "2. Pyelonephritis\n"
        "\n"
        "Supports UTI:\n"
        "+ Dysuria\n"
        "+ Frequency\n"
        "\n"
        "Against Pyelonephritis:\n"
        "- No loin pain"
    )


def test_ddx_without_diagnoses_is_empty() -> None:
    assert compose_ddx(ConsultationSessionState()) == ""


def test_editor_section_returns_trimmed_buffer(uti_topic) -> None:
    section = uti_topic.output_section("history").model_copy(update={"source": "editor"})
    state = ConsultationSessionState(editor_text="\n  Free text  \n")
    assert compose_section(uti_topic, state, section) == "Free text"


def test_composed_sections_report_inclusion(uti_topic) -> None:
    state = ConsultationSessionState(section_inclusions={"ddx": False})
    included = {section.id: section.included for section in get_composed_sections(uti_topic, state)}
    assert included == {
        "history": True,
        "ddx": False,
        "reasoning": True,
        "plan": True,
        "safety-net": False,
    }


def test_compose_output_joins_included_non_empty_sections(uti_topic) -> None:
    state = ConsultationSessionState(
        structured_responses={"duration": "2 days", "antibiotic": "nitrofurantoin", "return_advice": "If febrile"},
        red_flags_confirmed={"rf-0": True},
    )
    assert compose_output(uti_topic, state) == (
        "## History\nDuration: 2 days\n\n"
        "## Reasoning\nRed flags assessed: Loin pain\n\n"
        "## Plan\nAntibiotic: nitrofurantoin"
    )

    opted_in = state.model_copy(update={"section_inclusions": {"safety-net": True}})
    assert compose_output(uti_topic, opted_in).endswith("## Safety net\nReturn advice: If febrile")
