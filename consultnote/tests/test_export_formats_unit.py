import pytest

from consultnote.compose.composer import build_export_text
from consultnote.compose.export_formats import NOT_DOCUMENTED, build_export_for_format
from consultnote.internal_core.contracts import ConsultationSessionState, DdxState, WorkingDiagnosis


def _state() -> ConsultationSessionState:
    return ConsultationSessionState(
        editor_text="Three days of dysuria.\n",
        structured_responses={
            "duration": "3 days",
            "antibiotic": "nitrofurantoin",
            "return_advice": "If febrile",
        },
        red_flags_confirmed={"rf-1": True},
        ddx=DdxState(working_diagnoses=[WorkingDiagnosis(name="UTI", is_primary=True)]),
    )


def test_soap_groups_sources_under_fixed_headings(uti_topic) -> None:
    text = build_export_for_format("soap", uti_topic, _state())
    assert text == (
        "S: Subjective\n"
        "Duration: 3 days\n"
        "Three days of dysuria.\n"
        "\n"
        "O: Objective\n"
        f"{NOT_DOCUMENTED}\n"
        "\n"
        "A: Assessment\n"
        "Working differentials:\n"
        "1. UTI *\n"
        "Red flags assessed: Rigors\n"
        "\n"
        "P: Plan\n"
        "Antibiotic: nitrofurantoin\n"
        "Return advice: If febrile"
    )


def test_sbar_renders_every_heading(uti_topic) -> None:
    text = build_export_for_format("sbar", uti_topic, _state())
    assert text.startswith("Situation\nThree days of dysuria.\n\nBackground\nDuration: 3 days")
    assert "Assessment\nWorking differentials:\n1. UTI *\nRed flags assessed: Rigors" in text
    assert text.endswith("Recommendation\nAntibiotic: nitrofurantoin\nReturn advice: If febrile")


def test_empty_session_is_not_documented(uti_topic) -> None:
    text = build_export_for_format("sbar", uti_topic, ConsultationSessionState())
    assert text.count(NOT_DOCUMENTED) == 4


def test_plain_matches_export_text(uti_topic) -> None:
    state = _state()
    assert build_export_for_format("plain", uti_topic, state) == build_export_text(uti_topic, state)


def test_unknown_format_is_rejected(uti_topic) -> None:
    with pytest.raises(ValueError):
        build_export_for_format("rtf", uti_topic, _state())
