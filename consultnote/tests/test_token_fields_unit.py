from consultnote.tokens.fields import (
    ChoiceField,
    VariableField,
    build_resolution_map,
    build_token_fields,
    default_resolutions,
    expand_snippet,
    normal_resolutions,
)
from consultnote.tokens.parser import parse_tokens


def _fields(content: str):
    parsed = parse_tokens(content)
    return build_token_fields(parsed.text_with_dates_resolved, parsed.unresolved_tokens)


def test_choice_field_uses_colon_label_and_default() -> None:
    [field] = _fields("Pain: {mild|moderate*|severe}")
    assert isinstance(field, ChoiceField)
    assert field.label == "Pain"
    assert field.control == "radio"
    assert field.default_value == "moderate"
    assert [option.label for option in field.options] == ["Mild", "Moderate", "Severe"]


def test_numeric_choice_with_duration_unit() -> None:
    [field] = _fields("Symptoms for {1|2|3+} days")
    assert isinstance(field, ChoiceField)
    assert field.label == "Duration (for documentation)"
    assert [option.label for option in field.options] == ["1 days", "2 days", "3+ days"]


def test_normal_value_prefers_negative_finding() -> None:
    [field] = _fields("Straight leg raise: {positive|negative}")
    assert isinstance(field, ChoiceField)
    assert field.default_value == "positive"
    assert field.normal_value == "negative"
    assert normal_resolutions([field]) == {"{positive|negative}": "negative"}


def test_red_flag_list_renders_as_checkboxes() -> None:
    [field] = _fields("Red flags present: {saddle anaesthesia|urinary retention|leg weakness}")
    assert isinstance(field, ChoiceField)
    assert field.control == "checkboxes"


def test_variable_field_label_and_placeholder() -> None:
    [field] = _fields("Onset: [duration]")
    assert isinstance(field, VariableField)
    assert field.label == "Onset"
    assert field.placeholder == "e.g., 3 days"

    [bare] = _fields("[trigger_factor]")
    assert isinstance(bare, VariableField)
    assert bare.label == "Trigger Factor"
    assert bare.placeholder == "e.g., Lifting heavy boxes"


def test_default_resolutions_keep_variables_visible() -> None:
    fields = _fields("Pain {mild*|severe} for [duration]")
    assert default_resolutions(fields) == {"{mild*|severe}": "mild", "[duration]": "[duration]"}


def test_build_resolution_map_joins_selections_and_falls_back() -> None:
    fields = _fields("Features {fever|rigors|vomiting}. Side {left*|right}. Since [onset].")
    resolved = build_resolution_map(fields, {"{fever|rigors|vomiting}": ["fever", "rigors"]})
    assert resolved == {
        "{fever|rigors|vomiting}": "fever, rigors",
        "{left*|right}": "left",
        "[onset]": "",
    }


def test_expand_snippet_with_defaults_and_values() -> None:
    assert expand_snippet("Pain: {mild|moderate*|severe}") == "Pain: moderate"
    assert expand_snippet("Seen for [reason]", {"[reason]": "cough"}) == "Seen for cough"
