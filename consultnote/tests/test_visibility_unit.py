from consultnote.compose.visibility import evaluate_show_if


def test_empty_expression_is_visible() -> None:
    assert evaluate_show_if(None, {})
    assert evaluate_show_if("   ", {})


def test_equality_with_bare_and_quoted_values() -> None:
    responses = {"site": "left", "fever": True, "score": 3.0}
    assert evaluate_show_if("site == left", responses)
    assert evaluate_show_if("site == 'left'", responses)
    assert evaluate_show_if('site == "left"', responses)
    assert not evaluate_show_if("site == right", responses)
    assert evaluate_show_if("fever == true", responses)
    assert evaluate_show_if("score == 3", responses)


def test_inequality_and_missing_fields() -> None:
    assert evaluate_show_if("site != left", {"site": "right"})
    assert evaluate_show_if("site != left", {})
    assert not evaluate_show_if("site == left", {})


def test_contains_on_lists_and_strings() -> None:
    assert evaluate_show_if("symptoms contains urgency", {"symptoms": ["frequency", "urgency"]})
    assert not evaluate_show_if("symptoms contains haematuria", {"symptoms": ["frequency"]})
    assert evaluate_show_if("notes contains 'loin'", {"notes": "right loin pain"})


def test_and_binds_tighter_than_or() -> None:
    responses = {"a": "1", "b": "2", "c": "9"}
    assert evaluate_show_if("a == 1 && b == 2 || c == 3", responses)
    assert evaluate_show_if("a == 0 && b == 2 || c == 9", responses)
    assert not evaluate_show_if("a == 0 && b == 2 || c == 3", responses)


def test_unknown_expression_fails_open() -> None:
    assert evaluate_show_if("fever > 38", {"fever": 37})
    assert evaluate_show_if("???", {})
