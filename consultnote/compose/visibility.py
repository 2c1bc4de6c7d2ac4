from __future__ import annotations

"""
Evaluate structured-field visibility expressions.

Supported forms:
- `field == value`, `field != value`, `field contains value`
- `a && b` binds tighter than `a || b`

Unknown expressions evaluate to visible so clinically relevant fields are
never hidden by a typo.
"""

import re
from typing import Mapping

from consultnote.internal_core.contracts import ResponseValue

_CONTAINS_RE = re.compile(r"^(\w[\w.-]*)\s+contains\s+(.+)$")
_NEQ_RE = re.compile(r"^(\w[\w.-]*)\s*!=\s*(.+)$")
_EQ_RE = re.compile(r"^(\w[\w.-]*)\s*==\s*(.+)$")


def _normalize_target(value: str) -> str:
    trimmed = value.strip()
    if len(trimmed) >= 2 and trimmed[0] == trimmed[-1] and trimmed[0] in {"'", '"'}:
        return trimmed[1:-1]
    return trimmed


def _stringify(value: ResponseValue | None) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, list):
        return ",".join(str(item) for item in value)
    return str(value)


def evaluate_show_if(expression: str | None, responses: Mapping[str, ResponseValue]) -> bool:
    if not expression or not expression.strip():
        return True

    if "||" in expression:
        return any(evaluate_show_if(part.strip(), responses) for part in expression.split("||"))

    if "&&" in expression:
        return all(evaluate_show_if(part.strip(), responses) for part in expression.split("&&"))

    condition = expression.strip()

    contains = _CONTAINS_RE.match(condition)
    if contains:
        field_value = responses.get(contains.group(1))
        target = _normalize_target(contains.group(2))
        if isinstance(field_value, list):
            return target in field_value
        return target in _stringify(field_value)

    neq = _NEQ_RE.match(condition)
    if neq:
        return _stringify(responses.get(neq.group(1))) != _normalize_target(neq.group(2))

    eq = _EQ_RE.match(condition)
    if eq:
        return _stringify(responses.get(eq.group(1))) == _normalize_target(eq.group(2))

    return True
