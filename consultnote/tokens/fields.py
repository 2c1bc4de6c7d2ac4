from __future__ import annotations

"""
Describe unresolved snippet tokens as fillable fields.

Design intent:
- Give each choice/variable token a plain-language label from nearby text.
- Offer default and "normal findings" values so a snippet can be inserted
  in one step without visiting every field.
"""

import re
from dataclasses import dataclass
from typing import Literal, Mapping, Sequence, Union

from consultnote.tokens.parser import (
    ChoiceToken,
    UnresolvedToken,
    VariableToken,
    apply_resolutions,
    parse_tokens,
)

_CONTEXT_WINDOW = 120
_LABEL_CHARS = r"[A-Za-z][A-Za-z0-9\s/()+\-]{2,80}"
_COLON_LABEL_RE = re.compile(rf"({_LABEL_CHARS})\s*:\s*$")
_BULLET_LABEL_RE = re.compile(rf"({_LABEL_CHARS})\s*$")
_NUMERIC_OPTION_RE = re.compile(r"^\d+\+?$")
_RED_FLAG_LABEL_RE = re.compile(r"red flag|warning sign|features present|red flags present")
_NEGATIVE_OPTION_RE = re.compile(r"\bno\b|\bnone\b|\babsent\b|\bnegative\b", re.IGNORECASE)
_DURATION_UNITS = (
    (re.compile(r"\bdays?\b"), "days"),
    (re.compile(r"\bweeks?\b"), "weeks"),
    (re.compile(r"\bmonths?\b"), "months"),
    (re.compile(r"\bhours?\b"), "hours"),
)
_NORMAL_OPTION_MATCHERS = [
    re.compile(r"\bnormal\b", re.IGNORECASE),
    re.compile(r"\bnegative\b", re.IGNORECASE),
    re.compile(r"\bneg\b", re.IGNORECASE),
    re.compile(r"\bnone\b", re.IGNORECASE),
    re.compile(r"\babsent\b", re.IGNORECASE),
    re.compile(r"\bintact\b", re.IGNORECASE),
    re.compile(r"\bfull\b", re.IGNORECASE),
    re.compile(r"\bnon-tender\b", re.IGNORECASE),
    re.compile(r"\bnot tested\b", re.IGNORECASE),
    re.compile(r"^no\b", re.IGNORECASE),
]
_VARIABLE_PLACEHOLDERS = (
    ("duration", "e.g., 3 days"),
    ("factor", "e.g., Lifting heavy boxes"),
    ("degree", "e.g., 45"),
    ("finding", "e.g., Reduced sensation over L5"),
    ("score", "Record manually"),
)


@dataclass(frozen=True)
class ChoiceFieldOption:
    value: str
    label: str


@dataclass(frozen=True)
class ChoiceField:
    key: str
    raw: str
    label: str
    control: Literal["radio", "checkboxes"]
    options: list[ChoiceFieldOption]
    default_value: str
    normal_value: str


@dataclass(frozen=True)
class VariableField:
    key: str
    raw: str
    label: str
    placeholder: str
    control: Literal["text"] = "text"


TokenField = Union[ChoiceField, VariableField]


@dataclass(frozen=True)
class _TokenContext:
    before_line: str
    nearby_text: str
    trailing_text: str


def _to_title_case(value: str) -> str:
    trimmed = " ".join(value.split())
    if not trimmed:
        return trimmed
    parts: list[str] = []
    for part in trimmed.split(" "):
        if part.upper() == part and len(part) > 1:
            parts.append(part)
        elif "/" in part:
            parts.append("/".join(s[:1].upper() + s[1:].lower() for s in part.split("/")))
        else:
            parts.append(part[:1].upper() + part[1:].lower())
    return " ".join(parts)


def _normalize_option_label(value: str) -> str:
    cleaned = " ".join(value.split())
    if cleaned and cleaned[0].isalnum() and cleaned == cleaned.lower():
        return cleaned[0].upper() + cleaned[1:]
    return cleaned


def _is_numeric_option(option: str) -> bool:
    return bool(_NUMERIC_OPTION_RE.match(option.strip()))


def _extract_context(text: str, raw: str) -> _TokenContext:
    index = text.find(raw)
    if index < 0:
        return _TokenContext(before_line="", nearby_text=text[:_CONTEXT_WINDOW], trailing_text="")
    before = text[max(0, index - _CONTEXT_WINDOW) : index]
    after = text[index + len(raw) : index + len(raw) + _CONTEXT_WINDOW]
    before_line = before[before.rfind("\n") + 1 :].strip()
    return _TokenContext(
        before_line=before_line,
        nearby_text=f"{before} {after}".strip(),
        trailing_text=after.strip(),
    )


def _infer_explicit_label(before_line: str) -> str | None:
    if not before_line:
        return None
    cleaned = re.sub(r"^[-*]\s*", "", before_line).strip()
    colon = _COLON_LABEL_RE.search(cleaned)
    if colon:
        return _to_title_case(colon.group(1))
    if cleaned.endswith("-"):
        bullet = _BULLET_LABEL_RE.search(cleaned)
        if bullet:
            return _to_title_case(bullet.group(1).rstrip("- "))
    return None


def _infer_duration_unit(context: _TokenContext) -> str | None:
    source = f"{context.before_line} {context.trailing_text}".lower()
    for pattern, unit in _DURATION_UNITS:
        if pattern.search(source):
            return unit
    return None


def _infer_choice_label(token: ChoiceToken, context: _TokenContext) -> str:
    explicit = _infer_explicit_label(context.before_line)
    if explicit:
        return explicit

    if all(_is_numeric_option(option) for option in token.options):
        if _infer_duration_unit(context):
            return "Duration (for documentation)"
        return "Record value (for documentation)"

    if len(token.options) == 2:
        lowered = [option.lower() for option in token.options]
        if any("yes" in o for o in lowered) and any("no" in o for o in lowered):
            return "Clinical finding"
        if any("present" in o for o in lowered) and any("absent" in o for o in lowered):
            return "Clinical finding"

    return "Select documentation value"


def _infer_choice_control(token: ChoiceToken, label: str) -> Literal["radio", "checkboxes"]:
    looks_like_red_flag_list = (
        bool(_RED_FLAG_LABEL_RE.search(label.lower()))
        and len(token.options) >= 3
        and not any(_NEGATIVE_OPTION_RE.search(option) for option in token.options)
    )
    return "checkboxes" if looks_like_red_flag_list else "radio"


def _format_option_label(option: str, context: _TokenContext) -> str:
    cleaned = " ".join(option.split())
    if cleaned and _is_numeric_option(cleaned):
        unit = _infer_duration_unit(context)
        if unit:
            return f"{cleaned} {unit}"
    return _normalize_option_label(cleaned)


def _select_normal_option(token: ChoiceToken) -> str:
    for matcher in _NORMAL_OPTION_MATCHERS:
        for option in token.options:
            if matcher.search(option):
                return option
    return token.default_option


def _infer_variable_placeholder(label: str, token_name: str) -> str:
    lower = f"{label} {token_name}".lower()
    for needle, placeholder in _VARIABLE_PLACEHOLDERS:
        if needle in lower:
            return placeholder
    return f"Enter {label.lower()}"


def build_token_fields(text: str, tokens: Sequence[UnresolvedToken]) -> list[TokenField]:
    fields: list[TokenField] = []
    for index, token in enumerate(tokens):
        context = _extract_context(text, token.raw)
        key = f"{token.raw}-{index}"
        if isinstance(token, ChoiceToken):
            label = _infer_choice_label(token, context)
            fields.append(
                ChoiceField(
                    key=key,
                    raw=token.raw,
                    label=label,
                    control=_infer_choice_control(token, label),
                    options=[
                        ChoiceFieldOption(value=option, label=_format_option_label(option, context))
                        for option in token.options
                    ],
                    default_value=token.default_option,
                    normal_value=_select_normal_option(token),
                )
            )
            continue
        label = _infer_explicit_label(context.before_line) or _to_title_case(
            re.sub(r"[_-]+", " ", token.name)
        )
        fields.append(
            VariableField(
                key=key,
                raw=token.raw,
                label=label,
                placeholder=_infer_variable_placeholder(label, token.name),
            )
        )
    return fields


def default_resolutions(fields: Sequence[TokenField]) -> dict[str, str]:
    # Variables keep their raw text so the clinician can still see what to fill in.
    return {
        item.raw: item.raw if isinstance(item, VariableField) else item.default_value
        for item in fields
    }


def normal_resolutions(fields: Sequence[TokenField]) -> dict[str, str]:
    return {
        item.raw: item.raw
        if isinstance(item, VariableField)
        else (item.normal_value or item.default_value)
        for item in fields
    }


def build_resolution_map(
    fields: Sequence[TokenField],
    values: Mapping[str, str | Sequence[str]],
) -> dict[str, str]:
    """Turn submitted field values into a raw-token -> text mapping.

    Checkbox selections are joined with ", "; a missing choice falls back to
    its default and a missing variable becomes empty text.
    """
    resolved: dict[str, str] = {}
    for item in fields:
        value = values.get(item.raw)
        if isinstance(item, VariableField):
            resolved[item.raw] = value if isinstance(value, str) else ""
            continue
        if value is None:
            resolved[item.raw] = item.default_value
        elif isinstance(value, str):
            resolved[item.raw] = value
        else:
            resolved[item.raw] = ", ".join(str(v) for v in value)
    return resolved


def expand_snippet(content: str, values: Mapping[str, str | Sequence[str]] | None = None) -> str:
    parsed = parse_tokens(content)
    fields = build_token_fields(parsed.text_with_dates_resolved, parsed.unresolved_tokens)
    resolutions = default_resolutions(fields) if values is None else build_resolution_map(fields, values)
    return apply_resolutions(parsed.text_with_dates_resolved, resolutions)
