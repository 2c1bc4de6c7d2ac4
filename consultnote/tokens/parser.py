from __future__ import annotations

"""
Parse snippet placeholders into resolved dates and caller-resolved tokens.

Design intent:
- Resolve `@date(...)` placeholders immediately and deterministically.
- Surface `{a|b*|c}` choices and `[Name]` variables for the clinician.
- Never block note composition on a template authoring mistake.
"""

import re
from dataclasses import dataclass, field
from datetime import date
from typing import Literal, Mapping, Union

from consultnote.tokens.dates import resolve_date_tokens

CHOICE_TOKEN_RE = re.compile(r"\{([^}]+)\}")
VARIABLE_TOKEN_RE = re.compile(r"\[([^\]]+)\]")
DEFAULT_MARKER = "*"


@dataclass(frozen=True)
class ChoiceToken:
    raw: str
    options: list[str]
    default_index: int = 0
    type: Literal["choice"] = field(default="choice", init=False)

    @property
    def default_option(self) -> str:
        if not self.options:
            return ""
        if 0 <= self.default_index < len(self.options):
            return self.options[self.default_index]
        return self.options[0]


@dataclass(frozen=True)
class VariableToken:
    raw: str
    name: str
    type: Literal["variable"] = field(default="variable", init=False)


UnresolvedToken = Union[ChoiceToken, VariableToken]


@dataclass(frozen=True)
class ParsedSnippet:
    text_with_dates_resolved: str
    unresolved_tokens: list[UnresolvedToken]


def _parse_choice_options(inner: str) -> tuple[list[str], int]:
    options: list[str] = []
    default_index = 0
    for part in inner.split("|"):
        marked = part.endswith(DEFAULT_MARKER)
        option = part[: -len(DEFAULT_MARKER)] if marked else part
        if not option:
            continue
        if marked:
            default_index = len(options)
        options.append(option)
    if not options:
        # Degenerate list such as "{|}" or "{*}": keep one literal option.
        return [inner.replace("|", "").rstrip(DEFAULT_MARKER)], 0
    return options, default_index


def parse_tokens(content: str, *, today: date | None = None) -> ParsedSnippet:
    text = resolve_date_tokens(content or "", today=today)

    tokens: list[UnresolvedToken] = []
    seen: set[str] = set()

    for match in CHOICE_TOKEN_RE.finditer(text):
        raw = match.group(0)
        if raw in seen:
            continue
        seen.add(raw)
        options, default_index = _parse_choice_options(match.group(1))
        tokens.append(ChoiceToken(raw=raw, options=options, default_index=default_index))

    for match in VARIABLE_TOKEN_RE.finditer(text):
        raw = match.group(0)
        if raw in seen:
            continue
        seen.add(raw)
        tokens.append(VariableToken(raw=raw, name=match.group(1)))

    return ParsedSnippet(text_with_dates_resolved=text, unresolved_tokens=tokens)


def apply_resolutions(text: str, resolutions: Mapping[str, str]) -> str:
    result = text
    for raw, value in resolutions.items():
        if not raw:
            continue
        result = result.replace(raw, value)
    return result
