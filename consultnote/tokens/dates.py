from __future__ import annotations

"""
Resolve relative date placeholders in snippet text.

Design intent:
- Support `@date(+<N><d|w|m>)` offsets from today.
- Render as DD/MM/YYYY, the format clinicians already read in notes.
- Leave anything that does not parse untouched.
"""

import calendar
import re
from datetime import date, timedelta

DATE_TOKEN_RE = re.compile(r"@date\(\+\d+[dwm]\)")
_DATE_PARTS_RE = re.compile(r"@date\(\+(\d+)([dwm])\)")


def add_months(start: date, months: int) -> date:
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def resolve_date_token(token: str, *, today: date | None = None) -> str:
    match = _DATE_PARTS_RE.fullmatch(token.strip())
    if not match:
        return token

    amount = int(match.group(1))
    unit = match.group(2)
    base = today or date.today()
    if unit == "d":
        target = base + timedelta(days=amount)
    elif unit == "w":
        target = base + timedelta(weeks=amount)
    else:
        target = add_months(base, amount)
    return target.strftime("%d/%m/%Y")


def resolve_date_tokens(text: str, *, today: date | None = None) -> str:
    return DATE_TOKEN_RE.sub(lambda m: resolve_date_token(m.group(0), today=today), text)
