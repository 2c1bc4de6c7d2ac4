from __future__ import annotations

"""
Session audit trail.

Design intent:
- Record what happened to a consultation (ids, counts, codes), never what
  the clinician wrote.
- Details are single-line and bounded so the trail stays cheap to return.
- Any line of the current note that leaks into a detail is redacted before
  the event is stored.
"""

import datetime as _dt
from typing import Iterable, Optional

from .contracts import AuditEvent, AuditEventType
from .session_store import InMemorySessionStore

MAX_DETAIL_CHARS = 200
REDACTED = "[redacted]"
# Note lines shorter than this stay visible ("1.", "Plan:").
MIN_REDACT_CHARS = 6


def _ts_iso() -> str:
    return _dt.datetime.now(_dt.timezone.utc).isoformat()


def note_fragments(note_text: str) -> list[str]:
    """Distinct non-trivial note lines, longest first so overlaps redact fully."""
    lines = {" ".join(line.split()) for line in (note_text or "").splitlines()}
    return sorted((line for line in lines if len(line) >= MIN_REDACT_CHARS), key=len, reverse=True)


def sanitize_detail(detail: str, fragments: Iterable[str] = ()) -> str:
    cleaned = " ".join((detail or "").split())
    for fragment in fragments:
        if fragment in cleaned:
            cleaned = cleaned.replace(fragment, REDACTED)
    if len(cleaned) > MAX_DETAIL_CHARS:
        cleaned = cleaned[:MAX_DETAIL_CHARS] + "…"
    return cleaned


def log_event(
    store: InMemorySessionStore,
    session_id: str,
    event_type: AuditEventType,
    code: str,
    detail: str,
    duration_ms: Optional[int] = None,
) -> AuditEvent:
    note_text = store.get_session(session_id)["state"].editor_text
    event = AuditEvent(
        ts_iso=_ts_iso(),
        session_id=session_id,
        type=event_type,
        code=code,
        detail=sanitize_detail(detail, note_fragments(note_text)),
        duration_ms=duration_ms,
    )
    store.append_audit_event(session_id, event)
    return event
