from __future__ import annotations

"""
Link composed sections to regions of a plain-text note.

Design intent:
- Identify a linked block purely by its text plus a locality hint.
- Refresh a block in place only while it is byte-for-byte what we wrote.
- Report edited blocks as detached and vanished blocks as missing.

Duplicate block text is resolved by picking the occurrence closest to the
last known offset; identical blocks elsewhere in the note can be mistaken
for the linked one.
"""

import logging
import re
import time
from dataclasses import dataclass
from typing import Literal, Mapping

from consultnote.internal_core.contracts import EditorAnchor

logger = logging.getLogger(__name__)

LinkState = Literal["not_linked", "linked_clean", "linked_modified", "linked_missing"]
RefreshStatus = Literal["updated", "unchanged", "missing", "detached"]

_BASE36_DIGITS = "0123456789abcdefghijklmnopqrstuvwxyz"
_EXCESS_NEWLINES_RE = re.compile(r"\n{3,}")


@dataclass(frozen=True)
class AnchorMatch:
    start: int
    end: int
    body: str


@dataclass(frozen=True)
class Provenance:
    section_title: str | None = None
    source: str | None = None
    timestamp: float | None = None


@dataclass(frozen=True)
class CursorInsertResult:
    next_text: str
    next_cursor: int
    anchor: EditorAnchor


@dataclass(frozen=True)
class AppendResult:
    next_text: str
    anchor: EditorAnchor


@dataclass(frozen=True)
class RefreshResult:
    next_text: str
    anchor: EditorAnchor
    updated: bool
    status: RefreshStatus


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits: list[str] = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_BASE36_DIGITS[remainder])
    return "".join(reversed(digits))


def hash_string(value: str) -> str:
    """djb2-xor fingerprint over UTF-16 code units, unsigned 32-bit, base 36.

    Matches fingerprints already stored by browser clients, so it must stay
    byte-compatible with `(hash * 33) ^ charCodeAt(i)` semantics.
    """
    acc = 5381
    encoded = value.encode("utf-16-le", "surrogatepass")
    for offset in range(0, len(encoded), 2):
        unit = encoded[offset] | (encoded[offset + 1] << 8)
        acc = ((acc * 33) ^ unit) & 0xFFFFFFFF
    return _to_base36(acc)


def normalize_linked_text(section_content: str) -> str:
    return section_content if section_content.endswith("\n") else f"{section_content}\n"


def _now_ms() -> float:
    return time.time() * 1000.0


def _find_all_indexes(text: str, needle: str) -> list[int]:
    if not needle:
        return []
    indexes: list[int] = []
    start = text.find(needle)
    while start != -1:
        indexes.append(start)
        start = text.find(needle, start + len(needle))
    return indexes


def find_anchor_match(text: str, anchor: EditorAnchor) -> AnchorMatch | None:
    linked_text = anchor.linked_text
    if not linked_text.strip():
        return None

    hint = anchor.last_known_index
    if hint >= 0 and text[hint : hint + len(linked_text)] == linked_text:
        return AnchorMatch(start=hint, end=hint + len(linked_text), body=linked_text)

    matches = _find_all_indexes(text, linked_text)
    if not matches:
        return None
    preferred = min(matches, key=lambda index: (abs(index - hint), index))
    return AnchorMatch(start=preferred, end=preferred + len(linked_text), body=linked_text)


def _line_start_indexes(text: str, line: str, start: int = 0) -> list[int]:
    found: list[int] = []
    index = text.find(line, start)
    while index != -1:
        at_line_start = index == 0 or text[index - 1] == "\n"
        line_end = index + len(line)
        at_line_end = line_end == len(text) or text[line_end] == "\n"
        if at_line_start and at_line_end:
            found.append(index)
        index = text.find(line, index + 1)
    return found


def locate_edited_block(text: str, anchor: EditorAnchor) -> AnchorMatch | None:
    """Find a block whose first and last lines survive but whose body changed.

    Only multi-line blocks can be located this way; a single-line block that
    no longer matches exactly is indistinguishable from a deleted one.
    """
    lines = anchor.linked_text.rstrip("\n").split("\n")
    if len(lines) < 2:
        return None
    head, tail = lines[0], lines[-1]
    if not head.strip() or not tail.strip():
        return None

    heads = _line_start_indexes(text, head)
    if not heads:
        return None
    hint = anchor.last_known_index
    start = min(heads, key=lambda index: (abs(index - hint), index))

    tails = _line_start_indexes(text, tail, start + len(head) + 1)
    if not tails:
        return None
    end = tails[0] + len(tail)
    if end < len(text) and text[end] == "\n":
        end += 1
    return AnchorMatch(start=start, end=end, body=text[start:end])


def derive_link_state(text: str, anchor: EditorAnchor | None) -> LinkState:
    if anchor is None:
        return "not_linked"
    match = find_anchor_match(text, anchor)
    if match is not None:
        if anchor.detached or hash_string(match.body) != anchor.last_hash:
            return "linked_modified"
        return "linked_clean"
    if locate_edited_block(text, anchor) is not None:
        return "linked_modified"
    return "linked_missing"


def get_detached_anchor_ids(text: str, anchors: Mapping[str, EditorAnchor]) -> list[str]:
    detached: list[str] = []
    for section_id, anchor in anchors.items():
        if anchor.detached:
            continue
        match = find_anchor_match(text, anchor)
        if match is None or hash_string(match.body) != anchor.last_hash:
            detached.append(section_id)
    return detached


def recompute_anchor_detach_state(
    text: str,
    anchors: Mapping[str, EditorAnchor],
) -> dict[str, EditorAnchor]:
    recomputed: dict[str, EditorAnchor] = {}
    for section_id, anchor in anchors.items():
        match = find_anchor_match(text, anchor)
        if match is None:
            recomputed[section_id] = anchor.model_copy(update={"detached": True})
            continue
        recomputed[section_id] = anchor.model_copy(
            update={
                "detached": hash_string(match.body) != anchor.last_hash,
                "last_known_index": match.start,
            }
        )
    return recomputed


def insert_text_at_cursor(
    text: str,
    insert: str,
    selection_start: int,
    selection_end: int,
) -> tuple[str, int, int]:
    """Replace the selection with ``insert``.

    Returns (next_text, next_cursor, inserted_at). Out-of-range or reversed
    selections are clamped into the buffer.
    """
    start = max(0, min(selection_start, len(text)))
    end = max(start, min(selection_end, len(text)))
    before = text[:start]
    after = text[end:]
    return f"{before}{insert}{after}", len(before) + len(insert), len(before)


def _new_anchor(
    section_id: str,
    linked_text: str,
    index: int,
    provenance: Provenance | None,
) -> EditorAnchor:
    provenance = provenance or Provenance()
    return EditorAnchor(
        section_id=section_id,
        linked_text=linked_text,
        last_hash=hash_string(linked_text),
        last_known_index=index,
        detached=False,
        section_title=provenance.section_title,
        source=provenance.source,
        linked_at=provenance.timestamp if provenance.timestamp is not None else _now_ms(),
    )


def insert_anchored_at_cursor(
    text: str,
    section_id: str,
    section_content: str,
    selection_start: int,
    selection_end: int,
    provenance: Provenance | None = None,
) -> CursorInsertResult:
    linked_text = normalize_linked_text(section_content)
    next_text, next_cursor, inserted_at = insert_text_at_cursor(
        text, linked_text, selection_start, selection_end
    )
    logger.debug("anchor_insert section_id=%s at=%s", section_id, inserted_at)
    return CursorInsertResult(
        next_text=next_text,
        next_cursor=next_cursor,
        anchor=_new_anchor(section_id, linked_text, inserted_at, provenance),
    )


def append_anchored(
    text: str,
    section_id: str,
    section_content: str,
    provenance: Provenance | None = None,
) -> AppendResult:
    linked_text = normalize_linked_text(section_content)
    spacer = "\n\n" if text.strip() else ""
    start = len(text) + len(spacer)
    logger.debug("anchor_append section_id=%s at=%s", section_id, start)
    return AppendResult(
        next_text=f"{text}{spacer}{linked_text}",
        anchor=_new_anchor(section_id, linked_text, start, provenance),
    )


def refresh_anchored_block(text: str, anchor: EditorAnchor, new_content: str) -> RefreshResult:
    if anchor.detached:
        return RefreshResult(next_text=text, anchor=anchor, updated=False, status="detached")
    # A blank block would match any newline in the note; keep the linked text.
    if not new_content.strip():
        return RefreshResult(next_text=text, anchor=anchor, updated=False, status="unchanged")
    linked_content = normalize_linked_text(new_content)

    match = find_anchor_match(text, anchor)
    if match is None:
        edited = locate_edited_block(text, anchor)
        status: RefreshStatus = "detached" if edited is not None else "missing"
        update: dict[str, object] = {"detached": True}
        if edited is not None:
            update["last_known_index"] = edited.start
        logger.info("anchor_refresh section_id=%s status=%s", anchor.section_id, status)
        return RefreshResult(
            next_text=text,
            anchor=anchor.model_copy(update=update),
            updated=False,
            status=status,
        )

    if hash_string(match.body) != anchor.last_hash:
        logger.info("anchor_refresh section_id=%s status=detached", anchor.section_id)
        return RefreshResult(
            next_text=text,
            anchor=anchor.model_copy(update={"detached": True}),
            updated=False,
            status="detached",
        )

    refreshed_anchor = anchor.model_copy(
        update={
            "linked_text": linked_content,
            "last_hash": hash_string(linked_content),
            "last_known_index": match.start,
        }
    )
    if match.body == linked_content:
        return RefreshResult(next_text=text, anchor=refreshed_anchor, updated=True, status="unchanged")

    logger.debug("anchor_refresh section_id=%s status=updated", anchor.section_id)
    return RefreshResult(
        next_text=f"{text[: match.start]}{linked_content}{text[match.end :]}",
        anchor=refreshed_anchor,
        updated=True,
        status="updated",
    )


def collapse_blank_lines(text: str) -> str:
    return _EXCESS_NEWLINES_RE.sub("\n\n", text)


def remove_anchored_block(text: str, anchor: EditorAnchor) -> str:
    match = find_anchor_match(text, anchor)
    if match is None:
        return text
    return collapse_blank_lines(f"{text[: match.start]}{text[match.end :]}")
