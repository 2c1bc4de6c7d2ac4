import pytest

from consultnote.linking.anchors import (
    Provenance,
    append_anchored,
    derive_link_state,
    find_anchor_match,
    get_detached_anchor_ids,
    hash_string,
    insert_anchored_at_cursor,
    insert_text_at_cursor,
    locate_edited_block,
    normalize_linked_text,
    recompute_anchor_detach_state,
    refresh_anchored_block,
    remove_anchored_block,
)

BLOCK = "Duration: 3 days\nDysuria: true\nFever: false"


def _inserted(text: str = "Intro\n", at: int | None = None, content: str = BLOCK):
    offset = len(text) if at is None else at
    return insert_anchored_at_cursor(text, "history", content, offset, offset)


def test_hash_string_matches_known_fingerprints() -> None:
    assert hash_string("") == "45h"
    assert hash_string("a") == "3t1g"
    assert hash_string("Duration: 3 days\n") == hash_string("Duration: 3 days\n")
    assert hash_string("abc") != hash_string("abd")


def test_normalize_linked_text_does_not_double_newline() -> None:
    assert normalize_linked_text("x") == "x\n"
    assert normalize_linked_text("x\n") == "x\n"


def test_insert_at_cursor_places_block_and_cursor() -> None:
    result = insert_anchored_at_cursor("ab", "history", "X", 1, 1, Provenance(section_title="History", timestamp=1.0))
    assert result.next_text == "aX\nb"
    assert result.next_cursor == 3
    assert result.anchor.linked_text == "X\n"
    assert result.anchor.last_known_index == 1
    assert result.anchor.last_hash == hash_string("X\n")
    assert result.anchor.section_title == "History"
    assert result.anchor.linked_at == 1.0
    assert result.anchor.detached is False


def test_insert_replaces_selection() -> None:
    next_text, cursor, inserted_at = insert_text_at_cursor("hello world", "there", 6, 11)
    assert (next_text, cursor, inserted_at) == ("hello there", 11, 6)


def test_append_adds_blank_line_spacer_only_after_content() -> None:
    appended = append_anchored("Intro", "plan", "Plan: rest")
    assert appended.next_text == "Intro\n\nPlan: rest\n"
    assert appended.anchor.last_known_index == 7

    empty = append_anchored("", "plan", "Plan: rest")
    assert empty.next_text == "Plan: rest\n"
    assert empty.anchor.last_known_index == 0


def test_find_anchor_match_prefers_nearest_duplicate() -> None:
    anchor = _inserted().anchor.model_copy(update={"linked_text": "Block\n", "last_known_index": 8})
    assert find_anchor_match("Block\nxx\nBlock\n", anchor).start == 9

    tied = anchor.model_copy(update={"last_known_index": 5})
    assert find_anchor_match("Block\n---\nBlock\n", tied).start == 0


def test_refresh_with_identical_content_is_unchanged() -> None:
    inserted = _inserted()
    refreshed = refresh_anchored_block(inserted.next_text, inserted.anchor, BLOCK)
    assert refreshed.status == "unchanged"
    assert refreshed.updated is True
    assert refreshed.next_text == inserted.next_text
    assert refreshed.anchor.linked_text == inserted.anchor.linked_text


def test_refresh_replaces_clean_block_in_place() -> None:
    inserted = _inserted("Intro\n")
    text = inserted.next_text + "Outro"
    refreshed = refresh_anchored_block(text, inserted.anchor, "Duration: 5 days")
    assert refreshed.status == "updated"
    assert refreshed.next_text == "Intro\nDuration: 5 days\nOutro"
    assert refreshed.anchor.linked_text == "Duration: 5 days\n"
    assert refreshed.anchor.last_hash == hash_string("Duration: 5 days\n")
    assert refreshed.anchor.last_known_index == 6


def test_refresh_never_overwrites_hand_edits() -> None:
    inserted = _inserted("Intro\n")
    start = inserted.anchor.last_known_index
    for offset in range(len(inserted.anchor.linked_text)):
        position = start + offset
        edited = f"{inserted.next_text[:position]}#{inserted.next_text[position + 1:]}"
        refreshed = refresh_anchored_block(edited, inserted.anchor, "Replacement")
        assert refreshed.anchor.detached is True
        assert refreshed.updated is False
        assert refreshed.next_text == edited
        assert refreshed.status in {"detached", "missing"}


def test_refresh_reports_edited_multiline_block_as_detached() -> None:
    inserted = _inserted("Intro\n")
    edited = inserted.next_text.replace("Dysuria: true", "Dysuria: yes, worse at night")
    refreshed = refresh_anchored_block(edited, inserted.anchor, "Replacement")
    assert refreshed.status == "detached"
    assert refreshed.anchor.detached is True


def test_refresh_reports_deleted_block_as_missing() -> None:
    inserted = _inserted("Intro\n")
    refreshed = refresh_anchored_block("Intro\n", inserted.anchor, "Replacement")
    assert refreshed.status == "missing"
    assert refreshed.anchor.detached is True
    assert refreshed.next_text == "Intro\n"


def test_refresh_leaves_detached_anchor_alone() -> None:
    inserted = _inserted()
    detached = inserted.anchor.model_copy(update={"detached": True})
    refreshed = refresh_anchored_block(inserted.next_text, detached, "Replacement")
    assert refreshed.status == "detached"
    assert refreshed.anchor is detached
    assert refreshed.next_text == inserted.next_text


@pytest.mark.parametrize("text,cursor", [("ab", 1), ("", 0), ("Line one\nLine two\n", 9)])
def test_insert_then_remove_restores_buffer(text: str, cursor: int) -> None:
    inserted = insert_anchored_at_cursor(text, "plan", "Plan: fluids", cursor, cursor)
    assert remove_anchored_block(inserted.next_text, inserted.anchor) == text


def test_remove_collapses_blank_lines_and_ignores_missing_block() -> None:
    appended = append_anchored("A", "plan", "Block")
    text = appended.next_text + "\nB"
    assert text == "A\n\nBlock\n\nB"
    assert remove_anchored_block(text, appended.anchor) == "A\n\nB"
    assert remove_anchored_block("nothing here", appended.anchor) == "nothing here"


def test_derive_link_state_vocabulary() -> None:
    inserted = _inserted("Intro\n")
    assert derive_link_state(inserted.next_text, None) == "not_linked"
    assert derive_link_state(inserted.next_text, inserted.anchor) == "linked_clean"

    edited = inserted.next_text.replace("Dysuria: true", "Dysuria: no")
    assert derive_link_state(edited, inserted.anchor) == "linked_modified"
    assert locate_edited_block(edited, inserted.anchor) is not None

    assert derive_link_state("Intro\n", inserted.anchor) == "linked_missing"

    flagged = inserted.anchor.model_copy(update={"detached": True})
    assert derive_link_state(inserted.next_text, flagged) == "linked_modified"


def test_single_line_block_cannot_be_located_after_edit() -> None:
    inserted = _inserted("Intro\n", content="Plan: rest")
    edited = inserted.next_text.replace("rest", "fluids")
    assert locate_edited_block(edited, inserted.anchor) is None
    assert derive_link_state(edited, inserted.anchor) == "linked_missing"


def test_detached_ids_and_recompute_reattach() -> None:
    history = _inserted("Intro\n")
    plan = append_anchored(history.next_text, "plan", "Plan: rest")
    anchors = {"history": history.anchor, "plan": plan.anchor}

    edited = plan.next_text.replace("Plan: rest", "Plan: bed rest")
    assert get_detached_anchor_ids(edited, anchors) == ["plan"]

    recomputed = recompute_anchor_detach_state(edited, anchors)
    assert recomputed["plan"].detached is True
    assert recomputed["history"].detached is False

    restored = recompute_anchor_detach_state(plan.next_text, recomputed)
    assert restored["plan"].detached is False
    assert restored["plan"].last_known_index == plan.anchor.last_known_index
    assert get_detached_anchor_ids(plan.next_text, restored) == []


def test_refresh_with_blank_content_keeps_block_and_anchor() -> None:
    inserted = _inserted("Intro\n")
    refreshed = refresh_anchored_block(inserted.next_text, inserted.anchor, "  \n")
    assert refreshed.updated is False
    assert refreshed.status == "unchanged"
    assert refreshed.next_text == inserted.next_text
    assert refreshed.anchor == inserted.anchor


def test_whitespace_only_anchor_never_matches() -> None:
    blank = _inserted("Intro\n").anchor.model_copy(update={"linked_text": "\n", "last_hash": hash_string("\n")})
    assert find_anchor_match("Completely\nnew note\ntext", blank) is None
    assert derive_link_state("Completely\nnew note\ntext", blank) == "linked_missing"
