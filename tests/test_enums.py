from __future__ import annotations

import pytest

from tiki import enums


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("todo", "todo"),
        ("To Do", "todo"),
        ("in-progress", "in_progress"),
        ("In Progress", "in_progress"),
        ("closed", "done"),
        ("on hold", "waiting"),
        ("", "backlog"),
    ],
)
def test_parse_status_aliases(raw: str, expected: str) -> None:
    assert enums.parse_status(raw) == expected


def test_parse_status_rejects_unknown_and_non_strings() -> None:
    assert enums.parse_status("someday") is None
    assert enums.parse_status(3) is None


def test_normalize_status_falls_back_to_backlog() -> None:
    assert enums.normalize_status("someday") == "backlog"
    assert enums.normalize_status(None) == "backlog"


def test_status_column_maps_extended_statuses() -> None:
    assert enums.status_column("ready") == "todo"
    assert enums.status_column("blocked") == "in_progress"
    assert enums.status_column("waiting") == "review"
    assert enums.status_column("done") == "done"


def test_type_aliases_and_default() -> None:
    assert enums.parse_type("feature") == "story"
    assert enums.parse_type("Bug") == "bug"
    assert enums.parse_type("chore") is None
    assert enums.normalize_type("chore") == "story"


def test_normalize_priority_words_numbers_and_unknown() -> None:
    assert enums.normalize_priority("high") == 1
    assert enums.normalize_priority("Medium High") == 2
    assert enums.normalize_priority("low") == 5
    assert enums.normalize_priority("9") == 5
    assert enums.normalize_priority("0") == 1
    assert enums.normalize_priority("urgent") == -1
    assert enums.normalize_priority("") == -1


def test_decode_priority_is_lenient() -> None:
    assert enums.decode_priority(2) == 2
    assert enums.decode_priority(42) == 5
    assert enums.decode_priority("low") == 5
    assert enums.decode_priority("whenever") == 3
    assert enums.decode_priority(True) == 3
    assert enums.decode_priority([1]) == 3


def test_decode_tags_dedupes_and_skips_garbage() -> None:
    assert enums.decode_tags(["a", " b ", "a", "", None, 7]) == ["a", "b", "7"]
    assert enums.decode_tags("frontend") == []
    assert enums.decode_tags(None) == []


def test_display_helpers() -> None:
    assert enums.status_label("in_progress") == "In Progress"
    assert enums.status_display("done").startswith("Done")
    assert enums.type_label("epic") == "Epic"
    assert enums.type_display("bug") == "Bug 💥"
    assert enums.priority_label(1) == "🔴"
