from __future__ import annotations

import io
from pathlib import Path

import pytest

from tiki.models import TaskValidationError
from tiki.pipe import create_task_from_reader, has_positional_args
from tiki.store import TaskStore


@pytest.mark.parametrize(
    ("argv", "expected"),
    [
        ([], False),
        (["--log-level", "debug"], False),
        (["--log-level=debug"], False),
        (["--help"], False),
        (["list"], True),
        (["--log-level", "debug", "list"], True),
        (["-"], True),
        (["--"], True),
    ],
)
def test_has_positional_args(argv: list[str], expected: bool) -> None:
    assert has_positional_args(argv) is expected


def test_first_line_is_title_rest_is_description(task_dir: Path, fake_git) -> None:
    store = TaskStore(task_dir, git=fake_git)
    stream = io.StringIO("\n\n  Fix the flaky test  \nIt fails on CI.\n\nOnly on Tuesdays.\n")
    task_id = create_task_from_reader(stream, store)

    task = store.get_task(task_id)
    assert task.title == "Fix the flaky test"
    assert task.description == "It fails on CI.\n\nOnly on Tuesdays."
    assert task.created_by == "Alice <alice@example.com>"
    assert (task_dir / task.filename).exists()


def test_title_only_input(task_dir: Path) -> None:
    store = TaskStore(task_dir)
    task_id = create_task_from_reader(io.StringIO("Just a title"), store)
    assert store.get_task(task_id).description == ""


@pytest.mark.parametrize("text", ["", "   \n\t\n"])
def test_blank_input_is_rejected(task_dir: Path, text: str) -> None:
    store = TaskStore(task_dir)
    with pytest.raises(TaskValidationError, match="title is required"):
        create_task_from_reader(io.StringIO(text), store)
    assert store.get_all_tasks() == []
