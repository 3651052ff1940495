"""Create a task from piped input."""

from __future__ import annotations

import logging
from typing import TextIO

from .bootstrap import LOG_LEVEL_FLAG
from .models import TaskValidationError
from .store import TaskStore

logger = logging.getLogger("tiki.pipe")


def has_positional_args(argv: list[str]) -> bool:
    """Whether argv holds anything besides flags and the value of ``--log-level``."""
    skip_next = False
    for arg in argv:
        if skip_next:
            skip_next = False
            continue
        if arg == LOG_LEVEL_FLAG:
            skip_next = True
            continue
        if arg in {"-", "--"}:
            return True
        if arg.startswith("-"):
            continue
        return True
    return False


def create_task_from_reader(stream: TextIO, store: TaskStore) -> str:
    """Read a title line and optional description, create the task, return its id."""
    text = stream.read()
    if not text.strip():
        raise TaskValidationError("empty input: title is required")

    lines = text.splitlines()
    title = ""
    rest_start = len(lines)
    for index, line in enumerate(lines):
        if line.strip():
            title = line.strip()
            rest_start = index + 1
            break
    description = "\n".join(lines[rest_start:]).strip()

    task = store.new_task_template()
    task.title = title
    task.description = description
    created = store.create_task(task)
    logger.info("created task %s from stdin", created.id)
    return created.id
