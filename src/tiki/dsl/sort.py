"""Sort expressions such as ``priority, createdAt DESC``."""

from __future__ import annotations

from dataclasses import dataclass
import functools
from typing import Any, Callable

from ..models import SortParseError, Task


@dataclass(frozen=True, slots=True)
class SortRule:
    field: str
    descending: bool = False


def _normalize_field(name: str) -> str:
    return name.lower().replace("_", "").replace("-", "").replace(" ", "")


def parse_sort(text: str | None) -> list[SortRule]:
    if text is None or not text.strip():
        return []
    rules: list[SortRule] = []
    for term in text.split(","):
        words = term.split()
        if not words:
            continue
        if len(words) > 2:
            raise SortParseError(f"invalid sort term {term.strip()!r}: expected '<field> [ASC|DESC]'")
        descending = False
        if len(words) == 2:
            direction = words[1].upper()
            if direction not in ("ASC", "DESC"):
                raise SortParseError(f"invalid sort direction {words[1]!r} in {term.strip()!r}")
            descending = direction == "DESC"
        rules.append(SortRule(_normalize_field(words[0]), descending))
    return rules


SORT_KEYS: dict[str, Callable[[Task], Any]] = {
    "assignee": lambda task: task.assignee.lower(),
    "points": lambda task: task.points,
    "priority": lambda task: task.priority,
    "createdat": lambda task: task.created_at,
    "updatedat": lambda task: task.updated_at,
    "status": lambda task: task.status.lower(),
    "type": lambda task: task.type.lower(),
    "title": lambda task: task.title.lower(),
    "id": lambda task: task.id.lower(),
}


def _compare(left: Task, right: Task, rules: list[SortRule]) -> int:
    for rule in rules:
        key = SORT_KEYS.get(rule.field)
        if key is None:
            continue
        a, b = key(left), key(right)
        if a == b:
            continue
        result = -1 if a < b else 1
        return -result if rule.descending else result
    return 0


def sort_tasks(tasks: list[Task], rules: list[SortRule]) -> list[Task]:
    """Return a new list ordered by rules; ties keep their input order."""
    if not rules:
        return list(tasks)
    return sorted(tasks, key=functools.cmp_to_key(lambda a, b: _compare(a, b, rules)))
