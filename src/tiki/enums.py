"""Normalizers for enumerated task fields: status, type, priority and tags."""

from __future__ import annotations

import logging
from typing import Any

logger = logging.getLogger("tiki.enums")

STATUS_BACKLOG = "backlog"
STATUS_TODO = "todo"
STATUS_READY = "ready"
STATUS_IN_PROGRESS = "in_progress"
STATUS_WAITING = "waiting"
STATUS_BLOCKED = "blocked"
STATUS_REVIEW = "review"
STATUS_DONE = "done"

VALID_STATUSES = (
    STATUS_BACKLOG,
    STATUS_TODO,
    STATUS_READY,
    STATUS_IN_PROGRESS,
    STATUS_WAITING,
    STATUS_BLOCKED,
    STATUS_REVIEW,
    STATUS_DONE,
)

STATUS_ALIASES = {
    "": STATUS_BACKLOG,
    "backlog": STATUS_BACKLOG,
    "todo": STATUS_TODO,
    "to_do": STATUS_TODO,
    "open": STATUS_TODO,
    "ready": STATUS_READY,
    "in_progress": STATUS_IN_PROGRESS,
    "inprogress": STATUS_IN_PROGRESS,
    "in_process": STATUS_IN_PROGRESS,
    "inprocess": STATUS_IN_PROGRESS,
    "waiting": STATUS_WAITING,
    "on_hold": STATUS_WAITING,
    "hold": STATUS_WAITING,
    "blocked": STATUS_BLOCKED,
    "blocker": STATUS_BLOCKED,
    "review": STATUS_REVIEW,
    "in_review": STATUS_REVIEW,
    "inreview": STATUS_REVIEW,
    "done": STATUS_DONE,
    "closed": STATUS_DONE,
    "completed": STATUS_DONE,
}

STATUS_LABELS = {
    STATUS_BACKLOG: "Backlog",
    STATUS_TODO: "To Do",
    STATUS_READY: "Ready",
    STATUS_IN_PROGRESS: "In Progress",
    STATUS_WAITING: "Waiting",
    STATUS_BLOCKED: "Blocked",
    STATUS_REVIEW: "Review",
    STATUS_DONE: "Done",
}

STATUS_EMOJI = {
    STATUS_BACKLOG: "📥",
    STATUS_TODO: "📋",
    STATUS_READY: "📋",
    STATUS_IN_PROGRESS: "⚙️",
    STATUS_WAITING: "⏳",
    STATUS_BLOCKED: "⛔",
    STATUS_REVIEW: "👀",
    STATUS_DONE: "✅",
}

# Extended statuses share a board column with a canonical one.
STATUS_COLUMNS = {
    STATUS_READY: STATUS_TODO,
    STATUS_WAITING: STATUS_REVIEW,
    STATUS_BLOCKED: STATUS_IN_PROGRESS,
}

TYPE_STORY = "story"
TYPE_BUG = "bug"
TYPE_SPIKE = "spike"
TYPE_EPIC = "epic"

VALID_TYPES = (TYPE_STORY, TYPE_BUG, TYPE_SPIKE, TYPE_EPIC)

TYPE_ALIASES = {
    "story": TYPE_STORY,
    "feature": TYPE_STORY,
    "task": TYPE_STORY,
    "bug": TYPE_BUG,
    "spike": TYPE_SPIKE,
    "epic": TYPE_EPIC,
}

TYPE_LABELS = {
    TYPE_STORY: "Story",
    TYPE_BUG: "Bug",
    TYPE_SPIKE: "Spike",
    TYPE_EPIC: "Epic",
}

TYPE_EMOJI = {
    TYPE_STORY: "🌀",
    TYPE_BUG: "💥",
    TYPE_SPIKE: "🔍",
    TYPE_EPIC: "🗂️",
}

PRIORITY_HIGH = 1
PRIORITY_MEDIUM_HIGH = 2
PRIORITY_MEDIUM = 3
PRIORITY_MEDIUM_LOW = 4
PRIORITY_LOW = 5

PRIORITY_WORDS = {
    "high": PRIORITY_HIGH,
    "medium-high": PRIORITY_MEDIUM_HIGH,
    "high-medium": PRIORITY_MEDIUM_HIGH,
    "medium": PRIORITY_MEDIUM,
    "medium-low": PRIORITY_MEDIUM_LOW,
    "low-medium": PRIORITY_MEDIUM_LOW,
    "low": PRIORITY_LOW,
}

PRIORITY_LABELS = {
    PRIORITY_HIGH: "🔴",
    PRIORITY_MEDIUM_HIGH: "🟠",
    PRIORITY_MEDIUM: "🟡",
    PRIORITY_MEDIUM_LOW: "🔵",
    PRIORITY_LOW: "🟢",
}


def _status_key(value: str) -> str:
    return value.strip().lower().replace("-", "_").replace(" ", "_")


def parse_status(value: Any) -> str | None:
    """Strictly parse a status; return None for unrecognized input."""
    if not isinstance(value, str):
        return None
    return STATUS_ALIASES.get(_status_key(value))


def normalize_status(value: Any) -> str:
    """Parse a status, falling back to backlog for anything unrecognized."""
    parsed = parse_status(value)
    if parsed is None:
        return STATUS_BACKLOG
    return parsed


def map_status(value: Any) -> str:
    return normalize_status(value)


def status_label(status: str) -> str:
    return STATUS_LABELS.get(status, status)


def status_emoji(status: str) -> str:
    return STATUS_EMOJI.get(status, "")


def status_display(status: str) -> str:
    emoji = status_emoji(status)
    label = status_label(status)
    return f"{label} {emoji}" if emoji else label


def status_column(status: str) -> str:
    return STATUS_COLUMNS.get(status, status)


def _type_key(value: str) -> str:
    return value.strip().lower().replace("_", "").replace("-", "").replace(" ", "")


def parse_type(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    return TYPE_ALIASES.get(_type_key(value))


def normalize_type(value: Any) -> str:
    parsed = parse_type(value)
    if parsed is None:
        return TYPE_STORY
    return parsed


def type_label(task_type: str) -> str:
    return TYPE_LABELS.get(task_type, task_type)


def type_emoji(task_type: str) -> str:
    return TYPE_EMOJI.get(task_type, "")


def type_display(task_type: str) -> str:
    emoji = type_emoji(task_type)
    label = type_label(task_type)
    return f"{label} {emoji}" if emoji else label


def clamp_priority(value: int) -> int:
    return max(PRIORITY_HIGH, min(PRIORITY_LOW, value))


def _priority_key(value: str) -> str:
    return value.strip().lower().replace("_", "-").replace(" ", "-")


def normalize_priority(value: str) -> int:
    """Map a priority word or number to 1..5; return -1 when unrecognized."""
    key = _priority_key(value)
    if not key:
        return -1
    if key in PRIORITY_WORDS:
        return PRIORITY_WORDS[key]
    try:
        return clamp_priority(int(value.strip()))
    except ValueError:
        return -1


def decode_priority(raw: Any) -> int:
    """Decode a front-matter priority value.

    Integers clamp to the valid range and words map through PRIORITY_WORDS.
    Anything else decodes to medium with a warning; this never raises.
    """
    if isinstance(raw, bool) or raw is None or not isinstance(raw, (int, str)):
        logger.warning("invalid priority field %r, defaulting to medium", raw)
        return PRIORITY_MEDIUM
    if isinstance(raw, int):
        return clamp_priority(raw)
    value = normalize_priority(raw)
    if value == -1:
        logger.warning("invalid priority field %r, defaulting to medium", raw)
        return PRIORITY_MEDIUM
    return value


def priority_label(priority: int) -> str:
    return PRIORITY_LABELS[clamp_priority(priority)]


def normalize_tags(values: list[str]) -> list[str]:
    tags: list[str] = []
    for value in values:
        tag = value.strip()
        if tag and tag not in tags:
            tags.append(tag)
    return tags


def decode_tags(raw: Any) -> list[str]:
    """Decode a front-matter tags value leniently; this never raises."""
    if raw is None:
        return []
    if not isinstance(raw, list):
        logger.warning("invalid tags field %r, expected a list; using no tags", raw)
        return []
    values: list[str] = []
    for item in raw:
        if item is None or isinstance(item, (dict, list)):
            logger.warning("skipping invalid tag %r", item)
            continue
        values.append(item if isinstance(item, str) else str(item))
    return normalize_tags(values)
