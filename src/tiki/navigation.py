"""View stack, typed view params and task edit field order."""

from __future__ import annotations

from dataclasses import dataclass, field
import threading
from typing import Any

from .models import Task

VIEW_BOARD = "board"
VIEW_TASK_DETAIL = "task_detail"
VIEW_TASK_EDIT = "task_edit"
PLUGIN_VIEW_PREFIX = "plugin:"

PARAM_TASK_ID = "taskID"
PARAM_DRAFT_TASK = "draftTask"
PARAM_FOCUS = "focus"

FIELD_TITLE = "title"
FIELD_STATUS = "status"
FIELD_TYPE = "type"
FIELD_PRIORITY = "priority"
FIELD_ASSIGNEE = "assignee"
FIELD_POINTS = "points"
FIELD_DESCRIPTION = "description"

EDIT_FIELD_ORDER = (
    FIELD_TITLE,
    FIELD_STATUS,
    FIELD_TYPE,
    FIELD_PRIORITY,
    FIELD_ASSIGNEE,
    FIELD_POINTS,
    FIELD_DESCRIPTION,
)
# status and type are changed through lane moves, not in the edit form
EDITABLE_FIELDS = (FIELD_TITLE, FIELD_PRIORITY, FIELD_ASSIGNEE, FIELD_POINTS, FIELD_DESCRIPTION)
FIELD_LABELS = {
    FIELD_TITLE: "Title",
    FIELD_STATUS: "Status",
    FIELD_TYPE: "Type",
    FIELD_PRIORITY: "Priority",
    FIELD_ASSIGNEE: "Assignee",
    FIELD_POINTS: "Story Points",
    FIELD_DESCRIPTION: "Description",
}


def plugin_view_id(name: str) -> str:
    return f"{PLUGIN_VIEW_PREFIX}{name}"


def plugin_name_from_view_id(view_id: str) -> str | None:
    if view_id.startswith(PLUGIN_VIEW_PREFIX):
        return view_id[len(PLUGIN_VIEW_PREFIX) :]
    return None


@dataclass(frozen=True, slots=True)
class ViewEntry:
    view_id: str
    params: dict[str, Any] = field(default_factory=dict)


class ViewStack:
    """Navigation history; the root entry is never popped."""

    def __init__(self) -> None:
        self._entries: list[ViewEntry] = []
        self._lock = threading.RLock()

    def push(self, view_id: str, params: dict[str, Any] | None = None) -> None:
        with self._lock:
            self._entries.append(ViewEntry(view_id, dict(params or {})))

    def pop(self) -> ViewEntry | None:
        with self._lock:
            if len(self._entries) <= 1:
                return None
            return self._entries.pop()

    def replace_top(self, view_id: str, params: dict[str, Any] | None = None) -> bool:
        with self._lock:
            if not self._entries:
                return False
            self._entries[-1] = ViewEntry(view_id, dict(params or {}))
            return True

    def current_view(self) -> ViewEntry | None:
        with self._lock:
            return self._entries[-1] if self._entries else None

    def current_view_id(self) -> str:
        entry = self.current_view()
        return entry.view_id if entry is not None else ""

    def previous_view(self) -> ViewEntry | None:
        with self._lock:
            return self._entries[-2] if len(self._entries) >= 2 else None

    def depth(self) -> int:
        with self._lock:
            return len(self._entries)

    def can_go_back(self) -> bool:
        return self.depth() > 1

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


@dataclass(slots=True)
class TaskDetailParams:
    task_id: str = ""


@dataclass(slots=True)
class TaskEditParams:
    task_id: str = ""
    draft: Task | None = None
    focus: str = ""


def encode_task_detail_params(params: TaskDetailParams) -> dict[str, Any] | None:
    if not params.task_id:
        return None
    return {PARAM_TASK_ID: params.task_id}


def decode_task_detail_params(params: dict[str, Any] | None) -> TaskDetailParams:
    decoded = TaskDetailParams()
    if not params:
        return decoded
    task_id = params.get(PARAM_TASK_ID)
    if isinstance(task_id, str):
        decoded.task_id = task_id
    return decoded


def encode_task_edit_params(params: TaskEditParams) -> dict[str, Any] | None:
    task_id = params.task_id
    if not task_id and params.draft is not None:
        task_id = params.draft.id
    if not task_id:
        return None
    encoded: dict[str, Any] = {PARAM_TASK_ID: task_id}
    if params.draft is not None:
        encoded[PARAM_DRAFT_TASK] = params.draft
    if params.focus:
        encoded[PARAM_FOCUS] = params.focus
    return encoded


def decode_task_edit_params(params: dict[str, Any] | None) -> TaskEditParams:
    decoded = TaskEditParams()
    if not params:
        return decoded
    task_id = params.get(PARAM_TASK_ID)
    if isinstance(task_id, str):
        decoded.task_id = task_id
    draft = params.get(PARAM_DRAFT_TASK)
    if isinstance(draft, Task):
        decoded.draft = draft
        if not decoded.task_id:
            decoded.task_id = draft.id
    focus = params.get(PARAM_FOCUS)
    if isinstance(focus, str):
        decoded.focus = focus
    return decoded


def next_field(current: str) -> str:
    if current not in EDIT_FIELD_ORDER:
        return FIELD_TITLE
    index = EDIT_FIELD_ORDER.index(current)
    return EDIT_FIELD_ORDER[min(index + 1, len(EDIT_FIELD_ORDER) - 1)]


def prev_field(current: str) -> str:
    if current not in EDIT_FIELD_ORDER:
        return FIELD_TITLE
    index = EDIT_FIELD_ORDER.index(current)
    return EDIT_FIELD_ORDER[max(index - 1, 0)]


def is_editable_field(name: str) -> bool:
    return name in EDITABLE_FIELDS


def field_label(name: str) -> str:
    return FIELD_LABELS.get(name, name)
