"""Lane actions: comma separated field updates such as ``status=done, tags+=[shipped]``."""

from __future__ import annotations

from dataclasses import dataclass, field

from ..enums import map_status, normalize_type, parse_status, parse_type
from ..models import DEFAULT_MAX_POINTS, ActionParseError, Task
from ..validation import is_valid_points, is_valid_priority, quick_validate

FIELD_STATUS = "status"
FIELD_TYPE = "type"
FIELD_PRIORITY = "priority"
FIELD_ASSIGNEE = "assignee"
FIELD_POINTS = "points"
FIELD_TAGS = "tags"

ACTION_FIELDS = (FIELD_STATUS, FIELD_TYPE, FIELD_PRIORITY, FIELD_ASSIGNEE, FIELD_POINTS, FIELD_TAGS)

OP_ASSIGN = "="
OP_ADD = "+="
OP_REMOVE = "-="

CURRENT_USER = "CURRENT_USER"


@dataclass(frozen=True, slots=True)
class ActionOp:
    field: str
    operator: str
    str_value: str = ""
    int_value: int = 0
    tags: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class LaneAction:
    ops: tuple[ActionOp, ...] = field(default_factory=tuple)

    def is_empty(self) -> bool:
        return not self.ops


def split_top_level_commas(text: str) -> list[str]:
    """Split on commas that sit outside quotes and brackets."""
    parts: list[str] = []
    start = 0
    in_single = False
    in_double = False
    depth = 0
    for index, ch in enumerate(text):
        if ch == "'" and not in_double:
            in_single = not in_single
        elif ch == '"' and not in_single:
            in_double = not in_double
        elif ch == "[" and not (in_single or in_double):
            depth += 1
        elif ch == "]" and not (in_single or in_double):
            if depth == 0:
                raise ActionParseError(f"unexpected ']' in {text!r}")
            depth -= 1
        elif ch == "," and not (in_single or in_double) and depth == 0:
            parts.append(text[start:index].strip())
            start = index + 1
    if in_single or in_double or depth != 0:
        raise ActionParseError(f"unterminated quotes or brackets in {text!r}")
    parts.append(text[start:].strip())
    return parts


def _find_operator(segment: str) -> tuple[int, str]:
    for op in (OP_ADD, OP_REMOVE, OP_ASSIGN):
        index = segment.find(op)
        if index != -1:
            return index, op
    return -1, ""


def _parse_segment(segment: str) -> tuple[str, str, str]:
    index, op = _find_operator(segment)
    if index == -1:
        raise ActionParseError(f"action segment missing operator: {segment!r}")
    name = segment[:index].strip()
    value = segment[index + len(op) :].strip()
    if not name or not value:
        raise ActionParseError(f"invalid action segment: {segment!r}")
    if name.lower() not in ACTION_FIELDS:
        raise ActionParseError(f"unknown action field {name!r}")
    return name.lower(), op, value


def _string_value(raw: str) -> str:
    value = raw.strip()
    if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
        value = value[1:-1]
    value = value.strip()
    if not value:
        raise ActionParseError("string value is empty")
    return value


def _int_value(raw: str) -> int:
    value = raw.strip()
    try:
        return int(value)
    except ValueError as exc:
        raise ActionParseError(f"invalid integer value {value!r}") from exc


def _tags_value(raw: str) -> tuple[str, ...]:
    value = raw.strip()
    if not (value.startswith("[") and value.endswith("]")):
        raise ActionParseError(f"tags value must be in brackets, got {value!r}")
    inner = value[1:-1].strip()
    if not inner:
        raise ActionParseError("tags list is empty")
    return tuple(_string_value(part) for part in split_top_level_commas(inner))


def _parse_op(name: str, op: str, value: str, max_points: int) -> ActionOp:
    if name == FIELD_TAGS:
        if op == OP_ASSIGN:
            raise ActionParseError("tags action only supports += or -=")
        return ActionOp(name, op, tags=_tags_value(value))
    if op != OP_ASSIGN:
        raise ActionParseError(f"{name} action only supports =")
    if name in (FIELD_PRIORITY, FIELD_POINTS):
        number = _int_value(value)
        if name == FIELD_PRIORITY and not is_valid_priority(number):
            raise ActionParseError(f"priority value out of range: {number}")
        if name == FIELD_POINTS and not is_valid_points(number, max_points):
            raise ActionParseError(f"points value out of range: {number}")
        return ActionOp(name, op, int_value=number)
    text = _string_value(value)
    if name == FIELD_STATUS and parse_status(text) is None:
        raise ActionParseError(f"invalid status value {text!r}")
    if name == FIELD_TYPE and parse_type(text) is None:
        raise ActionParseError(f"invalid type value {text!r}")
    return ActionOp(name, op, str_value=text)


def parse_lane_action(text: str | None, max_points: int = DEFAULT_MAX_POINTS) -> LaneAction:
    if text is None or not text.strip():
        return LaneAction()
    ops: list[ActionOp] = []
    for segment in split_top_level_commas(text.strip()):
        if not segment:
            raise ActionParseError("empty action segment")
        name, op, value = _parse_segment(segment)
        ops.append(_parse_op(name, op, value, max_points))
    return LaneAction(tuple(ops))


def _add_tags(current: list[str], tags: tuple[str, ...]) -> list[str]:
    result = list(current)
    for tag in tags:
        if tag not in result:
            result.append(tag)
    return result


def _remove_tags(current: list[str], tags: tuple[str, ...]) -> list[str]:
    return [tag for tag in current if tag not in tags]


def apply_lane_action(
    task: Task,
    action: LaneAction,
    current_user: str = "",
    max_points: int = DEFAULT_MAX_POINTS,
) -> Task:
    """Apply action to a clone of task and return the clone.

    The source task is never mutated. Raises ActionParseError when
    CURRENT_USER is needed but unknown, or when the result fails validation.
    """
    clone = task.clone()
    for op in action.ops:
        if op.field == FIELD_STATUS:
            clone.status = map_status(op.str_value)
        elif op.field == FIELD_TYPE:
            clone.type = normalize_type(op.str_value)
        elif op.field == FIELD_PRIORITY:
            clone.priority = op.int_value
        elif op.field == FIELD_POINTS:
            clone.points = op.int_value
        elif op.field == FIELD_ASSIGNEE:
            assignee = op.str_value
            if assignee.strip().upper() == CURRENT_USER:
                if not current_user.strip():
                    raise ActionParseError("current user is not available for assignee")
                assignee = current_user
            clone.assignee = assignee
        elif op.field == FIELD_TAGS:
            if op.operator == OP_ADD:
                clone.tags = _add_tags(clone.tags, op.tags)
            elif op.operator == OP_REMOVE:
                clone.tags = _remove_tags(clone.tags, op.tags)
        else:
            raise ActionParseError(f"unsupported action field {op.field!r}")

    errors = quick_validate(clone, max_points)
    if errors.has_errors():
        raise ActionParseError(f"action resulted in invalid task: {errors}")
    return clone
