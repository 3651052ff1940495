"""Field validators and the structured validation error collection."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable

from .enums import PRIORITY_HIGH, PRIORITY_LOW, VALID_STATUSES, VALID_TYPES
from .models import DEFAULT_MAX_POINTS, Task

MAX_TITLE_LENGTH = 200

CODE_REQUIRED = "required"
CODE_TOO_LONG = "too_long"
CODE_TOO_SHORT = "too_short"
CODE_OUT_OF_RANGE = "out_of_range"
CODE_INVALID_ENUM = "invalid_enum"
CODE_INVALID_FORMAT = "invalid_format"

ERROR_CODES = (
    CODE_REQUIRED,
    CODE_TOO_LONG,
    CODE_TOO_SHORT,
    CODE_OUT_OF_RANGE,
    CODE_INVALID_ENUM,
    CODE_INVALID_FORMAT,
)


@dataclass(frozen=True, slots=True)
class ValidationError:
    field: str
    value: Any
    code: str
    message: str

    def __str__(self) -> str:
        return f"{self.field}: {self.message}"


class ValidationErrors(list):
    """Ordered collection of ValidationError entries."""

    def has_errors(self) -> bool:
        return len(self) > 0

    def by_field(self, name: str) -> list[ValidationError]:
        return [error for error in self if error.field == name]

    def has_field(self, name: str) -> bool:
        return any(error.field == name for error in self)

    def __str__(self) -> str:
        if not self:
            return "no validation errors"
        return "; ".join(str(error) for error in self)


def is_valid_priority(value: int) -> bool:
    return PRIORITY_HIGH <= value <= PRIORITY_LOW


def is_valid_points(value: int, max_points: int = DEFAULT_MAX_POINTS) -> bool:
    return 0 <= value <= max_points


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def validate_title(task: Task, max_points: int = DEFAULT_MAX_POINTS) -> ValidationError | None:
    if not isinstance(task.title, str) or not task.title.strip():
        return ValidationError("title", task.title, CODE_REQUIRED, "title is required")
    return None


def validate_status(task: Task, max_points: int = DEFAULT_MAX_POINTS) -> ValidationError | None:
    if task.status in VALID_STATUSES:
        return None
    return ValidationError(
        "status", task.status, CODE_INVALID_ENUM, f"invalid status value {task.status!r}"
    )


def validate_type(task: Task, max_points: int = DEFAULT_MAX_POINTS) -> ValidationError | None:
    if task.type in VALID_TYPES:
        return None
    return ValidationError("type", task.type, CODE_INVALID_ENUM, f"invalid type value {task.type!r}")


def validate_priority(task: Task, max_points: int = DEFAULT_MAX_POINTS) -> ValidationError | None:
    if _is_int(task.priority) and is_valid_priority(task.priority):
        return None
    return ValidationError(
        "priority",
        task.priority,
        CODE_OUT_OF_RANGE,
        f"priority must be between {PRIORITY_HIGH} and {PRIORITY_LOW}",
    )


def validate_points(task: Task, max_points: int = DEFAULT_MAX_POINTS) -> ValidationError | None:
    if _is_int(task.points) and is_valid_points(task.points, max_points):
        return None
    return ValidationError(
        "points",
        task.points,
        CODE_OUT_OF_RANGE,
        f"points must be between 0 and {max_points}",
    )


def validate_id(task: Task, max_points: int = DEFAULT_MAX_POINTS) -> ValidationError | None:
    if not isinstance(task.id, str) or not task.id.strip():
        return ValidationError("id", task.id, CODE_REQUIRED, "id is required")
    if "/" in task.id or "\\" in task.id or task.id.strip() != task.id:
        return ValidationError("id", task.id, CODE_INVALID_FORMAT, "id must be a plain file-safe token")
    return None


def validate_title_length(task: Task, max_points: int = DEFAULT_MAX_POINTS) -> ValidationError | None:
    if isinstance(task.title, str) and len(task.title) > MAX_TITLE_LENGTH:
        return ValidationError(
            "title",
            task.title,
            CODE_TOO_LONG,
            f"title must be at most {MAX_TITLE_LENGTH} characters",
        )
    return None


Validator = Callable[[Task, int], "ValidationError | None"]

QUICK_VALIDATORS: dict[str, Validator] = {
    "title": validate_title,
    "status": validate_status,
    "type": validate_type,
    "priority": validate_priority,
    "points": validate_points,
}


def _run(validators: list[Validator], task: Task, max_points: int) -> ValidationErrors:
    errors = ValidationErrors()
    for validator in validators:
        error = validator(task, max_points)
        if error is not None:
            errors.append(error)
    return errors


def quick_validate(task: Task, max_points: int = DEFAULT_MAX_POINTS) -> ValidationErrors:
    """Check the fields every stored task must satisfy."""
    return _run(list(QUICK_VALIDATORS.values()), task, max_points)


def validate(task: Task, max_points: int = DEFAULT_MAX_POINTS) -> ValidationErrors:
    """Full validation used before a task is written for the first time."""
    validators = [validate_id, *QUICK_VALIDATORS.values(), validate_title_length]
    return _run(validators, task, max_points)


def is_valid(task: Task, max_points: int = DEFAULT_MAX_POINTS) -> bool:
    return not quick_validate(task, max_points).has_errors()


def validate_field(task: Task, name: str, max_points: int = DEFAULT_MAX_POINTS) -> ValidationError | None:
    validator = QUICK_VALIDATORS.get(name)
    if validator is None:
        return None
    return validator(task, max_points)
