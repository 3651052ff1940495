"""Core task models and the error taxonomy."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
import datetime as dt
from typing import TYPE_CHECKING, Any

from .enums import STATUS_BACKLOG, TYPE_STORY

if TYPE_CHECKING:
    from .validation import ValidationErrors

DEFAULT_PRIORITY = 3
DEFAULT_POINTS = 1
DEFAULT_MAX_POINTS = 10
TASK_ID_PREFIX = "TIKI"


def utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


@dataclass(slots=True)
class Comment:
    id: str
    author: str
    text: str
    created_at: dt.datetime


@dataclass(slots=True)
class Task:
    id: str
    title: str
    description: str = ""
    type: str = TYPE_STORY
    status: str = STATUS_BACKLOG
    tags: list[str] = field(default_factory=list)
    assignee: str = ""
    priority: int = DEFAULT_PRIORITY
    points: int = DEFAULT_POINTS
    comments: list[Comment] = field(default_factory=list)
    created_by: str = ""
    created_at: dt.datetime = field(default_factory=utcnow)
    updated_at: dt.datetime = field(default_factory=utcnow)
    loaded_mtime: int | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def filename(self) -> str:
        return f"{self.id.lower()}.md"

    def clone(self) -> Task:
        """Return a copy that shares no mutable state with this task."""
        return Task(
            id=self.id,
            title=self.title,
            description=self.description,
            type=self.type,
            status=self.status,
            tags=list(self.tags),
            assignee=self.assignee,
            priority=self.priority,
            points=self.points,
            comments=[
                Comment(id=c.id, author=c.author, text=c.text, created_at=c.created_at)
                for c in self.comments
            ],
            created_by=self.created_by,
            created_at=self.created_at,
            updated_at=self.updated_at,
            loaded_mtime=self.loaded_mtime,
            extra=copy.deepcopy(self.extra),
        )


@dataclass(slots=True)
class SearchResult:
    task: Task
    score: float


@dataclass(slots=True)
class BurndownPoint:
    date: dt.date
    remaining: int


@dataclass(slots=True)
class AuthorInfo:
    name: str
    email: str
    date: dt.datetime
    commit_hash: str
    message: str


@dataclass(slots=True)
class FileVersion:
    hash: str
    author: str
    email: str
    when: dt.datetime
    content: str


class TaskError(Exception):
    """Base error for task operations."""


class TaskValidationError(TaskError):
    """Raised when a task fails validation."""

    def __init__(self, message: str, errors: ValidationErrors | None = None) -> None:
        super().__init__(message)
        if errors is None:
            from .validation import ValidationErrors

            errors = ValidationErrors()
        self.errors = errors


class TaskNotFoundError(TaskError):
    """Raised when a task cannot be located."""


class TaskConflictError(TaskError):
    """Raised for duplicate IDs and similar collisions."""


class FilterParseError(TaskError):
    """Raised when a filter expression cannot be parsed."""


class SortParseError(TaskError):
    """Raised when a sort expression cannot be parsed."""


class ActionParseError(TaskError):
    """Raised when an action expression cannot be parsed or applied."""


class PluginConfigError(TaskError):
    """Raised for invalid view definitions in workflow files."""


class GitError(TaskError):
    """Raised when a git command fails."""


class ConfigError(TaskError):
    """Raised for fatal startup configuration problems."""
