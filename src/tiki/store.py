"""In-memory task index backed by markdown files in the task directory."""

from __future__ import annotations

import datetime as dt
import logging
from pathlib import Path
import secrets
import string
import threading
from typing import Callable

import yaml

from . import storage
from .enums import STATUS_BACKLOG, STATUS_DONE, TYPE_STORY, normalize_status
from .git import GitOps
from .models import (
    DEFAULT_MAX_POINTS,
    DEFAULT_POINTS,
    DEFAULT_PRIORITY,
    TASK_ID_PREFIX,
    BurndownPoint,
    Comment,
    FileVersion,
    GitError,
    SearchResult,
    Task,
    TaskConflictError,
    TaskValidationError,
    utcnow,
)
from .validation import quick_validate, validate

logger = logging.getLogger("tiki.store")

ID_ALPHABET = string.ascii_uppercase + string.digits
ID_LENGTH = 6
ID_ATTEMPTS = 100
DEFAULT_BURNDOWN_DAYS = 14

Listener = Callable[[], None]


def format_author(name: str, email: str) -> str:
    if name and email:
        return f"{name} <{email}>"
    return name or email


def _random_id() -> str:
    suffix = "".join(secrets.choice(ID_ALPHABET) for _ in range(ID_LENGTH))
    return f"{TASK_ID_PREFIX}-{suffix}"


def _key(task_id: str) -> str:
    return task_id.strip().upper()


def _status_from_content(content: str) -> str | None:
    try:
        data, _ = storage.split_frontmatter(content)
    except (ValueError, yaml.YAMLError):
        return None
    raw = data.get("status")
    if raw is None:
        return None
    return normalize_status(raw)


class TaskStore:
    """Thread-safe index of tasks with change notification.

    Every successful mutation writes the file, updates the index and then
    notifies listeners exactly once, outside the index lock. Notification
    rounds never interleave.
    """

    def __init__(
        self,
        task_dir: Path,
        git: GitOps | None = None,
        max_points: int = DEFAULT_MAX_POINTS,
    ) -> None:
        self.task_dir = Path(task_dir)
        self.git = git
        self.max_points = max_points
        self._tasks: dict[str, Task] = {}
        self._listeners: dict[int, Listener] = {}
        self._next_listener_id = 1
        self._lock = threading.RLock()
        self._notify_lock = threading.RLock()
        if self.task_dir.is_dir():
            self.reload()

    # listeners

    def add_listener(self, listener: Listener) -> int:
        with self._lock:
            listener_id = self._next_listener_id
            self._next_listener_id += 1
            self._listeners[listener_id] = listener
            return listener_id

    def remove_listener(self, listener_id: int) -> None:
        with self._lock:
            self._listeners.pop(listener_id, None)

    def _notify(self) -> None:
        with self._notify_lock:
            with self._lock:
                listeners = list(self._listeners.values())
            for listener in listeners:
                try:
                    listener()
                except Exception:
                    logger.exception("task store listener failed")

    # git helpers

    def _stage(self, path: Path) -> None:
        if self.git is None:
            return
        try:
            self.git.add(path)
        except GitError as exc:
            logger.warning("failed to stage %s: %s", path, exc)

    def _unstage(self, path: Path) -> None:
        if self.git is None:
            return
        try:
            self.git.remove(path)
        except GitError as exc:
            logger.warning("failed to stage removal of %s: %s", path, exc)

    def get_current_user(self) -> tuple[str, str]:
        if self.git is None:
            raise GitError("git is not available")
        return self.git.current_user()

    def current_author(self) -> str:
        try:
            name, email = self.get_current_user()
        except GitError:
            return ""
        return format_author(name, email)

    # reads

    def path_for(self, task_id: str) -> Path:
        return storage.task_path(self.task_dir, task_id)

    def get_task(self, task_id: str) -> Task | None:
        with self._lock:
            task = self._tasks.get(_key(task_id))
            return task.clone() if task is not None else None

    def get_all_tasks(self) -> list[Task]:
        with self._lock:
            return [task.clone() for task in self._tasks.values()]

    def get_tasks_by_status(self, status: str) -> list[Task]:
        wanted = normalize_status(status)
        with self._lock:
            return [task.clone() for task in self._tasks.values() if task.status == wanted]

    def search(
        self,
        query: str,
        filter_fn: Callable[[Task], bool] | None = None,
    ) -> list[SearchResult]:
        """Rank tasks whose title contains query; prefix matches rank highest."""
        needle = query.strip().lower()
        if not needle:
            return []
        results: list[SearchResult] = []
        for task in self.get_all_tasks():
            if filter_fn is not None and not filter_fn(task):
                continue
            title = task.title.lower()
            pos = title.find(needle)
            if pos < 0:
                continue
            score = 1.0 if pos == 0 else 0.5 * (1 - pos / len(title))
            results.append(SearchResult(task=task, score=score))
        results.sort(key=lambda result: (-result.score, result.task.title.lower()))
        return results

    # mutations

    def new_task_template(self) -> Task:
        with self._lock:
            for _ in range(ID_ATTEMPTS):
                candidate = _random_id()
                if _key(candidate) in self._tasks or self.path_for(candidate).exists():
                    continue
                break
            else:
                raise TaskConflictError(f"Unable to allocate a unique task id after {ID_ATTEMPTS} attempts")
        now = utcnow()
        return Task(
            id=candidate,
            title="",
            type=TYPE_STORY,
            status=STATUS_BACKLOG,
            priority=DEFAULT_PRIORITY,
            points=DEFAULT_POINTS,
            created_by=self.current_author(),
            created_at=now,
            updated_at=now,
        )

    def create_task(self, task: Task) -> Task:
        errors = validate(task, self.max_points)
        if errors.has_errors():
            raise TaskValidationError(f"Invalid task: {errors}", errors)
        with self._lock:
            key = _key(task.id)
            path = self.path_for(task.id)
            if key in self._tasks or path.exists():
                raise TaskConflictError(f"Task already exists: {task.id}")
            if not task.created_by:
                task.created_by = self.current_author()
            now = utcnow()
            task.created_at = now
            task.updated_at = now
            task.loaded_mtime = storage.write_task_file(path, task)
            self._tasks[key] = task.clone()
        self._stage(path)
        self._notify()
        return task

    def update_task(self, task: Task) -> bool:
        """Write task if nobody changed its file since it was loaded.

        Returns False on a stale ``loaded_mtime``, an unknown task or a
        validation failure. On success the caller's task carries the new
        mtime and ``updated_at``.
        """
        if quick_validate(task, self.max_points).has_errors():
            logger.warning("rejected invalid update for %s", task.id)
            return False
        with self._lock:
            key = _key(task.id)
            if key not in self._tasks:
                return False
            path = self.path_for(task.id)
            try:
                current_mtime = path.stat().st_mtime_ns
            except OSError:
                return False
            if task.loaded_mtime is None or task.loaded_mtime != current_mtime:
                logger.info("stale update for %s rejected", task.id)
                return False
            updated = task.clone()
            updated.updated_at = max(utcnow(), updated.created_at)
            try:
                updated.loaded_mtime = storage.write_task_file(path, updated)
            except OSError as exc:
                logger.warning("failed to write %s: %s", path, exc)
                return False
            self._tasks[key] = updated.clone()
            task.updated_at = updated.updated_at
            task.loaded_mtime = updated.loaded_mtime
        self._stage(path)
        self._notify()
        return True

    def update_status(self, task_id: str, status: str) -> bool:
        task = self.get_task(task_id)
        if task is None:
            return False
        task.status = normalize_status(status)
        return self.update_task(task)

    def add_comment(self, task_id: str, author: str, text: str) -> bool:
        task = self.get_task(task_id)
        if task is None:
            return False
        task.comments.append(
            Comment(id=secrets.token_hex(4), author=author, text=text, created_at=utcnow())
        )
        return self.update_task(task)

    def delete_task(self, task_id: str) -> None:
        with self._lock:
            key = _key(task_id)
            task = self._tasks.get(key)
            if task is None:
                return
            path = self.path_for(task.id)
            path.unlink(missing_ok=True)
            del self._tasks[key]
        self._unstage(path)
        self._notify()

    def reload(self) -> None:
        """Rebuild the index from disk; unreadable files are skipped."""
        fresh: dict[str, Task] = {}
        for path in storage.iter_task_files(self.task_dir):
            try:
                task = storage.read_task_file(path, self.max_points)
            except (OSError, ValueError, yaml.YAMLError) as exc:
                logger.warning("skipping task file %s: %s", path, exc)
                continue
            if task.id.lower() != path.stem.lower():
                logger.warning("task id %s does not match file %s, using file name", task.id, path.name)
                task.id = path.stem.upper()
            errors = quick_validate(task, self.max_points)
            if errors.has_errors():
                logger.warning("skipping invalid task file %s: %s", path, errors)
                continue
            fresh[_key(task.id)] = task
        with self._lock:
            self._tasks = fresh
        self._notify()

    # history

    def task_history(self, task_id: str, since: dt.datetime) -> list[FileVersion]:
        if self.git is None:
            return []
        return self.git.file_versions_since(self.path_for(task_id), since, include_prior=True)

    def burndown(
        self,
        days: int = DEFAULT_BURNDOWN_DAYS,
        now: dt.datetime | None = None,
    ) -> list[BurndownPoint]:
        """Open story points at the end of each of the last ``days`` days."""
        now = now or utcnow()
        today = now.astimezone(dt.timezone.utc).date()
        start = today - dt.timedelta(days=max(days, 1) - 1)
        window_start = dt.datetime.combine(start, dt.time.min, tzinfo=dt.timezone.utc)
        tasks = self.get_all_tasks()

        history: dict[str, list[tuple[dt.datetime, str]]] = {}
        if self.git is not None:
            try:
                versions = self.git.all_file_versions_since(
                    str(self.task_dir), window_start, include_prior=True
                )
            except GitError as exc:
                logger.warning("burndown history unavailable: %s", exc)
                versions = {}
            for name, file_versions in versions.items():
                statuses = []
                for version in file_versions:
                    status = _status_from_content(version.content)
                    if status is not None:
                        statuses.append((version.when, status))
                statuses.sort(key=lambda item: item[0])
                history[Path(name).name.lower()] = statuses

        points: list[BurndownPoint] = []
        for offset in range((today - start).days + 1):
            day = start + dt.timedelta(days=offset)
            day_end = dt.datetime.combine(day + dt.timedelta(days=1), dt.time.min, tzinfo=dt.timezone.utc)
            remaining = 0
            for task in tasks:
                if task.created_at >= day_end:
                    continue
                if _status_at(task, history.get(task.filename), day_end) != STATUS_DONE:
                    remaining += task.points
            points.append(BurndownPoint(date=day, remaining=remaining))
        return points


def _status_at(task: Task, statuses: list[tuple[dt.datetime, str]] | None, moment: dt.datetime) -> str:
    if not statuses:
        return task.status
    known = [status for when, status in statuses if when < moment]
    if known:
        return known[-1]
    return statuses[0][1]
