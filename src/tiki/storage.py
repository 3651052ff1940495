"""Filesystem layout, config files and frontmatter IO for tiki."""

from __future__ import annotations

import datetime as dt
import logging
import os
from pathlib import Path
import tempfile
from typing import Any, Callable

import yaml

from .enums import decode_priority, decode_tags, normalize_status, normalize_type, parse_status
from .models import DEFAULT_MAX_POINTS, DEFAULT_PRIORITY, Comment, Task

logger = logging.getLogger("tiki.storage")

PROJECT_DIR = ".doc"
TASKS_SUBDIR = "tiki"
CONFIG_FILENAME = "config.yaml"
WORKFLOW_FILENAME = "workflow.yaml"
DEFAULT_LOG_LEVEL = "error"

TASK_FRONTMATTER_KEYS = (
    "id",
    "title",
    "type",
    "status",
    "tags",
    "assignee",
    "priority",
    "points",
    "created_by",
    "created_at",
    "updated_at",
    "comments",
)
IGNORED_FRONTMATTER_KEYS = ("description_present",)


def find_repo_root(start: Path) -> Path | None:
    start = start.resolve()
    for candidate in [start, *start.parents]:
        git_dir = candidate / ".git"
        if git_dir.exists():
            return candidate
    return None


def project_dir(project_root: Path) -> Path:
    return project_root / PROJECT_DIR


def tasks_dir(project_root: Path) -> Path:
    return project_dir(project_root) / TASKS_SUBDIR


def config_path(project_root: Path) -> Path:
    return project_dir(project_root) / CONFIG_FILENAME


def project_workflow_path(project_root: Path) -> Path:
    return project_dir(project_root) / WORKFLOW_FILENAME


def user_config_dir(environ: dict[str, str] | None = None) -> Path:
    env = os.environ if environ is None else environ
    base = env.get("XDG_CONFIG_HOME")
    if base:
        return Path(base) / "tiki"
    return Path.home() / ".config" / "tiki"


def user_config_path(environ: dict[str, str] | None = None) -> Path:
    return user_config_dir(environ) / CONFIG_FILENAME


def user_workflow_path(environ: dict[str, str] | None = None) -> Path:
    return user_config_dir(environ) / WORKFLOW_FILENAME


def is_project_initialized(project_root: Path) -> bool:
    return tasks_dir(project_root).is_dir()


def ensure_layout(project_root: Path) -> None:
    tasks_dir(project_root).mkdir(parents=True, exist_ok=True)


def default_config(
    log_level: str = DEFAULT_LOG_LEVEL,
    max_points: int = DEFAULT_MAX_POINTS,
) -> dict[str, Any]:
    return {
        "logging": {
            "level": log_level,
        },
        "tasks": {
            "max_points": max_points,
        },
    }


def write_default_config_if_missing(project_root: Path) -> bool:
    path = config_path(project_root)
    if path.exists():
        return False
    path.parent.mkdir(parents=True, exist_ok=True)
    payload = yaml.safe_dump(default_config(), sort_keys=False, default_flow_style=False)
    path.write_text(payload, encoding="utf-8")
    return True


def read_config(path: Path, warn: Callable[[str], None] | None = None) -> dict[str, Any]:
    if not path.exists():
        return {}
    try:
        payload = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except (OSError, yaml.YAMLError):
        if warn is not None:
            warn(f"Unable to parse config at {path}. Falling back to defaults.")
        return {}
    if not isinstance(payload, dict):
        if warn is not None:
            warn(f"Invalid config format at {path}. Falling back to defaults.")
        return {}
    return payload


def merge_config(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Merge two config mappings; nested sections merge key by key."""
    merged = dict(base)
    for key, value in override.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = merge_config(current, value)
        else:
            merged[key] = value
    return merged


def _section(
    data: dict[str, Any],
    name: str,
    supported: set[str],
    source: str,
    warn: Callable[[str], None] | None,
) -> dict[str, Any]:
    section = data.get(name, {})
    if section is None:
        return {}
    if not isinstance(section, dict):
        if warn is not None:
            warn(f"Invalid {name} section in {source}. Using defaults.")
        return {}
    for key in section.keys():
        if key not in supported and warn is not None:
            warn(f"Unsupported {name} key '{key}' in {source}. Ignoring.")
    return section


def check_config_keys(
    data: dict[str, Any],
    source: str,
    warn: Callable[[str], None] | None = None,
) -> None:
    supported_top_keys = {"logging", "tasks"}
    for key in data.keys():
        if key not in supported_top_keys and warn is not None:
            warn(f"Unsupported config key '{key}' in {source}. Ignoring.")


def resolve_log_level_setting(
    data: dict[str, Any],
    source: str = CONFIG_FILENAME,
    warn: Callable[[str], None] | None = None,
) -> str:
    section = _section(data, "logging", {"level"}, source, warn)
    level = section.get("level")
    if level is None:
        return DEFAULT_LOG_LEVEL
    if not isinstance(level, str) or not level.strip():
        if warn is not None:
            warn(f"Invalid logging.level in {source}. Using default '{DEFAULT_LOG_LEVEL}'.")
        return DEFAULT_LOG_LEVEL
    return level.strip().lower()


def resolve_max_points(
    data: dict[str, Any],
    source: str = CONFIG_FILENAME,
    warn: Callable[[str], None] | None = None,
) -> int:
    section = _section(data, "tasks", {"max_points"}, source, warn)
    max_points = section.get("max_points")
    if max_points is None:
        return DEFAULT_MAX_POINTS
    if isinstance(max_points, bool) or not isinstance(max_points, int) or max_points < 1:
        if warn is not None:
            warn(f"Invalid tasks.max_points in {source}. Using default '{DEFAULT_MAX_POINTS}'.")
        return DEFAULT_MAX_POINTS
    return max_points


def split_frontmatter(text: str) -> tuple[dict[str, Any], str]:
    """Split a task file into its frontmatter mapping and markdown body.

    Raises ValueError when the opening delimiter has no closing one and
    yaml.YAMLError when the frontmatter is not valid YAML.
    """
    content = text.strip()
    if not content.startswith("---"):
        return {}, content
    rest = content[3:]
    end = rest.find("\n---")
    if end < 0:
        raise ValueError("no closing frontmatter delimiter")
    raw = rest[:end]
    body = rest[end + 4 :]
    newline = body.find("\n")
    body = "" if newline < 0 else body[newline + 1 :]
    data = yaml.safe_load(raw) or {}
    if not isinstance(data, dict):
        data = {}
    return data, body


def render_frontmatter(data: dict[str, Any], body: str) -> str:
    dumped = yaml.safe_dump(
        data,
        sort_keys=False,
        default_flow_style=False,
        allow_unicode=True,
    ).strip()
    text = f"---\n{dumped}\n---\n"
    body = body.strip()
    if body:
        text += f"\n{body}\n"
    return text


def format_datetime(value: dt.datetime) -> str:
    return value.isoformat()


def parse_datetime(value: Any) -> dt.datetime | None:
    """Coerce a frontmatter timestamp to an aware datetime, or None."""
    if isinstance(value, dt.datetime):
        parsed = value
    elif isinstance(value, dt.date):
        parsed = dt.datetime(value.year, value.month, value.day)
    elif isinstance(value, str) and value.strip():
        try:
            parsed = dt.datetime.fromisoformat(value.strip())
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=dt.timezone.utc)
    return parsed


def _decode_points(raw: Any, max_points: int) -> int:
    if raw is None:
        return 0
    if isinstance(raw, bool) or not isinstance(raw, (int, str)):
        logger.warning("invalid points field %r, defaulting to 0", raw)
        return 0
    try:
        value = int(raw)
    except ValueError:
        logger.warning("invalid points field %r, defaulting to 0", raw)
        return 0
    return max(0, min(max_points, value))


def _decode_comments(raw: Any, fallback_time: dt.datetime) -> list[Comment]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        logger.warning("invalid comments field %r, expected a list", raw)
        return []
    comments: list[Comment] = []
    for index, item in enumerate(raw):
        if not isinstance(item, dict):
            logger.warning("skipping invalid comment at index %d", index)
            continue
        comments.append(
            Comment(
                id=str(item.get("id") or index + 1),
                author=str(item.get("author") or ""),
                text=str(item.get("text") or ""),
                created_at=parse_datetime(item.get("created_at")) or fallback_time,
            )
        )
    return comments


def _as_text(raw: Any) -> str:
    if raw is None:
        return ""
    return str(raw).strip()


def task_from_frontmatter(
    data: dict[str, Any],
    body: str,
    fallback_id: str,
    fallback_time: dt.datetime,
    max_points: int = DEFAULT_MAX_POINTS,
) -> Task:
    """Build a Task from decoded frontmatter, defaulting anything malformed."""
    raw_status = data.get("status")
    status = parse_status(raw_status if raw_status is not None else "")
    if status is None:
        logger.warning("unknown status %r in %s, defaulting to backlog", raw_status, fallback_id)
        status = normalize_status(raw_status)

    created_at = parse_datetime(data.get("created_at")) or fallback_time
    updated_at = parse_datetime(data.get("updated_at")) or created_at
    if updated_at < created_at:
        updated_at = created_at

    raw_priority = data.get("priority")
    extra = {
        key: value
        for key, value in data.items()
        if key not in TASK_FRONTMATTER_KEYS and key not in IGNORED_FRONTMATTER_KEYS
    }
    return Task(
        id=_as_text(data.get("id")) or fallback_id,
        title=_as_text(data.get("title")),
        description=body.strip(),
        type=normalize_type(data.get("type")),
        status=status,
        tags=decode_tags(data.get("tags")),
        assignee=_as_text(data.get("assignee")),
        priority=decode_priority(raw_priority) if raw_priority is not None else DEFAULT_PRIORITY,
        points=_decode_points(data.get("points"), max_points),
        comments=_decode_comments(data.get("comments"), created_at),
        created_by=_as_text(data.get("created_by")),
        created_at=created_at,
        updated_at=updated_at,
        extra=extra,
    )


def task_to_frontmatter(task: Task) -> dict[str, Any]:
    data: dict[str, Any] = {
        "id": task.id,
        "title": task.title,
        "type": task.type,
        "status": task.status,
        "tags": list(task.tags),
        "assignee": task.assignee,
        "priority": int(task.priority),
        "points": int(task.points),
        "created_by": task.created_by,
        "created_at": format_datetime(task.created_at),
        "updated_at": format_datetime(task.updated_at),
    }
    if task.comments:
        data["comments"] = [
            {
                "id": comment.id,
                "author": comment.author,
                "text": comment.text,
                "created_at": format_datetime(comment.created_at),
            }
            for comment in task.comments
        ]
    for key, value in task.extra.items():
        if key not in data:
            data[key] = value
    return data


def render_task(task: Task) -> str:
    return render_frontmatter(task_to_frontmatter(task), task.description)


def task_path(task_dir: Path, task_id: str) -> Path:
    return task_dir / f"{task_id.lower()}.md"


def read_task_file(path: Path, max_points: int = DEFAULT_MAX_POINTS) -> Task:
    """Read one task file; the returned task carries the observed mtime."""
    stat = path.stat()
    text = path.read_text(encoding="utf-8")
    data, body = split_frontmatter(text)
    fallback_time = dt.datetime.fromtimestamp(stat.st_mtime, tz=dt.timezone.utc)
    task = task_from_frontmatter(
        data,
        body,
        fallback_id=path.stem.upper(),
        fallback_time=fallback_time,
        max_points=max_points,
    )
    task.loaded_mtime = stat.st_mtime_ns
    return task


def write_task_file(path: Path, task: Task) -> int:
    """Atomically replace path with the rendered task; return the new mtime."""
    path.parent.mkdir(parents=True, exist_ok=True)
    text = render_task(task)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.stem}-", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="\n") as fh:
            fh.write(text)
        os.replace(tmp_name, path)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise
    return path.stat().st_mtime_ns


def iter_task_files(task_dir: Path) -> list[Path]:
    return sorted(child for child in task_dir.iterdir() if child.is_file() and child.suffix == ".md")


def _find_view_entry(views: list[Any], plugin_name: str, config_index: int) -> dict[str, Any] | None:
    if 0 <= config_index < len(views) and isinstance(views[config_index], dict):
        return views[config_index]
    for entry in views:
        if isinstance(entry, dict) and entry.get("name") == plugin_name:
            return entry
    return None


def save_view_mode(path: Path, plugin_name: str, config_index: int, mode: str) -> None:
    """Persist a view's display mode into a workflow file."""
    data: dict[str, Any] = {}
    if path.exists():
        loaded = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        if isinstance(loaded, dict):
            data = loaded
    views = data.get("views")
    if not isinstance(views, list):
        views = []
        data["views"] = views
    entry = _find_view_entry(views, plugin_name, config_index)
    if entry is None:
        entry = {"name": plugin_name}
        views.append(entry)
    entry["view"] = mode
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(yaml.safe_dump(data, sort_keys=False, default_flow_style=False), encoding="utf-8")
