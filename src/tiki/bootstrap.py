"""Startup: logging, settings, project checks and store construction."""

from __future__ import annotations

from dataclasses import dataclass
import logging
import os
from pathlib import Path
import sys
from typing import Callable

from . import storage
from .git import GitOps, GitShell
from .models import DEFAULT_MAX_POINTS, ConfigError, GitError, Task
from .plugins import Plugin, load_plugins
from .store import TaskStore, format_author

logger = logging.getLogger("tiki.bootstrap")

LOG_LEVEL_ENV = "TIKI_LOGGING_LEVEL"
LOG_LEVEL_FLAG = "--log-level"
LOG_FILENAME = "tiki.log"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def parse_log_level(value: str | None) -> int:
    name = (value or "").strip().lower()
    if name == "debug":
        return logging.DEBUG
    if name in {"warn", "warning"}:
        return logging.WARNING
    if name == "error":
        return logging.ERROR
    return logging.INFO


def _flag_value(argv: list[str]) -> str | None:
    prefix = f"{LOG_LEVEL_FLAG}="
    for index, arg in enumerate(argv):
        if arg == "--":
            return None
        if arg == LOG_LEVEL_FLAG and index + 1 < len(argv):
            return argv[index + 1]
        if arg.startswith(prefix):
            return arg[len(prefix) :]
    return None


def resolve_log_level(
    argv: list[str] | None = None,
    environ: dict[str, str] | None = None,
    config: dict | None = None,
) -> str:
    """Pick the level name: flag, then environment, then config, then default."""
    flag = _flag_value(list(sys.argv[1:] if argv is None else argv))
    if flag and flag.strip():
        return flag.strip().lower()
    env = os.environ if environ is None else environ
    from_env = env.get(LOG_LEVEL_ENV, "").strip()
    if from_env:
        return from_env.lower()
    if config:
        return storage.resolve_log_level_setting(config)
    return storage.DEFAULT_LOG_LEVEL


def log_file_path() -> Path:
    executable = Path(sys.argv[0]) if sys.argv and sys.argv[0] else Path.cwd() / "tiki"
    return executable.resolve().parent / LOG_FILENAME


def init_logging(level_name: str | None) -> int:
    """Configure the ``tiki`` logger and return the chosen level."""
    level = parse_log_level(level_name)
    root = logging.getLogger("tiki")
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    try:
        handler: logging.Handler = logging.FileHandler(log_file_path(), mode="a", encoding="utf-8")
    except OSError:
        handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(handler)
    root.setLevel(level)
    root.propagate = False
    logger.info("application starting up (level=%s)", logging.getLevelName(level))
    return level


@dataclass(slots=True)
class Settings:
    log_level: str
    max_points: int
    task_dir: Path
    project_root: Path


def load_settings(
    project_root: Path,
    warn: Callable[[str], None] | None = None,
    environ: dict[str, str] | None = None,
) -> Settings:
    """Merge user and project config; project keys win."""
    user_path = storage.user_config_path(environ)
    project_path = storage.config_path(project_root)
    user_cfg = storage.read_config(user_path, warn=warn)
    project_cfg = storage.read_config(project_path, warn=warn)
    storage.check_config_keys(user_cfg, str(user_path), warn=warn)
    storage.check_config_keys(project_cfg, str(project_path), warn=warn)
    merged = storage.merge_config(user_cfg, project_cfg)
    source = str(project_path) if project_cfg else str(user_path)
    return Settings(
        log_level=storage.resolve_log_level_setting(merged, source, warn=warn),
        max_points=storage.resolve_max_points(merged, source, warn=warn),
        task_dir=storage.tasks_dir(project_root),
        project_root=project_root,
    )


def ensure_git_repo(path: Path) -> Path:
    root = storage.find_repo_root(path)
    if root is None:
        raise ConfigError("not a git repository (run tiki inside a git working tree)")
    return root


def ensure_project_initialized(project_root: Path) -> None:
    if not storage.is_project_initialized(project_root):
        raise ConfigError(f"project not initialized: {storage.tasks_dir(project_root)} missing (run `tiki init`)")


def init_store(settings: Settings, git: GitOps | None = None) -> TaskStore:
    if git is None:
        git = GitShell(settings.project_root)
    store = TaskStore(settings.task_dir, git=git, max_points=settings.max_points or DEFAULT_MAX_POINTS)
    logger.info("loaded %d tasks from %s", len(store.get_all_tasks()), settings.task_dir)
    return store


def load_views(settings: Settings, environ: dict[str, str] | None = None) -> list[Plugin]:
    plugins = load_plugins(settings.project_root, environ, settings.max_points)
    logger.info("loaded %d views", len(plugins))
    return plugins


def set_author_from_git(task: Task, git: GitOps | None) -> None:
    """Fill ``created_by`` from the git identity when it is still blank."""
    if task.created_by or git is None:
        return
    try:
        name, email = git.current_user()
    except GitError as exc:
        logger.debug("git user unavailable: %s", exc)
        return
    task.created_by = format_author(name, email)


def configure_logging(
    settings: Settings,
    argv: list[str] | None = None,
    environ: dict[str, str] | None = None,
) -> int:
    config = {"logging": {"level": settings.log_level}}
    return init_logging(resolve_log_level(argv, environ, config))
