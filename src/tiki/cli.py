"""CLI entrypoint for tiki."""

from __future__ import annotations

import datetime as dt
from pathlib import Path
import sys
from typing import Annotated, Sequence

import typer

from . import bootstrap, pipe, render, storage
from .controller import PluginController, current_user_name
from .dsl import parse_filter, parse_sort, sort_tasks
from .dsl.filter import matches
from .editor import edit_text
from .enums import normalize_priority, normalize_tags, parse_status, parse_type
from .models import (
    PluginConfigError,
    Task,
    TaskConflictError,
    TaskError,
    TaskNotFoundError,
    TaskValidationError,
    utcnow,
)
from .navigation import ViewStack
from .plugins import TikiPlugin, find_plugin, write_default_workflow_if_missing
from .selection import PluginSelection
from .store import TaskStore

ACTIVE_CLI_ARGS: tuple[str, ...] | None = None
DEFAULT_LIST_SORT = "priority, id"

LogLevelOption = Annotated[
    str | None,
    typer.Option("--log-level", help="Log level: debug, info, warn or error"),
]
JsonOption = Annotated[bool, typer.Option("--json", help="Emit JSON")]


def _can_render_rich_output() -> bool:
    return sys.stdout.isatty()


def _argv_tokens(argv: Sequence[str] | None = None) -> list[str]:
    if argv is not None:
        return list(argv)
    if ACTIVE_CLI_ARGS is not None:
        return list(ACTIVE_CLI_ARGS)
    return sys.argv[1:]


class TikiTyperGroup(typer.core.TyperGroup):
    def main(self, *args, **kwargs):
        global ACTIVE_CLI_ARGS

        cli_args = kwargs.get("args")
        if cli_args is None and args:
            candidate = args[0]
            if isinstance(candidate, (list, tuple)):
                cli_args = [str(token) for token in candidate]
        if cli_args is None:
            ACTIVE_CLI_ARGS = tuple(sys.argv[1:])
        else:
            ACTIVE_CLI_ARGS = tuple(str(token) for token in cli_args)
        try:
            return super().main(*args, **kwargs)
        finally:
            ACTIVE_CLI_ARGS = None


app = typer.Typer(
    cls=TikiTyperGroup,
    help="Git-backed terminal kanban for markdown tasks",
)


def _print_rich(renderable) -> None:
    from rich.console import Console

    Console().print(renderable)


def _warn_config(message: str) -> None:
    typer.echo(f"Warning: {message}", err=True)


def _run_and_handle(fn) -> None:
    try:
        fn()
    except TaskError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from exc


def _settings(*, require_init: bool = True) -> bootstrap.Settings:
    root = bootstrap.ensure_git_repo(Path.cwd())
    settings = bootstrap.load_settings(root, warn=_warn_config)
    bootstrap.configure_logging(settings, _argv_tokens())
    if require_init:
        bootstrap.ensure_project_initialized(root)
    return settings


def _store() -> tuple[bootstrap.Settings, TaskStore]:
    settings = _settings()
    return settings, bootstrap.init_store(settings)


def _require_task(store: TaskStore, task_id: str) -> Task:
    task = store.get_task(task_id)
    if task is None:
        raise TaskNotFoundError(f"Task not found: {task_id}")
    return task


def _save(store: TaskStore, task: Task) -> None:
    if not store.update_task(task):
        raise TaskConflictError(f"Unable to save {task.id}: the file changed on disk or the task is invalid")


def _parse_since(value: str | None, default: dt.datetime) -> dt.datetime:
    if value is None:
        return default
    parsed = storage.parse_datetime(value)
    if parsed is None:
        raise TaskValidationError(f"invalid date: {value!r} (expected YYYY-MM-DD or ISO 8601)")
    return parsed


def _create_from_stdin() -> None:
    _, store = _store()
    task_id = pipe.create_task_from_reader(sys.stdin, store)
    typer.echo(task_id)


def _launch_board(view: str | None) -> None:
    from .tui import can_run_board, run_board

    settings, store = _store()
    if not can_run_board():
        raise TaskValidationError("the board requires an interactive terminal")
    run_board(store, bootstrap.load_views(settings), settings.project_root, view_name=view)


@app.callback(invoke_without_command=True)
def root_callback(
    ctx: typer.Context,
    log_level: LogLevelOption = None,
) -> None:
    """Open the board, or create a task from piped input."""
    _ = log_level
    if ctx.invoked_subcommand is not None:
        return

    def _inner() -> None:
        if not sys.stdin.isatty() and not pipe.has_positional_args(_argv_tokens()):
            _create_from_stdin()
            return
        _launch_board(None)

    _run_and_handle(_inner)


@app.command("init")
def init_cmd() -> None:
    """Create .doc/tiki with default config and views."""

    def _inner() -> None:
        settings = _settings(require_init=False)
        root = settings.project_root
        storage.ensure_layout(root)
        typer.echo(f"Initialized tasks dir: {storage.tasks_dir(root)}")
        cfg_path = storage.config_path(root)
        if storage.write_default_config_if_missing(root):
            typer.echo(f"Created config: {cfg_path}")
        else:
            typer.echo(f"Using existing config: {cfg_path}")
        if write_default_workflow_if_missing(root):
            typer.echo(f"Created views: {storage.project_workflow_path(root)}")

    _run_and_handle(_inner)


@app.command("create")
def create_cmd(
    title: Annotated[str | None, typer.Argument(help="Task title, or - to read stdin")] = None,
    description: Annotated[str, typer.Option("--description", "-d")] = "",
    task_type: Annotated[str | None, typer.Option("--type")] = None,
    status: Annotated[str | None, typer.Option("--status")] = None,
    priority: Annotated[str | None, typer.Option("--priority", help="1-5 or high/medium/low")] = None,
    points: Annotated[int | None, typer.Option("--points")] = None,
    assignee: Annotated[str, typer.Option("--assignee")] = "",
    tag: Annotated[list[str], typer.Option("--tag", help="Can be repeated")] = [],
) -> None:
    """Create a task from arguments or from stdin."""

    def _inner() -> None:
        if title is None or title == "-":
            if title is None and sys.stdin.isatty():
                raise TaskValidationError("title is required (or pipe the task text on stdin)")
            _create_from_stdin()
            return

        _, store = _store()
        task = store.new_task_template()
        task.title = title.strip()
        task.description = description.strip()
        task.assignee = assignee.strip()
        task.tags = normalize_tags(list(tag))
        if task_type is not None:
            parsed_type = parse_type(task_type)
            if parsed_type is None:
                raise TaskValidationError(f"invalid type: {task_type}")
            task.type = parsed_type
        if status is not None:
            parsed_status = parse_status(status)
            if parsed_status is None:
                raise TaskValidationError(f"invalid status: {status}")
            task.status = parsed_status
        if priority is not None:
            value = normalize_priority(priority)
            if value == -1:
                raise TaskValidationError(f"invalid priority: {priority}")
            task.priority = value
        if points is not None:
            task.points = points
        created = store.create_task(task)
        typer.echo(f"Created: {created.title} ({created.id})")

    _run_and_handle(_inner)


@app.command("list")
def list_cmd(
    filter_text: Annotated[str | None, typer.Option("--filter", help="Filter expression")] = None,
    sort_text: Annotated[str | None, typer.Option("--sort", help="Sort expression")] = None,
    status: Annotated[str | None, typer.Option("--status")] = None,
    as_json: JsonOption = False,
) -> None:
    """List tasks, optionally filtered and sorted."""

    def _inner() -> None:
        settings, store = _store()
        expr = parse_filter(filter_text)
        rules = parse_sort(sort_text if sort_text is not None else DEFAULT_LIST_SORT)
        wanted_status = None
        if status is not None:
            wanted_status = parse_status(status)
            if wanted_status is None:
                raise TaskValidationError(f"invalid status: {status}")

        now = utcnow()
        user = current_user_name(store) if expr is not None else ""
        tasks = [
            task
            for task in store.get_all_tasks()
            if (wanted_status is None or task.status == wanted_status) and matches(expr, task, now, user)
        ]
        tasks = sort_tasks(tasks, rules)
        if as_json:
            typer.echo(render.render_task_list_json(tasks))
        elif _can_render_rich_output():
            _print_rich(render.render_task_list_rich(tasks, settings.max_points))
        else:
            typer.echo(render.render_task_list_plain(tasks))

    _run_and_handle(_inner)


@app.command("view")
def view_cmd(
    task_id: Annotated[str, typer.Argument(help="Task id, e.g. TIKI-AB12CD")],
    as_json: JsonOption = False,
) -> None:
    """Show a detailed view of one task."""

    def _inner() -> None:
        settings, store = _store()
        task = _require_task(store, task_id)
        if as_json:
            typer.echo(render.render_task_detail_json(task))
        elif _can_render_rich_output():
            _print_rich(render.render_task_detail_rich(task, settings.max_points))
        else:
            typer.echo(render.render_task_detail_plain(task, settings.max_points))

    _run_and_handle(_inner)


@app.command("status")
def status_cmd(
    task_id: Annotated[str, typer.Argument(help="Task id")],
    status: Annotated[str, typer.Argument(help="New status, e.g. in_progress")],
) -> None:
    """Change the status of a task."""

    def _inner() -> None:
        _, store = _store()
        task = _require_task(store, task_id)
        parsed = parse_status(status)
        if parsed is None:
            raise TaskValidationError(f"invalid status: {status}")
        task.status = parsed
        _save(store, task)
        typer.echo(f"{task.id}: {parsed}")

    _run_and_handle(_inner)


@app.command("move")
def move_cmd(
    task_id: Annotated[str, typer.Argument(help="Task id")],
    view: Annotated[str, typer.Option("--view", help="View name")],
    lane: Annotated[int, typer.Option("--lane", min=1, help="Target lane, counting from 1")],
) -> None:
    """Move a task into a lane of a view, applying the lane action."""

    def _inner() -> None:
        settings, store = _store()
        _require_task(store, task_id)
        plugin = find_plugin(bootstrap.load_views(settings), view)
        if not isinstance(plugin, TikiPlugin):
            raise PluginConfigError(f"unknown task view: {view}")
        if lane > len(plugin.lanes):
            raise TaskValidationError(f"view {plugin.name} has {len(plugin.lanes)} lanes")
        controller = PluginController(plugin, store, PluginSelection(plugin.name), ViewStack())
        if not controller.move_task_to_lane(task_id, lane - 1):
            raise TaskConflictError(f"Unable to move {task_id} to lane {lane} of {plugin.name}")
        typer.echo(f"Moved: {task_id} -> {plugin.lanes[lane - 1].name}")

    _run_and_handle(_inner)


@app.command("delete")
def delete_cmd(task_id: Annotated[str, typer.Argument(help="Task id")]) -> None:
    """Delete a task file."""

    def _inner() -> None:
        _, store = _store()
        task = _require_task(store, task_id)
        store.delete_task(task.id)
        typer.echo(f"Deleted: {task.id}")

    _run_and_handle(_inner)


@app.command("edit")
def edit_cmd(
    task_id: Annotated[str, typer.Argument(help="Task id")],
    comment: Annotated[bool, typer.Option("--comment", help="Add a comment instead")] = False,
) -> None:
    """Edit a task description (or add a comment) in $VISUAL/$EDITOR."""

    def _inner() -> None:
        _, store = _store()
        task = _require_task(store, task_id)
        if comment:
            text = edit_text("").strip()
            if not text:
                typer.echo("Canceled.")
                return
            if not store.add_comment(task.id, store.current_author(), text):
                raise TaskConflictError(f"Unable to add comment to {task.id}")
            typer.echo(f"Commented: {task.id}")
            return
        edited = edit_text(task.description + "\n").strip()
        if edited == task.description:
            typer.echo("No changes.")
            return
        task.description = edited
        _save(store, task)
        typer.echo(f"Updated: {task.id}")

    _run_and_handle(_inner)


@app.command("search")
def search_cmd(query: Annotated[str, typer.Argument(help="Text to look for in titles")]) -> None:
    """Search task titles."""

    def _inner() -> None:
        _, store = _store()
        typer.echo(render.render_search_results_plain(store.search(query)))

    _run_and_handle(_inner)


@app.command("views")
def views_cmd() -> None:
    """List configured views."""

    def _inner() -> None:
        settings = _settings()
        typer.echo(render.render_views_plain(bootstrap.load_views(settings)))

    _run_and_handle(_inner)


@app.command("burndown")
def burndown_cmd(
    days: Annotated[int, typer.Option("--days", min=1)] = 14,
) -> None:
    """Show open story points per day."""

    def _inner() -> None:
        _, store = _store()
        points = store.burndown(days)
        if _can_render_rich_output():
            _print_rich(render.render_burndown_rich(points))
        else:
            typer.echo(render.render_burndown_plain(points))

    _run_and_handle(_inner)


@app.command("history")
def history_cmd(
    task_id: Annotated[str, typer.Argument(help="Task id")],
    since: Annotated[str | None, typer.Option("--since", help="YYYY-MM-DD or ISO 8601")] = None,
) -> None:
    """Show the git history of one task file."""

    def _inner() -> None:
        _, store = _store()
        task = _require_task(store, task_id)
        start = _parse_since(since, task.created_at)
        typer.echo(render.render_history_plain(task.id, store.task_history(task.id, start)))

    _run_and_handle(_inner)


@app.command("board")
def board_cmd(
    view: Annotated[str | None, typer.Option("--view", help="View name, or Board")] = None,
) -> None:
    """Open the interactive kanban board."""

    _run_and_handle(lambda: _launch_board(view))


def main() -> None:
    app()


if __name__ == "__main__":
    main()
