"""Renderers for list, detail, history and burndown command output."""

from __future__ import annotations

import json
from typing import Iterable

import yaml

from . import storage
from .enums import VALID_STATUSES, priority_label, status_label, type_label
from .models import DEFAULT_MAX_POINTS, BurndownPoint, FileVersion, SearchResult, Task
from .plugins import Plugin, TikiPlugin, format_key

POINTS_CIRCLES = 10
POINTS_FILLED = "●"
POINTS_UNFILLED = "◦"

LIST_COLUMNS = (
    ("id", 11),
    ("title", 40),
    ("status", 11),
    ("type", 5),
    ("priority", 8),
    ("points", 6),
    ("assignee", 14),
)


def points_visual(points: int, max_points: int = DEFAULT_MAX_POINTS) -> str:
    """Scale points onto ten circles, e.g. 5 of 10 -> ●●●●●◦◦◦◦◦."""
    if max_points <= 0:
        max_points = DEFAULT_MAX_POINTS
    filled = max(0, min(POINTS_CIRCLES, points * POINTS_CIRCLES // max_points))
    return POINTS_FILLED * filled + POINTS_UNFILLED * (POINTS_CIRCLES - filled)


def _status_style(status: str) -> str:
    return {
        "backlog": "dim",
        "todo": "magenta",
        "ready": "magenta",
        "in_progress": "cyan",
        "blocked": "red",
        "waiting": "yellow",
        "review": "yellow",
        "done": "green",
    }.get(status, "white")


def _priority_style(priority: int) -> str:
    return {
        1: "bold red",
        2: "bold yellow",
        3: "cyan",
        4: "blue",
        5: "dim",
    }.get(priority, "white")


def _task_list_row(task: Task) -> dict[str, str]:
    return {
        "id": task.id,
        "title": task.title,
        "status": task.status,
        "type": task.type,
        "priority": str(task.priority),
        "points": str(task.points),
        "assignee": task.assignee or "-",
    }


def _truncate(value: str, width: int) -> str:
    if width <= 0:
        return ""
    if len(value) <= width:
        return value
    if width == 1:
        return "…"
    return f"{value[: width - 1]}…"


def render_task_list_plain(tasks: Iterable[Task]) -> str:
    rows = [_task_list_row(task) for task in tasks]
    if not rows:
        return "No tasks found."

    lines = []
    lines.append("  ".join(name.ljust(width) for name, width in LIST_COLUMNS))
    lines.append("  ".join("-" * width for _, width in LIST_COLUMNS))
    for row in rows:
        lines.append(
            "  ".join(_truncate(row[name], width).ljust(width) for name, width in LIST_COLUMNS)
        )
    return "\n".join(line.rstrip() for line in lines)


def render_task_list_rich(tasks: Iterable[Task], max_points: int = DEFAULT_MAX_POINTS):
    from rich import box
    from rich.console import Group
    from rich.table import Table
    from rich.text import Text

    task_list = list(tasks)
    if not task_list:
        return "No tasks found."

    by_status: dict[str, list[Task]] = {status: [] for status in VALID_STATUSES}
    for task in task_list:
        by_status.setdefault(task.status, []).append(task)

    renderables = []
    for status, bucket in by_status.items():
        if not bucket:
            continue
        renderables.append(
            Text(f"{status_label(status)} ({len(bucket)})", style=f"bold {_status_style(status)}")
        )
        table = Table(box=box.SIMPLE_HEAVY, show_header=True, header_style="bold white", pad_edge=False)
        table.add_column("id", style="dim", no_wrap=True)
        table.add_column("title", style="bold", max_width=48, overflow="ellipsis", no_wrap=True)
        table.add_column("type")
        table.add_column("priority")
        table.add_column("points", no_wrap=True)
        table.add_column("assignee", overflow="ellipsis", no_wrap=True)
        for task in bucket:
            table.add_row(
                task.id,
                task.title,
                type_label(task.type),
                Text(f"{priority_label(task.priority)} {task.priority}", style=_priority_style(task.priority)),
                points_visual(task.points, max_points),
                task.assignee or "-",
            )
        renderables.append(table)
        renderables.append(Text(""))

    if renderables and isinstance(renderables[-1], Text) and not renderables[-1].plain:
        renderables.pop()
    return Group(*renderables)


def task_payload(task: Task) -> dict:
    payload = storage.task_to_frontmatter(task)
    payload["description"] = task.description
    return payload


def render_task_list_json(tasks: Iterable[Task]) -> str:
    return json.dumps([task_payload(task) for task in tasks], indent=2, default=str)


def render_task_detail_json(task: Task) -> str:
    return json.dumps(task_payload(task), indent=2, default=str)


def _normalized_description(description: str) -> str:
    return description.strip() or "(empty)"


def _comment_lines(task: Task) -> list[str]:
    lines = []
    for comment in task.comments:
        when = comment.created_at.strftime("%Y-%m-%d %H:%M")
        lines.append(f"- {comment.author or 'unknown'} ({when}): {comment.text}")
    return lines


def render_task_detail_plain(task: Task, max_points: int = DEFAULT_MAX_POINTS) -> str:
    tags = ", ".join(task.tags) if task.tags else "-"
    lines = [
        f"{task.title} ({task.id})",
        f"[{task.status}] [{task.type}] [priority {task.priority}] "
        f"[points {task.points} {points_visual(task.points, max_points)}]",
        f"assignee: {task.assignee or '-'}    tags: {tags}",
        f"created: {storage.format_datetime(task.created_at)} by {task.created_by or '-'}",
        f"updated: {storage.format_datetime(task.updated_at)}",
        "",
        _normalized_description(task.description),
    ]
    comments = _comment_lines(task)
    if comments:
        lines.extend(["", "comments:", *comments])
    return "\n".join(lines)


def render_task_detail_rich(task: Task, max_points: int = DEFAULT_MAX_POINTS):
    from rich.console import Group
    from rich.text import Text

    title = Text()
    title.append(task.title, style="bold")
    title.append(f" ({task.id})", style="dim")

    chips = Text()
    chips.append(f"[{status_label(task.status)}]", style=_status_style(task.status))
    chips.append(" ")
    chips.append(f"[{type_label(task.type)}]")
    chips.append(" ")
    chips.append(f"[{priority_label(task.priority)} {task.priority}]", style=_priority_style(task.priority))
    chips.append(" ")
    chips.append(points_visual(task.points, max_points))

    tags = ", ".join(task.tags) if task.tags else "-"
    parts = [
        title,
        chips,
        Text(f"assignee: {task.assignee or '-'}    tags: {tags}"),
        Text(f"created: {storage.format_datetime(task.created_at)} by {task.created_by or '-'}", style="dim"),
        Text(f"updated: {storage.format_datetime(task.updated_at)}", style="dim"),
        Text(""),
        Text(_normalized_description(task.description)),
    ]
    comments = _comment_lines(task)
    if comments:
        parts.append(Text(""))
        parts.append(Text("comments:", style="bold"))
        parts.extend(Text(line) for line in comments)
    return Group(*parts)


def render_search_results_plain(results: Iterable[SearchResult]) -> str:
    rows = list(results)
    if not rows:
        return "No matching tasks."
    return "\n".join(
        f"{result.task.id}  {result.score:.2f}  [{result.task.status}]  {result.task.title}"
        for result in rows
    )


def render_burndown_plain(points: Iterable[BurndownPoint]) -> str:
    rows = list(points)
    if not rows:
        return "No burndown data."
    peak = max((point.remaining for point in rows), default=0)
    lines = ["date        remaining", "----------  ---------"]
    for point in rows:
        lines.append(
            f"{point.date.isoformat()}  {str(point.remaining).rjust(9)}  {points_visual(point.remaining, peak or 1)}"
        )
    return "\n".join(lines)


def render_burndown_rich(points: Iterable[BurndownPoint]):
    from rich import box
    from rich.table import Table

    rows = list(points)
    if not rows:
        return "No burndown data."
    peak = max((point.remaining for point in rows), default=0)
    table = Table(box=box.SIMPLE_HEAVY, show_header=True, header_style="bold white", pad_edge=False)
    table.add_column("date", style="dim")
    table.add_column("remaining", justify="right")
    table.add_column("", style="cyan", no_wrap=True)
    for point in rows:
        table.add_row(point.date.isoformat(), str(point.remaining), points_visual(point.remaining, peak or 1))
    return table


def render_history_plain(task_id: str, versions: Iterable[FileVersion]) -> str:
    rows = list(versions)
    if not rows:
        return f"No history for {task_id}."
    lines = []
    for version in rows:
        try:
            data, _ = storage.split_frontmatter(version.content)
        except (ValueError, yaml.YAMLError):
            data = {}
        status = str(data.get("status") or "-")
        when = version.when.strftime("%Y-%m-%d %H:%M")
        lines.append(f"{version.hash[:8]}  {when}  {version.author or '-'}  [{status}]")
    return "\n".join(lines)


def render_views_plain(plugins: Iterable[Plugin]) -> str:
    lines = []
    for plugin in plugins:
        key = format_key(plugin.key) or "-"
        marker = "*" if plugin.default else " "
        if isinstance(plugin, TikiPlugin):
            lanes = ", ".join(lane.name for lane in plugin.lanes) or "-"
            lines.append(f"{marker} {plugin.name} ({plugin.type}, key {key}): {lanes}")
        else:
            lines.append(f"{marker} {plugin.name} ({plugin.type}, key {key})")
    return "\n".join(lines) if lines else "No views defined."
