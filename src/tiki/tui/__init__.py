"""Textual kanban board over a plugin view or the status board."""

from __future__ import annotations

import logging
from pathlib import Path
import sys

from ..controller import (
    BoardController,
    PluginController,
    get_plugin_actions,
    init_plugin_actions,
    teardown_plugin_actions,
)
from ..enums import priority_label
from ..models import PluginConfigError, Task
from ..navigation import VIEW_BOARD, ViewStack, plugin_view_id
from ..plugins import Plugin, TikiPlugin, default_plugin, find_plugin, save_view_mode
from ..selection import BOARD_VIEW_NAME, VIEW_MODE_EXPANDED, BoardSelection, PluginSelection
from ..store import TaskStore

logger = logging.getLogger("tiki.tui")


def can_run_board() -> bool:
    return sys.stdin.isatty() and sys.stdout.isatty()


class PluginLanes:
    """Lane source backed by a tiki view."""

    def __init__(self, plugin: TikiPlugin, store: TaskStore, project_root: Path, navigation: ViewStack) -> None:
        self.title = plugin.name
        self.selection = PluginSelection(
            plugin.name,
            persist_view_mode=lambda mode: save_view_mode(plugin, mode, project_root),
        )
        self.selection.set_view_mode(plugin.view_mode)
        self.controller = PluginController(plugin, store, self.selection, navigation)
        self.plugin = plugin

    def names(self) -> list[str]:
        return [lane.name for lane in self.plugin.lanes]

    def tasks(self, index: int) -> list[Task]:
        return self.controller.lane_tasks(index)

    def move(self, task_id: str, index: int, step: int) -> int | None:
        target = index + step
        if not 0 <= target < len(self.plugin.lanes):
            return None
        return target if self.controller.move_task_to_lane(task_id, target) else None

    def apply_action(self, rune: str, task_id: str) -> bool:
        return self.controller.apply_plugin_action(rune, task_id)


class StatusLanes:
    """Lane source backed by the fixed status board."""

    def __init__(self, store: TaskStore, navigation: ViewStack) -> None:
        self.title = BOARD_VIEW_NAME
        self.selection = BoardSelection()
        self.controller = BoardController(store, self.selection, navigation)

    def names(self) -> list[str]:
        return [pane.name for pane in self.selection.panes]

    def tasks(self, index: int) -> list[Task]:
        panes = self.selection.panes
        if not 0 <= index < len(panes):
            return []
        return self.controller.pane_tasks(panes[index].id)

    def move(self, task_id: str, index: int, step: int) -> int | None:
        if not self.controller.move_task(task_id, "right" if step > 0 else "left"):
            return None
        return index + step

    def apply_action(self, rune: str, task_id: str) -> bool:
        return False


def _card(task: Task, expanded: bool) -> tuple[str, ...]:
    if not expanded:
        return (task.id, task.title)
    return (task.id, task.title, priority_label(task.priority), task.assignee or "-", str(task.points))


def run_board(
    store: TaskStore,
    plugins: list[Plugin],
    project_root: Path,
    view_name: str | None = None,
) -> None:
    from textual.app import App, ComposeResult
    from textual.binding import Binding
    from textual.containers import Horizontal
    from textual.widgets import DataTable, Footer, Header, Input, Static

    navigation = ViewStack()
    tiki_plugins = [plugin for plugin in plugins if isinstance(plugin, TikiPlugin)]
    chosen: Plugin | None
    if view_name and view_name.lower() == BOARD_VIEW_NAME.lower():
        chosen = None
    elif view_name:
        chosen = find_plugin(tiki_plugins, view_name)
        if chosen is None:
            raise PluginConfigError(f"unknown view: {view_name}")
    else:
        chosen = default_plugin(tiki_plugins)

    if isinstance(chosen, TikiPlugin):
        lanes: PluginLanes | StatusLanes = PluginLanes(chosen, store, project_root, navigation)
        navigation.push(plugin_view_id(chosen.name))
    else:
        lanes = StatusLanes(store, navigation)
        navigation.push(VIEW_BOARD)

    teardown_plugin_actions()
    init_plugin_actions(plugins)

    class BoardApp(App[None]):
        CSS = """
        #lanes DataTable { width: 1fr; height: 1fr; }
        #search { dock: bottom; display: none; }
        """
        BINDINGS = [
            ("q", "quit", "Quit"),
            Binding("left", "focus_lane(-1)", "Lane left", priority=True),
            Binding("right", "focus_lane(1)", "Lane right", priority=True),
            ("h", "focus_lane(-1)", "Lane left"),
            ("l", "focus_lane(1)", "Lane right"),
            Binding("shift+left", "move_task(-1)", "Move left", priority=True),
            Binding("shift+right", "move_task(1)", "Move right", priority=True),
            ("slash", "search", "Search"),
            ("escape", "clear_search", "Clear search"),
            ("v", "toggle_view_mode", "View mode"),
            ("d", "delete_task", "Delete"),
            ("r", "reload", "Reload"),
        ]

        def __init__(self) -> None:
            super().__init__()
            self.lane_index = 0
            self.listener_id: int | None = None

        def compose(self) -> ComposeResult:
            yield Header()
            yield Static(lanes.title, id="view-title")
            with Horizontal(id="lanes"):
                for index, name in enumerate(lanes.names()):
                    table = DataTable(id=f"lane-{index}", cursor_type="row")
                    table.border_title = name
                    yield table
            yield Input(placeholder="search titles", id="search")
            yield Footer()

        def on_mount(self) -> None:
            self.listener_id = store.add_listener(self._on_store_change)
            self.refresh_lanes()
            self._focus_current()

        def on_unmount(self) -> None:
            if self.listener_id is not None:
                store.remove_listener(self.listener_id)

        def check_action(self, action: str, parameters: tuple[object, ...]) -> bool | None:
            if action in {"focus_lane", "move_task"} and isinstance(self.focused, Input):
                return False
            return True

        def _on_store_change(self) -> None:
            try:
                self.call_from_thread(self.refresh_lanes)
            except RuntimeError:
                self.call_later(self.refresh_lanes)

        def _table(self, index: int) -> DataTable:
            return self.query_one(f"#lane-{index}", DataTable)

        def refresh_lanes(self) -> None:
            expanded = lanes.selection.view_mode == VIEW_MODE_EXPANDED
            for index in range(len(lanes.names())):
                table = self._table(index)
                cursor = table.cursor_row
                table.clear(columns=True)
                if expanded:
                    table.add_columns("id", "title", "pri", "assignee", "pts")
                else:
                    table.add_columns("id", "title")
                for task in lanes.tasks(index):
                    table.add_row(*_card(task, expanded), key=task.id)
                if table.row_count:
                    table.move_cursor(row=min(cursor, table.row_count - 1))

        def _focus_current(self) -> None:
            if lanes.names():
                self._table(self.lane_index).focus()

        def _selected_task_id(self) -> str:
            if not lanes.names():
                return ""
            table = self._table(self.lane_index)
            if not table.row_count:
                return ""
            row_key, _ = table.coordinate_to_cell_key(table.cursor_coordinate)
            return str(row_key.value)

        def _select_task(self, lane: int, task_id: str) -> None:
            table = self._table(lane)
            for row, task in enumerate(lanes.tasks(lane)):
                if task.id == task_id:
                    table.move_cursor(row=row)
                    return

        def action_focus_lane(self, step: int) -> None:
            target = self.lane_index + step
            if 0 <= target < len(lanes.names()):
                self.lane_index = target
                self._focus_current()

        def action_move_task(self, step: int) -> None:
            task_id = self._selected_task_id()
            if not task_id:
                return
            target = lanes.move(task_id, self.lane_index, step)
            if target is None:
                self.bell()
                return
            self.refresh_lanes()
            self.lane_index = target
            self._focus_current()
            self._select_task(target, task_id)

        def action_search(self) -> None:
            search = self.query_one("#search", Input)
            search.display = True
            search.focus()

        def on_input_submitted(self, event: Input.Submitted) -> None:
            event.input.display = False
            lanes.controller.handle_search(event.value)
            self.refresh_lanes()
            self._focus_current()

        def action_clear_search(self) -> None:
            search = self.query_one("#search", Input)
            search.value = ""
            search.display = False
            lanes.controller.clear_search()
            self.refresh_lanes()
            self._focus_current()

        def action_toggle_view_mode(self) -> None:
            lanes.selection.toggle_view_mode()
            self.refresh_lanes()

        def action_delete_task(self) -> None:
            task_id = self._selected_task_id()
            if task_id:
                store.delete_task(task_id)

        def action_reload(self) -> None:
            store.reload()

        def on_key(self, event) -> None:
            if event.character is None or isinstance(self.focused, Input):
                return
            registry = get_plugin_actions()
            if isinstance(lanes, PluginLanes) and registry.action_for(lanes.plugin.name, event.character):
                task_id = self._selected_task_id()
                if task_id and lanes.apply_action(event.character, task_id):
                    event.stop()

    logger.info("starting board for %s", lanes.title)
    try:
        BoardApp().run()
    finally:
        teardown_plugin_actions()
