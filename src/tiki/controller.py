"""Controllers that connect views, selection models and the task store."""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
import threading

from .dsl.action import LaneAction, apply_lane_action
from .dsl.sort import sort_tasks
from .enums import status_column
from .models import ActionParseError, GitError, Task, TaskError, utcnow
from .navigation import (
    FIELD_TITLE,
    VIEW_TASK_DETAIL,
    VIEW_TASK_EDIT,
    TaskDetailParams,
    TaskEditParams,
    ViewStack,
    encode_task_detail_params,
    encode_task_edit_params,
)
from .plugins import KeyChord, Plugin, PluginAction, TikiPlugin
from .selection import BoardSelection, PluginSelection
from .store import TaskStore

logger = logging.getLogger("tiki.controller")


# plugin action registry


@dataclass(slots=True)
class PluginActionRegistry:
    activation_keys: dict[str, KeyChord] = field(default_factory=dict)
    actions: dict[tuple[str, str], PluginAction] = field(default_factory=dict)

    def plugin_for_key(self, chord: KeyChord) -> str | None:
        for name, key in self.activation_keys.items():
            if not key.is_empty() and key == chord:
                return name
        return None

    def action_for(self, plugin_name: str, rune: str) -> PluginAction | None:
        return self.actions.get((plugin_name, rune))


_registry_lock = threading.Lock()
_registry: PluginActionRegistry | None = None
_registry_read = False


def init_plugin_actions(plugins: list[Plugin]) -> PluginActionRegistry:
    """Build the process-wide action registry; must run before anything reads it."""
    global _registry
    with _registry_lock:
        if _registry_read:
            raise RuntimeError("plugin actions already in use, call teardown_plugin_actions() first")
        registry = PluginActionRegistry()
        for plugin in plugins:
            registry.activation_keys[plugin.name] = plugin.key
            if isinstance(plugin, TikiPlugin):
                for action in plugin.actions:
                    registry.actions[(plugin.name, action.rune)] = action
        _registry = registry
        return registry


def get_plugin_actions() -> PluginActionRegistry:
    global _registry_read
    with _registry_lock:
        _registry_read = True
        if _registry is None:
            return PluginActionRegistry()
        return _registry


def teardown_plugin_actions() -> None:
    global _registry, _registry_read
    with _registry_lock:
        _registry = None
        _registry_read = False


def plugin_for_key(chord: KeyChord) -> str | None:
    return get_plugin_actions().plugin_for_key(chord)


# shared helpers


def current_user_name(store: TaskStore) -> str:
    try:
        name, _ = store.get_current_user()
    except GitError:
        return ""
    return name


def _push_new_task(store: TaskStore, navigation: ViewStack) -> Task | None:
    try:
        draft = store.new_task_template()
    except TaskError as exc:
        logger.error("failed to create task template: %s", exc)
        return None
    params = encode_task_edit_params(TaskEditParams(task_id=draft.id, draft=draft, focus=FIELD_TITLE))
    navigation.push(VIEW_TASK_EDIT, params)
    logger.info("new task draft started: %s", draft.id)
    return draft


def _apply_and_commit(store: TaskStore, task_id: str, action: LaneAction, user: str) -> bool:
    task = store.get_task(task_id)
    if task is None:
        logger.warning("task %s not found", task_id)
        return False
    try:
        updated = apply_lane_action(task, action, user, store.max_points)
    except ActionParseError as exc:
        logger.error("failed to apply action to %s: %s", task_id, exc)
        return False
    if not store.update_task(updated):
        logger.error("failed to save %s after action", task_id)
        return False
    return True


class PluginController:
    def __init__(
        self,
        plugin: TikiPlugin,
        store: TaskStore,
        selection: PluginSelection,
        navigation: ViewStack,
    ) -> None:
        self.plugin = plugin
        self.store = store
        self.selection = selection
        self.navigation = navigation

    def _matches(self, task: Task, lane_index: int | None, now, user: str) -> bool:
        if self.plugin.filter is not None and not self.plugin.filter.evaluate(task, now, user):
            return False
        if lane_index is None:
            return True
        lane_filter = self.plugin.lanes[lane_index].filter
        return lane_filter is None or lane_filter.evaluate(task, now, user)

    def filtered_tasks(self) -> list[Task]:
        results = self.selection.search.results
        if results is not None:
            return [result.task for result in results]
        now = utcnow()
        user = current_user_name(self.store)
        tasks = [task for task in self.store.get_all_tasks() if self._matches(task, None, now, user)]
        return sort_tasks(tasks, self.plugin.sort)

    def lane_tasks(self, lane_index: int) -> list[Task]:
        if not 0 <= lane_index < len(self.plugin.lanes):
            return []
        now = utcnow()
        user = current_user_name(self.store)
        results = self.selection.search.results
        if results is not None:
            lane_filter = self.plugin.lanes[lane_index].filter
            return [
                result.task
                for result in results
                if lane_filter is None or lane_filter.evaluate(result.task, now, user)
            ]
        tasks = [
            task for task in self.store.get_all_tasks() if self._matches(task, lane_index, now, user)
        ]
        return sort_tasks(tasks, self.plugin.sort)

    def selected_task_id(self) -> str:
        tasks = self.filtered_tasks()
        index = self.selection.selected_index
        if 0 <= index < len(tasks):
            return tasks[index].id
        return ""

    def move_task_to_lane(self, task_id: str, lane_index: int) -> bool:
        """Apply the target lane's action to the task and save it."""
        if not 0 <= lane_index < len(self.plugin.lanes):
            return False
        lane = self.plugin.lanes[lane_index]
        moved = _apply_and_commit(self.store, task_id, lane.action, current_user_name(self.store))
        if moved:
            logger.info("task %s moved to lane %s of %s", task_id, lane.name, self.plugin.name)
        return moved

    def apply_plugin_action(self, rune: str, task_id: str) -> bool:
        action = get_plugin_actions().action_for(self.plugin.name, rune)
        if action is None:
            for candidate in self.plugin.actions:
                if candidate.rune == rune:
                    action = candidate
                    break
        if action is None:
            return False
        return _apply_and_commit(self.store, task_id, action.action, current_user_name(self.store))

    def handle_search(self, query: str) -> None:
        query = query.strip()
        if not query:
            return
        self.selection.save_pre_search_state()
        now = utcnow()
        user = current_user_name(self.store)
        results = self.store.search(query, lambda task: self._matches(task, None, now, user))
        self.selection.set_search_results(results, query)
        self.selection.set_selected_index(0)

    def clear_search(self) -> None:
        self.selection.clear_search_results()

    def open_task(self) -> bool:
        task_id = self.selected_task_id()
        if not task_id:
            return False
        self.navigation.push(VIEW_TASK_DETAIL, encode_task_detail_params(TaskDetailParams(task_id)))
        return True

    def new_task(self) -> Task | None:
        return _push_new_task(self.store, self.navigation)

    def delete_selected(self) -> bool:
        task_id = self.selected_task_id()
        if not task_id:
            return False
        self.store.delete_task(task_id)
        self.selection.clamp_selection(len(self.filtered_tasks()))
        return True


class BoardController:
    def __init__(self, store: TaskStore, selection: BoardSelection, navigation: ViewStack) -> None:
        self.store = store
        self.selection = selection
        self.navigation = navigation

    def pane_tasks(self, pane_id: str) -> list[Task]:
        pane = self.selection.pane_by_id(pane_id)
        if pane is None:
            return []
        results = self.selection.search.results
        if results is not None:
            tasks = [result.task for result in results]
        else:
            tasks = sorted(self.store.get_all_tasks(), key=lambda task: (task.priority, task.id))
        return [task for task in tasks if status_column(task.status) == pane.status]

    def selected_task_id(self) -> str:
        tasks = self.pane_tasks(self.selection.selected_pane)
        row = self.selection.selected_row
        if 0 <= row < len(tasks):
            return tasks[row].id
        return ""

    def move_task(self, task_id: str, direction: str) -> bool:
        """Move a task one pane left or right, following it with the selection."""
        task = self.store.get_task(task_id)
        if task is None:
            return False
        pane = self.selection.pane_by_status(task.status)
        if pane is None:
            return False
        if direction == "left":
            target = self.selection.previous_pane_id(pane.id)
        elif direction == "right":
            target = self.selection.next_pane_id(pane.id)
        else:
            return False
        if not target:
            return False
        new_status = self.selection.status_for_pane(target)
        if not self.store.update_status(task_id, new_status):
            logger.error("failed to move task %s to %s", task_id, new_status)
            return False
        logger.info("task %s moved from %s to %s", task_id, pane.id, target)
        self._select_task(target, task_id)
        return True

    def _select_task(self, pane_id: str, task_id: str) -> None:
        for row, task in enumerate(self.pane_tasks(pane_id)):
            if task.id == task_id:
                self.selection.set_selection(pane_id, row)
                return
        self.selection.set_selection(pane_id, 0)

    def handle_search(self, query: str) -> None:
        query = query.strip()
        if not query:
            return
        self.selection.save_pre_search_state()
        board_statuses = {pane.status for pane in self.selection.panes}
        results = self.store.search(query, lambda task: status_column(task.status) in board_statuses)
        self.selection.set_search_results(results, query)
        if results:
            pane = self.selection.pane_by_status(results[0].task.status)
            if pane is not None:
                self.selection.set_selection(pane.id, 0)

    def clear_search(self) -> None:
        self.selection.clear_search_results()

    def open_task(self) -> bool:
        task_id = self.selected_task_id()
        if not task_id:
            return False
        self.navigation.push(VIEW_TASK_DETAIL, encode_task_detail_params(TaskDetailParams(task_id)))
        return True

    def new_task(self) -> Task | None:
        return _push_new_task(self.store, self.navigation)

    def delete_selected(self) -> bool:
        task_id = self.selected_task_id()
        if not task_id:
            return False
        self.store.delete_task(task_id)
        return True
