from __future__ import annotations

from pathlib import Path

import pytest

from tiki import controller, storage
from tiki.controller import BoardController, PluginController
from tiki.models import Task
from tiki.navigation import VIEW_TASK_DETAIL, VIEW_TASK_EDIT, ViewStack, decode_task_edit_params
from tiki.plugins import parse_key, parse_plugin_config
from tiki.selection import BoardSelection, PluginSelection
from tiki.store import TaskStore


@pytest.fixture(autouse=True)
def _fresh_registry():
    controller.teardown_plugin_actions()
    yield
    controller.teardown_plugin_actions()


def _seed(task_dir: Path, task_id: str, **fields) -> None:
    fields.setdefault("title", f"Task {task_id}")
    storage.write_task_file(storage.task_path(task_dir, task_id), Task(id=task_id, **fields))


def _tag_plugin():
    return parse_plugin_config(
        {
            "name": "Triage",
            "key": "F6",
            "sort": "id",
            "lanes": [
                {"name": "Inbox", "filter": "tags NOT IN ['moved']", "action": "tags-=[moved]"},
                {"name": "Moved", "filter": "tags IN ['moved']", "action": "tags+=[moved]"},
            ],
            "actions": [{"key": "a", "label": "Assign to me", "action": "assignee=CURRENT_USER"}],
        },
        "test",
    )


def _plugin_controller(task_dir: Path, fake_git, plugin=None) -> PluginController:
    store = TaskStore(task_dir, git=fake_git)
    plugin = plugin or _tag_plugin()
    return PluginController(plugin, store, PluginSelection(plugin.name), ViewStack())


def test_registry_maps_keys_and_actions() -> None:
    plugin = _tag_plugin()
    registry = controller.init_plugin_actions([plugin])
    assert registry.plugin_for_key(parse_key("F6")) == "Triage"
    assert registry.action_for("Triage", "a").label == "Assign to me"
    assert controller.plugin_for_key(parse_key("F7")) is None


def test_registry_cannot_be_rebuilt_after_use() -> None:
    controller.init_plugin_actions([])
    controller.get_plugin_actions()
    with pytest.raises(RuntimeError):
        controller.init_plugin_actions([])
    controller.teardown_plugin_actions()
    controller.init_plugin_actions([])


def test_lane_move_applies_tag_actions(task_dir: Path, fake_git) -> None:
    _seed(task_dir, "TIKI-AAAAAA", tags=["ui"])
    _seed(task_dir, "TIKI-BBBBBB")
    ctl = _plugin_controller(task_dir, fake_git)
    assert [task.id for task in ctl.lane_tasks(0)] == ["TIKI-AAAAAA", "TIKI-BBBBBB"]
    assert ctl.lane_tasks(1) == []

    assert ctl.move_task_to_lane("TIKI-AAAAAA", 1) is True
    assert ctl.store.get_task("TIKI-AAAAAA").tags == ["ui", "moved"]
    assert [task.id for task in ctl.lane_tasks(1)] == ["TIKI-AAAAAA"]
    assert [task.id for task in ctl.lane_tasks(0)] == ["TIKI-BBBBBB"]

    assert ctl.move_task_to_lane("TIKI-AAAAAA", 0) is True
    assert ctl.store.get_task("TIKI-AAAAAA").tags == ["ui"]
    assert ctl.move_task_to_lane("TIKI-AAAAAA", 5) is False
    assert ctl.move_task_to_lane("TIKI-MISSING", 1) is False
    assert ctl.lane_tasks(9) == []


def test_plugin_filter_and_sort_apply(task_dir: Path, fake_git) -> None:
    plugin = parse_plugin_config(
        {
            "name": "Bugs",
            "filter": "type = bug",
            "sort": "priority DESC",
            "lanes": [{"name": "All"}],
        },
        "test",
    )
    _seed(task_dir, "TIKI-AAAAAA", type="bug", priority=1)
    _seed(task_dir, "TIKI-BBBBBB", type="bug", priority=4)
    _seed(task_dir, "TIKI-CCCCCC", type="story")
    ctl = _plugin_controller(task_dir, fake_git, plugin)
    assert [task.id for task in ctl.lane_tasks(0)] == ["TIKI-BBBBBB", "TIKI-AAAAAA"]
    assert ctl.selected_task_id() == "TIKI-BBBBBB"


def test_plugin_action_uses_current_git_user(task_dir: Path, fake_git) -> None:
    _seed(task_dir, "TIKI-AAAAAA")
    plugin = _tag_plugin()
    controller.init_plugin_actions([plugin])
    ctl = _plugin_controller(task_dir, fake_git, plugin)
    assert ctl.apply_plugin_action("a", "TIKI-AAAAAA") is True
    assert ctl.store.get_task("TIKI-AAAAAA").assignee == "Alice"
    assert ctl.apply_plugin_action("z", "TIKI-AAAAAA") is False


def test_plugin_action_fails_without_git_user(task_dir: Path, fake_git) -> None:
    _seed(task_dir, "TIKI-AAAAAA")
    fake_git.fail_user = True
    ctl = _plugin_controller(task_dir, fake_git)
    assert ctl.apply_plugin_action("a", "TIKI-AAAAAA") is False
    assert ctl.store.get_task("TIKI-AAAAAA").assignee == ""


def test_plugin_search_restores_selection(task_dir: Path, fake_git) -> None:
    _seed(task_dir, "TIKI-AAAAAA", title="Fix login")
    _seed(task_dir, "TIKI-BBBBBB", title="Write docs")
    _seed(task_dir, "TIKI-CCCCCC", title="Login page")
    ctl = _plugin_controller(task_dir, fake_git)
    ctl.selection.set_selected_index(2)

    ctl.handle_search("login")
    assert ctl.selection.selected_index == 0
    assert [task.id for task in ctl.filtered_tasks()] == ["TIKI-CCCCCC", "TIKI-AAAAAA"]
    assert [task.id for task in ctl.lane_tasks(0)] == ["TIKI-CCCCCC", "TIKI-AAAAAA"]

    ctl.clear_search()
    assert ctl.selection.selected_index == 2
    assert len(ctl.filtered_tasks()) == 3

    ctl.handle_search("   ")
    assert not ctl.selection.is_search_active()


def test_open_new_and_delete(task_dir: Path, fake_git) -> None:
    _seed(task_dir, "TIKI-AAAAAA")
    ctl = _plugin_controller(task_dir, fake_git)
    assert ctl.open_task() is True
    assert ctl.navigation.current_view_id() == VIEW_TASK_DETAIL

    draft = ctl.new_task()
    entry = ctl.navigation.current_view()
    assert entry.view_id == VIEW_TASK_EDIT
    assert decode_task_edit_params(entry.params).draft.id == draft.id

    assert ctl.delete_selected() is True
    assert ctl.store.get_task("TIKI-AAAAAA") is None
    assert ctl.delete_selected() is False


def test_board_moves_follow_status_columns(task_dir: Path, fake_git) -> None:
    _seed(task_dir, "TIKI-AAAAAA", status="ready")
    _seed(task_dir, "TIKI-BBBBBB", status="backlog")
    store = TaskStore(task_dir, git=fake_git)
    ctl = BoardController(store, BoardSelection(), ViewStack())

    assert [task.id for task in ctl.pane_tasks("col-todo")] == ["TIKI-AAAAAA"]
    assert ctl.move_task("TIKI-AAAAAA", "left") is False
    assert ctl.move_task("TIKI-AAAAAA", "right") is True
    assert store.get_task("TIKI-AAAAAA").status == "in_progress"
    assert ctl.selection.selected_pane == "col-progress"
    assert ctl.selected_task_id() == "TIKI-AAAAAA"
    assert ctl.move_task("TIKI-BBBBBB", "right") is False
    assert ctl.move_task("TIKI-AAAAAA", "up") is False


def test_board_search_jumps_to_first_result_and_restores(task_dir: Path, fake_git) -> None:
    _seed(task_dir, "TIKI-AAAAAA", title="Fix login", status="review")
    _seed(task_dir, "TIKI-BBBBBB", title="Login backlog", status="backlog")
    store = TaskStore(task_dir, git=fake_git)
    ctl = BoardController(store, BoardSelection(), ViewStack())
    ctl.selection.set_selection("col-done", 1)

    ctl.handle_search("login")
    assert ctl.selection.selected_pane == "col-review"
    assert [task.id for task in ctl.pane_tasks("col-review")] == ["TIKI-AAAAAA"]

    ctl.clear_search()
    assert ctl.selection.selected_pane == "col-done"
    assert ctl.selection.selected_row == 1
