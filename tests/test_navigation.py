from __future__ import annotations

from tiki import navigation
from tiki.models import Task
from tiki.navigation import TaskDetailParams, TaskEditParams, ViewStack


def test_view_stack_keeps_root() -> None:
    stack = ViewStack()
    assert stack.pop() is None
    stack.push(navigation.VIEW_BOARD)
    stack.push(navigation.VIEW_TASK_DETAIL, {"taskID": "TIKI-AAAAAA"})
    assert stack.depth() == 2
    assert stack.can_go_back()
    assert stack.previous_view().view_id == navigation.VIEW_BOARD

    popped = stack.pop()
    assert popped.params == {"taskID": "TIKI-AAAAAA"}
    assert stack.pop() is None
    assert stack.current_view_id() == navigation.VIEW_BOARD


def test_replace_top_and_clear() -> None:
    stack = ViewStack()
    assert stack.replace_top(navigation.VIEW_BOARD) is False
    stack.push(navigation.VIEW_BOARD)
    assert stack.replace_top(navigation.plugin_view_id("Kanban")) is True
    assert navigation.plugin_name_from_view_id(stack.current_view_id()) == "Kanban"
    assert navigation.plugin_name_from_view_id(navigation.VIEW_BOARD) is None
    stack.clear()
    assert stack.current_view() is None
    assert stack.current_view_id() == ""


def test_push_copies_params() -> None:
    params = {"taskID": "TIKI-AAAAAA"}
    stack = ViewStack()
    stack.push(navigation.VIEW_TASK_DETAIL, params)
    params["taskID"] = "changed"
    assert stack.current_view().params == {"taskID": "TIKI-AAAAAA"}


def test_detail_params_round_trip_and_empty() -> None:
    encoded = navigation.encode_task_detail_params(TaskDetailParams("TIKI-AAAAAA"))
    assert navigation.decode_task_detail_params(encoded).task_id == "TIKI-AAAAAA"
    assert navigation.encode_task_detail_params(TaskDetailParams()) is None
    assert navigation.decode_task_detail_params(None).task_id == ""
    assert navigation.decode_task_detail_params({"taskID": 7}).task_id == ""


def test_edit_params_take_id_from_draft() -> None:
    draft = Task(id="TIKI-DRAFT1", title="")
    encoded = navigation.encode_task_edit_params(TaskEditParams(draft=draft, focus="title"))
    assert encoded["taskID"] == "TIKI-DRAFT1"

    decoded = navigation.decode_task_edit_params({"draftTask": draft})
    assert decoded.task_id == "TIKI-DRAFT1"
    assert decoded.draft is draft
    assert decoded.focus == ""
    assert navigation.encode_task_edit_params(TaskEditParams()) is None


def test_field_order_clamps_at_ends() -> None:
    assert navigation.next_field("title") == "status"
    assert navigation.next_field("description") == "description"
    assert navigation.prev_field("title") == "title"
    assert navigation.prev_field("points") == "assignee"
    assert navigation.next_field("unknown") == "title"


def test_editable_fields_and_labels() -> None:
    assert navigation.is_editable_field("priority")
    assert not navigation.is_editable_field("status")
    assert navigation.field_label("points") == "Story Points"
    assert navigation.field_label("other") == "other"


def test_push_then_pop_restores_stack() -> None:
    stack = ViewStack()
    stack.push(navigation.VIEW_BOARD)
    stack.push(navigation.plugin_view_id("Kanban"), {"lane": 1})
    before = (stack.depth(), stack.current_view(), stack.previous_view())

    params = {"taskID": "TIKI-AAAAAA"}
    stack.push(navigation.VIEW_TASK_DETAIL, params)
    params["taskID"] = "TIKI-CHANGED"
    popped = stack.pop()

    assert popped.params == {"taskID": "TIKI-AAAAAA"}
    assert (stack.depth(), stack.current_view(), stack.previous_view()) == before
