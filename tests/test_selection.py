from __future__ import annotations

from tiki.models import SearchResult, Task
from tiki.selection import BoardSelection, PluginSelection, SearchState


def _result(task_id: str) -> SearchResult:
    return SearchResult(task=Task(id=task_id, title=task_id), score=1.0)


def test_grid_navigation_stays_in_bounds() -> None:
    selection = PluginSelection("Backlog", columns=3)
    assert selection.move_selection("up", 7) is False
    assert selection.move_selection("left", 7) is False
    assert selection.move_selection("right", 7) is True
    assert selection.move_selection("down", 7) is True
    assert selection.selected_index == 4
    assert selection.move_selection("down", 7) is False

    selection.set_selected_index(6)
    assert selection.move_selection("right", 7) is False
    assert selection.move_selection("up", 7) is True
    assert selection.selected_index == 3
    assert selection.move_selection("down", 0) is False


def test_clamp_selection() -> None:
    selection = PluginSelection("Kanban")
    selection.set_selected_index(9)
    selection.clamp_selection(3)
    assert selection.selected_index == 2
    selection.clamp_selection(0)
    assert selection.selected_index == 0


def test_listeners_fire_on_changes_only() -> None:
    selection = PluginSelection("Kanban", columns=2)
    calls: list[int] = []
    listener_id = selection.add_listener(lambda: calls.append(1))
    selection.move_selection("left", 4)
    selection.move_selection("right", 4)
    assert calls == [1]
    selection.remove_listener(listener_id)
    selection.set_selected_index(0)
    assert calls == [1]


def test_toggle_view_mode_persists() -> None:
    saved: list[str] = []
    selection = PluginSelection("Kanban", persist_view_mode=saved.append)
    assert selection.view_mode == "compact"
    selection.toggle_view_mode()
    assert selection.view_mode == "expanded"
    assert saved == ["expanded"]
    selection.set_view_mode("bogus")
    assert selection.view_mode == "compact"


def test_toggle_view_mode_survives_persist_failure() -> None:
    def broken(mode: str) -> None:
        raise OSError("read-only")

    selection = BoardSelection(persist_view_mode=broken)
    selection.toggle_view_mode()
    assert selection.view_mode == "expanded"


def test_plugin_search_restores_index() -> None:
    selection = PluginSelection("Kanban")
    selection.set_selected_index(5)
    selection.save_pre_search_state()
    selection.set_search_results([_result("TIKI-AAAAAA")], "fix")
    selection.set_selected_index(0)
    assert selection.is_search_active()
    assert selection.search.query == "fix"

    selection.clear_search_results()
    assert not selection.is_search_active()
    assert selection.selected_index == 5


def test_board_search_restores_pane_and_row() -> None:
    selection = BoardSelection()
    selection.set_selection("col-review", 2)
    selection.save_pre_search_state()
    selection.set_search_results([], "nothing")
    selection.set_selection("col-todo", 0)
    selection.clear_search_results()
    assert selection.selected_pane == "col-review"
    assert selection.selected_row == 2


def test_board_pane_lookup_uses_status_columns() -> None:
    selection = BoardSelection()
    assert selection.pane_by_status("blocked").id == "col-progress"
    assert selection.pane_by_status("backlog") is None
    assert selection.next_pane_id("col-done") == ""
    assert selection.previous_pane_id("col-todo") == ""
    assert selection.status_for_pane("col-review") == "review"


def test_board_selection_moves_between_panes() -> None:
    selection = BoardSelection()
    assert selection.move_selection_left() is False
    assert selection.move_selection_right() is True
    assert selection.selected_pane == "col-progress"
    selection.set_selected_row_silent(3)
    assert selection.selected_row == 3


def test_search_state_results_are_copies() -> None:
    state = SearchState()
    assert state.results is None
    state.set_search_results([_result("TIKI-AAAAAA")], "a")
    state.results.clear()
    assert len(state.results) == 1
