"""Selection and search state for the board and plugin views."""

from __future__ import annotations

from dataclasses import dataclass
import logging
import threading
from typing import Callable

from .enums import STATUS_DONE, STATUS_IN_PROGRESS, STATUS_REVIEW, STATUS_TODO, status_column
from .models import SearchResult

logger = logging.getLogger("tiki.selection")

VIEW_MODE_COMPACT = "compact"
VIEW_MODE_EXPANDED = "expanded"
BOARD_VIEW_NAME = "Board"

DIRECTION_UP = "up"
DIRECTION_DOWN = "down"
DIRECTION_LEFT = "left"
DIRECTION_RIGHT = "right"

Listener = Callable[[], None]
PersistViewMode = Callable[[str], None]


class SearchState:
    """Active search results plus the selection to restore when search ends."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._results: list[SearchResult] | None = None
        self._query = ""
        self.pre_search_index = 0
        self.pre_search_pane = ""
        self.pre_search_row = 0

    def save_pre_search_state(self, index: int) -> None:
        with self._lock:
            self.pre_search_index = index

    def save_pre_search_pane_state(self, pane: str, row: int) -> None:
        with self._lock:
            self.pre_search_pane = pane
            self.pre_search_row = row

    def set_search_results(self, results: list[SearchResult], query: str) -> None:
        with self._lock:
            self._results = list(results)
            self._query = query

    def clear_search_results(self) -> tuple[int, str, int]:
        with self._lock:
            self._results = None
            self._query = ""
            return self.pre_search_index, self.pre_search_pane, self.pre_search_row

    def is_active(self) -> bool:
        with self._lock:
            return self._results is not None

    @property
    def query(self) -> str:
        with self._lock:
            return self._query

    @property
    def results(self) -> list[SearchResult] | None:
        with self._lock:
            return None if self._results is None else list(self._results)


class _ListenerRegistry:
    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._listeners: dict[int, Listener] = {}
        self._next_id = 1

    def add(self, listener: Listener) -> int:
        with self._lock:
            listener_id = self._next_id
            self._next_id += 1
            self._listeners[listener_id] = listener
            return listener_id

    def remove(self, listener_id: int) -> None:
        with self._lock:
            self._listeners.pop(listener_id, None)

    def notify(self) -> None:
        with self._lock:
            listeners = list(self._listeners.values())
        for listener in listeners:
            listener()


def _toggled(mode: str) -> str:
    return VIEW_MODE_EXPANDED if mode == VIEW_MODE_COMPACT else VIEW_MODE_COMPACT


def _checked_mode(mode: str) -> str:
    return VIEW_MODE_EXPANDED if mode == VIEW_MODE_EXPANDED else VIEW_MODE_COMPACT


@dataclass(frozen=True, slots=True)
class Pane:
    id: str
    name: str
    status: str


DEFAULT_PANES = (
    Pane("col-todo", "To Do", STATUS_TODO),
    Pane("col-progress", "In Progress", STATUS_IN_PROGRESS),
    Pane("col-review", "Review", STATUS_REVIEW),
    Pane("col-done", "Done", STATUS_DONE),
)


class BoardSelection:
    """Selected pane and row on the status board."""

    def __init__(
        self,
        panes: tuple[Pane, ...] = DEFAULT_PANES,
        persist_view_mode: PersistViewMode | None = None,
    ) -> None:
        self._lock = threading.RLock()
        self._panes = list(panes)
        self._selected_pane = self._panes[0].id if self._panes else ""
        self._selected_row = 0
        self._view_mode = VIEW_MODE_COMPACT
        self._listeners = _ListenerRegistry()
        self._persist_view_mode = persist_view_mode
        self.search = SearchState()

    @property
    def panes(self) -> list[Pane]:
        return list(self._panes)

    def pane_by_id(self, pane_id: str) -> Pane | None:
        for pane in self._panes:
            if pane.id == pane_id:
                return pane
        return None

    def pane_by_status(self, status: str) -> Pane | None:
        column = status_column(status)
        for pane in self._panes:
            if pane.status == column:
                return pane
        return None

    def status_for_pane(self, pane_id: str) -> str:
        pane = self.pane_by_id(pane_id)
        return pane.status if pane is not None else ""

    def _index(self, pane_id: str) -> int:
        for index, pane in enumerate(self._panes):
            if pane.id == pane_id:
                return index
        return -1

    def next_pane_id(self, pane_id: str) -> str:
        index = self._index(pane_id)
        if 0 <= index < len(self._panes) - 1:
            return self._panes[index + 1].id
        return ""

    def previous_pane_id(self, pane_id: str) -> str:
        index = self._index(pane_id)
        if index > 0:
            return self._panes[index - 1].id
        return ""

    @property
    def selected_pane(self) -> str:
        with self._lock:
            return self._selected_pane

    @property
    def selected_row(self) -> int:
        with self._lock:
            return self._selected_row

    def set_selection(self, pane_id: str, row: int) -> None:
        with self._lock:
            self._selected_pane = pane_id
            self._selected_row = row
        self._listeners.notify()

    def set_selected_row_silent(self, row: int) -> None:
        with self._lock:
            self._selected_row = row

    def move_selection_left(self) -> bool:
        target = self.previous_pane_id(self.selected_pane)
        if not target:
            return False
        self.set_selection(target, 0)
        return True

    def move_selection_right(self) -> bool:
        target = self.next_pane_id(self.selected_pane)
        if not target:
            return False
        self.set_selection(target, 0)
        return True

    def add_listener(self, listener: Listener) -> int:
        return self._listeners.add(listener)

    def remove_listener(self, listener_id: int) -> None:
        self._listeners.remove(listener_id)

    @property
    def view_mode(self) -> str:
        with self._lock:
            return self._view_mode

    def set_view_mode(self, mode: str) -> None:
        with self._lock:
            self._view_mode = _checked_mode(mode)

    def toggle_view_mode(self) -> None:
        with self._lock:
            self._view_mode = _toggled(self._view_mode)
            mode = self._view_mode
        if self._persist_view_mode is not None:
            try:
                self._persist_view_mode(mode)
            except OSError as exc:
                logger.error("failed to save board view mode: %s", exc)
        self._listeners.notify()

    def save_pre_search_state(self) -> None:
        with self._lock:
            pane, row = self._selected_pane, self._selected_row
        self.search.save_pre_search_pane_state(pane, row)

    def set_search_results(self, results: list[SearchResult], query: str) -> None:
        self.search.set_search_results(results, query)
        self._listeners.notify()

    def clear_search_results(self) -> None:
        _, pane, row = self.search.clear_search_results()
        with self._lock:
            if pane:
                self._selected_pane = pane
            self._selected_row = row
        self._listeners.notify()

    def is_search_active(self) -> bool:
        return self.search.is_active()


class PluginSelection:
    """Selected index in a plugin's grid of task cards."""

    def __init__(
        self,
        name: str,
        columns: int = 4,
        persist_view_mode: PersistViewMode | None = None,
    ) -> None:
        self.name = name
        self.columns = max(columns, 1)
        self.config_index = -1
        self._lock = threading.RLock()
        self._selected_index = 0
        self._view_mode = VIEW_MODE_COMPACT
        self._listeners = _ListenerRegistry()
        self._persist_view_mode = persist_view_mode
        self.search = SearchState()

    @property
    def selected_index(self) -> int:
        with self._lock:
            return self._selected_index

    def set_selected_index(self, index: int) -> None:
        with self._lock:
            self._selected_index = index
        self._listeners.notify()

    def add_listener(self, listener: Listener) -> int:
        return self._listeners.add(listener)

    def remove_listener(self, listener_id: int) -> None:
        self._listeners.remove(listener_id)

    def move_selection(self, direction: str, count: int) -> bool:
        """Move within a grid of ``count`` cards; returns whether anything moved."""
        if count <= 0:
            return False
        with self._lock:
            old = self._selected_index
            row, col = divmod(old, self.columns)
            rows = (count + self.columns - 1) // self.columns
            if direction == DIRECTION_UP and row > 0:
                self._selected_index -= self.columns
            elif direction == DIRECTION_DOWN:
                candidate = old + self.columns
                if row < rows - 1 and candidate < count:
                    self._selected_index = candidate
            elif direction == DIRECTION_LEFT and col > 0:
                self._selected_index -= 1
            elif direction == DIRECTION_RIGHT:
                if col < self.columns - 1 and old + 1 < count:
                    self._selected_index += 1
            moved = self._selected_index != old
        if moved:
            self._listeners.notify()
        return moved

    def clamp_selection(self, count: int) -> None:
        with self._lock:
            if self._selected_index >= count:
                self._selected_index = count - 1
            if self._selected_index < 0:
                self._selected_index = 0

    @property
    def view_mode(self) -> str:
        with self._lock:
            return self._view_mode

    def set_view_mode(self, mode: str) -> None:
        with self._lock:
            self._view_mode = _checked_mode(mode)

    def toggle_view_mode(self) -> None:
        with self._lock:
            self._view_mode = _toggled(self._view_mode)
            mode = self._view_mode
        if self._persist_view_mode is not None:
            try:
                self._persist_view_mode(mode)
            except OSError as exc:
                logger.error("failed to save view mode for %s: %s", self.name, exc)
        self._listeners.notify()

    def save_pre_search_state(self) -> None:
        self.search.save_pre_search_state(self.selected_index)

    def set_search_results(self, results: list[SearchResult], query: str) -> None:
        self.search.set_search_results(results, query)
        self._listeners.notify()

    def clear_search_results(self) -> None:
        index, _, _ = self.search.clear_search_results()
        with self._lock:
            self._selected_index = index
        self._listeners.notify()

    def is_search_active(self) -> bool:
        return self.search.is_active()
