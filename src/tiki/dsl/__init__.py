"""Filter, sort and lane action expression languages."""

from .action import LaneAction, apply_lane_action, parse_lane_action
from .filter import FilterExpr, matches, parse_filter
from .sort import SortRule, parse_sort, sort_tasks

__all__ = [
    "FilterExpr",
    "LaneAction",
    "SortRule",
    "apply_lane_action",
    "matches",
    "parse_filter",
    "parse_lane_action",
    "parse_sort",
    "sort_tasks",
]
