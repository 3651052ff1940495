"""View definitions loaded from workflow.yaml files.

A workflow file holds a ``views:`` list. Each entry is either a task board
(``type: tiki``, the default) made of filtered lanes, or a document view
(``type: doki``) showing static markdown. The user scope file is loaded
first and the project file is merged over it by view name.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
import enum
from importlib import resources
import logging
import os
from pathlib import Path
from typing import Any, Union

import yaml
from rich.color import Color, ColorParseError

from . import storage
from .dsl.action import LaneAction, parse_lane_action
from .dsl.filter import FilterExpr, parse_filter
from .dsl.sort import SortRule, parse_sort
from .models import DEFAULT_MAX_POINTS, ActionParseError, FilterParseError, PluginConfigError, SortParseError

logger = logging.getLogger("tiki.plugins")

PLUGIN_TYPE_TIKI = "tiki"
PLUGIN_TYPE_DOKI = "doki"
PLUGIN_TYPES = (PLUGIN_TYPE_TIKI, PLUGIN_TYPE_DOKI)

FETCHER_FILE = "file"
FETCHER_INTERNAL = "internal"

VIEW_MODE_COMPACT = "compact"
VIEW_MODE_EXPANDED = "expanded"
VIEW_MODES = (VIEW_MODE_COMPACT, VIEW_MODE_EXPANDED)

MAX_LANES = 10
MAX_ACTIONS = 10
EMBEDDED_CONFIG_INDEX = -1

KEY_RUNE = "rune"
FUNCTION_KEYS = tuple(f"F{number}" for number in range(1, 13))


class Modifier(enum.IntFlag):
    NONE = 0
    SHIFT = 1
    CTRL = 2
    ALT = 4


@dataclass(frozen=True, slots=True)
class KeyChord:
    key: str = ""
    rune: str = ""
    modifier: Modifier = Modifier.NONE

    def is_empty(self) -> bool:
        return not self.key and not self.rune and self.modifier == Modifier.NONE


@dataclass(slots=True)
class Lane:
    name: str
    columns: int = 1
    filter: FilterExpr | None = None
    action: LaneAction = field(default_factory=LaneAction)
    filter_text: str = ""
    action_text: str = ""


@dataclass(slots=True)
class PluginAction:
    rune: str
    label: str
    action: LaneAction
    action_text: str = ""


@dataclass(slots=True)
class PluginBase:
    name: str
    key: KeyChord = field(default_factory=KeyChord)
    foreground: str = ""
    background: str = ""
    file_path: str = ""
    config_index: int = EMBEDDED_CONFIG_INDEX
    type: str = PLUGIN_TYPE_TIKI
    default: bool = False


@dataclass(slots=True)
class TikiPlugin(PluginBase):
    lanes: list[Lane] = field(default_factory=list)
    filter: FilterExpr | None = None
    filter_text: str = ""
    sort: list[SortRule] = field(default_factory=list)
    sort_text: str = ""
    view_mode: str = ""
    actions: list[PluginAction] = field(default_factory=list)


@dataclass(slots=True)
class DokiPlugin(PluginBase):
    fetcher: str = ""
    text: str = ""
    url: str = ""


Plugin = Union[TikiPlugin, DokiPlugin]


# keys and colors


def _function_key(text: str) -> str | None:
    return text if text in FUNCTION_KEYS else None


def parse_key(text: str | None) -> KeyChord:
    """Parse an activation key such as ``L``, ``F2``, ``Ctrl-K`` or ``Alt-F3``."""
    raw = (text or "").strip()
    if not raw:
        return KeyChord()
    upper = raw.upper()
    for prefix, modifier in (("CTRL-", Modifier.CTRL), ("ALT-", Modifier.ALT), ("SHIFT-", Modifier.SHIFT)):
        if not upper.startswith(prefix):
            continue
        rest = upper[len(prefix) :]
        function_key = _function_key(rest)
        if function_key is not None:
            return KeyChord(function_key, "", modifier)
        if len(rest) == 1 and "A" <= rest <= "Z":
            if modifier == Modifier.CTRL:
                return KeyChord(f"Ctrl-{rest}", "", modifier)
            return KeyChord(KEY_RUNE, rest, modifier)
        label = prefix[:-1].capitalize()
        raise PluginConfigError(
            f"invalid {label.lower()} key: {raw!r} (expected {label}-A..{label}-Z or {label}-F1..{label}-F12)"
        )
    function_key = _function_key(upper)
    if function_key is not None:
        return KeyChord(function_key)
    if len(raw) != 1:
        raise PluginConfigError(
            f"invalid key: {raw!r} (expected single character, F1..F12, Ctrl-X, Alt-X, or Shift-X)"
        )
    return KeyChord(KEY_RUNE, raw)


def format_key(chord: KeyChord) -> str:
    if chord.is_empty():
        return ""
    if chord.key.startswith("Ctrl-"):
        return chord.key
    base = chord.rune if chord.key == KEY_RUNE else chord.key
    for modifier, label in ((Modifier.CTRL, "Ctrl"), (Modifier.ALT, "Alt"), (Modifier.SHIFT, "Shift")):
        if chord.modifier & modifier:
            return f"{label}-{base}"
    return base


def parse_color(text: str | None) -> str:
    """Return a normalized color name, or "" for the terminal default."""
    raw = (text or "").strip()
    if not raw:
        return ""
    candidates = [raw] if raw.startswith("#") else [raw, f"#{raw}"]
    for candidate in candidates:
        try:
            return Color.parse(candidate).name
        except ColorParseError:
            continue
    logger.warning("ignoring invalid color %r", raw)
    return ""


# parsing


def _text(cfg: dict[str, Any], key: str) -> str:
    value = cfg.get(key)
    if value is None:
        return ""
    return str(value).strip()


def _entries(cfg: dict[str, Any], key: str) -> list[Any]:
    value = cfg.get(key)
    if value is None:
        return []
    if not isinstance(value, list):
        raise PluginConfigError(f"'{key}' must be a list")
    return value


def _parse_lanes(entries: list[Any], max_points: int) -> list[Lane]:
    if not entries:
        raise PluginConfigError("tiki plugin requires 'lanes'")
    if len(entries) > MAX_LANES:
        raise PluginConfigError(f"tiki plugin has too many lanes ({len(entries)}), max is {MAX_LANES}")
    lanes: list[Lane] = []
    for index, entry in enumerate(entries):
        if not isinstance(entry, dict):
            raise PluginConfigError(f"lane {index} must be a mapping")
        name = _text(entry, "name")
        if not name:
            raise PluginConfigError(f"lane {index} missing name")
        columns = entry.get("columns") or 1
        if isinstance(columns, bool) or not isinstance(columns, int) or columns < 0:
            raise PluginConfigError(f"lane {name!r} has invalid columns {columns!r}")
        filter_text = _text(entry, "filter")
        action_text = _text(entry, "action")
        try:
            filter_expr = parse_filter(filter_text)
        except FilterParseError as exc:
            raise PluginConfigError(f"parsing filter for lane {name!r}: {exc}") from exc
        try:
            action = parse_lane_action(action_text, max_points)
        except ActionParseError as exc:
            raise PluginConfigError(f"parsing action for lane {name!r}: {exc}") from exc
        lanes.append(Lane(name, columns, filter_expr, action, filter_text, action_text))
    return lanes


def _parse_actions(entries: list[Any], max_points: int) -> list[PluginAction]:
    if len(entries) > MAX_ACTIONS:
        raise PluginConfigError(f"too many actions ({len(entries)}), max is {MAX_ACTIONS}")
    seen: set[str] = set()
    actions: list[PluginAction] = []
    for index, entry in enumerate(entries):
        if not isinstance(entry, dict):
            raise PluginConfigError(f"action {index} must be a mapping")
        key = "" if entry.get("key") is None else str(entry.get("key"))
        if not key:
            raise PluginConfigError(f"action {index} missing 'key'")
        if len(key) != 1:
            raise PluginConfigError(f"action {index} key must be a single character, got {key!r}")
        if not key.isprintable() or key.isspace():
            raise PluginConfigError(f"action {index} key must be a printable character, got {key!r}")
        if key in seen:
            raise PluginConfigError(f"duplicate action key {key!r}")
        seen.add(key)
        label = _text(entry, "label")
        if not label:
            raise PluginConfigError(f"action {index} (key {key!r}) missing 'label'")
        action_text = _text(entry, "action")
        if not action_text:
            raise PluginConfigError(f"action {index} (key {key!r}) missing 'action'")
        try:
            action = parse_lane_action(action_text, max_points)
        except ActionParseError as exc:
            raise PluginConfigError(f"parsing action {index} (key {key!r}): {exc}") from exc
        if action.is_empty():
            raise PluginConfigError(f"action {index} (key {key!r}) has empty action expression")
        actions.append(PluginAction(key, label, action, action_text))
    return actions


def parse_plugin_config(cfg: dict[str, Any], source: str, max_points: int = DEFAULT_MAX_POINTS) -> Plugin:
    """Build a plugin from one ``views:`` entry; raises PluginConfigError."""
    name = _text(cfg, "name")
    if not name:
        raise PluginConfigError(f"plugin must have a name ({source})")
    try:
        key = parse_key(_text(cfg, "key"))
    except PluginConfigError as exc:
        raise PluginConfigError(f"plugin {name!r} ({source}): parsing key: {exc}") from exc

    plugin_type = _text(cfg, "type") or PLUGIN_TYPE_TIKI
    base: dict[str, Any] = {
        "name": name,
        "key": key,
        "foreground": parse_color(_text(cfg, "foreground")),
        "background": parse_color(_text(cfg, "background")),
        "type": plugin_type,
        "default": bool(cfg.get("default", False)),
    }

    if plugin_type == PLUGIN_TYPE_DOKI:
        for forbidden in ("filter", "sort", "view", "lanes", "actions"):
            if cfg.get(forbidden):
                raise PluginConfigError(f"doki plugin cannot have {forbidden!r}")
        fetcher = _text(cfg, "fetcher")
        if fetcher not in (FETCHER_FILE, FETCHER_INTERNAL):
            raise PluginConfigError(f"doki plugin fetcher must be 'file' or 'internal', got {fetcher!r}")
        url = _text(cfg, "url")
        text = cfg.get("text") or ""
        if fetcher == FETCHER_FILE and not url:
            raise PluginConfigError("doki plugin with file fetcher requires 'url'")
        if fetcher == FETCHER_INTERNAL and not str(text).strip():
            raise PluginConfigError("doki plugin with internal fetcher requires 'text'")
        return DokiPlugin(**base, fetcher=fetcher, text=str(text), url=url)

    if plugin_type != PLUGIN_TYPE_TIKI:
        raise PluginConfigError(f"unknown plugin type: {plugin_type}")

    for forbidden in ("fetcher", "text", "url"):
        if cfg.get(forbidden):
            raise PluginConfigError(f"tiki plugin cannot have {forbidden!r}")
    view_mode = _text(cfg, "view")
    if view_mode and view_mode not in VIEW_MODES:
        raise PluginConfigError(f"invalid view mode {view_mode!r}, expected compact or expanded")
    lanes = _parse_lanes(_entries(cfg, "lanes"), max_points)
    filter_text = _text(cfg, "filter")
    sort_text = _text(cfg, "sort")
    try:
        filter_expr = parse_filter(filter_text)
        sort_rules = parse_sort(sort_text)
    except (FilterParseError, SortParseError) as exc:
        raise PluginConfigError(f"plugin {name!r} ({source}): {exc}") from exc
    try:
        actions = _parse_actions(_entries(cfg, "actions"), max_points)
    except PluginConfigError as exc:
        raise PluginConfigError(f"plugin {name!r} ({source}): {exc}") from exc
    return TikiPlugin(
        **base,
        lanes=lanes,
        filter=filter_expr,
        filter_text=filter_text,
        sort=sort_rules,
        sort_text=sort_text,
        view_mode=view_mode,
        actions=actions,
    )


# merging


def merge_plugin_definitions(base: Plugin, override: Plugin) -> Plugin:
    """Layer override over base; only two board views merge field by field."""
    if not (isinstance(base, TikiPlugin) and isinstance(override, TikiPlugin)):
        return override
    merged = replace(
        base,
        file_path=override.file_path,
        config_index=override.config_index,
        lanes=list(base.lanes),
        sort=list(base.sort),
        actions=list(base.actions),
        default=base.default or override.default,
    )
    if not override.key.is_empty():
        merged.key = override.key
    if override.foreground:
        merged.foreground = override.foreground
    if override.background:
        merged.background = override.background
    if override.lanes:
        merged.lanes = list(override.lanes)
    if override.filter is not None:
        merged.filter = override.filter
        merged.filter_text = override.filter_text
    if override.sort:
        merged.sort = list(override.sort)
        merged.sort_text = override.sort_text
    if override.view_mode:
        merged.view_mode = override.view_mode
    if override.actions:
        merged.actions = list(override.actions)
    return merged


def merge_plugin_lists(base: list[Plugin], overrides: list[Plugin]) -> list[Plugin]:
    base_by_name = {plugin.name: plugin for plugin in base}
    overridden: set[str] = set()
    merged_overrides: list[Plugin] = []
    for override in overrides:
        existing = base_by_name.get(override.name)
        if existing is None:
            merged_overrides.append(override)
            continue
        merged_overrides.append(merge_plugin_definitions(existing, override))
        overridden.add(override.name)
        logger.info("view %s overridden by %s", override.name, override.file_path)
    return [plugin for plugin in base if plugin.name not in overridden] + merged_overrides


# loading


def _parse_views(data: Any, source: str, file_path: str, max_points: int) -> tuple[list[Plugin], list[str]]:
    if not isinstance(data, dict):
        return [], [] if data is None else [f"{source}: expected a mapping with 'views'"]
    views = data.get("views")
    if not views:
        return [], []
    if not isinstance(views, list):
        return [], [f"{source}: 'views' must be a list"]
    plugins: list[Plugin] = []
    errors: list[str] = []
    for index, entry in enumerate(views):
        if not isinstance(entry, dict) or not _text(entry, "name"):
            message = f"{source}: view at index {index} has no name"
            logger.warning(message)
            errors.append(message)
            continue
        name = _text(entry, "name")
        try:
            plugin = parse_plugin_config(entry, f"{source}:{name}", max_points)
        except PluginConfigError as exc:
            message = f"{source}: view {name!r}: {exc}"
            logger.warning(message)
            errors.append(message)
            continue
        plugin.config_index = index
        plugin.file_path = file_path
        plugins.append(plugin)
        logger.info("loaded view %s from %s (key %s)", name, source, format_key(plugin.key) or "-")
    return plugins, errors


def load_plugins_from_file(path: Path, max_points: int = DEFAULT_MAX_POINTS) -> tuple[list[Plugin], list[str]]:
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as exc:
        logger.warning("failed to read workflow file %s: %s", path, exc)
        return [], [f"{path}: {exc}"]
    return _parse_views(data, str(path), str(path), max_points)


def embedded_workflow_text() -> str:
    return resources.files("tiki").joinpath("resources", "workflow.yaml").read_text(encoding="utf-8")


def load_embedded_plugins(max_points: int = DEFAULT_MAX_POINTS) -> list[Plugin]:
    try:
        data = yaml.safe_load(embedded_workflow_text())
    except yaml.YAMLError as exc:
        logger.error("failed to parse embedded workflow: %s", exc)
        return []
    plugins, errors = _parse_views(data, "embedded", "", max_points)
    for message in errors:
        logger.error(message)
    for plugin in plugins:
        plugin.config_index = EMBEDDED_CONFIG_INDEX
    return plugins


def find_workflow_files(project_root: Path, environ: dict[str, str] | None = None) -> list[Path]:
    """Workflow files in merge order: user scope first, then project scope."""
    candidates = [storage.user_workflow_path(environ), storage.project_workflow_path(project_root)]
    found: list[Path] = []
    for candidate in candidates:
        if candidate.is_file() and candidate.resolve() not in {path.resolve() for path in found}:
            found.append(candidate)
    return found


def load_plugins(
    project_root: Path,
    environ: dict[str, str] | None = None,
    max_points: int = DEFAULT_MAX_POINTS,
) -> list[Plugin]:
    files = find_workflow_files(project_root, environ)
    if not files:
        logger.debug("no workflow files found, using built-in views")
        return load_embedded_plugins(max_points)

    all_errors: list[str] = []
    merged, errors = load_plugins_from_file(files[0], max_points)
    all_errors.extend(errors)
    for path in files[1:]:
        overrides, errors = load_plugins_from_file(path, max_points)
        all_errors.extend(errors)
        if overrides:
            merged = merge_plugin_lists(merged, overrides)

    if not merged:
        remove_hint = "\n  rm ".join(str(path) for path in files)
        if all_errors:
            details = "\n  ".join(all_errors)
            raise PluginConfigError(
                f"no valid views loaded:\n  {details}\n\n"
                "To install fresh defaults, remove the workflow file(s) and restart tiki:\n\n"
                f"  rm {remove_hint}"
            )
        names = ", ".join(str(path) for path in files)
        raise PluginConfigError(
            f"no views defined in {names}\n\n"
            "To install fresh defaults, remove the workflow file(s) and restart tiki:\n\n"
            f"  rm {remove_hint}"
        )
    return merged


def write_default_workflow_if_missing(project_root: Path, environ: dict[str, str] | None = None) -> bool:
    if find_workflow_files(project_root, environ):
        return False
    path = storage.project_workflow_path(project_root)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(embedded_workflow_text(), encoding="utf-8")
    return True


def default_plugin(plugins: list[Plugin]) -> Plugin | None:
    for plugin in plugins:
        if plugin.default:
            return plugin
    return plugins[0] if plugins else None


def find_plugin(plugins: list[Plugin], name: str) -> Plugin | None:
    wanted = name.strip().lower()
    for plugin in plugins:
        if plugin.name.lower() == wanted:
            return plugin
    return None


# doki content


def find_plugin_file(name: str, base_dir: Path) -> Path | None:
    for candidate in (Path(name), Path(os.curdir) / name, Path(base_dir) / name):
        if candidate.exists():
            return candidate
    return None


def resolve_doki_content(plugin: DokiPlugin, base_dir: Path) -> str:
    if plugin.fetcher == FETCHER_INTERNAL:
        return plugin.text
    path = find_plugin_file(plugin.url, base_dir)
    if path is None:
        raise PluginConfigError(f"document {plugin.url!r} for view {plugin.name!r} not found")
    return path.read_text(encoding="utf-8")


def save_view_mode(plugin: TikiPlugin, mode: str, project_root: Path) -> None:
    """Persist plugin's view mode to the workflow file it came from."""
    if mode not in VIEW_MODES:
        raise PluginConfigError(f"invalid view mode {mode!r}, expected compact or expanded")
    if plugin.config_index >= 0 and plugin.file_path:
        path = Path(plugin.file_path)
    else:
        path = storage.project_workflow_path(project_root)
    storage.save_view_mode(path, plugin.name, plugin.config_index, mode)
    plugin.view_mode = mode
