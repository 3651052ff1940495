from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from tiki import plugins
from tiki.models import PluginConfigError
from tiki.plugins import DokiPlugin, KeyChord, Modifier, TikiPlugin


def _env(tmp_path: Path) -> dict[str, str]:
    return {"XDG_CONFIG_HOME": str(tmp_path / "xdg")}


def _write_workflow(path: Path, views: list[dict]) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(yaml.safe_dump({"views": views}, sort_keys=False), encoding="utf-8")
    return path


def _board(name: str, **extra) -> dict:
    view = {"name": name, "lanes": [{"name": "Open", "filter": "status = todo", "action": "status=todo"}]}
    view.update(extra)
    return view


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("", KeyChord()),
        ("L", KeyChord("rune", "L")),
        ("f2", KeyChord("F2")),
        ("Ctrl-k", KeyChord("Ctrl-K", "", Modifier.CTRL)),
        ("Alt-F3", KeyChord("F3", "", Modifier.ALT)),
        ("Shift-x", KeyChord("rune", "X", Modifier.SHIFT)),
    ],
)
def test_parse_key(text: str, expected: KeyChord) -> None:
    assert plugins.parse_key(text) == expected


@pytest.mark.parametrize("text", ["Ctrl-1", "Alt-F13", "ab", "F13"])
def test_parse_key_rejects_invalid(text: str) -> None:
    with pytest.raises(PluginConfigError):
        plugins.parse_key(text)


def test_format_key_round_trips_labels() -> None:
    assert plugins.format_key(plugins.parse_key("Ctrl-R")) == "Ctrl-R"
    assert plugins.format_key(plugins.parse_key("Alt-F3")) == "Alt-F3"
    assert plugins.format_key(plugins.parse_key("?")) == "?"
    assert plugins.format_key(KeyChord()) == ""


def test_parse_color_accepts_hex_and_names() -> None:
    assert plugins.parse_color("#87ceeb") == "#87ceeb"
    assert plugins.parse_color("red") == "red"
    assert plugins.parse_color("not-a-colour") == ""
    assert plugins.parse_color("") == ""


def test_parse_tiki_plugin() -> None:
    plugin = plugins.parse_plugin_config(
        {
            "name": "Sprint",
            "key": "F5",
            "sort": "priority DESC",
            "filter": "type = bug",
            "view": "expanded",
            "lanes": [
                {"name": "Todo", "filter": "status = todo", "action": "status=todo"},
                {"name": "Done", "columns": 2, "filter": "status = done", "action": "status=done, tags+=[shipped]"},
            ],
            "actions": [{"key": "a", "label": "Mine", "action": "assignee=CURRENT_USER"}],
        },
        "test",
    )
    assert isinstance(plugin, TikiPlugin)
    assert [lane.name for lane in plugin.lanes] == ["Todo", "Done"]
    assert plugin.lanes[1].columns == 2
    assert len(plugin.lanes[1].action.ops) == 2
    assert plugin.sort[0].descending is True
    assert plugin.filter is not None
    assert plugin.view_mode == "expanded"
    assert plugin.actions[0].rune == "a"


def test_parse_doki_plugin() -> None:
    plugin = plugins.parse_plugin_config(
        {"name": "Notes", "type": "doki", "fetcher": "internal", "text": "# hi"}, "test"
    )
    assert isinstance(plugin, DokiPlugin)
    assert plugins.resolve_doki_content(plugin, Path(".")) == "# hi"


@pytest.mark.parametrize(
    ("cfg", "message"),
    [
        ({"lanes": [{"name": "x"}]}, "must have a name"),
        ({"name": "V"}, "requires 'lanes'"),
        ({"name": "V", "type": "wiki"}, "unknown plugin type"),
        ({"name": "V", "lanes": [{"name": "x", "filter": "status ="}]}, "parsing filter"),
        ({"name": "V", "lanes": [{"name": "x", "action": "colour=red"}]}, "parsing action"),
        ({"name": "V", "lanes": [{"name": f"l{i}"} for i in range(11)]}, "too many lanes"),
        ({"name": "V", "view": "huge", "lanes": [{"name": "x"}]}, "invalid view mode"),
        ({"name": "V", "text": "hi", "lanes": [{"name": "x"}]}, "cannot have"),
        ({"name": "D", "type": "doki", "fetcher": "file"}, "requires 'url'"),
        ({"name": "D", "type": "doki", "fetcher": "internal", "text": "x", "lanes": [{"name": "x"}]}, "cannot have"),
        (
            {
                "name": "V",
                "lanes": [{"name": "x"}],
                "actions": [
                    {"key": "a", "label": "one", "action": "status=done"},
                    {"key": "a", "label": "two", "action": "status=todo"},
                ],
            },
            "duplicate action key",
        ),
        ({"name": "V", "lanes": [{"name": "x"}], "actions": [{"key": "ab", "label": "x", "action": "status=done"}]}, "single character"),
    ],
)
def test_invalid_plugin_configs(cfg: dict, message: str) -> None:
    with pytest.raises(PluginConfigError) as excinfo:
        plugins.parse_plugin_config(cfg, "test")
    assert message in str(excinfo.value)


def test_embedded_views_load_when_no_files(tmp_path: Path) -> None:
    loaded = plugins.load_plugins(tmp_path, _env(tmp_path))
    names = [plugin.name for plugin in loaded]
    assert names[:4] == ["Kanban", "Backlog", "Recent", "Roadmap"]
    assert plugins.default_plugin(loaded).name == "Kanban"
    assert all(plugin.config_index == plugins.EMBEDDED_CONFIG_INDEX for plugin in loaded)
    assert isinstance(plugins.find_plugin(loaded, "help"), DokiPlugin)


def test_project_views_override_user_views_by_name(tmp_path: Path) -> None:
    environ = _env(tmp_path)
    _write_workflow(
        tmp_path / "xdg" / "tiki" / "workflow.yaml",
        [_board("Kanban", key="F1", sort="priority"), _board("Personal")],
    )
    project_file = _write_workflow(
        tmp_path / ".doc" / "workflow.yaml",
        [{"name": "Kanban", "key": "F2", "lanes": [{"name": "Only"}]}, _board("Team")],
    )

    loaded = plugins.load_plugins(tmp_path, environ)
    assert [plugin.name for plugin in loaded] == ["Personal", "Kanban", "Team"]
    kanban = plugins.find_plugin(loaded, "kanban")
    assert plugins.format_key(kanban.key) == "F2"
    assert [lane.name for lane in kanban.lanes] == ["Only"]
    assert kanban.sort_text == "priority"
    assert kanban.file_path == str(project_file)


def test_invalid_views_are_skipped(tmp_path: Path) -> None:
    _write_workflow(
        tmp_path / ".doc" / "workflow.yaml",
        [_board("Good"), {"name": "Bad", "lanes": []}, {"lanes": []}],
    )
    loaded = plugins.load_plugins(tmp_path, _env(tmp_path))
    assert [plugin.name for plugin in loaded] == ["Good"]


def test_views_with_unparseable_filters_are_skipped(tmp_path: Path) -> None:
    _write_workflow(
        tmp_path / ".doc" / "workflow.yaml",
        [
            _board("Good"),
            _board("Huge", filter="(NOW - CreatedAt) < 99999999999day"),
            {"name": "Deep", "lanes": [{"name": "x", "filter": "(" * 2000 + "status = todo" + ")" * 2000}]},
        ],
    )
    loaded = plugins.load_plugins(tmp_path, _env(tmp_path))
    assert [plugin.name for plugin in loaded] == ["Good"]


def test_lane_actions_respect_configured_max_points(tmp_path: Path) -> None:
    view = {"name": "Sizing", "lanes": [{"name": "Big", "action": "points=15"}]}
    with pytest.raises(PluginConfigError, match="points value out of range"):
        plugins.parse_plugin_config(view, "test")

    plugin = plugins.parse_plugin_config(view, "test", max_points=20)
    assert plugin.lanes[0].action_text == "points=15"

    _write_workflow(tmp_path / ".doc" / "workflow.yaml", [view])
    loaded = plugins.load_plugins(tmp_path, _env(tmp_path), max_points=20)
    assert [plugin.name for plugin in loaded] == ["Sizing"]


def test_all_invalid_views_raise_with_hint(tmp_path: Path) -> None:
    _write_workflow(tmp_path / ".doc" / "workflow.yaml", [{"name": "Bad"}])
    with pytest.raises(PluginConfigError) as excinfo:
        plugins.load_plugins(tmp_path, _env(tmp_path))
    assert "no valid views loaded" in str(excinfo.value)
    assert "rm " in str(excinfo.value)


def test_write_default_workflow_once(tmp_path: Path) -> None:
    environ = _env(tmp_path)
    assert plugins.write_default_workflow_if_missing(tmp_path, environ) is True
    assert plugins.write_default_workflow_if_missing(tmp_path, environ) is False
    loaded = plugins.load_plugins(tmp_path, environ)
    assert plugins.find_plugin(loaded, "Kanban").file_path == str(tmp_path / ".doc" / "workflow.yaml")


def test_save_view_mode_writes_back_to_source_file(tmp_path: Path) -> None:
    path = _write_workflow(tmp_path / ".doc" / "workflow.yaml", [_board("Kanban"), _board("Team")])
    loaded = plugins.load_plugins(tmp_path, _env(tmp_path))
    team = plugins.find_plugin(loaded, "Team")

    plugins.save_view_mode(team, "expanded", tmp_path)
    assert team.view_mode == "expanded"
    data = yaml.safe_load(path.read_text(encoding="utf-8"))
    assert data["views"][1]["view"] == "expanded"

    with pytest.raises(PluginConfigError):
        plugins.save_view_mode(team, "tiny", tmp_path)


def test_doki_file_fetcher_reads_relative_document(tmp_path: Path) -> None:
    (tmp_path / "guide.md").write_text("# Guide\n", encoding="utf-8")
    plugin = plugins.parse_plugin_config(
        {"name": "Guide", "type": "doki", "fetcher": "file", "url": "guide.md"}, "test"
    )
    assert plugins.resolve_doki_content(plugin, tmp_path) == "# Guide\n"
    missing = plugins.parse_plugin_config(
        {"name": "Gone", "type": "doki", "fetcher": "file", "url": "missing-doc.md"}, "test"
    )
    with pytest.raises(PluginConfigError):
        plugins.resolve_doki_content(missing, tmp_path)
