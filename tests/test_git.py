from __future__ import annotations

import datetime as dt
import os
from pathlib import Path
import shutil
import subprocess

import pytest

from tiki.git import GitShell, _parse_commit_stream, parse_git_time
from tiki.models import GitError

def _git(repo: Path, *args: str, when: str | None = None) -> None:
    env = dict(os.environ)
    if when is not None:
        env["GIT_AUTHOR_DATE"] = when
        env["GIT_COMMITTER_DATE"] = when
    subprocess.run(["git", *args], cwd=repo, env=env, check=True, capture_output=True, text=True)


def _write_task(repo: Path, name: str, status: str) -> Path:
    path = repo / ".doc" / "tiki" / name
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(f"---\ntitle: Task\nstatus: {status}\n---\n", encoding="utf-8")
    return path


@pytest.fixture
def repo(tmp_path: Path) -> Path:
    if shutil.which("git") is None:
        pytest.skip("git executable not available")
    root = tmp_path / "repo"
    root.mkdir()
    _git(root, "init", "--quiet", "--initial-branch=main")
    _git(root, "config", "user.name", "Alice")
    _git(root, "config", "user.email", "alice@example.com")
    _git(root, "config", "commit.gpgsign", "false")
    return root


def test_parse_git_time_formats() -> None:
    assert parse_git_time("2024-05-01 10:00:00 +0200") == dt.datetime(
        2024, 5, 1, 8, tzinfo=dt.timezone.utc
    )
    assert parse_git_time("2024-05-01T10:00:00Z").tzinfo is not None
    with pytest.raises(GitError):
        parse_git_time("yesterday")


def test_identity_and_branch(repo: Path) -> None:
    shell = GitShell(repo)
    assert shell.current_user() == ("Alice", "alice@example.com")
    _write_task(repo, "tiki-aaaaaa.md", "todo")
    shell.add(repo / ".doc" / "tiki" / "tiki-aaaaaa.md")
    _git(repo, "commit", "--quiet", "-m", "add task")
    assert shell.current_branch() == "main"
    assert shell.all_users() == ["Alice <alice@example.com>"]


def test_add_and_remove_stage_changes(repo: Path) -> None:
    shell = GitShell(repo)
    path = _write_task(repo, "tiki-aaaaaa.md", "todo")
    shell.add(path)
    _git(repo, "commit", "--quiet", "-m", "add")
    shell.remove(path)
    status = subprocess.run(
        ["git", "status", "--porcelain"], cwd=repo, check=True, capture_output=True, text=True
    ).stdout
    assert status.startswith("D ")
    with pytest.raises(GitError):
        shell.add()
    with pytest.raises(GitError):
        shell.add(repo.parent / "outside.md")


def test_file_versions_since_includes_prior_version(repo: Path) -> None:
    shell = GitShell(repo)
    path = _write_task(repo, "tiki-aaaaaa.md", "todo")
    shell.add(path)
    _git(repo, "commit", "--quiet", "-m", "create", when="2024-05-01T10:00:00+00:00")
    _write_task(repo, "tiki-aaaaaa.md", "in_progress")
    shell.add(path)
    _git(repo, "commit", "--quiet", "-m", "start", when="2024-05-03T10:00:00+00:00")
    _write_task(repo, "tiki-aaaaaa.md", "done")
    shell.add(path)
    _git(repo, "commit", "--quiet", "-m", "finish", when="2024-05-05T10:00:00+00:00")

    since = dt.datetime(2024, 5, 2, tzinfo=dt.timezone.utc)
    versions = shell.file_versions_since(path, since, True)
    assert ["status: todo" in v.content for v in versions] == [True, False, False]
    assert "status: done" in versions[-1].content
    assert versions[0].author == "Alice"

    without_prior = shell.file_versions_since(path, since, False)
    assert len(without_prior) == 2

    assert shell.last_commit_time(path) == dt.datetime(2024, 5, 5, 10, tzinfo=dt.timezone.utc)
    info = shell.author(path)
    assert info is not None
    assert info.message == "create"


def test_all_file_versions_since_groups_by_file(repo: Path) -> None:
    shell = GitShell(repo)
    first = _write_task(repo, "tiki-aaaaaa.md", "todo")
    second = _write_task(repo, "tiki-bbbbbb.md", "todo")
    shell.add(first, second)
    _git(repo, "commit", "--quiet", "-m", "create", when="2024-05-01T10:00:00+00:00")
    _write_task(repo, "tiki-aaaaaa.md", "done")
    shell.add(first)
    _git(repo, "commit", "--quiet", "-m", "finish", when="2024-05-04T10:00:00+00:00")

    since = dt.datetime(2024, 5, 2, tzinfo=dt.timezone.utc)
    versions = shell.all_file_versions_since(str(repo / ".doc" / "tiki"), since, True)
    assert list(versions) == [".doc/tiki/tiki-aaaaaa.md"]
    statuses = [v.content.split("status: ")[1].split()[0] for v in versions[".doc/tiki/tiki-aaaaaa.md"]]
    assert statuses == ["todo", "done"]

    authors = shell.all_authors(str(repo / ".doc" / "tiki"))
    assert set(authors) == {".doc/tiki/tiki-aaaaaa.md", ".doc/tiki/tiki-bbbbbb.md"}
    times = shell.all_last_commit_times(str(repo / ".doc" / "tiki"))
    assert times[".doc/tiki/tiki-bbbbbb.md"] == dt.datetime(2024, 5, 1, 10, tzinfo=dt.timezone.utc)


def test_commit_stream_keeps_headers_and_files() -> None:
    output = (
        "\x1eabc123\x1fAlice\x1falice@example.com\x1f2024-05-03T10:00:00+00:00\n"
        "\n"
        ".doc/tiki/tiki-aaaaaa.md\n"
        "\x1edef456\x1fBob\x1fbob@example.com\x1f2024-05-01T10:00:00+00:00\n"
        "\n"
        ".doc/tiki/tiki-aaaaaa.md\n"
        ".doc/tiki/tiki-bbbbbb.md\n"
    )
    commits = _parse_commit_stream(output)
    assert [commit.hash for commit in commits] == ["abc123", "def456"]
    assert commits[0].author == "Alice"
    assert commits[0].when == dt.datetime(2024, 5, 3, 10, tzinfo=dt.timezone.utc)
    assert commits[1].files == [".doc/tiki/tiki-aaaaaa.md", ".doc/tiki/tiki-bbbbbb.md"]


def test_author_reads_first_commit(repo: Path) -> None:
    shell = GitShell(repo)
    path = _write_task(repo, "tiki-aaaaaa.md", "todo")
    shell.add(path)
    _git(repo, "commit", "--quiet", "-m", "create", when="2024-05-01T10:00:00+00:00")
    _write_task(repo, "tiki-aaaaaa.md", "done")
    shell.add(path)
    _git(repo, "commit", "--quiet", "-m", "finish", when="2024-05-04T10:00:00+00:00")

    info = shell.author(path)
    assert info is not None
    assert info.name == "Alice"
    assert info.message == "create"
    assert shell.last_commit_time(path) == dt.datetime(2024, 5, 4, 10, tzinfo=dt.timezone.utc)
