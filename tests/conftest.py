from __future__ import annotations

import datetime as dt
from pathlib import Path

import pytest

from tiki.models import AuthorInfo, FileVersion, GitError


class FakeGit:
    """In-memory GitOps double; records staging calls and serves canned history."""

    def __init__(self, name: str = "Alice", email: str = "alice@example.com") -> None:
        self.name = name
        self.email = email
        self.added: list[Path] = []
        self.removed: list[Path] = []
        self.versions: dict[str, list[FileVersion]] = {}
        self.fail_user = False

    def add(self, *paths) -> None:
        self.added.extend(Path(path) for path in paths)

    def remove(self, *paths) -> None:
        self.removed.extend(Path(path) for path in paths)

    def current_user(self) -> tuple[str, str]:
        if self.fail_user:
            raise GitError("git user not configured")
        return self.name, self.email

    def current_branch(self) -> str:
        return "main"

    def author(self, path) -> AuthorInfo | None:
        return None

    def all_authors(self, pattern: str) -> dict[str, AuthorInfo]:
        return {}

    def last_commit_time(self, path) -> dt.datetime | None:
        return None

    def all_last_commit_times(self, pattern: str) -> dict[str, dt.datetime]:
        return {}

    def file_versions_since(self, path, since: dt.datetime, include_prior: bool = False) -> list[FileVersion]:
        return list(self.versions.get(Path(path).name, []))

    def all_file_versions_since(
        self, pattern: str, since: dt.datetime, include_prior: bool = False
    ) -> dict[str, list[FileVersion]]:
        return {name: list(versions) for name, versions in self.versions.items()}

    def all_users(self) -> list[str]:
        return [f"{self.name} <{self.email}>"]


@pytest.fixture
def fake_git() -> FakeGit:
    return FakeGit()


@pytest.fixture
def task_dir(tmp_path: Path) -> Path:
    path = tmp_path / ".doc" / "tiki"
    path.mkdir(parents=True)
    return path

