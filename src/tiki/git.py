"""Read-mostly access to the git history of the task directory."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
import datetime as dt
import logging
from pathlib import Path
import subprocess
import threading
from typing import Protocol

from .models import AuthorInfo, FileVersion, GitError

logger = logging.getLogger("tiki.git")

GIT_TIMEOUT = 30
BLOB_WORKERS = 10

# Header lines start with a record separator so they cannot be confused with paths.
_RS = "\x1e"
_US = "\x1f"
_VERSION_FORMAT = f"--format={_RS}%H{_US}%an{_US}%ae{_US}%aI"
_AUTHOR_FORMAT = f"--format={_RS}%H{_US}%an{_US}%ae{_US}%ai{_US}%s"

_GIT_TIME_FORMATS = (
    "%Y-%m-%d %H:%M:%S %z",
    "%Y-%m-%d %H:%M:%S",
)


class GitOps(Protocol):
    def add(self, *paths: str | Path) -> None: ...

    def remove(self, *paths: str | Path) -> None: ...

    def current_user(self) -> tuple[str, str]: ...

    def current_branch(self) -> str: ...

    def author(self, path: str | Path) -> AuthorInfo | None: ...

    def all_authors(self, pattern: str) -> dict[str, AuthorInfo]: ...

    def last_commit_time(self, path: str | Path) -> dt.datetime | None: ...

    def all_last_commit_times(self, pattern: str) -> dict[str, dt.datetime]: ...

    def file_versions_since(
        self, path: str | Path, since: dt.datetime, include_prior: bool
    ) -> list[FileVersion]: ...

    def all_file_versions_since(
        self, pattern: str, since: dt.datetime, include_prior: bool
    ) -> dict[str, list[FileVersion]]: ...

    def all_users(self) -> list[str]: ...


def parse_git_time(value: str) -> dt.datetime:
    text = value.strip()
    for fmt in _GIT_TIME_FORMATS:
        try:
            parsed = dt.datetime.strptime(text, fmt)
        except ValueError:
            continue
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=dt.timezone.utc)
        return parsed
    try:
        parsed = dt.datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError as exc:
        raise GitError(f"failed to parse git time {value!r}") from exc
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=dt.timezone.utc)
    return parsed


def _run_git(args: list[str], cwd: Path | None = None) -> subprocess.CompletedProcess[str]:
    try:
        return subprocess.run(
            ["git", *args],
            cwd=cwd,
            capture_output=True,
            text=True,
            timeout=GIT_TIMEOUT,
            check=False,
        )
    except FileNotFoundError as exc:
        raise GitError("git executable not found") from exc
    except subprocess.TimeoutExpired as exc:
        raise GitError(f"git {args[0]} timed out") from exc


@dataclass(slots=True)
class _Commit:
    hash: str
    author: str
    email: str
    when: dt.datetime
    files: list[str]


def _parse_commit_stream(output: str) -> list[_Commit]:
    """Parse ``git log --name-only`` output using the version header format."""
    commits: list[_Commit] = []
    current: _Commit | None = None
    for raw in output.split("\n"):
        if raw.startswith(_RS):
            parts = raw[1:].split(_US, 3)
            if len(parts) < 4:
                current = None
                continue
            try:
                when = parse_git_time(parts[3])
            except GitError:
                current = None
                continue
            current = _Commit(parts[0], parts[1], parts[2], when, [])
            commits.append(current)
            continue
        line = raw.strip()
        if line and current is not None:
            current.files.append(line)
    return commits


class GitShell:
    """GitOps implementation that shells out to the git executable."""

    def __init__(self, repo_root: Path) -> None:
        self.repo_root = Path(repo_root).resolve()
        self._lock = threading.Lock()
        self._user: tuple[str, str] | None = None
        self._user_error: GitError | None = None
        self._users: list[str] | None = None

    def _git(self, *args: str) -> subprocess.CompletedProcess[str]:
        return _run_git(list(args), cwd=self.repo_root)

    def _output(self, *args: str) -> str:
        result = self._git(*args)
        if result.returncode != 0:
            message = result.stderr.strip() or f"git {args[0]} failed"
            raise GitError(message)
        return result.stdout

    def _relative(self, path: str | Path) -> str:
        candidate = Path(path)
        if candidate.is_absolute():
            try:
                return candidate.resolve().relative_to(self.repo_root).as_posix()
            except ValueError as exc:
                raise GitError(f"path {path} is outside the repository") from exc
        return candidate.as_posix()

    def add(self, *paths: str | Path) -> None:
        if not paths:
            raise GitError("no paths provided")
        self._output("add", "--", *(self._relative(path) for path in paths))

    def remove(self, *paths: str | Path) -> None:
        if not paths:
            raise GitError("no paths provided")
        self._output("rm", "--quiet", "--", *(self._relative(path) for path in paths))

    def _config_value(self, key: str, scope: str | None = None) -> str:
        args = ["config"] if scope is None else ["config", scope]
        result = self._git(*args, key)
        if result.returncode != 0:
            return ""
        return result.stdout.strip()

    def current_user(self) -> tuple[str, str]:
        with self._lock:
            if self._user is not None:
                return self._user
            if self._user_error is not None:
                raise self._user_error
        name = self._config_value("user.name") or self._config_value("user.name", "--global")
        email = self._config_value("user.email") or self._config_value("user.email", "--global")
        with self._lock:
            if not name and not email:
                self._user_error = GitError(
                    "git user not configured (user.name and user.email are empty)"
                )
                raise self._user_error
            self._user = (name, email)
            return self._user

    def current_branch(self) -> str:
        result = self._git("rev-parse", "--abbrev-ref", "HEAD")
        branch = result.stdout.strip() if result.returncode == 0 else ""
        if branch and branch != "HEAD":
            return branch
        return self._output("rev-parse", "--short", "HEAD").strip()

    def author(self, path: str | Path) -> AuthorInfo | None:
        rel = self._relative(path)
        output = self._output("log", "--diff-filter=A", _AUTHOR_FORMAT, "--reverse", "--", rel)
        for line in output.split("\n"):
            if line.startswith(_RS):
                return self._author_info(line)
        return None

    def _author_info(self, line: str) -> AuthorInfo | None:
        parts = line[1:].split(_US, 4)
        if len(parts) < 5:
            return None
        try:
            when = parse_git_time(parts[3])
        except GitError:
            return None
        return AuthorInfo(
            name=parts[1], email=parts[2], date=when, commit_hash=parts[0], message=parts[4]
        )

    def all_authors(self, pattern: str) -> dict[str, AuthorInfo]:
        output = self._output(
            "log", "--all", "--diff-filter=A", _AUTHOR_FORMAT, "--name-only", "--reverse", "--", self._relative(pattern)
        )
        result: dict[str, AuthorInfo] = {}
        current: AuthorInfo | None = None
        for raw in output.split("\n"):
            if raw.startswith(_RS):
                current = self._author_info(raw)
                continue
            line = raw.strip()
            if line and current is not None and line not in result:
                result[line] = current
        return result

    def last_commit_time(self, path: str | Path) -> dt.datetime | None:
        output = self._output("log", "-1", "--format=%aI", "--", self._relative(path)).strip()
        if not output:
            return None
        return parse_git_time(output)

    def all_last_commit_times(self, pattern: str) -> dict[str, dt.datetime]:
        output = self._output("log", "--all", _VERSION_FORMAT, "--name-only", "--", self._relative(pattern))
        result: dict[str, dt.datetime] = {}
        for commit in _parse_commit_stream(output):
            for name in commit.files:
                result.setdefault(name, commit.when)
        return result

    def _show(self, commit_hash: str, rel: str) -> str:
        return self._output("show", f"{commit_hash}:{rel}")

    def _version(self, commit: _Commit, rel: str) -> FileVersion:
        return FileVersion(
            hash=commit.hash,
            author=commit.author,
            email=commit.email,
            when=commit.when,
            content=self._show(commit.hash, rel),
        )

    def file_versions_since(
        self, path: str | Path, since: dt.datetime, include_prior: bool
    ) -> list[FileVersion]:
        """Return the file's contents at each commit since ``since``, oldest first."""
        rel = self._relative(path)
        since_text = since.isoformat()
        versions: list[FileVersion] = []
        if include_prior:
            prior = self._git("log", "-1", _VERSION_FORMAT, "--before", since_text, "--", rel)
            if prior.returncode == 0:
                for commit in _parse_commit_stream(prior.stdout):
                    versions.append(self._version(commit, rel))
        output = self._output("log", _VERSION_FORMAT, "--since", since_text, "--reverse", "--", rel)
        for commit in _parse_commit_stream(output):
            versions.append(self._version(commit, rel))
        return versions

    def all_file_versions_since(
        self, pattern: str, since: dt.datetime, include_prior: bool
    ) -> dict[str, list[FileVersion]]:
        """Status-changing versions of every file under pattern, fetched in parallel."""
        since_text = since.isoformat()
        output = self._output(
            "log", "--all", "--full-history", "-G^status:", _VERSION_FORMAT,
            "--name-only", "--since", since_text, "--", self._relative(pattern),
        )
        by_file: dict[str, list[_Commit]] = {}
        # git log lists newest first; keep history oldest first per file
        for commit in reversed(_parse_commit_stream(output)):
            for name in commit.files:
                by_file.setdefault(name, []).append(commit)

        if include_prior and by_file:
            prior = self._git(
                "log", "--all", "--full-history", "-G^status:", _VERSION_FORMAT,
                "--name-only", "--before", since_text, "--", self._relative(pattern),
            )
            if prior.returncode == 0:
                seen: set[str] = set()
                for commit in _parse_commit_stream(prior.stdout):
                    for name in commit.files:
                        if name in by_file and name not in seen:
                            seen.add(name)
                            by_file[name].insert(0, commit)

        requests = [(name, commit) for name, commits in by_file.items() for commit in commits]
        fetched: dict[tuple[str, str], FileVersion] = {}
        with ThreadPoolExecutor(max_workers=BLOB_WORKERS) as executor:
            futures = {
                executor.submit(self._version, commit, name): (name, commit.hash)
                for name, commit in requests
            }
            for future in as_completed(futures):
                name, commit_hash = futures[future]
                try:
                    fetched[(name, commit_hash)] = future.result()
                except GitError as exc:
                    logger.warning("failed to read %s at %s: %s", name, commit_hash, exc)

        result: dict[str, list[FileVersion]] = {}
        for name, commit in requests:
            version = fetched.get((name, commit.hash))
            if version is not None:
                result.setdefault(name, []).append(version)
        return result

    def all_users(self) -> list[str]:
        with self._lock:
            if self._users is not None:
                return list(self._users)
        output = self._output("log", "--all", "--format=%an <%ae>")
        users: list[str] = []
        for line in output.splitlines():
            line = line.strip()
            if line and line not in users:
                users.append(line)
        with self._lock:
            self._users = users
        return list(users)


__all__ = ["GitOps", "GitShell", "parse_git_time"]
