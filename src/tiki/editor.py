"""Open text in the user's editor."""

from __future__ import annotations

import logging
import os
from pathlib import Path
import shlex
import subprocess
import tempfile

from .models import TaskError

logger = logging.getLogger("tiki.editor")

DEFAULT_EDITOR = "vi"


def resolve_editor(environ: dict[str, str] | None = None) -> list[str]:
    env = os.environ if environ is None else environ
    for name in ("VISUAL", "EDITOR"):
        value = env.get(name, "").strip()
        if value:
            return shlex.split(value)
    return [DEFAULT_EDITOR]


def edit_text(initial: str, suffix: str = ".md", environ: dict[str, str] | None = None) -> str:
    """Round-trip ``initial`` through the editor and return what was saved."""
    command = resolve_editor(environ)
    fd, name = tempfile.mkstemp(prefix="tiki-", suffix=suffix)
    path = Path(name)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(initial)
        logger.debug("launching editor %s on %s", command, path)
        try:
            result = subprocess.run([*command, str(path)], check=False)
        except FileNotFoundError as exc:
            raise TaskError(f"editor not found: {command[0]}") from exc
        if result.returncode != 0:
            raise TaskError(f"editor exited with status {result.returncode}")
        return path.read_text(encoding="utf-8")
    finally:
        path.unlink(missing_ok=True)
