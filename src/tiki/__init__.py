"""tiki: a git-backed terminal kanban."""

__version__ = "0.1.0"
