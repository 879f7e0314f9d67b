"""Guest check-in backend: attendance state machine, undo, import and search over SQLite."""

__version__ = "1.0.0"
