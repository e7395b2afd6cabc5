"""Persistent input line history, backed by prompt_toolkit's FileHistory."""

from pathlib import Path
from typing import List, Optional

from prompt_toolkit.history import FileHistory

DEFAULT_HISTORY_PATH = Path.home() / ".picocode_history"


class InputHistory:
    """Ordered line history: ``append(line)`` and ``load()`` (oldest first)."""

    def __init__(self, path: Optional[Path] = None):
        self.path = Path(path) if path else DEFAULT_HISTORY_PATH
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.backend = FileHistory(str(self.path))

    def append(self, line: str) -> None:
        if line.strip():
            self.backend.append_string(line)

    def load(self) -> List[str]:
        # FileHistory yields most recent first
        return list(reversed(list(self.backend.load_history_strings())))
