"""Single source of truth for the closed set of tools.

Every tool the engine knows is declared ONCE here: its name, category,
whether it is destructive (and so goes through the confirmation gate) and
its argument contract.  The executor registry, the gate and the schema sent
to the model all derive from this module.

Adding a tool means adding a ``ToolName`` member, an argument model, a
``ToolDef`` entry and an executor binding in ``tools/registry.py``.
"""

import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Type

from pydantic import BaseModel, ConfigDict, Field

from .logger import get_logger

log = get_logger("tool_registry")


class ToolName(str, Enum):
    READ_FILE = "read_file"
    WRITE_FILE = "write_file"
    EDIT_FILE = "edit_file"
    LIST_DIR = "list_dir"
    MAKE_DIR = "make_dir"
    MOVE_FILE = "move_file"
    COPY_FILE = "copy_file"
    REMOVE = "remove"
    GREP_TEXT = "grep_text"
    GLOB_FILES = "glob_files"
    BASH = "bash"
    AGENT_BROWSER = "agent_browser"


# ── Argument contracts ───────────────────────────────────────────

class ToolArgs(BaseModel):
    """Base for tool argument models.  Unknown keys are ignored."""

    model_config = ConfigDict(extra="ignore", frozen=True)


class ReadFileArgs(ToolArgs):
    path: str = Field(description="File path, relative to the workspace root.")
    offset: int = Field(0, ge=0, description="Number of lines to skip.")
    limit: int = Field(0, ge=0, description="Maximum lines to return, 0 for all.")
    numbered: bool = Field(False, description="Prefix each line with its line number.")


class WriteFileArgs(ToolArgs):
    path: str
    content: str


class EditFileArgs(ToolArgs):
    path: str
    old: str = Field(description="Exact text to replace. Must occur exactly once.")
    new: str = Field(description="Replacement text.")
    replace_all: bool = Field(False, description="Replace every occurrence instead.")


class ListDirArgs(ToolArgs):
    path: str = "."


class MakeDirArgs(ToolArgs):
    path: str


class MoveFileArgs(ToolArgs):
    src: str
    dst: str
    overwrite: bool = False


class CopyFileArgs(ToolArgs):
    src: str
    dst: str


class RemoveArgs(ToolArgs):
    path: str
    recursive: bool = False


class GrepTextArgs(ToolArgs):
    pattern: str = Field(description="Regular expression searched line by line.")
    path_glob: str = Field("**/*", description="Glob selecting the files to search.")
    path: str = Field(".", description="Directory the glob is evaluated from.")


class GlobFilesArgs(ToolArgs):
    pattern: str = Field(description="Glob pattern, e.g. '**/*.py'.")
    path: str = "."


class BashArgs(ToolArgs):
    command: str


class AgentBrowserArgs(ToolArgs):
    args: str = Field(description="Arguments passed to the agent-browser CLI.")


# ── Tool definitions ─────────────────────────────────────────────

@dataclass(frozen=True)
class ToolDef:
    """Canonical definition of a tool."""
    name: ToolName
    args_model: Type[ToolArgs]
    category: str = "file"            # file, search, shell, external
    destructive: bool = False
    description: str = ""

    def to_openai_schema(self) -> Dict[str, Any]:
        return {
            "type": "function",
            "function": {
                "name": self.name.value,
                "description": self.description,
                "parameters": self.args_model.model_json_schema(),
            },
        }


TOOL_DEFS: List[ToolDef] = [
    # --- File operations ---
    ToolDef(ToolName.READ_FILE, ReadFileArgs,
            description="Read a text file."),
    ToolDef(ToolName.WRITE_FILE, WriteFileArgs, destructive=True,
            description="Create or overwrite a file with the given content."),
    ToolDef(ToolName.EDIT_FILE, EditFileArgs, destructive=True,
            description="Replace `old` with `new` in a file. `old` must occur exactly once."),
    ToolDef(ToolName.LIST_DIR, ListDirArgs,
            description="List files and directories in a path."),
    ToolDef(ToolName.MAKE_DIR, MakeDirArgs,
            description="Create a directory, including parents."),
    ToolDef(ToolName.MOVE_FILE, MoveFileArgs, destructive=True,
            description="Move or rename a file or directory."),
    ToolDef(ToolName.COPY_FILE, CopyFileArgs, destructive=True,
            description="Copy a file (directories are not supported)."),
    ToolDef(ToolName.REMOVE, RemoveArgs, destructive=True,
            description="Remove a file, or a directory (recursive=true for non-empty ones)."),

    # --- Search ---
    ToolDef(ToolName.GREP_TEXT, GrepTextArgs, category="search",
            description="Search files for a regex. Returns file:line:text, ordered by file then line."),
    ToolDef(ToolName.GLOB_FILES, GlobFilesArgs, category="search",
            description="Find files by glob pattern, newest first."),

    # --- Shell / external ---
    ToolDef(ToolName.BASH, BashArgs, category="shell", destructive=True,
            description="Run a shell command in the workspace and return exit code, stdout and stderr."),
    ToolDef(ToolName.AGENT_BROWSER, AgentBrowserArgs, category="external", destructive=True,
            description=(
                "Browser automation through the agent-browser CLI. "
                "Typical flow: `open <url>`, `snapshot -i`, then `click @e1` / `fill @e2 \"text\"`, "
                "re-snapshot after navigation. Add --json for machine-readable output."
            )),
]

# Derived lookups (computed once at import time)
TOOL_NAMES: List[str] = [t.name.value for t in TOOL_DEFS]
TOOL_BY_NAME: Dict[str, ToolDef] = {t.name.value: t for t in TOOL_DEFS}
DESTRUCTIVE_TOOLS = frozenset(t.name.value for t in TOOL_DEFS if t.destructive)


def get_tool_def(name: str) -> Optional[ToolDef]:
    """Return tool definition by name, or None if unknown."""
    return TOOL_BY_NAME.get(name)


def is_destructive(name: str) -> bool:
    return name in DESTRUCTIVE_TOOLS


# ── Observability: ToolMetrics ───────────────────────────────────

@dataclass
class ToolCallRecord:
    """A single tool invocation record."""
    tool_name: str
    elapsed_ms: float
    success: bool
    error_kind: Optional[str] = None


class ToolMetrics:
    """Per-tool call counts, timings and error counts.

    The engine is single-threaded but embedders may read the summary from
    another thread, hence the lock.
    """

    def __init__(self, history_size: int = 200):
        self._lock = threading.Lock()
        self._history_size = history_size
        self._calls: List[ToolCallRecord] = []
        self._per_tool: Dict[str, dict] = {}
        self._start_time = time.time()

    def record(self, tool_name: str, elapsed_ms: float, success: bool,
               error_kind: Optional[str] = None) -> None:
        rec = ToolCallRecord(tool_name, elapsed_ms, success, error_kind)
        with self._lock:
            self._calls.append(rec)
            if len(self._calls) > self._history_size:
                self._calls = self._calls[-self._history_size:]

            entry = self._per_tool.setdefault(tool_name, {
                "count": 0, "total_ms": 0.0, "errors": 0, "max_ms": 0.0,
            })
            entry["count"] += 1
            entry["total_ms"] += elapsed_ms
            entry["max_ms"] = max(entry["max_ms"], elapsed_ms)
            if not success:
                entry["errors"] += 1

        log.debug("tool_metric: %s elapsed=%.1fms success=%s kind=%s",
                  tool_name, elapsed_ms, success, error_kind)

    def summary(self) -> Dict[str, Any]:
        """Return a summary dict suitable for logging or display."""
        with self._lock:
            total_calls = sum(e["count"] for e in self._per_tool.values())
            total_errors = sum(e["errors"] for e in self._per_tool.values())
            per_tool = {
                name: {
                    "count": e["count"],
                    "avg_ms": round(e["total_ms"] / e["count"], 1),
                    "max_ms": round(e["max_ms"], 1),
                    "errors": e["errors"],
                }
                for name, e in self._per_tool.items()
            }
            return {
                "uptime_s": round(time.time() - self._start_time, 1),
                "total_calls": total_calls,
                "total_errors": total_errors,
                "per_tool": per_tool,
            }

    def recent(self, n: int = 20) -> List[dict]:
        """Return last N call records as dicts."""
        with self._lock:
            return [
                {
                    "tool": r.tool_name,
                    "elapsed_ms": round(r.elapsed_ms, 1),
                    "success": r.success,
                    "error_kind": r.error_kind,
                }
                for r in self._calls[-n:]
            ]
