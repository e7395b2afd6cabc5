"""Centralized file logger for picocode.

Writes a structured, always-on log to <workspace>/.picocode_output/picocode.log.
Every tool call, gate decision and turn transition ends up here so a
session can be reconstructed after the fact.

Usage in any module:
    from .logger import get_logger
    log = get_logger("tools")
    log.info("something happened")

The log file rotates at 5 MB and keeps the last 5 files.  Modules log from
import time, so the first ``get_logger`` call opens a log under the current
directory; ``init_logging(workspace)`` later moves it to the workspace.
"""

import logging
import os
import sys
import traceback
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

LOG_DIR_NAME = ".picocode_output"
LOG_FILE_NAME = "picocode.log"

_FORMAT = logging.Formatter(
    fmt="%(asctime)s.%(msecs)03d | %(levelname)-5s | %(name)s | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)

_initialized = False
_file_handler: Optional[RotatingFileHandler] = None


def _open_file_handler(log_dir: Path, level: int) -> RotatingFileHandler:
    log_dir.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        str(log_dir / LOG_FILE_NAME),
        maxBytes=5 * 1024 * 1024,   # 5 MB per file
        backupCount=5,
        encoding="utf-8",
    )
    handler.setLevel(level)
    handler.setFormatter(_FORMAT)
    return handler


def log_path() -> Optional[Path]:
    """Path of the active log file, if logging is initialised."""
    if _file_handler is None:
        return None
    return Path(_file_handler.baseFilename)


def init_logging(workspace: Optional[str] = None, level: int = logging.DEBUG) -> None:
    """Initialise the file logger, or move it to ``workspace``.

    Safe to call more than once.
    """
    global _initialized, _file_handler

    root = logging.getLogger("picocode")
    log_dir = Path(workspace or Path.cwd()) / LOG_DIR_NAME

    if _initialized:
        if workspace is None or log_path() == Path(os.path.abspath(log_dir / LOG_FILE_NAME)):
            return
        old = _file_handler
        _file_handler = _open_file_handler(log_dir, level)
        root.addHandler(_file_handler)
        if old is not None:
            root.removeHandler(old)
            old.close()
        root.info("=== Log moved === log=%s", log_path())
        return

    _initialized = True
    root.setLevel(level)
    root.propagate = False

    _file_handler = _open_file_handler(log_dir, level)
    root.addHandler(_file_handler)

    if os.environ.get("PICOCODE_DEBUG"):
        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setLevel(logging.DEBUG)
        stderr_handler.setFormatter(_FORMAT)
        root.addHandler(stderr_handler)

    root.info(
        "=== Logging initialised === pid=%d python=%s log=%s",
        os.getpid(),
        sys.version.split()[0],
        log_path(),
    )


def get_logger(name: str) -> logging.Logger:
    """Return a child logger under the 'picocode' namespace."""
    if not _initialized:
        init_logging()
    if name.startswith("picocode."):
        name = name[len("picocode."):]
    return logging.getLogger(f"picocode.{name}")


# ── Convenience helpers ──────────────────────────────────────

def log_exception(logger: logging.Logger, msg: str, exc: BaseException) -> None:
    """Log an exception with full traceback."""
    tb = traceback.format_exception(type(exc), exc, exc.__traceback__)
    logger.error("%s: %s\n%s", msg, exc, "".join(tb))


def truncate(text: str, max_len: int = 200) -> str:
    """Truncate a string for log readability."""
    if not text:
        return "(empty)"
    text = text.replace("\n", "\\n")
    if len(text) <= max_len:
        return text
    return text[:max_len] + f"...[{len(text)} chars]"
