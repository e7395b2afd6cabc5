"""Search executors: regex grep and mtime-ordered glob."""

import re
from dataclasses import dataclass
from pathlib import Path, PurePath
from typing import Iterator, List, Tuple

from ..errors import InvalidArguments, NotFound, PathEscape, ToolError
from ..logger import get_logger
from .registry import ToolContext

log = get_logger("search_tools")

MAX_GREP_RESULTS = 200
MAX_GLOB_RESULTS = 500
_BINARY_SNIFF = 8192


@dataclass
class GrepMatch:
    """A single matching line."""

    file_path: str
    line_number: int
    line_content: str

    def to_line(self) -> str:
        return f"{self.file_path}:{self.line_number}:{self.line_content}"


def _check_glob(pattern: str) -> bool:
    """Validate a glob and report whether it asks for hidden entries."""
    if not pattern:
        raise InvalidArguments("Glob pattern must not be empty")
    pure = PurePath(pattern)
    if pure.anchor or ".." in pure.parts:
        raise PathEscape(f"Glob pattern {pattern!r} must stay inside the workspace")
    return any(part.startswith(".") for part in pure.parts)


def _search_base(ctx: ToolContext, path: str) -> Path:
    base = ctx.sandbox.resolve(path)
    if not base.exists():
        raise NotFound(f"Directory not found: {path}")
    if not base.is_dir():
        raise ToolError(f"{path} is not a directory", kind="NotADirectory")
    return base


def iter_files(ctx: ToolContext, base: Path, pattern: str) -> Iterator[Path]:
    """Yield files under ``base`` matching ``pattern``, skipping hidden entries
    unless the pattern itself names one."""
    include_hidden = _check_glob(pattern)
    for match in base.glob(pattern):
        if not match.is_file() or not ctx.sandbox.contains(match):
            continue
        rel_parts = match.relative_to(base).parts
        if not include_hidden and any(part.startswith(".") for part in rel_parts):
            continue
        yield match


def search_lines(ctx: ToolContext, pattern: str, path_glob: str = "**/*",
                 path: str = ".", max_results: int = MAX_GREP_RESULTS) -> Tuple[List[GrepMatch], bool]:
    """Return matches ordered by file path then line number, and a truncation flag."""
    try:
        regex = re.compile(pattern)
    except re.error as e:
        raise InvalidArguments(f"Invalid regex {pattern!r}: {e}") from e

    base = _search_base(ctx, path)
    files = sorted(iter_files(ctx, base, path_glob), key=lambda p: ctx.sandbox.relative(p))

    results: List[GrepMatch] = []
    for file_path in files:
        try:
            text = file_path.read_text(encoding="utf-8", errors="replace")
        except OSError:
            continue
        if "\x00" in text[:_BINARY_SNIFF]:
            continue

        rel = ctx.sandbox.relative(file_path)
        for number, line in enumerate(text.splitlines(), 1):
            if regex.search(line):
                if len(results) >= max_results:
                    return results, True
                results.append(GrepMatch(rel, number, line))
    return results, False


def find_files(ctx: ToolContext, pattern: str, path: str = ".") -> List[Tuple[str, float]]:
    """Return (root-relative path, mtime) pairs, newest first."""
    base = _search_base(ctx, path)
    found = []
    for file_path in iter_files(ctx, base, pattern):
        try:
            mtime = file_path.stat().st_mtime
        except OSError:
            continue
        found.append((ctx.sandbox.relative(file_path), mtime))
    # Path as tie-breaker keeps equal mtimes deterministic
    found.sort(key=lambda item: (-item[1], item[0]))
    return found


async def grep_text(ctx: ToolContext, pattern: str, path_glob: str = "**/*", path: str = ".") -> str:
    matches, truncated = search_lines(ctx, pattern, path_glob, path)
    log.debug("grep_text: pattern=%r glob=%r matches=%d", pattern, path_glob, len(matches))
    if not matches:
        return "No matches"
    lines = [m.to_line() for m in matches]
    if truncated:
        lines.append(f"... (stopped after {MAX_GREP_RESULTS} matches)")
    return "\n".join(lines)


async def glob_files(ctx: ToolContext, pattern: str, path: str = ".") -> str:
    found = find_files(ctx, pattern, path)
    if not found:
        return "No files matched"
    lines = [rel for rel, _ in found[:MAX_GLOB_RESULTS]]
    if len(found) > MAX_GLOB_RESULTS:
        lines.append(f"... ({len(found) - MAX_GLOB_RESULTS} more)")
    return "\n".join(lines)
