"""Filesystem executors.  Every path goes through the workspace sandbox.

Content mutations (write_file, edit_file, copy_file) are written to a
temporary sibling and renamed into place, so a reader never observes a
partially written file and a failed call leaves the target untouched.
"""

import contextlib
import os
import shutil
import stat
import uuid
from pathlib import Path

import aiofiles

from ..errors import AmbiguousMatch, InvalidArguments, NotFound, ToolError
from ..logger import get_logger
from .registry import ToolContext

log = get_logger("file_tools")


# ── helpers ──────────────────────────────────────────────────────

def _temp_sibling(path: Path) -> str:
    """Create an empty temp file beside ``path``.

    Created with mode 0o666 so the kernel applies the process umask, which
    is what a plain ``open(path, "w")`` of a new file would get.
    """
    for _ in range(100):
        tmp = path.parent / f".{path.name}.{uuid.uuid4().hex[:8]}.tmp"
        try:
            fd = os.open(tmp, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o666)
        except FileExistsError:
            continue
        os.close(fd)
        return str(tmp)
    raise FileExistsError(f"No free temporary name next to {path}")


async def atomic_write(path: Path, content: str) -> None:
    """Write ``content`` to ``path`` via temp file + rename."""
    tmp = _temp_sibling(path)
    try:
        async with aiofiles.open(tmp, "w", encoding="utf-8", newline="") as f:
            await f.write(content)
            await f.flush()
        if path.exists():
            os.chmod(tmp, stat.S_IMODE(path.stat().st_mode))
        os.replace(tmp, path)
    except BaseException:
        with contextlib.suppress(OSError):
            os.unlink(tmp)
        raise


async def _read_text(path: Path, strict: bool = False) -> str:
    errors = "strict" if strict else "replace"
    try:
        async with aiofiles.open(path, "r", encoding="utf-8", errors=errors, newline="") as f:
            return await f.read()
    except UnicodeDecodeError as e:
        raise ToolError(f"{path.name} is not a UTF-8 text file", kind="NotText") from e


def _ensure_parent(ctx: ToolContext, path: Path, shown: str) -> None:
    if path.parent.is_dir():
        return
    if not ctx.create_dirs:
        raise NotFound(f"Parent directory of {shown} does not exist")
    path.parent.mkdir(parents=True, exist_ok=True)


def _require_file(path: Path, shown: str) -> None:
    if not path.exists():
        raise NotFound(f"File not found: {shown}")
    if path.is_dir():
        raise ToolError(f"{shown} is a directory", kind="IsADirectory")


# ── executors ────────────────────────────────────────────────────

async def read_file(
    ctx: ToolContext,
    path: str,
    offset: int = 0,
    limit: int = 0,
    numbered: bool = False,
) -> str:
    """Return file content, optionally a line window and/or numbered."""
    target = ctx.sandbox.resolve(path)
    _require_file(target, path)
    content = await _read_text(target)

    if not (offset or limit or numbered):
        return content

    lines = content.splitlines()
    end = offset + limit if limit else len(lines)
    selected = lines[offset:end]
    if numbered:
        return "\n".join(f"{offset + i + 1:4d} | {line}" for i, line in enumerate(selected))
    return "\n".join(selected)


async def write_file(ctx: ToolContext, path: str, content: str) -> str:
    """Create or overwrite a file."""
    target = ctx.sandbox.resolve(path)
    if target == ctx.root or target.is_dir():
        raise ToolError(f"{path} is a directory", kind="IsADirectory")
    _ensure_parent(ctx, target, path)
    await atomic_write(target, content)
    log.info("write_file: %s (%d chars)", target, len(content))
    return f"Wrote {len(content)} chars to {ctx.sandbox.relative(target)}"


async def edit_file(
    ctx: ToolContext,
    path: str,
    old: str,
    new: str,
    replace_all: bool = False,
) -> str:
    """Replace the single occurrence of ``old`` with ``new``.

    Zero occurrences raise NotFound, several raise AmbiguousMatch (unless
    ``replace_all``).  On any failure the file is left byte-for-byte as it was.
    """
    target = ctx.sandbox.resolve(path)
    _require_file(target, path)
    if not old:
        raise InvalidArguments("`old` must not be empty")

    content = await _read_text(target, strict=True)
    rel = ctx.sandbox.relative(target)
    count = content.count(old)

    if count == 0:
        raise NotFound(f"`old` text not found in {rel}")
    if count > 1 and not replace_all:
        raise AmbiguousMatch(
            f"`old` text occurs {count} times in {rel}; include more surrounding "
            f"context so it matches exactly once"
        )

    updated = content.replace(old, new) if replace_all else content.replace(old, new, 1)
    await atomic_write(target, updated)
    replaced = count if replace_all else 1
    log.info("edit_file: %s replacements=%d", target, replaced)
    return f"Edited {rel} ({replaced} replacement{'s' if replaced != 1 else ''})"


async def list_dir(ctx: ToolContext, path: str = ".") -> str:
    """List a directory, one entry per line, directories suffixed with '/'."""
    target = ctx.sandbox.resolve(path)
    if not target.exists():
        raise NotFound(f"Directory not found: {path}")
    if not target.is_dir():
        raise ToolError(f"{path} is not a directory", kind="NotADirectory")

    entries = sorted(
        f"{item.name}/" if item.is_dir() else item.name
        for item in target.iterdir()
    )
    return "\n".join(entries) if entries else "(empty)"


async def make_dir(ctx: ToolContext, path: str) -> str:
    target = ctx.sandbox.resolve(path)
    if target.exists() and not target.is_dir():
        raise ToolError(f"{path} exists and is not a directory", kind="AlreadyExists")
    target.mkdir(parents=True, exist_ok=True)
    return f"Created {ctx.sandbox.relative(target)}/"


async def move_file(ctx: ToolContext, src: str, dst: str, overwrite: bool = False) -> str:
    """Move or rename ``src`` to exactly ``dst``."""
    source = ctx.sandbox.resolve(src)
    dest = ctx.sandbox.resolve(dst)
    if ctx.root in (source, dest):
        raise InvalidArguments("The workspace root cannot be moved or replaced")
    if not source.exists():
        raise NotFound(f"Not found: {src}")
    if dest.exists() and not overwrite:
        raise ToolError(f"{dst} already exists (pass overwrite=true to replace it)",
                        kind="AlreadyExists")

    _ensure_parent(ctx, dest, dst)
    if dest.exists():
        os.replace(source, dest)
    else:
        shutil.move(str(source), str(dest))
    return f"Moved {ctx.sandbox.relative(source)} -> {ctx.sandbox.relative(dest)}"


async def copy_file(ctx: ToolContext, src: str, dst: str) -> str:
    source = ctx.sandbox.resolve(src)
    dest = ctx.sandbox.resolve(dst)
    _require_file(source, src)
    if dest == ctx.root or dest.is_dir():
        raise ToolError(f"{dst} is a directory", kind="IsADirectory")

    _ensure_parent(ctx, dest, dst)
    tmp = _temp_sibling(dest)
    try:
        shutil.copyfile(source, tmp)
        shutil.copymode(source, tmp)
        os.replace(tmp, dest)
    except BaseException:
        with contextlib.suppress(OSError):
            os.unlink(tmp)
        raise
    return f"Copied {ctx.sandbox.relative(source)} -> {ctx.sandbox.relative(dest)}"


async def remove(ctx: ToolContext, path: str, recursive: bool = False) -> str:
    target = ctx.sandbox.resolve(path)
    if target == ctx.root:
        raise InvalidArguments("Refusing to remove the workspace root")
    if not target.exists() and not target.is_symlink():
        raise NotFound(f"Not found: {path}")

    if target.is_dir() and not target.is_symlink():
        if recursive:
            shutil.rmtree(target)
        else:
            try:
                target.rmdir()
            except OSError as e:
                raise ToolError(
                    f"{path} is not empty (pass recursive=true to remove it)",
                    kind="DirectoryNotEmpty",
                ) from e
    else:
        target.unlink()
    log.info("remove: %s recursive=%s", target, recursive)
    return f"Removed {ctx.sandbox.relative(target)}"
