"""Workspace path containment.

Resolution is purely logical: nothing on disk is touched, so paths that do
not exist yet (a ``write_file`` target) can be validated.  The policy is
strict: a candidate is rejected as soon as any ``..`` would climb above the
root, even if later segments would come back inside.  ``a/../../a`` is
refused although its net destination is ``root/a``.

Symlinks are not followed.  A symlink inside the workspace that points
outside of it is the user's own doing.
"""

import os
from pathlib import Path, PurePath
from typing import Union

from .errors import ConfigError, PathEscape
from .logger import get_logger

log = get_logger("sandbox")

PathLike = Union[str, "os.PathLike[str]"]


def resolve_path(root: PathLike, candidate: PathLike) -> Path:
    """Resolve ``candidate`` against ``root`` or raise PathEscape.

    ``candidate`` may be relative or absolute and may contain ``.`` and
    ``..`` segments.  The empty string and ``.`` resolve to ``root``.  The
    returned path never contains ``.`` or ``..`` segments.
    """
    root_path = Path(root)
    text = os.fspath(candidate) if candidate is not None else ""
    pure = PurePath(text)
    parts = list(pure.parts)

    if pure.anchor:
        # Absolute (or drive/anchor qualified): must spell out the root first.
        root_parts = root_path.parts
        head = parts[:len(root_parts)]
        if len(head) < len(root_parts) or PurePath(*head) != PurePath(*root_parts):
            log.warning("sandbox: rejected %r (outside %s)", text, root_path)
            raise PathEscape(
                f"Access denied: {text!r} is outside the workspace {root_path}"
            )
        parts = parts[len(root_parts):]

    # len(segments) is the current depth below root
    segments = []
    for part in parts:
        if part in ("", "."):
            continue
        if part == "..":
            if not segments:
                log.warning("sandbox: rejected %r (climbs above root)", text)
                raise PathEscape(
                    f"Access denied: {text!r} leaves the workspace {root_path}"
                )
            segments.pop()
            continue
        segments.append(part)

    return root_path.joinpath(*segments)


class PathSandbox:
    """A workspace root that every filesystem tool resolves against."""

    def __init__(self, root: PathLike):
        root_text = os.fspath(root)
        if not os.path.isabs(root_text):
            raise ConfigError(f"Workspace root must be absolute, got {root_text!r}")
        self.root = Path(os.path.normpath(root_text))

    def resolve(self, candidate: PathLike) -> Path:
        return resolve_path(self.root, candidate)

    def contains(self, path: PathLike) -> bool:
        """True if ``path`` is the root or lexically below it."""
        try:
            Path(os.path.normpath(os.fspath(path))).relative_to(self.root)
        except ValueError:
            return False
        return True

    def relative(self, path: PathLike) -> str:
        """Root-relative POSIX form of a resolved path, ``.`` for the root."""
        rel = Path(path).relative_to(self.root).as_posix()
        return rel or "."

    def __repr__(self) -> str:
        return f"PathSandbox({str(self.root)!r})"
