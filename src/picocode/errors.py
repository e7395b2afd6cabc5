"""Error taxonomy for the tool-execution engine.

Per-call errors (``ToolError`` and subclasses) are always recoverable: the
registry turns them into failed ToolResults that go back to the model.
Only ``ToolCallLimitExceeded`` and ``CollaboratorUnreachable`` end a turn early.
"""

from typing import Optional


class PicocodeError(Exception):
    """Base class for all picocode errors."""


class ConfigError(PicocodeError):
    """Invalid or missing configuration."""


class ToolError(PicocodeError):
    """A failure local to a single tool call."""

    kind = "ToolError"

    def __init__(self, message: str, kind: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if kind:
            self.kind = kind


class PathEscape(ToolError):
    kind = "PathEscape"


class NotFound(ToolError):
    kind = "NotFound"


class AmbiguousMatch(ToolError):
    kind = "AmbiguousMatch"


class ToolUnavailable(ToolError):
    kind = "ToolUnavailable"


class InvalidArguments(ToolError):
    kind = "InvalidArguments"


class ConfirmationDenied(ToolError):
    kind = "ConfirmationDenied"


class ToolCallLimitExceeded(PicocodeError):
    """The per-turn tool call budget is exhausted."""

    kind = "ToolCallLimitExceeded"

    def __init__(self, limit: int):
        super().__init__(f"Tool call limit of {limit} reached for this turn")
        self.limit = limit


class CollaboratorUnreachable(PicocodeError):
    """The model collaborator could not be reached or returned garbage."""

    kind = "CollaboratorUnreachable"
