"""picocode: a minimal coding assistant with a sandboxed, gated tool engine."""

from .agent import AbortReason, TurnLoop, TurnOutcome, TurnState
from .config import AgentConfig, ProviderConfig, Recipe, Settings
from .confirmation import ConfirmationGate, GateDecision
from .context import ConversationHistory
from .errors import (
    AmbiguousMatch,
    CollaboratorUnreachable,
    ConfigError,
    ConfirmationDenied,
    InvalidArguments,
    NotFound,
    PathEscape,
    PicocodeError,
    ToolCallLimitExceeded,
    ToolError,
    ToolUnavailable,
)
from .llm_client import Message, ModelClient, ModelReply, OpenAICompatClient
from .modes import Mode, ModeController
from .output import ConsoleOutput, Event, EventKind, LogOutput, NoOutput, Output, QuietOutput
from .sandbox import PathSandbox, resolve_path
from .session import Session
from .tool_registry import ToolMetrics, ToolName
from .tools import ToolCall, ToolContext, ToolRegistry, ToolResult, build_default_registry

__version__ = "0.1.0"
__all__ = [
    "AbortReason",
    "AgentConfig",
    "AmbiguousMatch",
    "CollaboratorUnreachable",
    "ConfigError",
    "ConfirmationDenied",
    "ConfirmationGate",
    "ConsoleOutput",
    "ConversationHistory",
    "Event",
    "EventKind",
    "GateDecision",
    "InvalidArguments",
    "LogOutput",
    "Message",
    "Mode",
    "ModeController",
    "ModelClient",
    "ModelReply",
    "NoOutput",
    "NotFound",
    "OpenAICompatClient",
    "Output",
    "PathEscape",
    "PathSandbox",
    "PicocodeError",
    "ProviderConfig",
    "QuietOutput",
    "Recipe",
    "Session",
    "Settings",
    "ToolCall",
    "ToolCallLimitExceeded",
    "ToolContext",
    "ToolError",
    "ToolMetrics",
    "ToolName",
    "ToolRegistry",
    "ToolResult",
    "ToolUnavailable",
    "TurnLoop",
    "TurnOutcome",
    "TurnState",
    "build_default_registry",
    "resolve_path",
]
