"""Human-in-the-loop gating for destructive tool calls."""

import re
from enum import Enum
from typing import List, Optional, Sequence

from .errors import ConfigError
from .interrupt import interruptible
from .logger import get_logger, truncate
from .output import Output
from .tool_registry import ToolName, is_destructive
from .tools.registry import ToolCall

log = get_logger("confirmation")


class GateDecision(str, Enum):
    AUTO_APPROVED = "auto_approved"
    PENDING_CONFIRMATION = "pending_confirmation"
    APPROVED = "approved"
    DENIED = "denied"

    @property
    def allowed(self) -> bool:
        return self in (GateDecision.AUTO_APPROVED, GateDecision.APPROVED)


def compile_patterns(patterns: Sequence[str]) -> List[re.Pattern]:
    compiled = []
    for pattern in patterns:
        try:
            compiled.append(re.compile(pattern))
        except re.error as e:
            raise ConfigError(f"Invalid bash auto-allow pattern {pattern!r}: {e}") from e
    return compiled


def describe_call(call: ToolCall) -> str:
    """One-line, human-readable description of what a call will do."""
    args = call.arguments
    if call.name == ToolName.BASH.value:
        return f"Run shell command: {args.get('command', '')}"
    if call.name == ToolName.WRITE_FILE.value:
        return f"Write {len(str(args.get('content', '')))} chars to {args.get('path', '?')}"
    if call.name == ToolName.EDIT_FILE.value:
        return f"Edit {args.get('path', '?')}"
    if call.name == ToolName.REMOVE.value:
        suffix = " (recursive)" if str(args.get("recursive", "")).lower() == "true" else ""
        return f"Remove {args.get('path', '?')}{suffix}"
    if call.name in (ToolName.MOVE_FILE.value, ToolName.COPY_FILE.value):
        verb = "Move" if call.name == ToolName.MOVE_FILE.value else "Copy"
        return f"{verb} {args.get('src', '?')} -> {args.get('dst', '?')}"
    if call.name == ToolName.AGENT_BROWSER.value:
        return f"Run agent-browser {args.get('args', '')}"
    return f"Run {call.name}"


class ConfirmationGate:
    """Decides whether a call needs approval and, if so, asks for it.

    Every destructive call is evaluated on its own; there is no session-wide
    "always allow" beyond the configured bash patterns.
    """

    def __init__(self, output: Output, yolo: bool = False,
                 bash_auto_allow: Optional[Sequence[str]] = None):
        self.output = output
        self.yolo = yolo
        self.auto_allow = compile_patterns(bash_auto_allow or [])

    def matching_pattern(self, command: str) -> Optional[re.Pattern]:
        """First auto-allow pattern that matches ``command``."""
        for pattern in self.auto_allow:
            if pattern.search(command):
                return pattern
        return None

    def classify(self, call: ToolCall) -> GateDecision:
        """AUTO_APPROVED or PENDING_CONFIRMATION, without asking anyone."""
        if not is_destructive(call.name) or self.yolo:
            return GateDecision.AUTO_APPROVED
        if call.name == ToolName.BASH.value:
            command = call.arguments.get("command")
            if isinstance(command, str) and self.matching_pattern(command):
                return GateDecision.AUTO_APPROVED
        return GateDecision.PENDING_CONFIRMATION

    def check(self, call: ToolCall) -> GateDecision:
        """Final decision for ``call``; blocks on the human when needed."""
        decision = self.classify(call)
        if decision is GateDecision.AUTO_APPROVED:
            log.debug("gate: %s auto-approved", call.name)
            return decision

        description = describe_call(call)
        # Ctrl-C while waiting cancels the call instead of being deferred by asyncio.
        with interruptible():
            approved = self.output.confirm(description)
        decision = GateDecision.APPROVED if approved else GateDecision.DENIED
        log.info("gate: %s %s (%s)", call.name, decision.value, truncate(description))
        return decision
