"""Session surface: wires the engine together for one conversation.

``run_once`` answers a single message and returns a ``TurnOutcome``;
``run_interactive`` loops that over lines read from the output collaborator.
"""

import asyncio
from typing import Optional, Sequence

from .agent import TurnLoop, TurnOutcome
from .config import AgentConfig
from .confirmation import ConfirmationGate
from .context import ConversationHistory
from .llm_client import ModelClient
from .logger import get_logger
from .modes import CommandResult, ModeController
from .output import Event, EventKind, NoOutput, Output
from .prompts import build_system_prompt
from .sandbox import PathSandbox
from .tool_registry import ToolMetrics
from .tools import ToolContext, build_default_registry

log = get_logger("session")

EXIT_COMMANDS = ("/q", "/quit", "exit")

HELP_TEXT = """Commands:
  /plan    switch to Plan mode (explore and plan, no edits)
  /code    switch to Code mode
  /go      switch to Code mode and implement the plan
  /mode    show the current mode
  /stats   tool call statistics
  /help    this help
  /q       quit (also /quit, exit)"""


def format_stats(summary: dict, recent: Sequence[dict] = ()) -> str:
    lines = [f"Tool calls: {summary['total_calls']} ({summary['total_errors']} failed)"]
    for name, entry in sorted(summary["per_tool"].items()):
        lines.append(
            f"  {name:<14} {entry['count']:>4} calls  avg {entry['avg_ms']:>8.1f}ms"
            f"  max {entry['max_ms']:>8.1f}ms  errors {entry['errors']}"
        )
    if recent:
        lines.append("Recent:")
        for rec in recent:
            status = "ok" if rec["success"] else rec["error_kind"] or "failed"
            lines.append(f"  {rec['tool']:<14} {rec['elapsed_ms']:>8.1f}ms  {status}")
    return "\n".join(lines)


class Session:
    """One conversation: sandbox, tools, gate, turn loop and mode controller."""

    def __init__(
        self,
        config: AgentConfig,
        client: ModelClient,
        output: Optional[Output] = None,
        provider: str = "",
        model: str = "",
        persona_name: Optional[str] = None,
    ):
        self.config = config
        self.client = client
        self.output = output or NoOutput()
        self.provider = provider
        self.model = model
        self.persona_name = persona_name

        self.sandbox = PathSandbox(config.workspace_root)
        self.metrics = ToolMetrics()
        self.registry = build_default_registry(
            ToolContext(
                sandbox=self.sandbox,
                create_dirs=config.create_dirs,
                bash_enabled=config.bash_enabled,
                bash_timeout=config.bash_timeout,
            ),
            self.metrics,
        )
        self.gate = ConfirmationGate(self.output, yolo=config.yolo, bash_auto_allow=config.bash_auto_allow)
        self.history = ConversationHistory(
            build_system_prompt(self.sandbox.root, config.persona, config.system_extension)
        )
        self.loop = TurnLoop(
            client,
            self.registry,
            self.gate,
            self.output,
            history=self.history,
            tool_call_limit=config.tool_call_limit,
        )
        self.modes = ModeController(self.loop, config.mode)
        log.info("session: root=%s limit=%d yolo=%s bash=%s mode=%s",
                 self.sandbox.root, config.tool_call_limit, config.yolo,
                 config.bash_enabled, config.mode.value)

    def show_header(self) -> None:
        self.output.emit(Event(EventKind.HEADER, data={
            "provider": self.provider,
            "model": self.model,
            "persona": self.persona_name,
            "bash": self.config.bash_enabled,
            "yolo": self.config.yolo,
            "limit": self.config.tool_call_limit,
            "workspace": str(self.sandbox.root),
        }))

    async def run_once(self, text: str) -> TurnOutcome:
        """Run a single message through the current mode."""
        return await self.modes.submit(text)

    def handle_command(self, line: str) -> Optional[CommandResult]:
        """Apply a slash command.  Returns None for ordinary messages."""
        if not line.startswith("/"):
            return None
        result = self.modes.handle_command(line)
        if result is not None:
            self.config.mode = self.modes.mode
            return result
        command = line.split(maxsplit=1)[0].lower()
        if command == "/stats":
            return CommandResult(format_stats(self.metrics.summary(), self.metrics.recent(5)))
        if command == "/help":
            return CommandResult(HELP_TEXT)
        return CommandResult(f"Unknown command: {command}. Type /help for a list.")

    async def submit(self, line: str) -> Optional[TurnOutcome]:
        """Handle one line of input: a command, a message, or both (``/go``)."""
        result = self.handle_command(line)
        if result is None:
            return await self.run_once(line)
        self.output.emit(Event(EventKind.NOTICE, text=result.message))
        if result.submit:
            return await self.run_once(result.submit)
        return None

    def run_interactive(self) -> None:
        """Read, submit, repeat until the user quits.

        Each turn runs in its own event loop so Ctrl+C cancels the turn in
        flight and returns to the prompt instead of ending the session.
        """
        self.show_header()
        while True:
            try:
                line = self.output.read_input().strip()
            except (EOFError, KeyboardInterrupt):
                break
            if not line:
                continue
            if line.lower() in EXIT_COMMANDS:
                break
            try:
                asyncio.run(self.submit(line))
            except KeyboardInterrupt:
                self.output.emit(Event(EventKind.NOTICE, text="Interrupted."))
        log.info("session ended")
