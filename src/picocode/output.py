"""Interactive collaborator: progress display, confirmations and input.

The engine only ever calls ``emit(event)``, ``confirm(description)`` and
``read_input()``.  ``ConsoleOutput`` renders with rich; the others are for
quiet, logged and embedded use.
"""

import sys
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

from rich.console import Console
from rich.markdown import Markdown
from rich.prompt import Confirm
from rich.text import Text

from .history import InputHistory
from .logger import get_logger, truncate

log = get_logger("output")


class EventKind(str, Enum):
    HEADER = "header"
    THINKING = "thinking"
    TEXT = "text"
    TOOL_CALL = "tool_call"
    TOOL_RESULT = "tool_result"
    NOTICE = "notice"
    ERROR = "error"


@dataclass
class Event:
    kind: EventKind
    text: str = ""
    tool_name: Optional[str] = None
    success: Optional[bool] = None
    data: Dict[str, Any] = field(default_factory=dict)


class Output(ABC):
    """What the engine needs from whoever sits in front of it."""

    @abstractmethod
    def emit(self, event: Event) -> None:
        ...

    @abstractmethod
    def confirm(self, description: str) -> bool:
        """Block until the human approves (True) or denies (False)."""

    def read_input(self, prompt: str = "❯ ") -> str:
        raise EOFError("this output has no interactive input")


def _preview(arguments: Dict[str, Any], max_len: int = 60) -> str:
    if not arguments:
        return ""
    first = next(iter(arguments.values()))
    text = first if isinstance(first, str) else str(first)
    text = text.replace("\n", " ")
    return text if len(text) <= max_len else text[:max_len] + "..."


class ConsoleOutput(Output):
    """Rich terminal rendering with a spinner while the model thinks."""

    RESULT_PREVIEW_LINES = 4

    def __init__(self, console: Optional[Console] = None, history: Optional[InputHistory] = None):
        self.console = console or Console()
        self.history = history
        self._status = None
        self._prompt_session = None

    # -- spinner --------------------------------------------------------------

    def _start_thinking(self, message: str) -> None:
        if self._status is None:
            self._status = self.console.status(message, spinner="dots")
            self._status.start()

    def _stop_thinking(self) -> None:
        if self._status is not None:
            self._status.stop()
            self._status = None

    # -- rendering ------------------------------------------------------------

    def _header(self, data: Dict[str, Any]) -> None:
        def flag(active: bool, label: str, color: str) -> str:
            return f"[{color}][x] {label}[/{color}]" if active else f"[dim][ ] {label}[/dim]"

        line = f"[bold]picocode[/bold] | [cyan]{data.get('provider', '?')}[/cyan] ([blue]{data.get('model', '?')}[/blue])"
        if data.get("persona"):
            line += f" | [magenta]{data['persona']}[/magenta]"
        line += (
            f" | {flag(data.get('bash', False), 'bash', 'green')}"
            f" | {flag(data.get('yolo', False), 'yolo', 'red')}"
            f" | [yellow]limit:{data.get('limit', '?')}[/yellow]"
            f" | [dim]{data.get('workspace', '')}[/dim]"
        )
        self.console.print(line)

    def _tool_result(self, event: Event) -> None:
        lines = event.text.splitlines() or ["(empty)"]
        if not event.success:
            for line in lines:
                self.console.print(Text(f"  │  {line}", style="red"))
            return
        shown = lines[:self.RESULT_PREVIEW_LINES]
        for i, line in enumerate(shown):
            last = i == len(lines) - 1
            self.console.print(Text(f"  {'└' if last else '│'}  {line[:100]}", style="dim"))
        if len(lines) > len(shown):
            self.console.print(Text(f"  └  ... +{len(lines) - len(shown)} lines", style="dim"))

    def emit(self, event: Event) -> None:
        if event.kind == EventKind.THINKING:
            self._start_thinking(event.text or "Thinking...")
            return
        self._stop_thinking()

        if event.kind == EventKind.HEADER:
            self._header(event.data)
        elif event.kind == EventKind.TEXT:
            self.console.print()
            self.console.print(Markdown(event.text))
        elif event.kind == EventKind.TOOL_CALL:
            name = (event.tool_name or "").replace("_", " ").capitalize()
            preview = _preview(event.data.get("arguments", {}))
            self.console.print(f"\n[green]⏺[/green] [bold]{name}[/bold]([dim]{preview}[/dim])")
        elif event.kind == EventKind.TOOL_RESULT:
            self._tool_result(event)
        elif event.kind == EventKind.NOTICE:
            self.console.print(f"[yellow]{event.text}[/yellow]")
        elif event.kind == EventKind.ERROR:
            self.console.print(f"[red]⏺ Error: {event.text}[/red]")

    def confirm(self, description: str) -> bool:
        self._stop_thinking()
        try:
            return Confirm.ask(f"\n[yellow]⚠[/yellow] {description}", console=self.console, default=False)
        except EOFError:
            return False

    def read_input(self, prompt: str = "❯ ") -> str:
        self._stop_thinking()
        if self.history is not None and sys.stdin.isatty():
            if self._prompt_session is None:
                from prompt_toolkit import PromptSession
                from prompt_toolkit.auto_suggest import AutoSuggestFromHistory
                self._prompt_session = PromptSession(
                    history=self.history.backend,
                    auto_suggest=AutoSuggestFromHistory(),
                )
            return self._prompt_session.prompt(prompt)
        line = self.console.input(f"[bold blue]{prompt}[/bold blue]")
        if self.history is not None:
            self.history.append(line)
        return line


class QuietOutput(Output):
    """Only errors and confirmation prompts, on stderr."""

    def __init__(self, console: Optional[Console] = None):
        self.console = console or Console(stderr=True)

    def emit(self, event: Event) -> None:
        if event.kind == EventKind.ERROR:
            self.console.print(f"Error: {event.text}", style="red", markup=False)

    def confirm(self, description: str) -> bool:
        try:
            return Confirm.ask(f"Confirm: {description}", console=self.console, default=False)
        except EOFError:
            return False


class LogOutput(Output):
    """Sends every event to the log.  Cannot confirm, so it denies."""

    def emit(self, event: Event) -> None:
        if event.kind == EventKind.ERROR:
            log.error("%s", event.text)
        elif event.kind == EventKind.TOOL_CALL:
            log.info("Tool call: %s %s", event.tool_name, event.data.get("arguments"))
        elif event.kind == EventKind.TOOL_RESULT:
            log.info("Tool result: %s", truncate(event.text))
        elif event.kind != EventKind.THINKING:
            log.info("%s: %s", event.kind.value, truncate(event.text))

    def confirm(self, description: str) -> bool:
        log.info("confirmation denied (non-interactive): %s", description)
        return False


class NoOutput(Output):
    """Silent.  Denies every confirmation; pair with yolo for unattended runs."""

    def emit(self, event: Event) -> None:
        pass

    def confirm(self, description: str) -> bool:
        return False
