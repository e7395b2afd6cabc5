"""Plan/Code modes and the user commands that switch between them."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .agent import TurnLoop, TurnOutcome
from .logger import get_logger
from .prompts import GO_MESSAGE, PLAN_MODE_PREFIX

log = get_logger("modes")


class Mode(str, Enum):
    CODE = "code"
    PLAN = "plan"


@dataclass
class CommandResult:
    """What a mode command did.  ``submit`` is a message to send as if typed."""

    message: str
    submit: Optional[str] = None


class ModeController:
    """Owns the active mode and frames user messages for the turn loop.

    Switching never touches the tool set or the history; it only changes the
    prefix put in front of the next user message.
    """

    COMMANDS = ("/plan", "/code", "/go", "/mode")

    def __init__(self, loop: TurnLoop, mode: Mode = Mode.CODE):
        self.loop = loop
        self.mode = Mode(mode)

    @property
    def history(self):
        return self.loop.history

    def switch(self, mode: Mode) -> Mode:
        """Set the mode and return the previous one."""
        previous, self.mode = self.mode, Mode(mode)
        if previous != self.mode:
            log.info("mode: %s -> %s", previous.value, self.mode.value)
        return previous

    def frame(self, text: str) -> str:
        if self.mode == Mode.PLAN:
            return PLAN_MODE_PREFIX + text
        return text

    async def submit(self, text: str) -> TurnOutcome:
        return await self.loop.run_turn(self.frame(text))

    def handle_command(self, line: str) -> Optional[CommandResult]:
        """Apply a mode command.  Returns None if ``line`` is not one."""
        command = line.strip().split(maxsplit=1)[0].lower() if line.strip() else ""
        if command not in self.COMMANDS:
            return None

        if command == "/plan":
            self.switch(Mode.PLAN)
            return CommandResult("Plan mode: exploring only, no edits.")
        if command == "/code":
            self.switch(Mode.CODE)
            return CommandResult("Code mode.")
        if command == "/go":
            self.switch(Mode.CODE)
            if not len(self.history):
                return CommandResult("Code mode. Nothing planned yet.")
            return CommandResult("Code mode. Implementing the plan.", submit=GO_MESSAGE)
        return CommandResult(f"Mode: {self.mode.value}")
