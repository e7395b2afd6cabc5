"""The turn loop: model call, gated tool execution, feedback, repeat."""

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from .confirmation import ConfirmationGate
from .context import ConversationHistory
from .errors import CollaboratorUnreachable, ConfirmationDenied, PicocodeError, ToolCallLimitExceeded
from .interrupt import InterruptState, get_interrupt_state
from .llm_client import ModelClient
from .logger import get_logger, log_exception
from .output import Event, EventKind, Output
from .tools.registry import ToolCall, ToolRegistry, ToolResult

log = get_logger("agent")

DEFAULT_TOOL_CALL_LIMIT = 50
CANCELLED_KIND = "Cancelled"


class TurnState(str, Enum):
    IDLE = "idle"
    AWAITING_MODEL = "awaiting_model"
    EXECUTING_TOOLS = "executing_tools"
    COMPLETED = "completed"
    ABORTED = "aborted"


class AbortReason(str, Enum):
    LIMIT_EXCEEDED = "limit_exceeded"
    COLLABORATOR_UNREACHABLE = "collaborator_unreachable"
    CANCELLED = "cancelled"


class TurnInProgress(PicocodeError):
    """A second turn was started while one is still running."""


@dataclass
class TurnOutcome:
    """Result of one user turn: final text, or a structured abort reason."""

    state: TurnState
    text: Optional[str] = None
    reason: Optional[AbortReason] = None
    message: Optional[str] = None
    tool_calls: int = 0
    results: List[ToolResult] = field(default_factory=list)

    @property
    def completed(self) -> bool:
        return self.state == TurnState.COMPLETED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "state": self.state.value,
            "text": self.text,
            "reason": self.reason.value if self.reason else None,
            "message": self.message,
            "tool_calls": self.tool_calls,
            "results": [r.model_dump() for r in self.results],
        }


class TurnLoop:
    """Drives one user turn at a time against a shared conversation history.

    Tool calls run strictly in the order the model issued them.  Each one goes
    through the confirmation gate and then the registry, and exactly one
    ToolResult per call is appended to the history.  The per-turn budget is
    checked before every call; once it is spent the remaining calls of the
    batch are answered with ``ToolCallLimitExceeded`` and the turn ends.
    """

    def __init__(
        self,
        client: ModelClient,
        registry: ToolRegistry,
        gate: ConfirmationGate,
        output: Output,
        history: Optional[ConversationHistory] = None,
        tool_call_limit: int = DEFAULT_TOOL_CALL_LIMIT,
        interrupt: Optional[InterruptState] = None,
    ):
        if tool_call_limit < 1:
            raise ValueError("tool_call_limit must be a positive integer")
        self.client = client
        self.registry = registry
        self.gate = gate
        self.output = output
        self.history = history if history is not None else ConversationHistory()
        self.tool_call_limit = tool_call_limit
        self.interrupt = interrupt or get_interrupt_state()
        self.state = TurnState.IDLE
        self._in_flight = False

    @property
    def busy(self) -> bool:
        return self._in_flight

    def _transition(self, state: TurnState) -> None:
        log.debug("turn state: %s -> %s", self.state.value, state.value)
        self.state = state

    async def run_turn(self, text: str) -> TurnOutcome:
        """Run one user turn to completion or abort."""
        if self._in_flight:
            raise TurnInProgress("A turn is already in progress")
        self._in_flight = True
        self.interrupt.reset()
        try:
            return await self._run(text)
        finally:
            self._in_flight = False

    async def _run(self, text: str) -> TurnOutcome:
        self.history.add_user(text)
        calls_made = 0
        results: List[ToolResult] = []
        pending: List[ToolCall] = []

        def finish(state: TurnState, **kwargs) -> TurnOutcome:
            self._transition(state)
            return TurnOutcome(state=state, tool_calls=calls_made, results=results, **kwargs)

        def record(call: ToolCall, result: ToolResult) -> None:
            self.history.add_tool_result(call, result)
            results.append(result)

        def refuse_pending(kind: str, message: str) -> None:
            while pending:
                call = pending.pop(0)
                record(call, ToolResult.fail(call.id, kind, message))

        try:
            while True:
                if self.interrupt.is_interrupted():
                    return self._cancelled(finish)

                self._transition(TurnState.AWAITING_MODEL)
                self.output.emit(Event(EventKind.THINKING))
                try:
                    reply = await self.client.send(self.history.messages(), self.registry.to_openai_schema())
                except CollaboratorUnreachable as e:
                    log_exception(log, "model collaborator unreachable", e)
                    self.output.emit(Event(EventKind.ERROR, text=str(e)))
                    return finish(TurnState.ABORTED, reason=AbortReason.COLLABORATOR_UNREACHABLE,
                                  message=str(e))

                if reply.is_final:
                    answer = reply.content or ""
                    self.history.add_assistant(answer)
                    self.output.emit(Event(EventKind.TEXT, text=answer))
                    return finish(TurnState.COMPLETED, text=answer)

                self.history.add_assistant(reply.content, reply.tool_calls)
                if reply.content:
                    self.output.emit(Event(EventKind.TEXT, text=reply.content))

                self._transition(TurnState.EXECUTING_TOOLS)
                pending.extend(reply.tool_calls)
                while pending:
                    if self.interrupt.is_interrupted():
                        refuse_pending(CANCELLED_KIND, "Cancelled by user")
                        return self._cancelled(finish)

                    if calls_made >= self.tool_call_limit:
                        exc = ToolCallLimitExceeded(self.tool_call_limit)
                        log.warning("%s; refusing %d pending call(s)", exc, len(pending))
                        refuse_pending(exc.kind, str(exc))
                        self.output.emit(Event(EventKind.NOTICE, text=f"{exc}. Turn ended."))
                        return finish(TurnState.ABORTED, reason=AbortReason.LIMIT_EXCEEDED, message=str(exc))

                    call = pending[0]
                    calls_made += 1
                    result = await self._execute(call)
                    pending.pop(0)
                    record(call, result)

        except (asyncio.CancelledError, KeyboardInterrupt) as e:
            # The interrupted call and anything queued behind it are recorded, never dropped.
            refuse_pending(CANCELLED_KIND, "Cancelled by user")
            log.info("turn cancelled (%s)", type(e).__name__)
            if isinstance(e, asyncio.CancelledError):
                self._transition(TurnState.ABORTED)
                raise
            return self._cancelled(finish)

    def _cancelled(self, finish) -> TurnOutcome:
        self.output.emit(Event(EventKind.NOTICE, text="Turn cancelled."))
        return finish(TurnState.ABORTED, reason=AbortReason.CANCELLED, message="Cancelled by user")

    async def _execute(self, call: ToolCall) -> ToolResult:
        """Gate then execute one call.  Always yields a result."""
        self.output.emit(Event(EventKind.TOOL_CALL, tool_name=call.name, data={"arguments": call.arguments}))

        # Unknown names cannot be gated meaningfully; the registry answers them.
        if self.registry.has(call.name) and not self.gate.check(call).allowed:
            denial = ConfirmationDenied(f"User denied {call.name}")
            result = ToolResult.from_error(call.id, denial)
        else:
            result = await self.registry.execute(call)

        self.output.emit(Event(
            EventKind.TOOL_RESULT,
            text=result.to_message(),
            tool_name=call.name,
            success=result.success,
        ))
        return result
