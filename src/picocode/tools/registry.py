"""Executor registry: routes a ToolCall to its executor and always yields a ToolResult."""

import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..errors import InvalidArguments, ToolError
from ..logger import get_logger, log_exception, truncate
from ..sandbox import PathSandbox
from ..tool_registry import ToolDef, ToolMetrics, ToolName, get_tool_def

log = get_logger("tools")


class ToolCall(BaseModel):
    """A tool request issued by the model.  Immutable once received."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    arguments: Dict[str, Any] = Field(default_factory=dict)
    # Set by the model client when the raw arguments could not be decoded.
    argument_error: Optional[str] = None


class ToolResult(BaseModel):
    """Outcome of exactly one ToolCall: a text payload or an error tag + message."""

    call_id: str
    success: bool
    output: Optional[str] = None
    error: Optional[str] = None
    error_kind: Optional[str] = None

    @classmethod
    def ok(cls, call_id: str, output: str) -> "ToolResult":
        return cls(call_id=call_id, success=True, output=output)

    @classmethod
    def fail(cls, call_id: str, kind: str, message: str) -> "ToolResult":
        return cls(call_id=call_id, success=False, error=message, error_kind=kind)

    @classmethod
    def from_error(cls, call_id: str, exc: ToolError) -> "ToolResult":
        return cls.fail(call_id, exc.kind, exc.message)

    def to_message(self) -> str:
        """Convert result to a message string for the model."""
        if self.success:
            return self.output or ""
        return f"Error [{self.error_kind}]: {self.error}"


@dataclass
class ToolContext:
    """Everything an executor may depend on besides its arguments."""
    sandbox: PathSandbox
    create_dirs: bool = True
    bash_enabled: bool = True
    bash_timeout: Optional[float] = None

    @property
    def root(self) -> Path:
        return self.sandbox.root


Executor = Callable[..., Awaitable[str]]


@dataclass
class Tool:
    """A tool definition bound to its executor."""
    definition: ToolDef
    function: Executor

    @property
    def name(self) -> str:
        return self.definition.name.value

    def _validate(self, call: ToolCall) -> BaseModel:
        if call.argument_error:
            raise InvalidArguments(f"Could not decode arguments for {self.name}: {call.argument_error}")
        try:
            return self.definition.args_model.model_validate(call.arguments)
        except ValidationError as e:
            problems = "; ".join(
                f"{'.'.join(str(p) for p in err['loc']) or 'arguments'}: {err['msg']}"
                for err in e.errors()
            )
            raise InvalidArguments(f"Invalid arguments for {self.name}: {problems}") from e

    async def execute(self, context: ToolContext, call: ToolCall) -> ToolResult:
        """Run the executor.  Per-call failures come back as failed results."""
        try:
            args = self._validate(call)
            output = await self.function(context, **args.model_dump())
            return ToolResult.ok(call.id, output)
        except ToolError as e:
            log.info("tool %s failed: %s %s", self.name, e.kind, truncate(e.message))
            return ToolResult.from_error(call.id, e)
        except OSError as e:
            log.info("tool %s failed: %s", self.name, e)
            return ToolResult.fail(call.id, type(e).__name__, str(e))
        except Exception as e:
            log_exception(log, f"tool {self.name} crashed", e)
            return ToolResult.fail(call.id, type(e).__name__, str(e))


class ToolRegistry:
    """Static name-to-executor mapping, built once at startup."""

    def __init__(self, context: ToolContext, metrics: Optional[ToolMetrics] = None):
        self.context = context
        self.metrics = metrics or ToolMetrics()
        self._tools: Dict[str, Tool] = {}

    def bind(self, name: ToolName, function: Executor) -> None:
        """Bind an executor to one of the closed set of tool names."""
        definition = get_tool_def(name.value)
        if definition is None:
            raise KeyError(name)
        self._tools[name.value] = Tool(definition, function)

    def get(self, name: str) -> Optional[Tool]:
        return self._tools.get(name)

    def has(self, name: str) -> bool:
        return name in self._tools

    def list_tools(self) -> List[Tool]:
        return list(self._tools.values())

    def to_openai_schema(self) -> List[Dict[str, Any]]:
        return [tool.definition.to_openai_schema() for tool in self._tools.values()]

    async def execute(self, call: ToolCall) -> ToolResult:
        """Execute a call by name.  Never raises for per-call failures."""
        tool = self.get(call.name)
        if tool is None:
            return ToolResult.fail(call.id, "UnknownTool", f"Tool '{call.name}' not found")

        started = time.perf_counter()
        log.info("tool start: %s id=%s args=%s", call.name, call.id, truncate(str(call.arguments)))
        result = await tool.execute(self.context, call)
        elapsed_ms = (time.perf_counter() - started) * 1000
        self.metrics.record(call.name, elapsed_ms, result.success, result.error_kind)
        log.info("tool done: %s id=%s success=%s %.1fms", call.name, call.id, result.success, elapsed_ms)
        return result
