"""Model collaborator: chat messages, replies and an OpenAI-compatible client."""

import asyncio
import json
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx

from .errors import CollaboratorUnreachable
from .logger import get_logger, truncate
from .tools.registry import ToolCall

log = get_logger("llm")


@dataclass
class Message:
    """A chat message."""

    role: str  # "system", "user", "assistant", "tool"
    content: Optional[str] = None
    tool_calls: Optional[List[ToolCall]] = None
    tool_call_id: Optional[str] = None
    name: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to API-compatible dictionary."""
        result: Dict[str, Any] = {"role": self.role}

        if self.content is not None:
            result["content"] = self.content

        if self.tool_calls:
            result["tool_calls"] = [
                {
                    "id": call.id,
                    "type": "function",
                    "function": {"name": call.name, "arguments": json.dumps(call.arguments)},
                }
                for call in self.tool_calls
            ]

        if self.tool_call_id:
            result["tool_call_id"] = self.tool_call_id

        if self.name:
            result["name"] = self.name

        return result


@dataclass
class ModelReply:
    """Either a final text answer or an ordered list of tool calls."""

    content: Optional[str] = None
    tool_calls: List[ToolCall] = field(default_factory=list)
    finish_reason: str = ""
    usage: Dict[str, int] = field(default_factory=dict)

    @property
    def is_final(self) -> bool:
        return not self.tool_calls


class ModelClient(ABC):
    """What the turn loop needs from a model: send a conversation, get a reply."""

    @abstractmethod
    async def send(self, messages: List[Message], tools: Optional[List[Dict[str, Any]]] = None) -> ModelReply:
        """Raise ``CollaboratorUnreachable`` when no usable reply can be obtained."""


def parse_tool_call(raw: Dict[str, Any]) -> ToolCall:
    """Build a ToolCall from an OpenAI-style ``tool_calls`` entry.

    Undecodable arguments do not raise; they are carried on the call so the
    registry can answer with an ``InvalidArguments`` result.
    """
    function = raw.get("function") or {}
    arguments_raw = function.get("arguments")
    arguments: Dict[str, Any] = {}
    argument_error = None

    if isinstance(arguments_raw, dict):
        arguments = arguments_raw
    elif arguments_raw:
        try:
            decoded = json.loads(arguments_raw)
        except json.JSONDecodeError as e:
            argument_error = f"{e} (raw: {truncate(arguments_raw, 200)})"
        else:
            if isinstance(decoded, dict):
                arguments = decoded
            else:
                argument_error = f"expected a JSON object, got {type(decoded).__name__}"

    return ToolCall(
        id=raw.get("id") or f"call_{uuid.uuid4().hex[:12]}",
        name=function.get("name", ""),
        arguments=arguments,
        argument_error=argument_error,
    )


class OpenAICompatClient(ModelClient):
    """Client for any ``/chat/completions`` endpoint with tool calling support.

    A fresh ``httpx.AsyncClient`` is opened per request so the client can be
    shared across event loops (the interactive session runs one loop per turn).
    """

    def __init__(
        self,
        api_url: str,
        api_key: str,
        model: str,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        max_retries: int = 5,
        retry_delay: float = 1.0,
        timeout: float = 600.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_url = api_url
        self.api_key = api_key
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.timeout = timeout
        self.transport = transport

    @classmethod
    def from_provider(cls, provider, **kwargs) -> "OpenAICompatClient":
        """Build from a ``ProviderConfig``."""
        return cls(provider.api_url, provider.api_key, provider.model, **kwargs)

    def _get_headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def _payload(self, messages: List[Message], tools: Optional[List[Dict[str, Any]]]) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "model": self.model,
            "messages": [m.to_dict() for m in messages],
        }
        if self.temperature is not None:
            payload["temperature"] = self.temperature
        if self.max_tokens is not None:
            payload["max_tokens"] = self.max_tokens
        if tools:
            payload["tools"] = tools
            payload["tool_choice"] = "auto"
        return payload

    def _backoff(self, attempt: int) -> float:
        # 1, 2, 4, 8, ... seconds with the default delay
        return min(self.retry_delay * (2 ** attempt), 60.0)

    async def send(self, messages: List[Message], tools: Optional[List[Dict[str, Any]]] = None) -> ModelReply:
        url = f"{self.api_url.rstrip('/')}/chat/completions"
        payload = self._payload(messages, tools)
        last_error: Optional[Exception] = None

        async with httpx.AsyncClient(
            timeout=httpx.Timeout(self.timeout, connect=30.0),
            transport=self.transport,
        ) as http:
            for attempt in range(self.max_retries + 1):
                try:
                    response = await http.post(url, headers=self._get_headers(), json=payload)
                    response.raise_for_status()
                    return self._parse_response(response.json())

                except httpx.HTTPStatusError as e:
                    last_error = e
                    status_code = e.response.status_code
                    # Retry on rate limit (429) or server errors (5xx)
                    if (status_code == 429 or status_code >= 500) and attempt < self.max_retries:
                        wait_time = self._backoff(attempt)
                        log.warning("HTTP %d from model, retrying in %.1fs (attempt %d/%d)",
                                    status_code, wait_time, attempt + 1, self.max_retries)
                        await asyncio.sleep(wait_time)
                        continue
                    raise CollaboratorUnreachable(
                        f"API request failed with status {status_code}: {truncate(e.response.text, 500)}"
                    ) from e

                except (httpx.TimeoutException, httpx.RequestError) as e:
                    last_error = e
                    if attempt < self.max_retries:
                        wait_time = self._backoff(attempt)
                        log.warning("Model request error: %s, retrying in %.1fs (attempt %d/%d)",
                                    e, wait_time, attempt + 1, self.max_retries)
                        await asyncio.sleep(wait_time)
                        continue
                    raise CollaboratorUnreachable(
                        f"API request failed after {self.max_retries} retries: {e}"
                    ) from e

                except ValueError as e:
                    raise CollaboratorUnreachable(f"Model returned invalid JSON: {e}") from e

        raise CollaboratorUnreachable(f"API request failed after {self.max_retries} retries: {last_error}")

    def _parse_response(self, data: Dict[str, Any]) -> ModelReply:
        """Parse API response into a ModelReply."""
        choices = data.get("choices") if isinstance(data, dict) else None
        if not choices:
            raise CollaboratorUnreachable(f"Model response has no choices: {truncate(str(data), 300)}")
        choice = choices[0]
        message = choice.get("message") or {}

        tool_calls = [parse_tool_call(raw) for raw in message.get("tool_calls") or []]

        return ModelReply(
            content=message.get("content"),
            tool_calls=tool_calls,
            finish_reason=choice.get("finish_reason") or "",
            usage=data.get("usage") or {},
        )
