"""Conversation history for a session."""

from typing import Iterator, List, Optional

from .llm_client import Message
from .tools.registry import ToolCall, ToolResult

# Very long tool output is clipped before it goes back to the model.
MAX_RESULT_CHARS = 10000


def clip_result(text: str, limit: int = MAX_RESULT_CHARS) -> str:
    if len(text) <= limit:
        return text
    half = limit // 2
    return text[:half] + "\n...[truncated]...\n" + text[-half:]


class ConversationHistory:
    """Append-only, ordered log of the conversation.

    Entries are referenced by index; nothing is ever removed or reordered.
    The system message sits outside the log and is prepended on request.
    """

    def __init__(self, system: Optional[str] = None):
        self._messages: List[Message] = []
        self._system: Optional[Message] = None
        if system:
            self.set_system_message(system)

    def set_system_message(self, content: str) -> None:
        self._system = Message(role="system", content=content)

    @property
    def system_message(self) -> Optional[Message]:
        return self._system

    def append(self, message: Message) -> int:
        """Append a message and return its index."""
        self._messages.append(message)
        return len(self._messages) - 1

    def add_user(self, content: str) -> int:
        return self.append(Message(role="user", content=content))

    def add_assistant(self, content: Optional[str], tool_calls: Optional[List[ToolCall]] = None) -> int:
        return self.append(Message(role="assistant", content=content, tool_calls=tool_calls or None))

    def add_tool_result(self, call: ToolCall, result: ToolResult) -> int:
        return self.append(Message(
            role="tool",
            content=clip_result(result.to_message()),
            tool_call_id=call.id,
            name=call.name,
        ))

    def messages(self, include_system: bool = True) -> List[Message]:
        """Snapshot of the log, optionally headed by the system message."""
        head = [self._system] if include_system and self._system else []
        return head + list(self._messages)

    def __getitem__(self, index: int) -> Message:
        return self._messages[index]

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self) -> Iterator[Message]:
        return iter(list(self._messages))

    def __bool__(self) -> bool:
        return bool(self._messages)
