"""Conversation: history message variants and their Gemini `contents` wire form.

Invariants:
    - History order is wire order; to_contents never reorders or merges entries
    - user -> role "user"; assistant -> role "model"
    - function_call -> "model" part {functionCall}; function_response -> "user" part {functionResponse}
    - Every FunctionCallMessage appended by the agent loop is followed by its FunctionResponseMessage

Design Decisions:
    - Frozen dataclasses over dicts: history entries are values, never edited in place
    - ToolResult lives here because FunctionResponseMessage embeds it
"""

from dataclasses import dataclass, field
from typing import Any, Union

from antigravity_chat.core.domain_types import MessageRole


@dataclass(frozen=True)
class ToolResult:
    """Bounded, model-readable tool output plus an error flag."""
    output_text: str
    is_error: bool = False


@dataclass(frozen=True)
class UserMessage:
    text: str


@dataclass(frozen=True)
class AssistantMessage:
    text: str


@dataclass(frozen=True)
class FunctionCallMessage:
    name: str
    args: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class FunctionResponseMessage:
    name: str
    result: ToolResult


Message = Union[UserMessage, AssistantMessage, FunctionCallMessage, FunctionResponseMessage]


def message_to_content(message: Message) -> dict:
    """Convert one history entry to a Gemini content object."""
    if isinstance(message, UserMessage):
        return {"role": MessageRole.USER.value, "parts": [{"text": message.text}]}
    if isinstance(message, AssistantMessage):
        return {"role": MessageRole.MODEL.value, "parts": [{"text": message.text}]}
    if isinstance(message, FunctionCallMessage):
        return {
            "role": MessageRole.MODEL.value,
            "parts": [{"functionCall": {"name": message.name, "args": message.args}}],
        }
    if isinstance(message, FunctionResponseMessage):
        key = "error" if message.result.is_error else "output"
        return {
            "role": MessageRole.USER.value,
            "parts": [{
                "functionResponse": {
                    "name": message.name,
                    "response": {key: message.result.output_text},
                },
            }],
        }
    raise TypeError(f"Unsupported history entry: {message!r}")


def to_contents(history: list[Message]) -> list[dict]:
    return [message_to_content(m) for m in history]


def has_dangling_call(history: list[Message]) -> bool:
    """True when a function call has no matching response after it."""
    pending = 0
    for m in history:
        if isinstance(m, FunctionCallMessage):
            pending += 1
        elif isinstance(m, FunctionResponseMessage):
            pending -= 1
    return pending > 0
