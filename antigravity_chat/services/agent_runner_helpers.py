"""Agent Runner Helpers: pure event builders and token formatting.

Invariants:
    - All functions are pure (stateless, deterministic)
    - Event dicts follow the runner protocol: {"type": AgentEventType value, "data": ...}
"""

import json

from antigravity_chat.core.conversation import ToolResult
from antigravity_chat.core.domain_types import AgentEventType
from antigravity_chat.core.errors import (
    AntigravityError,
    AuthError,
    ErrorSeverity,
    NotAuthenticatedError,
)
from antigravity_chat.core.sse_decoder import Usage

_PREVIEW_CHARS = 300


def _event(kind: AgentEventType, data) -> dict:
    return {"type": kind.value, "data": data}


# -- Event builders ------------------------------------------------------------

def text_delta_event(text: str) -> dict:
    return _event(AgentEventType.TEXT_DELTA, text)


def thinking_delta_event(text: str) -> dict:
    return _event(AgentEventType.THINKING_DELTA, text)


def tool_call_event(name: str, args: dict) -> dict:
    preview = json.dumps(args, ensure_ascii=False)[:_PREVIEW_CHARS]
    return _event(AgentEventType.TOOL_CALL, {"tool": name, "args": args, "input_preview": preview})


def tool_result_event(name: str, result: ToolResult) -> dict:
    return _event(AgentEventType.TOOL_RESULT, {
        "tool": name,
        "is_error": result.is_error,
        "result_preview": result.output_text[:_PREVIEW_CHARS],
    })


def assistant_message_event(content: str, thinking: str) -> dict:
    return _event(AgentEventType.ASSISTANT_MESSAGE, {"content": content, "thinking": thinking})


def usage_event(turn: Usage, total: Usage) -> dict:
    return _event(AgentEventType.USAGE, {
        "input_tokens": turn.input_tokens,
        "output_tokens": turn.output_tokens,
        "total_input_tokens": total.input_tokens,
        "total_output_tokens": total.output_tokens,
    })


def discard_partial_event() -> dict:
    return _event(AgentEventType.DISCARD_PARTIAL, None)


def notice_event(message: str, code: str | None = None) -> dict:
    return _event(AgentEventType.NOTICE, {"message": message, "code": code})


def done_event(error: bool = False) -> dict:
    return _event(AgentEventType.DONE, {"error": error})


def error_event(error: AntigravityError) -> dict:
    """Error event; auth failures tell the user how to recover."""
    event = error.to_event()
    if isinstance(error, AuthError) and not isinstance(error, NotAuthenticatedError):
        event["data"]["message"] = (
            f"{event['data']['message']} "
            "Run `antigravity-chat login` to re-authenticate."
        )
    return event


def unexpected_error_event() -> dict:
    return _event(AgentEventType.ERROR, {
        "code": "INTERNAL_ERROR",
        "message": "An unexpected error occurred",
        "severity": ErrorSeverity.CRITICAL.value,
        "recoverable": False,
    })


# -- Token formatting ----------------------------------------------------------

def format_token_count(n: int) -> str:
    if n >= 1_000_000:
        return f"{n / 1_000_000:.1f}M"
    if n >= 1_000:
        return f"{n / 1_000:.1f}k"
    return str(n)


def format_usage(usage: Usage) -> str:
    return (
        f"{format_token_count(usage.input_tokens)} in / "
        f"{format_token_count(usage.output_tokens)} out"
    )
