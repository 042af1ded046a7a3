"""Conversation tests: history entries to Gemini contents.

Tests cover:
    - Role mapping for each message variant
    - functionResponse carries output or error depending on the flag
    - Order preserved; dangling call detection
"""

import pytest

from antigravity_chat.core.conversation import (
    AssistantMessage,
    FunctionCallMessage,
    FunctionResponseMessage,
    ToolResult,
    UserMessage,
    has_dangling_call,
    message_to_content,
    to_contents,
)


def test_user_and_assistant_roles():
    assert message_to_content(UserMessage("hi")) == {"role": "user", "parts": [{"text": "hi"}]}
    assert message_to_content(AssistantMessage("yo")) == {"role": "model", "parts": [{"text": "yo"}]}


def test_function_call_is_model_part():
    content = message_to_content(FunctionCallMessage("exec", {"command": "ls"}))
    assert content == {
        "role": "model",
        "parts": [{"functionCall": {"name": "exec", "args": {"command": "ls"}}}],
    }


def test_function_response_output_and_error():
    ok = message_to_content(FunctionResponseMessage("exec", ToolResult("done")))
    assert ok["role"] == "user"
    assert ok["parts"][0]["functionResponse"] == {"name": "exec", "response": {"output": "done"}}

    err = message_to_content(FunctionResponseMessage("exec", ToolResult("boom", is_error=True)))
    assert err["parts"][0]["functionResponse"]["response"] == {"error": "boom"}


def test_to_contents_preserves_order():
    history = [
        UserMessage("q"),
        FunctionCallMessage("exec", {}),
        FunctionResponseMessage("exec", ToolResult("r")),
        AssistantMessage("a"),
    ]
    roles = [c["role"] for c in to_contents(history)]
    assert roles == ["user", "model", "user", "model"]


def test_unsupported_entry_raises():
    with pytest.raises(TypeError):
        message_to_content({"role": "user"})


def test_dangling_call_detection():
    call = FunctionCallMessage("exec", {})
    assert has_dangling_call([UserMessage("q"), call])
    assert not has_dangling_call(
        [UserMessage("q"), call, FunctionResponseMessage("exec", ToolResult("r"))],
    )
