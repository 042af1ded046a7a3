"""ChatSession tests: counts and reset semantics."""

from antigravity_chat.core.conversation import (
    AssistantMessage,
    FunctionCallMessage,
    UserMessage,
)
from antigravity_chat.core.session_state import ChatSession
from antigravity_chat.core.sse_decoder import Usage


def test_user_message_count_ignores_other_entries():
    session = ChatSession(model_id="m")
    session.history += [
        UserMessage("a"), FunctionCallMessage("exec", {}),
        AssistantMessage("b"), UserMessage("c"),
    ]
    assert session.user_message_count == 2


def test_reset_keeps_model_and_preferences():
    session = ChatSession(model_id="m", system_prompt="sys", show_thinking=False)
    session.history.append(UserMessage("a"))
    session.usage.add(Usage(5, 5))

    session.reset()

    assert session.history == []
    assert session.usage.total == 0
    assert session.model_id == "m"
    assert session.system_prompt == "sys"
    assert session.show_thinking is False
