"""Resilience Tests: AgentRunner error paths, rollback, refresh, budget, cancellation.

Tests cover:
    - Failed first round-trip pops the user message (history unchanged)
    - Failure after a tool round keeps the matched call/response pairs
    - 401 triggers one refresh and one resend; a second 401 surfaces
    - Tool-loop budget stops after max_iterations round-trips with matched pairs
    - Cancel event before or during a stream ends the turn without an answer
    - Unexpected exceptions become a generic error event
    - Missing credentials surface with the login hint once
"""

import asyncio

import pytest

from antigravity_chat.core.conversation import (
    FunctionCallMessage,
    FunctionResponseMessage,
    UserMessage,
)
from antigravity_chat.core.errors import (
    EmptyResponseError,
    NotAuthenticatedError,
    TokenRefreshError,
    TransportError,
)
from antigravity_chat.services.agent_runner import AgentRunner

from tests.services.mock_code_assist import (
    FakeTokenManager,
    MockCodeAssistClient,
    text_response,
    tool_response,
)


async def _collect(runner, session, message, cancel_event=None):
    return [ev async for ev in runner.run(session, message, cancel_event)]


def _types(events):
    return [e["type"] for e in events]


# -- Rollback ------------------------------------------------------------------

async def test_first_send_failure_rolls_back_user_message(chat_session, dispatch, token_manager):
    client = MockCodeAssistClient([TransportError("API error", status_code=500, body="boom")])
    runner = AgentRunner(client, dispatch, token_manager)

    events = await _collect(runner, chat_session, "hello")

    assert chat_session.history == []
    assert _types(events)[-3:] == ["discard_partial", "error", "done"]
    err = events[-2]["data"]
    assert "HTTP 500" in err["message"]
    assert events[-1]["data"]["error"] is True
    assert chat_session.busy is False


async def test_empty_response_rolls_back(chat_session, dispatch, token_manager):
    client = MockCodeAssistClient([EmptyResponseError()])
    runner = AgentRunner(client, dispatch, token_manager)

    events = await _collect(runner, chat_session, "hello")

    assert chat_session.history == []
    assert events[-2]["data"]["code"] == "EMPTY_RESPONSE"


async def test_failure_after_tool_round_keeps_pairs(chat_session, dispatch, token_manager):
    client = MockCodeAssistClient([
        tool_response("exec", {"command": "date"}),
        TransportError("API error", status_code=503, body="overloaded"),
    ])
    runner = AgentRunner(client, dispatch, token_manager)

    events = await _collect(runner, chat_session, "time?")

    assert [type(m) for m in chat_session.history] == [
        UserMessage, FunctionCallMessage, FunctionResponseMessage,
    ]
    assert events[-1]["data"]["error"] is True


# -- 401 refresh ---------------------------------------------------------------

async def test_unauthorized_refreshes_once_and_resends(chat_session, dispatch, token_manager):
    client = MockCodeAssistClient([
        TransportError("API error", status_code=401, body="expired"),
        text_response("ok"),
    ])
    runner = AgentRunner(client, dispatch, token_manager)

    events = await _collect(runner, chat_session, "hi")

    assert token_manager.refreshes == 1
    assert [c["access_token"] for c in client.calls] == ["tok-1", "tok-2"]
    assert client.calls[0]["history"] == client.calls[1]["history"]
    assert events[-1]["data"]["error"] is False
    assert chat_session.history[-1].text == "ok"


async def test_second_unauthorized_is_reported(chat_session, dispatch, token_manager):
    client = MockCodeAssistClient([
        TransportError("API error", status_code=401, body="expired"),
        TransportError("API error", status_code=401, body="still expired"),
    ])
    runner = AgentRunner(client, dispatch, token_manager)

    events = await _collect(runner, chat_session, "hi")

    assert token_manager.refreshes == 1
    assert len(client.calls) == 2
    assert "still expired" in events[-2]["data"]["message"]
    assert chat_session.history == []


async def test_refresh_failure_tells_user_to_log_in(chat_session, dispatch):
    class _FailingRefresh(FakeTokenManager):
        async def force_refresh(self):
            raise TokenRefreshError("HTTP 400: invalid_grant")

    client = MockCodeAssistClient([TransportError("API error", status_code=401, body="")])
    runner = AgentRunner(client, dispatch, _FailingRefresh())

    events = await _collect(runner, chat_session, "hi")

    message = events[-2]["data"]["message"]
    assert "invalid_grant" in message
    assert message.endswith("Run `antigravity-chat login` to re-authenticate.")


async def test_not_authenticated_message_has_single_hint(chat_session, dispatch):
    runner = AgentRunner(
        MockCodeAssistClient([]), dispatch, FakeTokenManager(error=NotAuthenticatedError()),
    )

    events = await _collect(runner, chat_session, "hi")

    message = events[-2]["data"]["message"]
    assert message.count("antigravity-chat login") == 1
    assert chat_session.history == []


# -- Budget --------------------------------------------------------------------

async def test_budget_stops_after_max_iterations(chat_session, dispatch, token_manager):
    client = MockCodeAssistClient([
        tool_response("exec", {"command": f"echo {i}"}) for i in range(15)
    ])
    runner = AgentRunner(client, dispatch, token_manager)

    events = await _collect(runner, chat_session, "loop forever")

    assert len(client.calls) == 15
    assert len(dispatch.log) == 15
    notice = events[-2]
    assert notice["type"] == "notice"
    assert notice["data"]["code"] == "BUDGET_EXCEEDED"
    assert events[-1]["data"]["error"] is False

    history = chat_session.history
    assert history[0] == UserMessage("loop forever")
    calls = [m for m in history if isinstance(m, FunctionCallMessage)]
    responses = [m for m in history if isinstance(m, FunctionResponseMessage)]
    assert len(calls) == len(responses) == 15
    for call, response in zip(history[1::2], history[2::2]):
        assert isinstance(call, FunctionCallMessage)
        assert isinstance(response, FunctionResponseMessage)


async def test_custom_budget(chat_session, dispatch, token_manager):
    client = MockCodeAssistClient([tool_response("exec", {"command": "x"})] * 3)
    runner = AgentRunner(client, dispatch, token_manager, max_iterations=3)

    await _collect(runner, chat_session, "go")

    assert len(client.calls) == 3


# -- Cancellation --------------------------------------------------------------

async def test_cancel_before_first_request(chat_session, dispatch, token_manager):
    cancel = asyncio.Event()
    cancel.set()
    client = MockCodeAssistClient([text_response("never")])
    runner = AgentRunner(client, dispatch, token_manager)

    events = await _collect(runner, chat_session, "hi", cancel)

    assert client.calls == []
    assert chat_session.history == []
    assert any(e["type"] == "notice" and e["data"]["code"] == "CANCELLED" for e in events)


async def test_cancel_mid_stream_discards_partial(chat_session, dispatch, token_manager):
    cancel = asyncio.Event()
    stream = text_response("partial answer", on_event=lambda ev: cancel.set())
    client = MockCodeAssistClient([stream])
    runner = AgentRunner(client, dispatch, token_manager)

    events = await _collect(runner, chat_session, "hi", cancel)

    assert "assistant_message" not in _types(events)
    assert "discard_partial" in _types(events)
    assert chat_session.history == []
    assert chat_session.usage.total == 0


async def test_task_cancellation_rolls_back_and_propagates(chat_session, dispatch, token_manager):
    class _Hang:
        def __aiter__(self):
            return self._gen()

        async def _gen(self):
            await asyncio.sleep(3600)
            yield None

    client = MockCodeAssistClient([_Hang()])
    runner = AgentRunner(client, dispatch, token_manager)
    task = asyncio.create_task(_collect(runner, chat_session, "hi"))
    await asyncio.sleep(0.01)
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task
    assert chat_session.history == []
    assert chat_session.busy is False


# -- Unexpected ----------------------------------------------------------------

async def test_unexpected_exception_becomes_generic_error(chat_session, dispatch, token_manager):
    client = MockCodeAssistClient([RuntimeError("kaboom")])
    runner = AgentRunner(client, dispatch, token_manager)

    events = await _collect(runner, chat_session, "hi")

    err = [e for e in events if e["type"] == "error"][0]
    assert err["data"]["code"] == "INTERNAL_ERROR"
    assert "kaboom" not in err["data"]["message"]
    assert chat_session.history == []
    assert chat_session.busy is False
