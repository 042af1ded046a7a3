"""Agent Runner: async agentic loop over one ChatSession, streamed as events.

Invariants:
    - At most max_iterations model round-trips per user message (default 15)
    - One round-trip in flight per session (ChatSession.busy guards re-entry)
    - A function call is always followed by its function response in history
    - Tool failures never end the loop; they come back as error ToolResults
    - A failed or cancelled first round-trip pops the user message it added,
      leaving history exactly as it was before the turn
    - HTTP 401 triggers exactly one token refresh and one resend of the same request
    - Usage from every round-trip is added to the session totals

Design Decisions:
    - Async generator of {"type","data"} events: the CLI renders text as it streams
      and rolls back partial output on discard_partial
    - The streamed text is post-processed only once the round-trip ends (inline
      thinking tags can span chunks)
    - Only the last function call of a response is executed; text that precedes a
      function call is displayed but not stored
    - Pure event builders live in agent_runner_helpers.py
"""

import asyncio
import logging

from antigravity_chat.core.conversation import (
    AssistantMessage,
    FunctionCallMessage,
    FunctionResponseMessage,
    UserMessage,
)
from antigravity_chat.core.errors import (
    AntigravityError,
    BudgetExceededError,
    ErrorContext,
    TransportError,
)
from antigravity_chat.core.session_state import ChatSession
from antigravity_chat.core.sse_decoder import TextDelta, ThinkingDelta
from antigravity_chat.core.thinking_tags import merge_thinking, strip_inline_thinking_tags
from antigravity_chat.infrastructure.code_assist_client import CodeAssistClient
from antigravity_chat.services.agent_runner_helpers import (
    assistant_message_event,
    discard_partial_event,
    done_event,
    error_event,
    notice_event,
    text_delta_event,
    thinking_delta_event,
    tool_call_event,
    tool_result_event,
    unexpected_error_event,
    usage_event,
)
from antigravity_chat.services.token_manager import TokenManager
from antigravity_chat.services.tool_dispatch import ToolDispatch

logger = logging.getLogger(__name__)


class AgentRunner:
    """Alternates model turns and tool turns until plain text or budget exhaustion."""

    MAX_ITERATIONS = 15

    def __init__(
        self,
        client: CodeAssistClient,
        dispatch: ToolDispatch,
        token_manager: TokenManager,
        tools: list[dict] | None = None,
        max_iterations: int = MAX_ITERATIONS,
        max_output_tokens: int = 8192,
    ):
        self.client = client
        self.dispatch = dispatch
        self.tokens = token_manager
        self.tools = tools or []
        self.max_iterations = max_iterations
        self.max_output_tokens = max_output_tokens
        self._iteration = 0
        self._last_result = None

    async def run(
        self, session: ChatSession, user_message: str,
        cancel_event: asyncio.Event | None = None,
    ):
        """Async generator yielding agent events for one user message."""
        if session.busy:
            yield notice_event("A response is already in progress.", "BUSY")
            yield done_event(error=True)
            return

        session.busy = True
        self._iteration = 0
        session.history.append(UserMessage(user_message))
        ctx = ErrorContext(model_id=session.model_id)
        try:
            async for event in self._iteration_loop(session, ctx, cancel_event):
                yield event
        except asyncio.CancelledError:
            logger.info("Turn cancelled", extra={"model_id": session.model_id})
            self._rollback(session)
            raise
        except Exception as e:
            logger.error(
                "Unexpected error in agent runner: %s", e,
                extra={"model_id": session.model_id}, exc_info=True,
            )
            self._rollback(session)
            yield discard_partial_event()
            yield unexpected_error_event()
            yield done_event(error=True)
        finally:
            session.busy = False

    async def _iteration_loop(self, session: ChatSession, ctx: ErrorContext, cancel_event):
        """Main iteration loop; yields events."""
        for iteration in range(self.max_iterations):
            self._iteration = iteration
            ctx.iteration = iteration
            if cancel_event is not None and cancel_event.is_set():
                self._rollback(session)
                yield notice_event("Turn cancelled.", "CANCELLED")
                yield done_event(error=False)
                return

            self._last_result = None
            try:
                async for event in self._stream_api_call(session, ctx, cancel_event):
                    yield event
            except AntigravityError as e:
                logger.error(
                    "Model round-trip failed: %s", e.message,
                    extra={"error_code": e.code, "iteration": iteration,
                           "model_id": session.model_id},
                )
                self._rollback(session)
                yield discard_partial_event()
                yield error_event(e)
                yield done_event(error=True)
                return

            if self._last_result is None:
                self._rollback(session)
                yield discard_partial_event()
                yield notice_event("Turn cancelled.", "CANCELLED")
                yield done_event(error=False)
                return
            result, text, thinking = self._last_result

            session.usage.add(result.usage)
            logger.info(
                "Round-trip complete",
                extra={"iteration": iteration, "model_id": session.model_id,
                       "input_tokens": result.usage.input_tokens,
                       "output_tokens": result.usage.output_tokens},
            )
            yield usage_event(result.usage, session.usage)

            call = result.function_call
            if call is None:
                split = strip_inline_thinking_tags(text)
                session.history.append(AssistantMessage(split.content))
                yield assistant_message_event(
                    split.content, merge_thinking(thinking.strip(), split.thinking),
                )
                yield done_event(error=False)
                return

            session.history.append(FunctionCallMessage(call.name, call.args))
            yield tool_call_event(call.name, call.args)
            tool_result = await self.dispatch.execute(call.name, call.args, cancel_event)
            session.history.append(FunctionResponseMessage(call.name, tool_result))
            yield tool_result_event(call.name, tool_result)

        error = BudgetExceededError(self.max_iterations, ctx)
        logger.warning(error.message, extra={"error_code": error.code})
        yield notice_event(error.display_message(), error.code)
        yield done_event(error=False)

    async def _stream_api_call(self, session: ChatSession, ctx: ErrorContext, cancel_event):
        """Async generator: yields delta events, sets self._last_result.

        Leaves _last_result as None when cancelled mid-stream.
        """
        tokens = await self.tokens.get_valid_tokens()
        for attempt in range(2):
            text: list[str] = []
            thinking: list[str] = []
            try:
                async with self.client.stream_message(
                    access_token=tokens.access_token,
                    project_id=tokens.project_id,
                    model_id=session.model_id,
                    history=session.history,
                    system_prompt=session.system_prompt or None,
                    tools=self.tools,
                    max_tokens=self.max_output_tokens,
                    emit_thinking=True,
                    context=ctx,
                ) as stream:
                    async for event in stream:
                        if cancel_event is not None and cancel_event.is_set():
                            return
                        if isinstance(event, TextDelta):
                            text.append(event.text)
                            yield text_delta_event(event.text)
                        elif isinstance(event, ThinkingDelta):
                            thinking.append(event.text)
                            yield thinking_delta_event(event.text)
                    self._last_result = (stream.result(), "".join(text), "".join(thinking))
                    return
            except TransportError as e:
                if not e.is_auth_failure or attempt > 0:
                    raise
                logger.info("Chat request unauthorized; refreshing token once")
                yield discard_partial_event()
                tokens = await self.tokens.force_refresh()

    def _rollback(self, session: ChatSession) -> None:
        """Pop the user message when the turn failed before any model reply."""
        if self._iteration == 0 and session.history and isinstance(
            session.history[-1], UserMessage,
        ):
            session.history.pop()
