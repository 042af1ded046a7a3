"""Code Assist Client: chat transport and model listing over the Cloud Code Assist proxy.

Invariants:
    - stream_message / send_message issue exactly one HTTP request; never retried
    - Non-success status -> TransportError carrying the response body
    - A success response with zero body bytes -> EmptyResponseError
    - Stream events reach the caller in byte-stream order
    - fetch_available_models: 429 / 5xx / connection errors retried with exponential
      backoff (max_retries), Retry-After honored; other 4xx fail immediately
    - All httpx failures mapped to TransportError (core/errors.py)

Design Decisions:
    - stream_message is an asynccontextmanager yielding a ChatStream: the response is
      closed on every exit path, and errors raised while the caller iterates are mapped
      at the yield
    - send_message layers the callback style (on_text, on_thinking, on_function_call)
      over the same stream
    - ±25% jitter on listing backoff: several CLI sessions share one account quota
"""

import asyncio
import logging
import random
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any

import httpx

from antigravity_chat.constants import (
    CODE_ASSIST_BASE,
    FETCH_AVAILABLE_MODELS_PATH,
    GOOG_API_CLIENT,
    STREAM_GENERATE_PATH,
)
from antigravity_chat.core.conversation import Message, to_contents
from antigravity_chat.core.errors import ErrorContext, TransportError
from antigravity_chat.core.sse_decoder import (
    FunctionCallEvent,
    SseStreamDecoder,
    StreamEvent,
    TextDelta,
    ThinkingDelta,
    Usage,
)

logger = logging.getLogger(__name__)

_RETRYABLE_STATUS = {429, 500, 502, 503, 504, 529}


@dataclass
class ChatResult:
    """Outcome of one model round-trip."""
    usage: Usage = field(default_factory=Usage)
    function_call: FunctionCallEvent | None = None


def build_request_body(
    *,
    model_id: str,
    project_id: str,
    history: list[Message],
    system_prompt: str | None = None,
    tools: list[dict] | None = None,
    max_tokens: int = 8192,
) -> dict[str, Any]:
    """Wrap a generateContent payload in the Code Assist envelope."""
    request: dict[str, Any] = {
        "contents": to_contents(history),
        "generationConfig": {"maxOutputTokens": max_tokens},
    }
    if system_prompt:
        request["systemInstruction"] = {"parts": [{"text": system_prompt}]}
    if tools:
        request["tools"] = [{"functionDeclarations": tools}]
    return {"model": model_id, "project": project_id, "request": request}


def _headers(access_token: str, user_agent: str) -> dict[str, str]:
    return {
        "Authorization": f"Bearer {access_token}",
        "Content-Type": "application/json",
        "User-Agent": user_agent,
        "X-Goog-Api-Client": GOOG_API_CLIENT,
    }


class ChatStream:
    """Async iterator of StreamEvents for one open streaming response."""

    def __init__(self, response: httpx.Response, emit_thinking: bool = False):
        self._response = response
        self._decoder = SseStreamDecoder(emit_thinking=emit_thinking)

    def __aiter__(self) -> AsyncIterator[StreamEvent]:
        return self._decoder.decode(self._response.aiter_bytes())

    def result(self) -> ChatResult:
        """Final usage and last function call; valid once iteration is done."""
        return ChatResult(
            usage=Usage(
                self._decoder.usage.input_tokens, self._decoder.usage.output_tokens,
            ),
            function_call=self._decoder.function_call,
        )


class CodeAssistClient:
    """Streaming chat + model listing against one Code Assist base URL."""

    def __init__(
        self,
        http: httpx.AsyncClient,
        base_url: str = CODE_ASSIST_BASE,
        max_retries: int = 3,
        base_delay_ms: int = 1000,
        max_delay_ms: int = 60_000,
    ):
        self.http = http
        self.base_url = base_url.rstrip("/")
        self.max_retries = max_retries
        self.base_delay_ms = base_delay_ms
        self.max_delay_ms = max_delay_ms

    @asynccontextmanager
    async def stream_message(
        self,
        *,
        access_token: str,
        project_id: str,
        model_id: str,
        history: list[Message],
        system_prompt: str | None = None,
        tools: list[dict] | None = None,
        max_tokens: int = 8192,
        emit_thinking: bool = False,
        context: ErrorContext | None = None,
    ):
        """Open one streamGenerateContent exchange and yield a ChatStream.

        No retry: caller decides. httpx errors from connection setup AND from the
        caller's iteration are mapped to TransportError here.
        CancelledError (BaseException) passes through uncaught.
        """
        body = build_request_body(
            model_id=model_id, project_id=project_id, history=history,
            system_prompt=system_prompt, tools=tools, max_tokens=max_tokens,
        )
        url = f"{self.base_url}{STREAM_GENERATE_PATH}"
        try:
            async with self.http.stream(
                "POST", url, json=body, headers=_headers(access_token, "antigravity"),
            ) as response:
                if not response.is_success:
                    await response.aread()
                    raise TransportError(
                        "API error", status_code=response.status_code,
                        body=response.text, context=context,
                    )
                yield ChatStream(response, emit_thinking=emit_thinking)
        except httpx.TimeoutException as e:
            raise TransportError(
                f"API timeout during stream: {e}", code="TIMEOUT", context=context,
            ) from e
        except httpx.HTTPError as e:
            raise TransportError(
                f"Connection error during stream: {e}",
                code="CONNECTION_ERROR", context=context,
            ) from e

    async def send_message(
        self,
        *,
        access_token: str,
        project_id: str,
        model_id: str,
        history: list[Message],
        on_text: Callable[[str], None],
        on_thinking: Callable[[str], None] | None = None,
        on_function_call: Callable[[FunctionCallEvent], None] | None = None,
        system_prompt: str | None = None,
        tools: list[dict] | None = None,
        max_tokens: int = 8192,
    ) -> ChatResult:
        """Callback-style round-trip; returns final usage and function call."""
        async with self.stream_message(
            access_token=access_token, project_id=project_id, model_id=model_id,
            history=history, system_prompt=system_prompt, tools=tools,
            max_tokens=max_tokens, emit_thinking=on_thinking is not None,
        ) as stream:
            async for event in stream:
                if isinstance(event, TextDelta):
                    on_text(event.text)
                elif isinstance(event, ThinkingDelta) and on_thinking:
                    on_thinking(event.text)
                elif isinstance(event, FunctionCallEvent) and on_function_call:
                    on_function_call(event)
            return stream.result()

    async def fetch_available_models(
        self, *, access_token: str, project_id: str,
    ) -> dict[str, Any]:
        """Raw fetchAvailableModels payload, with retry on transient failures."""
        url = f"{self.base_url}{FETCH_AVAILABLE_MODELS_PATH}"
        headers = _headers(access_token, "antigravity-auth/1.0")
        context = ErrorContext(debug_info={"endpoint": FETCH_AVAILABLE_MODELS_PATH})

        for attempt in range(self.max_retries + 1):
            try:
                res = await self.http.post(
                    url, json={"project": project_id}, headers=headers,
                )
            except httpx.HTTPError as e:
                await self._handle_transient_error(e, attempt, context)
                continue

            if res.status_code in _RETRYABLE_STATUS:
                await self._handle_retryable_status(res, attempt, context)
                continue
            if not res.is_success:
                raise TransportError(
                    "Failed to fetch models", status_code=res.status_code,
                    body=res.text, context=context,
                )
            try:
                data = res.json()
            except ValueError as e:
                raise TransportError(
                    "Model listing returned invalid JSON", context=context,
                ) from e
            logger.info("Model listing success", extra={"attempt": attempt + 1})
            return data if isinstance(data, dict) else {}

        # Unreachable: the handlers raise on the last attempt
        raise TransportError("Failed to fetch models", context=context)

    async def _handle_retryable_status(
        self, res: httpx.Response, attempt: int, context: ErrorContext,
    ) -> None:
        """Retry 429/5xx or raise once attempts are exhausted."""
        retry_after_ms = self._extract_retry_after(res)
        if attempt >= self.max_retries:
            context.retry_after_ms = retry_after_ms
            raise TransportError(
                f"Failed to fetch models after {self.max_retries} retries",
                status_code=res.status_code, body=res.text, context=context,
            )
        delay = retry_after_ms or self._backoff(attempt)
        logger.warning(
            "Model listing HTTP %d, retry after %dms", res.status_code, delay,
            extra={"attempt": attempt + 1, "status_code": res.status_code},
        )
        await asyncio.sleep(delay / 1000)

    async def _handle_transient_error(
        self, e: Exception, attempt: int, context: ErrorContext,
    ) -> None:
        """Handle connection errors with retry or raise."""
        if attempt >= self.max_retries:
            raise TransportError(
                f"Transient failure after {self.max_retries} retries: {e}",
                code="CONNECTION_ERROR", context=context,
            ) from e
        delay = self._backoff(attempt)
        logger.warning(f"Transient error, retry after {delay}ms: {e}")
        await asyncio.sleep(delay / 1000)

    def _backoff(self, attempt: int) -> int:
        """Exponential backoff with ±25% jitter."""
        delay = min(self.max_delay_ms, (2 ** attempt) * self.base_delay_ms)
        return int(delay * random.uniform(0.75, 1.25))  # nosec B311

    def _extract_retry_after(self, res: httpx.Response) -> int | None:
        """Retry-After header in milliseconds (seconds form only)."""
        val = res.headers.get("retry-after")
        if val and val.strip().isdigit():
            return int(val.strip()) * 1000
        return None
