"""SSE Stream Decoder: Code Assist `text/event-stream` bytes -> tagged stream events.

Invariants:
    - Chunk boundaries never change the event sequence (lines and UTF-8 sequences
      are reassembled across reads)
    - Only `data: ` lines are decoded; empty payloads and `[DONE]` are ignored
    - Malformed JSON frames are skipped silently and never abort the stream
    - A functionCall part is exclusive with text handling for that part
    - Usage is last-value-wins per counter across the whole stream
    - Events are emitted in byte-stream order; nothing is buffered beyond line assembly

Design Decisions:
    - feed()/finish() are synchronous and pure so the protocol is testable without IO;
      decode() is the async wrapper the transport iterates
    - The trailing unterminated line is decoded at end of stream rather than dropped
    - decode() raises EmptyResponseError when the stream carried zero bytes
"""

import codecs
import json
import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Any, Union

from antigravity_chat.core.errors import EmptyResponseError

logger = logging.getLogger(__name__)

DATA_PREFIX = "data: "
DONE_SENTINEL = "[DONE]"


# ─── Stream events ───────────────────────────────────────────────

@dataclass(frozen=True)
class TextDelta:
    text: str


@dataclass(frozen=True)
class ThinkingDelta:
    text: str


@dataclass(frozen=True)
class FunctionCallEvent:
    name: str
    args: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class UsageEvent:
    input_tokens: int
    output_tokens: int


StreamEvent = Union[TextDelta, ThinkingDelta, FunctionCallEvent, UsageEvent]


@dataclass
class Usage:
    """Token counters; mutable so session totals can accumulate."""
    input_tokens: int = 0
    output_tokens: int = 0

    def add(self, other: "Usage") -> None:
        self.input_tokens += other.input_tokens
        self.output_tokens += other.output_tokens

    @property
    def total(self) -> int:
        return self.input_tokens + self.output_tokens


# ─── Decoder ─────────────────────────────────────────────────────

def _as_list(value: Any) -> list:
    return value if isinstance(value, list) else []


class SseStreamDecoder:
    """Incremental decoder for one streamGenerateContent response."""

    def __init__(self, emit_thinking: bool = False):
        self.emit_thinking = emit_thinking
        self.usage = Usage()
        self.function_call: FunctionCallEvent | None = None
        self.bytes_read = 0
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""

    def feed(self, chunk: bytes) -> list[StreamEvent]:
        """Consume one read; return events for every completed line."""
        self.bytes_read += len(chunk)
        self._buffer += self._decoder.decode(chunk)
        *lines, self._buffer = self._buffer.split("\n")
        events: list[StreamEvent] = []
        for line in lines:
            events.extend(self._decode_line(line))
        return events

    def finish(self) -> list[StreamEvent]:
        """Flush the tail and emit the final usage event."""
        tail = self._buffer + self._decoder.decode(b"", final=True)
        self._buffer = ""
        events = self._decode_line(tail) if tail else []
        events.append(UsageEvent(self.usage.input_tokens, self.usage.output_tokens))
        return events

    async def decode(self, chunks: AsyncIterator[bytes]) -> AsyncIterator[StreamEvent]:
        async for chunk in chunks:
            for event in self.feed(chunk):
                yield event
        if self.bytes_read == 0:
            raise EmptyResponseError()
        for event in self.finish():
            yield event

    def _decode_line(self, line: str) -> list[StreamEvent]:
        if not line.startswith(DATA_PREFIX):
            return []
        payload = line[len(DATA_PREFIX):].strip()
        if not payload or payload == DONE_SENTINEL:
            return []
        try:
            frame = json.loads(payload)
        except ValueError:
            logger.debug("Skipping malformed SSE frame (%d chars)", len(payload))
            return []
        if not isinstance(frame, dict):
            return []
        response = frame.get("response")
        if not isinstance(response, dict):
            return []

        events = self._decode_parts(response)
        self._track_usage(response.get("usageMetadata"))
        return events

    def _decode_parts(self, response: dict) -> list[StreamEvent]:
        events: list[StreamEvent] = []
        for candidate in _as_list(response.get("candidates")):
            if not isinstance(candidate, dict):
                continue
            content = candidate.get("content")
            if not isinstance(content, dict):
                continue
            for part in _as_list(content.get("parts")):
                if not isinstance(part, dict):
                    continue
                event = self._decode_part(part)
                if event is not None:
                    events.append(event)
        return events

    def _decode_part(self, part: dict) -> StreamEvent | None:
        call = part.get("functionCall")
        if isinstance(call, dict):
            args = call.get("args")
            event = FunctionCallEvent(
                name=str(call.get("name", "")),
                args=args if isinstance(args, dict) else {},
            )
            self.function_call = event
            return event

        text = part.get("text")
        if not isinstance(text, str) or not text:
            return None
        if part.get("thought") is True and self.emit_thinking:
            return ThinkingDelta(text)
        return TextDelta(text)

    def _track_usage(self, usage: Any) -> None:
        if not isinstance(usage, dict):
            return
        prompt = usage.get("promptTokenCount")
        candidates = usage.get("candidatesTokenCount")
        if isinstance(prompt, int):
            self.usage.input_tokens = prompt
        if isinstance(candidates, int):
            self.usage.output_tokens = candidates
