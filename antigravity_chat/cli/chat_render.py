"""Chat Render: turns AgentRunner events into terminal output with rich.

Invariants:
    - Streamed text lives in one Live region until the round-trip settles
    - discard_partial clears the Live region; nothing printed there survives a rollback
    - The settled answer is re-rendered from the assistant_message event, so inline
      thinking tags never reach the screen
    - Errors render as one line

Design Decisions:
    - Event dispatch by explicit dict, same as ToolDispatch
    - Text that precedes a tool call is flushed above the Live region before the
      tool line is printed
"""

from rich.console import Console
from rich.live import Live
from rich.text import Text

from antigravity_chat.core.domain_types import AgentEventType
from antigravity_chat.core.thinking_tags import compose_display_text
from antigravity_chat.services.agent_runner_helpers import format_token_count


class TurnRenderer:
    """Renders the events of one user turn."""

    def __init__(self, console: Console, show_thinking: bool = True):
        self.console = console
        self.show_thinking = show_thinking
        self.content = ""
        self.thinking = ""
        self.last_usage: dict | None = None
        self.had_error = False
        self._live: Live | None = None
        self._handlers = {
            AgentEventType.TEXT_DELTA.value: self._text_delta,
            AgentEventType.THINKING_DELTA.value: self._thinking_delta,
            AgentEventType.DISCARD_PARTIAL.value: self._discard_partial,
            AgentEventType.ASSISTANT_MESSAGE.value: self._assistant_message,
            AgentEventType.TOOL_CALL.value: self._tool_call,
            AgentEventType.TOOL_RESULT.value: self._tool_result,
            AgentEventType.USAGE.value: self._usage,
            AgentEventType.NOTICE.value: self._notice,
            AgentEventType.ERROR.value: self._error,
            AgentEventType.DONE.value: self._done,
        }

    def __enter__(self):
        self._live = Live(
            Text(""), console=self.console, refresh_per_second=12, transient=False,
        )
        self._live.start()
        return self

    def __exit__(self, *exc):
        self.close()
        return False

    def close(self) -> None:
        if self._live is not None:
            self._refresh()
            self._live.stop()
            self._live = None

    def handle(self, event: dict) -> None:
        handler = self._handlers.get(event.get("type"))
        if handler is not None:
            handler(event.get("data"))

    # -- rendering -----------------------------------------------------------

    def _renderable(self) -> Text:
        return Text(compose_display_text(self.thinking, self.content, self.show_thinking))

    def _refresh(self) -> None:
        if self._live is not None:
            self._live.update(self._renderable(), refresh=True)

    def _print(self, renderable, **kwargs) -> None:
        target = self._live.console if self._live is not None else self.console
        target.print(renderable, **kwargs)

    def _flush(self) -> None:
        """Move the current text above the Live region and start a fresh one."""
        if self.content or (self.show_thinking and self.thinking):
            self._print(self._renderable())
        self.content = ""
        self.thinking = ""
        self._refresh()

    # -- event handlers -------------------------------------------------------

    def _text_delta(self, text: str) -> None:
        self.content += text
        self._refresh()

    def _thinking_delta(self, text: str) -> None:
        self.thinking += text
        if self.show_thinking:
            self._refresh()

    def _discard_partial(self, _data) -> None:
        self.content = ""
        self.thinking = ""
        self._refresh()

    def _assistant_message(self, data: dict) -> None:
        self.content = data.get("content", "")
        self.thinking = data.get("thinking", "")
        self._refresh()

    def _tool_call(self, data: dict) -> None:
        self._flush()
        line = Text("> ", style="yellow")
        line.append(data["tool"], style="bold yellow")
        line.append(f" {data['input_preview']}", style="dim")
        self._print(line)

    def _tool_result(self, data: dict) -> None:
        style = "red" if data["is_error"] else "green"
        preview = data["result_preview"].strip().splitlines()
        first = preview[0] if preview else "(no output)"
        more = f" (+{len(preview) - 1} lines)" if len(preview) > 1 else ""
        line = Text("< ", style=style)
        line.append(data["tool"], style=f"bold {style}")
        line.append(f" {first}{more}", style="dim")
        self._print(line)

    def _usage(self, data: dict) -> None:
        self.last_usage = data

    def _notice(self, data: dict) -> None:
        self._print(Text(data["message"], style="yellow"))

    def _error(self, data: dict) -> None:
        self.had_error = True
        self._print(Text(f"Error: {data['message']}", style="bold red"))

    def _done(self, _data) -> None:
        self.close()
        if self.last_usage:
            self.console.print(Text(usage_line(self.last_usage), style="dim"))


def usage_line(data: dict) -> str:
    """'1.2k in / 340 out (session 5.6k in / 1.1k out)'."""
    return (
        f"{format_token_count(data['input_tokens'])} in / "
        f"{format_token_count(data['output_tokens'])} out "
        f"(session {format_token_count(data['total_input_tokens'])} in / "
        f"{format_token_count(data['total_output_tokens'])} out)"
    )
