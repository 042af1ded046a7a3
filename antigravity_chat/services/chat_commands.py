"""Chat Commands: slash commands that act on the session instead of the model.

Invariants:
    - Commands never touch the network and never run while a turn is in flight
    - /clear resets history and usage; model and thinking display are kept
    - Unknown commands produce a message, never an exception

Design Decisions:
    - Explicit dict of handlers, same as tool dispatch
    - Model switch goes through on_model_change so the caller can rebuild the
      system prompt for the new model
"""

from collections.abc import Callable
from dataclasses import dataclass

from antigravity_chat.core.session_state import ChatSession
from antigravity_chat.schemas.models import ModelDescriptor
from antigravity_chat.services.agent_runner_helpers import format_token_count, format_usage
from antigravity_chat.services.model_directory import format_model_line


@dataclass
class CommandResult:
    message: str = ""
    quit: bool = False


def parse_command(text: str) -> tuple[str, str]:
    """'/Model  gemini-3 ' -> ('model', 'gemini-3')."""
    stripped = text.strip().lstrip("/").strip()
    if not stripped:
        return "", ""
    name, _, args = stripped.partition(" ")
    return name.lower(), args.strip()


def session_summary(session: ChatSession) -> str:
    return (
        f"Session ended. {session.user_message_count} messages, "
        f"{format_token_count(session.usage.total)} total tokens."
    )


class ChatCommands:
    """Handles one slash command against the session."""

    def __init__(
        self,
        session: ChatSession,
        models: list[ModelDescriptor],
        on_model_change: Callable[[ModelDescriptor], None] | None = None,
    ):
        self.session = session
        self.models = models
        self.on_model_change = on_model_change
        self._handlers = {
            "quit": self._quit,
            "exit": self._quit,
            "model": self._model,
            "models": self._list_models,
            "clear": self._clear,
            "thinking": self._thinking,
            "history": self._history,
            "usage": self._history,
            "help": self._help,
        }

    def handle(self, text: str) -> CommandResult:
        name, args = parse_command(text)
        handler = self._handlers.get(name)
        if handler is None:
            return CommandResult(f"Unknown command: /{name}. Type /help for commands.")
        return handler(args)

    def _quit(self, args: str) -> CommandResult:
        return CommandResult(session_summary(self.session), quit=True)

    def _model(self, args: str) -> CommandResult:
        if not args:
            return self._list_models(args)
        model = self._find_model(args)
        if model is None:
            return CommandResult(f"Unknown model: {args}. Use /models to list models.")
        self.session.model_id = model.id
        if self.on_model_change:
            self.on_model_change(model)
        return CommandResult(f"Model: {model.label} ({model.id})")

    def _find_model(self, key: str) -> ModelDescriptor | None:
        if key.isdigit():
            index = int(key) - 1
            return self.models[index] if 0 <= index < len(self.models) else None
        for model in self.models:
            if model.id == key:
                return model
        return None

    def _list_models(self, args: str) -> CommandResult:
        lines = []
        for i, model in enumerate(self.models, 1):
            marker = "*" if model.id == self.session.model_id else " "
            lines.append(f"{marker} {i:>2}. {format_model_line(model)}")
        lines.append("Switch with /model <number|id>.")
        return CommandResult("\n".join(lines))

    def _clear(self, args: str) -> CommandResult:
        self.session.reset()
        return CommandResult("Conversation cleared.")

    def _thinking(self, args: str) -> CommandResult:
        self.session.show_thinking = not self.session.show_thinking
        return CommandResult(
            f"Thinking display: {'on' if self.session.show_thinking else 'off'}",
        )

    def _history(self, args: str) -> CommandResult:
        usage = self.session.usage
        return CommandResult(
            f"{self.session.user_message_count} messages | {format_usage(usage)} | "
            f"{format_token_count(usage.total)} total",
        )

    def _help(self, args: str) -> CommandResult:
        return CommandResult("\n".join([
            "/model [number|id]  switch model (no argument lists models)",
            "/models             list available models",
            "/clear              clear conversation history and usage",
            "/thinking           toggle thinking display",
            "/history, /usage    show message count and token usage",
            "/quit, /exit        end the session",
        ]))
