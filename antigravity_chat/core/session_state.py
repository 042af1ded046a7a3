"""Chat Session State: explicit per-session state owned by the caller.

Invariants:
    - history and usage are mutated only by the agent runner (one turn at a time)
    - busy is True exactly while a turn is in flight; a second turn is refused
    - reset() clears history and usage but keeps model and display preferences

Design Decisions:
    - Plain dataclass, no IO: the CLI, command handler and agent runner share one instance
      instead of module-level globals
"""

from dataclasses import dataclass, field

from antigravity_chat.core.conversation import Message, UserMessage
from antigravity_chat.core.sse_decoder import Usage


@dataclass
class ChatSession:
    """Per-session conversation state."""

    model_id: str
    system_prompt: str = ""
    history: list[Message] = field(default_factory=list)
    usage: Usage = field(default_factory=Usage)
    show_thinking: bool = True
    busy: bool = False

    @property
    def user_message_count(self) -> int:
        return sum(1 for m in self.history if isinstance(m, UserMessage))

    def reset(self) -> None:
        self.history.clear()
        self.usage = Usage()
