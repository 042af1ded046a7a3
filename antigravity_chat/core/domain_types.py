"""Domain Types: enums and value types shared across the client.

Invariants:
    - All valid states encoded as Enums (no raw string matching)
    - LoginStage values follow the login state machine order

Design Decisions:
    - str Enums: serialize to JSON / log extras without custom encoders
"""

from enum import Enum


class MessageRole(str, Enum):
    """Wire roles understood by the Code Assist proxy."""
    USER = "user"
    MODEL = "model"


class LoginStage(str, Enum):
    """OAuth login state machine."""
    IDLE = "idle"
    PKCE_GENERATED = "pkce_generated"
    LISTENER_STARTED = "listener_started"
    BROWSER_OPENED = "browser_opened"
    AWAITING_CALLBACK = "awaiting_callback"
    CODE_RECEIVED = "code_received"
    EXCHANGING = "exchanging"
    ENRICHING = "enriching"
    PERSISTED = "persisted"
    TIMED_OUT = "timed_out"
    STATE_MISMATCH = "state_mismatch"
    NO_CODE = "no_code"
    FAILED = "failed"


class SearchProvider(str, Enum):
    """web_search backends. DUCKDUCKGO needs no key."""
    BRAVE = "brave"
    PERPLEXITY = "perplexity"
    GROK = "grok"
    DUCKDUCKGO = "duckduckgo"


class AgentEventType(str, Enum):
    """Events yielded by AgentRunner.run()."""
    TEXT_DELTA = "text_delta"
    THINKING_DELTA = "thinking_delta"
    TOOL_CALL = "tool_call"
    TOOL_RESULT = "tool_result"
    ASSISTANT_MESSAGE = "assistant_message"
    USAGE = "usage"
    DISCARD_PARTIAL = "discard_partial"
    NOTICE = "notice"
    ERROR = "error"
    DONE = "done"
