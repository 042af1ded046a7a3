"""Error Hierarchy: typed, categorized exceptions for every client failure mode.

Invariants:
    - Every error has a code (str), category (ErrorCategory), severity (ErrorSeverity)
    - display_message() is one human-readable line; never a stack trace
    - Decode failures have no class: malformed SSE frames are skipped, never raised
    - ToolError never crosses the tool boundary (converted to ToolResult by dispatch)

Design Decisions:
    - Single hierarchy with AntigravityError base: the CLI catches one type
    - ErrorContext as dataclass: rich observability without coupling to logging
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class ErrorSeverity(str, Enum):
    """Error severity for observability and client handling."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ErrorCategory(str, Enum):
    """High-level error categories for routing and handling."""
    AUTH = "auth"
    TRANSPORT = "transport"
    TOOL = "tool"
    BUDGET = "budget"
    TIMEOUT = "timeout"
    INTERNAL = "internal"


@dataclass
class ErrorContext:
    """Rich context for error observability and debugging."""
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    model_id: str | None = None
    tool_name: str | None = None
    iteration: int | None = None
    user_message: str | None = None
    debug_info: dict[str, Any] | None = None
    retry_after_ms: int | None = None


class AntigravityError(Exception):
    """Base exception for all client errors."""

    def __init__(
        self,
        message: str,
        code: str,
        category: ErrorCategory,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        context: ErrorContext | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.category = category
        self.severity = severity
        self.context = context or ErrorContext()

    def display_message(self) -> str:
        """Single line shown to the user."""
        return self.context.user_message or self.message

    def to_event(self) -> dict:
        """Convert to agent-runner error event."""
        return {
            "type": "error",
            "data": {
                "code": self.code,
                "message": self.display_message(),
                "severity": self.severity.value,
                "recoverable": self.severity in (
                    ErrorSeverity.INFO, ErrorSeverity.WARNING,
                ),
            },
        }


# ─── Auth Errors ────────────────────────────────────────────────

class AuthError(AntigravityError):
    """OAuth login or credential failure."""
    def __init__(
        self, message: str, code: str = "AUTH_ERROR",
        context: ErrorContext | None = None,
    ):
        super().__init__(
            message, code, ErrorCategory.AUTH, ErrorSeverity.ERROR, context,
        )


class MissingCodeError(AuthError):
    """Redirect arrived without an authorization code."""
    def __init__(self, context: ErrorContext | None = None):
        super().__init__(
            "No authorization code received", "NO_CODE", context,
        )


class StateMismatchError(AuthError):
    """Returned state differs from the generated one (possible CSRF)."""
    def __init__(self, context: ErrorContext | None = None):
        super().__init__(
            "OAuth state mismatch (possible CSRF); login aborted",
            "STATE_MISMATCH", context,
        )


class CallbackTimeoutError(AuthError):
    """No redirect reached the local listener in time."""
    def __init__(self, timeout_seconds: float, context: ErrorContext | None = None):
        super().__init__(
            f"Timed out waiting for OAuth callback after {timeout_seconds:g}s",
            "CALLBACK_TIMEOUT", context,
        )
        self.category = ErrorCategory.TIMEOUT


class TokenExchangeError(AuthError):
    """Authorization code could not be exchanged for tokens."""
    def __init__(self, message: str, context: ErrorContext | None = None):
        super().__init__(
            f"Token exchange failed: {message}", "TOKEN_EXCHANGE_FAILED", context,
        )


class TokenRefreshError(AuthError):
    """Refresh grant failed or returned no access token."""
    def __init__(self, message: str, context: ErrorContext | None = None):
        super().__init__(
            f"Token refresh failed: {message}", "TOKEN_REFRESH_FAILED", context,
        )


class NotAuthenticatedError(AuthError):
    """No usable credentials on disk."""
    def __init__(self, context: ErrorContext | None = None):
        super().__init__(
            "No valid credentials found. Run `antigravity-chat login` first.",
            "NOT_AUTHENTICATED", context,
        )


# ─── Transport Errors ───────────────────────────────────────────

class TransportError(AntigravityError):
    """Non-success HTTP status or network failure from a provider endpoint."""
    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        body: str | None = None,
        code: str = "TRANSPORT_ERROR",
        context: ErrorContext | None = None,
    ):
        if status_code is not None:
            message = f"{message} (HTTP {status_code}): {body or ''}".rstrip(": ")
        super().__init__(
            message, code, ErrorCategory.TRANSPORT, ErrorSeverity.ERROR, context,
        )
        self.status_code = status_code
        self.body = body

    @property
    def is_auth_failure(self) -> bool:
        return self.status_code == 401


class EmptyResponseError(TransportError):
    """Success status but the response carried no body."""
    def __init__(self, context: ErrorContext | None = None):
        super().__init__(
            "API returned an empty response body.",
            code="EMPTY_RESPONSE", context=context,
        )


# ─── Tool / Agent Errors ────────────────────────────────────────

class ToolError(AntigravityError):
    """Tool execution failed; always folded into a ToolResult."""
    def __init__(self, message: str, tool_name: str, context: ErrorContext | None = None):
        ctx = context or ErrorContext()
        ctx.tool_name = tool_name
        super().__init__(
            message, "TOOL_ERROR", ErrorCategory.TOOL,
            ErrorSeverity.WARNING, ctx,
        )


class BudgetExceededError(AntigravityError):
    """Agent used every tool round-trip without a plain-text answer."""
    def __init__(self, max_iterations: int, context: ErrorContext | None = None):
        super().__init__(
            f"Stopped after {max_iterations} tool iterations without a final answer",
            "BUDGET_EXCEEDED", ErrorCategory.BUDGET,
            ErrorSeverity.WARNING, context,
        )
        self.max_iterations = max_iterations
