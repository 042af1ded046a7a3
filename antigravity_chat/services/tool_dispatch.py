"""Tool Dispatch: explicit routing from tool name to handler, with an error boundary.

Invariants:
    - Every tool->handler mapping is visible in one dict; no getattr, no auto-discovery
    - Unknown tools return ToolResult("Unknown tool: <name>", is_error=True)
    - execute() never raises (CancelledError aside): ToolError and unexpected
      exceptions are folded into error results the model can read

Design Decisions:
    - One handler class per tool family (exec, search, fetch)
    - Handlers share the session's httpx client; per-request timeouts come from Settings
"""

import asyncio
import logging

import httpx

from antigravity_chat.config import Settings
from antigravity_chat.core.conversation import ToolResult
from antigravity_chat.core.errors import ToolError
from antigravity_chat.services.handle_exec import ExecHandlers
from antigravity_chat.services.handle_web_fetch import WebFetchHandlers
from antigravity_chat.services.handle_web_search import (
    ResultCache,
    SearchProviderConfig,
    WebSearchHandlers,
    resolve_search_provider,
)

logger = logging.getLogger(__name__)


class ToolDispatch:
    """Routes tool_name -> handler. Explicit registration, no auto-discovery."""

    def __init__(
        self,
        http: httpx.AsyncClient,
        settings: Settings,
        search_config: SearchProviderConfig | None = None,
    ):
        self.search_config = search_config or resolve_search_provider(settings)
        exec_handlers = ExecHandlers()
        # One TTL cache for both web tools; fetch keys carry a 'fetch:' prefix
        cache = ResultCache(settings.web_cache_ttl_minutes * 60)
        search = WebSearchHandlers(
            http, self.search_config,
            timeout_seconds=settings.web_timeout_seconds,
            cache=cache,
        )
        fetch = WebFetchHandlers(
            http, timeout_seconds=settings.web_timeout_seconds, cache=cache,
        )

        # Adding a tool requires editing this dict and tools_registry.py
        self._handlers = {
            "exec": exec_handlers.exec,
            "web_search": search.web_search,
            "web_fetch": fetch.web_fetch,
        }

    @property
    def tool_names(self) -> list[str]:
        return list(self._handlers)

    async def execute(
        self, tool_name: str, input_data: dict,
        cancel_event: asyncio.Event | None = None,
    ) -> ToolResult:
        """Route tool_name to handler. Always returns a ToolResult."""
        handler = self._handlers.get(tool_name)
        if handler is None:
            logger.warning("Model requested unknown tool", extra={"tool_name": tool_name})
            return ToolResult(f"Unknown tool: {tool_name}", is_error=True)
        try:
            return await handler(input_data or {}, cancel_event)
        except ToolError as e:
            logger.warning(
                "Tool error: %s", e.message,
                extra={"tool_name": tool_name, "error_code": e.code},
            )
            return ToolResult(e.message, is_error=True)
        except Exception as e:
            logger.error(
                "Unexpected error in tool '%s': %s", tool_name, e, exc_info=True,
            )
            return ToolResult(f"Internal error executing {tool_name}: {e}", is_error=True)
