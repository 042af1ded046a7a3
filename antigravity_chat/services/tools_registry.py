"""Tools Registry: the declarations sent to the model, in one ordered list.

Invariants:
    - Declaration names match ToolDispatch handler keys exactly
    - Order is stable (exec, web_search, web_fetch) so requests are reproducible

Design Decisions:
    - Explicit imports from each define_*.py: no auto-discovery
"""

from antigravity_chat.core.domain_types import SearchProvider
from antigravity_chat.services.define_exec_tool import TOOL_EXEC
from antigravity_chat.services.define_web_tools import TOOL_WEB_FETCH, build_web_search_tool


def get_tool_declarations(search_provider: SearchProvider) -> list[dict]:
    return [TOOL_EXEC, build_web_search_tool(search_provider), TOOL_WEB_FETCH]


def get_tool_summary_lines(declarations: list[dict]) -> list[str]:
    """`- name: first sentence of description` for the system prompt."""
    return [
        f"- {tool['name']}: {tool['description'].split('.')[0]}"
        for tool in declarations
    ]
