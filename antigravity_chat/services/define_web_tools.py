"""Web Tool Schemas: functionDeclarations for web_search and web_fetch.

Invariants:
    - web_search description names the resolved provider so the model knows whether
      it gets links (Brave, DuckDuckGo) or a synthesized answer (Perplexity, Grok)
    - count bounded 1-10; max_chars has a floor of 100
"""

from antigravity_chat.core.domain_types import SearchProvider

_SEARCH_DESCRIPTIONS = {
    SearchProvider.DUCKDUCKGO: (
        "Search the web using DuckDuckGo. Returns titles, URLs, and snippets. "
        "No API key required."
    ),
    SearchProvider.BRAVE: (
        "Search the web using Brave Search. Returns titles, URLs, and snippets. "
        "Supports region-specific results via country."
    ),
    SearchProvider.PERPLEXITY: (
        "Search the web using Perplexity Sonar. Returns an AI-synthesized answer "
        "with citations from real-time web search."
    ),
    SearchProvider.GROK: (
        "Search the web using xAI Grok. Returns an AI-synthesized answer "
        "with citations from real-time web search."
    ),
}


def build_web_search_tool(provider: SearchProvider) -> dict:
    return {
        "name": "web_search",
        "description": _SEARCH_DESCRIPTIONS[provider],
        "parameters": {
            "type": "object",
            "properties": {
                "query": {
                    "type": "string",
                    "description": "Search query string.",
                },
                "count": {
                    "type": "integer",
                    "description": "Number of results to return (1-10, default 5).",
                    "minimum": 1,
                    "maximum": 10,
                },
                "country": {
                    "type": "string",
                    "description": (
                        "2-letter country code for region-specific results "
                        "(Brave only), e.g. 'DE', 'US'."
                    ),
                },
                "freshness": {
                    "type": "string",
                    "description": (
                        "Filter by discovery time: 'pd', 'pw', 'pm', 'py' "
                        "(Brave also accepts 'YYYY-MM-DDtoYYYY-MM-DD'). "
                        "Brave and Perplexity only."
                    ),
                },
            },
            "required": ["query"],
        },
    }


TOOL_WEB_FETCH = {
    "name": "web_fetch",
    "description": (
        "Fetch a URL and return its readable text content. HTML is converted "
        "to plain text; other content types are returned as-is."
    ),
    "parameters": {
        "type": "object",
        "properties": {
            "url": {
                "type": "string",
                "description": "HTTP or HTTPS URL to fetch.",
            },
            "max_chars": {
                "type": "integer",
                "description": "Maximum characters to return (default 10000).",
                "minimum": 100,
            },
        },
        "required": ["url"],
    },
}
