"""Web Search Handler: one query against the resolved provider, rendered as text.

Invariants:
    - Provider resolution is pure over Settings and happens before any network call:
      explicit WEB_SEARCH_PROVIDER, else Brave key, else Perplexity/OpenRouter key,
      else xAI key, else DuckDuckGo (no key)
    - A keyed provider without its key returns a model-readable error result
    - count clamped to 1-10 (default 5)
    - Output is a readable summary (numbered results, or answer + sources), never raw JSON
    - Successful results cached per (provider, query, count, options) for the TTL
    - Never raises: network and API failures become error results

Design Decisions:
    - Perplexity base URL inferred from where the key came from, then from its prefix
      (pplx- direct, sk-or- OpenRouter); the direct API takes the model id without
      the `perplexity/` vendor prefix
    - DuckDuckGo parsed from its no-JS HTML endpoint with BeautifulSoup; result links are
      redirect wrappers whose real target sits in the `uddg` query parameter
"""

import datetime
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from urllib.parse import parse_qs, urljoin, urlparse

import httpx
from bs4 import BeautifulSoup

from antigravity_chat.config import Settings
from antigravity_chat.core.conversation import ToolResult
from antigravity_chat.core.domain_types import SearchProvider
from antigravity_chat.core.errors import ToolError

logger = logging.getLogger(__name__)

DEFAULT_SEARCH_COUNT = 5
MAX_SEARCH_COUNT = 10

BRAVE_SEARCH_ENDPOINT = "https://api.search.brave.com/res/v1/web/search"
OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"
PERPLEXITY_DIRECT_BASE_URL = "https://api.perplexity.ai"
DEFAULT_PERPLEXITY_MODEL = "perplexity/sonar-pro"
XAI_RESPONSES_ENDPOINT = "https://api.x.ai/v1/responses"
DEFAULT_GROK_MODEL = "grok-4-1-fast"
DDG_HTML_ENDPOINT = "https://html.duckduckgo.com/html/"
DDG_USER_AGENT = (
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/122.0.0.0 Safari/537.36"
)

_FRESHNESS_SHORTCUTS = {"pd": "day", "pw": "week", "pm": "month", "py": "year"}

_MISSING_KEY_MESSAGES = {
    SearchProvider.BRAVE: "web_search needs a Brave Search API key. Set BRAVE_API_KEY.",
    SearchProvider.PERPLEXITY: (
        "web_search (perplexity) needs an API key. "
        "Set PERPLEXITY_API_KEY or OPENROUTER_API_KEY."
    ),
    SearchProvider.GROK: "web_search (grok) needs an xAI API key. Set XAI_API_KEY.",
}


# ─── Provider resolution ────────────────────────────────────────

@dataclass(frozen=True)
class SearchProviderConfig:
    """Resolved backend: provider plus whatever it needs to make a request."""
    provider: SearchProvider
    api_key: str = ""
    base_url: str = ""
    model: str = ""


def _pick_provider(settings: Settings) -> SearchProvider:
    explicit = settings.web_search_provider.strip().lower()
    if explicit == "ddg":
        return SearchProvider.DUCKDUCKGO
    if explicit in {p.value for p in SearchProvider}:
        return SearchProvider(explicit)
    if settings.brave_api_key.strip():
        return SearchProvider.BRAVE
    if settings.perplexity_api_key.strip() or settings.openrouter_api_key.strip():
        return SearchProvider.PERPLEXITY
    if settings.xai_api_key.strip():
        return SearchProvider.GROK
    return SearchProvider.DUCKDUCKGO


def _perplexity_base_url(source: str, api_key: str) -> str:
    if source == "perplexity":
        return PERPLEXITY_DIRECT_BASE_URL
    if source == "openrouter":
        return OPENROUTER_BASE_URL
    if api_key.lower().startswith("pplx-"):
        return PERPLEXITY_DIRECT_BASE_URL
    return OPENROUTER_BASE_URL


def resolve_search_provider(settings: Settings) -> SearchProviderConfig:
    """Pure: Settings -> provider choice. No network, no os.environ."""
    provider = _pick_provider(settings)

    if provider == SearchProvider.BRAVE:
        return SearchProviderConfig(provider, api_key=settings.brave_api_key.strip())

    if provider == SearchProvider.PERPLEXITY:
        if settings.perplexity_api_key.strip():
            key, source = settings.perplexity_api_key.strip(), "perplexity"
        elif settings.openrouter_api_key.strip():
            key, source = settings.openrouter_api_key.strip(), "openrouter"
        else:
            key, source = "", "none"
        return SearchProviderConfig(
            provider, api_key=key,
            base_url=_perplexity_base_url(source, key),
            model=settings.perplexity_model.strip() or DEFAULT_PERPLEXITY_MODEL,
        )

    if provider == SearchProvider.GROK:
        return SearchProviderConfig(
            provider, api_key=settings.xai_api_key.strip(),
            base_url=XAI_RESPONSES_ENDPOINT,
            model=settings.grok_model.strip() or DEFAULT_GROK_MODEL,
        )

    return SearchProviderConfig(SearchProvider.DUCKDUCKGO, base_url=DDG_HTML_ENDPOINT)


def perplexity_request_model(base_url: str, model: str) -> str:
    if urlparse(base_url).hostname == "api.perplexity.ai":
        return model.removeprefix("perplexity/")
    return model


def resolve_count(value) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return DEFAULT_SEARCH_COUNT
    return max(1, min(MAX_SEARCH_COUNT, int(value)))


def normalize_freshness(value: str | None) -> str | None:
    """pd/pw/pm/py, or a valid ascending YYYY-MM-DDtoYYYY-MM-DD range."""
    if not value or not value.strip():
        return None
    trimmed = value.strip()
    if trimmed.lower() in _FRESHNESS_SHORTCUTS:
        return trimmed.lower()
    start, sep, end = trimmed.partition("to")
    if not sep:
        return None
    try:
        if datetime.date.fromisoformat(start) > datetime.date.fromisoformat(end):
            return None
    except ValueError:
        return None
    return f"{start}to{end}"


# ─── Cache ──────────────────────────────────────────────────────

class ResultCache:
    """In-memory TTL cache of rendered tool output (web_search and web_fetch)."""

    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self._entries: dict[str, tuple[float, str]] = {}

    def get(self, key: str) -> str | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, value = entry
        if self.clock() >= expires_at:
            del self._entries[key]
            return None
        return value

    def put(self, key: str, value: str) -> None:
        if self.ttl_seconds > 0:
            self._entries[key] = (self.clock() + self.ttl_seconds, value)


# ─── Rendering ──────────────────────────────────────────────────

def render_results(query: str, provider: SearchProvider, results: list[dict]) -> str:
    if not results:
        return f'No results for "{query}" ({provider.value}).'
    lines = [f'Search results for "{query}" ({provider.value}):', ""]
    for i, r in enumerate(results, 1):
        lines.append(f"{i}. {r['title']}")
        lines.append(f"   {r['url']}")
        if r.get("published"):
            lines.append(f"   Published: {r['published']}")
        if r.get("description"):
            lines.append(f"   {r['description']}")
        lines.append("")
    return "\n".join(lines).rstrip()


def render_answer(query: str, provider: SearchProvider, content: str, citations: list[str]) -> str:
    lines = [f'Answer for "{query}" ({provider.value}):', "", content.strip()]
    if citations:
        lines += ["", "Sources:"]
        lines += [f"[{i}] {url}" for i, url in enumerate(citations, 1)]
    return "\n".join(lines)


# ─── Provider parsing ───────────────────────────────────────────

def parse_ddg_html(html: str, count: int) -> list[dict]:
    """DuckDuckGo HTML results page -> [{title, url, description}]."""
    soup = BeautifulSoup(html, "html.parser")
    results = []
    for block in soup.select("div.result"):
        if len(results) >= count:
            break
        link = block.select_one("a.result__a")
        if link is None:
            continue
        title = link.get_text(" ", strip=True)
        url = unwrap_ddg_url(link.get("href", ""))
        snippet = block.select_one(".result__snippet")
        description = snippet.get_text(" ", strip=True) if snippet else ""
        if url and title:
            results.append({"title": title, "url": url, "description": description})
    return results


def unwrap_ddg_url(href: str) -> str:
    absolute = urljoin("https://duckduckgo.com", href)
    target = parse_qs(urlparse(absolute).query).get("uddg")
    return target[0] if target else href


def extract_grok_content(data: dict) -> tuple[str | None, list[str]]:
    """First output_text block and its url_citation annotations."""
    for output in data.get("output") or []:
        if not isinstance(output, dict):
            continue
        if output.get("type") == "message":
            blocks = output.get("content") or []
        elif output.get("type") == "output_text":
            blocks = [output]
        else:
            continue
        for block in blocks:
            if block.get("type") == "output_text" and block.get("text"):
                urls = [
                    a["url"] for a in block.get("annotations") or []
                    if a.get("type") == "url_citation" and isinstance(a.get("url"), str)
                ]
                return block["text"], list(dict.fromkeys(urls))
    text = data.get("output_text")
    return (text if isinstance(text, str) else None), []


# ─── Handler ────────────────────────────────────────────────────

class WebSearchHandlers:
    """web_search tool bound to one resolved provider."""

    def __init__(
        self,
        http: httpx.AsyncClient,
        config: SearchProviderConfig,
        timeout_seconds: float = 15.0,
        cache: ResultCache | None = None,
    ):
        self.http = http
        self.config = config
        self.timeout_seconds = timeout_seconds
        self.cache = cache or ResultCache(15 * 60)

    async def web_search(self, input_data: dict, cancel_event=None) -> ToolResult:
        provider = self.config.provider
        if provider != SearchProvider.DUCKDUCKGO and not self.config.api_key:
            return ToolResult(_MISSING_KEY_MESSAGES[provider], is_error=True)

        query = str(input_data.get("query") or "").strip()
        if not query:
            return ToolResult("Error: query is required.", is_error=True)
        count = resolve_count(input_data.get("count"))
        country = str(input_data.get("country") or "").strip()

        raw_freshness = input_data.get("freshness")
        freshness = None
        if raw_freshness:
            if provider not in (SearchProvider.BRAVE, SearchProvider.PERPLEXITY):
                return ToolResult(
                    "freshness is only supported by the Brave and Perplexity providers.",
                    is_error=True,
                )
            freshness = normalize_freshness(str(raw_freshness))
            if freshness is None:
                return ToolResult(
                    "freshness must be one of pd, pw, pm, py, "
                    "or a range like YYYY-MM-DDtoYYYY-MM-DD.",
                    is_error=True,
                )
            if provider == SearchProvider.PERPLEXITY and freshness not in _FRESHNESS_SHORTCUTS:
                return ToolResult(
                    "Perplexity only supports freshness pd, pw, pm or py.", is_error=True,
                )

        key = "|".join([
            provider.value, query.lower(), str(count), country.lower(),
            freshness or "", self.config.model,
        ])
        cached = self.cache.get(key)
        if cached is not None:
            return ToolResult(cached)

        try:
            text = await self._search(query, count, country, freshness)
        except ToolError as e:
            logger.warning("web_search failed: %s", e.message, extra={"tool_name": "web_search"})
            return ToolResult(e.message, is_error=True)
        self.cache.put(key, text)
        return ToolResult(text)

    async def _search(self, query, count, country, freshness) -> str:
        provider = self.config.provider
        if provider == SearchProvider.BRAVE:
            return await self._brave(query, count, country, freshness)
        if provider == SearchProvider.PERPLEXITY:
            return await self._perplexity(query, freshness)
        if provider == SearchProvider.GROK:
            return await self._grok(query)
        return await self._duckduckgo(query, count)

    async def _request(self, label: str, method: str, url: str, **kwargs) -> httpx.Response:
        try:
            res = await self.http.request(
                method, url, timeout=self.timeout_seconds, **kwargs,
            )
        except httpx.HTTPError as e:
            raise ToolError(f"{label} request failed: {e}", "web_search") from e
        if not res.is_success:
            raise ToolError(
                f"{label} error ({res.status_code}): {res.text[:2000]}", "web_search",
            )
        return res

    def _json(self, label: str, res: httpx.Response) -> dict:
        try:
            data = res.json()
        except ValueError as e:
            raise ToolError(f"{label} returned invalid JSON", "web_search") from e
        return data if isinstance(data, dict) else {}

    async def _brave(self, query, count, country, freshness) -> str:
        params = {"q": query, "count": str(count)}
        if country:
            params["country"] = country
        if freshness:
            params["freshness"] = freshness
        res = await self._request(
            "Brave Search API", "GET", BRAVE_SEARCH_ENDPOINT, params=params,
            headers={"Accept": "application/json", "X-Subscription-Token": self.config.api_key},
        )
        web = self._json("Brave Search API", res).get("web") or {}
        results = [
            {
                "title": entry.get("title") or "",
                "url": entry.get("url") or "",
                "description": entry.get("description") or "",
                "published": entry.get("age") or "",
            }
            for entry in web.get("results") or [] if isinstance(entry, dict)
        ]
        return render_results(query, SearchProvider.BRAVE, results)

    async def _perplexity(self, query, freshness) -> str:
        base_url = self.config.base_url.rstrip("/")
        body = {
            "model": perplexity_request_model(base_url, self.config.model),
            "messages": [{"role": "user", "content": query}],
        }
        if freshness:
            body["search_recency_filter"] = _FRESHNESS_SHORTCUTS[freshness]
        res = await self._request(
            "Perplexity API", "POST", f"{base_url}/chat/completions", json=body,
            headers={"Authorization": f"Bearer {self.config.api_key}"},
        )
        data = self._json("Perplexity API", res)
        choices = data.get("choices") or [{}]
        content = (choices[0].get("message") or {}).get("content") or "No response"
        return render_answer(query, SearchProvider.PERPLEXITY, content, data.get("citations") or [])

    async def _grok(self, query) -> str:
        body = {
            "model": self.config.model,
            "input": [{"role": "user", "content": query}],
            "tools": [{"type": "web_search"}],
        }
        res = await self._request(
            "xAI API", "POST", self.config.base_url, json=body,
            headers={"Authorization": f"Bearer {self.config.api_key}"},
        )
        data = self._json("xAI API", res)
        text, annotation_urls = extract_grok_content(data)
        citations = data.get("citations") or annotation_urls
        return render_answer(query, SearchProvider.GROK, text or "No response", citations)

    async def _duckduckgo(self, query, count) -> str:
        res = await self._request(
            "DuckDuckGo search", "POST", self.config.base_url or DDG_HTML_ENDPOINT,
            data={"q": query}, headers={"User-Agent": DDG_USER_AGENT},
        )
        results = parse_ddg_html(res.text, count)
        return render_results(query, SearchProvider.DUCKDUCKGO, results)
