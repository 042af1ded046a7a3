"""Web Fetch Handler: GET a URL and return readable text.

Invariants:
    - Only http/https URLs are fetched, including every redirect target
    - At most 3 redirects are followed; the next one is an error result
    - The body is streamed and read up to 2 MB; a longer body is cut there and the
      result carries a warning
    - HTML (by content-type) is converted to text: script/style removed, block elements
      become line breaks, tags stripped, entities decoded, whitespace collapsed
    - JSON is pretty-printed; markdown and every other content type pass through
    - Output truncated to max_chars (default 10 000, floor 100, cap 50 000) with a
      marker stating the total size
    - Successful results cached per (url, max_chars) for the TTL
    - Never raises: failures become error results

Design Decisions:
    - Redirects followed by hand: httpx's hop limit is per client, and the session
      client is shared with the API
"""

import json
import logging
import re
from dataclasses import dataclass
from urllib.parse import urljoin, urlparse

import httpx
from bs4 import BeautifulSoup

from antigravity_chat.core.conversation import ToolResult
from antigravity_chat.services.handle_web_search import ResultCache

logger = logging.getLogger(__name__)

DEFAULT_MAX_CHARS = 10_000
MIN_MAX_CHARS = 100
MAX_MAX_CHARS = 50_000
MAX_RESPONSE_BYTES = 2_000_000
MAX_REDIRECTS = 3
ERROR_MAX_BYTES = 64_000
ERROR_DETAIL_CHARS = 4_000
FETCH_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 14_7_2) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/122.0.0.0 Safari/537.36"
)
_FETCH_HEADERS = {
    "User-Agent": FETCH_USER_AGENT,
    "Accept": "text/markdown, text/html;q=0.9, */*;q=0.1",
    "Accept-Language": "en-US,en;q=0.9",
}

_BLOCK_TAGS = [
    "p", "div", "section", "article", "header", "footer", "main", "aside", "nav",
    "h1", "h2", "h3", "h4", "h5", "h6", "li", "ul", "ol", "tr", "table",
    "blockquote", "pre", "hr", "form", "dl", "dt", "dd", "figure", "figcaption",
]
_INLINE_SPACE_RE = re.compile(r"[ \t\f\v\r\u00a0]+")
_BLANK_LINES_RE = re.compile(r"\n{3,}")


class FetchRedirectError(Exception):
    """Redirect chain too long or leaving http/https."""


@dataclass
class FetchedPage:
    final_url: str
    status_code: int
    ok: bool
    reason: str
    content_type: str
    body: str
    truncated: bool


def html_to_text(html: str) -> str:
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(["script", "style", "noscript", "template"]):
        tag.decompose()
    for br in soup.find_all("br"):
        br.replace_with("\n")
    for tag in soup.find_all(_BLOCK_TAGS):
        tag.insert_before("\n")
        tag.insert_after("\n")

    title = soup.title.get_text(strip=True) if soup.title else ""
    if soup.title:
        soup.title.decompose()
    text = soup.get_text()
    lines = [_INLINE_SPACE_RE.sub(" ", line).strip() for line in text.split("\n")]
    body = _BLANK_LINES_RE.sub("\n\n", "\n".join(lines)).strip()
    return f"{title}\n\n{body}" if title and body else (title or body)


def resolve_max_chars(value) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return DEFAULT_MAX_CHARS
    return min(max(int(value), MIN_MAX_CHARS), MAX_MAX_CHARS)


def truncate_text(text: str, max_chars: int) -> str:
    if len(text) <= max_chars:
        return text
    return (
        f"{text[:max_chars]}\n\n"
        f"[Truncated: showing {max_chars} of {len(text)} characters]"
    )


async def read_capped(response: httpx.Response, max_bytes: int) -> tuple[bytes, bool]:
    """Read a streamed body up to max_bytes. Returns (body, was_cut)."""
    buf = bytearray()
    async for chunk in response.aiter_bytes():
        room = max_bytes - len(buf)
        if len(chunk) > room:
            buf.extend(chunk[:room])
            return bytes(buf), True
        buf.extend(chunk)
    return bytes(buf), False


def _is_web_url(url: str) -> bool:
    return urlparse(url).scheme in ("http", "https")


def _is_html(content_type: str, body: str) -> bool:
    if "text/html" in content_type or "application/xhtml" in content_type:
        return True
    head = body.lstrip()[:256].lower()
    return not content_type and head.startswith(("<!doctype html", "<html"))


def _extract_text(content_type: str, body: str) -> str:
    if _is_html(content_type, body):
        return html_to_text(body)
    if "application/json" in content_type:
        try:
            return json.dumps(json.loads(body), indent=2, ensure_ascii=False)
        except ValueError:
            return body
    return body


class WebFetchHandlers:
    """web_fetch tool."""

    def __init__(
        self,
        http: httpx.AsyncClient,
        timeout_seconds: float = 15.0,
        cache: ResultCache | None = None,
        max_response_bytes: int = MAX_RESPONSE_BYTES,
        max_redirects: int = MAX_REDIRECTS,
    ):
        self.http = http
        self.timeout_seconds = timeout_seconds
        self.cache = cache or ResultCache(15 * 60)
        self.max_response_bytes = max_response_bytes
        self.max_redirects = max_redirects

    async def web_fetch(self, input_data: dict, cancel_event=None) -> ToolResult:
        url = str(input_data.get("url") or "").strip()
        if not _is_web_url(url):
            return ToolResult("Invalid URL: must be http or https", is_error=True)
        max_chars = resolve_max_chars(input_data.get("max_chars"))

        cache_key = f"fetch:{url}:{max_chars}"
        cached = self.cache.get(cache_key)
        if cached is not None:
            logger.debug("web_fetch cache hit for %s", url, extra={"tool_name": "web_fetch"})
            return ToolResult(cached)

        try:
            page = await self._get(url)
        except (FetchRedirectError, httpx.HTTPError) as e:
            logger.warning("web_fetch failed: %s", e, extra={"tool_name": "web_fetch"})
            return ToolResult(f"Web fetch failed: {e}", is_error=True)

        if not page.ok:
            detail = page.body
            if _is_html(page.content_type, detail):
                detail = html_to_text(detail)
            detail = truncate_text(detail.strip(), ERROR_DETAIL_CHARS)
            return ToolResult(
                f"Web fetch failed ({page.status_code}): {detail or page.reason}",
                is_error=True,
            )

        text = truncate_text(_extract_text(page.content_type, page.body), max_chars)
        if page.truncated:
            text += f"\n\n[Warning: response body truncated after {self.max_response_bytes} bytes]"
        logger.info(
            "web_fetch %s -> %d chars", page.final_url, len(text),
            extra={"tool_name": "web_fetch", "status_code": page.status_code},
        )
        self.cache.put(cache_key, text)
        return ToolResult(text)

    async def _get(self, url: str) -> FetchedPage:
        current = url
        hops = 0
        while True:
            async with self.http.stream(
                "GET", current,
                headers=_FETCH_HEADERS,
                timeout=self.timeout_seconds,
                follow_redirects=False,
            ) as res:
                if res.is_redirect:
                    if hops >= self.max_redirects:
                        raise FetchRedirectError(
                            f"too many redirects (limit {self.max_redirects})",
                        )
                    hops += 1
                    current = urljoin(str(res.url), res.headers["location"])
                    if not _is_web_url(current):
                        raise FetchRedirectError(f"redirect to a non-http URL: {current}")
                    continue

                limit = self.max_response_bytes if res.is_success else ERROR_MAX_BYTES
                raw, truncated = await read_capped(res, limit)
                return FetchedPage(
                    final_url=str(res.url),
                    status_code=res.status_code,
                    ok=res.is_success,
                    reason=res.reason_phrase,
                    content_type=res.headers.get("content-type", "").lower(),
                    body=raw.decode(res.charset_encoding or "utf-8", errors="replace"),
                    truncated=truncated,
                )
