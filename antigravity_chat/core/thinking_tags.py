"""Thinking Tags: split inline reasoning markup from visible assistant text.

Invariants:
    - No candidate tag -> text returned unchanged, thinking "" (fast path)
    - Tags inside fenced blocks (``` / ~~~) or inline code spans stay literal
    - An unclosed open tag turns the rest of the input into thinking (never dropped)
    - Visible content and thinking are both trimmed; thinking parts join with newlines
    - merge_thinking keeps structured (streamed) thinking ahead of inline thinking

Design Decisions:
    - Regex scan in document order with an explicit in_thinking flag instead of
      a nested-tag parser: models never nest these tags
"""

import re
from dataclasses import dataclass

_TAG_NAMES = r"(?:think(?:ing)?|thought|antthinking)"
_QUICK_TAG_RE = re.compile(rf"<\s*/?{_TAG_NAMES}\b", re.IGNORECASE)
_THINKING_TAG_RE = re.compile(rf"<\s*(/?)\s*{_TAG_NAMES}\b[^<>]*>", re.IGNORECASE)
_FENCED_RE = re.compile(r"(^|\n)(```|~~~)[^\n]*\n[\s\S]*?(?:\n\2(?:\n|\Z)|\Z)")
_INLINE_CODE_RE = re.compile(r"`+[^`]+`+")


@dataclass(frozen=True)
class ThinkingSplit:
    thinking: str
    content: str


def find_code_regions(text: str) -> list[tuple[int, int]]:
    """Half-open (start, end) spans of fenced blocks and inline code."""
    regions: list[tuple[int, int]] = []
    for match in _FENCED_RE.finditer(text):
        start = match.start() + len(match.group(1))
        regions.append((start, match.end()))

    for match in _INLINE_CODE_RE.finditer(text):
        start, end = match.span()
        inside_fence = any(start >= s and end <= e for s, e in regions)
        if not inside_fence:
            regions.append((start, end))

    regions.sort()
    return regions


def _inside_code(pos: int, regions: list[tuple[int, int]]) -> bool:
    return any(start <= pos < end for start, end in regions)


def strip_inline_thinking_tags(raw: str) -> ThinkingSplit:
    if not raw or not _QUICK_TAG_RE.search(raw):
        return ThinkingSplit(thinking="", content=raw)

    regions = find_code_regions(raw)
    visible: list[str] = []
    thinking_parts: list[str] = []
    last_index = 0
    in_thinking = False
    thinking_start = 0

    for match in _THINKING_TAG_RE.finditer(raw):
        idx = match.start()
        is_close = match.group(1) == "/"
        if _inside_code(idx, regions):
            continue

        if not in_thinking:
            visible.append(raw[last_index:idx])
            if not is_close:
                in_thinking = True
                thinking_start = match.end()
        elif is_close:
            thinking_parts.append(raw[thinking_start:idx].strip())
            in_thinking = False

        last_index = match.end()

    if in_thinking:
        thinking_parts.append(raw[thinking_start:].strip())
    else:
        visible.append(raw[last_index:])

    return ThinkingSplit(
        thinking="\n".join(thinking_parts).strip(),
        content="".join(visible).strip(),
    )


def merge_thinking(structured: str, inline: str) -> str:
    return "\n".join(part for part in (structured, inline) if part)


def compose_display_text(thinking: str, content: str, show_thinking: bool) -> str:
    """`[thinking]` block above the answer when thinking display is on."""
    parts = []
    if show_thinking and thinking:
        parts.append(f"[thinking]\n{thinking}")
    if content:
        parts.append(content)
    return "\n\n".join(parts).strip()
