"""Thinking Tags tests: inline reasoning split and display composition.

Tests cover:
    - Fast path when no tag is present
    - <think>, <thinking>, <thought>, <antthinking> variants, case-insensitive
    - Tags inside fenced blocks and inline code are left alone
    - Unclosed tag turns the remainder into thinking
    - merge_thinking order and compose_display_text toggle
"""

from antigravity_chat.core.thinking_tags import (
    compose_display_text,
    find_code_regions,
    merge_thinking,
    strip_inline_thinking_tags,
)


def test_no_tags_returns_input_unchanged():
    split = strip_inline_thinking_tags("  plain answer  ")
    assert split.content == "  plain answer  "
    assert split.thinking == ""


def test_think_block_is_removed_from_content():
    split = strip_inline_thinking_tags("<think>step one</think>The answer is 4.")
    assert split.thinking == "step one"
    assert split.content == "The answer is 4."


def test_tag_variants_and_case():
    for tag in ("thinking", "THOUGHT", "antThinking"):
        split = strip_inline_thinking_tags(f"A <{tag}>hidden</{tag}> B")
        assert split.thinking == "hidden"
        assert split.content == "A  B"


def test_multiple_blocks_join_with_newline():
    split = strip_inline_thinking_tags("<think>a</think>x<think>b</think>y")
    assert split.thinking == "a\nb"
    assert split.content == "xy"


def test_unclosed_tag_keeps_rest_as_thinking():
    split = strip_inline_thinking_tags("Visible <thinking>never closed")
    assert split.content == "Visible"
    assert split.thinking == "never closed"


def test_tags_inside_fenced_code_are_literal():
    raw = "Example:\n```html\n<think>literal</think>\n```\nDone."
    split = strip_inline_thinking_tags(raw)
    assert split.thinking == ""
    assert "<think>literal</think>" in split.content


def test_tags_inside_inline_code_are_literal():
    split = strip_inline_thinking_tags("Use `<think>` tags <think>real</think>here")
    assert split.thinking == "real"
    assert split.content == "Use `<think>` tags here"


def test_code_regions_cover_fence_and_inline():
    text = "a `b` c\n```\nx\n```\n"
    regions = find_code_regions(text)
    assert len(regions) == 2
    assert text[regions[0][0]:regions[0][1]] == "`b`"


def test_merge_thinking_structured_first():
    assert merge_thinking("streamed", "inline") == "streamed\ninline"
    assert merge_thinking("", "inline") == "inline"
    assert merge_thinking("", "") == ""


def test_compose_display_text_toggle():
    assert compose_display_text("t", "c", True) == "[thinking]\nt\n\nc"
    assert compose_display_text("t", "c", False) == "c"
    assert compose_display_text("", "c", True) == "c"
