"""Markdown stripping and word counting for chapter bodies."""
from __future__ import annotations

import re
from typing import Callable, List, Tuple, Union

_Replacement = Union[str, Callable[[re.Match], str]]

# Applied in order: fenced code before inline code and emphasis, images
# before links so image syntax is dropped rather than reduced to its alt text.
_MARKDOWN_RULES: List[Tuple[re.Pattern, _Replacement]] = [
    (re.compile(r"```[^`]*```"), ""),
    (re.compile(r"`([^`\n]+)`"), r"\1"),
    (re.compile(r"!\[[^\]]*\]\([^)]*\)"), ""),
    (re.compile(r"\[([^\]]+)\]\([^)]*\)"), r"\1"),
    (re.compile(r"^[ \t]*(?:#{1,6}[ \t]+)+", re.MULTILINE), ""),
    (re.compile(r"\*\*(.+?)\*\*"), r"\1"),
    (re.compile(r"__(.+?)__"), r"\1"),
    (re.compile(r"\*([^*\n]+)\*"), r"\1"),
    (re.compile(r"(?<!\w)_([^_\n]+)_(?!\w)"), r"\1"),
    (re.compile(r"^[ \t]*(?:[-*+][ \t]+)+", re.MULTILINE), ""),
    (re.compile(r"^[ \t]*(?:\d+\.[ \t]+)+", re.MULTILINE), ""),
    (re.compile(r"^[ \t]*(?:>[ \t]?)+", re.MULTILINE), ""),
    (re.compile(r"\n{3,}"), "\n\n"),
]

_WHITESPACE = re.compile(r"\s+")
_MARKUP_SYMBOLS = re.compile(r"[#*_`~\[\]()]")


def strip_markdown(content: str) -> str:
    """Return ``content`` with lightweight Markdown markup removed.

    Markup exposed by one pass (a quote marker left in front of a list item,
    emphasis nested in emphasis) is removed by repeating the pass until the
    text stops changing, so stripping plain output again is a no-op.
    """

    if not content:
        return ""
    text = content
    # Every rule only removes characters, so this loop terminates.
    while True:
        previous = text
        for pattern, replacement in _MARKDOWN_RULES:
            text = pattern.sub(replacement, text)
        if text == previous:
            return text


def count_words(content: str) -> int:
    """Count characters after removing whitespace.

    Each CJK character and each Latin letter counts as one word. Markdown
    symbols are counted; only whitespace is discarded.
    """

    if not content:
        return 0
    return len(_WHITESPACE.sub("", content))


def count_plain_words(content: str) -> int:
    """Count words for writing statistics, ignoring markup symbols too."""

    if not content:
        return 0
    return len(_WHITESPACE.sub("", _MARKUP_SYMBOLS.sub("", content)))


__all__ = ["count_plain_words", "count_words", "strip_markdown"]
