"""Whitespace and rule cleanup for chat surfaces that show markdown raw.

Web UIs absorb stray blank lines and leading spaces during HTML rendering,
chat clients print them as is.
"""

from __future__ import annotations

import re

from mdchunk.markdown.fences import in_fence, parse_fence_spans

# Three or more `-`, `*` or `_` (optionally spaced) alone on a line.
HR_RE = re.compile(r"^[ \t]*(?:[-*_][ \t]*){3,}$")

# Nested list items keep their indentation.
INDENTED_LIST_RE = re.compile(r"^[ \t]+(?:[-*+][ \t]|\d+[.)][ \t])")

_EXTRA_BLANK_LINES_RE = re.compile(r"\n{3,}")
_BLANK_BETWEEN_ITEMS_RE = re.compile(r"^([ \t]*[-*][ \t]+.+)\n\n(?=[ \t]*[-*][ \t]+)", re.MULTILINE)


def _lines_with_fence_flag(text: str):
    spans = parse_fence_spans(text)
    offset = 0
    for line in text.split("\n"):
        yield line, in_fence(spans, offset)
        offset += len(line) + 1


def strip_horizontal_rules(text: str) -> str:
    """Drop horizontal rule lines outside fenced code blocks."""
    if not text:
        return text
    return "\n".join(
        line for line, fenced in _lines_with_fence_flag(text)
        if fenced or not HR_RE.match(line)
    )


def strip_stray_leading_spaces(text: str) -> str:
    """Remove leading whitespace from paragraph lines outside fences."""
    if not text:
        return text
    out = []
    for line, fenced in _lines_with_fence_flag(text):
        if fenced or INDENTED_LIST_RE.match(line):
            out.append(line)
        else:
            out.append(line.lstrip())
    return "\n".join(out)


def normalize_blank_lines(text: str) -> str:
    """Collapse runs of blank lines and drop blank lines between bullets."""
    text = _EXTRA_BLANK_LINES_RE.sub("\n\n", text)
    return _BLANK_BETWEEN_ITEMS_RE.sub(r"\1\n", text)
