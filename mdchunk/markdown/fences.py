"""Fenced code block detection.

Everything downstream (chunker, marker rebalancer, table normalizer) treats
positions inside a fence span as opaque, so this is the single place where
fence semantics live.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

FENCE_LINE_RE = re.compile(r"^( {0,3})(`{3,}|~{3,})(.*)$")


@dataclass(frozen=True)
class FenceSpan:
    """Half-open ``[start, end)`` range of a fenced block, delimiter lines included."""

    start: int
    end: int
    indent: str
    marker_char: str
    marker_len: int
    open_line: str

    @property
    def marker(self) -> str:
        return self.marker_char * self.marker_len

    @property
    def close_line(self) -> str:
        return f"{self.indent}{self.marker}"


def parse_fence_spans(text: str) -> list[FenceSpan]:
    """Detect fenced code blocks in *text*.

    A closer must use the opener's marker character and be at least as long.
    An unterminated fence still yields a span running to the end of text.
    """
    spans: list[FenceSpan] = []
    open_start = -1
    indent = ""
    marker_char = ""
    marker_len = 0
    open_line = ""

    offset = 0
    length = len(text)
    while offset <= length:
        newline = text.find("\n", offset)
        line_end = length if newline == -1 else newline
        line = text[offset:line_end]

        m = FENCE_LINE_RE.match(line)
        if m:
            marker = m.group(2)
            if open_start < 0:
                open_start = offset
                indent = m.group(1)
                marker_char = marker[0]
                marker_len = len(marker)
                open_line = line
            elif marker[0] == marker_char and len(marker) >= marker_len:
                spans.append(FenceSpan(
                    start=open_start, end=line_end, indent=indent,
                    marker_char=marker_char, marker_len=marker_len, open_line=open_line,
                ))
                open_start = -1

        if newline == -1:
            break
        offset = newline + 1

    if open_start >= 0:
        spans.append(FenceSpan(
            start=open_start, end=length, indent=indent,
            marker_char=marker_char, marker_len=marker_len, open_line=open_line,
        ))
    return spans


def find_fence_span_at(spans: list[FenceSpan], index: int) -> FenceSpan | None:
    """Return the span strictly enclosing *index*, if any."""
    for span in spans:
        if span.start < index < span.end:
            return span
    return None


def is_safe_fence_break(spans: list[FenceSpan], index: int) -> bool:
    return find_fence_span_at(spans, index) is None


def in_fence(spans: list[FenceSpan], pos: int) -> bool:
    """Check if *pos* falls inside any span (delimiter lines included)."""
    for span in spans:
        if span.start <= pos < span.end:
            return True
    return False
