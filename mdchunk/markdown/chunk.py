"""Fence-aware markdown splitting for size-capped chat messages.

Split priority: paragraph boundary > structural boundary (heading, list
item) > start of a pipe table or fenced block > line boundary > whitespace
inside an over-long line > hard cut.
Fenced code blocks that must be interrupted are closed at the end of one
chunk and reopened with their original opening line in the next.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, Literal

from loguru import logger

from mdchunk.markdown.fences import FENCE_LINE_RE, is_safe_fence_break, parse_fence_spans
from mdchunk.markdown.markers import rebalance_inline_formatting, rebalance_reasoning_italics
from mdchunk.markdown.structural import count_lines, is_structural_boundary, is_table_row

ChunkMode = Literal["length", "newline"]

DEFAULT_MAX_CHARS = 2000

# Room the rebalancer may need per chunk: four 2-char closers plus an
# italic close/reopen pair.
MARKER_HEADROOM = 10

PARAGRAPH_SPLIT_RATIO = 0.3
STRUCTURAL_SPLIT_RATIO = 0.2

_PARAGRAPH_BREAK_RE = re.compile(r"\n[\t ]*\n+")


@dataclass
class OpenFence:
    indent: str
    marker_char: str
    marker_len: int
    open_line: str

    @property
    def close_line(self) -> str:
        return f"{self.indent}{self.marker_char * self.marker_len}"


def parse_fence_line(line: str) -> OpenFence | None:
    m = FENCE_LINE_RE.match(line)
    if not m:
        return None
    marker = m.group(2)
    return OpenFence(indent=m.group(1), marker_char=marker[0], marker_len=len(marker), open_line=line)


def close_fence_if_needed(text: str, open_fence: OpenFence | None) -> str:
    if open_fence is None:
        return text
    if not text:
        return open_fence.close_line
    if not text.endswith("\n"):
        return f"{text}\n{open_fence.close_line}"
    return f"{text}{open_fence.close_line}"


def split_long_line(line: str, limit: int, preserve_whitespace: bool = False) -> list[str]:
    """Split *line* into pieces of at most *limit* characters.

    Outside fences the cut goes at the last whitespace of the window and the
    separator starts the next piece, so plain concatenation restores the line.
    Inside fences (*preserve_whitespace*) the cut is exact.
    """
    limit = max(1, int(limit))
    out: list[str] = []
    remaining = line
    while len(remaining) > limit:
        cut = _cut_index(remaining, limit, preserve_whitespace)
        out.append(remaining[:cut])
        remaining = remaining[cut:]
    if remaining:
        out.append(remaining)
    return out


def _cut_index(text: str, limit: int, preserve_whitespace: bool) -> int:
    if preserve_whitespace:
        return limit
    for i in range(limit - 1, 0, -1):
        if text[i].isspace():
            return i
    return limit


class _Splitter:
    """Line-oriented accumulator behind :func:`chunk_text`."""

    def __init__(self, max_chars: int, max_lines: int | None) -> None:
        self.max_chars = max_chars
        self.max_lines = max_lines
        self.chunks: list[str] = []
        self.current = ""
        self.current_lines = 0
        self.open_fence: OpenFence | None = None
        # Offset in `current` right after the last blank line outside a fence.
        self.last_para_break_end = -1
        # Offset in `current` of the newline before the last heading/list line.
        self.last_structural = -1
        # Offset in `current` of the newline before the pipe table being built.
        self.last_table_start = -1
        self.in_table_run = False
        self.placing_table_row = False
        # Offset in `current` of the newline before the last fence opener.
        self.last_fence_start = -1

    # -- flushing -------------------------------------------------------------

    def _reset_boundaries(self) -> None:
        self.last_para_break_end = -1
        self.last_structural = -1
        self.last_table_start = -1
        self.last_fence_start = -1

    def _split_at(self, pos: int) -> None:
        head = self.current[:pos].rstrip()
        remainder = self.current[pos:].lstrip("\n")
        if head.strip():
            self.chunks.append(head)
        self.current = remainder
        self.current_lines = count_lines(remainder)
        self._reset_boundaries()

    def flush(self) -> str:
        """Emit part of `current`. Returns ``"boundary"``, ``"hard"`` or ``"none"``."""
        if not self.current:
            return "none"

        if self.open_fence is None:
            if self.last_para_break_end >= self.max_chars * PARAGRAPH_SPLIT_RATIO:
                self._split_at(self.last_para_break_end)
                return "boundary"
            if self.last_structural >= self.max_chars * STRUCTURAL_SPLIT_RATIO:
                self._split_at(self.last_structural)
                return "boundary"
            # Move a table that is still growing to the next chunk whole.
            if self.in_table_run and self.placing_table_row and self.last_table_start > 0:
                self._split_at(self.last_table_start)
                return "boundary"
        elif self.last_fence_start >= self.max_chars * STRUCTURAL_SPLIT_RATIO:
            # Move the fenced block to the next chunk whole; it is only cut
            # if it overflows there too.
            self._split_at(self.last_fence_start)
            return "boundary"
        elif self.current == self.open_fence.open_line:
            return "none"

        payload = close_fence_if_needed(self.current, self.open_fence)
        if payload:
            self.chunks.append(payload)
        if self.open_fence is not None:
            logger.debug(f"Split inside {self.open_fence.close_line} fence, reopening in next chunk")
            self.current = self.open_fence.open_line
            self.current_lines = 1
        else:
            self.current = ""
            self.current_lines = 0
        self._reset_boundaries()
        return "hard"

    # -- feeding --------------------------------------------------------------

    def feed(self, line: str) -> None:
        fence_info = parse_fence_line(line)
        was_inside_fence = self.open_fence is not None
        next_open = self.open_fence
        if fence_info is not None:
            if self.open_fence is None:
                next_open = fence_info
            elif (
                fence_info.marker_char == self.open_fence.marker_char
                and fence_info.marker_len >= self.open_fence.marker_len
            ):
                next_open = None

        # Keep room for the closing fence line while a fence stays open.
        reserve_chars = len(next_open.close_line) + 1 if next_open else 0
        reserve_lines = 1 if next_open else 0
        char_limit = self.max_chars - reserve_chars
        if char_limit <= 0:
            char_limit = self.max_chars
        line_limit = self.max_lines
        if line_limit is not None and line_limit - reserve_lines > 0:
            line_limit -= reserve_lines

        table_row = not was_inside_fence and is_table_row(line)
        self.placing_table_row = table_row
        line_start = self._place(line, char_limit, line_limit, was_inside_fence)

        if fence_info is not None and not was_inside_fence:
            self.last_fence_start = line_start

        if table_row:
            if not self.in_table_run:
                self.last_table_start = line_start
            self.in_table_run = True
        else:
            self.in_table_run = False
            self.last_table_start = -1

        if not was_inside_fence and self.current:
            if not line.strip():
                self.last_para_break_end = len(self.current)
            elif line_start > 0 and is_structural_boundary(line):
                self.last_structural = line_start

        self.open_fence = next_open

    def _place(self, line: str, char_limit: int, line_limit: int | None, inside_fence: bool) -> int:
        """Append *line* to `current`, flushing and cutting as needed.

        Returns the offset of the newline preceding the line when it landed in
        `current` in one piece, else -1.
        """
        remaining = line
        at_line_start = True
        stuck = False
        line_start = -1

        while True:
            delim = "\n" if self.current and at_line_start else ""
            space = char_limit - len(self.current) - len(delim)
            adds_line = at_line_start or not self.current
            next_lines = self.current_lines + (1 if adds_line else 0)
            lines_ok = line_limit is None or next_lines <= line_limit

            if lines_ok and len(remaining) <= space:
                if at_line_start and delim:
                    line_start = len(self.current)
                self.current += delim + remaining
                self.current_lines = next_lines
                return line_start

            if self.current and not stuck:
                before = self.current
                outcome = self.flush()
                if outcome == "hard":
                    at_line_start = True
                stuck = outcome == "none" or self.current == before
                continue

            # Nothing left to flush: cut a piece that fits the remaining space.
            cut = _cut_index(remaining, max(1, space), inside_fence) if len(remaining) > max(1, space) else len(remaining)
            self.current += delim + remaining[:cut]
            self.current_lines = next_lines
            remaining = remaining[cut:]
            at_line_start = False
            stuck = False
            line_start = -1
            if not remaining:
                return line_start

    def finish(self) -> list[str]:
        if self.current:
            payload = close_fence_if_needed(self.current, self.open_fence)
            if payload:
                self.chunks.append(payload)
            self.current = ""
        return self.chunks


def _fits(text: str, max_chars: int, max_lines: int | None) -> bool:
    return len(text) <= max_chars and (max_lines is None or count_lines(text) <= max_lines)


def _split_markdown(text: str, max_chars: int, max_lines: int | None) -> list[str]:
    splitter = _Splitter(max_chars, max_lines)
    for line in text.split("\n"):
        splitter.feed(line)
    return splitter.finish()


def _normalize_limits(max_chars: int | None, max_lines: int | None) -> tuple[int, int | None]:
    chars = max(1, int(max_chars if max_chars is not None else DEFAULT_MAX_CHARS))
    lines = max(1, int(max_lines)) if max_lines is not None else None
    return chars, lines


def _rebalanced_within(
    source: str,
    split: Callable[[int], list[str]],
    max_chars: int,
) -> list[str]:
    """Split with *split*, rebalance markers, and re-split with headroom on overflow."""
    chunks = rebalance_inline_formatting(rebalance_reasoning_italics(source, split(max_chars)))
    if max_chars > MARKER_HEADROOM and any(len(c) > max_chars for c in chunks):
        logger.debug(f"Marker rebalancing overflowed {max_chars} chars, re-splitting with headroom")
        reduced = max_chars - MARKER_HEADROOM
        chunks = rebalance_inline_formatting(rebalance_reasoning_italics(source, split(reduced)))
    return chunks


def chunk_text(text: str, max_chars: int = DEFAULT_MAX_CHARS, max_lines: int | None = None) -> list[str]:
    """Split *text* into chunks of at most *max_chars* characters and *max_lines* lines.

    Text that already fits is returned unchanged as a single chunk. Every
    chunk keeps its fenced code blocks balanced, and inline ``**``/``__``/
    ``~~``/``||`` spans that cross a boundary are closed in the chunk that
    opened them with the orphaned closer stripped later on.
    """
    if not text or not text.strip():
        return []
    max_chars, max_lines = _normalize_limits(max_chars, max_lines)
    if _fits(text, max_chars, max_lines):
        return [text]

    return _rebalanced_within(text, lambda limit: _split_markdown(text, limit, max_lines), max_chars)


chunk = chunk_text


def split_paragraphs(text: str) -> list[str]:
    """Split *text* at blank lines that are not inside a fenced block."""
    spans = parse_fence_spans(text)
    paragraphs: list[str] = []
    start = 0
    for m in _PARAGRAPH_BREAK_RE.finditer(text):
        if not is_safe_fence_break(spans, m.start()):
            continue
        piece = text[start:m.start()]
        if piece.strip():
            paragraphs.append(piece)
        start = m.end()
    tail = text[start:]
    if tail.strip():
        paragraphs.append(tail)
    return paragraphs


def chunk_text_with_mode(
    text: str,
    max_chars: int = DEFAULT_MAX_CHARS,
    max_lines: int | None = None,
    chunk_mode: ChunkMode = "length",
) -> list[str]:
    """Chunk by length, or by paragraph (``"newline"``) with length as the fallback."""
    if chunk_mode != "newline":
        return chunk_text(text, max_chars, max_lines)
    if not text or not text.strip():
        return []
    max_chars, max_lines = _normalize_limits(max_chars, max_lines)

    paragraphs = split_paragraphs(text)

    def split(limit: int) -> list[str]:
        out: list[str] = []
        for para in paragraphs:
            if _fits(para, limit, max_lines):
                out.append(para)
            else:
                out.extend(_split_markdown(para, limit, max_lines))
        return out

    return _rebalanced_within(text, split, max_chars)
