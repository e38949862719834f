"""Incremental chunker for progressively streamed reply text.

The streaming model output arrives in small deltas. ``EmbeddedBlockChunker``
buffers them and emits blocks once a clean break is available, waiting up to
twice ``max_chars`` for a paragraph, structural or sentence boundary before it
falls back to a newline, whitespace or hard cut.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable

from mdchunk.markdown.fences import FenceSpan, find_fence_span_at, is_safe_fence_break, parse_fence_spans
from mdchunk.markdown.structural import is_fence_opener, is_structural_boundary, is_table_row

if TYPE_CHECKING:
    from mdchunk.config.schema import BlockChunkingConfig

_PARAGRAPH_BREAK_RE = re.compile(r"\n[\t ]*\n+")
_SENTENCE_END_RE = re.compile(r"[.!?](?=\s|\Z)")


@dataclass
class FenceSplit:
    close_fence_line: str
    reopen_fence_line: str


@dataclass
class BreakResult:
    """Break position in the buffer. ``index <= 0`` means no break was found."""

    index: int
    fence_split: FenceSplit | None = None


_NO_BREAK = BreakResult(index=-1)


def _last_index(text: str, sub: str, at_or_before: int) -> int:
    if at_or_before < 0:
        return -1
    return text.rfind(sub, 0, at_or_before + len(sub))


def _line_after(buffer: str, newline_idx: int) -> str | None:
    start = newline_idx + 1
    if start >= len(buffer):
        return None
    end = buffer.find("\n", start)
    return buffer[start:] if end == -1 else buffer[start:end]


def _line_before(buffer: str, newline_idx: int) -> str:
    start = buffer.rfind("\n", 0, newline_idx)
    return buffer[start + 1:newline_idx]


def _is_structural_newline_break(buffer: str, newline_idx: int) -> bool:
    nxt = _line_after(buffer, newline_idx)
    return nxt is not None and is_structural_boundary(nxt)


def _is_inside_table_run(buffer: str, newline_idx: int) -> bool:
    """True when the lines on both sides are table rows; splitting would orphan the header."""
    nxt = _line_after(buffer, newline_idx)
    if nxt is None:
        return False
    return is_table_row(_line_before(buffer, newline_idx)) and is_table_row(nxt)


def _is_continuation_newline_break(buffer: str, newline_idx: int) -> bool:
    """True when the next line is soft-wrapped text that belongs to the previous one."""
    nxt = _line_after(buffer, newline_idx)
    if nxt is None or not nxt.strip():
        return False
    return not (is_structural_boundary(nxt) or is_fence_opener(nxt) or is_table_row(nxt))


def _strip_leading_newlines(value: str) -> str:
    return value.lstrip("\n")


def find_next_paragraph_break(buffer: str, spans: list[FenceSpan], start: int = 0) -> tuple[int, int] | None:
    """Return ``(index, length)`` of the next blank-line break outside fences."""
    if start < 0:
        return None
    for m in _PARAGRAPH_BREAK_RE.finditer(buffer, start):
        if is_safe_fence_break(spans, m.start()):
            return m.start(), len(m.group(0))
    return None


class EmbeddedBlockChunker:
    """Buffer streamed text and emit it in well-broken blocks."""

    def __init__(self, chunking: BlockChunkingConfig):
        self._chunking = chunking
        self._buffer = ""

    def append(self, text: str) -> None:
        if not text:
            return
        self._buffer += text

    def reset(self) -> None:
        self._buffer = ""

    @property
    def buffered_text(self) -> str:
        return self._buffer

    def has_buffered(self) -> bool:
        return len(self._buffer) > 0

    @property
    def _min_chars(self) -> int:
        return max(1, int(self._chunking.min_chars))

    @property
    def _max_chars(self) -> int:
        return max(self._min_chars, int(self._chunking.max_chars))

    @property
    def _preference(self) -> str:
        return self._chunking.break_preference or "paragraph"

    def drain(self, force: bool, emit: Callable[[str], None]) -> None:
        """Emit every block that is ready.

        Fenced code blocks are never split unless *force* pushes past
        ``max_chars``; then the fence is closed and reopened so both halves
        stay valid markdown.
        """
        min_chars = self._min_chars
        max_chars = self._max_chars

        if self._chunking.flush_on_paragraph and not force:
            self._drain_paragraphs(emit, max_chars)
            return

        if len(self._buffer) < min_chars and not force:
            return

        if force and len(self._buffer) <= max_chars:
            if self._buffer.strip():
                emit(self._buffer)
            self._buffer = ""
            return

        while len(self._buffer) >= min_chars or (force and self._buffer):
            if force and len(self._buffer) <= max_chars:
                result = self.pick_soft_break_index(self._buffer, 1)
            else:
                result = self.pick_break_index(self._buffer, 1 if force else None, allow_overflow=not force)

            if result.index <= 0:
                if force:
                    emit(self._buffer)
                    self._buffer = ""
                return

            if not self._emit_break_result(result, emit):
                continue

            if len(self._buffer) < min_chars and not force:
                return
            if len(self._buffer) < max_chars and not force:
                return

    def _drain_paragraphs(self, emit: Callable[[str], None], max_chars: int) -> None:
        while self._buffer:
            spans = parse_fence_spans(self._buffer)
            brk = find_next_paragraph_break(self._buffer, spans)
            if brk is None or brk[0] > max_chars:
                # No usable boundary yet: only cut when the buffer is already full.
                if len(self._buffer) >= max_chars:
                    result = self.pick_break_index(self._buffer, 1)
                    if result.index > 0:
                        self._emit_break_result(result, emit)
                        continue
                return

            index, length = brk
            piece = self._buffer[:index]
            if piece.strip():
                emit(piece)
            self._buffer = _strip_leading_newlines(self._buffer[index + length:])

    def _emit_break_result(self, result: BreakResult, emit: Callable[[str], None]) -> bool:
        idx = result.index
        if idx <= 0:
            return False

        raw = self._buffer[:idx]
        if not raw.strip():
            self._buffer = _strip_leading_newlines(self._buffer[idx:]).lstrip()
            return False

        next_buffer = self._buffer[idx:]
        split = result.fence_split
        if split is not None:
            close = f"{split.close_fence_line}\n" if raw.endswith("\n") else f"\n{split.close_fence_line}\n"
            raw = raw + close
            reopen = split.reopen_fence_line
            if not reopen.endswith("\n"):
                reopen += "\n"
            next_buffer = reopen + next_buffer

        emit(raw)

        if split is not None:
            self._buffer = next_buffer
        else:
            next_start = idx + 1 if idx < len(self._buffer) and self._buffer[idx].isspace() else idx
            self._buffer = _strip_leading_newlines(self._buffer[next_start:])
        return True

    # -- break search -----------------------------------------------------------

    def pick_soft_break_index(self, buffer: str, min_chars_override: int | None = None) -> BreakResult:
        """Find the earliest clean break at or after ``min_chars``; never cuts hard."""
        min_chars = max(1, int(min_chars_override if min_chars_override is not None else self._chunking.min_chars))
        if len(buffer) < min_chars:
            return _NO_BREAK
        spans = parse_fence_spans(buffer)
        preference = self._preference

        def newlines():
            idx = buffer.find("\n")
            while idx != -1:
                if idx >= min_chars and is_safe_fence_break(spans, idx):
                    yield idx
                idx = buffer.find("\n", idx + 1)

        if preference == "paragraph":
            idx = buffer.find("\n\n")
            while idx != -1:
                for candidate in (idx, idx + 1):
                    if min_chars <= candidate < len(buffer) and is_safe_fence_break(spans, candidate):
                        return BreakResult(candidate)
                idx = buffer.find("\n\n", idx + 2)

        if preference in ("paragraph", "newline"):
            for idx in newlines():
                if not _is_inside_table_run(buffer, idx) and _is_structural_newline_break(buffer, idx):
                    return BreakResult(idx)
            for idx in newlines():
                if not _is_inside_table_run(buffer, idx) and not _is_continuation_newline_break(buffer, idx):
                    return BreakResult(idx)

        if preference != "newline":
            sentence = self._last_sentence_break(buffer, spans, min_chars)
            if sentence >= min_chars:
                return BreakResult(sentence)

        if preference in ("paragraph", "newline"):
            for idx in newlines():
                if not _is_inside_table_run(buffer, idx):
                    return BreakResult(idx)
            for idx in newlines():
                return BreakResult(idx)

        return _NO_BREAK

    def pick_break_index(
        self,
        buffer: str,
        min_chars_override: int | None = None,
        allow_overflow: bool = False,
    ) -> BreakResult:
        """Find the latest clean break within ``max_chars`` (or twice that on overflow)."""
        min_chars = max(1, int(min_chars_override if min_chars_override is not None else self._chunking.min_chars))
        max_chars = max(min_chars, int(self._chunking.max_chars))
        hard_max = max_chars * 2
        if len(buffer) < min_chars:
            return _NO_BREAK

        window_end = min(hard_max if allow_overflow and len(buffer) > max_chars else max_chars, len(buffer))
        window = buffer[:window_end]
        spans = parse_fence_spans(buffer)
        preference = self._preference

        def newlines_backwards():
            idx = window.rfind("\n")
            while idx >= min_chars:
                if is_safe_fence_break(spans, idx):
                    yield idx
                idx = _last_index(window, "\n", idx - 1)

        if preference == "paragraph":
            idx = window.rfind("\n\n")
            while idx >= min_chars:
                for candidate in (idx, idx + 1):
                    if min_chars <= candidate < len(buffer) and is_safe_fence_break(spans, candidate):
                        return BreakResult(candidate)
                idx = _last_index(window, "\n\n", idx - 1)

        if preference in ("paragraph", "newline"):
            for idx in newlines_backwards():
                if not _is_inside_table_run(buffer, idx) and _is_structural_newline_break(buffer, idx):
                    return BreakResult(idx)
            for idx in newlines_backwards():
                if not _is_inside_table_run(buffer, idx) and not _is_continuation_newline_break(buffer, idx):
                    return BreakResult(idx)

        if preference != "newline":
            sentence = self._last_sentence_break(window, spans, min_chars)
            if sentence >= min_chars:
                return BreakResult(sentence)

        # Let the buffer keep growing until a clean break shows up.
        if allow_overflow and len(buffer) < hard_max:
            return _NO_BREAK

        if preference in ("paragraph", "newline"):
            for idx in newlines_backwards():
                if not _is_inside_table_run(buffer, idx):
                    return BreakResult(idx)
            for idx in newlines_backwards():
                return BreakResult(idx)

        if preference == "newline" and len(buffer) < max_chars:
            return _NO_BREAK

        for i in range(len(window) - 1, min_chars - 1, -1):
            if window[i].isspace() and is_safe_fence_break(spans, i):
                return BreakResult(i)

        if len(buffer) >= max_chars:
            fence = find_fence_span_at(spans, max_chars)
            if fence is not None:
                return BreakResult(
                    max_chars,
                    FenceSplit(close_fence_line=fence.close_line, reopen_fence_line=fence.open_line),
                )
            return BreakResult(max_chars)

        return _NO_BREAK

    @staticmethod
    def _last_sentence_break(text: str, spans: list[FenceSpan], min_chars: int) -> int:
        best = -1
        for m in _SENTENCE_END_RE.finditer(text):
            if m.start() < min_chars:
                continue
            candidate = m.start() + 1
            if is_safe_fence_break(spans, candidate):
                best = candidate
        return best
