"""Inline formatting rebalancing across chunk boundaries.

Chat clients render every message on its own, so a ``**bold`` span that
opens in one chunk and closes in the next shows up as literal asterisks in
both. The rebalancer closes unclosed markers at the end of the chunk that
opened them and strips the matching orphaned closer from a later chunk.
"""

from __future__ import annotations

from mdchunk.markdown.fences import FENCE_LINE_RE, parse_fence_spans

# 2-char toggles: bold, underline, strikethrough, spoiler.
INLINE_MARKERS: tuple[str, ...] = ("**", "__", "~~", "||")

# A span longer than this (or containing a newline) is never treated as a
# self-contained pair when looking for the orphan.
MAX_PAIR_SPAN = 200

REASONING_PREFIX = "Reasoning:\n_"


def _scan_markers(text: str):
    """Yield ``(pos, marker)`` for markers outside fences and inline code.

    Matching is greedy so ``**`` is never counted as two ``*``.
    """
    spans = parse_fence_spans(text)
    span_idx = 0
    in_inline_code = False
    i = 0
    length = len(text)

    while i < length:
        if not in_inline_code:
            while span_idx < len(spans) and spans[span_idx].end <= i:
                span_idx += 1
            if span_idx < len(spans) and spans[span_idx].start <= i:
                i = spans[span_idx].end
                continue

        ch = text[i]
        if ch == "`":
            in_inline_code = not in_inline_code
            i += 1
            continue
        if in_inline_code:
            i += 1
            continue

        pair = text[i:i + 2]
        if pair in INLINE_MARKERS:
            yield i, pair
            i += 2
            continue
        i += 1


def find_unclosed_markers(text: str) -> list[str]:
    """Return the markers left open (odd count) in *text*."""
    parity = dict.fromkeys(INLINE_MARKERS, 0)
    for _, marker in _scan_markers(text):
        parity[marker] ^= 1
    return [m for m in INLINE_MARKERS if parity[m]]


def find_marker_positions(text: str, marker: str) -> list[int]:
    """Offsets of every *marker* occurrence outside code."""
    return [pos for pos, found in _scan_markers(text) if found == marker]


def _is_self_contained(text: str, opener: int, closer: int, marker: str) -> bool:
    inner_start = opener + len(marker)
    span = text[inner_start:closer]
    if not span or "\n" in span or len(span) >= MAX_PAIR_SPAN:
        return False
    return not span[0].isspace() and not span[-1].isspace()


def strip_orphaned_marker(text: str, marker: str) -> str:
    """Remove the orphaned occurrence of *marker* from *text*.

    Adjacent occurrences are greedily paired when they look like a
    self-contained span (``**Term**: description``); the first occurrence
    left unpaired is the orphan. Text with an even count is returned as is.
    """
    positions = find_marker_positions(text, marker)
    if not positions or len(positions) % 2 == 0:
        return text

    paired: set[int] = set()
    for idx in range(len(positions)):
        if idx in paired:
            continue
        nxt = idx + 1
        while nxt < len(positions) and nxt in paired:
            nxt += 1
        if nxt >= len(positions):
            break
        if _is_self_contained(text, positions[idx], positions[nxt], marker):
            paired.add(idx)
            paired.add(nxt)

    orphan = next((p for i, p in enumerate(positions) if i not in paired), positions[-1])
    return text[:orphan] + text[orphan + len(marker):]


def strip_pending_markers(text: str, pending: list[str] | None) -> str:
    """Strip the orphaned closers of markers left open by a previous block."""
    for marker in pending or []:
        text = strip_orphaned_marker(text, marker)
    return text


def _closer_insert_pos(text: str) -> int:
    """Where closing markers go: after the last non-whitespace text outside fences.

    Trailing fenced blocks are walked back over one by one, so the closers
    never land inside a fence or on its closing line. Returns 0 when nothing
    but fences and whitespace precede the position.
    """
    pos = len(text.rstrip())
    for span in reversed(parse_fence_spans(text)):
        if span.start < pos <= span.end:
            pos = len(text[:span.start].rstrip())
    return pos


def close_unclosed_markers(chunk: str, markers: list[str] | None = None) -> str:
    """Append closers for every unclosed marker of *chunk*."""
    unclosed = find_unclosed_markers(chunk) if markers is None else markers
    if not unclosed:
        return chunk
    closers = "".join(reversed(unclosed))
    pos = _closer_insert_pos(chunk)
    if pos == 0 and chunk.strip():
        return f"{closers}\n{chunk}"

    # "~~" closing a line that ends in "~" would turn it into a tilde fence.
    line_start = chunk.rfind("\n", 0, pos) + 1
    line_end = chunk.find("\n", pos)
    line = chunk[line_start:pos] + closers + chunk[pos:len(chunk) if line_end < 0 else line_end]
    if FENCE_LINE_RE.match(line):
        closers = f" {closers}"
    return chunk[:pos] + closers + chunk[pos:]


def rebalance_inline_formatting(chunks: list[str]) -> list[str]:
    """Make every chunk but the last independently well-formed for the inline markers."""
    if len(chunks) <= 1:
        return chunks

    adjusted = list(chunks)
    for i in range(len(adjusted) - 1):
        unclosed = find_unclosed_markers(adjusted[i])
        if not unclosed:
            continue

        adjusted[i] = close_unclosed_markers(adjusted[i], unclosed)

        # The orphaned closer may sit several chunks ahead when a span
        # crosses three or more chunks.
        for marker in unclosed:
            for j in range(i + 1, len(adjusted)):
                if marker not in find_unclosed_markers(adjusted[j]):
                    continue
                adjusted[j] = strip_orphaned_marker(adjusted[j], marker)
                break

    return adjusted


def rebalance_reasoning_italics(source: str, chunks: list[str]) -> list[str]:
    """Close and reopen ``_..._`` italics on every chunk of a reasoning payload."""
    if len(chunks) <= 1:
        return chunks
    if not (source.startswith(REASONING_PREFIX) and source.rstrip().endswith("_")):
        return chunks

    adjusted = list(chunks)
    for i in range(len(adjusted)):
        if not adjusted[i].rstrip().endswith("_"):
            adjusted[i] = f"{adjusted[i]}_"
        if i == len(adjusted) - 1:
            break

        nxt = adjusted[i + 1]
        body = nxt.lstrip()
        leading = nxt[:len(nxt) - len(body)]
        if not body.startswith("_"):
            adjusted[i + 1] = f"{leading}_{body}"

    return adjusted
