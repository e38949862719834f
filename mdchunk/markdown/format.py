"""Unified entry point for markdown → chat-safe message chunks."""

from __future__ import annotations

from dataclasses import dataclass, field

from loguru import logger

from mdchunk.config.schema import DeliveryProfile
from mdchunk.markdown.chunk import chunk_text_with_mode
from mdchunk.markdown.markers import close_unclosed_markers, find_unclosed_markers, strip_pending_markers
from mdchunk.markdown.strip import normalize_blank_lines, strip_horizontal_rules, strip_stray_leading_spaces
from mdchunk.markdown.tables import convert_markdown_tables


@dataclass
class ChunkedReply:
    chunks: list[str] = field(default_factory=list)
    # Markers the reply left open; strip their closers from the next block.
    unclosed_markers: list[str] = field(default_factory=list)
    processed_text: str = ""


def normalize_reply_text(text: str, profile: DeliveryProfile) -> str:
    """Tables, horizontal rules and stray whitespace, in that order."""
    text = convert_markdown_tables(text, profile.table_mode, profile.table_hairspacing)
    text = strip_horizontal_rules(text)
    text = normalize_blank_lines(text)
    return strip_stray_leading_spaces(text)


def prepare_reply_chunks(
    text: str,
    profile: DeliveryProfile | None = None,
    pending_markers: list[str] | None = None,
) -> ChunkedReply:
    """Convert one reply block into message-sized chunks.

    *pending_markers* are the markers the previous block of the same stream
    left open; their orphaned closers are stripped before anything else. The
    returned ``unclosed_markers`` is the value to pass for the next block.
    """
    profile = profile or DeliveryProfile()
    text = strip_pending_markers(text or "", pending_markers)
    text = normalize_reply_text(text, profile)
    if not text.strip():
        return ChunkedReply(processed_text=text)

    unclosed = find_unclosed_markers(text)
    # Leave room for the closers appended to the last chunk below, plus the
    # space that keeps a "~~" closer from forming a fence line.
    reserve = sum(len(m) for m in unclosed) + (1 if unclosed else 0)

    chunks = chunk_text_with_mode(
        text,
        max_chars=max(1, profile.max_chars - reserve),
        max_lines=profile.max_lines,
        chunk_mode=profile.chunk_mode,
    )
    if not chunks:
        chunks = [text]

    # A block that ends inside a span (streaming) still renders on its own.
    chunks[-1] = close_unclosed_markers(chunks[-1])

    out = [c.strip() for c in chunks if c.strip()]
    logger.debug(f"Prepared {len(out)} chunk(s) from {len(text)} chars, unclosed={unclosed}")
    return ChunkedReply(chunks=out, unclosed_markers=unclosed, processed_text=text)
