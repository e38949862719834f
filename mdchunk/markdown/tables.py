"""Markdown table conversion for chat surfaces that cannot render pipe tables."""

from __future__ import annotations

from typing import Literal

from loguru import logger

from mdchunk.markdown.fences import FENCE_LINE_RE
from mdchunk.markdown.ir import TableBlock, find_tables
from mdchunk.markdown.structural import is_table_row
from mdchunk.markdown.unicode_width import HAIRSPACE, cell_visual_width, contains_rtl, hairspace_count

TableMode = Literal["off", "bullets", "code"]

_MIN_COLUMN_WIDTH = 3


def convert_markdown_tables(
    markdown: str,
    mode: TableMode,
    table_hairspacing: bool = True,
) -> str:
    """Re-render complete tables according to *mode*.

    Only the source lines of each table are replaced; every other line passes
    through verbatim. When no complete table exists and *mode* is ``"code"``,
    orphaned pipe rows (a table whose header was cut off upstream) are wrapped
    in a fence so they still render as monospace.
    """
    if not markdown or mode == "off":
        return markdown

    tables = find_tables(markdown)
    if not tables:
        if mode == "code":
            return wrap_orphaned_table_rows(markdown)
        return markdown

    lines = markdown.split("\n")
    out: list[str] = []
    cursor = 0
    for table in tables:
        out.extend(lines[cursor:table.start_line])
        if mode == "code":
            out.append(render_table_as_code(table, hairspacing=table_hairspacing))
        else:
            out.append(render_table_as_bullets(table))
        cursor = table.end_line
    out.extend(lines[cursor:])
    return "\n".join(out)


def _normalized_rows(table: TableBlock) -> list[list[str]]:
    cols = table.column_count
    rows = [table.header] + table.rows
    return [row + [""] * (cols - len(row)) for row in rows]


def render_table_as_code(table: TableBlock, hairspacing: bool = True) -> str:
    """Render *table* as a fenced monospace block with pipe-aligned columns."""
    rows = _normalized_rows(table)
    widths = [_MIN_COLUMN_WIDTH] * table.column_count
    for row in rows:
        for col, cell in enumerate(row):
            widths[col] = max(widths[col], cell_visual_width(cell))

    if any(contains_rtl(cell) for row in rows for cell in row):
        logger.warning("Table contains RTL text; column alignment may be off after bidi reordering")

    def render_row(row: list[str]) -> str:
        cells = []
        for col, cell in enumerate(row):
            pad = " " * (widths[col] - cell_visual_width(cell))
            extra = HAIRSPACE * hairspace_count(cell) if hairspacing else ""
            cells.append(f"{cell}{extra}{pad}")
        return "| " + " | ".join(cells) + " |"

    separator = "|" + "|".join("-" * (w + 2) for w in widths) + "|"
    body = [render_row(rows[0]), separator] + [render_row(r) for r in rows[1:]]
    return "```\n" + "\n".join(body) + "\n```"


def render_table_as_bullets(table: TableBlock) -> str:
    """Render *table* as one bullet group per body row."""
    header = table.header
    groups: list[str] = []
    for row in _normalized_rows(table)[1:]:
        if len(row) == 1:
            groups.append(f"- {row[0]}")
            continue
        lines = [f"**{row[0]}**"] if row[0] else []
        for col in range(1, len(row)):
            label = header[col] if col < len(header) else ""
            value = row[col]
            if not value:
                continue
            lines.append(f"- {label}: {value}" if label else f"- {value}")
        groups.append("\n".join(lines))
    return "\n\n".join(g for g in groups if g)


def wrap_orphaned_table_rows(text: str) -> str:
    """Wrap runs of pipe rows outside real fences in a synthetic fence."""
    lines = text.split("\n")
    out: list[str] = []
    fence_char = ""
    fence_len = 0
    in_orphan_fence = False

    for line in lines:
        row = is_table_row(line)
        if in_orphan_fence and not row:
            out.append("```")
            in_orphan_fence = False

        # Track real fences only; ours never contain fence lines.
        m = FENCE_LINE_RE.match(line)
        if m:
            marker = m.group(2)
            if not fence_char:
                fence_char, fence_len = marker[0], len(marker)
            elif marker[0] == fence_char and len(marker) >= fence_len:
                fence_char, fence_len = "", 0
            out.append(line)
            continue

        if fence_char:
            out.append(line)
            continue

        if row and not in_orphan_fence:
            out.append("```")
            in_orphan_fence = True
        out.append(line)

    if in_orphan_fence:
        out.append("```")

    return "\n".join(out)
