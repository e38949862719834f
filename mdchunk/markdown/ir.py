"""Markdown block scan for table detection.

Parses markdown with markdown-it-py and returns the complete pipe tables it
finds (header row, separator row, body rows), together with their source line
range so the table normalizer can re-render them in place while every other
block passes through untouched.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from markdown_it import MarkdownIt


@dataclass
class TableBlock:
    start_line: int  # first source line of the table (0-based)
    end_line: int    # one past the last source line
    header: list[str] = field(default_factory=list)
    rows: list[list[str]] = field(default_factory=list)

    @property
    def column_count(self) -> int:
        return max([len(self.header)] + [len(r) for r in self.rows])


def _parser() -> MarkdownIt:
    parser = MarkdownIt("commonmark", {"typographer": False})
    parser.enable("table")
    parser.enable("strikethrough")
    return parser


def find_tables(md: str) -> list[TableBlock]:
    """Return the top-level tables in *md* in document order."""
    if "|" not in md:
        return []
    tokens = _parser().parse(md)

    tables: list[TableBlock] = []
    i = 0
    while i < len(tokens):
        tok = tokens[i]
        if tok.type != "table_open" or tok.level != 0 or not tok.map:
            i += 1
            continue

        table = TableBlock(start_line=tok.map[0], end_line=tok.map[1])
        row: list[str] | None = None
        in_head = False
        i += 1
        while i < len(tokens) and tokens[i].type != "table_close":
            ttype = tokens[i].type
            if ttype == "thead_open":
                in_head = True
            elif ttype == "thead_close":
                in_head = False
            elif ttype == "tr_open":
                row = []
            elif ttype == "tr_close":
                if row is not None:
                    if in_head:
                        table.header = row
                    else:
                        table.rows.append(row)
                row = None
            elif ttype == "inline" and row is not None:
                row.append(_cell_text(tokens[i].children or []).strip())
            i += 1

        if table.header:
            tables.append(table)
        i += 1  # skip table_close

    return tables


def _cell_text(children: list) -> str:
    """Flatten inline tokens of a cell to plain text (emphasis markers dropped)."""
    parts: list[str] = []
    for tok in children:
        ttype = tok.type

        # --- Text and inline code keep their content ---
        if ttype in ("text", "code_inline", "html_inline"):
            parts.append(tok.content)
            continue

        # --- Breaks collapse to a space so rows stay on one line ---
        if ttype in ("softbreak", "hardbreak"):
            parts.append(" ")
            continue

        # --- Image (render alt text) ---
        if ttype == "image":
            parts.append(tok.content or "image")
            continue

        # *_open / *_close style tokens carry no text
    return "".join(parts)
