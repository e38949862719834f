"""Line-level predicates shared by the chunkers and the table normalizer."""

from __future__ import annotations

import re

# Lines that start a heading, bullet or numbered item. Splitting before
# these is preferred over splitting mid-paragraph.
STRUCTURAL_RE = re.compile(r"^(?:#{1,6}\s|[-*+]\s|\d+[.)]\s)")
TABLE_ROW_RE = re.compile(r"^\s*\|")
FENCE_OPEN_RE = re.compile(r"^ {0,3}(`{3,}|~{3,})")


def is_structural_boundary(line: str) -> bool:
    return STRUCTURAL_RE.match(line) is not None


def is_table_row(line: str) -> bool:
    return TABLE_ROW_RE.match(line) is not None


def is_fence_opener(line: str) -> bool:
    return FENCE_OPEN_RE.match(line) is not None


def count_lines(text: str) -> int:
    if not text:
        return 0
    return text.count("\n") + 1
