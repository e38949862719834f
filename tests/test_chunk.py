"""Tests for the fence-aware markdown chunker."""

import re

import pytest

from mdchunk.markdown.chunk import (
    chunk,
    chunk_text,
    chunk_text_with_mode,
    close_fence_if_needed,
    parse_fence_line,
    split_long_line,
    split_paragraphs,
)
from mdchunk.markdown.fences import FENCE_LINE_RE


def count_lines(text: str) -> int:
    return len(text.split("\n"))


def has_balanced_fences(text: str) -> bool:
    open_char, open_len = "", 0
    for line in text.split("\n"):
        m = FENCE_LINE_RE.match(line)
        if not m:
            continue
        marker = m.group(2)
        if not open_char:
            open_char, open_len = marker[0], len(marker)
        elif marker[0] == open_char and len(marker) >= open_len:
            open_char, open_len = "", 0
    return not open_char


def bold_count(text: str) -> int:
    return len(re.findall(r"\*\*", text))


# ---------------------------------------------------------------------------
# Limits and boundary preference
# ---------------------------------------------------------------------------


class TestLimits:
    """Size caps and the no-op path."""

    def test_tall_message_under_char_limit_is_not_split(self):
        text = "\n".join(f"line-{i + 1}" for i in range(45))
        assert len(text) < 2000
        assert chunk_text(text, max_chars=2000) == [text]

    def test_tall_message_split_when_max_lines_set(self):
        text = "\n".join(f"line-{i + 1}" for i in range(45))
        chunks = chunk_text(text, max_chars=2000, max_lines=20)
        assert len(chunks) >= 3
        for c in chunks:
            assert count_lines(c) <= 20

    def test_small_input_returned_unchanged(self):
        text = "  keep *this*   exactly\n\n\n  "
        assert chunk_text(text, max_chars=100) == [text]

    @pytest.mark.parametrize("text", ["", "   ", "\n\n\t"])
    def test_blank_input(self, text):
        assert chunk_text(text) == []

    def test_chunk_alias(self):
        assert chunk is chunk_text

    def test_nonsense_limits_are_clamped(self):
        chunks = chunk_text("abc def", max_chars=0)
        assert all(len(c) <= 1 for c in chunks)
        assert "".join(chunks).replace(" ", "") == "abcdef"


class TestBoundaryPreference:
    """Where the splitter prefers to cut."""

    def test_paragraph_boundary_over_line_split(self):
        para1 = [f"First paragraph line {i + 1} with some padding text here." for i in range(10)]
        para2 = [f"Second paragraph line {i + 1} with some padding text here." for i in range(10)]
        text = "\n".join(para1 + [""] + para2)

        chunks = chunk_text(text, max_chars=400)
        assert len(chunks) > 1
        assert "First paragraph" in chunks[0]
        assert "Second paragraph" not in chunks[0]

    def test_two_equal_paragraphs_split_at_blank_line(self):
        para1 = " ".join(["alpha"] * 40)
        para2 = " ".join(["omega"] * 40)
        text = f"{para1}\n\n{para2}"

        chunks = chunk_text(text, max_chars=300)
        assert chunks == [para1, para2]

    def test_between_list_items(self):
        items = [
            "- **Universal compatibility**: Works everywhere HTTP works",
            "- **Simple to understand**: Intuitive resource-based model",
            "- **HTTP caching**: Leverage browser and CDN caching out of the box",
            "- **Stateless**: Easy to scale horizontally",
            "- **Tooling**: Excellent debugging tools (browser DevTools, Postman, curl)",
            "- **Documentation standards**: OpenAPI/Swagger for standardized docs",
        ]
        chunks = chunk_text("\n".join(items), max_chars=200, max_lines=50)
        assert len(chunks) > 1
        for c in chunks:
            assert c.lstrip().split("\n")[0].startswith("- ")

    def test_before_headings(self):
        text = "\n".join([
            "### REST",
            "REST is a simple architecture.",
            "It uses HTTP methods.",
            "Very popular for web APIs.",
            "",
            "### GraphQL",
            "GraphQL lets clients request exactly what they need.",
            "Reduces over-fetching.",
        ])
        chunks = chunk_text(text, max_chars=130, max_lines=50)
        assert len(chunks) > 1
        assert "### REST" in chunks[0]
        assert "### GraphQL" not in chunks[0]

    def test_line_split_without_paragraph_boundary(self):
        text = "\n".join(f"Continuous line {i + 1} without any paragraph break." for i in range(20))
        chunks = chunk_text(text, max_chars=300)
        assert len(chunks) > 1
        joined = "\n".join(chunks)
        assert "Continuous line 1 " in joined
        assert "Continuous line 20" in joined
        for c in chunks:
            assert len(c) <= 300

    def test_table_moves_to_next_chunk_whole(self):
        intro = "Here is the roster for the upcoming sprint, grouped by team and role, as requested earlier on."
        rows = ["| Name     | Role      | Team  |", "|----------|-----------|-------|"]
        rows += [f"| Person {i:<2}| Engineer  | Core  |" for i in range(6)]
        table = "\n".join(rows)
        text = f"{intro}\n\n{table}"
        assert len(table) < 350 < len(text)

        chunks = chunk_text(text, max_chars=350)
        assert chunks == [intro, table]

    def test_fenced_block_moves_to_next_chunk_whole(self):
        intro = ("Setup notes. " * 8).rstrip()
        code = "```py\n" + "\n".join(f"value_{i} = {i}" for i in range(8)) + "\n```"
        text = f"{intro}\n\n{code}"
        assert len(code) < 150 < len(text)

        assert chunk_text(text, max_chars=150) == [intro, code]

    def test_table_larger_than_budget_keeps_every_row(self):
        rows = ["| Key | Value |", "|-----|-------|"]
        rows += [f"| key{i} | value number {i} |" for i in range(20)]
        text = "\n".join(rows)

        chunks = chunk_text(text, max_chars=120)
        assert len(chunks) > 1
        emitted = [line for c in chunks for line in c.split("\n")]
        assert emitted == rows


# ---------------------------------------------------------------------------
# Fences
# ---------------------------------------------------------------------------


class TestFences:
    """Fenced code blocks stay balanced across chunks."""

    def test_fence_balanced_across_line_limited_chunks(self):
        body = "\n".join(f"console.log({i});" for i in range(30))
        text = f"Here is code:\n\n```js\n{body}\n```\n\nDone."

        chunks = chunk_text(text, max_chars=2000, max_lines=10)
        assert len(chunks) > 1
        for c in chunks:
            assert has_balanced_fences(c)
            assert len(c) <= 2000
            assert count_lines(c) <= 10
        assert "```js" in chunks[0]
        assert "Done." in chunks[-1]

    def test_reopened_fence_uses_original_open_line(self):
        body = "\n".join(f"x = {i}" for i in range(40))
        text = f"~~~~python\n{body}\n~~~~"

        chunks = chunk_text(text, max_chars=2000, max_lines=10)
        assert len(chunks) > 1
        for c in chunks:
            assert c.split("\n")[0] == "~~~~python"
            assert c.split("\n")[-1] == "~~~~"

    def test_reserves_space_for_closing_fence(self):
        text = "```txt\n" + "a" * 120 + "\n```"
        chunks = chunk_text(text, max_chars=50, max_lines=50)
        assert len(chunks) > 1
        for c in chunks:
            assert len(c) <= 50
            assert has_balanced_fences(c)
        assert "".join(c.split("\n")[1] for c in chunks if c.count("\n") >= 2) == "a" * 120

    def test_newline_mode_keeps_fenced_block_intact(self):
        text = "```js\nconst a = 1;\nconst b = 2;\n```\nAfter"
        assert chunk_text_with_mode(text, max_chars=2000, max_lines=50, chunk_mode="newline") == [text]

    def test_parse_fence_line(self):
        fence = parse_fence_line("  ````py title")
        assert fence.indent == "  "
        assert fence.marker_char == "`"
        assert fence.marker_len == 4
        assert fence.close_line == "  ````"
        assert parse_fence_line("text") is None

    def test_close_fence_if_needed(self):
        fence = parse_fence_line("```")
        assert close_fence_if_needed("code", fence) == "code\n```"
        assert close_fence_if_needed("code\n", fence) == "code\n```"
        assert close_fence_if_needed("", fence) == "```"
        assert close_fence_if_needed("code", None) == "code"


# ---------------------------------------------------------------------------
# Long lines
# ---------------------------------------------------------------------------


class TestLongLines:
    """Over-long lines split at whitespace and concatenate back exactly."""

    def test_words_not_glued(self):
        text = " ".join(["word"] * 40)
        chunks = chunk_text(text, max_chars=20, max_lines=50)
        assert len(chunks) > 1
        assert "".join(chunks) == text

    def test_mixed_whitespace_preserved(self):
        text = "alpha  beta\tgamma   delta epsilon  zeta"
        chunks = chunk_text(text, max_chars=12, max_lines=50)
        assert len(chunks) > 1
        assert "".join(chunks) == text

    def test_leading_whitespace_preserved(self):
        text = "    indented line with words that force splits"
        chunks = chunk_text(text, max_chars=14, max_lines=50)
        assert len(chunks) > 1
        assert "".join(chunks) == text

    def test_whitespace_only_pieces_kept(self):
        text = "alpha" + " " * 30 + "omega"
        chunks = chunk_text(text, max_chars=12, max_lines=50)
        assert chunks == ["alpha      ", " " * 11, " " * 11, "  omega"]
        assert "".join(chunks) == text

    def test_split_long_line_at_whitespace(self):
        pieces = split_long_line("aaa bbb ccc", 5)
        assert pieces == ["aaa", " bbb", " ccc"]

    def test_split_long_line_without_whitespace(self):
        assert split_long_line("abcdefgh", 3) == ["abc", "def", "gh"]

    def test_split_long_line_preserving_whitespace_cuts_exactly(self):
        assert split_long_line("ab cd ef", 4, preserve_whitespace=True) == ["ab c", "d ef"]

    def test_split_long_line_short_input(self):
        assert split_long_line("short", 10) == ["short"]
        assert split_long_line("", 10) == []


# ---------------------------------------------------------------------------
# Inline marker rebalancing
# ---------------------------------------------------------------------------


class TestMarkerRebalancing:
    """Inline spans that cross a chunk boundary."""

    def test_bold_closed_and_reopened(self):
        text = "\n".join([
            "Here is some text.",
            "",
            "**You're not broken. This is just how",
            "OCD works.**",
            "",
            "More text follows here.",
            "And another line.",
            "Keep going.",
            "Still more.",
            "Almost there.",
            "Final line.",
        ])
        chunks = chunk_text(text, max_lines=5, max_chars=2000)
        assert len(chunks) > 1
        for c in chunks:
            assert bold_count(c) % 2 == 0

    @pytest.mark.parametrize(
        "marker,lines",
        [
            ("~~", [
                "Before text.",
                "~~This strikethrough spans",
                "multiple lines and should",
                "be balanced.~~",
                "After text.",
                "Line 6.",
                "Line 7.",
                "Line 8.",
                "Line 9.",
                "Line 10.",
            ]),
            ("||", [
                "Normal text.",
                "||This is a spoiler that spans",
                "across multiple lines and should",
                "stay hidden.||",
                "Visible again.",
                "Extra line 1.",
                "Extra line 2.",
                "Extra line 3.",
            ]),
        ],
    )
    def test_other_markers_balanced(self, marker, lines):
        chunks = chunk_text("\n".join(lines), max_lines=4, max_chars=2000)
        assert len(chunks) > 1
        for c in chunks:
            assert c.count(marker) % 2 == 0

    def test_multiple_markers_across_one_boundary(self):
        text = "\n".join([
            "**Bold and ~~strikethrough",
            "spanning multiple",
            "lines together.~~**",
            "Normal text.",
            "Line 5.",
            "Line 6.",
            "Line 7.",
            "Line 8.",
        ])
        chunks = chunk_text(text, max_lines=3, max_chars=2000)
        assert len(chunks) > 1
        for c in chunks:
            assert bold_count(c) % 2 == 0
            assert c.count("~~") % 2 == 0

    def test_markers_inside_fence_untouched(self):
        text = "```js\nconst x = '**not bold**';\nconst y = '~~not strike~~';\n```\nNormal text.\nMore text."
        assert chunk_text(text, max_chars=2000, max_lines=50) == [text]

    def test_markers_inside_inline_code_ignored(self):
        text = "\n".join(f"Line {i + 1}: text `**not bold**` more text" for i in range(25))
        chunks = chunk_text(text, max_lines=10, max_chars=2000)
        assert len(chunks) > 1
        for c in chunks:
            assert bold_count(re.sub(r"`[^`]*`", "", c)) % 2 == 0
            assert c.count("`**not bold**`") == count_lines(c)

    def test_bold_across_three_chunks(self):
        lines = [f"Line {i + 1} of content." for i in range(30)]
        lines[2] = "**Bold starts here."
        lines[28] = "Bold ends here.**"

        chunks = chunk_text("\n".join(lines), max_lines=10, max_chars=2000)
        assert len(chunks) >= 3
        for c in chunks:
            assert bold_count(c) % 2 == 0
        joined = "\n".join(chunks)
        assert "Bold starts here" in joined
        assert "Bold ends here" in joined

    def test_list_item_bold_not_garbled(self):
        text = "\n".join([
            "- **Universal compatibility**: Works everywhere",
            "- **Simple to understand**: Intuitive model",
            "- **HTTP caching**: Leverage browser caching",
            "- **Stateless**: Easy to scale",
            "- **Tooling**: Excellent debugging tools",
            "- **Documentation standards**: OpenAPI",
            "",
            "### Disadvantages",
            "- **Over-fetching**: Fixed endpoints return more data",
            "- **Under-fetching**: Multiple requests needed",
            "- **Versioning**: Breaking changes require new versions",
        ])
        chunks = chunk_text(text, max_chars=250, max_lines=50)
        assert len(chunks) > 1
        for c in chunks:
            assert bold_count(c) % 2 == 0
        joined = "\n".join(chunks)
        assert "**Universal compatibility**" in joined
        assert "**Simple to understand**" in joined

    def test_markers_not_prepended_before_fence_opener(self):
        text = "\n".join([
            "**Bold text that starts here",
            "and continues for several lines.",
            "More bold content padding here.",
            "",
            "```graphql",
            "query { user { name } }",
            "```",
            "",
            "Still bold text.**",
        ])
        chunks = chunk_text(text, max_chars=80, max_lines=50)
        assert len(chunks) > 1
        for c in chunks:
            first = c.split("\n")[0]
            assert not first.startswith("**```")
            if "```" in first:
                assert first.startswith("```")

    @pytest.mark.parametrize(
        "lines,max_chars,pairs",
        [
            (
                [
                    "Some text **bold that spans across",
                    "- **File uploads**: Not natively supported",
                    "- **Real-time streaming**: Requires workarounds",
                    "the chunk boundary**",
                    "Normal text.",
                    "Extra padding.",
                    "More padding.",
                ],
                120,
                ["**File uploads**", "**Real-time streaming**"],
            ),
            (
                [
                    "**Bold that spans across",
                    "boundary text**. Then:",
                    "- **Over-engineering**: overkill for simple APIs",
                    "- **Backend complexity**: resolvers and N+1 queries",
                    "More text.",
                    "Extra padding.",
                    "More padding.",
                ],
                100,
                ["**Over-engineering**", "**Backend complexity**"],
            ),
            (
                [
                    "**Bold span that opens here",
                    "- **Term A**: description of A",
                    "the orphan closer lands here**",
                    "- **Term B**: description of B",
                    "More padding text for length.",
                    "Extra padding.",
                    "More padding.",
                ],
                120,
                ["**Term A**", "**Term B**"],
            ),
        ],
        ids=["closer-after-pairs", "closer-before-pairs", "closer-between-pairs"],
    )
    def test_orphaned_closer_stripped_not_pair(self, lines, max_chars, pairs):
        chunks = chunk_text("\n".join(lines), max_chars=max_chars, max_lines=50)
        assert len(chunks) > 1
        for c in chunks:
            assert bold_count(c) % 2 == 0
        joined = "\n".join(chunks)
        for pair in pairs:
            assert pair in joined

    def test_rebalanced_chunks_stay_within_limit(self):
        text = "**" + " ".join(["bold"] * 60) + "**"
        chunks = chunk_text(text, max_chars=50)
        assert len(chunks) > 1
        for c in chunks:
            assert len(c) <= 50
            assert bold_count(c) % 2 == 0


class TestReasoningItalics:
    """``Reasoning:`` payloads keep their italics on every chunk."""

    def test_balanced_across_line_limited_chunks(self):
        body = "\n".join(f"{i + 1}. line" for i in range(25))
        chunks = chunk_text(f"Reasoning:\n_{body}_", max_lines=10, max_chars=2000)
        assert len(chunks) > 1
        for c in chunks:
            assert c.count("_") % 2 == 0
        assert "_1. line" in chunks[0]
        assert chunks[1].lstrip().startswith("_")

    def test_balanced_across_char_limited_chunks(self):
        long_line = "This is a very long reasoning line that forces char splits."
        body = "\n".join([long_line] * 5)
        chunks = chunk_text(f"Reasoning:\n_{body}_", max_chars=80, max_lines=50)
        assert len(chunks) > 1
        for c in chunks:
            assert c.count("_") % 2 == 0

    def test_reopen_keeps_following_indentation(self):
        body = "\n".join([f"{i}. line" for i in range(1, 11)] + ["  11. indented line", "12. line"])
        chunks = chunk_text(f"Reasoning:\n_{body}_", max_lines=10, max_chars=2000)
        assert len(chunks) > 1
        assert chunks[1].startswith("_")
        assert "  11. indented line" in chunks[1]

    def test_plain_text_not_italicized(self):
        body = "\n".join(f"{i + 1}. line" for i in range(25))
        chunks = chunk_text(body, max_lines=10, max_chars=2000)
        assert all("_" not in c for c in chunks)


# ---------------------------------------------------------------------------
# Paragraph mode
# ---------------------------------------------------------------------------


class TestNewlineMode:
    """``chunk_mode="newline"``: one message per paragraph."""

    def test_split_paragraphs_outside_fences(self):
        text = "One.\n\nTwo\nlines.\n\n```\na\n\nb\n```\n\n\nThree."
        assert split_paragraphs(text) == ["One.", "Two\nlines.", "```\na\n\nb\n```", "Three."]

    def test_whitespace_only_separator_line(self):
        assert split_paragraphs("a\n  \nb") == ["a", "b"]

    def test_each_paragraph_becomes_a_chunk(self):
        text = "First paragraph.\n\nSecond paragraph.\n\nThird."
        chunks = chunk_text_with_mode(text, max_chars=2000, chunk_mode="newline")
        assert chunks == ["First paragraph.", "Second paragraph.", "Third."]

    def test_oversized_paragraph_falls_back_to_length(self):
        big = "\n".join(f"row {i} of the big paragraph" for i in range(20))
        text = f"Short intro.\n\n{big}"
        chunks = chunk_text_with_mode(text, max_chars=120, chunk_mode="newline")
        assert chunks[0] == "Short intro."
        assert len(chunks) > 2
        assert all(len(c) <= 120 for c in chunks)

    def test_bold_across_paragraphs_rebalanced(self):
        text = "**Bold opens\n\nand closes here.**"
        chunks = chunk_text_with_mode(text, max_chars=2000, chunk_mode="newline")
        assert len(chunks) == 2
        for c in chunks:
            assert bold_count(c) % 2 == 0

    def test_length_mode_delegates(self):
        text = "a\n\nb"
        assert chunk_text_with_mode(text, chunk_mode="length") == [text]

    def test_blank_input(self):
        assert chunk_text_with_mode("  \n ", chunk_mode="newline") == []
