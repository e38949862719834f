"""Unicode width helpers for table alignment in monospace code blocks.

Wide glyphs (CJK, Hangul, emoji) take more room than ASCII in the chat
clients' code-block font. Pipe tables are padded on an integer column model,
so a run of hairspaces (U+200A, roughly a tenth of a space) is added next to
wide glyphs to bridge the fractional gap.

Known gap: RTL scripts are reordered by the bidi algorithm regardless of any
padding; :func:`contains_rtl` only lets callers warn about it.
"""

from __future__ import annotations

from typing import NamedTuple

HAIRSPACE = "\u200a"
LRM = "\u200e"

# Hairspaces per wide glyph as num/den. N glyphs get floor(N * num / den),
# so the fractional part never drifts across a long cell.
CJK_HAIRSPACE_RATIO = (10, 3)
HANGUL_HAIRSPACE_RATIO = (11, 2)  # Hangul renders wider than CJK in the target font
EMOJI_HAIRSPACE_RATIO = (10, 3)

_ZERO_WIDTH_RANGES = (
    (0x200C, 0x200F),    # ZWNJ, ZWJ, LRM, RLM
    (0xFE00, 0xFE0F),    # variation selectors
    (0x0300, 0x036F),    # combining diacritical marks
    (0x1F3FB, 0x1F3FF),  # skin tone modifiers
    (0x1AB0, 0x1AFF),
    (0x1DC0, 0x1DFF),
    (0x20D0, 0x20FF),
    (0xFE20, 0xFE2F),
)

_HANGUL_RANGES = (
    (0xAC00, 0xD7AF),  # syllables
    (0x1100, 0x11FF),  # jamo
    (0x3130, 0x318F),  # compatibility jamo
    (0xA960, 0xA97F),  # jamo extended-A
    (0xD7B0, 0xD7FF),  # jamo extended-B
)

_CJK_RANGES = (
    (0x4E00, 0x9FFF),    # unified ideographs
    (0x3400, 0x4DBF),    # extension A
    (0xF900, 0xFAFF),    # compatibility ideographs
    (0x20000, 0x2A6DF),  # extension B
    (0x3000, 0x303F),    # symbols and punctuation
    (0x3040, 0x309F),    # hiragana
    (0x30A0, 0x30FF),    # katakana
    (0x31F0, 0x31FF),    # katakana phonetic extensions
    (0x3100, 0x312F),    # bopomofo
    (0x31A0, 0x31BF),    # bopomofo extended
    (0xFF01, 0xFF60),    # fullwidth forms
    (0xFFE0, 0xFFE6),    # fullwidth currency
)

_EMOJI_RANGES = (
    (0x2600, 0x26FF),    # misc symbols
    (0x2700, 0x27BF),    # dingbats
    (0x1F600, 0x1F64F),  # emoticons
    (0x1F300, 0x1F5FF),  # misc symbols and pictographs
    (0x1F680, 0x1F6FF),  # transport and map
    (0x1F900, 0x1F9FF),  # supplemental symbols and pictographs
    (0x1FA00, 0x1FA6F),
    (0x1FA70, 0x1FAFF),
    (0x1F1E0, 0x1F1FF),  # regional indicators
)

# Common emoji that live outside the pictograph blocks.
_EMOJI_SINGLES = frozenset({
    0x2B50, 0x2764, 0x2615, 0x231A, 0x231B, 0x23E9, 0x23EA, 0x23F0, 0x23F3,
    0x25AA, 0x25AB, 0x25B6, 0x25C0, 0x25FB, 0x25FC, 0x25FD, 0x25FE,
    0x2934, 0x2935,
})

_RTL_RANGES = (
    (0x0600, 0x06FF),  # Arabic
    (0x0750, 0x077F),  # Arabic supplement
    (0x08A0, 0x08FF),  # Arabic extended-A
    (0xFB50, 0xFDFF),  # Arabic presentation forms-A
    (0xFE70, 0xFEFF),  # Arabic presentation forms-B
    (0x0590, 0x05FF),  # Hebrew
    (0x0700, 0x074F),  # Syriac
    (0x0780, 0x07BF),  # Thaana
    (0x07C0, 0x07FF),  # N'Ko
)


class WideCharCounts(NamedTuple):
    cjk: int = 0
    hangul: int = 0
    emoji: int = 0


def _in_ranges(cp: int, ranges: tuple[tuple[int, int], ...]) -> bool:
    for lo, hi in ranges:
        if lo <= cp <= hi:
            return True
    return False


def classify_code_point(cp: int) -> str:
    """Return one of ``"zero"``, ``"hangul"``, ``"cjk"``, ``"emoji"``, ``"normal"``."""
    if _in_ranges(cp, _ZERO_WIDTH_RANGES):
        return "zero"
    if _in_ranges(cp, _HANGUL_RANGES):
        return "hangul"
    if _in_ranges(cp, _CJK_RANGES):
        return "cjk"
    if cp in _EMOJI_SINGLES or _in_ranges(cp, _EMOJI_RANGES):
        return "emoji"
    return "normal"


def contains_rtl(text: str) -> bool:
    """True if *text* has characters that bidi reordering could move around."""
    return any(_in_ranges(ord(ch), _RTL_RANGES) for ch in text)


def count_wide_chars(text: str) -> WideCharCounts:
    """Count wide glyphs by category. Zero-width code points are ignored."""
    cjk = hangul = emoji = 0
    for ch in text:
        cat = classify_code_point(ord(ch))
        if cat == "cjk":
            cjk += 1
        elif cat == "hangul":
            hangul += 1
        elif cat == "emoji":
            emoji += 1
    return WideCharCounts(cjk=cjk, hangul=hangul, emoji=emoji)


def cell_visual_width(text: str) -> int:
    """Visual column width: wide glyphs count 2, zero-width 0, everything else 1."""
    width = 0
    for ch in text:
        cat = classify_code_point(ord(ch))
        if cat == "zero":
            continue
        width += 1 if cat == "normal" else 2
    return width


def hairspace_count(text: str) -> int:
    """Number of hairspaces that compensate the wide glyphs in *text*."""
    counts = count_wide_chars(text)
    return (
        counts.cjk * CJK_HAIRSPACE_RATIO[0] // CJK_HAIRSPACE_RATIO[1]
        + counts.hangul * HANGUL_HAIRSPACE_RATIO[0] // HANGUL_HAIRSPACE_RATIO[1]
        + counts.emoji * EMOJI_HAIRSPACE_RATIO[0] // EMOJI_HAIRSPACE_RATIO[1]
    )
