"""Context snippets and UTF-16 highlight offsets.

Highlight positions are reported in UTF-16 code units because that is how
the presentation layer indexes text. A character outside the Basic
Multilingual Plane (most emoji) occupies two code units, so offsets counted
in Python characters would drift on any line containing one.
"""

from __future__ import annotations

from dataclasses import dataclass

Span = tuple[int, int]

DEFAULT_CONTEXT_BEFORE = 50
DEFAULT_CONTEXT_AFTER = 50
DEFAULT_CONTEXT_WINDOW = 100


def utf16_width(ch: str) -> int:
    """Number of UTF-16 code units needed to encode *ch*."""
    return 2 if ord(ch) > 0xFFFF else 1


def utf16_len(text: str) -> int:
    return sum(utf16_width(ch) for ch in text)


def utf16_offsets(text: str) -> list[int]:
    """Map each character index of *text* to its UTF-16 offset.

    The returned list has ``len(text) + 1`` entries; the last one is the
    UTF-16 length of the whole string.
    """
    offsets = [0] * (len(text) + 1)
    pos = 0
    for i, ch in enumerate(text):
        offsets[i] = pos
        pos += utf16_width(ch)
    offsets[len(text)] = pos
    return offsets


@dataclass(frozen=True)
class Snippet:
    """A context window cut from a line, with UTF-16 highlight ranges."""

    text: str
    utf16_start: int
    utf16_end: int
    match_ranges: tuple[Span, ...]


def snippet_bounds(
    line_length: int,
    anchor: Span,
    *,
    before: int = DEFAULT_CONTEXT_BEFORE,
    after: int = DEFAULT_CONTEXT_AFTER,
    window: int = DEFAULT_CONTEXT_WINDOW,
) -> Span:
    """Return the ``[start, end)`` character window around *anchor*.

    Keeps up to *before* characters ahead of the anchor and extends past the
    anchor end by at least *after* characters, or to *window* characters from
    the anchor start when that reaches further. Clamped to the line.
    """
    start, end = anchor
    lo = max(0, start - before)
    hi = min(line_length, max(end + after, start + window))
    return lo, max(lo, hi)


def build_snippet(
    line: str,
    anchor: Span,
    spans: list[Span],
    *,
    before: int = DEFAULT_CONTEXT_BEFORE,
    after: int = DEFAULT_CONTEXT_AFTER,
    window: int = DEFAULT_CONTEXT_WINDOW,
) -> Snippet:
    """Cut the context snippet for *anchor* and convert spans to UTF-16.

    *anchor* and *spans* are character offsets into *line*. Spans starting
    outside the window are dropped; spans crossing its end are clamped.
    """
    lo, hi = snippet_bounds(len(line), anchor, before=before, after=after, window=window)
    text = line[lo:hi]
    units = utf16_offsets(text)

    def convert(span: Span) -> Span:
        rel_start = min(max(span[0] - lo, 0), len(text))
        rel_end = min(max(span[1] - lo, rel_start), len(text))
        return units[rel_start], units[rel_end]

    ranges = tuple(convert(span) for span in spans if lo <= span[0] < hi)
    utf16_start, utf16_end = convert(anchor)
    return Snippet(
        text=text,
        utf16_start=utf16_start,
        utf16_end=utf16_end,
        match_ranges=ranges,
    )
