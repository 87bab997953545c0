"""
Reading-Order Text from Word Boxes
==================================

Builds page text from positioned word boxes, as produced by PyMuPDF's
``page.get_text("words")``: words are grouped into lines by vertical
position, each line is read left to right, hyphenated line breaks are
merged and large vertical gaps become paragraph breaks.

Coordinates follow PyMuPDF: origin top-left, y grows downward.
"""

from collections.abc import Iterable, Sequence
from dataclasses import dataclass


@dataclass(frozen=True)
class WordBox:
    """A single word and its bounding box."""

    x0: float
    y0: float
    x1: float
    y1: float
    text: str

    @property
    def height(self) -> float:
        return max(self.y1 - self.y0, 0.0)

    @property
    def y_center(self) -> float:
        return (self.y0 + self.y1) / 2

    @classmethod
    def from_tuple(cls, item: Sequence) -> "WordBox":
        """Build from a PyMuPDF word tuple (x0, y0, x1, y1, word, ...)."""
        return cls(float(item[0]), float(item[1]), float(item[2]), float(item[3]), str(item[4]))


@dataclass
class _Line:
    words: list[WordBox]

    @property
    def top(self) -> float:
        return min(w.y0 for w in self.words)

    @property
    def bottom(self) -> float:
        return max(w.y1 for w in self.words)

    @property
    def y_center(self) -> float:
        return sum(w.y_center for w in self.words) / len(self.words)

    @property
    def height(self) -> float:
        return max(self.bottom - self.top, 1.0)

    def text(self) -> str:
        ordered = sorted(self.words, key=lambda w: w.x0)
        parts = [ordered[0].text]
        for prev, word in zip(ordered, ordered[1:]):
            gap = word.x0 - prev.x1
            if gap > 0.1 * max(prev.height, 1.0):
                parts.append(" ")
            parts.append(word.text)
        return "".join(parts)


def group_into_lines(words: Iterable[WordBox]) -> list[list[WordBox]]:
    """Group words whose vertical centers are close into lines, top to bottom."""
    lines: list[_Line] = []
    for word in sorted(words, key=lambda w: (w.y_center, w.x0)):
        if lines:
            current = lines[-1]
            tolerance = max(2.0, 0.5 * min(current.height, max(word.height, 1.0)))
            if abs(word.y_center - current.y_center) <= tolerance:
                current.words.append(word)
                continue
        lines.append(_Line(words=[word]))
    return [sorted(line.words, key=lambda w: w.x0) for line in lines]


def extract_structured_text(words: Iterable[WordBox | Sequence]) -> str:
    """
    Build reading-order text for one page.

    Args:
        words: WordBox instances or raw PyMuPDF word tuples

    Returns:
        Page text with line breaks and blank lines between paragraphs
    """
    boxes = [
        w if isinstance(w, WordBox) else WordBox.from_tuple(w)
        for w in words
    ]
    boxes = [b for b in boxes if b.text.strip()]
    if not boxes:
        return ""

    lines = [_Line(words=ws) for ws in group_into_lines(boxes)]
    heights = sorted(line.height for line in lines)
    typical_height = heights[len(heights) // 2]

    out = lines[0].text()
    for prev, line in zip(lines, lines[1:]):
        text = line.text()
        gap = line.top - prev.bottom

        if out.endswith("-") and text[:1].islower():
            out = out[:-1] + text
            continue

        if gap > 0.75 * typical_height:
            out += "\n\n" + text
        else:
            out += "\n" + text

    return out
