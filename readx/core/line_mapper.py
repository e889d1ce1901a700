"""Maps a reading unit's text onto estimated line bounding boxes."""

import logging
from dataclasses import dataclass

from .width import estimate_width

logger = logging.getLogger(__name__)

# Fraction of a line's width the reader must pass to finish it
RIGHT_EDGE_THRESHOLD = 0.9


@dataclass(frozen=True)
class LineBounds:
    index: int
    x: float
    y: float
    width: float
    height: float
    text: str
    start: int = 0   # character span inside the unit's normalized text
    end: int = 0

    @property
    def left(self) -> float:
        return self.x

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height

    def contains(self, x: float, y: float) -> bool:
        return self.left <= x <= self.right and self.y <= y <= self.bottom


def wrap_words(text: str, available_width: float, font_size: float) -> list[str]:
    """Greedy word wrap; a word wider than the line gets a line of its own."""
    lines = []
    current = ""
    for word in text.split():
        candidate = f"{current} {word}" if current else word
        if current and estimate_width(candidate, font_size) <= available_width:
            current = candidate
        else:
            if current:
                lines.append(current)
            current = word
    if current:
        lines.append(current)
    return lines


def map_to_lines(
    text: str,
    viewport_x: float,
    viewport_y: float,
    viewport_width: float,
    font_size: float,
    line_height: float,
    padding: float,
) -> list[LineBounds]:
    """Lay out `text` inside the viewport and return one box per wrapped line.

    Returns an empty list when the viewport has no usable width yet.
    """
    available_width = viewport_width - 2 * padding
    if available_width <= 0 or line_height <= 0:
        logger.debug("Skipping line mapping, no usable width (%.1f)", available_width)
        return []

    bounds = []
    offset = 0
    for index, line_text in enumerate(wrap_words(text, available_width, font_size)):
        bounds.append(LineBounds(
            index=index,
            x=viewport_x + padding,
            y=viewport_y + index * line_height,
            width=min(estimate_width(line_text, font_size), available_width),
            height=line_height,
            text=line_text,
            start=offset,
            end=offset + len(line_text),
        ))
        offset += len(line_text) + 1
    return bounds


def map_point_to_line(x: float, y: float, lines: list[LineBounds]) -> LineBounds | None:
    for line in lines:
        if line.contains(x, y):
            return line
    return None


def horizontal_progress(x: float, line: LineBounds) -> float:
    """How far across the line `x` is, clamped to [0, 1]."""
    if x <= line.left:
        return 0.0
    if x >= line.right or line.width <= 0:
        return 1.0
    return max(0.0, min(1.0, (x - line.left) / line.width))


def has_passed_right_edge(x: float, line: LineBounds, threshold: float = RIGHT_EDGE_THRESHOLD) -> bool:
    return x >= line.left + line.width * threshold
