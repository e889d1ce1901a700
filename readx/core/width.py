"""Heuristic text width estimation shared by the segmenter and the line mapper."""

# Average glyph width as a fraction of the font size (serif, proportional)
CHAR_WIDTH_FACTOR = 0.6


def estimate_width(text: str, font_size: float) -> float:
    """Estimated rendered width of `text` in pixels, without shaping."""
    return len(text) * font_size * CHAR_WIDTH_FACTOR
