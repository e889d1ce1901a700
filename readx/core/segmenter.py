"""Splits a document into screen-sized, sentence-respecting reading units."""

import logging
import math
import re
from dataclasses import dataclass

from .layout import FontConfig, PAGINATION_FONT, Viewport
from .line_mapper import LineBounds
from .width import estimate_width

logger = logging.getLogger(__name__)

# Fraction of the estimated screen capacity a unit may fill
VIEWPORT_FILL_RATIO = 0.9

# Sentence band for rebalanced units
MIN_UNIT_WORDS = 45
MAX_UNIT_WORDS = 55

# Screen space not available to text: header 80, progress bar 8,
# scroll padding 40, container padding 48
VERTICAL_CHROME = 176
# Scroll padding 40 + container padding 24
HORIZONTAL_CHROME = 64

AVG_WORD_CHARS = 5

SENTENCE_TERMINATORS = (".", "。")
PLACEHOLDER_TEXT = " "

_PARAGRAPH_BREAK = re.compile(r"\n\s*\n")


@dataclass
class ReadingUnit:
    """A paragraph-sized chunk of the document shown as one screen."""
    id: int
    text: str
    word_count: int
    is_completed: bool = False
    reading_started_at: float | None = None
    reading_duration: float | None = None
    lines: list[LineBounds] | None = None

    def mark_started(self, now: float) -> None:
        if self.reading_started_at is None:
            self.reading_started_at = now

    def mark_completed(self, now: float) -> bool:
        """Complete the unit. Returns False if it was already complete."""
        if self.is_completed:
            return False
        self.is_completed = True
        if self.reading_started_at is not None:
            self.reading_duration = now - self.reading_started_at
        return True


def words_per_viewport(viewport: Viewport, font: FontConfig = PAGINATION_FONT) -> int:
    """Estimate how many words fit on one screen of the given size."""
    available_height = viewport.height - VERTICAL_CHROME
    available_width = viewport.width - HORIZONTAL_CHROME
    if available_height <= 0 or available_width <= 0:
        return 0

    lines_per_screen = math.floor(available_height / font.line_height)
    chars_per_line = math.floor(available_width / estimate_width("x", font.font_size))
    words_per_line = chars_per_line // (AVG_WORD_CHARS + 1)
    return lines_per_screen * words_per_line


def _placeholder() -> list[ReadingUnit]:
    return [ReadingUnit(id=0, text=PLACEHOLDER_TEXT, word_count=0)]


def segment_document(text: str, words_per_screen: int) -> list[ReadingUnit]:
    """Viewport-fill pass: greedily cut the word stream into screen-sized units."""
    words = text.split()
    limit = max(1, math.floor(words_per_screen * VIEWPORT_FILL_RATIO))

    units: list[ReadingUnit] = []
    chunk: list[str] = []
    for word in words:
        chunk.append(word)
        if len(chunk) >= limit:
            units.append(ReadingUnit(id=len(units), text=" ".join(chunk), word_count=len(chunk)))
            chunk = []

    if chunk:
        units.append(ReadingUnit(id=len(units), text=" ".join(chunk), word_count=len(chunk)))

    if not units:
        logger.info("Document has no words, using placeholder unit")
        return _placeholder()

    logger.info("Segmented %d words into %d units (%d words per unit)", len(words), len(units), limit)
    return units


def _ends_sentence(word: str) -> bool:
    # Words are whitespace-split, so a trailing terminator is always followed
    # by whitespace or the end of the text.
    return word.endswith(SENTENCE_TERMINATORS)


def _best_sentence_split(words: list[str], start: int) -> int:
    """Length of the longest sentence run from `start` within the word band, or 0."""
    best = 0
    for i in range(start, len(words)):
        count = i - start + 1
        if count > MAX_UNIT_WORDS:
            break
        if _ends_sentence(words[i]) and count >= MIN_UNIT_WORDS:
            best = count
    return best


def _forced_split(words: list[str], start: int) -> int:
    """Split at the last sentence end within the first MAX_UNIT_WORDS words, else hard-cut."""
    # The backward search spans the whole window, not a fixed character count.
    # Units stay sentence-bounded whenever a terminator exists, at the cost of
    # short units when the only sentence end is near the start.
    for i in range(start + MAX_UNIT_WORDS - 1, start - 1, -1):
        if _ends_sentence(words[i]):
            return i - start + 1
    return MAX_UNIT_WORDS


def split_long_unit(text: str) -> list[str]:
    """Rebalance a long paragraph into sentence-bounded chunks of at most 55 words."""
    words = text.split()
    if len(words) <= MAX_UNIT_WORDS:
        return [" ".join(words)]

    chunks = []
    start = 0
    while start < len(words):
        remaining = len(words) - start
        if remaining <= MAX_UNIT_WORDS:
            chunks.append(" ".join(words[start:]))
            break

        size = _best_sentence_split(words, start)
        if not size:
            size = _forced_split(words, start)
            logger.debug("No sentence end in band at word %d, split after %d words", start, size)
        chunks.append(" ".join(words[start:start + size]))
        start += size

    return chunks


def segment_paragraphs(text: str) -> list[ReadingUnit]:
    """Keep the document's own paragraphs, rebalancing any that run over 55 words."""
    units: list[ReadingUnit] = []
    for paragraph in _PARAGRAPH_BREAK.split(text.strip()):
        if not paragraph.strip():
            continue
        for chunk in split_long_unit(paragraph):
            units.append(ReadingUnit(id=len(units), text=chunk, word_count=len(chunk.split())))

    if not units:
        logger.info("Document has no words, using placeholder unit")
        return _placeholder()

    logger.info("Split document into %d paragraph units", len(units))
    return units
