"""Reading-progress engine: owns the units of one loaded document and their state."""

import time
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable

from ..core.attention import AttentionProcessor, AttentionSample
from ..core.layout import TextSize, Viewport, font_for
from ..core.line_mapper import LineBounds, map_to_lines
from ..core.segmenter import ReadingUnit, segment_document, segment_paragraphs, words_per_viewport
from ..memory.records import ReadingProgress, ReadingSession, completion_percentage

logger = logging.getLogger(__name__)

# Used to size units when the host has not measured the screen yet
DEFAULT_VIEWPORT = Viewport(width=390, height=844)


class SegmentationMode(str, Enum):
    VIEWPORT = "viewport"     # fill one screen per unit
    PARAGRAPH = "paragraph"   # keep source paragraphs, rebalance long ones


class EventType(str, Enum):
    LINE_COMPLETE = "line_complete"
    UNIT_COMPLETE = "unit_complete"
    UNIT_CHANGED = "unit_changed"
    DOCUMENT_COMPLETE = "document_complete"


@dataclass
class EngineEvent:
    event_type: EventType
    unit_index: int
    line_index: int | None = None
    data: dict = field(default_factory=dict)


@dataclass
class ReadingStats:
    total_words: int            # words in completed units
    total_units: int
    completed_units: int
    reading_time_seconds: int
    completion_percentage: int


CompletionCallback = Callable[[ReadingStats], None]


class ReadingEngine:
    """Forces sequential reading of one document, unit by unit and line by line."""

    def __init__(
        self,
        document_key: str,
        text: str,
        viewport: Viewport | None = None,
        text_size: TextSize | str = TextSize.MEDIUM,
        mode: SegmentationMode | str = SegmentationMode.VIEWPORT,
        on_complete: CompletionCallback | None = None,
        auto_advance: bool = True,
        clock: Callable[[], float] = time.time,
    ):
        self.document_key = document_key
        self.viewport = viewport
        self.text_size = TextSize(text_size)
        self.mode = SegmentationMode(mode)
        self.on_complete = on_complete
        self.auto_advance = auto_advance
        self._clock = clock

        self.units: list[ReadingUnit] = self._segment(text)
        self.current_index = 0
        self.started_at = clock()
        self._processor: AttentionProcessor | None = None
        self._completion_fired = False

        self.units[0].mark_started(self.started_at)
        logger.info("Loaded %s: %d units (%s mode)", document_key, len(self.units), self.mode.value)

    def _segment(self, text: str) -> list[ReadingUnit]:
        if self.mode == SegmentationMode.PARAGRAPH:
            return segment_paragraphs(text)

        viewport = self.viewport
        if viewport is None or words_per_viewport(viewport) <= 0:
            logger.warning("Viewport not measured, sizing units for %s", DEFAULT_VIEWPORT)
            viewport = DEFAULT_VIEWPORT
        return segment_document(text, words_per_viewport(viewport))

    # ── State ────────────────────────────────────────────────────────────

    @property
    def total_units(self) -> int:
        return len(self.units)

    @property
    def current_unit(self) -> ReadingUnit:
        return self.units[self.current_index]

    @property
    def completed_indexes(self) -> set[int]:
        return {u.id for u in self.units if u.is_completed}

    @property
    def completed_units(self) -> int:
        return sum(1 for u in self.units if u.is_completed)

    @property
    def is_document_complete(self) -> bool:
        return all(u.is_completed for u in self.units)

    @property
    def processor(self) -> AttentionProcessor | None:
        return self._processor

    def stats(self) -> ReadingStats:
        return ReadingStats(
            total_words=sum(u.word_count for u in self.units if u.is_completed),
            total_units=self.total_units,
            completed_units=self.completed_units,
            reading_time_seconds=int(self._clock() - self.started_at),
            completion_percentage=completion_percentage(self.completed_units, self.total_units),
        )

    # ── Resume ───────────────────────────────────────────────────────────

    def restore(self, progress: ReadingProgress | None) -> bool:
        """Apply stored progress if it was recorded against the same pagination."""
        if progress is None:
            return False
        if not progress.matches(self.total_units):
            logger.info(
                "Ignoring stored progress for %s: %d units stored, %d now",
                self.document_key, progress.total_units, self.total_units,
            )
            return False

        for index in progress.completed_unit_indexes:
            if 0 <= index < self.total_units:
                self.units[index].is_completed = True
        self._processor = None
        self.current_index = min(max(progress.current_unit_index, 0), self.total_units - 1)
        self.current_unit.mark_started(self._clock())
        # A document already finished in an earlier session does not fire again
        self._completion_fired = self.is_document_complete
        logger.info("Resuming %s at unit %d", self.document_key, self.current_index + 1)
        return True

    def snapshot_progress(self) -> ReadingProgress:
        return ReadingProgress(
            document_key=self.document_key,
            current_unit_index=self.current_index,
            completed_unit_indexes=self.completed_indexes,
            total_units=self.total_units,
            last_updated=datetime.fromtimestamp(self._clock(), tz=timezone.utc),
        )

    def snapshot_session(self, session_id: str) -> ReadingSession:
        stats = self.stats()
        return ReadingSession(
            session_id=session_id,
            document_key=self.document_key,
            total_units=stats.total_units,
            completed_units=stats.completed_units,
            total_words=stats.total_words,
            reading_time_seconds=stats.reading_time_seconds,
            completion_percentage=stats.completion_percentage,
            captured_at=datetime.fromtimestamp(self._clock(), tz=timezone.utc),
        )

    # ── Geometry ─────────────────────────────────────────────────────────

    def set_viewport(self, viewport: Viewport) -> None:
        self.viewport = viewport
        self._invalidate_geometry()

    def set_text_size(self, text_size: TextSize | str) -> None:
        self.text_size = TextSize(text_size)
        self._invalidate_geometry()

    def _invalidate_geometry(self) -> None:
        for unit in self.units:
            unit.lines = None
        if self._processor is not None:
            logger.info("Layout changed, restarting line tracking for unit %d", self.current_index + 1)
        self._processor = None

    def lines_for(self, index: int) -> list[LineBounds] | None:
        """Line boxes for a unit, mapped lazily. None until the viewport is measured."""
        unit = self.units[index]
        if unit.lines is None:
            if self.viewport is None or not self.viewport.is_measured:
                return None
            font = font_for(self.text_size)
            unit.lines = map_to_lines(
                unit.text,
                self.viewport.x,
                self.viewport.y,
                self.viewport.width,
                font.font_size,
                font.line_height,
                self.viewport.padding,
            )
        return unit.lines

    def _ensure_processor(self) -> AttentionProcessor | None:
        if self._processor is None:
            lines = self.lines_for(self.current_index)
            if not lines:
                return None
            self._processor = AttentionProcessor(lines, started_at=self._clock())
        return self._processor

    # ── Attention ────────────────────────────────────────────────────────

    def process_sample(self, sample: AttentionSample) -> list[EngineEvent]:
        unit = self.current_unit
        if unit.is_completed:
            return []

        processor = self._ensure_processor()
        if processor is None:
            return []

        completion = processor.process(sample, now=self._clock())
        if completion is None:
            return []

        events = [EngineEvent(
            EventType.LINE_COMPLETE,
            unit_index=self.current_index,
            line_index=completion.line_index,
            data={"rule": completion.rule.value},
        )]
        if processor.is_complete:
            events.extend(self._complete_unit(self.current_index))
        return events

    def mark_current_complete(self) -> list[EngineEvent]:
        """Reader confirms the active unit without attention tracking."""
        return self._complete_unit(self.current_index)

    def _complete_unit(self, index: int) -> list[EngineEvent]:
        unit = self.units[index]
        if not unit.mark_completed(self._clock()):
            return []

        logger.info(
            "Unit %d complete. Progress: %d/%d units",
            index + 1, self.completed_units, self.total_units,
        )
        events = [EngineEvent(
            EventType.UNIT_COMPLETE,
            unit_index=index,
            data={"reading_duration": unit.reading_duration},
        )]
        events.extend(self.check_document_complete())

        if self.auto_advance:
            following = self._next_incomplete(after=index)
            if following is not None:
                events.extend(self.navigate_to(following))
        return events

    def check_document_complete(self) -> list[EngineEvent]:
        """Fire the document completion exactly once per load."""
        if self._completion_fired or not self.is_document_complete:
            return []
        self._completion_fired = True
        stats = self.stats()
        logger.info("All %d units complete for %s", stats.total_units, self.document_key)
        events = [EngineEvent(
            EventType.DOCUMENT_COMPLETE,
            unit_index=self.current_index,
            data={
                "total_words": stats.total_words,
                "total_units": stats.total_units,
                "completed_units": stats.completed_units,
                "reading_time_seconds": stats.reading_time_seconds,
                "completion_percentage": stats.completion_percentage,
            },
        )]
        if self.on_complete is not None:
            try:
                self.on_complete(stats)
            except Exception:
                # Events are returned even when the callback fails
                logger.exception("Completion callback failed for %s", self.document_key)
        return events

    # ── Navigation ───────────────────────────────────────────────────────

    def _next_incomplete(self, after: int) -> int | None:
        for index in range(after + 1, self.total_units):
            if not self.units[index].is_completed:
                return index
        return None

    def navigate_to(self, index: int) -> list[EngineEvent]:
        if not 0 <= index < self.total_units:
            raise IndexError(f"Unit {index} out of range (0..{self.total_units - 1})")
        if index == self.current_index:
            return []

        previous = self.current_index
        self._processor = None
        self.current_index = index
        self.current_unit.mark_started(self._clock())
        logger.debug("Moved from unit %d to unit %d", previous + 1, index + 1)
        return [EngineEvent(EventType.UNIT_CHANGED, unit_index=index, data={"previous": previous})]

    def next_unit(self) -> list[EngineEvent]:
        if self.current_index < self.total_units - 1:
            return self.navigate_to(self.current_index + 1)
        return []

    def previous_unit(self) -> list[EngineEvent]:
        if self.current_index > 0:
            return self.navigate_to(self.current_index - 1)
        return []
