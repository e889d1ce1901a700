"""Line-by-line completion detection from a stream of attention samples."""

import logging
from collections import deque
from dataclasses import dataclass, field
from enum import Enum

from .line_mapper import LineBounds, has_passed_right_edge, horizontal_progress

logger = logging.getLogger(__name__)


class LineStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETE = "complete"


class CompletionRule(str, Enum):
    RIGHT_EDGE = "right_edge"   # attention crossed the right-edge threshold
    SWEEP = "sweep"             # recent samples swept across most of the line


@dataclass(frozen=True)
class AttentionSample:
    """Where the reader is looking; produced outside the engine."""
    x: float
    y: float
    timestamp: int               # milliseconds
    confidence: float | None = None


@dataclass
class LineReadingState:
    line_index: int
    bounds: LineBounds
    attention_history: list[AttentionSample] = field(default_factory=list)
    started_at: float | None = None
    status: LineStatus = LineStatus.PENDING
    completion_percentage: int = 0
    max_horizontal_progress: float = 0.0

    @property
    def is_complete(self) -> bool:
        return self.status == LineStatus.COMPLETE


@dataclass(frozen=True)
class LineCompletion:
    line_index: int
    rule: CompletionRule
    is_last_line: bool


class AttentionProcessor:
    """Tracks the lines of the active unit and decides when each one is read."""

    # Thresholds (tunable)
    RIGHT_EDGE_THRESHOLD = 0.9    # fraction of line width
    SWEEP_WINDOW = 5              # most recent in-line samples considered
    SWEEP_COVERAGE = 0.7          # span of the window as fraction of width
    SWEEP_MIN_PROGRESS = 0.8      # furthest progress required alongside a sweep
    STRAY_BUFFER_SIZE = 200       # off-line samples kept for diagnostics

    def __init__(self, lines: list[LineBounds], started_at: float):
        self.lines = [LineReadingState(line_index=b.index, bounds=b) for b in lines]
        self.current_line_index = 0
        self.stray_samples: deque[AttentionSample] = deque(maxlen=self.STRAY_BUFFER_SIZE)
        if self.lines:
            self._activate(0, started_at)

    @property
    def current_line(self) -> LineReadingState | None:
        if 0 <= self.current_line_index < len(self.lines):
            return self.lines[self.current_line_index]
        return None

    @property
    def completed_lines(self) -> int:
        return sum(1 for line in self.lines if line.is_complete)

    @property
    def is_complete(self) -> bool:
        return bool(self.lines) and all(line.is_complete for line in self.lines)

    def _activate(self, index: int, now: float) -> None:
        line = self.lines[index]
        line.status = LineStatus.IN_PROGRESS
        line.started_at = now
        self.current_line_index = index

    def process(self, sample: AttentionSample, now: float) -> LineCompletion | None:
        """Apply one sample to the active line. Returns the completion it caused, if any."""
        line = self.current_line
        if line is None or line.is_complete:
            return None

        if not line.bounds.contains(sample.x, sample.y):
            self.stray_samples.append(sample)
            return None

        line.attention_history.append(sample)
        progress = horizontal_progress(sample.x, line.bounds)
        line.max_horizontal_progress = max(line.max_horizontal_progress, progress)
        line.completion_percentage = round(100 * line.max_horizontal_progress)

        rule = self._completion_rule(line, sample)
        if rule is None:
            return None

        line.status = LineStatus.COMPLETE
        line.completion_percentage = 100
        is_last = line.line_index == len(self.lines) - 1
        logger.debug("Line %d complete (%s)", line.line_index + 1, rule.value)

        if not is_last:
            self._activate(line.line_index + 1, now)
        return LineCompletion(line_index=line.line_index, rule=rule, is_last_line=is_last)

    def _completion_rule(self, line: LineReadingState, sample: AttentionSample) -> CompletionRule | None:
        if has_passed_right_edge(sample.x, line.bounds, self.RIGHT_EDGE_THRESHOLD):
            return CompletionRule.RIGHT_EDGE

        recent = line.attention_history[-self.SWEEP_WINDOW:]
        if len(recent) < 2 or line.bounds.width <= 0:
            return None
        xs = [s.x for s in recent]
        coverage = (max(xs) - min(xs)) / line.bounds.width
        if coverage >= self.SWEEP_COVERAGE and line.max_horizontal_progress >= self.SWEEP_MIN_PROGRESS:
            return CompletionRule.SWEEP
        return None

    def overall_progress(self) -> float:
        """Completed lines as a percentage of the unit's lines."""
        if not self.lines:
            return 0.0
        return self.completed_lines / len(self.lines) * 100
