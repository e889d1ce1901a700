"""Attention sample sources.

The engine only consumes `AttentionSample`s; anything that can push them into a
`ReadingLoop` is a source. The simulated source sweeps the active line left to
right, standing in for a camera-based tracker.
"""

import asyncio
import random
import time
import logging

from ..core.attention import AttentionSample
from ..core.line_mapper import LineBounds
from .engine import ReadingEngine
from .loop import ReadingLoop

logger = logging.getLogger(__name__)


def sweep_positions(line: LineBounds, steps: int) -> list[float]:
    """Evenly spaced x positions from the line's left edge to its right edge."""
    if steps <= 1:
        return [line.right]
    return [line.left + line.width * i / (steps - 1) for i in range(steps)]


class SimulatedAttentionSource:
    """Follows the engine's active line at a fixed rate (20 samples/s by default)."""

    def __init__(
        self,
        engine: ReadingEngine,
        interval_s: float = 0.05,
        samples_per_line: int = 40,
        jitter_px: float = 4.0,
        confidence: float = 0.8,
        seed: int | None = None,
    ):
        self.engine = engine
        self.interval_s = interval_s
        self.samples_per_line = samples_per_line
        self.jitter_px = jitter_px
        self.confidence = confidence
        self._rng = random.Random(seed)
        self._task: asyncio.Task | None = None
        self._cursor: tuple[int, int] | None = None
        self._step = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def _active_line(self) -> LineBounds | None:
        lines = self.engine.lines_for(self.engine.current_index)
        if not lines:
            return None
        processor = self.engine.processor
        index = processor.current_line_index if processor is not None else 0
        return lines[index]

    def next_sample(self) -> AttentionSample | None:
        """Next point along the active line, or None if nothing is on screen."""
        if self.engine.current_unit.is_completed:
            return None
        line = self._active_line()
        if line is None:
            return None

        cursor = (self.engine.current_index, line.index)
        if cursor != self._cursor:
            self._cursor = cursor
            self._step = 0

        positions = sweep_positions(line, self.samples_per_line)
        x = positions[min(self._step, len(positions) - 1)]
        self._step += 1
        # Stay inside the line's vertical band
        half_band = max(0.0, min(self.jitter_px, line.height / 2))
        y = line.y + line.height / 2 + self._rng.uniform(-half_band, half_band)
        return AttentionSample(x=x, y=y, timestamp=int(time.time() * 1000), confidence=self.confidence)

    async def _run(self, loop: ReadingLoop) -> None:
        while True:
            sample = self.next_sample()
            if sample is not None:
                loop.push_sample(sample)
            await asyncio.sleep(self.interval_s)

    def start(self, loop: ReadingLoop) -> None:
        if not self.running:
            logger.info("Simulated attention started (%.0f samples/s)", 1 / self.interval_s)
            self._task = asyncio.create_task(self._run(loop))

    def stop(self) -> None:
        if self.running:
            self._task.cancel()
            logger.info("Simulated attention stopped")
        self._task = None
