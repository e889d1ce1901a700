import asyncio
import time
import logging

from ..core.layout import TextSize, Viewport
from ..memory.base import ProgressStore
from ..memory.persistence import PersistencePolicy
from .engine import CompletionCallback, ReadingEngine, SegmentationMode
from .loop import ReadingLoop
from .pdf_handler import DocumentText
from .signals import SimulatedAttentionSource

logger = logging.getLogger(__name__)


class ViewerSession:
    """One viewing of one document: engine, input loop and persistence together."""

    def __init__(self, document: DocumentText, engine: ReadingEngine, loop: ReadingLoop,
                 policy: PersistencePolicy, resumed: bool = False):
        self.document = document
        self.engine = engine
        self.loop = loop
        self.policy = policy
        self.resumed = resumed
        self.simulator: SimulatedAttentionSource | None = None
        self.opened_at = time.time()

    @property
    def session_id(self) -> str:
        return self.policy.session_id

    @classmethod
    async def open(
        cls,
        document: DocumentText,
        store: ProgressStore,
        viewport: Viewport | None = None,
        text_size: TextSize | str = TextSize.MEDIUM,
        mode: SegmentationMode | str = SegmentationMode.VIEWPORT,
        on_complete: CompletionCallback | None = None,
        progress_debounce_s: float | None = None,
        session_interval_s: float | None = None,
    ) -> "ViewerSession":
        """Segment the document, resume stored progress and start the input loop."""
        engine = ReadingEngine(
            document.key, document.text,
            viewport=viewport, text_size=text_size, mode=mode, on_complete=on_complete,
        )

        stored = None
        try:
            stored = await asyncio.to_thread(store.load_progress, document.key)
        except Exception as e:
            logger.error("Loading progress for %s failed, starting fresh: %s", document.key, e)
        resumed = engine.restore(stored)

        policy = PersistencePolicy(
            store, engine,
            progress_debounce_s=progress_debounce_s,
            session_interval_s=session_interval_s,
        )
        loop = ReadingLoop(engine, policy)
        loop.start()
        policy.start()

        logger.info("Session %s opened for %s (resumed=%s)", policy.session_id, document.key, resumed)
        return cls(document, engine, loop, policy, resumed=resumed)

    def start_simulation(self, interval_s: float = 0.05) -> None:
        if self.simulator is None:
            self.simulator = SimulatedAttentionSource(self.engine, interval_s=interval_s)
        self.simulator.start(self.loop)

    def stop_simulation(self) -> None:
        if self.simulator is not None:
            self.simulator.stop()

    async def close(self) -> None:
        self.stop_simulation()
        await self.loop.close()
        logger.info("Session %s closed after %.0fs", self.session_id, time.time() - self.opened_at)
