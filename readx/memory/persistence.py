"""Decides when reading progress and session stats are written to the store.

Two independent save paths, both upserts:

- progress: after the active unit changes or a unit completes, debounced;
  flushed on teardown.
- session: when a unit completes, and on a periodic tick once there is
  something worth recording.

Store calls run in a worker thread and failures are only logged. The engine
never waits on storage, and the next save carries the latest state.
"""

import asyncio
import time
import uuid
import logging
from typing import TYPE_CHECKING, Callable

from .base import ProgressStore
from .records import CompletedDocument

if TYPE_CHECKING:
    from ..reader.engine import ReadingEngine, ReadingStats

logger = logging.getLogger(__name__)


class PersistencePolicy:
    """Schedules saves for one viewer lifetime under a single session id."""

    # Timings (tunable)
    PROGRESS_DEBOUNCE_S = 2.0
    SESSION_INTERVAL_S = 60.0
    MIN_READING_TIME_S = 60

    def __init__(
        self,
        store: ProgressStore,
        engine: "ReadingEngine",
        session_id: str | None = None,
        progress_debounce_s: float | None = None,
        session_interval_s: float | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.engine = engine
        self.session_id = session_id or str(uuid.uuid4())
        self.progress_debounce_s = progress_debounce_s if progress_debounce_s is not None else self.PROGRESS_DEBOUNCE_S
        self.session_interval_s = session_interval_s if session_interval_s is not None else self.SESSION_INTERVAL_S
        self._clock = clock

        self._debounce_task: asyncio.Task | None = None
        self._interval_task: asyncio.Task | None = None
        self._pending: set[asyncio.Task] = set()
        self._progress_lock = asyncio.Lock()
        self._session_lock = asyncio.Lock()
        self._last_session_save: float | None = None
        self._last_completed_count = 0
        self.closed = False

    def start(self) -> None:
        """Begin the periodic session tick. Needs a running event loop."""
        if self._interval_task is None:
            self._interval_task = asyncio.create_task(self._session_ticker())

    def _spawn(self, coro) -> None:
        task = asyncio.create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    # ── Notifications from the engine loop ───────────────────────────────

    def unit_changed(self) -> None:
        if self.closed:
            return
        if self._debounce_task is not None and not self._debounce_task.done():
            self._debounce_task.cancel()
            self._spawn(self.save_progress())
        self._debounce_task = asyncio.create_task(self._debounced_progress())

    def progress_dirty(self) -> None:
        """Progress changed without moving to another unit; a pending save already covers it."""
        if self.closed:
            return
        if self._debounce_task is None or self._debounce_task.done():
            self._debounce_task = asyncio.create_task(self._debounced_progress())

    def unit_completed(self) -> None:
        if not self.closed:
            self._spawn(self.save_session_if_needed())

    def document_completed(self, stats: "ReadingStats") -> None:
        if not self.closed:
            self._spawn(self.save_completed(stats))

    # ── Progress ─────────────────────────────────────────────────────────

    async def _debounced_progress(self) -> None:
        await asyncio.sleep(self.progress_debounce_s)
        await self.save_progress()

    async def save_progress(self) -> bool:
        async with self._progress_lock:
            snapshot = self.engine.snapshot_progress()
            try:
                await asyncio.to_thread(self.store.save_progress, snapshot)
            except Exception as e:
                logger.error("Saving progress for %s failed: %s", snapshot.document_key, e)
                return False
        logger.debug("Progress saved: %s at unit %d", snapshot.document_key, snapshot.current_unit_index + 1)
        return True

    # ── Session ──────────────────────────────────────────────────────────

    def should_save_session(self) -> bool:
        completed = self.engine.completed_units
        if completed > self._last_completed_count:
            return True

        now = self._clock()
        since_last = float("inf") if self._last_session_save is None else now - self._last_session_save
        reading_time = self.engine.stats().reading_time_seconds
        return since_last >= self.session_interval_s and (completed > 0 or reading_time >= self.MIN_READING_TIME_S)

    async def save_session_if_needed(self) -> bool:
        async with self._session_lock:
            if not self.should_save_session():
                return False
            snapshot = self.engine.snapshot_session(self.session_id)
            try:
                await asyncio.to_thread(self.store.save_session, snapshot)
            except Exception as e:
                logger.error("Saving session %s failed: %s", self.session_id, e)
                return False
            self._last_session_save = self._clock()
            self._last_completed_count = snapshot.completed_units
        logger.info(
            "Session saved: %d/%d units, %ds",
            snapshot.completed_units, snapshot.total_units, snapshot.reading_time_seconds,
        )
        return True

    async def _session_ticker(self) -> None:
        while True:
            await asyncio.sleep(self.session_interval_s)
            await self.save_session_if_needed()

    # ── Completion ───────────────────────────────────────────────────────

    async def save_completed(self, stats: "ReadingStats") -> bool:
        record = CompletedDocument(
            document_key=self.engine.document_key,
            completion_percentage=stats.completion_percentage,
            total_words=stats.total_words,
            reading_time_seconds=stats.reading_time_seconds,
        )
        try:
            await asyncio.to_thread(self.store.save_completed, record)
        except Exception as e:
            logger.error("Recording completion of %s failed: %s", record.document_key, e)
            return False
        logger.info("Marked %s as completed", record.document_key)
        return True

    # ── Teardown ─────────────────────────────────────────────────────────

    async def close(self) -> None:
        """Cancel timers and flush a final save. Safe to call twice."""
        if self.closed:
            return
        self.closed = True

        for task in (self._debounce_task, self._interval_task):
            if task is not None and not task.done():
                task.cancel()
        self._debounce_task = None
        self._interval_task = None

        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
        await self.save_progress()
        await self.save_session_if_needed()
