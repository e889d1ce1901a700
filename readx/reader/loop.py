"""Single consumer that applies reader input to the engine in arrival order."""

import asyncio
import logging
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Any

from ..core.attention import AttentionSample
from ..memory.persistence import PersistencePolicy
from .engine import EngineEvent, EventType, ReadingEngine

logger = logging.getLogger(__name__)


class MessageType(str, Enum):
    SAMPLE = "sample"
    NAVIGATE = "navigate"
    NEXT = "next"
    PREVIOUS = "previous"
    MARK_COMPLETE = "mark_complete"
    VIEWPORT = "viewport"
    TEXT_SIZE = "text_size"
    CLOSE = "close"


@dataclass
class Message:
    message_type: MessageType
    payload: Any = None


class ReadingLoop:
    """Owns the message queue for one engine; all engine mutation happens here."""

    RECENT_EVENTS = 100

    def __init__(self, engine: ReadingEngine, policy: PersistencePolicy | None = None):
        self.engine = engine
        self.policy = policy
        self.queue: asyncio.Queue[Message] = asyncio.Queue()
        self.recent_events: deque[EngineEvent] = deque(maxlen=self.RECENT_EVENTS)
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if not self.running:
            self._task = asyncio.create_task(self._run())

    def submit(self, message: Message) -> None:
        self.queue.put_nowait(message)

    def push_sample(self, sample: AttentionSample) -> None:
        self.submit(Message(MessageType.SAMPLE, sample))

    async def drain(self) -> None:
        """Wait until every queued message has been applied."""
        await self.queue.join()

    async def _run(self) -> None:
        while True:
            message = await self.queue.get()
            try:
                if message.message_type == MessageType.CLOSE:
                    return
                self.dispatch(self.apply(message))
            except Exception:
                logger.exception("Failed to apply %s", message.message_type.value)
            finally:
                self.queue.task_done()

    def apply(self, message: Message) -> list[EngineEvent]:
        engine = self.engine
        kind = message.message_type

        if kind == MessageType.SAMPLE:
            return engine.process_sample(message.payload)
        if kind == MessageType.NAVIGATE:
            return engine.navigate_to(message.payload)
        if kind == MessageType.NEXT:
            return engine.next_unit()
        if kind == MessageType.PREVIOUS:
            return engine.previous_unit()
        if kind == MessageType.MARK_COMPLETE:
            return engine.mark_current_complete()
        if kind == MessageType.VIEWPORT:
            engine.set_viewport(message.payload)
        elif kind == MessageType.TEXT_SIZE:
            engine.set_text_size(message.payload)
        return []

    def dispatch(self, events: list[EngineEvent]) -> None:
        # A unit change schedules its own progress save
        moved = any(e.event_type == EventType.UNIT_CHANGED for e in events)
        for event in events:
            self.recent_events.append(event)
            if self.policy is None:
                continue
            if event.event_type == EventType.UNIT_CHANGED:
                self.policy.unit_changed()
            elif event.event_type == EventType.UNIT_COMPLETE:
                if not moved:
                    self.policy.progress_dirty()
                self.policy.unit_completed()
            elif event.event_type == EventType.DOCUMENT_COMPLETE:
                self.policy.document_completed(self.engine.stats())

    async def close(self) -> None:
        """Stop consuming after everything already queued, then flush saves."""
        if self.running:
            self.submit(Message(MessageType.CLOSE))
            await self._task
        if self.policy is not None:
            await self.policy.close()
