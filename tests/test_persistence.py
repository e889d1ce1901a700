"""Tests for the save policy: debouncing, session ticks, failure handling."""

import asyncio

from conftest import paragraphs

from readx.memory.base import ProgressStore
from readx.memory.persistence import PersistencePolicy
from readx.reader.engine import ReadingEngine, SegmentationMode


class RecordingStore(ProgressStore):
    """In-memory store that keeps upsert semantics and counts calls."""

    def __init__(self):
        self.progress = {}
        self.sessions = {}
        self.completed = {}
        self.progress_saves = 0
        self.session_saves = 0

    def save_progress(self, progress):
        self.progress_saves += 1
        self.progress[progress.document_key] = progress

    def load_progress(self, document_key):
        return self.progress.get(document_key)

    def save_session(self, session):
        self.session_saves += 1
        self.sessions[session.session_id] = session

    def load_sessions(self, document_key=None, limit=50):
        return [s for s in self.sessions.values() if document_key in (None, s.document_key)][:limit]

    def save_completed(self, completed):
        self.completed[completed.document_key] = completed

    def load_completed(self):
        return list(self.completed.values())


class BrokenStore(RecordingStore):
    def __init__(self):
        super().__init__()
        self.broken = True

    def _check(self):
        if self.broken:
            raise OSError("disk full")

    def save_progress(self, progress):
        self._check()
        super().save_progress(progress)

    def save_session(self, session):
        self._check()
        super().save_session(session)

    def save_completed(self, completed):
        self._check()
        super().save_completed(completed)


def make_engine(clock, units: int = 4) -> ReadingEngine:
    return ReadingEngine("doc.txt", paragraphs(units), mode=SegmentationMode.PARAGRAPH, clock=clock)


def make_policy(store, engine, clock, **kwargs) -> PersistencePolicy:
    kwargs.setdefault("progress_debounce_s", 0.01)
    kwargs.setdefault("session_interval_s", 60.0)
    return PersistencePolicy(store, engine, clock=clock, **kwargs)


class TestProgressSaves:
    def test_unit_change_saves_after_debounce(self, clock):
        store = RecordingStore()
        engine = make_engine(clock)

        async def scenario():
            policy = make_policy(store, engine, clock)
            engine.navigate_to(1)
            policy.unit_changed()
            assert store.progress_saves == 0
            await asyncio.sleep(0.05)
            assert store.progress_saves == 1
            await policy.close()

        asyncio.run(scenario())
        assert store.progress["doc.txt"].current_unit_index == 1

    def test_rapid_changes_end_on_latest_state(self, clock):
        store = RecordingStore()
        engine = make_engine(clock)

        async def scenario():
            policy = make_policy(store, engine, clock, progress_debounce_s=0.05)
            for index in (1, 2, 3):
                engine.navigate_to(index)
                policy.unit_changed()
            await asyncio.sleep(0.15)
            saved = store.progress_saves
            await policy.close()
            return saved

        saved = asyncio.run(scenario())
        assert saved >= 1
        assert len(store.progress) == 1
        assert store.progress["doc.txt"].current_unit_index == 3

    def test_close_flushes_pending_progress(self, clock):
        store = RecordingStore()
        engine = make_engine(clock)

        async def scenario():
            policy = make_policy(store, engine, clock, progress_debounce_s=10.0)
            engine.navigate_to(2)
            policy.unit_changed()
            await policy.close()

        asyncio.run(scenario())
        assert store.progress_saves == 1
        assert store.progress["doc.txt"].current_unit_index == 2

    def test_completion_in_place_is_saved(self, clock):
        store = RecordingStore()
        engine = make_engine(clock, units=1)

        async def scenario():
            policy = make_policy(store, engine, clock)
            engine.mark_current_complete()
            policy.progress_dirty()
            policy.progress_dirty()
            await asyncio.sleep(0.05)
            saved = store.progress_saves
            await policy.close()
            return saved

        assert asyncio.run(scenario()) == 1
        assert store.progress["doc.txt"].completed_unit_indexes == {0}

    def test_close_is_idempotent(self, clock):
        store = RecordingStore()
        engine = make_engine(clock)

        async def scenario():
            policy = make_policy(store, engine, clock)
            policy.start()
            await policy.close()
            await policy.close()
            assert policy._interval_task is None

        asyncio.run(scenario())
        assert store.progress_saves == 1


class TestSessionSaves:
    def test_nothing_to_record_yet(self, clock):
        policy = make_policy(RecordingStore(), make_engine(clock), clock)
        assert not policy.should_save_session()

    def test_long_reading_without_completion_is_recorded(self, clock):
        policy = make_policy(RecordingStore(), make_engine(clock), clock)
        clock.advance(61)
        assert policy.should_save_session()

    def test_new_completion_triggers_save(self, clock):
        store = RecordingStore()
        engine = make_engine(clock)
        policy = make_policy(store, engine, clock)
        engine.mark_current_complete()
        assert policy.should_save_session()

        assert asyncio.run(policy.save_session_if_needed())
        # Nothing new and the interval has not elapsed
        assert not policy.should_save_session()
        clock.advance(60)
        assert policy.should_save_session()

    def test_one_session_record_per_viewer(self, clock):
        store = RecordingStore()
        engine = make_engine(clock)
        policy = make_policy(store, engine, clock)

        async def scenario():
            for _ in range(3):
                engine.mark_current_complete()
                clock.advance(30)
                await policy.save_session_if_needed()

        asyncio.run(scenario())
        assert store.session_saves == 3
        assert list(store.sessions) == [policy.session_id]
        session = store.sessions[policy.session_id]
        assert session.completed_units == 3
        assert session.reading_time_seconds == 90
        assert session.completion_percentage == 75

    def test_periodic_tick_saves(self, clock):
        store = RecordingStore()
        engine = make_engine(clock)
        engine.mark_current_complete()

        async def scenario():
            policy = make_policy(store, engine, clock, session_interval_s=0.01)
            policy.start()
            await asyncio.sleep(0.05)
            await policy.close()

        asyncio.run(scenario())
        assert store.session_saves >= 1

    def test_session_id_is_stable(self, clock):
        policy = make_policy(RecordingStore(), make_engine(clock), clock)
        assert policy.session_id == policy.session_id
        other = make_policy(RecordingStore(), make_engine(clock), clock)
        assert other.session_id != policy.session_id


class TestFailures:
    def test_failures_are_swallowed(self, clock):
        store = BrokenStore()
        engine = make_engine(clock)

        async def scenario():
            policy = make_policy(store, engine, clock)
            engine.mark_current_complete()
            assert not await policy.save_progress()
            assert not await policy.save_session_if_needed()
            assert not await policy.save_completed(engine.stats())
            await policy.close()
            return policy

        policy = asyncio.run(scenario())
        # In-memory progress is untouched and the next attempt will retry
        assert engine.completed_indexes == {0}
        assert policy.should_save_session()

    def test_recovers_when_store_comes_back(self, clock):
        store = BrokenStore()
        engine = make_engine(clock)
        policy = make_policy(store, engine, clock)
        engine.mark_current_complete()
        assert not asyncio.run(policy.save_session_if_needed())

        store.broken = False
        assert asyncio.run(policy.save_session_if_needed())
        assert store.sessions[policy.session_id].completed_units == 1
