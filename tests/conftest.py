import os
import tempfile

import pytest

from readx.core.attention import AttentionSample
from readx.core.layout import Viewport
from readx.memory.session_store import SessionStore

# 20px font, 12px per character: 30 characters per line
READING_VIEWPORT = Viewport(width=400, height=800, x=0, y=0, padding=20)


class FakeClock:
    def __init__(self, start: float = 1_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def paragraphs(count: int, words: int = 12) -> str:
    return "\n\n".join(
        " ".join(f"p{p}w{w}" for w in range(words)) + "." for p in range(count)
    )


def read_current_unit(engine) -> list:
    """Feed a right-edge sample to every line of the active unit."""
    events = []
    index = engine.current_index
    for line in engine.lines_for(index):
        sample = AttentionSample(x=line.right, y=line.y + line.height / 2, timestamp=0)
        events.extend(engine.process_sample(sample))
    return events


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    """Create a temporary progress database for testing."""
    fd, path = tempfile.mkstemp(suffix=".db")
    os.close(fd)
    s = SessionStore(db_path=path)
    yield s
    s.close()
    os.unlink(path)
