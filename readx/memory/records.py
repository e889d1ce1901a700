"""Record types written to and read from the progress store."""

from dataclasses import dataclass, field
from datetime import datetime, timezone


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def completion_percentage(completed: int, total: int) -> int:
    if total <= 0:
        return 0
    return round(100 * completed / total)


@dataclass
class ReadingProgress:
    """Where the reader is in one document. One record per document key."""
    document_key: str
    current_unit_index: int
    completed_unit_indexes: set[int]
    total_units: int
    last_updated: datetime = field(default_factory=utc_now)

    def matches(self, total_units: int) -> bool:
        return self.total_units == total_units


@dataclass
class ReadingSession:
    """Cumulative stats for one viewer lifetime, upserted by session id."""
    session_id: str
    document_key: str
    total_units: int
    completed_units: int
    total_words: int
    reading_time_seconds: int
    completion_percentage: int
    captured_at: datetime = field(default_factory=utc_now)


@dataclass
class CompletedDocument:
    document_key: str
    completion_percentage: int
    total_words: int
    reading_time_seconds: int
    completed_at: datetime = field(default_factory=utc_now)
