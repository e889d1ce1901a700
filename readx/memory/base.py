from abc import ABC, abstractmethod

from .records import CompletedDocument, ReadingProgress, ReadingSession


class ProgressStore(ABC):
    """Abstract interface for where reading progress and sessions live.

    Every save is an upsert: progress by document key, sessions by session id,
    completed documents by document key. The latest write for a key wins.
    """

    @abstractmethod
    def save_progress(self, progress: ReadingProgress) -> None:
        ...

    @abstractmethod
    def load_progress(self, document_key: str) -> ReadingProgress | None:
        ...

    @abstractmethod
    def save_session(self, session: ReadingSession) -> None:
        ...

    @abstractmethod
    def load_sessions(self, document_key: str | None = None, limit: int = 50) -> list[ReadingSession]:
        """Most recent sessions first, optionally for a single document."""
        ...

    @abstractmethod
    def save_completed(self, completed: CompletedDocument) -> None:
        ...

    @abstractmethod
    def load_completed(self) -> list[CompletedDocument]:
        ...

    def close(self) -> None:
        pass
