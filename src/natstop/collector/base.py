"""
Base monitoring source interface.

A source is anything that can hand back the two snapshots a stats
cycle needs. Keeping /varz and /connz as separate typed calls lets the
engine fetch them concurrently and lets tests script them independently.
"""

from abc import ABC, abstractmethod

from natstop.metrics import ConnectionSet, ServerSnapshot


class FetchError(Exception):
    """A monitoring endpoint could not be fetched or decoded."""

    def __init__(self, path: str, cause: BaseException):
        self.path = path
        self.cause = cause
        super().__init__(f"{path}: {cause}")


class MonitoringSource(ABC):
    """Interface for all NATS monitoring backends."""

    @abstractmethod
    def fetch_varz(self) -> ServerSnapshot:
        """Fetch one server snapshot."""
        ...

    @abstractmethod
    def fetch_connz(self, limit: int, sort: str, subs: bool = False) -> ConnectionSet:
        """Fetch one connection set."""
        ...

    @abstractmethod
    def name(self) -> str:
        """Human-readable name for this source."""
        ...
