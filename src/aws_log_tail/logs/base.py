"""
Base classes and interfaces for reading per-instance log streams.

This module defines the data that flows through the discovery -> fetch ->
merge -> follow pipeline, the fetch window variants that decide which records
an initial fetch returns, and the abstract log source every backend implements.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import AsyncIterator, List, Optional, Union


@dataclass(frozen=True)
class StreamDescriptor:
    """One stream to read. ``is_live`` is None when liveness is unknown."""
    id: str
    is_live: Optional[bool] = None


@dataclass(frozen=True)
class InstanceInfo:
    """A compute instance as listed by the log source."""
    id: str
    name: Optional[str] = None
    state: Optional[str] = None

    @property
    def is_terminated(self) -> bool:
        return self.state == "terminated"


@dataclass(frozen=True)
class LogStreamInfo:
    """A log stream as listed in time-range mode."""
    name: str
    first_event_ms: Optional[int] = None
    last_event_ms: Optional[int] = None


@dataclass(frozen=True)
class RawRecord:
    """A single record: epoch-millis timestamp and message text."""
    timestamp: int
    message: str


class EndOfAvailableRange:
    """Marks that no more records exist in the requested read direction."""

    def __repr__(self):
        return "END_OF_RANGE"


END_OF_RANGE = EndOfAvailableRange()

PageItem = Union[RawRecord, EndOfAvailableRange]


@dataclass(frozen=True)
class RecordQuery:
    """Parameters of one fetch_records call."""
    start_ms: Optional[int] = None
    end_ms: Optional[int] = None
    limit: Optional[int] = None
    start_from_head: bool = True
    token: Optional[str] = None

    def resume(self, token: str) -> "RecordQuery":
        """Same query, continuing from a forward token."""
        return replace(self, token=token)


@dataclass
class FetchPage:
    """One page of records plus the forward token to continue from."""
    records: List[PageItem] = field(default_factory=list)
    next_token: Optional[str] = None


@dataclass(frozen=True)
class StreamCompleted:
    """Put on the initial channel once a stream's initial batch is done."""
    stream_id: str


def to_epoch_millis(value: datetime) -> int:
    return int(value.timestamp() * 1000)


class FetchWindow(ABC):
    """
    Which records an initial fetch returns and how the merged batch is cut.

    Exactly one of three modes holds: tail, since or bounded. The variant is
    chosen once with ``from_options`` and every later decision asks it.
    """

    start: Optional[datetime] = None
    end: Optional[datetime] = None
    limit: Optional[int] = None

    #: whether the initial fetch keeps requesting pages
    paginates = False
    #: whether streams read with this window may be followed
    followable = True

    @staticmethod
    def from_options(
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        limit: Optional[int] = None
    ) -> "FetchWindow":
        if end is not None:
            return BoundedWindow(start=start, end=end)
        if limit is None or limit <= 0:
            raise ValueError("limit must be a positive number when no end time is given")
        if start is not None:
            return SinceWindow(start=start, limit=limit)
        return TailWindow(limit=limit)

    @property
    def mode(self) -> str:
        return self.__class__.__name__[:-len("Window")].lower()

    @abstractmethod
    def initial_query(self, now_ms: int) -> RecordQuery:
        """Build the query for the first page of a stream."""

    def admits(self, timestamp_ms: int) -> bool:
        """Whether a record at this time belongs to the initial batch."""
        return True

    @abstractmethod
    def truncate(self, lines: List[str]) -> List[str]:
        """Cut the sorted, merged batch down to what gets printed."""


@dataclass(frozen=True)
class TailWindow(FetchWindow):
    """Newest ``limit`` records up to now."""
    limit: int = 100

    def initial_query(self, now_ms: int) -> RecordQuery:
        return RecordQuery(end_ms=now_ms, limit=self.limit, start_from_head=False)

    def truncate(self, lines: List[str]) -> List[str]:
        if len(lines) > self.limit:
            return lines[-self.limit:]
        return lines


@dataclass(frozen=True)
class SinceWindow(FetchWindow):
    """Oldest ``limit`` records starting from ``start``."""
    start: datetime = None
    limit: int = 100

    def initial_query(self, now_ms: int) -> RecordQuery:
        return RecordQuery(
            start_ms=to_epoch_millis(self.start),
            limit=self.limit,
            start_from_head=True
        )

    def truncate(self, lines: List[str]) -> List[str]:
        if len(lines) > self.limit:
            return lines[:self.limit]
        return lines


@dataclass(frozen=True)
class BoundedWindow(FetchWindow):
    """Every record in ``[start, end)``; a missing start reads from the beginning."""
    start: Optional[datetime] = None
    end: datetime = None

    paginates = True
    followable = False

    @property
    def end_ms(self) -> int:
        return to_epoch_millis(self.end)

    def initial_query(self, now_ms: int) -> RecordQuery:
        return RecordQuery(
            start_ms=to_epoch_millis(self.start) if self.start is not None else None,
            end_ms=self.end_ms,
            start_from_head=True
        )

    def admits(self, timestamp_ms: int) -> bool:
        return timestamp_ms < self.end_ms

    def truncate(self, lines: List[str]) -> List[str]:
        return lines


class LogSource(ABC):
    """
    Abstract base class for log backends.

    Implementations list the compute instances, list the streams of a log
    group, and read records from one stream. Every failure is raised as
    LogSourceError; callers decide whether it is fatal.
    """

    @abstractmethod
    async def list_instances(self) -> List[InstanceInfo]:
        """
        List every compute instance.

        Raises:
            LogSourceError: If the listing fails
        """
        pass

    @abstractmethod
    def list_log_streams(self, log_group: str) -> AsyncIterator[LogStreamInfo]:
        """
        Iterate the streams of a log group, newest last event first.

        Pages are requested lazily, so a caller that stops iterating early
        does not pay for the rest of the listing.

        Raises:
            LogSourceError: If a listing page fails
        """
        pass

    @abstractmethod
    async def fetch_records(self, log_group: str, stream_id: str, query: RecordQuery) -> FetchPage:
        """
        Read one page of records from a stream.

        The returned page ends with END_OF_RANGE when the stream has nothing
        more in the requested direction.

        Raises:
            LogSourceError: If the read fails
        """
        pass
