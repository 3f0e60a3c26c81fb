"""
Pytest configuration and fixtures
"""

import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional

import pytest

from aws_log_tail.core.exceptions import LogSourceError
from aws_log_tail.logs.base import (
    END_OF_RANGE,
    FetchPage,
    InstanceInfo,
    LogSource,
    LogStreamInfo,
    RawRecord,
    RecordQuery,
)


def utc_millis(*args) -> int:
    """Epoch millis of a UTC wall-clock time"""
    return int(datetime(*args, tzinfo=timezone.utc).timestamp() * 1000)


class FakeLogSource(LogSource):
    """
    In-memory log source that behaves like CloudWatch Logs.

    Records are filtered to [startTime, endTime), tail reads return the newest
    ``limit`` records, forward reads page ``page_size`` records at a time and
    a token pointing past the end yields END_OF_RANGE with the same token.
    Follow polls (``follow_pages``) are served in order once the stream's
    token has been handed out.
    """

    def __init__(
        self,
        instances: Optional[List[InstanceInfo]] = None,
        streams: Optional[List[LogStreamInfo]] = None,
        records: Optional[Dict[str, List[RawRecord]]] = None,
        failing: tuple = (),
        list_error: Optional[Exception] = None,
        page_size: int = 10000,
    ):
        self.instances = instances or []
        self.streams = streams or []
        self.records = records or {}
        self.failing = set(failing)
        self.list_error = list_error
        self.page_size = page_size
        self.follow_pages: Dict[str, list] = {}
        self.queries: List[tuple] = []
        self.listed_streams = 0

    async def list_instances(self):
        if self.list_error:
            raise self.list_error
        return list(self.instances)

    async def list_log_streams(self, log_group):
        if self.list_error:
            raise self.list_error
        for stream in self.streams:
            self.listed_streams += 1
            yield stream

    async def fetch_records(self, log_group: str, stream_id: str, query: RecordQuery) -> FetchPage:
        self.queries.append((stream_id, query))
        if stream_id in self.failing:
            raise LogSourceError("get_log_events", f"stream {stream_id} is unreadable")

        if query.token and query.token.startswith("follow:"):
            return self._follow_poll(stream_id, query.token)

        records = [
            r for r in self.records.get(stream_id, [])
            if (query.start_ms is None or r.timestamp >= query.start_ms)
            and (query.end_ms is None or r.timestamp < query.end_ms)
        ]

        if not query.start_from_head:
            return FetchPage(records=records[-query.limit:], next_token=f"follow:{stream_id}")

        offset = int(query.token.split(":")[1]) if query.token else 0
        if query.token and offset >= len(records):
            return FetchPage(records=[END_OF_RANGE], next_token=query.token)

        size = query.limit or self.page_size
        page = records[offset:offset + size]
        return FetchPage(records=list(page), next_token=f"page:{offset + len(page)}")

    def _follow_poll(self, stream_id: str, token: str) -> FetchPage:
        pending = self.follow_pages.get(stream_id)
        if not pending:
            return FetchPage(records=[END_OF_RANGE], next_token=token)
        item = pending.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


class ScriptedLogSource(LogSource):
    """Log source that answers fetch_records from a fixed list of pages."""

    def __init__(self, pages: list):
        self.pages = list(pages)
        self.queries: List[RecordQuery] = []

    async def list_instances(self):
        return []

    async def list_log_streams(self, log_group):
        return
        yield

    async def fetch_records(self, log_group, stream_id, query):
        self.queries.append(query)
        item = self.pages.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item


@pytest.fixture
def at():
    """Epoch millis for a UTC wall-clock time"""
    return utc_millis


@pytest.fixture
def fake_source_class():
    return FakeLogSource


@pytest.fixture
def scripted_source_class():
    return ScriptedLogSource


@pytest.fixture(autouse=True)
def restore_logging():
    """Undo handler changes made by setup_logging()"""
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
