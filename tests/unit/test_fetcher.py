"""
Unit tests for the per-stream fetcher
"""

import asyncio
import logging
from datetime import datetime, timezone

import pytest
from dateutil import tz

from aws_log_tail.core.exceptions import LogSourceError
from aws_log_tail.logs.base import (
    END_OF_RANGE,
    BoundedWindow,
    FetchPage,
    RawRecord,
    RecordQuery,
    SinceWindow,
    StreamCompleted,
    StreamDescriptor,
    TailWindow,
    to_epoch_millis,
)
from aws_log_tail.logs.fetcher import StreamFetcher
from aws_log_tail.logs.formatter import MessageFormatter

START = datetime(2024, 1, 2, 3, 0, 0, tzinfo=timezone.utc)
END = datetime(2024, 1, 2, 4, 0, 0, tzinfo=timezone.utc)
NOW_MS = to_epoch_millis(datetime(2024, 1, 3, tzinfo=timezone.utc))


def make_fetcher(source, window, stream=None, follow=False, poll_interval=0.0):
    return StreamFetcher(
        source,
        "group",
        stream or StreamDescriptor("i-1", is_live=True),
        window,
        follow=follow,
        poll_interval=poll_interval,
        formatter=MessageFormatter(tz.UTC),
        clock=lambda: NOW_MS
    )


def drain(queue: asyncio.Queue) -> list:
    items = []
    while not queue.empty():
        items.append(queue.get_nowait())
    return items


def records(at, count, minute=0):
    return [RawRecord(at(2024, 1, 2, 3, minute, second), f"line {second}") for second in range(count)]


class TestInitialBatch:
    """Test cases for loading the initial batch"""

    @pytest.mark.asyncio
    async def test_tail_reads_one_page_ending_now(self, fake_source_class, at):
        source = fake_source_class(records={"i-1": records(at, 5)})
        initial, follow = asyncio.Queue(), asyncio.Queue()

        await make_fetcher(source, TailWindow(limit=3)).run(initial, follow)

        assert drain(initial) == [
            "2024-01-02 03:00:02 line 2",
            "2024-01-02 03:00:03 line 3",
            "2024-01-02 03:00:04 line 4",
            StreamCompleted("i-1"),
        ]
        assert source.queries == [("i-1", RecordQuery(end_ms=NOW_MS, limit=3, start_from_head=False))]
        assert follow.empty()

    @pytest.mark.asyncio
    async def test_since_reads_a_single_page(self, fake_source_class, at):
        source = fake_source_class(records={"i-1": records(at, 10)}, page_size=2)
        initial = asyncio.Queue()

        await make_fetcher(source, SinceWindow(start=START, limit=4)).run(initial, asyncio.Queue())

        lines = drain(initial)
        assert lines[:-1] == [f"2024-01-02 03:00:0{i} line {i}" for i in range(4)]
        assert lines[-1] == StreamCompleted("i-1")
        assert len(source.queries) == 1

    @pytest.mark.asyncio
    async def test_bounded_pages_until_end_of_range(self, fake_source_class, at):
        source = fake_source_class(records={"i-1": records(at, 7)}, page_size=3)
        initial = asyncio.Queue()

        await make_fetcher(source, BoundedWindow(start=START, end=END)).run(initial, asyncio.Queue())

        lines = drain(initial)
        assert len(lines) == 8
        assert lines[-1] == StreamCompleted("i-1")
        # 3 + 3 + 1 records, then a page holding only END_OF_RANGE
        assert [q.token for _, q in source.queries] == [None, "page:3", "page:6", "page:7"]

    @pytest.mark.asyncio
    async def test_bounded_stops_at_first_record_past_end(self, scripted_source_class, at):
        end = datetime(2024, 1, 2, 3, 0, 2, tzinfo=timezone.utc)
        source = scripted_source_class([
            FetchPage(records=records(at, 4), next_token="t1"),
            FetchPage(records=records(at, 2, minute=5), next_token="t2"),
        ])
        initial = asyncio.Queue()

        await make_fetcher(source, BoundedWindow(start=START, end=end)).run(initial, asyncio.Queue())

        assert drain(initial) == [
            "2024-01-02 03:00:00 line 0",
            "2024-01-02 03:00:01 line 1",
            StreamCompleted("i-1"),
        ]
        assert len(source.queries) == 1

    @pytest.mark.asyncio
    async def test_end_of_range_stops_mid_page(self, scripted_source_class, at):
        first, second = records(at, 2)
        source = scripted_source_class([
            FetchPage(records=[first, END_OF_RANGE, second], next_token="t1"),
        ])
        initial = asyncio.Queue()

        await make_fetcher(source, BoundedWindow(start=START, end=END)).run(initial, asyncio.Queue())

        assert drain(initial) == ["2024-01-02 03:00:00 line 0", StreamCompleted("i-1")]

    @pytest.mark.asyncio
    async def test_bounded_stops_without_token(self, scripted_source_class, at):
        source = scripted_source_class([FetchPage(records=records(at, 1), next_token=None)])
        initial = asyncio.Queue()

        await make_fetcher(source, BoundedWindow(start=START, end=END)).run(initial, asyncio.Queue())

        assert len(drain(initial)) == 2

    @pytest.mark.asyncio
    async def test_empty_stream_still_completes(self, fake_source_class):
        source = fake_source_class()
        initial = asyncio.Queue()

        await make_fetcher(source, TailWindow(limit=10)).run(initial, asyncio.Queue())

        assert drain(initial) == [StreamCompleted("i-1")]

    @pytest.mark.asyncio
    async def test_fetch_error_is_reported_and_completes(self, fake_source_class, caplog):
        source = fake_source_class(failing=("i-broken",))
        initial = asyncio.Queue()
        fetcher = make_fetcher(source, TailWindow(limit=10), stream=StreamDescriptor("i-broken", is_live=False))

        with caplog.at_level(logging.WARNING, logger="aws_log_tail"):
            await fetcher.run(initial, asyncio.Queue())

        assert drain(initial) == [StreamCompleted("i-broken")]
        assert "i-broken" in caplog.text
        assert "unreadable" in caplog.text

    @pytest.mark.asyncio
    async def test_unexpected_error_still_completes(self, scripted_source_class, caplog):
        source = scripted_source_class([KeyError("events")])
        initial = asyncio.Queue()

        with caplog.at_level(logging.ERROR, logger="aws_log_tail"):
            await make_fetcher(source, TailWindow(limit=10)).run(initial, asyncio.Queue())

        assert drain(initial) == [StreamCompleted("i-1")]
        assert "i-1" in caplog.text

    @pytest.mark.asyncio
    async def test_failure_on_later_page_discards_earlier_pages(self, scripted_source_class, at, caplog):
        source = scripted_source_class([
            FetchPage(records=records(at, 2), next_token="t1"),
            LogSourceError("get_log_events", "throttled"),
        ])
        initial = asyncio.Queue()

        with caplog.at_level(logging.WARNING, logger="aws_log_tail"):
            await make_fetcher(source, BoundedWindow(start=START, end=END)).run(initial, asyncio.Queue())

        assert drain(initial) == [StreamCompleted("i-1")]
        assert [q.token for q in source.queries] == [None, "t1"]
        assert "i-1: Log source operation 'get_log_events' failed: throttled" in caplog.text


class TestShouldFollow:
    @pytest.mark.parametrize("follow,is_live,window,expected", [
        (True, True, TailWindow(limit=1), True),
        (True, True, SinceWindow(start=START, limit=1), True),
        (False, True, TailWindow(limit=1), False),
        (True, False, TailWindow(limit=1), False),
        (True, None, SinceWindow(start=START, limit=1), False),
        (True, True, BoundedWindow(start=START, end=END), False),
    ])
    def test_follow_conditions(self, fake_source_class, follow, is_live, window, expected):
        fetcher = make_fetcher(fake_source_class(), window, StreamDescriptor("i-1", is_live), follow)
        assert fetcher.should_follow is expected


class TestFollow:
    """Test cases for the follow loop"""

    @pytest.mark.asyncio
    async def test_follow_relays_new_records(self, fake_source_class, at):
        source = fake_source_class(records={"i-1": records(at, 1)})
        source.follow_pages["i-1"] = [
            FetchPage(records=[RawRecord(at(2024, 1, 2, 3, 1, 0), "new")], next_token="follow:i-1:2"),
        ]
        initial, follow = asyncio.Queue(), asyncio.Queue()
        task = asyncio.create_task(make_fetcher(source, TailWindow(limit=5), follow=True).run(initial, follow))

        try:
            line = await asyncio.wait_for(follow.get(), timeout=5)
        finally:
            task.cancel()
        await asyncio.gather(task, return_exceptions=True)

        assert line == "2024-01-02 03:01:00 new"
        assert drain(initial)[-1] == StreamCompleted("i-1")
        follow_queries = [q for _, q in source.queries[1:]]
        assert follow_queries[0] == RecordQuery(start_from_head=True, token="follow:i-1")
        assert all(q.token == "follow:i-1:2" for q in follow_queries[1:])

    @pytest.mark.asyncio
    async def test_poll_error_is_reported_and_paced(self, scripted_source_class, at, caplog, monkeypatch):
        source = scripted_source_class([
            LogSourceError("get_log_events", "throttled"),
            FetchPage(records=[RawRecord(at(2024, 1, 2, 3, 1, 0), "after retry")], next_token="t2"),
        ] + [FetchPage(records=[], next_token="t2")] * 1000)
        follow = asyncio.Queue()
        sleeps = []
        real_sleep = asyncio.sleep

        async def recording_sleep(delay):
            sleeps.append(delay)
            await real_sleep(0)

        monkeypatch.setattr(asyncio, "sleep", recording_sleep)
        fetcher = make_fetcher(source, TailWindow(limit=5), follow=True, poll_interval=7.5)

        with caplog.at_level(logging.WARNING, logger="aws_log_tail"):
            task = asyncio.create_task(fetcher.follow_stream(follow, "t1"))
            try:
                line = await asyncio.wait_for(follow.get(), timeout=5)
            finally:
                task.cancel()
            await asyncio.gather(task, return_exceptions=True)

        assert line == "2024-01-02 03:01:00 after retry"
        assert "i-1" in caplog.text and "throttled" in caplog.text
        # The failed poll waited a full interval before the retry
        assert sleeps[0] == 7.5
        # The retry reused the token the failed poll was given
        assert [q.token for q in source.queries[:2]] == ["t1", "t1"]

    @pytest.mark.asyncio
    async def test_follow_without_token_starts_now(self, scripted_source_class):
        source = scripted_source_class([FetchPage(records=[], next_token="t1")] * 1000)
        task = asyncio.create_task(make_fetcher(source, TailWindow(limit=5), follow=True).follow_stream(asyncio.Queue(), None))

        while len(source.queries) < 2:
            await asyncio.sleep(0)
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)

        assert source.queries[0] == RecordQuery(start_ms=NOW_MS, start_from_head=True)
        assert source.queries[1] == RecordQuery(start_from_head=True, token="t1")
