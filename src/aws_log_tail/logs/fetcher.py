"""
Per-stream log fetcher.

A StreamFetcher loads the initial batch of one stream into the shared initial
channel and, when the stream is live and follow was requested, keeps polling
it for new records.
"""

import asyncio
import time
from typing import Callable, Optional

from aws_log_tail.core.exceptions import FollowPollError, LogSourceError, StreamFetchError
from aws_log_tail.core.logging import logger

from .base import (
    EndOfAvailableRange,
    FetchWindow,
    LogSource,
    RawRecord,
    RecordQuery,
    StreamCompleted,
    StreamDescriptor,
)
from .formatter import MessageFormatter

DEFAULT_POLL_INTERVAL = 5.0


def now_millis() -> int:
    return int(time.time() * 1000)


class StreamFetcher:
    """Reads one stream: the initial batch, then optionally its new records."""

    def __init__(
        self,
        source: LogSource,
        log_group: str,
        stream: StreamDescriptor,
        window: FetchWindow,
        follow: bool = False,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        formatter: Optional[Callable[[RawRecord], str]] = None,
        clock: Callable[[], int] = now_millis
    ):
        self.source = source
        self.log_group = log_group
        self.stream = stream
        self.window = window
        self.follow = follow
        self.poll_interval = poll_interval
        self.formatter = formatter or MessageFormatter()
        self.clock = clock

    @property
    def should_follow(self) -> bool:
        return self.follow and self.window.followable and self.stream.is_live is True

    async def run(self, initial: asyncio.Queue, follow: asyncio.Queue):
        """Load the initial batch, signal completion, then follow if asked to."""
        token = None
        try:
            token = await self.load_initial(initial)
        except LogSourceError as e:
            logger.warning(str(StreamFetchError(self.stream.id, e.message)))
        except Exception as e:
            logger.exception(f"{self.stream.id}: unexpected error while loading records: {e}")

        # Exactly one per stream, whatever happened above
        await initial.put(StreamCompleted(self.stream.id))

        if self.should_follow:
            await self.follow_stream(follow, token)

    async def load_initial(self, initial: asyncio.Queue) -> Optional[str]:
        """
        Put the stream's initial batch on ``initial``.

        Lines are held back until the last page has been read, so a stream
        that fails part way contributes nothing.

        Returns:
            The forward token to follow from, if the source returned one
        """
        query = self.window.initial_query(self.clock())
        token = None
        lines = []

        while True:
            page = await self.source.fetch_records(self.log_group, self.stream.id, query)
            if page.next_token:
                token = page.next_token

            exhausted = False
            for item in page.records:
                if isinstance(item, EndOfAvailableRange):
                    exhausted = True
                    break
                if not self.window.admits(item.timestamp):
                    exhausted = True
                    break
                lines.append(self.formatter(item))

            if exhausted or not self.window.paginates or not page.next_token:
                break
            query = query.resume(page.next_token)

        for line in lines:
            await initial.put(line)
        logger.debug(f"{self.stream.id}: initial batch loaded")
        return token

    async def follow_stream(self, follow: asyncio.Queue, token: Optional[str]):
        """Poll for new records until cancelled."""
        logger.debug(f"{self.stream.id}: following")
        # Without a token (failed initial fetch) start from now, not the stream head
        since_ms = None if token else self.clock()
        while True:
            query = RecordQuery(start_ms=None if token else since_ms, start_from_head=True, token=token)
            try:
                page = await self.source.fetch_records(self.log_group, self.stream.id, query)
            except LogSourceError as e:
                logger.warning(str(FollowPollError(self.stream.id, e.message)))
            else:
                for item in page.records:
                    if isinstance(item, RawRecord):
                        await follow.put(self.formatter(item))
                if page.next_token:
                    token = page.next_token

            await asyncio.sleep(self.poll_interval)
