"""
Fan-in of every stream's records into one console view.

The aggregator runs discovery, starts one fetcher task per discovered stream,
waits until every stream has delivered its initial batch, prints the merged
and truncated batch in time order and then relays follow-phase lines as they
arrive.
"""

import asyncio
from typing import Callable, List, Optional, Sequence

import click

from aws_log_tail.core.exceptions import NoStreamsError
from aws_log_tail.core.logging import logger

from .base import FetchWindow, LogSource, RawRecord, StreamCompleted, StreamDescriptor
from .discovery import discover_streams
from .fetcher import DEFAULT_POLL_INTERVAL, StreamFetcher
from .formatter import MessageFormatter, sort_key

DESCRIPTOR_QUEUE_SIZE = 10
INITIAL_QUEUE_SIZE = 100
FOLLOW_QUEUE_SIZE = 100


class CompletionLatch:
    """
    Opens once every registered stream has completed.

    Streams are registered with ``add`` while discovery runs; ``close`` marks
    that no more will be added. Counting down past zero is an error.
    """

    def __init__(self):
        self._pending = 0
        self._closed = False
        self._open = False

    @property
    def pending(self) -> int:
        return self._pending

    @property
    def is_open(self) -> bool:
        return self._open

    def add(self):
        if self._closed:
            raise RuntimeError("latch already closed")
        self._pending += 1

    def close(self):
        self._closed = True
        self._check()

    def count_down(self):
        if self._pending == 0:
            raise RuntimeError("more completions than registered streams")
        self._pending -= 1
        self._check()

    def _check(self):
        if self._closed and self._pending == 0:
            self._open = True


def merge_lines(lines: List[str], window: FetchWindow) -> List[str]:
    """Stable sort by canonical timestamp, then apply the window's truncation."""
    return window.truncate(sorted(lines, key=sort_key))


class LogAggregator:
    """Discovers streams, fans out fetchers and prints the merged result."""

    def __init__(
        self,
        source: LogSource,
        log_group: str,
        window: FetchWindow,
        follow: bool = False,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        formatter: Optional[Callable[[RawRecord], str]] = None,
        output: Callable[[str], None] = click.echo
    ):
        self.source = source
        self.log_group = log_group
        self.window = window
        self.follow = follow
        self.poll_interval = poll_interval
        self.formatter = formatter or MessageFormatter()
        self.output = output

    async def list_streams(self, prefixes: Sequence[str] = ()) -> List[StreamDescriptor]:
        """Run discovery only."""
        return [d async for d in discover_streams(self.source, self.log_group, self.window, prefixes)]

    async def run(self, prefixes: Sequence[str] = ()):
        """
        Print the initial batch, then follow-phase lines until cancelled.

        Raises:
            DiscoveryError: If listing instances or streams fails
            NoStreamsError: If discovery finds nothing to read
        """
        descriptors: asyncio.Queue = asyncio.Queue(maxsize=DESCRIPTOR_QUEUE_SIZE)
        initial: asyncio.Queue = asyncio.Queue(maxsize=INITIAL_QUEUE_SIZE)
        follow: asyncio.Queue = asyncio.Queue(maxsize=FOLLOW_QUEUE_SIZE)

        latch = CompletionLatch()
        tasks: List[asyncio.Task] = []
        discovery = asyncio.create_task(self._discover(descriptors, prefixes))

        try:
            while True:
                descriptor = await descriptors.get()
                if descriptor is None:
                    break
                tasks.append(asyncio.create_task(self._fetcher(descriptor).run(initial, follow)))
                latch.add()

            # Re-raises DiscoveryError
            await discovery

            if not tasks:
                if self.window.start is not None:
                    raise NoStreamsError(self.log_group, "range")
                raise NoStreamsError(self.log_group, "instances", prefixes)
            logger.debug(f"Reading {len(tasks)} streams from {self.log_group}")

            latch.close()
            lines = await self._drain_initial(initial, latch)

            for line in merge_lines(lines, self.window):
                self.output(line)

            if self.follow:
                while True:
                    self.output(await follow.get())
        finally:
            await self._shutdown(discovery, tasks)

    def _fetcher(self, descriptor: StreamDescriptor) -> StreamFetcher:
        return StreamFetcher(
            self.source,
            self.log_group,
            descriptor,
            self.window,
            follow=self.follow,
            poll_interval=self.poll_interval,
            formatter=self.formatter
        )

    async def _discover(self, descriptors: asyncio.Queue, prefixes: Sequence[str]):
        """Feed discovered streams into ``descriptors``, ending with None."""
        try:
            async for descriptor in discover_streams(self.source, self.log_group, self.window, prefixes):
                await descriptors.put(descriptor)
        except Exception:
            await descriptors.put(None)
            raise
        await descriptors.put(None)

    async def _drain_initial(self, initial: asyncio.Queue, latch: CompletionLatch) -> List[str]:
        lines = []
        while not latch.is_open:
            item = await initial.get()
            if isinstance(item, StreamCompleted):
                latch.count_down()
            else:
                lines.append(item)
        return lines

    async def _shutdown(self, discovery: asyncio.Future, tasks: List[asyncio.Future]):
        """Cancel and reap every task started by run()."""
        pending = [discovery] + tasks
        for task in pending:
            if not task.done():
                task.cancel()

        results = await asyncio.gather(*pending, return_exceptions=True)
        # The discovery error, if any, has already been raised from run()
        for result in results[1:]:
            if isinstance(result, Exception):
                logger.error(f"Fetcher task failed: {result}")
