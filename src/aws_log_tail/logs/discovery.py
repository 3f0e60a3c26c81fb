"""
Stream discovery.

Resolves which streams to read. With a start time the log group's streams are
scanned by last event time; otherwise every (optionally name-filtered)
instance contributes the stream named after its id.
"""

from typing import AsyncIterator, Sequence

from aws_log_tail.core.exceptions import DiscoveryError, LogSourceError
from aws_log_tail.core.logging import logger

from .base import FetchWindow, LogSource, StreamDescriptor, to_epoch_millis


def matches_prefix(name: str, prefixes: Sequence[str]) -> bool:
    """No prefixes match everything."""
    if not prefixes:
        return True
    return any(name.startswith(prefix) for prefix in prefixes)


async def discover_instances(source: LogSource, prefixes: Sequence[str] = ()) -> AsyncIterator[StreamDescriptor]:
    try:
        instances = await source.list_instances()
    except LogSourceError as e:
        raise DiscoveryError(f"Failed to list instances: {e.message}", {"mode": "instances"}) from e

    for instance in instances:
        if not matches_prefix(instance.name or "", prefixes):
            continue
        logger.debug(f"Discovered instance {instance.id} ({instance.name}, {instance.state})")
        yield StreamDescriptor(id=instance.id, is_live=not instance.is_terminated)


async def discover_streams_in_range(
    source: LogSource,
    log_group: str,
    window: FetchWindow
) -> AsyncIterator[StreamDescriptor]:
    start_ms = to_epoch_millis(window.start) if window.start is not None else None
    end_ms = to_epoch_millis(window.end) if window.end is not None else None

    try:
        async for stream in source.list_log_streams(log_group):
            if stream.first_event_ms is None or stream.last_event_ms is None:
                continue
            if end_ms is not None and stream.first_event_ms > end_ms:
                continue
            # Listing is ordered by last event, newest first: nothing later can match
            if start_ms is not None and stream.last_event_ms < start_ms:
                break
            logger.debug(f"Discovered stream {stream.name}")
            yield StreamDescriptor(id=stream.name)
    except LogSourceError as e:
        raise DiscoveryError(
            f"Failed to list log streams of {log_group}: {e.message}",
            {"mode": "range", "log_group": log_group}
        ) from e


def discover_streams(
    source: LogSource,
    log_group: str,
    window: FetchWindow,
    prefixes: Sequence[str] = ()
) -> AsyncIterator[StreamDescriptor]:
    """Pick the discovery variant for ``window``. Failures raise DiscoveryError."""
    if window.start is not None:
        return discover_streams_in_range(source, log_group, window)
    return discover_instances(source, prefixes)
