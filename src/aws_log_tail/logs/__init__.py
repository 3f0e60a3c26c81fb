"""
Log streaming pipeline.

Discovery, per-stream fetching, merging and following of log records, plus
the abstractions a log backend implements.
"""

from .base import (
    END_OF_RANGE,
    BoundedWindow,
    EndOfAvailableRange,
    FetchPage,
    FetchWindow,
    InstanceInfo,
    LogSource,
    LogStreamInfo,
    RawRecord,
    RecordQuery,
    SinceWindow,
    StreamCompleted,
    StreamDescriptor,
    TailWindow,
)
from .aggregator import LogAggregator

__all__ = [
    'END_OF_RANGE',
    'BoundedWindow',
    'EndOfAvailableRange',
    'FetchPage',
    'FetchWindow',
    'InstanceInfo',
    'LogAggregator',
    'LogSource',
    'LogStreamInfo',
    'RawRecord',
    'RecordQuery',
    'SinceWindow',
    'StreamCompleted',
    'StreamDescriptor',
    'TailWindow',
]
