"""Turn raw records into canonical, sortable output lines."""

import re
from datetime import datetime, tzinfo
from typing import Optional

from dateutil import tz

from .base import RawRecord

CANONICAL_FORMAT = "%Y-%m-%d %H:%M:%S"
# Width of the canonical prefix; sorting on it is sorting by time
TIMESTAMP_WIDTH = len("2006-01-02 15:04:05")

LEGACY_PREFIX_LENGTH = 16
# syslog style "Jan  2 15:04:05 ", day space or zero padded
LEGACY_PREFIX_PATTERN = re.compile(r"^[A-Z][a-z]{2} [ \d]\d \d{2}:\d{2}:\d{2} $")


def has_legacy_prefix(message: str) -> bool:
    """Whether the message starts with a parsable syslog timestamp."""
    if len(message) < LEGACY_PREFIX_LENGTH:
        return False

    prefix = message[:LEGACY_PREFIX_LENGTH]
    if not LEGACY_PREFIX_PATTERN.match(prefix):
        return False

    # Leap year so that "Feb 29" is accepted
    try:
        datetime.strptime("2000 " + prefix.strip(), "%Y %b %d %H:%M:%S")
    except ValueError:
        return False
    return True


def format_message(record: RawRecord, zone: Optional[tzinfo] = None) -> str:
    """Render ``record`` as ``YYYY-MM-DD HH:MM:SS message`` on one line."""
    # Any line break, a lone "\r" included, would split or overwrite the line
    message = " ".join(record.message.rstrip("\r\n").splitlines())

    if has_legacy_prefix(message):
        message = message[LEGACY_PREFIX_LENGTH:]

    when = datetime.fromtimestamp(record.timestamp / 1000, zone or tz.tzlocal())
    return f"{when.strftime(CANONICAL_FORMAT)} {message}"


def sort_key(line: str) -> str:
    return line[:TIMESTAMP_WIDTH]


class MessageFormatter:
    """Formats records in a fixed time zone."""

    def __init__(self, zone: Optional[tzinfo] = None):
        self.zone = zone or tz.tzlocal()

    def __call__(self, record: RawRecord) -> str:
        return format_message(record, self.zone)
