"""
Log source implementations.

This package contains implementations of the LogSource interface
for concrete log backends.
"""

from .cloudwatch import CloudWatchLogSource

__all__ = [
    'CloudWatchLogSource'
]
