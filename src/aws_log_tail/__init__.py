"""Merge and tail CloudWatch log streams of many EC2 instances."""

__version__ = "0.1.0"
