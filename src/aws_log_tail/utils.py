"""Utility functions for the CLI"""

import json
import yaml
from datetime import datetime
from typing import Any, List, Dict, Optional
from tabulate import tabulate
import click
from dateutil import tz

from .core.exceptions import InvalidTimestampError

TIMESTAMP_LAYOUT = "%Y-%m-%dT%H:%M:%S"
TIMESTAMP_HELP = "YYYY-MM-DDTHH:MM:SS@TZ"


def parse_timestamp(value: str) -> datetime:
    """
    Parse ``YYYY-MM-DDTHH:MM:SS@TZ`` into an aware datetime.

    TZ is any zone name dateutil knows (``UTC``, ``EET``,
    ``Europe/Helsinki``). Without ``@TZ`` the local zone is used.
    """
    text, _, zone_name = value.partition('@')

    try:
        naive = datetime.strptime(text, TIMESTAMP_LAYOUT)
    except ValueError as e:
        raise InvalidTimestampError(value, f"expected {TIMESTAMP_HELP} ({e})")

    if not zone_name:
        return naive.replace(tzinfo=tz.tzlocal())

    zone = tz.gettz(zone_name)
    if zone is None:
        raise InvalidTimestampError(value, f"unknown time zone {zone_name}")
    return naive.replace(tzinfo=zone)


class TimestampParamType(click.ParamType):
    """Click parameter for ``YYYY-MM-DDTHH:MM:SS@TZ`` values"""
    name = 'timestamp'

    def convert(self, value, param, ctx):
        if isinstance(value, datetime):
            return value
        try:
            return parse_timestamp(value)
        except InvalidTimestampError as e:
            self.fail(e.message, param, ctx)


TIMESTAMP = TimestampParamType()


class OutputFormatter:
    """Formats output in various formats"""

    def __init__(self, format_type: str = 'table'):
        self.format_type = format_type

    def format(self, data: Any, headers: Optional[List[str]] = None,
               fields: Optional[List[str]] = None) -> str:
        """Format data based on format type"""
        if self.format_type == 'json':
            return self.format_json(data)
        elif self.format_type == 'yaml':
            return self.format_yaml(data)
        elif self.format_type == 'table':
            return self.format_table(data, headers, fields)
        else:
            return str(data)

    def format_json(self, data: Any) -> str:
        """Format as JSON"""
        return json.dumps(data, indent=2, default=str)

    def format_yaml(self, data: Any) -> str:
        """Format as YAML"""
        return yaml.safe_dump(data, default_flow_style=False)

    def format_table(self, data: Any, headers: Optional[List[str]] = None,
                     fields: Optional[List[str]] = None) -> str:
        """Format as table"""
        if not isinstance(data, list):
            data = [data]

        if not data:
            return "No streams found"

        # Extract data for table
        table_data = []
        for item in data:
            if fields:
                table_data.append([self._get_value(item, field) for field in fields])
            elif isinstance(item, dict):
                table_data.append(list(item.values()))
            else:
                table_data.append([str(item)])

        # Use provided headers or auto-detect
        if not headers:
            if fields:
                headers = [f.upper() for f in fields]
            elif isinstance(data[0], dict):
                headers = [k.upper() for k in data[0].keys()]
            else:
                headers = ['VALUE']

        return tabulate(table_data, headers=headers, tablefmt='simple')

    def _get_value(self, obj: Dict[str, Any], key: str) -> Any:
        value = obj.get(key) if isinstance(obj, dict) else None
        return value if value is not None else '-'


def format_liveness(is_live: Optional[bool]) -> str:
    """Render a stream's liveness for tables"""
    if is_live is None:
        return '-'
    return '✓' if is_live else '✗'
