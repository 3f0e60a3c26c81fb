"""
CloudWatch Logs log source.

Implements the LogSource interface on top of boto3: EC2 for the instance
listing, CloudWatch Logs for stream listing and record reads. The SDK is
blocking, so every call runs in the loop's default executor.
"""

import asyncio
from functools import partial
from typing import Any, AsyncIterator, Callable, Dict, Iterator, List, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from aws_log_tail.core.exceptions import LogSourceError
from aws_log_tail.core.logging import logger

from ..base import (
    END_OF_RANGE,
    FetchPage,
    InstanceInfo,
    LogSource,
    LogStreamInfo,
    RawRecord,
    RecordQuery,
)

AWS_ERRORS = (BotoCoreError, ClientError)


def _instance_name(instance: Dict[str, Any]) -> Optional[str]:
    for tag in instance.get('Tags', []):
        if tag.get('Key') == 'Name':
            return tag.get('Value')
    return None


class CloudWatchLogSource(LogSource):
    """
    Log source backed by EC2 and CloudWatch Logs.

    Streams are expected to be named after the instance id, which is how the
    CloudWatch agent names them by default.
    """

    def __init__(self, logs_client=None, ec2_client=None, session=None):
        """
        Initialize the CloudWatch log source.

        Args:
            logs_client: Optional pre-built CloudWatch Logs client
            ec2_client: Optional pre-built EC2 client
            session: boto3 session used for any client not given
        """
        if logs_client is None or ec2_client is None:
            session = session or boto3.Session()
        self.logs_client = logs_client or session.client('logs')
        self.ec2_client = ec2_client or session.client('ec2')

    @classmethod
    def from_profile(cls, region: Optional[str] = None, profile: Optional[str] = None) -> 'CloudWatchLogSource':
        """Build clients from a named profile and region (both optional)."""
        session = boto3.Session(profile_name=profile, region_name=region)
        return cls(session=session)

    async def _call(self, operation: str, func: Callable, *args, **kwargs):
        loop = asyncio.get_event_loop()
        try:
            return await loop.run_in_executor(None, partial(func, *args, **kwargs))
        except AWS_ERRORS as e:
            raise LogSourceError(operation, str(e)) from e

    async def list_instances(self) -> List[InstanceInfo]:
        def list_sync():
            instances = []
            paginator = self.ec2_client.get_paginator('describe_instances')
            for page in paginator.paginate():
                for reservation in page.get('Reservations', []):
                    for instance in reservation.get('Instances', []):
                        instances.append(InstanceInfo(
                            id=instance['InstanceId'],
                            name=_instance_name(instance),
                            state=instance.get('State', {}).get('Name')
                        ))
            return instances

        instances = await self._call('describe_instances', list_sync)
        logger.debug(f"Listed {len(instances)} instances")
        return instances

    async def list_log_streams(self, log_group: str) -> AsyncIterator[LogStreamInfo]:
        paginator = self.logs_client.get_paginator('describe_log_streams')
        pages: Iterator[Dict[str, Any]] = iter(paginator.paginate(
            logGroupName=log_group,
            orderBy='LastEventTime',
            descending=True
        ))

        while True:
            page = await self._call('describe_log_streams', next, pages, None)
            if page is None:
                return
            for stream in page.get('logStreams', []):
                yield LogStreamInfo(
                    name=stream['logStreamName'],
                    first_event_ms=stream.get('firstEventTimestamp'),
                    last_event_ms=stream.get('lastEventTimestamp')
                )

    async def fetch_records(self, log_group: str, stream_id: str, query: RecordQuery) -> FetchPage:
        params = {
            'logGroupName': log_group,
            'logStreamName': stream_id,
            'startFromHead': query.start_from_head,
        }
        if query.start_ms is not None:
            params['startTime'] = query.start_ms
        if query.end_ms is not None:
            params['endTime'] = query.end_ms
        if query.limit is not None:
            params['limit'] = query.limit
        if query.token is not None:
            params['nextToken'] = query.token

        response = await self._call('get_log_events', self.logs_client.get_log_events, **params)

        records = [
            RawRecord(timestamp=event['timestamp'], message=event['message'])
            for event in response.get('events', [])
            if event.get('message')
        ]

        next_token = response.get('nextForwardToken')
        # The service hands back the token it was given once the stream is exhausted
        if query.token is not None and next_token == query.token:
            records.append(END_OF_RANGE)

        return FetchPage(records=records, next_token=next_token)
