"""Appends batches of log records to a CloudWatch Logs stream."""

import asyncio
import logging
import time
from typing import Any, Dict, List, Sequence

from botocore.exceptions import BotoCoreError, ClientError

from ..config.aws_config import AWSClientManager
from ..errors import RemoteAppendError
from ..models import EncodingMode, LogRecord, SerializedEvent
from ..serializer import serialize_record, to_utc
from .session import StreamSession

logger = logging.getLogger(__name__)


def order_batch(batch: Sequence[LogRecord]) -> List[LogRecord]:
    """Sort by timestamp; records with equal timestamps keep arrival order.

    Naive timestamps compare as UTC.
    """
    return sorted(batch, key=lambda record: to_utc(record.timestamp))


class StreamDispatcher:
    """
    Sends one batch per PutLogEvents call and carries the sequence token
    forward in the session.

    Appends are serialized: each call consumes the token produced by the
    previous one, so two appends may never be in flight at once. A failed
    append is reported as ``RemoteAppendError``; its records are not retried.
    """

    def __init__(
        self,
        aws_client_manager: AWSClientManager,
        session: StreamSession,
        encoding: EncodingMode = EncodingMode.TEXT
    ):
        self.aws_client_manager = aws_client_manager
        self.session = session
        self.encoding = encoding
        self._lock = asyncio.Lock()

        self.stats = {
            'events_sent': 0,
            'appends': 0,
            'append_failures': 0,
            'last_append_ms': None
        }

    def build_events(self, batch: Sequence[LogRecord]) -> List[SerializedEvent]:
        """Order a batch and serialize it for the wire."""
        return [serialize_record(record, self.encoding) for record in order_batch(batch)]

    def build_request(self, events: Sequence[SerializedEvent]) -> Dict[str, Any]:
        params: Dict[str, Any] = {
            'logGroupName': self.session.group_name,
            'logStreamName': self.session.stream_name,
            'logEvents': [event.to_api() for event in events]
        }

        # The first append of a stream carries no token
        if self.session.sequence_token:
            params['sequenceToken'] = self.session.sequence_token

        return params

    async def dispatch(self, batch: Sequence[LogRecord]) -> int:
        """
        Append a batch to the stream.

        Returns:
            Number of events sent

        Raises:
            RemoteAppendError: If the session is not ready or the call fails
        """
        if not batch:
            return 0

        async with self._lock:
            if not self.session.is_ready:
                raise RemoteAppendError(
                    f"Stream {self.session.stream_name} is not initialized",
                    events_lost=len(batch)
                )

            events = self.build_events(batch)
            params = self.build_request(events)
            logs_client = self.aws_client_manager.logs_client

            start_time = time.time()
            try:
                response = await asyncio.get_running_loop().run_in_executor(
                    None,
                    lambda: logs_client.put_log_events(**params)
                )
            except ClientError as e:
                self.stats['append_failures'] += 1
                error_code = e.response.get('Error', {}).get('Code')
                raise RemoteAppendError(
                    f"PutLogEvents failed ({error_code}): {e}",
                    error_code=error_code,
                    events_lost=len(events)
                ) from e
            except BotoCoreError as e:
                self.stats['append_failures'] += 1
                raise RemoteAppendError(
                    f"PutLogEvents failed: {e}",
                    events_lost=len(events)
                ) from e

            self.session.update_token(response.get('nextSequenceToken'))

            rejected = response.get('rejectedLogEventsInfo')
            if rejected:
                logger.warning(f"CloudWatch rejected part of the batch: {rejected}")

            self.stats['events_sent'] += len(events)
            self.stats['appends'] += 1
            self.stats['last_append_ms'] = (time.time() - start_time) * 1000

            logger.info(f"Pushed {len(events)} entries to CloudWatch")
            return len(events)
