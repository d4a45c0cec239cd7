"""Tests for the stream dispatcher."""

import asyncio
import json
import threading
import time

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError

from syslog_bridge.clients.dispatcher import StreamDispatcher, order_batch
from syslog_bridge.clients.session import StreamSession
from syslog_bridge.errors import RemoteAppendError
from syslog_bridge.models import EncodingMode, LogRecord
from tests.conftest import BASE_TIME, sent_messages


def throttling_error():
    return ClientError(
        error_response={'Error': {'Code': 'ThrottlingException', 'Message': 'Rate exceeded'}},
        operation_name='PutLogEvents'
    )


class TestOrderBatch:
    """Test timestamp ordering of a batch."""

    def test_sorted_ascending(self, make_record):
        batch = [make_record(2, "c"), make_record(0, "a"), make_record(1, "b")]

        assert [r.content for r in order_batch(batch)] == ["a", "b", "c"]

    def test_ties_keep_arrival_order(self, make_record):
        batch = [
            make_record(1, "x1"),
            make_record(0, "a"),
            make_record(1, "x2"),
            make_record(1, "x3"),
            make_record(0, "b")
        ]

        assert [r.content for r in order_batch(batch)] == ["a", "b", "x1", "x2", "x3"]

    def test_input_not_modified(self, make_record):
        batch = [make_record(1, "b"), make_record(0, "a")]
        order_batch(batch)

        assert [r.content for r in batch] == ["b", "a"]

    def test_naive_timestamps_compare_as_utc(self, make_record):
        naive = LogRecord(timestamp=BASE_TIME.replace(tzinfo=None), content="a")
        batch = [make_record(2, "c"), naive, make_record(1, "b")]

        assert [r.content for r in order_batch(batch)] == ["a", "b", "c"]


class TestStreamDispatcher:
    """Test StreamDispatcher requests and token handling."""

    @pytest.fixture
    def dispatcher(self, mock_aws_client_manager, ready_session):
        return StreamDispatcher(mock_aws_client_manager, ready_session)

    @pytest.mark.asyncio
    async def test_first_append_has_no_token(self, dispatcher, mock_logs_client, make_record):
        sent = await dispatcher.dispatch([make_record(0, "a")])

        assert sent == 1
        kwargs = mock_logs_client.put_log_events.call_args.kwargs
        assert kwargs['logGroupName'] == "test-group"
        assert kwargs['logStreamName'] == "test-stream"
        assert 'sequenceToken' not in kwargs
        assert kwargs['logEvents'] == [{'timestamp': 1709287200000, 'message': "a"}]

    @pytest.mark.asyncio
    async def test_token_chains_across_appends(self, dispatcher, mock_logs_client, make_record, ready_session):
        for i in range(3):
            await dispatcher.dispatch([make_record(i, f"m{i}")])

        calls = mock_logs_client.put_log_events.call_args_list
        assert 'sequenceToken' not in calls[0].kwargs
        assert calls[1].kwargs['sequenceToken'] == "token-1"
        assert calls[2].kwargs['sequenceToken'] == "token-2"
        assert ready_session.sequence_token == "token-3"

    @pytest.mark.asyncio
    async def test_events_sorted_by_timestamp(self, dispatcher, mock_logs_client, make_record):
        batch = [make_record(2, "c"), make_record(0, "a"), make_record(1, "b"), make_record(1, "b2")]

        await dispatcher.dispatch(batch)

        put_call = mock_logs_client.put_log_events.call_args
        assert sent_messages(put_call) == ["a", "b", "b2", "c"]
        timestamps = [e['timestamp'] for e in put_call.kwargs['logEvents']]
        assert timestamps == sorted(timestamps)

    @pytest.mark.asyncio
    async def test_mixed_naive_and_aware_timestamps(self, dispatcher, mock_logs_client, make_record):
        naive = LogRecord(timestamp=BASE_TIME.replace(tzinfo=None), content="a")

        sent = await dispatcher.dispatch([make_record(2, "c"), naive])

        assert sent == 2
        put_call = mock_logs_client.put_log_events.call_args
        assert sent_messages(put_call) == ["a", "c"]
        assert put_call.kwargs["logEvents"][0]["timestamp"] == 1709287200000

    @pytest.mark.asyncio
    async def test_failure_leaves_token_unchanged(self, dispatcher, mock_logs_client, make_record, ready_session):
        await dispatcher.dispatch([make_record(0, "a")])
        assert ready_session.sequence_token == "token-1"

        mock_logs_client.put_log_events.side_effect = throttling_error()

        with pytest.raises(RemoteAppendError) as exc_info:
            await dispatcher.dispatch([make_record(1, "b"), make_record(2, "c")])

        assert exc_info.value.error_code == 'ThrottlingException'
        assert exc_info.value.events_lost == 2
        assert ready_session.sequence_token == "token-1"
        assert dispatcher.stats['append_failures'] == 1

    @pytest.mark.asyncio
    async def test_next_batch_after_failure_uses_unchanged_token(
        self, dispatcher, mock_logs_client, make_record, ready_session
    ):
        await dispatcher.dispatch([make_record(0, "a")])

        mock_logs_client.put_log_events.side_effect = throttling_error()
        with pytest.raises(RemoteAppendError):
            await dispatcher.dispatch([make_record(1, "lost")])

        mock_logs_client.put_log_events.side_effect = None
        mock_logs_client.put_log_events.return_value = {'nextSequenceToken': "token-after"}
        await dispatcher.dispatch([make_record(2, "c")])

        last_call = mock_logs_client.put_log_events.call_args
        assert last_call.kwargs['sequenceToken'] == "token-1"
        assert sent_messages(last_call) == ["c"]
        assert ready_session.sequence_token == "token-after"

    @pytest.mark.asyncio
    async def test_transport_failure(self, dispatcher, mock_logs_client, make_record, ready_session):
        mock_logs_client.put_log_events.side_effect = EndpointConnectionError(
            endpoint_url="https://logs.us-east-1.amazonaws.com"
        )

        with pytest.raises(RemoteAppendError) as exc_info:
            await dispatcher.dispatch([make_record(0, "a")])

        assert exc_info.value.error_code is None
        assert ready_session.sequence_token is None

    @pytest.mark.asyncio
    async def test_empty_batch_makes_no_call(self, dispatcher, mock_logs_client):
        assert await dispatcher.dispatch([]) == 0
        mock_logs_client.put_log_events.assert_not_called()

    @pytest.mark.asyncio
    async def test_uninitialized_session_rejected(self, mock_aws_client_manager, mock_logs_client, make_record):
        dispatcher = StreamDispatcher(mock_aws_client_manager, StreamSession("group", "stream"))

        with pytest.raises(RemoteAppendError, match="not initialized"):
            await dispatcher.dispatch([make_record(0, "a")])

        mock_logs_client.put_log_events.assert_not_called()

    @pytest.mark.asyncio
    async def test_missing_next_token_clears_token(self, dispatcher, mock_logs_client, make_record, ready_session):
        await dispatcher.dispatch([make_record(0, "a")])
        mock_logs_client.put_log_events.side_effect = None
        mock_logs_client.put_log_events.return_value = {}

        await dispatcher.dispatch([make_record(1, "b")])
        assert ready_session.sequence_token is None

        await dispatcher.dispatch([make_record(2, "c")])
        assert 'sequenceToken' not in mock_logs_client.put_log_events.call_args.kwargs

    @pytest.mark.asyncio
    async def test_json_encoding(self, mock_aws_client_manager, ready_session, mock_logs_client, make_record):
        dispatcher = StreamDispatcher(mock_aws_client_manager, ready_session, EncodingMode.JSON)

        await dispatcher.dispatch([make_record(0, "a", hostname="web-01", severity="info")])

        message = sent_messages(mock_logs_client.put_log_events.call_args)[0]
        assert json.loads(message) == {
            'timestamp': '2024-03-01T10:00:00+00:00',
            'content': 'a',
            'hostname': 'web-01',
            'severity': 'info'
        }

    @pytest.mark.asyncio
    async def test_concurrent_dispatches_are_serialized(
        self, dispatcher, mock_logs_client, make_record, ready_session
    ):
        in_flight = 0
        max_in_flight = 0
        lock = threading.Lock()
        counter = iter(range(1, 100))

        def slow_put(**kwargs):
            nonlocal in_flight, max_in_flight
            with lock:
                in_flight += 1
                max_in_flight = max(max_in_flight, in_flight)
            time.sleep(0.02)
            with lock:
                in_flight -= 1
            return {'nextSequenceToken': f"token-{next(counter)}"}

        mock_logs_client.put_log_events.side_effect = slow_put

        await asyncio.gather(*[
            dispatcher.dispatch([make_record(i, f"m{i}")]) for i in range(5)
        ])

        assert max_in_flight == 1
        tokens = [c.kwargs.get('sequenceToken') for c in mock_logs_client.put_log_events.call_args_list]
        assert tokens == [None, "token-1", "token-2", "token-3", "token-4"]
        assert ready_session.sequence_token == "token-5"

    @pytest.mark.asyncio
    async def test_stats(self, dispatcher, make_record):
        await dispatcher.dispatch([make_record(0, "a"), make_record(1, "b")])

        assert dispatcher.stats['events_sent'] == 2
        assert dispatcher.stats['appends'] == 1
        assert dispatcher.stats['last_append_ms'] is not None
