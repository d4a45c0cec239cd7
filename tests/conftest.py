"""Pytest configuration and shared fixtures."""

import itertools
from datetime import datetime, timedelta, timezone
from typing import Any, Dict
from unittest.mock import Mock

import pytest

from syslog_bridge.clients.session import SessionState, StreamSession
from syslog_bridge.config.aws_config import AWSClientManager
from syslog_bridge.models import LogRecord

BASE_TIME = datetime(2024, 3, 1, 10, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def make_record():
    """Factory for LogRecords offset in seconds from a fixed base time."""
    def _make(offset_seconds: float = 0, content: str = "message", **fields: Any) -> LogRecord:
        return LogRecord(
            timestamp=BASE_TIME + timedelta(seconds=offset_seconds),
            content=content,
            fields=fields
        )
    return _make


@pytest.fixture
def sample_fields() -> Dict[str, Any]:
    """Fields as produced by the syslog parser for an RFC 3164 message."""
    return {
        'priority': 14,
        'facility': 'user',
        'severity': 'info',
        'hostname': 'web-01',
        'tag': 'nginx',
        'proc_id': '1234',
        'client': '10.0.0.5',
        'format': 'RFC3164'
    }


@pytest.fixture
def mock_logs_client():
    """Mock CloudWatch Logs client that hands out token-1, token-2, ..."""
    client = Mock()
    counter = itertools.count(1)

    client.create_log_stream = Mock(return_value={})
    client.put_log_events = Mock(
        side_effect=lambda **kwargs: {'nextSequenceToken': f"token-{next(counter)}"}
    )
    return client


@pytest.fixture
def mock_aws_client_manager(mock_logs_client):
    """Mock AWS client manager returning the mock Logs client."""
    manager = Mock(spec=AWSClientManager)
    manager.logs_client = mock_logs_client
    return manager


@pytest.fixture
def ready_session() -> StreamSession:
    """A session whose stream has already been created."""
    session = StreamSession("test-group", "test-stream")
    session.state = SessionState.READY
    return session


def sent_messages(put_call) -> list:
    """Messages of one recorded put_log_events call, in wire order."""
    return [event['message'] for event in put_call.kwargs['logEvents']]
