"""Tests for the record data model."""

import dataclasses

import pytest

from syslog_bridge.models import EncodingMode, LogRecord, SerializedEvent
from tests.conftest import BASE_TIME


class TestLogRecord:
    """Test LogRecord construction and access."""

    def test_well_known_and_extension_fields(self, sample_fields):
        record = LogRecord(timestamp=BASE_TIME, content="hello", fields=sample_fields)

        assert record.timestamp == BASE_TIME
        assert record.content == "hello"
        assert record.get('hostname') == 'web-01'
        assert record.get('content') == "hello"
        assert record.get('missing', 'x') == 'x'

    def test_record_is_immutable(self, sample_fields):
        record = LogRecord(timestamp=BASE_TIME, content="hello", fields=sample_fields)

        with pytest.raises(dataclasses.FrozenInstanceError):
            record.content = "changed"

        with pytest.raises(TypeError):
            record.fields['hostname'] = 'other'

    def test_fields_are_copied(self):
        fields = {'hostname': 'web-01'}
        record = LogRecord(timestamp=BASE_TIME, content="hello", fields=fields)

        fields['hostname'] = 'web-02'
        assert record.get('hostname') == 'web-01'

    @pytest.mark.parametrize("reserved", ["timestamp", "content"])
    def test_reserved_extension_keys_rejected(self, reserved):
        with pytest.raises(ValueError):
            LogRecord(timestamp=BASE_TIME, content="hello", fields={reserved: "x"})

    def test_to_dict_flattens_fields(self, sample_fields):
        record = LogRecord(timestamp=BASE_TIME, content="hello", fields=sample_fields)
        data = record.to_dict()

        assert data['timestamp'] == BASE_TIME
        assert data['content'] == "hello"
        for key, value in sample_fields.items():
            assert data[key] == value


class TestSerializedEvent:
    """Test SerializedEvent wire form."""

    def test_to_api(self):
        event = SerializedEvent(timestamp_ms=1709287200000, message="hello")
        assert event.to_api() == {'timestamp': 1709287200000, 'message': "hello"}

    def test_encoding_mode_values(self):
        assert EncodingMode("json") is EncodingMode.JSON
        assert EncodingMode("text") is EncodingMode.TEXT
