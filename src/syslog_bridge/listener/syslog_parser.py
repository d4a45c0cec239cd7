"""Parse syslog messages (RFC 5424 and RFC 3164) into log records."""

import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Pattern

from ..models import LogRecord

logger = logging.getLogger(__name__)

DEFAULT_PRIORITY = 13  # user.notice


class SyslogParser:
    """
    Parse syslog messages according to RFC 5424 and RFC 3164.

    Anything that matches neither format is still accepted: a leading
    ``<PRI>`` is honoured if present and the remainder becomes the content.
    Timestamps that cannot be read fall back to the time of receipt.
    """

    SEVERITY_MAP: Dict[int, str] = {
        0: 'emergency',
        1: 'alert',
        2: 'critical',
        3: 'error',
        4: 'warning',
        5: 'notice',
        6: 'info',
        7: 'debug'
    }

    FACILITY_MAP: Dict[int, str] = {
        0: 'kern', 1: 'user', 2: 'mail', 3: 'daemon',
        4: 'auth', 5: 'syslog', 6: 'lpr', 7: 'news',
        8: 'uucp', 9: 'cron', 10: 'authpriv', 11: 'ftp',
        12: 'ntp', 13: 'security', 14: 'console', 15: 'solaris-cron',
        16: 'local0', 17: 'local1', 18: 'local2', 19: 'local3',
        20: 'local4', 21: 'local5', 22: 'local6', 23: 'local7'
    }

    # <PRI>VERSION TIMESTAMP HOSTNAME APP-NAME PROCID MSGID STRUCTURED-DATA [MSG]
    RFC5424_PATTERN: Pattern[str] = re.compile(
        r'^<(?P<pri>\d{1,3})>(?P<ver>\d{1,2})\s+'
        r'(?P<timestamp>\S+)\s+(?P<hostname>\S+)\s+(?P<app>\S+)\s+'
        r'(?P<procid>\S+)\s+(?P<msgid>\S+)\s+'
        r'(?P<sd>-|(?:\[(?:[^\]\\]|\\.)*\])+)'
        r'(?:\s(?P<msg>.*))?$',
        re.DOTALL
    )

    # <PRI>Mmm dd hh:mm:ss HOSTNAME MSG
    RFC3164_PATTERN: Pattern[str] = re.compile(
        r'^<(?P<pri>\d{1,3})>(?P<timestamp>[A-Z][a-z]{2}\s+\d{1,2}\s+\d{2}:\d{2}:\d{2})\s+'
        r'(?P<hostname>\S+)\s+(?P<msg>.*)$',
        re.DOTALL
    )

    # TAG[PID]: content
    TAG_PATTERN: Pattern[str] = re.compile(
        r'^(?P<tag>[^\s\[\]:]{1,48})(?:\[(?P<pid>[^\]]*)\])?:\s?(?P<content>.*)$',
        re.DOTALL
    )

    PRI_PATTERN: Pattern[str] = re.compile(r'^<(?P<pri>\d{1,3})>(?P<msg>.*)$', re.DOTALL)

    @classmethod
    def parse(
        cls,
        message: str,
        received_at: Optional[datetime] = None,
        client: Optional[str] = None
    ) -> LogRecord:
        """Parse one syslog message into a LogRecord."""
        received_at = received_at or datetime.now(timezone.utc)
        if received_at.tzinfo is None:
            received_at = received_at.replace(tzinfo=timezone.utc)

        match = cls.RFC5424_PATTERN.match(message)
        if match:
            timestamp, content, fields = cls._parse_rfc5424(match, received_at)
        else:
            match = cls.RFC3164_PATTERN.match(message)
            if match:
                timestamp, content, fields = cls._parse_rfc3164(match, received_at)
            else:
                timestamp, content, fields = cls._parse_unformatted(message, received_at)

        if client:
            fields['client'] = client

        return LogRecord(timestamp=timestamp, content=content, fields=fields)

    @classmethod
    def _priority_fields(cls, pri: int) -> Dict[str, Any]:
        return {
            'priority': pri,
            'facility': cls.FACILITY_MAP.get(pri >> 3, 'unknown'),
            'severity': cls.SEVERITY_MAP.get(pri & 0x07, 'unknown')
        }

    @classmethod
    def _parse_rfc5424(cls, match: "re.Match[str]", received_at: datetime):
        data = match.groupdict()
        fields = cls._priority_fields(int(data['pri']))
        fields['version'] = int(data['ver'])
        fields['format'] = 'RFC5424'

        for key, group in (
            ('hostname', 'hostname'),
            ('app_name', 'app'),
            ('proc_id', 'procid'),
            ('msg_id', 'msgid'),
            ('structured_data', 'sd')
        ):
            if data[group] != '-':
                fields[key] = data[group]

        content = (data['msg'] or '').lstrip('\ufeff')
        timestamp = cls._parse_rfc5424_timestamp(data['timestamp']) or received_at
        return timestamp, content, fields

    @classmethod
    def _parse_rfc3164(cls, match: "re.Match[str]", received_at: datetime):
        data = match.groupdict()
        fields = cls._priority_fields(int(data['pri']))
        fields['hostname'] = data['hostname']
        fields['format'] = 'RFC3164'

        content = data['msg']
        tag_match = cls.TAG_PATTERN.match(content)
        if tag_match:
            fields['tag'] = tag_match.group('tag')
            if tag_match.group('pid'):
                fields['proc_id'] = tag_match.group('pid')
            content = tag_match.group('content')

        timestamp = cls._parse_rfc3164_timestamp(data['timestamp'], received_at) or received_at
        return timestamp, content, fields

    @classmethod
    def _parse_unformatted(cls, message: str, received_at: datetime):
        pri_match = cls.PRI_PATTERN.match(message)
        if pri_match:
            fields = cls._priority_fields(int(pri_match.group('pri')))
            content = pri_match.group('msg')
        else:
            fields = cls._priority_fields(DEFAULT_PRIORITY)
            content = message

        fields['format'] = 'unknown'
        return received_at, content, fields

    @staticmethod
    def _parse_rfc5424_timestamp(value: str) -> Optional[datetime]:
        if value == '-':
            return None

        if value.endswith('Z'):
            value = value[:-1] + '+00:00'

        # fromisoformat accepts at most microseconds
        value = re.sub(r'(\.\d{6})\d+', r'\1', value)

        try:
            timestamp = datetime.fromisoformat(value)
        except ValueError:
            logger.debug(f"Unparseable RFC 5424 timestamp: {value}")
            return None

        if timestamp.tzinfo is None:
            timestamp = timestamp.replace(tzinfo=timezone.utc)
        return timestamp

    @staticmethod
    def _parse_rfc3164_timestamp(value: str, received_at: datetime) -> Optional[datetime]:
        value = ' '.join(value.split())
        year = received_at.year

        try:
            timestamp = datetime.strptime(f"{year} {value}", "%Y %b %d %H:%M:%S")
        except ValueError:
            logger.debug(f"Unparseable RFC 3164 timestamp: {value}")
            return None

        timestamp = timestamp.replace(tzinfo=received_at.tzinfo)

        # No year on the wire: a December message received in January
        if timestamp - received_at > timedelta(days=1):
            try:
                timestamp = timestamp.replace(year=year - 1)
            except ValueError:
                # Feb 29 has no counterpart in the previous year
                logger.debug(f"No previous-year date for RFC 3164 timestamp: {value}")
                return None

        return timestamp
