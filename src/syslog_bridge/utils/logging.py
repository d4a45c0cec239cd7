"""Logging setup for the bridge service."""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict

from ..config.settings import LoggingConfig

# Attributes every LogRecord carries; anything else was passed via ``extra``
_STANDARD_ATTRS = frozenset(
    vars(logging.LogRecord('', 0, '', 0, '', (), None))
) | {'message', 'asctime', 'service'}

# The AWS SDK logs every request at DEBUG/INFO
_QUIET_LOGGERS = ('boto3', 'botocore', 'urllib3')


def _record_time(record: logging.LogRecord) -> datetime:
    return datetime.fromtimestamp(record.created, timezone.utc)


def _extra_fields(record: logging.LogRecord) -> Dict[str, Any]:
    return {
        key: value for key, value in vars(record).items()
        if key not in _STANDARD_ATTRS
    }


class JSONFormatter(logging.Formatter):
    """One JSON object per line, with ``extra`` fields merged in."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            'timestamp': _record_time(record).isoformat(),
            'level': record.levelname,
            'service': getattr(record, 'service', None),
            'logger': record.name,
            'message': record.getMessage(),
            'location': f"{record.module}:{record.funcName}:{record.lineno}"
        }
        log_data.update(_extra_fields(record))

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


class TextFormatter(logging.Formatter):
    """``timestamp [LEVEL] logger: message key=value ...``"""

    def format(self, record: logging.LogRecord) -> str:
        timestamp = _record_time(record).strftime('%Y-%m-%d %H:%M:%S')
        formatted = f"{timestamp} [{record.levelname}] {record.name}: {record.getMessage()}"

        extras = _extra_fields(record)
        if extras:
            formatted += " " + " ".join(f"{key}={value}" for key, value in extras.items())

        if record.exc_info:
            formatted += "\n" + self.formatException(record.exc_info)

        return formatted


class ServiceContextFilter(logging.Filter):
    """Tag every record with the service name."""

    def __init__(self, service_name: str):
        super().__init__()
        self.service_name = service_name

    def filter(self, record: logging.LogRecord) -> bool:
        record.service = self.service_name
        return True


def _build_handler(output: str) -> logging.Handler:
    streams = {'stdout': sys.stdout, 'stderr': sys.stderr}
    stream = streams.get(output.lower())
    if stream is not None:
        return logging.StreamHandler(stream)
    return logging.FileHandler(output)


def setup_logging(config: LoggingConfig, service_name: str = "syslog-bridge") -> logging.Handler:
    """
    Replace the root logger's handlers with one configured from ``config``.

    Returns:
        The installed handler
    """
    handler = _build_handler(config.output)
    handler.setFormatter(JSONFormatter() if config.format.lower() == 'json' else TextFormatter())
    handler.addFilter(ServiceContextFilter(service_name))

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, config.level.upper()))
    root_logger.handlers.clear()
    root_logger.addHandler(handler)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger(__name__).info(
        f"Logging configured: level={config.level}, format={config.format}, output={config.output}"
    )
    return handler
