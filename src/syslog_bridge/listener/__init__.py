"""Syslog network listener: the producer side of the record queue."""

from .server import SyslogServer
from .syslog_parser import SyslogParser

__all__ = ["SyslogServer", "SyslogParser"]
