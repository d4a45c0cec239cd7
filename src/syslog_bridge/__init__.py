"""
Syslog to CloudWatch Logs bridge.

Receives syslog records over UDP/TCP, batches them on a short flush window
and appends them, in timestamp order, to a freshly created CloudWatch Logs
stream.
"""

__version__ = "1.0.0"
__author__ = "Syslog Bridge Team"
