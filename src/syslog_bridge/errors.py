"""Exception types raised by the bridge."""

from typing import Optional


class BridgeError(Exception):
    """Base class for all bridge errors."""


class ConfigurationError(BridgeError):
    """Settings are missing or invalid; the service cannot start."""


class InitializationError(BridgeError):
    """The destination stream could not be created. Fatal."""


class RemoteAppendError(BridgeError):
    """
    A single append to the remote stream failed.

    Non-fatal: the batch is dropped and the sequence token stays as it was.
    """

    def __init__(self, message: str, error_code: Optional[str] = None, events_lost: int = 0):
        super().__init__(message)
        self.error_code = error_code
        self.events_lost = events_lost
