"""CloudWatch Logs stream session and dispatcher."""

from .dispatcher import StreamDispatcher
from .session import SessionState, StreamSession

__all__ = ["StreamDispatcher", "StreamSession", "SessionState"]
