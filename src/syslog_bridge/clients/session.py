"""Destination stream identity and sequence token state."""

import asyncio
import logging
import uuid
from enum import Enum
from typing import Any, Dict, Optional

from botocore.exceptions import BotoCoreError, ClientError

from ..config.aws_config import AWSClientManager
from ..errors import InitializationError

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    UNINITIALIZED = "uninitialized"
    READY = "ready"


class StreamSession:
    """
    The log stream this process writes to.

    A new stream name is generated for every process run. The sequence token
    is None until the first successful append and afterwards always holds the
    token returned by the most recent one; only the dispatcher updates it.
    """

    def __init__(self, group_name: str, stream_name: Optional[str] = None):
        self.group_name = group_name
        self.stream_name = stream_name or str(uuid.uuid4())
        self.sequence_token: Optional[str] = None
        self.state = SessionState.UNINITIALIZED

    @property
    def is_ready(self) -> bool:
        return self.state == SessionState.READY

    async def initialize(self, aws_client_manager: AWSClientManager) -> None:
        """
        Create the log stream. Must succeed before any append.

        Raises:
            InitializationError: If the stream cannot be created or the
                session was already initialized
        """
        if self.is_ready:
            raise InitializationError(f"Stream {self.stream_name} is already initialized")

        logs_client = aws_client_manager.logs_client

        try:
            await asyncio.get_running_loop().run_in_executor(
                None,
                lambda: logs_client.create_log_stream(
                    logGroupName=self.group_name,
                    logStreamName=self.stream_name
                )
            )
        except (ClientError, BotoCoreError) as e:
            raise InitializationError(
                f"Failed to create log stream {self.stream_name} in group {self.group_name}: {e}"
            ) from e

        self.sequence_token = None
        self.state = SessionState.READY
        logger.info(f"Created CloudWatch Logs stream: {self.stream_name}")

    def update_token(self, token: Optional[str]) -> None:
        self.sequence_token = token

    def describe(self) -> Dict[str, Any]:
        return {
            'group': self.group_name,
            'stream': self.stream_name,
            'state': self.state.value,
            'has_sequence_token': self.sequence_token is not None
        }
