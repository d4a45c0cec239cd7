"""AWS-specific configuration and client setup."""

import logging
import time
from typing import Any, Dict, Optional

import boto3
from botocore.config import Config

from .settings import AWSConfig

logger = logging.getLogger(__name__)


class AWSClientManager:
    """
    Manages the CloudWatch Logs client.

    The client is rebuilt from a fresh boto3 session once it is older than
    ``client_max_age_seconds`` so that long running processes pick up rotated
    credentials. An age of 0 rebuilds it before every use.
    """

    def __init__(self, aws_config: AWSConfig):
        self.config = aws_config
        self._logs_client = None
        self._created_at: Optional[float] = None
        self.clients_created = 0

        self._boto_config = Config(
            region_name=aws_config.region,
            retries={
                'max_attempts': aws_config.max_attempts,
                'mode': 'standard'
            },
            connect_timeout=aws_config.connect_timeout_seconds,
            read_timeout=aws_config.read_timeout_seconds
        )

    @property
    def logs_client(self):
        """Get the CloudWatch Logs client, rebuilding it when it has aged out."""
        if self._logs_client is None or self._is_expired():
            self._logs_client = self._create_logs_client()
            self._created_at = time.monotonic()
            self.clients_created += 1
        return self._logs_client

    def refresh(self) -> None:
        """Drop the cached client; the next access builds a new one."""
        self._logs_client = None
        self._created_at = None

    def client_age(self) -> Optional[float]:
        if self._created_at is None:
            return None
        return time.monotonic() - self._created_at

    def _is_expired(self) -> bool:
        age = self.client_age()
        return age is None or age >= self.config.client_max_age_seconds

    def _create_logs_client(self):
        kwargs: Dict[str, Any] = {'config': self._boto_config}

        if self.config.endpoint_url:
            kwargs['endpoint_url'] = self.config.endpoint_url
        if self.config.ca_bundle:
            # Verify the endpoint against the bundled trust material only
            kwargs['verify'] = self.config.ca_bundle

        session = boto3.session.Session()
        client = session.client('logs', **kwargs)
        logger.debug(
            f"Created CloudWatch Logs client: region={client.meta.region_name}, "
            f"endpoint={client.meta.endpoint_url}"
        )
        return client
