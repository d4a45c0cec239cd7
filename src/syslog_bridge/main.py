"""Syslog Bridge Service - syslog over UDP/TCP to a CloudWatch Logs stream."""

import argparse
import asyncio
import logging
import os
import signal
import sys
from datetime import datetime, timezone
from typing import List, Optional

from .aggregator import BatchAggregator
from .clients.dispatcher import StreamDispatcher
from .clients.session import StreamSession
from .config.aws_config import AWSClientManager
from .config.settings import BridgeSettings, load_settings
from .errors import ConfigurationError, InitializationError
from .listener.server import SyslogServer
from .models import EncodingMode
from .record_queue import RecordQueue
from .utils.logging import setup_logging

logger = logging.getLogger(__name__)


class BridgeService:
    """Wires the listener, queue, aggregator and dispatcher together."""

    def __init__(self, settings: BridgeSettings, aws_client_manager: Optional[AWSClientManager] = None):
        self.settings = settings
        group_name = settings.require_log_group()

        self.aws_client_manager = aws_client_manager or AWSClientManager(settings.aws)
        self.session = StreamSession(group_name)
        self.queue = RecordQueue(maxsize=settings.pipeline.queue_size)

        encoding = EncodingMode.JSON if settings.json_output else EncodingMode.TEXT
        self.dispatcher = StreamDispatcher(self.aws_client_manager, self.session, encoding)
        self.aggregator = BatchAggregator(
            self.queue,
            self.dispatcher,
            flush_interval=settings.pipeline.flush_interval_seconds,
            overlap_dispatch=settings.pipeline.overlap_dispatch
        )
        self.server = SyslogServer(
            self.queue,
            host=settings.host,
            port=settings.port,
            enable_udp=settings.listener.enable_udp,
            enable_tcp=settings.listener.enable_tcp,
            max_message_size=settings.listener.max_message_size
        )
        self._shutdown_event = asyncio.Event()

    async def start(self):
        """
        Create the stream, then start batching and listening.

        Raises:
            InitializationError: If the stream cannot be created; nothing is
                started in that case
        """
        logger.info(f"Starting syslog server on {self.settings.host}:{self.settings.port}")
        logger.info(f"Logging to group: {self.session.group_name}")

        await self.session.initialize(self.aws_client_manager)
        await self.aggregator.start()
        await self.server.start()

    async def stop(self):
        """Stop listening, then flush what was received."""
        logger.info("Shutting down Syslog Bridge Service")
        await self.server.stop()
        await self.aggregator.stop(drain=self.settings.pipeline.drain_on_shutdown)
        logger.info("Syslog Bridge Service stopped")

    def request_shutdown(self):
        self._shutdown_event.set()

    async def run(self):
        """Start, serve until a shutdown is requested, then stop."""
        await self.start()
        self._setup_signal_handlers()

        try:
            await self._shutdown_event.wait()
        finally:
            await self.stop()

    def _setup_signal_handlers(self):
        loop = asyncio.get_running_loop()
        for signum in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(signum, self._on_signal, signum)
            except (NotImplementedError, RuntimeError):
                # Not supported off the main thread or on some platforms
                logger.debug(f"Cannot install handler for signal {signum}")

    def _on_signal(self, signum: int):
        logger.info(f"Received signal {signum}, initiating shutdown")
        self.request_shutdown()

    async def health_check(self) -> dict:
        """Report session state and pipeline statistics."""
        health_status = {
            "service": self.settings.service_name,
            "status": "healthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "components": {
                "session": self.session.describe(),
                "queue": self.queue.get_stats(),
                "aggregator": self.aggregator.get_stats(),
                "dispatcher": dict(self.dispatcher.stats),
                "listener": self.server.get_stats()
            }
        }

        if not self.session.is_ready or not self.aggregator.running:
            health_status["status"] = "unhealthy"
        elif self.aggregator.stats['batches_failed'] > 0:
            health_status["status"] = "degraded"

        return health_status


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Forward syslog to CloudWatch Logs")
    parser.add_argument(
        "--config",
        default=os.getenv("CONFIG_FILE"),
        help="YAML configuration file (default: $CONFIG_FILE)"
    )
    parser.add_argument(
        "--json",
        action="store_true",
        default=None,
        help="send events in JSON format"
    )
    parser.add_argument("--port", type=int, default=None, help="listen port (default: $PORT or 514)")
    return parser.parse_args(argv)


async def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point; returns the process exit status."""
    args = parse_args(argv)

    try:
        settings = load_settings(args.config, json_output=args.json, port=args.port)
        setup_logging(settings.logging, settings.service_name)
        service = BridgeService(settings)
    except ConfigurationError as e:
        logger.critical(f"Configuration error: {e}")
        return 1

    try:
        await service.run()
    except InitializationError as e:
        logger.critical(f"Cannot start: {e}")
        return 1
    except Exception as e:
        logger.error(f"Service failed: {e}", exc_info=True)
        return 1

    return 0


def run():
    """Console script entry point."""
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
