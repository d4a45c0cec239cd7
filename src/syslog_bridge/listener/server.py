"""Asyncio syslog listener feeding the record queue over UDP and TCP."""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Set, Tuple

from ..record_queue import RecordQueue
from .syslog_parser import SyslogParser

logger = logging.getLogger(__name__)

MAX_OCTET_COUNT_DIGITS = 10


class FrameTooLarge(Exception):
    """A TCP frame exceeds the configured maximum message size."""


class _UDPProtocol(asyncio.DatagramProtocol):
    """One syslog message per datagram."""

    def __init__(self, server: "SyslogServer"):
        self.server = server

    def datagram_received(self, data: bytes, addr: Tuple[str, int]) -> None:
        self.server._on_datagram(data, addr)

    def error_received(self, exc: Exception) -> None:
        logger.warning(f"UDP receive error: {exc}")


class SyslogServer:
    """
    Receive syslog over UDP and TCP and hand parsed records to the queue.

    TCP connections are read one frame at a time and each record is awaited
    into the queue, so a full queue stops reading from the socket. Datagrams
    cannot be pushed back on; they go through a bounded buffer drained by a
    single feeder task, and datagrams arriving while that buffer is full are
    counted and dropped.
    """

    def __init__(
        self,
        queue: RecordQueue,
        host: str = "0.0.0.0",
        port: int = 514,
        enable_udp: bool = True,
        enable_tcp: bool = True,
        max_message_size: int = 65535
    ):
        self.queue = queue
        self.host = host
        self.port = port
        self.enable_udp = enable_udp
        self.enable_tcp = enable_tcp
        self.max_message_size = max_message_size

        self._udp_transport: Optional[asyncio.DatagramTransport] = None
        self._udp_buffer: Optional["asyncio.Queue[Tuple[bytes, str]]"] = None
        self._udp_feeder: Optional[asyncio.Task] = None
        self._tcp_server: Optional[asyncio.AbstractServer] = None
        self._connections: Set[asyncio.Task] = set()
        self._running = False

        self.stats = {
            'udp_messages': 0,
            'udp_dropped': 0,
            'tcp_messages': 0,
            'tcp_connections': 0,
            'oversized_frames': 0,
            'parse_errors': 0
        }

    @property
    def udp_address(self) -> Optional[Tuple[str, int]]:
        if self._udp_transport is None:
            return None
        return self._udp_transport.get_extra_info('sockname')[:2]

    @property
    def tcp_address(self) -> Optional[Tuple[str, int]]:
        if self._tcp_server is None or not self._tcp_server.sockets:
            return None
        return self._tcp_server.sockets[0].getsockname()[:2]

    async def start(self):
        """Bind the enabled listeners."""
        if self._running:
            return

        loop = asyncio.get_running_loop()

        if self.enable_udp:
            self._udp_buffer = asyncio.Queue(maxsize=self.queue.maxsize)
            self._udp_feeder = asyncio.create_task(self._feed_udp())
            self._udp_transport, _ = await loop.create_datagram_endpoint(
                lambda: _UDPProtocol(self),
                local_addr=(self.host, self.port)
            )
            logger.info(f"Listening for syslog on udp://{self.host}:{self.udp_address[1]}")

        if self.enable_tcp:
            self._tcp_server = await asyncio.start_server(
                self._handle_connection,
                self.host,
                self.port,
                limit=self.max_message_size + 1
            )
            logger.info(f"Listening for syslog on tcp://{self.host}:{self.tcp_address[1]}")

        self._running = True

    async def stop(self):
        """Close listeners and open connections."""
        if not self._running:
            return

        self._running = False

        if self._udp_transport:
            self._udp_transport.close()
            self._udp_transport = None

        if self._udp_feeder:
            # Hand over whatever already arrived before stopping the feeder
            await self._udp_buffer.join()
            self._udp_feeder.cancel()
            try:
                await self._udp_feeder
            except asyncio.CancelledError:
                pass

        if self._tcp_server:
            self._tcp_server.close()

        for task in list(self._connections):
            task.cancel()
        if self._connections:
            await asyncio.gather(*self._connections, return_exceptions=True)

        if self._tcp_server:
            await self._tcp_server.wait_closed()
            self._tcp_server = None

        logger.info("Syslog listener stopped")

    def _on_datagram(self, data: bytes, addr: Tuple[str, int]) -> None:
        try:
            self._udp_buffer.put_nowait((data, addr[0]))
        except asyncio.QueueFull:
            self.stats['udp_dropped'] += 1
            logger.warning(f"UDP buffer full, dropped datagram from {addr[0]}")

    async def _feed_udp(self):
        while True:
            data, client = await self._udp_buffer.get()
            try:
                if await self._emit(data, client):
                    self.stats['udp_messages'] += 1
            finally:
                self._udp_buffer.task_done()

    async def _handle_connection(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
        task = asyncio.current_task()
        self._connections.add(task)
        peer = writer.get_extra_info('peername')
        client = peer[0] if peer else None
        self.stats['tcp_connections'] += 1
        logger.debug(f"TCP connection from {client}")

        try:
            while True:
                frame = await self._read_frame(reader)
                if frame is None:
                    break

                if await self._emit(frame, client):
                    self.stats['tcp_messages'] += 1
        except (asyncio.IncompleteReadError, ConnectionError) as e:
            logger.debug(f"TCP connection from {client} ended: {e}")
        except FrameTooLarge as e:
            self.stats['oversized_frames'] += 1
            logger.warning(f"Closing TCP connection from {client}: {e}")
        finally:
            self._connections.discard(task)
            writer.close()

    async def _read_frame(self, reader: asyncio.StreamReader) -> Optional[bytes]:
        """
        Read one frame, either octet counted (``LEN SP MSG``, RFC 6587) or
        terminated by a newline. Returns None at end of stream.
        """
        first = await reader.read(1)
        if not first:
            return None

        prefix = first
        if first.isdigit():
            # The count must be followed directly by SP on the same line
            while len(prefix) <= MAX_OCTET_COUNT_DIGITS:
                byte = await reader.read(1)
                if not byte or byte == b'\n':
                    return prefix
                if byte == b' ':
                    length = int(prefix)
                    if length > self.max_message_size:
                        raise FrameTooLarge(f"frame of {length} bytes exceeds {self.max_message_size}")
                    return await reader.readexactly(length)
                prefix += byte
                if not byte.isdigit():
                    break

        try:
            rest = await reader.readuntil(b'\n')
        except asyncio.IncompleteReadError as e:
            # Last frame without a trailing newline
            rest = e.partial
        except asyncio.LimitOverrunError as e:
            raise FrameTooLarge(f"no newline within {self.max_message_size} bytes") from e

        return prefix + rest

    def _decode(self, data: bytes) -> str:
        return data.decode('utf-8', errors='replace').rstrip('\r\n\x00')

    async def _emit(self, data: bytes, client: Optional[str]) -> bool:
        """Parse one message and enqueue it. Returns False if nothing was queued."""
        message = self._decode(data)
        if not message:
            return False

        try:
            record = SyslogParser.parse(message, received_at=datetime.now(timezone.utc), client=client)
        except Exception as e:
            self.stats['parse_errors'] += 1
            logger.error(f"Failed to parse syslog message from {client}: {e}", exc_info=True)
            return False

        await self.queue.enqueue(record)
        return True

    def get_stats(self) -> Dict[str, Any]:
        return {
            **self.stats,
            'open_connections': len(self._connections),
            'running': self._running
        }
