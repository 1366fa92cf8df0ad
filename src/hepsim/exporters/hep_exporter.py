"""
HEPv3 transport to a Homer-compatible collector over UDP or TCP.
"""

import asyncio
import logging

from ..config import HepSettings
from ..generators.message_builder import OutboundMessage
from ..hep.codec import HepEncodeError, encode
from .base import MessageExporter

logger = logging.getLogger(__name__)

# Unsent bytes a TCP connection may hold before further messages are dropped.
DEFAULT_MAX_WRITE_BUFFER = 1 << 20


class _HepDatagramProtocol(asyncio.DatagramProtocol):
    def error_received(self, exc: Exception) -> None:
        # ICMP port unreachable and friends surface here on connected UDP sockets.
        logger.warning("HEP collector error: %s", exc)


class HepExporter(MessageExporter):
    """Encapsulate messages in HEPv3 and send them to the collector."""

    def __init__(self, settings: HepSettings, max_write_buffer: int = DEFAULT_MAX_WRITE_BUFFER):
        self.settings = settings
        self.max_write_buffer = max_write_buffer
        self.sent = 0
        self.failed = 0
        self._transport: asyncio.DatagramTransport | None = None
        self._writer: asyncio.StreamWriter | None = None

    @property
    def target(self) -> str:
        return f"{self.settings.transport}://{self.settings.address}:{self.settings.port}"

    async def start(self) -> None:
        """Connect to the collector. Connection errors propagate to the caller."""
        loop = asyncio.get_running_loop()
        if self.settings.transport == "tcp":
            _, self._writer = await asyncio.open_connection(self.settings.address, self.settings.port)
        else:
            self._transport, _ = await loop.create_datagram_endpoint(
                _HepDatagramProtocol,
                remote_addr=(self.settings.address, self.settings.port),
            )
        logger.info("Sending HEP to %s", self.target)

    def _fail(self, message: OutboundMessage, reason: object) -> bool:
        self.failed += 1
        logger.warning("HEP send failed for %s (%s): %s", message.call_id, message.kind.value, reason)
        return False

    def export(self, message: OutboundMessage) -> bool:
        """Encode and send one message."""
        if self._transport is None and self._writer is None:
            raise RuntimeError("HepExporter.export() called before start()")
        try:
            packet = encode(message.body, message.routing)
        except HepEncodeError as e:
            return self._fail(message, e)
        try:
            if self._writer is not None:
                if self._writer.is_closing():
                    return self._fail(message, "connection closed")
                if self._writer.transport.get_write_buffer_size() > self.max_write_buffer:
                    return self._fail(message, "collector is not keeping up")
                self._writer.write(packet)
            else:
                self._transport.sendto(packet)
        except OSError as e:
            return self._fail(message, e)
        self.sent += 1
        return True

    async def shutdown(self) -> None:
        """Close the socket."""
        if self._writer is not None:
            self._writer.close()
            try:
                await self._writer.wait_closed()
            except OSError as e:
                logger.warning("Error closing HEP connection: %s", e)
            self._writer = None
        if self._transport is not None:
            self._transport.close()
            self._transport = None
        logger.info("HEP exporter closed (%d sent, %d failed)", self.sent, self.failed)
