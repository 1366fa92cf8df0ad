"""In-memory exporter for tests and dry runs."""

from ..generators.message_builder import OutboundMessage
from ..hep.codec import encode
from .base import MessageExporter


class MemoryMessageExporter(MessageExporter):
    """Keep every exported message (and optionally its HEP packet) in lists."""

    def __init__(self, encode_packets: bool = False, fail: bool = False):
        self.encode_packets = encode_packets
        self.fail = fail
        self.messages: list[OutboundMessage] = []
        self.packets: list[bytes] = []
        self.started = False
        self.closed = False

    async def start(self) -> None:
        self.started = True

    def export(self, message: OutboundMessage) -> bool:
        if self.fail:
            return False
        # Messages the codec refuses are not recorded.
        if self.encode_packets:
            self.packets.append(encode(message.body, message.routing))
        self.messages.append(message)
        return True

    async def shutdown(self) -> None:
        self.closed = True
