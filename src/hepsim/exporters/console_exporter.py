"""
Console exporter for debugging and development.

Prints one line per message (timestamp, kind, addresses, first payload line)
and, in verbose mode, the whole payload.
"""

import sys
from typing import TextIO

from ..generators.message_builder import OutboundMessage
from .base import MessageExporter


def format_message(message: OutboundMessage) -> str:
    r = message.routing
    first_line = message.body.split("\r\n", 1)[0] if message.body else ""
    if len(first_line) > 80:
        first_line = first_line[:77] + "..."
    return (
        f"{r.time_sec}.{r.time_usec:06d} {message.kind.value:<20} "
        f"{r.src_ip}:{r.src_port} -> {r.dst_ip}:{r.dst_port} "
        f"[{message.call_id}] {first_line}"
    )


class ConsoleMessageExporter(MessageExporter):
    """Print messages to a text stream (stdout by default)."""

    def __init__(self, stream: TextIO | None = None, verbose: bool = False):
        self.stream = stream if stream is not None else sys.stdout
        self.verbose = verbose

    def export(self, message: OutboundMessage) -> bool:
        print(format_message(message), file=self.stream)
        if self.verbose:
            print(message.body, file=self.stream)
        return True
