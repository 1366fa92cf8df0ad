"""
File-based exporter for offline analysis and debugging.

Writes one JSON object per message (JSON Lines): message kind, flow tag,
call id, the HEP routing fields and the payload.
"""

import json
import logging
from pathlib import Path

from ..generators.message_builder import OutboundMessage
from .base import MessageExporter

logger = logging.getLogger(__name__)


class FileMessageExporter(MessageExporter):
    """Append messages to a JSON Lines file."""

    def __init__(self, output_path: str | Path, append: bool = True):
        """Initialize file exporter."""
        self.output_path = Path(output_path)
        self.append = append
        self.written = 0
        self.output_path.parent.mkdir(parents=True, exist_ok=True)

        if not append and self.output_path.exists():
            self.output_path.unlink()

    def export(self, message: OutboundMessage) -> bool:
        """Append one message to the file."""
        try:
            with open(self.output_path, "a", encoding="utf-8") as f:
                f.write(json.dumps(message.to_dict(), default=str) + "\n")
        except OSError as e:
            logger.warning("Could not write %s: %s", self.output_path, e)
            return False
        self.written += 1
        return True
