"""
Common interface of message exporters.

export() is synchronous and must not block: the scheduler calls it in flow
order and relies on it returning promptly. It returns False (after logging)
when a message could not be delivered; the call keeps advancing either way.
"""

from abc import ABC, abstractmethod

from ..generators.message_builder import OutboundMessage


class MessageExporter(ABC):
    """Destination for rendered messages."""

    async def start(self) -> None:
        """Open connections or files. Called once by the driver before ticking."""

    @abstractmethod
    def export(self, message: OutboundMessage) -> bool:
        """Deliver one message; True when it was handed off."""

    async def shutdown(self) -> None:
        """Release resources. Called once when the run ends."""
