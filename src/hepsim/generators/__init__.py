"""Message, report, log and metric generators."""

from .log_generator import configure_logging
from .message_builder import MessageBuilder, MessageKind, OutboundMessage
from .metric_generator import SimulationMetrics

__all__ = [
    "MessageBuilder",
    "MessageKind",
    "OutboundMessage",
    "SimulationMetrics",
    "configure_logging",
]
