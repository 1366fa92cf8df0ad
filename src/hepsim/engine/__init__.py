"""Session lifecycle engine: registry, scheduler and asyncio driver."""

from .driver import Driver
from .registry import SessionRegistry
from .scheduler import SessionScheduler, TickResult
from .session import MediaStats, Session, UnknownFlowStateError, running_mean

__all__ = [
    "Driver",
    "MediaStats",
    "Session",
    "SessionRegistry",
    "SessionScheduler",
    "TickResult",
    "UnknownFlowStateError",
    "running_mean",
]
