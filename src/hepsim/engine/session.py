"""
Live call state: one Session per simulated call leg.
"""

from collections import deque
from dataclasses import dataclass, field

from ..hep.routing import MediaPorts, RoutingDescriptor
from ..scenarios.catalog import FlowEntry
from ..scenarios.scenario_loader import Scenario

# G.711/G.722 at 20 ms packetisation.
PACKETS_PER_SECOND = 50
RTP_PACKET_BYTES = 172


class UnknownFlowStateError(Exception):
    """Raised when a session's flow contains a tag the scheduler cannot interpret."""

    def __init__(self, call_id: str, tag: object):
        super().__init__(f"Unknown flow tag {tag!r} in call {call_id}")
        self.call_id = call_id
        self.tag = tag


def running_mean(mean: float, sample: float) -> float:
    """Exponential running mean used for every media statistic: (mean + sample) / 2."""
    return (mean + sample) / 2


@dataclass
class MediaStats:
    """Running RTP quality statistics for one call leg."""

    mos: float = 4.0
    mean_mos: float = 4.0
    min_mos: float = 4.0
    max_mos: float = 4.0
    jitter: float = 0.0
    mean_jitter: float = 0.0
    min_jitter: float = 0.0
    max_jitter: float = 0.0
    packet_loss: int = 0
    total_packets: int = 0
    total_bytes: int = 0
    # Stored rather than derived; reports carry it unchanged.
    mean_rfactor: float = 97.5
    direction: int = 0
    rtp_start: float = 0.0
    samples: int = 0

    def apply_sample(self, mos: float, jitter: float, packet_loss: int, elapsed: float) -> None:
        """Fold one reporting window into the running statistics."""
        if self.samples == 0:
            self.min_mos = self.max_mos = mos
            self.min_jitter = self.max_jitter = jitter
        else:
            self.min_mos = min(self.min_mos, mos)
            self.max_mos = max(self.max_mos, mos)
            self.min_jitter = min(self.min_jitter, jitter)
            self.max_jitter = max(self.max_jitter, jitter)
        self.mos = mos
        self.mean_mos = running_mean(self.mean_mos, mos)
        self.jitter = jitter
        self.mean_jitter = running_mean(self.mean_jitter, jitter)
        self.packet_loss += packet_loss
        packets = max(0, int(elapsed * PACKETS_PER_SECOND) - packet_loss)
        self.total_packets += packets
        self.total_bytes += packets * RTP_PACKET_BYTES
        self.samples += 1


@dataclass(eq=False)
class Session:
    """One call leg: identity, flow cursor, timers, routing and media statistics."""

    session_id: int
    scenario: Scenario
    call_id: str
    from_number: str
    to_number: str
    flow: deque[FlowEntry]
    forward: RoutingDescriptor
    media: MediaPorts
    capture_id: int
    capture_password: str
    correlation_id: str
    target_duration: float
    created_at: float
    from_tag: str
    to_tag: str
    seq: int = 1
    leg: int = 1
    call_start: float | None = None
    last_report: float | None = None
    duration: float = 0.0
    stats: MediaStats = field(default_factory=MediaStats)
    media_established: bool = False
    final_reports_sent: bool = False
    last_method: str = "INVITE"
    # Via branch of the current client transaction, echoed by its responses.
    branch: str = ""

    @property
    def reverse(self) -> RoutingDescriptor:
        return self.forward.reversed()

    @property
    def current_tag(self) -> FlowEntry | None:
        return self.flow[0] if self.flow else None

    def advance(self) -> None:
        """Consume the current tag."""
        self.flow.popleft()

    def start_transaction(self, method: str, new_cseq: bool, branch: str) -> None:
        if new_cseq:
            self.seq += 1
        self.last_method = method
        self.branch = branch
