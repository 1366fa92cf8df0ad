"""
Per-tick flow interpreter.

Each live session carries its remaining flow tags. Every pass over the
registry looks at the front tag of each session and dispatches on it:
SIP tags emit one message and are consumed, MEDIA stays at the front until
the call's target duration is reached, END closes the call. Only one tag per
session is handled per pass.
"""

import logging
import random
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Protocol

from ..defaults import DEFAULT_REPORT_INTERVAL_S
from ..generators.message_builder import MessageBuilder, OutboundMessage
from ..generators.metric_generator import SimulationMetrics
from ..scenarios.catalog import FlowTag
from ..statistics.random_values import random_branch
from .registry import SessionRegistry
from .session import Session, UnknownFlowStateError

logger = logging.getLogger(__name__)

# Requests that open a new transaction: SIP method and whether CSeq advances.
TRANSACTIONS: dict[FlowTag, tuple[str, bool]] = {
    FlowTag.INVITE: ("INVITE", False),
    FlowTag.INVITE_AUTH: ("INVITE", True),
    FlowTag.REGISTER: ("REGISTER", False),
    FlowTag.REGISTER_AUTH: ("REGISTER", True),
    FlowTag.DTMF: ("INFO", True),
    FlowTag.BYE: ("BYE", True),
}


class MessageSink(Protocol):
    def export(self, message: OutboundMessage) -> bool: ...


@dataclass
class TickResult:
    """What one advance_all() pass did."""

    emitted: list[OutboundMessage] = field(default_factory=list)
    errors: list[Exception] = field(default_factory=list)
    removed: list[Session] = field(default_factory=list)
    failed: int = 0
    drained: bool = False


class SessionScheduler:
    """Advance every live session by one flow step."""

    def __init__(
        self,
        registry: SessionRegistry,
        builder: MessageBuilder,
        exporter: MessageSink,
        clock: Callable[[], float] = time.time,
        report_interval: float = DEFAULT_REPORT_INTERVAL_S,
        rng: random.Random | None = None,
        metrics: SimulationMetrics | None = None,
    ):
        self.registry = registry
        self.builder = builder
        self.exporter = exporter
        self.clock = clock
        self.report_interval = report_interval
        self.rng = rng
        self.metrics = metrics
        self._stop_requested = False

    @property
    def stop_requested(self) -> bool:
        return self._stop_requested

    def request_stop(self) -> None:
        """Stop accepting work; advance_all() reports drained once the pool is empty."""
        self._stop_requested = True

    @property
    def drained(self) -> bool:
        return self._stop_requested and len(self.registry) == 0

    def advance_all(self, now: float | None = None) -> TickResult:
        """Run one pass over a snapshot of the live sessions."""
        if now is None:
            now = self.clock()
        result = TickResult()
        for session in self.registry:
            try:
                self.advance(session, now, result)
            except UnknownFlowStateError as e:
                logger.error("Dropping session %s: %s", session.call_id, e)
                self._fail(session, e, result)
            except Exception as e:
                # One broken call must not stop the others.
                logger.exception(
                    "Dropping session %s after error at %s", session.call_id, session.current_tag
                )
                self._fail(session, e, result)
        result.drained = self.drained
        return result

    def advance(self, session: Session, now: float, result: TickResult) -> None:
        """Handle the front tag of one session."""
        tag = session.current_tag
        if tag is None:
            # Flow ran out without an explicit END.
            self._end(session, now, result)
            return
        match tag:
            case FlowTag.MEDIA:
                self._media(session, now, result)
            case FlowTag.END:
                session.advance()
                self._end(session, now, result)
            case FlowTag() if tag.is_request:
                transaction = TRANSACTIONS.get(tag)
                if transaction is not None:
                    session.start_transaction(*transaction, branch=random_branch(self.rng))
                elif tag is FlowTag.ACK:
                    # ACK to a 2xx is a transaction of its own; ACK407 reuses the INVITE branch.
                    session.branch = random_branch(self.rng)
                self._emit(self.builder.sip_message(session, tag, session.forward, now), result)
                session.advance()
            case FlowTag() if tag.is_response:
                if tag is FlowTag.OK and session.last_method == "INVITE":
                    session.call_start = now
                    session.last_report = now
                    session.media_established = True
                    session.stats.rtp_start = now
                self._emit(self.builder.sip_message(session, tag, session.reverse, now), result)
                session.advance()
            case _:
                raise UnknownFlowStateError(session.call_id, tag)

    def _media(self, session: Session, now: float, result: TickResult) -> None:
        if session.call_start is None:
            # MEDIA without a preceding answer: media starts now.
            session.call_start = now
            session.last_report = now
            session.media_established = True
            session.stats.rtp_start = now
        last_report = session.last_report if session.last_report is not None else now
        session.duration = now - session.call_start
        elapsed = now - last_report

        if session.duration >= session.target_duration:
            self._emit_teardown_reports(session, now, result)
            session.advance()
        elif elapsed > self.report_interval:
            quality = session.scenario.quality
            session.stats.apply_sample(
                mos=quality.mos.sample(self.rng),
                jitter=quality.jitter.sample(self.rng),
                packet_loss=quality.packet_loss.sample_int(self.rng),
                elapsed=elapsed,
            )
            for message in self.builder.periodic_reports(session, now):
                self._emit(message, result)
            session.last_report = now

    def _emit_teardown_reports(self, session: Session, now: float, result: TickResult) -> None:
        if session.final_reports_sent:
            return
        session.final_reports_sent = True
        for message in self.builder.teardown_reports(session, now):
            self._emit(message, result)

    def _end(self, session: Session, now: float, result: TickResult) -> None:
        if session.media_established:
            self._emit_teardown_reports(session, now, result)
        self._emit(self.builder.call_log(session, now), result)
        self._drop(session, result, completed=True)
        logger.debug(
            "Call %s (%s leg %d) finished after %.1fs",
            session.call_id,
            session.scenario.name,
            session.leg,
            session.duration,
        )

    def _fail(self, session: Session, error: Exception, result: TickResult) -> None:
        self._drop(session, result, completed=False)
        result.errors.append(error)
        if self.metrics is not None:
            self.metrics.record_flow_error(session.scenario.name)

    def _drop(self, session: Session, result: TickResult, completed: bool) -> None:
        if self.registry.remove(session):
            result.removed.append(session)
            if self.metrics is not None:
                self.metrics.record_removed(session.scenario.name, completed=completed)

    def _emit(self, message: OutboundMessage, result: TickResult) -> None:
        sent = self.exporter.export(message)
        result.emitted.append(message)
        if not sent:
            result.failed += 1
        if self.metrics is not None:
            self.metrics.record_message(message.kind.value, sent)
