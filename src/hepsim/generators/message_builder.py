"""
Turn session state into outbound messages (payload + HEP routing).

MessageBuilder never mutates a session. The scheduler decides which flow tag
is processed and in which direction; the builder renders the text and stamps
the routing info with protocol type, capture identity, correlation id and
timestamp.
"""

import random
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from ..hep.routing import HepRouting, PayloadType, ProtoType, RoutingDescriptor
from ..scenarios.catalog import FlowTag
from . import report_generator, sip_generator
from .report_generator import ReportAddress, serialize_report
from .sip_generator import SipDialog


class MessageKind(str, Enum):
    REQUEST = "request"
    PROVISIONAL = "provisional"
    FINAL_RESPONSE = "final_response"
    ACK = "ack"
    TEARDOWN = "teardown"
    TEARDOWN_RESPONSE = "teardown_response"
    PERIODIC_REPORT = "periodic_report"
    HANGUP_REPORT = "hangup_report"
    SHORT_HANGUP_REPORT = "short_hangup_report"
    FINAL_REPORT = "final_report"
    CALL_LOG = "call_log"


@dataclass(frozen=True)
class OutboundMessage:
    """A rendered message ready for encapsulation."""

    kind: MessageKind
    body: str
    routing: HepRouting
    call_id: str
    tag: FlowTag | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "tag": self.tag.value if self.tag is not None else None,
            "call_id": self.call_id,
            "routing": self.routing.to_dict(),
            "body": self.body,
        }


SipRenderer = Callable[[SipDialog, random.Random | None], str]

# Every tag that produces a SIP message: renderer and message kind.
SIP_MESSAGES: dict[FlowTag, tuple[SipRenderer, MessageKind]] = {
    FlowTag.INVITE: (sip_generator.invite, MessageKind.REQUEST),
    FlowTag.INVITE_AUTH: (sip_generator.invite_auth, MessageKind.REQUEST),
    FlowTag.REGISTER: (sip_generator.register, MessageKind.REQUEST),
    FlowTag.REGISTER_AUTH: (sip_generator.register_auth, MessageKind.REQUEST),
    FlowTag.DTMF: (sip_generator.info_dtmf, MessageKind.REQUEST),
    FlowTag.ACK_407: (sip_generator.ack, MessageKind.ACK),
    FlowTag.ACK: (sip_generator.ack, MessageKind.ACK),
    FlowTag.BYE: (sip_generator.bye, MessageKind.TEARDOWN),
    FlowTag.TRYING: (sip_generator.trying, MessageKind.PROVISIONAL),
    FlowTag.RINGING: (sip_generator.ringing, MessageKind.PROVISIONAL),
    FlowTag.OK: (sip_generator.ok, MessageKind.FINAL_RESPONSE),
    FlowTag.PROXY_AUTH_REQUIRED: (sip_generator.proxy_auth_required, MessageKind.FINAL_RESPONSE),
    FlowTag.UNAUTHORIZED: (sip_generator.unauthorized, MessageKind.FINAL_RESPONSE),
    FlowTag.FORBIDDEN: (sip_generator.forbidden, MessageKind.FINAL_RESPONSE),
    FlowTag.REQUEST_TIMEOUT: (sip_generator.request_timeout, MessageKind.FINAL_RESPONSE),
    FlowTag.OK_BYE: (sip_generator.ok_bye, MessageKind.TEARDOWN_RESPONSE),
}


class MessageBuilder:
    """Render SIP messages, RTP reports and call logs for a session."""

    def __init__(self, rng: random.Random | None = None):
        self.rng = rng

    @staticmethod
    def dialog_for(session: Any) -> SipDialog:
        return SipDialog(
            call_id=session.call_id,
            seq=session.seq,
            method=session.last_method,
            from_number=session.from_number,
            to_number=session.to_number,
            from_tag=session.from_tag,
            to_tag=session.to_tag,
            caller=session.forward,
            media=session.media,
            correlation_id=session.correlation_id if session.scenario.is_relayed else "",
            branch=session.branch,
        )

    def _routing(
        self,
        session: Any,
        descriptor: RoutingDescriptor,
        now: float,
        proto_type: ProtoType = ProtoType.SIP,
        payload_type: str = PayloadType.SIP,
        mos: int | None = None,
        direction: int = 0,
    ) -> HepRouting:
        return HepRouting.stamp(
            descriptor,
            proto_type=proto_type,
            capture_id=session.capture_id,
            capture_password=session.capture_password,
            correlation_id=session.correlation_id,
            now=now,
            payload_type=payload_type,
            mos=mos,
            direction=direction,
        )

    def sip_message(
        self, session: Any, tag: FlowTag, descriptor: RoutingDescriptor, now: float
    ) -> OutboundMessage:
        """Render the SIP message for ``tag`` travelling along ``descriptor``."""
        renderer, kind = SIP_MESSAGES[tag]
        body = renderer(self.dialog_for(session), self.rng)
        direction = 0 if descriptor == session.forward else 1
        return OutboundMessage(
            kind=kind,
            body=body,
            routing=self._routing(session, descriptor, now, direction=direction),
            call_id=session.call_id,
            tag=tag,
        )

    def _report(self, session: Any, kind: MessageKind, report: Any, address: ReportAddress, now: float, proto_type: ProtoType) -> OutboundMessage:
        descriptor = RoutingDescriptor(
            src_ip=address.src_ip,
            dst_ip=address.dst_ip,
            src_port=address.src_port,
            dst_port=address.dst_port,
        )
        return OutboundMessage(
            kind=kind,
            body=serialize_report(report),
            routing=self._routing(
                session,
                descriptor,
                now,
                proto_type=proto_type,
                payload_type=PayloadType.JSON,
                mos=int(session.stats.mean_mos * 100),
                direction=address.direction,
            ),
            call_id=session.call_id,
            tag=FlowTag.MEDIA,
        )

    def periodic_reports(self, session: Any, now: float) -> list[OutboundMessage]:
        """One periodic report per direction, forward first."""
        messages = []
        for reverse in (False, True):
            address = ReportAddress.for_direction(session.forward, session.media, reverse)
            report = report_generator.periodic_report(
                session.stats, address, session.call_id, session.correlation_id, now
            )
            messages.append(
                self._report(session, MessageKind.PERIODIC_REPORT, report, address, now, ProtoType.RTP_REPORT)
            )
        return messages

    def teardown_reports(self, session: Any, now: float) -> list[OutboundMessage]:
        """
        End-of-call report group: long hangup, short hangup and final summary
        for the forward direction, then the same three for the reverse one.
        """
        messages = []
        stats = session.stats
        for reverse in (False, True):
            address = ReportAddress.for_direction(session.forward, session.media, reverse)
            args = (stats, address, session.call_id, session.correlation_id)
            messages.append(
                self._report(
                    session,
                    MessageKind.HANGUP_REPORT,
                    report_generator.hangup_report(*args, now),
                    address,
                    now,
                    ProtoType.RTP_REPORT,
                )
            )
            messages.append(
                self._report(
                    session,
                    MessageKind.SHORT_HANGUP_REPORT,
                    report_generator.short_hangup_report(*args),
                    address,
                    now,
                    ProtoType.RTP_SHORT_REPORT,
                )
            )
            messages.append(
                self._report(
                    session,
                    MessageKind.FINAL_REPORT,
                    report_generator.final_report(*args),
                    address,
                    now,
                    ProtoType.RTP_REPORT,
                )
            )
        return messages

    def call_log(self, session: Any, now: float) -> OutboundMessage:
        """Call-completion log record (HEP proto type 100)."""
        log = report_generator.CallLog(
            scenario=session.scenario.name,
            flow=session.scenario.flow_name,
            call_id=session.call_id,
            correlation_id=session.correlation_id,
            leg=session.leg,
            from_number=session.from_number,
            to_number=session.to_number,
            duration=session.duration,
            media=session.media_established,
            mean_mos=session.stats.mean_mos,
            packet_loss=session.stats.packet_loss,
        )
        return OutboundMessage(
            kind=MessageKind.CALL_LOG,
            body=serialize_report(log),
            routing=self._routing(
                session, session.forward, now, proto_type=ProtoType.LOG, payload_type=PayloadType.JSON
            ),
            call_id=session.call_id,
            tag=FlowTag.END,
        )
