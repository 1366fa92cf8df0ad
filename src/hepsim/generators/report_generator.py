"""
Generate RTP quality reports (JSON payloads, HEP proto types 34/35).

Reports are typed dataclasses; every field carries the collector-facing JSON
key in its metadata and serialize_report() is the single place that turns a
report into text. Field names and the fixed sample values below match what
Homer-style collectors expect from an RTCP-XR/QoS agent.
"""

import json
from dataclasses import dataclass, field, fields
from typing import Any

from ..hep.routing import MediaPorts, RoutingDescriptor

CODEC_PT = 9
CODEC_CLOCK = 8000
CODEC_NAME = "G722"
CODEC_RATE = 8000
SAMPLE_MAC = "00-00-00-00-00-00"


def _key(name: str, default: Any = None) -> Any:
    return field(default=default, metadata={"key": name})


def serialize_report(report: Any) -> str:
    """Render a report dataclass as compact JSON using the collector field names."""
    data = {}
    for f in fields(report):
        value = getattr(report, f.name)
        if isinstance(value, float):
            value = round(value, 3)
        data[f.metadata.get("key", f.name.upper())] = value
    return json.dumps(data, separators=(",", ":"))


@dataclass(frozen=True)
class ReportAddress:
    """Media endpoints as seen by one direction of the call."""

    src_ip: str
    dst_ip: str
    src_port: int
    dst_port: int
    direction: int

    @property
    def report_name(self) -> str:
        return f"{self.src_ip}:{self.src_port}"

    @property
    def party(self) -> int:
        return self.direction

    @classmethod
    def for_direction(
        cls, signalling: RoutingDescriptor, media: MediaPorts, reverse: bool
    ) -> "ReportAddress":
        if reverse:
            return cls(signalling.dst_ip, signalling.src_ip, media.dst_port, media.src_port, 1)
        return cls(signalling.src_ip, signalling.dst_ip, media.src_port, media.dst_port, 0)


@dataclass(frozen=True)
class PeriodicReport:
    correlation_id: str = _key("CORRELATION_ID", "")
    rtp_sip_call_id: str = _key("RTP_SIP_CALL_ID", "")
    delta: float = _key("DELTA", 19.983)
    jitter: float = _key("JITTER", 0.0)
    report_ts: float = _key("REPORT_TS", 0.0)
    tl_byte: int = _key("TL_BYTE", 0)
    skew: float = _key("SKEW", 0.0)
    total_pk: int = _key("TOTAL_PK", 0)
    expected_pk: int = _key("EXPECTED_PK", 0)
    packet_loss: int = _key("PACKET_LOSS", 0)
    seq: int = _key("SEQ", 0)
    max_jitter: float = _key("MAX_JITTER", 0.01)
    max_delta: float = _key("MAX_DELTA", 20.024)
    max_skew: float = _key("MAX_SKEW", 0.172)
    mean_jitter: float = _key("MEAN_JITTER", 0.0)
    min_mos: float = _key("MIN_MOS", 4.032)
    mean_mos: float = _key("MEAN_MOS", 0.0)
    mos: float = _key("MOS", 0.0)
    rfactor: float = _key("RFACTOR", 0.0)
    min_rfactor: float = _key("MIN_RFACTOR", 80.2)
    mean_rfactor: float = _key("MEAN_RFACTOR", 0.0)
    src_ip: str = _key("SRC_IP", "")
    src_port: int = _key("SRC_PORT", 0)
    dst_ip: str = _key("DST_IP", "")
    dst_port: int = _key("DST_PORT", 0)
    src_mac: str = _key("SRC_MAC", SAMPLE_MAC)
    dst_mac: str = _key("DST_MAC", SAMPLE_MAC)
    out_order: int = _key("OUT_ORDER", 0)
    ssrc_chg: int = _key("SSRC_CHG", 0)
    codec_pt: int = _key("CODEC_PT", CODEC_PT)
    clock: int = _key("CLOCK", CODEC_CLOCK)
    codec_name: str = _key("CODEC_NAME", CODEC_NAME)
    direction: int = _key("DIR", 0)
    report_name: str = _key("REPORT_NAME", "")
    party: int = _key("PARTY", 0)
    type: str = _key("TYPE", "PERIODIC")


@dataclass(frozen=True)
class HangupReport:
    """Long end-of-call quality report (proto type 34)."""

    correlation_id: str = _key("CORRELATION_ID", "")
    rtp_sip_call_id: str = _key("RTP_SIP_CALL_ID", "")
    delta: float = _key("DELTA", 25.009)
    jitter: float = _key("JITTER", 0.0)
    report_ts: float = _key("REPORT_TS", 0.0)
    tl_byte: int = _key("TL_BYTE", 0)
    skew: float = _key("SKEW", 5.941)
    total_pk: int = _key("TOTAL_PK", 0)
    expected_pk: int = _key("EXPECTED_PK", 0)
    packet_loss: int = _key("PACKET_LOSS", 0)
    seq: int = _key("SEQ", 0)
    max_jitter: float = _key("MAX_JITTER", 10.378)
    max_delta: float = _key("MAX_DELTA", 53.889)
    max_skew: float = _key("MAX_SKEW", 26.51)
    mean_jitter: float = _key("MEAN_JITTER", 0.0)
    min_mos: float = _key("MIN_MOS", 4.03)
    mean_mos: float = _key("MEAN_MOS", 0.0)
    mos: float = _key("MOS", 0.0)
    rfactor: float = _key("RFACTOR", 0.0)
    min_rfactor: float = _key("MIN_RFACTOR", 93.2)
    mean_rfactor: float = _key("MEAN_RFACTOR", 0.0)
    src_ip: str = _key("SRC_IP", "")
    src_port: int = _key("SRC_PORT", 0)
    dst_ip: str = _key("DST_IP", "")
    dst_port: int = _key("DST_PORT", 0)
    src_mac: str = _key("SRC_MAC", SAMPLE_MAC)
    dst_mac: str = _key("DST_MAC", SAMPLE_MAC)
    out_order: int = _key("OUT_ORDER", 0)
    ssrc_chg: int = _key("SSRC_CHG", 0)
    codec_ch: int = _key("CODEC_CH", 0)
    codec_pt: int = _key("CODEC_PT", CODEC_PT)
    clock: int = _key("CLOCK", CODEC_CLOCK)
    codec_name: str = _key("CODEC_NAME", CODEC_NAME)
    direction: int = _key("DIR", 0)
    report_name: str = _key("REPORT_NAME", "")
    party: int = _key("PARTY", 0)
    ip_qos: int = _key("IP_QOS", 184)
    info_vlan: int = _key("INFO_VLAN", 0)
    video: int = _key("VIDEO", 0)
    report_start: int = _key("REPORT_START", 0)
    report_end: int = _key("REPORT_END", 0)
    ssrc: str = _key("SSRC", "0X6687F6CF")
    rtp_start: int = _key("RTP_START", 0)
    rtp_stop: int = _key("RTP_STOP", 0)
    one_way_rtp: int = _key("ONE_WAY_RTP", 0)
    event: int = _key("EVENT", 0)
    stype: str = _key("STYPE", "SIP:REQ")
    type: str = _key("TYPE", "HANGUP")


@dataclass(frozen=True)
class ShortHangupReport:
    """Compact end-of-call report (proto type 35)."""

    correlation_id: str = _key("CORRELATION_ID", "")
    rtp_sip_call_id: str = _key("RTP_SIP_CALL_ID", "")
    packet_loss: int = _key("PACKET_LOSS", 0)
    expected_pk: int = _key("EXPECTED_PK", 0)
    codec_pt: int = _key("CODEC_PT", CODEC_PT)
    codec_name: str = _key("CODEC_NAME", CODEC_NAME)
    codec_rate: int = _key("CODEC_RATE", CODEC_RATE)
    mean_jitter: float = _key("MEAN_JITTER", 0.0)
    mos: float = _key("MOS", 0.0)
    rfactor: float = _key("RFACTOR", 0.0)
    direction: int = _key("DIR", 0)
    one_way_rtp: int = _key("ONE_WAY_RTP", 0)
    report_name: str = _key("REPORT_NAME", "")
    party: int = _key("PARTY", 0)
    type: str = _key("TYPE", "HANGUP")


@dataclass(frozen=True)
class FinalReport:
    """Whole-call summary (proto type 34)."""

    correlation_id: str = _key("CORRELATION_ID", "")
    rtp_sip_call_id: str = _key("RTP_SIP_CALL_ID", "")
    min_mos: float = _key("MIN_MOS", 0.0)
    min_rfactor: float = _key("MIN_RFACTOR", 0.0)
    min_skew: float = _key("MIN_SKEW", 0.0)
    min_jitter: float = _key("MIN_JITTER", 0.0)
    max_mos: float = _key("MAX_MOS", 0.0)
    max_rfactor: float = _key("MAX_RFACTOR", 0.0)
    max_skew: float = _key("MAX_SKEW", 0.0)
    max_jitter: float = _key("MAX_JITTER", 0.0)
    mean_mos: float = _key("MEAN_MOS", 0.0)
    mean_rfactor: float = _key("MEAN_RFACTOR", 0.0)
    mean_jitter: float = _key("MEAN_JITTER", 0.0)
    total_packet_loss: int = _key("TOTAL_PACKET_LOSS", 0)
    total_packets: int = _key("TOTAL_PACKETS", 0)
    direction: int = _key("DIR", 0)
    report_name: str = _key("REPORT_NAME", "")
    party: int = _key("PARTY", 0)
    one_way_rtp: int = _key("ONE_WAY_RTP", 0)
    type: str = _key("TYPE", "FINAL")


@dataclass(frozen=True)
class CallLog:
    """Call-completion record sent as a HEP log message (proto type 100)."""

    event: str = _key("event", "call_end")
    scenario: str = _key("scenario", "")
    flow: str = _key("flow", "")
    call_id: str = _key("call_id", "")
    correlation_id: str = _key("correlation_id", "")
    leg: int = _key("leg", 1)
    from_number: str = _key("from", "")
    to_number: str = _key("to", "")
    duration: float = _key("duration", 0.0)
    media: bool = _key("media", False)
    mean_mos: float = _key("mean_mos", 0.0)
    packet_loss: int = _key("packet_loss", 0)


def periodic_report(stats: Any, address: ReportAddress, call_id: str, correlation_id: str, now: float) -> PeriodicReport:
    """Interval report from a session's running statistics."""
    return PeriodicReport(
        correlation_id=correlation_id,
        rtp_sip_call_id=call_id,
        jitter=stats.jitter,
        report_ts=now,
        tl_byte=stats.total_bytes,
        total_pk=stats.total_packets,
        expected_pk=stats.total_packets + stats.packet_loss,
        packet_loss=stats.packet_loss,
        mean_jitter=stats.mean_jitter,
        mean_mos=stats.mean_mos,
        mos=stats.mos,
        rfactor=stats.mean_rfactor,
        mean_rfactor=stats.mean_rfactor,
        src_ip=address.src_ip,
        src_port=address.src_port,
        dst_ip=address.dst_ip,
        dst_port=address.dst_port,
        direction=address.direction,
        report_name=address.report_name,
        party=address.party,
    )


def hangup_report(stats: Any, address: ReportAddress, call_id: str, correlation_id: str, now: float) -> HangupReport:
    now_ms = int(now * 1000)
    return HangupReport(
        correlation_id=correlation_id,
        rtp_sip_call_id=call_id,
        jitter=stats.jitter,
        report_ts=now,
        tl_byte=stats.total_bytes,
        total_pk=stats.total_packets,
        expected_pk=stats.total_packets + stats.packet_loss,
        packet_loss=stats.packet_loss,
        mean_jitter=stats.mean_jitter,
        mean_mos=stats.mean_mos,
        mos=stats.mean_mos,
        rfactor=stats.mean_rfactor,
        mean_rfactor=stats.mean_rfactor,
        src_ip=address.src_ip,
        src_port=address.src_port,
        dst_ip=address.dst_ip,
        dst_port=address.dst_port,
        direction=address.direction,
        report_name=address.report_name,
        party=address.party,
        report_start=int(stats.rtp_start * 1000),
        report_end=now_ms,
        rtp_start=int(stats.rtp_start * 1000),
        rtp_stop=now_ms,
    )


def short_hangup_report(stats: Any, address: ReportAddress, call_id: str, correlation_id: str) -> ShortHangupReport:
    return ShortHangupReport(
        correlation_id=correlation_id,
        rtp_sip_call_id=call_id,
        packet_loss=stats.packet_loss,
        expected_pk=stats.total_packets + stats.packet_loss,
        mean_jitter=stats.mean_jitter,
        mos=stats.mean_mos,
        rfactor=stats.mean_rfactor,
        direction=address.direction,
        report_name=address.report_name,
        party=address.party,
    )


def final_report(stats: Any, address: ReportAddress, call_id: str, correlation_id: str) -> FinalReport:
    return FinalReport(
        correlation_id=correlation_id,
        rtp_sip_call_id=call_id,
        min_mos=stats.min_mos,
        min_rfactor=stats.mean_rfactor,
        min_jitter=stats.min_jitter,
        max_mos=stats.max_mos,
        max_rfactor=stats.mean_rfactor,
        max_jitter=stats.max_jitter,
        mean_mos=stats.mean_mos,
        mean_rfactor=stats.mean_rfactor,
        mean_jitter=stats.mean_jitter,
        total_packet_loss=stats.packet_loss,
        total_packets=stats.total_packets,
        direction=address.direction,
        report_name=address.src_ip,
        party=address.party,
    )
