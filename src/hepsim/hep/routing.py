"""
Routing descriptors attached to every emitted message.

A RoutingDescriptor is one signalling direction (addresses and ports). The
HepRouting built from it at emission time carries everything the HEP
encapsulation needs: direction-adjusted addresses, protocol type, capture
agent identity, correlation id and the capture timestamp.
"""

import ipaddress
import math
from dataclasses import asdict, dataclass
from enum import IntEnum
from typing import Any


class ProtoType(IntEnum):
    """HEP protocol type (chunk 0x000b) values used by the simulator."""

    SIP = 1
    RTP_REPORT = 34
    RTP_SHORT_REPORT = 35
    LOG = 100


class PayloadType:
    SIP = "SIP"
    JSON = "JSON"


def split_timestamp(now: float) -> tuple[int, int]:
    """Split an epoch timestamp (seconds, float) into whole seconds and microseconds."""
    sec = math.floor(now)
    usec = min(999_999, int(round((now - sec) * 1_000_000)))
    return int(sec), usec


@dataclass(frozen=True)
class RoutingDescriptor:
    """Source and destination address/port for one direction."""

    src_ip: str
    dst_ip: str
    src_port: int
    dst_port: int

    def reversed(self) -> "RoutingDescriptor":
        """Same path in the opposite direction."""
        return RoutingDescriptor(
            src_ip=self.dst_ip,
            dst_ip=self.src_ip,
            src_port=self.dst_port,
            dst_port=self.src_port,
        )


@dataclass(frozen=True)
class MediaPorts:
    """RTP ports negotiated in SDP: caller side (src) and callee side (dst)."""

    src_port: int
    dst_port: int


@dataclass(frozen=True)
class HepRouting:
    """Fully-populated routing info handed to the encapsulator."""

    src_ip: str
    dst_ip: str
    src_port: int
    dst_port: int
    proto_type: ProtoType
    capture_id: int
    capture_password: str
    correlation_id: str
    time_sec: int
    time_usec: int
    payload_type: str = PayloadType.SIP
    protocol: int = 17
    mos: int | None = None
    direction: int = 0

    @property
    def ip_family(self) -> int:
        """2 (AF_INET) or 10 (AF_INET6), as HEP expects."""
        return 10 if ipaddress.ip_address(self.src_ip).version == 6 else 2

    @classmethod
    def stamp(
        cls,
        descriptor: RoutingDescriptor,
        *,
        proto_type: ProtoType,
        capture_id: int,
        capture_password: str,
        correlation_id: str,
        now: float,
        payload_type: str = PayloadType.SIP,
        mos: int | None = None,
        direction: int = 0,
    ) -> "HepRouting":
        """Build routing info for one message, timestamped at ``now``."""
        time_sec, time_usec = split_timestamp(now)
        return cls(
            src_ip=descriptor.src_ip,
            dst_ip=descriptor.dst_ip,
            src_port=descriptor.src_port,
            dst_port=descriptor.dst_port,
            proto_type=proto_type,
            capture_id=capture_id,
            capture_password=capture_password,
            correlation_id=correlation_id,
            time_sec=time_sec,
            time_usec=time_usec,
            payload_type=payload_type,
            mos=mos,
            direction=direction,
        )

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["proto_type"] = int(self.proto_type)
        return data
