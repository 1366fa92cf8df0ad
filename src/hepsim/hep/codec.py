"""
HEPv3 (Homer Encapsulation Protocol) encoding.

A HEPv3 packet is the 4-byte magic ``HEP3``, a 16-bit total length and a
sequence of chunks. Each chunk is vendor id (u16), chunk type (u16), chunk
length including the 6-byte chunk header (u16) and the value. All integers
are network byte order.
"""

import ipaddress
import struct
from typing import Any

from .routing import HepRouting

HEP3_MAGIC = b"HEP3"
GENERIC_VENDOR = 0x0000

_HEADER = struct.Struct("!4sH")
_CHUNK_HEADER = struct.Struct("!HHH")

# Generic chunk types
CHUNK_IP_FAMILY = 0x0001
CHUNK_IP_PROTOCOL = 0x0002
CHUNK_IPV4_SRC = 0x0003
CHUNK_IPV4_DST = 0x0004
CHUNK_IPV6_SRC = 0x0005
CHUNK_IPV6_DST = 0x0006
CHUNK_SRC_PORT = 0x0007
CHUNK_DST_PORT = 0x0008
CHUNK_TIME_SEC = 0x0009
CHUNK_TIME_USEC = 0x000A
CHUNK_PROTO_TYPE = 0x000B
CHUNK_CAPTURE_ID = 0x000C
CHUNK_AUTH_KEY = 0x000E
CHUNK_PAYLOAD = 0x000F
CHUNK_CORRELATION_ID = 0x0011
CHUNK_MOS = 0x0020

MAX_PACKET_SIZE = 0xFFFF


class HepEncodeError(ValueError):
    """Raised when routing info cannot be encoded (bad address, oversized payload)."""

    pass


def _chunk(chunk_type: int, value: bytes) -> bytes:
    if len(value) > MAX_PACKET_SIZE - _CHUNK_HEADER.size:
        raise HepEncodeError(f"Chunk 0x{chunk_type:04x} too large ({len(value)} bytes)")
    return _CHUNK_HEADER.pack(GENERIC_VENDOR, chunk_type, _CHUNK_HEADER.size + len(value)) + value


def _u8(chunk_type: int, value: int) -> bytes:
    return _chunk(chunk_type, struct.pack("!B", value))


def _u16(chunk_type: int, value: int) -> bytes:
    return _chunk(chunk_type, struct.pack("!H", value))


def _u32(chunk_type: int, value: int) -> bytes:
    return _chunk(chunk_type, struct.pack("!I", value))


def encode(payload: str | bytes, routing: HepRouting) -> bytes:
    """Encapsulate a raw SIP message or JSON report in a HEPv3 packet."""
    body = payload.encode("utf-8") if isinstance(payload, str) else payload
    try:
        src = ipaddress.ip_address(routing.src_ip)
        dst = ipaddress.ip_address(routing.dst_ip)
    except ValueError as e:
        raise HepEncodeError(f"Invalid address in routing info: {e}") from e
    if src.version != dst.version:
        raise HepEncodeError("Source and destination must use the same IP family")
    for name, port in (("src_port", routing.src_port), ("dst_port", routing.dst_port)):
        if not 0 <= port <= 0xFFFF:
            raise HepEncodeError(f"{name} {port} out of range")
    if not 0 <= routing.capture_id <= 0xFFFFFFFF:
        raise HepEncodeError(f"capture_id {routing.capture_id} out of range")
    # A chunk length is a u16, so the payload alone must leave room for its header.
    if len(body) > MAX_PACKET_SIZE - _HEADER.size - _CHUNK_HEADER.size:
        raise HepEncodeError(f"HEP packet too large (payload of {len(body)} bytes)")

    chunks = [
        _u8(CHUNK_IP_FAMILY, routing.ip_family),
        _u8(CHUNK_IP_PROTOCOL, routing.protocol),
    ]
    if src.version == 4:
        chunks.append(_chunk(CHUNK_IPV4_SRC, src.packed))
        chunks.append(_chunk(CHUNK_IPV4_DST, dst.packed))
    else:
        chunks.append(_chunk(CHUNK_IPV6_SRC, src.packed))
        chunks.append(_chunk(CHUNK_IPV6_DST, dst.packed))
    chunks.extend(
        [
            _u16(CHUNK_SRC_PORT, routing.src_port),
            _u16(CHUNK_DST_PORT, routing.dst_port),
            _u32(CHUNK_TIME_SEC, routing.time_sec),
            _u32(CHUNK_TIME_USEC, routing.time_usec),
            _u8(CHUNK_PROTO_TYPE, int(routing.proto_type)),
            _u32(CHUNK_CAPTURE_ID, routing.capture_id),
        ]
    )
    if routing.capture_password:
        chunks.append(_chunk(CHUNK_AUTH_KEY, routing.capture_password.encode("utf-8")))
    if routing.correlation_id:
        chunks.append(_chunk(CHUNK_CORRELATION_ID, routing.correlation_id.encode("utf-8")))
    if routing.mos is not None:
        chunks.append(_u16(CHUNK_MOS, max(0, min(0xFFFF, routing.mos))))
    chunks.append(_chunk(CHUNK_PAYLOAD, body))

    total = _HEADER.size + sum(len(c) for c in chunks)
    if total > MAX_PACKET_SIZE:
        raise HepEncodeError(f"HEP packet too large ({total} bytes)")
    return _HEADER.pack(HEP3_MAGIC, total) + b"".join(chunks)


def decode_chunks(data: bytes) -> dict[int, bytes]:
    """Split a HEPv3 packet into {chunk_type: raw value} (generic vendor only)."""
    if len(data) < _HEADER.size:
        raise HepEncodeError("Packet shorter than HEP3 header")
    magic, total = _HEADER.unpack_from(data)
    if magic != HEP3_MAGIC:
        raise HepEncodeError(f"Not a HEP3 packet (magic {magic!r})")
    if total != len(data):
        raise HepEncodeError(f"Length mismatch: header says {total}, got {len(data)}")
    chunks: dict[int, bytes] = {}
    offset = _HEADER.size
    while offset < total:
        vendor, chunk_type, length = _CHUNK_HEADER.unpack_from(data, offset)
        if length < _CHUNK_HEADER.size or offset + length > total:
            raise HepEncodeError(f"Malformed chunk 0x{chunk_type:04x} at offset {offset}")
        if vendor == GENERIC_VENDOR:
            chunks[chunk_type] = data[offset + _CHUNK_HEADER.size : offset + length]
        offset += length
    return chunks


def decode(data: bytes) -> dict[str, Any]:
    """Decode the generic chunks of a HEPv3 packet into a readable dict."""
    raw = decode_chunks(data)
    result: dict[str, Any] = {}
    if CHUNK_IP_FAMILY in raw:
        result["ip_family"] = raw[CHUNK_IP_FAMILY][0]
    if CHUNK_IP_PROTOCOL in raw:
        result["protocol"] = raw[CHUNK_IP_PROTOCOL][0]
    for src_key, dst_key in ((CHUNK_IPV4_SRC, CHUNK_IPV4_DST), (CHUNK_IPV6_SRC, CHUNK_IPV6_DST)):
        if src_key in raw:
            result["src_ip"] = str(ipaddress.ip_address(raw[src_key]))
        if dst_key in raw:
            result["dst_ip"] = str(ipaddress.ip_address(raw[dst_key]))
    for key, name in ((CHUNK_SRC_PORT, "src_port"), (CHUNK_DST_PORT, "dst_port"), (CHUNK_MOS, "mos")):
        if key in raw:
            result[name] = struct.unpack("!H", raw[key])[0]
    for key, name in (
        (CHUNK_TIME_SEC, "time_sec"),
        (CHUNK_TIME_USEC, "time_usec"),
        (CHUNK_CAPTURE_ID, "capture_id"),
    ):
        if key in raw:
            result[name] = struct.unpack("!I", raw[key])[0]
    if CHUNK_PROTO_TYPE in raw:
        result["proto_type"] = raw[CHUNK_PROTO_TYPE][0]
    if CHUNK_AUTH_KEY in raw:
        result["capture_password"] = raw[CHUNK_AUTH_KEY].decode("utf-8")
    if CHUNK_CORRELATION_ID in raw:
        result["correlation_id"] = raw[CHUNK_CORRELATION_ID].decode("utf-8")
    if CHUNK_PAYLOAD in raw:
        result["payload"] = raw[CHUNK_PAYLOAD].decode("utf-8", errors="replace")
    return result
