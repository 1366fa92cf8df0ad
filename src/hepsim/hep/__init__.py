"""HEPv3 encapsulation and routing descriptors."""

from .codec import HepEncodeError, decode, encode
from .routing import (
    HepRouting,
    MediaPorts,
    PayloadType,
    ProtoType,
    RoutingDescriptor,
    split_timestamp,
)

__all__ = [
    "HepEncodeError",
    "HepRouting",
    "MediaPorts",
    "PayloadType",
    "ProtoType",
    "RoutingDescriptor",
    "decode",
    "encode",
    "split_timestamp",
]
