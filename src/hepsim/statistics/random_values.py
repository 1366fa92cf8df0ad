"""
Random identifiers and values used throughout call simulation.

Every helper accepts an optional ``random.Random`` so a seeded generator can
be threaded through the registry and scheduler for reproducible runs; without
one the module-level ``random`` state is used.
"""

import ipaddress
import random
import string
from collections.abc import Sequence
from typing import Any, TypeVar

T = TypeVar("T")

_ALPHANUMERIC = string.ascii_uppercase + string.ascii_lowercase + string.digits
BRANCH_MAGIC_COOKIE = "z9hG4bK"
CALL_ID_PREFIX = "hepsim-"


def _source(rng: random.Random | None) -> Any:
    return rng if rng is not None else random


def random_string(length: int = 10, rng: random.Random | None = None) -> str:
    """Random alphanumeric string of the given length."""
    r = _source(rng)
    return "".join(r.choice(_ALPHANUMERIC) for _ in range(length))


def random_branch(rng: random.Random | None = None) -> str:
    """Via branch parameter (RFC 3261 magic cookie + 8 random chars)."""
    return BRANCH_MAGIC_COOKIE + random_string(8, rng)


def random_integer(low: int, high: int, rng: random.Random | None = None) -> int:
    """Random integer in [low, high] (both inclusive)."""
    return _source(rng).randint(int(low), int(high))


def random_float(low: float, high: float, rng: random.Random | None = None) -> float:
    """Random float in [low, high), rounded to 3 decimal places."""
    return round(_source(rng).random() * (high - low) + low, 3)


def random_phone_number(rng: random.Random | None = None) -> str:
    """E.164-style number with +1 prefix and ten random digits."""
    return "+1" + str(random_integer(1000000000, 9999999999, rng))


def random_call_id(rng: random.Random | None = None) -> str:
    """Call-ID of the form hepsim-XXXXXXXXXX."""
    return CALL_ID_PREFIX + random_string(10, rng)


def _random_ip(rng: random.Random | None = None) -> str:
    r = _source(rng)
    return ".".join(str(round(r.random() * 254)) for _ in range(4))


_PRIVATE_NETWORKS = (
    ipaddress.IPv4Network("10.0.0.0/8"),
    ipaddress.IPv4Network("172.16.0.0/12"),
    ipaddress.IPv4Network("192.168.0.0/16"),
)


def is_private_ip(ip: str) -> bool:
    """True for RFC 1918 addresses."""
    try:
        addr = ipaddress.IPv4Address(ip)
    except ipaddress.AddressValueError:
        return False
    return any(addr in net for net in _PRIVATE_NETWORKS)


def random_public_ip(rng: random.Random | None = None) -> str:
    """Random IPv4 address outside the private ranges."""
    while True:
        ip = _random_ip(rng)
        if not is_private_ip(ip):
            return ip


def pick_random_element(items: Sequence[T], rng: random.Random | None = None) -> T | None:
    """Random element of a sequence, or None when it is empty."""
    if not items:
        return None
    return _source(rng).choice(items)

