"""
Defaults and environment overrides for the HEP collector target.

HEP_ADDRESS / HEP_PORT / HEP_TRANSPORT override the `hep` section of the
config file (aligns with the collector deployment). HEP_CAPTURE_ID and
HEP_PASSWORD override the capture agent identity.
"""

import os

DEFAULT_HEP_ADDRESS = "127.0.0.1"
DEFAULT_HEP_PORT = 9060
DEFAULT_HEP_TRANSPORT = "udp"
DEFAULT_CAPTURE_ID = 2001
DEFAULT_CAPTURE_PASSWORD = "myHep"

# Scheduler cadence (ms) and mid-call report cadence (s).
DEFAULT_TICK_INTERVAL_MS = 20
DEFAULT_MIN_TICK_INTERVAL_MS = 1000
DEFAULT_REPORT_INTERVAL_S = 30.0
DEFAULT_PEAK_HOUR_UTC = 11

DEFAULT_SIP_PORT = 5060
RTP_PORT_RANGE = (10000, 60000)

SUPPORTED_TRANSPORTS = ("udp", "tcp")


def _env_int(name: str) -> int | None:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError:
        raise SystemExit(f"{name} must be an integer (got {raw!r}).") from None


def get_env_overrides() -> dict[str, object]:
    """HEP target overrides from env; only keys that are set are returned."""
    overrides: dict[str, object] = {}
    address = os.environ.get("HEP_ADDRESS", "").strip()
    if address:
        overrides["address"] = address
    port = _env_int("HEP_PORT")
    if port is not None:
        overrides["port"] = port
    transport = os.environ.get("HEP_TRANSPORT", "").strip().lower()
    if transport:
        if transport not in SUPPORTED_TRANSPORTS:
            raise SystemExit(
                f"HEP_TRANSPORT must be one of {', '.join(SUPPORTED_TRANSPORTS)} (got {transport!r})."
            )
        overrides["transport"] = transport
    capture_id = _env_int("HEP_CAPTURE_ID")
    if capture_id is not None:
        overrides["capture_id"] = capture_id
    password = os.environ.get("HEP_PASSWORD", "").strip()
    if password:
        overrides["capture_password"] = password
    return overrides


def debug_enabled() -> bool:
    """True when HEPSIM_DEBUG (or DEBUG) is set to a truthy value."""
    raw = (os.environ.get("HEPSIM_DEBUG") or os.environ.get("DEBUG") or "").strip().lower()
    return raw in ("1", "true", "yes", "on")
