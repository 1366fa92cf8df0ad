"""
Configuration for the HEP call-flow simulator.

Config files live outside src/ under resource/config/. When running from
source, resource/ at the project root is used. When the package is installed,
set HEPSIM_ROOT to a directory containing config/ (e.g. the project's
resource/ folder), or point HEPSIM_CONFIG / --config at a config file.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .defaults import (
    DEFAULT_CAPTURE_ID,
    DEFAULT_CAPTURE_PASSWORD,
    DEFAULT_HEP_ADDRESS,
    DEFAULT_HEP_PORT,
    DEFAULT_HEP_TRANSPORT,
    DEFAULT_MIN_TICK_INTERVAL_MS,
    DEFAULT_PEAK_HOUR_UTC,
    DEFAULT_REPORT_INTERVAL_S,
    DEFAULT_TICK_INTERVAL_MS,
    SUPPORTED_TRANSPORTS,
    get_env_overrides,
)


class ConfigurationError(Exception):
    """Raised when the simulator configuration is missing or invalid."""

    pass


MAX_CAPTURE_ID = 0xFFFFFFFF


def check_port(value: int, what: str) -> int:
    """Reject ports that do not fit a UDP/TCP port number."""
    if not 1 <= value <= 0xFFFF:
        raise ConfigurationError(f"{what} port must be between 1 and 65535 (got {value})")
    return value


def check_capture_id(value: int, what: str) -> int:
    """Capture ids are unsigned 32-bit in HEP."""
    if not 0 <= value <= MAX_CAPTURE_ID:
        raise ConfigurationError(
            f"{what} capture_id must be between 0 and {MAX_CAPTURE_ID} (got {value})"
        )
    return value


def get_resources_root() -> Path:
    """Return the root directory for config resources.

    Resolution order:
    1. HEPSIM_ROOT env var (must contain config/)
    2. resource/ under directory containing pyproject.toml (when running from source)
    3. hepsim/resources/ next to this package (when installed; set HEPSIM_ROOT if not present)
    """
    env_root = os.environ.get("HEPSIM_ROOT")
    if env_root:
        p = Path(env_root).resolve()
        if p.is_dir():
            return p
    # Walk up from this file (e.g. .../src/hepsim/config.py) looking for pyproject.toml
    here = Path(__file__).resolve().parent
    for candidate in [here, *here.parents]:
        if (candidate / "pyproject.toml").is_file():
            return candidate / "resource"
    return Path(__file__).resolve().parent / "resources"


_RESOURCES_ROOT = get_resources_root()
CONFIG_PATH = _RESOURCES_ROOT / "config" / "config.yaml"


def default_config_path() -> Path:
    """HEPSIM_CONFIG when set, else the bundled config/config.yaml."""
    env_path = os.environ.get("HEPSIM_CONFIG", "").strip()
    return Path(env_path) if env_path else CONFIG_PATH


def load_yaml(path: Path) -> dict[str, Any]:
    """Load a YAML mapping. Missing or unparseable files are configuration errors."""
    if not path.exists():
        raise ConfigurationError(f"Configuration file not found: {path}")
    try:
        with path.open(encoding="utf-8") as f:
            data: Any = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Configuration file {path} is not valid YAML: {e}") from e
    if not isinstance(data, dict):
        raise ConfigurationError(f"Configuration file {path} must contain a mapping")
    return data


@dataclass(frozen=True)
class HepSettings:
    """Collector target and capture agent identity."""

    address: str = DEFAULT_HEP_ADDRESS
    port: int = DEFAULT_HEP_PORT
    transport: str = DEFAULT_HEP_TRANSPORT
    capture_id: int = DEFAULT_CAPTURE_ID
    capture_password: str = DEFAULT_CAPTURE_PASSWORD

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None, apply_env: bool = True) -> "HepSettings":
        """Build from the `hep` config block; env overrides win when apply_env is set."""
        merged: dict[str, Any] = dict(data or {})
        if apply_env:
            merged.update(get_env_overrides())
        transport = str(merged.get("transport", DEFAULT_HEP_TRANSPORT)).strip().lower()
        if transport not in SUPPORTED_TRANSPORTS:
            raise ConfigurationError(
                f"hep.transport must be one of {', '.join(SUPPORTED_TRANSPORTS)} (got {transport!r})"
            )
        try:
            port = int(merged.get("port", DEFAULT_HEP_PORT))
            capture_id = int(merged.get("capture_id", DEFAULT_CAPTURE_ID))
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"hep.port and hep.capture_id must be integers: {e}") from e
        return cls(
            address=str(merged.get("address", DEFAULT_HEP_ADDRESS)),
            port=check_port(port, "hep"),
            transport=transport,
            capture_id=check_capture_id(capture_id, "hep"),
            capture_password=str(merged.get("capture_password", DEFAULT_CAPTURE_PASSWORD)),
        )


@dataclass(frozen=True)
class SimulationSettings:
    """Timer cadence and admission shaping."""

    tick_interval_ms: float = DEFAULT_TICK_INTERVAL_MS
    min_tick_interval_ms: float = DEFAULT_MIN_TICK_INTERVAL_MS
    report_interval_s: float = DEFAULT_REPORT_INTERVAL_S
    peak_hour_utc: int = DEFAULT_PEAK_HOUR_UTC
    # Upper bound on live sessions across all scenarios; 0 disables the cap.
    max_total_sessions: int = 0
    seed: int | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "SimulationSettings":
        """Build from the `simulation` config block."""
        data = data or {}
        try:
            settings = cls(
                tick_interval_ms=float(data.get("tick_interval_ms", DEFAULT_TICK_INTERVAL_MS)),
                min_tick_interval_ms=float(
                    data.get("min_tick_interval_ms", DEFAULT_MIN_TICK_INTERVAL_MS)
                ),
                report_interval_s=float(data.get("report_interval_s", DEFAULT_REPORT_INTERVAL_S)),
                peak_hour_utc=int(data.get("peak_hour_utc", DEFAULT_PEAK_HOUR_UTC)),
                max_total_sessions=int(data.get("max_total_sessions", 0)),
                seed=int(data["seed"]) if data.get("seed") is not None else None,
            )
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid simulation settings: {e}") from e
        if settings.tick_interval_ms <= 0:
            raise ConfigurationError("simulation.tick_interval_ms must be positive")
        if settings.report_interval_s <= 0:
            raise ConfigurationError("simulation.report_interval_s must be positive")
        if not 0 <= settings.peak_hour_utc <= 23:
            raise ConfigurationError("simulation.peak_hour_utc must be between 0 and 23")
        return settings


@dataclass(frozen=True)
class Endpoint:
    """One named entry of the virtual infrastructure (phone, SBC, PBX, carrier)."""

    name: str
    ip: str
    port: int = 5060
    type: str = "endpoint"
    capture_id: int | None = None


@dataclass
class Infrastructure:
    """Named endpoints that scenarios route calls through."""

    endpoints: dict[str, Endpoint] = field(default_factory=dict)

    def get(self, name: str) -> Endpoint:
        endpoint = self.endpoints.get(name)
        if endpoint is None:
            raise ConfigurationError(f"Unknown infrastructure endpoint: {name}")
        return endpoint

    def __contains__(self, name: object) -> bool:
        return name in self.endpoints

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "Infrastructure":
        """Parse the `infrastructure` block (name -> {ip, port, type, capture_id})."""
        endpoints: dict[str, Endpoint] = {}
        for name, raw in (data or {}).items():
            if not isinstance(raw, dict):
                raise ConfigurationError(f"Infrastructure entry '{name}' must be a mapping")
            ip = raw.get("ip")
            if not isinstance(ip, str) or not ip.strip():
                raise ConfigurationError(f"Infrastructure entry '{name}' has no ip")
            what = f"Infrastructure entry '{name}'"
            try:
                port = int(raw.get("port", 5060))
                capture_id = raw.get("capture_id")
                capture_id = int(capture_id) if capture_id is not None else None
            except (TypeError, ValueError) as e:
                raise ConfigurationError(f"{what} is invalid: {e}") from e
            endpoints[str(name)] = Endpoint(
                name=str(name),
                ip=ip.strip(),
                port=check_port(port, what),
                type=str(raw.get("type", "endpoint")),
                capture_id=check_capture_id(capture_id, what) if capture_id is not None else None,
            )
        return cls(endpoints=endpoints)
