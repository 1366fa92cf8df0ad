"""
Load and validate the simulator configuration (YAML).

The config file has four sections:
- hep: collector target and capture agent identity
- simulation: tick cadence, report interval, peak hour
- infrastructure: named endpoints (ip, port, type, capture_id)
- scenarios: list of call scenarios (flow, admission, durations, quality ranges)

Any problem is a ConfigurationError; the CLI reports it and exits before any
timer is started.
"""

import ipaddress
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from ..config import (
    ConfigurationError,
    Endpoint,
    HepSettings,
    Infrastructure,
    SimulationSettings,
    check_capture_id,
    check_port,
    default_config_path,
    load_yaml,
)
from ..statistics.distributions import DistributionFactory, MetricRange
from .catalog import FlowEntry, resolve_flow

ADMISSION_MODES = ("continuous", "burst", "manual")

# Default quality ranges for a healthy call.
DEFAULT_MOS_RANGE = [3.8, 4.4]
DEFAULT_JITTER_RANGE = [0.0, 5.0]
DEFAULT_PACKET_LOSS_RANGE = [0, 2]


@dataclass(frozen=True)
class QualityProfile:
    """Ranges that periodic media reports are sampled from."""

    mos: MetricRange
    jitter: MetricRange
    packet_loss: MetricRange


@dataclass(frozen=True)
class Scenario:
    """Complete, validated scenario definition."""

    name: str
    flow: tuple[FlowEntry, ...]
    quality: QualityProfile
    flow_name: str = "default"
    description: str = ""
    mode: str = "continuous"
    # continuous admission: peak calls per second
    cps_high: float = 1.0
    # burst admission: `count` calls `spacing_ms` apart every `interval` (+ jitter) seconds
    count: int = 1
    interval: float = 60.0
    interval_jitter: float = 0.0
    spacing_ms: float = 100.0
    # Maximum concurrent sessions for this scenario; 0 disables the cap.
    max_sessions: int = 0
    min_duration: float = 30.0
    max_duration: float = 120.0
    source_ips: tuple[str, ...] = ()
    caller: Endpoint | None = None
    callee: Endpoint | None = None
    via: Endpoint | None = None
    capture_id: int | None = None
    tags: tuple[str, ...] = field(default_factory=tuple)

    @property
    def is_relayed(self) -> bool:
        return self.via is not None


@dataclass
class SimulatorConfig:
    """Everything the simulator needs at startup."""

    hep: HepSettings
    simulation: SimulationSettings
    infrastructure: Infrastructure
    scenarios: list[Scenario]

    def get(self, name: str) -> Scenario:
        for scenario in self.scenarios:
            if scenario.name == name:
                return scenario
        raise ConfigurationError(f"Unknown scenario: {name}")

    def names(self) -> list[str]:
        return [s.name for s in self.scenarios]


def _resolve_endpoint(ref: Any, infrastructure: Infrastructure, what: str) -> Endpoint | None:
    """Resolve an infrastructure name or a literal IP address."""
    if ref is None:
        return None
    if isinstance(ref, dict):
        ip = ref.get("ip")
        if not isinstance(ip, str):
            raise ConfigurationError(f"{what} mapping needs an ip")
        try:
            port = int(ref.get("port", 5060))
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"{what} port must be an integer: {e}") from e
        return Endpoint(name=str(ref.get("name", ip)), ip=ip, port=check_port(port, what))
    key = str(ref).strip()
    if key in infrastructure:
        return infrastructure.get(key)
    try:
        ipaddress.ip_address(key)
    except ValueError:
        raise ConfigurationError(
            f"{what} '{key}' is neither an infrastructure endpoint nor an IP address"
        ) from None
    return Endpoint(name=key, ip=key)


def _parse_range(data: dict[str, Any], key: str, default: list, decimals: int, name: str):
    raw = data.get(key, default)
    try:
        return DistributionFactory.create_range(raw, decimals=decimals)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Scenario '{name}': invalid {key} range: {e}") from e


def _number(data: dict[str, Any], key: str, default: float, name: str) -> float:
    raw = data.get(key, default)
    try:
        value = float(raw)
    except (TypeError, ValueError):
        raise ConfigurationError(f"Scenario '{name}': {key} must be a number (got {raw!r})") from None
    if value < 0:
        raise ConfigurationError(f"Scenario '{name}': {key} must not be negative")
    return value


def parse_scenario(data: dict[str, Any], infrastructure: Infrastructure) -> Scenario:
    """Parse and validate one scenario mapping."""
    if not isinstance(data, dict):
        raise ConfigurationError(f"Scenario entries must be mappings, got {data!r}")
    name = data.get("name")
    if not isinstance(name, str) or not name.strip():
        raise ConfigurationError("Every scenario needs a name")
    name = name.strip()

    flow_name, flow = resolve_flow(data.get("flow", data.get("type")))

    mode = str(data.get("mode", "continuous")).strip().lower()
    if mode not in ADMISSION_MODES:
        raise ConfigurationError(
            f"Scenario '{name}': mode must be one of {', '.join(ADMISSION_MODES)}"
        )

    min_duration = _number(data, "min_duration", 30, name)
    max_duration = _number(data, "max_duration", max(min_duration, 120), name)
    if min_duration > max_duration:
        raise ConfigurationError(
            f"Scenario '{name}': min_duration {min_duration} exceeds max_duration {max_duration}"
        )

    cps_high = _number(data, "cps_high", 1.0, name)
    if mode == "continuous" and cps_high <= 0:
        raise ConfigurationError(f"Scenario '{name}': cps_high must be positive")
    interval = _number(data, "interval", 60.0, name)
    if mode == "burst" and interval <= 0:
        raise ConfigurationError(f"Scenario '{name}': interval must be positive for burst mode")

    source_ips_raw = data.get("source_ips") or []
    if isinstance(source_ips_raw, str):
        source_ips_raw = [source_ips_raw]
    source_ips: list[str] = []
    for ip in source_ips_raw:
        try:
            ipaddress.ip_address(str(ip))
        except ValueError:
            raise ConfigurationError(f"Scenario '{name}': invalid source IP {ip!r}") from None
        source_ips.append(str(ip))

    tags_raw = data.get("tags", [])
    if isinstance(tags_raw, list):
        tags = tuple(str(t).strip() for t in tags_raw if t is not None)
    elif isinstance(tags_raw, str) and tags_raw.strip():
        tags = (tags_raw.strip(),)
    else:
        tags = ()

    capture_id = None
    if data.get("capture_id") is not None:
        raw_capture_id = int(_number(data, "capture_id", 0, name))
        capture_id = check_capture_id(raw_capture_id, f"Scenario '{name}'")
    return Scenario(
        name=name,
        description=str(data.get("description", "")),
        flow_name=flow_name,
        flow=flow,
        mode=mode,
        cps_high=cps_high,
        count=int(_number(data, "count", 1, name)),
        interval=interval,
        interval_jitter=_number(data, "interval_jitter", 0.0, name),
        spacing_ms=_number(data, "spacing_ms", 100.0, name),
        max_sessions=int(_number(data, "max_sessions", 0, name)),
        min_duration=min_duration,
        max_duration=max_duration,
        quality=QualityProfile(
            mos=_parse_range(data, "mos", DEFAULT_MOS_RANGE, 3, name),
            jitter=_parse_range(data, "jitter", DEFAULT_JITTER_RANGE, 3, name),
            packet_loss=_parse_range(data, "packet_loss", DEFAULT_PACKET_LOSS_RANGE, 0, name),
        ),
        source_ips=tuple(source_ips),
        caller=_resolve_endpoint(data.get("caller"), infrastructure, f"Scenario '{name}' caller"),
        callee=_resolve_endpoint(
            data.get("callee", data.get("destination")),
            infrastructure,
            f"Scenario '{name}' callee",
        ),
        via=_resolve_endpoint(data.get("via"), infrastructure, f"Scenario '{name}' via"),
        capture_id=capture_id,
        tags=tags,
    )


class ScenarioLoader:
    """Load the simulator configuration from a YAML file."""

    def __init__(self, config_path: Path | str | None = None, apply_env: bool = True):
        """Initialize loader.

        If config_path is None, uses HEPSIM_CONFIG or the bundled
        resource/config/config.yaml. apply_env controls whether HEP_* env
        variables override the `hep` section.
        """
        self.config_path = Path(config_path) if config_path is not None else default_config_path()
        self.apply_env = apply_env

    def load(self) -> SimulatorConfig:
        """Load and validate the whole configuration."""
        return self.parse(load_yaml(self.config_path))

    def parse(self, data: dict[str, Any]) -> SimulatorConfig:
        """Validate an already-loaded config mapping."""
        infrastructure = Infrastructure.from_dict(data.get("infrastructure"))
        scenarios_raw = data.get("scenarios")
        if not isinstance(scenarios_raw, list) or not scenarios_raw:
            raise ConfigurationError("Config must define at least one scenario")
        scenarios = [parse_scenario(s, infrastructure) for s in scenarios_raw]
        seen: set[str] = set()
        for s in scenarios:
            if s.name in seen:
                raise ConfigurationError(f"Duplicate scenario name: {s.name}")
            seen.add(s.name)
        return SimulatorConfig(
            hep=HepSettings.from_dict(data.get("hep"), apply_env=self.apply_env),
            simulation=SimulationSettings.from_dict(data.get("simulation")),
            infrastructure=infrastructure,
            scenarios=scenarios,
        )

    def load_scenario(self, name: str) -> Scenario:
        """Load one scenario by name."""
        return self.load().get(name)

    def list_scenarios(self) -> list[str]:
        """List configured scenario names."""
        return self.load().names()

    @classmethod
    def from_dict(cls, data: dict[str, Any], apply_env: bool = False) -> SimulatorConfig:
        """Create a configuration from a dictionary (for inline definitions)."""
        return cls(config_path=Path("<inline>"), apply_env=apply_env).parse(data)
