"""Shared fixtures: inline configs, fake clocks and seeded random sources."""

import random
from typing import Any

import pytest

from hepsim.engine.registry import SessionRegistry
from hepsim.engine.scheduler import SessionScheduler
from hepsim.exporters.memory_exporter import MemoryMessageExporter
from hepsim.generators.message_builder import MessageBuilder
from hepsim.scenarios.scenario_loader import Scenario, ScenarioLoader

# 2024-03-01 12:00:00 UTC
START = 1709294400.0


class FakeClock:
    """Manually advanced clock (epoch seconds)."""

    def __init__(self, now: float = START):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> float:
        self.now += seconds
        return self.now


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep HEP_* overrides from the developer's shell out of the tests."""
    for name in (
        "HEP_ADDRESS",
        "HEP_PORT",
        "HEP_TRANSPORT",
        "HEP_CAPTURE_ID",
        "HEP_PASSWORD",
        "HEPSIM_CONFIG",
        "HEPSIM_DEBUG",
    ):
        monkeypatch.delenv(name, raising=False)


def make_scenario(**overrides: Any) -> Scenario:
    """Build a validated Scenario from an inline mapping."""
    infrastructure = overrides.pop("infrastructure", None)
    data: dict[str, Any] = {
        "name": "normal",
        "flow": "default",
        "min_duration": 1000,
        "max_duration": 1000,
    }
    data.update(overrides)
    config = ScenarioLoader.from_dict(
        {"infrastructure": infrastructure or {}, "scenarios": [data]}
    )
    return config.scenarios[0]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def rng() -> random.Random:
    return random.Random(1234)


@pytest.fixture
def exporter() -> MemoryMessageExporter:
    return MemoryMessageExporter(encode_packets=True)


@pytest.fixture
def registry(rng: random.Random) -> SessionRegistry:
    return SessionRegistry(rng=rng)


@pytest.fixture
def scheduler(
    registry: SessionRegistry,
    exporter: MemoryMessageExporter,
    clock: FakeClock,
    rng: random.Random,
) -> SessionScheduler:
    return SessionScheduler(
        registry,
        MessageBuilder(rng),
        exporter,
        clock=clock,
        report_interval=30.0,
        rng=rng,
    )
