"""YAML-based scenario definitions and the built-in call-flow catalog."""

from .catalog import CALL_FLOWS, FlowTag, parse_flow, resolve_flow
from .scenario_loader import (
    QualityProfile,
    Scenario,
    ScenarioLoader,
    SimulatorConfig,
    parse_scenario,
)

__all__ = [
    "CALL_FLOWS",
    "FlowTag",
    "parse_flow",
    "resolve_flow",
    "QualityProfile",
    "Scenario",
    "ScenarioLoader",
    "SimulatorConfig",
    "parse_scenario",
]
