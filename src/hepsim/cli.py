"""
Command-line interface for the HEP call-flow simulator.

Provides commands for:
- Running the configured scenarios against a HEP collector (or file/console)
- Listing scenarios and built-in call flows
- Validating a configuration file
"""

import argparse
import asyncio
import logging
import random
import signal
import sys
from pathlib import Path

from .config import ConfigurationError
from .defaults import debug_enabled
from .engine.driver import Driver
from .engine.registry import SessionRegistry
from .engine.scheduler import SessionScheduler
from .exporters.base import MessageExporter
from .exporters.console_exporter import ConsoleMessageExporter
from .exporters.file_exporter import FileMessageExporter
from .exporters.hep_exporter import HepExporter
from .exporters.otlp_exporter import (
    OTLP_PROTOCOLS,
    create_otlp_log_exporter,
    create_otlp_metric_exporter,
)
from .generators.log_generator import configure_logging
from .generators.message_builder import MessageBuilder
from .generators.metric_generator import SimulationMetrics
from .scenarios.catalog import CALL_FLOWS, FlowTag, list_flows
from .scenarios.scenario_loader import Scenario, ScenarioLoader, SimulatorConfig

logger = logging.getLogger(__name__)


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="hepsim",
        description="Synthetic SIP call-flow generator emitting HEPv3 telemetry",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run every configured scenario against the collector in config.yaml
  hepsim run

  # Only the "normal" scenario, stop admitting after 10 minutes
  hepsim run --scenario normal --duration 600

  # Write messages to a file instead of sending HEP
  hepsim run --output-file messages.jsonl --seed 42

  # Check a configuration file
  hepsim validate --config my-config.yaml
        """,
    )
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to config YAML (default: HEPSIM_CONFIG or resource/config/config.yaml)",
    )
    common.add_argument("--debug", action="store_true", help="Log at DEBUG level")

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    run_parser = subparsers.add_parser("run", parents=[common], help="Generate call traffic")
    run_parser.add_argument(
        "--scenario",
        action="append",
        default=None,
        help="Scenario name to run (repeatable; default: all configured scenarios)",
    )
    run_parser.add_argument(
        "--tags",
        type=str,
        default=None,
        help="Comma-separated tags; only scenarios carrying one of them are run",
    )
    run_parser.add_argument(
        "--duration",
        type=float,
        default=None,
        help="Stop admitting calls after this many seconds and drain (default: run until Ctrl-C)",
    )
    run_parser.add_argument("--seed", type=int, default=None, help="Random seed for reproducible runs")
    run_parser.add_argument(
        "--output-file",
        type=str,
        default=None,
        help="Write messages to this JSON Lines file instead of sending HEP",
    )
    run_parser.add_argument(
        "--console",
        action="store_true",
        help="Print messages to stdout instead of sending HEP",
    )
    run_parser.add_argument(
        "--verbose",
        action="store_true",
        help="With --console, print full message payloads",
    )
    run_parser.add_argument(
        "--otlp-endpoint",
        type=str,
        default=None,
        help="Send the simulator's own metrics and logs to this OTLP endpoint",
    )
    run_parser.add_argument(
        "--otlp-protocol",
        choices=OTLP_PROTOCOLS,
        default="http",
        help="OTLP protocol (default: http)",
    )

    list_parser = subparsers.add_parser(
        "list", parents=[common], help="List configured scenarios and call flows"
    )
    list_parser.add_argument(
        "--flows",
        action="store_true",
        help="Show the tag sequence of each built-in call flow",
    )

    subparsers.add_parser("validate", parents=[common], help="Validate the configuration file")

    return parser


def _load(args: argparse.Namespace) -> SimulatorConfig:
    return ScenarioLoader(args.config).load()


def select_scenarios(
    config: SimulatorConfig, names: list[str] | None, tags: str | None
) -> list[Scenario]:
    """Scenarios to run: the named ones (or all), filtered by tags."""
    scenarios = [config.get(n) for n in names] if names else list(config.scenarios)
    if tags:
        wanted = {t.strip() for t in tags.split(",") if t.strip()}
        scenarios = [s for s in scenarios if wanted.intersection(s.tags)]
    return scenarios


def _create_exporter(args: argparse.Namespace, config: SimulatorConfig) -> MessageExporter:
    if args.output_file:
        print(f"   Output: {args.output_file}")
        return FileMessageExporter(args.output_file)
    if args.console:
        print("   Output: console")
        return ConsoleMessageExporter(verbose=args.verbose)
    exporter = HepExporter(config.hep)
    print(f"   Output: HEP {exporter.target} (capture id {config.hep.capture_id})")
    return exporter


async def _run_driver(driver: Driver, duration: float | None) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, driver.request_stop)
        except NotImplementedError:
            # No loop signal handlers on this platform; Ctrl-C raises KeyboardInterrupt.
            break
    await driver.run(duration)


def cmd_run(args: argparse.Namespace):
    """Run the simulation until stopped and drained."""
    try:
        config = _load(args)
        scenarios = select_scenarios(config, args.scenario, args.tags)
    except ConfigurationError as e:
        print(f"Configuration error: {e}")
        sys.exit(1)
    if not scenarios:
        print("No scenarios selected.")
        sys.exit(1)

    settings = config.simulation
    seed = args.seed if args.seed is not None else settings.seed
    rng = random.Random(seed)

    print("Starting HEP call simulation...")
    print(f"   Scenarios: {', '.join(s.name for s in scenarios)}")
    print(f"   Tick: {settings.tick_interval_ms:g}ms (min {settings.min_tick_interval_ms:g}ms)")
    print(f"   Report interval: {settings.report_interval_s:g}s")
    if seed is not None:
        print(f"   Seed: {seed}")
    exporter = _create_exporter(args, config)

    log_provider = None
    metric_exporter = None
    if args.otlp_endpoint:
        print(f"   Self-telemetry: OTLP {args.otlp_protocol} {args.otlp_endpoint}")
        metric_exporter = create_otlp_metric_exporter(args.otlp_endpoint, args.otlp_protocol)
        log_provider = configure_logging(
            args.debug or debug_enabled(),
            exporter=create_otlp_log_exporter(args.otlp_endpoint, args.otlp_protocol),
        )
    print()

    metrics = SimulationMetrics(exporter=metric_exporter)
    registry = SessionRegistry(
        rng=rng,
        default_capture_id=config.hep.capture_id,
        capture_password=config.hep.capture_password,
        max_total_sessions=settings.max_total_sessions,
    )
    scheduler = SessionScheduler(
        registry,
        MessageBuilder(rng),
        exporter,
        report_interval=settings.report_interval_s,
        rng=rng,
        metrics=metrics,
    )
    driver = Driver(scenarios, registry, scheduler, exporter, settings=settings, rng=rng, metrics=metrics)

    try:
        asyncio.run(_run_driver(driver, args.duration))
    except KeyboardInterrupt:
        print("\nSimulation interrupted")
    except OSError as e:
        print(f"\nError: {e}")
        sys.exit(1)
    finally:
        metrics.shutdown()
        if log_provider is not None:
            log_provider.shutdown()

    print(f"Simulation finished after {driver.ticks} ticks")
    if driver.forced:
        print("   Stopped before all calls completed")


def cmd_list(args: argparse.Namespace):
    """List configured scenarios (and optionally the built-in flows)."""
    try:
        config = _load(args)
    except ConfigurationError as e:
        print(f"Configuration error: {e}")
        sys.exit(1)

    print("Configured scenarios:")
    print()
    for scenario in config.scenarios:
        print(f"  - {scenario.name} ({scenario.flow_name}, {scenario.mode})")
        if scenario.description:
            print(f"     {scenario.description}")
        if scenario.mode == "continuous":
            print(f"     Peak CPS: {scenario.cps_high:g}")
        elif scenario.mode == "burst":
            print(
                f"     Burst: {scenario.count} every {scenario.interval:g}s"
                f" (+{scenario.interval_jitter:g}s jitter)"
            )
        print(f"     Duration: {scenario.min_duration:g}-{scenario.max_duration:g}s")
        if scenario.via is not None:
            print(f"     Via: {scenario.via.name} ({scenario.via.ip})")
        if scenario.tags:
            print(f"     Tags: {', '.join(scenario.tags)}")
        print()

    if args.flows:
        print("Call flows:")
        for name in list_flows():
            print(f"  - {name}: {', '.join(tag.value for tag in CALL_FLOWS[name])}")


def cmd_validate(args: argparse.Namespace):
    """Validate configuration and show a summary."""
    try:
        config = _load(args)
    except ConfigurationError as e:
        print(f"Validation failed: {e}")
        sys.exit(1)

    path = Path(args.config) if args.config else ScenarioLoader().config_path
    print("Configuration loaded successfully")
    print(f"   Path: {path}")
    print(f"   HEP target: {config.hep.transport}://{config.hep.address}:{config.hep.port}")
    print(f"   Infrastructure endpoints: {len(config.infrastructure.endpoints)}")
    print(f"   Scenarios: {', '.join(config.names())}")
    unknown = [
        (s.name, tag) for s in config.scenarios for tag in s.flow if not isinstance(tag, FlowTag)
    ]
    for name, tag in unknown:
        print(f"   Warning: scenario {name} uses unknown flow tag {tag!r}")


def main(argv: list[str] | None = None):
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    configure_logging(args.debug or debug_enabled())

    if args.command == "run":
        cmd_run(args)
    elif args.command == "list":
        cmd_list(args)
    elif args.command == "validate":
        cmd_validate(args)
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
