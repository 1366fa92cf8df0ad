"""
Self-observability metrics for the simulator (OpenTelemetry SDK).

Counts admissions, completions, sent messages, send failures and flow errors,
and tracks the number of live sessions. With no exporter the provider has no
reader and recording is a cheap no-op.
"""

from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import (
    MetricExporter,
    MetricReader,
    PeriodicExportingMetricReader,
)
from opentelemetry.sdk.resources import Resource

from .. import __version__

METRIC_PREFIX = "hepsim"


class SimulationMetrics:
    """Counters describing the simulator's own activity."""

    def __init__(
        self,
        exporter: MetricExporter | None = None,
        service_name: str = "hepsim",
        export_interval_ms: int = 5000,
        reader: MetricReader | None = None,
    ):
        """Initialize the meter provider; ``reader`` wins over ``exporter`` when both are given."""
        resource = Resource.create({"service.name": service_name, "service.version": __version__})
        readers: list[MetricReader] = []
        if reader is not None:
            readers.append(reader)
        elif exporter is not None:
            readers.append(
                PeriodicExportingMetricReader(exporter, export_interval_millis=export_interval_ms)
            )
        self.provider = MeterProvider(resource=resource, metric_readers=readers)
        self.meter = self.provider.get_meter(__name__)
        self._setup_instruments()

    def _setup_instruments(self):
        self.sessions_admitted = self.meter.create_counter(
            f"{METRIC_PREFIX}.sessions.admitted",
            description="Call legs admitted into the live pool",
            unit="1",
        )
        self.sessions_completed = self.meter.create_counter(
            f"{METRIC_PREFIX}.sessions.completed",
            description="Call legs that reached END",
            unit="1",
        )
        self.sessions_live = self.meter.create_up_down_counter(
            f"{METRIC_PREFIX}.sessions.live",
            description="Call legs currently in the live pool",
            unit="1",
        )
        self.messages_sent = self.meter.create_counter(
            f"{METRIC_PREFIX}.messages.sent",
            description="HEP messages handed to the transport",
            unit="1",
        )
        self.send_failures = self.meter.create_counter(
            f"{METRIC_PREFIX}.messages.failed",
            description="HEP messages the transport could not send",
            unit="1",
        )
        self.flow_errors = self.meter.create_counter(
            f"{METRIC_PREFIX}.flow.errors",
            description="Sessions dropped because of an unknown flow tag",
            unit="1",
        )

    def record_admitted(self, scenario: str, count: int = 1) -> None:
        attrs = {"scenario": scenario}
        self.sessions_admitted.add(count, attrs)
        self.sessions_live.add(count, attrs)

    def record_removed(self, scenario: str, completed: bool = True) -> None:
        attrs = {"scenario": scenario}
        self.sessions_live.add(-1, attrs)
        if completed:
            self.sessions_completed.add(1, attrs)

    def record_message(self, kind: str, sent: bool) -> None:
        if sent:
            self.messages_sent.add(1, {"kind": kind})
        else:
            self.send_failures.add(1, {"kind": kind})

    def record_flow_error(self, scenario: str) -> None:
        self.flow_errors.add(1, {"scenario": scenario})

    def shutdown(self) -> None:
        """Flush and stop the meter provider."""
        self.provider.shutdown()
