"""
OTLP exporters for the simulator's own metrics and logs.

Factory functions return OpenTelemetry SDK exporters for HTTP (default) or
gRPC. The HEP traffic itself never goes through OTLP. Exporter modules are
imported lazily so that only the chosen protocol's package is loaded.
"""

from typing import Any

OTLP_PROTOCOLS = ("http", "grpc")


def _grpc_endpoint(endpoint: str) -> str:
    # gRPC exporters take host:port without a scheme.
    return endpoint.replace("http://", "").replace("https://", "")


def _http_endpoint(endpoint: str, path: str) -> str:
    endpoint = endpoint.rstrip("/")
    if endpoint.endswith(path):
        return endpoint
    return f"{endpoint}{path}"


def _check_protocol(protocol: str) -> None:
    if protocol not in OTLP_PROTOCOLS:
        raise ValueError(f"OTLP protocol must be one of {', '.join(OTLP_PROTOCOLS)}, got {protocol!r}")


def create_otlp_metric_exporter(
    endpoint: str = "http://localhost:4318",
    protocol: str = "http",
    headers: dict[str, str] | None = None,
    **kwargs: Any,
):
    """
    Exporter for SimulationMetrics.

    Args:
        endpoint: Collector base URL; /v1/metrics is appended for HTTP
        protocol: "http" or "grpc"
        headers: Extra request headers (auth tokens and the like)
        **kwargs: Passed to the OTLP exporter

    Returns:
        OTLPMetricExporter for the chosen protocol
    """
    _check_protocol(protocol)
    if protocol == "grpc":
        from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter

        return OTLPMetricExporter(endpoint=_grpc_endpoint(endpoint), headers=headers, **kwargs)

    from opentelemetry.exporter.otlp.proto.http.metric_exporter import (  # type: ignore[assignment]
        OTLPMetricExporter,
    )

    return OTLPMetricExporter(
        endpoint=_http_endpoint(endpoint, "/v1/metrics"), headers=headers, **kwargs
    )


def create_otlp_log_exporter(
    endpoint: str = "http://localhost:4318",
    protocol: str = "http",
    headers: dict[str, str] | None = None,
    **kwargs: Any,
):
    """Exporter for configure_logging(); same arguments as create_otlp_metric_exporter."""
    _check_protocol(protocol)
    if protocol == "grpc":
        from opentelemetry.exporter.otlp.proto.grpc._log_exporter import OTLPLogExporter

        return OTLPLogExporter(endpoint=_grpc_endpoint(endpoint), headers=headers, **kwargs)

    from opentelemetry.exporter.otlp.proto.http._log_exporter import (  # type: ignore[assignment]
        OTLPLogExporter,
    )

    return OTLPLogExporter(endpoint=_http_endpoint(endpoint, "/v1/logs"), headers=headers, **kwargs)
