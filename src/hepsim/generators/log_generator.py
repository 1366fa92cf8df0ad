"""
Logging setup for the simulator.

Module loggers (``logging.getLogger(__name__)``) are used everywhere. The CLI
calls configure_logging() once: a stderr handler always, plus an
OpenTelemetry LoggingHandler when an OTLP log exporter is supplied so the
simulator's own diagnostics reach the same observability backend.
"""

import logging
import sys

from opentelemetry.sdk._logs import LoggerProvider, LoggingHandler
from opentelemetry.sdk._logs.export import BatchLogRecordProcessor, LogRecordExporter
from opentelemetry.sdk.resources import Resource

from .. import __version__

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
ROOT_LOGGER = "hepsim"


def configure_logging(
    debug: bool = False,
    exporter: LogRecordExporter | None = None,
    service_name: str = "hepsim",
) -> LoggerProvider | None:
    """
    Attach handlers to the ``hepsim`` logger.

    Args:
        debug: Log at DEBUG instead of INFO
        exporter: Optional OTLP log exporter for the simulator's own logs
        service_name: service.name resource attribute for exported records

    Returns:
        The LoggerProvider when an exporter was given (caller shuts it down), else None
    """
    level = logging.DEBUG if debug else logging.INFO
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(level)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)

    stream = logging.StreamHandler(sys.stderr)
    stream.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(stream)

    if exporter is None:
        return None

    resource = Resource.create({"service.name": service_name, "service.version": __version__})
    provider = LoggerProvider(resource=resource)
    provider.add_log_record_processor(BatchLogRecordProcessor(exporter))
    logger.addHandler(LoggingHandler(level=level, logger_provider=provider))
    return provider
