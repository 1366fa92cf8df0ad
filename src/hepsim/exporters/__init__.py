"""Destinations for simulated traffic (HEP collector, file, console, memory)."""

from .base import MessageExporter
from .console_exporter import ConsoleMessageExporter
from .file_exporter import FileMessageExporter
from .hep_exporter import HepExporter
from .memory_exporter import MemoryMessageExporter
from .otlp_exporter import create_otlp_log_exporter, create_otlp_metric_exporter

__all__ = [
    "ConsoleMessageExporter",
    "FileMessageExporter",
    "HepExporter",
    "MemoryMessageExporter",
    "MessageExporter",
    "create_otlp_log_exporter",
    "create_otlp_metric_exporter",
]
