"""Tests for the message exporters."""

import asyncio
import io
import json
import random

import pytest
from conftest import START, make_scenario

from hepsim.config import HepSettings
from hepsim.engine.registry import SessionRegistry
from hepsim.exporters import ConsoleMessageExporter, FileMessageExporter, HepExporter
from hepsim.exporters.console_exporter import format_message
from hepsim.exporters.otlp_exporter import create_otlp_log_exporter, create_otlp_metric_exporter
from hepsim.generators.message_builder import MessageBuilder, OutboundMessage
from hepsim.hep import decode
from hepsim.scenarios.catalog import FlowTag


def _invite() -> OutboundMessage:
    session = SessionRegistry(rng=random.Random(5)).create_for_scenario(make_scenario(), START)[0]
    return MessageBuilder(random.Random(5)).sip_message(
        session, FlowTag.INVITE, session.forward, START
    )


class _Collector(asyncio.DatagramProtocol):
    def __init__(self):
        self.received: asyncio.Queue[bytes] = asyncio.Queue()

    def datagram_received(self, data: bytes, addr) -> None:
        self.received.put_nowait(data)


def test_hep_exporter_sends_udp_packets() -> None:
    """Messages arrive at the collector as decodable HEP3 packets."""
    message = _invite()

    async def exchange() -> tuple[bytes, HepExporter]:
        loop = asyncio.get_running_loop()
        transport, collector = await loop.create_datagram_endpoint(
            _Collector, local_addr=("127.0.0.1", 0)
        )
        port = transport.get_extra_info("sockname")[1]
        exporter = HepExporter(HepSettings(address="127.0.0.1", port=port))
        try:
            await exporter.start()
            assert exporter.export(message)
            packet = await asyncio.wait_for(collector.received.get(), timeout=2)
        finally:
            await exporter.shutdown()
            transport.close()
        return packet, exporter

    packet, exporter = asyncio.run(exchange())
    decoded = decode(packet)
    assert decoded["payload"] == message.body
    assert decoded["src_ip"] == message.routing.src_ip
    assert decoded["capture_id"] == message.routing.capture_id
    assert exporter.sent == 1 and exporter.failed == 0
    assert exporter.target == f"udp://127.0.0.1:{exporter.settings.port}"


def test_hep_exporter_requires_start() -> None:
    """Exporting before start() is a programming error."""
    exporter = HepExporter(HepSettings())
    with pytest.raises(RuntimeError):
        exporter.export(_invite())


def test_file_exporter_writes_json_lines(tmp_path) -> None:
    """Each message is one JSON object per line."""
    path = tmp_path / "out" / "messages.jsonl"
    exporter = FileMessageExporter(path)
    message = _invite()
    assert exporter.export(message)
    assert exporter.export(message)

    lines = path.read_text(encoding="utf-8").splitlines()
    assert len(lines) == 2
    record = json.loads(lines[0])
    assert record["call_id"] == message.call_id
    assert record["body"] == message.body
    assert exporter.written == 2


def test_file_exporter_truncates_without_append(tmp_path) -> None:
    """append=False starts from an empty file."""
    path = tmp_path / "messages.jsonl"
    path.write_text("stale\n", encoding="utf-8")
    FileMessageExporter(path, append=False).export(_invite())
    assert "stale" not in path.read_text(encoding="utf-8")


def test_console_exporter_output() -> None:
    """One summary line per message, plus the payload when verbose."""
    message = _invite()
    line = format_message(message)
    assert line.startswith(f"{int(START)}.000000 request")
    assert f"{message.routing.src_ip}:{message.routing.src_port} ->" in line
    assert "INVITE sip:" in line

    stream = io.StringIO()
    ConsoleMessageExporter(stream=stream, verbose=True).export(message)
    assert "Content-Length:" in stream.getvalue()


def test_otlp_http_endpoints() -> None:
    """HTTP exporters get the signal path appended once."""
    metrics = create_otlp_metric_exporter("http://collector:4318/")
    assert metrics._endpoint == "http://collector:4318/v1/metrics"
    logs = create_otlp_log_exporter("http://collector:4318/v1/logs")
    assert logs._endpoint == "http://collector:4318/v1/logs"
    with pytest.raises(ValueError):
        create_otlp_metric_exporter(protocol="thrift")


def test_hep_exporter_tcp_sheds_load_when_buffer_full(monkeypatch: pytest.MonkeyPatch) -> None:
    """TCP sends fail (and are counted) once the unsent backlog passes the limit."""
    message = _invite()

    async def exchange() -> tuple[bytes, HepExporter, list[bool]]:
        received = asyncio.Queue()

        async def handle(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
            received.put_nowait(await reader.read(65535))
            await reader.read()
            writer.close()

        server = await asyncio.start_server(handle, "127.0.0.1", 0)
        port = server.sockets[0].getsockname()[1]
        exporter = HepExporter(
            HepSettings(address="127.0.0.1", port=port, transport="tcp"), max_write_buffer=1024
        )
        try:
            await exporter.start()
            results = [exporter.export(message)]
            packet = await asyncio.wait_for(received.get(), timeout=2)
            monkeypatch.setattr(
                exporter._writer.transport, "get_write_buffer_size", lambda: 4096
            )
            results.append(exporter.export(message))
        finally:
            await exporter.shutdown()
            server.close()
            await server.wait_closed()
        return packet, exporter, results

    packet, exporter, results = asyncio.run(exchange())
    assert results == [True, False]
    assert decode(packet)["payload"] == message.body
    assert (exporter.sent, exporter.failed) == (1, 1)
