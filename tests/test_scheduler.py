"""Tests for the per-tick flow interpreter."""

import dataclasses
import json
import random
import re
from collections import deque

import pytest
from conftest import START, FakeClock, make_scenario
from opentelemetry.sdk.metrics.export import InMemoryMetricReader

from hepsim.engine.registry import SessionRegistry
from hepsim.engine.scheduler import SessionScheduler
from hepsim.engine.session import MediaStats, UnknownFlowStateError, running_mean
from hepsim.exporters.memory_exporter import MemoryMessageExporter
from hepsim.generators.message_builder import MessageBuilder, MessageKind
from hepsim.generators.metric_generator import SimulationMetrics
from hepsim.hep import HepEncodeError
from hepsim.scenarios.catalog import FlowTag

REPORT_KINDS = {
    MessageKind.PERIODIC_REPORT,
    MessageKind.HANGUP_REPORT,
    MessageKind.SHORT_HANGUP_REPORT,
    MessageKind.FINAL_REPORT,
}
TEARDOWN_GROUP = [
    MessageKind.HANGUP_REPORT,
    MessageKind.SHORT_HANGUP_REPORT,
    MessageKind.FINAL_REPORT,
] * 2


def _run_until_empty(
    scheduler: SessionScheduler, registry: SessionRegistry, clock: FakeClock, limit: int = 5000
) -> list:
    """Tick once per simulated second until the pool is empty."""
    results = []
    for _ in range(limit):
        if len(registry) == 0:
            break
        clock.advance(1)
        results.append(scheduler.advance_all())
    assert len(registry) == 0, "sessions did not finish"
    return results


def test_running_mean_recurrence() -> None:
    """Means follow m_i = (m_{i-1} + v_i) / 2, not the arithmetic mean."""
    samples = [3.0, 4.4, 2.5, 4.1, 3.9]
    stats = MediaStats()
    expected = stats.mean_mos
    for value in samples:
        stats.apply_sample(mos=value, jitter=value, packet_loss=0, elapsed=30)
        expected = running_mean(expected, value)
        assert stats.mean_mos == expected
    assert stats.mean_mos == pytest.approx(3.78125)
    assert stats.mean_mos != pytest.approx(sum(samples) / len(samples))
    assert stats.min_mos == 2.5
    assert stats.max_mos == 4.4


def test_end_to_end_default_flow(
    scheduler: SessionScheduler,
    registry: SessionRegistry,
    exporter: MemoryMessageExporter,
    clock: FakeClock,
) -> None:
    """A 1000 s call emits its SIP dialog in order, periodic reports and one report group."""
    [session] = registry.create_for_scenario(make_scenario(), clock())
    results = _run_until_empty(scheduler, registry, clock)

    messages = exporter.messages
    non_media = [m for m in messages if m.kind not in REPORT_KINDS]
    assert len(non_media) == 8
    assert [m.tag for m in non_media] == [
        FlowTag.INVITE,
        FlowTag.TRYING,
        FlowTag.RINGING,
        FlowTag.OK,
        FlowTag.ACK,
        FlowTag.BYE,
        FlowTag.OK_BYE,
        FlowTag.END,
    ]
    assert [m.kind for m in non_media] == [
        MessageKind.REQUEST,
        MessageKind.PROVISIONAL,
        MessageKind.PROVISIONAL,
        MessageKind.FINAL_RESPONSE,
        MessageKind.ACK,
        MessageKind.TEARDOWN,
        MessageKind.TEARDOWN_RESPONSE,
        MessageKind.CALL_LOG,
    ]

    periodic = [m for m in messages if m.kind is MessageKind.PERIODIC_REPORT]
    assert len(periodic) >= 2 and len(periodic) % 2 == 0
    assert [m.routing.direction for m in periodic[:2]] == [0, 1]

    group = [m for m in messages if m.kind in REPORT_KINDS - {MessageKind.PERIODIC_REPORT}]
    assert [m.kind for m in group] == TEARDOWN_GROUP

    # Reports sit between ACK and BYE.
    kinds = [m.kind for m in messages]
    ack_index = kinds.index(MessageKind.ACK)
    bye_index = kinds.index(MessageKind.TEARDOWN)
    assert all(ack_index < i < bye_index for i, k in enumerate(kinds) if k in REPORT_KINDS)

    # Session gone exactly on the END tick.
    assert results[-1].removed == [session]
    assert results[-1].emitted[-1].kind is MessageKind.CALL_LOG
    assert session.duration == pytest.approx(1000)
    assert all(m.routing.correlation_id == session.call_id for m in messages)
    assert len(exporter.packets) == len(messages)


def test_call_clock_starts_at_answer(
    scheduler: SessionScheduler, registry: SessionRegistry, clock: FakeClock
) -> None:
    """200 OK to the INVITE resets the duration and report clocks."""
    [session] = registry.create_for_scenario(make_scenario(), clock())
    for _ in range(4):
        clock.advance(1)
        scheduler.advance_all()
    assert session.current_tag is FlowTag.ACK
    assert session.call_start == clock()
    assert session.last_report == clock()
    assert session.media_established


def test_media_is_not_popped_before_duration(
    scheduler: SessionScheduler,
    registry: SessionRegistry,
    exporter: MemoryMessageExporter,
    clock: FakeClock,
) -> None:
    """MEDIA stays at the front and is silent inside the report interval."""
    [session] = registry.create_for_scenario(make_scenario(), clock())
    session.flow = deque([FlowTag.MEDIA, FlowTag.END])
    session.call_start = session.last_report = clock()

    for _ in range(30):
        clock.advance(1)
        result = scheduler.advance_all()
        assert result.emitted == []
    assert session.current_tag is FlowTag.MEDIA

    clock.advance(1)
    result = scheduler.advance_all()
    assert [m.kind for m in result.emitted] == [MessageKind.PERIODIC_REPORT] * 2
    assert session.last_report == clock()
    assert session.current_tag is FlowTag.MEDIA


def test_duration_check_precedes_periodic_report(
    scheduler: SessionScheduler, registry: SessionRegistry, clock: FakeClock
) -> None:
    """On the tick where both are due, the media phase exits instead of reporting."""
    [session] = registry.create_for_scenario(make_scenario(), clock())
    session.flow = deque([FlowTag.MEDIA, FlowTag.BYE, FlowTag.OK_BYE, FlowTag.END])
    session.call_start = session.last_report = clock()
    session.target_duration = 60

    clock.advance(60)
    result = scheduler.advance_all()

    assert [m.kind for m in result.emitted] == TEARDOWN_GROUP
    assert session.final_reports_sent
    assert session.current_tag is FlowTag.BYE
    assert session.stats.samples == 0


def test_report_group_never_emitted_twice(
    scheduler: SessionScheduler,
    registry: SessionRegistry,
    exporter: MemoryMessageExporter,
    clock: FakeClock,
) -> None:
    """END after a MEDIA exit only adds the call log."""
    [session] = registry.create_for_scenario(make_scenario(), clock())
    session.flow = deque([FlowTag.MEDIA, FlowTag.END])
    session.call_start = session.last_report = clock()
    session.target_duration = 1
    session.media_established = True

    clock.advance(1)
    scheduler.advance_all()
    clock.advance(1)
    result = scheduler.advance_all()

    assert [m.kind for m in result.emitted] == [MessageKind.CALL_LOG]
    hangups = [m for m in exporter.messages if m.kind is MessageKind.HANGUP_REPORT]
    assert len(hangups) == 2


def test_end_emits_group_when_media_phase_skipped(
    scheduler: SessionScheduler,
    registry: SessionRegistry,
    exporter: MemoryMessageExporter,
    clock: FakeClock,
) -> None:
    """An answered call without MEDIA gets its report group at END."""
    registry.create_for_scenario(make_scenario(flow="timeout"), clock())
    _run_until_empty(scheduler, registry, clock)
    kinds = [m.kind for m in exporter.messages]
    assert kinds[-7:] == TEARDOWN_GROUP + [MessageKind.CALL_LOG]
    assert [m.tag for m in exporter.messages][5:7] == [FlowTag.BYE, FlowTag.REQUEST_TIMEOUT]


def test_registration_flow_has_no_media_reports(
    scheduler: SessionScheduler,
    registry: SessionRegistry,
    exporter: MemoryMessageExporter,
    clock: FakeClock,
) -> None:
    """REGISTER dialogs never produce RTP reports."""
    registry.create_for_scenario(make_scenario(flow="auth_register"), clock())
    _run_until_empty(scheduler, registry, clock)
    assert [m.tag for m in exporter.messages] == [
        FlowTag.REGISTER,
        FlowTag.UNAUTHORIZED,
        FlowTag.REGISTER_AUTH,
        FlowTag.OK,
        FlowTag.END,
    ]
    assert "CSeq" in exporter.messages[3].body and "REGISTER" in exporter.messages[3].body


def test_rejected_call_has_no_media_reports(
    scheduler: SessionScheduler,
    registry: SessionRegistry,
    exporter: MemoryMessageExporter,
    clock: FakeClock,
) -> None:
    """A call refused before any answer ends with the call log alone."""
    registry.create_for_scenario(make_scenario(flow="unauthorized"), clock())
    _run_until_empty(scheduler, registry, clock)
    assert not [m for m in exporter.messages if m.kind in REPORT_KINDS]
    assert [m.tag for m in exporter.messages] == [
        FlowTag.INVITE,
        FlowTag.TRYING,
        FlowTag.FORBIDDEN,
        FlowTag.END,
    ]


def test_auth_flow_cseq_progression(
    scheduler: SessionScheduler,
    registry: SessionRegistry,
    exporter: MemoryMessageExporter,
    clock: FakeClock,
) -> None:
    """The challenged INVITE is retried with the next CSeq; BYE takes another."""
    scenario = make_scenario(flow="auth", min_duration=2, max_duration=2)
    [session] = registry.create_for_scenario(scenario, clock())
    first = session.seq
    _run_until_empty(scheduler, registry, clock)
    by_tag = {m.tag: m.body for m in exporter.messages if m.kind not in REPORT_KINDS}
    assert f"CSeq: {first} INVITE" in by_tag[FlowTag.INVITE]
    assert f"CSeq: {first} INVITE" in by_tag[FlowTag.PROXY_AUTH_REQUIRED]
    assert f"CSeq: {first} ACK" in by_tag[FlowTag.ACK_407]
    assert f"CSeq: {first + 1} INVITE" in by_tag[FlowTag.INVITE_AUTH]
    assert "Proxy-Authorization: Digest" in by_tag[FlowTag.INVITE_AUTH]
    assert f"CSeq: {first + 2} BYE" in by_tag[FlowTag.BYE]
    assert f"CSeq: {first + 2} BYE" in by_tag[FlowTag.OK_BYE]


def _branch(body: str) -> str:
    return re.search(r";branch=([^;\r\n]+)", body).group(1)


def test_responses_echo_request_branch(
    scheduler: SessionScheduler,
    registry: SessionRegistry,
    exporter: MemoryMessageExporter,
    clock: FakeClock,
) -> None:
    """Responses carry their request's Via branch; each new transaction gets a fresh one."""
    scenario = make_scenario(flow="auth", min_duration=2, max_duration=2)
    registry.create_for_scenario(scenario, clock())
    _run_until_empty(scheduler, registry, clock)
    branches = {
        m.tag: _branch(m.body)
        for m in exporter.messages
        if m.kind not in REPORT_KINDS and m.kind is not MessageKind.CALL_LOG
    }

    invite = branches[FlowTag.INVITE]
    assert branches[FlowTag.PROXY_AUTH_REQUIRED] == invite
    assert branches[FlowTag.ACK_407] == invite

    retry = branches[FlowTag.INVITE_AUTH]
    assert retry != invite
    for tag in (FlowTag.TRYING, FlowTag.RINGING, FlowTag.OK):
        assert branches[tag] == retry

    assert branches[FlowTag.ACK] not in (invite, retry)
    assert branches[FlowTag.OK_BYE] == branches[FlowTag.BYE]
    assert branches[FlowTag.BYE] != branches[FlowTag.ACK]
    assert all(b.startswith("z9hG4bK") for b in branches.values())


def test_periodic_reports_fold_samples(
    scheduler: SessionScheduler,
    registry: SessionRegistry,
    exporter: MemoryMessageExporter,
    clock: FakeClock,
) -> None:
    """Each periodic window halves the distance to the sampled MOS."""
    scenario = make_scenario(mos=[3.0, 3.0], jitter=[2.0, 2.0], packet_loss=[1, 1])
    [session] = registry.create_for_scenario(scenario, clock())
    session.flow = deque([FlowTag.MEDIA, FlowTag.END])
    session.call_start = session.last_report = clock()

    clock.advance(31)
    scheduler.advance_all()
    assert session.stats.mean_mos == 3.5
    clock.advance(31)
    scheduler.advance_all()
    assert session.stats.mean_mos == 3.25
    assert session.stats.mean_jitter == 1.5
    assert session.stats.packet_loss == 2

    body = json.loads(exporter.messages[-1].body)
    assert body["MEAN_MOS"] == 3.25
    assert body["PACKET_LOSS"] == 2


def test_unknown_tag_drops_only_that_session(
    scheduler: SessionScheduler,
    registry: SessionRegistry,
    exporter: MemoryMessageExporter,
    clock: FakeClock,
) -> None:
    """A FOO tag removes its session and reports an error; others keep going."""
    [good] = registry.create_for_scenario(make_scenario(), clock())
    [bad] = registry.create_for_scenario(make_scenario(name="broken", flow=["FOO"]), clock())

    clock.advance(1)
    result = scheduler.advance_all()

    assert len(result.errors) == 1
    error = result.errors[0]
    assert isinstance(error, UnknownFlowStateError)
    assert error.tag == "FOO"
    assert error.call_id == bad.call_id
    assert result.removed == [bad]
    assert bad not in registry
    assert good in registry
    assert [m.call_id for m in exporter.messages] == [good.call_id]
    assert good.current_tag is FlowTag.TRYING


def test_unknown_tag_mid_flow(
    scheduler: SessionScheduler, registry: SessionRegistry, clock: FakeClock
) -> None:
    """Tags before the unknown one are still emitted."""
    registry.create_for_scenario(make_scenario(flow=["INVITE", "FOO", "END"]), clock())
    clock.advance(1)
    assert len(scheduler.advance_all().emitted) == 1
    clock.advance(1)
    result = scheduler.advance_all()
    assert len(result.errors) == 1
    assert len(registry) == 0


def test_encoding_error_drops_only_that_session(
    scheduler: SessionScheduler,
    registry: SessionRegistry,
    exporter: MemoryMessageExporter,
    clock: FakeClock,
) -> None:
    """A message the codec refuses ends its call; the rest of the pass continues."""
    [bad] = registry.create_for_scenario(make_scenario(name="broken"), clock())
    [good] = registry.create_for_scenario(make_scenario(), clock())
    bad.forward = dataclasses.replace(bad.forward, dst_port=70000)

    clock.advance(1)
    result = scheduler.advance_all()

    assert len(result.errors) == 1
    assert isinstance(result.errors[0], HepEncodeError)
    assert result.removed == [bad]
    assert bad not in registry
    assert [m.call_id for m in exporter.messages] == [good.call_id]
    assert len(exporter.packets) == 1


def test_relayed_legs_end_to_end(
    scheduler: SessionScheduler,
    registry: SessionRegistry,
    exporter: MemoryMessageExporter,
    clock: FakeClock,
) -> None:
    """Both legs follow their own route and share one correlation id throughout."""
    scenario = make_scenario(via="192.0.2.50", min_duration=5, max_duration=5)
    leg1, leg2 = registry.create_for_scenario(scenario, clock())
    _run_until_empty(scheduler, registry, clock)

    for leg in (leg1, leg2):
        messages = [m for m in exporter.messages if m.call_id == leg.call_id]
        invite = messages[0]
        assert invite.tag is FlowTag.INVITE
        routing = invite.routing
        assert (routing.src_ip, routing.dst_ip, routing.src_port, routing.dst_port) == (
            leg.forward.src_ip,
            leg.forward.dst_ip,
            leg.forward.src_port,
            leg.forward.dst_port,
        )
        assert f"X-CID: {leg1.call_id}" in invite.body
        assert messages[-1].kind is MessageKind.CALL_LOG
        assert {m.routing.correlation_id for m in messages} == {leg1.call_id}
    assert leg1.forward.dst_ip == leg2.forward.src_ip == "192.0.2.50"
    assert len(exporter.messages) == len(exporter.packets)


def test_send_failures_do_not_stall_the_flow(registry: SessionRegistry, clock: FakeClock) -> None:
    """Failed sends are counted and the session still advances."""
    scheduler = SessionScheduler(
        registry, MessageBuilder(random.Random(1)), MemoryMessageExporter(fail=True), clock=clock
    )
    [session] = registry.create_for_scenario(make_scenario(), clock())
    clock.advance(1)
    result = scheduler.advance_all()
    assert result.failed == 1
    assert session.current_tag is FlowTag.TRYING


def test_drained_after_stop(
    scheduler: SessionScheduler, registry: SessionRegistry, clock: FakeClock
) -> None:
    """drained is reported only once stop was requested and the pool is empty."""
    assert not scheduler.advance_all().drained
    registry.create_for_scenario(make_scenario(flow="registration"), clock())
    scheduler.request_stop()
    results = _run_until_empty(scheduler, registry, clock)
    assert [r.drained for r in results] == [False, False, True]


def test_flow_without_end_still_closes(
    scheduler: SessionScheduler,
    registry: SessionRegistry,
    exporter: MemoryMessageExporter,
    clock: FakeClock,
) -> None:
    """A custom flow that never says END is closed when its tags run out."""
    registry.create_for_scenario(make_scenario(flow=["REGISTER", "200"]), clock())
    _run_until_empty(scheduler, registry, clock)
    assert [m.kind for m in exporter.messages][-1] is MessageKind.CALL_LOG


def _metric_total(reader: InMemoryMetricReader, name: str) -> int:
    total = 0
    data = reader.get_metrics_data()
    for resource_metrics in data.resource_metrics:
        for scope_metrics in resource_metrics.scope_metrics:
            for metric in scope_metrics.metrics:
                if metric.name == name:
                    total += sum(point.value for point in metric.data.data_points)
    return total


def test_metrics_recorded(registry: SessionRegistry, clock: FakeClock) -> None:
    """Sent messages, completions and flow errors are counted."""
    reader = InMemoryMetricReader()
    metrics = SimulationMetrics(reader=reader)
    exporter = MemoryMessageExporter()
    scheduler = SessionScheduler(
        registry, MessageBuilder(random.Random(1)), exporter, clock=clock, metrics=metrics
    )
    registry.create_for_scenario(make_scenario(name="registration", flow="registration"), clock())
    registry.create_for_scenario(make_scenario(name="broken", flow=["FOO"]), clock())
    metrics.record_admitted("registration")
    metrics.record_admitted("broken")

    _run_until_empty(scheduler, registry, clock)

    assert _metric_total(reader, "hepsim.messages.sent") == len(exporter.messages) == 3
    assert _metric_total(reader, "hepsim.sessions.completed") == 1
    assert _metric_total(reader, "hepsim.flow.errors") == 1
    assert _metric_total(reader, "hepsim.sessions.live") == 0
    metrics.shutdown()
