import logging

from prometheus_client import CollectorRegistry

from qoslens.logs import ScrapeLogger
from qoslens.models import ICMPQoSParameters, Module
from qoslens.probe import ICMPQoSProber, ProbeContext

from conftest import (
    MS, SCENARIO_REPLIES, FakeEchoSession, failing_session_factory, fake_session_factory
)


PARAMS = ICMPQoSParameters(packet_size=56, count=5, interval=100, timeout=1000, ttl=64)


def run_logger():
    return ScrapeLogger(logging.getLogger('test'), 'icmp_qos', '192.0.2.1')


def test_run_applies_parameters_to_session():
    prober = ICMPQoSProber(session_factory=fake_session_factory(replies=SCENARIO_REPLIES))
    aggregate, success = prober.run(ProbeContext.with_timeout(5), '192.0.2.1', PARAMS, run_logger())

    assert success
    session = FakeEchoSession.instances[0]
    assert session.target == '192.0.2.1'
    assert session.count == 5
    assert session.size == 56
    assert session.interval == 0.1
    assert session.timeout == 1.0
    assert session.ttl == 64
    assert session.closed
    assert aggregate.packets_received == 4


def test_partial_loss_is_not_a_run_failure():
    prober = ICMPQoSProber(session_factory=fake_session_factory(replies={0: 5 * MS}))
    aggregate, success = prober.run(ProbeContext.with_timeout(5), 'host', PARAMS, run_logger())

    assert success
    assert aggregate.packet_loss == 4


def test_session_setup_failure_is_reported_not_raised():
    prober = ICMPQoSProber(session_factory=failing_session_factory)
    sl = run_logger()
    aggregate, success = prober.run(ProbeContext.with_timeout(5), 'nowhere.invalid', PARAMS, sl)

    assert aggregate is None
    assert not success
    assert 'set pinger failed' in sl.getvalue()


def test_deadline_expiry_fails_the_run_with_partial_aggregate():
    prober = ICMPQoSProber(session_factory=fake_session_factory(replies=SCENARIO_REPLIES, stall_after=2))
    aggregate, success = prober.run(ProbeContext.with_timeout(0.1), 'host', PARAMS, run_logger())

    assert not success
    assert aggregate.packets_sent == 2
    assert aggregate.packets_received == 2
    assert aggregate.packet_count == 5


def test_probe_registers_qos_families():
    registry = CollectorRegistry()
    prober = ICMPQoSProber(session_factory=fake_session_factory(replies=SCENARIO_REPLIES))
    module = Module(prober='icmp_qos', icmp_qos=PARAMS)

    assert prober(ProbeContext.with_timeout(5), 'host', module, registry, run_logger())

    value = registry.get_sample_value
    assert value('probe_qos_packet_count') == 5
    assert value('probe_qos_packet_loss', {'total': 'sent'}) == 5
    assert value('probe_qos_packet_loss', {'total': 'received'}) == 4
    assert value('probe_qos_packet_loss', {'total': 'loss'}) == 1
    assert value('probe_qos_packet_loss', {'total': 'loss_percentage'}) == 20.0
    assert value('probe_qos_latency_gauge', {'aggregate': 'total'}) == 1046.0
    assert value('probe_qos_latency_gauge', {'aggregate': 'avg'}) == 261.5
    assert value('probe_qos_latency_gauge', {'aggregate': 'min'}) == 10.0
    assert value('probe_qos_latency_gauge', {'aggregate': 'max'}) == 13.0
    assert value('probe_qos_latency_gauge', {'aggregate': 'standard_deviation'}) > 0
    assert value('probe_qos_jitter_gauge', {'aggregate': 'total_diff'}) == 1_005_000.0
    assert value('probe_qos_jitter_gauge', {'aggregate': 'max_diff'}) == 2000.0
    assert value('probe_qos_jitter_gauge', {'aggregate': 'min_diff'}) == 1000.0
    assert value('probe_qos_jitter') == 335_000.0
    assert value('probe_qos_duration_seconds') >= 0


def test_probe_with_out_of_order_replies_matches_in_order():
    module = Module(prober='icmp_qos', icmp_qos=PARAMS)
    results = []
    for reverse in (False, True):
        registry = CollectorRegistry()
        prober = ICMPQoSProber(session_factory=fake_session_factory(replies=SCENARIO_REPLIES, reverse=reverse))
        prober(ProbeContext.with_timeout(5), 'host', module, registry, run_logger())
        results.append(registry.get_sample_value('probe_qos_jitter'))

    assert results[0] == results[1]


def test_probe_without_qos_parameters_fails_fast():
    prober = ICMPQoSProber(session_factory=fake_session_factory())
    registry = CollectorRegistry()

    assert not prober(ProbeContext.with_timeout(5), 'host', Module(prober='icmp_qos'),
                      registry, run_logger())
    assert FakeEchoSession.instances == []
