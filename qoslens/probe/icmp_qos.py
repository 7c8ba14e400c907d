"""
ICMP QoS probe: packet loss, latency and jitter over a train of echo requests
"""

import time
from typing import Callable, Optional

from prometheus_client import CollectorRegistry, Gauge

from ..exceptions import SessionSetupError
from ..models import ICMPQoSParameters, Module
from .base import BaseProber, ProbeContext
from .echo import EchoSession
from .qos import NS_PER_MS, PacketLog, QoSAggregate, QoSStatisticsEngine


LATENCY_AGGREGATES = ('total', 'min', 'max', 'avg', 'standard_deviation')
LOSS_TOTALS = ('sent', 'received', 'loss', 'loss_percentage')
JITTER_AGGREGATES = ('total_diff', 'max_diff', 'min_diff')


class QoSGauges:
    """The probe_qos_* families registered into one run's registry"""

    def __init__(self, registry: CollectorRegistry):
        self.duration = Gauge(
            'probe_qos_duration_seconds',
            'Total Durations of the pinger executions (in seconds)',
            registry=registry
        )
        self.latency = Gauge(
            'probe_qos_latency_gauge',
            'Probe QoS Latency Gauge (all are in milliseconds)',
            ['aggregate'],
            registry=registry
        )
        self.packet_loss = Gauge(
            'probe_qos_packet_loss',
            'Probe QoS Packet Loss',
            ['total'],
            registry=registry
        )
        self.jitter_gauge = Gauge(
            'probe_qos_jitter_gauge',
            'Probe QoS Jitter Gauge (all are in microseconds)',
            ['aggregate'],
            registry=registry
        )
        self.jitter = Gauge(
            'probe_qos_jitter',
            'Jitter Calculations and Aggregates (in microseconds)',
            registry=registry
        )
        self.packet_count = Gauge(
            'probe_qos_packet_count',
            'Total number of tested data to be sent to target',
            registry=registry
        )
        # pre-create children so every label shows up even on failed runs
        for lv in LATENCY_AGGREGATES:
            self.latency.labels(lv)
        for lv in LOSS_TOTALS:
            self.packet_loss.labels(lv)
        for lv in JITTER_AGGREGATES:
            self.jitter_gauge.labels(lv)

    def publish(self, aggregate: QoSAggregate):
        self.packet_count.set(aggregate.packet_count)
        for lv, value in aggregate.loss().items():
            self.packet_loss.labels(lv).set(value)
        for lv, value in aggregate.latency().items():
            self.latency.labels(lv).set(value)
        for lv, value in aggregate.jitter().items():
            self.jitter_gauge.labels(lv).set(value)
        self.jitter.set(aggregate.jitter_mean_us)


class ICMPQoSProber(BaseProber):
    """
    Runs one ICMP QoS measurement.

    The echo session records packet events into a PacketLog; statistics are
    computed once, after the session finishes, over the whole buffer.
    """

    def __init__(self, session_factory: Callable[[str], EchoSession] = EchoSession):
        self.session_factory = session_factory

    def run(self, ctx: ProbeContext, target: str, params: ICMPQoSParameters,
            logger) -> tuple[Optional[QoSAggregate], bool]:
        logger.debug("Set Pinger")
        try:
            session = self.session_factory(target)
        except SessionSetupError as e:
            logger.error("set pinger failed", err=e)
            return None, False

        log = PacketLog()
        with session:
            session.count = params.count
            session.size = params.packet_size
            session.interval = params.interval / 1000
            session.timeout = params.timeout / 1000
            session.ttl = params.ttl
            try:
                completed = session.run(ctx, log)
            except OSError as e:
                logger.error("Pinger failed to run", err=e)
                completed = False

        engine = QoSStatisticsEngine(params.count, params.timeout * NS_PER_MS)
        aggregate = engine.aggregate_log(log)
        for seq, rtt in log.rtts_by_seq().items():
            logger.debug("Ping Log", sequence=seq, rtt_ms=rtt / NS_PER_MS)
        if not completed:
            logger.error("Pinger did not finish before the deadline",
                         packets_sent=aggregate.packets_sent,
                         packet_count=params.count)
        self._log_summary(aggregate, logger)
        return aggregate, completed

    def _log_summary(self, aggregate: QoSAggregate, logger):
        if aggregate.packets_sent and not aggregate.packets_received:
            logger.info("ICMP Gauge summary", error="100% packet loss")
        logger.info(
            "ICMP Gauge summary",
            packet_sent=aggregate.packets_sent,
            packet_received=aggregate.packets_received,
            packet_loss=aggregate.packet_loss,
            packet_loss_percentage=aggregate.loss_percentage,
            latency_total=aggregate.latency_total_ms,
            latency_max=aggregate.latency_max_ms,
            latency_min=aggregate.latency_min_ms,
            latency_avg=aggregate.latency_avg_ms,
            latency_std_deviation=aggregate.latency_stddev_ms,
            jitter=aggregate.jitter_mean_us,
            jitter_max=aggregate.jitter_max_us,
            jitter_min=aggregate.jitter_min_us,
            jitter_total=aggregate.jitter_total_us,
        )

    def __call__(self, ctx: ProbeContext, target: str, module: Module,
                 registry: CollectorRegistry, logger) -> bool:
        if module.icmp_qos is None:
            logger.error("Module has no icmp_qos parameters")
            return False

        start = time.monotonic()
        gauges = QoSGauges(registry)
        aggregate, success = self.run(ctx, target, module.icmp_qos, logger)
        if aggregate is None:
            return False

        gauges.publish(aggregate)
        duration = time.monotonic() - start
        gauges.duration.set(duration)
        logger.info("ICMP Execution duration", duration=duration)
        return success
