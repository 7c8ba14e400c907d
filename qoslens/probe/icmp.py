"""
ICMP probe: one echo request, success on reply
"""

import time
from typing import Callable

from prometheus_client import CollectorRegistry, Gauge

from ..exceptions import SessionSetupError
from ..models import Module
from .base import BaseProber, ProbeContext
from .echo import EchoSession
from .qos import NS_PER_MS, PacketLog


class ICMPProber(BaseProber):

    def __init__(self, session_factory: Callable[[str], EchoSession] = EchoSession):
        self.session_factory = session_factory

    def __call__(self, ctx: ProbeContext, target: str, module: Module,
                 registry: CollectorRegistry, logger) -> bool:
        if module.icmp is None:
            logger.error("Module has no icmp parameters")
            return False

        duration_gauge = Gauge(
            'probe_icmp_duration_seconds',
            'Duration of icmp request by phase',
            ['phase'],
            registry=registry
        )
        for phase in ('setup', 'rtt'):
            duration_gauge.labels(phase)

        start = time.monotonic()
        try:
            session = self.session_factory(target)
        except SessionSetupError as e:
            logger.error("Error creating echo session", err=e)
            return False
        duration_gauge.labels('setup').set(time.monotonic() - start)

        log = PacketLog()
        with session:
            session.count = 1
            session.size = module.icmp.packet_size
            session.ttl = module.icmp.ttl
            session.interval = 0
            session.timeout = ctx.bound(module.timeout)
            logger.info("Creating ICMP packet", packet_size=session.size, ttl=session.ttl)
            try:
                completed = session.run(ctx, log)
            except OSError as e:
                logger.error("Error sending ICMP packet", err=e)
                return False

        rtts = log.rtts_by_seq()
        if not completed or not rtts:
            logger.warning("Timeout reading from socket")
            return False

        rtt_ns = rtts[min(rtts)]
        duration_gauge.labels('rtt').set(rtt_ns / NS_PER_MS / 1000)
        logger.info("Found matching reply packet", rtt_ms=rtt_ns / NS_PER_MS)
        return True
