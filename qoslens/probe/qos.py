"""
ICMP QoS statistics: packet events in, loss/latency/jitter aggregates out

All durations are integer nanoseconds until the final unit conversion,
which is exact: ns / 1_000 for microseconds, ns / 1_000_000 for milliseconds.
"""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Optional


NS_PER_US = 1_000
NS_PER_MS = 1_000_000


class PacketEventKind(Enum):
    SENT = 'sent'
    RECEIVED = 'received'
    LOST = 'lost'


@dataclass(frozen=True)
class PacketEvent:
    """A single echo request/reply event"""
    kind: PacketEventKind
    seq: int
    rtt_ns: Optional[int] = None

    @classmethod
    def sent(cls, seq: int) -> 'PacketEvent':
        return cls(PacketEventKind.SENT, seq)

    @classmethod
    def received(cls, seq: int, rtt_ns: int) -> 'PacketEvent':
        return cls(PacketEventKind.RECEIVED, seq, rtt_ns)

    @classmethod
    def lost(cls, seq: int) -> 'PacketEvent':
        return cls(PacketEventKind.LOST, seq)


@dataclass
class PingStatistics:
    """Counters kept by the echo session itself"""
    packets_sent: int = 0
    packets_recv: int = 0
    rtts: list[int] = field(default_factory=list)

    @property
    def packet_loss(self) -> float:
        """Loss percentage"""
        if self.packets_sent == 0:
            return 0.0
        return float(self.packets_sent - self.packets_recv) / float(self.packets_sent) * 100

    @property
    def min_rtt(self) -> int:
        return min(self.rtts) if self.rtts else 0

    @property
    def max_rtt(self) -> int:
        return max(self.rtts) if self.rtts else 0

    @property
    def avg_rtt(self) -> float:
        return sum(self.rtts) / len(self.rtts) if self.rtts else 0.0

    @property
    def stddev_rtt(self) -> float:
        """Population standard deviation of the received round trips"""
        n = len(self.rtts)
        if n == 0:
            return 0.0
        total = sum(self.rtts)
        variance = (n * sum(r * r for r in self.rtts) - total * total) / (n * n)
        return math.sqrt(max(variance, 0))


class PacketLog:
    """
    Per-run event buffer.

    Events arrive in transport order; replies are kept by sequence number so
    that aggregation can replay them in sequence order once the run finishes.
    A reply for a sequence that was never sent, or a duplicate reply, is dropped.
    """

    def __init__(self):
        self.events: list[PacketEvent] = []
        self._sent: set[int] = set()
        self._rtts: dict[int, int] = {}

    def record(self, event: PacketEvent):
        if event.kind is PacketEventKind.SENT:
            self._sent.add(event.seq)
        elif event.kind is PacketEventKind.RECEIVED:
            if event.seq not in self._sent or event.seq in self._rtts:
                return
            self._rtts[event.seq] = event.rtt_ns
        self.events.append(event)

    def sent(self, seq: int):
        self.record(PacketEvent.sent(seq))

    def received(self, seq: int, rtt_ns: int):
        self.record(PacketEvent.received(seq, rtt_ns))

    def lost(self, seq: int):
        self.record(PacketEvent.lost(seq))

    def rtts_by_seq(self) -> dict[int, int]:
        return dict(sorted(self._rtts.items()))

    def statistics(self) -> PingStatistics:
        ordered = self.rtts_by_seq()
        return PingStatistics(
            packets_sent=len(self._sent),
            packets_recv=len(ordered),
            rtts=list(ordered.values())
        )


@dataclass(frozen=True)
class QoSAggregate:
    """Aggregated result of one ICMP QoS run"""
    packet_count: int
    packets_sent: int
    packets_received: int
    packet_loss: int
    loss_percentage: float
    latency_total_ms: float
    latency_min_ms: float
    latency_max_ms: float
    latency_avg_ms: float
    latency_stddev_ms: float
    jitter_total_us: float
    jitter_max_us: float
    jitter_min_us: float
    jitter_mean_us: float

    def latency(self) -> dict[str, float]:
        return {
            'total': self.latency_total_ms,
            'min': self.latency_min_ms,
            'max': self.latency_max_ms,
            'avg': self.latency_avg_ms,
            'standard_deviation': self.latency_stddev_ms,
        }

    def loss(self) -> dict[str, float]:
        return {
            'sent': float(self.packets_sent),
            'received': float(self.packets_received),
            'loss': float(self.packet_loss),
            'loss_percentage': self.loss_percentage,
        }

    def jitter(self) -> dict[str, float]:
        return {
            'total_diff': self.jitter_total_us,
            'max_diff': self.jitter_max_us,
            'min_diff': self.jitter_min_us,
        }


class QoSStatisticsEngine:
    """
    Turns the packet events of one run into a QoSAggregate.

    Jitter is the absolute difference between consecutive received round
    trips, replayed in sequence order. Lost packets are penalized at the
    per-packet timeout: each one adds ``timeout`` to the latency total and
    to the jitter sum, so total loss reads as maximally degraded rather
    than as zero latency.
    """

    def __init__(self, count: int, timeout_ns: int):
        self.count = count
        self.timeout_ns = timeout_ns

    def aggregate(self, events: Iterable[PacketEvent]) -> QoSAggregate:
        log = PacketLog()
        for event in events:
            log.record(event)
        return self.aggregate_log(log)

    def aggregate_log(self, log: PacketLog) -> QoSAggregate:
        stats = log.statistics()
        sent = stats.packets_sent
        received = stats.packets_recv
        lost = sent - received
        penalty = self.timeout_ns * lost

        jitter_sum = 0
        jitter_max = 0
        jitter_min: Optional[int] = None
        prev: Optional[int] = None
        for rtt in log.rtts_by_seq().values():
            if prev is not None:
                jitter = abs(rtt - prev)
                jitter_sum += jitter
                jitter_max = max(jitter_max, jitter)
                jitter_min = jitter if jitter_min is None else min(jitter_min, jitter)
            prev = rtt

        adjusted_jitter = jitter_sum + penalty
        if received > 0:
            jitter_mean = adjusted_jitter / max(received - 1, 1)
        else:
            jitter_mean = adjusted_jitter / max(sent - 1, 1)

        latency_total = sum(stats.rtts) + penalty
        if received > 0:
            latency_avg = latency_total / received
        elif sent > 0:
            latency_avg = latency_total / sent
        else:
            latency_avg = 0.0

        return QoSAggregate(
            packet_count=self.count,
            packets_sent=sent,
            packets_received=received,
            packet_loss=lost,
            loss_percentage=stats.packet_loss,
            latency_total_ms=latency_total / NS_PER_MS,
            latency_min_ms=stats.min_rtt / NS_PER_MS,
            latency_max_ms=stats.max_rtt / NS_PER_MS,
            latency_avg_ms=latency_avg / NS_PER_MS,
            latency_stddev_ms=stats.stddev_rtt / NS_PER_MS,
            jitter_total_us=adjusted_jitter / NS_PER_US,
            jitter_max_us=jitter_max / NS_PER_US,
            jitter_min_us=(jitter_min or 0) / NS_PER_US,
            jitter_mean_us=jitter_mean / NS_PER_US,
        )
