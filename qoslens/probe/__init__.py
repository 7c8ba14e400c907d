"""
Probe engines for qoslens
"""

from .base import BaseProber, ProbeContext
from .echo import EchoSession
from .qos import PacketEvent, PacketLog, QoSAggregate, QoSStatisticsEngine
from .icmp_qos import ICMPQoSProber
from .icmp import ICMPProber
from .tcp import TCPProber
from .http import HTTPProber
from .dns import DNSProber

__all__ = [
    'BaseProber', 'ProbeContext', 'EchoSession',
    'PacketEvent', 'PacketLog', 'QoSAggregate', 'QoSStatisticsEngine',
    'ICMPQoSProber', 'ICMPProber', 'TCPProber', 'HTTPProber', 'DNSProber',
]
