"""
Data models for qoslens
"""

from dataclasses import dataclass, field, asdict
from typing import Optional
from datetime import datetime


PROBE_KINDS = ('http', 'tcp', 'icmp', 'icmp_qos', 'dns', 'grpc')


@dataclass(frozen=True)
class BasicAuth:
    username: str = ''
    password: str = ''


@dataclass(frozen=True)
class HTTPParameters:
    """HTTP probe parameters"""
    method: str = 'GET'
    headers: dict[str, str] = field(default_factory=dict)
    body: str = ''
    basic_auth: Optional[BasicAuth] = None
    valid_status_codes: tuple[int, ...] = ()
    follow_redirects: bool = True


@dataclass(frozen=True)
class TCPParameters:
    port: Optional[int] = None


@dataclass(frozen=True)
class ICMPParameters:
    packet_size: int = 56
    ttl: int = 64


@dataclass(frozen=True)
class ICMPQoSParameters:
    """
    ICMP QoS probe parameters.

    interval and timeout are in milliseconds; timeout applies per packet.
    """
    packet_size: int = 56
    count: int = 5
    interval: int = 1000
    timeout: int = 1000
    ttl: int = 64


DEFAULT_ICMP_QOS = ICMPQoSParameters()


@dataclass(frozen=True)
class DNSParameters:
    query_name: str = ''
    query_type: str = 'A'
    transport: str = 'udp'
    valid_rcodes: tuple[str, ...] = ('NOERROR',)


@dataclass(frozen=True)
class Module:
    """Named probe configuration"""
    prober: str
    timeout: float = 10.0  # seconds
    http: Optional[HTTPParameters] = None
    tcp: Optional[TCPParameters] = None
    icmp: Optional[ICMPParameters] = None
    icmp_qos: Optional[ICMPQoSParameters] = None
    dns: Optional[DNSParameters] = None

    def to_dict(self) -> dict:
        """Plain dict of the populated fields, secrets masked"""
        data = {k: v for k, v in asdict(self).items() if v is not None}
        auth = data.get('http', {}).get('basic_auth')
        if auth and auth.get('password'):
            auth['password'] = '<secret>'
        for block in data.values():
            if isinstance(block, dict):
                for key, value in block.items():
                    if isinstance(value, tuple):
                        block[key] = list(value)
        return data


@dataclass(frozen=True)
class Config:
    modules: dict[str, Module] = field(default_factory=dict)


@dataclass
class HTTPOverrides:
    """Request-scoped HTTP overrides; see ConfigResolver for merge rules"""
    headers: dict[str, str] = field(default_factory=dict)
    method: str = ''
    body: str = ''
    basic_auth: Optional[BasicAuth] = None


@dataclass
class ICMPQoSOverrides:
    packet_size: Optional[int] = None
    count: Optional[int] = None
    interval: Optional[int] = None


@dataclass
class ProbeOverrides:
    """Per-call overrides supplied by the caller of ProbeOrchestrator.call"""
    timeout: float = 0.0
    http: Optional[HTTPOverrides] = None
    icmp_qos: Optional[ICMPQoSOverrides] = None


@dataclass(frozen=True)
class HistoryEntry:
    """One recorded probe run"""
    id: int
    module: str
    target: str
    debug_output: str
    success: bool
    created: datetime = field(default_factory=datetime.now)
