"""
Probe contract shared by all probe implementations
"""

import socket
import threading
import time
from abc import ABC, abstractmethod
from typing import Optional

from prometheus_client import CollectorRegistry, Gauge

from ..models import Module


class ProbeContext:
    """
    Deadline and cancellation carried into a probe run.

    Probes poll ``done()`` between packets and bound blocking waits by
    ``remaining()``.
    """

    def __init__(self, deadline: Optional[float] = None):
        self.deadline = deadline
        self._cancelled = threading.Event()

    @classmethod
    def with_timeout(cls, seconds: float) -> 'ProbeContext':
        return cls(time.monotonic() + seconds)

    def cancel(self):
        self._cancelled.set()

    def remaining(self) -> Optional[float]:
        """Seconds left before the deadline, never negative; None without a deadline"""
        if self.deadline is None:
            return None
        return max(self.deadline - time.monotonic(), 0.0)

    def expired(self) -> bool:
        return self.deadline is not None and time.monotonic() >= self.deadline

    def done(self) -> bool:
        return self._cancelled.is_set() or self.expired()

    def wait(self, seconds: float) -> bool:
        """Sleep up to ``seconds`` or until the deadline; True if the run should stop"""
        remaining = self.remaining()
        if remaining is not None:
            seconds = min(seconds, remaining)
        self._cancelled.wait(max(seconds, 0.0))
        return self.done()

    def bound(self, timeout: float) -> float:
        """Clamp a per-operation timeout to the time left in the run"""
        remaining = self.remaining()
        return timeout if remaining is None else min(timeout, remaining)


class BaseProber(ABC):
    """
    Probe implementation.

    Called with the run context, the target, the effective module, a
    per-run registry to register measurements into, and the run logger.
    Returns the success flag.
    """

    @abstractmethod
    def __call__(self, ctx: ProbeContext, target: str, module: Module,
                 registry: CollectorRegistry, logger) -> bool:
        pass


def split_host_port(target: str, default_port: Optional[int] = None) -> tuple[str, Optional[int]]:
    """Split ``host:port`` / ``[v6]:port`` targets"""
    if target.startswith('['):
        host, _, rest = target[1:].partition(']')
        port = rest[1:] if rest.startswith(':') else ''
    elif target.count(':') == 1:
        host, port = target.split(':')
    else:
        host, port = target, ''
    if port:
        try:
            return host, int(port)
        except ValueError:
            raise ValueError(f"invalid port in target {target!r}")
    return host, default_port


def resolve_target(host: str, registry: CollectorRegistry, logger) -> Optional[tuple[str, int]]:
    """
    Resolve host to an address, recording the lookup time.

    Returns (ip, family) or None when resolution fails.
    """
    lookup_gauge = Gauge(
        'probe_dns_lookup_time_seconds',
        'Returns the time taken for probe dns lookup in seconds',
        registry=registry
    )
    protocol_gauge = Gauge(
        'probe_ip_protocol',
        'Specifies whether probe ip protocol is IP4 or IP6',
        registry=registry
    )

    logger.info("Resolving target address", target=host)
    start = time.monotonic()
    try:
        infos = socket.getaddrinfo(host, None, proto=socket.IPPROTO_TCP)
    except (socket.gaierror, UnicodeError) as e:
        logger.error("Resolution with IP protocol failed", target=host, err=e)
        return None
    finally:
        lookup_gauge.set(time.monotonic() - start)

    # prefer IPv4
    infos.sort(key=lambda info: info[0] != socket.AF_INET)
    family, _, _, _, sockaddr = infos[0]
    ip = sockaddr[0]
    protocol_gauge.set(4 if family == socket.AF_INET else 6)
    logger.info("Resolved target address", target=host, ip=ip)
    return ip, family
