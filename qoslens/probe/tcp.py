"""
TCP probe: connect to host:port
"""

import socket

from prometheus_client import CollectorRegistry

from ..models import Module
from .base import BaseProber, ProbeContext, resolve_target, split_host_port


class TCPProber(BaseProber):
    """Succeeds when a TCP connection to the target can be established"""

    def __call__(self, ctx: ProbeContext, target: str, module: Module,
                 registry: CollectorRegistry, logger) -> bool:
        default_port = module.tcp.port if module.tcp else None
        try:
            host, port = split_host_port(target, default_port)
        except ValueError as e:
            logger.error("Error splitting target address and port", err=e)
            return False
        if port is None:
            logger.error("Target has no port and module sets none", target=target)
            return False

        resolved = resolve_target(host, registry, logger)
        if resolved is None:
            return False
        ip, family = resolved

        logger.info("Dialing TCP without TLS", ip=ip, port=port)
        sock = socket.socket(family, socket.SOCK_STREAM)
        try:
            sock.settimeout(ctx.bound(module.timeout))
            sock.connect((ip, port))
        except OSError as e:
            logger.error("Error dialing TCP", err=e)
            return False
        finally:
            sock.close()

        logger.info("Successfully dialed")
        return True
