"""
DNS probe built on dnspython
"""

import time

import dns.exception
import dns.message
import dns.query
import dns.rcode
import dns.rdatatype
from prometheus_client import CollectorRegistry, Gauge

from ..models import Module
from .base import BaseProber, ProbeContext, resolve_target, split_host_port


class DNSProber(BaseProber):
    """Sends one query to the target name server and checks the response code"""

    def __call__(self, ctx: ProbeContext, target: str, module: Module,
                 registry: CollectorRegistry, logger) -> bool:
        params = module.dns
        if params is None or not params.query_name:
            logger.error("Module has no dns query_name")
            return False

        rtt_gauge = Gauge('probe_dns_duration_seconds', 'Duration of DNS request',
                          registry=registry)
        answer_gauge = Gauge('probe_dns_answer_rrs', 'Returns number of entries in the answer resource record list',
                             registry=registry)
        authority_gauge = Gauge('probe_dns_authority_rrs', 'Returns number of entries in the authority resource record list',
                                registry=registry)
        additional_gauge = Gauge('probe_dns_additional_rrs', 'Returns number of entries in the additional resource record list',
                                 registry=registry)

        try:
            host, port = split_host_port(target, 53)
        except ValueError as e:
            logger.error("Error splitting target address and port", err=e)
            return False

        resolved = resolve_target(host, registry, logger)
        if resolved is None:
            return False
        ip, _ = resolved

        try:
            qtype = dns.rdatatype.from_text(params.query_type)
        except dns.exception.DNSException as e:
            logger.error("Invalid query type", query_type=params.query_type, err=e)
            return False

        query = dns.message.make_query(params.query_name, qtype)
        send = dns.query.tcp if params.transport == 'tcp' else dns.query.udp
        logger.info("Making DNS query", target=ip, port=port, question=params.query_name,
                    type=params.query_type, transport=params.transport)
        start = time.monotonic()
        try:
            response = send(query, ip, timeout=ctx.bound(module.timeout), port=port)
        except (dns.exception.DNSException, OSError) as e:
            logger.error("Error while sending a DNS query", err=e)
            return False
        finally:
            rtt_gauge.set(time.monotonic() - start)

        answer_gauge.set(len(response.answer))
        authority_gauge.set(len(response.authority))
        additional_gauge.set(len(response.additional))

        rcode = dns.rcode.to_text(response.rcode())
        logger.info("Got response", rcode=rcode)
        if rcode not in params.valid_rcodes:
            logger.error("Rcode is not one of the valid rcodes", rcode=rcode)
            return False
        return True
