"""
HTTP probe built on httpx
"""

import time
from typing import Optional

import httpx
from prometheus_client import CollectorRegistry, Gauge

from ..models import HTTPParameters, Module
from .base import BaseProber, ProbeContext


def _status_ok(status: int, params: HTTPParameters) -> bool:
    if params.valid_status_codes:
        return status in params.valid_status_codes
    return 200 <= status < 300


class HTTPProber(BaseProber):
    """
    Issues one HTTP request against the target URL.

    Method, headers, body and basic auth come from the effective module.
    ``transport`` lets callers plug in an alternative httpx transport.
    """

    def __init__(self, transport: Optional[httpx.BaseTransport] = None):
        self.transport = transport

    def __call__(self, ctx: ProbeContext, target: str, module: Module,
                 registry: CollectorRegistry, logger) -> bool:
        params = module.http
        if params is None:
            logger.error("Module has no http parameters")
            return False

        status_gauge = Gauge('probe_http_status_code', 'Response HTTP status code',
                             registry=registry)
        length_gauge = Gauge('probe_http_content_length', 'Length of http content response',
                             registry=registry)
        redirects_gauge = Gauge('probe_http_redirects', 'The number of redirects',
                                registry=registry)
        ssl_gauge = Gauge('probe_http_ssl', 'Indicates if SSL was used for the final redirect',
                          registry=registry)
        duration_gauge = Gauge('probe_http_duration_seconds',
                               'Duration of http request', registry=registry)

        if '://' not in target:
            target = 'http://' + target

        auth = None
        if params.basic_auth:
            auth = httpx.BasicAuth(params.basic_auth.username, params.basic_auth.password)

        logger.info("Making HTTP request", url=target, method=params.method)
        start = time.monotonic()
        try:
            with httpx.Client(
                transport=self.transport,
                timeout=ctx.bound(module.timeout),
                follow_redirects=params.follow_redirects,
                auth=auth
            ) as client:
                response = client.request(
                    params.method or 'GET',
                    target,
                    headers=params.headers,
                    content=params.body or None
                )
        except httpx.HTTPError as e:
            logger.error("Error for HTTP request", err=e)
            return False
        finally:
            duration_gauge.set(time.monotonic() - start)

        status_gauge.set(response.status_code)
        length_gauge.set(len(response.content))
        redirects_gauge.set(len(response.history))
        ssl_gauge.set(1 if response.url.scheme == 'https' else 0)
        logger.info("Received HTTP response", status_code=response.status_code)

        if not _status_ok(response.status_code, params):
            logger.error("Invalid HTTP response status code", status_code=response.status_code)
            return False
        return True
