"""
Probe orchestration: resolve, dispatch under a deadline, gather, record
"""

import io
import logging
import time
from typing import Optional

import yaml
from prometheus_client import CollectorRegistry, Counter, Gauge
from prometheus_client.exposition import generate_latest

from .config import ConfigResolver, SafeConfig
from .exceptions import GatherError, UnknownModuleError, UnknownProberError
from .history import ResultHistory
from .logs import ScrapeLogger
from .models import Module, ProbeOverrides
from .probe import BaseProber, DNSProber, HTTPProber, ICMPProber, ICMPQoSProber, ProbeContext, TCPProber
from .snapshot import MetricSnapshot, gather


logger = logging.getLogger(__name__)


def default_probers() -> dict[str, BaseProber]:
    return {
        'http': HTTPProber(),
        'tcp': TCPProber(),
        'icmp': ICMPProber(),
        'icmp_qos': ICMPQoSProber(),
        'dns': DNSProber(),
    }


def debug_output(module: Module, log_text: str, registry: CollectorRegistry) -> str:
    """Plaintext trace of one run: logs, metrics, effective module"""
    buf = io.StringIO()
    buf.write("Logs for the probe:\n")
    buf.write(log_text)
    buf.write("\n\n\nMetrics that would have been returned:\n")
    try:
        buf.write(generate_latest(registry).decode('utf-8'))
    except Exception as e:
        buf.write(f"Error gathering metrics: {e}\n")
    buf.write("\n\n\nModule configuration:\n")
    buf.write(yaml.safe_dump(module.to_dict(), sort_keys=False))
    return buf.getvalue()


class ProbeOrchestrator:
    """
    Top-level entry point for running probes.

        orchestrator = ProbeOrchestrator(SafeConfig(default_config()))
        snapshot = orchestrator.call("10.0.0.1", "icmp_qos")

    ``unknown_module_counter`` is incremented for every request naming a
    module that is not configured, ``unknown_prober_counter`` for every
    module whose probe kind has no registered prober. By default both live
    in a registry owned by this orchestrator (``self.registry``).
    """

    def __init__(
        self,
        store: SafeConfig,
        history: Optional[ResultHistory] = None,
        probers: Optional[dict[str, BaseProber]] = None,
        timeout_offset: float = 0.0,
        unknown_module_counter: Optional[Counter] = None,
        unknown_prober_counter: Optional[Counter] = None,
        logger: logging.Logger = logger
    ):
        self.resolver = ConfigResolver(store)
        self.history = history if history is not None else ResultHistory()
        self.probers = probers if probers is not None else default_probers()
        self.timeout_offset = timeout_offset
        self.logger = logger
        self.registry = CollectorRegistry()
        if unknown_module_counter is None:
            unknown_module_counter = Counter(
                'qoslens_module_unknown',
                'Count of unknown modules requested by probes',
                registry=self.registry
            )
        self.unknown_module_counter = unknown_module_counter
        if unknown_prober_counter is None:
            unknown_prober_counter = Counter(
                'qoslens_prober_unknown',
                'Count of modules naming a probe kind with no registered prober',
                registry=self.registry
            )
        self.unknown_prober_counter = unknown_prober_counter

    def effective_timeout(self, module: Module, overrides: Optional[ProbeOverrides]) -> float:
        """Positive per-call override, else positive orchestrator offset, else module timeout"""
        if overrides is not None and overrides.timeout > 0:
            return overrides.timeout
        if self.timeout_offset > 0:
            return self.timeout_offset
        return module.timeout

    def call(self, target: str, module_name: str,
             overrides: Optional[ProbeOverrides] = None) -> MetricSnapshot:
        try:
            module = self.resolver.resolve(module_name, overrides)
        except UnknownModuleError:
            self.logger.debug("Unknown module %s", module_name)
            self.unknown_module_counter.inc()
            raise

        prober = self.probers.get(module.prober)
        if prober is None:
            self.logger.debug("Unknown prober %s", module.prober)
            self.unknown_prober_counter.inc()
            raise UnknownProberError(module.prober)

        timeout = self.effective_timeout(module, overrides)
        ctx = ProbeContext.with_timeout(timeout)
        sl = ScrapeLogger(self.logger, module_name, target)
        sl.info("Beginning probe", probe=module.prober, timeout_seconds=timeout)

        registry = CollectorRegistry()
        success_gauge = Gauge('probe_success', 'Displays whether or not the probe was a success',
                              registry=registry)
        duration_gauge = Gauge('probe_duration_seconds',
                               'Returns how long the probe took to complete in seconds',
                               registry=registry)

        start = time.monotonic()
        try:
            success = prober(ctx, target, module, registry, sl)
        except Exception as e:
            sl.error("Probe raised an exception", err=repr(e))
            success = False
        finally:
            ctx.cancel()
        duration = time.monotonic() - start
        duration_gauge.set(duration)
        if success:
            success_gauge.set(1)
            sl.info("Probe succeeded", duration_seconds=duration)
        else:
            sl.error("Probe failed", duration_seconds=duration)

        self.history.add(module_name, target, debug_output(module, sl.getvalue(), registry), success)

        try:
            families = gather(registry)
        except GatherError:
            self.logger.exception("Gathering metrics for %s failed", module_name)
            raise
        return MetricSnapshot(success, families)
