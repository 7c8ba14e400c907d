"""
Metric snapshot: the gathered result of one probe run
"""

import json
from typing import Iterable

from prometheus_client import CollectorRegistry
from prometheus_client.exposition import generate_latest
from prometheus_client.metrics_core import Metric

from .exceptions import GatherError


def gather(registry: CollectorRegistry) -> list[Metric]:
    """Collect every family registered into a run registry"""
    try:
        return sorted(registry.collect(), key=lambda mf: mf.name)
    except Exception as e:
        raise GatherError(f"failed to gather metrics: {e}") from e


class _FamilyCollector:
    """Serves an already gathered family list to the exposition writer"""

    def __init__(self, families: list[Metric]):
        self._families = families

    def collect(self) -> Iterable[Metric]:
        return iter(self._families)


class MetricSnapshot:
    """
    Success flag plus the measurement families of one run.

    ``text()`` renders the Prometheus text exposition format, ``json()`` a
    list of family documents. Both carry the same float values.
    """

    def __init__(self, success: bool, families: Iterable[Metric]):
        self._success = success
        self._families = tuple(families)

    @property
    def success(self) -> bool:
        return self._success

    @property
    def families(self) -> tuple[Metric, ...]:
        return self._families

    def text(self) -> bytes:
        return generate_latest(_FamilyCollector(list(self._families)))

    def to_dict(self) -> list[dict]:
        return [
            {
                'name': mf.name,
                'help': mf.documentation,
                'type': mf.type.upper(),
                'metric': [
                    {'name': s.name, 'label': dict(s.labels), 'value': s.value}
                    for s in mf.samples
                ],
            }
            for mf in self._families
        ]

    def json(self) -> bytes:
        return json.dumps(self.to_dict()).encode('utf-8')

    def value(self, name: str, **labels) -> float:
        """Look up one sample value; KeyError when absent"""
        for mf in self._families:
            for sample in mf.samples:
                if sample.name == name and sample.labels == labels:
                    return sample.value
        raise KeyError(f"{name}{labels}")

    def __repr__(self):
        return f"MetricSnapshot(success={self._success}, families={len(self._families)})"
