"""Render collected samples in the Prometheus text exposition format."""

from typing import Dict, Iterable, Iterator, List

from prometheus_client import CollectorRegistry, generate_latest
from prometheus_client.core import CounterMetricFamily, GaugeMetricFamily
from prometheus_client.metrics_core import Metric
from prometheus_client.registry import Collector

from .collectors.base import MetricDesc, MetricKind, MetricSample


class SnapshotCollector(Collector):
    """prometheus_client collector over one scrape's worth of samples.

    Samples are grouped into one metric family per name. Help text comes from
    the matching descriptor, falling back to the sample's own documentation.
    """

    def __init__(self, samples: Iterable[MetricSample], descs: Iterable[MetricDesc] = ()):
        self._samples = list(samples)
        self._docs = {desc.name: desc.documentation for desc in descs}

    def collect(self) -> Iterator[Metric]:
        grouped: Dict[str, List[MetricSample]] = {}
        for sample in self._samples:
            grouped.setdefault(sample.name, []).append(sample)

        for name, samples in grouped.items():
            first = samples[0]
            label_names = list(first.labels)
            doc = self._docs.get(name) or first.documentation or name

            if first.kind == MetricKind.COUNTER:
                family = CounterMetricFamily(name, doc, labels=label_names)
            else:
                family = GaugeMetricFamily(name, doc, labels=label_names)

            for sample in samples:
                family.add_metric([sample.labels.get(k, "") for k in label_names], sample.value)
            yield family


def render(samples: Iterable[MetricSample], descs: Iterable[MetricDesc] = ()) -> bytes:
    registry = CollectorRegistry(auto_describe=False)
    registry.register(SnapshotCollector(samples, descs))
    return generate_latest(registry)
