"""Exporter - registry and coordinator of all collection pipelines"""

import asyncio
import logging
import time
from typing import Dict, FrozenSet, Iterator, List, Optional, Set, Tuple, Type

from .collectors import (
    MDSCollector,
    MetricDesc,
    MetricsCollector,
    MetricSample,
    PoolUsageCollector,
    RbdMirrorCollector,
    RGWCollector,
)
from .config import CollectorSettings, ExporterConfig
from .errors import VersionResolutionError
from .gateway import ClusterGateway
from .pipeline import BackgroundPipeline, CollectionPipeline, SynchronousPipeline
from .version import ClusterVersion, VersionResolver

logger = logging.getLogger("ceph_exporter.exporter")

# Registry mapping config keys to collector classes
COLLECTOR_REGISTRY: Dict[str, Type[MetricsCollector]] = {
    "pool_usage": PoolUsageCollector,
    "rgw": RGWCollector,
    "mds": MDSCollector,
    "rbd_mirror": RbdMirrorCollector,
}


def register_all(gateway: ClusterGateway, config: ExporterConfig) -> Dict[str, CollectionPipeline]:
    """
    Build every enabled collector once and wrap it in its pipeline.

    Args:
        gateway: Cluster query gateway shared by all collectors
        config: Exporter configuration (collector enable/background flags, timings)

    Returns:
        Pipelines keyed by collector name, in registry order
    """
    for name in config.collectors:
        if name not in COLLECTOR_REGISTRY:
            logger.warning(f"Ignoring unknown collector in config: {name}")

    pipelines: Dict[str, CollectionPipeline] = {}
    for name, collector_class in COLLECTOR_REGISTRY.items():
        settings = config.collectors.get(name) or CollectorSettings()
        if not settings.enabled:
            logger.debug(f"Skipping disabled collector: {name}")
            continue

        collector = collector_class(gateway, query_timeout=config.query_timeout)
        if settings.background:
            pipelines[name] = BackgroundPipeline(
                collector,
                interval=config.background_interval,
                capacity=config.buffer_capacity,
            )
        else:
            pipelines[name] = SynchronousPipeline(collector)
        logger.info(f"Enabled collector: {name} ({pipelines[name].mode.value})")

    logger.info(f"Initialized {len(pipelines)} collectors")
    return pipelines


class Exporter:
    """Fans a scrape out to every eligible pipeline and merges the results."""

    def __init__(
        self,
        gateway: ClusterGateway,
        config: Optional[ExporterConfig] = None,
        pipelines: Optional[Dict[str, CollectionPipeline]] = None,
        resolver: Optional[VersionResolver] = None,
    ):
        self.gateway = gateway
        self.config = config or ExporterConfig()
        self.pipelines = pipelines if pipelines is not None else register_all(gateway, self.config)
        self.resolver = resolver or VersionResolver(gateway, query_timeout=self.config.query_timeout)
        self.const_labels = {"cluster": self.config.cluster}
        self._started = False

    def describe(self) -> Iterator[MetricDesc]:
        label_names = tuple(self.const_labels)
        for pipeline in self.pipelines.values():
            for desc in pipeline.collector.describe():
                yield desc.with_label_names(label_names)

    def start(self) -> None:
        """Start background polling tasks. Safe to call more than once."""
        if self._started:
            return
        for pipeline in self.pipelines.values():
            pipeline.start()
        self._started = True

    async def stop(self) -> None:
        """Cancel and await background polling tasks. Safe to call more than once."""
        if not self._started:
            return
        self._started = False
        for pipeline in self.pipelines.values():
            await pipeline.stop()

    async def resolve_version(self) -> Optional[ClusterVersion]:
        try:
            version = await self.resolver.resolve()
        except VersionResolutionError as e:
            logger.error(f"Failed resolving cluster version, skipping version-gated collectors: {e}")
            return None
        logger.debug(f"Cluster version {version} features={sorted(version.features)}")
        return version

    async def collect(self) -> List[MetricSample]:
        """
        Collect samples from every eligible pipeline concurrently.

        Version resolution and the pipelines share one scrape deadline.
        Pipelines still running at the deadline are cancelled; whatever the
        others produced is returned. Every sample carries the cluster label,
        and a series repeated across buffered polling cycles is kept once
        (first occurrence).
        """
        loop = asyncio.get_running_loop()
        start_time = time.time()
        deadline = loop.time() + self.config.scrape_timeout

        try:
            version = await asyncio.wait_for(self.resolve_version(), timeout=self.config.scrape_timeout)
        except asyncio.TimeoutError:
            logger.error(
                f"Cluster version resolution exceeded the {self.config.scrape_timeout}s scrape deadline, "
                f"skipping version-gated collectors"
            )
            version = None

        eligible = []
        for name, pipeline in self.pipelines.items():
            if pipeline.collector.supports(version):
                eligible.append(pipeline)
            else:
                logger.debug(f"Skipping collector {name}: not supported by cluster version {version}")

        if not eligible:
            return []

        tasks = {asyncio.create_task(self._run(p), name=f"scrape-{p.name}"): p for p in eligible}
        done, pending = await asyncio.wait(tasks, timeout=max(0.0, deadline - loop.time()))

        for task in pending:
            logger.error(f"Collector {tasks[task].name} exceeded the {self.config.scrape_timeout}s scrape deadline")
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        samples: List[MetricSample] = []
        seen: Set[Tuple[str, FrozenSet[Tuple[str, str]]]] = set()
        for task in tasks:
            if task not in done:
                continue
            for sample in task.result():
                sample = sample.with_labels(self.const_labels)
                series = (sample.name, frozenset(sample.labels.items()))
                if series in seen:
                    continue
                seen.add(series)
                samples.append(sample)

        logger.debug(f"Scrape produced {len(samples)} samples in {time.time() - start_time:.2f}s")
        return samples

    async def _run(self, pipeline: CollectionPipeline) -> List[MetricSample]:
        try:
            return await pipeline.samples()
        except Exception as e:
            logger.exception(f"Collector {pipeline.name} failed: {e}")
            return []
