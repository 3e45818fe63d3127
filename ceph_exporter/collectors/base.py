import dataclasses
import json
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Mapping, Optional, Tuple

from ..errors import CollectorError, DecodeError
from ..gateway import ClusterGateway
from ..version import ClusterVersion

NAMESPACE = "ceph"


class MetricKind(str, Enum):
    GAUGE = "gauge"
    COUNTER = "counter"


class CollectionMode(str, Enum):
    SYNCHRONOUS = "synchronous"
    BACKGROUND = "background"


def metric_name(name: str, namespace: str = NAMESPACE) -> str:
    return f"{namespace}_{name}" if namespace else name


@dataclass(frozen=True)
class MetricSample:
    """Single metric sample"""
    name: str
    labels: Dict[str, str] = field(default_factory=dict)
    value: float = 0.0
    kind: MetricKind = MetricKind.GAUGE
    documentation: str = ""

    def with_labels(self, labels: Mapping[str, str]) -> "MetricSample":
        """Return a copy with ``labels`` placed ahead of the sample's own labels."""
        merged = dict(labels)
        merged.update(self.labels)
        return dataclasses.replace(self, labels=merged)


@dataclass(frozen=True)
class MetricDesc:
    """Metric metadata: name, help text, label names and kind."""
    name: str
    documentation: str
    label_names: Tuple[str, ...] = ()
    kind: MetricKind = MetricKind.GAUGE

    def sample(self, value: float, *label_values: Any) -> MetricSample:
        if len(label_values) != len(self.label_names):
            raise ValueError(
                f"{self.name}: expected {len(self.label_names)} label values, got {len(label_values)}"
            )
        labels = {k: str(v) for k, v in zip(self.label_names, label_values)}
        return MetricSample(self.name, labels, float(value), self.kind, self.documentation)

    def with_label_names(self, names: Tuple[str, ...]) -> "MetricDesc":
        return dataclasses.replace(self, label_names=tuple(names) + self.label_names)


def number(data: Mapping[str, Any], key: str, default: float = 0.0) -> float:
    """Numeric field lookup; absent or non-numeric values become ``default``."""
    val = data.get(key, default) if isinstance(data, Mapping) else default
    try:
        return float(val)
    except (TypeError, ValueError):
        return default


class MetricsCollector(ABC):
    """Base class for all cluster collectors.

    Subclasses declare their metrics in ``describe()`` and produce samples in
    ``collect()``. A collector with no version bounds and no required
    features is unversioned and runs even when the cluster version is unknown.
    """

    name: str = "base"
    min_version: Optional[ClusterVersion] = None
    max_version: Optional[ClusterVersion] = None
    required_features: FrozenSet[str] = frozenset()

    def __init__(self, gateway: ClusterGateway, logger: Optional[logging.Logger] = None,
                 query_timeout: float = 60.0):
        self.gateway = gateway
        self.query_timeout = query_timeout
        self.logger = logger or logging.getLogger(f"ceph_exporter.collector.{self.name}")

    @property
    def is_versioned(self) -> bool:
        return (
            self.min_version is not None
            or self.max_version is not None
            or bool(self.required_features)
        )

    def supports(self, version: Optional[ClusterVersion]) -> bool:
        """Whether this collector should run against ``version``."""
        if not self.is_versioned:
            return True
        if version is None:
            return False
        if self.min_version is not None and version < self.min_version:
            return False
        if self.max_version is not None and version > self.max_version:
            return False
        return all(version.has_feature(f) for f in self.required_features)

    @abstractmethod
    def describe(self) -> List[MetricDesc]:
        """Descriptors of every metric this collector can emit. Performs no I/O."""

    @abstractmethod
    async def collect(self) -> List[MetricSample]:
        """Collect samples. Raises CollectorError when the cycle cannot complete."""

    async def query(self, query: str, *args: str) -> bytes:
        return await self.gateway.run_query(query, *args, timeout=self.query_timeout)

    async def query_json(self, query: str, *args: str) -> Any:
        raw = await self.query(query, *args)
        try:
            return json.loads(raw)
        except ValueError as e:
            raise DecodeError(query, str(e)) from e

    async def safe_collect(self) -> List[MetricSample]:
        """Collect, logging and swallowing collection errors."""
        try:
            start_time = time.time()
            samples = await self.collect()
            collection_time = time.time() - start_time

            self.logger.debug(f"{self.name}: collected {len(samples)} samples in {collection_time:.2f}s")
            return samples

        except CollectorError as e:
            self.logger.error(f"{self.name} collection failed: {e}")
            return []
        except Exception as e:
            self.logger.exception(f"{self.name} collection failed unexpectedly: {e}")
            return []
