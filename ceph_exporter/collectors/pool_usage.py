"""Per-pool usage metrics from `ceph df detail`."""

from dataclasses import dataclass
from typing import Any, Dict, List

from ..errors import DecodeError
from .base import MetricDesc, MetricSample, MetricsCollector, metric_name, number


@dataclass(frozen=True)
class PoolStats:
    name: str
    stored: float = 0.0
    stored_raw: float = 0.0
    max_avail: float = 0.0
    percent_used: float = 0.0
    objects: float = 0.0
    dirty: float = 0.0
    rd: float = 0.0
    rd_bytes: float = 0.0
    wr: float = 0.0
    wr_bytes: float = 0.0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PoolStats":
        stats = data.get("stats") or {}
        return cls(
            name=str(data.get("name", "")),
            stored=number(stats, "stored"),
            stored_raw=number(stats, "stored_raw"),
            max_avail=number(stats, "max_avail"),
            percent_used=number(stats, "percent_used"),
            objects=number(stats, "objects"),
            dirty=number(stats, "dirty"),
            rd=number(stats, "rd"),
            rd_bytes=number(stats, "rd_bytes"),
            wr=number(stats, "wr"),
            wr_bytes=number(stats, "wr_bytes"),
        )


class PoolUsageCollector(MetricsCollector):
    """
    Pool usage collector (one-shot, unversioned)

    Emits per pool (labels: pool):
      - pool_used_bytes
      - pool_raw_used_bytes
      - pool_available_bytes
      - pool_percent_used
      - pool_objects_total
      - pool_dirty_objects_total
      - pool_read_total
      - pool_read_bytes_total
      - pool_write_total
      - pool_write_bytes_total
    """

    name = "pool_usage"

    # metric suffix -> PoolStats field
    FIELDS = (
        ("pool_used_bytes", "stored", "Capacity of the pool that is currently under use"),
        ("pool_raw_used_bytes", "stored_raw", "Raw capacity of the pool that is currently under use, this factors in the size"),
        ("pool_available_bytes", "max_avail", "Free space for the pool"),
        ("pool_percent_used", "percent_used", "Percentage of the capacity available to this pool that is used by this pool"),
        ("pool_objects_total", "objects", "Total no. of objects allocated within the pool"),
        ("pool_dirty_objects_total", "dirty", "Total no. of dirty objects in a cache-tier pool"),
        ("pool_read_total", "rd", "Total read I/O calls for the pool"),
        ("pool_read_bytes_total", "rd_bytes", "Total read throughput for the pool"),
        ("pool_write_total", "wr", "Total write I/O calls for the pool"),
        ("pool_write_bytes_total", "wr_bytes", "Total write throughput for the pool"),
    )

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._descs = [
            (MetricDesc(metric_name(suffix), doc, ("pool",)), attr)
            for suffix, attr, doc in self.FIELDS
        ]

    def describe(self) -> List[MetricDesc]:
        return [desc for desc, _ in self._descs]

    async def collect(self) -> List[MetricSample]:
        payload = await self.query_json("df")
        pools = self.parse_pools(payload)

        samples: List[MetricSample] = []
        for pool in pools:
            for desc, attr in self._descs:
                samples.append(desc.sample(getattr(pool, attr), pool.name))
        return samples

    @staticmethod
    def parse_pools(payload: Any) -> List[PoolStats]:
        if not isinstance(payload, dict):
            raise DecodeError("df", f"expected an object, got {type(payload).__name__}")
        pools = payload.get("pools") or []
        if not isinstance(pools, list):
            raise DecodeError("df", "'pools' is not a list")
        return [PoolStats.from_dict(p) for p in pools if isinstance(p, dict) and p.get("name")]
