"""RADOS gateway garbage collection and bucket resharding metrics."""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from ..errors import CollectorError, DecodeError
from .base import MetricDesc, MetricSample, MetricsCollector, metric_name, number

GC_TIME_FORMAT = "%Y-%m-%d %H:%M:%S"


def parse_gc_time(text: str, now: datetime) -> datetime:
    """Parse a GC task time like ``1975-01-01 16:31:09.0.564455s`` as UTC.

    Only the part before the first ``.`` is used; unparsable values are
    treated as ``now`` so the task counts as active.
    """
    try:
        return datetime.strptime((text or "").split(".")[0], GC_TIME_FORMAT).replace(tzinfo=timezone.utc)
    except ValueError:
        return now


@dataclass(frozen=True)
class GCTask:
    tag: str
    time: datetime
    objects: int

    @classmethod
    def from_dict(cls, data: Dict[str, Any], now: datetime) -> "GCTask":
        return cls(
            tag=str(data.get("tag", "")),
            time=parse_gc_time(str(data.get("time", "")), now),
            objects=len(data.get("objs") or []),
        )


@dataclass(frozen=True)
class ReshardEvent:
    bucket: str
    tenant: str = ""
    old_num_shards: int = 0
    new_num_shards: int = 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ReshardEvent":
        return cls(
            bucket=str(data.get("bucket_name", "")),
            tenant=str(data.get("tenant", "")),
            old_num_shards=int(number(data, "old_num_shards")),
            new_num_shards=int(number(data, "new_num_shards")),
        )


class RGWCollector(MetricsCollector):
    """
    RGW collector (unversioned)

    Garbage collection and resharding are collected independently; a failure
    in one is logged and the other still reports.

    Emits:
      - rgw_gc_active_tasks / rgw_gc_active_objects
      - rgw_gc_pending_tasks / rgw_gc_pending_objects
      - rgw_active_reshards
      - rgw_bucket_reshard{bucket} 1
    """

    name = "rgw"

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.gc_active_tasks = MetricDesc(metric_name("rgw_gc_active_tasks"), "RGW GC active task count")
        self.gc_active_objects = MetricDesc(metric_name("rgw_gc_active_objects"), "RGW GC active object count")
        self.gc_pending_tasks = MetricDesc(metric_name("rgw_gc_pending_tasks"), "RGW GC pending task count")
        self.gc_pending_objects = MetricDesc(metric_name("rgw_gc_pending_objects"), "RGW GC pending object count")
        self.active_reshards = MetricDesc(metric_name("rgw_active_reshards"), "RGW active bucket reshard operations")
        self.bucket_reshard = MetricDesc(
            metric_name("rgw_bucket_reshard"), "RGW bucket currently being resharded", ("bucket",),
        )

    def describe(self) -> List[MetricDesc]:
        return [
            self.gc_active_tasks,
            self.gc_active_objects,
            self.gc_pending_tasks,
            self.gc_pending_objects,
            self.active_reshards,
            self.bucket_reshard,
        ]

    async def collect(self) -> List[MetricSample]:
        samples: List[MetricSample] = []

        try:
            samples.extend(await self.collect_gc())
        except CollectorError as e:
            self.logger.error(f"failed collecting rgw gc stats: {e}")

        try:
            samples.extend(await self.collect_reshards())
        except CollectorError as e:
            self.logger.error(f"failed collecting rgw reshard stats: {e}")

        return samples

    async def collect_gc(self, now: Optional[datetime] = None) -> List[MetricSample]:
        now = now or datetime.now(timezone.utc)
        tasks = [GCTask.from_dict(t, now) for t in self._entries("rgw_gc_list", await self.query_json("rgw_gc_list"))]

        active = [t for t in tasks if t.time <= now]
        pending = [t for t in tasks if t.time > now]

        return [
            self.gc_active_tasks.sample(len(active)),
            self.gc_active_objects.sample(sum(t.objects for t in active)),
            self.gc_pending_tasks.sample(len(pending)),
            self.gc_pending_objects.sample(sum(t.objects for t in pending)),
        ]

    async def collect_reshards(self) -> List[MetricSample]:
        payload = await self.query_json("rgw_reshard_list")
        events = [ReshardEvent.from_dict(e) for e in self._entries("rgw_reshard_list", payload)]

        samples = [self.active_reshards.sample(len(events))]
        for bucket in dict.fromkeys(e.bucket for e in events):
            samples.append(self.bucket_reshard.sample(1, bucket))
        return samples

    @staticmethod
    def _entries(query: str, payload: Any) -> List[Dict[str, Any]]:
        if not isinstance(payload, list):
            raise DecodeError(query, f"expected a list, got {type(payload).__name__}")
        return [entry for entry in payload if isinstance(entry, dict)]
