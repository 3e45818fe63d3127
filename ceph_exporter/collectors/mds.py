"""MDS daemon state and blocked (slow) operation metrics."""

import asyncio
from typing import Any, List

from ..errors import CollectorError, DecodeError, ParseError
from .base import MetricDesc, MetricKind, MetricSample, MetricsCollector, metric_name
from .slow_ops import (
    DaemonStatus,
    SlowOpCounter,
    SlowOpRecord,
    label_key,
    parse_daemon_name,
    slow_request_messages,
)


class MDSCollector(MetricsCollector):
    """
    MDS collector (unversioned, usually run in the background)

    Emits:
      - mds_daemon_state{fs,name,rank,state} 1 per MDS in the fsmap
      - mds_blocked_ops{fs,name,state,optype,fs_optype,flag_point,inode}
        counter, one sample per distinct label tuple, only while the
        MDS_SLOW_REQUEST health check is raised

    prometheus_client exposes counters with a ``_total`` suffix, so the
    blocked ops series is scraped as ``ceph_mds_blocked_ops_total``.
    Dashboards querying ``ceph_mds_blocked_ops`` need the new name.
    """

    name = "mds"

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.daemon_state = MetricDesc(
            metric_name("mds_daemon_state"),
            "MDS Daemon State",
            ("fs", "name", "rank", "state"),
        )
        self.blocked_ops = MetricDesc(
            metric_name("mds_blocked_ops"),
            "MDS Blocked Ops",
            ("fs", "name", "state", "optype", "fs_optype", "flag_point", "inode"),
            MetricKind.COUNTER,
        )

    def describe(self) -> List[MetricDesc]:
        return [self.daemon_state, self.blocked_ops]

    async def collect(self) -> List[MetricSample]:
        samples = self.parse_daemon_states(await self.query_json("mds_stat"))

        try:
            samples.extend(await self.collect_slow_ops())
        except CollectorError as e:
            self.logger.error(f"failed collecting mds slow ops: {e}")

        return samples

    def parse_daemon_states(self, payload: Any) -> List[MetricSample]:
        if not isinstance(payload, dict):
            raise DecodeError("mds_stat", f"expected an object, got {type(payload).__name__}")

        samples = []
        filesystems = (payload.get("fsmap") or {}).get("filesystems") or []
        for fs in filesystems:
            mdsmap = fs.get("mdsmap") or {}
            fs_name = mdsmap.get("fs_name", "")
            for info in (mdsmap.get("info") or {}).values():
                samples.append(self.daemon_state.sample(
                    1, fs_name, info.get("name", ""), info.get("rank", 0), info.get("state", ""),
                ))
        return samples

    async def collect_slow_ops(self) -> List[MetricSample]:
        health = await self.query_json("health_detail")

        daemons = []
        for message in slow_request_messages(health):
            try:
                daemon = parse_daemon_name(message)
            except ParseError as e:
                self.logger.warning(f"skipping slow request message: {e}")
                continue
            if daemon not in daemons:
                daemons.append(daemon)

        if not daemons:
            return []

        counter = SlowOpCounter()
        await asyncio.gather(*(self._count_daemon_ops(daemon, counter) for daemon in daemons))

        self.logger.debug(f"found {len(counter)} distinct slow op groups across {len(daemons)} daemons")
        return [self.blocked_ops.sample(count, *key) for key, count in counter.items()]

    async def _count_daemon_ops(self, daemon: str, counter: SlowOpCounter) -> None:
        try:
            status = await self.query_json("mds_status", daemon)
            ops = await self.query_json("mds_blocked_ops", daemon)
            if not isinstance(status, dict):
                raise DecodeError("mds_status", f"expected an object, got {type(status).__name__}")
            if not isinstance(ops, dict):
                raise DecodeError("mds_blocked_ops", f"expected an object, got {type(ops).__name__}")
        except CollectorError as e:
            self.logger.error(f"failed getting blocked ops from {daemon}: {e}")
            return

        daemon_status = DaemonStatus.from_dict(status)
        for op in ops.get("ops") or []:
            if not isinstance(op, dict):
                continue
            record = SlowOpRecord.from_dict(op)
            try:
                key = label_key(daemon, daemon_status, record)
            except ParseError as e:
                self.logger.warning(f"{daemon}: skipping blocked op: {e}")
                continue
            counter.add(key)
