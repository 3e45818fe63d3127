"""RBD mirroring pool health."""

from typing import List

from ..errors import DecodeError
from ..version import FEATURE_RBD_MIRROR, PACIFIC
from .base import MetricDesc, MetricSample, MetricsCollector, metric_name

HEALTH_STATUS = {
    "OK": 0,
    "WARNING": 1,
    "ERROR": 2,
}
HEALTH_UNKNOWN = 3


def health_value(status: str) -> int:
    return HEALTH_STATUS.get(str(status).upper(), HEALTH_UNKNOWN)


class RbdMirrorCollector(MetricsCollector):
    """
    RBD mirror collector (requires Pacific or newer and rbd-mirror daemons)

    Health values: 0=OK, 1=WARNING, 2=ERROR, 3=UNKNOWN
    """

    name = "rbd_mirror"
    min_version = PACIFIC
    required_features = frozenset({FEATURE_RBD_MIRROR})

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.pool_status = MetricDesc(
            metric_name("rbd_mirror_pool_status"),
            "Health status of rbd-mirror, can vary only between 3 states (err:2, warn:1, ok:0)",
        )
        self.daemon_status = MetricDesc(
            metric_name("rbd_mirror_pool_daemon_status"),
            "Health status of rbd-mirror daemons, can vary only between 3 states (err:2, warn:1, ok:0)",
        )
        self.image_status = MetricDesc(
            metric_name("rbd_mirror_pool_image_status"),
            "Health status of rbd-mirror images, can vary only between 3 states (err:2, warn:1, ok:0)",
        )

    def describe(self) -> List[MetricDesc]:
        return [self.pool_status, self.daemon_status, self.image_status]

    async def collect(self) -> List[MetricSample]:
        payload = await self.query_json("rbd_mirror_pool_status")
        if not isinstance(payload, dict):
            raise DecodeError("rbd_mirror_pool_status", f"expected an object, got {type(payload).__name__}")

        summary = payload.get("summary") or {}
        return [
            self.pool_status.sample(health_value(summary.get("health", ""))),
            self.daemon_status.sample(health_value(summary.get("daemon_health", ""))),
            self.image_status.sample(health_value(summary.get("image_health", ""))),
        ]
