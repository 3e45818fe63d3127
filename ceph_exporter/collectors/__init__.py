"""Cluster collectors package - turns Ceph CLI output into metric samples"""

from .base import CollectionMode, MetricDesc, MetricKind, MetricSample, MetricsCollector
from .pool_usage import PoolUsageCollector
from .rgw import RGWCollector
from .mds import MDSCollector
from .rbd_mirror import RbdMirrorCollector
from .slow_ops import SlowOpCounter, SlowOpLabelKey, parse_daemon_name, parse_op_description

__all__ = [
    # Base classes
    'CollectionMode',
    'MetricDesc',
    'MetricKind',
    'MetricSample',
    'MetricsCollector',

    # Collectors
    'PoolUsageCollector',
    'RGWCollector',
    'MDSCollector',
    'RbdMirrorCollector',

    # Slow op aggregation
    'SlowOpCounter',
    'SlowOpLabelKey',
    'parse_daemon_name',
    'parse_op_description',
]
