"""ceph_exporter - Prometheus exporter for Ceph clusters"""

__version__ = "0.1.0"
