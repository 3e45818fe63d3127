#!/usr/bin/env python3
"""
ceph_exporter entry point

Loads configuration, builds the Ceph CLI gateway and the exporter, and serves
/metrics with uvicorn.
"""

import argparse
import logging
import sys
from typing import List, Optional

import uvicorn
from pydantic import ValidationError

from .config import ExporterConfig, load_config, override_with_args
from .errors import ConfigError
from .exporter import Exporter
from .gateway import CephCommandGateway
from .server import create_app

logger = logging.getLogger("ceph_exporter")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Prometheus exporter for Ceph clusters")
    parser.add_argument("-c", "--config", help="Path to YAML config")
    parser.add_argument("--host", help="Address to listen on")
    parser.add_argument("--port", type=int, help="Port to listen on")
    parser.add_argument("--cluster", help="Cluster name attached to every metric")
    parser.add_argument("--ceph-config", dest="ceph_config", help="Path to ceph.conf")
    parser.add_argument("--ceph-user", dest="ceph_user", help="Ceph user (without the client. prefix)")
    parser.add_argument("--log-level", dest="log_level", help="DEBUG, INFO, WARNING, ERROR")
    return parser


def build_exporter(config: ExporterConfig) -> Exporter:
    gateway = CephCommandGateway(
        ceph_config=config.ceph_config,
        ceph_user=config.ceph_user,
        ceph_binary=config.ceph_binary,
        radosgw_admin_binary=config.radosgw_admin_binary,
        rbd_binary=config.rbd_binary,
    )
    return Exporter(gateway, config)


def main(argv: Optional[List[str]] = None):
    """Main entry point for ceph_exporter."""
    args = build_parser().parse_args(argv)

    try:
        config = override_with_args(load_config(args.config), args)
    except (ConfigError, ValidationError) as e:
        logging.basicConfig(level=logging.INFO)
        logger.error(f"Invalid configuration: {e}")
        sys.exit(1)

    logging.basicConfig(
        level=getattr(logging, config.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logger.info(f"Starting ceph_exporter for cluster {config.cluster} on {config.host}:{config.port}")

    app = create_app(build_exporter(config))

    uvicorn.run(
        app,
        host=config.host,
        port=config.port,
        reload=False,
        access_log=False,
        log_level=config.log_level.lower(),
    )


if __name__ == "__main__":
    main()
