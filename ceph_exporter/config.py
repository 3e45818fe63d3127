"""
ceph_exporter configuration

Precedence (lowest to highest):
- built-in defaults
- YAML file: --config, $CEPH_EXPORTER_CONFIG, ./config.yaml, /etc/ceph_exporter/config.yaml
- CEPH_EXPORTER_<FIELD> environment variables (also read from .env)
- command line flags
"""

import argparse
import logging
import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

from .errors import ConfigError

logger = logging.getLogger("ceph_exporter.config")

CONFIG_ENV_VAR = "CEPH_EXPORTER_CONFIG"
ENV_PREFIX = "CEPH_EXPORTER_"
DEFAULT_CONFIG_PATHS = (
    Path("config.yaml"),
    Path("/etc/ceph_exporter/config.yaml"),
)

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class CollectorSettings(BaseModel):
    enabled: bool = True
    background: bool = False


def default_collectors() -> Dict[str, CollectorSettings]:
    return {
        "pool_usage": CollectorSettings(),
        "rgw": CollectorSettings(),
        "mds": CollectorSettings(background=True),
        "rbd_mirror": CollectorSettings(),
    }


class ExporterConfig(BaseModel):
    host: str = "0.0.0.0"
    port: int = Field(9128, ge=1, le=65535)
    cluster: str = "ceph"
    # Ceph CLI access
    ceph_config: str = "/etc/ceph/ceph.conf"
    ceph_user: str = "admin"
    ceph_binary: str = "/usr/bin/ceph"
    radosgw_admin_binary: str = "/usr/bin/radosgw-admin"
    rbd_binary: str = "/usr/bin/rbd"
    log_level: str = "INFO"
    # Timing (seconds)
    query_timeout: float = Field(60.0, gt=0)
    scrape_timeout: float = Field(120.0, gt=0)
    background_interval: float = Field(300.0, gt=0)
    buffer_capacity: int = Field(100, ge=1)
    collectors: Dict[str, CollectorSettings] = Field(default_factory=default_collectors)

    @field_validator("log_level")
    @classmethod
    def check_log_level(cls, v: str) -> str:
        level = str(v).upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"log_level must be one of {', '.join(LOG_LEVELS)}")
        return level

    @field_validator("cluster")
    @classmethod
    def check_cluster(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("cluster name must not be empty")
        return v

    @field_validator("collectors")
    @classmethod
    def merge_collector_defaults(cls, v: Dict[str, CollectorSettings]) -> Dict[str, CollectorSettings]:
        # Collectors missing from the file keep their defaults
        merged = default_collectors()
        merged.update(v)
        return merged


def find_config_file(path: Optional[str] = None,
                     environ: Optional[Mapping[str, str]] = None) -> Optional[Path]:
    """Return the config file to load, or None when running on defaults.

    An explicitly requested file (argument or $CEPH_EXPORTER_CONFIG) must exist.
    """
    environ = os.environ if environ is None else environ
    explicit = path or environ.get(CONFIG_ENV_VAR)
    if explicit:
        explicit_path = Path(explicit)
        if not explicit_path.exists():
            raise ConfigError(f"config file not found: {explicit_path}")
        return explicit_path

    for candidate in DEFAULT_CONFIG_PATHS:
        if candidate.exists():
            return candidate
    return None


def read_config_file(path: Path) -> Dict[str, Any]:
    try:
        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"failed to read config {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"config {path} must be a mapping, got {type(data).__name__}")
    return data


def env_overrides(environ: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
    """Scalar fields set through CEPH_EXPORTER_<FIELD> variables."""
    environ = os.environ if environ is None else environ
    overrides = {}
    for field_name in ExporterConfig.model_fields:
        if field_name == "collectors":
            continue
        value = environ.get(f"{ENV_PREFIX}{field_name.upper()}")
        if value is not None:
            overrides[field_name] = value
    return overrides


def load_config(path: Optional[str] = None, environ: Optional[Mapping[str, str]] = None) -> ExporterConfig:
    """Load configuration from file and environment.

    Raises:
        ConfigError: if the config file is missing or unreadable.
        pydantic.ValidationError: if a value is invalid.
    """
    if environ is None:
        load_dotenv()

    data: Dict[str, Any] = {}
    config_path = find_config_file(path, environ)
    if config_path is not None:
        data = read_config_file(config_path)
        logger.debug(f"Loaded config from {config_path}")
    else:
        logger.debug("No config file found, using defaults")

    data.update(env_overrides(environ))
    return ExporterConfig(**data)


def override_with_args(config: ExporterConfig, args: argparse.Namespace) -> ExporterConfig:
    """Apply command line flags that were explicitly given."""
    overrides = {
        field_name: getattr(args, field_name)
        for field_name in ("host", "port", "cluster", "ceph_config", "ceph_user", "log_level")
        if getattr(args, field_name, None) is not None
    }
    if not overrides:
        return config
    return ExporterConfig(**{**config.model_dump(), **overrides})
