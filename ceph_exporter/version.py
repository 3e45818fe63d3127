"""Cluster version detection used to gate collectors."""

import dataclasses
import json
import logging
import re
from dataclasses import dataclass, field
from typing import FrozenSet, Optional

from .errors import CollectorError, DecodeError, QueryExecutionError, VersionResolutionError
from .gateway import ClusterGateway

# Feature names are the daemon kinds reported by `ceph versions`
FEATURE_RBD_MIRROR = "rbd-mirror"

VERSION_PATTERN = re.compile(
    r"ceph version (?P<major>\d+)\.(?P<minor>\d+)\.(?P<patch>\d+)"
    r"(?:-(?P<revision>\d+))?"
    r"(?P<suffix>[-\w.+~]*)"
    r"(?:\s+\((?P<commit>[0-9a-fA-F]+)\))?"
    r"(?:\s+(?P<release>[a-z]+))?"
    r"(?:\s+\((?P<channel>[\w-]+)\))?"
)


@dataclass(frozen=True, order=True)
class ClusterVersion:
    """Ceph release of the monitored cluster, ordered by numeric components only."""
    major: int
    minor: int = 0
    patch: int = 0
    revision: int = 0
    suffix: str = field(default="", compare=False)
    commit: str = field(default="", compare=False)
    release: str = field(default="", compare=False)
    channel: str = field(default="", compare=False)
    features: FrozenSet[str] = field(default_factory=frozenset, compare=False)

    def __str__(self) -> str:
        text = f"{self.major}.{self.minor}.{self.patch}"
        if self.revision:
            text += f"-{self.revision}"
        return text

    def has_feature(self, feature: str) -> bool:
        return feature in self.features

    def with_features(self, features: FrozenSet[str]) -> "ClusterVersion":
        return dataclasses.replace(self, features=frozenset(features))


NAUTILUS = ClusterVersion(14, 0, 0, release="nautilus")
OCTOPUS = ClusterVersion(15, 0, 0, release="octopus")
PACIFIC = ClusterVersion(16, 0, 0, release="pacific")
QUINCY = ClusterVersion(17, 0, 0, release="quincy")
REEF = ClusterVersion(18, 0, 0, release="reef")
SQUID = ClusterVersion(19, 0, 0, release="squid")


def parse_version(text: str) -> ClusterVersion:
    """Parse the string printed by `ceph version`.

    Accepts e.g. ``ceph version 16.2.11-22-wasd (1984a8c3...) pacific (stable)``.
    Only ``major.minor.patch`` is required; anything after the recognised
    fields is ignored.

    Raises:
        VersionResolutionError: if no version number can be found.
    """
    m = VERSION_PATTERN.search(text or "")
    if not m:
        raise VersionResolutionError(f"unrecognised version string: {text!r}")

    return ClusterVersion(
        major=int(m.group("major")),
        minor=int(m.group("minor")),
        patch=int(m.group("patch")),
        revision=int(m.group("revision") or 0),
        suffix=(m.group("suffix") or "").lstrip("-"),
        commit=m.group("commit") or "",
        release=m.group("release") or "",
        channel=m.group("channel") or "",
    )


class VersionResolver:
    """Resolves the cluster version and feature set through the gateway."""

    def __init__(self, gateway: ClusterGateway, query_timeout: float = 60.0,
                 logger: Optional[logging.Logger] = None):
        self.gateway = gateway
        self.query_timeout = query_timeout
        self.logger = logger or logging.getLogger("ceph_exporter.version")

    async def resolve(self) -> ClusterVersion:
        try:
            raw = await self.gateway.run_query("version", timeout=self.query_timeout)
        except QueryExecutionError as e:
            raise VersionResolutionError(f"failed getting ceph version: {e}") from e

        try:
            payload = json.loads(raw)
        except ValueError as e:
            raise VersionResolutionError(f"failed decoding ceph version: {e}") from e
        if not isinstance(payload, dict):
            raise VersionResolutionError(f"unexpected ceph version payload: {payload!r}")

        version = parse_version(str(payload.get("version", "")))

        try:
            features = await self._features()
        except CollectorError as e:
            self.logger.warning(f"failed enumerating cluster features, assuming none: {e}")
            features = frozenset()

        return version.with_features(features)

    async def _features(self) -> FrozenSet[str]:
        raw = await self.gateway.run_query("versions", timeout=self.query_timeout)
        try:
            payload = json.loads(raw)
        except ValueError as e:
            raise DecodeError("versions", str(e)) from e
        if not isinstance(payload, dict):
            return frozenset()
        return frozenset(kind for kind in payload if kind != "overall")
