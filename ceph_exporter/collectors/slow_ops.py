"""Slow/blocked MDS operation parsing and aggregation.

Blocked ops reported by ``ceph tell <mds> dump_blocked_ops`` carry most of
their useful detail in a free-form ``description`` field, e.g.::

    client_request(client.20001974182:344151 rmdir #0x10000000030/72a26231 ...)

from which the filesystem op subtype (``rmdir``) and inode (``0x10000000030``)
are extracted. Ops sharing the same label tuple are counted together.
"""

import re
from collections import Counter
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, NamedTuple, Tuple

from ..errors import ParseError

SLOW_REQUEST_CHECK = "MDS_SLOW_REQUEST"
CLIENT_REQUEST_OP = "client_request"

DESCRIPTION_PATTERN = re.compile(
    r"client_request\(client\.(?P<client_id>[0-9].+?):(?P<request_id>[0-9].+?)\s"
    r"(?P<fs_op_type>\w+)\s.*#(?P<inode>0x[0-9a-fA-F]+|[0-9]+)[^a-zA-Z\d:].*"
)


@dataclass(frozen=True)
class OpDescription:
    client_id: str
    request_id: str
    fs_op_type: str
    inode: str


@dataclass(frozen=True)
class SlowOpRecord:
    """One entry of a daemon's blocked ops dump."""
    description: str = ""
    op_type: str = ""
    flag_point: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SlowOpRecord":
        type_data = data.get("type_data") or {}
        return cls(
            description=str(data.get("description", "")),
            op_type=str(type_data.get("op_type", "")),
            flag_point=str(type_data.get("flag_point", "")),
        )


@dataclass(frozen=True)
class DaemonStatus:
    """Subset of ``ceph tell <mds> status`` used for labelling."""
    fs_name: str = ""
    state: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DaemonStatus":
        return cls(fs_name=str(data.get("fs_name", "")), state=str(data.get("state", "")))


class SlowOpLabelKey(NamedTuple):
    fs_name: str
    daemon_name: str
    daemon_state: str
    op_type: str
    fs_op_type: str
    flag_point: str
    inode: str


def parse_op_description(description: str) -> OpDescription:
    """Extract client id, request id, fs op subtype and inode from an op description.

    Raises:
        ParseError: if the description is not a recognisable client request.
    """
    m = DESCRIPTION_PATTERN.search(description or "")
    if not m:
        raise ParseError(description, "invalid op description")
    return OpDescription(
        client_id=m.group("client_id"),
        request_id=m.group("request_id"),
        fs_op_type=m.group("fs_op_type"),
        inode=m.group("inode"),
    )


def parse_daemon_name(message: str) -> str:
    """Daemon name from a health detail message such as ``mds.a(mds.0): 3 slow requests``."""
    parts = (message or "").split("(")
    if len(parts) != 2 or not parts[0].strip():
        raise ParseError(message, "invalid mds slow request message")
    return parts[0].strip()


def slow_request_messages(health: Any) -> List[str]:
    """Detail messages of the MDS_SLOW_REQUEST check, or [] when it is not raised."""
    checks = health.get("checks") if isinstance(health, dict) else None
    if not isinstance(checks, dict):
        return []
    check = checks.get(SLOW_REQUEST_CHECK)
    if not isinstance(check, dict):
        return []
    return [
        str(detail.get("message", ""))
        for detail in check.get("detail") or []
        if isinstance(detail, dict)
    ]


def label_key(daemon_name: str, status: DaemonStatus, record: SlowOpRecord) -> SlowOpLabelKey:
    """Build the aggregation key for ``record``.

    Only ``client_request`` ops carry a parseable description; other op types
    are keyed with empty subtype and inode.

    Raises:
        ParseError: if a client request description cannot be parsed.
    """
    fs_op_type = inode = ""
    if record.op_type == CLIENT_REQUEST_OP:
        op = parse_op_description(record.description)
        fs_op_type, inode = op.fs_op_type, op.inode

    return SlowOpLabelKey(
        fs_name=status.fs_name,
        daemon_name=daemon_name,
        daemon_state=status.state,
        op_type=record.op_type,
        fs_op_type=fs_op_type,
        flag_point=record.flag_point,
        inode=inode,
    )


class SlowOpCounter:
    """Counts slow ops per label key for a single collection pass."""

    def __init__(self):
        self._counts: Counter = Counter()

    def add(self, key: SlowOpLabelKey, n: int = 1) -> None:
        self._counts[key] += n

    def __len__(self) -> int:
        return len(self._counts)

    def __getitem__(self, key: SlowOpLabelKey) -> int:
        return self._counts[key]

    def items(self) -> Iterator[Tuple[SlowOpLabelKey, int]]:
        """Distinct keys with their counts, in sorted key order."""
        for key in sorted(self._counts):
            yield key, self._counts[key]
