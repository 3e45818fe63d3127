"""Unit tests for MDS slow op extraction and aggregation

Covers:
- description and health message parsing
- label-keyed aggregation
- MDS collector end to end against canned CLI output
"""
import asyncio

import pytest

from ceph_exporter.collectors import MDSCollector, SlowOpCounter, SlowOpLabelKey
from ceph_exporter.collectors.base import MetricKind
from ceph_exporter.collectors.slow_ops import (
    DaemonStatus,
    SlowOpRecord,
    label_key,
    parse_daemon_name,
    parse_op_description,
    slow_request_messages,
)
from ceph_exporter.errors import ParseError, QueryExecutionError

RMDIR_DESCRIPTION = (
    "client_request(client.20001974182:344151 rmdir #0x10000000030/72a26231-ac24-4f69-9350-8ebc5444c9ea "
    "2024-02-13T22:11:00.196767+0000 caller_uid=0, caller_gid=0{})"
)
CREATE_DESCRIPTION = (
    "client_request(client.20001974182:344152 create #0x10000000031/file "
    "2024-02-13T22:11:01.000000+0000 caller_uid=0, caller_gid=0{})"
)

MDS_STAT = {
    "fsmap": {
        "filesystems": [
            {
                "mdsmap": {
                    "fs_name": "cephfs",
                    "info": {
                        "gid_4100": {"gid": 4100, "name": "a", "rank": 0, "state": "up:active"},
                    },
                }
            }
        ]
    }
}

HEALTH_OK = {"status": "HEALTH_OK", "checks": {}}

HEALTH_SLOW = {
    "status": "HEALTH_WARN",
    "checks": {
        "MDS_SLOW_REQUEST": {
            "severity": "HEALTH_WARN",
            "summary": {"message": "1 MDSs report slow requests", "count": 1},
            "detail": [{"message": "mds.a(mds.0): 3 slow requests are blocked > 30 secs"}],
            "muted": False,
        }
    },
}

MDS_STATUS = {"fs_name": "cephfs", "state": "up:active", "whoami": 0}


def client_op(description, flag_point="failed to rdlock, waiting"):
    return {
        "description": description,
        "age": 42.0,
        "type_data": {"op_type": "client_request", "flag_point": flag_point},
    }


def blocked_ops(*ops):
    return {"ops": list(ops), "complaint_time": 30, "num_blocked_ops": len(ops)}


class TestParseOpDescription:
    """Test op description extraction"""

    def test_rmdir(self):
        op = parse_op_description(RMDIR_DESCRIPTION)
        assert op.fs_op_type == "rmdir"
        assert op.inode == "0x10000000030"
        assert op.client_id == "20001974182"
        assert op.request_id == "344151"

    def test_decimal_inode(self):
        op = parse_op_description("client_request(client.4151:22 getattr #1099511627776 caller_uid=0)")
        assert op.fs_op_type == "getattr"
        assert op.inode == "1099511627776"

    @pytest.mark.parametrize("description", [
        "",
        "osd_op(client.1:2 ...)",
        "client_request(client.abc:1 rmdir #0x1/x)",
        "client_request(client.1:2 rmdir no-inode-here)",
    ])
    def test_malformed_raises(self, description):
        with pytest.raises(ParseError):
            parse_op_description(description)


class TestParseDaemonName:
    """Test daemon name extraction from health messages"""

    def test_valid(self):
        assert parse_daemon_name("mds.a(mds.0): 3 slow requests are blocked > 30 secs") == "mds.a"

    @pytest.mark.parametrize("message", [
        "no parenthesis here",
        "mds.a(mds.0)(extra): 3 slow requests",
        "(mds.0): missing name",
    ])
    def test_invalid(self, message):
        with pytest.raises(ParseError):
            parse_daemon_name(message)

    def test_slow_request_messages_absent(self):
        assert slow_request_messages(HEALTH_OK) == []
        assert slow_request_messages([]) == []


class TestAggregation:
    """Test label keys and counting"""

    def test_non_client_ops_have_empty_subtype(self):
        record = SlowOpRecord(description="peer_request(...)", op_type="peer_request", flag_point="dispatched")
        key = label_key("mds.a", DaemonStatus("cephfs", "up:active"), record)
        assert key == SlowOpLabelKey("cephfs", "mds.a", "up:active", "peer_request", "", "dispatched", "")

    def test_counter_groups_identical_keys(self):
        counter = SlowOpCounter()
        a = SlowOpLabelKey("cephfs", "mds.a", "up:active", "client_request", "rmdir", "x", "0x1")
        b = a._replace(inode="0x2")
        for _ in range(3):
            counter.add(a)
        counter.add(b)

        assert len(counter) == 2
        assert counter[a] == 3
        assert list(counter.items()) == [(a, 3), (b, 1)]


class TestMDSCollector:
    """Test the MDS collector against canned CLI output"""

    def _collect(self, gateway):
        return asyncio.run(MDSCollector(gateway).collect())

    def _blocked(self, samples):
        return [s for s in samples if s.name == "ceph_mds_blocked_ops"]

    def test_daemon_state(self, gateway):
        gateway.responses.update({"mds_stat": MDS_STAT, "health_detail": HEALTH_OK})
        samples = self._collect(gateway)

        assert len(samples) == 1
        assert samples[0].name == "ceph_mds_daemon_state"
        assert samples[0].labels == {"fs": "cephfs", "name": "a", "rank": "0", "state": "up:active"}
        assert samples[0].value == 1.0

    def test_no_slow_request_check_means_no_blocked_ops(self, gateway):
        gateway.responses.update({"mds_stat": MDS_STAT, "health_detail": HEALTH_OK})
        samples = self._collect(gateway)

        assert self._blocked(samples) == []
        assert gateway.queried("mds_blocked_ops") == []

    def test_identical_ops_aggregate(self, gateway):
        gateway.responses.update({
            "mds_stat": MDS_STAT,
            "health_detail": HEALTH_SLOW,
            ("mds_status", "mds.a"): MDS_STATUS,
            ("mds_blocked_ops", "mds.a"): blocked_ops(*[client_op(RMDIR_DESCRIPTION)] * 3),
        })
        blocked = self._blocked(self._collect(gateway))

        assert len(blocked) == 1
        assert blocked[0].value == 3.0
        assert blocked[0].kind == MetricKind.COUNTER
        assert blocked[0].labels == {
            "fs": "cephfs",
            "name": "mds.a",
            "state": "up:active",
            "optype": "client_request",
            "fs_optype": "rmdir",
            "flag_point": "failed to rdlock, waiting",
            "inode": "0x10000000030",
        }

    def test_malformed_description_skips_only_that_record(self, gateway):
        gateway.responses.update({
            "mds_stat": MDS_STAT,
            "health_detail": HEALTH_SLOW,
            ("mds_status", "mds.a"): MDS_STATUS,
            ("mds_blocked_ops", "mds.a"): blocked_ops(
                client_op(RMDIR_DESCRIPTION),
                client_op("client_request(garbage)"),
                client_op(CREATE_DESCRIPTION),
            ),
        })
        blocked = self._blocked(self._collect(gateway))

        assert sorted(s.labels["fs_optype"] for s in blocked) == ["create", "rmdir"]
        assert all(s.value == 1.0 for s in blocked)

    def test_duplicate_daemons_queried_once(self, gateway):
        health = dict(HEALTH_SLOW)
        health["checks"] = {"MDS_SLOW_REQUEST": {"detail": [
            {"message": "mds.a(mds.0): 3 slow requests are blocked > 30 secs"},
            {"message": "mds.a(mds.0): 1 slow requests are blocked > 300 secs"},
        ]}}
        gateway.responses.update({
            "mds_stat": MDS_STAT,
            "health_detail": health,
            ("mds_status", "mds.a"): MDS_STATUS,
            ("mds_blocked_ops", "mds.a"): blocked_ops(client_op(RMDIR_DESCRIPTION)),
        })
        self._collect(gateway)

        assert gateway.queried("mds_blocked_ops") == [("mds_blocked_ops", "mds.a")]

    def test_failing_daemon_does_not_hide_others(self, gateway):
        health = {"checks": {"MDS_SLOW_REQUEST": {"detail": [
            {"message": "mds.a(mds.0): 3 slow requests are blocked > 30 secs"},
            {"message": "mds.b(mds.1): 1 slow requests are blocked > 30 secs"},
        ]}}}
        gateway.responses.update({
            "mds_stat": MDS_STAT,
            "health_detail": health,
            ("mds_status", "mds.a"): QueryExecutionError("mds_status", ["mds.a"], timed_out=True),
            ("mds_status", "mds.b"): MDS_STATUS,
            ("mds_blocked_ops", "mds.b"): blocked_ops(client_op(RMDIR_DESCRIPTION)),
        })
        blocked = self._blocked(self._collect(gateway))

        assert [s.labels["name"] for s in blocked] == ["mds.b"]

    def test_health_detail_failure_keeps_daemon_state(self, gateway):
        gateway.responses.update({
            "mds_stat": MDS_STAT,
            "health_detail": QueryExecutionError("health_detail", returncode=1),
        })
        samples = self._collect(gateway)

        assert [s.name for s in samples] == ["ceph_mds_daemon_state"]

    def test_mds_stat_failure_fails_cycle(self, gateway):
        gateway.responses["mds_stat"] = QueryExecutionError("mds_stat", returncode=1)
        assert asyncio.run(MDSCollector(gateway).safe_collect()) == []
