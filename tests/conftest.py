"""Pytest configuration and shared fixtures"""
import asyncio
import json

import pytest

from ceph_exporter.config import ExporterConfig
from ceph_exporter.errors import QueryExecutionError
from ceph_exporter.gateway import ClusterGateway

PACIFIC_VERSION = {
    "version": "ceph version 16.2.11-22-wasd (1984a8c33225d70559cdf27dbab81e3ce153f6ac) pacific (stable)"
}
OCTOPUS_VERSION = {
    "version": "ceph version 15.2.17 (8a82819d84cf884bd39c17e3236e0632ac146dc4) octopus (stable)"
}


class FakeGateway(ClusterGateway):
    """Gateway returning canned responses.

    ``responses`` is keyed by query name, or by ``(query, *args)`` for
    per-daemon queries. Values may be bytes, str, JSON-able dicts/lists or
    exceptions (raised). ``delays`` makes a query sleep before answering.
    """

    def __init__(self, responses=None, delays=None):
        self.responses = dict(responses or {})
        self.delays = dict(delays or {})
        self.calls = []

    async def run_query(self, query, *args, timeout):
        key = (query,) + tuple(args)
        self.calls.append(key)

        delay = self.delays.get(key, self.delays.get(query))
        if delay:
            await asyncio.sleep(delay)

        if key in self.responses:
            response = self.responses[key]
        elif query in self.responses:
            response = self.responses[query]
        else:
            raise QueryExecutionError(query, args, returncode=1, stderr="no canned response")

        if isinstance(response, BaseException):
            raise response
        if isinstance(response, (dict, list)):
            response = json.dumps(response)
        if isinstance(response, str):
            response = response.encode()
        return response

    def queried(self, query):
        return [call for call in self.calls if call[0] == query]


@pytest.fixture
def gateway():
    """Fake gateway answering version queries as a Pacific cluster without rbd-mirror"""
    return FakeGateway({
        "version": PACIFIC_VERSION,
        "versions": {"mon": {}, "osd": {}, "overall": {}},
    })


@pytest.fixture
def config():
    """Config with all collectors synchronous and short timeouts"""
    return ExporterConfig(
        cluster="ceph",
        query_timeout=5,
        scrape_timeout=5,
        background_interval=3600,
        collectors={
            "pool_usage": {"enabled": True, "background": False},
            "rgw": {"enabled": True, "background": False},
            "mds": {"enabled": True, "background": False},
            "rbd_mirror": {"enabled": True, "background": False},
        },
    )


@pytest.fixture
def empty_gateway():
    """Fake gateway where every query fails"""
    return FakeGateway()
