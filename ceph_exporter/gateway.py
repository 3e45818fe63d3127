"""Cluster query gateway.

Every collector reaches the cluster through ``run_query(query, *args,
timeout=...)``. The concrete gateway shells out to the Ceph command line
tools.
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from typing import Callable, Dict, List

from .errors import QueryExecutionError

logger = logging.getLogger("ceph_exporter.gateway")


class ClusterGateway(ABC):
    """Runs named administrative queries against the cluster."""

    @abstractmethod
    async def run_query(self, query: str, *args: str, timeout: float) -> bytes:
        """Run ``query`` and return its raw output.

        Raises:
            QueryExecutionError: if the query fails or exceeds ``timeout``.
        """


class CephCommandGateway(ClusterGateway):
    """Gateway backed by the ``ceph``, ``radosgw-admin`` and ``rbd`` binaries."""

    def __init__(
        self,
        ceph_config: str = "/etc/ceph/ceph.conf",
        ceph_user: str = "admin",
        ceph_binary: str = "/usr/bin/ceph",
        radosgw_admin_binary: str = "/usr/bin/radosgw-admin",
        rbd_binary: str = "/usr/bin/rbd",
    ):
        self.ceph_config = ceph_config
        self.ceph_user = ceph_user
        self.ceph_binary = ceph_binary
        self.radosgw_admin_binary = radosgw_admin_binary
        self.rbd_binary = rbd_binary

        self._queries: Dict[str, Callable[..., List[str]]] = {
            "version": lambda: self._ceph("version", "--format", "json"),
            "versions": lambda: self._ceph("versions", "--format", "json"),
            "df": lambda: self._ceph("df", "detail", "--format", "json"),
            "mds_stat": lambda: self._ceph("mds", "stat", "--format", "json"),
            "health_detail": lambda: self._ceph("health", "detail", "--format", "json"),
            "mds_status": lambda mds: self._ceph("tell", mds, "status"),
            "mds_blocked_ops": lambda mds: self._ceph("tell", mds, "dump_blocked_ops"),
            "rgw_gc_list": lambda: self._radosgw_admin("gc", "list", "--include-all"),
            "rgw_reshard_list": lambda: self._radosgw_admin("reshard", "list"),
            "rbd_mirror_pool_status": lambda: self._rbd("mirror", "pool", "status", "--format", "json"),
        }

    @property
    def queries(self) -> List[str]:
        return sorted(self._queries)

    def build_command(self, query: str, *args: str) -> List[str]:
        """Return the argv for ``query``. Raises QueryExecutionError for unknown queries."""
        builder = self._queries.get(query)
        if builder is None:
            raise QueryExecutionError(query, args, reason="unknown query")
        try:
            return builder(*args)
        except TypeError:
            raise QueryExecutionError(query, args, reason="wrong number of arguments")

    async def run_query(self, query: str, *args: str, timeout: float) -> bytes:
        cmd = self.build_command(query, *args)
        start_time = time.time()

        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise QueryExecutionError(query, args, reason=str(e)) from e

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
        except asyncio.TimeoutError:
            await self._kill(proc)
            raise QueryExecutionError(query, args, timed_out=True)
        except asyncio.CancelledError:
            await self._kill(proc)
            raise

        if proc.returncode != 0:
            raise QueryExecutionError(
                query, args,
                returncode=proc.returncode,
                stderr=stderr.decode(errors="replace"),
            )

        logger.debug(f"query {query} {' '.join(args)} finished in {time.time() - start_time:.2f}s")
        return stdout

    # ---------- helpers ----------

    def _ceph(self, *args: str) -> List[str]:
        return [self.ceph_binary, "-c", self.ceph_config, "-n", f"client.{self.ceph_user}", *args]

    def _radosgw_admin(self, *args: str) -> List[str]:
        return [self.radosgw_admin_binary, "-c", self.ceph_config, "--user", self.ceph_user, *args]

    def _rbd(self, *args: str) -> List[str]:
        return [self.rbd_binary, "-c", self.ceph_config, "--user", self.ceph_user, *args]

    @staticmethod
    async def _kill(proc: asyncio.subprocess.Process) -> None:
        if proc.returncode is not None:
            return
        try:
            proc.kill()
        except ProcessLookupError:
            return
        await proc.wait()
