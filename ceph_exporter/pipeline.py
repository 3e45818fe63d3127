"""Collection pipelines: how and when a collector's samples are produced.

A synchronous pipeline collects inline on every scrape. A background
pipeline owns a polling task that fills a bounded buffer which scrapes
drain without waiting on the cluster.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import List, Optional

from .collectors.base import CollectionMode, MetricsCollector, MetricSample

logger = logging.getLogger("ceph_exporter.pipeline")

DEFAULT_BUFFER_CAPACITY = 100
DEFAULT_BACKGROUND_INTERVAL = 300.0


class SampleBuffer:
    """Bounded FIFO of samples shared by one writer and any number of drains.

    When full, new samples are dropped and counted; buffered samples are kept.
    """

    def __init__(self, capacity: int = DEFAULT_BUFFER_CAPACITY):
        if capacity < 1:
            raise ValueError("buffer capacity must be at least 1")
        self.capacity = capacity
        self.dropped = 0
        self._queue: "asyncio.Queue[MetricSample]" = asyncio.Queue(maxsize=capacity)

    def __len__(self) -> int:
        return self._queue.qsize()

    def offer(self, sample: MetricSample) -> bool:
        """Buffer ``sample`` without blocking. Returns False if it was dropped."""
        try:
            self._queue.put_nowait(sample)
        except asyncio.QueueFull:
            self.dropped += 1
            return False
        return True

    def drain(self) -> List[MetricSample]:
        """Remove and return everything currently buffered."""
        samples = []
        while True:
            try:
                samples.append(self._queue.get_nowait())
            except asyncio.QueueEmpty:
                return samples


class CollectionPipeline(ABC):
    """Scheduling discipline wrapped around a single collector."""

    mode: CollectionMode

    def __init__(self, collector: MetricsCollector):
        self.collector = collector

    @property
    def name(self) -> str:
        return self.collector.name

    @abstractmethod
    async def samples(self) -> List[MetricSample]:
        """Samples for the current scrape."""

    def start(self) -> None:
        pass

    async def stop(self) -> None:
        pass


class SynchronousPipeline(CollectionPipeline):
    mode = CollectionMode.SYNCHRONOUS

    async def samples(self) -> List[MetricSample]:
        return await self.collector.safe_collect()


class BackgroundPipeline(CollectionPipeline):
    """Polls the collector every ``interval`` seconds into a SampleBuffer."""

    mode = CollectionMode.BACKGROUND

    def __init__(self, collector: MetricsCollector, interval: float = DEFAULT_BACKGROUND_INTERVAL,
                 capacity: int = DEFAULT_BUFFER_CAPACITY):
        super().__init__(collector)
        self.interval = interval
        self.buffer = SampleBuffer(capacity)
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start the polling task. Must be called from a running event loop."""
        if self.running:
            return
        self._task = asyncio.create_task(self._loop(), name=f"collector-{self.name}")
        logger.info(f"{self.name}: background collection every {self.interval}s")

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.debug(f"{self.name}: background collection stopped")

    async def samples(self) -> List[MetricSample]:
        return self.buffer.drain()

    async def run_once(self) -> int:
        """Run one collection cycle into the buffer. Returns the number of samples dropped."""
        dropped = 0
        for sample in await self.collector.safe_collect():
            if not self.buffer.offer(sample):
                dropped += 1

        if dropped:
            logger.warning(
                f"{self.name}: buffer full ({self.buffer.capacity}), dropped {dropped} samples this cycle"
            )
        return dropped

    async def _loop(self) -> None:
        while True:
            try:
                await self.run_once()
            except Exception as e:
                logger.error(f"{self.name}: background loop error: {e}")

            await asyncio.sleep(self.interval)
