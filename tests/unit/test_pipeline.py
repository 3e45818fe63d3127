"""Unit tests for collection pipelines and the bounded sample buffer"""
import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from ceph_exporter.collectors.base import CollectionMode, MetricDesc
from ceph_exporter.pipeline import BackgroundPipeline, SampleBuffer, SynchronousPipeline

DESC = MetricDesc("ceph_test_value", "test value", ("idx",))


def make_samples(n):
    return [DESC.sample(i, i) for i in range(n)]


def make_collector(samples=None, name="fake"):
    collector = MagicMock()
    collector.name = name
    collector.safe_collect = AsyncMock(return_value=samples or [])
    return collector


class TestSampleBuffer:
    """Test bounded buffer semantics"""

    def test_offer_and_drain(self):
        buffer = SampleBuffer(10)
        for s in make_samples(3):
            assert buffer.offer(s)

        assert len(buffer) == 3
        assert [s.labels["idx"] for s in buffer.drain()] == ["0", "1", "2"]
        assert len(buffer) == 0
        assert buffer.drain() == []

    def test_overflow_drops_newest(self):
        buffer = SampleBuffer(3)
        samples = make_samples(5)
        results = [buffer.offer(s) for s in samples]

        assert results == [True, True, True, False, False]
        assert buffer.dropped == 2
        assert buffer.drain() == samples[:3]

    def test_invalid_capacity(self):
        with pytest.raises(ValueError):
            SampleBuffer(0)


class TestSynchronousPipeline:
    """Test inline collection"""

    def test_collects_every_call(self):
        collector = make_collector(make_samples(2))
        pipeline = SynchronousPipeline(collector)

        assert pipeline.mode == CollectionMode.SYNCHRONOUS
        assert len(asyncio.run(pipeline.samples())) == 2
        assert len(asyncio.run(pipeline.samples())) == 2
        assert collector.safe_collect.await_count == 2


class TestBackgroundPipeline:
    """Test background polling into the buffer"""

    def test_run_once_fills_buffer(self):
        pipeline = BackgroundPipeline(make_collector(make_samples(4)), interval=60, capacity=10)

        assert asyncio.run(pipeline.run_once()) == 0
        assert len(pipeline.buffer) == 4

    def test_overflow_is_logged_once_per_cycle(self):
        pipeline = BackgroundPipeline(make_collector(make_samples(5)), interval=60, capacity=3)

        with patch("ceph_exporter.pipeline.logger") as mock_logger:
            dropped = asyncio.run(pipeline.run_once())

        assert dropped == 2
        assert pipeline.buffer.dropped == 2
        assert mock_logger.warning.call_count == 1

    def test_drain_delivers_each_sample_once(self):
        pipeline = BackgroundPipeline(make_collector(make_samples(3)), interval=60, capacity=10)

        async def scenario():
            await pipeline.run_once()
            return await asyncio.gather(pipeline.samples(), pipeline.samples())

        first, second = asyncio.run(scenario())
        assert len(first) + len(second) == 3
        assert not set(map(id, first)) & set(map(id, second))

    def test_scrape_never_waits_for_collection(self):
        collector = make_collector()

        async def slow_collect():
            await asyncio.sleep(10)
            return make_samples(1)

        collector.safe_collect = AsyncMock(side_effect=slow_collect)
        pipeline = BackgroundPipeline(collector, interval=60)

        async def scenario():
            pipeline.start()
            await asyncio.sleep(0)
            samples = await asyncio.wait_for(pipeline.samples(), timeout=0.5)
            await pipeline.stop()
            return samples

        assert asyncio.run(scenario()) == []

    def test_start_stop_are_idempotent(self):
        collector = make_collector(make_samples(1))
        pipeline = BackgroundPipeline(collector, interval=60)

        async def scenario():
            pipeline.start()
            task = pipeline._task
            pipeline.start()
            assert pipeline._task is task
            await asyncio.sleep(0.01)
            await pipeline.stop()
            await pipeline.stop()
            return task

        task = asyncio.run(scenario())
        assert task.cancelled()
        assert not pipeline.running
        assert collector.safe_collect.await_count == 1
        assert len(pipeline.buffer) == 1

    def test_loop_survives_errors(self):
        collector = make_collector()
        calls = []

        async def flaky_collect():
            calls.append(1)
            if len(calls) == 1:
                raise RuntimeError("boom")
            return make_samples(2) if len(calls) == 2 else []

        collector.safe_collect = AsyncMock(side_effect=flaky_collect)
        pipeline = BackgroundPipeline(collector, interval=0.01)

        async def scenario():
            pipeline.start()
            await asyncio.sleep(0.1)
            await pipeline.stop()

        with patch("ceph_exporter.pipeline.logger") as mock_logger:
            asyncio.run(scenario())

        assert mock_logger.error.called
        assert len(calls) >= 2
        assert len(pipeline.buffer) == 2
