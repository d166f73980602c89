"""
Integration tests against a live Redis.

Set REMOTE_BLOOM_TEST_URL (e.g. redis://localhost:6379/15) to run them.
The database is flushed, so never point this at a shared instance.
"""
import os
import time

import pytest

from remote_bloom import ClientConfig, RedisBloomFilterClient
from remote_bloom.errors import ClosedError, StoreConnectionError
from remote_bloom.metrics import MetricsCollector


REDIS_URL = os.environ.get("REMOTE_BLOOM_TEST_URL")

pytestmark = pytest.mark.skipif(
    not REDIS_URL, reason="REMOTE_BLOOM_TEST_URL not set"
)


@pytest.mark.asyncio
async def test_filter_lifecycle():
    """Add, clear and reuse a filter name."""
    filter_name = str(time.time_ns())

    client = await RedisBloomFilterClient.create(url=REDIS_URL, metrics=MetricsCollector())
    try:
        await client.clear_all()

        # 1. Create then use the filter
        filter1 = client.get(filter_name)
        await filter1.add("foo", "bar")
        matches = await filter1.extract_contained_items("foo", "bar", "baz")
        assert matches == {"foo", "bar"}

        # 2. Clear the filter
        await client.clear(filter_name)
        matches = await filter1.extract_contained_items("foo", "bar", "baz")
        assert matches == set()

        # 3. Get the filter again
        filter2 = client.get(filter_name)
        await filter2.add("baz")
        matches = await filter1.extract_contained_items("foo", "bar", "baz")
        assert matches == {"baz"}
    finally:
        await client.close()

    with pytest.raises(ClosedError):
        await filter1.add("foo")


@pytest.mark.asyncio
async def test_state_shared_between_clients():
    """A second client sees bits written by the first."""
    filter_name = f"shared-{time.time_ns()}"
    config = ClientConfig(url=REDIS_URL, hash_algorithm="murmur3")

    writer = await RedisBloomFilterClient.from_config(config, metrics=MetricsCollector())
    reader = await RedisBloomFilterClient.from_config(config, metrics=MetricsCollector())
    try:
        items = [f"user_{i}" for i in range(200)]
        await writer.get(filter_name).add(*items)

        assert await reader.get(filter_name).extract_contained_items(*items) == set(items)
    finally:
        await writer.clear(filter_name)
        await writer.close()
        await reader.close()


@pytest.mark.asyncio
async def test_unreachable_server():
    with pytest.raises(StoreConnectionError):
        await RedisBloomFilterClient.create(
            url="redis://127.0.0.1:1", socket_timeout=1.0, metrics=MetricsCollector()
        )
