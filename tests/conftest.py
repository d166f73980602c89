"""
Shared fixtures: an in-memory store with Redis bitmap semantics.
"""
from typing import Any, Dict, List, Optional

import pytest

from remote_bloom.bloom_filter import RedisBloomFilterClient
from remote_bloom.config import FilterConfig
from remote_bloom.errors import StoreUnavailableError
from remote_bloom.metrics import MetricsCollector
from remote_bloom.store import RedisClient, RedisPipeline


class MemoryPipeline(RedisPipeline):
    """Queues operations and applies them to a MemoryStore on execute()."""

    def __init__(self, store: "MemoryStore"):
        self.store = store
        self.operations: List[tuple] = []

    def set_bit(self, key: str, offset: int, value: int) -> RedisPipeline:
        self.operations.append(("setbit", key, offset, value))
        return self

    def get_bit(self, key: str, offset: int) -> RedisPipeline:
        self.operations.append(("getbit", key, offset))
        return self

    async def execute(self) -> List[Any]:
        self.store.round_trips += 1
        self.store.executed.append(list(self.operations))
        if self.store.fail_next is not None:
            error, self.store.fail_next = self.store.fail_next, None
            raise error

        results = []
        for op in self.operations:
            bits = self.store.bitmaps.setdefault(op[1], set())
            previous = 1 if op[2] in bits else 0
            if op[0] == "setbit":
                if op[3]:
                    bits.add(op[2])
                else:
                    bits.discard(op[2])
            elif not bits:
                # GETBIT never creates a key
                del self.store.bitmaps[op[1]]
            results.append(previous)

        if self.store.truncate_results:
            results = results[:-1]
        return results


class MemoryStore(RedisClient):
    """
    RedisClient keeping bitmaps as sets of offsets.

    Records every executed pipeline so tests can assert on round-trips.
    """

    def __init__(self):
        self.bitmaps: Dict[str, set] = {}
        self.round_trips = 0
        self.executed: List[List[tuple]] = []
        self.closed = False
        self.fail_next: Optional[Exception] = None
        self.truncate_results = False

    async def delete(self, key: str) -> int:
        if self.fail_next is not None:
            error, self.fail_next = self.fail_next, None
            raise error
        return 1 if self.bitmaps.pop(key, None) is not None else 0

    def pipeline(self) -> RedisPipeline:
        return MemoryPipeline(self)

    async def flush_all(self):
        self.bitmaps.clear()

    async def close(self):
        self.closed = True


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def metrics():
    return MetricsCollector()


@pytest.fixture
def client(store, metrics):
    return RedisBloomFilterClient(
        store,
        FilterConfig(bit_array_size=10000, hash_count=3),
        metrics=metrics,
    )


@pytest.fixture
def unavailable():
    return StoreUnavailableError("connection reset")
