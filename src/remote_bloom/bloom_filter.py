"""
Bloom filters stored in native Redis bitmaps.

The bit array of each named filter is a single Redis key manipulated with
SETBIT/GETBIT, so filters are shared across processes and survive restarts
without a server-side module. This makes them usable on managed services
such as AWS ElastiCache that do not load custom Redis modules.

All bit operations of one add() or extract_contained_items() call are sent
in a single pipelined round-trip.
"""
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Set

import structlog

from remote_bloom.config import ClientConfig, FilterConfig
from remote_bloom.errors import ClosedError, StoreUnavailableError
from remote_bloom.hashing import HashFunctionLike, compute_positions
from remote_bloom.metrics import MetricsCollector, get_metrics
from remote_bloom.store import RedisClient, RedisPipeline, RedisStore


class BloomFilter(ABC):
    """A named Bloom filter."""

    @abstractmethod
    async def add(self, *items: str) -> None:
        """Add items to the filter."""

    @abstractmethod
    async def extract_contained_items(self, *items: str) -> Set[str]:
        """Return the subset of items that are possibly present in the filter."""


class BloomFilterClient(ABC):
    """Manages named Bloom filters."""

    @abstractmethod
    def get(self, name: str) -> BloomFilter:
        """Get a handle to the filter with the given name."""

    @abstractmethod
    async def clear(self, name: str) -> None:
        """Clear the filter with the given name."""

    @abstractmethod
    async def clear_all(self) -> None:
        """Clear every filter in the store."""

    @abstractmethod
    async def close(self) -> None:
        """Release the client's connection."""


class RedisBloomFilterClient(BloomFilterClient):
    """
    Creates and clears Bloom filters backed by Redis bitmaps.

    One client owns exactly one store connection, shared by every filter
    handle it hands out.
    """

    def __init__(
        self,
        store: RedisClient,
        config: Optional[FilterConfig] = None,
        key_prefix: str = "",
        metrics: Optional[MetricsCollector] = None,
    ):
        """
        Initialize a client over an already connected store.

        Args:
            store: Remote bitmap store
            config: Filter parameters (defaults: 10000 bits, 3 hashes, SHA-256)
            key_prefix: Prepended to filter names to form Redis keys
            metrics: Metrics collector (defaults to the global one)
        """
        self.store = store
        self.config = config or FilterConfig()
        self.key_prefix = key_prefix
        self.metrics = metrics or get_metrics()
        self.logger = structlog.get_logger()
        self._closed = False

        self.metrics.gauge("clients.open").increment()

    @classmethod
    async def create(
        cls,
        url: str = "redis://localhost:6379",
        bit_array_size: int = 10000,
        hash_count: int = 3,
        hash_function1: Optional[HashFunctionLike] = None,
        hash_function2: Optional[HashFunctionLike] = None,
        check_server_identity: bool = True,
        key_prefix: str = "",
        socket_timeout: Optional[float] = None,
        metrics: Optional[MetricsCollector] = None,
    ) -> "RedisBloomFilterClient":
        """
        Connect to Redis and create a client.

        Args:
            url: Redis URL, ``rediss://`` for TLS
            bit_array_size: Size of each filter in bits (m)
            hash_count: Number of bit positions per item (k)
            hash_function1: First hash, defaults to bytes 0-3 of SHA-256
            hash_function2: Second hash, defaults to bytes 4-7 of SHA-256
            check_server_identity: Set to False to skip TLS certificate verification
            key_prefix: Prepended to filter names to form Redis keys
            socket_timeout: Socket timeout in seconds
            metrics: Metrics collector (defaults to the global one)

        Raises:
            ConfigurationError: If the filter parameters are invalid
            StoreConnectionError: If Redis is unreachable
        """
        # Validate before touching the network
        config = FilterConfig(
            bit_array_size=bit_array_size,
            hash_count=hash_count,
            hash_function1=hash_function1,
            hash_function2=hash_function2,
        )

        store = await RedisStore.create(
            url,
            check_server_identity=check_server_identity,
            socket_timeout=socket_timeout,
        )
        client = cls(store, config, key_prefix=key_prefix, metrics=metrics)
        client.logger.info(
            "bloom_client_connected",
            url=url,
            bit_array_size=config.bit_array_size,
            hash_count=config.hash_count,
        )
        return client

    @classmethod
    async def from_config(
        cls,
        config: ClientConfig,
        metrics: Optional[MetricsCollector] = None,
    ) -> "RedisBloomFilterClient":
        """Connect to Redis and create a client from a ClientConfig."""
        filter_config = config.filter_config()
        return await cls.create(
            url=config.url,
            bit_array_size=filter_config.bit_array_size,
            hash_count=filter_config.hash_count,
            hash_function1=filter_config.hash_function1,
            hash_function2=filter_config.hash_function2,
            check_server_identity=config.check_server_identity,
            key_prefix=config.key_prefix,
            socket_timeout=config.socket_timeout,
            metrics=metrics,
        )

    @property
    def closed(self) -> bool:
        return self._closed

    def ensure_open(self):
        """Raise ClosedError if the client has been closed."""
        if self._closed:
            raise ClosedError("Bloom filter client is closed")

    def key_for(self, name: str) -> str:
        """Redis key holding the bitmap of the named filter."""
        return f"{self.key_prefix}{name}"

    def get(self, name: str) -> "RedisBloomFilter":
        """
        Get a handle to the named filter.

        No remote call is made; the Redis key is created by the first add().
        Handles for the same name alias the same key.
        """
        self.ensure_open()
        return RedisBloomFilter(self, name)

    async def clear(self, name: str) -> None:
        """Delete the filter's key. Clearing a filter that does not exist is a no-op."""
        self.ensure_open()
        try:
            deleted = await self.store.delete(self.key_for(name))
        except StoreUnavailableError:
            self.metrics.increment_counter("store.errors.total")
            raise

        self.metrics.increment_counter("filter.clears.total")
        self.logger.info("bloom_filter_cleared", name=name, existed=bool(deleted))

    async def clear_all(self) -> None:
        """
        Delete every key in the store, not only the filters of this client.

        Intended for tests; do not use on a shared store.
        """
        self.ensure_open()
        try:
            await self.store.flush_all()
        except StoreUnavailableError:
            self.metrics.increment_counter("store.errors.total")
            raise

        self.logger.warning("bloom_store_flushed")

    async def close(self) -> None:
        """Close the connection. Further operations raise ClosedError."""
        if self._closed:
            return
        self._closed = True
        self.metrics.gauge("clients.open").decrement()
        await self.store.close()
        self.logger.info("bloom_client_closed")

    async def __aenter__(self) -> "RedisBloomFilterClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
        return False

    async def execute(self, pipeline: RedisPipeline, size: int) -> List:
        """
        Execute a pipeline of ``size`` queued operations in one round-trip.

        Raises:
            ClosedError: If the client was closed while the batch was built
            StoreUnavailableError: If the round-trip fails or the number of
                results does not match the number of operations
        """
        self.ensure_open()
        try:
            with self.metrics.timer("store.pipeline.latency.seconds"):
                results = await pipeline.execute()
        except StoreUnavailableError as e:
            self.metrics.increment_counter("store.errors.total")
            self.logger.error("store_pipeline_failed", size=size, error=str(e))
            raise

        self.metrics.increment_counter("store.pipelines.total")
        self.metrics.observe_histogram("store.pipeline.size", size)

        if len(results) != size:
            self.metrics.increment_counter("store.errors.total")
            raise StoreUnavailableError(
                f"Pipeline returned {len(results)} results for {size} operations"
            )
        return results

    def __repr__(self) -> str:
        state = "closed" if self._closed else "open"
        return (f"RedisBloomFilterClient(size={self.config.bit_array_size} bits, "
                f"hashes={self.config.hash_count}, {state})")


class RedisBloomFilter(BloomFilter):
    """
    Handle to one named filter.

    Holds only the name and the owning client; all state lives in Redis.
    """

    def __init__(self, client: RedisBloomFilterClient, name: str):
        self.client = client
        self.name = name
        self.key = client.key_for(name)
        self.logger = structlog.get_logger().bind(filter=name)

    def positions(self, item: str) -> List[int]:
        """Bit positions of an item in this filter."""
        return compute_positions(item, self.client.config)

    async def add(self, *items: str) -> None:
        """
        Add items to the filter.

        Every bit of every item is set in a single pipelined transaction.
        """
        self.client.ensure_open()
        if not items:
            return

        pipeline = self.client.store.pipeline()
        size = 0
        for item in items:
            for position in self.positions(item):
                pipeline.set_bit(self.key, position, 1)
                size += 1

        await self.client.execute(pipeline, size)

        self.client.metrics.increment_counter("filter.items.added", len(items))
        self.logger.debug("bloom_items_added", items=len(items), bits=size)

    async def extract_contained_items(self, *items: str) -> Set[str]:
        """
        Check which items might be in the filter.

        Each distinct bit position across all items is read once, in a single
        pipelined transaction.

        Returns:
            Items whose bits are all set. These may include false positives,
            but an added item is never missing.
        """
        self.client.ensure_open()
        if not items:
            return set()

        # item -> its positions, plus every distinct position in first-seen order
        item_positions: Dict[str, List[int]] = {}
        positions_to_read: Dict[int, None] = {}
        for item in items:
            if item in item_positions:
                continue
            positions = self.positions(item)
            item_positions[item] = positions
            for position in positions:
                positions_to_read[position] = None

        ordered_positions = list(positions_to_read)
        pipeline = self.client.store.pipeline()
        for position in ordered_positions:
            pipeline.get_bit(self.key, position)

        results = await self.client.execute(pipeline, len(ordered_positions))

        set_positions = {
            position for position, bit in zip(ordered_positions, results) if bit == 1
        }
        matched = {
            item for item, positions in item_positions.items()
            if all(position in set_positions for position in positions)
        }

        metrics = self.client.metrics
        metrics.increment_counter("filter.items.queried", len(items))
        metrics.increment_counter("filter.items.matched", len(matched))
        self.logger.debug(
            "bloom_items_checked",
            items=len(items),
            bits=len(ordered_positions),
            matched=len(matched),
        )
        return matched

    async def contains(self, item: str) -> bool:
        """Check a single item; True means possibly present."""
        return item in await self.extract_contained_items(item)

    def __repr__(self) -> str:
        return f"RedisBloomFilter(name={self.name!r}, key={self.key!r})"
