"""
Remote bitmap store interface and its redis-py (asyncio) implementation.

The Bloom filter only needs key deletion, a pipelined batch of
SETBIT/GETBIT operations, a bulk clear and connection close. Anything that
provides these with Redis bitmap semantics (bits default to 0, keys grow
to cover the highest offset set) can back a filter.
"""
from abc import ABC, abstractmethod
from typing import Any, List, Optional

import redis.asyncio as redis
from redis.exceptions import ConnectionError as RedisConnectionError, RedisError
import structlog

from remote_bloom.errors import StoreConnectionError, StoreUnavailableError


def _store_error(message: str, error: Exception) -> StoreUnavailableError:
    """Translate a driver error; link failures become StoreConnectionError."""
    if isinstance(error, (RedisConnectionError, OSError)):
        return StoreConnectionError(f"{message}: {error}")
    return StoreUnavailableError(f"{message}: {error}")


class RedisPipeline(ABC):
    """Batch of bitmap operations executed together in one round-trip."""

    @abstractmethod
    def set_bit(self, key: str, offset: int, value: int) -> "RedisPipeline":
        """Queue SETBIT key offset value."""

    @abstractmethod
    def get_bit(self, key: str, offset: int) -> "RedisPipeline":
        """Queue GETBIT key offset."""

    @abstractmethod
    async def execute(self) -> List[Any]:
        """
        Execute all queued operations.

        Returns:
            One result per queued operation, in submission order
        """


class RedisClient(ABC):
    """Connection to a remote store with Redis bitmap semantics."""

    @abstractmethod
    async def delete(self, key: str) -> int:
        """Delete a key, returning the number of keys removed."""

    @abstractmethod
    def pipeline(self) -> RedisPipeline:
        """Start a new, empty pipeline."""

    @abstractmethod
    async def flush_all(self):
        """Delete every key in the store."""

    @abstractmethod
    async def close(self):
        """Release the connection."""


class _RedisPipeline(RedisPipeline):
    """Wraps a transactional redis-py pipeline."""

    def __init__(self, pipeline: "redis.client.Pipeline"):
        self._pipeline = pipeline
        self._size = 0

    def set_bit(self, key: str, offset: int, value: int) -> RedisPipeline:
        self._pipeline.setbit(key, offset, value)
        self._size += 1
        return self

    def get_bit(self, key: str, offset: int) -> RedisPipeline:
        self._pipeline.getbit(key, offset)
        self._size += 1
        return self

    def __len__(self) -> int:
        return self._size

    async def execute(self) -> List[Any]:
        try:
            return await self._pipeline.execute()
        except (RedisError, OSError) as e:
            raise _store_error(f"Pipeline of {self._size} operations failed", e) from e


class RedisStore(RedisClient):
    """RedisClient backed by ``redis.asyncio``."""

    def __init__(
        self,
        url: str,
        check_server_identity: bool = True,
        socket_timeout: Optional[float] = None,
    ):
        """
        Initialize the store. No connection is made until connect().

        Args:
            url: Redis URL; ``rediss://`` enables TLS
            check_server_identity: Set to False to skip certificate and
                hostname verification on TLS connections
            socket_timeout: Socket timeout in seconds, None for the driver default
        """
        self.url = url
        self.use_tls = url.startswith("rediss://")
        self.check_server_identity = check_server_identity
        self.logger = structlog.get_logger()

        options = {}
        if socket_timeout is not None:
            options["socket_timeout"] = socket_timeout
            options["socket_connect_timeout"] = socket_timeout
        if self.use_tls and not check_server_identity:
            options["ssl_cert_reqs"] = "none"
            options["ssl_check_hostname"] = False

        self._client = redis.from_url(url, **options)

    @classmethod
    async def create(
        cls,
        url: str,
        check_server_identity: bool = True,
        socket_timeout: Optional[float] = None,
    ) -> "RedisStore":
        """Create a store and verify the connection."""
        store = cls(url, check_server_identity, socket_timeout)
        await store.connect()
        return store

    async def connect(self):
        """
        Establish the connection by round-tripping a PING.

        Raises:
            StoreConnectionError: If the server is unreachable
        """
        try:
            await self._client.ping()
        except (RedisError, OSError) as e:
            # Release whatever the pool opened before failing
            await self._client.aclose()
            raise StoreConnectionError(f"Cannot connect to {self.url}: {e}") from e

        self.logger.debug("store_connected", url=self.url, tls=self.use_tls)

    async def delete(self, key: str) -> int:
        try:
            return await self._client.delete(key)
        except (RedisError, OSError) as e:
            raise _store_error(f"DEL {key} failed", e) from e

    def pipeline(self) -> RedisPipeline:
        return _RedisPipeline(self._client.pipeline(transaction=True))

    async def flush_all(self):
        try:
            await self._client.flushall()
        except (RedisError, OSError) as e:
            raise _store_error("FLUSHALL failed", e) from e

    async def close(self):
        await self._client.aclose()
        self.logger.debug("store_closed", url=self.url)
