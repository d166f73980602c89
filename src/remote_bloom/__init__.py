"""
Remote Bloom - Bloom filters stored in native Redis bitmaps.

Filters live in plain Redis keys manipulated with SETBIT/GETBIT, so they:
- Are shared by every process connected to the same Redis
- Survive process restarts
- Work on managed Redis services without custom modules (e.g. ElastiCache)

Bit positions come from double hashing over two 32-bit hashes, and every
multi-item call is sent to Redis as a single pipelined transaction.
"""

__version__ = "0.1.0"

from remote_bloom.bloom_filter import (
    BloomFilter,
    BloomFilterClient,
    RedisBloomFilter,
    RedisBloomFilterClient,
)
from remote_bloom.config import ClientConfig, FilterConfig
from remote_bloom.errors import (
    BloomFilterError,
    ClosedError,
    ConfigurationError,
    StoreConnectionError,
    StoreUnavailableError,
)
from remote_bloom.hashing import (
    CallableHash,
    HashFunction,
    Murmur3Hash,
    Sha256WindowHash,
    compute_positions,
)

__all__ = [
    "BloomFilter",
    "BloomFilterClient",
    "RedisBloomFilter",
    "RedisBloomFilterClient",
    "ClientConfig",
    "FilterConfig",
    "BloomFilterError",
    "ClosedError",
    "ConfigurationError",
    "StoreConnectionError",
    "StoreUnavailableError",
    "CallableHash",
    "HashFunction",
    "Murmur3Hash",
    "Sha256WindowHash",
    "compute_positions",
]
