"""
Configuration for remote Bloom filters.
"""
from dataclasses import dataclass, asdict, fields
from numbers import Integral
from typing import Optional
import json
import math
import os

from remote_bloom.errors import ConfigurationError
from remote_bloom.hashing import (
    HashFunction,
    HashFunctionLike,
    as_hash_function,
    default_hash_functions,
    murmur3_hash_functions,
)


DEFAULT_BIT_ARRAY_SIZE = 10000
DEFAULT_HASH_COUNT = 3

# Sample used to probe hash functions at construction
_PROBE_ITEM = "remote-bloom-probe"

HASH_ALGORITHMS = {
    "sha256": default_hash_functions,
    "murmur3": murmur3_hash_functions,
}


def _check_positive(name: str, value) -> None:
    if isinstance(value, bool) or not isinstance(value, Integral) or value <= 0:
        raise ConfigurationError(f"{name} must be a positive integer, got {value!r}")


def _parse_env(env, name: str, parse):
    try:
        return parse(env[name])
    except ValueError as e:
        raise ConfigurationError(f"{name} must be a number, got {env[name]!r}") from e


def _check_hash_function(name: str, value) -> HashFunction:
    try:
        hash_function = as_hash_function(value)
    except TypeError as e:
        raise ConfigurationError(f"{name}: {e}") from e

    try:
        result = hash_function(_PROBE_ITEM)
    except Exception as e:
        raise ConfigurationError(f"{name} failed on a sample input: {e}") from e

    if isinstance(result, bool) or not isinstance(result, Integral):
        raise ConfigurationError(
            f"{name} must return an integer, got {type(result).__name__}"
        )
    return hash_function


@dataclass(frozen=True)
class FilterConfig:
    """
    Immutable parameters shared by every filter of a client.

    Attributes:
        bit_array_size: Width of the remote bitmap in bits (m)
        hash_count: Bit positions set or checked per item (k)
        hash_function1: First 32-bit hash strategy
        hash_function2: Second 32-bit hash strategy, independent of the first
    """

    bit_array_size: int = DEFAULT_BIT_ARRAY_SIZE
    hash_count: int = DEFAULT_HASH_COUNT
    hash_function1: Optional[HashFunctionLike] = None
    hash_function2: Optional[HashFunctionLike] = None

    def __post_init__(self):
        _check_positive("bit_array_size", self.bit_array_size)
        _check_positive("hash_count", self.hash_count)

        default1, default2 = default_hash_functions()
        first = default1 if self.hash_function1 is None else self.hash_function1
        second = default2 if self.hash_function2 is None else self.hash_function2

        # Frozen dataclass: normalized values are written through object.__setattr__
        object.__setattr__(self, "hash_function1", _check_hash_function("hash_function1", first))
        object.__setattr__(self, "hash_function2", _check_hash_function("hash_function2", second))

    def expected_false_positive_rate(self, item_count: int) -> float:
        """
        Estimate the false positive rate after ``item_count`` distinct adds.

        p = (1 - e^(-k*n/m))^k
        """
        if item_count <= 0:
            return 0.0
        exponent = -self.hash_count * item_count / self.bit_array_size
        return (1 - math.exp(exponent)) ** self.hash_count


@dataclass
class ClientConfig:
    """Connection and runtime settings for a Bloom filter client."""

    # Remote store
    url: str = "redis://localhost:6379"
    check_server_identity: bool = True  # Only used with rediss:// URLs
    socket_timeout: Optional[float] = None  # Seconds, None keeps the driver default
    key_prefix: str = ""

    # Filter parameters
    bit_array_size: int = DEFAULT_BIT_ARRAY_SIZE
    hash_count: int = DEFAULT_HASH_COUNT
    hash_algorithm: str = "sha256"

    # Logging
    log_level: str = "INFO"

    @classmethod
    def from_file(cls, path: str) -> "ClientConfig":
        """Load configuration from a JSON file."""
        with open(path, "r") as f:
            try:
                data = json.load(f)
            except ValueError as e:
                raise ConfigurationError(f"{path} is not valid JSON: {e}") from e

        if not isinstance(data, dict):
            raise ConfigurationError(f"{path} must contain a JSON object")

        unknown = set(data) - {field.name for field in fields(cls)}
        if unknown:
            raise ConfigurationError(f"Unknown settings in {path}: {', '.join(sorted(unknown))}")
        return cls(**data)

    def to_file(self, path: str):
        """Save configuration to a JSON file."""
        with open(path, "w") as f:
            json.dump(asdict(self), f, indent=2)

    @classmethod
    def from_env(cls, prefix: str = "REMOTE_BLOOM_") -> "ClientConfig":
        """Build configuration from environment variables, e.g. REMOTE_BLOOM_URL."""
        config = cls()
        env = os.environ

        if prefix + "URL" in env:
            config.url = env[prefix + "URL"]
        if prefix + "KEY_PREFIX" in env:
            config.key_prefix = env[prefix + "KEY_PREFIX"]
        if prefix + "BIT_ARRAY_SIZE" in env:
            config.bit_array_size = _parse_env(env, prefix + "BIT_ARRAY_SIZE", int)
        if prefix + "HASH_COUNT" in env:
            config.hash_count = _parse_env(env, prefix + "HASH_COUNT", int)
        if prefix + "HASH_ALGORITHM" in env:
            config.hash_algorithm = env[prefix + "HASH_ALGORITHM"]
        if prefix + "SOCKET_TIMEOUT" in env:
            config.socket_timeout = _parse_env(env, prefix + "SOCKET_TIMEOUT", float)
        if prefix + "CHECK_SERVER_IDENTITY" in env:
            config.check_server_identity = (
                env[prefix + "CHECK_SERVER_IDENTITY"].lower() not in ("0", "false", "no")
            )
        if prefix + "LOG_LEVEL" in env:
            config.log_level = env[prefix + "LOG_LEVEL"]

        return config

    def validate(self) -> bool:
        """Validate configuration parameters."""
        if not self.url.startswith(("redis://", "rediss://", "unix://")):
            raise ConfigurationError(f"Unsupported store URL: {self.url}")

        _check_positive("bit_array_size", self.bit_array_size)
        _check_positive("hash_count", self.hash_count)

        if self.hash_algorithm not in HASH_ALGORITHMS:
            raise ConfigurationError(
                f"hash_algorithm must be one of {sorted(HASH_ALGORITHMS)}, got {self.hash_algorithm!r}"
            )

        if self.socket_timeout is not None and self.socket_timeout <= 0:
            raise ConfigurationError("socket_timeout must be positive")

        return True

    def filter_config(self) -> FilterConfig:
        """Build the FilterConfig described by these settings."""
        self.validate()
        hash_function1, hash_function2 = HASH_ALGORITHMS[self.hash_algorithm]()
        return FilterConfig(
            bit_array_size=self.bit_array_size,
            hash_count=self.hash_count,
            hash_function1=hash_function1,
            hash_function2=hash_function2,
        )
