"""
Bit position computation for Bloom filters.

Each item is hashed by two independent 32-bit hash functions and the
results are combined with double hashing (Kirsch-Mitzenmacher),
h1 + i * h2, to derive k bit positions from only two hash evaluations.
"""
import hashlib
import struct
from abc import ABC, abstractmethod
from typing import Callable, List, Tuple, Union, TYPE_CHECKING

import mmh3

if TYPE_CHECKING:
    from remote_bloom.config import FilterConfig


UINT32_MASK = 0xFFFFFFFF


def encode_item(item: str) -> bytes:
    """
    UTF-8 bytes of an item.

    Lone surrogates cannot be encoded as UTF-8, so they are replaced with
    U+FFFD the way WHATWG TextEncoder does. Any other string encodes as
    plain UTF-8.
    """
    try:
        return item.encode('utf-8')
    except UnicodeEncodeError:
        return (
            item.encode('utf-16', 'surrogatepass')
            .decode('utf-16', 'replace')
            .encode('utf-8')
        )


class HashFunction(ABC):
    """
    Strategy that hashes a string to an unsigned 32-bit integer.

    Implementations must be deterministic across processes and should be
    close to uniform over the 32-bit range, otherwise the false positive
    rate of the filter degrades.
    """

    @abstractmethod
    def hash(self, item: str) -> int:
        """Hash an item to an integer in [0, 2**32)."""

    def __call__(self, item: str) -> int:
        return self.hash(item)


def sha256_digest(item: str) -> bytes:
    return hashlib.sha256(encode_item(item)).digest()


class Sha256WindowHash(HashFunction):
    """
    Reads a 4-byte little-endian window of the SHA-256 digest of an item.

    Two instances with non-overlapping offsets (0 and 4) give the default
    hash pair. The windows come from the same digest, so they are not
    independent in the cryptographic sense, which a Bloom filter tolerates.
    """

    DIGEST_SIZE = 32

    def __init__(self, offset: int = 0):
        """
        Args:
            offset: Byte offset of the window within the digest (0-28)
        """
        if not 0 <= offset <= self.DIGEST_SIZE - 4:
            raise ValueError(f"offset must be between 0 and {self.DIGEST_SIZE - 4}")
        self.offset = offset

    def hash(self, item: str) -> int:
        return self.read(sha256_digest(item))

    def read(self, digest: bytes) -> int:
        """Read this window from an already computed digest."""
        return struct.unpack_from('<I', digest, self.offset)[0]

    def __repr__(self) -> str:
        return f"Sha256WindowHash(offset={self.offset})"


class Murmur3Hash(HashFunction):
    """Unsigned 32-bit MurmurHash3 with a fixed seed."""

    def __init__(self, seed: int = 0):
        self.seed = seed

    def hash(self, item: str) -> int:
        return mmh3.hash(encode_item(item), self.seed, signed=False)

    def __repr__(self) -> str:
        return f"Murmur3Hash(seed={self.seed})"


class CallableHash(HashFunction):
    """Adapts a plain ``(str) -> int`` callable to the HashFunction interface."""

    def __init__(self, func: Callable[[str], int]):
        self.func = func

    def hash(self, item: str) -> int:
        return self.func(item) & UINT32_MASK

    def __repr__(self) -> str:
        name = getattr(self.func, '__name__', type(self.func).__name__)
        return f"CallableHash({name})"


HashFunctionLike = Union[HashFunction, Callable[[str], int]]


def as_hash_function(value: HashFunctionLike) -> HashFunction:
    """
    Coerce a strategy or a plain callable into a HashFunction.

    Raises:
        TypeError: If the value is neither
    """
    if isinstance(value, HashFunction):
        return value
    if callable(value):
        return CallableHash(value)
    raise TypeError(f"Expected a HashFunction or callable, got {type(value).__name__}")


def default_hash_functions() -> Tuple[HashFunction, HashFunction]:
    """The default pair: two windows of one SHA-256 digest."""
    return Sha256WindowHash(0), Sha256WindowHash(4)


def murmur3_hash_functions() -> Tuple[HashFunction, HashFunction]:
    """A faster pair: MurmurHash3 with two different seeds."""
    return Murmur3Hash(0), Murmur3Hash(1)


def compute_positions(item: str, config: "FilterConfig") -> List[int]:
    """
    Compute the bit positions representing an item.

    Args:
        item: String to hash (the empty string is valid)
        config: Filter parameters and hash functions

    Returns:
        ``hash_count`` positions in [0, bit_array_size), in generation
        order. Repeated positions within one item are kept.
    """
    hash1, hash2 = _hash_pair(item, config.hash_function1, config.hash_function2)

    positions = []
    for i in range(config.hash_count):
        combined = (hash1 + i * hash2) & UINT32_MASK
        positions.append(combined % config.bit_array_size)
    return positions


def _hash_pair(item: str, first: HashFunction, second: HashFunction) -> Tuple[int, int]:
    # Two SHA-256 windows share one digest
    if type(first) is Sha256WindowHash and type(second) is Sha256WindowHash:
        digest = sha256_digest(item)
        return first.read(digest), second.read(digest)
    return first(item) & UINT32_MASK, second(item) & UINT32_MASK
