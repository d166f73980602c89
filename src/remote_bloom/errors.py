"""
Exception hierarchy for remote Bloom filters.
"""


class BloomFilterError(Exception):
    """Base class for all errors raised by this package."""


class ConfigurationError(BloomFilterError, ValueError):
    """Invalid filter parameters or hash functions, raised at construction."""


class StoreUnavailableError(BloomFilterError):
    """A batched store operation failed mid-flight; no partial result is returned."""


class StoreConnectionError(StoreUnavailableError, ConnectionError):
    """
    The remote store could not be reached or the link was lost.

    Raised at connect time and by any later operation whose connection
    fails, so it is caught by both ``except StoreUnavailableError`` and
    ``except ConnectionError``.
    """


class ClosedError(BloomFilterError):
    """An operation was attempted after the client was closed."""
