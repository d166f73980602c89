"""
Unit tests for filter and client configuration.
"""
import json
import os
import tempfile

import pytest

from remote_bloom.config import ClientConfig, FilterConfig
from remote_bloom.errors import ConfigurationError
from remote_bloom.hashing import CallableHash, Murmur3Hash, Sha256WindowHash


class TestFilterConfig:
    """Test cases for FilterConfig validation."""

    def test_defaults(self):
        config = FilterConfig()

        assert config.bit_array_size == 10000
        assert config.hash_count == 3
        assert isinstance(config.hash_function1, Sha256WindowHash)
        assert isinstance(config.hash_function2, Sha256WindowHash)
        assert config.hash_function1.offset == 0
        assert config.hash_function2.offset == 4

    @pytest.mark.parametrize("size", [0, -1, 1.5, "100", True])
    def test_invalid_size(self, size):
        with pytest.raises(ConfigurationError):
            FilterConfig(bit_array_size=size)

    @pytest.mark.parametrize("count", [0, -3, 2.0, None])
    def test_invalid_hash_count(self, count):
        with pytest.raises(ConfigurationError):
            FilterConfig(hash_count=count)

    def test_configuration_error_is_value_error(self):
        with pytest.raises(ValueError):
            FilterConfig(bit_array_size=0)

    def test_callable_is_wrapped(self):
        config = FilterConfig(hash_function1=lambda item: 1, hash_function2=len)

        assert isinstance(config.hash_function1, CallableHash)
        assert isinstance(config.hash_function2, CallableHash)

    def test_hash_function_not_callable(self):
        with pytest.raises(ConfigurationError):
            FilterConfig(hash_function1="sha256")

    def test_hash_function_raises(self):
        def broken(item):
            raise RuntimeError("boom")

        with pytest.raises(ConfigurationError):
            FilterConfig(hash_function2=broken)

    @pytest.mark.parametrize("result", [1.5, "7", None, b"\x01"])
    def test_hash_function_non_numeric(self, result):
        with pytest.raises(ConfigurationError):
            FilterConfig(hash_function1=lambda item: result)

    def test_frozen(self):
        config = FilterConfig()
        with pytest.raises(AttributeError):
            config.hash_count = 5

    def test_expected_false_positive_rate(self):
        config = FilterConfig(bit_array_size=10000, hash_count=3)

        assert config.expected_false_positive_rate(0) == 0.0

        low = config.expected_false_positive_rate(100)
        high = config.expected_false_positive_rate(5000)
        assert 0 < low < high < 1


class TestClientConfig:
    """Test cases for ClientConfig."""

    def test_defaults(self):
        config = ClientConfig()

        assert config.url == "redis://localhost:6379"
        assert config.check_server_identity is True
        assert config.key_prefix == ""
        assert config.validate()

    def test_file_round_trip(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = os.path.join(tmpdir, "bloom.json")
            config = ClientConfig(
                url="rediss://cache.example:6380",
                check_server_identity=False,
                bit_array_size=20000,
                hash_count=5,
                hash_algorithm="murmur3",
                key_prefix="bloom:",
            )
            config.to_file(path)

            with open(path) as f:
                assert json.load(f)["hash_algorithm"] == "murmur3"

            loaded = ClientConfig.from_file(path)
            assert loaded == config

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("REMOTE_BLOOM_URL", "redis://cache:6379/2")
        monkeypatch.setenv("REMOTE_BLOOM_BIT_ARRAY_SIZE", "4096")
        monkeypatch.setenv("REMOTE_BLOOM_HASH_COUNT", "4")
        monkeypatch.setenv("REMOTE_BLOOM_CHECK_SERVER_IDENTITY", "false")
        monkeypatch.setenv("REMOTE_BLOOM_SOCKET_TIMEOUT", "2.5")

        config = ClientConfig.from_env()

        assert config.url == "redis://cache:6379/2"
        assert config.bit_array_size == 4096
        assert config.hash_count == 4
        assert config.check_server_identity is False
        assert config.socket_timeout == 2.5
        assert config.hash_algorithm == "sha256"

    def test_unknown_file_setting(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = os.path.join(tmpdir, "bloom.json")
            with open(path, "w") as f:
                json.dump({"url": "redis://localhost:6379", "sizeInBits": 10}, f)

            with pytest.raises(ConfigurationError, match="sizeInBits"):
                ClientConfig.from_file(path)

    def test_malformed_file(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = os.path.join(tmpdir, "bloom.json")
            with open(path, "w") as f:
                f.write("{not json")

            with pytest.raises(ConfigurationError):
                ClientConfig.from_file(path)

    @pytest.mark.parametrize("name,value", [
        ("REMOTE_BLOOM_HASH_COUNT", "three"),
        ("REMOTE_BLOOM_BIT_ARRAY_SIZE", "1e4"),
        ("REMOTE_BLOOM_SOCKET_TIMEOUT", "soon"),
    ])
    def test_non_numeric_env(self, monkeypatch, name, value):
        monkeypatch.setenv(name, value)

        with pytest.raises(ConfigurationError, match=name) as exc_info:
            ClientConfig.from_env()
        assert isinstance(exc_info.value.__cause__, ValueError)

    def test_invalid_url(self):
        with pytest.raises(ConfigurationError):
            ClientConfig(url="http://localhost:6379").validate()

    def test_invalid_algorithm(self):
        with pytest.raises(ConfigurationError):
            ClientConfig(hash_algorithm="md5").validate()

    def test_invalid_timeout(self):
        with pytest.raises(ConfigurationError):
            ClientConfig(socket_timeout=0).validate()

    def test_filter_config(self):
        config = ClientConfig(bit_array_size=512, hash_count=2, hash_algorithm="murmur3")
        filter_config = config.filter_config()

        assert filter_config.bit_array_size == 512
        assert filter_config.hash_count == 2
        assert isinstance(filter_config.hash_function1, Murmur3Hash)
        assert isinstance(filter_config.hash_function2, Murmur3Hash)
        assert filter_config.hash_function1.seed != filter_config.hash_function2.seed
