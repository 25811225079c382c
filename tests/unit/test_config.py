"""
Unit tests for server configuration.
"""

import pytest

from jiranotes.config import DEFAULT_PORT, ServerConfig


class TestDefaults:
    def test_defaults(self):
        config = ServerConfig()

        assert config.host == "127.0.0.1"
        assert config.port == DEFAULT_PORT == 18427
        assert config.read_timeout is None
        assert config.notes_dir is None
        assert config.log_format == "text"
        config.validate()


class TestValidate:
    """Tests for ServerConfig.validate()."""

    @pytest.mark.parametrize("host", ["127.0.0.1", "127.0.0.2", "localhost", "::1"])
    def test_loopback_hosts_allowed(self, host):
        ServerConfig(host=host).validate()

    @pytest.mark.parametrize("host", ["0.0.0.0", "192.168.1.10", "example.com", "::"])
    def test_non_loopback_rejected(self, host):
        with pytest.raises(ValueError, match="non-loopback"):
            ServerConfig(host=host).validate()

    @pytest.mark.parametrize("port", [-1, 65536])
    def test_invalid_port(self, port):
        with pytest.raises(ValueError, match="Invalid port"):
            ServerConfig(port=port).validate()

    def test_port_zero_allowed(self):
        ServerConfig(port=0).validate()

    def test_buffer_size_minimum(self):
        with pytest.raises(ValueError, match="buffer_size"):
            ServerConfig(buffer_size=512).validate()

    def test_max_request_size_at_least_buffer(self):
        with pytest.raises(ValueError, match="max_request_size"):
            ServerConfig(buffer_size=4096, max_request_size=2048).validate()

    @pytest.mark.parametrize("timeout", [0, -1.5])
    def test_read_timeout_positive(self, timeout):
        with pytest.raises(ValueError, match="read_timeout"):
            ServerConfig(read_timeout=timeout).validate()

    def test_log_format(self):
        with pytest.raises(ValueError, match="log_format"):
            ServerConfig(log_format="xml").validate()


class TestFromEnv:
    """Tests for ServerConfig.from_env()."""

    def test_empty_environment(self, monkeypatch):
        for name in ("HOST", "PORT", "NOTES_DIR", "LOG_LEVEL", "LOG_FORMAT", "MAX_REQUEST_SIZE", "READ_TIMEOUT"):
            monkeypatch.delenv(f"JIRANOTES_{name}", raising=False)

        assert ServerConfig.from_env() == ServerConfig()

    def test_reads_variables(self, monkeypatch):
        monkeypatch.setenv("JIRANOTES_PORT", "18500")
        monkeypatch.setenv("JIRANOTES_NOTES_DIR", "/tmp/notes")
        monkeypatch.setenv("JIRANOTES_LOG_LEVEL", "DEBUG")
        monkeypatch.setenv("JIRANOTES_LOG_FORMAT", "json")
        monkeypatch.setenv("JIRANOTES_MAX_REQUEST_SIZE", "2097152")
        monkeypatch.setenv("JIRANOTES_READ_TIMEOUT", "2.5")

        config = ServerConfig.from_env()

        assert config.port == 18500
        assert config.notes_dir == "/tmp/notes"
        assert config.log_level == "DEBUG"
        assert config.log_format == "json"
        assert config.max_request_size == 2097152
        assert config.read_timeout == 2.5

    def test_empty_notes_dir_is_unset(self, monkeypatch):
        monkeypatch.setenv("JIRANOTES_NOTES_DIR", "")

        assert ServerConfig.from_env().notes_dir is None
