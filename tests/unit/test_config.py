"""
Unit tests for engine configuration.
"""

import pytest

from moa.config import EngineConfig


class TestEngineConfig:
    """Tests for EngineConfig."""

    def test_defaults_are_valid(self):
        """Test the default configuration validates."""
        config = EngineConfig()
        config.validate()

        assert config.session_ttl is None
        assert config.request_timeout is None
        assert config.propagate_fatal is False
        assert config.fallback_status == 500
        assert config.cancelled_status == 503

    def test_from_env(self, monkeypatch):
        """Test reading MOA_* variables."""
        monkeypatch.setenv("MOA_LOG_LEVEL", "debug")
        monkeypatch.setenv("MOA_LOG_FORMAT", "json")
        monkeypatch.setenv("MOA_SESSION_TTL", "300")
        monkeypatch.setenv("MOA_REQUEST_TIMEOUT", "2.5")
        monkeypatch.setenv("MOA_PROPAGATE_FATAL", "yes")
        monkeypatch.setenv("MOA_ERROR_FORMAT", "text")

        config = EngineConfig.from_env()

        assert config.log_level == "DEBUG"
        assert config.log_format == "json"
        assert config.session_ttl == 300.0
        assert config.request_timeout == 2.5
        assert config.propagate_fatal is True
        assert config.error_body_format == "text"

    def test_from_env_defaults(self, monkeypatch):
        """Test unset variables fall back to defaults."""
        for name in ("MOA_LOG_LEVEL", "MOA_LOG_FORMAT", "MOA_SESSION_TTL",
                     "MOA_REQUEST_TIMEOUT", "MOA_PROPAGATE_FATAL", "MOA_ERROR_FORMAT"):
            monkeypatch.delenv(name, raising=False)

        assert EngineConfig.from_env() == EngineConfig()

    @pytest.mark.parametrize("overrides", [
        {"log_level": "LOUD"},
        {"log_format": "xml"},
        {"error_body_format": "html"},
        {"session_ttl": 0},
        {"request_timeout": -1},
        {"fallback_status": 200},
        {"fallback_status": 299},
        {"cancelled_status": 302},
        {"fallback_status": 600},
    ])
    def test_validate_rejects(self, overrides):
        """Test fail-fast validation."""
        with pytest.raises(ValueError):
            EngineConfig(**overrides).validate()

    def test_unlisted_error_status_allowed(self):
        """Test any 4xx or 5xx code validates, listed or not."""
        EngineConfig(fallback_status=599, cancelled_status=499).validate()
