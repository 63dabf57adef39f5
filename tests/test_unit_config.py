"""
Unit tests for engine settings.

Tests cover:
- Environment variable loading with the RULEGRAPH_ prefix
- app_env and log level normalization
- Complexity limit validation
"""

import pytest
from pydantic import ValidationError

from rulegraph.core.config import AppEnvironment, Settings


class TestSettingsDefaults:
    """Tests for default values."""

    @pytest.mark.anyio
    async def test_defaults(self, monkeypatch):
        """Test that limits default to values suited to interactive use."""
        for name in ("APP_ENV", "MAX_RULES", "MAX_EXPRESSION_LENGTH", "MAX_INPUT_DEPTH"):
            monkeypatch.delenv(f"RULEGRAPH_{name}", raising=False)

        settings = Settings()

        assert settings.app_env == AppEnvironment.LOCAL
        assert settings.max_rules == 500
        assert settings.max_expression_length == 2000
        assert settings.max_input_depth == 32
        assert settings.observability_enabled is True


class TestSettingsFromEnvironment:
    """Tests for RULEGRAPH_-prefixed environment variables."""

    @pytest.mark.anyio
    async def test_limits_read_from_environment(self, monkeypatch):
        monkeypatch.setenv("RULEGRAPH_MAX_RULES", "200")
        monkeypatch.setenv("RULEGRAPH_EXPRESSION_CACHE_SIZE", "0")
        monkeypatch.setenv("RULEGRAPH_OBSERVABILITY_ENABLED", "false")

        settings = Settings()

        assert settings.max_rules == 200
        assert settings.expression_cache_size == 0
        assert settings.observability_enabled is False

    @pytest.mark.anyio
    async def test_unprefixed_variables_ignored(self, monkeypatch):
        monkeypatch.delenv("RULEGRAPH_MAX_RULES", raising=False)
        monkeypatch.setenv("MAX_RULES", "3")

        assert Settings().max_rules == 500

    @pytest.mark.anyio
    async def test_invalid_number_rejected(self, monkeypatch):
        monkeypatch.setenv("RULEGRAPH_MAX_INPUT_DEPTH", "deep")

        with pytest.raises(ValidationError):
            Settings()


class TestSettingsValidation:
    """Tests for field and model validators."""

    @pytest.mark.anyio
    @pytest.mark.parametrize(("value", "expected"), [("TEST", "test"), ("prod", "prod")])
    async def test_app_env_normalized(self, value, expected):
        assert Settings(app_env=value).app_env == AppEnvironment(expected)

    @pytest.mark.anyio
    async def test_app_env_rejects_unknown(self):
        with pytest.raises(ValidationError, match="app_env must be one of"):
            Settings(app_env="staging")

    @pytest.mark.anyio
    async def test_log_level_normalized(self):
        assert Settings(app_log_level=" debug ").app_log_level == "DEBUG"

    @pytest.mark.anyio
    async def test_log_level_rejects_unknown(self):
        with pytest.raises(ValidationError, match="standard logging level"):
            Settings(app_log_level="LOUD")

    @pytest.mark.anyio
    @pytest.mark.parametrize("field", ["max_rules", "max_expression_length", "max_input_depth"])
    async def test_limits_must_be_positive(self, field):
        with pytest.raises(ValidationError, match=f"{field} must be at least 1"):
            Settings(**{field: 0})

    @pytest.mark.anyio
    async def test_cache_size_must_not_be_negative(self):
        with pytest.raises(ValidationError, match="must not be negative"):
            Settings(expression_cache_size=-1)
