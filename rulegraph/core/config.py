"""Engine configuration using Pydantic Settings.

Configuration is loaded from environment variables prefixed with
``RULEGRAPH_`` (for example ``RULEGRAPH_MAX_RULES=200``).

Optionally, you may point `ENV_FILE` at a local env file (for development).
Leave it unset in deployed environments so injected variables are the
single source of truth.
"""

import logging
import os
from enum import Enum

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppEnvironment(str, Enum):
    """Application environment values."""

    LOCAL = "local"
    TEST = "test"
    PROD = "prod"


class Settings(BaseSettings):
    """
    Engine settings with type validation.

    The complexity limits bound the cost of a single evaluation at
    configuration time; the engine has no runtime timeout.
    """

    model_config = SettingsConfigDict(
        env_file=os.getenv("ENV_FILE") or None, env_prefix="RULEGRAPH_", extra="ignore"
    )

    # Application
    app_env: AppEnvironment = AppEnvironment.LOCAL
    app_name: str = "rulegraph"
    app_log_level: str = "INFO"

    # Observability
    observability_enabled: bool = True
    observability_structured_logs: bool = True

    # Complexity limits
    max_rules: int = 500
    max_expression_length: int = 2000
    max_input_depth: int = 32

    # Parsed expression cache (entries)
    expression_cache_size: int = 1024

    @field_validator("app_env", mode="before")
    @classmethod
    def validate_app_env(cls, v: str | AppEnvironment) -> AppEnvironment:
        """Validate and parse app_env to AppEnvironment enum."""
        if isinstance(v, AppEnvironment):
            return v
        try:
            return AppEnvironment(str(v).lower())
        except ValueError as exc:
            raise ValueError(
                f"app_env must be one of {[e.value for e in AppEnvironment]}, got '{v}'"
            ) from exc

    @field_validator("app_log_level")
    @classmethod
    def validate_app_log_level(cls, v: str) -> str:
        """Normalize the log level and reject names logging does not know."""
        level = v.strip().upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"app_log_level must be a standard logging level, got '{v}'")
        return level

    @model_validator(mode="after")
    def validate_limits(self) -> "Settings":
        """Complexity limits must be positive; a zero limit would reject every call."""
        for name in ("max_rules", "max_expression_length", "max_input_depth"):
            if getattr(self, name) < 1:
                raise ValueError(f"{name} must be at least 1")
        if self.expression_cache_size < 0:
            raise ValueError("expression_cache_size must not be negative")
        return self


settings = Settings()
