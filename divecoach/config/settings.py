"""
Application configuration using Pydantic settings.

Configuration is loaded from environment variables (and a local .env file)
with sensible defaults. Mock mode runs the API against an in-memory store
so the diagnostics can be developed without a database.
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    DiveCoach settings, read from the environment or .env.

    Env var names are the field names, case-insensitive. List-valued
    settings (api_keys, cors_origins) are comma-separated strings.
    """

    # API Configuration
    api_title: str = "DiveCoach API"
    api_version: str = Field(
        default="v1",
        description="Path segment of the versioned routes, as in /api/v1/dive-logs"
    )
    api_keys: str = Field(
        default="dev-key-1,dev-key-2",
        description="Comma-separated API keys. A list allows key rotation without downtime."
    )

    # Anthropic Configuration
    anthropic_api_key: str = Field(
        default="",
        description="Claude API key. Only the coaching routes need it."
    )
    anthropic_model: str = Field(
        default="claude-sonnet-4-20250514",
        description="Claude model used for coaching chat and EQ plans"
    )
    anthropic_max_tokens: int = Field(
        default=1500,
        description="Reply length cap for chat and EQ plans"
    )
    anthropic_temperature: float = Field(
        default=0.1,
        description="Low temperature keeps safety advice and JSON plans consistent"
    )

    # Snowflake Configuration
    snowflake_account: str = Field(
        default="",
        description="Account locator, e.g. xy12345.eu-west-1"
    )
    snowflake_user: str = Field(
        default="",
        description="Service user that owns the dive log tables"
    )
    snowflake_password: str = Field(
        default="",
        description="Password auth; ignored when a private key is set"
    )
    snowflake_private_key_path: Optional[str] = Field(
        default=None,
        description="PEM key file for key-pair auth"
    )
    snowflake_private_key_base64: Optional[str] = Field(
        default=None,
        description="PEM key as base64, for hosts without a key file"
    )
    snowflake_database: str = Field(
        default="DIVECOACH",
        description="Database holding DIVE_LOGS and DIVE_LOG_AUDITS"
    )
    snowflake_schema: str = Field(
        default="TRAINING",
        description="Schema for the dive log tables"
    )
    snowflake_warehouse: str = Field(
        default="COMPUTE_WH",
        description="Warehouse used for queries"
    )
    snowflake_role: Optional[str] = Field(
        default=None,
        description="Role to assume; account default when unset"
    )
    snowflake_mock_mode: bool = Field(
        default=False,
        description="Use the in-memory mock instead of a real Snowflake connection"
    )

    # Analysis
    min_dives_for_patterns: int = Field(
        default=3,
        description="Fewest dives in the timeframe before pattern analysis runs"
    )
    pattern_timeframe_days: int = Field(
        default=30,
        description="Default look-back window for pattern analysis"
    )
    history_limit: int = Field(
        default=10,
        description="Recent logs sent to the coach as context"
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Root log level name"
    )

    # CORS
    cors_origins: str = Field(
        default="http://localhost:3000",
        description="Comma-separated origins of the dive log web app; * allows any"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    @property
    def api_keys_list(self) -> list[str]:
        """Configured API keys, blanks dropped."""
        return [key.strip() for key in self.api_keys.split(",") if key.strip()]

    @property
    def cors_origins_list(self) -> list[str]:
        """Allowed origins for the CORS middleware."""
        if self.cors_origins == "*":
            return ["*"]
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    def validate_required_fields(self) -> list[str]:
        """
        Names of required settings that are unset.

        Snowflake credentials only count outside mock mode.
        """
        missing = []

        # Diagnostics work without Claude; only coaching needs the key
        if not self.anthropic_api_key:
            missing.append("ANTHROPIC_API_KEY")

        if not self.snowflake_mock_mode:
            if not self.snowflake_account:
                missing.append("SNOWFLAKE_ACCOUNT")
            if not self.snowflake_user:
                missing.append("SNOWFLAKE_USER")
            has_key = self.snowflake_private_key_path or self.snowflake_private_key_base64
            if not self.snowflake_password and not has_key:
                missing.append("SNOWFLAKE_PASSWORD or SNOWFLAKE_PRIVATE_KEY_PATH")

        return missing


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Settings are loaded once per process. Tests call
    get_settings.cache_clear() to reload after changing the environment.
    """
    return Settings()
