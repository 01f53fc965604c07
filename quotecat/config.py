"""Settings via pydantic-settings with QUOTECAT_ env prefix.

API credential fields use validation_alias to read the same unprefixed
env vars (ANTHROPIC_API_KEY, ANTHROPIC_AUTH_TOKEN) the rest of the
tooling uses, so a single .env file drives everything.
"""

from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="QUOTECAT_", env_file=".env")

    # Storage
    db_url: str = "sqlite+aiosqlite:///./quotecat.db"
    log_level: str = "info"

    # Runtime
    host: str = "0.0.0.0"
    port: int = 8000
    max_sessions: int = 100

    # Reasoning service
    reasoning_mode: Literal["stateless", "stateful"] = "stateless"
    anthropic_api_key: str = Field("", validation_alias="ANTHROPIC_API_KEY")
    # Dual auth: auth_token (Bearer) takes precedence over api_key (x-api-key)
    anthropic_auth_token: str = Field("", validation_alias="ANTHROPIC_AUTH_TOKEN")
    model: str = "claude-sonnet-4-5-20250514"
    max_tokens: int = 1024
    api_base_url: str = "https://api.anthropic.com"
    api_timeout_connect: int = 10  # seconds
    api_timeout_read: int = 120  # seconds
    # Server-authoritative wizard endpoint (stateful mode only)
    wizard_service_url: str = ""
    wizard_service_token: str = ""

    # Wizard loop
    max_iterations: int = 5  # Max reasoning calls per turn
    history_window: int = 40  # Turns replayed to the reasoning service
    catalog_search_limit: int = 5
    catalog_search_max: int = 20
    default_labor_rate: float = 75.0

    @model_validator(mode="after")
    def _validate_limits(self) -> "Settings":
        if self.max_iterations < 1:
            raise ValueError("max_iterations must be >= 1")
        if self.catalog_search_limit < 1:
            raise ValueError("catalog_search_limit must be >= 1")
        if self.catalog_search_limit > self.catalog_search_max:
            raise ValueError(
                f"catalog_search_limit ({self.catalog_search_limit}) must be <= "
                f"catalog_search_max ({self.catalog_search_max})"
            )
        if self.reasoning_mode == "stateful" and not self.wizard_service_url:
            raise ValueError("wizard_service_url is required when reasoning_mode=stateful")
        return self
