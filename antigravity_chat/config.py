"""Application Configuration: environment-driven settings via pydantic-settings.

Invariants:
    - All secrets (search provider keys) come from environment variables or .env
    - get_settings() is cached (lru_cache): single instance per process
    - Provider facts (client id, endpoints, scopes) are NOT settings; see constants.py

Design Decisions:
    - pydantic-settings over raw os.environ: validation, type coercion, .env file support
    - Defaults provided for every field: `antigravity-chat chat` works with no setup
      beyond `antigravity-chat login`
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from antigravity_chat.constants import CODE_ASSIST_BASE


class Settings(BaseSettings):
    """Application settings from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)

    # Credentials
    credentials_path: Path = Field(
        default_factory=lambda: Path.home() / ".config" / "antigravity-chat" / "tokens.json",
    )
    oauth_callback_timeout_seconds: float = 300.0

    @field_validator("credentials_path", mode="before")
    @classmethod
    def expand_user(cls, v):
        """Allow ~/... in ANTIGRAVITY-style env overrides."""
        if isinstance(v, str):
            return Path(v).expanduser()
        return v

    # Cloud Code Assist
    code_assist_base_url: str = CODE_ASSIST_BASE
    http_timeout_seconds: float = 300.0
    max_output_tokens: int = 8192

    # Model listing retries (streaming chat is never retried)
    max_retries: int = 3
    base_delay_ms: int = 1000
    max_delay_ms: int = 60_000

    # Agent
    max_tool_loops: int = 15

    # Web tools
    web_search_provider: str = ""
    brave_api_key: str = ""
    perplexity_api_key: str = ""
    openrouter_api_key: str = ""
    perplexity_model: str = ""
    xai_api_key: str = ""
    grok_model: str = ""
    web_timeout_seconds: float = 15.0
    web_cache_ttl_minutes: float = 15.0

    # Observability
    log_level: str = "WARNING"
    log_format: str = "text"


@lru_cache
def get_settings() -> Settings:
    return Settings()
