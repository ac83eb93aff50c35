from __future__ import annotations

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    openai_api_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices("PROMPTSMITH_OPENAI_API_KEY", "OPENAI_API_KEY"),
    )
    anthropic_api_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices("PROMPTSMITH_ANTHROPIC_API_KEY", "ANTHROPIC_API_KEY"),
    )
    openrouter_api_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices("PROMPTSMITH_OPENROUTER_API_KEY", "OPENROUTER_API_KEY"),
    )
    timeout_seconds: float = 60.0
    max_tokens: int = 1024
    temperature: float = 0.7
    live_model: str = "gpt-4o-mini"
    log_level: str = "WARNING"

    model_config = {
        "env_prefix": "PROMPTSMITH_",
        "env_file": ".env",
        "extra": "ignore",
        "populate_by_name": True,
    }
