from __future__ import annotations
import os
from pathlib import Path
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from frigo.sources import BLOCKED_DOMAINS


class Config(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    anthropic_api_key: str = ""
    anthropic_model: str = "claude-3-5-haiku-latest"
    vision_model: str = "claude-sonnet-4-20250514"
    max_tokens: int = 4096
    supabase_url: str = ""
    supabase_key: str = ""
    backend_timeout: float = 20.0
    fetch_timeout: float = 15.0
    drafts_dir: Path = Path.home() / ".frigo" / "drafts"
    review_threshold: float = 0.6
    fuzzy_threshold: float = 0.82
    max_image_edge: int = 1568
    blocked_domains: list[str] = list(BLOCKED_DOMAINS)

    @field_validator("anthropic_api_key", mode="after")
    @classmethod
    def require_api_key(cls, v: str) -> str:
        env_val = os.environ.get("ANTHROPIC_API_KEY", v)
        if not env_val:
            raise ValueError("ANTHROPIC_API_KEY environment variable is required")
        return env_val

    @field_validator("supabase_url", mode="after")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")
