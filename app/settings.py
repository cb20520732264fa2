# app/settings.py
from __future__ import annotations
from typing import Optional
from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # ----- runtime -----
    ENV: str = Field(default="dev")
    LOG_LEVEL: str = Field(default="INFO", alias="LOG_LEVEL")

    # ----- Supabase (REST) -----
    # empty URL is allowed at import time; SupabaseREST refuses to start without it
    SUPABASE_URL: str = Field(default="", alias="SUPABASE_URL")
    SUPABASE_SERVICE_ROLE: Optional[str] = Field(default=None, alias="SUPABASE_SERVICE_ROLE")
    SUPABASE_KEY: Optional[str] = Field(default=None, alias="SUPABASE_KEY")  # fallback var
    SUPABASE_RETRIES: int = Field(default=1, alias="SUPABASE_RETRIES")

    # ----- debug log / analytics -----
    DEBUG_LOGS: bool = Field(default=True, alias="DEBUG_LOGS")
    DEBUG_LOG_LIMIT: int = Field(default=100, alias="DEBUG_LOG_LIMIT")

    # ----- listing -----
    DEFAULT_PAGE_SIZE: int = Field(default=12, alias="DEFAULT_PAGE_SIZE")
    MAX_PAGE_SIZE: int = Field(default=60, alias="MAX_PAGE_SIZE")
    SUGGESTION_LIMIT: int = Field(default=3, alias="SUGGESTION_LIMIT")

    # pydantic-settings v2 config
    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": True,
        "extra": "ignore",
    }

    # ----- Helpers -----
    @property
    def SUPABASE_JWT(self) -> str:
        """Single source of truth for PostgREST auth."""
        return (self.SUPABASE_SERVICE_ROLE or self.SUPABASE_KEY or "").strip()


settings = Settings()
