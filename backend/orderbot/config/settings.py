# /orderbot/config/settings.py

import sys
import re
from typing import Literal
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings

# Discord allows five action rows per message: one per item on the page plus
# one navigation row.
MAX_ACTION_ROWS = 5


class Settings(BaseSettings):
    # Ledger (remote spreadsheet web app)
    ledger_base_url: str = ""
    ledger_api_key: str = ""
    ledger_timeout_seconds: float = 15.0

    # Discord
    discord_bot_token: str = ""
    discord_application_id: str = ""
    discord_public_key: str = ""
    discord_guild_id: str | None = None
    discord_api_base_url: str = "https://discord.com/api/v10"
    channel_id: str = ""

    # Checklist behaviour
    page_size: int = 4
    status_policy: Literal["binary", "ternary"] = "binary"

    # Jobs (seconds, 0 disables the job)
    pull_interval_seconds: int = 0
    cleanup_interval_seconds: int = 0
    scheduler_timezone: str = "UTC"

    # Local cache snapshot
    cache_path: str = "data/order_cache.json"
    cache_save_debounce_ms: int = 400

    # Deployment
    environment: str = Field(default="production")
    log_level: str = "INFO"
    api_key: str | None = None

    # ---------------- Validators ---------------- #

    @field_validator("page_size")
    @classmethod
    def page_size_must_fit_action_rows(cls, v):
        if not 1 <= v <= MAX_ACTION_ROWS - 1:
            raise ValueError(f"PAGE_SIZE must be between 1 and {MAX_ACTION_ROWS - 1}")
        return v

    @field_validator("pull_interval_seconds", "cleanup_interval_seconds", "cache_save_debounce_ms", mode="before")
    @classmethod
    def empty_interval_means_disabled(cls, v):
        if v is None or (isinstance(v, str) and not v.strip()):
            return 0
        return v

    @field_validator("pull_interval_seconds", "cleanup_interval_seconds", "cache_save_debounce_ms")
    @classmethod
    def must_not_be_negative(cls, v):
        if v < 0:
            raise ValueError("Intervals must be zero (disabled) or positive")
        return v

    @field_validator("ledger_base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @field_validator("discord_public_key")
    @classmethod
    def public_key_must_be_hex(cls, v):
        if v and not re.match(r"^[0-9a-fA-F]{64}$", v):
            raise ValueError("DISCORD_PUBLIC_KEY must be a 64 character hex string")
        return v

    @model_validator(mode="after")
    def lowercase_environment(self):
        self.environment = self.environment.lower()
        return self

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


def validate_environment(settings_obj: Settings):
    try:
        required = ["ledger_base_url", "ledger_api_key", "channel_id"]
        if settings_obj.environment == "production":
            required += ["discord_bot_token", "discord_application_id", "discord_public_key"]

        for var in required:
            if not getattr(settings_obj, var):
                raise ValueError(f"{var.upper()} is required")

        return settings_obj

    except Exception as e:
        print(f"--- [ERROR] Environment validation failed: {e}")
        sys.exit(1)


settings = Settings()
