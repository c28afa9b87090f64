from __future__ import annotations

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="DEVFUSION_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    api_prefix: str = "/api"
    cors_origins: list[str] = Field(
        default_factory=lambda: [
            "http://localhost:3000",
            "http://127.0.0.1:3000",
            "http://localhost:5173",
        ]
    )
    max_payload_bytes: int = Field(
        default=1_000_000,
        description="Largest Socket.IO packet accepted from a client",
    )
    connect_database_before_listening: bool = Field(
        default=True,
        description="Create tables before serving; otherwise connect in the background",
    )
    database_url: str = "sqlite+aiosqlite:///./devfusion.db"

    jwt_secret: str = Field(
        default="your-secret-key-change-in-production",
        description="Shared secret used to sign and verify access tokens",
    )
    jwt_algorithm: str = "HS256"
    jwt_expires_hours: int = 24

    ai_model: str | None = None
    ai_trigger: str = "@ai"
    ai_min_interval_seconds: float = 2.0
    ai_throttle_realtime: bool = Field(
        default=True,
        description="Apply the AI cooldown to socket mentions as well as REST calls",
    )
    ai_apply_file_tree_patches: bool = True


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
