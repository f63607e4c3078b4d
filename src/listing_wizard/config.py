"""Application configuration."""

import os

from pydantic_settings import BaseSettings, SettingsConfigDict

_ENVIRONMENT = os.getenv("ENVIRONMENT", "local")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    supabase_url: str
    supabase_service_key: str
    storage_bucket: str = "listings"
    draft_backend: str = "file"
    draft_directory: str = ".drafts"
    persist_debounce_seconds: float = 0.75
    upload_stall_timeout_seconds: float = 20
    uploading_flag_debounce_seconds: float = 0.3
    min_media_count: int = 3
    max_media_count: int = 10
    max_image_bytes: int = 5 * 1024 * 1024
    max_document_bytes: int = 10 * 1024 * 1024
    taxonomy_base_url: str | None = None
    taxonomy_cache_ttl_seconds: int = 3600
    log_level: str = "INFO"
    environment: str = _ENVIRONMENT

    model_config = SettingsConfigDict(
        env_file=(f".env.{_ENVIRONMENT}", ".env"),
        extra="ignore",
    )


def resolve_taxonomy_base_url(settings: Settings) -> str:
    """Return the taxonomy endpoint, defaulting to the Supabase REST API."""
    if settings.taxonomy_base_url:
        return settings.taxonomy_base_url.rstrip("/")
    return f"{settings.supabase_url.rstrip('/')}/rest/v1"
