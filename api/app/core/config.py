from functools import lru_cache
from typing import Literal

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "advert-catalog-api"
    environment: str = "dev"
    log_level: str = "INFO"
    storage_backend: Literal["postgres", "memory"] = "postgres"
    database_url: str | None = None
    database_pool_min_size: int = 1
    database_pool_max_size: int = 10
    catalog_page_size: int = 12
    owner_page_size: int = 12
    max_page_size: int = 100
    advert_statuses: list[str] = ["available", "reserved", "sold"]
    object_store_root: str = "./var/images"
    supabase_url: str | None = None
    supabase_anon_key: str | None = None
    auth_timeout_seconds: float = 5.0
    otel_enabled: bool = True
    otel_service_name: str = "advert-catalog-api"
    otel_exporter_otlp_endpoint: str | None = None
    otel_exporter_otlp_headers: str | None = None
    otel_trace_sample_ratio: float = 1.0
    otel_log_correlation: bool = True

    model_config = SettingsConfigDict(env_prefix="AC_", extra="ignore")

    @field_validator("advert_statuses")
    @classmethod
    def _require_lifecycle_anchors(cls, value: list[str]) -> list[str]:
        statuses = [item.strip() for item in value if item and item.strip()]
        missing = {"available", "sold"} - set(statuses)
        if missing:
            raise ValueError(f"advert_statuses must include {sorted(missing)}")
        return list(dict.fromkeys(statuses))


@lru_cache
def get_settings() -> Settings:
    return Settings()
