from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    project_name: str = "OPC-UA Node Provisioning"
    environment: str = "local"
    debug: bool = True
    log_level: str = "INFO"

    # Resource store (things / channels management API)
    things_url: str = "http://localhost:8182"
    http_timeout_s: float = 30.0

    # Discovery gateway (OPC-UA adapter browse endpoint)
    browse_url: str = "http://localhost:8188/browse"

    # Paging for node listings
    default_page_limit: int = 10
    max_page_limit: int = 100

    # Serialize add_nodes per serverURI inside this process.
    # Off by default: concurrent provisioning may create duplicate groupings.
    serialize_provisioning: bool = False

    # Notifications
    notification_history_size: int = 100

    @field_validator("things_url", "browse_url", mode="before")
    @classmethod
    def strip_trailing_slash(cls, v):
        """Base URLs are joined with absolute paths, drop the trailing slash"""
        if isinstance(v, str):
            return v.rstrip("/")
        return v

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, v):
        if isinstance(v, str):
            return v.strip().upper()
        return v

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False
        env_ignore_empty = True


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    settings = Settings()
    return settings

def clear_settings_cache():
    """Clear settings cache - useful for testing or env var changes"""
    get_settings.cache_clear()
