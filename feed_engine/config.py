"""
Configuration management using Pydantic BaseSettings.
All values can be overridden via environment variables or a .env file.
"""
from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # ── TiDB (MySQL-protocol compatible) ───────────────────────────────────
    tidb_host: str = "tidb"
    tidb_port: int = 4000
    tidb_user: str = "root"
    tidb_password: str = ""
    tidb_database: str = "social_feed"
    # Full SQLAlchemy URL; takes precedence over the tidb_* fields when set
    database_url: Optional[str] = None

    @property
    def tidb_url(self) -> str:
        if self.database_url:
            return self.database_url
        return (
            f"mysql+aiomysql://{self.tidb_user}:{self.tidb_password}"
            f"@{self.tidb_host}:{self.tidb_port}/{self.tidb_database}"
        )

    # ── Redis ──────────────────────────────────────────────────────────────
    redis_host: str = "redis"
    redis_port: int = 6379
    redis_socket_timeout: float = 0.5    # seconds; a slow cache counts as down
    following_cache_ttl: int = 3600      # 1h TTL for user:following:{id}
    trending_cache_ttl: int = 900        # 15m TTL for trending:hashtags:{n}

    # ── Feeds ──────────────────────────────────────────────────────────────
    feed_page_size: int = 20             # default page size
    feed_max_page_size: int = 100        # client limits are clamped to this
    feed_request_timeout: float = 5.0    # seconds per feed request
    explore_window_hours: int = 24
    explore_overfetch_factor: int = 3    # candidates fetched per page slot
    trending_default_limit: int = 10
    trending_max_limit: int = 50

    # ── Observability ──────────────────────────────────────────────────────
    # Empty string disables span export (tests, local runs without Jaeger)
    otel_exporter_otlp_endpoint: str = "http://jaeger:4317"
    service_name: str = "feed-engine"
    environment: str = "development"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
