"""Application configuration loaded from environment variables."""

from pathlib import Path

from pydantic import SecretStr
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Row store (Coda API)
    coda_api_base: str = "https://coda.io/apis/v1"
    coda_api_token: SecretStr = SecretStr("")
    upstream_timeout: float = 25.0
    page_size: int = 500

    # Redis (generation marker + edge response cache)
    redis_host: str = "127.0.0.1"
    redis_port: int = 6379
    redis_db: int = 0

    # Cache
    index_cache_ttl: int = 300
    generation_key: str = "lastUpdated"
    edge_cache_prefix: str = "edge:"

    # Backend
    backend_host: str = "0.0.0.0"
    backend_port: int = 8787
    cors_allow_origins: list[str] = ["*"]

    # Paths (relative to project root)
    catalog_file: str = "catalog/catalog.yaml"

    @property
    def project_root(self) -> Path:
        return Path(__file__).parent.parent.parent

    model_config = {"env_file": ".env", "env_prefix": "", "extra": "ignore"}


settings = Settings()
