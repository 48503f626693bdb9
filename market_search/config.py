"""Application configuration and constants."""
from __future__ import annotations

import os
from dataclasses import dataclass


def _get_env(name: str, default: str) -> str:
    value = os.getenv(name)
    return value if value is not None else default


@dataclass(frozen=True)
class Settings:
    """Simple settings container with environment variable overrides.

    An empty ``ELASTICSEARCH_NODE`` disables the search index entirely; every
    search then runs against MongoDB only.
    """

    es_node: str = _get_env("ELASTICSEARCH_NODE", "http://localhost:9201")
    es_timeout_seconds: float = float(_get_env("ELASTICSEARCH_TIMEOUT", "10"))
    mongodb_url: str = _get_env("MONGODB_URL", "mongodb://localhost:27017")
    mongodb_database: str = _get_env("MONGODB_DATABASE", "marketplace")
    redis_host: str = _get_env("REDIS_HOST", "localhost")
    redis_port: int = int(_get_env("REDIS_PORT", "6379"))
    suggest_cache_ttl_seconds: int = int(_get_env("SUGGEST_CACHE_TTL_SECONDS", "60"))
    reindex_on_startup: bool = _get_env("REINDEX_ON_STARTUP", "false").lower() in {"1", "true", "yes"}
    log_level: str = _get_env("LOG_LEVEL", "INFO")


settings = Settings()
