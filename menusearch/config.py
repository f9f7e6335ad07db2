"""Application configuration and constants."""
from __future__ import annotations

import os
from dataclasses import dataclass


def _get_env(name: str, default: str) -> str:
    value = os.getenv(name)
    return value if value is not None else default


def _get_flag(name: str, default: str) -> bool:
    return _get_env(name, default).lower() in {"1", "true", "yes"}


@dataclass(frozen=True)
class Settings:
    """Simple settings container with environment variable overrides."""

    es_host: str = _get_env("ES_HOST", "http://localhost:9200")
    es_request_timeout: float = float(_get_env("ES_REQUEST_TIMEOUT", "10"))
    product_index: str = _get_env("PRODUCT_INDEX", "restaurant_menu_items")
    venue_index: str = _get_env("VENUE_INDEX", "restaurants")
    analyzer_language: str = _get_env("ANALYZER_LANGUAGE", "spanish")
    schema_retry_attempts: int = int(_get_env("SCHEMA_RETRY_ATTEMPTS", "5"))
    schema_retry_backoff: float = float(_get_env("SCHEMA_RETRY_BACKOFF", "0.5"))

    redis_host: str = _get_env("REDIS_HOST", "localhost")
    redis_port: int = int(_get_env("REDIS_PORT", "6379"))
    cache_enabled: bool = _get_flag("CACHE_ENABLED", "true")
    cache_ttl_seconds: int = int(_get_env("CACHE_TTL_SECONDS", "300"))
    cache_prefix: str = _get_env("CACHE_PREFIX", "search")

    default_page_size: int = int(_get_env("DEFAULT_PAGE_SIZE", "20"))
    max_page_size: int = int(_get_env("MAX_PAGE_SIZE", "100"))
    # Must not exceed index.max_result_window on the indices.
    max_result_window: int = int(_get_env("MAX_RESULT_WINDOW", "10000"))
    suggestion_limit: int = int(_get_env("SUGGESTION_LIMIT", "10"))
    max_suggestion_limit: int = int(_get_env("MAX_SUGGESTION_LIMIT", "25"))

    records_api_url: str = _get_env("RECORDS_API_URL", "http://localhost:3000")
    records_timeout: float = float(_get_env("RECORDS_TIMEOUT", "30"))

    # Relevance knobs. Name must stay the heaviest field and description the lightest.
    name_boost: float = float(_get_env("NAME_BOOST", "3"))
    autocomplete_boost: float = float(_get_env("AUTOCOMPLETE_BOOST", "2"))
    description_boost: float = float(_get_env("DESCRIPTION_BOOST", "1"))
    category_boost: float = float(_get_env("CATEGORY_BOOST", "2"))
    venue_name_boost: float = float(_get_env("VENUE_NAME_BOOST", "2"))
    cuisine_boost: float = float(_get_env("CUISINE_BOOST", "2"))
    address_boost: float = float(_get_env("ADDRESS_BOOST", "1"))
    fuzziness: str = _get_env("FUZZINESS", "AUTO")
    minimum_should_match: str = _get_env("MINIMUM_SHOULD_MATCH", "75%")

    description_placeholder: str = _get_env("DESCRIPTION_PLACEHOLDER", "Producto sin descripción")
    log_level: str = _get_env("LOG_LEVEL", "INFO")


settings = Settings()
