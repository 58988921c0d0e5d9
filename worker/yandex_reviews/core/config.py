"""Application configuration helpers."""

import logging
import os
from dataclasses import dataclass
from functools import lru_cache

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

_TRUE_VALUES = {"1", "true", "yes"}


@dataclass(frozen=True)
class Settings:
    yandex_api_key: str = ""
    maps_base_url: str = "https://yandex.ru/maps"
    search_api_url: str = "https://search-maps.yandex.ru/v1/"
    lang: str = "ru_RU"
    cache_url: str = ""
    cache_ttl_minutes: int = 30
    cache_page_ttl_minutes: int = 15
    http_timeout: int = 15
    api_timeout: int = 10
    max_photos: int = 5
    placeholder_reviews: bool = True
    worker_port: int = 9000

    @property
    def cache_ttl_seconds(self) -> int:
        return self.cache_ttl_minutes * 60

    @property
    def cache_page_ttl_seconds(self) -> int:
        return self.cache_page_ttl_minutes * 60


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load settings from environment variables with sensible defaults."""
    load_dotenv()

    yandex_api_key = os.getenv("YANDEX_MAPS_API_KEY", "").strip()
    maps_base_url = os.getenv("YANDEX_MAPS_BASE_URL", "https://yandex.ru/maps").rstrip("/")
    search_api_url = os.getenv("YANDEX_SEARCH_API_URL", "https://search-maps.yandex.ru/v1/")
    lang = os.getenv("YANDEX_LANG", "ru_RU")
    cache_url = os.getenv("CACHE_URL", "").strip()
    cache_ttl_minutes = int(os.getenv("CACHE_TTL_MINUTES", "30"))
    cache_page_ttl_minutes = int(os.getenv("CACHE_PAGE_TTL_MINUTES", "15"))
    http_timeout = int(os.getenv("HTTP_TIMEOUT", "15"))
    api_timeout = int(os.getenv("API_TIMEOUT", "10"))
    max_photos = int(os.getenv("MAX_PHOTOS", "5"))
    placeholder_reviews = os.getenv("PLACEHOLDER_REVIEWS", "true").lower() in _TRUE_VALUES
    worker_port = int(os.getenv("WORKER_PORT", "9000"))

    if not yandex_api_key:
        logger.warning("YANDEX_MAPS_API_KEY is not configured; search API lookups will be skipped.")
    if not cache_url:
        logger.info("CACHE_URL is not set; using the in-process memory cache.")

    return Settings(
        yandex_api_key=yandex_api_key,
        maps_base_url=maps_base_url,
        search_api_url=search_api_url,
        lang=lang,
        cache_url=cache_url,
        cache_ttl_minutes=cache_ttl_minutes,
        cache_page_ttl_minutes=cache_page_ttl_minutes,
        http_timeout=http_timeout,
        api_timeout=api_timeout,
        max_photos=max_photos,
        placeholder_reviews=placeholder_reviews,
        worker_port=worker_port,
    )
