"""HTML page fetching for Yandex Maps organization listings."""

import logging
import re
from typing import Optional

import requests

logger = logging.getLogger(__name__)

DEFAULT_MAPS_BASE_URL = "https://yandex.ru/maps"
REQUEST_TIMEOUT = 15
REQUEST_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    ),
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "ru-RU,ru;q=0.9,en-US;q=0.8,en;q=0.7",
}


def build_session() -> requests.Session:
    session = requests.Session()
    session.headers.update(REQUEST_HEADERS)
    return session


def main_page_url(place_id: str, base_url: str = DEFAULT_MAPS_BASE_URL) -> str:
    return f"{base_url.rstrip('/')}/org/{place_id}/"


def reviews_page_url(place_id: str, page: int = 1, base_url: str = DEFAULT_MAPS_BASE_URL) -> str:
    url = f"{main_page_url(place_id, base_url)}reviews/"
    if page > 1:
        url += f"?page={page}"
    return url


def fetch_page(session: requests.Session, url: str, *, timeout: int = REQUEST_TIMEOUT) -> Optional[str]:
    """Fetch a listing page and return its body, or None when unavailable."""

    try:
        response = session.get(url, timeout=timeout, headers=REQUEST_HEADERS)
    except requests.RequestException as exc:  # noqa: BLE001
        logger.warning("Failed to fetch %s: %s", url, exc)
        return None

    if not (200 <= response.status_code < 300):
        logger.warning("Fetching %s returned HTTP %s", url, response.status_code)
        return None
    return response.text


def has_next_page(html: str, page: int) -> bool:
    """A `reviews/?page=N+1` link means another page of reviews exists."""
    return bool(re.search(rf"reviews/\?page={page + 1}(?!\d)", html or ""))
