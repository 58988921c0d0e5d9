"""Client utilities for the Yandex organization search API."""

import logging
from typing import Any, Dict

import requests

logger = logging.getLogger(__name__)
_SESSION = requests.Session()
_BASE_URL = "https://search-maps.yandex.ru/v1/"


class YandexSearchError(RuntimeError):
    """Raised when the search API returns a body that is not a JSON object."""


def organization_uri(place_id: str) -> str:
    return f"ymapsbm1://org?oid={place_id}"


def search_organization(
    place_id: str,
    api_key: str,
    *,
    base_url: str = _BASE_URL,
    lang: str = "ru_RU",
    timeout: int = 10,
) -> Dict[str, Any]:
    params = {
        "apikey": api_key,
        "uri": organization_uri(place_id),
        "type": "biz",
        "lang": lang,
        "results": 1,
    }
    response = _SESSION.get(base_url, params=params, timeout=timeout)
    response.raise_for_status()
    try:
        payload = response.json()
    except ValueError as exc:
        logger.error("search_organization returned non-JSON body for place_id=%s", place_id)
        raise YandexSearchError("search API returned a non-JSON body") from exc
    if not isinstance(payload, dict):
        raise YandexSearchError("search API returned an unexpected payload")
    return payload
