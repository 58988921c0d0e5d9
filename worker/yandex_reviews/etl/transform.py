"""Utilities for turning search API payloads and listing pages into company metadata."""

import json
import logging
import re
from typing import Any, Dict, Optional

from bs4 import BeautifulSoup

logger = logging.getLogger(__name__)

INITIAL_STATE_RE = re.compile(r"window\.__INITIAL_STATE__\s*=\s*(\{.+?\});?\s*</script>", re.DOTALL)

_TITLE_QUOTED_RE = re.compile(r"[«\"“„]([^»\"”“]+)[»\"”“]")
_TITLE_TAIL_RE = re.compile(r"\s*[—–\-:]\s*(?:отзывы|рейтинг|фото|цены|карта|яндекс|reviews|rating|photos|yandex).*$", re.IGNORECASE)
_TITLE_HEAD_RE = re.compile(r"^(?:Отзывы\s+о\s+|Reviews\s+of\s+)", re.IGNORECASE)
_ORG_ITEMTYPE_RE = re.compile(r"Organization|LocalBusiness|FoodEstablishment|Restaurant|Store", re.IGNORECASE)
_RATING_ARIA_RE = re.compile(r"(?:Рейтинг|rating)[^\"]*?(\d\.\d)", re.IGNORECASE)
_RATING_CLASS_RE = re.compile(r"rating-badge|rating-value|orgpage-rating")
_RATING_TEXT_RE = re.compile(r"^\s*(\d\.\d)")
_TOTAL_SCORE_RE = re.compile(r'"totalScore"\s*:\s*(\d\.\d)')
_REVIEW_COUNT_TEXT_RE = re.compile(r"(\d+)\s*(?:отзыв|review)", re.IGNORECASE)

MAX_NAME_LENGTH = 80


def _safe_float(value: Any) -> Optional[float]:
    try:
        if value is None:
            return None
        return float(value)
    except (TypeError, ValueError):
        return None


def _safe_int(value: Any) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, (int, float)):
        return int(value)
    if isinstance(value, str):
        try:
            return int(float(value))
        except (ValueError, OverflowError):
            pass
        # Grouped counts such as "1 234".
        digits = "".join(ch for ch in value if ch.isdigit())
        if digits:
            return int(digits)
    return None


def _clamp_rating(value: Optional[float]) -> Optional[float]:
    if value is None:
        return None
    return min(max(value, 0.0), 5.0)


def parse_search_api_response(payload: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Normalise a search API response to `{name?, rating?, reviewsCount?}`."""
    if not isinstance(payload, dict):
        return {}

    features = payload.get("features")
    if not isinstance(features, list) or not features or not isinstance(features[0], dict):
        return {}

    props = features[0].get("properties")
    if not isinstance(props, dict):
        return {}
    meta = props.get("CompanyMetaData")
    if not isinstance(meta, dict):
        meta = {}

    name = meta.get("name") or props.get("name")
    if not isinstance(name, str):
        name = None
    rating = None
    reviews_count = None

    ratings = meta.get("Ratings")
    if isinstance(ratings, list) and ratings and isinstance(ratings[0], dict):
        ratings = ratings[0]
    if isinstance(ratings, dict) and ratings.get("score") is not None:
        rating = _clamp_rating(_safe_float(ratings.get("score")))
        reviews_count = _safe_int(ratings.get("ratings")) or 0

    result = {"name": name, "rating": rating, "reviewsCount": reviews_count}
    return {key: value for key, value in result.items() if value is not None}


def load_initial_state(html: str) -> Optional[Any]:
    """Decode the `window.__INITIAL_STATE__` blob embedded in a page."""
    match = INITIAL_STATE_RE.search(html or "")
    if not match:
        return None
    try:
        return json.loads(match.group(1))
    except ValueError:
        logger.debug("__INITIAL_STATE__ is present but is not valid JSON")
        return None


def _page_title(soup: BeautifulSoup) -> str:
    if soup.title and soup.title.string:
        return soup.title.string.strip()
    return ""


def _quoted_name(title: str) -> Optional[str]:
    match = _TITLE_QUOTED_RE.search(title or "")
    if match:
        return match.group(1).strip() or None
    return None


def _is_plausible_name(name: Optional[str]) -> bool:
    return bool(name) and 1 < len(name) < MAX_NAME_LENGTH


def extract_title_name(html: str) -> Optional[str]:
    """Company name quoted inside the page <title>, e.g. Кофейня «Зерно»."""
    return _quoted_name(_page_title(BeautifulSoup(html or "", "html.parser")))


def _name_from_schema(soup: BeautifulSoup) -> Optional[str]:
    org = soup.find(attrs={"itemtype": _ORG_ITEMTYPE_RE, "itemscope": True})
    if org is None:
        return None
    node = org.find(attrs={"itemprop": "name"})
    if node is None:
        return None
    name = (node.get("content") or node.get_text(" ", strip=True)).strip()
    return name if _is_plausible_name(name) else None


def _name_from_title(soup: BeautifulSoup) -> Optional[str]:
    title = _page_title(soup)
    if not title:
        return None

    quoted = _quoted_name(title)
    if quoted:
        return quoted

    cleaned = _TITLE_TAIL_RE.sub("", title)
    cleaned = _TITLE_HEAD_RE.sub("", cleaned).strip(" \t\r\n«»\"")
    return cleaned if _is_plausible_name(cleaned) else None


def _rating_from_page(soup: BeautifulSoup, html: str) -> Optional[float]:
    node = soup.find(attrs={"itemprop": "ratingValue", "content": True})
    if node is not None:
        rating = _safe_float(node["content"])
        if rating is not None:
            return _clamp_rating(rating)

    node = soup.find(attrs={"aria-label": _RATING_ARIA_RE})
    if node is not None:
        return _clamp_rating(float(_RATING_ARIA_RE.search(node["aria-label"]).group(1)))

    for node in soup.find_all(class_=_RATING_CLASS_RE):
        match = _RATING_TEXT_RE.match(node.get_text(" ", strip=True))
        if match:
            return _clamp_rating(float(match.group(1)))

    match = _TOTAL_SCORE_RE.search(html)
    if match:
        return _clamp_rating(float(match.group(1)))
    return None


def _reviews_count_from_page(soup: BeautifulSoup) -> Optional[int]:
    node = soup.find(attrs={"itemprop": "reviewCount", "content": True})
    if node is not None:
        count = _safe_int(node["content"])
        if count is not None:
            return count

    match = _REVIEW_COUNT_TEXT_RE.search(soup.get_text(" ", strip=True))
    if match:
        return _safe_int(match.group(1))
    return None


def extract_page_metadata(html: str) -> Dict[str, Any]:
    """Scrape name, rating and review count from a listing page.

    `name` comes from schema.org microdata only; the <title> guess is kept
    apart as `titleName` so callers can rank it below other title sources.
    Rating falls back from microdata to aria labels, CSS classes and embedded
    JSON. Missing values are omitted.
    """
    if not html:
        return {}

    soup = BeautifulSoup(html, "html.parser")
    # Text-based fallbacks must not see script payloads.
    for tag in soup(["script", "style", "noscript"]):
        tag.decompose()

    result = {
        "name": _name_from_schema(soup),
        "titleName": _name_from_title(soup),
        "rating": _rating_from_page(soup, html),
        "reviewsCount": _reviews_count_from_page(soup),
    }
    return {key: value for key, value in result.items() if value is not None}
