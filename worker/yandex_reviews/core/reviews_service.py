"""Fetch, merge and cache company data and reviews for a Yandex Maps listing."""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

import requests

from yandex_reviews.core.blocking import is_captcha_page
from yandex_reviews.core.cache import build_cache, cache_key
from yandex_reviews.core.config import Settings, get_settings
from yandex_reviews.core.place_id import (
    UnresolvablePlaceError,
    YandexReviewsError,
    extract_name_from_url,
    extract_place_id_from_url,
)
from yandex_reviews.etl.media import extract_company_logo, extract_photos, remove_logo_from_gallery
from yandex_reviews.etl.reviews import ReviewExtractor, dedupe_reviews, placeholder_reviews
from yandex_reviews.etl.transform import extract_page_metadata, extract_title_name, parse_search_api_response
from yandex_reviews.models import CompanyRecord, FetchResult, Photo, Review, ReviewsPage
from yandex_reviews.vendors import yandex_pages, yandex_search

logger = logging.getLogger(__name__)

DEFAULT_COMPANY_NAME = "Business on Yandex Maps"
PLACEHOLDER_NOTICE = "Reviews could not be loaded from Yandex Maps; sample reviews are shown instead."
CLEAR_PAGE_RANGE = range(2, 21)
MAX_PAGE = CLEAR_PAGE_RANGE[-1]


class PageOutOfRangeError(YandexReviewsError, ValueError):
    """Raised for incremental pages outside the cached and clearable range."""

    def __init__(self, page: int) -> None:
        super().__init__(f"page must be between 2 and {MAX_PAGE}")
        self.page = page


class YandexReviewsService:
    """Entry point used by the CLI and HTTP layers.

    Only identifier resolution and out-of-range page numbers fail a call; every upstream stage
    degrades to an empty contribution and is logged instead.
    """

    def __init__(
        self,
        *,
        settings: Optional[Settings] = None,
        cache=None,
        session: Optional[requests.Session] = None,
        extractor: Optional[ReviewExtractor] = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.cache = cache if cache is not None else build_cache(self.settings)
        self.session = session or yandex_pages.build_session()
        self.extractor = extractor or ReviewExtractor()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @staticmethod
    def extract_place_id_from_url(url: str) -> Optional[str]:
        return extract_place_id_from_url(url)

    def fetch_by_url(self, url: str, force_refresh: bool = False) -> Dict[str, Any]:
        place_id = self._require_place_id(url)
        key = cache_key(place_id)

        if force_refresh:
            self.cache.forget(key)

        return self.cache.remember(
            key,
            self.settings.cache_ttl_seconds,
            lambda: self.fetch_fresh(place_id, url).to_dict(),
        )

    def fetch_more_reviews(self, url: str, page: int, seen: Optional[Iterable[str]] = None) -> Dict[str, Any]:
        """Load one extra reviews page, cached separately with the shorter TTL.

        `seen` holds fingerprints of reviews the caller already shows; matches
        are dropped from the returned list but stay in the cached page.
        """
        place_id = self._require_place_id(url)
        if not 2 <= page <= MAX_PAGE:
            raise PageOutOfRangeError(page)

        result = self.cache.remember(
            cache_key(place_id, page),
            self.settings.cache_page_ttl_seconds,
            lambda: self.scrape_reviews_page(place_id, page).to_dict(),
        )

        if seen:
            known: Set[str] = set(seen)
            reviews = [Review(**_review_kwargs(item)) for item in result["reviews"]]
            result["reviews"] = [review.to_dict() for review in dedupe_reviews(reviews, known)]
        return result

    def clear_cache(self, url: str) -> None:
        place_id = extract_place_id_from_url(url)
        if not place_id:
            return

        self.cache.forget(cache_key(place_id))
        for page in CLEAR_PAGE_RANGE:
            self.cache.forget(cache_key(place_id, page))

        logger.info("Cleared cached Yandex Maps data for place_id=%s", place_id)

    # ------------------------------------------------------------------
    # Fresh fetch
    # ------------------------------------------------------------------

    def fetch_fresh(self, place_id: str, url: str) -> FetchResult:
        logger.info("Fetching fresh Yandex Maps data for place_id=%s", place_id)

        api_data = self.fetch_organization_data(place_id)
        photos, logo, title_name = self.scrape_main_page(place_id)
        page, page_metadata = self.scrape_first_reviews_page(place_id)

        reviews = page.reviews
        used_placeholders = False
        if not reviews and self.settings.placeholder_reviews:
            logger.info("No reviews recovered for place_id=%s; using placeholder reviews", place_id)
            reviews = placeholder_reviews()
            used_placeholders = True

        name = (
            api_data.get("name")
            or page_metadata.get("name")
            or title_name
            or page_metadata.get("titleName")
            or extract_name_from_url(url)
            or DEFAULT_COMPANY_NAME
        )
        rating = _first_present(api_data.get("rating"), page_metadata.get("rating"), 0.0)
        reviews_count = _first_present(api_data.get("reviewsCount"), page_metadata.get("reviewsCount"), 0)
        if reviews_count == 0:
            reviews_count = len(reviews)

        if not logo and photos:
            # Promote the main photo to avatar; it is removed from the gallery below.
            logo = photos[0].url
        photos = remove_logo_from_gallery(photos, logo)[: self.settings.max_photos]

        return FetchResult(
            company=CompanyRecord(name=name, logo=logo, rating=float(rating), reviews_count=int(reviews_count)),
            reviews=reviews,
            photos=photos,
            has_more_reviews=page.has_more_reviews,
            placeholder_reviews=used_placeholders,
            error=PLACEHOLDER_NOTICE if used_placeholders else None,
        )

    def fetch_organization_data(self, place_id: str) -> Dict[str, Any]:
        """Name, rating and review count from the search API; {} when unavailable."""
        if not self.settings.yandex_api_key:
            return {}

        try:
            payload = yandex_search.search_organization(
                place_id,
                self.settings.yandex_api_key,
                base_url=self.settings.search_api_url,
                lang=self.settings.lang,
                timeout=self.settings.api_timeout,
            )
            return parse_search_api_response(payload)
        except (requests.RequestException, yandex_search.YandexSearchError) as exc:
            logger.warning("Yandex search API failed for place_id=%s: %s", place_id, exc)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Unexpected search API payload for place_id=%s: %s", place_id, exc)
        return {}

    def scrape_main_page(self, place_id: str) -> Tuple[List[Photo], Optional[str], Optional[str]]:
        """Photos, logo candidate and title name from the organization page."""
        url = yandex_pages.main_page_url(place_id, self.settings.maps_base_url)
        html = self._fetch_html(url, place_id)
        if not html:
            return [], None, None

        try:
            return (
                extract_photos(html, self.settings.max_photos),
                extract_company_logo(html),
                extract_title_name(html),
            )
        except Exception as exc:  # noqa: BLE001
            logger.warning("Failed to parse main page for place_id=%s: %s", place_id, exc)
            return [], None, None

    def scrape_first_reviews_page(self, place_id: str) -> Tuple[ReviewsPage, Dict[str, Any]]:
        try:
            page = self.scrape_reviews_page(place_id, 1)
            metadata = extract_page_metadata(page.html) if page.html else {}
        except Exception as exc:  # noqa: BLE001
            logger.warning("Failed to parse reviews page for place_id=%s: %s", place_id, exc)
            return ReviewsPage(), {}
        return page, metadata

    def scrape_reviews_page(self, place_id: str, page: int) -> ReviewsPage:
        url = yandex_pages.reviews_page_url(place_id, page, self.settings.maps_base_url)
        html = self._fetch_html(url, place_id)
        if not html:
            return ReviewsPage()

        reviews = self.extractor.extract(html)
        logger.info("Parsed %d reviews from page %d for place_id=%s", len(reviews), page, place_id)
        return ReviewsPage(
            reviews=reviews,
            has_more_reviews=yandex_pages.has_next_page(html, page),
            html=html,
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _fetch_html(self, url: str, place_id: str) -> Optional[str]:
        html = yandex_pages.fetch_page(self.session, url, timeout=self.settings.http_timeout)
        if html and is_captcha_page(html):
            logger.error("Yandex returned a captcha page instead of %s (place_id=%s)", url, place_id)
            return None
        return html

    @staticmethod
    def _require_place_id(url: str) -> str:
        place_id = extract_place_id_from_url(url)
        if not place_id:
            raise UnresolvablePlaceError(url)
        return place_id


def _first_present(*values: Any) -> Any:
    for value in values:
        if value is not None:
            return value
    return None


def _review_kwargs(item: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "author": item.get("author") or "",
        "author_status": item.get("authorStatus") or "",
        "author_avatar": item.get("authorAvatar"),
        "author_profile_url": item.get("authorProfileUrl"),
        "rating": item.get("rating") or 5,
        "date": item.get("date") or "",
        "text": item.get("text") or "",
    }
