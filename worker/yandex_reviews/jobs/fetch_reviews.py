"""CLI job to fetch Yandex Maps company data and reviews for a listing URL."""

import argparse
import json
import logging
import sys
from typing import Any, Dict, Iterable, Optional

from yandex_reviews.core.place_id import UnresolvablePlaceError
from yandex_reviews.core.reviews_service import PageOutOfRangeError, YandexReviewsService

logger = logging.getLogger(__name__)


def run_fetch_job(
    *,
    url: str,
    page: Optional[int] = None,
    refresh: bool = False,
    clear_cache: bool = False,
    seen: Optional[Iterable[str]] = None,
    service: Optional[YandexReviewsService] = None,
) -> Dict[str, Any]:
    service = service or YandexReviewsService()

    if clear_cache:
        service.clear_cache(url)

    if page is not None and page > 1:
        logger.info("Fetching reviews page %d for url=%s", page, url)
        return service.fetch_more_reviews(url, page, seen=seen)

    logger.info("Fetching listing data for url=%s refresh=%s", url, refresh)
    return service.fetch_by_url(url, force_refresh=refresh)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Fetch Yandex Maps company data and reviews")
    parser.add_argument("url", help="Yandex Maps listing URL")
    parser.add_argument("--page", dest="page", type=int, help="Reviews page to load (2 and above)")
    parser.add_argument("--refresh", dest="refresh", action="store_true", help="Bypass the cached result")
    parser.add_argument(
        "--clear-cache",
        dest="clear_cache",
        action="store_true",
        help="Drop cached data for the listing before fetching",
    )
    parser.add_argument(
        "--seen",
        dest="seen",
        action="append",
        default=[],
        help="Fingerprint of a review already shown; repeat to skip several (with --page)",
    )
    return parser


def main(argv=None) -> int:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s - %(message)s")
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        result = run_fetch_job(
            url=args.url,
            page=args.page,
            refresh=args.refresh,
            clear_cache=args.clear_cache,
            seen=args.seen or None,
        )
    except UnresolvablePlaceError as exc:
        logger.error("%s: %s", exc, exc.url)
        return 2
    except PageOutOfRangeError as exc:
        logger.error("%s (got %d)", exc, exc.page)
        return 2

    json.dump(result, sys.stdout, ensure_ascii=False, indent=2)
    sys.stdout.write("\n")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
