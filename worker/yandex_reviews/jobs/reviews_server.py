"""HTTP entrypoint exposing the Yandex Maps reviews pipeline as JSON."""

from __future__ import annotations

import logging
import os
from typing import Any, Dict, Optional

from flask import Flask, jsonify, request

from yandex_reviews.core.config import get_settings
from yandex_reviews.core.place_id import UnresolvablePlaceError, is_yandex_maps_url
from yandex_reviews.core.reviews_service import MAX_PAGE, YandexReviewsService

# ---------- Logging ----------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s - %(message)s",
)
logger = logging.getLogger(__name__)

# ---------- App & service ----------
app = Flask(__name__)
_service: Optional[YandexReviewsService] = None

_TRUE_VALUES = {"1", "true", "yes"}
INVALID_URL_MESSAGE = "url must point to a Yandex Maps listing (yandex.ru/maps or maps.yandex.ru)"
LOAD_FAILED_MESSAGE = "Could not load data from Yandex Maps. Try again later."
LOAD_MORE_FAILED_MESSAGE = "Could not load more reviews."


def get_service() -> YandexReviewsService:
    global _service
    if _service is None:
        _service = YandexReviewsService()
    return _service


# ---------- Routes ----------


@app.get("/healthz")
def healthcheck() -> Any:
    settings = get_settings()
    return (
        jsonify(
            {
                "status": "ok",
                "cache_backend": "redis" if settings.cache_url else "memory",
                "search_api_configured": bool(settings.yandex_api_key),
            }
        ),
        200,
    )


@app.get("/reviews")
def get_reviews() -> Any:
    """Company record, first reviews page and gallery for ?url=..."""
    url = (request.args.get("url") or "").strip()
    if not is_yandex_maps_url(url):
        return jsonify({"error": INVALID_URL_MESSAGE}), 400

    refresh = (request.args.get("refresh") or "").lower() in _TRUE_VALUES

    try:
        data = get_service().fetch_by_url(url, force_refresh=refresh)
    except UnresolvablePlaceError as exc:
        return jsonify({"error": str(exc)}), 400
    except Exception as exc:  # noqa: BLE001
        logger.exception("Failed to load Yandex Maps data for %s: %s", url, exc)
        return jsonify({"error": LOAD_FAILED_MESSAGE}), 500

    return jsonify({"data": data}), 200


@app.get("/reviews/more")
def get_more_reviews() -> Any:
    """Incremental reviews page: ?url=...&page=N with 2 <= N <= MAX_PAGE.

    Repeated `seen` values carry fingerprints of reviews already shown;
    matching reviews are left out of the response.
    """
    url = (request.args.get("url") or "").strip()
    if not is_yandex_maps_url(url):
        return jsonify({"error": INVALID_URL_MESSAGE}), 400

    try:
        page = int(request.args.get("page", ""))
    except (TypeError, ValueError):
        return jsonify({"error": "page must be an integer"}), 400
    if not 2 <= page <= MAX_PAGE:
        return jsonify({"error": f"page must be between 2 and {MAX_PAGE}"}), 400

    seen = [value for value in request.args.getlist("seen") if value]

    try:
        data = get_service().fetch_more_reviews(url, page, seen=seen or None)
    except UnresolvablePlaceError as exc:
        return jsonify({"error": str(exc)}), 400
    except Exception as exc:  # noqa: BLE001
        logger.exception("Failed to load reviews page %s for %s: %s", page, url, exc)
        return jsonify({"reviews": [], "hasMoreReviews": False, "error": LOAD_MORE_FAILED_MESSAGE}), 422

    return jsonify({"data": data}), 200


@app.post("/reviews/cache/clear")
def clear_reviews_cache() -> Any:
    payload: Dict[str, Any] = request.get_json(silent=True) or {}
    url = str(payload.get("url") or "").strip()
    if not url:
        return jsonify({"error": "url is required"}), 400

    get_service().clear_cache(url)
    return jsonify({"data": {"status": "cleared"}}), 200


def main() -> None:
    env_port = os.getenv("PORT")
    port = int(env_port or get_settings().worker_port)
    logger.info("[BOOT] Binding on 0.0.0.0:%d", port)
    app.run(host="0.0.0.0", port=port)


if __name__ == "__main__":
    main()
