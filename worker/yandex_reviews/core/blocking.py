"""Detect anti-bot challenge pages returned instead of listing content."""

from typing import Iterable

# Present only on the challenge page itself.
CHALLENGE_MARKERS = ("CheckboxCaptcha", "captcha-page")
REVIEWS_MARKER = "business-reviews-card-view"
LISTING_MARKERS = (REVIEWS_MARKER, "orgpage")


def _contains_any(html: str, markers: Iterable[str]) -> bool:
    return any(marker in html for marker in markers)


def _asks_to_prove_human(html: str) -> bool:
    if "Подтвердите" in html and "робот" in html:
        return True
    return "not a robot" in html.lower()


def is_captcha_page(html: str) -> bool:
    """Return True when `html` is a captcha challenge rather than a listing.

    Every regular page embeds a captcha fingerprinting script, so the bare
    word "captcha" says nothing; only dedicated widget markers or the
    "prove you are human" prompt on a page without listing content count.
    """
    if not html:
        return False

    if _contains_any(html, CHALLENGE_MARKERS):
        return True

    if "SmartCaptcha" in html and REVIEWS_MARKER not in html:
        return True

    return _asks_to_prove_human(html) and not _contains_any(html, LISTING_MARKERS)
