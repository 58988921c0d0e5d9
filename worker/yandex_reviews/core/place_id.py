"""Resolve Yandex Maps listing URLs into organization identifiers."""

import re
from typing import Optional
from urllib.parse import unquote, urlparse

ALLOWED_HOSTS = {"yandex.ru", "yandex.com", "maps.yandex.ru", "maps.yandex.com"}

_POI_URI_RE = re.compile(r"[?&]poi\[uri\]=([^&]+)", re.IGNORECASE)
_OID_IN_URI_RE = re.compile(r"oid=(\d+)")
_OID_PARAM_RE = re.compile(r"[?&]oid=(\d+)")
# Path ids need 5+ digits so zoom levels, region ids and coordinates never match.
_ORG_SLUG_ID_RE = re.compile(r"/org/[^/]*/(\d{5,})(?:/|$|\?)")
_ORG_ID_RE = re.compile(r"/org/(\d{5,})(?:/|$|\?)")
_ORG_SLUG_RE = re.compile(r"/org/([^/\d][^/]*)(?:/|$)", re.IGNORECASE)


class YandexReviewsError(RuntimeError):
    """Base class for failures surfaced to callers of the reviews pipeline."""


class UnresolvablePlaceError(YandexReviewsError, ValueError):
    """Raised when a URL does not identify a Yandex Maps organization."""

    def __init__(self, url: str) -> None:
        super().__init__("Could not resolve organization from URL")
        self.url = url


def extract_place_id_from_url(url: Optional[str]) -> Optional[str]:
    """Return the organization id embedded in `url`, or None.

    Supported shapes:
      - .../maps/213/moscow/?poi[uri]=ymapsbm1://org?oid=1234567890
      - ...?oid=1234567890
      - .../maps/org/some-slug/1234567890/
      - .../maps/org/1234567890/
    """
    if not url:
        return None

    decoded = unquote(url)

    poi_match = _POI_URI_RE.search(decoded)
    if poi_match:
        oid_match = _OID_IN_URI_RE.search(unquote(poi_match.group(1)))
        if oid_match:
            return oid_match.group(1)

    for pattern in (_OID_PARAM_RE, _ORG_SLUG_ID_RE, _ORG_ID_RE):
        match = pattern.search(decoded)
        if match:
            return match.group(1)

    return None


def extract_name_from_url(url: Optional[str]) -> Optional[str]:
    """Derive a display name from the `/org/<slug>/` segment, if any."""
    if not url:
        return None

    match = _ORG_SLUG_RE.search(unquote(url))
    if not match:
        return None

    name = re.sub(r"[_-]+", " ", match.group(1)).strip()
    return name.title() or None


def is_yandex_maps_url(url: Optional[str]) -> bool:
    if not url:
        return False

    parsed = urlparse(url.strip())
    if parsed.scheme not in {"http", "https"}:
        return False

    host = (parsed.hostname or "").lower()
    if host.startswith("www."):
        host = host[4:]
    if host not in ALLOWED_HOSTS:
        return False

    return "/maps" in (parsed.path or "") or host.startswith("maps.")
