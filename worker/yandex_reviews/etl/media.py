"""Logo and photo gallery extraction from Yandex Maps listing pages."""

import logging
import re
from typing import Any, Iterable, List, Optional, Sequence

from bs4 import BeautifulSoup

from yandex_reviews.etl.transform import load_initial_state
from yandex_reviews.models import Photo

logger = logging.getLogger(__name__)

AVATAR_SIZE_TOKEN = "islands-68"
FULLSIZE_SUFFIX = "XXL_height"
THUMBNAIL_SUFFIX = "M"
MAX_URL_LENGTH = 500

# get-tycoon is the CDN namespace reserved for business logos.
_TYCOON_LOGO_RE = re.compile(r"(https?://avatars\.mds\.yandex\.net/get-tycoon/\d+/[a-f0-9]+/[A-Za-z0-9_-]+)")
_BACKGROUND_URL_RE = re.compile(r"background-image:\s*url\(\s*([^)]+?)\s*\)", re.IGNORECASE)
_LOGO_CLASS_RE = re.compile(r"card-title-view__logo|business[\w-]*__logo|orgpage[\w-]*__logo", re.IGNORECASE)
_LOGO_PARENT_CLASS_RE = re.compile(r"card-title-view__logo|logo-view|__logo-image|__logo", re.IGNORECASE)
_AVATAR_CDN_RE = re.compile(r"^https?://avatars\.mds\.yandex\.net/")
_LOGO_JSON_RE = re.compile(r'"(?:logoUrl|logoUrlTemplate|logo_url)"\s*:\s*"(https?:[^"]+)"')
# Auto-generated catalog previews, never a real logo.
_DISCOVERY_THUMB_RE = re.compile(r"get-discovery(?:-int)?/")
_SIZE_SUFFIX_RE = re.compile(r"/[A-Za-z0-9_-]+$")

_PHOTO_PATTERNS = (
    re.compile(r"(https?://avatars\.mds\.yandex\.net/get-altay/\d+/[a-f0-9]+)(?:/[A-Za-z_]+)?"),
    re.compile(r"(https?://avatars\.mds\.yandex\.net/get-yandex-maps[^/\s\"']*/\d+/[a-f0-9]+)(?:/[A-Za-z_]+)?"),
)

LOGO_STATE_PATHS: Sequence[Sequence[str]] = (
    ("business", "logotype", "urlTemplate"),
    ("business", "logotype", "url"),
    ("business", "logotype"),
    ("business", "logo", "urlTemplate"),
    ("business", "logo", "url"),
    ("business", "logo"),
    ("business", "logoUrl"),
    ("business", "properties", "logotype", "urlTemplate"),
    ("business", "properties", "logo"),
    ("orgInfo", "logotype", "urlTemplate"),
    ("orgInfo", "logo"),
)


def extract_base_url(url: str) -> str:
    """Strip the size variant: .../get-altay/123/abc/M -> .../get-altay/123/abc."""
    return _SIZE_SUFFIX_RE.sub("", url or "")


def is_valid_image_url(url: Optional[str]) -> bool:
    if not url:
        return False
    return (
        bool(re.match(r"^https?://", url))
        and "<" not in url
        and ">" not in url
        and len(url) < MAX_URL_LENGTH
    )


def is_valid_logo_url(url: Optional[str]) -> bool:
    return is_valid_image_url(url) and not _DISCOVERY_THUMB_RE.search(url)


def _fill_size_template(url: str) -> str:
    url = url.replace("\\/", "/")
    return url.replace("%%", AVATAR_SIZE_TOKEN).replace("{size}", AVATAR_SIZE_TOKEN)


def _background_url(style: str) -> Optional[str]:
    match = _BACKGROUND_URL_RE.search(style or "")
    if not match:
        return None
    return match.group(1).strip(" '\"")


def _logo_from_tycoon(html: str, soup: BeautifulSoup) -> Optional[str]:
    match = _TYCOON_LOGO_RE.search(html)
    if match and is_valid_image_url(match.group(1)):
        return match.group(1)
    return None


def _logo_from_styled_element(html: str, soup: BeautifulSoup) -> Optional[str]:
    for node in soup.find_all(class_=_LOGO_CLASS_RE, style=True):
        url = _background_url(node["style"])
        if is_valid_logo_url(url):
            return url
    return None


def _logo_from_styled_descendant(html: str, soup: BeautifulSoup) -> Optional[str]:
    # class and style are often split between a wrapper and its child.
    for node in soup.find_all(class_=_LOGO_PARENT_CLASS_RE):
        for child in node.find_all(style=True):
            url = _background_url(child["style"])
            if url and _AVATAR_CDN_RE.match(url) and is_valid_logo_url(url):
                return url
    return None


def _logo_from_img(html: str, soup: BeautifulSoup) -> Optional[str]:
    for img in soup.find_all("img", class_=re.compile("logo", re.IGNORECASE), src=re.compile(r"^https?://")):
        if is_valid_logo_url(img["src"]):
            return img["src"]
    return None


def _lookup_path(state: Any, path: Iterable[str]) -> Any:
    value = state
    for key in path:
        if not isinstance(value, dict) or key not in value:
            return None
        value = value[key]
    return value


def find_logo_in_state(state: Any) -> Optional[str]:
    for path in LOGO_STATE_PATHS:
        value = _lookup_path(state, path)
        if isinstance(value, str) and value:
            url = _fill_size_template(value)
            if is_valid_logo_url(url):
                return url
    return None


def _logo_from_state(html: str, soup: BeautifulSoup) -> Optional[str]:
    state = load_initial_state(html)
    if state is None:
        return None
    return find_logo_in_state(state)


def _logo_from_inline_json(html: str, soup: BeautifulSoup) -> Optional[str]:
    match = _LOGO_JSON_RE.search(html)
    if match:
        url = _fill_size_template(match.group(1))
        if is_valid_logo_url(url):
            return url
    return None


# og:image is deliberately absent: it points at an arbitrary gallery photo.
LOGO_STRATEGIES = (
    _logo_from_tycoon,
    _logo_from_styled_element,
    _logo_from_styled_descendant,
    _logo_from_img,
    _logo_from_state,
    _logo_from_inline_json,
)


def extract_company_logo(html: str) -> Optional[str]:
    """Return the business logo URL from a listing page, or None."""
    if not html:
        return None

    soup = BeautifulSoup(html, "html.parser")
    for strategy in LOGO_STRATEGIES:
        url = strategy(html, soup)
        if url:
            logger.debug("Logo resolved by %s: %s", strategy.__name__, url)
            return url
    return None


def extract_photos(html: str, max_photos: int = 5) -> List[Photo]:
    """Collect distinct gallery photos in first-seen order.

    One extra photo is kept so the gallery stays full after a photo gets
    promoted to logo and removed.
    """
    base_urls: List[str] = []
    seen = set()
    for pattern in _PHOTO_PATTERNS:
        for base_url in pattern.findall(html or ""):
            if base_url not in seen:
                seen.add(base_url)
                base_urls.append(base_url)

    photos = [
        Photo(url=f"{base_url}/{FULLSIZE_SUFFIX}", thumbnail=f"{base_url}/{THUMBNAIL_SUFFIX}")
        for base_url in base_urls
    ]
    return photos[: max_photos + 1]


def remove_logo_from_gallery(photos: List[Photo], logo_url: Optional[str]) -> List[Photo]:
    if not logo_url:
        return list(photos)

    logo_base = extract_base_url(logo_url)
    return [
        photo
        for photo in photos
        if extract_base_url(photo.url) != logo_base and extract_base_url(photo.thumbnail) != logo_base
    ]
