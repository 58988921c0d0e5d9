"""Review extraction strategies and the merge/dedup pass for scraped reviews."""

from __future__ import annotations

import json
import logging
import re
from datetime import date, timedelta
from typing import Any, Callable, Dict, List, Optional, Set

from bs4 import BeautifulSoup, Tag

from yandex_reviews.etl.media import AVATAR_SIZE_TOKEN
from yandex_reviews.etl.sanitize import TextSanitizer
from yandex_reviews.etl.transform import load_initial_state
from yandex_reviews.models import ANONYMOUS_AUTHOR, Review

logger = logging.getLogger(__name__)

RawReview = Dict[str, Any]
Strategy = Callable[[str], List[RawReview]]

REVIEW_BLOCK_CLASS = "business-reviews-card-view__review"
FILLED_STAR_SELECTOR = ".business-rating-badge-view__star._full"
STATE_REVIEW_KEYS = frozenset({"reviews", "items", "comments", "Comments"})
STATE_REVIEW_MARKERS = ("text", "comment", "author")
MAX_STATE_DEPTH = 10
FALLBACK_TEXT_MIN_LENGTH = 40
SHORT_TEXT_LENGTH = 15
ANONYMOUS_NAMES = frozenset({"", ANONYMOUS_AUTHOR.lower(), "аноним"})

_AUTHOR_ICON_CLASS_RE = re.compile(r"author[_-]?icon|user[_-]?icon|review[_-]view__author", re.IGNORECASE)
_AVATAR_BACKGROUND_RE = re.compile(
    r"background-image:\s*url\(\s*['\"]?(https?://avatars\.mds\.yandex\.net/[^)'\"]+)", re.IGNORECASE
)
_AVATAR_GET_BACKGROUND_RE = re.compile(
    r"background-image:\s*url\(\s*['\"]?(https?://avatars\.mds\.yandex\.net/get-[^)'\"]+)", re.IGNORECASE
)
_AVATAR_IMG_SRC_RE = re.compile(r"^https?://avatars\.mds\.yandex\.net/get-")
_PROFILE_URL_RE = re.compile(r"^https://yandex\.ru/maps/user/")
_RATING_LABEL_RE = re.compile(r"(?:Оценка|Rating)\s*(\d)\s*(?:из|of)\s*5", re.IGNORECASE)
_JSON_REVIEWS_FRAGMENT_RE = re.compile(r'"reviews"\s*:\s*(\[[\s\S]*?\])\s*[,}]')
_SENTENCE_END_RE = re.compile(r"[.!?…]$")

TEXT_SELECTORS = (
    {"attrs": {"itemprop": "reviewBody"}},
    {"class_": "business-review-view__body-text"},
    {"class_": "spoiler-view__text"},
    {"class_": "business-review-view__body"},
)


def _first_of(data: Dict[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        value = data.get(key)
        if value is not None and value != "":
            return value
    return default


def _to_int(value: Any) -> int:
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return 0


def normalize_rating(value: Any) -> int:
    """Clamp to 1..5; missing or zero ratings count as five stars."""
    rating = _to_int(value)
    if rating < 1:
        return 5
    return min(rating, 5)


def normalize_review_item(item: Dict[str, Any]) -> RawReview:
    """Map the field names used across embedded JSON payloads onto one shape."""
    author_data = item.get("author") or {}

    if isinstance(author_data, dict):
        avatar = _first_of(author_data, "avatar", "avatarUrl")
        if isinstance(avatar, str) and "{size}" in avatar:
            avatar = avatar.replace("{size}", AVATAR_SIZE_TOKEN)
        author = _first_of(author_data, "name", "displayName", default=ANONYMOUS_AUTHOR)
        status = _first_of(author_data, "level", "status", default="")
        profile_url = _first_of(author_data, "profileUrl", "publicProfileUrl")
    else:
        avatar = None
        author = str(author_data)
        status = ""
        profile_url = None

    return {
        "author": str(author),
        "authorStatus": str(status),
        "authorAvatar": avatar if isinstance(avatar, str) else None,
        "authorProfileUrl": profile_url if isinstance(profile_url, str) else None,
        "rating": _to_int(_first_of(item, "rating", "stars", "score", default=0)),
        "date": str(_first_of(item, "date", "createdAt", "updatedAt", default="")),
        "text": str(_first_of(item, "text", "comment", "body", default="")),
    }


class ReviewExtractor:
    """Run ranked extraction strategies and merge their fragments into reviews."""

    def __init__(self, sanitizer: Optional[TextSanitizer] = None) -> None:
        self.sanitizer = sanitizer or TextSanitizer()
        self.strategies: List[Strategy] = [
            self.parse_review_blocks,
            self.parse_initial_state,
            self.parse_json_fragments,
        ]

    def extract(self, html: str, seen: Optional[Set[str]] = None) -> List[Review]:
        return self.clean_and_merge(self.extract_raw_reviews(html), seen=seen)

    def extract_raw_reviews(self, html: str) -> List[RawReview]:
        """Return the first non-empty result in strategy order."""
        if not html:
            return []
        for strategy in self.strategies:
            raw = strategy(html)
            if raw:
                logger.debug("%s recovered %d raw reviews", strategy.__name__, len(raw))
                return raw
        return []

    # ------------------------------------------------------------------
    # Strategy 1: review card markup
    # ------------------------------------------------------------------

    def parse_review_blocks(self, html: str) -> List[RawReview]:
        soup = BeautifulSoup(html, "html.parser")
        # Embedded config JSON must never be read as review text.
        for tag in soup(["script", "style", "noscript"]):
            tag.decompose()

        reviews: List[RawReview] = []
        for block in soup.find_all("div", class_=REVIEW_BLOCK_CLASS):
            review = self.parse_review_block(block)
            if review is not None:
                reviews.append(review)
        return reviews

    def parse_review_block(self, block: Tag) -> Optional[RawReview]:
        text = self._block_text(block)
        if not text or len(text) < self.sanitizer.min_review_length:
            return None

        return {
            "author": self._block_author(block),
            "authorStatus": self._block_status(block),
            "authorAvatar": self._block_avatar(block),
            "authorProfileUrl": self._block_profile_url(block),
            "rating": self._block_rating(block) or 5,
            "date": self._block_date(block),
            "text": text,
        }

    @staticmethod
    def _block_author(block: Tag) -> str:
        node = block.find(attrs={"itemprop": "name"})
        if node is None:
            return ANONYMOUS_AUTHOR
        name = (node.get("content") or node.get_text(" ", strip=True)).strip()
        return name or ANONYMOUS_AUTHOR

    @staticmethod
    def _block_status(block: Tag) -> str:
        node = block.find(class_="business-review-view__author-caption")
        return node.get_text(" ", strip=True) if node is not None else ""

    @staticmethod
    def _block_avatar(block: Tag) -> Optional[str]:
        for node in block.find_all(class_=_AUTHOR_ICON_CLASS_RE, style=True):
            match = _AVATAR_BACKGROUND_RE.search(node["style"])
            if match:
                return match.group(1)

        for node in block.find_all(style=True):
            match = _AVATAR_GET_BACKGROUND_RE.search(node["style"])
            if match:
                return match.group(1)

        img = block.find("img", src=_AVATAR_IMG_SRC_RE)
        return img["src"] if img is not None else None

    @staticmethod
    def _block_profile_url(block: Tag) -> Optional[str]:
        link = block.find("a", href=_PROFILE_URL_RE)
        return link["href"] if link is not None else None

    @staticmethod
    def _block_rating(block: Tag) -> int:
        node = block.find(attrs={"aria-label": _RATING_LABEL_RE})
        if node is not None:
            return int(_RATING_LABEL_RE.search(node["aria-label"]).group(1))
        return len(block.select(FILLED_STAR_SELECTOR))

    @staticmethod
    def _block_date(block: Tag) -> str:
        node = block.find("meta", attrs={"itemprop": "datePublished"})
        return (node.get("content") or "").strip() if node is not None else ""

    def _block_text(self, block: Tag) -> str:
        text = ""
        for selector in TEXT_SELECTORS:
            node = block.find(**selector)
            if node is not None:
                text = self.sanitizer.clean_html(node.decode_contents())
                if text:
                    break

        if not text:
            text = self._longest_clean_text(block)

        if self.sanitizer.looks_like_code(text):
            return ""
        return text

    def _longest_clean_text(self, block: Tag) -> str:
        best = ""
        for string in block.find_all(string=True):
            candidate = self.sanitizer.collapse_whitespace(str(string))
            if len(candidate) < FALLBACK_TEXT_MIN_LENGTH or len(candidate) <= len(best):
                continue
            if self.sanitizer.is_garbage(candidate) or self.sanitizer.looks_like_code(candidate):
                continue
            best = candidate
        return best

    # ------------------------------------------------------------------
    # Strategy 2: window.__INITIAL_STATE__
    # ------------------------------------------------------------------

    def parse_initial_state(self, html: str) -> List[RawReview]:
        state = load_initial_state(html)
        if state is None:
            return []
        found: List[RawReview] = []
        self._find_reviews(state, found, 0)
        return found

    def _find_reviews(self, node: Any, found: List[RawReview], depth: int) -> None:
        if depth > MAX_STATE_DEPTH:
            return

        if isinstance(node, dict):
            children = node.items()
        elif isinstance(node, list):
            children = enumerate(node)
        else:
            return

        for key, value in children:
            if not isinstance(value, (dict, list)):
                continue
            if key in STATE_REVIEW_KEYS and isinstance(value, list):
                for item in value:
                    if isinstance(item, dict) and any(marker in item for marker in STATE_REVIEW_MARKERS):
                        found.append(normalize_review_item(item))
            self._find_reviews(value, found, depth + 1)

    # ------------------------------------------------------------------
    # Strategy 3: inline "reviews": [...] fragments
    # ------------------------------------------------------------------

    def parse_json_fragments(self, html: str) -> List[RawReview]:
        raw: List[RawReview] = []
        for block in _JSON_REVIEWS_FRAGMENT_RE.findall(html):
            try:
                parsed = json.loads(block)
            except ValueError:
                continue
            if not isinstance(parsed, list):
                continue
            raw.extend(normalize_review_item(item) for item in parsed if isinstance(item, dict))
        return raw

    # ------------------------------------------------------------------
    # Merge & dedup
    # ------------------------------------------------------------------

    def clean_and_merge(self, raw: List[RawReview], seen: Optional[Set[str]] = None) -> List[Review]:
        """Drop interface noise and glue split author/text fragments together.

        Markup nesting often yields an author-only entry followed by an
        anonymous entry carrying the text; the author is held as pending and
        attached to the next real text. Three or more interleaved fragments
        can attach the wrong author. Fingerprints already in `seen` are
        skipped and emitted fingerprints are added to it.
        """
        seen = seen if seen is not None else set()
        cleaned: List[Review] = []
        pending_author: Optional[str] = None

        for entry in raw:
            text = str(entry.get("text") or "").strip()
            author = str(entry.get("author") or "").strip()

            if self.sanitizer.is_garbage(text):
                continue

            if not text:
                if author.lower() not in ANONYMOUS_NAMES:
                    pending_author = author
                continue

            if len(text) < SHORT_TEXT_LENGTH and not _SENTENCE_END_RE.search(text):
                continue

            if self.sanitizer.looks_like_code(text):
                continue

            if author.lower() in ANONYMOUS_NAMES and pending_author:
                author = pending_author
            pending_author = None

            review = Review(
                author=self.sanitizer.decode(author or ANONYMOUS_AUTHOR),
                author_status=self.sanitizer.decode(str(entry.get("authorStatus") or "")),
                author_avatar=entry.get("authorAvatar") or None,
                author_profile_url=entry.get("authorProfileUrl") or None,
                rating=normalize_rating(entry.get("rating")),
                date=str(entry.get("date") or ""),
                text=self.sanitizer.decode(text),
            )
            if review.fingerprint in seen:
                logger.debug("Skipping duplicate review by %s", review.author)
                continue
            seen.add(review.fingerprint)
            cleaned.append(review)

        return cleaned


def dedupe_reviews(reviews: List[Review], seen: Set[str]) -> List[Review]:
    """Filter out reviews whose fingerprint was already shown to the caller."""
    unique = []
    for review in reviews:
        if review.fingerprint in seen:
            continue
        seen.add(review.fingerprint)
        unique.append(review)
    return unique


_PLACEHOLDER_REVIEWS = (
    ("Anna Smirnova", "City expert, level 5", 5, 2,
     "Great service! A cosy place with a pleasant atmosphere. The coffee is excellent and the desserts are fresh."),
    ("Ivan Petrov", "Taster, level 3", 4, 5,
     "A good place overall. Tasty food and fair portions. The only downside was a fifteen minute wait for a table."),
    ("Maria Kozlova", "City expert, level 8", 5, 10,
     "The best place in the neighbourhood! We come here every weekend for the cappuccino and cheesecake."),
    ("Dmitry Volkov", "City expert, level 2", 3, 14,
     "Not bad, but there is room to improve. Average coffee, though the pastries were a pleasant surprise."),
    ("Elena Novikova", "Taster, level 6", 5, 18,
     "A wonderful place to meet friends! Wide choice of drinks and a pleasant interior."),
)


def placeholder_reviews(today: Optional[date] = None) -> List[Review]:
    """Fixed sample reviews shown when nothing could be scraped."""
    today = today or date.today()
    return [
        Review(
            author=author,
            author_status=status,
            rating=rating,
            date=(today - timedelta(days=days_ago)).isoformat(),
            text=text,
        )
        for author, status, rating, days_ago, text in _PLACEHOLDER_REVIEWS
    ]
