"""Core data models shared by the Yandex Maps reviews pipeline."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

ANONYMOUS_AUTHOR = "Anonymous"
FINGERPRINT_TEXT_LENGTH = 50

_WHITESPACE_RE = re.compile(r"\s+")


def _normalize_for_fingerprint(value: str) -> str:
    return _WHITESPACE_RE.sub(" ", value or "").strip().lower()


@dataclass(slots=True)
class Review:
    """A customer review that survived the garbage, code and length filters."""

    text: str
    author: str = ANONYMOUS_AUTHOR
    author_status: str = ""
    author_avatar: Optional[str] = None
    author_profile_url: Optional[str] = None
    rating: int = 5
    date: str = ""

    @property
    def fingerprint(self) -> str:
        """Approximate identity: author, date and the start of the text.

        Two distinct short reviews posted the same day by same-named authors
        collide, so this is only good enough to hide repeats across pages.
        """
        prefix = _normalize_for_fingerprint(self.text)[:FINGERPRINT_TEXT_LENGTH]
        return "|".join((_normalize_for_fingerprint(self.author), self.date.strip(), prefix))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "author": self.author,
            "authorStatus": self.author_status,
            "authorAvatar": self.author_avatar,
            "authorProfileUrl": self.author_profile_url,
            "rating": self.rating,
            "date": self.date,
            "text": self.text,
            "fingerprint": self.fingerprint,
        }


@dataclass(slots=True)
class Photo:
    url: str
    thumbnail: str

    def to_dict(self) -> Dict[str, str]:
        return {"url": self.url, "thumbnail": self.thumbnail}


@dataclass(slots=True)
class CompanyRecord:
    name: str
    logo: Optional[str] = None
    rating: float = 0.0
    reviews_count: int = 0


@dataclass(slots=True)
class ReviewsPage:
    """One scraped reviews page; `html` is kept for metadata fallbacks only."""

    reviews: List[Review] = field(default_factory=list)
    has_more_reviews: bool = False
    html: str = field(default="", repr=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "reviews": [review.to_dict() for review in self.reviews],
            "hasMoreReviews": self.has_more_reviews,
        }


@dataclass(slots=True)
class FetchResult:
    """Merged company record, reviews and gallery returned to callers."""

    company: CompanyRecord
    reviews: List[Review] = field(default_factory=list)
    photos: List[Photo] = field(default_factory=list)
    has_more_reviews: bool = False
    placeholder_reviews: bool = False
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "companyName": self.company.name,
            "companyLogo": self.company.logo,
            "rating": float(self.company.rating),
            "reviewsCount": int(self.company.reviews_count),
            "reviews": [review.to_dict() for review in self.reviews],
            "photos": [photo.to_dict() for photo in self.photos],
            "hasMoreReviews": self.has_more_reviews,
            "placeholderReviews": self.placeholder_reviews,
            "error": self.error,
        }
