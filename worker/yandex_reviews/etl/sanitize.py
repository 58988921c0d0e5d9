"""Text cleanup and noise detection for scraped review content."""

from __future__ import annotations

import html
import re
from dataclasses import dataclass
from typing import FrozenSet, Pattern, Tuple

from bs4 import BeautifulSoup

# Interface strings that leak into scraped review lists.
GARBAGE_TEXTS: FrozenSet[str] = frozenset(
    {
        "подписаться",
        "оцените это место",
        "показать ещё",
        "показать еще",
        "ещё",
        "скопировать",
        "ответить",
        "пожаловаться",
        "полезно",
        "не полезно",
        "комментировать",
        "читать далее",
        "свернуть",
        "загрузить ещё",
        "subscribe",
        "rate this place",
        "show more",
        "more",
        "copy",
        "reply",
        "report",
        "helpful",
        "not helpful",
        "comment",
        "read more",
        "collapse",
        "load more",
    }
)

CODE_PREFIXES: Tuple[str, ...] = (
    "var ",
    "let ",
    "const ",
    "function ",
    "window.",
    '"config"',
    '"requestId"',
    '"csrfToken"',
    '"hosts"',
    '"apikey"',
)

_WHITESPACE_RE = re.compile(r"\s+")
_SPECIAL_CHARS_RE = re.compile(r'[{}\[\]":<>\\]')
_TEMPLATE_TOKEN_RE = re.compile(r"\{\{[a-zA-Z]+\}\}")


@dataclass(frozen=True)
class NoiseConfig:
    """Static noise lists and thresholds used by `TextSanitizer`."""

    garbage_texts: FrozenSet[str] = GARBAGE_TEXTS
    code_prefixes: Tuple[str, ...] = CODE_PREFIXES
    # "Еда • 88%", "Service · 92%"
    badge_pattern: Pattern[str] = re.compile(r"^\w+\s*[•·]\s*\d+%$", re.IGNORECASE)
    punctuation_only_pattern: Pattern[str] = re.compile(r"^[\d\s%•·.,]+$")
    special_char_ratio: float = 0.15
    special_char_min_length: int = 50
    min_review_length: int = 10


DEFAULT_NOISE = NoiseConfig()


class TextSanitizer:
    """Strip markup and reject interface noise or leaked script text."""

    def __init__(self, noise: NoiseConfig = DEFAULT_NOISE) -> None:
        self.noise = noise
        self._code_prefix_re = re.compile(
            "^(?:" + "|".join(re.escape(prefix) for prefix in noise.code_prefixes) + ")",
            re.IGNORECASE,
        )

    @property
    def min_review_length(self) -> int:
        return self.noise.min_review_length

    @staticmethod
    def decode(text: str) -> str:
        return html.unescape(text or "")

    @staticmethod
    def collapse_whitespace(text: str) -> str:
        return _WHITESPACE_RE.sub(" ", text or "").strip()

    def clean_html(self, fragment: str) -> str:
        """Drop tags, decode entities and normalise whitespace."""
        if not fragment:
            return ""
        text = BeautifulSoup(fragment, "html.parser").get_text(" ")
        return self.collapse_whitespace(self.decode(text))

    def is_garbage(self, text: str) -> bool:
        lowered = (text or "").strip().lower()
        if lowered in self.noise.garbage_texts:
            return True
        if self.noise.badge_pattern.match(lowered):
            return True
        if self.noise.punctuation_only_pattern.match(lowered):
            return True
        return False

    def looks_like_code(self, text: str) -> bool:
        """Detect JSON, JavaScript or template text that escaped into content."""
        trimmed = (text or "").lstrip()
        if trimmed[:1] in {"{", "["}:
            return True
        if self._code_prefix_re.match(trimmed):
            return True

        total = len(text or "")
        if total > self.noise.special_char_min_length:
            special = len(_SPECIAL_CHARS_RE.findall(text))
            if special / total > self.noise.special_char_ratio:
                return True

        return bool(_TEMPLATE_TOKEN_RE.search(text or ""))
