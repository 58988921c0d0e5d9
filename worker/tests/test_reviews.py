import json
from datetime import date

import pytest

from yandex_reviews.etl import reviews
from yandex_reviews.etl.reviews import ReviewExtractor, normalize_review_item, placeholder_reviews
from yandex_reviews.models import Review

REVIEW_BLOCK = """
<div class="business-reviews-card-view__review">
  <div class="business-review-view">
    <div class="business-review-view__author-container">
      <div class="user-icon-view__icon" style="background-image: url(https://avatars.mds.yandex.net/get-yapic/1234/abcDEF/islands-68)"></div>
      <a href="https://yandex.ru/maps/user/ivan123/">
        <span itemprop="name">{author}</span>
      </a>
      <div class="business-review-view__author-caption">Знаток города 4 уровня</div>
    </div>
    <meta itemprop="datePublished" content="{date}"/>
    <div class="business-rating-badge-view__stars" aria-label="Оценка {rating} Из 5">
      <span class="business-rating-badge-view__star _full"></span>
    </div>
    <div class="business-review-view__body">
      <div itemprop="reviewBody">{text}</div>
    </div>
  </div>
</div>
"""


def _page(*blocks, head=""):
    return f"<html><head>{head}</head><body><div class='business-reviews-card-view'>{''.join(blocks)}</div></body></html>"


def _block(author="Иван Петров", date="2024-05-01T10:00:00.000Z", rating=4, text="Отличное место, очень вкусный кофе!"):
    return REVIEW_BLOCK.format(author=author, date=date, rating=rating, text=text)


@pytest.fixture
def extractor():
    return ReviewExtractor()


def test_parse_review_blocks_extracts_all_fields(extractor):
    raw = extractor.parse_review_blocks(_page(_block()))

    assert raw == [
        {
            "author": "Иван Петров",
            "authorStatus": "Знаток города 4 уровня",
            "authorAvatar": "https://avatars.mds.yandex.net/get-yapic/1234/abcDEF/islands-68",
            "authorProfileUrl": "https://yandex.ru/maps/user/ivan123/",
            "rating": 4,
            "date": "2024-05-01T10:00:00.000Z",
            "text": "Отличное место, очень вкусный кофе!",
        }
    ]


def test_parse_review_blocks_counts_filled_stars_without_aria_label(extractor):
    html = _page(
        """
        <div class="business-reviews-card-view__review">
          <span itemprop="name">Анна</span>
          <span class="business-rating-badge-view__star _full"></span>
          <span class="business-rating-badge-view__star _full"></span>
          <span class="business-rating-badge-view__star _full"></span>
          <span class="business-rating-badge-view__star _empty"></span>
          <div class="business-review-view__body-text">Неплохо, но могло быть лучше.</div>
        </div>
        """
    )
    [entry] = extractor.parse_review_blocks(html)
    assert entry["rating"] == 3
    assert entry["text"] == "Неплохо, но могло быть лучше."
    assert entry["authorAvatar"] is None


def test_parse_review_blocks_text_fallback_chain(extractor):
    spoiler = _page(
        """
        <div class="business-reviews-card-view__review">
          <div class="spoiler-view__text">Очень длинный отзыв, который был свёрнут под спойлер.</div>
        </div>
        """
    )
    longest = _page(
        """
        <div class="business-reviews-card-view__review">
          <span>Подписаться</span>
          <p>Коротко.</p>
          <p>Этот абзац достаточно длинный, чтобы стать текстом отзыва по эвристике.</p>
        </div>
        """
    )

    assert extractor.parse_review_blocks(spoiler)[0]["text"] == "Очень длинный отзыв, который был свёрнут под спойлер."
    [entry] = extractor.parse_review_blocks(longest)
    assert entry["text"] == "Этот абзац достаточно длинный, чтобы стать текстом отзыва по эвристике."
    assert entry["author"] == "Anonymous"
    assert entry["rating"] == 5


def test_parse_review_blocks_skips_short_and_script_text(extractor):
    html = _page(
        _block(text="Ок"),
        _block(text='{"config": {"hosts": {"api": "x"}}}'),
        head='<script>var reviews = "Этот скрипт не должен стать отзывом ни при каких условиях";</script>',
    )
    assert extractor.parse_review_blocks(html) == []


def test_parse_initial_state_walks_nested_objects(extractor):
    state = {
        "stack": [
            {
                "business": {
                    "reviews": {
                        "items": [
                            {
                                "author": {"name": "Мария", "avatarUrl": "https://avatars.mds.yandex.net/get-yapic/1/a/{size}"},
                                "rating": 5,
                                "text": "Лучшее место в районе!",
                                "updatedAt": "2024-04-02",
                            },
                            {"unrelated": True},
                        ]
                    }
                }
            }
        ]
    }
    html = f"<html><script>window.__INITIAL_STATE__ = {json.dumps(state, ensure_ascii=False)};</script></html>"

    raw = extractor.parse_initial_state(html)

    assert len(raw) == 1
    assert raw[0]["author"] == "Мария"
    assert raw[0]["authorAvatar"] == "https://avatars.mds.yandex.net/get-yapic/1/a/islands-68"
    assert raw[0]["date"] == "2024-04-02"


def test_parse_initial_state_depth_is_bounded(extractor):
    node = {"reviews": [{"text": "Слишком глубоко спрятанный отзыв."}]}
    for _ in range(15):
        node = {"level": node}
    html = f"<script>window.__INITIAL_STATE__ = {json.dumps(node, ensure_ascii=False)};</script>"
    assert extractor.parse_initial_state(html) == []


def test_parse_json_fragments_skips_invalid_blocks(extractor):
    html = (
        '<script>var a = {"reviews": [{"comment": "Хорошее обслуживание, вернусь ещё.", "stars": 4}], "x": 1};'
        'var b = {"reviews": [not json], "y": 2};</script>'
    )
    raw = extractor.parse_json_fragments(html)
    assert len(raw) == 1
    assert raw[0]["text"] == "Хорошее обслуживание, вернусь ещё."
    assert raw[0]["rating"] == 4


def test_extract_raw_reviews_prefers_first_non_empty_strategy(extractor):
    html = _page(_block(text="Отзыв из разметки страницы, он главный."))
    html += '<script>var s = {"reviews": [{"text": "Отзыв из JSON-фрагмента, запасной."}]};</script>'

    raw = extractor.extract_raw_reviews(html)

    assert [entry["text"] for entry in raw] == ["Отзыв из разметки страницы, он главный."]


def test_extract_raw_reviews_falls_back_to_fragments(extractor):
    html = '<html><script>var s = {"reviews": [{"text": "Отзыв из JSON-фрагмента, запасной."}]};</script></html>'
    raw = extractor.extract_raw_reviews(html)
    assert [entry["text"] for entry in raw] == ["Отзыв из JSON-фрагмента, запасной."]


def test_normalize_review_item_maps_field_variants():
    item = {
        "author": {"displayName": "Olga", "status": "Guru", "publicProfileUrl": "https://yandex.ru/maps/user/olga/"},
        "score": "3",
        "createdAt": "2024-01-01",
        "body": "Fine place.",
    }
    assert normalize_review_item(item) == {
        "author": "Olga",
        "authorStatus": "Guru",
        "authorAvatar": None,
        "authorProfileUrl": "https://yandex.ru/maps/user/olga/",
        "rating": 3,
        "date": "2024-01-01",
        "text": "Fine place.",
    }
    assert normalize_review_item({"author": "Plain Name", "text": "Text"})["author"] == "Plain Name"
    assert normalize_review_item({"text": "Text"})["author"] == "Anonymous"


def test_clean_and_merge_attaches_pending_author(extractor):
    merged = extractor.clean_and_merge(
        [
            {"author": "X", "text": ""},
            {"author": "Anonymous", "text": "Great coffee!!"},
        ]
    )
    assert len(merged) == 1
    assert merged[0].author == "X"
    assert merged[0].text == "Great coffee!!"


def test_clean_and_merge_drops_noise_and_keeps_pending_author(extractor):
    merged = extractor.clean_and_merge(
        [
            {"author": "Елена", "text": ""},
            {"author": "Anonymous", "text": "Подписаться"},
            {"author": "Anonymous", "text": "88%"},
            {"author": "Аноним", "text": "Замечательное место для встреч с друзьями"},
            {"author": "Anonymous", "text": "Ещё отзыв без автора, длинный достаточно."},
            {"author": "Anonymous", "text": "Кнопка"},
            {"author": "Anonymous", "text": "var x = {a: 1}; window.foo()"},
        ]
    )

    assert [(review.author, review.text) for review in merged] == [
        ("Елена", "Замечательное место для встреч с друзьями"),
        ("Anonymous", "Ещё отзыв без автора, длинный достаточно."),
    ]
    assert all(review.text not in {"Подписаться", "88%"} for review in merged)


def test_clean_and_merge_decodes_entities_and_normalizes_rating(extractor):
    [review] = extractor.clean_and_merge(
        [{"author": "Tom &amp; Jerry", "authorStatus": "Level&nbsp;2", "text": "Fish &amp; chips were great.", "rating": 0}]
    )
    assert review.author == "Tom & Jerry"
    assert review.author_status == "Level\xa02"
    assert review.text == "Fish & chips were great."
    assert review.rating == 5


def test_clean_and_merge_deduplicates_with_seen_fingerprints(extractor):
    entry = {"author": "Иван", "date": "2024-05-01", "text": "Отличное место, очень вкусный кофе!"}
    seen = set()

    first = extractor.clean_and_merge([entry, dict(entry, text="Отличное  место, очень вкусный кофе!")], seen=seen)
    second = extractor.clean_and_merge([entry], seen=seen)

    assert len(first) == 1
    assert second == []
    assert first[0].fingerprint in seen


def test_dedupe_reviews_filters_known_fingerprints():
    known = Review(author="A", date="2024-01-01", text="Same text here, repeated across pages.")
    fresh = Review(author="B", date="2024-01-02", text="A different review entirely.")
    seen = {known.fingerprint}

    assert reviews.dedupe_reviews([known, fresh], seen) == [fresh]
    assert fresh.fingerprint in seen


def test_placeholder_reviews_are_dated_relative_to_today():
    sample = placeholder_reviews(today=date(2024, 6, 20))
    assert len(sample) == 5
    assert sample[0].date == "2024-06-18"
    assert all(1 <= review.rating <= 5 and review.text for review in sample)
