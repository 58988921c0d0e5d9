import json

from yandex_reviews.etl import media
from yandex_reviews.models import Photo

ALTAY = "https://avatars.mds.yandex.net/get-altay/{n}/{hash}"


def _altay(n, suffix="M"):
    return f"{ALTAY.format(n=n, hash=format(n, 'x') * 4)}/{suffix}"


def test_extract_base_url_strips_size_suffix():
    assert media.extract_base_url("https://avatars.mds.yandex.net/get-altay/123/abc123/XXL_height") == (
        "https://avatars.mds.yandex.net/get-altay/123/abc123"
    )


def test_extract_photos_dedupes_preserves_order_and_caps():
    urls = [_altay(n) for n in range(10, 20)]
    html = (
        f'<img src="{urls[1]}"><img src="{urls[0]}"><img src="{urls[1].replace("/M", "/XXL_height")}">'
        + "".join(f'<img src="{url}">' for url in urls[2:])
        + '<img src="https://avatars.mds.yandex.net/get-yandex-maps-reviews/999/ffff/S_height">'
    )

    photos = media.extract_photos(html, max_photos=5)

    assert len(photos) == 6
    assert photos[0] == Photo(
        url=media.extract_base_url(urls[1]) + "/XXL_height",
        thumbnail=media.extract_base_url(urls[1]) + "/M",
    )
    assert photos[1].url.startswith(media.extract_base_url(urls[0]))


def test_extract_photos_includes_review_photos():
    html = '<img src="https://avatars.mds.yandex.net/get-yandex-maps-reviews/999/ffff/S_height">'
    assert media.extract_photos(html) == [
        Photo(
            url="https://avatars.mds.yandex.net/get-yandex-maps-reviews/999/ffff/XXL_height",
            thumbnail="https://avatars.mds.yandex.net/get-yandex-maps-reviews/999/ffff/M",
        )
    ]


def test_logo_prefers_tycoon_cdn():
    html = (
        '<div class="card-title-view__logo" style="background-image: url(https://avatars.mds.yandex.net/get-altay/1/aa/S)"></div>'
        '<script>{"logo":"https://avatars.mds.yandex.net/get-tycoon/555/abc123/orig"}</script>'
    )
    assert media.extract_company_logo(html) == "https://avatars.mds.yandex.net/get-tycoon/555/abc123/orig"


def test_logo_from_styled_element_and_descendant():
    same = '<div class="business-card-view__logo" style="background-image: url(\'https://avatars.mds.yandex.net/get-altay/1/aa/S\')"></div>'
    nested = (
        '<div class="orgpage-header-view__logo-image"><div class="img" '
        'style="background-image: url(https://avatars.mds.yandex.net/get-altay/2/bb/S)"></div></div>'
    )
    assert media.extract_company_logo(same) == "https://avatars.mds.yandex.net/get-altay/1/aa/S"
    assert media.extract_company_logo(nested) == "https://avatars.mds.yandex.net/get-altay/2/bb/S"


def test_logo_rejects_discovery_thumbnails_and_falls_through():
    html = (
        '<div class="card-title-view__logo" style="background-image: url(https://avatars.mds.yandex.net/get-discovery-int/1/aa/XXS)"></div>'
        '<img class="orgpage-logo" src="https://avatars.mds.yandex.net/get-altay/3/cc/S">'
    )
    assert media.extract_company_logo(html) == "https://avatars.mds.yandex.net/get-altay/3/cc/S"


def test_logo_from_initial_state_and_inline_json():
    state = {"business": {"logotype": {"urlTemplate": "https://avatars.mds.yandex.net/get-altay/4/dd/%%"}}}
    state_html = f"<script>window.__INITIAL_STATE__ = {json.dumps(state)};</script>"
    inline_html = '<script>var x = {"logoUrl": "https:\\/\\/avatars.mds.yandex.net\\/get-altay\\/5\\/ee\\/{size}"};</script>'

    assert media.extract_company_logo(state_html) == "https://avatars.mds.yandex.net/get-altay/4/dd/islands-68"
    assert media.extract_company_logo(inline_html) == "https://avatars.mds.yandex.net/get-altay/5/ee/islands-68"


def test_logo_never_uses_og_image():
    html = '<meta property="og:image" content="https://avatars.mds.yandex.net/get-altay/6/ff/XXL">'
    assert media.extract_company_logo(html) is None


def test_remove_logo_from_gallery_matches_base_path():
    photos = [
        Photo(url="https://x/get-altay/1/aa/XXL_height", thumbnail="https://x/get-altay/1/aa/M"),
        Photo(url="https://x/get-altay/2/bb/XXL_height", thumbnail="https://x/get-altay/2/bb/M"),
    ]
    assert media.remove_logo_from_gallery(photos, "https://x/get-altay/1/aa/islands-68") == photos[1:]
    assert media.remove_logo_from_gallery(photos, None) == photos


def test_is_valid_logo_url():
    assert media.is_valid_logo_url("https://avatars.mds.yandex.net/get-altay/1/aa/S")
    assert not media.is_valid_logo_url("https://avatars.mds.yandex.net/get-discovery/1/aa/S")
    assert not media.is_valid_logo_url("javascript:alert(1)")
    assert not media.is_valid_logo_url("https://example.com/" + "a" * 600)
