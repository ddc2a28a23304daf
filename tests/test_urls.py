from adlib_media.urls import (
    decode_escaped_url,
    direct_target_url,
    is_cdn_url,
    is_creative_image,
    is_excluded_image,
    is_likely_creative,
    is_video_url,
    page_library_url,
    parse_ad_id,
    strip_access_token,
)


def test_decode_escaped_url_handles_json_escapes():
    raw = "https:\\/\\/video.xx.fbcdn.net\\/v\\/a.mp4?x=1\\u0026y=2"
    assert decode_escaped_url(raw) == "https://video.xx.fbcdn.net/v/a.mp4?x=1&y=2"


def test_decode_escaped_url_unescapes_html_entities():
    assert decode_escaped_url("https://scontent.xx.fbcdn.net/a.jpg?a=1&amp;b=2") == "https://scontent.xx.fbcdn.net/a.jpg?a=1&b=2"


def test_is_cdn_url_checks_host_only():
    assert is_cdn_url("https://scontent-cdg4-1.xx.fbcdn.net/v/t39/123_n.jpg")
    assert not is_cdn_url("https://example.com/fbcdn/scontent.jpg")


def test_is_video_url_by_extension():
    assert is_video_url("https://video.xx.fbcdn.net/v/t42/abc.mp4?efg=1")
    assert not is_video_url("https://scontent.xx.fbcdn.net/v/abc.jpg")


def test_excluded_images():
    assert is_excluded_image("https://scontent.xx.fbcdn.net/v/x_s.jpg")
    assert is_excluded_image("https://scontent.xx.fbcdn.net/v/x_t.jpg")
    assert is_excluded_image("https://static.xx.fbcdn.net/images/emoji.php/v9/t4c/1f600.png")
    assert is_excluded_image("https://scontent.xx.fbcdn.net/v/profile_pic/abc_n.jpg")
    assert is_excluded_image("https://scontent.xx.fbcdn.net/avatar/abc_n.jpg")
    assert is_excluded_image("https://static.xx.fbcdn.net/rsrc.php/v3/abc.png")
    assert not is_excluded_image("https://scontent.xx.fbcdn.net/v/t39/p1080x1080/abc_n.jpg")


def test_creative_image_requires_cdn_host():
    assert is_creative_image("https://scontent.xx.fbcdn.net/v/t39/abc_n.jpg")
    assert not is_creative_image("https://example.com/abc_n.jpg")


def test_likely_creative_markers():
    assert is_likely_creative("https://scontent.xx.fbcdn.net/v/abc_n.jpg")
    assert is_likely_creative("https://scontent.xx.fbcdn.net/v/s960x960/abc.jpg")
    assert not is_likely_creative("https://scontent.xx.fbcdn.net/v/abc.jpg")


def test_page_library_url_includes_country_and_page():
    url = page_library_url(" 12345 ", "DE")
    assert url.startswith("https://www.facebook.com/ads/library/?")
    assert "country=DE" in url
    assert "view_all_page_id=12345" in url
    assert "active_status=all" in url


def test_parse_ad_id_and_direct_target_url():
    snapshot = "https://www.facebook.com/ads/archive/render_ad/?id=998877&access_token=SECRET"
    assert parse_ad_id(snapshot) == "998877"
    assert direct_target_url(snapshot) == "https://www.facebook.com/ads/library/?id=998877"
    assert parse_ad_id("https://example.com/nope") is None


def test_strip_access_token_keeps_other_params():
    stripped = strip_access_token("https://www.facebook.com/ads/archive/render_ad/?id=1&access_token=SECRET")
    assert "SECRET" not in stripped
    assert "id=1" in stripped
    assert strip_access_token("https://example.com/") == "https://example.com/"
