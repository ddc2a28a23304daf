import pytest

from adlib_media.models import Candidate, ExtractionSource, MediaType
from adlib_media.ranking import candidate_tier, is_dynamic_record, select_candidate, select_from_record

NET = ExtractionSource.NETWORK_OBSERVED


def _net_image(url):
    return Candidate(url=url, media_type=MediaType.IMAGE, source=NET)


def _dom_image(url, area):
    return Candidate(url=url, media_type=MediaType.IMAGE, source=ExtractionSource.DOM_IMG_TAG, size_hint=area)


def _mixed_candidates():
    return [
        _net_image("https://scontent.xx.fbcdn.net/v/one_n.jpg"),
        Candidate(url="https://video.xx.fbcdn.net/v/clip.mp4", media_type=MediaType.VIDEO, source=NET),
        _net_image("https://scontent.xx.fbcdn.net/v/two.jpg"),
        _net_image("https://scontent.xx.fbcdn.net/v/p1080x1080/three_n.jpg"),
        _dom_image("https://scontent.xx.fbcdn.net/v/dom_a.jpg", 500_000),
        _dom_image("https://scontent.xx.fbcdn.net/v/dom_b.jpg", 900_000),
    ]


def test_ranking_is_deterministic_and_prefers_network_video():
    winners = {select_candidate(_mixed_candidates()) for _ in range(20)}
    assert len(winners) == 1
    (winner,) = winners
    assert winner.media_type == MediaType.VIDEO
    assert winner.url.endswith("clip.mp4")


def test_likely_creative_network_image_beats_thumbnail():
    winner = select_candidate(
        [
            _net_image("https://scontent.example.net/x_s.jpg"),
            _net_image("https://fbcdn.net/.../p1080x1080/y_n.jpg"),
        ]
    )
    assert winner.url == "https://fbcdn.net/.../p1080x1080/y_n.jpg"
    assert winner.media_type == MediaType.IMAGE
    assert winner.source == ExtractionSource.NETWORK_OBSERVED


def test_network_images_prefer_likely_creative_then_longest():
    winner = select_candidate(
        [
            _net_image("https://scontent.xx.fbcdn.net/v/aaaaaaaaaaaaaaaaaaaaaaaa.jpg"),
            _net_image("https://scontent.xx.fbcdn.net/v/b_n.jpg"),
            _net_image("https://scontent.xx.fbcdn.net/v/longer_name_n.jpg"),
        ]
    )
    assert winner.url.endswith("longer_name_n.jpg")


def test_network_image_without_creative_marker_is_a_fallback():
    winner = select_candidate([_net_image("https://scontent.xx.fbcdn.net/v/plain.jpg")])
    assert winner.source == ExtractionSource.NETWORK_FALLBACK


@pytest.mark.parametrize(
    "url",
    [
        "https://scontent.xx.fbcdn.net/v/profile_n.jpg",
        "https://scontent.xx.fbcdn.net/v/avatar_n.jpg",
        "https://scontent.xx.fbcdn.net/v/thumb_s.jpg",
        "https://static.xx.fbcdn.net/images/emoji.php/v9/1f600_n.png",
        "https://static.xx.fbcdn.net/rsrc.php/v3/icon_n.png",
        "https://external.xx.fbcdn.net/safe_image.php?url=x_n.jpg",
    ],
)
def test_filtered_images_are_never_selected_even_alone(url):
    assert select_candidate([_net_image(url)]) is None
    assert select_candidate([_dom_image(url, 10**6)]) is None


def test_dom_images_prefer_largest_area():
    winner = select_candidate(
        [
            _dom_image("https://scontent.xx.fbcdn.net/v/small.jpg", 200_000),
            _dom_image("https://scontent.xx.fbcdn.net/v/large.jpg", 800_000),
        ]
    )
    assert winner.url.endswith("large.jpg")


def test_screenshots_rank_last_and_container_beats_viewport():
    viewport = Candidate(url="data:image/png;base64,AAA", media_type=MediaType.SCREENSHOT, source=ExtractionSource.SCREENSHOT_CAPTURE)
    container = Candidate(
        url="data:image/png;base64,BBB",
        media_type=MediaType.SCREENSHOT,
        source=ExtractionSource.SCREENSHOT_CAPTURE,
        size_hint=1000,
    )
    assert candidate_tier(container) < candidate_tier(viewport)
    assert select_candidate([viewport, container]) == container
    dom = _dom_image("https://scontent.xx.fbcdn.net/v/real.jpg", 500_000)
    assert select_candidate([viewport, container, dom]) == dom


def test_non_http_candidates_are_ignored():
    assert candidate_tier(Candidate(url="blob:https://x", media_type=MediaType.VIDEO, source=NET)) is None


def test_select_from_record_prefers_video():
    record = {
        "images": [{"original_image_url": "https://scontent.xx.fbcdn.net/v/img.jpg"}],
        "snapshot": {"videos": [{"video_hd_url": "https://video.xx.fbcdn.net/hd.mp4"}]},
    }
    assert select_from_record(record) == ("https://video.xx.fbcdn.net/hd.mp4", MediaType.VIDEO)


def test_select_from_record_accepts_plain_strings_and_fallback_keys():
    assert select_from_record({"videos": ["https://video.xx.fbcdn.net/a.mp4"]}) == (
        "https://video.xx.fbcdn.net/a.mp4",
        MediaType.VIDEO,
    )
    assert select_from_record({"images": [{"resized_src": "https://scontent.xx.fbcdn.net/r.jpg"}]}) == (
        "https://scontent.xx.fbcdn.net/r.jpg",
        MediaType.IMAGE,
    )


def test_select_from_record_marks_carousels_dynamic():
    record = {
        "snapshot": {
            "display_format": "CAROUSEL",
            "cards": [
                {"original_image_url": "https://scontent.xx.fbcdn.net/c1.jpg"},
                {"original_image_url": "https://scontent.xx.fbcdn.net/c2.jpg"},
            ],
        }
    }
    assert is_dynamic_record(record)
    assert select_from_record(record) == ("https://scontent.xx.fbcdn.net/c1.jpg", MediaType.DYNAMIC_IMAGE)


def test_select_from_record_without_media():
    assert select_from_record({"id": "1", "snapshot": {"cards": []}}) is None
    assert select_from_record({"videos": [{"url": "not-a-url"}]}) is None
