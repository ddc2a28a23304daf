from adlib_media.merge import apply_batch_results, merge_refreshed_ads, merge_resolved_media, should_replace
from adlib_media.models import AdRecord, ExtractionSource, MediaRef, MediaType, ResolvedMedia

SNAP = "https://www.facebook.com/ads/archive/render_ad/?id=1"


def _media(source, media_type=MediaType.IMAGE, url="https://scontent.xx.fbcdn.net/v/a_n.jpg"):
    return ResolvedMedia(url=url, media_type=media_type, source=source)


SHOT = _media(ExtractionSource.SCREENSHOT_CAPTURE, MediaType.SCREENSHOT, "data:image/png;base64,AAA")
DOM_VIDEO = _media(ExtractionSource.DOM_VIDEO_TAG, MediaType.VIDEO, "https://video.xx.fbcdn.net/v/a.mp4")
META = _media(ExtractionSource.META_TAG_FALLBACK)


def test_screenshot_never_replaces_real_media_automatically():
    ad = AdRecord(id="1", snapshot_url=SNAP, resolved_media=DOM_VIDEO)
    assert merge_resolved_media(ad, SHOT) is ad


def test_force_allows_any_replacement():
    ad = AdRecord(id="1", snapshot_url=SNAP, resolved_media=DOM_VIDEO)
    assert merge_resolved_media(ad, SHOT, force=True).resolved_media == SHOT


def test_screenshot_is_always_replaceable():
    assert should_replace(SHOT, META)
    assert should_replace(SHOT, DOM_VIDEO)


def test_lower_confidence_is_rejected_higher_accepted():
    assert not should_replace(DOM_VIDEO, META)
    assert should_replace(META, DOM_VIDEO)
    assert should_replace(None, SHOT)


def test_merge_returns_new_record():
    ad = AdRecord(id="1", snapshot_url=SNAP)
    merged = merge_resolved_media(ad, META)
    assert merged is not ad
    assert ad.resolved_media is None
    assert merged.resolved_media == META


def test_refresh_keeps_previously_resolved_media():
    existing = [
        AdRecord(id="1", snapshot_url=SNAP, resolved_media=DOM_VIDEO),
        AdRecord(id="2", snapshot_url=SNAP),
        AdRecord(id="gone", snapshot_url=SNAP, resolved_media=META),
    ]
    fresh = [
        AdRecord(id="2", snapshot_url=SNAP, page_name="New name"),
        AdRecord(id="1", snapshot_url=SNAP, bodies=("updated copy",)),
        AdRecord(id="3", snapshot_url=SNAP),
    ]

    merged = merge_refreshed_ads(existing, fresh)

    assert [a.id for a in merged] == ["2", "1", "3"]
    assert merged[1].resolved_media == DOM_VIDEO
    assert merged[1].bodies == ("updated copy",)
    assert merged[0].resolved_media is None
    assert merged[0].page_name == "New name"


def test_apply_batch_results_uses_managed_source():
    ads = [AdRecord(id="1", snapshot_url=SNAP, resolved_media=SHOT), AdRecord(id="2", snapshot_url=SNAP)]
    results = {
        "1": MediaRef(
            media_url="https://storage.googleapis.com/b/x.mp4",
            media_type=MediaType.VIDEO,
            original_url="https://video.xx.fbcdn.net/v/a.mp4",
            durable=True,
            persisted=True,
        )
    }

    merged = apply_batch_results(ads, results)

    assert merged[0].resolved_media.source == ExtractionSource.MANAGED_JOB
    assert merged[0].resolved_media.url == "https://storage.googleapis.com/b/x.mp4"
    assert merged[1] is ads[1]
