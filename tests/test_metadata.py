from adlib_media.metadata import build_media_metadata


def test_build_media_metadata_includes_optional_fields_when_provided():
    md = build_media_metadata(
        ad_id="123",
        media_type="VIDEO",
        source="MANAGED_JOB",
        sha256="a" * 64,
        content_type="video/mp4",
        byte_size=2048,
        resolver_version="adlib_media:2026.10",
        original_url="https://video.xx.fbcdn.net/v/a.mp4",
        page_id="456",
    )
    assert md["media_type"] == "VIDEO"
    assert md["bytes"] == "2048"
    assert md["page_id"] == "456"
    assert md["original_url"] == "https://video.xx.fbcdn.net/v/a.mp4"
    assert list(md)[:3] == ["ad_id", "media_type", "source"]


def test_build_media_metadata_omits_optional_fields_when_absent():
    md = build_media_metadata(
        ad_id="123",
        media_type="IMAGE",
        source="MANAGED_JOB",
        sha256="b" * 64,
        content_type="image/jpeg",
        byte_size=10,
        resolver_version="adlib_media:2026.10",
    )
    assert "original_url" not in md
    assert "page_id" not in md


def test_build_media_metadata_truncates_long_urls():
    md = build_media_metadata(
        ad_id="1",
        media_type="IMAGE",
        source="MANAGED_JOB",
        sha256="c" * 64,
        content_type="image/jpeg",
        byte_size=1,
        resolver_version="v",
        original_url="https://scontent.xx.fbcdn.net/" + "x" * 5000,
    )
    assert len(md["original_url"]) == 1024
