"""URL helpers for Meta ad snapshots and CDN media."""

from __future__ import annotations

import html
import re
import urllib.parse

AD_LIBRARY_BASE = "https://www.facebook.com/ads/library/"
CDN_HOST_MARKERS = ("fbcdn", "scontent")
VIDEO_EXTENSIONS = (".mp4", ".webm", ".mov", ".m4v", ".m3u8")

THUMBNAIL_MARKERS = ("_s.", "_t.")
PROFILE_MARKERS = ("profile", "avatar")
UI_CHROME_MARKERS = ("rsrc.php", "safe_image", "platform/", "ads/image/")
# Path segments or suffixes that usually mean a full-resolution creative.
LIKELY_CREATIVE_MARKERS = ("_n.", "_o.", "p720x720", "p960x960", "p1080x", "s960x")

_UNICODE_ESCAPE_RE = re.compile(r"\\u([0-9a-fA-F]{4})")
_AD_ID_RE = re.compile(r"[?&]id=(\d+)")


def decode_escaped_url(raw: str) -> str:
    """Undo JSON-in-HTML escaping: ``\\/``, ``\\u0026`` style escapes, stray backslashes, entities."""

    if not raw:
        return raw
    out = raw.replace("\\/", "/")
    out = _UNICODE_ESCAPE_RE.sub(lambda m: chr(int(m.group(1), 16)), out)
    out = out.replace("\\", "")
    return html.unescape(out)


def is_http_url(url: str | None) -> bool:
    return bool(url) and url.startswith(("http://", "https://"))


def is_cdn_url(url: str) -> bool:
    host = (urllib.parse.urlparse(url).netloc or "").lower()
    return any(marker in host for marker in CDN_HOST_MARKERS)


def is_video_url(url: str) -> bool:
    path = (urllib.parse.urlparse(url).path or "").lower()
    return any(ext in path for ext in VIDEO_EXTENSIONS)


def is_excluded_image(url: str) -> bool:
    """True for thumbnails, emoji, avatars and platform UI assets."""

    lowered = url.lower()
    if any(marker in url for marker in THUMBNAIL_MARKERS):
        return True
    if "emoji" in lowered:
        return True
    if any(marker in lowered for marker in PROFILE_MARKERS):
        return True
    return any(marker in lowered for marker in UI_CHROME_MARKERS)


def is_creative_image(url: str) -> bool:
    """CDN-hosted image that survives every exclusion filter."""

    return is_http_url(url) and is_cdn_url(url) and not is_excluded_image(url)


def is_likely_creative(url: str) -> bool:
    return any(marker in url for marker in LIKELY_CREATIVE_MARKERS)


def page_library_url(page_id: str, country: str = "FR") -> str:
    """Ad Library listing for every ad run by one page."""

    query = urllib.parse.urlencode(
        {
            "active_status": "all",
            "ad_type": "all",
            "country": country,
            "view_all_page_id": page_id.strip(),
        }
    )
    return f"{AD_LIBRARY_BASE}?{query}"


def ad_library_url(ad_id: str) -> str:
    return f"{AD_LIBRARY_BASE}?{urllib.parse.urlencode({'id': ad_id.strip()})}"


def parse_ad_id(snapshot_url: str) -> str | None:
    try:
        match = _AD_ID_RE.search(snapshot_url or "")
        return match.group(1) if match else None
    except Exception:
        return None


def strip_access_token(snapshot_url: str) -> str:
    """Drop the ``access_token`` the Graph API embeds in snapshot URLs before logging or sharing them."""

    parsed = urllib.parse.urlparse(snapshot_url)
    if not parsed.query:
        return snapshot_url
    qs = [(k, v) for k, v in urllib.parse.parse_qsl(parsed.query, keep_blank_values=True) if k != "access_token"]
    return urllib.parse.urlunparse(parsed._replace(query=urllib.parse.urlencode(qs)))


def direct_target_url(snapshot_url: str) -> str:
    """Address a single ad for the job runner: the public library URL when the id is known."""

    ad_id = parse_ad_id(snapshot_url)
    return ad_library_url(ad_id) if ad_id else strip_access_token(snapshot_url)


__all__ = [
    "AD_LIBRARY_BASE",
    "CDN_HOST_MARKERS",
    "LIKELY_CREATIVE_MARKERS",
    "VIDEO_EXTENSIONS",
    "ad_library_url",
    "decode_escaped_url",
    "direct_target_url",
    "is_cdn_url",
    "is_creative_image",
    "is_excluded_image",
    "is_http_url",
    "is_likely_creative",
    "is_video_url",
    "page_library_url",
    "parse_ad_id",
    "strip_access_token",
]
