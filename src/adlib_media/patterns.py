"""Pure text -> candidate extraction for snapshot markup.

Nothing here touches the network or a browser.  The headless strategy feeds
the text of rendered ``<script>`` blobs through :func:`embedded_json_candidates`;
the proxy strategy feeds the raw page HTML through :func:`scan_html`.  Target
markup changes are the main source of regressions, so every pattern is
exercised directly in ``tests/test_patterns.py``.
"""

from __future__ import annotations

import re
from collections.abc import Iterable

from .models import Candidate, ExtractionSource, MediaType
from .urls import decode_escaped_url, is_cdn_url, is_http_url

# Order matters: the first pattern that matches wins within its tier.
VIDEO_JSON_PATTERNS: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("video_hd_url", re.compile(r'"video_hd_url"\s*:\s*"(https:[^"]+?\.mp4[^"]*)"')),
    ("playable_url", re.compile(r'"playable_url"\s*:\s*"(https:[^"]+?\.mp4[^"]*)"')),
    ("playable_url_quality_hd", re.compile(r'"playable_url_quality_hd"\s*:\s*"(https:[^"]+?\.mp4[^"]*)"')),
)
IMAGE_JSON_PATTERNS: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("original_image_url", re.compile(r'"original_image_url"\s*:\s*"(https:[^"]+?(?:jpg|jpeg|png|webp)[^"]*)"')),
    ("image_url", re.compile(r'"image_url"\s*:\s*"(https:[^"]+?(?:jpg|jpeg|png|webp)[^"]*)"')),
    ("uri", re.compile(r'"uri"\s*:\s*"(https:[^"]+?(?:jpg|jpeg|png|webp)[^"]*fbcdn[^"]*)"')),
)

_META_TAG_RE = re.compile(r"<meta\b[^>]*>", re.IGNORECASE)
_META_PROP_RE = re.compile(r'(?:property|name)\s*=\s*["\']([^"\']+)["\']', re.IGNORECASE)
_META_CONTENT_RE = re.compile(r'content\s*=\s*["\']([^"\']+)["\']', re.IGNORECASE)
_VIDEO_TAG_SRC_RE = re.compile(r"<(?:video|source)\b[^>]*?\bsrc\s*=\s*[\"']([^\"']+)[\"']", re.IGNORECASE)

META_VIDEO_PROPS = ("og:video:secure_url", "og:video:url", "og:video")
META_IMAGE_PROPS = ("og:image:secure_url", "og:image")


def _first_match(text: str, pattern: re.Pattern[str]) -> str | None:
    for match in pattern.finditer(text):
        url = decode_escaped_url(match.group(1))
        if url.startswith("https"):
            return url
    return None


def embedded_json_candidates(texts: Iterable[str] | str) -> list[Candidate]:
    """Video candidates (in pattern order) followed by image candidates.

    ``texts`` is one blob or a sequence of ``<script>`` bodies; the blobs are
    searched in document order for each pattern.
    """

    blobs = [texts] if isinstance(texts, str) else [t for t in texts if t]
    found: list[Candidate] = []
    seen: set[str] = set()
    for media_type, patterns in ((MediaType.VIDEO, VIDEO_JSON_PATTERNS), (MediaType.IMAGE, IMAGE_JSON_PATTERNS)):
        for _key, pattern in patterns:
            for blob in blobs:
                url = _first_match(blob, pattern)
                if not url:
                    continue
                if media_type == MediaType.IMAGE and "fbcdn" not in url:
                    continue
                if url not in seen:
                    seen.add(url)
                    found.append(Candidate(url=url, media_type=media_type, source=ExtractionSource.DOM_EMBEDDED_JSON))
                break
    return found


def video_tag_candidates(html_text: str) -> list[Candidate]:
    out: list[Candidate] = []
    for match in _VIDEO_TAG_SRC_RE.finditer(html_text or ""):
        url = decode_escaped_url(match.group(1))
        if is_http_url(url):
            out.append(Candidate(url=url, media_type=MediaType.VIDEO, source=ExtractionSource.DOM_VIDEO_TAG))
    return out


def meta_tag_candidates(html_text: str) -> list[Candidate]:
    """``og:video`` / ``og:image`` tags, video first."""

    props: dict[str, str] = {}
    for tag in _META_TAG_RE.findall(html_text or ""):
        prop = _META_PROP_RE.search(tag)
        content = _META_CONTENT_RE.search(tag)
        if prop and content:
            props.setdefault(prop.group(1).lower(), decode_escaped_url(content.group(1)))

    out: list[Candidate] = []
    for key in META_VIDEO_PROPS:
        url = props.get(key)
        if is_http_url(url):
            out.append(Candidate(url=url, media_type=MediaType.VIDEO, source=ExtractionSource.META_TAG_FALLBACK))
            break
    for key in META_IMAGE_PROPS:
        url = props.get(key)
        if is_http_url(url) and is_cdn_url(url):
            out.append(Candidate(url=url, media_type=MediaType.IMAGE, source=ExtractionSource.META_TAG_FALLBACK))
            break
    return out


def scan_html(html_text: str) -> list[Candidate]:
    """Everything recoverable from raw, un-rendered HTML."""

    if not html_text:
        return []
    return video_tag_candidates(html_text) + embedded_json_candidates(html_text) + meta_tag_candidates(html_text)


__all__ = [
    "IMAGE_JSON_PATTERNS",
    "VIDEO_JSON_PATTERNS",
    "embedded_json_candidates",
    "meta_tag_candidates",
    "scan_html",
    "video_tag_candidates",
]
