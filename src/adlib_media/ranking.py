"""Deterministic candidate ranking.

Selection walks the tiers top-down and stops at the first tier holding at
least one usable candidate; lower tiers are never consulted after that.

    1  network-observed video (earliest observed)
    2  DOM <video> src
    3  embedded JSON video (pattern order)
    4  embedded JSON image (pattern order)
    5  network-observed image (filtered, likely-creative first, then longest URL)
    6  DOM <img> (filtered, largest rendered area)
    7  og: meta tag fallback (raw HTML only)
    8  creative container screenshot
    9  viewport screenshot

The same priorities are applied to structured job-runner records by
:func:`select_from_record`.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import replace
from typing import Any

from .models import Candidate, ExtractionSource, MediaType
from .urls import is_creative_image, is_http_url, is_likely_creative

TIER_NETWORK_VIDEO = 1
TIER_DOM_VIDEO = 2
TIER_JSON_VIDEO = 3
TIER_JSON_IMAGE = 4
TIER_NETWORK_IMAGE = 5
TIER_DOM_IMAGE = 6
TIER_META_TAG = 7
TIER_CONTAINER_SCREENSHOT = 8
TIER_VIEWPORT_SCREENSHOT = 9

DYNAMIC_DISPLAY_FORMATS = frozenset({"DCO", "DPA", "CAROUSEL", "MULTI_IMAGES"})


def candidate_tier(c: Candidate) -> int | None:
    """Map a candidate onto its tier, or ``None`` when it can never be selected."""

    src, kind = c.source, c.media_type
    if src == ExtractionSource.SCREENSHOT_CAPTURE:
        return TIER_VIEWPORT_SCREENSHOT if c.size_hint is None else TIER_CONTAINER_SCREENSHOT
    if not is_http_url(c.url):
        return None
    if src in (ExtractionSource.NETWORK_OBSERVED, ExtractionSource.NETWORK_FALLBACK):
        if kind == MediaType.VIDEO:
            return TIER_NETWORK_VIDEO
        return TIER_NETWORK_IMAGE if is_creative_image(c.url) else None
    if src == ExtractionSource.DOM_VIDEO_TAG:
        return TIER_DOM_VIDEO
    if src == ExtractionSource.DOM_EMBEDDED_JSON:
        return TIER_JSON_VIDEO if kind == MediaType.VIDEO else TIER_JSON_IMAGE
    if src == ExtractionSource.DOM_IMG_TAG:
        return TIER_DOM_IMAGE if is_creative_image(c.url) else None
    if src == ExtractionSource.META_TAG_FALLBACK:
        return TIER_META_TAG
    return None


def rank_network_images(candidates: Sequence[Candidate]) -> list[Candidate]:
    """Likely-creative URLs first; within each group the longest URL wins, observation order breaks ties."""

    indexed = list(enumerate(candidates))
    indexed.sort(key=lambda pair: (not is_likely_creative(pair[1].url), -len(pair[1].url), pair[0]))
    return [c for _, c in indexed]


def rank_dom_images(candidates: Sequence[Candidate]) -> list[Candidate]:
    indexed = list(enumerate(candidates))
    indexed.sort(key=lambda pair: (-(pair[1].size_hint or 0), pair[0]))
    return [c for _, c in indexed]


def select_candidate(candidates: Iterable[Candidate]) -> Candidate | None:
    """Pick the single winning candidate; input order is observation order."""

    tiers: dict[int, list[Candidate]] = {}
    for c in candidates:
        tier = candidate_tier(c)
        if tier is not None:
            tiers.setdefault(tier, []).append(c)
    if not tiers:
        return None

    best = min(tiers)
    pool = tiers[best]
    if best == TIER_NETWORK_IMAGE:
        winner = rank_network_images(pool)[0]
        # A network image that does not look like a full creative is a weaker signal.
        if not is_likely_creative(winner.url):
            return replace(winner, source=ExtractionSource.NETWORK_FALLBACK)
        return replace(winner, source=ExtractionSource.NETWORK_OBSERVED)
    if best == TIER_DOM_IMAGE:
        return rank_dom_images(pool)[0]
    return pool[0]


# ----------------------------
# Structured job-runner records
# ----------------------------

_VIDEO_KEYS = ("video_hd_url", "hd_src", "video_sd_url", "sd_src", "url")
_IMAGE_KEYS = ("original_image_url", "original_src", "resized_image_url", "resized_src", "url")


def _pick(entry: Any, keys: Sequence[str]) -> str | None:
    if isinstance(entry, str):
        return entry if is_http_url(entry) else None
    if isinstance(entry, Mapping):
        for key in keys:
            value = entry.get(key)
            if isinstance(value, str) and is_http_url(value):
                return value
    return None


def _first_from(entries: Any, keys: Sequence[str]) -> str | None:
    if not isinstance(entries, list):
        return None
    for entry in entries:
        url = _pick(entry, keys)
        if url:
            return url
    return None


def is_dynamic_record(record: Mapping[str, Any]) -> bool:
    """Carousel / catalog creative, decided from metadata only."""

    snapshot = record.get("snapshot") if isinstance(record.get("snapshot"), Mapping) else {}
    fmt = str(snapshot.get("display_format") or record.get("display_format") or "").upper()
    if fmt in DYNAMIC_DISPLAY_FORMATS:
        return True
    cards = snapshot.get("cards")
    return isinstance(cards, list) and len(cards) >= 2


def select_from_record(record: Mapping[str, Any]) -> tuple[str, MediaType] | None:
    """Choose ``(media_url, media_type)`` from one job-runner result record."""

    snapshot = record.get("snapshot") if isinstance(record.get("snapshot"), Mapping) else {}
    cards = snapshot.get("cards") if isinstance(snapshot.get("cards"), list) else []

    video = (
        _first_from(record.get("videos"), _VIDEO_KEYS)
        or _first_from(snapshot.get("videos"), _VIDEO_KEYS)
        or _first_from(cards, _VIDEO_KEYS[:4])
    )
    if video:
        return video, MediaType.VIDEO

    image = (
        _first_from(record.get("images"), _IMAGE_KEYS)
        or _first_from(snapshot.get("images"), _IMAGE_KEYS)
        or _first_from(cards, _IMAGE_KEYS[:4])
    )
    if image:
        return image, MediaType.DYNAMIC_IMAGE if is_dynamic_record(record) else MediaType.IMAGE
    return None


__all__ = [
    "DYNAMIC_DISPLAY_FORMATS",
    "candidate_tier",
    "is_dynamic_record",
    "rank_dom_images",
    "rank_network_images",
    "select_candidate",
    "select_from_record",
]
