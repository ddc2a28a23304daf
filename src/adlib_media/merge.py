"""Caller-side merge of resolved media onto ad records.

Confidence only goes up: a result from a weaker source never overwrites media
recovered by a stronger one unless the caller forces a refresh.  Screenshots
have the lowest confidence and are always replaceable.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping

from .models import AdRecord, ExtractionSource, MediaRef, ResolvedMedia


def should_replace(current: ResolvedMedia | None, incoming: ResolvedMedia, *, force: bool = False) -> bool:
    if current is None or force:
        return True
    if current.is_screenshot and not incoming.is_screenshot:
        return True
    return incoming.confidence >= current.confidence


def merge_resolved_media(ad: AdRecord, media: ResolvedMedia | None, *, force: bool = False) -> AdRecord:
    """Return ``ad`` with ``media`` applied when allowed; the input is never mutated."""

    if media is None or not should_replace(ad.resolved_media, media, force=force):
        return ad
    return ad.with_media(media)


def merge_refreshed_ads(existing: Iterable[AdRecord], fresh: Iterable[AdRecord]) -> list[AdRecord]:
    """Adopt freshly fetched ad metadata without losing media resolved earlier.

    Order follows ``fresh``; ads that are no longer returned are dropped.
    """

    previous = {ad.id: ad.resolved_media for ad in existing if ad.resolved_media is not None}
    merged: list[AdRecord] = []
    for ad in fresh:
        kept = previous.get(ad.id)
        if kept is not None and (ad.resolved_media is None or not should_replace(kept, ad.resolved_media)):
            ad = ad.with_media(kept)
        merged.append(ad)
    return merged


def apply_batch_results(ads: Iterable[AdRecord], results: Mapping[str, MediaRef]) -> list[AdRecord]:
    """Merge a batch ``ad_id -> MediaRef`` map; ads missing from the map are unchanged."""

    out: list[AdRecord] = []
    for ad in ads:
        ref = results.get(ad.id)
        if ref is not None:
            media = ResolvedMedia(url=ref.media_url, media_type=ref.media_type, source=ExtractionSource.MANAGED_JOB)
            ad = merge_resolved_media(ad, media)
        out.append(ad)
    return out


__all__ = ["apply_batch_results", "merge_refreshed_ads", "merge_resolved_media", "should_replace"]
