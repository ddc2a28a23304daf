"""Object metadata attached to durable media copies."""

from __future__ import annotations

from collections import OrderedDict
from typing import OrderedDict as OrderedDictType


def build_media_metadata(
    *,
    ad_id: str,
    media_type: str,
    source: str,
    sha256: str,
    content_type: str,
    byte_size: int,
    resolver_version: str,
    original_url: str | None = None,
    page_id: str | None = None,
) -> OrderedDictType[str, str]:
    """Return metadata with deterministic key order so uploads are auditable."""

    md: OrderedDictType[str, str] = OrderedDict()
    md["ad_id"] = ad_id
    md["media_type"] = media_type
    md["source"] = source
    md["sha256"] = sha256
    md["content_type"] = content_type
    md["bytes"] = str(byte_size)
    md["resolver_version"] = resolver_version
    if page_id:
        md["page_id"] = page_id
    if original_url:
        # GCS caps custom metadata; CDN URLs with signatures can be very long.
        md["original_url"] = original_url[:1024]
    return md


__all__ = ["build_media_metadata"]
