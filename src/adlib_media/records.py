"""Field access for managed-scraper result records.

The actor's output schema has drifted over time (camelCase and snake_case
spellings, fields nested under ``snapshot``), so every accessor tries the
known spellings in order.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Mapping

UTC = getattr(datetime, "UTC", timezone.utc)


def _first(record: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        value = record.get(key)
        if value not in (None, ""):
            return value
    return None


def _snapshot(record: Mapping[str, Any]) -> Mapping[str, Any]:
    snap = record.get("snapshot")
    return snap if isinstance(snap, Mapping) else {}


def record_ad_id(record: Mapping[str, Any]) -> str | None:
    value = _first(record, "adArchiveID", "ad_archive_id", "adArchiveId", "id", "adID", "ad_id")
    return str(value) if value is not None else None


def record_page_id(record: Mapping[str, Any]) -> str | None:
    value = _first(record, "pageID", "pageId", "page_id") or _first(_snapshot(record), "page_id")
    return str(value) if value is not None else None


def record_page_name(record: Mapping[str, Any]) -> str | None:
    value = _first(record, "pageName", "page_name") or _first(_snapshot(record), "page_name")
    return str(value) if value is not None else None


def record_snapshot_url(record: Mapping[str, Any]) -> str | None:
    return _first(record, "snapshotUrl", "adSnapshotUrl", "ad_snapshot_url", "url", "linkUrl")


def record_body(record: Mapping[str, Any]) -> str | None:
    value = _first(record, "body", "text", "message")
    if value is None:
        body = _snapshot(record).get("body")
        value = body.get("text") if isinstance(body, Mapping) else body
    return str(value) if value not in (None, "") else None


def record_creation_time(record: Mapping[str, Any]) -> str | None:
    """ISO-8601 start time; the actor reports either epoch seconds or a string."""

    value = _first(record, "startDate", "start_date", "creationTime", "ad_creation_time")
    if value is None:
        return None
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, UTC).isoformat()
    return str(value)


def record_reach(record: Mapping[str, Any]) -> int | None:
    value = _first(record, "reach", "eu_total_reach", "euTotalReach")
    if isinstance(value, Mapping):
        value = value.get("lower_bound") or value.get("upper_bound")
    try:
        return int(value) if value is not None else None
    except (TypeError, ValueError):
        return None


__all__ = [
    "record_ad_id",
    "record_body",
    "record_creation_time",
    "record_page_id",
    "record_page_name",
    "record_reach",
    "record_snapshot_url",
]
