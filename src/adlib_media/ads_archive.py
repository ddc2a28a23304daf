"""Thin client for the Graph API ``ads_archive`` endpoint.

Only what the media engine needs: paged ad metadata for one page, plus a
cheap token check.  Resolution itself never calls this module.
"""

from __future__ import annotations

import asyncio
from datetime import date, datetime, timedelta, timezone
from typing import Any, Mapping

import requests

from .config import sanitize_token
from .errors import CredentialInvalid, MediaResolutionError
from .logging import jlog
from .models import AdRecord

UTC = getattr(datetime, "UTC", timezone.utc)

GRAPH_BASE_URL = "https://graph.facebook.com/v19.0"
MAX_ADS = 1500
PAGE_LIMIT = 100
LOOKBACK_DAYS = 90
EXPIRED_TOKEN_CODE = 190
SERVICE = "ads archive"

AD_FIELDS = (
    "id",
    "ad_creation_time",
    "ad_delivery_start_time",
    "ad_delivery_stop_time",
    "ad_creative_bodies",
    "ad_snapshot_url",
    "page_id",
    "page_name",
    "publisher_platforms",
    "eu_total_reach",
)


class AdsArchiveError(MediaResolutionError):
    """The metadata source rejected a request for a reason other than the credential."""


def _parse_time(raw: Any) -> datetime | None:
    if not raw:
        return None
    text = str(raw).strip()
    if len(text) >= 5 and text[-5] in "+-" and text[-4:].isdigit():
        text = f"{text[:-2]}:{text[-2:]}"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)


def parse_ad(raw: Mapping[str, Any]) -> AdRecord:
    """Map one ``ads_archive`` entry onto an :class:`AdRecord`."""

    bodies = raw.get("ad_creative_bodies") or ()
    return AdRecord(
        id=str(raw["id"]),
        snapshot_url=str(raw.get("ad_snapshot_url") or ""),
        creation_time=_parse_time(raw.get("ad_creation_time") or raw.get("ad_delivery_start_time")),
        stop_time=_parse_time(raw.get("ad_delivery_stop_time")),
        page_id=str(raw["page_id"]) if raw.get("page_id") else None,
        page_name=raw.get("page_name"),
        bodies=tuple(str(b) for b in bodies if b),
    )


def _error_payload(resp: requests.Response) -> Mapping[str, Any]:
    try:
        body = resp.json()
    except ValueError:
        return {}
    err = body.get("error") if isinstance(body, Mapping) else None
    return err if isinstance(err, Mapping) else {}


def _is_credential_error(resp: requests.Response, err: Mapping[str, Any]) -> bool:
    return resp.status_code == 401 or err.get("code") == EXPIRED_TOKEN_CODE


class AdsArchiveClient:
    def __init__(
        self,
        *,
        base_url: str = GRAPH_BASE_URL,
        timeout_s: float = 15.0,
        max_ads: int = MAX_ADS,
        session: requests.Session | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout_s = timeout_s
        self.max_ads = max_ads
        self.session = session or requests.Session()

    def _first_page_params(self, page_id: str, token: str, country: str, since: date) -> dict[str, str]:
        return {
            "access_token": token,
            "search_page_ids": page_id,
            "ad_active_status": "ALL",
            "ad_reached_countries": f"['{country}']",
            "ad_delivery_date_min": since.isoformat(),
            "fields": ",".join(AD_FIELDS),
            "limit": str(PAGE_LIMIT),
        }

    def fetch_ads_sync(
        self,
        page_id: str,
        token: str,
        country: str = "FR",
        *,
        today: date | None = None,
    ) -> list[AdRecord]:
        clean_token = sanitize_token(token)
        clean_page = (page_id or "").strip()
        if not clean_page or not clean_token:
            raise ValueError("page id and access token are required")

        since = (today or datetime.now(UTC).date()) - timedelta(days=LOOKBACK_DAYS)
        url: str | None = f"{self.base_url}/ads_archive"
        params: dict[str, str] | None = self._first_page_params(clean_page, clean_token, country, since)
        ads: list[AdRecord] = []
        pages = 0
        while url:
            resp = self.session.get(url, params=params, timeout=self.timeout_s)
            pages += 1
            if resp.status_code != 200:
                err = _error_payload(resp)
                if _is_credential_error(resp, err):
                    raise CredentialInvalid(SERVICE, err.get("message"))
                message = err.get("message") or err.get("error_user_title") or f"HTTP {resp.status_code}"
                if ads:
                    jlog("warning", event="ads_archive_partial", page_id=clean_page, ads=len(ads), error=message)
                    return ads
                raise AdsArchiveError(f"ads_archive request failed: {message}")

            body = resp.json()
            ads.extend(parse_ad(item) for item in body.get("data") or [] if item.get("id"))
            next_url = (body.get("paging") or {}).get("next")
            url, params = (next_url, None) if next_url and len(ads) < self.max_ads else (None, None)

        jlog("info", event="ads_archive_fetched", page_id=clean_page, ads=len(ads), pages=pages)
        return ads[: self.max_ads]

    async def fetch_ads(self, page_id: str, token: str, country: str = "FR") -> list[AdRecord]:
        return await asyncio.to_thread(self.fetch_ads_sync, page_id, token, country)

    def validate_token(self, token: str, country: str = "FR") -> bool:
        """One-ad probe; False for any rejection or network error."""

        clean_token = sanitize_token(token)
        if not clean_token:
            return False
        try:
            resp = self.session.get(
                f"{self.base_url}/ads_archive",
                params={
                    "access_token": clean_token,
                    "search_terms": "test",
                    "ad_active_status": "ACTIVE",
                    "ad_reached_countries": f"['{country}']",
                    "limit": "1",
                },
                timeout=self.timeout_s,
            )
        except requests.RequestException as exc:
            jlog("warning", event="ads_archive_token_probe_error", error=str(exc)[:200])
            return False
        if resp.status_code != 200:
            jlog("warning", event="ads_archive_token_rejected", status=resp.status_code, error=_error_payload(resp).get("message"))
            return False
        return True


__all__ = ["AD_FIELDS", "AdsArchiveClient", "AdsArchiveError", "MAX_ADS", "parse_ad"]
