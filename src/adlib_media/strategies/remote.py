"""Delegate extraction to a remote extractor service over HTTP.

The service (a long-lived local backend or a serverless function) exposes
``GET /health`` and ``POST /api/extract {"url": ...}`` and answers with
``{"type", "url", "source"}`` or 404 when it found nothing.
"""

from __future__ import annotations

import asyncio
from typing import Any

import requests

from ..errors import NoCandidateFound, Unreachable
from ..models import ExtractionSource, MediaType, Success
from ..urls import is_http_url
from .base import ExtractionStrategy

SOURCE_LABELS: dict[str, ExtractionSource] = {
    "NETWORK": ExtractionSource.NETWORK_OBSERVED,
    "NETWORK_FALLBACK": ExtractionSource.NETWORK_FALLBACK,
    "DOM": ExtractionSource.DOM_EMBEDDED_JSON,
    "DOM_VIDEO": ExtractionSource.DOM_VIDEO_TAG,
    "DOM_JSON_VIDEO": ExtractionSource.DOM_EMBEDDED_JSON,
    "DOM_JSON_IMAGE": ExtractionSource.DOM_EMBEDDED_JSON,
    "DOM_IMG": ExtractionSource.DOM_IMG_TAG,
    "SCREENSHOT": ExtractionSource.SCREENSHOT_CAPTURE,
    "VIEWPORT": ExtractionSource.SCREENSHOT_CAPTURE,
}

TYPE_LABELS: dict[str, MediaType] = {
    "VIDEO": MediaType.VIDEO,
    "IMAGE": MediaType.IMAGE,
    "DYNAMIC_IMAGE": MediaType.DYNAMIC_IMAGE,
    "SCREENSHOT": MediaType.SCREENSHOT,
}


def parse_extractor_payload(payload: Any) -> Success:
    """Map an extractor response body onto a :class:`Success`."""

    if not isinstance(payload, dict):
        raise NoCandidateFound("extractor returned a non-object body")
    url = payload.get("url")
    media_type = TYPE_LABELS.get(str(payload.get("type") or "").upper())
    if not url or media_type is None:
        raise NoCandidateFound(f"extractor returned no usable media: {str(payload)[:200]}")
    if media_type == MediaType.SCREENSHOT:
        if not str(url).startswith("data:image/"):
            raise NoCandidateFound("screenshot without inline image data")
        return Success(url=url, media_type=media_type, source=ExtractionSource.SCREENSHOT_CAPTURE)
    if not is_http_url(url):
        raise NoCandidateFound(f"extractor returned a non-http url: {str(url)[:120]}")
    source = SOURCE_LABELS.get(str(payload.get("source") or "").upper(), ExtractionSource.NETWORK_FALLBACK)
    return Success(url=url, media_type=media_type, source=source)


class RemoteExtractorStrategy(ExtractionStrategy):
    name = "remote"

    def __init__(
        self,
        base_url: str | None,
        *,
        timeout_s: float = 30.0,
        health_timeout_s: float = 3.0,
        session: requests.Session | None = None,
    ):
        self.base_url = (base_url or "").rstrip("/")
        self.timeout_s = timeout_s
        self.health_timeout_s = health_timeout_s
        self.session = session or requests.Session()

    def is_available(self) -> bool:
        return bool(self.base_url)

    def _extract_sync(self, snapshot_url: str) -> Success:
        try:
            health = self.session.get(f"{self.base_url}/health", timeout=self.health_timeout_s)
        except requests.RequestException as exc:
            raise Unreachable(f"extractor health probe failed: {exc}") from exc
        if health.status_code != 200:
            raise Unreachable(f"extractor unhealthy: HTTP {health.status_code}")

        try:
            resp = self.session.post(
                f"{self.base_url}/api/extract",
                json={"url": snapshot_url},
                timeout=self.timeout_s,
            )
        except requests.RequestException as exc:
            raise Unreachable(f"extractor request failed: {exc}") from exc
        if resp.status_code == 404:
            raise NoCandidateFound("extractor found no media")
        if resp.status_code != 200:
            raise Unreachable(f"extractor error: HTTP {resp.status_code}")
        try:
            payload = resp.json()
        except ValueError as exc:
            raise NoCandidateFound("extractor returned invalid JSON") from exc
        return parse_extractor_payload(payload)

    async def _resolve(self, snapshot_url: str, *, ad_id: str | None = None) -> Success:
        return await asyncio.to_thread(self._extract_sync, snapshot_url)


__all__ = ["RemoteExtractorStrategy", "SOURCE_LABELS", "parse_extractor_payload"]
