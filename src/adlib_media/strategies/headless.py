"""Render the snapshot in a shared headless Chromium and harvest media candidates."""

from __future__ import annotations

from typing import Any

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page, Response
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from ..browser import BrowserHandle
from ..config import Settings
from ..debug import ensure_debug_html
from ..errors import BrowserRestartRequired, NavigationError, NoCandidateFound, StrategyTimeout
from ..hashing import normalize_screenshot, png_data_url
from ..logging import jlog
from ..models import Candidate, ExtractionSource, MediaType, Success
from ..patterns import embedded_json_candidates
from ..playwright import (
    collect_dom_media,
    dismiss_overlays,
    is_target_closed_error,
    locate_creative_container,
    settle_and_scroll,
    wait_assets_ready,
)
from ..ranking import select_candidate
from ..urls import is_cdn_url, is_http_url, is_video_url, parse_ad_id
from .base import ExtractionStrategy, success_from_candidate


def classify_response(url: str, resource_type: str, status: int) -> Candidate | None:
    """Turn one observed network response into a candidate, or None to ignore it."""

    if not (200 <= status < 400) or not is_http_url(url):
        return None
    if resource_type == "media" or is_video_url(url):
        return Candidate(url=url, media_type=MediaType.VIDEO, source=ExtractionSource.NETWORK_OBSERVED)
    if resource_type == "image" and is_cdn_url(url):
        return Candidate(url=url, media_type=MediaType.IMAGE, source=ExtractionSource.NETWORK_OBSERVED)
    return None


def dom_candidates(observed: dict[str, Any]) -> list[Candidate]:
    """Candidates from the raw DOM observations returned by :func:`collect_dom_media`."""

    out: list[Candidate] = []
    for src in observed.get("videos") or []:
        if is_http_url(src):
            out.append(Candidate(url=src, media_type=MediaType.VIDEO, source=ExtractionSource.DOM_VIDEO_TAG))
    out.extend(embedded_json_candidates(observed.get("scripts") or []))
    for img in observed.get("images") or []:
        src = img.get("src")
        if is_http_url(src):
            out.append(
                Candidate(
                    url=src,
                    media_type=MediaType.IMAGE,
                    source=ExtractionSource.DOM_IMG_TAG,
                    size_hint=int(img.get("area") or 0),
                )
            )
    return out


class HeadlessBrowserStrategy(ExtractionStrategy):
    name = "headless"

    def __init__(self, settings: Settings, browser: BrowserHandle):
        self.settings = settings
        self.browser = browser
        self.timeout_s = settings.headless_timeout_s

    def _context_options(self) -> dict[str, Any]:
        s = self.settings
        return {
            "user_agent": s.user_agent,
            "viewport": {"width": s.viewport_width, "height": s.viewport_height},
            "device_scale_factor": s.device_scale_factor,
            "locale": s.locale,
        }

    async def _resolve(self, snapshot_url: str, *, ad_id: str | None = None) -> Success:
        try:
            return await self._resolve_once(snapshot_url, ad_id=ad_id)
        except BrowserRestartRequired as exc:
            # The handle already discarded the dead browser; one fresh attempt.
            jlog("warning", event="headless_browser_restart", ad_id=ad_id, error=str(exc)[:200])
            return await self._resolve_once(snapshot_url, ad_id=ad_id)

    async def _resolve_once(self, snapshot_url: str, *, ad_id: str | None) -> Success:
        s = self.settings
        async with self.browser.page(**self._context_options()) as page:
            page.set_default_timeout(s.page_timeout_ms)
            network: list[Candidate] = []

            def _on_response(response: Response) -> None:
                try:
                    candidate = classify_response(response.url, response.request.resource_type, response.status)
                except PlaywrightError:
                    return
                if candidate is not None:
                    network.append(candidate)

            page.on("response", _on_response)
            try:
                await page.goto(snapshot_url, wait_until="domcontentloaded", timeout=s.page_timeout_ms)
            except PlaywrightTimeoutError as exc:
                raise StrategyTimeout(f"goto timed out after {s.page_timeout_ms}ms") from exc
            except PlaywrightError as exc:
                if is_target_closed_error(exc):
                    raise
                raise NavigationError(f"goto failed: {exc}") from exc

            await settle_and_scroll(
                page,
                settle_ms=s.settle_ms,
                scroll_px=s.scroll_px,
                post_scroll_ms=s.post_scroll_settle_ms,
            )
            removed = await dismiss_overlays(page)
            if removed:
                jlog("info", event="overlays_dismissed", ad_id=ad_id, count=removed)

            try:
                observed = await collect_dom_media(page, min_img_px=s.min_img_px)
            except PlaywrightError as exc:
                if is_target_closed_error(exc):
                    raise
                # e.g. the snapshot redirected mid-evaluate; network observations still count.
                jlog("warning", event="dom_collect_failed", ad_id=ad_id, error=str(exc)[:200])
                observed = {}
            winner = select_candidate(list(network) + dom_candidates(observed or {}))
            if winner is not None:
                return success_from_candidate(winner)

            if s.debug_html:
                await ensure_debug_html(page, ad_id or parse_ad_id(snapshot_url) or "unknown")
            shot = await self._screenshot(page, ad_id=ad_id)
            winner = select_candidate([shot]) if shot else None
            if winner is None:
                raise NoCandidateFound("no media observed and screenshot failed")
            return success_from_candidate(winner)

    async def _screenshot(self, page: Page, *, ad_id: str | None) -> Candidate | None:
        s = self.settings
        await wait_assets_ready(page)
        png: bytes | None = None
        size_hint: int | None = None
        located = await locate_creative_container(page)
        if located is not None:
            handle, selector = located
            try:
                png = await handle.screenshot(type="png")
                box = await handle.bounding_box()
                size_hint = int(box["width"] * box["height"]) if box else 1
                jlog("info", event="container_screenshot", ad_id=ad_id, selector=selector)
            except PlaywrightError as exc:
                if is_target_closed_error(exc):
                    raise
                png = None
        if png is None:
            size_hint = None
            try:
                png = await page.screenshot(
                    type="png",
                    clip={"x": 0, "y": 0, "width": s.viewport_width, "height": s.viewport_height},
                )
                jlog("info", event="viewport_screenshot", ad_id=ad_id)
            except PlaywrightError as exc:
                if is_target_closed_error(exc):
                    raise
                jlog("warning", event="screenshot_failed", ad_id=ad_id, error=str(exc)[:200])
                return None

        normalized, width, height = normalize_screenshot(png)
        jlog("info", event="screenshot_normalized", ad_id=ad_id, width=width, height=height, bytes=len(normalized))
        return Candidate(
            url=png_data_url(normalized),
            media_type=MediaType.SCREENSHOT,
            source=ExtractionSource.SCREENSHOT_CAPTURE,
            size_hint=size_hint,
        )


__all__ = ["HeadlessBrowserStrategy", "classify_response", "dom_candidates"]
