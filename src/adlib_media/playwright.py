"""Playwright helpers for loading ad snapshots in a low-fingerprint session."""

from __future__ import annotations

from typing import Any

from playwright.async_api import ElementHandle, Page

from .logging import jlog

CHROMIUM_LAUNCH_ARGS = [
    "--no-sandbox",
    "--disable-dev-shm-usage",
    "--disable-setuid-sandbox",
    "--disable-gpu",
    "--no-zygote",
    "--no-first-run",
    "--disable-accelerated-2d-canvas",
    "--disable-blink-features=AutomationControlled",
    "--window-size=1920,1080",
    "--lang=fr-FR,fr",
]

# Runs before any page script: hide the webdriver flag and fake the chrome runtime object.
STEALTH_INIT_SCRIPT = """
Object.defineProperty(navigator, 'webdriver', { get: () => false });
window.chrome = window.chrome || { runtime: {} };
Object.defineProperty(navigator, 'languages', { get: () => ['fr-FR', 'fr', 'en-US', 'en'] });
"""

OVERLAY_SELECTORS = (
    '[role="dialog"]',
    '[aria-modal="true"]',
    ".uiLayer",
    "[data-cookiebanner]",
    'div[data-testid="cookie-policy-manage-dialog"]',
)

CREATIVE_CONTAINER_SELECTORS = (
    'div[data-testid="ad_creative_container"]',
    ".uiScaledImageContainer",
    'div[role="img"]',
    "video",
)

TARGET_CLOSED_MARKERS = (
    "target closed",
    "target page, context or browser has been closed",
    "browser has been closed",
    "connection closed",
    "browser has disconnected",
)


def is_target_closed_error(exc: BaseException) -> bool:
    text = str(exc).lower()
    return any(marker in text for marker in TARGET_CLOSED_MARKERS)


async def element_is_visibly_displayed(handle: ElementHandle | None) -> bool:
    if not handle:
        return False
    try:
        return await handle.evaluate(
            """
            (el) => {
                if (!el) return false;
                const rect = el.getBoundingClientRect();
                if (rect.width <= 1 || rect.height <= 1) return false;
                const style = window.getComputedStyle(el);
                return !(style.display === 'none' || style.visibility === 'hidden' || style.opacity === '0');
            }
            """
        )
    except Exception:
        return False


async def settle_and_scroll(page: Page, *, settle_ms: int, scroll_px: int, post_scroll_ms: int) -> None:
    """Wait for the late creative payload, then nudge lazy loaders with a small scroll."""

    await page.wait_for_timeout(settle_ms)
    try:
        await page.evaluate("(dy) => window.scrollBy(0, dy)", scroll_px)
    except Exception:
        pass
    await page.wait_for_timeout(post_scroll_ms)


async def dismiss_overlays(page: Page) -> int:
    """Remove dialogs, consent layers and modals. Best effort; returns how many were removed."""

    try:
        return await page.evaluate(
            """
            (selectors) => {
                let removed = 0;
                for (const sel of selectors) {
                    try {
                        document.querySelectorAll(sel).forEach(el => { el.remove(); removed += 1; });
                    } catch (e) {}
                }
                return removed;
            }
            """,
            list(OVERLAY_SELECTORS),
        )
    except Exception as exc:
        jlog("debug", event="overlay_dismiss_failed", error=str(exc))
        return 0


async def wait_assets_ready(page: Page) -> None:
    """Wait for fonts and images to settle before taking screenshots."""

    try:
        await page.evaluate(
            """
            () => Promise.all([
                (document.fonts && document.fonts.ready) ? document.fonts.ready : Promise.resolve(),
                Promise.all(
                    Array.from(document.images || []).map(img => {
                        if (img.complete) return Promise.resolve();
                        return new Promise(res => {
                            img.addEventListener('load', () => res(), { once: true });
                            img.addEventListener('error', () => res(), { once: true });
                        });
                    })
                )
            ])
            """
        )
    except Exception:
        pass


async def collect_dom_media(page: Page, *, min_img_px: int) -> dict[str, Any]:
    """Return raw DOM observations: video srcs, script bodies and sized <img> entries.

    Script bodies are handed back verbatim so the pattern matching stays in
    :mod:`adlib_media.patterns`.  ``<img>`` entries are pre-filtered on natural
    size; URL filtering happens in ranking.
    """

    return await page.evaluate(
        """
        (minPx) => {
            const videos = [];
            for (const video of Array.from(document.querySelectorAll('video'))) {
                const src = video.currentSrc || video.src || (video.querySelector('source') || {}).src;
                if (src && src.startsWith('http')) videos.push(src);
            }
            const scripts = Array.from(document.querySelectorAll('script'))
                .map(s => s.textContent || '')
                .filter(t => t.includes('_url') || t.includes('"uri"'));
            const images = Array.from(document.querySelectorAll('img'))
                .filter(img => (img.naturalWidth || 0) > minPx && (img.naturalHeight || 0) > minPx)
                .map(img => {
                    const rect = img.getBoundingClientRect();
                    return { src: img.currentSrc || img.src || '', area: Math.round(rect.width * rect.height) };
                })
                .filter(entry => entry.src.startsWith('http'));
            return { videos, scripts, images };
        }
        """,
        min_img_px,
    )


async def locate_creative_container(page: Page) -> tuple[ElementHandle, str] | None:
    for selector in CREATIVE_CONTAINER_SELECTORS:
        try:
            handle = await page.query_selector(selector)
        except Exception:
            continue
        if await element_is_visibly_displayed(handle):
            return handle, selector
    return None


async def close_quietly(*resources: Any) -> None:
    """Close pages/contexts in order, ignoring errors from already-dead targets."""

    for resource in resources:
        if resource is None:
            continue
        try:
            await resource.close()
        except Exception:
            pass


__all__ = [
    "CHROMIUM_LAUNCH_ARGS",
    "CREATIVE_CONTAINER_SELECTORS",
    "OVERLAY_SELECTORS",
    "STEALTH_INIT_SCRIPT",
    "close_quietly",
    "collect_dom_media",
    "dismiss_overlays",
    "element_is_visibly_displayed",
    "is_target_closed_error",
    "locate_creative_container",
    "settle_and_scroll",
    "wait_assets_ready",
]
