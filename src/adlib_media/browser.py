"""Lifecycle-managed shared Chromium instance.

One browser is launched lazily and reused across requests to amortize
startup; each request gets its own context and page.  When a request sees a
"target/connection closed" class error the instance is discarded and the
next :meth:`BrowserHandle.acquire` relaunches it.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

from playwright.async_api import Browser, Page, Playwright, async_playwright
from playwright.async_api import Error as PlaywrightError

from .errors import BrowserRestartRequired
from .logging import jlog
from .playwright import CHROMIUM_LAUNCH_ARGS, STEALTH_INIT_SCRIPT, close_quietly, is_target_closed_error


class BrowserHandle:
    def __init__(self, *, headless: bool = True, launch_args: list[str] | None = None):
        self.headless = headless
        self.launch_args = list(launch_args or CHROMIUM_LAUNCH_ARGS)
        self._playwright: Playwright | None = None
        self._browser: Browser | None = None
        self._lock = asyncio.Lock()
        self.launches = 0

    def is_healthy(self) -> bool:
        return self._browser is not None and self._browser.is_connected()

    async def acquire(self) -> Browser:
        async with self._lock:
            if self.is_healthy():
                return self._browser  # type: ignore[return-value]
            await self._discard_locked()
            if self._playwright is None:
                self._playwright = await async_playwright().start()
            try:
                self._browser = await self._playwright.chromium.launch(headless=self.headless, args=self.launch_args)
            except PlaywrightError as exc:
                raise BrowserRestartRequired(f"browser launch failed: {exc}") from exc
            self.launches += 1
            jlog("info", event="browser_launched", launches=self.launches)
            return self._browser

    async def invalidate(self, reason: str) -> None:
        async with self._lock:
            await self._discard_locked()
        jlog("warning", event="browser_discarded", reason=reason)

    async def _discard_locked(self) -> None:
        browser, self._browser = self._browser, None
        await close_quietly(browser)

    async def close(self) -> None:
        async with self._lock:
            await self._discard_locked()
            pw, self._playwright = self._playwright, None
        if pw is not None:
            try:
                await pw.stop()
            except Exception as exc:
                jlog("warning", event="playwright_stop_failed", error=str(exc)[:200])

    @asynccontextmanager
    async def page(self, **context_options: Any) -> AsyncIterator[Page]:
        """Yield a fresh page in its own context; always closes both, never the browser."""

        browser = await self.acquire()
        context = None
        page = None
        try:
            try:
                context = await browser.new_context(**context_options)
                await context.add_init_script(STEALTH_INIT_SCRIPT)
                page = await context.new_page()
            except PlaywrightError as exc:
                await self.invalidate(str(exc))
                raise BrowserRestartRequired(str(exc)) from exc
            try:
                yield page
            except PlaywrightError as exc:
                if is_target_closed_error(exc):
                    await self.invalidate(str(exc))
                    raise BrowserRestartRequired(str(exc)) from exc
                raise
        finally:
            await close_quietly(page, context)


__all__ = ["BrowserHandle"]
