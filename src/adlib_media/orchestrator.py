"""Fallback chain over the extraction strategies.

``resolve_single`` is the single-ad entry point: it honors a cached result,
collapses concurrent duplicate requests for the same ad onto one chain run,
and walks the configured strategies cheapest first.  Running out of
strategies is an ordinary outcome and comes back as a ``Failure``.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

import requests

from .browser import BrowserHandle
from .config import Settings
from .jobs import ApifyJobRunner
from .logging import adlog, jlog
from .merge import merge_resolved_media
from .models import AdRecord, ExtractionResult, Failure, FailureReason, ResolvedMedia
from .strategies import (
    ExtractionStrategy,
    HeadlessBrowserStrategy,
    ManagedJobStrategy,
    ProxyScrapeStrategy,
    RemoteExtractorStrategy,
)
from .urls import parse_ad_id, strip_access_token

UTC = getattr(datetime, "UTC", timezone.utc)

STRATEGY_NAMES = ("proxy", "headless", "remote", "managed")


@dataclass
class _InFlight:
    task: asyncio.Task
    waiters: int = 0


def build_job_runner(settings: Settings) -> ApifyJobRunner | None:
    if not settings.apify_token:
        return None
    return ApifyJobRunner(
        settings.apify_token,
        actor_id=settings.actor_id,
        memory_mbytes=settings.job_memory_mbytes,
    )


def build_strategies(
    settings: Settings,
    *,
    browser: BrowserHandle | None = None,
    runner: Any | None = None,
    session: requests.Session | None = None,
) -> list[ExtractionStrategy]:
    """Instantiate strategies in ``settings.strategy_order``."""

    out: list[ExtractionStrategy] = []
    for name in settings.strategy_order:
        if name == "proxy":
            out.append(
                ProxyScrapeStrategy(
                    settings.relays,
                    timeout_s=settings.proxy_timeout_s,
                    http_timeout_s=settings.http_timeout_s,
                    user_agent=settings.user_agent,
                    session=session,
                )
            )
        elif name == "headless":
            out.append(HeadlessBrowserStrategy(settings, browser or BrowserHandle()))
        elif name == "remote":
            out.append(RemoteExtractorStrategy(settings.extractor_url, timeout_s=settings.remote_timeout_s, session=session))
        elif name == "managed":
            out.append(
                ManagedJobStrategy(
                    runner,
                    max_items=settings.single_max_items,
                    poll_interval_s=settings.poll_interval_s,
                    max_polls=settings.max_polls,
                )
            )
        else:
            raise ValueError(f"unknown strategy {name!r}; expected one of {', '.join(STRATEGY_NAMES)}")
    return out


class MediaResolver:
    def __init__(
        self,
        strategies: Sequence[ExtractionStrategy],
        *,
        screenshot_ttl_s: float = 7 * 24 * 3600,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
        browser: BrowserHandle | None = None,
    ):
        self.strategies = list(strategies)
        self.screenshot_ttl = timedelta(seconds=screenshot_ttl_s)
        self.clock = clock
        self.browser = browser
        self._in_flight: dict[str, _InFlight] = {}

    @classmethod
    def from_settings(cls, settings: Settings, *, runner: Any | None = None) -> "MediaResolver":
        browser = BrowserHandle() if "headless" in settings.strategy_order else None
        runner = runner if runner is not None else build_job_runner(settings)
        return cls(
            build_strategies(settings, browser=browser, runner=runner),
            screenshot_ttl_s=settings.screenshot_ttl_s,
            browser=browser,
        )

    async def close(self) -> None:
        if self.browser is not None:
            await self.browser.close()

    def is_in_progress(self, key: str) -> bool:
        return key in self._in_flight

    def _cache_is_usable(self, cached: ResolvedMedia) -> bool:
        if not cached.is_screenshot:
            return True
        return self.clock() - cached.resolved_at < self.screenshot_ttl

    async def resolve_single(
        self,
        snapshot_url: str,
        *,
        ad_id: str | None = None,
        cached: ResolvedMedia | None = None,
        force_refresh: bool = False,
    ) -> ExtractionResult:
        log_url = strip_access_token(snapshot_url)
        if cached is not None and not force_refresh and self._cache_is_usable(cached):
            adlog("resolve_cached", ad_id=ad_id, url=log_url, source=cached.source)
            return cached.to_success()

        key = ad_id or parse_ad_id(snapshot_url) or snapshot_url
        entry = self._in_flight.get(key)
        if entry is None:
            task = asyncio.ensure_future(self._run_chain(snapshot_url, ad_id=ad_id))
            entry = self._in_flight[key] = _InFlight(task)
            task.add_done_callback(lambda done, k=key: self._release(k, done))
        else:
            adlog("resolve_joined_in_flight", ad_id=ad_id, url=log_url)

        # The chain outlives any single caller; it is cancelled only when its last waiter goes away.
        entry.waiters += 1
        try:
            return await asyncio.shield(entry.task)
        except asyncio.CancelledError:
            if entry.waiters == 1 and not entry.task.done():
                entry.task.cancel()
            raise
        finally:
            entry.waiters -= 1

    def _release(self, key: str, task: asyncio.Task) -> None:
        entry = self._in_flight.get(key)
        if entry is not None and entry.task is task:
            del self._in_flight[key]

    async def _run_chain(self, snapshot_url: str, *, ad_id: str | None) -> ExtractionResult:
        log_url = strip_access_token(snapshot_url)
        failures: list[Failure] = []
        for strategy in self.strategies:
            result = await strategy.resolve(snapshot_url, ad_id=ad_id)
            if result.ok:
                adlog("resolve_success", ad_id=ad_id, url=log_url, strategy=strategy.name, source=result.source)
                return result
            failures.append(result)

        attempted = [f for f in failures if f.reason != FailureReason.NOT_CONFIGURED]
        reason = attempted[-1].reason if attempted else FailureReason.NOT_CONFIGURED
        detail = "; ".join(f"{s.name}: {f.reason.value}" for s, f in zip(self.strategies, failures))
        adlog("resolve_exhausted", ad_id=ad_id, url=log_url, level="warning", reason=reason, detail=detail)
        return Failure(reason, detail)

    async def resolve_ad(self, ad: AdRecord, *, force_refresh: bool = False) -> AdRecord:
        """Resolve one ad and merge the result onto a copy of it."""

        result = await self.resolve_single(
            ad.snapshot_url,
            ad_id=ad.id,
            cached=ad.resolved_media,
            force_refresh=force_refresh,
        )
        if not result.ok:
            return ad
        if ad.resolved_media is not None and result == ad.resolved_media.to_success() and not force_refresh:
            return ad
        return merge_resolved_media(ad, ResolvedMedia.from_success(result), force=force_refresh)

    async def resolve_many(self, ads: Sequence[AdRecord], *, force_refresh: bool = False) -> list[AdRecord]:
        """Sequential per-ad resolution, one chain at a time."""

        out: list[AdRecord] = []
        for ad in ads:
            out.append(await self.resolve_ad(ad, force_refresh=force_refresh))
        jlog("info", event="resolve_many_done", ads=len(out), resolved=sum(1 for a in out if a.resolved_media))
        return out


__all__ = ["MediaResolver", "STRATEGY_NAMES", "build_job_runner", "build_strategies"]
