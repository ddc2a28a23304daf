import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from adlib_media.config import Settings
from adlib_media.errors import CredentialInvalid, NoCandidateFound, Unreachable
from adlib_media.merge import merge_resolved_media
from adlib_media.models import (
    AdRecord,
    ExtractionSource,
    FailureReason,
    MediaType,
    ResolvedMedia,
    Success,
)
from adlib_media.orchestrator import MediaResolver, build_strategies
from adlib_media.strategies import ExtractionStrategy, ManagedJobStrategy, ProxyScrapeStrategy, RemoteExtractorStrategy

SNAPSHOT = "https://www.facebook.com/ads/archive/render_ad/?id=42&access_token=SECRET"
VIDEO = Success(url="https://video.xx.fbcdn.net/v/a.mp4", media_type=MediaType.VIDEO, source=ExtractionSource.DOM_VIDEO_TAG)
SHOT = Success(url="data:image/png;base64,AAA", media_type=MediaType.SCREENSHOT, source=ExtractionSource.SCREENSHOT_CAPTURE)


class FakeStrategy(ExtractionStrategy):
    def __init__(self, name, outcome=None, *, delay=0.0, available=True, timeout_s=5.0):
        self.name = name
        self.outcome = outcome
        self.delay = delay
        self.available = available
        self.timeout_s = timeout_s
        self.calls = 0

    def is_available(self):
        return self.available

    async def _resolve(self, snapshot_url, *, ad_id=None):
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if isinstance(self.outcome, BaseException):
            raise self.outcome
        if self.outcome is None:
            raise NoCandidateFound("nothing")
        return self.outcome


def test_cached_result_is_returned_without_invoking_strategies():
    strategy = FakeStrategy("proxy", VIDEO)
    resolver = MediaResolver([strategy])
    cached = ResolvedMedia.from_success(VIDEO)

    result = asyncio.run(resolver.resolve_single(SNAPSHOT, ad_id="42", cached=cached))

    assert result == VIDEO
    assert strategy.calls == 0


def test_force_refresh_bypasses_cache():
    strategy = FakeStrategy("proxy", VIDEO)
    resolver = MediaResolver([strategy])
    cached = ResolvedMedia.from_success(VIDEO)

    asyncio.run(resolver.resolve_single(SNAPSHOT, ad_id="42", cached=cached, force_refresh=True))

    assert strategy.calls == 1


def test_stale_screenshot_cache_is_re_resolved():
    now = datetime(2026, 1, 10, tzinfo=timezone.utc)
    strategy = FakeStrategy("proxy", VIDEO)
    resolver = MediaResolver([strategy], screenshot_ttl_s=3600, clock=lambda: now)
    fresh = ResolvedMedia(SHOT.url, SHOT.media_type, SHOT.source, resolved_at=now - timedelta(minutes=5))
    stale = ResolvedMedia(SHOT.url, SHOT.media_type, SHOT.source, resolved_at=now - timedelta(hours=2))

    assert asyncio.run(resolver.resolve_single(SNAPSHOT, cached=fresh)) == SHOT
    assert strategy.calls == 0
    assert asyncio.run(resolver.resolve_single(SNAPSHOT, cached=stale)) == VIDEO
    assert strategy.calls == 1


def test_chain_stops_at_first_success_in_order():
    first = FakeStrategy("proxy", Unreachable("relays down"))
    second = FakeStrategy("headless", VIDEO)
    third = FakeStrategy("managed", VIDEO)
    resolver = MediaResolver([first, second, third])

    result = asyncio.run(resolver.resolve_single(SNAPSHOT))

    assert result == VIDEO
    assert (first.calls, second.calls, third.calls) == (1, 1, 0)


def test_exhausted_chain_returns_unknown_without_raising():
    proxy = ProxyScrapeStrategy([], timeout_s=1)
    unreachable = FakeStrategy("headless", Unreachable("connection refused"))
    managed = ManagedJobStrategy(None)
    resolver = MediaResolver([proxy, unreachable, managed])

    result = asyncio.run(resolver.resolve_single(SNAPSHOT))

    assert not result.ok
    assert result.media_type == MediaType.UNKNOWN
    assert result.reason == FailureReason.UNREACHABLE
    assert managed.is_available() is False


def test_unconfigured_strategies_are_skipped_not_called():
    skipped = FakeStrategy("remote", VIDEO, available=False)
    resolver = MediaResolver([skipped])

    result = asyncio.run(resolver.resolve_single(SNAPSHOT))

    assert skipped.calls == 0
    assert result.reason == FailureReason.NOT_CONFIGURED


def test_strategy_timeout_becomes_failure():
    slow = FakeStrategy("headless", VIDEO, delay=1.0, timeout_s=0.05)
    resolver = MediaResolver([slow])

    result = asyncio.run(resolver.resolve_single(SNAPSHOT))

    assert result.reason == FailureReason.TIMEOUT


def test_unexpected_strategy_errors_become_failures():
    broken = FakeStrategy("proxy", KeyError("boom"))
    result = asyncio.run(MediaResolver([broken]).resolve_single(SNAPSHOT))
    assert result.reason == FailureReason.UNREACHABLE


def test_credential_errors_propagate():
    rejected = FakeStrategy("managed", CredentialInvalid("job runner"))
    with pytest.raises(CredentialInvalid):
        asyncio.run(MediaResolver([rejected]).resolve_single(SNAPSHOT))


def test_concurrent_duplicate_calls_share_one_chain():
    strategy = FakeStrategy("headless", VIDEO, delay=0.05)
    resolver = MediaResolver([strategy])

    async def scenario():
        first, second = await asyncio.gather(
            resolver.resolve_single(SNAPSHOT, ad_id="42"),
            resolver.resolve_single(SNAPSHOT, ad_id="42"),
        )
        return first, second, resolver.is_in_progress("42")

    first, second, still_running = asyncio.run(scenario())

    assert first == second == VIDEO
    assert strategy.calls == 1
    assert still_running is False


def test_in_progress_marker_cleared_after_failure():
    broken = FakeStrategy("proxy", Unreachable("down"))
    resolver = MediaResolver([broken])
    asyncio.run(resolver.resolve_single(SNAPSHOT, ad_id="42"))
    assert not resolver.is_in_progress("42")


def test_abandoned_caller_does_not_cancel_joined_caller():
    strategy = FakeStrategy("headless", VIDEO, delay=0.05)
    resolver = MediaResolver([strategy])

    async def scenario():
        first = asyncio.ensure_future(resolver.resolve_single(SNAPSHOT, ad_id="42"))
        await asyncio.sleep(0)
        second = asyncio.ensure_future(resolver.resolve_single(SNAPSHOT, ad_id="42"))
        await asyncio.sleep(0.01)
        first.cancel()
        result = await second
        return first.cancelled(), result

    first_cancelled, result = asyncio.run(scenario())

    assert first_cancelled
    assert result == VIDEO
    assert strategy.calls == 1
    assert not resolver.is_in_progress("42")


def test_chain_cancelled_when_its_only_caller_is_abandoned():
    strategy = FakeStrategy("headless", VIDEO, delay=1.0)
    resolver = MediaResolver([strategy])

    async def scenario():
        caller = asyncio.ensure_future(resolver.resolve_single(SNAPSHOT, ad_id="42"))
        await asyncio.sleep(0.01)
        caller.cancel()
        with pytest.raises(asyncio.CancelledError):
            await caller
        await asyncio.sleep(0.05)
        return resolver.is_in_progress("42")

    assert asyncio.run(scenario()) is False


def test_resolve_ad_never_downgrades_to_screenshot():
    ad = AdRecord(id="42", snapshot_url=SNAPSHOT, resolved_media=ResolvedMedia.from_success(VIDEO))
    resolver = MediaResolver([FakeStrategy("headless", SHOT)])

    updated = asyncio.run(resolver.resolve_ad(ad))

    assert updated.resolved_media.source == ExtractionSource.DOM_VIDEO_TAG
    # Forcing is the only way past the cache, and the merge still refuses a weaker source automatically.
    assert merge_resolved_media(ad, ResolvedMedia.from_success(SHOT)).resolved_media.media_type == MediaType.VIDEO


def test_resolve_ad_fills_unresolved_ad():
    ad = AdRecord(id="42", snapshot_url=SNAPSHOT)
    updated = asyncio.run(MediaResolver([FakeStrategy("headless", VIDEO)]).resolve_ad(ad))
    assert updated.resolved_media.url == VIDEO.url
    assert ad.resolved_media is None


def test_build_strategies_follows_configured_order():
    settings = Settings(strategy_order=("remote", "proxy", "managed"), extractor_url=None)
    strategies = build_strategies(settings)
    assert [s.name for s in strategies] == ["remote", "proxy", "managed"]
    assert isinstance(strategies[0], RemoteExtractorStrategy)
    assert not strategies[0].is_available()
    assert not strategies[2].is_available()


def test_build_strategies_rejects_unknown_names():
    with pytest.raises(ValueError):
        build_strategies(Settings(strategy_order=("carrier-pigeon",)))
