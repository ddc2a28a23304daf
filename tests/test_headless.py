import asyncio
from contextlib import asynccontextmanager
from io import BytesIO

from PIL import Image
from playwright.async_api import Error as PlaywrightError

from adlib_media.browser import BrowserHandle
from adlib_media.config import Settings
from adlib_media.models import ExtractionSource, FailureReason, MediaType
from adlib_media.strategies import HeadlessBrowserStrategy

SNAPSHOT = "https://www.facebook.com/ads/archive/render_ad/?id=42"
NETWORK_VIDEO = "https://video.xx.fbcdn.net/v/ad.mp4"
SETTINGS = Settings(settle_ms=0, post_scroll_settle_ms=0, headless_timeout_s=5.0, debug_html=False)


def _png(width=40, height=30):
    out = BytesIO()
    Image.new("RGB", (width, height), (200, 30, 30)).save(out, format="PNG")
    return out.getvalue()


class FakeRequest:
    def __init__(self, resource_type):
        self.resource_type = resource_type


class FakeNetworkResponse:
    def __init__(self, url, resource_type, status=200):
        self.url = url
        self.status = status
        self.request = FakeRequest(resource_type)


class FakePage:
    def __init__(self, responses=(), dom=None, dom_error=None, goto_error=None, png=None):
        self.responses = list(responses)
        self.dom = dom if dom is not None else {"videos": [], "scripts": [], "images": []}
        self.dom_error = dom_error
        self.goto_error = goto_error
        self.png = png
        self.handlers = {}
        self.screenshots = 0
        self.closed = False

    def set_default_timeout(self, ms):
        pass

    def on(self, event, handler):
        self.handlers.setdefault(event, []).append(handler)

    async def goto(self, url, **kwargs):
        if self.goto_error:
            raise self.goto_error
        for response in self.responses:
            for handler in self.handlers.get("response", []):
                handler(response)

    async def wait_for_timeout(self, ms):
        pass

    async def evaluate(self, expression, arg=None):
        if "minPx" in expression:
            if self.dom_error:
                raise self.dom_error
            return self.dom
        if "(selectors)" in expression:
            return 0
        return None

    async def query_selector(self, selector):
        return None

    async def screenshot(self, **kwargs):
        self.screenshots += 1
        if self.png is None:
            raise PlaywrightError("screenshot unavailable")
        return self.png

    async def close(self):
        self.closed = True


class OnePageBrowser:
    def __init__(self, page):
        self._page = page

    @asynccontextmanager
    async def page(self, **context_options):
        yield self._page


def _resolve(page_or_browser):
    browser = page_or_browser if not isinstance(page_or_browser, FakePage) else OnePageBrowser(page_or_browser)
    strategy = HeadlessBrowserStrategy(SETTINGS, browser)
    return asyncio.run(strategy.resolve(SNAPSHOT, ad_id="42"))


def test_network_video_wins_over_dom_images():
    page = FakePage(
        responses=[FakeNetworkResponse(NETWORK_VIDEO, "media")],
        dom={"videos": [], "scripts": [], "images": [{"src": "https://scontent.xx.fbcdn.net/v/big_n.jpg", "area": 90000}]},
    )
    result = _resolve(page)
    assert result.ok
    assert result.url == NETWORK_VIDEO
    assert result.source == ExtractionSource.NETWORK_OBSERVED
    assert page.screenshots == 0


def test_dom_collection_error_keeps_network_candidates():
    page = FakePage(
        responses=[FakeNetworkResponse(NETWORK_VIDEO, "media")],
        dom_error=PlaywrightError("Execution context was destroyed, most likely because of a navigation"),
    )
    result = _resolve(page)
    assert result.ok
    assert result.media_type == MediaType.VIDEO
    assert result.source == ExtractionSource.NETWORK_OBSERVED


def test_dom_collection_error_without_network_falls_back_to_screenshot():
    page = FakePage(
        dom_error=PlaywrightError("Execution context was destroyed"),
        png=_png(),
    )
    result = _resolve(page)
    assert result.ok
    assert result.media_type == MediaType.SCREENSHOT
    assert result.source == ExtractionSource.SCREENSHOT_CAPTURE
    assert result.url.startswith("data:image/png;base64,")


def test_failed_screenshot_is_no_candidate():
    result = _resolve(FakePage())
    assert not result.ok
    assert result.reason == FailureReason.NO_CANDIDATE


def test_navigation_error_is_reported():
    result = _resolve(FakePage(goto_error=PlaywrightError("net::ERR_NAME_NOT_RESOLVED")))
    assert not result.ok
    assert result.reason == FailureReason.NAVIGATION_ERROR


class FakeContext:
    def __init__(self, pages):
        self.pages = pages

    async def add_init_script(self, script):
        pass

    async def new_page(self):
        return self.pages.pop(0)

    async def close(self):
        pass


class FakeBrowser:
    def __init__(self, pages):
        self.pages = pages
        self.connected = True

    def is_connected(self):
        return self.connected

    async def new_context(self, **options):
        return FakeContext(self.pages)

    async def close(self):
        self.connected = False


class FakeChromium:
    def __init__(self, pages):
        self.pages = pages
        self.launched = []

    async def launch(self, **kwargs):
        browser = FakeBrowser(self.pages)
        self.launched.append(browser)
        return browser


class FakePlaywright:
    def __init__(self, pages):
        self.chromium = FakeChromium(pages)

    async def stop(self):
        pass


def _handle(pages):
    handle = BrowserHandle()
    handle._playwright = FakePlaywright(pages)
    return handle


def test_target_closed_discards_browser_and_relaunches():
    dead = FakePage(goto_error=PlaywrightError("Target page, context or browser has been closed"))
    alive = FakePage(responses=[FakeNetworkResponse(NETWORK_VIDEO, "media")])
    handle = _handle([dead, alive])

    result = _resolve(handle)

    assert result.ok
    assert result.url == NETWORK_VIDEO
    assert handle.launches == 2
    first, second = handle._playwright.chromium.launched
    assert not first.connected
    assert second.connected
    assert dead.closed and alive.closed


def test_healthy_browser_is_reused_across_requests():
    pages = [FakePage(responses=[FakeNetworkResponse(NETWORK_VIDEO, "media")]) for _ in range(2)]
    handle = _handle(pages)
    strategy = HeadlessBrowserStrategy(SETTINGS, handle)

    async def scenario():
        first = await strategy.resolve(SNAPSHOT, ad_id="42")
        second = await strategy.resolve(SNAPSHOT, ad_id="43")
        return first, second

    first, second = asyncio.run(scenario())

    assert first.ok and second.ok
    assert handle.launches == 1
