"""
Tests for the fetch engine — extraction, fallback chain, rendering engine lifecycle.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import dns.exception
import dns.resolver
import pytest
from aiohttp import web

from siteintel.errors import ContentExtractionError, FetchError, FetchTimeout
from siteintel.services.fetch_engine import (
    USER_AGENTS,
    BrowserFetchStrategy,
    ContentFetcher,
    HttpFetchStrategy,
    RenderingEngine,
    extract_content,
    find_contact_email,
    has_mx_record,
    is_error_page,
    parse_page,
)
from tests.conftest import FakeStrategy

URL = "https://www.example-bakery.com"

ARTICLE = "Fresh bread baked daily. " * 20
GOOD_HTML = f"""
<html><head><title>Example Bakery</title>
<meta name="description" content="Neighbourhood bakery"></head>
<body>
  <nav>Home Menu Catering Contact</nav>
  <article>{ARTICLE}</article>
  <footer>Copyright Example Bakery</footer>
</body></html>
"""
THIN_HTML = "<html><body><main>" + "Thin content here. " * 8 + "</main></body></html>"
THICKER_THIN_HTML = "<html><body><main>" + "Thin content here. " * 9 + "</main></body></html>"
BLOCKED_HTML = "<html><head><title>Access Denied</title></head><body><article>" + ARTICLE + "</article></body></html>"


# ── Extraction ──────────────────────────────────────────

class TestExtractContent:
    def test_best_region_wins_and_noise_is_removed(self):
        title, meta, text = extract_content(GOOD_HTML)
        assert title == "Example Bakery"
        assert meta == "Neighbourhood bakery"
        assert text.startswith("Fresh bread baked daily.")
        assert "Catering" not in text
        assert "Copyright" not in text

    def test_body_fallback_without_regions(self):
        html = "<html><body><div>" + "Plain body text. " * 20 + "</div></body></html>"
        _, _, text = extract_content(html)
        assert len(text) >= 200

    def test_title_falls_back_to_h1(self):
        title, _, _ = extract_content("<html><body><h1>Welcome In</h1></body></html>")
        assert title == "Welcome In"

    def test_nothing_usable(self):
        assert extract_content("<html><body><p>Hi</p></body></html>")[2] == ""

    def test_capped(self):
        html = "<html><body><article>" + "word " * 20000 + "</article></body></html>"
        _, _, text = extract_content(html)
        assert len(text) == 50000


class TestIsErrorPage:
    def test_title_pattern(self):
        assert is_error_page("some content", "403 Forbidden")

    def test_content_pattern(self):
        assert is_error_page("Please verify you are human to continue", "")

    def test_normal_page(self):
        assert not is_error_page(ARTICLE, "Example Bakery")

    def test_ordinary_copy_mentioning_blocks_is_not_an_error(self):
        assert not is_error_page("We clear blocked drains and protect bookings with Cloudflare.", "Drain Pros")

    def test_cloudflare_challenge_title(self):
        assert is_error_page("Checking your browser", "Just a moment...")
        assert is_error_page("", "Attention Required! | Cloudflare")

    def test_cloudflare_block_body(self):
        assert is_error_page("Sorry, you have been blocked. Cloudflare Ray ID: 8a1b2c3d", "")


class TestParsePage:
    def test_structure(self):
        html = """
        <html><head>
          <title>Acme</title>
          <meta name="viewport" content="width=device-width">
          <script type="application/ld+json">{"@type": "LocalBusiness"}</script>
        </head><body>
          <h1>Acme Plumbing</h1><h2>One</h2><h2>Two</h2>
          <img src="a.png" alt="a"><img src="b.png">
          <a href="/services">S</a>
          <a href="https://acme.com/about">A</a>
          <a href="https://elsewhere.com/">E</a>
          <script>var tracking = 1;</script>
        </body></html>
        """
        page = parse_page(html, "www.acme.com")
        assert page.title == "Acme"
        assert page.has_structured_data
        assert page.has_viewport_tag
        assert page.h1_count == 1
        assert page.h2_count == 2
        assert page.images_total == 2
        assert page.images_with_alt == 1
        assert page.internal_link_count == 2
        assert len(page.outbound_link_hrefs) == 3
        assert "tracking" not in page.body_text


# ── Fallback chain ──────────────────────────────────────

class TestContentFetcher:
    async def test_first_stage_good_enough(self):
        http = FakeStrategy("http", GOOD_HTML)
        browser = FakeStrategy("browser", GOOD_HTML)
        page = await ContentFetcher([http, browser]).fetch(URL)
        assert page.strategy == "http"
        assert browser.calls == 0

    async def test_thin_first_stage_falls_through(self):
        http = FakeStrategy("http", THIN_HTML)
        browser = FakeStrategy("browser", GOOD_HTML)
        page = await ContentFetcher([http, browser]).fetch(URL)
        assert page.strategy == "browser"
        assert http.calls == 1

    async def test_failed_first_stage_falls_through(self):
        http = FakeStrategy("http", error=FetchError(URL, "HTTP 503", status=503))
        browser = FakeStrategy("browser", GOOD_HTML)
        page = await ContentFetcher([http, browser]).fetch(URL)
        assert page.strategy == "browser"

    async def test_error_page_is_skipped(self):
        http = FakeStrategy("http", BLOCKED_HTML)
        browser = FakeStrategy("browser", GOOD_HTML)
        page = await ContentFetcher([http, browser]).fetch(URL)
        assert page.strategy == "browser"

    async def test_thin_results_return_the_longest(self):
        http = FakeStrategy("http", THICKER_THIN_HTML)
        browser = FakeStrategy("browser", THIN_HTML)
        page = await ContentFetcher([http, browser]).fetch(URL)
        assert page.strategy == "http"
        assert 100 <= len(page.content) < 200

    async def test_all_timeouts_raise_timeout(self):
        http = FakeStrategy("http", error=FetchTimeout(URL, 15))
        browser = FakeStrategy("browser", error=FetchTimeout(URL, 30))
        with pytest.raises(FetchTimeout):
            await ContentFetcher([http, browser]).fetch(URL)

    async def test_all_failures_raise_fetch_error(self):
        http = FakeStrategy("http", error=FetchError(URL, "HTTP 500", status=500))
        with pytest.raises(FetchError):
            await ContentFetcher([http]).fetch(URL)

    async def test_no_usable_text(self):
        http = FakeStrategy("http", "<html><body><p>Hi</p></body></html>")
        with pytest.raises(ContentExtractionError):
            await ContentFetcher([http]).fetch(URL)

    async def test_error_page_after_failure_is_extraction_error(self):
        http = FakeStrategy("http", error=FetchError(URL, "connection reset"))
        browser = FakeStrategy("browser", BLOCKED_HTML)
        with pytest.raises(ContentExtractionError):
            await ContentFetcher([http, browser]).fetch(URL)


# ── HTTP stage ──────────────────────────────────────────

class TestHttpFetchStrategy:
    async def test_page_fetched_with_first_agent(self, http_server):
        agents = []

        async def home(request):
            agents.append(request.headers["User-Agent"])
            return web.Response(text=GOOD_HTML, content_type="text/html")

        server = await http_server(web.get("/", home))
        page = await HttpFetchStrategy(timeout=5).fetch(str(server.make_url("/")))

        assert page.strategy == "http"
        assert page.title == "Example Bakery"
        assert page.content.startswith("Fresh bread")
        assert page.crawler_access.successful_agent == "browser"
        assert page.crawler_access.blocked_agents == []
        assert agents == [USER_AGENTS[0][1]]

    async def test_blocked_agent_rotates_to_next(self, http_server):
        async def home(request):
            if "GPTBot" not in request.headers["User-Agent"]:
                return web.Response(status=403, text="Forbidden")
            return web.Response(text=GOOD_HTML, content_type="text/html")

        server = await http_server(web.get("/", home))
        page = await HttpFetchStrategy(timeout=5).fetch(str(server.make_url("/")))

        assert page.crawler_access.successful_agent == "gptbot"
        assert page.crawler_access.blocked_agents == ["browser"]

    async def test_server_error_raises_fetch_error(self, http_server):
        hits = []

        async def home(request):
            hits.append(request.headers["User-Agent"])
            return web.Response(status=503, text="down for maintenance")

        server = await http_server(web.get("/", home))
        with pytest.raises(FetchError) as exc:
            await HttpFetchStrategy(timeout=5).fetch(str(server.make_url("/")))

        assert not isinstance(exc.value, FetchTimeout)
        assert exc.value.status == 503
        assert len(hits) == len(USER_AGENTS)

    async def test_slow_site_raises_timeout(self, http_server):
        hits = []

        async def home(request):
            hits.append(1)
            await asyncio.sleep(1)
            return web.Response(text=GOOD_HTML, content_type="text/html")

        server = await http_server(web.get("/", home))
        with pytest.raises(FetchTimeout):
            await HttpFetchStrategy(timeout=0.2).fetch(str(server.make_url("/")))
        assert len(hits) == 1

    async def test_error_page_for_every_agent_is_returned_as_is(self, http_server):
        async def home(request):
            return web.Response(text=BLOCKED_HTML, content_type="text/html")

        server = await http_server(web.get("/", home))
        page = await HttpFetchStrategy(timeout=5).fetch(str(server.make_url("/")))

        assert page.title == "Access Denied"
        assert page.crawler_access.successful_agent is None
        assert len(page.crawler_access.blocked_agents) == len(USER_AGENTS)


# ── Contact page email ──────────────────────────────────

class TestFindContactEmail:
    async def test_email_from_contact_us_page(self, http_server):
        async def contact_us(request):
            return web.Response(
                text='<html><body><p>Reach the owner:</p>'
                     '<a href="mailto:owner@acme-plumbing.com">owner@acme-plumbing.com</a></body></html>',
                content_type="text/html",
            )

        server = await http_server(web.get("/contact-us", contact_us))
        email = await find_contact_email("acme-plumbing.com", timeout=5, base_url=str(server.make_url("/")))
        assert email == "owner@acme-plumbing.com"

    async def test_no_email_anywhere(self, http_server):
        async def about(request):
            return web.Response(text="<html><body>Family run since 1990.</body></html>", content_type="text/html")

        server = await http_server(web.get("/about", about))
        assert await find_contact_email("acme-plumbing.com", timeout=5, base_url=str(server.make_url("/"))) is None


# ── Rendering engine ────────────────────────────────────

class TestRenderingEngine:
    async def test_released_when_outermost_session_exits(self):
        engine = RenderingEngine()
        engine._shutdown = AsyncMock()
        async with engine.session():
            async with engine.session():
                pass
            engine._shutdown.assert_not_awaited()
        engine._shutdown.assert_awaited_once()

    async def test_released_on_error(self):
        engine = RenderingEngine()
        engine._shutdown = AsyncMock()
        with pytest.raises(RuntimeError):
            async with engine.session():
                raise RuntimeError("audit blew up")
        engine._shutdown.assert_awaited_once()

    async def test_launches_once(self):
        engine = RenderingEngine()
        browser = MagicMock()
        browser.new_page = AsyncMock(return_value=MagicMock())
        browser.close = AsyncMock()

        async def _fake_launch():
            engine._browser = browser

        engine._launch = AsyncMock(side_effect=_fake_launch)
        async with engine.session():
            await engine.new_page()
            await engine.new_page()
            assert engine.is_running
        assert engine._launch.await_count == 1
        assert browser.new_page.await_count == 2
        browser.close.assert_awaited_once()
        assert not engine.is_running


class TestBrowserFetchStrategy:
    def _engine_with_page(self, page):
        engine = RenderingEngine()
        engine.new_page = AsyncMock(return_value=page)
        engine._shutdown = AsyncMock()
        return engine

    async def test_rendered_page(self):
        page = MagicMock()
        page.goto = AsyncMock(return_value=MagicMock(status=200))
        page.wait_for_timeout = AsyncMock()
        page.content = AsyncMock(return_value=GOOD_HTML)
        page.title = AsyncMock(return_value="Example Bakery | Home")
        page.close = AsyncMock()
        engine = self._engine_with_page(page)

        result = await BrowserFetchStrategy(engine, timeout_ms=1000, settle_ms=0).fetch(URL)

        assert result.strategy == "browser"
        assert result.title == "Example Bakery | Home"
        assert result.content.startswith("Fresh bread")
        page.close.assert_awaited_once()
        engine._shutdown.assert_awaited_once()

    async def test_timeout_maps_to_fetch_timeout(self):
        from playwright.async_api import TimeoutError as PlaywrightTimeoutError

        page = MagicMock()
        page.goto = AsyncMock(side_effect=PlaywrightTimeoutError("Timeout 1000ms exceeded"))
        page.close = AsyncMock()
        engine = self._engine_with_page(page)

        with pytest.raises(FetchTimeout):
            await BrowserFetchStrategy(engine, timeout_ms=1000, settle_ms=0).fetch(URL)
        page.close.assert_awaited_once()

    async def test_http_error_status(self):
        page = MagicMock()
        page.goto = AsyncMock(return_value=MagicMock(status=404))
        page.close = AsyncMock()
        engine = self._engine_with_page(page)

        with pytest.raises(FetchError) as exc:
            await BrowserFetchStrategy(engine, timeout_ms=1000, settle_ms=0).fetch(URL)
        assert exc.value.status == 404


# ── MX lookup ───────────────────────────────────────────

class TestHasMxRecord:
    async def test_domain_with_mx(self):
        with patch("dns.asyncresolver.resolve", new=AsyncMock(return_value=["mx1"])) as resolve:
            assert await has_mx_record("hello@example-bakery.com")
        assert resolve.await_args.args[:2] == ("example-bakery.com", "MX")

    async def test_domain_without_mx(self):
        with patch("dns.asyncresolver.resolve", new=AsyncMock(side_effect=dns.exception.DNSException("no answer"))):
            assert not await has_mx_record("hello@nowhere.invalid")

    async def test_no_answer(self):
        with patch("dns.asyncresolver.resolve", new=AsyncMock(side_effect=dns.resolver.NoAnswer())):
            assert not await has_mx_record("hello@example-bakery.com")

    async def test_network_error(self):
        with patch("dns.asyncresolver.resolve", new=AsyncMock(side_effect=OSError("network unreachable"))):
            assert not await has_mx_record("hello@example-bakery.com")

    async def test_missing_domain_skips_lookup(self):
        with patch("dns.asyncresolver.resolve", new=AsyncMock()) as resolve:
            assert not await has_mx_record("hello@")
        resolve.assert_not_awaited()
