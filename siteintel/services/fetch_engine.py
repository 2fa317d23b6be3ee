"""
Fetch Engine — two-stage page retrieval with content extraction.

Stage 1 is a plain aiohttp GET (rotating through a few user agents and
recording which ones get blocked). If that yields fewer than
``min_content_chars`` of extractable text, or an error/bot-wall page,
stage 2 renders the page in headless Chromium via Playwright.

The browser is a shared, lazily-launched resource guarded by
``RenderingEngine.session()``: it is released as soon as the outermost
session exits, on success and on error.

Also provides ``parse_page`` — the structural parse the SEO scorer consumes.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Optional
from urllib.parse import urljoin

import aiohttp
import dns.asyncresolver
import dns.exception
from bs4 import BeautifulSoup

from siteintel.config import settings
from siteintel.errors import ContentExtractionError, FetchError, FetchTimeout
from siteintel.services.domain_rules import EMAIL_REGEX, extract_best_email

logger = logging.getLogger("siteintel.fetch")

# ─── Constants ─────────────────────────────────────────────────────────

USER_AGENTS = [
    ("browser", settings.user_agent),
    ("gptbot", "Mozilla/5.0 AppleWebKit/537.36 (KHTML, like Gecko); compatible; GPTBot/1.0; +https://openai.com/gptbot"),
    ("claudebot", "Mozilla/5.0 AppleWebKit/537.36 (KHTML, like Gecko); compatible; ClaudeBot/1.0; +claudebot@anthropic.com"),
    ("googlebot", "Mozilla/5.0 (compatible; Googlebot/2.1; +http://www.google.com/bot.html)"),
]

ACCEPT_HTML = "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8"

NOISE_SELECTOR = (
    "script, style, noscript, nav, footer, header, aside, .sidebar, #sidebar, "
    "#comments, .comments, .ad, .advertisement, .social-share"
)

# Ranked "main content" candidates
CONTENT_SELECTORS = [
    "article", ".post-content", ".entry-content", ".content-area",
    ".blog-post", ".post", "main", "#content", ".site-content",
    '[role="main"]', ".blog", "#main", ".main-content", ".article-content",
    ".post-body", ".article-body", ".story-content", ".page-content",
    ".single-post", ".hentry", ".post-entry", "#article", ".article",
]

# Status/bot-wall phrases; matched against the title and the opening body text
ERROR_PAGE_PATTERNS = [
    "403 forbidden", "404 not found", "500 internal server error",
    "502 bad gateway", "503 service unavailable", "access denied",
    "attention required", "ray id:", "you have been blocked",
    "verify you are human", "please enable javascript",
    "this site requires javascript", "enable javascript and cookies",
]

# Matched against the title only
ERROR_TITLE_PATTERNS = ERROR_PAGE_PATTERNS + [
    "permission denied", "page not found", "error occurred", "cloudflare",
    "just a moment", "captcha",
]

CONTACT_PATHS = ["/contact", "/contact-us", "/about", "/about-us"]


# ─── Data ──────────────────────────────────────────────────────────────

@dataclass
class CrawlerAccess:
    """Which user agents the site refused during the HTTP stage."""

    successful_agent: Optional[str] = None
    blocked_agents: list[str] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {"successful_agent": self.successful_agent, "blocked_agents": list(self.blocked_agents)}


@dataclass
class FetchedPage:
    url: str
    html: str
    title: str
    meta_description: str
    content: str
    strategy: str
    crawler_access: Optional[CrawlerAccess] = None


@dataclass
class ScrapedPage:
    title: str = ""
    meta_description: str = ""
    has_structured_data: bool = False
    has_viewport_tag: bool = False
    images_total: int = 0
    images_with_alt: int = 0
    h1_count: int = 0
    h1_text: str = ""
    h2_count: int = 0
    internal_link_count: int = 0
    body_text: str = ""
    body_word_count: int = 0
    outbound_link_hrefs: list[str] = field(default_factory=list)
    soup: Optional[BeautifulSoup] = field(default=None, repr=False, compare=False)


# ─── Extraction ────────────────────────────────────────────────────────

def is_error_page(content: str, title: str) -> bool:
    """Error / bot-wall pages: a title pattern, or a status phrase in the first 500 chars of content."""
    head = (content or "")[:500].lower()
    t = (title or "").lower()
    return any(p in t for p in ERROR_TITLE_PATTERNS) or any(p in head for p in ERROR_PAGE_PATTERNS)


def _title_of(soup: BeautifulSoup) -> str:
    if soup.title and soup.title.get_text(strip=True):
        return soup.title.get_text(strip=True)
    h1 = soup.find("h1")
    return h1.get_text(" ", strip=True) if h1 else ""


def _meta_description(soup: BeautifulSoup) -> str:
    meta = soup.find("meta", attrs={"name": "description"})
    return (meta.get("content") or "").strip() if meta else ""


def extract_content(html: str) -> tuple[str, str, str]:
    """Return (title, meta_description, main_text) from raw HTML.

    Picks the content region with the most text (at least ``min_region_chars``);
    falls back to the whole body when no region reaches ``min_content_chars``.
    Returns an empty text when nothing usable is found.
    """
    soup = BeautifulSoup(html or "", "lxml")
    title = _title_of(soup)
    meta = _meta_description(soup)

    for el in soup.select(NOISE_SELECTOR):
        el.decompose()

    best_text = ""
    for selector in CONTENT_SELECTORS:
        el = soup.select_one(selector)
        if el is None:
            continue
        text = el.get_text(" ", strip=True)
        if len(text) > len(best_text) and len(text) >= settings.min_region_chars:
            best_text = text

    if len(best_text) < settings.min_content_chars:
        body = soup.body or soup
        body_text = body.get_text(" ", strip=True)
        if len(body_text) >= settings.min_content_chars:
            return title, meta, body_text[: settings.max_content_chars]

    return title, meta, best_text[: settings.max_content_chars]


def build_fetched_page(url: str, html: str, strategy: str) -> FetchedPage:
    title, meta, content = extract_content(html)
    return FetchedPage(
        url=url, html=html, title=title, meta_description=meta,
        content=content, strategy=strategy,
    )


def parse_page(html: str, domain: str) -> ScrapedPage:
    """Structural parse of a page for SEO scoring. Works on the raw, uncleaned markup."""
    soup = BeautifulSoup(html or "", "lxml")

    title = soup.title.get_text(strip=True) if soup.title else ""
    h1s = soup.find_all("h1")
    hrefs = [a.get("href") for a in soup.find_all("a") if a.get("href")]
    bare = domain.lower().removeprefix("www.")
    internal = [h for h in hrefs if h.startswith("/") or (bare and bare in h.lower())]

    images = soup.find_all("img")
    body = soup.body or soup
    text_soup = BeautifulSoup(str(body), "lxml")
    for el in text_soup.select("script, style, noscript"):
        el.decompose()
    body_text = text_soup.get_text(" ", strip=True)

    return ScrapedPage(
        title=title,
        meta_description=_meta_description(soup),
        has_structured_data=bool(soup.select('script[type="application/ld+json"]')),
        has_viewport_tag=soup.find("meta", attrs={"name": "viewport"}) is not None,
        images_total=len(images),
        images_with_alt=sum(1 for img in images if img.has_attr("alt")),
        h1_count=len(h1s),
        h1_text=h1s[0].get_text(" ", strip=True) if h1s else "",
        h2_count=len(soup.find_all("h2")),
        internal_link_count=len(internal),
        body_text=body_text,
        body_word_count=len(body_text.split()),
        outbound_link_hrefs=hrefs,
        soup=soup,
    )


# ═══════════════════════════════════════════════════════════════════════
# Rendering engine (shared headless Chromium)
# ═══════════════════════════════════════════════════════════════════════

class RenderingEngine:
    """Reference-counted, lazily launched Playwright browser.

    Usage::

        async with engine.session():
            page = await engine.new_page()
            ...

    Sessions nest; the browser is closed when the outermost one exits.
    """

    def __init__(self, headless: bool = True):
        self.headless = headless
        self._playwright = None
        self._browser = None
        self._users = 0
        self._lock = asyncio.Lock()

    @property
    def is_running(self) -> bool:
        return self._browser is not None

    @asynccontextmanager
    async def session(self):
        self._users += 1
        try:
            yield self
        finally:
            self._users -= 1
            if self._users == 0:
                await self._shutdown()

    async def new_page(self):
        async with self._lock:
            if self._browser is None:
                await self._launch()
        return await self._browser.new_page(
            viewport={"width": 1920, "height": 1080},
            user_agent=settings.user_agent,
        )

    async def _launch(self) -> None:
        from playwright.async_api import async_playwright

        logger.info("🧭 Launching headless Chromium")
        self._playwright = await async_playwright().start()
        self._browser = await self._playwright.chromium.launch(
            headless=self.headless,
            args=["--no-sandbox", "--disable-gpu"],
        )

    async def _shutdown(self) -> None:
        async with self._lock:
            browser, pw = self._browser, self._playwright
            self._browser = None
            self._playwright = None
        if browser is not None:
            try:
                await browser.close()
            except Exception as e:
                logger.warning("Browser close failed: %s", e)
        if pw is not None:
            await pw.stop()
            logger.info("🧭 Chromium released")

    async def aclose(self) -> None:
        """Force release regardless of open sessions (app shutdown)."""
        self._users = 0
        await self._shutdown()


# ═══════════════════════════════════════════════════════════════════════
# Strategies
# ═══════════════════════════════════════════════════════════════════════

class FetchStrategy:
    """One way of turning a URL into HTML. Raises FetchError on failure."""

    name = "base"

    async def fetch(self, url: str) -> FetchedPage:
        raise NotImplementedError


class HttpFetchStrategy(FetchStrategy):
    name = "http"

    def __init__(self, timeout: Optional[float] = None, user_agents: Optional[list] = None):
        self.timeout = timeout or settings.fetch_timeout_seconds
        self.user_agents = user_agents or USER_AGENTS

    async def _get(self, session: aiohttp.ClientSession, url: str, agent: str) -> str:
        try:
            async with session.get(
                url,
                headers={"User-Agent": agent, "Accept": ACCEPT_HTML},
                allow_redirects=True,
                ssl=False,
            ) as resp:
                if resp.status >= 400:
                    raise FetchError(url, f"HTTP {resp.status}", status=resp.status)
                return await resp.text(errors="replace")
        except asyncio.TimeoutError as e:
            raise FetchTimeout(url, self.timeout) from e
        except aiohttp.ClientError as e:
            raise FetchError(url, str(e) or type(e).__name__) from e

    async def fetch(self, url: str) -> FetchedPage:
        access = CrawlerAccess()
        last_error: Optional[FetchError] = None
        fallback: Optional[FetchedPage] = None
        timeout = aiohttp.ClientTimeout(total=self.timeout)

        async with aiohttp.ClientSession(timeout=timeout) as session:
            for name, agent in self.user_agents:
                try:
                    html = await self._get(session, url, agent)
                except FetchTimeout:
                    # A slow site stays slow for every agent
                    access.blocked_agents.append(name)
                    raise
                except FetchError as e:
                    access.blocked_agents.append(name)
                    last_error = e
                    continue

                page = build_fetched_page(url, html, self.name)
                page.crawler_access = access
                if is_error_page(page.content, page.title):
                    access.blocked_agents.append(name)
                    last_error = FetchError(url, f"error page served to {name}")
                    fallback = fallback or page
                    continue
                access.successful_agent = name
                return page

        if fallback is not None:
            return fallback
        raise last_error or FetchError(url, "all user agents failed")


class BrowserFetchStrategy(FetchStrategy):
    name = "browser"

    def __init__(self, engine: RenderingEngine, timeout_ms: Optional[int] = None,
                 settle_ms: Optional[int] = None):
        self.engine = engine
        self.timeout_ms = timeout_ms or settings.browser_timeout_ms
        self.settle_ms = settings.browser_settle_ms if settle_ms is None else settle_ms

    async def fetch(self, url: str) -> FetchedPage:
        from playwright.async_api import Error as PlaywrightError
        from playwright.async_api import TimeoutError as PlaywrightTimeoutError

        async with self.engine.session():
            page = await self.engine.new_page()
            try:
                response = await page.goto(url, timeout=self.timeout_ms, wait_until="networkidle")
                if response is not None and response.status >= 400:
                    raise FetchError(url, f"HTTP {response.status}", status=response.status)
                await page.wait_for_timeout(self.settle_ms)
                html = await page.content()
                rendered_title = await page.title()
            except PlaywrightTimeoutError as e:
                raise FetchTimeout(url, self.timeout_ms / 1000) from e
            except PlaywrightError as e:
                raise FetchError(url, str(e).splitlines()[0] if str(e) else "browser error") from e
            finally:
                await page.close()

        result = build_fetched_page(url, html, self.name)
        if rendered_title:
            result.title = rendered_title
        return result


# ═══════════════════════════════════════════════════════════════════════
# Content fetcher (ordered fallback chain)
# ═══════════════════════════════════════════════════════════════════════

class ContentFetcher:
    """Try each strategy in order until one yields enough clean text."""

    def __init__(self, strategies: list[FetchStrategy], min_chars: Optional[int] = None):
        self.strategies = strategies
        self.min_chars = min_chars or settings.min_content_chars

    async def fetch(self, url: str) -> FetchedPage:
        last_error: Optional[Exception] = None
        timed_out: Optional[FetchTimeout] = None
        best: Optional[FetchedPage] = None

        for strategy in self.strategies:
            try:
                page = await strategy.fetch(url)
            except FetchError as e:
                logger.info("⚠️ %s stage failed for %s: %s", strategy.name, url, e)
                last_error = e
                if isinstance(e, FetchTimeout):
                    timed_out = e
                continue

            if is_error_page(page.content, page.title):
                logger.info("⚠️ %s stage got an error page for %s", strategy.name, url)
                last_error = ContentExtractionError(url, "blocked or error page")
                continue

            if len(page.content) >= self.min_chars:
                logger.debug("✅ %s stage: %d chars from %s", strategy.name, len(page.content), url)
                return page

            logger.info(
                "⚠️ %s stage too thin for %s (%d chars), trying next",
                strategy.name, url, len(page.content),
            )
            if best is None or len(page.content) > len(best.content):
                best = page

        if best is not None and best.content:
            logger.info("Using thin %s result for %s (%d chars)", best.strategy, url, len(best.content))
            return best
        if best is None and timed_out is not None:
            raise timed_out
        if isinstance(last_error, FetchError) and best is None:
            raise last_error
        raise ContentExtractionError(url)


def default_fetcher(engine: Optional[RenderingEngine] = None) -> ContentFetcher:
    strategies: list[FetchStrategy] = [HttpFetchStrategy()]
    if engine is not None:
        strategies.append(BrowserFetchStrategy(engine))
    return ContentFetcher(strategies)


# ─── Contact page email fallback ──────────────────────────────────────

async def find_contact_email(domain: str, timeout: Optional[float] = None,
                             base_url: Optional[str] = None) -> Optional[str]:
    """Look for an outreach email on the usual contact/about pages."""
    client_timeout = aiohttp.ClientTimeout(total=timeout or settings.contact_page_timeout_seconds)
    base = base_url or f"https://{domain}"
    async with aiohttp.ClientSession(timeout=client_timeout) as session:
        for path in CONTACT_PATHS:
            try:
                async with session.get(
                    urljoin(base, path),
                    headers={"User-Agent": settings.user_agent},
                    ssl=False,
                ) as resp:
                    if resp.status != 200:
                        continue
                    html = await resp.text(errors="replace")
            except (aiohttp.ClientError, asyncio.TimeoutError):
                continue
            soup = BeautifulSoup(html, "lxml")
            text = (soup.body or soup).get_text(" ", strip=True)
            if not EMAIL_REGEX.search(html):
                continue
            email = extract_best_email(soup, text, domain)
            if email:
                return email
    return None


async def has_mx_record(email: str, lifetime: float = 5.0) -> bool:
    """True when the email's domain publishes at least one MX record."""
    domain = email.rpartition("@")[2]
    if not domain:
        return False
    try:
        answers = await dns.asyncresolver.resolve(domain, "MX", lifetime=lifetime)
        return len(answers) > 0
    except (dns.exception.DNSException, OSError) as e:
        logger.debug("MX lookup failed for %s: %s", domain, e)
        return False
