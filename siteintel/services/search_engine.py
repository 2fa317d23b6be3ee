"""
Search Engine — business discovery through web search with provider fallback.

Providers are tried in order (Serper → Brave → DuckDuckGo HTML). A provider
is skipped when it has no API key, and abandoned for the next one on a
non-2xx response, an exception, or zero usable results after filtering.
Hits are filtered through ``domain_rules`` (directories, social, high
authority) and de-duplicated by hostname.
"""

import logging
import math
from dataclasses import dataclass
from typing import Optional

import aiohttp
from bs4 import BeautifulSoup

from siteintel.config import settings
from siteintel.errors import SearchError
from siteintel.services.domain_rules import reject_reason
from siteintel.services.url_normalizer import domain_key

logger = logging.getLogger("siteintel.search")

# ─── Constants ─────────────────────────────────────────────────────────
SERPER_URL = "https://google.serper.dev/search"
SERPER_PAGE_SIZE = 10
BRAVE_URL = "https://api.search.brave.com/res/v1/web/search"
BRAVE_MAX_COUNT = 20
BRAVE_MAX_OFFSET = 9
DUCKDUCKGO_URL = "https://html.duckduckgo.com/html/"


@dataclass
class SearchHit:
    url: str
    title: str = ""


@dataclass
class Candidate:
    domain: str
    display_name: str
    city: Optional[str] = None
    state: Optional[str] = None


def build_query(industry: str, city: str, state: Optional[str] = None) -> str:
    return f"{industry} {city} {state}" if state else f"{industry} {city}"


def name_from_domain(domain: str) -> str:
    label = domain.split(".")[0]
    return label[:1].upper() + label[1:]


# ═══════════════════════════════════════════════════════════════════════
# Providers
# ═══════════════════════════════════════════════════════════════════════

class SearchProvider:
    name = "base"

    def __init__(self, timeout: Optional[float] = None):
        self.timeout = aiohttp.ClientTimeout(total=timeout or settings.search_timeout_seconds)

    @property
    def enabled(self) -> bool:
        return True

    async def search(self, query: str, count: int, offset: int = 0) -> list[SearchHit]:
        raise NotImplementedError


class SerperSearchProvider(SearchProvider):
    """Google results via serper.dev — 10 results per page, one credit per page."""

    name = "serper"

    def __init__(self, api_key: Optional[str] = None, timeout: Optional[float] = None,
                 endpoint: str = SERPER_URL):
        super().__init__(timeout)
        self.api_key = settings.serper_api_key if api_key is None else api_key
        self.endpoint = endpoint

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    async def search(self, query: str, count: int, offset: int = 0) -> list[SearchHit]:
        pages = min(math.ceil(count / SERPER_PAGE_SIZE), 10)
        first_page = offset // SERPER_PAGE_SIZE + 1
        hits: list[SearchHit] = []
        headers = {"X-API-KEY": self.api_key, "Content-Type": "application/json"}

        async with aiohttp.ClientSession(timeout=self.timeout) as session:
            for page in range(first_page, first_page + pages):
                body = {"q": query, "num": SERPER_PAGE_SIZE, "page": page, "gl": "us", "hl": "en"}
                async with session.post(self.endpoint, json=body, headers=headers) as resp:
                    if resp.status != 200:
                        text = await resp.text()
                        if not hits:
                            raise SearchError(f"Serper HTTP {resp.status}: {text[:200]}")
                        logger.warning("Serper page %d failed (%d), keeping %d hits", page, resp.status, len(hits))
                        break
                    data = await resp.json()
                organic = data.get("organic") or []
                if not organic:
                    break
                hits.extend(
                    SearchHit(url=r.get("link", ""), title=r.get("title", ""))
                    for r in organic if r.get("link")
                )
        return hits


class BraveSearchProvider(SearchProvider):
    name = "brave"

    def __init__(self, api_key: Optional[str] = None, timeout: Optional[float] = None,
                 endpoint: str = BRAVE_URL):
        super().__init__(timeout)
        self.api_key = settings.brave_search_api_key if api_key is None else api_key
        self.endpoint = endpoint

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    async def search(self, query: str, count: int, offset: int = 0) -> list[SearchHit]:
        page_size = max(1, min(count, BRAVE_MAX_COUNT))
        # Brave's offset is a page index, not a result index
        params = {
            "q": query,
            "count": page_size,
            "offset": min(offset // page_size, BRAVE_MAX_OFFSET),
        }
        headers = {"Accept": "application/json", "X-Subscription-Token": self.api_key}
        async with aiohttp.ClientSession(timeout=self.timeout) as session:
            async with session.get(self.endpoint, params=params, headers=headers) as resp:
                if resp.status != 200:
                    raise SearchError(f"Brave HTTP {resp.status}")
                data = await resp.json()
        results = (data.get("web") or {}).get("results") or []
        return [SearchHit(url=r["url"], title=r.get("title", "")) for r in results if r.get("url")]


class DuckDuckGoSearchProvider(SearchProvider):
    """Keyless fallback: scrape the HTML results page."""

    name = "duckduckgo"

    def __init__(self, timeout: Optional[float] = None, endpoint: str = DUCKDUCKGO_URL):
        super().__init__(timeout)
        self.endpoint = endpoint

    async def search(self, query: str, count: int, offset: int = 0) -> list[SearchHit]:
        params = {"q": query}
        if offset:
            params["s"] = str(offset)
        headers = {"User-Agent": settings.user_agent}
        async with aiohttp.ClientSession(timeout=self.timeout) as session:
            async with session.get(self.endpoint, params=params, headers=headers) as resp:
                if resp.status != 200:
                    raise SearchError(f"DuckDuckGo HTTP {resp.status}")
                html = await resp.text()
        return parse_duckduckgo(html)


def parse_duckduckgo(html: str) -> list[SearchHit]:
    """Result URLs live in ``.result__url`` (shown without scheme), titles in ``.result__a``."""
    soup = BeautifulSoup(html, "lxml")
    hits: list[SearchHit] = []
    for result in soup.select(".result"):
        url_el = result.select_one(".result__url")
        if url_el is None:
            continue
        text = url_el.get_text(strip=True)
        if not text:
            continue
        if not text.startswith(("http://", "https://")):
            text = f"https://{text}"
        title_el = result.select_one(".result__a")
        hits.append(SearchHit(url=text, title=title_el.get_text(" ", strip=True) if title_el else ""))
    if not hits:
        # Older markup without .result wrappers
        for url_el in soup.select(".result__url"):
            text = url_el.get_text(strip=True)
            if text:
                hits.append(SearchHit(url=text if "://" in text else f"https://{text}"))
    return hits


# ═══════════════════════════════════════════════════════════════════════
# Filtering + fallback chain
# ═══════════════════════════════════════════════════════════════════════

def filter_candidates(
    hits: list[SearchHit],
    count: int,
    city: Optional[str] = None,
    state: Optional[str] = None,
) -> list[Candidate]:
    """Drop non-business hosts, de-duplicate by hostname, stop at ``count``."""
    candidates: list[Candidate] = []
    seen: set[str] = set()
    rejected: dict[str, int] = {}

    for hit in hits:
        if len(candidates) >= count:
            break
        domain = domain_key(hit.url)
        if domain in seen:
            continue
        reason = reject_reason(domain, hit.url, hit.title)
        if reason:
            rejected[reason] = rejected.get(reason, 0) + 1
            continue
        seen.add(domain)
        candidates.append(Candidate(
            domain=domain,
            display_name=(hit.title or "").strip() or name_from_domain(domain),
            city=city,
            state=state,
        ))

    if rejected:
        logger.debug("Filtered hits: %s", rejected)
    return candidates


class BusinessSearch:
    """Ordered provider chain returning filtered ``Candidate`` lists."""

    def __init__(self, providers: Optional[list[SearchProvider]] = None):
        if providers is None:
            providers = [SerperSearchProvider(), BraveSearchProvider(), DuckDuckGoSearchProvider()]
        self.providers = providers

    async def search(
        self,
        query: str,
        count: int,
        offset: int = 0,
        city: Optional[str] = None,
        state: Optional[str] = None,
    ) -> list[Candidate]:
        for provider in self.providers:
            if not provider.enabled:
                continue
            try:
                hits = await provider.search(query, count, offset)
            except Exception as e:
                logger.warning("❌ %s search failed for '%s': %s", provider.name, query, e)
                continue

            candidates = filter_candidates(hits, count, city, state)
            logger.info(
                "🔎 %s: %d hits → %d candidates for '%s' (offset %d)",
                provider.name, len(hits), len(candidates), query, offset,
            )
            if candidates:
                return candidates

        logger.warning("⚠️ All search providers came back empty for '%s'", query)
        return []
