"""
Shared test fixtures — async DB, fake fetch/search adapters, FastAPI test client.
"""

from typing import Optional

import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from siteintel.database import Base
from siteintel.main import app
from siteintel.routes import get_search, get_store
from siteintel.services.audit_store import AuditStore
from siteintel.services.fetch_engine import FetchedPage, FetchStrategy, build_fetched_page
from siteintel.services.search_engine import BusinessSearch, SearchHit, SearchProvider


# ── Test Database (SQLite in-memory) ────────────────────

TEST_DB_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture()
async def db_engine():
    from siteintel import models  # noqa: F401

    engine = create_async_engine(TEST_DB_URL, echo=False, poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture()
async def session_factory(db_engine):
    return async_sessionmaker(db_engine, expire_on_commit=False)


@pytest_asyncio.fixture()
async def store(session_factory):
    return AuditStore(session_factory)


@pytest_asyncio.fixture()
async def client(store):
    """FastAPI test client with the test DB store and no live search providers."""
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_search] = lambda: BusinessSearch(providers=[])

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# ── Sample Pages ────────────────────────────────────────

DENTIST_META = (
    "Gentle family and cosmetic dentistry in Austin, TX. Same-day appointments, "
    "emergency care and friendly staff who make every visit easy."
)

DENTIST_FILLER = " ".join(["Comfortable, modern dental care for the whole family."] * 25)

SAMPLE_DENTIST_HTML = f"""<!DOCTYPE html>
<html lang="en">
<head>
  <title>Bright Smile Dentistry | Family Dentist in Austin</title>
  <meta name="description" content="{DENTIST_META}">
  <meta name="viewport" content="width=device-width, initial-scale=1">
</head>
<body>
  <nav><a href="/services">Services</a> <a href="/about">About</a> <a href="/contact">Contact</a></nav>
  <h1>Gentle Family Dentistry in Austin</h1>
  <img src="/img/team.jpg" alt="Our dental team">
  <h2>Our Services</h2>
  <p>{DENTIST_FILLER}</p>
  <h2>Visit Us</h2>
  <p>Visit 1200 Congress Avenue, Austin, TX 78701 or call (512) 555-0147.
     Proudly serving Austin families since 2024.</p>
  <footer><a href="mailto:hello@brightsmiledentistry.com">hello@brightsmiledentistry.com</a></footer>
</body>
</html>
"""

EMPTY_HTML = "<html><body></body></html>"


# ── Fakes ───────────────────────────────────────────────

class FakeStrategy(FetchStrategy):
    """Fetch stage that returns canned HTML or raises a canned error."""

    def __init__(self, name: str, html: str = "", error: Optional[Exception] = None):
        self.name = name
        self.html = html
        self.error = error
        self.calls = 0

    async def fetch(self, url: str) -> FetchedPage:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return build_fetched_page(url, self.html, self.name)


class FakeFetcher:
    """Stand-in for ContentFetcher: html per domain substring, or an error."""

    def __init__(self, html: str = SAMPLE_DENTIST_HTML, error: Optional[Exception] = None,
                 errors: Optional[dict] = None):
        self.html = html
        self.error = error
        self.errors = errors or {}
        self.calls: list[str] = []

    async def fetch(self, url: str) -> FetchedPage:
        self.calls.append(url)
        for needle, err in self.errors.items():
            if needle in url:
                raise err
        if self.error is not None:
            raise self.error
        return build_fetched_page(url, self.html, "http")


class FakeProvider(SearchProvider):
    """Search provider driven by a function of the offset."""

    def __init__(self, name: str = "fake", pages=None, error: Optional[Exception] = None):
        super().__init__(timeout=1)
        self.name = name
        self.pages = pages or (lambda offset: [])
        self.error = error
        self.calls: list[tuple[str, int, int]] = []

    async def search(self, query: str, count: int, offset: int = 0) -> list[SearchHit]:
        self.calls.append((query, count, offset))
        if self.error is not None:
            raise self.error
        return self.pages(offset)


def fake_pdf(record, branding=None) -> bytes:
    return b"%PDF-1.7 fake"


@pytest.fixture
def fetcher():
    return FakeFetcher()


@pytest_asyncio.fixture()
async def http_server():
    """Start an in-process aiohttp server from route definitions: ``await http_server(web.get(...))``."""
    servers: list[TestServer] = []

    async def _start(*routes) -> TestServer:
        app = web.Application()
        app.add_routes(routes)
        server = TestServer(app)
        await server.start_server()
        servers.append(server)
        return server

    yield _start
    for server in servers:
        await server.close()
