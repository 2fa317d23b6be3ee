"""
FastAPI Application — entry point.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from siteintel import __version__
from siteintel.config import settings
from siteintel.database import close_db, init_db
from siteintel.routes import router
from siteintel.services.fetch_engine import RenderingEngine

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s  %(levelname)-8s  %(name)s  %(message)s",
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown hook."""
    logger.info("🚀 Starting Site Intel API v%s", __version__)
    await init_db()
    logger.info("✅ Database ready")
    if not (settings.serper_api_key or settings.brave_search_api_key):
        logger.info("ℹ️ No search API keys configured — using DuckDuckGo only")

    yield

    await app.state.rendering_engine.aclose()
    await close_db()
    logger.info("👋 Shutdown complete")


app = FastAPI(
    title="Site Intel API",
    description="Prospect discovery and website audits: fetch, score, classify, report.",
    version=__version__,
    lifespan=lifespan,
)

# Shared headless browser, launched on first use
app.state.rendering_engine = RenderingEngine()
app.state.accessibility_scanner = None
app.state.fact_checker = None

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(router, prefix="/api/v1")


@app.get("/", include_in_schema=False)
async def root():
    return {
        "service": "Site Intel API",
        "version": __version__,
        "docs": "/docs",
    }


def run() -> None:
    import uvicorn

    uvicorn.run("siteintel.main:app", host=settings.host, port=settings.port)
