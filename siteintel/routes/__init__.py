"""
API Routes — lead discovery, site audits, on-demand reports, health.
"""

import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import Response

from siteintel import __version__
from siteintel.errors import NoLeadsFoundError, PersistenceError
from siteintel.schemas import (
    AuditListResponse,
    AuditOut,
    AuditRequest,
    AuditResponse,
    DiscoverRequest,
    DiscoverResponse,
    HealthResponse,
)
from siteintel.services.audit_engine import AuditOptions, AuditOrchestrator, AuditResult
from siteintel.services.audit_store import AuditStore
from siteintel.services.discovery_engine import DiscoveryEngine, DiscoveryRequest
from siteintel.services.fetch_engine import default_fetcher
from siteintel.services.report_engine import Branding, render_report_pdf
from siteintel.services.search_engine import BusinessSearch

logger = logging.getLogger(__name__)

router = APIRouter()


# ═══════════════════════════════════════════════════════════════════
# DEPENDENCIES
# ═══════════════════════════════════════════════════════════════════

def get_store() -> AuditStore:
    return AuditStore()


def get_search() -> BusinessSearch:
    return BusinessSearch()


def get_discovery_engine(
    request: Request,
    store: AuditStore = Depends(get_store),
    search: BusinessSearch = Depends(get_search),
) -> DiscoveryEngine:
    engine = request.app.state.rendering_engine
    return DiscoveryEngine(search, default_fetcher(engine), engine=engine, store=store)


def get_audit_orchestrator(
    request: Request,
    store: AuditStore = Depends(get_store),
) -> AuditOrchestrator:
    state = request.app.state
    return AuditOrchestrator(
        store,
        default_fetcher(state.rendering_engine),
        scanner=getattr(state, "accessibility_scanner", None),
        fact_checker=getattr(state, "fact_checker", None),
    )


def _audit_response(result: AuditResult) -> AuditResponse:
    return AuditResponse(
        audit=AuditOut.model_validate(result.record),
        is_existing=result.is_existing,
        age_hours=result.age_hours,
        report_url=result.report_url,
    )


# ═══════════════════════════════════════════════════════════════════
# HEALTH
# ═══════════════════════════════════════════════════════════════════

@router.get("/health", response_model=HealthResponse)
async def health(search: BusinessSearch = Depends(get_search)):
    return HealthResponse(
        version=__version__,
        search_providers=[p.name for p in search.providers if p.enabled],
    )


# ═══════════════════════════════════════════════════════════════════
# LEAD DISCOVERY
# ═══════════════════════════════════════════════════════════════════

@router.post("/leads/discover", response_model=DiscoverResponse, tags=["leads"])
async def discover_leads(
    body: DiscoverRequest,
    engine: DiscoveryEngine = Depends(get_discovery_engine),
):
    """Search, score and rank businesses for an industry + location."""
    if not body.industry.strip() or not body.city.strip():
        raise HTTPException(status_code=400, detail="Industry and city are required")

    logger.info("Discovering leads: %s in %s, %s", body.industry, body.city, body.state or "USA")
    request = DiscoveryRequest(
        industry=body.industry.strip(),
        city=body.city.strip(),
        state=(body.state or "").strip() or None,
        target=body.limit,
        offset=body.offset,
    )
    try:
        result = await engine.discover(request, user_id=body.user_id)
    except NoLeadsFoundError:
        raise HTTPException(
            status_code=404,
            detail="No leads found. Try a different search or expand your criteria.",
        )

    return DiscoverResponse(
        leads=[lead.as_dict() for lead in result.leads],
        summary=result.summary,
        attempts=result.attempts,
    )


# ═══════════════════════════════════════════════════════════════════
# AUDITS
# ═══════════════════════════════════════════════════════════════════

@router.post("/audits", response_model=AuditResponse, tags=["audits"])
async def create_audit(
    body: AuditRequest,
    orchestrator: AuditOrchestrator = Depends(get_audit_orchestrator),
):
    """Audit one site, or return a recent audit of the same domain."""
    options = AuditOptions(
        check_recent=body.check_recent,
        recent_threshold_hours=body.recent_threshold_hours,
        skip_accessibility=body.skip_accessibility,
        skip_content=body.skip_content,
        branding=Branding(**body.branding.model_dump()) if body.branding else None,
    )
    try:
        result = await orchestrator.run_audit(body.url, body.user_id, options)
    except PersistenceError as e:
        raise HTTPException(status_code=500, detail=str(e))
    return _audit_response(result)


@router.get("/audits", response_model=AuditListResponse, tags=["audits"])
async def list_audits(
    user_id: str = Query(..., alias="userId"),
    domain: Optional[str] = Query(None),
    limit: int = Query(10, ge=1, le=100),
    orchestrator: AuditOrchestrator = Depends(get_audit_orchestrator),
):
    if domain:
        records = await orchestrator.get_audits_by_domain(user_id, domain, limit)
    else:
        records = await orchestrator.store.get_audit_records_by_user(user_id, limit)
    return AuditListResponse(
        audits=[AuditOut.model_validate(r) for r in records],
        total=len(records),
    )


@router.get("/audits/{audit_id}", response_model=AuditResponse, tags=["audits"])
async def get_audit(
    audit_id: str,
    orchestrator: AuditOrchestrator = Depends(get_audit_orchestrator),
):
    result = await orchestrator.get_audit(audit_id)
    if not result:
        raise HTTPException(status_code=404, detail="Audit not found")
    return _audit_response(result)


@router.get("/audits/{audit_id}/pdf", tags=["audits"])
async def get_audit_pdf(
    audit_id: str,
    store: AuditStore = Depends(get_store),
):
    """Generate the report PDF on demand from the stored audit."""
    record = await store.get_audit_record_by_id(audit_id)
    if not record:
        raise HTTPException(status_code=404, detail="Audit not found")
    asset = await store.get_asset_for_audit(audit_id)
    branding = Branding(**asset.branding) if asset and asset.branding else None
    # WeasyPrint is synchronous; keep it off the event loop
    pdf = await asyncio.to_thread(render_report_pdf, record, branding)
    filename = f"audit-{record.domain}.pdf"
    return Response(
        content=pdf,
        media_type="application/pdf",
        headers={"Content-Disposition": f'inline; filename="{filename}"'},
    )
