"""
Discovery Engine — find and score businesses until enough sweet-spot leads turn up.

Each attempt pulls the next page of search candidates, skips domains already
seen in this run, scores each site (fetch → parse → SEO score → classify)
and keeps every lead; "high" leads also count toward the qualified target.

The loop ends when the target is met, attempts run out, or a search page
comes back empty. If the target was missed, the best leads of any rating
are returned instead (high → medium → low). No leads at all raises
``NoLeadsFoundError``.

State lives in an explicit ``DiscoveryState`` so every termination rule can
be exercised on its own.
"""

import logging
from contextlib import nullcontext
from dataclasses import asdict, dataclass, field
from datetime import date
from typing import Optional

from siteintel.config import settings
from siteintel.errors import NoLeadsFoundError, SiteIntelError
from siteintel.services.audit_store import AuditStore
from siteintel.services.fetch_engine import (
    ContentFetcher,
    RenderingEngine,
    find_contact_email,
    has_mx_record,
    parse_page,
)
from siteintel.services.opportunity import HIGH, RATING_ORDER, classify
from siteintel.services.search_engine import BusinessSearch, Candidate, build_query
from siteintel.services.seo_scorer import SeoScore, neutral_score, score_page
from siteintel.services.url_normalizer import normalize_url

logger = logging.getLogger("siteintel.discovery")


@dataclass
class Lead:
    domain: str
    business_name: str
    city: Optional[str]
    state: Optional[str]
    overall_score: int
    technical_seo: int
    on_page_seo: int
    content_marketing: int
    local_seo: int
    has_blog: bool
    blog_post_count: int
    opportunity_rating: str
    opportunity_type: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    email: Optional[str] = None
    email_verified: Optional[bool] = None
    reachable: bool = True
    seo_issues: list[dict] = field(default_factory=list)

    def as_dict(self) -> dict:
        return asdict(self)


@dataclass
class DiscoveryRequest:
    industry: str
    city: str
    state: Optional[str] = None
    target: int = settings.discovery_default_target
    offset: int = 0
    max_attempts: int = settings.discovery_max_attempts
    page_size: int = settings.discovery_page_size

    @property
    def query(self) -> str:
        return build_query(self.industry, self.city, self.state)


@dataclass
class DiscoveryState:
    attempt: int = 0
    offset: int = 0
    seen_domains: set[str] = field(default_factory=set)
    all_leads: list[Lead] = field(default_factory=list)
    qualified_leads: list[Lead] = field(default_factory=list)
    exhausted: bool = False

    def target_reached(self, target: int) -> bool:
        return len(self.qualified_leads) >= target

    def should_continue(self, request: DiscoveryRequest) -> bool:
        return (
            not self.exhausted
            and not self.target_reached(request.target)
            and self.attempt < request.max_attempts
        )


@dataclass
class DiscoveryResult:
    leads: list[Lead]
    attempts: int
    summary: dict


def sort_by_rating(leads: list[Lead]) -> list[Lead]:
    return sorted(leads, key=lambda lead: RATING_ORDER.get(lead.opportunity_rating, 9))


def summarize(leads: list[Lead]) -> dict:
    return {
        "total": len(leads),
        "sweet_spot": sum(1 for lead in leads if lead.opportunity_rating == HIGH),
        "high_scoring": sum(1 for lead in leads if lead.overall_score > 75),
        "low_scoring": sum(1 for lead in leads if lead.overall_score < 50),
    }


def finalize(state: DiscoveryState, request: DiscoveryRequest) -> list[Lead]:
    """Qualified leads when the target was met, else the best leads of any rating."""
    if state.target_reached(request.target):
        return sort_by_rating(state.qualified_leads)
    if not state.all_leads:
        raise NoLeadsFoundError(request.query)
    return sort_by_rating(state.all_leads)[: request.target]


class DiscoveryEngine:
    def __init__(
        self,
        search: BusinessSearch,
        fetcher: ContentFetcher,
        engine: Optional[RenderingEngine] = None,
        store: Optional[AuditStore] = None,
        today: Optional[date] = None,
        enrich_contacts: bool = True,
    ):
        self.search = search
        self.fetcher = fetcher
        self.engine = engine
        self.store = store
        self.today = today
        self.enrich_contacts = enrich_contacts

    async def score_candidate(self, candidate: Candidate) -> SeoScore:
        """Fetch + score one site. Fetch failures give a neutral score, not an exception."""
        try:
            page = await self.fetcher.fetch(normalize_url(candidate.domain))
        except SiteIntelError as e:
            logger.info("⚠️ %s unreachable: %s", candidate.domain, e)
            return neutral_score(e)

        score = score_page(parse_page(page.html, candidate.domain), candidate.domain, today=self.today)
        if not score.email and self.enrich_contacts:
            score.email = await find_contact_email(candidate.domain)
        return score

    async def verify_email(self, email: Optional[str]) -> Optional[bool]:
        if not email or not self.enrich_contacts:
            return None
        return await has_mx_record(email)

    def build_lead(self, candidate: Candidate, score: SeoScore, request: DiscoveryRequest) -> Lead:
        opportunity = classify(score)
        return Lead(
            domain=candidate.domain,
            business_name=candidate.display_name,
            city=candidate.city or request.city,
            state=candidate.state or request.state,
            overall_score=score.overall,
            technical_seo=score.technical_seo,
            on_page_seo=score.on_page_seo,
            content_marketing=score.content_marketing,
            local_seo=score.local_seo,
            has_blog=score.has_blog,
            blog_post_count=score.blog_post_count,
            opportunity_rating=opportunity.rating,
            opportunity_type=opportunity.type,
            phone=score.phone,
            address=score.address,
            email=score.email,
            reachable=score.reachable,
            seo_issues=[vars(i) for i in score.ranked_issues()],
        )

    async def run_attempt(self, state: DiscoveryState, request: DiscoveryRequest) -> DiscoveryState:
        """One search page: fetch candidates, score the unseen ones, accumulate."""
        state.attempt += 1
        offset = state.offset
        state.offset += request.page_size
        logger.info(
            "🔎 Attempt %d/%d for '%s' (offset %d, %d/%d qualified)",
            state.attempt, request.max_attempts, request.query, offset,
            len(state.qualified_leads), request.target,
        )

        candidates = await self.search.search(
            request.query, request.page_size, offset, city=request.city, state=request.state,
        )
        if not candidates:
            logger.info("No candidates on attempt %d, stopping", state.attempt)
            state.exhausted = True
            return state

        for candidate in candidates:
            if candidate.domain in state.seen_domains:
                continue
            state.seen_domains.add(candidate.domain)
            try:
                score = await self.score_candidate(candidate)
                lead = self.build_lead(candidate, score, request)
                lead.email_verified = await self.verify_email(lead.email)
            except Exception as e:
                logger.error("❌ Failed to score %s: %s", candidate.domain, e)
                continue

            state.all_leads.append(lead)
            if lead.opportunity_rating == HIGH:
                state.qualified_leads.append(lead)
                logger.info("✅ Qualified lead: %s (score %d)", lead.domain, lead.overall_score)
                if state.target_reached(request.target):
                    break
        return state

    async def discover(self, request: DiscoveryRequest, user_id: Optional[str] = None) -> DiscoveryResult:
        state = DiscoveryState(offset=request.offset)
        # One browser for the whole batch, released on every exit path
        async with (self.engine.session() if self.engine else nullcontext()):
            while state.should_continue(request):
                await self.run_attempt(state, request)

        leads = finalize(state, request)
        logger.info(
            "🏁 Discovery '%s': %d leads (%d qualified, %d scored) after %d attempt(s)",
            request.query, len(leads), len(state.qualified_leads), len(state.all_leads), state.attempt,
        )
        summary = summarize(leads)
        if self.store is not None and user_id:
            await self.store.log_usage(
                user_id, "lead_discovery",
                len(leads) * settings.lead_cost_usd,
                len(leads) * settings.lead_tokens,
                {
                    "industry": request.industry,
                    "city": request.city,
                    "state": request.state,
                    "leads_found": len(leads),
                    "sweet_spot_count": summary["sweet_spot"],
                },
            )
        return DiscoveryResult(leads=leads, attempts=state.attempt, summary=summary)
