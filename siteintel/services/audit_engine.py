"""
Audit Engine — single-site audit with recency cache.

    normalize → recent audit? (return it, flagged existing)
              → accessibility scan      ┐ each best-effort,
              → fetch → fact-check → SEO ┘ failures zero their fields
              → persist AuditRecord (fatal on failure)
              → report asset reference (logged on failure)
              → usage log

The accessibility scanner and the fact checker are external adapters; only
their contracts live here.
"""

import asyncio
import logging
import re
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional, Protocol

from siteintel.config import settings
from siteintel.errors import SiteIntelError
from siteintel.models.audit import AuditRecord
from siteintel.services.audit_store import AuditStore
from siteintel.services.fetch_engine import ContentFetcher, FetchedPage, parse_page
from siteintel.services.report_engine import Branding, render_report_pdf
from siteintel.services.seo_scorer import SeoScore, score_page
from siteintel.services.url_normalizer import domain_key, normalize_url

logger = logging.getLogger("siteintel.audit")

CONTENT_PREVIEW_CHARS = 2000


# ═══════════════════════════════════════════════════════════════════════
# Adapter contracts
# ═══════════════════════════════════════════════════════════════════════

@dataclass
class AccessibilityReport:
    score: int = 0
    critical_count: int = 0
    serious_count: int = 0
    moderate_count: int = 0
    minor_count: int = 0
    total_violations: int = 0
    total_passes: int = 0
    violations: list[dict] = field(default_factory=list)
    passes: list[dict] = field(default_factory=list)
    wcag_breakdown: dict = field(default_factory=dict)
    page_title: str = ""
    page_language: str = ""


@dataclass
class FactCheckResult:
    overall_score: int = 0
    claims: list[dict] = field(default_factory=list)


class AccessibilityScanner(Protocol):
    async def scan(self, url: str) -> AccessibilityReport: ...

    async def close(self) -> None: ...


class FactChecker(Protocol):
    async def check(self, text: str) -> FactCheckResult: ...


# ─── Accessibility summary helper ──────────────────────────────────────

PRINCIPLES = ("perceivable", "operable", "understandable", "robust")
PRINCIPLE_DEDUCTIONS = {"critical": 25, "serious": 15, "moderate": 8, "minor": 3}
OVERALL_DEDUCTIONS = {"critical": 15, "serious": 10, "moderate": 5, "minor": 2}
CRITERION_TAG = re.compile(r"^wcag([1-4])\d{2,}$")
CATEGORY_PRINCIPLES = {
    "cat.text-alternatives": "perceivable",
    "cat.color": "perceivable",
    "cat.sensory-and-visual-cues": "perceivable",
    "cat.keyboard": "operable",
    "cat.time-and-media": "operable",
    "cat.navigation": "operable",
    "cat.language": "understandable",
    "cat.forms": "understandable",
    "cat.parsing": "understandable",
}


def wcag_principle(tags: list[str]) -> str:
    """Map axe-style tags to a POUR principle via the success-criterion number (wcag111 → 1.x)."""
    for tag in tags or []:
        match = CRITERION_TAG.match(tag.lower())
        if match:
            return PRINCIPLES[int(match.group(1)) - 1]
    for tag in tags or []:
        if tag in CATEGORY_PRINCIPLES:
            return CATEGORY_PRINCIPLES[tag]
    return "robust"


def summarize_violations(violations: list[dict], passes: Optional[list[dict]] = None) -> AccessibilityReport:
    """Build an ``AccessibilityReport`` from raw axe-style violations.

    For scanner adapters that return raw rule results.
    """
    counts = {impact: 0 for impact in OVERALL_DEDUCTIONS}
    breakdown = {p: {"violations": 0, "score": 100} for p in PRINCIPLES}

    for v in violations:
        impact = v.get("impact") if v.get("impact") in counts else "minor"
        counts[impact] += 1
        principle = wcag_principle(v.get("tags") or v.get("wcag_tags") or [])
        breakdown[principle]["violations"] += 1
        breakdown[principle]["score"] = max(0, breakdown[principle]["score"] - PRINCIPLE_DEDUCTIONS[impact])

    deduction = sum(counts[i] * OVERALL_DEDUCTIONS[i] for i in counts)
    passes = passes or []
    return AccessibilityReport(
        score=max(0, round(100 - deduction)),
        critical_count=counts["critical"],
        serious_count=counts["serious"],
        moderate_count=counts["moderate"],
        minor_count=counts["minor"],
        total_violations=len(violations),
        total_passes=len(passes),
        violations=list(violations),
        passes=list(passes),
        wcag_breakdown=breakdown,
    )


# ═══════════════════════════════════════════════════════════════════════
# Orchestrator
# ═══════════════════════════════════════════════════════════════════════

@dataclass
class AuditOptions:
    check_recent: bool = True
    recent_threshold_hours: Optional[float] = None
    skip_accessibility: bool = False
    skip_content: bool = False
    branding: Optional[Branding] = None


@dataclass
class AuditResult:
    record: AuditRecord
    is_existing: bool = False
    age_hours: Optional[float] = None
    report_url: Optional[str] = None
    asset_id: Optional[str] = None
    seo: Optional[SeoScore] = None
    content: Optional[str] = None


def report_url_for(audit_id: str) -> str:
    return f"/api/v1/audits/{audit_id}/pdf"


def _as_utc(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def _content_quality(seo: Optional[SeoScore], fact: Optional[FactCheckResult]) -> int:
    parts = []
    if seo is not None:
        parts.append(seo.pct("content_marketing"))
    if fact is not None:
        parts.append(fact.overall_score)
    return round(sum(parts) / len(parts)) if parts else 0


class AuditOrchestrator:
    def __init__(
        self,
        store: AuditStore,
        fetcher: ContentFetcher,
        scanner: Optional[AccessibilityScanner] = None,
        fact_checker: Optional[FactChecker] = None,
        report_renderer: Callable = render_report_pdf,
        now: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.store = store
        self.fetcher = fetcher
        self.scanner = scanner
        self.fact_checker = fact_checker
        self.report_renderer = report_renderer
        self.now = now

    # ─── Recency cache ────────────────────────────────────────────────

    async def check_recent_audit(
        self, user_id: str, url: str, threshold_hours: Optional[float] = None,
    ) -> Optional[AuditResult]:
        """Latest audit of the same domain younger than the threshold, if any."""
        if threshold_hours is None:
            threshold_hours = settings.recent_audit_hours
        threshold = timedelta(hours=threshold_hours)
        key = domain_key(url)
        records = await self.store.get_audit_records_by_user(user_id, settings.recent_audit_scan_limit)
        now = self.now()
        for record in records:
            if domain_key(record.url) != key:
                continue
            age = now - _as_utc(record.created_at)
            if age < threshold:
                return AuditResult(
                    record=record,
                    is_existing=True,
                    age_hours=round(age.total_seconds() / 3600, 1),
                    report_url=report_url_for(record.id),
                )
        return None

    # ─── Stages ───────────────────────────────────────────────────────

    async def _scan_accessibility(self, url: str) -> Optional[AccessibilityReport]:
        if self.scanner is None:
            return None
        try:
            return await self.scanner.scan(url)
        except Exception as e:
            logger.warning("⚠️ Accessibility scan failed for %s: %s", url, e)
            return None
        finally:
            try:
                await self.scanner.close()
            except Exception as e:
                logger.warning("Scanner close failed: %s", e)

    async def _fact_check(self, text: str) -> Optional[FactCheckResult]:
        if self.fact_checker is None or len(text) < settings.min_region_chars:
            return None
        try:
            return await self.fact_checker.check(text)
        except Exception as e:
            logger.warning("⚠️ Fact check failed: %s", e)
            return None

    async def _scan_content(self, url: str, domain: str):
        try:
            page: FetchedPage = await self.fetcher.fetch(url)
        except SiteIntelError as e:
            logger.warning("⚠️ Content fetch failed for %s: %s", url, e)
            return None, None, None
        fact = await self._fact_check(page.content)
        seo = score_page(parse_page(page.html, domain), domain, today=self.now().date())
        return page, seo, fact

    def _record_fields(
        self,
        user_id: str,
        url: str,
        domain: str,
        a11y: Optional[AccessibilityReport],
        page: Optional[FetchedPage],
        seo: Optional[SeoScore],
        fact: Optional[FactCheckResult],
    ) -> dict:
        fields = {"user_id": user_id, "url": url, "domain": domain}
        scores = []

        if a11y is not None:
            fields.update(
                accessibility_score=a11y.score,
                critical_count=a11y.critical_count,
                serious_count=a11y.serious_count,
                moderate_count=a11y.moderate_count,
                minor_count=a11y.minor_count,
                total_violations=a11y.total_violations,
                total_passes=a11y.total_passes,
                violations=a11y.violations,
                passes=a11y.passes,
                wcag_breakdown=a11y.wcag_breakdown,
                page_language=a11y.page_language or None,
            )
            scores.append(a11y.score)

        if seo is not None:
            fields.update(
                technical_seo=seo.technical_seo,
                on_page_seo=seo.on_page_seo,
                content_marketing=seo.content_marketing,
                local_seo=seo.local_seo,
                seo_score=seo.overall,
                has_blog=seo.has_blog,
                seo_issues=[vars(i) for i in seo.ranked_issues()],
            )
            quality = _content_quality(seo, fact)
            fields["content_quality_score"] = quality
            scores.extend([seo.overall, quality])

        if fact is not None:
            fields.update(fact_check_score=fact.overall_score, fact_checks=fact.claims)

        if page is not None:
            fields["content_preview"] = page.content[:CONTENT_PREVIEW_CHARS]
            if page.crawler_access is not None:
                fields["crawler_access"] = page.crawler_access.as_dict()

        fields["page_title"] = (a11y.page_title if a11y else "") or (page.title if page else "") or None
        fields["overall_score"] = round(sum(scores) / len(scores)) if scores else 0
        return fields

    async def _register_report(self, record: AuditRecord, user_id: str,
                               branding: Optional[Branding]) -> Optional[tuple[str, str]]:
        try:
            pdf = await asyncio.to_thread(self.report_renderer, record, branding)
            stamp = self.now().strftime("%Y%m%d%H%M%S")
            asset = await self.store.create_asset_reference({
                "user_id": user_id,
                "audit_id": record.id,
                "filename": f"audit-{record.domain}-{stamp}.pdf",
                "file_type": "application/pdf",
                "blob_url": report_url_for(record.id),
                "tags": ["audit", record.domain],
                "branding": asdict(branding) if branding else {},
            })
            logger.info("📄 Report registered for %s (%d bytes)", record.domain, len(pdf))
            return asset.id, asset.blob_url
        except Exception as e:
            logger.error("❌ Report generation failed for %s: %s", record.domain, e)
            return None

    # ─── Public API ───────────────────────────────────────────────────

    async def run_audit(self, url: str, user_id: str, options: Optional[AuditOptions] = None) -> AuditResult:
        options = options or AuditOptions()
        target = normalize_url(url)
        domain = domain_key(target)

        if options.check_recent:
            cached = await self.check_recent_audit(user_id, target, options.recent_threshold_hours)
            if cached is not None:
                logger.info("♻️ Reusing audit %s for %s (%.1fh old)", cached.record.id[:8], domain, cached.age_hours)
                return cached

        logger.info("🔍 Auditing %s for user %s", target, user_id)
        a11y = None if options.skip_accessibility else await self._scan_accessibility(target)
        page, seo, fact = (None, None, None) if options.skip_content else await self._scan_content(target, domain)

        record = await self.store.create_audit_record(
            self._record_fields(user_id, target, domain, a11y, page, seo, fact)
        )
        result = AuditResult(record=record, seo=seo, content=page.content if page else None)

        registered = await self._register_report(record, user_id, options.branding)
        if registered:
            result.asset_id, result.report_url = registered

        await self.store.log_usage(
            user_id, "site_audit", settings.audit_cost_usd, settings.audit_tokens,
            {"url": target, "domain": domain, "audit_id": record.id},
        )
        logger.info("✅ Audit %s for %s: overall %d", record.id[:8], domain, record.overall_score)
        return result

    async def get_audit(self, audit_id: str) -> Optional[AuditResult]:
        record = await self.store.get_audit_record_by_id(audit_id)
        if record is None:
            return None
        asset = await self.store.get_asset_for_audit(audit_id)
        return AuditResult(
            record=record,
            report_url=asset.blob_url if asset else None,
            asset_id=asset.id if asset else None,
        )

    async def get_audits_by_domain(self, user_id: str, domain: str, limit: int = 10) -> list[AuditRecord]:
        key = domain_key(domain)
        records = await self.store.get_audit_records_by_user(user_id, limit)
        return [r for r in records if domain_key(r.url) == key]
