"""
Report Engine — shareable audit report (HTML via Jinja2, PDF via WeasyPrint).

Layout: title block → score cards → violation counts → top 5 violations →
footer with generation time and optional agency branding. Reports are
regenerated on demand from the stored ``AuditRecord``; nothing is cached.
"""

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from jinja2 import Environment, FileSystemLoader, select_autoescape

from siteintel.config import settings

logger = logging.getLogger("siteintel.report")

# ─── Template directory ────────────────────────────────────────────────
TEMPLATE_DIR = Path(__file__).parent.parent / "templates" / "report"
REPORT_TEMPLATE = "audit_report.html"

SCORE_BANDS = [
    (85, "strong", "#10b981"),
    (70, "good", "#3b82f6"),
    (50, "weak", "#f59e0b"),
    (0, "poor", "#ef4444"),
]

IMPACT_ORDER = {"critical": 0, "serious": 1, "moderate": 2, "minor": 3}
IMPACT_COLORS = {
    "critical": "#ef4444",
    "serious": "#f97316",
    "moderate": "#f59e0b",
    "minor": "#3b82f6",
}
TOP_VIOLATIONS = 5
DESCRIPTION_LIMIT = 80

HEX_COLOR = re.compile(r"^#?([0-9a-fA-F]{6})$")


@dataclass
class Branding:
    agency_name: Optional[str] = None
    primary_color: Optional[str] = None
    logo_url: Optional[str] = None
    website: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None


def _get_jinja_env() -> Environment:
    return Environment(
        loader=FileSystemLoader(str(TEMPLATE_DIR)),
        autoescape=select_autoescape(["html"]),
        trim_blocks=True,
        lstrip_blocks=True,
    )


def score_band(score: Optional[int]) -> dict:
    """≥85 strong, ≥70 good, ≥50 weak, else poor."""
    s = score or 0
    for floor, label, color in SCORE_BANDS:
        if s >= floor:
            return {"band": label, "color": color}
    return {"band": "poor", "color": SCORE_BANDS[-1][2]}


def brand_color(value: Optional[str]) -> str:
    match = HEX_COLOR.match((value or "").strip())
    if not match:
        match = HEX_COLOR.match(settings.report_primary_color)
    return f"#{match.group(1).lower()}"


def truncate(text: str, limit: int = DESCRIPTION_LIMIT) -> str:
    text = (text or "").strip()
    return text if len(text) <= limit else text[:limit] + "..."


def top_violations(violations: list[dict], limit: int = TOP_VIOLATIONS) -> list[dict]:
    ranked = sorted(violations or [], key=lambda v: IMPACT_ORDER.get(v.get("impact"), 9))
    rows = []
    for v in ranked[:limit]:
        impact = v.get("impact") or "minor"
        rows.append({
            "impact": impact,
            "color": IMPACT_COLORS.get(impact, IMPACT_COLORS["minor"]),
            "description": truncate(v.get("help") or v.get("description") or v.get("id", "")),
            "nodes": len(v.get("nodes") or []),
        })
    return rows


def build_report_context(audit, branding: Optional[Branding] = None,
                         generated_at: Optional[datetime] = None) -> dict:
    """Everything the template needs, computed from an audit record."""
    branding = branding or Branding()
    generated_at = generated_at or datetime.now(timezone.utc)
    agency = branding.agency_name or settings.report_brand_name

    cards = [
        ("Overall", audit.overall_score),
        ("Accessibility", audit.accessibility_score),
        ("Content Quality", audit.content_quality_score),
        ("SEO", audit.seo_score),
    ]
    contact = [p for p in (branding.website, branding.email, branding.phone) if p]

    return {
        "title": f"{agency} Website Audit" if branding.agency_name else "Website Audit Report",
        "domain": audit.domain,
        "url": audit.url,
        "page_title": audit.page_title or "",
        "audited_at": audit.created_at,
        "primary_color": brand_color(branding.primary_color),
        "logo_url": branding.logo_url,
        "cards": [
            {"label": label, "score": score or 0, **score_band(score)}
            for label, score in cards
        ],
        "counts": [
            {"label": "Critical", "count": audit.critical_count or 0, "color": IMPACT_COLORS["critical"]},
            {"label": "Serious", "count": audit.serious_count or 0, "color": IMPACT_COLORS["serious"]},
            {"label": "Moderate", "count": audit.moderate_count or 0, "color": IMPACT_COLORS["moderate"]},
            {"label": "Minor", "count": audit.minor_count or 0, "color": IMPACT_COLORS["minor"]},
        ],
        "violations": top_violations(audit.violations or []),
        "seo_issues": (audit.seo_issues or [])[:TOP_VIOLATIONS],
        "generated_by": f"Generated by {agency} on {generated_at.strftime('%B %d, %Y')}",
        "generated_at": generated_at,
        "contact_line": " | ".join(contact),
    }


def render_report_html(audit, branding: Optional[Branding] = None,
                       generated_at: Optional[datetime] = None) -> str:
    template = _get_jinja_env().get_template(REPORT_TEMPLATE)
    return template.render(**build_report_context(audit, branding, generated_at))


def render_report_pdf(audit, branding: Optional[Branding] = None) -> bytes:
    """Render the report to PDF bytes."""
    from weasyprint import HTML

    html = render_report_html(audit, branding)
    pdf = HTML(string=html).write_pdf()
    logger.info("📄 Report for %s rendered (%d bytes)", audit.domain, len(pdf))
    return pdf
