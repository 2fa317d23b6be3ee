"""
Site Intel — Pydantic request/response schemas.
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class OpportunityRating(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class SeoIssueOut(BaseModel):
    category: str
    issue: str
    severity: str
    fix: str


# ─── Discovery ─────────────────────────────────────────────────────────

class DiscoverRequest(BaseModel):
    industry: str = Field("", max_length=255)
    city: str = Field("", max_length=255)
    state: str | None = Field(None, max_length=64)
    limit: int = Field(15, ge=1, le=50)
    offset: int = Field(0, ge=0)
    user_id: str | None = Field(None, alias="userId", max_length=255)

    model_config = {"populate_by_name": True}


class LeadOut(BaseModel):
    domain: str
    business_name: str
    city: str | None = None
    state: str | None = None
    overall_score: int
    technical_seo: int
    on_page_seo: int
    content_marketing: int
    local_seo: int
    has_blog: bool
    blog_post_count: int
    opportunity_rating: OpportunityRating
    opportunity_type: str | None = None
    phone: str | None = None
    address: str | None = None
    email: str | None = None
    email_verified: bool | None = None
    reachable: bool = True
    seo_issues: list[SeoIssueOut] = []

    model_config = {"from_attributes": True}


class DiscoverySummary(BaseModel):
    total: int
    sweet_spot: int
    high_scoring: int
    low_scoring: int


class DiscoverResponse(BaseModel):
    success: bool = True
    leads: list[LeadOut]
    summary: DiscoverySummary
    attempts: int


# ─── Audits ────────────────────────────────────────────────────────────

class BrandingIn(BaseModel):
    agency_name: str | None = Field(None, alias="agencyName", max_length=255)
    primary_color: str | None = Field(None, alias="primaryColor", max_length=16)
    logo_url: str | None = Field(None, alias="logoUrl", max_length=1024)
    website: str | None = Field(None, max_length=255)
    email: str | None = Field(None, max_length=255)
    phone: str | None = Field(None, max_length=64)

    model_config = {"populate_by_name": True}


class AuditRequest(BaseModel):
    url: str = Field(..., min_length=3, max_length=2048)
    user_id: str = Field(..., alias="userId", min_length=1, max_length=255)
    check_recent: bool = Field(True, alias="checkRecent")
    recent_threshold_hours: float | None = Field(None, alias="recentThresholdHours", gt=0)
    skip_accessibility: bool = Field(False, alias="skipAccessibility")
    skip_content: bool = Field(False, alias="skipContent")
    branding: BrandingIn | None = None

    model_config = {"populate_by_name": True}


class AuditOut(BaseModel):
    id: str
    user_id: str
    url: str
    domain: str
    page_title: str | None = None
    overall_score: int = 0
    accessibility_score: int = 0
    critical_count: int = 0
    serious_count: int = 0
    moderate_count: int = 0
    minor_count: int = 0
    total_violations: int = 0
    total_passes: int = 0
    wcag_breakdown: dict = {}
    violations: list[dict] = []
    technical_seo: int = 0
    on_page_seo: int = 0
    content_marketing: int = 0
    local_seo: int = 0
    seo_score: int = 0
    fact_check_score: int = 0
    content_quality_score: int = 0
    has_blog: bool = False
    seo_issues: list[SeoIssueOut] = []
    crawler_access: dict | None = None
    created_at: datetime

    model_config = {"from_attributes": True}


class AuditResponse(BaseModel):
    audit: AuditOut
    is_existing: bool = False
    age_hours: float | None = None
    report_url: str | None = None


class AuditListResponse(BaseModel):
    audits: list[AuditOut]
    total: int


class HealthResponse(BaseModel):
    status: str = "ok"
    version: str
    search_providers: list[str]
