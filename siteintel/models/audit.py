"""
Site Intel — SQLAlchemy models for audit records, report assets and usage logs.

Audit records are insert-only: a new audit of the same domain creates a new
row, it never updates an older one.
"""

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Boolean, DateTime, Float, Index, Integer, String, Text
from sqlalchemy.types import JSON
from sqlalchemy.orm import Mapped, mapped_column

from siteintel.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


class AuditRecord(Base):
    __tablename__ = "audit_records"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    url: Mapped[str] = mapped_column(String(2048), nullable=False)
    domain: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    page_title: Mapped[Optional[str]] = mapped_column(String(512))
    page_language: Mapped[Optional[str]] = mapped_column(String(16))

    # Accessibility
    accessibility_score: Mapped[int] = mapped_column(Integer, default=0)
    critical_count: Mapped[int] = mapped_column(Integer, default=0)
    serious_count: Mapped[int] = mapped_column(Integer, default=0)
    moderate_count: Mapped[int] = mapped_column(Integer, default=0)
    minor_count: Mapped[int] = mapped_column(Integer, default=0)
    total_violations: Mapped[int] = mapped_column(Integer, default=0)
    total_passes: Mapped[int] = mapped_column(Integer, default=0)
    violations: Mapped[list] = mapped_column(JSON, default=list)
    passes: Mapped[list] = mapped_column(JSON, default=list)
    wcag_breakdown: Mapped[dict] = mapped_column(JSON, default=dict)

    # Content
    technical_seo: Mapped[int] = mapped_column(Integer, default=0)
    on_page_seo: Mapped[int] = mapped_column(Integer, default=0)
    content_marketing: Mapped[int] = mapped_column(Integer, default=0)
    local_seo: Mapped[int] = mapped_column(Integer, default=0)
    seo_score: Mapped[int] = mapped_column(Integer, default=0)
    fact_check_score: Mapped[int] = mapped_column(Integer, default=0)
    content_quality_score: Mapped[int] = mapped_column(Integer, default=0)
    has_blog: Mapped[bool] = mapped_column(Boolean, default=False)
    seo_issues: Mapped[list] = mapped_column(JSON, default=list)
    fact_checks: Mapped[list] = mapped_column(JSON, default=list)
    content_preview: Mapped[Optional[str]] = mapped_column(Text)
    crawler_access: Mapped[dict] = mapped_column(JSON, default=dict)

    overall_score: Mapped[int] = mapped_column(Integer, default=0)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    __table_args__ = (
        Index("ix_audit_records_user_created", "user_id", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<AuditRecord {self.id[:8]} {self.domain} score={self.overall_score}>"


class ReportAsset(Base):
    """Reference to a generate-on-demand report; no file is stored."""

    __tablename__ = "report_assets"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    audit_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    filename: Mapped[str] = mapped_column(String(255), nullable=False)
    file_type: Mapped[str] = mapped_column(String(64), default="application/pdf")
    blob_url: Mapped[str] = mapped_column(String(512), nullable=False)
    tags: Mapped[list] = mapped_column(JSON, default=list)
    # Agency branding the report was requested with; reapplied on every render
    branding: Mapped[dict] = mapped_column(JSON, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)


class UsageLog(Base):
    __tablename__ = "usage_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    operation_type: Mapped[str] = mapped_column(String(50), nullable=False)
    cost_usd: Mapped[float] = mapped_column(Float, default=0.0)
    tokens_used: Mapped[int] = mapped_column(Integer, default=0)
    metadata_json: Mapped[dict] = mapped_column("metadata", JSON, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
