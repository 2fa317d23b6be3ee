"""
Site Intel — SQLAlchemy models.
"""

from siteintel.models.audit import AuditRecord, ReportAsset, UsageLog

__all__ = ["AuditRecord", "ReportAsset", "UsageLog"]
