"""
Audit Store — persistence gateway for audit records, report assets and usage.

The pipeline never issues queries itself; everything goes through here.
Write failures are raised as ``PersistenceError`` (an audit that cannot be
saved is not silently dropped). Usage logging is best-effort.
"""

import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from siteintel.database import async_session_factory
from siteintel.errors import PersistenceError
from siteintel.models.audit import AuditRecord, ReportAsset, UsageLog

logger = logging.getLogger("siteintel.store")


class AuditStore:
    def __init__(self, session_factory=None):
        self._session_factory = session_factory or async_session_factory

    async def create_audit_record(self, fields: dict) -> AuditRecord:
        record = AuditRecord(**fields)
        try:
            async with self._session_factory() as session:
                session.add(record)
                await session.commit()
                await session.refresh(record)
        except SQLAlchemyError as e:
            logger.error("❌ Could not save audit for %s: %s", fields.get("url"), e)
            raise PersistenceError(f"Could not save audit record: {e}") from e
        return record

    async def get_audit_records_by_user(self, user_id: str, limit: int = 10) -> list[AuditRecord]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(AuditRecord)
                .where(AuditRecord.user_id == user_id)
                .order_by(AuditRecord.created_at.desc())
                .limit(limit)
            )
            return list(result.scalars().all())

    async def get_audit_record_by_id(self, audit_id: str) -> Optional[AuditRecord]:
        async with self._session_factory() as session:
            return await session.get(AuditRecord, audit_id)

    async def create_asset_reference(self, fields: dict) -> ReportAsset:
        asset = ReportAsset(**fields)
        try:
            async with self._session_factory() as session:
                session.add(asset)
                await session.commit()
                await session.refresh(asset)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Could not register report asset: {e}") from e
        return asset

    async def get_asset_for_audit(self, audit_id: str) -> Optional[ReportAsset]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(ReportAsset)
                .where(ReportAsset.audit_id == audit_id)
                .order_by(ReportAsset.created_at.desc())
                .limit(1)
            )
            return result.scalar_one_or_none()

    async def log_usage(
        self,
        user_id: str,
        operation_type: str,
        cost_usd: float,
        tokens_used: int = 0,
        metadata: Optional[dict] = None,
    ) -> None:
        try:
            async with self._session_factory() as session:
                session.add(UsageLog(
                    user_id=user_id,
                    operation_type=operation_type,
                    cost_usd=round(cost_usd, 4),
                    tokens_used=tokens_used,
                    metadata_json=metadata or {},
                ))
                await session.commit()
        except SQLAlchemyError as e:
            logger.warning("Usage log failed (%s, %s): %s", user_id, operation_type, e)
