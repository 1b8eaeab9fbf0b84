"""Catalog upload audit records.

One CatalogUpload row per import run. Each method runs in its own short
transaction so the audit trail survives a failed row transaction.
"""

from __future__ import annotations

import logging
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from catalogsync.db.connection import session_scope
from catalogsync.db.models import CatalogUploadModel, utcnow
from catalogsync.exceptions import RecordNotFoundError
from catalogsync.models import UploadStatus

logger = logging.getLogger(__name__)

_ACTIVE = (UploadStatus.PENDING.value, UploadStatus.PROCESSING.value)


class CatalogUploadRepository:
    """Create and update upload audit records."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def create(
        self,
        global_supplier_id: UUID,
        filename: str,
        row_count: int,
        raw_content: str | None = None,
        uploaded_by: str | None = None,
    ) -> CatalogUploadModel:
        async with session_scope(self.session_factory) as session:
            upload = CatalogUploadModel(
                global_supplier_id=global_supplier_id,
                filename=filename,
                row_count=row_count,
                raw_content=raw_content,
                uploaded_by=uploaded_by,
                status=UploadStatus.PENDING.value,
            )
            session.add(upload)
            await session.flush()

        logger.info(f"Created upload {upload.id} for supplier {global_supplier_id} ({filename})")
        return upload

    async def mark_processing(self, upload_id: UUID) -> None:
        await self._transition(
            upload_id,
            from_statuses=(UploadStatus.PENDING.value,),
            values={"status": UploadStatus.PROCESSING.value},
        )

    async def mark_completed(
        self,
        upload_id: UUID,
        success_count: int,
        failed_count: int,
        review_count: int,
        enriched_count: int,
    ) -> None:
        await self._transition(
            upload_id,
            from_statuses=_ACTIVE,
            values={
                "status": UploadStatus.COMPLETED.value,
                "success_count": success_count,
                "failed_count": failed_count,
                "review_count": review_count,
                "enriched_count": enriched_count,
                "completed_at": utcnow(),
            },
        )

    async def mark_failed(
        self,
        upload_id: UUID,
        error_message: str,
        success_count: int = 0,
        failed_count: int = 0,
        review_count: int = 0,
        enriched_count: int = 0,
    ) -> None:
        await self._transition(
            upload_id,
            from_statuses=_ACTIVE,
            values={
                "status": UploadStatus.FAILED.value,
                "error_message": error_message,
                "success_count": success_count,
                "failed_count": failed_count,
                "review_count": review_count,
                "enriched_count": enriched_count,
                "completed_at": utcnow(),
            },
        )

    async def get(self, upload_id: UUID) -> CatalogUploadModel:
        async with session_scope(self.session_factory) as session:
            upload = await session.get(CatalogUploadModel, upload_id)
        if upload is None:
            raise RecordNotFoundError("CatalogUpload", upload_id)
        return upload

    async def find_recent(self, limit: int = 20) -> list[CatalogUploadModel]:
        stmt = select(CatalogUploadModel).order_by(CatalogUploadModel.created_at.desc()).limit(limit)
        async with session_scope(self.session_factory) as session:
            return list((await session.execute(stmt)).scalars().all())

    async def find_by_supplier(self, global_supplier_id: UUID, limit: int = 20) -> list[CatalogUploadModel]:
        stmt = (
            select(CatalogUploadModel)
            .where(CatalogUploadModel.global_supplier_id == global_supplier_id)
            .order_by(CatalogUploadModel.created_at.desc())
            .limit(limit)
        )
        async with session_scope(self.session_factory) as session:
            return list((await session.execute(stmt)).scalars().all())

    async def _transition(self, upload_id: UUID, from_statuses: tuple[str, ...], values: dict) -> None:
        # Terminal records are never rewritten
        stmt = (
            update(CatalogUploadModel)
            .where(CatalogUploadModel.id == upload_id, CatalogUploadModel.status.in_(from_statuses))
            .values(**values)
        )
        async with session_scope(self.session_factory) as session:
            result = await session.execute(stmt)

        if result.rowcount != 1:
            logger.warning(
                f"Upload {upload_id} not updated to {values['status']}: "
                f"not found or not in {from_statuses}"
            )
        else:
            logger.info(f"Upload {upload_id} -> {values['status']}")
