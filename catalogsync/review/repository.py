"""Database queries for the match review queue."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from catalogsync.canonical.gtin import clean_gtin
from catalogsync.db.models import GlobalSupplierModel, ProductModel, SupplierItemModel


@dataclass
class ReviewItem:
    """A supplier link awaiting a reviewer, with its current product."""

    supplier_item_id: UUID
    global_supplier_id: UUID
    supplier_name: str
    supplier_sku: str | None
    item_name: str | None
    unit_price: Decimal | None
    currency: str | None
    match_method: str
    match_confidence: float
    product_id: UUID
    product_name: str
    product_brand: str | None
    product_gtin: str | None
    created_at: datetime


def _review_filter():
    return (SupplierItemModel.needs_review.is_(True), SupplierItemModel.ignored.is_(False))


async def fetch_items_needing_review(
    session: AsyncSession,
    limit: int = 50,
    offset: int = 0,
    global_supplier_id: UUID | None = None,
) -> list[ReviewItem]:
    """Return active links flagged for review, lowest confidence first."""
    stmt = (
        select(SupplierItemModel, ProductModel, GlobalSupplierModel)
        .join(ProductModel, ProductModel.id == SupplierItemModel.product_id)
        .join(GlobalSupplierModel, GlobalSupplierModel.id == SupplierItemModel.global_supplier_id)
        .where(*_review_filter())
        .order_by(SupplierItemModel.match_confidence.asc(), SupplierItemModel.created_at.asc())
        .limit(limit)
        .offset(offset)
    )
    if global_supplier_id is not None:
        stmt = stmt.where(SupplierItemModel.global_supplier_id == global_supplier_id)

    rows = await session.execute(stmt)
    return [
        ReviewItem(
            supplier_item_id=item.id,
            global_supplier_id=item.global_supplier_id,
            supplier_name=supplier.name,
            supplier_sku=item.supplier_sku,
            item_name=item.supplier_name,
            unit_price=item.unit_price,
            currency=item.currency,
            match_method=item.match_method,
            match_confidence=item.match_confidence,
            product_id=product.id,
            product_name=product.name,
            product_brand=product.brand,
            product_gtin=product.gtin,
            created_at=item.created_at,
        )
        for item, product, supplier in rows.all()
    ]


async def count_items_needing_review(
    session: AsyncSession, global_supplier_id: UUID | None = None
) -> int:
    stmt = select(func.count()).select_from(SupplierItemModel).where(*_review_filter())
    if global_supplier_id is not None:
        stmt = stmt.where(SupplierItemModel.global_supplier_id == global_supplier_id)
    return (await session.execute(stmt)).scalar_one()


async def search_products(session: AsyncSession, query: str, limit: int = 20) -> list[ProductModel]:
    """Find products for re-linking: GTIN prefix for digit queries, else name/brand substring."""
    query = query.strip()
    if not query:
        return []

    digits = clean_gtin(query)
    if digits.isdigit():
        condition = or_(
            ProductModel.gtin.startswith(digits, autoescape=True),
            func.lower(ProductModel.name).contains(query.lower(), autoescape=True),
        )
    else:
        condition = or_(
            func.lower(ProductModel.name).contains(query.lower(), autoescape=True),
            func.lower(ProductModel.brand).contains(query.lower(), autoescape=True),
        )

    stmt = select(ProductModel).where(condition).order_by(ProductModel.name.asc()).limit(limit)
    return list((await session.execute(stmt)).scalars().all())
