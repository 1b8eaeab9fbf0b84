"""Lookups for canonical products, suppliers and supplier links."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from catalogsync.db.models import GlobalSupplierModel, ProductModel, SupplierItemModel
from catalogsync.exceptions import RecordNotFoundError


async def get_product(session: AsyncSession, product_id: UUID) -> ProductModel:
    product = await session.get(ProductModel, product_id)
    if product is None:
        raise RecordNotFoundError("Product", product_id)
    return product


async def get_supplier_item(session: AsyncSession, supplier_item_id: UUID) -> SupplierItemModel:
    item = await session.get(SupplierItemModel, supplier_item_id)
    if item is None:
        raise RecordNotFoundError("SupplierItem", supplier_item_id)
    return item


async def get_supplier(session: AsyncSession, supplier_id: UUID) -> GlobalSupplierModel:
    supplier = await session.get(GlobalSupplierModel, supplier_id)
    if supplier is None:
        raise RecordNotFoundError("GlobalSupplier", supplier_id)
    return supplier


async def get_or_create_supplier(session: AsyncSession, name: str) -> GlobalSupplierModel:
    """Find a supplier by exact name, creating it when absent."""
    name = name.strip()
    if not name:
        raise ValueError("Supplier name must not be empty")

    stmt = select(GlobalSupplierModel).where(GlobalSupplierModel.name == name).limit(1)
    supplier = (await session.execute(stmt)).scalar_one_or_none()
    if supplier is None:
        supplier = GlobalSupplierModel(name=name)
        session.add(supplier)
        await session.flush()
    return supplier


async def find_active_link(
    session: AsyncSession,
    global_supplier_id: UUID,
    product_id: UUID,
    exclude_id: UUID | None = None,
) -> SupplierItemModel | None:
    """Return the non-ignored link for (supplier, product), if any."""
    stmt = select(SupplierItemModel).where(
        SupplierItemModel.global_supplier_id == global_supplier_id,
        SupplierItemModel.product_id == product_id,
        SupplierItemModel.ignored.is_(False),
    )
    if exclude_id is not None:
        stmt = stmt.where(SupplierItemModel.id != exclude_id)
    return (await session.execute(stmt.limit(1))).scalar_one_or_none()
