"""Database layer for catalogsync with async SQLAlchemy."""

from catalogsync.db.connection import (
    create_engine,
    create_session_factory,
    init_db,
    session_scope,
)
from catalogsync.db.models import (
    AssetJobModel,
    Base,
    CatalogUploadModel,
    GlobalSupplierModel,
    ProductDocumentModel,
    ProductMediaModel,
    ProductModel,
    SupplierItemModel,
)

__all__ = [
    "Base",
    "GlobalSupplierModel",
    "ProductModel",
    "SupplierItemModel",
    "CatalogUploadModel",
    "ProductMediaModel",
    "ProductDocumentModel",
    "AssetJobModel",
    "create_engine",
    "create_session_factory",
    "init_db",
    "session_scope",
]
