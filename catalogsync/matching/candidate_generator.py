"""Token-blocked candidate generation for catalogsync.

Bounds fuzzy matching cost: only products sharing at least one distinctive
name token with the import row are fetched for scoring.
"""

from __future__ import annotations

import logging
import operator
from functools import reduce

from sqlalchemy import case, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from catalogsync.canonical.normalize import search_tokens
from catalogsync.db.models import ProductModel
from catalogsync.models import ImportRow

logger = logging.getLogger(__name__)


class CandidateGenerator:
    """Shared-token candidate generator."""

    def __init__(self, session: AsyncSession, max_candidates: int = 25):
        """Initialize generator.

        Args:
            session: SQLAlchemy async session
            max_candidates: Upper bound on products returned per row
        """
        self.session = session
        self.max_candidates = max_candidates

    async def generate(self, row: ImportRow, limit: int | None = None) -> list[ProductModel]:
        """Fetch products whose name shares a distinctive token with the row.

        Filter logic:
        1. Products whose trimmed, lower-cased name equals the row's come first
        2. Extract up to five distinctive tokens from name + brand
        3. Case-insensitive substring match of any token on product name
        4. Order by number of matching tokens, then shorter names
        5. Limit to max_candidates

        Args:
            row: Normalized import row
            limit: Max candidates to return (default from constructor)

        Returns:
            Candidate ProductModel rows, most relevant first
        """
        if limit is None:
            limit = self.max_candidates

        candidates = await self._exact_name(row, limit)
        seen = {product.id for product in candidates}

        tokens = search_tokens(row.name)
        if row.brand:
            tokens += [t for t in search_tokens(row.brand, limit=2) if t not in tokens]

        if not tokens:
            logger.debug(f"Row {row.row_index}: no distinctive tokens in '{row.name}'")
            return candidates

        lowered = func.lower(ProductModel.name)
        hits = [case((lowered.contains(token, autoescape=True), 1), else_=0) for token in tokens]
        relevance = reduce(operator.add, hits)
        stmt = (
            select(ProductModel)
            .where(or_(*(lowered.contains(token, autoescape=True) for token in tokens)))
            .order_by(relevance.desc(), func.length(ProductModel.name), ProductModel.id)
            .limit(limit)
        )

        result = await self.session.execute(stmt)
        for product in result.scalars().all():
            if len(candidates) >= limit:
                break
            if product.id not in seen:
                seen.add(product.id)
                candidates.append(product)

        logger.debug(f"Row {row.row_index}: {len(candidates)} candidates for tokens {tokens}")
        return candidates

    async def _exact_name(self, row: ImportRow, limit: int) -> list[ProductModel]:
        name = row.name.strip().lower()
        if not name:
            return []

        stmt = select(ProductModel).where(func.lower(func.trim(ProductModel.name)) == name)
        if row.brand:
            # Same brand first
            same_brand = func.lower(func.trim(ProductModel.brand)) == row.brand.strip().lower()
            stmt = stmt.order_by(case((same_brand, 0), else_=1), ProductModel.id)
        stmt = stmt.limit(limit)
        return list((await self.session.execute(stmt)).scalars().all())
