"""Multi-tier product matcher for supplier catalog rows.

Tiers, evaluated in order (first success wins):
1. GTIN exact (1.00), then GTIN variant with leading zeros padded or
   stripped (0.99)
2. SKU exact against this supplier's active links (0.95)
3. Fuzzy name + brand over token-blocked candidates (score in [floor, 1])
"""

from __future__ import annotations

import logging
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from catalogsync.canonical.gtin import gtin_variants, validate_gtin
from catalogsync.db.models import ProductModel, SupplierItemModel
from catalogsync.matching.candidate_generator import CandidateGenerator
from catalogsync.matching.fuzzy_ranker import FuzzyRanker
from catalogsync.models import ImportRow, MatchMethod, MatchResult

logger = logging.getLogger(__name__)

GTIN_EXACT_CONFIDENCE = 1.0
GTIN_VARIANT_CONFIDENCE = 0.99
SKU_EXACT_CONFIDENCE = 0.95

# Candidates surfaced on the match result for review screens
TOP_CANDIDATES = 5


class ProductMatcher:
    """Match one import row against the canonical catalog."""

    def __init__(self, ranker: FuzzyRanker | None = None, max_candidates: int = 25) -> None:
        """Initialize matcher.

        Args:
            ranker: Fuzzy ranker (floor and weights already configured)
            max_candidates: Products fetched per row for fuzzy scoring
        """
        self.ranker = ranker or FuzzyRanker()
        self.max_candidates = max_candidates

    async def match(
        self,
        session: AsyncSession,
        row: ImportRow,
        global_supplier_id: UUID,
    ) -> MatchResult:
        """Run all tiers for one row.

        Args:
            session: Session of the row's transaction
            row: Normalized import row
            global_supplier_id: Supplier whose catalog is being imported

        Returns:
            MatchResult; product_id is None when nothing matched
        """
        result = await self.match_gtin(session, row.gtin)
        if result is not None:
            return result

        result = await self.match_sku(session, row.sku, global_supplier_id)
        if result is not None:
            return result

        return await self.match_fuzzy(session, row)

    async def match_gtin(self, session: AsyncSession, gtin: str | None) -> MatchResult | None:
        if not gtin:
            return None

        check = validate_gtin(gtin)
        if not check.valid or check.normalized is None:
            return None

        product = await self._product_by_gtin(session, [check.normalized])
        if product is not None:
            return MatchResult(
                product_id=product.id,
                match_method=MatchMethod.GTIN_EXACT,
                match_confidence=GTIN_EXACT_CONFIDENCE,
                matched_gtin=product.gtin,
            )

        variants = gtin_variants(check.normalized)
        if not variants:
            return None

        product = await self._product_by_gtin(session, variants)
        if product is not None:
            logger.debug(f"GTIN {check.normalized} matched variant {product.gtin}")
            return MatchResult(
                product_id=product.id,
                match_method=MatchMethod.GTIN_EXACT,
                match_confidence=GTIN_VARIANT_CONFIDENCE,
                matched_gtin=product.gtin,
            )
        return None

    async def match_sku(
        self,
        session: AsyncSession,
        sku: str | None,
        global_supplier_id: UUID,
    ) -> MatchResult | None:
        """Case-insensitive, trimmed SKU lookup among this supplier's active links."""
        if not sku or not sku.strip():
            return None

        stmt = (
            select(SupplierItemModel.product_id)
            .where(
                SupplierItemModel.global_supplier_id == global_supplier_id,
                SupplierItemModel.ignored.is_(False),
                func.lower(func.trim(SupplierItemModel.supplier_sku)) == sku.strip().lower(),
            )
            .order_by(SupplierItemModel.updated_at.desc())
            .limit(1)
        )
        product_id = (await session.execute(stmt)).scalar_one_or_none()
        if product_id is None:
            return None

        return MatchResult(
            product_id=product_id,
            match_method=MatchMethod.SKU_EXACT,
            match_confidence=SKU_EXACT_CONFIDENCE,
        )

    async def match_fuzzy(self, session: AsyncSession, row: ImportRow) -> MatchResult:
        generator = CandidateGenerator(session, max_candidates=self.max_candidates)
        candidates = await generator.generate(row)
        ranked = self.ranker.rank(row, candidates)

        if not ranked:
            return MatchResult(match_method=MatchMethod.NONE, match_confidence=0.0)

        best = ranked[0]
        ambiguous = len(ranked) > 1 and ranked[1].score == best.score
        if ambiguous:
            logger.debug(f"Row {row.row_index}: top fuzzy score {best.score} shared by several products")

        return MatchResult(
            product_id=best.product_id,
            match_method=MatchMethod.FUZZY_NAME,
            match_confidence=min(best.score, 1.0),
            matched_gtin=best.gtin,
            candidates=ranked[:TOP_CANDIDATES],
            ambiguous=ambiguous,
        )

    async def _product_by_gtin(
        self, session: AsyncSession, gtins: list[str]
    ) -> ProductModel | None:
        stmt = select(ProductModel).where(ProductModel.gtin.in_(gtins)).limit(1)
        return (await session.execute(stmt)).scalar_one_or_none()
