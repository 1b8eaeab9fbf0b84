"""Fuzzy ranking using RapidFuzz for catalogsync.

Scores candidate products against an import row on normalized name and brand.
"""

from __future__ import annotations

from rapidfuzz import fuzz

from catalogsync.canonical.normalize import normalize_text
from catalogsync.db.models import ProductModel
from catalogsync.models import CandidateScore, ImportRow


class FuzzyRanker:
    """RapidFuzz string similarity ranker.

    Name similarity is the mean of token_set_ratio and token_sort_ratio: word
    order does not matter, but a name whose words are only a subset of the
    other ('Gloves' vs 'Nitrile Gloves Large') stays well below a full match.

    Score = name_weight * name + brand_weight * ratio(brand), scaled to [0, 1].
    When either side lacks a brand, the name score alone is used so a missing
    brand does not cap the confidence.
    """

    def __init__(self, min_score: float = 0.5, name_weight: float = 0.8, brand_weight: float = 0.2):
        if not 0.0 <= min_score <= 1.0:
            raise ValueError(f"min_score must be within [0, 1], got {min_score}")
        if name_weight < 0 or brand_weight < 0 or name_weight + brand_weight <= 0:
            raise ValueError("fuzzy weights must be non-negative and not both zero")

        self.min_score = min_score
        self.name_weight = name_weight
        self.brand_weight = brand_weight

    def score(
        self,
        name: str,
        brand: str | None,
        candidate_name: str,
        candidate_brand: str | None,
    ) -> float:
        """Similarity of two (name, brand) pairs in [0, 1]."""
        left_name = normalize_text(name)
        right_name = normalize_text(candidate_name)
        if not left_name or not right_name:
            return 0.0

        name_score = (
            fuzz.token_set_ratio(left_name, right_name) + fuzz.token_sort_ratio(left_name, right_name)
        ) / 200.0

        left_brand = normalize_text(brand)
        right_brand = normalize_text(candidate_brand)
        if not left_brand or not right_brand:
            return round(name_score, 4)

        brand_score = fuzz.ratio(left_brand, right_brand) / 100.0
        total = self.name_weight + self.brand_weight
        weighted = (self.name_weight * name_score + self.brand_weight * brand_score) / total
        return round(weighted, 4)

    def rank(self, row: ImportRow, candidates: list[ProductModel]) -> list[CandidateScore]:
        """Rank candidates by fuzzy similarity.

        Args:
            row: Import row (name required, brand optional)
            candidates: Pre-filtered products from CandidateGenerator

        Returns:
            CandidateScore list above min_score, sorted descending; ties keep
            the candidate with the shorter name first (closer to the row)
        """
        ranked = []
        for product in candidates:
            value = self.score(row.name, row.brand, product.name, product.brand)
            if value >= self.min_score:
                ranked.append(
                    CandidateScore(
                        product_id=product.id,
                        name=product.name,
                        brand=product.brand,
                        gtin=product.gtin,
                        score=value,
                    )
                )

        ranked.sort(key=lambda c: (-c.score, len(c.name)))
        return ranked
