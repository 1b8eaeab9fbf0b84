"""Match review queue queries and reviewer actions."""

from catalogsync.review.repository import (
    ReviewItem,
    count_items_needing_review,
    fetch_items_needing_review,
    search_products,
)
from catalogsync.review.service import ReviewService

__all__ = [
    "ReviewItem",
    "ReviewService",
    "fetch_items_needing_review",
    "count_items_needing_review",
    "search_products",
]
