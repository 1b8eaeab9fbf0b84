"""Decision policy for catalogsync matching results.

Routes a match to accept, create-new or review based on confidence and the
caller's creation flag.
"""

from __future__ import annotations

from catalogsync.models import Decision, DecisionAction, MatchResult


class DecisionPolicy:
    """Confidence threshold → decision."""

    def __init__(self, min_auto_match_confidence: float = 0.90, create_new_products: bool = True):
        self.min_auto_match_confidence = min_auto_match_confidence
        self.create_new_products = create_new_products

    def decide(self, match: MatchResult) -> Decision:
        return decide(match, self.min_auto_match_confidence, self.create_new_products)


def decide(
    match: MatchResult,
    min_auto_match_confidence: float,
    create_new_products: bool,
) -> Decision:
    """Determine the action for one match result.

    Rules:
    - No match, creation allowed → CREATE_NEW, no review
    - Match tied with another candidate → ACCEPT with needs_review
    - Match with confidence >= threshold → ACCEPT, no review
    - Match below threshold → ACCEPT with needs_review (link kept, surfaced)
    - No match, creation disabled → REVIEW (the row fails; nothing is written)

    Args:
        match: Matcher output
        min_auto_match_confidence: Threshold in [0, 1]
        create_new_products: Whether unmatched rows create products

    Returns:
        Decision with action, needs_review and human-readable reason
    """
    if not match.is_match:
        if create_new_products:
            return Decision(
                action=DecisionAction.CREATE_NEW,
                needs_review=False,
                reason="No existing product matched, creating new product",
            )
        return Decision(
            action=DecisionAction.REVIEW,
            needs_review=True,
            reason="No matching product found and product creation is disabled",
        )

    confidence = match.match_confidence
    if match.ambiguous:
        return Decision(
            action=DecisionAction.ACCEPT,
            needs_review=True,
            reason=(
                f"Manual review required: several products tie at {confidence:.2f} "
                f"via {match.match_method.value}"
            ),
        )

    if confidence >= min_auto_match_confidence:
        return Decision(
            action=DecisionAction.ACCEPT,
            needs_review=False,
            reason=f"High confidence ({confidence:.2f}) via {match.match_method.value}",
        )

    return Decision(
        action=DecisionAction.ACCEPT,
        needs_review=True,
        reason=(
            f"Manual review required: confidence {confidence:.2f} "
            f"< {min_auto_match_confidence:.2f} via {match.match_method.value}"
        ),
    )
