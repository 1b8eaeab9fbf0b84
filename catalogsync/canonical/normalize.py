"""Text normalization for product name/brand comparison.

Normalization rules:
- Unicode NFKD, combining marks dropped
- Lowercase
- Punctuation replaced by spaces
- Whitespace collapsed
"""

from __future__ import annotations

import re
import unicodedata

_PUNCTUATION = re.compile(r"[^\w\s]|_")
_WHITESPACE = re.compile(r"\s+")

# Tokens too common in medical supply names to narrow a candidate search
_STOP_TOKENS = frozenset({"and", "for", "the", "with", "per", "pcs", "pack", "box", "st"})


def normalize_text(text: str | None) -> str:
    """Normalize text to canonical comparison form.

    Args:
        text: Input string

    Returns:
        Normalized string (lowercase, no punctuation, single-spaced)
    """
    if not text:
        return ""

    text = unicodedata.normalize("NFKD", text)
    text = "".join(ch for ch in text if not unicodedata.combining(ch))
    text = text.lower()
    text = _PUNCTUATION.sub(" ", text)
    text = _WHITESPACE.sub(" ", text)
    return text.strip()


def product_key(name: str | None, brand: str | None = None) -> str:
    """Normalized "name brand" string used for fuzzy scoring."""
    return " ".join(part for part in (normalize_text(name), normalize_text(brand)) if part)


def search_tokens(text: str | None, min_length: int = 3, limit: int = 5) -> list[str]:
    """Distinctive tokens for candidate pre-filtering, longest first."""
    tokens = {
        token
        for token in normalize_text(text).split()
        if len(token) >= min_length and token not in _STOP_TOKENS and not token.isdigit()
    }
    return sorted(tokens, key=lambda t: (-len(t), t))[:limit]
