"""GTIN (Global Trade Item Number) validation utilities.

Supports GTIN-8, GTIN-12 (UPC), GTIN-13 (EAN) and GTIN-14.

Check digit (GS1 modulo 10): starting from the rightmost payload digit,
multiply alternately by 3 and 1, sum, and take (10 - sum % 10) % 10.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

VALID_GTIN_LENGTHS = (8, 12, 13, 14)

_SEPARATORS = re.compile(r"[\s\-.]")


@dataclass(slots=True)
class GtinValidation:
    valid: bool
    error: str | None = None
    normalized: str | None = None
    gtin_type: str | None = None


def clean_gtin(gtin: str | None) -> str:
    """Strip spaces, dashes and dots."""
    if not gtin:
        return ""
    return _SEPARATORS.sub("", str(gtin)).strip()


def calculate_check_digit(payload: str) -> int:
    """Calculate the GS1 check digit for a GTIN without its last digit."""
    total = 0
    for i, digit in enumerate(reversed(payload)):
        total += int(digit) * (3 if i % 2 == 0 else 1)
    return (10 - total % 10) % 10


def validate_gtin(gtin: str | None) -> GtinValidation:
    """Validate format, length and check digit."""
    if not gtin or not str(gtin).strip():
        return GtinValidation(valid=False, error="GTIN is required")

    cleaned = clean_gtin(gtin)

    if not cleaned.isdigit():
        return GtinValidation(valid=False, error="GTIN must contain only digits")

    if len(cleaned) not in VALID_GTIN_LENGTHS:
        return GtinValidation(
            valid=False,
            error=f"GTIN must be 8, 12, 13, or 14 digits. Got {len(cleaned)} digits.",
        )

    expected = calculate_check_digit(cleaned[:-1])
    provided = int(cleaned[-1])
    if expected != provided:
        return GtinValidation(
            valid=False,
            error=f"Invalid check digit. Expected {expected}, got {provided}.",
        )

    return GtinValidation(valid=True, normalized=cleaned, gtin_type=f"GTIN-{len(cleaned)}")


def is_valid_gtin(gtin: str | None) -> bool:
    return validate_gtin(gtin).valid


def normalize_to_gtin14(gtin: str | None) -> str | None:
    """Left-pad a valid GTIN with zeros to 14 digits."""
    result = validate_gtin(gtin)
    if not result.valid or result.normalized is None:
        return None
    return result.normalized.zfill(14)


def are_gtins_equivalent(first: str | None, second: str | None) -> bool:
    a = normalize_to_gtin14(first)
    b = normalize_to_gtin14(second)
    return a is not None and a == b


def gtin_variants(gtin: str | None) -> list[str]:
    """Other valid-length spellings of the same GTIN.

    Leading zeros are stripped or padded so that, e.g., a UPC-12 stored as
    EAN-13 ("0" + UPC) still matches. The input spelling itself is excluded.
    """
    cleaned = clean_gtin(gtin)
    if not cleaned.isdigit():
        return []

    core = cleaned.lstrip("0")
    variants: list[str] = []
    for length in VALID_GTIN_LENGTHS:
        if len(core) > length:
            continue
        candidate = core.zfill(length)
        if candidate != cleaned and candidate not in variants:
            variants.append(candidate)
    return variants


def format_gtin_for_display(gtin: str) -> str:
    """Group digits for display (GTIN-13: 1-6-5-1, GTIN-14: 1-2-5-5-1)."""
    result = validate_gtin(gtin)
    if not result.valid or result.normalized is None:
        return gtin

    g = result.normalized
    if len(g) == 13:
        return f"{g[0]} {g[1:7]} {g[7:12]} {g[12]}"
    if len(g) == 14:
        return f"{g[0]} {g[1:3]} {g[3:8]} {g[8:13]} {g[13]}"
    return g
