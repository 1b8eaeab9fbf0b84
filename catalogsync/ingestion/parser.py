"""Supplier catalog CSV parsing for catalogsync.

Turns raw delimited text (header row + data rows) into normalized ImportRow
objects. Malformed rows are rejected or flagged, never fatal, unless the
caller disables skipping of invalid rows.
"""

from __future__ import annotations

import io
import logging
import math
import re
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

import pandas as pd

from catalogsync.exceptions import RowValidationError
from catalogsync.models import ImportRow, RowError

logger = logging.getLogger(__name__)

# ImportRow field -> accepted header spellings (after header normalization)
COLUMN_ALIASES: dict[str, list[str]] = {
    "sku": ["sku", "supplier_sku", "suppliersku", "article", "article_number", "artikelnummer"],
    "gtin": ["gtin", "ean", "barcode", "upc"],
    "name": ["name", "product_name", "productname", "title", "bezeichnung"],
    "brand": ["brand", "manufacturer", "hersteller", "merk"],
    "description": ["description", "details", "long_description", "beschreibung"],
    "unit_price": ["price", "unit_price", "unitprice", "prijs", "preis"],
    "currency": ["currency", "valuta", "wahrung"],
    "min_order_qty": ["min_qty", "min_order_qty", "minorderqty", "min_order", "minimum"],
    "stock_level": ["stock", "stock_level", "inventory", "voorraad", "bestand"],
    "lead_time_days": ["lead_time", "lead_time_days", "leadtime", "delivery_days", "lieferzeit"],
}

_HEADER_CLEAN = re.compile(r"[^a-z0-9_]")
_PRICE_NOISE = re.compile(r"[^0-9,.\-]")

# Placeholder written into the first cell of a line with too many fields
_MALFORMED = "\x00malformed:"


def normalize_header(column: str) -> str:
    """'Unit Price ' -> 'unit_price'."""
    return _HEADER_CLEAN.sub("_", str(column).strip().lower()).strip("_")


def detect_delimiter(content: str) -> str:
    """Choose between ',' and ';' from the header line."""
    header = next((line for line in content.splitlines() if line.strip()), "")
    return ";" if header.count(";") > header.count(",") else ","


def build_column_map(columns: list[str]) -> dict[str, str]:
    """Map ImportRow field names to the source column carrying them."""
    normalized = {normalize_header(col): col for col in columns}
    column_map: dict[str, str] = {}
    for field, aliases in COLUMN_ALIASES.items():
        for alias in aliases:
            if alias in normalized:
                column_map[field] = normalized[alias]
                break
    return column_map


def parse_price(value: str) -> Decimal:
    """Parse '1.234,50', '€ 12,5' or '12.50' into a Decimal.

    Raises:
        InvalidOperation: If no number can be read
    """
    cleaned = _PRICE_NOISE.sub("", value)
    if "," in cleaned and "." in cleaned:
        # Whichever separator appears last is the decimal separator
        if cleaned.rfind(",") > cleaned.rfind("."):
            cleaned = cleaned.replace(".", "").replace(",", ".")
        else:
            cleaned = cleaned.replace(",", "")
    else:
        cleaned = cleaned.replace(",", ".")
    return Decimal(cleaned)


def _parse_int(value: str) -> int:
    number = float(value.replace(",", ".").strip())
    if math.isnan(number) or math.isinf(number):
        raise ValueError(value)
    return math.floor(number)


def normalize_row(
    raw: dict[str, str],
    row_index: int,
    default_currency: str = "EUR",
) -> ImportRow | RowError:
    """Normalize one raw row (field name -> cell text).

    Returns a RowError when the row has no usable name; numeric and GTIN
    problems only attach warnings and null the affected field.
    """
    values = {k: (v or "").strip() for k, v in raw.items()}
    warnings: list[str] = []

    name = values.get("name", "")
    if not name:
        return RowError(row_index=row_index, message="Name is required", raw=values)

    unit_price = None
    if values.get("unit_price"):
        try:
            price = parse_price(values["unit_price"])
            if price < 0:
                warnings.append(f"Invalid price: {values['unit_price']} (negative)")
            else:
                unit_price = price.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
        except InvalidOperation:
            warnings.append(f"Invalid price: {values['unit_price']}")

    currency = default_currency
    if values.get("currency"):
        candidate = values["currency"].upper()
        if re.fullmatch(r"[A-Z]{3}", candidate):
            currency = candidate
        else:
            warnings.append(f"Invalid currency '{values['currency']}', using {default_currency}")

    min_order_qty = 1
    if values.get("min_order_qty"):
        try:
            qty = _parse_int(values["min_order_qty"])
            if qty > 0:
                min_order_qty = qty
            else:
                warnings.append(f"Invalid minimum order quantity: {values['min_order_qty']}")
        except ValueError:
            warnings.append(f"Invalid minimum order quantity: {values['min_order_qty']}")

    optional_ints: dict[str, int | None] = {"stock_level": None, "lead_time_days": None}
    for field in optional_ints:
        if not values.get(field):
            continue
        try:
            number = _parse_int(values[field])
            if number >= 0:
                optional_ints[field] = number
            else:
                warnings.append(f"Invalid {field}: {values[field]}")
        except ValueError:
            warnings.append(f"Invalid {field}: {values[field]}")

    return ImportRow(
        row_index=row_index,
        sku=values.get("sku"),
        gtin=values.get("gtin"),
        name=name,
        brand=values.get("brand"),
        description=values.get("description"),
        unit_price=unit_price,
        currency=currency,
        min_order_qty=min_order_qty,
        stock_level=optional_ints["stock_level"],
        lead_time_days=optional_ints["lead_time_days"],
        warnings=warnings,
    )


def parse_catalog(
    content: str,
    skip_invalid_rows: bool = True,
    default_currency: str = "EUR",
) -> tuple[list[ImportRow], list[RowError]]:
    """Parse supplier catalog text.

    Expected header columns (case-insensitive, aliases in COLUMN_ALIASES):
    sku, gtin, name (required), brand, description, price, currency,
    min_qty, stock, lead_time. Unknown columns are ignored.

    Args:
        content: Raw CSV text with a header row
        skip_invalid_rows: Reject invalid rows and continue (True) or fail fast
        default_currency: Currency for rows without one

    Returns:
        Tuple of (rows, rejected). row_index on both is the line's offset
        below the header (0 = first data line), blank and malformed lines
        included.

    Raises:
        RowValidationError: If a row is invalid and skip_invalid_rows is False
    """
    if not content or not content.strip():
        return [], []

    content = content.lstrip("\r\n")
    sep = detect_delimiter(content)
    header = pd.read_csv(io.StringIO(content), sep=sep, nrows=0, engine="python")
    width = len(header.columns)

    rejected: list[RowError] = []
    malformed: list[list[str]] = []

    def _on_bad_line(fields: list[str]) -> list[str]:
        # Keep the line's slot so later rows stay aligned with the source
        malformed.append(fields)
        return [f"{_MALFORMED}{len(malformed) - 1}"] + [""] * (width - 1)

    df = pd.read_csv(
        io.StringIO(content),
        sep=sep,
        dtype=str,
        keep_default_na=False,
        skip_blank_lines=False,
        skipinitialspace=True,
        engine="python",
        on_bad_lines=_on_bad_line,
    )

    column_map = build_column_map(list(df.columns))
    if "name" not in column_map:
        logger.warning(f"Catalog header has no name column: {list(df.columns)}")

    first_column = df.columns[0]
    rows: list[ImportRow] = []
    for position, record in enumerate(df.to_dict(orient="records")):
        # Short lines are padded by pandas with NaN
        cells = {column: value if isinstance(value, str) else "" for column, value in record.items()}

        marker = cells.get(first_column, "")
        if marker.startswith(_MALFORMED):
            fields = malformed[int(marker[len(_MALFORMED):])]
            message = f"Malformed row: expected {width} fields, got {len(fields)}"
            if not skip_invalid_rows:
                raise RowValidationError(position, message)
            rejected.append(RowError(row_index=position, message=message, raw={"line": sep.join(fields)}))
            continue

        # Blank lines and lines of bare separators carry nothing to report
        if not any(value.strip() for value in cells.values()):
            continue

        raw = {field: cells.get(column, "") for field, column in column_map.items()}
        parsed = normalize_row(raw, position, default_currency=default_currency)
        if isinstance(parsed, RowError):
            if not skip_invalid_rows:
                raise RowValidationError(position, parsed.message)
            rejected.append(parsed)
            continue

        for warning in parsed.warnings:
            logger.debug(f"Row {position}: {warning}")
        rows.append(parsed)

    logger.info(f"Parsed {len(rows)} catalog rows ({len(rejected)} rejected)")
    return rows, rejected
