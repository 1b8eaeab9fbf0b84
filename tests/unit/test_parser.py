"""Unit tests for supplier catalog parsing."""

from __future__ import annotations

from decimal import Decimal

import pytest

from catalogsync.exceptions import RowValidationError
from catalogsync.ingestion.parser import (
    build_column_map,
    detect_delimiter,
    normalize_header,
    normalize_row,
    parse_catalog,
    parse_price,
)
from catalogsync.models import ImportRow, RowError


class TestHeaders:
    def test_normalize_header(self):
        assert normalize_header(" Unit Price ") == "unit_price"
        assert normalize_header("EAN") == "ean"

    def test_aliases_map_to_fields(self):
        column_map = build_column_map(["Artikelnummer", "EAN", "Bezeichnung", "Hersteller", "Preis", "Foo"])

        assert column_map == {
            "sku": "Artikelnummer",
            "gtin": "EAN",
            "name": "Bezeichnung",
            "brand": "Hersteller",
            "unit_price": "Preis",
        }

    def test_detect_delimiter(self):
        assert detect_delimiter("sku;name;price\n1;a;2") == ";"
        assert detect_delimiter("sku,name,price\n1,a,2") == ","


class TestParsePrice:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("12.50", Decimal("12.50")),
            ("12,5", Decimal("12.5")),
            ("1.234,50", Decimal("1234.50")),
            ("1,234.50", Decimal("1234.50")),
            ("€ 3,99", Decimal("3.99")),
        ],
    )
    def test_formats(self, raw, expected):
        assert parse_price(raw) == expected


class TestNormalizeRow:
    def test_full_row(self):
        row = normalize_row(
            {
                "sku": " GZ-100 ",
                "gtin": "4006381333931",
                "name": " Gauze ",
                "brand": "Hartmann",
                "unit_price": "12.345",
                "currency": "usd",
                "min_order_qty": "2.7",
                "stock_level": "15",
                "lead_time_days": "3",
            },
            row_index=4,
        )

        assert isinstance(row, ImportRow)
        assert row.row_index == 4
        assert row.sku == "GZ-100"
        assert row.name == "Gauze"
        assert row.unit_price == Decimal("12.35")
        assert row.currency == "USD"
        assert row.min_order_qty == 2
        assert row.stock_level == 15
        assert row.lead_time_days == 3
        assert row.warnings == []

    def test_missing_name_is_rejected(self):
        result = normalize_row({"sku": "X1", "name": "   "}, row_index=2)

        assert isinstance(result, RowError)
        assert result.row_index == 2
        assert result.message == "Name is required"

    def test_bad_numbers_become_none_with_warning(self):
        row = normalize_row(
            {"name": "Gauze", "unit_price": "abc", "stock_level": "-4", "min_order_qty": "0"},
            row_index=0,
        )

        assert row.unit_price is None
        assert row.stock_level is None
        assert row.min_order_qty == 1
        assert len(row.warnings) == 3

    def test_negative_price_is_warning(self):
        row = normalize_row({"name": "Gauze", "unit_price": "-1.00"}, row_index=0)

        assert row.unit_price is None
        assert "negative" in row.warnings[0]

    def test_invalid_gtin_dropped_with_warning(self):
        row = normalize_row({"name": "Gauze", "gtin": "4006381333932"}, row_index=0)

        assert row.gtin is None
        assert row.warnings and "Invalid GTIN" in row.warnings[0]

    def test_currency_defaults(self):
        assert normalize_row({"name": "Gauze"}, 0, default_currency="GBP").currency == "GBP"
        row = normalize_row({"name": "Gauze", "currency": "euro"}, 0)
        assert row.currency == "EUR"
        assert row.warnings


class TestParseCatalog:
    def test_semicolon_csv_with_aliases(self):
        content = (
            "Artikelnummer;EAN;Bezeichnung;Hersteller;Preis;Valuta\n"
            "GZ-1;4006381333931;Gauze;Hartmann;1,50;eur\n"
            "GZ-2;;Plaster;3M;2,00;\n"
        )

        rows, rejected = parse_catalog(content)

        assert rejected == []
        assert [r.name for r in rows] == ["Gauze", "Plaster"]
        assert rows[0].gtin == "4006381333931"
        assert rows[0].unit_price == Decimal("1.50")
        assert rows[1].currency == "EUR"
        assert rows[1].row_index == 1

    def test_quoted_values(self):
        content = 'sku,name,price\nA-1,"Gauze, sterile",1.00\n'

        rows, _ = parse_catalog(content)

        assert rows[0].name == "Gauze, sterile"

    def test_rows_without_name_are_rejected(self):
        content = "sku,name,price\nA-1,Gauze,1.00\nA-2,,2.00\nA-3,Tape,3.00\n"

        rows, rejected = parse_catalog(content)

        assert [r.sku for r in rows] == ["A-1", "A-3"]
        assert len(rejected) == 1
        assert rejected[0].row_index == 1
        assert rejected[0].raw["sku"] == "A-2"

    def test_fail_fast_when_not_skipping(self):
        content = "sku,name\nA-1,Gauze\nA-2,\n"

        with pytest.raises(RowValidationError) as exc_info:
            parse_catalog(content, skip_invalid_rows=False)

        assert exc_info.value.row_index == 1

    def test_blank_lines_are_ignored(self):
        content = "sku;name\nA-1;Gauze\n;\n\nA-2;Tape\n"

        rows, rejected = parse_catalog(content)

        assert [r.name for r in rows] == ["Gauze", "Tape"]
        assert rejected == []

    def test_malformed_line_is_rejected(self):
        content = "sku,name\nA-1,Gauze\nA-2,Tape,extra,fields\nA-3,Swab\n"

        rows, rejected = parse_catalog(content)

        assert [r.name for r in rows] == ["Gauze", "Swab"]
        assert len(rejected) == 1
        assert "Malformed row" in rejected[0].message
        assert rejected[0].raw["line"] == "A-2,Tape,extra,fields"

    def test_row_index_follows_source_lines(self):
        content = "sku;name\nA-1;Gauze\n\nA-2;Tape;extra\nA-3;\nA-4;Swab\n"

        rows, rejected = parse_catalog(content)

        assert [(r.sku, r.row_index) for r in rows] == [("A-1", 0), ("A-4", 4)]
        assert [(e.row_index, e.message.split(":")[0]) for e in rejected] == [
            (2, "Malformed row"),
            (3, "Name is required"),
        ]

    def test_malformed_line_fails_fast(self):
        content = "sku,name\nA-1,Gauze\nA-2,Tape,extra\n"

        with pytest.raises(RowValidationError) as exc_info:
            parse_catalog(content, skip_invalid_rows=False)

        assert exc_info.value.row_index == 1

    def test_empty_content(self):
        assert parse_catalog("") == ([], [])
        assert parse_catalog("   \n") == ([], [])
