"""
Tests for the money calculator and currency formats

Covers:
- Totals at 0, 2 and 3 decimal precision with ROUND_HALF_UP
- Line item validation
- Display formatting
- GET /currencies
"""

import pytest
from decimal import Decimal

from branchbill.common.exceptions import ValidationError
from branchbill.modules.currencies.calculator import (
    calculate_line_item, calculate_tax, compute_totals, format_amount, round_amount, to_decimal
)
from branchbill.modules.currencies.formats import get_available_currencies, get_currency_format, get_decimal_places


@pytest.fixture
def sample_items():
    return [
        {"description": "Consulting hours", "quantity": 2, "unit_price": "100"},
        {"description": "Travel", "quantity": 1, "unit_price": "50"},
    ]


class TestComputeTotals:

    def test_two_decimal_currency(self, sample_items):
        totals = compute_totals(sample_items, Decimal("5"), "AED")

        assert totals.subtotal == Decimal("250.00")
        assert totals.tax == Decimal("12.50")
        assert totals.total == Decimal("262.50")
        assert totals.decimal_places == 2
        assert [item.line_total for item in totals.items] == [Decimal("200"), Decimal("50")]

    def test_zero_decimal_currency_rounds_half_up(self, sample_items):
        totals = compute_totals(sample_items, 5, "JPY")

        assert totals.subtotal == Decimal("250")
        assert totals.tax == Decimal("13")
        assert totals.total == Decimal("263")
        assert totals.decimal_places == 0

    def test_three_decimal_currency(self):
        items = [{"description": "Cable", "quantity": 3, "unit_price": "1.2345"}]
        totals = compute_totals(items, Decimal("5"), "KWD")

        # 3 * 1.2345 = 3.7035 -> 3.704; 5% = 0.1852 -> 0.185
        assert totals.subtotal == Decimal("3.704")
        assert totals.tax == Decimal("0.185")
        assert totals.total == Decimal("3.889")

    def test_total_is_sum_of_rounded_parts(self):
        items = [{"description": "Widget", "quantity": 3, "unit_price": "0.333"}]
        totals = compute_totals(items, Decimal("7.5"), "USD")

        assert totals.total == totals.subtotal + totals.tax
        assert totals.subtotal == Decimal("1.00")
        assert totals.tax == Decimal("0.08")

    def test_unknown_currency_defaults_to_two_decimals(self, sample_items):
        totals = compute_totals(sample_items, 0, "XYZ")

        assert totals.decimal_places == 2
        assert totals.tax == Decimal("0.00")
        assert totals.total == Decimal("250.00")

    def test_accepts_objects_with_attributes(self):
        class Item:
            description = "Support plan"
            quantity = Decimal("1")
            unit_price = Decimal("99.99")

        totals = compute_totals([Item()], 0, "USD")
        assert totals.total == Decimal("99.99")

    def test_no_items_rejected(self):
        with pytest.raises(ValidationError):
            compute_totals([], 5, "USD")

    def test_negative_tax_rate_rejected(self, sample_items):
        with pytest.raises(ValidationError):
            compute_totals(sample_items, -1, "USD")


class TestLineItems:

    def test_line_total_is_unrounded(self):
        item = calculate_line_item({"description": "Part", "quantity": "1.5", "unit_price": "0.333"}, 1)
        assert item.line_total == Decimal("0.4995")

    @pytest.mark.parametrize("item, message", [
        ({"description": "", "quantity": 1, "unit_price": 1}, "description"),
        ({"description": "Part", "quantity": 0, "unit_price": 1}, "quantity"),
        ({"description": "Part", "quantity": 1, "unit_price": -1}, "unit price"),
        ({"description": "Part", "quantity": "abc", "unit_price": 1}, "number"),
        ({"description": "Part", "quantity": 1}, "required"),
    ])
    def test_invalid_items_rejected(self, item, message):
        with pytest.raises(ValidationError) as exc_info:
            calculate_line_item(item, 2)
        assert message in exc_info.value.message
        assert "Item 2" in exc_info.value.message

    def test_non_finite_rejected(self):
        with pytest.raises(ValidationError):
            to_decimal("NaN", "Amount")


class TestRounding:

    @pytest.mark.parametrize("amount, places, expected", [
        ("12.5", 0, "13"),
        ("12.4999", 0, "12"),
        ("0.125", 2, "0.13"),
        ("0.0005", 3, "0.001"),
        ("-0.125", 2, "-0.13"),
    ])
    def test_round_half_up(self, amount, places, expected):
        assert round_amount(Decimal(amount), places) == Decimal(expected)

    def test_calculate_tax(self):
        assert calculate_tax(Decimal("250"), Decimal("5"), 2) == Decimal("12.50")


class TestFormats:

    def test_decimal_places(self):
        assert get_decimal_places("JPY") == 0
        assert get_decimal_places("kwd") == 3
        assert get_decimal_places("AED") == 2
        assert get_decimal_places("ZZZ") == 2

    def test_unknown_currency_format_keeps_code(self):
        fmt = get_currency_format("ZZZ")
        assert fmt["symbol"] == "ZZZ"
        assert fmt["decimal_places"] == 2

    def test_format_amount(self):
        assert format_amount(Decimal("1234.5"), "USD") == "$1,234.50"
        assert format_amount(Decimal("1234.5"), "EUR", show_code=True) == "€1.234,50 EUR"
        assert format_amount(Decimal("1234.5"), "JPY", show_symbol=False) == "1,235"
        assert format_amount("-3.7035", "KWD", show_symbol=False) == "-3.704"

    def test_available_currencies(self):
        codes = [c["code"] for c in get_available_currencies()]
        assert "AED" in codes and "JPY" in codes and "KWD" in codes


class TestCurrenciesEndpoint:

    def test_list_currencies(self, client):
        response = client.get("/currencies/")
        assert response.status_code == 200
        currencies = {c["code"]: c for c in response.json()["currencies"]}
        assert currencies["KWD"]["decimal_places"] == 3
        assert currencies["JPY"]["decimal_places"] == 0
