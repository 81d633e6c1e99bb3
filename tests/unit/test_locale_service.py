"""Tests for locale-aware formatting."""

from datetime import date
from decimal import Decimal

from condo_finance.services.locale_service import (
    format_amount,
    format_day,
    get_currency_code,
    parse_decimal,
)


class TestFormatting:
    def test_currency_derived_from_locale(self):
        assert get_currency_code() == "BRL"

    def test_format_amount_with_symbol(self):
        formatted = format_amount(Decimal("1234.56"))
        assert formatted.startswith("R$")
        assert formatted.endswith("1.234,56")

    def test_format_amount_without_symbol(self):
        assert format_amount(Decimal("1234.5"), include_symbol=False) == "1.234,50"

    def test_format_amount_none(self):
        assert format_amount(None) == ""

    def test_format_day(self):
        assert format_day(date(2024, 1, 20)) == "20/01/2024"
        assert format_day(None) == ""

    def test_parse_decimal(self):
        assert parse_decimal(" 1.234,56 ") == Decimal("1234.56")
