from datetime import datetime
from types import SimpleNamespace

import pytest

from app.core.errors import ValidationError
from app.services.currency_converter import (
    SUPPORTED_CURRENCIES,
    CurrencyConverter,
    CurrencyInfo,
)


def rate(code, value):
    return SimpleNamespace(currency_code=code, rate_to_usd=value, last_updated=datetime.utcnow())


RATES = [
    rate("USD", 1.0),
    rate("EUR", 0.92),
    rate("GBP", 0.79),
    rate("JPY", 148.0),
    rate("CAD", 1.35),
]


@pytest.fixture
def converter():
    return CurrencyConverter()


class TestConvertPrice:
    def test_base_currency_is_unchanged(self, converter):
        assert converter.convert_price(10000, "USD", RATES) == 10000

    @pytest.mark.parametrize(
        "currency, expected",
        [("EUR", 10869), ("GBP", 12658), ("JPY", 67), ("CAD", 7407)],
    )
    def test_converts_and_floors(self, converter, currency, expected):
        assert converter.convert_price(10000, currency, RATES) == expected

    def test_exact_division_is_kept_whole(self, converter):
        # 9200 / 0.92 is exactly 10000 in decimal arithmetic
        assert converter.convert_price(9200, "EUR", RATES) == 10000

    def test_large_amounts_are_floored_exactly(self, converter):
        amount = 2 * 10**29 - 1
        converted = converter.convert_price(amount, "EUR", {"EUR": 3})
        assert converted == amount // 3
        assert converted == 66666666666666666666666666666

    def test_large_amount_with_fractional_rate(self, converter):
        amount = 10**40 + 7
        converted = converter.convert_price(amount, "EUR", {"EUR": "0.92"})
        assert converted == (amount * 100) // 92
        assert converted * 92 <= amount * 100

    def test_result_is_int(self, converter):
        assert isinstance(converter.convert_price(9999, "EUR", RATES), int)

    def test_missing_rate_falls_back_to_amount(self, converter):
        assert converter.convert_price(10000, "ZZZ", RATES) == 10000
        assert converter.convert_price(10000, "EUR", []) == 10000
        assert converter.convert_price(10000, "EUR", None) == 10000

    def test_accepts_mapping_of_rates(self, converter):
        assert converter.convert_price(10000, "eur", {"EUR": 0.92}) == 10869
        assert converter.convert_price(10000, "EUR", {"EUR": {"currency_code": "EUR", "rate_to_usd": "0.92"}}) == 10869

    def test_rejects_negative_amount(self, converter):
        with pytest.raises(ValidationError):
            converter.convert_price(-1, "EUR", RATES)

    def test_rejects_non_positive_rate(self, converter):
        with pytest.raises(ValidationError):
            converter.convert_price(100, "EUR", [rate("EUR", 0)])


class TestFormatPrice:
    @pytest.mark.parametrize(
        "amount, currency, expected",
        [
            (10000, "USD", "$100.00"),
            (10000, "EUR", "€100.00"),
            (10000, "GBP", "£100.00"),
            (10000, "JPY", "¥100"),
            (10000, "CAD", "CA$100.00"),
            (1050, "USD", "$10.50"),
            (0, "USD", "$0.00"),
            (100000000, "USD", "$1000000.00"),
            (5, "INR", "₹0.05"),
            (1999, "BRL", "R$19.99"),
        ],
    )
    def test_formats(self, converter, amount, currency, expected):
        assert converter.format_price(amount, currency) == expected

    def test_large_amount_keeps_every_digit(self, converter):
        assert converter.format_price(10**30 + 1, "USD") == "$10000000000000000000000000000.01"
        assert converter.format_price(10**30 + 99, "JPY") == "¥10000000000000000000000000000"

    def test_zero_decimal_drops_fraction(self, converter):
        assert converter.format_price(199, "JPY") == "¥1"

    def test_unknown_currency_uses_code_prefix(self, converter):
        assert converter.format_price(1234, "CHF") == "CHF 12.34"


class TestLookups:
    @pytest.mark.parametrize(
        "currency, symbol",
        [("USD", "$"), ("EUR", "€"), ("GBP", "£"), ("JPY", "¥"), ("INR", "₹"), ("AUD", "A$")],
    )
    def test_symbols(self, converter, currency, symbol):
        assert converter.get_currency_symbol(currency) == symbol

    def test_unknown_symbol_is_code(self, converter):
        assert converter.get_currency_symbol("chf") == "CHF"

    def test_uses_decimals(self, converter):
        assert converter.uses_decimals("JPY") is False
        for code in ("USD", "EUR", "GBP", "CAD", "AUD", "INR"):
            assert converter.uses_decimals(code) is True

    def test_supported_table(self, converter):
        codes = [c.code for c in SUPPORTED_CURRENCIES]
        assert len(codes) >= 8
        assert len(codes) == len(set(codes))
        assert converter.is_supported("usd")
        assert not converter.is_supported("XYZ")

    def test_custom_table(self):
        converter = CurrencyConverter(
            currencies=[CurrencyInfo("EUR", "Euro", "€"), CurrencyInfo("KRW", "Won", "₩", decimals=0)],
            base_currency="EUR",
        )
        assert converter.convert_price(500, "EUR", {"EUR": 2}) == 500
        assert converter.format_price(123456, "KRW") == "₩1234"
        assert not converter.is_supported("USD")
