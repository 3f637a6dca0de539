# services/currency_converter.py
"""
Price conversion and display formatting.

Amounts are integer minor units (cents) everywhere. Conversion from the base
currency divides by the target's ``rate_to_usd`` and always floors, using
exact rational arithmetic so a quoted price never exceeds the exact conversion.
"""

from dataclasses import dataclass
from fractions import Fraction
from typing import Any, Iterable, Mapping, Optional, Union

from app.core.errors import ValidationError


@dataclass(frozen=True)
class CurrencyInfo:
    code: str
    name: str
    symbol: str
    decimals: int = 2


SUPPORTED_CURRENCIES: tuple[CurrencyInfo, ...] = (
    CurrencyInfo("USD", "US Dollar", "$"),
    CurrencyInfo("EUR", "Euro", "€"),
    CurrencyInfo("GBP", "British Pound", "£"),
    CurrencyInfo("CAD", "Canadian Dollar", "CA$"),
    CurrencyInfo("AUD", "Australian Dollar", "A$"),
    CurrencyInfo("JPY", "Japanese Yen", "¥", decimals=0),
    CurrencyInfo("INR", "Indian Rupee", "₹"),
    CurrencyInfo("BRL", "Brazilian Real", "R$"),
)

# Seed values for the rates table
DEFAULT_RATES: dict[str, str] = {
    "USD": "1.000000",
    "EUR": "0.920000",
    "GBP": "0.790000",
    "CAD": "1.350000",
    "AUD": "1.520000",
    "JPY": "148.000000",
    "INR": "83.000000",
    "BRL": "5.000000",
}

RatesInput = Union[Mapping[str, Any], Iterable[Any]]


def _rate_value(rate: Any) -> Any:
    # Accept ORM rows, pydantic models, plain dicts or bare numbers
    if isinstance(rate, Mapping):
        return rate["rate_to_usd"]
    return getattr(rate, "rate_to_usd", rate)


def _rate_code(rate: Any) -> str:
    if isinstance(rate, Mapping):
        return rate["currency_code"]
    return rate.currency_code


class CurrencyConverter:
    """Converts and formats prices using a read-only currency table."""

    def __init__(
        self,
        currencies: Iterable[CurrencyInfo] = SUPPORTED_CURRENCIES,
        base_currency: str = "USD",
    ):
        self._currencies = {c.code.upper(): c for c in currencies}
        self.base_currency = base_currency.upper()

    def is_supported(self, currency: str) -> bool:
        return currency.upper() in self._currencies

    def get_currency_symbol(self, currency: str) -> str:
        info = self._currencies.get(currency.upper())
        return info.symbol if info is not None else currency.upper()

    def uses_decimals(self, currency: str) -> bool:
        info = self._currencies.get(currency.upper())
        return info is None or info.decimals > 0

    def _index_rates(self, rates: Optional[RatesInput]) -> dict[str, Any]:
        if not rates:
            return {}
        if isinstance(rates, Mapping):
            return {code.upper(): rate for code, rate in rates.items()}
        return {_rate_code(rate).upper(): rate for rate in rates}

    def convert_price(
        self, amount_minor_units: int, target_currency: str, rates: Optional[RatesInput]
    ) -> int:
        """
        Converts a base-currency amount to ``target_currency`` minor units.

        Falls back to the unchanged amount for the base currency or when
        ``rates`` has no entry for the target.
        """
        if amount_minor_units < 0:
            raise ValidationError("Price must not be negative")

        target = target_currency.upper()
        if target == self.base_currency:
            return amount_minor_units

        rate = self._index_rates(rates).get(target)
        if rate is None:
            return amount_minor_units

        rate_to_usd = Fraction(str(_rate_value(rate)))
        if rate_to_usd <= 0:
            raise ValidationError(f"Exchange rate for {target} must be positive")

        # Exact rational floor; no intermediate rounding at any magnitude
        return int(Fraction(amount_minor_units) // rate_to_usd)

    def format_price(self, amount_minor_units: int, currency: str) -> str:
        code = currency.upper()
        info = self._currencies.get(code)
        prefix = info.symbol if info is not None else f"{code} "

        sign = "-" if amount_minor_units < 0 else ""
        major, minor = divmod(abs(amount_minor_units), 100)
        if not self.uses_decimals(code):
            return f"{prefix}{sign}{major}"
        return f"{prefix}{sign}{major}.{minor:02d}"
