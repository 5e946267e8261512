"""
Fixed Currency Table

DESIGN DECISION: There is no live exchange-rate feed. Conversion uses a
fixed lookup table expressed as units of USD per unit of currency.
"""

from decimal import Decimal


SUPPORTED_CURRENCIES: dict[str, dict[str, str]] = {
    "USD": {"symbol": "$", "name": "US Dollar"},
    "EUR": {"symbol": "€", "name": "Euro"},
    "GBP": {"symbol": "£", "name": "British Pound"},
    "JPY": {"symbol": "¥", "name": "Japanese Yen"},
    "CAD": {"symbol": "C$", "name": "Canadian Dollar"},
    "AUD": {"symbol": "A$", "name": "Australian Dollar"},
}

USD_PER_UNIT: dict[str, Decimal] = {
    "USD": Decimal("1"),
    "EUR": Decimal("1.08"),
    "GBP": Decimal("1.27"),
    "JPY": Decimal("0.0067"),
    "CAD": Decimal("0.74"),
    "AUD": Decimal("0.66"),
}

CENT = Decimal("0.01")


class UnsupportedCurrencyError(ValueError):
    """Currency is not in the fixed lookup table."""
    
    def __init__(self, code: str):
        self.code = code
        super().__init__(
            f"Unsupported currency: {code}. Supported: {', '.join(sorted(USD_PER_UNIT))}"
        )


def is_supported(code: str) -> bool:
    return code.upper() in USD_PER_UNIT


def convert(amount: Decimal, from_currency: str, to_currency: str) -> Decimal:
    """Convert an amount between two table currencies, rounded to cents."""
    source = from_currency.upper()
    target = to_currency.upper()
    if source not in USD_PER_UNIT:
        raise UnsupportedCurrencyError(from_currency)
    if target not in USD_PER_UNIT:
        raise UnsupportedCurrencyError(to_currency)
    if source == target:
        return amount
    usd = amount * USD_PER_UNIT[source]
    return (usd / USD_PER_UNIT[target]).quantize(CENT)


def format_money(amount: Decimal, currency: str = "USD") -> str:
    """Format an amount as e.g. "$1,234.50" or "-€12.00"."""
    code = currency.upper()
    symbol = SUPPORTED_CURRENCIES.get(code, {}).get("symbol", f"{code} ")
    sign = "-" if amount < 0 else ""
    return f"{sign}{symbol}{abs(amount).quantize(CENT):,.2f}"
