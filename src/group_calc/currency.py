"""Currency catalogue, conversion and formatting.

Conversion is routed through a single pivot currency (AZN). A rate table maps
a currency code to how many pivot units one unit of that currency is worth:

    amount_in_X * rate[X] = amount_in_AZN
"""

from collections.abc import Mapping
from decimal import ROUND_HALF_UP, Decimal

from .models import CurrencyConfig

PIVOT_CURRENCY = "AZN"

CURRENCIES: list[CurrencyConfig] = [
    CurrencyConfig(code="AZN", symbol="₼", name="Azerbaijani Manat", position="suffix"),
    CurrencyConfig(code="USD", symbol="$", name="US Dollar", position="prefix"),
    CurrencyConfig(code="EUR", symbol="€", name="Euro", position="prefix"),
    CurrencyConfig(code="GBP", symbol="£", name="British Pound", position="prefix"),
    CurrencyConfig(code="TRY", symbol="₺", name="Turkish Lira", position="suffix"),
    CurrencyConfig(code="RUB", symbol="₽", name="Russian Ruble", position="suffix"),
    CurrencyConfig(code="GEL", symbol="₾", name="Georgian Lari", position="suffix"),
]

DEFAULT_RATES_TO_AZN: dict[str, float] = {
    "AZN": 1.0,
    "USD": 1.70,
    "EUR": 1.85,
    "GBP": 2.15,
    "TRY": 0.053,
    "RUB": 0.019,
    "GEL": 0.64,
}


def _to_decimal(value: float | int) -> Decimal:
    # str() keeps the shortest repr, so 1.85 becomes Decimal("1.85") exactly
    return Decimal(str(value))


def round_half_up(value: Decimal) -> int:
    """Round to the nearest integer, halves away from zero."""
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def convert_currency(
    amount_cents: int,
    from_code: str,
    to_code: str,
    rates: Mapping[str, float],
) -> int:
    """
    Convert an amount in cents from one currency to another via the pivot.

    Identical codes return the amount unchanged, whatever the rates say.
    Codes missing from the rate table are treated as worth one pivot unit;
    this is a permissive default, not an error.

    Args:
        amount_cents: Amount in minor units of ``from_code``
        from_code: Source currency code
        to_code: Target currency code
        rates: Mapping of code -> value of one unit in pivot units

    Returns:
        Amount in minor units of ``to_code``, rounded half away from zero
    """
    if from_code == to_code:
        return amount_cents

    to_pivot = _to_decimal(rates.get(from_code, 1))
    from_pivot = _to_decimal(rates.get(to_code, 1))
    return round_half_up(Decimal(amount_cents) * to_pivot / from_pivot)


def merge_rates(*overrides: Mapping[str, float] | None) -> dict[str, float]:
    """Return the default rates updated with each override mapping in turn."""
    rates = dict(DEFAULT_RATES_TO_AZN)
    for override in overrides:
        if override:
            rates.update(override)
    rates[PIVOT_CURRENCY] = 1.0
    return rates


def is_known_currency(code: str) -> bool:
    return any(c.code == code for c in CURRENCIES)


def get_currency_config(code: str) -> CurrencyConfig:
    """Look up a currency, falling back to the pivot currency."""
    for config in CURRENCIES:
        if config.code == code:
            return config
    return CURRENCIES[0]


def cents_to_plain(cents: int, config: CurrencyConfig) -> str:
    """Display cents as a plain decimal string (no symbol)."""
    value = Decimal(cents).scaleb(-config.decimals)
    return f"{value:.{config.decimals}f}"


def format_money(cents: int, config: CurrencyConfig) -> str:
    """
    Format cents with the currency symbol.

    Example:
        format_money(-1250, USD) -> "-$12.50"
        format_money(1250, AZN)  -> "12.50 ₼"
    """
    value = cents_to_plain(abs(cents), config)
    if config.position == "prefix":
        formatted = f"{config.symbol}{value}"
    else:
        formatted = f"{value} {config.symbol}"
    return f"-{formatted}" if cents < 0 else formatted


def amount_to_cents(amount: str) -> int:
    """
    Convert a decimal amount string (e.g. "12.50") to integer cents.

    Uses ROUND_HALF_UP so "0.005" becomes 1 cent.
    """
    cents = Decimal(amount.strip()) * 100
    return round_half_up(cents)
