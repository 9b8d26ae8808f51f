"""
Price formatting for display.
"""

from decimal import ROUND_HALF_UP, Decimal

from iap_bridge.models.storefront import Product

CURRENCY_SYMBOLS: dict[str, str] = {
    "USD": "$",
    "CAD": "CA$",
    "AUD": "A$",
    "EUR": "€",
    "GBP": "£",
    "JPY": "¥",
    "CNY": "CN¥",
    "INR": "₹",
    "KRW": "₩",
    "BRL": "R$",
    "CHF": "CHF ",
}

# Currencies without minor units
ZERO_DECIMAL_CURRENCIES = frozenset({"JPY", "KRW"})


def format_price(product: Product) -> str:
    """
    Format the product's price with its currency.

    Known currencies get their symbol as a prefix ("$1,299.99"), others get
    the ISO code as a suffix ("12.50 SEK").
    """
    code = product.currency_code.upper()
    exponent = Decimal(1) if code in ZERO_DECIMAL_CURRENCIES else Decimal("0.01")
    amount = product.price.quantize(exponent, rounding=ROUND_HALF_UP)

    symbol = CURRENCY_SYMBOLS.get(code)
    if symbol is None:
        return f"{amount:,f} {code}"
    return f"{symbol}{amount:,f}"
