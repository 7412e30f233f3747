"""BRL amount helpers for API responses.

All amounts are stored as integer cents; these helpers only render them.
"""

from decimal import ROUND_HALF_UP, Decimal


def cents_to_reais(amount_in_cents: int) -> Decimal:
    """2990 -> Decimal("29.90")."""
    return (Decimal(amount_in_cents) / 100).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def format_brl(amount_in_cents: int) -> str:
    """Render cents in Brazilian notation: 123456 -> "R$ 1.234,56"."""
    reais = cents_to_reais(amount_in_cents)
    sign = "-" if reais < 0 else ""
    # Swap separators: 1,234.56 -> 1.234,56
    text = f"{abs(reais):,.2f}".replace(",", "_").replace(".", ",").replace("_", ".")
    return f"{sign}R$ {text}"


def calculate_platform_fee(amount_in_cents: int, fee_percent: int) -> int:
    """Platform share of a sale, rounded half up to whole cents."""
    fee = (Decimal(amount_in_cents) * Decimal(fee_percent) / 100).quantize(
        Decimal("1"), rounding=ROUND_HALF_UP
    )
    return int(fee)
