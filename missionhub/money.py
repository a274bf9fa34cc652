"""Commission arithmetic.

All monetary values use Decimal, never float. Amounts cross the payment
boundary in integer minor units (cents).
"""

from decimal import ROUND_HALF_UP, Decimal

CENT = Decimal("0.01")


def compute_commission(estimated_price: Decimal, rate: Decimal) -> Decimal:
    """Platform commission for a price, rounded half-up to cents."""
    price = Decimal(str(estimated_price))
    return (price * Decimal(str(rate))).quantize(CENT, rounding=ROUND_HALF_UP)


def to_minor_units(amount: Decimal) -> int:
    """Convert a currency amount to integer cents."""
    return int((Decimal(str(amount)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_minor_units(cents: int) -> Decimal:
    return (Decimal(cents) / 100).quantize(CENT)


def split_amount(estimated_price: Decimal, commission: Decimal) -> tuple[int, int, int]:
    """Return (amount, commission, provider_amount) in cents.

    provider_amount is derived by subtraction in cents so the three always
    add up exactly.
    """
    amount_cents = to_minor_units(estimated_price)
    commission_cents = to_minor_units(commission)
    return amount_cents, commission_cents, amount_cents - commission_cents
