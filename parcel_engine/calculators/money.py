"""
Money Resolver

Normalizes a parcel's chargeable amount. The three price fields describe the
same amount at different pipeline stages (quoted, GST-inclusive, settled).
"""

from decimal import ROUND_HALF_UP, Decimal

from ..models import Parcel

ZERO = Decimal("0")


def quantize_money(value: Decimal) -> Decimal:
    """Round to 2 decimal places using ROUND_HALF_UP."""
    return value.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


class MoneyResolver:
    """Resolves the chargeable amount of a parcel."""

    # Precedence: settled price, then GST-inclusive total, then quote
    PRECEDENCE = ("final_price", "total_amount", "base_price")

    def resolve_amount(self, parcel: Parcel) -> Decimal:
        """
        Return the first present amount in precedence order, or 0.

        Never raises and never returns a negative value.
        """
        for name in self.PRECEDENCE:
            value = getattr(parcel, name, None)
            if value is None:
                continue
            if not value.is_finite():
                return ZERO
            return max(ZERO, value)
        return ZERO

    def resolve_total(self, parcels) -> Decimal:
        """Sum of chargeable amounts over a collection of parcels."""
        return sum((self.resolve_amount(p) for p in parcels), ZERO)
