"""
Group Pricing

Member price adjustments driven by the group lifecycle: the discount applied
on joining, the refund balance when leaving, and the pro-rated discount when
a group closes below its target.
"""

from dataclasses import replace
from decimal import ROUND_HALF_UP, Decimal

from ..models import GroupShipment, Parcel
from .money import ZERO, MoneyResolver, quantize_money

HUNDRED = Decimal("100")


class GroupPricing:
    """Computes discounted member prices."""

    def __init__(self, money: MoneyResolver | None = None):
        self.money = money or MoneyResolver()

    def base_of(self, parcel: Parcel) -> Decimal:
        if parcel.base_price is not None and parcel.base_price.is_finite():
            return max(ZERO, parcel.base_price)
        return self.money.resolve_amount(parcel)

    def discounted_price(self, base: Decimal, discount_percentage: Decimal) -> tuple[Decimal, Decimal]:
        """Return (final price, discount amount) for a percentage discount."""
        rate = (discount_percentage / HUNDRED).quantize(Decimal("0.0001"), rounding=ROUND_HALF_UP)
        final = quantize_money(base * (Decimal("1") - rate))
        return final, base - final

    def fill_percentage(self, current_members: int, target_members: int) -> Decimal:
        if target_members <= 0:
            return ZERO
        ratio = (Decimal(current_members) / Decimal(target_members)).quantize(
            Decimal("0.0001"), rounding=ROUND_HALF_UP
        )
        return ratio * HUNDRED

    def effective_discount(self, group: GroupShipment) -> tuple[Decimal, Decimal]:
        """
        Discount pro-rated by how full the group is.

        25% promised for 5 members with 3 joined gives 15%.
        Returns (fill percentage, effective discount percentage).
        """
        fill = self.fill_percentage(group.current_members, group.target_members)
        effective = quantize_money(group.discount_percentage * fill / HUNDRED)
        return fill, effective

    def price_member(self, parcel: Parcel, group: GroupShipment) -> Parcel:
        """Price a parcel joining the group at the full promised discount."""
        base = self.base_of(parcel)
        final, discount = self.discounted_price(base, group.discount_percentage)
        return replace(
            parcel,
            group_shipment_id=group.id,
            base_price=base,
            final_price=final,
            discount_amount=discount,
        )

    def reprice_member(self, parcel: Parcel, effective_discount: Decimal) -> Parcel:
        """
        Re-price a member at a reduced discount.

        The customer already paid the old final price; any increase becomes
        an outstanding balance.
        """
        base = self.base_of(parcel)
        paid = parcel.final_price if parcel.final_price is not None else base
        discount = quantize_money(base * effective_discount / HUNDRED)
        final = base - discount
        balance_due = final - paid

        return replace(
            parcel,
            base_price=base,
            final_price=final,
            discount_amount=discount,
            balance_amount=balance_due if balance_due > ZERO else parcel.balance_amount,
        )

    def release_member(self, parcel: Parcel, charge_balance: bool = True) -> Parcel:
        """
        Detach a parcel from its group at full price.

        A customer leaving voluntarily owes the discount back; a group
        cancellation does not charge one.
        """
        base = self.base_of(parcel)
        paid = parcel.final_price if parcel.final_price is not None else base
        balance_due = base - paid

        return replace(
            parcel,
            group_shipment_id=None,
            final_price=base,
            discount_amount=ZERO,
            balance_amount=balance_due if charge_balance and balance_due > ZERO else parcel.balance_amount,
        )
