"""
Commission Engine

Splits settled money between platform, company and agents for both regular
deliveries and group shipments.
"""

from decimal import Decimal

from ..models import CommissionSplit, GroupShipment, GroupStatus, Parcel, ParcelCommission, RealizedEarnings
from .money import ZERO, MoneyResolver, quantize_money

PICKUP_REALIZED_STATUSES = frozenset({
    GroupStatus.PICKUP_COMPLETE,
    GroupStatus.DELIVERY_IN_PROGRESS,
    GroupStatus.COMPLETED,
})
DELIVERY_REALIZED_STATUSES = frozenset({GroupStatus.COMPLETED})


class CommissionEngine:
    """Calculates commission splits for parcels and groups."""

    # Regular delivery: the agent keeps 20%, company and platform share the rest
    AGENT_RATE = Decimal("0.20")

    # Group delivery: must add up to 100%
    PLATFORM_RATE = Decimal("0.10")
    COMPANY_RATE = Decimal("0.70")
    PICKUP_AGENT_RATE = Decimal("0.10")
    DELIVERY_AGENT_RATE = Decimal("0.10")

    def __init__(self, money: MoneyResolver | None = None):
        self.money = money or MoneyResolver()

    def compute_parcel_commission(self, parcel: Parcel) -> ParcelCommission:
        """
        Agent share of a regular delivery.

        The remaining 80% is reported as a single company remainder; its
        platform/company breakdown is not defined.
        """
        amount = quantize_money(self.money.resolve_amount(parcel))
        agent_share = quantize_money(amount * self.AGENT_RATE)
        return ParcelCommission(
            amount=amount,
            agent_share=agent_share,
            company_remainder=amount - agent_share,
        )

    def group_value(self, group: GroupShipment, parcels: list[Parcel] | None = None) -> Decimal:
        """Total group value from member parcels, or the stored value when members are not supplied."""
        if parcels is not None:
            return quantize_money(self.money.resolve_total(parcels))
        return self._stored_money(group.total_group_value) or ZERO

    def compute_group_commission(self, group: GroupShipment, parcels: list[Parcel] | None = None) -> CommissionSplit:
        """
        Four-way split of the group value.

        Each share is rounded to the cent; the rounding residual goes to the
        company so the shares always add up to the group value.
        """
        return self.split_amount(self.group_value(group, parcels))

    def split_amount(self, total: Decimal) -> CommissionSplit:
        total = quantize_money(total)
        platform = quantize_money(total * self.PLATFORM_RATE)
        pickup = quantize_money(total * self.PICKUP_AGENT_RATE)
        delivery = quantize_money(total * self.DELIVERY_AGENT_RATE)
        company = total - platform - pickup - delivery

        return CommissionSplit(
            total_group_value=total,
            platform_share=platform,
            company_share=company,
            pickup_agent_share=pickup,
            delivery_agent_share=delivery,
        )

    @staticmethod
    def _stored_money(value: Decimal | None) -> Decimal | None:
        """A stored amount usable as-is, or None when absent or not a finite number."""
        if value is None or not value.is_finite():
            return None
        return quantize_money(max(ZERO, value))

    def pickup_earnings(self, group: GroupShipment, parcels: list[Parcel] | None = None) -> Decimal:
        """Stored pickup earnings, falling back to the pickup share of the group value."""
        stored = self._stored_money(group.pickup_agent_earnings)
        if stored is not None:
            return stored
        return self.compute_group_commission(group, parcels).pickup_agent_share

    def delivery_earnings(self, group: GroupShipment, parcels: list[Parcel] | None = None) -> Decimal:
        stored = self._stored_money(group.delivery_agent_earnings)
        if stored is not None:
            return stored
        return self.compute_group_commission(group, parcels).delivery_agent_share

    def realized_earnings(self, group: GroupShipment, parcels: list[Parcel] | None = None) -> RealizedEarnings:
        """
        Earnings confirmed so far.

        Pickup earnings count from PICKUP_COMPLETE onwards, delivery
        earnings only once the group is COMPLETED.
        """
        result = RealizedEarnings()
        if group.status in PICKUP_REALIZED_STATUSES:
            result.pickup_realized = True
            result.pickup_agent_earnings = self.pickup_earnings(group, parcels)
        if group.status in DELIVERY_REALIZED_STATUSES:
            result.delivery_realized = True
            result.delivery_agent_earnings = self.delivery_earnings(group, parcels)
        return result
