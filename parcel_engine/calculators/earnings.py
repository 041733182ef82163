"""
Earnings Aggregator

Folds an agent's completed work into today / week / month / all-time totals
and provides the filter and sort views used by the earnings screens.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

from ..models import (
    EarningEntry,
    EarningKind,
    EarningsPeriod,
    EarningsSummary,
    GroupShipment,
    Parcel,
    ParcelStatus,
    SortOrder,
    align_timestamp,
)
from .commission import DELIVERY_REALIZED_STATUSES, PICKUP_REALIZED_STATUSES, CommissionEngine


class EarningsAggregator:
    """Builds per-period earnings summaries for one agent."""

    def __init__(self, commission: CommissionEngine | None = None):
        self.commission = commission or CommissionEngine()

    # -------------------------------------------------------------------------
    # Windows
    # -------------------------------------------------------------------------

    @staticmethod
    def period_start(period: EarningsPeriod, now: datetime) -> datetime | None:
        """
        Inclusive lower bound of a period. None means unbounded.

        Weeks start on Monday. When a week straddles the first of the month
        the month window reaches back to the week start, so that every
        bucket contains the previous one.
        """
        start_of_today = now.replace(hour=0, minute=0, second=0, microsecond=0)
        if period == EarningsPeriod.TODAY:
            return start_of_today

        start_of_week = start_of_today - timedelta(days=now.weekday())
        if period == EarningsPeriod.WEEK:
            return start_of_week

        if period == EarningsPeriod.MONTH:
            return min(start_of_today.replace(day=1), start_of_week)

        return None

    def in_period(self, timestamp: datetime | None, period: EarningsPeriod, now: datetime) -> bool:
        start = self.period_start(period, now)
        if start is None:
            return True
        if timestamp is None:
            return False
        return align_timestamp(timestamp, now) >= start

    # -------------------------------------------------------------------------
    # Entries
    # -------------------------------------------------------------------------

    def entries(
        self,
        agent_id,
        delivered_parcels: list[Parcel],
        pickup_groups: list[GroupShipment],
        delivery_groups: list[GroupShipment],
    ) -> list[EarningEntry]:
        """
        Realized earning lines for the agent.

        Regular parcels count once DELIVERED. Group pickup credit needs the
        pickup milestone, group delivery credit needs COMPLETED.
        """
        result = []

        for parcel in delivered_parcels or []:
            if parcel.status != ParcelStatus.DELIVERED:
                continue
            if not self._belongs_to(agent_id, parcel.delivery_agent_id):
                continue
            split = self.commission.compute_parcel_commission(parcel)
            result.append(EarningEntry(
                kind=EarningKind.DELIVERY,
                reference_id=parcel.id,
                reference=parcel.tracking_number,
                order_amount=split.amount,
                amount=split.agent_share,
                earned_at=parcel.completed_at,
            ))

        for group in pickup_groups or []:
            if group.status not in PICKUP_REALIZED_STATUSES:
                continue
            if not self._belongs_to(agent_id, group.pickup_agent_id):
                continue
            result.append(EarningEntry(
                kind=EarningKind.GROUP_PICKUP,
                reference_id=group.id,
                reference=group.group_code,
                order_amount=self.commission.group_value(group),
                amount=self.commission.pickup_earnings(group),
                earned_at=group.pickup_completed_at,
            ))

        for group in delivery_groups or []:
            if group.status not in DELIVERY_REALIZED_STATUSES:
                continue
            if not self._belongs_to(agent_id, group.delivery_agent_id):
                continue
            result.append(EarningEntry(
                kind=EarningKind.GROUP_DELIVERY,
                reference_id=group.id,
                reference=group.group_code,
                order_amount=self.commission.group_value(group),
                amount=self.commission.delivery_earnings(group),
                earned_at=group.delivery_completed_at,
            ))

        return result

    @staticmethod
    def _belongs_to(agent_id, assigned_id) -> bool:
        # Lists come pre-scoped to the agent; only reject explicit mismatches
        if agent_id is None or assigned_id is None:
            return True
        return str(agent_id) == str(assigned_id)

    # -------------------------------------------------------------------------
    # Aggregation
    # -------------------------------------------------------------------------

    def aggregate(
        self,
        agent_id,
        delivered_parcels: list[Parcel],
        pickup_groups: list[GroupShipment],
        delivery_groups: list[GroupShipment],
        now: datetime,
    ) -> EarningsSummary:
        entries = self.entries(agent_id, delivered_parcels, pickup_groups, delivery_groups)
        return self.summarize(agent_id, entries, now)

    def summarize(self, agent_id, entries: list[EarningEntry], now: datetime) -> EarningsSummary:
        summary = EarningsSummary(agent_id=agent_id)
        for entry in entries:
            for period in EarningsPeriod:
                if self.in_period(entry.earned_at, period, now):
                    summary.bucket(period).add(entry.amount)
        return summary

    # -------------------------------------------------------------------------
    # Views
    # -------------------------------------------------------------------------

    def filter_entries(self, entries: list[EarningEntry], period: EarningsPeriod, now: datetime) -> list[EarningEntry]:
        return [e for e in entries if self.in_period(e.earned_at, period, now)]

    def sort_entries(self, entries: list[EarningEntry], order: SortOrder, now: datetime | None = None) -> list[EarningEntry]:
        """Sort a copy of the entries. Undated entries always go last."""
        if order in (SortOrder.HIGHEST, SortOrder.LOWEST):
            return sorted(entries, key=lambda e: e.amount, reverse=order == SortOrder.HIGHEST)

        dated = [e for e in entries if e.earned_at is not None]
        undated = [e for e in entries if e.earned_at is None]
        reference = now or datetime.now(timezone.utc)
        dated.sort(key=lambda e: align_timestamp(e.earned_at, reference), reverse=order == SortOrder.NEWEST)
        return dated + undated

    def total(self, entries: list[EarningEntry]) -> Decimal:
        return sum((e.amount for e in entries), Decimal("0"))
