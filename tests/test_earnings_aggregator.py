"""
Unit Tests for Earnings Aggregator

Tests verify period windows, milestone-gated group credit and the
filter/sort views.
"""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from parcel_engine.calculators.earnings import EarningsAggregator
from parcel_engine.models import (
    EarningEntry,
    EarningKind,
    EarningsPeriod,
    GroupShipment,
    GroupStatus,
    Parcel,
    ParcelStatus,
    SortOrder,
)

# Wednesday
NOW = datetime(2025, 10, 15, 12, 0, tzinfo=timezone.utc)
AGENT_ID = 42


def at(*args):
    return datetime(*args, tzinfo=timezone.utc)


def delivered(parcel_id, amount, when, agent_id=AGENT_ID):
    return Parcel(
        id=parcel_id,
        status=ParcelStatus.DELIVERED,
        tracking_number=f"PT{parcel_id:04d}",
        final_price=Decimal(amount),
        delivery_agent_id=agent_id,
        delivered_at=when,
    )


@pytest.fixture
def aggregator():
    return EarningsAggregator()


class TestPeriodStart:

    def test_today(self, aggregator):
        assert aggregator.period_start(EarningsPeriod.TODAY, NOW) == at(2025, 10, 15)

    def test_week_starts_monday(self, aggregator):
        assert aggregator.period_start(EarningsPeriod.WEEK, NOW) == at(2025, 10, 13)

    def test_month_starts_on_first(self, aggregator):
        assert aggregator.period_start(EarningsPeriod.MONTH, NOW) == at(2025, 10, 1)

    def test_all_is_unbounded(self, aggregator):
        assert aggregator.period_start(EarningsPeriod.ALL, NOW) is None

    def test_month_reaches_back_to_week_start(self, aggregator):
        """Wednesday 1 October: the week began on Monday 29 September."""
        now = at(2025, 10, 1, 9, 0)
        assert aggregator.period_start(EarningsPeriod.MONTH, now) == at(2025, 9, 29)


class TestWeekBoundary:

    def test_monday_morning_in_week_sunday_out(self, aggregator):
        parcels = [
            delivered(1, "1000", at(2025, 10, 13, 0, 1)),   # Monday 00:01
            delivered(2, "500", at(2025, 10, 12, 23, 59)),  # Sunday before
        ]
        summary = aggregator.aggregate(AGENT_ID, parcels, [], [], NOW)

        assert summary.week.count == 1
        assert summary.week.total_earnings == Decimal("200.00")
        assert summary.month.count == 2
        assert summary.month.total_earnings == Decimal("300.00")
        assert summary.all.count == 2
        assert summary.today.count == 0

    def test_buckets_nest(self, aggregator):
        parcels = [
            delivered(1, "100", at(2025, 10, 15, 8, 0)),
            delivered(2, "200", at(2025, 10, 14, 8, 0)),
            delivered(3, "300", at(2025, 10, 2, 8, 0)),
            delivered(4, "400", at(2025, 8, 2, 8, 0)),
        ]
        summary = aggregator.aggregate(AGENT_ID, parcels, [], [], NOW)

        totals = [summary.bucket(p).total_earnings for p in EarningsPeriod]
        counts = [summary.bucket(p).count for p in EarningsPeriod]
        assert totals == sorted(totals)
        assert counts == [1, 2, 3, 4]

    def test_naive_wire_timestamp_compared_in_now_zone(self, aggregator):
        parcel = Parcel.from_dict({
            "id": 1, "status": "DELIVERED", "finalPrice": 100,
            "deliveryAgentId": AGENT_ID, "deliveredAt": "2025-10-15T09:30:00.123456789",
        })
        summary = aggregator.aggregate(AGENT_ID, [parcel], [], [], NOW)
        assert summary.today.count == 1


class TestEntries:

    def test_regular_delivery_entry(self, aggregator):
        entries = aggregator.entries(AGENT_ID, [delivered(1, "1200", NOW)], [], [])
        assert len(entries) == 1
        assert entries[0].kind == EarningKind.DELIVERY
        assert entries[0].amount == Decimal("240.00")
        assert entries[0].reference == "PT0001"

    def test_undelivered_parcel_skipped(self, aggregator):
        parcel = delivered(1, "1200", NOW)
        parcel.status = ParcelStatus.OUT_FOR_DELIVERY
        assert aggregator.entries(AGENT_ID, [parcel], [], []) == []

    def test_other_agents_parcel_skipped(self, aggregator):
        assert aggregator.entries(AGENT_ID, [delivered(1, "1200", NOW, agent_id=7)], [], []) == []

    def test_falls_back_to_updated_at(self, aggregator):
        parcel = delivered(1, "1200", None)
        parcel.updated_at = NOW
        assert aggregator.entries(AGENT_ID, [parcel], [], [])[0].earned_at == NOW

    def test_pickup_credit_needs_milestone(self, aggregator):
        in_progress = GroupShipment(id=1, status=GroupStatus.PICKUP_IN_PROGRESS, pickup_agent_id=AGENT_ID,
                                    total_group_value=Decimal("1000"))
        done = GroupShipment(id=2, status=GroupStatus.DELIVERY_IN_PROGRESS, pickup_agent_id=AGENT_ID,
                             total_group_value=Decimal("1000"), pickup_completed_at=NOW)
        entries = aggregator.entries(AGENT_ID, [], [in_progress, done], [])
        assert [e.reference_id for e in entries] == [2]
        assert entries[0].kind == EarningKind.GROUP_PICKUP
        assert entries[0].amount == Decimal("100.00")

    def test_delivery_credit_needs_completed(self, aggregator):
        pending = GroupShipment(id=1, status=GroupStatus.DELIVERY_IN_PROGRESS, delivery_agent_id=AGENT_ID,
                                total_group_value=Decimal("1000"))
        done = GroupShipment(id=2, status=GroupStatus.COMPLETED, delivery_agent_id=AGENT_ID,
                             delivery_agent_earnings=Decimal("125"), delivery_completed_at=NOW)
        entries = aggregator.entries(AGENT_ID, [], [], [pending, done])
        assert [e.reference_id for e in entries] == [2]
        assert entries[0].amount == Decimal("125")

    def test_group_earnings_fallback_is_ten_percent(self, aggregator):
        group = GroupShipment(id=1, status=GroupStatus.COMPLETED, delivery_agent_id=AGENT_ID,
                              total_group_value=Decimal("2345.60"), delivery_completed_at=NOW)
        entries = aggregator.entries(AGENT_ID, [], [], [group])
        assert entries[0].amount == Decimal("234.56")

    def test_unusable_stored_earnings_keep_totals_finite(self, aggregator):
        def picked(group_id, earnings):
            return GroupShipment(id=group_id, status=GroupStatus.COMPLETED, pickup_agent_id=AGENT_ID,
                                 total_group_value=Decimal("1000"), pickup_agent_earnings=Decimal(earnings),
                                 pickup_completed_at=NOW)

        entries = aggregator.entries(AGENT_ID, [], [picked(1, "NaN"), picked(2, "50"), picked(3, "-40")], [])
        summary = aggregator.summarize(AGENT_ID, entries, NOW)

        assert [e.amount for e in entries] == [Decimal("100.00"), Decimal("50.00"), Decimal("0.00")]
        assert summary.today.total_earnings == Decimal("150.00")
        assert summary.all.total_earnings >= summary.today.total_earnings
        highest = aggregator.sort_entries(entries, SortOrder.HIGHEST)
        assert [e.reference_id for e in highest] == [1, 2, 3]


class TestViews:

    @pytest.fixture
    def entries(self):
        def entry(ref, amount, when):
            return EarningEntry(EarningKind.DELIVERY, ref, None, Decimal(amount), Decimal(amount), when)

        return [
            entry(1, "50", at(2025, 10, 14)),
            entry(2, "80", None),
            entry(3, "20", at(2025, 10, 15, 9)),
            entry(4, "120", at(2025, 9, 1)),
        ]

    def test_filter_today(self, aggregator, entries):
        assert [e.reference_id for e in aggregator.filter_entries(entries, EarningsPeriod.TODAY, NOW)] == [3]

    def test_filter_all_keeps_undated(self, aggregator, entries):
        assert len(aggregator.filter_entries(entries, EarningsPeriod.ALL, NOW)) == 4

    def test_newest_first_undated_last(self, aggregator, entries):
        result = aggregator.sort_entries(entries, SortOrder.NEWEST, NOW)
        assert [e.reference_id for e in result] == [3, 1, 4, 2]

    def test_oldest_first_undated_last(self, aggregator, entries):
        result = aggregator.sort_entries(entries, SortOrder.OLDEST, NOW)
        assert [e.reference_id for e in result] == [4, 1, 3, 2]

    def test_highest(self, aggregator, entries):
        result = aggregator.sort_entries(entries, SortOrder.HIGHEST)
        assert [e.reference_id for e in result] == [4, 2, 1, 3]

    def test_lowest(self, aggregator, entries):
        result = aggregator.sort_entries(entries, SortOrder.LOWEST)
        assert [e.reference_id for e in result] == [3, 1, 2, 4]

    def test_total(self, aggregator, entries):
        assert aggregator.total(entries) == Decimal("270")
