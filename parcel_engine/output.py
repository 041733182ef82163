"""
Output Builder

Constructs API responses from calculation and transition results.
"""

from decimal import Decimal

from .models import (
    Agent,
    CommissionSplit,
    EarningEntry,
    EarningsBucket,
    EarningsPeriod,
    EarningsSummary,
    ParcelCommission,
    RealizedEarnings,
    SortOrder,
    TransitionResult,
    format_timestamp,
)


def to_money(value: Decimal | None) -> float:
    """Convert Decimal to float with 2 decimal places."""
    if value is None:
        return 0.0
    return round(float(value), 2)


def _fmt(value) -> str:
    """Format a number as currency string for descriptions."""
    return f"₹{value:,.2f}"


class OutputBuilder:
    """Builds the response dictionaries."""

    def build_parcel_commission(self, commission: ParcelCommission) -> dict:
        return {
            "amount": to_money(commission.amount),
            "agent_share": to_money(commission.agent_share),
            "company_remainder": to_money(commission.company_remainder),
            "description": (
                f"20% × {_fmt(to_money(commission.amount))} = {_fmt(to_money(commission.agent_share))} to the agent, "
                f"{_fmt(to_money(commission.company_remainder))} retained by company and platform"
            ),
        }

    def build_group_commission(self, split: CommissionSplit, realized: RealizedEarnings | None = None) -> dict:
        result = {
            "total_group_value": to_money(split.total_group_value),
            "platform_share": to_money(split.platform_share),
            "company_share": to_money(split.company_share),
            "pickup_agent_share": to_money(split.pickup_agent_share),
            "delivery_agent_share": to_money(split.delivery_agent_share),
        }
        if realized is not None:
            result["realized"] = {
                "pickup_realized": realized.pickup_realized,
                "delivery_realized": realized.delivery_realized,
                "pickup_agent_earnings": to_money(realized.pickup_agent_earnings),
                "delivery_agent_earnings": to_money(realized.delivery_agent_earnings),
            }
        return result

    def build_ranking(self, ranked: list[tuple[Agent, Decimal]]) -> dict:
        agents = []
        for position, (agent, score) in enumerate(ranked, start=1):
            entry = agent.to_dict()
            entry["rank"] = position
            entry["score"] = round(float(score), 2)
            agents.append(entry)
        return {
            "best_match": agents[0] if agents else None,
            "agents": agents,
        }

    def build_transition(self, result: TransitionResult) -> dict:
        return {
            "event": result.event.value,
            "previous_status": result.previous_status.value,
            "status": result.group.status.value,
            "group": result.group.to_dict(),
            "parcels": [p.to_dict() for p in result.parcels],
            "notify_parcel_ids": list(result.notify_parcel_ids),
        }

    def build_earnings(self, summary: EarningsSummary, entries: list[EarningEntry],
                       period: EarningsPeriod, order: SortOrder) -> dict:
        return {
            "agent_id": summary.agent_id,
            "summary": {p.value: self._build_bucket(summary.bucket(p)) for p in EarningsPeriod},
            "period": period.value,
            "sort": order.value,
            "entries": [self._build_entry(e) for e in entries],
        }

    @staticmethod
    def _build_bucket(bucket: EarningsBucket) -> dict:
        return {"total_earnings": to_money(bucket.total_earnings), "count": bucket.count}

    @staticmethod
    def _build_entry(entry: EarningEntry) -> dict:
        return {
            "kind": entry.kind.value,
            "reference_id": entry.reference_id,
            "reference": entry.reference,
            "order_amount": to_money(entry.order_amount),
            "amount": to_money(entry.amount),
            "earned_at": format_timestamp(entry.earned_at),
        }
