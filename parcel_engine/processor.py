"""
Settlement Processor - Main Orchestrator

Entry point for the pure computations exposed over HTTP. Each operation
parses raw wire data into models, runs the matching component and builds
the response dictionary.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict

from .calculators import AgentMatcher, CommissionEngine, EarningsAggregator, MoneyResolver
from .errors import ValidationError
from .lifecycle import GroupLifecycle
from .models import (
    Agent,
    EarningsPeriod,
    GroupEvent,
    GroupShipment,
    Parcel,
    SortOrder,
    parse_enum,
    parse_timestamp,
)
from .output import OutputBuilder
from .validators import InputValidator

logger = logging.getLogger(__name__)


class SettlementProcessor:
    """
    Main orchestrator for settlement requests.

    Operations:
    - parcel_commission: agent share of a regular delivery
    - group_commission: four-way split of a group shipment
    - rank_agents: best-first agent ranking
    - transition: fire a lifecycle event on a group
    - earnings: per-period agent earnings report
    """

    def __init__(self):
        self.money = MoneyResolver()
        self.commission = CommissionEngine(self.money)
        self.matcher = AgentMatcher()
        self.lifecycle = GroupLifecycle(self.commission)
        self.aggregator = EarningsAggregator(self.commission)
        self.validator = InputValidator()
        self.output_builder = OutputBuilder()

        self.operations = {
            "parcel_commission": self.parcel_commission_from_dict,
            "group_commission": self.group_commission_from_dict,
            "rank_agents": self.rank_agents_from_dict,
            "transition": self.transition_from_dict,
            "earnings": self.earnings_from_dict,
        }

    def process_from_dict(self, operation: str, data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Run a named operation on raw dictionary input.

        Convenience method for API usage.
        """
        handler = self.operations.get(operation)
        if handler is None:
            raise ValidationError(f"Unknown operation: {operation}")
        if not isinstance(data, dict):
            raise ValidationError("Request body must be a JSON object")
        return handler(data)

    def parcel_commission_from_dict(self, data: Dict[str, Any]) -> Dict[str, Any]:
        parcel = Parcel.from_dict(self._require(data, "parcel"))
        return self.output_builder.build_parcel_commission(self.commission.compute_parcel_commission(parcel))

    def group_commission_from_dict(self, data: Dict[str, Any]) -> Dict[str, Any]:
        group = GroupShipment.from_dict(self._require(data, "group"))
        parcels = self._parcels(data.get("parcels"))
        split = self.commission.compute_group_commission(group, parcels)
        realized = self.commission.realized_earnings(group, parcels)
        return self.output_builder.build_group_commission(split, realized)

    def rank_agents_from_dict(self, data: Dict[str, Any]) -> Dict[str, Any]:
        agents = [Agent.from_dict(a) for a in data.get("agents") or []]
        target_pincode = data.get("targetPincode")
        ranked = self.matcher.rank_with_scores(agents, target_pincode)
        return self.output_builder.build_ranking(ranked)

    def transition_from_dict(self, data: Dict[str, Any]) -> Dict[str, Any]:
        group = GroupShipment.from_dict(self._require(data, "group"))
        event = parse_enum(GroupEvent, self._require(data, "event"), "event")
        parcel = Parcel.from_dict(data["parcel"]) if data.get("parcel") else None
        agent = Agent.from_dict(data["agent"]) if data.get("agent") else None
        agent_id = data.get("agentId", agent.id if agent else None)

        self.validator.validate_transition(group, event, agent_id=agent_id, parcel=parcel)

        result = self.lifecycle.apply(
            group,
            event,
            parcels=self._parcels(data.get("parcels")),
            now=self._now(data),
            agent_id=agent_id,
            agent=agent,
            parcel=parcel,
            reason=data.get("reason"),
        )
        return self.output_builder.build_transition(result)

    def earnings_from_dict(self, data: Dict[str, Any]) -> Dict[str, Any]:
        agent_id = data.get("agentId")
        now = self._now(data)
        period = parse_enum(EarningsPeriod, data.get("period") or "all", "period")
        order = parse_enum(SortOrder, data.get("sort") or "newest", "sort")

        entries = self.aggregator.entries(
            agent_id,
            self._parcels(data.get("deliveredParcels")) or [],
            [GroupShipment.from_dict(g) for g in data.get("pickupGroups") or []],
            [GroupShipment.from_dict(g) for g in data.get("deliveryGroups") or []],
        )
        summary = self.aggregator.summarize(agent_id, entries, now)
        visible = self.aggregator.sort_entries(self.aggregator.filter_entries(entries, period, now), order, now)

        logger.info(f"Earnings for agent {agent_id}: {len(entries)} entries, {len(visible)} in {period.value}")
        return self.output_builder.build_earnings(summary, visible, period, order)

    @staticmethod
    def _require(data: Dict[str, Any], key: str):
        value = data.get(key)
        if value is None:
            raise ValidationError(f"{key} is required")
        return value

    @staticmethod
    def _parcels(raw) -> list[Parcel] | None:
        if raw is None:
            return None
        return [Parcel.from_dict(p) for p in raw]

    @staticmethod
    def _now(data: Dict[str, Any]) -> datetime:
        if data.get("now"):
            now = parse_timestamp(data["now"])
            if now is None:
                raise ValidationError(f"Invalid timestamp for now: {data['now']}")
            return now
        return datetime.now(timezone.utc)


# =============================================================================
# CONVENIENCE FUNCTIONS
# =============================================================================

def process_from_dict(operation: str, input_data: Dict[str, Any]) -> Dict[str, Any]:
    """Process a request from Python dict and return Python dict."""
    processor = SettlementProcessor()
    return processor.process_from_dict(operation, input_data)


def process_from_json(operation: str, json_input: str) -> str:
    """
    Process a request from JSON string input and return JSON string output.
    """
    import json

    from .errors import InvalidTransition

    try:
        input_data = json.loads(json_input)
        result = process_from_dict(operation, input_data)
        return json.dumps(result, indent=2)

    except InvalidTransition as e:
        return json.dumps({**e.to_dict(), "status": "invalid_transition"}, indent=2)

    except ValueError as e:
        return json.dumps({"error": str(e), "status": "validation_failed"}, indent=2)
