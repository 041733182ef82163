"""
Group Shipment Service

Runs lifecycle mutations against the remote API:

1. Fetch the authoritative group
2. Check the transition locally (nothing is sent if the guard fails)
3. Send the mutation
4. Re-fetch and return the authoritative group

The local copy is never patched. A failed mutation leaves nothing to undo.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Callable

from .calculators import AgentMatcher, EarningsAggregator
from .client import ParcelApiClient
from .errors import ValidationError
from .lifecycle import GroupLifecycle
from .models import (
    AssignmentPhase,
    EarningsPeriod,
    GroupEvent,
    GroupShipment,
    SortOrder,
)

logger = logging.getLogger(__name__)

# notifier(group, parcel_ids, event)
Notifier = Callable[[GroupShipment, list, GroupEvent], None]


class GroupShipmentService:
    """Coordinates remote group actions, agent recommendations and earnings reports."""

    def __init__(
        self,
        client: ParcelApiClient,
        lifecycle: GroupLifecycle | None = None,
        matcher: AgentMatcher | None = None,
        aggregator: EarningsAggregator | None = None,
        notifier: Notifier | None = None,
    ):
        self.client = client
        self.lifecycle = lifecycle or GroupLifecycle()
        self.matcher = matcher or AgentMatcher()
        self.aggregator = aggregator or EarningsAggregator(self.lifecycle.commission)
        self.notifier = notifier

    @property
    def session(self):
        return self.client.session

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    def _mutate(self, group_id, event: GroupEvent, send: Callable[[], object]) -> GroupShipment:
        group = self.client.get_group(group_id)
        self.lifecycle.check(group, event)

        logger.info(f"Sending {event.value} for group {group.label} (status {group.status.value})")
        send()
        return self.client.get_group(group_id)

    def assign_pickup_agent(self, group_id, agent_id) -> GroupShipment:
        if agent_id is None:
            raise ValidationError("agent_id is required")
        return self._mutate(group_id, GroupEvent.ASSIGN_PICKUP_AGENT,
                            lambda: self.client.assign_pickup_agent(group_id, agent_id))

    def assign_delivery_agent(self, group_id, agent_id) -> GroupShipment:
        if agent_id is None:
            raise ValidationError("agent_id is required")
        return self._mutate(group_id, GroupEvent.ASSIGN_DELIVERY_AGENT,
                            lambda: self.client.assign_delivery_agent(group_id, agent_id))

    def complete_pickup(self, group_id) -> GroupShipment:
        return self._mutate(group_id, GroupEvent.COMPLETE_PICKUP,
                            lambda: self.client.complete_group_pickup(group_id))

    def complete_delivery(self, group_id) -> GroupShipment:
        return self._mutate(group_id, GroupEvent.COMPLETE_DELIVERY,
                            lambda: self.client.complete_group_delivery(group_id))

    def close_early(self, group_id) -> GroupShipment:
        return self._mutate(group_id, GroupEvent.CLOSE_EARLY,
                            lambda: self.client.close_group_early(group_id))

    def reopen(self, group_id) -> GroupShipment:
        """Reopen a FULL group and hand its members to the notifier."""
        group = self._mutate(group_id, GroupEvent.REOPEN, lambda: self.client.reopen_group(group_id))
        if self.notifier is not None:
            parcels = self.client.list_group_parcels(group_id)
            self.notifier(group, [p.id for p in parcels], GroupEvent.REOPEN)
        return group

    def cancel(self, group_id, reason: str | None = None) -> GroupShipment:
        return self._mutate(group_id, GroupEvent.CANCEL,
                            lambda: self.client.cancel_group(group_id, reason))

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def recommend_agents(self, group_id, phase: AssignmentPhase = AssignmentPhase.PICKUP,
                         filter: dict | None = None):
        """
        Rank available agents for the group's next assignment.

        Pickup prefers agents near the source, delivery near the
        destination. Returns (agent, score) pairs best first.
        """
        phase = AssignmentPhase(phase)
        with ThreadPoolExecutor(max_workers=3) as pool:
            group_future = pool.submit(self.client.get_group, group_id)
            parcels_future = pool.submit(self.client.list_group_parcels, group_id)
            agents_future = pool.submit(self.client.list_available_agents, filter)
            group = group_future.result()
            parcels = parcels_future.result()
            agents = agents_future.result()

        target_pincode = self._target_pincode(group, parcels, phase)
        ranked = self.matcher.rank_with_scores(agents, target_pincode)
        if ranked:
            best, score = ranked[0]
            logger.info(f"Best {phase.value} match for group {group.label}: agent {best.id} (score {score})")
        return ranked

    @staticmethod
    def _target_pincode(group: GroupShipment, parcels, phase: AssignmentPhase) -> str | None:
        if phase == AssignmentPhase.PICKUP:
            if group.source_pincode:
                return group.source_pincode
            return next((p.pickup_pincode for p in parcels if p.pickup_pincode), None)
        if group.destination_pincode:
            return group.destination_pincode
        return next((p.delivery_pincode for p in parcels if p.delivery_pincode), None)

    def agent_earnings(self, agent_id, now: datetime | None = None,
                       period: EarningsPeriod = EarningsPeriod.ALL, order: SortOrder = SortOrder.NEWEST):
        """
        Earnings summary plus the filtered, sorted history for one agent.

        Returns (summary, entries).
        """
        now = now or datetime.now(timezone.utc)
        with ThreadPoolExecutor(max_workers=2) as pool:
            parcels_future = pool.submit(self.client.list_delivered_parcels, agent_id)
            groups_future = pool.submit(self.client.list_my_group_assignments, agent_id)
            parcels = parcels_future.result()
            assignments = groups_future.result()

        entries = self.aggregator.entries(
            agent_id, parcels, assignments["pickupGroups"], assignments["deliveryGroups"]
        )
        summary = self.aggregator.summarize(agent_id, entries, now)
        visible = self.aggregator.sort_entries(
            self.aggregator.filter_entries(entries, EarningsPeriod(period), now), SortOrder(order), now
        )
        return summary, visible
