"""
Group Lifecycle

State machine for a group shipment:

    OPEN -> FULL -> PICKUP_IN_PROGRESS -> PICKUP_COMPLETE
         -> DELIVERY_IN_PROGRESS -> COMPLETED

CANCELLED is reachable from every non-terminal state and FULL may be
reopened. Every transition returns new group and member values; a guard
violation raises InvalidTransition and leaves the inputs untouched.
"""

import logging
import math
from dataclasses import replace
from datetime import datetime, timezone

from .calculators.commission import CommissionEngine
from .calculators.pricing import GroupPricing
from .errors import InvalidTransition, ValidationError
from .models import (
    Agent,
    DeadlineOutcome,
    GroupEvent,
    GroupShipment,
    GroupStatus,
    Parcel,
    ParcelStatus,
    TransitionResult,
)

logger = logging.getLogger(__name__)

NON_TERMINAL = frozenset(s for s in GroupStatus if not s.is_terminal)

# Statuses each event may fire from
TRANSITIONS: dict[GroupEvent, frozenset[GroupStatus]] = {
    GroupEvent.JOIN: frozenset({GroupStatus.OPEN}),
    GroupEvent.LEAVE: frozenset({GroupStatus.OPEN}),
    GroupEvent.CLOSE_EARLY: frozenset({GroupStatus.OPEN}),
    GroupEvent.REOPEN: frozenset({GroupStatus.FULL}),
    GroupEvent.ASSIGN_PICKUP_AGENT: frozenset({GroupStatus.OPEN, GroupStatus.FULL}),
    GroupEvent.COMPLETE_PICKUP: frozenset({GroupStatus.PICKUP_IN_PROGRESS}),
    GroupEvent.ASSIGN_DELIVERY_AGENT: frozenset({GroupStatus.PICKUP_COMPLETE}),
    GroupEvent.COMPLETE_DELIVERY: frozenset({GroupStatus.DELIVERY_IN_PROGRESS}),
    GroupEvent.CANCEL: NON_TERMINAL,
    GroupEvent.RESOLVE_DEADLINE: frozenset({GroupStatus.OPEN}),
}

JOINABLE_PARCEL_STATUSES = frozenset({ParcelStatus.PENDING, ParcelStatus.CONFIRMED})

# Share of the target a group needs at its deadline to proceed at a reduced discount
PARTIAL_FILL_THRESHOLD = 0.7


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class GroupLifecycle:
    """Validates and applies group shipment transitions."""

    def __init__(self, commission: CommissionEngine | None = None, pricing: GroupPricing | None = None):
        self.commission = commission or CommissionEngine()
        self.pricing = pricing or GroupPricing(self.commission.money)

    # -------------------------------------------------------------------------
    # Guards
    # -------------------------------------------------------------------------

    def check(self, group: GroupShipment, event: GroupEvent) -> None:
        """
        Raise InvalidTransition unless the event is allowed now.

        Checks the status table and the agent guards, which is everything
        that can be decided from the group alone.
        """
        event = GroupEvent(event)
        if group.status not in TRANSITIONS[event]:
            raise InvalidTransition(group.id, event.value, group.status.value)

        if event == GroupEvent.ASSIGN_PICKUP_AGENT and group.pickup_agent_id is not None:
            raise InvalidTransition(group.id, event.value, group.status.value, "pickup agent already assigned")
        if event == GroupEvent.COMPLETE_PICKUP and group.pickup_agent_id is None:
            raise InvalidTransition(group.id, event.value, group.status.value, "no pickup agent assigned")
        if event == GroupEvent.ASSIGN_DELIVERY_AGENT and group.delivery_agent_id is not None:
            raise InvalidTransition(group.id, event.value, group.status.value, "delivery agent already assigned")
        if event == GroupEvent.COMPLETE_DELIVERY and group.delivery_agent_id is None:
            raise InvalidTransition(group.id, event.value, group.status.value, "no delivery agent assigned")
        if event == GroupEvent.CLOSE_EARLY:
            minimum = self.minimum_members_to_close(group)
            if group.current_members < minimum:
                raise InvalidTransition(
                    group.id, event.value, group.status.value,
                    f"need at least {minimum} members, have {group.current_members}/{group.target_members}",
                )

    def can(self, group: GroupShipment, event: GroupEvent) -> bool:
        try:
            self.check(group, event)
        except InvalidTransition:
            return False
        return True

    def allowed_events(self, group: GroupShipment) -> list[GroupEvent]:
        return [event for event in GroupEvent if self.can(group, event)]

    @staticmethod
    def minimum_members_to_close(group: GroupShipment) -> int:
        return math.ceil(group.target_members / 2)

    # -------------------------------------------------------------------------
    # Membership
    # -------------------------------------------------------------------------

    def join(self, group: GroupShipment, parcel: Parcel, now: datetime | None = None) -> TransitionResult:
        """Add a parcel to an OPEN group at the group discount."""
        now = now or _utcnow()
        event = GroupEvent.JOIN
        self.check(group, event)
        if group.is_full:
            raise InvalidTransition(group.id, event.value, group.status.value, "group is already full")
        if group.is_expired(now):
            raise InvalidTransition(group.id, event.value, group.status.value, "group deadline has passed")

        self._validate_joining_parcel(group, parcel)

        member = self.pricing.price_member(parcel, group)
        updated = replace(group, current_members=group.current_members + 1)
        if updated.is_full:
            # An agent booked while OPEN starts collecting as soon as the group fills
            status = GroupStatus.PICKUP_IN_PROGRESS if updated.pickup_agent_id is not None else GroupStatus.FULL
            updated = self._move(updated, status)
            if status == GroupStatus.PICKUP_IN_PROGRESS:
                updated = replace(updated, pickup_started_at=now)
                member = self._assign_member(member, updated.pickup_agent_id, now)

        logger.info(f"Parcel {parcel.tracking_number or parcel.id} joined group {group.label} "
                    f"({updated.current_members}/{updated.target_members})")
        return self._result(group, updated, event, [member])

    def _validate_joining_parcel(self, group: GroupShipment, parcel: Parcel) -> None:
        if parcel.status not in JOINABLE_PARCEL_STATUSES:
            raise ValidationError(
                f"Parcel cannot be added to group in current status: {parcel.status.value}",
                parcel_id=parcel.id,
            )
        if parcel.group_shipment_id is not None:
            raise ValidationError("Parcel is already part of a group", parcel_id=parcel.id)
        if not self._same_city(parcel.pickup_city, group.source_city) or not self._same_city(
            parcel.delivery_city, group.destination_city
        ):
            raise ValidationError(
                f"Parcel route doesn't match group route. Group: {group.source_city} -> {group.destination_city}, "
                f"Parcel: {parcel.pickup_city} -> {parcel.delivery_city}",
                parcel_id=parcel.id,
            )

    @staticmethod
    def _same_city(a: str | None, b: str | None) -> bool:
        if a is None or b is None:
            return a is None and b is None
        return a.strip().lower() == b.strip().lower()

    def leave(self, group: GroupShipment, parcel: Parcel) -> TransitionResult:
        """Remove a parcel from an OPEN group; the customer owes back the discount."""
        event = GroupEvent.LEAVE
        self.check(group, event)
        if parcel.group_shipment_id is None or str(parcel.group_shipment_id) != str(group.id):
            raise ValidationError("Parcel is not part of this group", parcel_id=parcel.id, group_id=group.id)

        member = self.pricing.release_member(parcel)
        updated = replace(group, current_members=max(0, group.current_members - 1))

        logger.info(f"Parcel {parcel.tracking_number or parcel.id} left group {group.label} "
                    f"(balance due {member.balance_amount or 0})")
        return self._result(group, updated, event, [member])

    def close_early(self, group: GroupShipment, parcels: list[Parcel] = (),
                    now: datetime | None = None) -> TransitionResult:
        """
        Close an OPEN group that reached at least half its target.

        Members are re-priced at the discount pro-rated by the fill level.
        """
        now = now or _utcnow()
        event = GroupEvent.CLOSE_EARLY
        self.check(group, event)
        fill, effective = self.pricing.effective_discount(group)
        members = [self.pricing.reprice_member(p, effective) for p in parcels]

        updated = replace(group, fill_percentage=fill, effective_discount_percentage=effective)
        updated, members = self._settle_closed(updated, members, now)

        logger.info(f"Group {group.label} closed early with {group.current_members}/{group.target_members} members, "
                    f"discount {group.discount_percentage}% -> {effective}%")
        return self._result(group, updated, event, members, notify=members)

    def reopen(self, group: GroupShipment, parcels: list[Parcel] = ()) -> TransitionResult:
        """FULL back to OPEN so members may withdraw. Members are reported for notification only."""
        event = GroupEvent.REOPEN
        self.check(group, event)
        updated = self._move(group, GroupStatus.OPEN)
        return self._result(group, updated, event, list(parcels), notify=parcels)

    def resolve_deadline(self, group: GroupShipment, parcels: list[Parcel] = (),
                         now: datetime | None = None) -> TransitionResult:
        """
        Settle an OPEN group whose deadline passed.

        Full groups close; groups at 70% or more close at a pro-rated
        discount; anything smaller is cancelled.
        """
        now = now or _utcnow()
        event = GroupEvent.RESOLVE_DEADLINE
        self.check(group, event)
        if not group.is_expired(now):
            raise InvalidTransition(group.id, event.value, group.status.value, "deadline has not passed")

        outcome = self.deadline_outcome(group)
        if outcome.status == GroupStatus.CANCELLED:
            result = self.cancel(group, parcels, now=now, reason="Deadline passed with insufficient members")
            result.event = event
            return result

        updated = group
        members = list(parcels)
        if outcome.partial:
            fill, effective = self.pricing.effective_discount(group)
            members = [self.pricing.reprice_member(p, effective) for p in parcels]
            updated = replace(updated, fill_percentage=fill, effective_discount_percentage=effective)
        updated, members = self._settle_closed(updated, members, now)
        return self._result(group, updated, event, members, notify=members)

    @staticmethod
    def deadline_outcome(group: GroupShipment) -> DeadlineOutcome:
        if group.is_full:
            return DeadlineOutcome(status=GroupStatus.FULL)
        if group.target_members > 0 and group.current_members >= group.target_members * PARTIAL_FILL_THRESHOLD:
            return DeadlineOutcome(status=GroupStatus.FULL, partial=True)
        return DeadlineOutcome(status=GroupStatus.CANCELLED)

    def _settle_closed(self, group: GroupShipment, members: list[Parcel],
                       now: datetime) -> tuple[GroupShipment, list[Parcel]]:
        """FULL, or straight to pickup when an agent is already booked."""
        if group.pickup_agent_id is None:
            return self._move(group, GroupStatus.FULL), members
        updated = replace(self._move(group, GroupStatus.PICKUP_IN_PROGRESS), pickup_started_at=now)
        return updated, [self._assign_member(p, group.pickup_agent_id, now) for p in members]

    # -------------------------------------------------------------------------
    # Pickup and delivery
    # -------------------------------------------------------------------------

    def assign_pickup_agent(self, group: GroupShipment, agent_id, parcels: list[Parcel] = (),
                            now: datetime | None = None, agent: Agent | None = None) -> TransitionResult:
        """
        Book the pickup agent.

        A FULL group starts pickup immediately; an OPEN group keeps
        collecting members with the agent on standby. Members are assigned
        to the agent either way.
        """
        now = now or _utcnow()
        event = GroupEvent.ASSIGN_PICKUP_AGENT
        self.check(group, event)
        self._validate_agent(agent_id, agent)

        updated = replace(group, pickup_agent_id=agent_id)
        if group.status == GroupStatus.FULL:
            updated = replace(self._move(updated, GroupStatus.PICKUP_IN_PROGRESS), pickup_started_at=now)
        members = [self._assign_member(p, agent_id, now) for p in parcels]

        logger.info(f"Assigned pickup agent {agent_id} to group {group.label} ({len(members)} parcels)")
        return self._result(group, updated, event, members)

    @staticmethod
    def _assign_member(parcel: Parcel, agent_id, now: datetime) -> Parcel:
        if parcel.status not in JOINABLE_PARCEL_STATUSES:
            return parcel
        return replace(parcel, status=ParcelStatus.ASSIGNED, pickup_agent_id=agent_id, updated_at=now)

    def complete_pickup(self, group: GroupShipment, parcels: list[Parcel] | None = None,
                        now: datetime | None = None) -> TransitionResult:
        """All parcels collected at the warehouse; the pickup share is earned."""
        now = now or _utcnow()
        event = GroupEvent.COMPLETE_PICKUP
        self.check(group, event)

        split = self.commission.compute_group_commission(group, parcels)
        updated = replace(
            self._move(group, GroupStatus.PICKUP_COMPLETE),
            pickup_completed_at=now,
            pickup_agent_earnings=split.pickup_agent_share,
            total_group_value=split.total_group_value,
        )
        members = [replace(p, status=ParcelStatus.PICKED_UP, updated_at=now) for p in parcels or []]
        return self._result(group, updated, event, members)

    def assign_delivery_agent(self, group: GroupShipment, agent_id, parcels: list[Parcel] = (),
                              now: datetime | None = None, agent: Agent | None = None) -> TransitionResult:
        """Hand the group to the delivery agent. Only possible after pickup completed."""
        now = now or _utcnow()
        event = GroupEvent.ASSIGN_DELIVERY_AGENT
        self.check(group, event)
        self._validate_agent(agent_id, agent)

        updated = replace(
            self._move(group, GroupStatus.DELIVERY_IN_PROGRESS),
            delivery_agent_id=agent_id,
            delivery_started_at=now,
        )
        members = [
            replace(p, status=ParcelStatus.OUT_FOR_DELIVERY, delivery_agent_id=agent_id, updated_at=now)
            for p in parcels
        ]
        logger.info(f"Assigned delivery agent {agent_id} to group {group.label} ({len(members)} parcels)")
        return self._result(group, updated, event, members)

    def complete_delivery(self, group: GroupShipment, parcels: list[Parcel] | None = None,
                          now: datetime | None = None) -> TransitionResult:
        """Every member delivered; the delivery share is earned."""
        now = now or _utcnow()
        event = GroupEvent.COMPLETE_DELIVERY
        self.check(group, event)

        split = self.commission.compute_group_commission(group, parcels)
        updated = replace(
            self._move(group, GroupStatus.COMPLETED),
            delivery_completed_at=now,
            delivery_agent_earnings=split.delivery_agent_share,
            total_group_value=split.total_group_value,
        )
        members = [
            replace(p, status=ParcelStatus.DELIVERED, delivered_at=now, updated_at=now)
            for p in parcels or []
        ]
        return self._result(group, updated, event, members)

    @staticmethod
    def _validate_agent(agent_id, agent: Agent | None) -> None:
        if agent_id is None:
            raise ValidationError("agent_id is required")
        if agent is None:
            return
        if agent.id is not None and str(agent.id) != str(agent_id):
            raise ValidationError(f"Agent {agent.id} does not match requested agent {agent_id}")
        if not agent.is_assignable:
            raise ValidationError("Agent is not available for assignment", agent_id=agent_id)

    # -------------------------------------------------------------------------
    # Cancellation
    # -------------------------------------------------------------------------

    def cancel(self, group: GroupShipment, parcels: list[Parcel] = (), now: datetime | None = None,
               reason: str | None = None) -> TransitionResult:
        """Cancel the group and release every member at full price."""
        now = now or _utcnow()
        event = GroupEvent.CANCEL
        self.check(group, event)

        updated = replace(
            self._move(group, GroupStatus.CANCELLED),
            cancelled_at=now,
            cancellation_reason=reason or "Cancelled by company",
        )
        members = []
        for parcel in parcels:
            released = self.pricing.release_member(parcel, charge_balance=False)
            status = ParcelStatus.CONFIRMED if released.status == ParcelStatus.ASSIGNED else released.status
            members.append(replace(
                released, status=status, pickup_agent_id=None, delivery_agent_id=None, updated_at=now,
            ))

        logger.info(f"Cancelled group {group.label} ({len(members)} parcels released)")
        return self._result(group, updated, event, members, notify=members)

    # -------------------------------------------------------------------------
    # Dispatch
    # -------------------------------------------------------------------------

    def apply(self, group: GroupShipment, event: GroupEvent, parcels: list[Parcel] | None = None,
              now: datetime | None = None, agent_id=None, agent: Agent | None = None,
              parcel: Parcel | None = None, reason: str | None = None) -> TransitionResult:
        """Fire an event by name with whatever arguments it needs."""
        event = GroupEvent(event)
        members = list(parcels or [])

        if event in (GroupEvent.JOIN, GroupEvent.LEAVE):
            if parcel is None:
                raise ValidationError(f"parcel is required for {event.value}")
            if event == GroupEvent.JOIN:
                return self.join(group, parcel, now=now)
            return self.leave(group, parcel)
        if event == GroupEvent.CLOSE_EARLY:
            return self.close_early(group, members, now=now)
        if event == GroupEvent.REOPEN:
            return self.reopen(group, members)
        if event == GroupEvent.ASSIGN_PICKUP_AGENT:
            return self.assign_pickup_agent(group, agent_id, members, now=now, agent=agent)
        if event == GroupEvent.COMPLETE_PICKUP:
            return self.complete_pickup(group, parcels, now=now)
        if event == GroupEvent.ASSIGN_DELIVERY_AGENT:
            return self.assign_delivery_agent(group, agent_id, members, now=now, agent=agent)
        if event == GroupEvent.COMPLETE_DELIVERY:
            return self.complete_delivery(group, parcels, now=now)
        if event == GroupEvent.CANCEL:
            return self.cancel(group, members, now=now, reason=reason)
        return self.resolve_deadline(group, members, now=now)

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    @staticmethod
    def _move(group: GroupShipment, status: GroupStatus) -> GroupShipment:
        if status != group.status:
            logger.info(f"Group {group.label}: {group.status.value} -> {status.value}")
        return replace(group, status=status)

    @staticmethod
    def _result(before: GroupShipment, after: GroupShipment, event: GroupEvent, parcels,
                notify=()) -> TransitionResult:
        return TransitionResult(
            group=after,
            event=event,
            previous_status=before.status,
            parcels=list(parcels),
            notify_parcel_ids=[p.id for p in notify],
        )
