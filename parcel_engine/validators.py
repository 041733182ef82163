"""
Input Validation for lifecycle requests

Validates group and parcel data before a transition is attempted.
Raises ValidationError (a ValueError) with clear messages for any
constraint violations. The pure calculators do not go through here: they
accept malformed-but-present data and default missing values to zero.
"""

from decimal import Decimal

from .errors import ValidationError
from .models import GroupEvent, GroupShipment, Parcel

AGENT_EVENTS = frozenset({GroupEvent.ASSIGN_PICKUP_AGENT, GroupEvent.ASSIGN_DELIVERY_AGENT})
PARCEL_EVENTS = frozenset({GroupEvent.JOIN, GroupEvent.LEAVE})


class InputValidator:
    """Validates transition input according to business rules."""

    def validate_transition(self, group: GroupShipment, event: GroupEvent, agent_id=None,
                            parcel: Parcel | None = None) -> None:
        """
        Run all validations. Raises ValidationError if any check fails.
        """
        self._validate_group(group)
        self._validate_request(event, agent_id, parcel)
        if parcel is not None:
            self._validate_parcel(parcel)

    def _validate_group(self, group: GroupShipment) -> None:
        """Validate group-level constraints."""
        if group.target_members <= 0:
            raise ValidationError(f"target_members must be positive, got: {group.target_members}",
                                  group_id=group.id)

        if group.current_members < 0:
            raise ValidationError(f"current_members cannot be negative, got: {group.current_members}",
                                  group_id=group.id)

        if group.current_members > group.target_members:
            raise ValidationError(
                f"current_members ({group.current_members}) cannot exceed target_members ({group.target_members})",
                group_id=group.id,
            )

        if not (Decimal("0") <= group.discount_percentage <= Decimal("100")):
            raise ValidationError(
                f"discount_percentage must be between 0 and 100, got: {group.discount_percentage}",
                group_id=group.id,
            )

    def _validate_request(self, event: GroupEvent, agent_id, parcel: Parcel | None) -> None:
        if event in AGENT_EVENTS and agent_id is None:
            raise ValidationError(f"agentId is required for {event.value}")

        if event in PARCEL_EVENTS and parcel is None:
            raise ValidationError(f"parcel is required for {event.value}")

    def _validate_parcel(self, parcel: Parcel) -> None:
        """Validate parcel-level constraints."""
        if parcel.base_price is not None and parcel.base_price < 0:
            raise ValidationError(f"base_price cannot be negative, got: {parcel.base_price}", parcel_id=parcel.id)

        if parcel.final_price is not None and parcel.final_price < 0:
            raise ValidationError(f"final_price cannot be negative, got: {parcel.final_price}", parcel_id=parcel.id)
