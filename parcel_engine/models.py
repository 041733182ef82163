"""
Domain Models for the Group Shipment Settlement Core

These dataclasses provide type-safe representations of all business entities.
All monetary values use Decimal for precision. Entities are parsed from the
camelCase wire format of the parcel platform API and serialized back to it.
"""

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum

from .errors import ValidationError

# =============================================================================
# ENUMS
# =============================================================================


class ParcelStatus(str, Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    ASSIGNED = "ASSIGNED"
    PICKED_UP = "PICKED_UP"
    IN_TRANSIT = "IN_TRANSIT"
    OUT_FOR_DELIVERY = "OUT_FOR_DELIVERY"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"
    RETURNED = "RETURNED"


class GroupStatus(str, Enum):
    OPEN = "OPEN"
    FULL = "FULL"
    PICKUP_IN_PROGRESS = "PICKUP_IN_PROGRESS"
    PICKUP_COMPLETE = "PICKUP_COMPLETE"
    DELIVERY_IN_PROGRESS = "DELIVERY_IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"

    @property
    def is_terminal(self) -> bool:
        return self in (GroupStatus.COMPLETED, GroupStatus.CANCELLED)


class GroupEvent(str, Enum):
    JOIN = "join"
    LEAVE = "leave"
    CLOSE_EARLY = "close_early"
    REOPEN = "reopen"
    ASSIGN_PICKUP_AGENT = "assign_pickup_agent"
    COMPLETE_PICKUP = "complete_pickup"
    ASSIGN_DELIVERY_AGENT = "assign_delivery_agent"
    COMPLETE_DELIVERY = "complete_delivery"
    CANCEL = "cancel"
    RESOLVE_DEADLINE = "resolve_deadline"


class AssignmentPhase(str, Enum):
    PICKUP = "pickup"
    DELIVERY = "delivery"


class EarningsPeriod(str, Enum):
    TODAY = "today"
    WEEK = "week"
    MONTH = "month"
    ALL = "all"


class SortOrder(str, Enum):
    NEWEST = "newest"
    OLDEST = "oldest"
    HIGHEST = "highest"
    LOWEST = "lowest"


class EarningKind(str, Enum):
    DELIVERY = "DELIVERY"
    GROUP_PICKUP = "GROUP_PICKUP"
    GROUP_DELIVERY = "GROUP_DELIVERY"


# =============================================================================
# PARSING HELPERS
# =============================================================================

_FRACTION = re.compile(r"(\.\d{6})\d+")


def to_decimal(value) -> Decimal | None:
    """Parse an optional money value. Unparseable values count as absent."""
    if value is None or value == "":
        return None
    try:
        return Decimal(str(value))
    except InvalidOperation:
        return None


def to_int(value, default: int = 0) -> int:
    if value is None or value == "":
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def parse_timestamp(value) -> datetime | None:
    """Parse ISO-8601 timestamps as sent by the API (LocalDateTime or Zulu)."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    # Java may send nanoseconds
    text = _FRACTION.sub(r"\1", text)
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None


def align_timestamp(value: datetime, now: datetime) -> datetime:
    """Make value comparable with now. Naive values share now's zone; a naive now is read as UTC."""
    if now.tzinfo is not None and value.tzinfo is None:
        return value.replace(tzinfo=now.tzinfo)
    if now.tzinfo is None and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def format_timestamp(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _money_out(value: Decimal | None):
    return str(value) if value is not None else None


def parse_enum(enum_cls, value, field_name: str):
    """Case-insensitive lookup of a closed enum; unknown values are rejected."""
    if isinstance(value, enum_cls):
        return value
    text = str(value).strip().lower()
    for member in enum_cls:
        if member.value.lower() == text:
            return member
    allowed = ", ".join(member.value for member in enum_cls)
    raise ValidationError(f"Invalid {field_name}: {value}. Must be one of {allowed}", field=field_name)


# =============================================================================
# ENTITIES
# =============================================================================


@dataclass
class Parcel:
    """A single booked parcel."""

    id: int | None
    status: ParcelStatus = ParcelStatus.PENDING
    tracking_number: str | None = None
    weight_kg: Decimal | None = None
    base_price: Decimal | None = None
    final_price: Decimal | None = None
    total_amount: Decimal | None = None
    discount_amount: Decimal | None = None
    balance_amount: Decimal | None = None
    group_shipment_id: int | None = None
    pickup_agent_id: int | None = None
    delivery_agent_id: int | None = None
    pickup_city: str | None = None
    delivery_city: str | None = None
    pickup_pincode: str | None = None
    delivery_pincode: str | None = None
    delivered_at: datetime | None = None
    updated_at: datetime | None = None
    created_at: datetime | None = None

    @property
    def completed_at(self) -> datetime | None:
        """Timestamp used to place a delivered parcel in an earnings bucket."""
        return self.delivered_at or self.updated_at

    @classmethod
    def from_dict(cls, data: dict) -> "Parcel":
        # Single-agent parcels expose the assignee as agentId
        agent_id = data.get("agentId")
        return cls(
            id=data.get("id"),
            status=parse_enum(ParcelStatus, data.get("status", "PENDING"), "parcel status"),
            tracking_number=data.get("trackingNumber"),
            weight_kg=to_decimal(data.get("weightKg")),
            base_price=to_decimal(data.get("basePrice")),
            final_price=to_decimal(data.get("finalPrice")),
            total_amount=to_decimal(data.get("totalAmount")),
            discount_amount=to_decimal(data.get("discountAmount")),
            balance_amount=to_decimal(data.get("balanceAmount")),
            group_shipment_id=data.get("groupShipmentId"),
            pickup_agent_id=data.get("pickupAgentId", agent_id),
            delivery_agent_id=data.get("deliveryAgentId", agent_id),
            pickup_city=data.get("pickupCity"),
            delivery_city=data.get("deliveryCity"),
            pickup_pincode=data.get("pickupPincode"),
            delivery_pincode=data.get("deliveryPincode"),
            delivered_at=parse_timestamp(data.get("deliveredAt")),
            updated_at=parse_timestamp(data.get("updatedAt")),
            created_at=parse_timestamp(data.get("createdAt")),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "trackingNumber": self.tracking_number,
            "status": self.status.value,
            "weightKg": _money_out(self.weight_kg),
            "basePrice": _money_out(self.base_price),
            "finalPrice": _money_out(self.final_price),
            "totalAmount": _money_out(self.total_amount),
            "discountAmount": _money_out(self.discount_amount),
            "balanceAmount": _money_out(self.balance_amount),
            "groupShipmentId": self.group_shipment_id,
            "pickupAgentId": self.pickup_agent_id,
            "deliveryAgentId": self.delivery_agent_id,
            "pickupCity": self.pickup_city,
            "deliveryCity": self.delivery_city,
            "pickupPincode": self.pickup_pincode,
            "deliveryPincode": self.delivery_pincode,
            "deliveredAt": format_timestamp(self.delivered_at),
            "updatedAt": format_timestamp(self.updated_at),
            "createdAt": format_timestamp(self.created_at),
        }


@dataclass
class GroupShipment:
    """A pool of parcels sharing a route, combined for a volume discount."""

    id: int | None
    status: GroupStatus = GroupStatus.OPEN
    group_code: str | None = None
    source_city: str | None = None
    destination_city: str | None = None
    source_pincode: str | None = None
    destination_pincode: str | None = None
    target_members: int = 0
    current_members: int = 0
    discount_percentage: Decimal = Decimal("0")
    effective_discount_percentage: Decimal | None = None
    fill_percentage: Decimal | None = None
    deadline: datetime | None = None
    pickup_agent_id: int | None = None
    delivery_agent_id: int | None = None
    pickup_agent_earnings: Decimal | None = None
    delivery_agent_earnings: Decimal | None = None
    total_group_value: Decimal | None = None
    pickup_started_at: datetime | None = None
    pickup_completed_at: datetime | None = None
    delivery_started_at: datetime | None = None
    delivery_completed_at: datetime | None = None
    cancelled_at: datetime | None = None
    cancellation_reason: str | None = None

    @property
    def label(self):
        return self.group_code or self.id

    @property
    def is_full(self) -> bool:
        return self.current_members >= self.target_members

    def is_expired(self, now: datetime) -> bool:
        return self.deadline is not None and now > align_timestamp(self.deadline, now)

    @classmethod
    def from_dict(cls, data: dict) -> "GroupShipment":
        return cls(
            id=data.get("id"),
            status=parse_enum(GroupStatus, data.get("status", "OPEN"), "group status"),
            group_code=data.get("groupCode"),
            source_city=data.get("sourceCity"),
            destination_city=data.get("destinationCity", data.get("targetCity")),
            source_pincode=data.get("sourcePincode"),
            destination_pincode=data.get("destinationPincode", data.get("targetPincode")),
            target_members=to_int(data.get("targetMembers")),
            current_members=to_int(data.get("currentMembers")),
            discount_percentage=to_decimal(data.get("discountPercentage")) or Decimal("0"),
            effective_discount_percentage=to_decimal(data.get("effectiveDiscountPercentage")),
            fill_percentage=to_decimal(data.get("fillPercentage")),
            deadline=parse_timestamp(data.get("deadline")),
            pickup_agent_id=data.get("pickupAgentId"),
            delivery_agent_id=data.get("deliveryAgentId"),
            pickup_agent_earnings=to_decimal(data.get("pickupAgentEarnings")),
            delivery_agent_earnings=to_decimal(data.get("deliveryAgentEarnings")),
            total_group_value=to_decimal(data.get("totalGroupValue")),
            pickup_started_at=parse_timestamp(data.get("pickupStartedAt")),
            pickup_completed_at=parse_timestamp(data.get("pickupCompletedAt")),
            delivery_started_at=parse_timestamp(data.get("deliveryStartedAt")),
            delivery_completed_at=parse_timestamp(data.get("deliveryCompletedAt")),
            cancelled_at=parse_timestamp(data.get("cancelledAt")),
            cancellation_reason=data.get("cancellationReason"),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "groupCode": self.group_code,
            "status": self.status.value,
            "sourceCity": self.source_city,
            "destinationCity": self.destination_city,
            "sourcePincode": self.source_pincode,
            "destinationPincode": self.destination_pincode,
            "targetMembers": self.target_members,
            "currentMembers": self.current_members,
            "discountPercentage": _money_out(self.discount_percentage),
            "effectiveDiscountPercentage": _money_out(self.effective_discount_percentage),
            "fillPercentage": _money_out(self.fill_percentage),
            "deadline": format_timestamp(self.deadline),
            "pickupAgentId": self.pickup_agent_id,
            "deliveryAgentId": self.delivery_agent_id,
            "pickupAgentEarnings": _money_out(self.pickup_agent_earnings),
            "deliveryAgentEarnings": _money_out(self.delivery_agent_earnings),
            "totalGroupValue": _money_out(self.total_group_value),
            "pickupStartedAt": format_timestamp(self.pickup_started_at),
            "pickupCompletedAt": format_timestamp(self.pickup_completed_at),
            "deliveryStartedAt": format_timestamp(self.delivery_started_at),
            "deliveryCompletedAt": format_timestamp(self.delivery_completed_at),
            "cancelledAt": format_timestamp(self.cancelled_at),
            "cancellationReason": self.cancellation_reason,
        }


@dataclass
class Agent:
    """A pickup or delivery agent as seen by the matcher."""

    id: int | None
    rating_avg: Decimal = Decimal("0")
    total_deliveries: int = 0
    current_orders_count: int = 0
    city: str | None = None
    pincode: str | None = None
    is_available: bool = True
    is_active: bool = True
    full_name: str | None = None

    @property
    def is_assignable(self) -> bool:
        return self.is_active and self.is_available

    @classmethod
    def from_dict(cls, data: dict) -> "Agent":
        pincode = data.get("pincode")
        if not pincode and data.get("servicePincodes"):
            pincode = data["servicePincodes"][0]
        rating = to_decimal(data.get("ratingAvg", data.get("rating")))
        if rating is None or not rating.is_finite():
            rating = Decimal("0")
        return cls(
            id=data.get("id"),
            rating_avg=rating,
            total_deliveries=to_int(data.get("totalDeliveries")),
            current_orders_count=to_int(data.get("currentOrdersCount", data.get("activeOrders"))),
            city=data.get("city"),
            pincode=pincode,
            is_available=data.get("isAvailable", True) is not False,
            is_active=data.get("isActive", True) is not False,
            full_name=data.get("fullName"),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "fullName": self.full_name,
            "ratingAvg": _money_out(self.rating_avg),
            "totalDeliveries": self.total_deliveries,
            "currentOrdersCount": self.current_orders_count,
            "city": self.city,
            "pincode": self.pincode,
            "isAvailable": self.is_available,
            "isActive": self.is_active,
        }


@dataclass
class Session:
    """
    Explicit caller context handed to every component that talks to the API.

    Replaces reading the token and user from ambient storage.
    """

    token: str | None = None
    user_id: int | None = None
    role: str | None = None

    @property
    def is_authenticated(self) -> bool:
        return bool(self.token)

    def invalidate(self) -> None:
        self.token = None
        self.user_id = None
        self.role = None


# =============================================================================
# OUTPUT / RESULT MODELS
# =============================================================================


@dataclass
class ParcelCommission:
    """Split of a regular (non-group) delivery."""

    amount: Decimal = Decimal("0")
    agent_share: Decimal = Decimal("0")
    company_remainder: Decimal = Decimal("0")


@dataclass
class CommissionSplit:
    """Four-way split of a group shipment's value."""

    total_group_value: Decimal = Decimal("0")
    platform_share: Decimal = Decimal("0")
    company_share: Decimal = Decimal("0")
    pickup_agent_share: Decimal = Decimal("0")
    delivery_agent_share: Decimal = Decimal("0")

    @property
    def total(self) -> Decimal:
        return self.platform_share + self.company_share + self.pickup_agent_share + self.delivery_agent_share


@dataclass
class RealizedEarnings:
    """Agent earnings confirmed by milestones reached so far."""

    pickup_agent_earnings: Decimal = Decimal("0")
    delivery_agent_earnings: Decimal = Decimal("0")
    pickup_realized: bool = False
    delivery_realized: bool = False


@dataclass
class EarningEntry:
    """One line of an agent's earnings history."""

    kind: EarningKind
    reference_id: int | None
    reference: str | None
    order_amount: Decimal
    amount: Decimal
    earned_at: datetime | None


@dataclass
class EarningsBucket:
    total_earnings: Decimal = Decimal("0")
    count: int = 0

    def add(self, amount: Decimal) -> None:
        self.total_earnings += amount
        self.count += 1


@dataclass
class EarningsSummary:
    """Per-period totals for one agent."""

    agent_id: int | None
    today: EarningsBucket = field(default_factory=EarningsBucket)
    week: EarningsBucket = field(default_factory=EarningsBucket)
    month: EarningsBucket = field(default_factory=EarningsBucket)
    all: EarningsBucket = field(default_factory=EarningsBucket)

    def bucket(self, period: EarningsPeriod) -> EarningsBucket:
        return getattr(self, period.value)


@dataclass
class DeadlineOutcome:
    """Result of resolving an OPEN group whose deadline has passed."""

    status: GroupStatus
    partial: bool = False


@dataclass
class TransitionResult:
    """
    New group and member values after a lifecycle event.

    The input entities are never mutated; the persistence layer stores
    these values back. notify_parcel_ids lists members an external
    notifier should contact.
    """

    group: GroupShipment
    event: GroupEvent
    previous_status: GroupStatus
    parcels: list[Parcel] = field(default_factory=list)
    notify_parcel_ids: list = field(default_factory=list)
