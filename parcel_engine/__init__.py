"""
GROUP SHIPMENT SETTLEMENT CORE
Money resolution, agent matching, group lifecycle, commission splits
and agent earnings for a parcel delivery platform.
"""

from .calculators import AgentMatcher, CommissionEngine, EarningsAggregator, GroupPricing, MoneyResolver
from .client import ParcelApiClient
from .errors import EngineError, InvalidTransition, TransientNetworkError, Unauthorized, ValidationError
from .lifecycle import GroupLifecycle
from .models import Agent, GroupShipment, Parcel, Session
from .processor import SettlementProcessor
from .service import GroupShipmentService

__all__ = [
    'SettlementProcessor',
    'GroupShipmentService',
    'ParcelApiClient',
    'MoneyResolver',
    'AgentMatcher',
    'GroupLifecycle',
    'CommissionEngine',
    'EarningsAggregator',
    'GroupPricing',
    'Parcel',
    'GroupShipment',
    'Agent',
    'Session',
    'EngineError',
    'InvalidTransition',
    'ValidationError',
    'Unauthorized',
    'TransientNetworkError',
]
