"""
Calculators Package

Provides the pure calculation components of the settlement core.
"""

from .commission import CommissionEngine
from .earnings import EarningsAggregator
from .matching import AgentMatcher
from .money import MoneyResolver
from .pricing import GroupPricing

__all__ = [
    "MoneyResolver",
    "AgentMatcher",
    "CommissionEngine",
    "EarningsAggregator",
    "GroupPricing",
]
