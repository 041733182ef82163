"""
Agent Matcher

Ranks candidate agents for a pickup or delivery assignment. Eligibility
filtering (active, available, same company) is the caller's job: every
candidate passed in is ranked.
"""

from decimal import Decimal

from ..models import Agent


class AgentMatcher:
    """Scores and ranks agents best-first."""

    RATING_WEIGHT = Decimal("10")
    DELIVERIES_DIVISOR = Decimal("10")
    LOAD_PENALTY = Decimal("2")
    PINCODE_BONUS = Decimal("50")
    PINCODE_PREFIX = 3

    def score(self, agent: Agent, target_pincode: str | None = None) -> Decimal:
        """
        score = rating * 10 + deliveries / 10 - active orders * 2 + pincode bonus
        """
        rating = agent.rating_avg
        if rating is None or not rating.is_finite():
            rating = Decimal("0")
        deliveries = Decimal(agent.total_deliveries or 0)
        load = Decimal(agent.current_orders_count or 0)

        score = rating * self.RATING_WEIGHT + deliveries / self.DELIVERIES_DIVISOR - load * self.LOAD_PENALTY
        if self._same_area(agent.pincode, target_pincode):
            score += self.PINCODE_BONUS
        return score

    def rank(self, candidates: list[Agent], target_pincode: str | None = None) -> list[Agent]:
        """
        Sort candidates by descending score.

        Equal scores are ordered by lowest agent id; agents without an id
        come after those with one, in input order.
        """
        scored = [(self.score(agent, target_pincode), agent) for agent in candidates]
        scored.sort(key=lambda pair: (-pair[0], *self._id_key(pair[1].id)))
        return [agent for _, agent in scored]

    def rank_with_scores(self, candidates: list[Agent], target_pincode: str | None = None) -> list[tuple[Agent, Decimal]]:
        ranked = self.rank(candidates, target_pincode)
        return [(agent, self.score(agent, target_pincode)) for agent in ranked]

    def best_match(self, candidates: list[Agent], target_pincode: str | None = None) -> Agent | None:
        ranked = self.rank(candidates, target_pincode)
        return ranked[0] if ranked else None

    def _same_area(self, pincode: str | None, target_pincode: str | None) -> bool:
        if not pincode or not target_pincode:
            return False
        pincode, target_pincode = str(pincode).strip(), str(target_pincode).strip()
        size = self.PINCODE_PREFIX
        return len(pincode) >= size and len(target_pincode) >= size and pincode[:size] == target_pincode[:size]

    @staticmethod
    def _id_key(agent_id) -> tuple:
        if agent_id is None:
            return (2, 0, "")
        try:
            return (0, int(agent_id), "")
        except (TypeError, ValueError):
            return (1, 0, str(agent_id))
