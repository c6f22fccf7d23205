"""End-to-end marketplace scenarios."""

from marketplace_engine.scenarios.buyer_journey import BuyerJourneyScenario

__all__ = ["BuyerJourneyScenario"]
