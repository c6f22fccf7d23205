"""Business rules: verification tiers, offer and payment lifecycles, portfolios."""

from marketplace_engine.engine.offers import OfferStateMachine
from marketplace_engine.engine.payments import PaymentLedger
from marketplace_engine.engine.service import MarketplaceService

__all__ = ["MarketplaceService", "OfferStateMachine", "PaymentLedger"]
