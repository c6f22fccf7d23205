"""Synthetic data generators for simulations and demos."""

from marketplace_engine.generators.marketplace import (
    BuyerGenerator,
    OfferGenerator,
    OfferTerms,
    PaymentPlanGenerator,
)

__all__ = ["BuyerGenerator", "OfferGenerator", "OfferTerms", "PaymentPlanGenerator"]
