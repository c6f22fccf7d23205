"""Domain models for the marketplace engine."""

from marketplace_engine.models.base import Event
from marketplace_engine.models.effects import OfferTransition, PropertyAvailabilityChanged
from marketplace_engine.models.enums import (
    Actor,
    BuyerType,
    Capability,
    KycLevel,
    OfferPaymentMethod,
    OfferStatus,
    PaymentChannel,
    PaymentStatus,
    Role,
    VerificationKind,
)
from marketplace_engine.models.offer import Offer
from marketplace_engine.models.payment import Payment
from marketplace_engine.models.portfolio import OfferStats, PaymentStats, PortfolioEntry
from marketplace_engine.models.verification import VerificationEvent, VerificationLedger

__all__ = [
    "Actor",
    "BuyerType",
    "Capability",
    "Event",
    "KycLevel",
    "Offer",
    "OfferTransition",
    "OfferPaymentMethod",
    "OfferStats",
    "OfferStatus",
    "Payment",
    "PaymentChannel",
    "PaymentStats",
    "PaymentStatus",
    "PortfolioEntry",
    "PropertyAvailabilityChanged",
    "Role",
    "VerificationEvent",
    "VerificationLedger",
    "VerificationKind",
]
